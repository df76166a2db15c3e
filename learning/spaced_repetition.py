"""
Spaced Repetition - review scheduling keyed on the correct-answer streak.

Every example carries a next-review timestamp. A correct answer pushes the
next review further out, by a multiplier that grows with the streak:

    multiplier    = 2.5 + max(0, streak - 1) * 0.5
    next_interval = prior_interval * multiplier

A wrong answer resets the streak and brings the example back after the
initial interval. Once the streak reaches ``ltm_threshold`` the example is
labelled as being in long-term memory (LTM). LTM is only a label; the
example stays in the same pool.
"""

import time
from typing import Callable, List, Optional

from core.errors import ConfigurationError
from .example import TrainingExample

SECONDS_PER_HOUR = 3600.0

# Prior intervals shorter than this fall back to the initial interval
MIN_INTERVAL_HOURS = 0.1


class SpacedRepetition:
    """Pool of examples with exponential review spacing."""

    def __init__(self, ltm_threshold: int = 5,
                 initial_interval_hours: float = 1.0,
                 clock: Callable[[], float] = time.time):
        if ltm_threshold < 1:
            raise ConfigurationError(f"ltm_threshold must be >= 1, got {ltm_threshold}")
        if initial_interval_hours <= 0:
            raise ConfigurationError(
                f"initial_interval_hours must be > 0, got {initial_interval_hours}")
        self.ltm_threshold = ltm_threshold
        self.initial_interval = initial_interval_hours
        self.clock = clock
        self.examples: List[TrainingExample] = []

    def __len__(self):
        return len(self.examples)

    def add_example(self, example: TrainingExample) -> int:
        """Insert a deep copy, first due one initial interval from now."""
        ex = example.copy()
        ex.reset_progress()
        now = self.clock()
        ex.last_reviewed = now
        ex.next_review = now + self.initial_interval * SECONDS_PER_HOUR
        self.examples.append(ex)
        return len(self.examples) - 1

    def next_due_index(self) -> Optional[int]:
        """Index of the due example with the earliest next_review, or None."""
        now = self.clock()
        best = None
        for idx, ex in enumerate(self.examples):
            if ex.next_review <= now:
                # strict < keeps pool order on ties
                if best is None or ex.next_review < self.examples[best].next_review:
                    best = idx
        return best

    def get_next_review(self) -> Optional[TrainingExample]:
        idx = self.next_due_index()
        return None if idx is None else self.examples[idx]

    def update_example(self, index: int, is_correct: bool):
        if not 0 <= index < len(self.examples):
            raise IndexError(f"example {index} out of range for pool of {len(self.examples)}")

        ex = self.examples[index]
        now = self.clock()
        prior_interval = (ex.next_review - ex.last_reviewed) / SECONDS_PER_HOUR

        ex.attempts += 1
        ex.is_correct = is_correct
        ex.last_reviewed = now

        if is_correct:
            ex.correct_streak += 1
            multiplier = 2.5 + max(0, ex.correct_streak - 1) * 0.5
            if prior_interval < MIN_INTERVAL_HOURS:
                prior_interval = self.initial_interval
            ex.next_review = now + prior_interval * multiplier * SECONDS_PER_HOUR
        else:
            ex.correct_streak = 0
            ex.next_review = now + self.initial_interval * SECONDS_PER_HOUR

    def is_in_ltm(self, index: int) -> bool:
        if not 0 <= index < len(self.examples):
            return False
        return self.examples[index].correct_streak >= self.ltm_threshold

    def due_count(self) -> int:
        now = self.clock()
        return sum(1 for ex in self.examples if ex.next_review <= now)

    def ltm_indices(self) -> List[int]:
        return [i for i in range(len(self.examples)) if self.is_in_ltm(i)]

    def stats(self) -> dict:
        return {
            'examples': len(self.examples),
            'due': self.due_count(),
            'in_ltm': len(self.ltm_indices()),
            'avg_streak': sum(ex.correct_streak for ex in self.examples) / max(1, len(self.examples)),
        }
