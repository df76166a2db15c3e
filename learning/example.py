"""
Training Example - one (input, target) pair plus its review bookkeeping.

Examples are produced by an encoder or puzzle generator and then owned by
exactly one container (a curriculum level or the spaced-repetition pool).
Containers store copies, never the caller's object.
"""

from dataclasses import dataclass, field
from typing import Any, Dict

import numpy as np


@dataclass
class TrainingExample:
    input: np.ndarray
    target: np.ndarray
    difficulty: float = 0.0  # 0.0 (trivial) to 1.0 (hardest)

    # Review bookkeeping
    is_correct: bool = False
    attempts: int = 0
    correct_streak: int = 0
    last_reviewed: float = 0.0
    next_review: float = 0.0

    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.input = np.array(self.input, dtype=np.float64).reshape(-1)
        self.target = np.array(self.target, dtype=np.float64).reshape(-1)
        self.difficulty = float(min(1.0, max(0.0, self.difficulty)))

    @property
    def input_size(self) -> int:
        return self.input.shape[0]

    @property
    def target_size(self) -> int:
        return self.target.shape[0]

    def copy(self) -> 'TrainingExample':
        """Deep copy: arrays and metadata are not shared."""
        return TrainingExample(
            input=self.input.copy(),
            target=self.target.copy(),
            difficulty=self.difficulty,
            is_correct=self.is_correct,
            attempts=self.attempts,
            correct_streak=self.correct_streak,
            last_reviewed=self.last_reviewed,
            next_review=self.next_review,
            metadata=dict(self.metadata),
        )

    def reset_progress(self):
        self.is_correct = False
        self.attempts = 0
        self.correct_streak = 0
