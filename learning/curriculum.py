"""
Curriculum - easy-to-hard staged training.

An ordered sequence of difficulty levels, from PRESCHOOL (basic piece
movement) up to INFINITE (chess variants). Training starts at the lowest
level and moves up one level at a time once accuracy on the current level
reaches the mastery threshold. There is no demotion.
"""

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List

from core.errors import ConfigurationError, require_positive
from .example import TrainingExample

logger = logging.getLogger(__name__)


class Level(IntEnum):
    PRESCHOOL = 0       # Basic piece movements
    KINDERGARTEN = 1    # Simple captures
    ELEMENTARY = 2      # Basic checkmates
    MIDDLE_SCHOOL = 3   # Tactical patterns
    HIGH_SCHOOL = 4     # Strategic concepts
    UNDERGRAD = 5       # Complex tactics
    GRADUATE = 6        # Advanced strategy
    MASTER = 7          # Master-level play
    GRANDMASTER = 8     # GM-level play
    INFINITE = 9        # Infinite chess variants

NUM_LEVELS = len(Level)


def level_name(index: int) -> str:
    if 0 <= index < NUM_LEVELS:
        return Level(index).name
    return f"LEVEL_{index}"


@dataclass
class DifficultyLevel:
    """One tier of the curriculum and its example pool."""
    index: int
    mastery_threshold: float = 0.85
    examples: List[TrainingExample] = field(default_factory=list)
    current_accuracy: float = 0.0
    examples_seen: int = 0

    @property
    def name(self) -> str:
        return level_name(self.index)

    @property
    def mastered(self) -> bool:
        return self.current_accuracy >= self.mastery_threshold

    def __len__(self):
        return len(self.examples)


class Curriculum:
    """
    Finite state machine over difficulty levels.

    The current index starts at 0, only ever increases, and saturates at
    ``num_levels - 1``.
    """

    def __init__(self, num_levels: int = NUM_LEVELS,
                 mastery_threshold: float = 0.85):
        require_positive(num_levels=num_levels)
        if not 0.0 <= mastery_threshold <= 1.0:
            raise ConfigurationError(
                f"mastery_threshold must be in [0, 1], got {mastery_threshold}")

        self.num_levels = num_levels
        self.mastery_threshold = mastery_threshold
        self._current = 0
        self.levels = [DifficultyLevel(index=i, mastery_threshold=mastery_threshold)
                       for i in range(num_levels)]

    @property
    def current_level(self) -> int:
        return self._current

    @property
    def current_level_name(self) -> str:
        return level_name(self._current)

    @property
    def is_complete(self) -> bool:
        """At the last level with that level mastered."""
        return (self._current == self.num_levels - 1
                and self.levels[self._current].mastered)

    def level(self, index: int) -> DifficultyLevel:
        self._check_index(index)
        return self.levels[index]

    def current_examples(self) -> List[TrainingExample]:
        return self.levels[self._current].examples

    def add_example(self, example: TrainingExample, level: int) -> int:
        """Store a deep copy of ``example`` at ``level``; returns its index."""
        self._check_index(level)
        dl = self.levels[level]
        dl.examples.append(example.copy())
        return len(dl.examples) - 1

    def should_advance(self, accuracy: float) -> bool:
        """Record ``accuracy`` for the current level and test for mastery."""
        current = self.levels[self._current]
        current.current_accuracy = accuracy
        if self._current >= self.num_levels - 1:
            return False
        return accuracy >= current.mastery_threshold

    def advance_level(self) -> int:
        if self._current < self.num_levels - 1:
            self._current += 1
            logger.info(f"Curriculum advanced to level {self._current} "
                        f"({self.current_level_name})")
        return self._current

    def total_examples(self) -> int:
        return sum(len(dl) for dl in self.levels)

    def stats(self) -> dict:
        return {
            'current_level': self._current,
            'current_level_name': self.current_level_name,
            'num_levels': self.num_levels,
            'examples_per_level': [len(dl) for dl in self.levels],
            'accuracy_per_level': [dl.current_accuracy for dl in self.levels],
        }

    def _check_index(self, index: int):
        if not 0 <= index < self.num_levels:
            raise IndexError(
                f"level {index} out of range for {self.num_levels} levels")
