"""
Puzzle Generator - synthetic training examples tagged with a difficulty.

Stands in for a real puzzle source when no encoded positions are at hand.
Vector sizes are declared by the caller so the puzzles always fit the
network being trained.
"""

from typing import Optional

import numpy as np

from core.errors import require_positive
from .curriculum import Curriculum, NUM_LEVELS
from .example import TrainingExample


class PuzzleGenerator:
    """
    Builds random (input, target) puzzles.

    Inputs are uniform in [0, 1); targets are uniform in [0, target_scale).
    The difficulty of a level-``k`` puzzle is ``k / (num_levels - 1)``.
    """

    def __init__(self, input_size: int, target_size: int,
                 num_levels: int = NUM_LEVELS, target_scale: float = 0.1,
                 seed: Optional[int] = None):
        require_positive(input_size=input_size, target_size=target_size,
                         num_levels=num_levels)
        self.input_size = input_size
        self.target_size = target_size
        self.num_levels = num_levels
        self.target_scale = target_scale
        self.rng = np.random.default_rng(seed)
        self.puzzle_count = 0

    def difficulty_for_level(self, level: int) -> float:
        if self.num_levels == 1:
            return 0.0
        return level / (self.num_levels - 1)

    def level_for_difficulty(self, difficulty: float) -> int:
        difficulty = min(1.0, max(0.0, difficulty))
        return min(self.num_levels - 1, int(difficulty * (self.num_levels - 1)))

    def create_puzzle(self, level: int) -> TrainingExample:
        if not 0 <= level < self.num_levels:
            raise IndexError(f"level {level} out of range for {self.num_levels} levels")
        puzzle = TrainingExample(
            input=self.rng.uniform(0.0, 1.0, size=self.input_size),
            target=self.rng.uniform(0.0, self.target_scale, size=self.target_size),
            difficulty=self.difficulty_for_level(level),
            metadata={'level': level},
        )
        self.puzzle_count += 1
        return puzzle

    def create_progressive_puzzle(self, difficulty: float) -> TrainingExample:
        puzzle = self.create_puzzle(self.level_for_difficulty(difficulty))
        puzzle.difficulty = min(1.0, max(0.0, difficulty))
        return puzzle

    def populate(self, curriculum: Curriculum, per_level: int) -> int:
        """Fill every curriculum level with ``per_level`` fresh puzzles."""
        added = 0
        for level in range(min(curriculum.num_levels, self.num_levels)):
            for _ in range(per_level):
                curriculum.add_example(self.create_puzzle(level), level)
                added += 1
        return added
