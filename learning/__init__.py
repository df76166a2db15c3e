"""
Curriculum Chess - Learning Strategies

Three pedagogical strategies that decide what the network trains on:
1. Curriculum - easy-to-hard staged datasets with mastery gating
2. Spaced Repetition - review timing driven by the correct-answer streak
3. Pavlovian Learning - Rescorla-Wagner stimulus/reward association
"""

from .example import TrainingExample
from .curriculum import Curriculum, DifficultyLevel, Level, NUM_LEVELS, level_name
from .spaced_repetition import SpacedRepetition
from .pavlovian import (
    PavlovianLearner, PavlovianType, ConditionedStimulus,
    UnconditionedStimulus, Association
)
from .puzzles import PuzzleGenerator

__all__ = [
    'TrainingExample',
    'Curriculum',
    'DifficultyLevel',
    'Level',
    'NUM_LEVELS',
    'level_name',
    'SpacedRepetition',
    'PavlovianLearner',
    'PavlovianType',
    'ConditionedStimulus',
    'UnconditionedStimulus',
    'Association',
    'PuzzleGenerator',
]
