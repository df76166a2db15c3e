"""
Curriculum Chess - Training

Configuration, the training engine that runs the three learning strategies
against a hybrid network, and checkpoint persistence.
"""

from .config import TrainingConfig, NetworkConfig
from .checkpoint import CheckpointError, FORMAT_VERSION
from .engine import (
    TrainingEngine, TrainingStats, StepResult, EpochResult,
    is_correct, is_hallucination
)

__all__ = [
    'TrainingConfig',
    'NetworkConfig',
    'CheckpointError',
    'FORMAT_VERSION',
    'TrainingEngine',
    'TrainingStats',
    'StepResult',
    'EpochResult',
    'is_correct',
    'is_hallucination',
]
