"""
Training Engine - orchestrates the network, the optimizer and the strategies

Every training step runs in a fixed order:

    forward -> loss -> backward -> optimizer update -> strategy bookkeeping

The strategies decide what the network sees next:
1. Curriculum: sweep the current difficulty level, advance on mastery
2. Spaced Repetition: review whichever example is due soonest
3. Pavlovian: pair a stimulus with a reward, train toward the expected reward

A step whose output is non-finite or implausibly large is flagged as a
hallucination and its update is skipped, so one bad example cannot poison
the weights.
"""

import functools
import logging
import time
from dataclasses import dataclass, asdict, replace
from typing import Callable, List, Optional, Sequence

import numpy as np

from core.network import HybridNetwork
from core.optimizer import Optimizer
from core.errors import ShapeError
from learning.curriculum import Curriculum
from learning.example import TrainingExample
from learning.pavlovian import (
    PavlovianLearner, PavlovianType, ConditionedStimulus, UnconditionedStimulus
)
from learning.puzzles import PuzzleGenerator
from learning.spaced_repetition import SpacedRepetition
from .checkpoint import (
    CheckpointError, read_checkpoint, write_checkpoint,
    pack_examples, unpack_examples, pack_associations, unpack_associations
)
from .config import TrainingConfig, NetworkConfig

logger = logging.getLogger(__name__)


@dataclass
class TrainingStats:
    """Aggregate training statistics"""
    current_loss: float = 0.0
    average_loss: float = 0.0
    accuracy: float = 0.0
    epoch: int = 0
    examples_seen: int = 0
    current_level: int = 0
    training_time: float = 0.0
    validation_accuracy: float = 0.0
    hallucinations: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class StepResult:
    loss: float
    correct: bool
    hallucination: bool = False


@dataclass
class EpochResult:
    loss: float
    accuracy: float
    examples: int
    level: int = 0
    advanced: bool = False


def is_correct(output: np.ndarray, target: np.ndarray, tolerance: float = 0.1) -> bool:
    """Every output element lies within ``tolerance`` of its target."""
    output = np.asarray(output, dtype=np.float64)
    target = np.asarray(target, dtype=np.float64)
    if output.shape != target.shape:
        return False
    return bool(np.all(np.abs(output - target) <= tolerance))


def is_hallucination(output: np.ndarray, limit: float = 10.0) -> bool:
    """Non-finite, or outside [-limit, limit]."""
    output = np.asarray(output, dtype=np.float64)
    return bool(not np.all(np.isfinite(output)) or np.any(np.abs(output) > limit))


def mean_loss(total: float, updates: int) -> float:
    """Mean over the steps that were actually applied; NaN if none were."""
    return total / updates if updates else float('nan')


def timed(method):
    """Add the wall time of the outermost timed call to ``stats.training_time``."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        if self._timing:
            return method(self, *args, **kwargs)
        self._timing = True
        start = time.perf_counter()
        try:
            return method(self, *args, **kwargs)
        finally:
            self._timing = False
            self.stats.training_time += time.perf_counter() - start
    return wrapper


class TrainingEngine:
    """
    Owns the optimizer and whichever strategies the config enables.

    The network is borrowed: the engine mutates its parameters through the
    optimizer but the caller keeps the reference.
    """

    def __init__(self, network: HybridNetwork,
                 config: Optional[TrainingConfig] = None,
                 clock: Callable[[], float] = time.time):
        self.config = config or TrainingConfig()
        self.config.validate()
        self.network = network
        self.clock = clock

        self.optimizer = Optimizer(
            self.config.optimizer_type,
            learning_rate=self.config.learning_rate,
            momentum=self.config.momentum,
            weight_decay=self.config.weight_decay
        )

        self.curriculum: Optional[Curriculum] = None
        if self.config.use_curriculum:
            self.curriculum = Curriculum(self.config.num_levels,
                                         self.config.mastery_threshold)

        self.pavlovian: Optional[PavlovianLearner] = None
        if self.config.use_pavlovian:
            self.pavlovian = PavlovianLearner(
                PavlovianType.HYBRID,
                learning_rate=min(1.0, self.config.learning_rate),
                clock=clock
            )

        self.scheduler: Optional[SpacedRepetition] = None
        if self.config.use_spaced_repetition:
            self.scheduler = SpacedRepetition(
                ltm_threshold=self.config.ltm_threshold,
                initial_interval_hours=self.config.initial_interval_hours,
                clock=clock
            )

        self.stats = TrainingStats()
        self.is_training = False
        self._loss_sum = 0.0
        self._loss_count = 0
        self._timing = False

    # ── Single step ───────────────────────────────────────────────────

    @timed
    def train_step(self, x, target) -> StepResult:
        """Forward, backward and update on one (input, target) pair."""
        target = np.asarray(target, dtype=np.float64).reshape(-1)
        output = self.network.forward(x)

        if is_hallucination(output, self.config.hallucination_limit):
            return self._skip(output)

        loss = self.network.backward(target)
        if not np.isfinite(loss):
            return self._skip(output)

        self.optimizer.update(self.network)
        correct = is_correct(output, target, self.config.tolerance)

        self.stats.examples_seen += 1
        self.stats.current_loss = loss
        self._loss_sum += loss
        self._loss_count += 1
        self.stats.average_loss = self._loss_sum / self._loss_count
        return StepResult(loss=loss, correct=correct)

    def _skip(self, output) -> StepResult:
        self.stats.hallucinations += 1
        self.network.zero_grad()
        if not np.all(np.isfinite(output)):
            # A non-finite hidden state would poison every later step
            self.network.reset_state()
            logger.warning("Non-finite output, update skipped and recurrent state reset")
        else:
            logger.warning(f"Hallucinated output (max |y| = {np.max(np.abs(output)):.3g}), "
                           f"update skipped")
        return StepResult(loss=float('nan'), correct=False, hallucination=True)

    # ── Curriculum ────────────────────────────────────────────────────

    def add_curriculum_example(self, example: TrainingExample, level: int) -> int:
        if self.curriculum is None:
            raise RuntimeError("curriculum learning is disabled in this config")
        return self.curriculum.add_example(example, level)

    @timed
    def train_with_curriculum(self) -> Optional[EpochResult]:
        """
        One sweep over the current level.

        Returns None when curriculum learning is disabled. An empty level
        yields a zero result and never advances. The loss is averaged over
        the applied steps only; accuracy counts skipped steps as wrong.
        """
        if self.curriculum is None:
            return None

        level_index = self.curriculum.current_level
        level = self.curriculum.level(level_index)
        if not level.examples:
            return EpochResult(loss=0.0, accuracy=0.0, examples=0, level=level_index)

        self.is_training = True
        total_loss = 0.0
        updates = 0
        correct = 0
        for ex in level.examples:
            result = self.train_step(ex.input, ex.target)
            ex.attempts += 1
            ex.is_correct = result.correct
            if not result.hallucination:
                total_loss += result.loss
                updates += 1
            correct += int(result.correct)
        self.is_training = False

        n = len(level.examples)
        level.examples_seen += n
        accuracy = correct / n
        loss = mean_loss(total_loss, updates)

        advanced = self.curriculum.should_advance(accuracy)
        if advanced:
            self.curriculum.advance_level()

        self.stats.current_loss = loss
        self.stats.accuracy = accuracy
        self.stats.current_level = self.curriculum.current_level
        logger.debug(f"Level {level.name}: loss={loss:.6f}, accuracy={accuracy:.2%}")
        return EpochResult(loss=loss, accuracy=accuracy, examples=n,
                           level=level_index, advanced=advanced)

    # ── Pavlovian ─────────────────────────────────────────────────────

    @timed
    def train_with_pavlovian(self, cs: ConditionedStimulus,
                             us: UnconditionedStimulus) -> Optional[StepResult]:
        """Pair the stimuli, then train the network toward the expected reward."""
        if self.pavlovian is None:
            return None
        self.pavlovian.pair_stimuli(cs, us)
        expected = self.pavlovian.get_expected_reward(cs)
        expected = max(-1.0, min(1.0, expected))
        target = np.full(self.network.output_size, expected)
        return self.train_step(cs.vector, target)

    # ── Spaced repetition ─────────────────────────────────────────────

    def add_review_example(self, example: TrainingExample) -> int:
        if self.scheduler is None:
            raise RuntimeError("spaced repetition is disabled in this config")
        return self.scheduler.add_example(example)

    @timed
    def train_with_spaced_repetition(self) -> Optional[StepResult]:
        """
        Review the example that is due soonest.

        Correctness is judged on the output before the update and recorded
        in the scheduler. Returns None when nothing is due (or the scheduler
        is disabled).
        """
        if self.scheduler is None:
            return None
        index = self.scheduler.next_due_index()
        if index is None:
            return None
        ex = self.scheduler.examples[index]
        result = self.train_step(ex.input, ex.target)
        self.scheduler.update_example(index, result.correct)
        return result

    def review_due(self, limit: Optional[int] = None) -> List[StepResult]:
        """Review until nothing is due or ``limit`` reviews were done."""
        results = []
        while limit is None or len(results) < limit:
            result = self.train_with_spaced_repetition()
            if result is None:
                break
            results.append(result)
        return results

    # ── Epoch loops ───────────────────────────────────────────────────

    @timed
    def train_epoch(self, examples: Optional[Sequence[TrainingExample]] = None) -> EpochResult:
        """
        One pass over ``examples``.

        Without examples, a curriculum-enabled engine sweeps its current
        level instead.
        """
        if examples is None and self.curriculum is not None:
            result = self.train_with_curriculum()
            self.stats.epoch += 1
            return result

        examples = list(examples or [])
        self.is_training = True
        total_loss = 0.0
        updates = 0
        correct = 0
        for start in range(0, len(examples), self.config.batch_size):
            for ex in examples[start:start + self.config.batch_size]:
                result = self.train_step(ex.input, ex.target)
                if not result.hallucination:
                    total_loss += result.loss
                    updates += 1
                correct += int(result.correct)
            logger.debug(f"Batch {start // self.config.batch_size}: "
                         f"running loss {self.stats.current_loss:.6f}")
        self.is_training = False

        self.stats.epoch += 1
        n = len(examples)
        if n == 0:
            return EpochResult(loss=0.0, accuracy=0.0, examples=0,
                               level=self.stats.current_level)
        loss = mean_loss(total_loss, updates)
        self.stats.current_loss = loss
        self.stats.accuracy = correct / n
        return EpochResult(loss=loss, accuracy=correct / n, examples=n,
                           level=self.stats.current_level)

    def train_full(self, examples: Optional[Sequence[TrainingExample]] = None,
                   validation: Optional[Sequence[TrainingExample]] = None) -> TrainingStats:
        """
        Epoch loop with early stopping.

        Stops after ``max_epochs``, when the epoch loss drops below
        ``early_stopping_threshold``, or after ``patience`` epochs without
        improvement. Due reviews are worked through after every epoch.
        """
        self._epoch_loop(examples, validation)
        return self.get_stats()

    @timed
    def _epoch_loop(self, examples, validation):
        best_loss = float('inf')
        stale = 0

        for _ in range(self.config.max_epochs):
            result = self.train_epoch(examples)
            if self.scheduler is not None:
                self.review_due()
            if validation:
                self.stats.validation_accuracy = self.evaluate(
                    [ex.input for ex in validation], [ex.target for ex in validation])

            logger.info(f"Epoch {self.stats.epoch}: loss={result.loss:.6f}, "
                        f"accuracy={result.accuracy:.2%}, level={self.stats.current_level}")

            if result.examples == 0:
                logger.warning("No training examples available, stopping")
                break
            if result.loss < self.config.early_stopping_threshold:
                logger.info(f"Early stopping: loss {result.loss:.6f} below "
                            f"{self.config.early_stopping_threshold}")
                break
            if result.loss < best_loss or result.advanced:
                best_loss = result.loss
                stale = 0
            else:
                stale += 1
                if stale >= self.config.patience:
                    logger.info(f"Early stopping: no improvement for {stale} epochs")
                    break

    @timed
    def train_progressive(self, start_difficulty: float, end_difficulty: float,
                          steps: int, generator: PuzzleGenerator) -> EpochResult:
        """Train on one fresh puzzle per step with linearly rising difficulty."""
        if steps <= 0:
            return EpochResult(loss=0.0, accuracy=0.0, examples=0)
        if (generator.input_size != self.network.input_size
                or generator.target_size != self.network.output_size):
            raise ShapeError(
                f"generator makes {generator.input_size}->{generator.target_size} puzzles, "
                f"network is {self.network.input_size}->{self.network.output_size}")

        total_loss = 0.0
        updates = 0
        correct = 0
        for k in range(steps):
            fraction = k / (steps - 1) if steps > 1 else 0.0
            difficulty = start_difficulty + (end_difficulty - start_difficulty) * fraction
            puzzle = generator.create_progressive_puzzle(difficulty)
            result = self.train_step(puzzle.input, puzzle.target)
            if not result.hallucination:
                total_loss += result.loss
                updates += 1
            correct += int(result.correct)
        return EpochResult(loss=mean_loss(total_loss, updates), accuracy=correct / steps,
                           examples=steps)

    # ── Evaluation ────────────────────────────────────────────────────

    def evaluate(self, inputs, targets) -> float:
        """Fraction of examples answered correctly; leaves the network untouched."""
        inputs = list(inputs)
        targets = list(targets)
        if len(inputs) != len(targets):
            raise ShapeError(f"{len(inputs)} inputs but {len(targets)} targets")
        if not inputs:
            return 0.0

        correct = 0
        with self.network.preserved_state():
            for x, y in zip(inputs, targets):
                output = self.network.forward(x)
                correct += int(is_correct(output, y, self.config.tolerance))
        return correct / len(inputs)

    def validate_predictions(self, inputs, targets=None) -> List[bool]:
        """One hallucination flag per input."""
        inputs = list(inputs)
        if targets is not None and len(targets) != len(inputs):
            raise ShapeError(f"{len(inputs)} inputs but {len(targets)} targets")
        with self.network.preserved_state():
            return [is_hallucination(self.network.forward(x), self.config.hallucination_limit)
                    for x in inputs]

    def apply_regularization(self, lmbda: float) -> int:
        """L2 shrink of every weight matrix (biases untouched)."""
        factor = 1.0 - self.config.learning_rate * lmbda
        touched = 0
        for name, param in self.network.named_parameters().items():
            if param.ndim == 2:
                param *= factor
                touched += 1
        return touched

    def get_stats(self) -> TrainingStats:
        return replace(self.stats)

    # ── Persistence ───────────────────────────────────────────────────

    def save_checkpoint(self, filepath: str):
        """
        Everything needed to resume: parameters, recurrent state, optimizer
        moments, statistics and the contents of every enabled strategy.
        """
        net = self.network
        pools = {}
        metadata = {
            'config': self.config.to_dict(),
            'network': NetworkConfig.of(net).to_dict(),
            'stats': self.stats.to_dict(),
            'loss_sum': self._loss_sum,
            'loss_count': self._loss_count,
            'optimizer_step': self.optimizer.step,
            'saved_at': self.clock(),
        }
        if self.curriculum is not None:
            metadata['curriculum'] = {
                'current_level': self.curriculum.current_level,
                'levels': [{
                    'current_accuracy': dl.current_accuracy,
                    'examples_seen': dl.examples_seen,
                    'examples': pack_examples(f'level.{dl.index}', dl.examples, pools),
                } for dl in self.curriculum.levels],
            }
        if self.scheduler is not None:
            metadata['reviews'] = pack_examples('review', self.scheduler.examples, pools)
        if self.pavlovian is not None:
            metadata['pavlovian'] = pack_associations(self.pavlovian.associations, pools)
        write_checkpoint(filepath, metadata, net.state_dict(),
                         self.optimizer.state_dict(), pools)

    @classmethod
    def load_checkpoint(cls, filepath: str,
                        clock: Callable[[], float] = time.time) -> 'TrainingEngine':
        """Rebuild the engine exactly as it was saved."""
        metadata, params, optimizer_state, pools = read_checkpoint(filepath)
        try:
            config = TrainingConfig.from_dict(metadata['config'])
            network = NetworkConfig.from_dict(metadata['network']).build()
            network.load_state_dict(params)
        except (KeyError, ValueError) as e:
            raise CheckpointError(f"{filepath} does not match a known network: {e}") from e

        engine = cls(network, config, clock=clock)
        engine.optimizer.load_state_dict(optimizer_state,
                                         step=metadata.get('optimizer_step', 0))
        engine.stats = TrainingStats(**metadata.get('stats', {}))
        engine._loss_sum = metadata.get('loss_sum', 0.0)
        engine._loss_count = metadata.get('loss_count', 0)

        try:
            engine._restore_pools(metadata, pools)
        except (KeyError, IndexError, ValueError) as e:
            raise CheckpointError(f"{filepath} has inconsistent strategy pools: {e}") from e
        return engine

    def _restore_pools(self, metadata, pools):
        saved = metadata.get('curriculum')
        if self.curriculum is not None and saved:
            for dl, record in zip(self.curriculum.levels, saved['levels']):
                dl.current_accuracy = record['current_accuracy']
                dl.examples_seen = record['examples_seen']
                dl.examples = unpack_examples(f'level.{dl.index}', record['examples'], pools)
            while self.curriculum.current_level < saved['current_level']:
                self.curriculum.advance_level()

        if self.scheduler is not None and 'reviews' in metadata:
            self.scheduler.examples = unpack_examples('review', metadata['reviews'], pools)

        if self.pavlovian is not None and 'pavlovian' in metadata:
            self.pavlovian.associations = unpack_associations(metadata['pavlovian'], pools)

    def __repr__(self):
        strategies = [name for name, on in (
            ('curriculum', self.curriculum is not None),
            ('pavlovian', self.pavlovian is not None),
            ('spaced_repetition', self.scheduler is not None)) if on]
        return (f"TrainingEngine({self.network!r}, {self.optimizer!r}, "
                f"strategies={strategies})")
