"""Tests for the training engine, its configuration and checkpoints."""

import json
import os
import tempfile
import time

import numpy as np
import pytest

from core.activations import Activation
from core.errors import ConfigurationError, ShapeError
from core.network import HybridNetwork
from core.optimizer import OptimizerType
from learning.example import TrainingExample
from learning.pavlovian import ConditionedStimulus, UnconditionedStimulus
from learning.puzzles import PuzzleGenerator
from learning.spaced_repetition import SECONDS_PER_HOUR
from training.checkpoint import CheckpointError, FORMAT_VERSION
from training.config import TrainingConfig, NetworkConfig
from training.engine import (
    TrainingEngine, TrainingStats, is_correct, is_hallucination
)


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance_hours(self, hours: float):
        self.now += hours * SECONDS_PER_HOUR


def make_engine(**overrides):
    network = HybridNetwork(6, 8, 3, seed=0)
    settings = dict(learning_rate=0.01, network=NetworkConfig(6, 8, 3, 0))
    settings.update(overrides)
    clock = FakeClock()
    return TrainingEngine(network, TrainingConfig(**settings), clock=clock), clock


def make_examples(n: int, seed: int = 0):
    rng = np.random.default_rng(seed)
    return [TrainingExample(rng.uniform(size=6), rng.uniform(0, 0.1, size=3))
            for _ in range(n)]


# ── Helper Tests ──────────────────────────────────────────────────────────

class TestHelpers:
    def test_is_correct_tolerance(self):
        """Correct means every element within 0.1 of the target."""
        assert is_correct(np.array([0.5, 0.55]), np.array([0.5, 0.5]))
        assert not is_correct(np.array([0.5, 0.65]), np.array([0.5, 0.5]))
        assert not is_correct(np.array([np.nan]), np.array([0.0]))

    def test_is_hallucination(self):
        """Non-finite or out-of-range outputs are hallucinations."""
        assert not is_hallucination(np.array([0.3, -9.9]))
        assert is_hallucination(np.array([10.5]))
        assert is_hallucination(np.array([np.inf]))
        assert is_hallucination(np.array([np.nan]))


# ── Engine Tests ──────────────────────────────────────────────────────────

class TestTrainingEngine:
    def setup_method(self):
        self.engine, self.clock = make_engine()
        self.x = np.linspace(0.1, 0.6, 6)

    def test_strategies_created(self):
        """All three strategies are built by default."""
        assert self.engine.curriculum is not None
        assert self.engine.pavlovian is not None
        assert self.engine.scheduler is not None
        assert self.engine.optimizer.optimizer_type == OptimizerType.ADAM

    def test_disabled_strategies_return_none(self):
        """Disabled strategies do nothing."""
        engine, _ = make_engine(use_curriculum=False, use_pavlovian=False,
                                use_spaced_repetition=False)
        cs = ConditionedStimulus(self.x)
        us = UnconditionedStimulus(np.ones(1), reward=1.0)
        assert engine.train_with_curriculum() is None
        assert engine.train_with_pavlovian(cs, us) is None
        assert engine.train_with_spaced_repetition() is None

    def test_invalid_config_rejected(self):
        """The engine validates its configuration."""
        with pytest.raises(ConfigurationError):
            make_engine(learning_rate=-1.0)

    def test_train_step(self):
        """One step reports a loss and updates the statistics."""
        before = self.engine.network.dense.weights.copy()
        result = self.engine.train_step(self.x, np.full(3, 0.5))
        assert result.loss >= 0.0
        assert not result.hallucination
        assert self.engine.stats.examples_seen == 1
        assert self.engine.stats.current_loss == result.loss
        assert not np.array_equal(before, self.engine.network.dense.weights)

    def test_hallucination_skips_update(self):
        """A non-finite output is flagged and leaves the weights alone."""
        before = {k: v.copy() for k, v in self.engine.network.named_parameters().items()}
        bad = self.x.copy()
        bad[0] = np.nan
        result = self.engine.train_step(bad, np.zeros(3))
        assert result.hallucination
        assert not result.correct
        assert self.engine.stats.hallucinations == 1
        assert self.engine.stats.examples_seen == 0
        for name, param in self.engine.network.named_parameters().items():
            np.testing.assert_array_equal(param, before[name])
        assert np.all(np.isfinite(self.engine.network.hidden_state))

    def test_curriculum_empty_level(self):
        """An empty level yields a zero result and no advance."""
        result = self.engine.train_with_curriculum()
        assert result.examples == 0
        assert result.accuracy == 0.0
        assert self.engine.curriculum.current_level == 0

    def test_curriculum_advances_on_mastery(self):
        """Reaching the mastery threshold moves to the next level."""
        engine, _ = make_engine(mastery_threshold=0.0)
        for ex in make_examples(4):
            engine.add_curriculum_example(ex, 0)
        result = engine.train_with_curriculum()
        assert result.examples == 4
        assert result.advanced
        assert engine.curriculum.current_level == 1
        assert engine.stats.current_level == 1
        assert engine.curriculum.level(0).examples_seen == 4

    def test_curriculum_holds_without_mastery(self):
        """Unreachable targets keep the curriculum where it is."""
        engine, _ = make_engine(mastery_threshold=1.0)
        # |output| < 1, so a target of 5 can never be within tolerance
        engine.add_curriculum_example(TrainingExample(self.x, np.full(3, 5.0)), 0)
        result = engine.train_with_curriculum()
        assert result.accuracy == 0.0
        assert not result.advanced
        assert engine.curriculum.current_level == 0

    def test_pavlovian_training(self):
        """A pairing creates an association and trains on the CS vector."""
        cs = ConditionedStimulus(self.x)
        us = UnconditionedStimulus(np.ones(1), reward=1.0)
        result = self.engine.train_with_pavlovian(cs, us)
        assert result.loss >= 0.0
        assert len(self.engine.pavlovian) == 1
        strength = self.engine.pavlovian.get_association_strength(cs, us)
        assert strength == pytest.approx(0.01)

    def test_pavlovian_wrong_stimulus_size(self):
        """The CS vector must fit the network input."""
        cs = ConditionedStimulus(np.ones(4))
        us = UnconditionedStimulus(np.ones(1), reward=1.0)
        with pytest.raises(ShapeError):
            self.engine.train_with_pavlovian(cs, us)

    def test_spaced_repetition_nothing_due(self):
        """Nothing is reviewed before its time."""
        self.engine.add_review_example(make_examples(1)[0])
        assert self.engine.train_with_spaced_repetition() is None

    def test_spaced_repetition_judges_before_update(self):
        """Correctness is judged on the output before the update."""
        with self.engine.network.preserved_state():
            prediction = self.engine.network.forward(self.x)
        self.engine.add_review_example(TrainingExample(self.x, prediction))
        self.clock.advance_hours(1.0)

        result = self.engine.train_with_spaced_repetition()
        assert result.correct
        ex = self.engine.scheduler.examples[0]
        assert ex.correct_streak == 1
        assert ex.attempts == 1

    def test_review_due(self):
        """review_due works through every due example exactly once."""
        for ex in make_examples(3):
            self.engine.add_review_example(ex)
        self.clock.advance_hours(1.0)
        results = self.engine.review_due()
        assert len(results) == 3
        assert self.engine.review_due() == []

    def test_review_due_limit(self):
        """review_due stops at the limit."""
        for ex in make_examples(3):
            self.engine.add_review_example(ex)
        self.clock.advance_hours(1.0)
        assert len(self.engine.review_due(limit=2)) == 2

    def test_evaluate_does_not_mutate_state(self):
        """Evaluation leaves recurrent state and parameters untouched."""
        self.engine.network.forward(self.x)
        hidden = self.engine.network.hidden_state.copy()
        cell = self.engine.network.lstm.cell_state.copy()
        weights = self.engine.network.dense.weights.copy()

        examples = make_examples(5)
        accuracy = self.engine.evaluate([e.input for e in examples],
                                        [e.target for e in examples])
        assert 0.0 <= accuracy <= 1.0
        np.testing.assert_array_equal(self.engine.network.hidden_state, hidden)
        np.testing.assert_array_equal(self.engine.network.lstm.cell_state, cell)
        np.testing.assert_array_equal(self.engine.network.dense.weights, weights)

    def test_evaluate_counts_correct(self):
        """A target equal to the prediction counts as correct."""
        with self.engine.network.preserved_state():
            prediction = self.engine.network.forward(self.x)
        assert self.engine.evaluate([self.x], [prediction]) == 1.0
        assert self.engine.evaluate([self.x], [prediction + 1.0]) == 0.0
        assert self.engine.evaluate([], []) == 0.0

    def test_validate_predictions(self):
        """One hallucination flag per input."""
        bad = self.x.copy()
        bad[2] = np.nan
        assert self.engine.validate_predictions([self.x, bad]) == [False, True]
        assert np.all(np.isfinite(self.engine.network.hidden_state))

    def test_apply_regularization(self):
        """Weight matrices shrink by lr * lambda; biases do not."""
        net = self.engine.network
        weights = net.dense.weights.copy()
        biases = net.dense.biases.copy()
        touched = self.engine.apply_regularization(0.5)
        assert touched == 9
        np.testing.assert_allclose(net.dense.weights, weights * (1 - 0.01 * 0.5))
        np.testing.assert_array_equal(net.dense.biases, biases)

    def test_train_epoch(self):
        """An explicit example list is trained in one pass."""
        engine, _ = make_engine(use_curriculum=False)
        result = engine.train_epoch(make_examples(10))
        assert result.examples == 10
        assert engine.stats.epoch == 1
        assert engine.stats.examples_seen == 10

    def test_train_full_early_stopping(self):
        """Loss below the threshold stops after the first epoch."""
        engine, _ = make_engine(use_curriculum=False, early_stopping_threshold=10.0)
        stats = engine.train_full(make_examples(5), validation=make_examples(3, seed=1))
        assert stats.epoch == 1
        assert stats.training_time > 0.0
        assert 0.0 <= stats.validation_accuracy <= 1.0

    def test_train_full_respects_max_epochs(self):
        """Training never exceeds max_epochs."""
        engine, _ = make_engine(use_curriculum=False, max_epochs=3,
                                early_stopping_threshold=0.0)
        stats = engine.train_full(make_examples(4))
        assert stats.epoch <= 3

    def test_train_full_without_examples(self):
        """Nothing to train on stops immediately."""
        engine, _ = make_engine(use_curriculum=False)
        assert engine.train_full().epoch == 1

    def test_train_full_with_curriculum(self):
        """Without explicit examples the curriculum drives each epoch."""
        engine, _ = make_engine(mastery_threshold=0.0, max_epochs=3,
                                early_stopping_threshold=0.0)
        generator = PuzzleGenerator(6, 3, seed=2)
        generator.populate(engine.curriculum, 2)
        engine.train_full()
        assert engine.curriculum.current_level == 3

    def test_train_progressive(self):
        """One fresh puzzle per step."""
        generator = PuzzleGenerator(6, 3, seed=2)
        result = self.engine.train_progressive(0.0, 1.0, 5, generator)
        assert result.examples == 5
        assert generator.puzzle_count == 5
        assert self.engine.stats.examples_seen == 5

    def test_train_progressive_size_mismatch(self):
        """Generator sizes must match the network."""
        with pytest.raises(ShapeError):
            self.engine.train_progressive(0.0, 1.0, 5, PuzzleGenerator(4, 3))

    def test_get_stats_is_snapshot(self):
        """Callers cannot mutate the engine's statistics."""
        stats = self.engine.get_stats()
        stats.epoch = 99
        assert self.engine.stats.epoch == 0

    def test_curriculum_loss_ignores_skipped_steps(self):
        """The sweep loss is the mean over applied steps only."""
        examples = make_examples(3)
        examples[1].input[0] = np.nan
        for ex in examples:
            self.engine.add_curriculum_example(ex, 0)
        result = self.engine.train_with_curriculum()
        assert self.engine.stats.hallucinations == 1
        assert self.engine.stats.examples_seen == 2
        assert result.loss == pytest.approx(self.engine.stats.average_loss)

    def test_epoch_loss_nan_when_every_step_skipped(self):
        """An epoch with no applied step has no loss to report."""
        engine, _ = make_engine(use_curriculum=False)
        bad = make_examples(1)[0]
        bad.input[:] = np.nan
        result = engine.train_epoch([bad])
        assert result.examples == 1
        assert np.isnan(result.loss)

    def test_strategies_track_training_time(self):
        """Driving the strategies directly accumulates training time."""
        cs = ConditionedStimulus(self.x)
        us = UnconditionedStimulus(np.ones(3), reward=1.0)
        self.engine.train_with_pavlovian(cs, us)
        after_pavlovian = self.engine.stats.training_time
        assert after_pavlovian > 0.0

        self.engine.add_review_example(make_examples(1)[0])
        self.clock.advance_hours(1.0)
        self.engine.train_with_spaced_repetition()
        assert self.engine.stats.training_time > after_pavlovian

    def test_nested_calls_timed_once(self):
        """train_full time is not double counted through its inner calls."""
        engine, clock = make_engine(use_curriculum=False, max_epochs=3,
                                    early_stopping_threshold=0.0)
        engine.add_review_example(make_examples(1)[0])
        clock.advance_hours(2.0)
        start = time.perf_counter()
        stats = engine.train_full(make_examples(4))
        elapsed = time.perf_counter() - start
        assert 0.0 < stats.training_time <= elapsed


# ── Checkpoint Tests ──────────────────────────────────────────────────────

class TestCheckpoint:
    def setup_method(self):
        self.engine, _ = make_engine(mastery_threshold=0.0)
        for ex in make_examples(4):
            self.engine.add_curriculum_example(ex, 0)
        self.engine.train_with_curriculum()
        for ex in make_examples(3, seed=1):
            self.engine.train_step(ex.input, ex.target)

    def test_round_trip(self):
        """Statistics, optimizer state and outputs survive save/load."""
        x = np.linspace(0.0, 1.0, 6)
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'engine.npz')
            self.engine.save_checkpoint(path)
            loaded = TrainingEngine.load_checkpoint(path)

        assert loaded.get_stats() == self.engine.get_stats()
        assert loaded.optimizer.step == self.engine.optimizer.step
        assert loaded.curriculum.current_level == self.engine.curriculum.current_level
        assert loaded.config == self.engine.config
        for key, buf in self.engine.optimizer.state_dict().items():
            np.testing.assert_array_equal(loaded.optimizer.state_dict()[key], buf)
        np.testing.assert_array_equal(loaded.network.forward(x),
                                      self.engine.network.forward(x))

    def test_archive_layout(self):
        """The archive carries a version, JSON metadata and named tensors."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'engine.npz')
            self.engine.save_checkpoint(path)
            with np.load(path) as data:
                assert int(data['format_version']) == FORMAT_VERSION
                metadata = json.loads(str(data['metadata']))
                assert 'param.dense.weights' in data.files
                assert 'optim.m.dense.weights' in data.files
                assert 'level.0.0.input' in data.files
        assert metadata['network']['input_size'] == 6
        assert metadata['stats']['examples_seen'] == self.engine.stats.examples_seen
        assert len(metadata['curriculum']['levels'][0]['examples']) == 4

    def test_activation_round_trip(self):
        """A non-default dense activation is restored on load."""
        network = HybridNetwork(6, 4, 3, seed=0, activation=Activation.TANH)
        config = TrainingConfig(learning_rate=0.01,
                                network=NetworkConfig(6, 4, 3, 0, Activation.TANH))
        engine = TrainingEngine(network, config, clock=FakeClock())
        x = np.linspace(-1.0, 1.0, 6)
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'tanh.npz')
            engine.save_checkpoint(path)
            loaded = TrainingEngine.load_checkpoint(path)

        assert loaded.network.dense.activation == Activation.TANH
        assert loaded.config.network.activation == Activation.TANH
        np.testing.assert_array_equal(loaded.network.forward(x), engine.network.forward(x))

    def test_pools_round_trip(self):
        """Associations, review pool and curriculum pools survive save/load."""
        engine, clock = make_engine(learning_rate=0.5)
        cs = ConditionedStimulus(np.linspace(0.1, 0.6, 6))
        us = UnconditionedStimulus(np.ones(3), reward=1.0)
        for _ in range(3):
            engine.train_with_pavlovian(cs, us)
        expected = engine.pavlovian.get_expected_reward(cs)
        assert expected == pytest.approx(0.875)

        engine.add_review_example(make_examples(1)[0])
        clock.advance_hours(1.0)
        engine.train_with_spaced_repetition()
        for ex in make_examples(2, seed=3):
            engine.add_curriculum_example(ex, 1)

        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'pools.npz')
            engine.save_checkpoint(path)
            with np.load(path) as data:
                assert 'pav.0.cs' in data.files
                assert 'review.0.input' in data.files
            loaded = TrainingEngine.load_checkpoint(path)

        assert len(loaded.pavlovian) == 1
        assert loaded.pavlovian.get_expected_reward(cs) == pytest.approx(expected)

        review, original = loaded.scheduler.examples[0], engine.scheduler.examples[0]
        assert review.correct_streak == original.correct_streak
        assert review.next_review == original.next_review
        np.testing.assert_array_equal(review.input, original.input)

        level = loaded.curriculum.level(1)
        assert len(level.examples) == 2
        np.testing.assert_array_equal(level.examples[1].target,
                                      engine.curriculum.level(1).examples[1].target)

    def test_missing_file(self):
        """Reading a missing checkpoint raises CheckpointError."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(CheckpointError):
                TrainingEngine.load_checkpoint(os.path.join(tmpdir, 'nope.npz'))

    def test_corrupt_file(self):
        """A file that is not an archive raises CheckpointError."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'bad.npz')
            with open(path, 'wb') as f:
                f.write(b'not a checkpoint at all')
            with pytest.raises(CheckpointError):
                TrainingEngine.load_checkpoint(path)

    def test_unwritable_path(self):
        """Write failures surface as CheckpointError."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(CheckpointError):
                self.engine.save_checkpoint(os.path.join(tmpdir, 'missing', 'engine.npz'))

    def test_checkpoint_error_is_oserror(self):
        """Callers catching OSError also catch checkpoint failures."""
        assert issubclass(CheckpointError, OSError)


# ── Config Tests ──────────────────────────────────────────────────────────

class TestTrainingConfig:
    def test_defaults(self):
        """Defaults match the reference training setup."""
        config = TrainingConfig()
        assert config.optimizer_type == OptimizerType.ADAM
        assert config.learning_rate == 0.001
        assert config.momentum == 0.9
        assert config.weight_decay == 0.0001
        assert config.batch_size == 32
        assert config.max_epochs == 100
        assert config.early_stopping_threshold == 0.001
        assert config.mastery_threshold == 0.85
        assert config.use_curriculum and config.use_pavlovian and config.use_spaced_repetition

    def test_validate(self):
        """Out-of-range values raise ConfigurationError."""
        TrainingConfig().validate()
        with pytest.raises(ConfigurationError):
            TrainingConfig(mastery_threshold=1.2).validate()
        with pytest.raises(ConfigurationError):
            TrainingConfig(network=NetworkConfig(input_size=0)).validate()

    def test_save_load(self):
        """JSON round trip preserves every field."""
        config = TrainingConfig(optimizer_type=OptimizerType.RMSPROP, patience=3,
                                network=NetworkConfig(12, 6, 2, seed=9))
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'config.json')
            config.save(path)
            assert TrainingConfig.load(path) == config

    def test_activation_saved(self):
        """The dense activation is written by name and read back."""
        config = TrainingConfig(network=NetworkConfig(6, 4, 3, activation=Activation.RELU))
        assert config.to_dict()['network']['activation'] == 'relu'
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'config.json')
            config.save(path)
            loaded = TrainingConfig.load(path)
        assert loaded.network.activation == Activation.RELU
        assert loaded.network.build().dense.activation == Activation.RELU

    def test_chess_preset(self):
        """The chess preset takes 768 board inputs."""
        config = TrainingConfig.for_chess(seed=1)
        assert config.network.input_size == 768
        assert config.use_pavlovian
        config.validate()

    def test_from_env(self, monkeypatch):
        """Environment variables override defaults."""
        monkeypatch.setenv('CC_OPTIMIZER', 'sgd')
        monkeypatch.setenv('CC_USE_CURRICULUM', 'false')
        monkeypatch.setenv('CC_HIDDEN_SIZE', '16')
        config = TrainingConfig.from_env()
        assert config.optimizer_type == OptimizerType.SGD
        assert not config.use_curriculum
        assert config.network.hidden_size == 16

    def test_stats_to_dict(self):
        """Statistics serialize to plain dicts."""
        stats = TrainingStats(epoch=2, accuracy=0.5)
        assert stats.to_dict()['epoch'] == 2
