"""
Pavlovian Learning - stimulus/response association by classical conditioning.

A conditioned stimulus (CS, e.g. an encoded chess position) is paired with
an unconditioned stimulus (US) that carries a signed reward (win = +1,
loss = -1). Association strength follows the Rescorla-Wagner delta rule:

    lambda    = sign(us.reward)
    strength += learning_rate * (lambda - strength)      clamped to [-1, 1]

Presenting a CS without reinforcement (extinction) decays its strength.

Associations are looked up by approximate equality of the stimulus vectors
(elementwise tolerance, default 0.01) with a linear scan, so stimuli that are
nearly identical count as the same stimulus.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

import numpy as np

from core.errors import ConfigurationError


class PavlovianType(Enum):
    CLASSICAL = "classical"        # CS-US association
    REWARD_BASED = "reward_based"  # Reward/punishment learning
    INSTRUMENTAL = "instrumental"  # Operant conditioning on (CS, action)
    HYBRID = "hybrid"              # All of the above


@dataclass
class ConditionedStimulus:
    vector: np.ndarray
    intensity: float = 1.0
    timestamp: float = field(default_factory=time.time)
    occurrence_count: int = 1

    def __post_init__(self):
        self.vector = np.array(self.vector, dtype=np.float64).reshape(-1)


@dataclass
class UnconditionedStimulus:
    vector: np.ndarray
    reward: float  # positive = reward, negative = punishment
    intensity: float = 1.0
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        self.vector = np.array(self.vector, dtype=np.float64).reshape(-1)


@dataclass
class Association:
    cs: ConditionedStimulus
    us: UnconditionedStimulus
    strength: float = 0.0  # -1.0 to 1.0
    learning_rate: float = 0.1
    pairings: int = 0
    last_pairing_time: float = 0.0


def vectors_match(a: np.ndarray, b: np.ndarray, tolerance: float) -> bool:
    return a.shape == b.shape and bool(np.all(np.abs(a - b) <= tolerance))


class PavlovianLearner:
    """Owns every CS-US association and applies conditioning updates."""

    def __init__(self, kind: PavlovianType = PavlovianType.HYBRID,
                 learning_rate: float = 0.1, decay_rate: float = 0.01,
                 threshold: float = 0.1, tolerance: float = 0.01,
                 clock: Callable[[], float] = time.time):
        if not 0.0 < learning_rate <= 1.0:
            raise ConfigurationError(f"learning_rate must be in (0, 1], got {learning_rate}")
        if not 0.0 <= decay_rate < 1.0:
            raise ConfigurationError(f"decay_rate must be in [0, 1), got {decay_rate}")
        self.kind = PavlovianType(kind)
        self.learning_rate = learning_rate
        self.decay_rate = decay_rate
        self.threshold = threshold
        self.tolerance = tolerance
        self.clock = clock
        self.associations: List[Association] = []

    def __len__(self):
        return len(self.associations)

    # ── Lookup ────────────────────────────────────────────────────────

    def find_association(self, cs: ConditionedStimulus,
                         us: UnconditionedStimulus) -> Optional[Association]:
        for assoc in self.associations:
            if (vectors_match(assoc.cs.vector, cs.vector, self.tolerance)
                    and vectors_match(assoc.us.vector, us.vector, self.tolerance)):
                return assoc
        return None

    def associations_for(self, cs: ConditionedStimulus) -> List[Association]:
        return [a for a in self.associations
                if vectors_match(a.cs.vector, cs.vector, self.tolerance)]

    def _find_or_create(self, cs: ConditionedStimulus,
                        us: UnconditionedStimulus) -> Association:
        assoc = self.find_association(cs, us)
        if assoc is not None:
            assoc.cs.occurrence_count += 1
            return assoc
        assoc = Association(
            cs=ConditionedStimulus(cs.vector.copy(), cs.intensity, cs.timestamp),
            us=UnconditionedStimulus(us.vector.copy(), us.reward, us.intensity,
                                     us.timestamp),
            learning_rate=self.learning_rate,
            last_pairing_time=self.clock(),
        )
        self.associations.append(assoc)
        return assoc

    # ── Classical conditioning ────────────────────────────────────────

    def pair_stimuli(self, cs: ConditionedStimulus,
                     us: UnconditionedStimulus) -> float:
        """Rescorla-Wagner update for one CS-US pairing; returns new strength."""
        assoc = self._find_or_create(cs, us)
        target = float(np.sign(us.reward))
        assoc.strength += assoc.learning_rate * (target - assoc.strength)
        assoc.strength = max(-1.0, min(1.0, assoc.strength))
        assoc.pairings += 1
        assoc.last_pairing_time = self.clock()
        return assoc.strength

    def get_association_strength(self, cs: ConditionedStimulus,
                                 us: UnconditionedStimulus) -> float:
        assoc = self.find_association(cs, us)
        return 0.0 if assoc is None else assoc.strength

    def extinction(self, cs: ConditionedStimulus) -> int:
        """Decay every association of ``cs``; returns how many were touched."""
        matches = self.associations_for(cs)
        for assoc in matches:
            assoc.strength *= (1.0 - self.decay_rate)
        return len(matches)

    # ── Reward-based learning ─────────────────────────────────────────

    def reward(self, cs: ConditionedStimulus, reward_value: float) -> float:
        us = UnconditionedStimulus(cs.vector.copy(), reward_value)
        return self.pair_stimuli(cs, us)

    def punish(self, cs: ConditionedStimulus, punishment_value: float) -> float:
        us = UnconditionedStimulus(cs.vector.copy(), -punishment_value)
        return self.pair_stimuli(cs, us)

    def get_expected_reward(self, cs: ConditionedStimulus) -> float:
        """strength * reward of the strongest (by |strength|) matching association."""
        best: Optional[Association] = None
        for assoc in self.associations_for(cs):
            if best is None or abs(assoc.strength) > abs(best.strength):
                best = assoc
        if best is None:
            return 0.0
        return best.strength * best.us.reward

    # ── Instrumental conditioning ─────────────────────────────────────

    def _action_stimulus(self, cs: ConditionedStimulus, action) -> ConditionedStimulus:
        vector = np.concatenate([cs.vector, np.asarray(action, dtype=np.float64).reshape(-1)])
        return ConditionedStimulus(vector, cs.intensity)

    def reinforce_action(self, cs: ConditionedStimulus, action,
                         reward_value: float) -> float:
        return self.reward(self._action_stimulus(cs, action), reward_value)

    def punish_action(self, cs: ConditionedStimulus, action,
                      punishment_value: float) -> float:
        return self.punish(self._action_stimulus(cs, action), punishment_value)

    def expected_action_reward(self, cs: ConditionedStimulus, action) -> float:
        return self.get_expected_reward(self._action_stimulus(cs, action))

    def stats(self) -> dict:
        strengths = [a.strength for a in self.associations]
        return {
            'associations': len(self.associations),
            'total_pairings': sum(a.pairings for a in self.associations),
            'avg_strength': sum(strengths) / max(1, len(strengths)),
            'strong_associations': sum(1 for s in strengths if abs(s) >= self.threshold),
        }
