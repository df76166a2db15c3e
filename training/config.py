"""
Training Configuration - hyper-parameters for the network and the engine

Two records:
- NetworkConfig: layer sizes, dense activation and the seed of the generator
- TrainingConfig: optimizer, stopping rules and strategy switches

Both serialize to JSON and can be overridden from environment variables.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional
import json
import os

from core.errors import ConfigurationError
from core.activations import Activation
from core.network import HybridNetwork
from core.optimizer import OptimizerType


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in ('1', 'true', 'yes', 'on')


@dataclass
class NetworkConfig:
    """Dimensions of the dense -> LSTM network"""
    input_size: int = 64
    hidden_size: int = 32
    output_size: int = 8
    seed: Optional[int] = None
    # Activation of the dense layer
    activation: Activation = Activation.SIGMOID

    @classmethod
    def for_chess(cls, seed: Optional[int] = None) -> 'NetworkConfig':
        """768 board planes in, a single evaluation out"""
        return cls(input_size=768, hidden_size=64, output_size=1, seed=seed)

    @classmethod
    def from_env(cls) -> 'NetworkConfig':
        """Load from environment variables"""
        seed = os.getenv('CC_SEED')
        return cls(
            input_size=int(os.getenv('CC_INPUT_SIZE', 64)),
            hidden_size=int(os.getenv('CC_HIDDEN_SIZE', 32)),
            output_size=int(os.getenv('CC_OUTPUT_SIZE', 8)),
            seed=int(seed) if seed else None,
            activation=Activation(os.getenv('CC_ACTIVATION', 'sigmoid').lower())
        )

    @classmethod
    def of(cls, network) -> 'NetworkConfig':
        """Dimensions and activation of an existing HybridNetwork"""
        return cls(network.input_size, network.hidden_size, network.output_size,
                   network.seed, network.dense.activation)

    def build(self) -> HybridNetwork:
        return HybridNetwork(self.input_size, self.hidden_size, self.output_size,
                             seed=self.seed, activation=self.activation)

    def validate(self):
        for name in ('input_size', 'hidden_size', 'output_size'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
        if not isinstance(self.activation, Activation):
            raise ConfigurationError(f"unknown activation {self.activation!r}")

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['activation'] = self.activation.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NetworkConfig':
        return cls(
            input_size=int(data.get('input_size', 64)),
            hidden_size=int(data.get('hidden_size', 32)),
            output_size=int(data.get('output_size', 8)),
            seed=data.get('seed'),
            activation=Activation(data.get('activation', 'sigmoid'))
        )


@dataclass
class TrainingConfig:
    """Master configuration for the training engine"""
    # Optimizer
    optimizer_type: OptimizerType = OptimizerType.ADAM
    learning_rate: float = 0.001
    momentum: float = 0.9
    weight_decay: float = 0.0001

    # Epoch loop
    batch_size: int = 32
    max_epochs: int = 100
    early_stopping_threshold: float = 0.001
    patience: int = 10

    # Strategy switches
    use_curriculum: bool = True
    use_pavlovian: bool = True
    use_spaced_repetition: bool = True

    # Strategy settings
    mastery_threshold: float = 0.85
    num_levels: int = 10
    ltm_threshold: int = 5
    initial_interval_hours: float = 1.0

    # An output counts as correct when every element is within this of the target
    tolerance: float = 0.1
    # Outputs larger than this in magnitude are flagged as hallucinations
    hallucination_limit: float = 10.0

    network: NetworkConfig = field(default_factory=NetworkConfig)

    @classmethod
    def for_chess(cls, seed: Optional[int] = None) -> 'TrainingConfig':
        """Game-outcome training: Pavlovian only, a faster learning rate"""
        return cls(
            learning_rate=0.01,
            use_curriculum=False,
            use_spaced_repetition=False,
            network=NetworkConfig.for_chess(seed=seed)
        )

    @classmethod
    def from_env(cls) -> 'TrainingConfig':
        """Load from environment variables"""
        return cls(
            optimizer_type=OptimizerType(os.getenv('CC_OPTIMIZER', 'adam').lower()),
            learning_rate=float(os.getenv('CC_LEARNING_RATE', 0.001)),
            momentum=float(os.getenv('CC_MOMENTUM', 0.9)),
            weight_decay=float(os.getenv('CC_WEIGHT_DECAY', 0.0001)),
            max_epochs=int(os.getenv('CC_MAX_EPOCHS', 100)),
            patience=int(os.getenv('CC_PATIENCE', 10)),
            use_curriculum=_env_bool('CC_USE_CURRICULUM', True),
            use_pavlovian=_env_bool('CC_USE_PAVLOVIAN', True),
            use_spaced_repetition=_env_bool('CC_USE_SPACED_REPETITION', True),
            network=NetworkConfig.from_env()
        )

    def validate(self):
        """Raise ConfigurationError on the first bad value"""
        if self.learning_rate <= 0:
            raise ConfigurationError(f"learning_rate must be > 0, got {self.learning_rate}")
        if not 0.0 <= self.momentum < 1.0:
            raise ConfigurationError(f"momentum must be in [0, 1), got {self.momentum}")
        if self.weight_decay < 0:
            raise ConfigurationError(f"weight_decay must be >= 0, got {self.weight_decay}")
        if self.batch_size <= 0 or self.max_epochs <= 0:
            raise ConfigurationError("batch_size and max_epochs must be > 0")
        if self.patience < 1:
            raise ConfigurationError(f"patience must be >= 1, got {self.patience}")
        if not 0.0 <= self.mastery_threshold <= 1.0:
            raise ConfigurationError(
                f"mastery_threshold must be in [0, 1], got {self.mastery_threshold}")
        if self.num_levels < 1 or self.ltm_threshold < 1:
            raise ConfigurationError("num_levels and ltm_threshold must be >= 1")
        if self.initial_interval_hours <= 0:
            raise ConfigurationError("initial_interval_hours must be > 0")
        if self.tolerance < 0 or self.hallucination_limit <= 0:
            raise ConfigurationError("tolerance must be >= 0 and hallucination_limit > 0")
        self.network.validate()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize configuration"""
        data = asdict(self)
        data['optimizer_type'] = self.optimizer_type.value
        data['network'] = self.network.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrainingConfig':
        defaults = cls()
        kwargs = {}
        for name in defaults.to_dict():
            if name in ('optimizer_type', 'network') or name not in data:
                continue
            kwargs[name] = type(getattr(defaults, name))(data[name])
        return cls(
            optimizer_type=OptimizerType(data.get('optimizer_type', 'adam')),
            network=NetworkConfig.from_dict(data.get('network', {})),
            **kwargs
        )

    def save(self, filepath: str):
        """Save configuration to file"""
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, filepath: str) -> 'TrainingConfig':
        """Load configuration from file"""
        with open(filepath, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)
