"""
Optimizer - stateful parameter-update rules for the hybrid network.

After each backward pass the layers hold a gradient for every parameter
tensor. ``Optimizer.update`` walks the network's named parameters and
applies one of:

    SGD      param -= lr * grad            (momentum: v = m*v - lr*grad; param += v)
    Adam     bias-corrected first/second moments
    Adagrad  cumulative squared-gradient scaling
    RMSProp  exponentially decayed squared-gradient scaling

Parameters are mutated in place, so the layers see the new values.
"""

from enum import Enum
from typing import Dict

import numpy as np

from .errors import ConfigurationError


class OptimizerType(Enum):
    SGD = "sgd"
    ADAM = "adam"
    ADAGRAD = "adagrad"
    RMSPROP = "rmsprop"


class Optimizer:
    """
    One optimizer per network. Moment buffers are keyed by parameter name
    and created lazily on first use; ``reset()`` must be called whenever the
    network is re-initialised.
    """

    def __init__(self, optimizer_type: OptimizerType = OptimizerType.ADAM,
                 learning_rate: float = 0.001, momentum: float = 0.0,
                 beta1: float = 0.9, beta2: float = 0.999,
                 epsilon: float = 1e-8, rho: float = 0.9,
                 weight_decay: float = 0.0):
        if learning_rate <= 0:
            raise ConfigurationError(f"learning_rate must be > 0, got {learning_rate}")
        if not 0.0 <= momentum < 1.0:
            raise ConfigurationError(f"momentum must be in [0, 1), got {momentum}")
        if not (0.0 <= beta1 < 1.0 and 0.0 <= beta2 < 1.0 and 0.0 <= rho < 1.0):
            raise ConfigurationError("beta1, beta2 and rho must be in [0, 1)")
        if weight_decay < 0:
            raise ConfigurationError(f"weight_decay must be >= 0, got {weight_decay}")

        self.optimizer_type = OptimizerType(optimizer_type)
        self.learning_rate = learning_rate
        self.momentum = momentum
        self.beta1 = beta1
        self.beta2 = beta2
        self.epsilon = epsilon
        self.rho = rho
        self.weight_decay = weight_decay

        self.step = 0
        # first moment / velocity, and second moment / squared-grad accumulator
        self.m: Dict[str, np.ndarray] = {}
        self.v: Dict[str, np.ndarray] = {}

    def update(self, network) -> int:
        """
        Apply one update to every parameter that has a gradient.

        Returns the number of parameter tensors that were updated.
        """
        self.step += 1
        params = network.named_parameters()
        grads = network.named_gradients()

        updated = 0
        for name, param in params.items():
            grad = grads.get(name)
            if grad is None:
                continue
            if self.weight_decay:
                grad = grad + self.weight_decay * param
            self._apply(name, param, grad)
            updated += 1
        return updated

    def _apply(self, name: str, param: np.ndarray, grad: np.ndarray):
        lr = self.learning_rate
        kind = self.optimizer_type

        if kind == OptimizerType.SGD:
            if self.momentum > 0:
                v = self.m.setdefault(name, np.zeros_like(param))
                v *= self.momentum
                v -= lr * grad
                param += v
            else:
                param -= lr * grad

        elif kind == OptimizerType.ADAM:
            m = self.m.setdefault(name, np.zeros_like(param))
            v = self.v.setdefault(name, np.zeros_like(param))
            m *= self.beta1
            m += (1.0 - self.beta1) * grad
            v *= self.beta2
            v += (1.0 - self.beta2) * grad * grad
            m_hat = m / (1.0 - self.beta1 ** self.step)
            v_hat = v / (1.0 - self.beta2 ** self.step)
            param -= lr * m_hat / (np.sqrt(v_hat) + self.epsilon)

        elif kind == OptimizerType.ADAGRAD:
            acc = self.v.setdefault(name, np.zeros_like(param))
            acc += grad * grad
            param -= lr * grad / (np.sqrt(acc) + self.epsilon)

        elif kind == OptimizerType.RMSPROP:
            acc = self.v.setdefault(name, np.zeros_like(param))
            acc *= self.rho
            acc += (1.0 - self.rho) * grad * grad
            param -= lr * grad / (np.sqrt(acc) + self.epsilon)

    def reset(self):
        self.step = 0
        self.m.clear()
        self.v.clear()

    def state_dict(self) -> Dict[str, np.ndarray]:
        state = {f'm.{name}': buf.copy() for name, buf in self.m.items()}
        state.update({f'v.{name}': buf.copy() for name, buf in self.v.items()})
        return state

    def load_state_dict(self, state: Dict[str, np.ndarray], step: int = 0):
        self.reset()
        self.step = int(step)
        for key, buf in state.items():
            kind, _, name = key.partition('.')
            target = self.m if kind == 'm' else self.v
            target[name] = np.array(buf, dtype=np.float64)

    def __repr__(self):
        return (f"Optimizer({self.optimizer_type.value}, lr={self.learning_rate}, "
                f"step={self.step})")
