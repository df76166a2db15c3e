"""
Dense Layer - the fully connected ("Bayesian") front layer of the hybrid network.

Each output node aggregates evidence from all of its parent inputs:

    y = activation(W @ x + b)

The layer never mutates its own parameters. ``backward`` only computes and
retains gradients; applying them is the optimizer's job.
"""

from typing import Dict, Optional

import numpy as np

from .activations import Activation, activate, backprop
from .errors import ShapeError, require_positive


class DenseLayer:
    """
    Fully connected layer with a configurable activation.

    Weights have shape (num_outputs, num_inputs) and are drawn uniformly from
    [-init_range, init_range], as are the biases.
    """

    PARAMS = ('weights', 'biases')

    def __init__(self, num_outputs: int, num_inputs: int,
                 activation: Activation = Activation.SIGMOID,
                 rng: Optional[np.random.Generator] = None,
                 init_range: float = 0.1):
        require_positive(num_outputs=num_outputs, num_inputs=num_inputs)
        rng = rng if rng is not None else np.random.default_rng()

        self.num_outputs = num_outputs
        self.num_inputs = num_inputs
        self.activation = Activation(activation)

        self.weights = rng.uniform(-init_range, init_range,
                                   size=(num_outputs, num_inputs))
        self.biases = rng.uniform(-init_range, init_range, size=num_outputs)

        # Forward caches (needed by backward)
        self.input_cache = np.zeros(num_inputs)
        self.pre_activations = np.zeros(num_outputs)
        self.activations = np.zeros(num_outputs)
        self._has_forward = False

        # Gradients retained for the optimizer
        self.grad_weights: Optional[np.ndarray] = None
        self.grad_biases: Optional[np.ndarray] = None

    def forward(self, x) -> np.ndarray:
        x = np.asarray(x, dtype=np.float64).reshape(-1)
        if x.shape[0] != self.num_inputs:
            raise ShapeError(
                f"DenseLayer expects {self.num_inputs} inputs, got {x.shape[0]}")

        self.input_cache = x.copy()
        self.pre_activations = self.weights @ x + self.biases
        self.activations = activate(self.activation, self.pre_activations)
        self._has_forward = True
        return self.activations.copy()

    def backward(self, output_gradient) -> np.ndarray:
        """
        Back-propagate dL/d(output) and return dL/d(input).

        Also stores grad_weights and grad_biases for the next optimizer step.
        """
        if not self._has_forward:
            raise RuntimeError("Call forward() before backward()")
        grad = np.asarray(output_gradient, dtype=np.float64).reshape(-1)
        if grad.shape[0] != self.num_outputs:
            raise ShapeError(
                f"DenseLayer expects a gradient of length {self.num_outputs}, "
                f"got {grad.shape[0]}")

        delta = backprop(self.activation, self.activations, grad)
        self.grad_weights = np.outer(delta, self.input_cache)
        self.grad_biases = delta
        return self.weights.T @ delta

    def parameters(self) -> Dict[str, np.ndarray]:
        return {name: getattr(self, name) for name in self.PARAMS}

    def gradients(self) -> Dict[str, Optional[np.ndarray]]:
        return {'weights': self.grad_weights, 'biases': self.grad_biases}

    def zero_grad(self):
        self.grad_weights = None
        self.grad_biases = None

    def snapshot(self) -> Dict:
        """Copy of the forward caches, for side-effect-free inference."""
        return {
            'input_cache': self.input_cache.copy(),
            'pre_activations': self.pre_activations.copy(),
            'activations': self.activations.copy(),
            'has_forward': self._has_forward,
        }

    def restore(self, snap: Dict):
        self.input_cache = snap['input_cache'].copy()
        self.pre_activations = snap['pre_activations'].copy()
        self.activations = snap['activations'].copy()
        self._has_forward = snap['has_forward']

    def __repr__(self):
        return (f"DenseLayer({self.num_inputs} -> {self.num_outputs}, "
                f"activation={self.activation.value})")
