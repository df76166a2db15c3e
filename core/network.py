"""
Hybrid Network - one dense ("Bayesian") layer feeding one LSTM layer.

    input --Dense(sigmoid)--> hidden --LSTM--> hidden state --> output

The network owns a persistent hidden-state buffer that the LSTM layer
updates in place on every forward call. The output is that hidden state
truncated (or zero-padded) to ``output_size``.

Loss and gradients are always computed against the single most recent
forward call. Sequence training means calling forward/backward per step and
relying on the persistent state for temporal context.
"""

from contextlib import contextmanager
from typing import Dict, List, Optional

import numpy as np

from .activations import Activation
from .dense import DenseLayer
from .errors import ShapeError, require_positive
from .lstm import LSTMLayer


class HybridNetwork:
    """Dense -> LSTM network with MSE loss and an explicitly seeded RNG."""

    def __init__(self, input_size: int, hidden_size: int, output_size: int,
                 seed: Optional[int] = None,
                 activation: Activation = Activation.SIGMOID):
        require_positive(input_size=input_size, hidden_size=hidden_size,
                         output_size=output_size)
        self.input_size = input_size
        self.hidden_size = hidden_size
        self.output_size = output_size
        self.seed = seed
        self.rng = np.random.default_rng(seed)

        self.dense = DenseLayer(hidden_size, input_size,
                                activation=activation, rng=self.rng)
        self.lstm = LSTMLayer(hidden_size, hidden_size, rng=self.rng)

        self.hidden_state = np.zeros(hidden_size)
        self.last_output: Optional[np.ndarray] = None

    @property
    def layers(self) -> Dict[str, object]:
        return {'dense': self.dense, 'lstm': self.lstm}

    def forward(self, x) -> np.ndarray:
        x = np.asarray(x, dtype=np.float64).reshape(-1)
        if x.shape[0] != self.input_size:
            raise ShapeError(
                f"network expects {self.input_size} inputs, got {x.shape[0]}")

        hidden = self.dense.forward(x)
        h = self.lstm.forward(hidden, self.hidden_state)

        output = np.zeros(self.output_size)
        n = min(self.hidden_size, self.output_size)
        output[:n] = h[:n]
        self.last_output = output
        return output.copy()

    def backward(self, target) -> float:
        """MSE loss against ``target``; gradients are left on the layers."""
        if self.last_output is None:
            raise RuntimeError("Call forward() before backward()")
        target = np.asarray(target, dtype=np.float64).reshape(-1)
        if target.shape[0] != self.output_size:
            raise ShapeError(
                f"target must have length {self.output_size}, "
                f"got {target.shape[0]}")

        diff = self.last_output - target
        loss = float(np.mean(diff ** 2))
        output_grad = 2.0 * diff / self.output_size

        # Padded output positions carry no gradient back into the LSTM
        grad_h = np.zeros(self.hidden_size)
        n = min(self.hidden_size, self.output_size)
        grad_h[:n] = output_grad[:n]

        grad_hidden = self.lstm.backward(grad_h)
        self.dense.backward(grad_hidden)
        return loss

    def reset_state(self):
        """Start a new sequence: clear hidden and cell state."""
        self.hidden_state[:] = 0.0
        self.lstm.reset_state()
        self.last_output = None

    # ── Parameters ────────────────────────────────────────────────────

    def named_parameters(self) -> Dict[str, np.ndarray]:
        params = {}
        for layer_name, layer in self.layers.items():
            for name, value in layer.parameters().items():
                params[f'{layer_name}.{name}'] = value
        return params

    def named_gradients(self) -> Dict[str, Optional[np.ndarray]]:
        grads = {}
        for layer_name, layer in self.layers.items():
            for name, value in layer.gradients().items():
                grads[f'{layer_name}.{name}'] = value
        return grads

    def zero_grad(self):
        for layer in self.layers.values():
            layer.zero_grad()

    def num_parameters(self) -> int:
        return sum(p.size for p in self.named_parameters().values())

    def state_dict(self) -> Dict[str, np.ndarray]:
        """Copies of every parameter tensor plus the recurrent state."""
        state = {name: p.copy() for name, p in self.named_parameters().items()}
        state['state.hidden'] = self.hidden_state.copy()
        state['state.cell'] = self.lstm.cell_state.copy()
        return state

    def load_state_dict(self, state: Dict[str, np.ndarray]):
        params = self.named_parameters()
        for name, param in params.items():
            if name not in state:
                raise KeyError(f"missing parameter {name}")
            value = np.asarray(state[name], dtype=np.float64)
            if value.shape != param.shape:
                raise ShapeError(
                    f"{name}: expected shape {param.shape}, got {value.shape}")
            # In place, so the optimizer's references stay valid
            param[...] = value
        if 'state.hidden' in state:
            self.hidden_state[:] = state['state.hidden']
            self.lstm.hidden_state = self.hidden_state.copy()
        if 'state.cell' in state:
            self.lstm.cell_state = np.array(state['state.cell'], dtype=np.float64)

    # ── Side-effect-free inference ────────────────────────────────────

    def snapshot_state(self) -> Dict:
        return {
            'hidden_state': self.hidden_state.copy(),
            'last_output': None if self.last_output is None else self.last_output.copy(),
            'dense': self.dense.snapshot(),
            'lstm': self.lstm.snapshot(),
        }

    def restore_state(self, snap: Dict):
        self.hidden_state[:] = snap['hidden_state']
        self.last_output = None if snap['last_output'] is None else snap['last_output'].copy()
        self.dense.restore(snap['dense'])
        self.lstm.restore(snap['lstm'])

    @contextmanager
    def preserved_state(self):
        """Run forward passes without disturbing the recurrent sequence."""
        snap = self.snapshot_state()
        try:
            yield self
        finally:
            self.restore_state(snap)

    def __repr__(self):
        return (f"HybridNetwork(input={self.input_size}, hidden={self.hidden_size}, "
                f"output={self.output_size}, params={self.num_parameters()})")


def train_batch(network: HybridNetwork, optimizer, inputs, targets,
                epochs: int = 1) -> List[float]:
    """
    Plain supervised loop: forward, backward and update per example.

    Returns the mean loss of every epoch.
    """
    inputs = np.asarray(inputs, dtype=np.float64).reshape(-1, network.input_size)
    targets = np.asarray(targets, dtype=np.float64).reshape(-1, network.output_size)
    if len(inputs) != len(targets):
        raise ShapeError(
            f"{len(inputs)} inputs but {len(targets)} targets")

    history = []
    for _ in range(epochs):
        total = 0.0
        for x, y in zip(inputs, targets):
            network.forward(x)
            total += network.backward(y)
            optimizer.update(network)
        history.append(total / max(len(inputs), 1))
    return history
