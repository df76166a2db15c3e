"""
LSTM Layer - the recurrent half of the hybrid network.

One cell with forget / input / output gates and a tanh cell candidate:

    f = sigmoid(Wf x + Uf h_prev + bf)
    i = sigmoid(Wi x + Ui h_prev + bi)
    o = sigmoid(Wo x + Uo h_prev + bo)
    g = tanh(Wc x + Uc h_prev + bc)

    c = f * c_prev + i * g
    h = o * tanh(c)

Hidden and cell state persist across forward calls: the layer models a
single continuous sequence, and every call advances it by one step. Two
independent sequences need two layer instances.
"""

from typing import Dict, Optional

import numpy as np

from .activations import sigmoid
from .errors import ShapeError, require_positive


GATES = ('f', 'i', 'o', 'c')


class LSTMLayer:
    """
    Single LSTM cell with truncated (one-step) backprop-through-time.

    Parameters:
        Wf, Wi, Wo, Wc: (hidden_size, input_size) input-to-gate weights
        Uf, Ui, Uo, Uc: (hidden_size, hidden_size) hidden-to-gate weights
        bf, bi, bo, bc: (hidden_size,) gate biases
    """

    PARAMS = tuple(f'W{g}' for g in GATES) + \
        tuple(f'U{g}' for g in GATES) + \
        tuple(f'b{g}' for g in GATES)

    def __init__(self, input_size: int, hidden_size: int,
                 rng: Optional[np.random.Generator] = None):
        require_positive(input_size=input_size, hidden_size=hidden_size)
        rng = rng if rng is not None else np.random.default_rng()

        self.input_size = input_size
        self.hidden_size = hidden_size

        # Xavier-scaled uniform init
        scale = np.sqrt(2.0 / (input_size + hidden_size))
        for g in GATES:
            setattr(self, f'W{g}',
                    rng.uniform(-scale, scale, size=(hidden_size, input_size)))
        for g in GATES:
            setattr(self, f'U{g}',
                    rng.uniform(-scale, scale, size=(hidden_size, hidden_size)))
        for g in GATES:
            setattr(self, f'b{g}', np.zeros(hidden_size))

        # Persistent recurrent state
        self.hidden_state = np.zeros(hidden_size)
        self.cell_state = np.zeros(hidden_size)

        self._cache: Optional[Dict[str, np.ndarray]] = None
        self.grads: Dict[str, Optional[np.ndarray]] = {p: None for p in self.PARAMS}
        self.grad_hidden_prev: Optional[np.ndarray] = None
        self.grad_cell_prev: Optional[np.ndarray] = None

    def forward(self, x, hidden_state: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Advance the sequence by one step.

        If ``hidden_state`` is given it is read as the previous hidden state
        and overwritten in place with the new one, so the caller's buffer
        carries the recurrence. Otherwise the layer's own state is used.
        """
        x = np.asarray(x, dtype=np.float64).reshape(-1)
        if x.shape[0] != self.input_size:
            raise ShapeError(
                f"LSTMLayer expects {self.input_size} inputs, got {x.shape[0]}")

        if hidden_state is None:
            h_prev = self.hidden_state.copy()
        else:
            if hidden_state.shape != (self.hidden_size,):
                raise ShapeError(
                    f"hidden state must have length {self.hidden_size}, "
                    f"got {hidden_state.shape}")
            h_prev = np.array(hidden_state, dtype=np.float64)
        c_prev = self.cell_state.copy()

        f = sigmoid(self.Wf @ x + self.Uf @ h_prev + self.bf)
        i = sigmoid(self.Wi @ x + self.Ui @ h_prev + self.bi)
        o = sigmoid(self.Wo @ x + self.Uo @ h_prev + self.bo)
        g = np.tanh(self.Wc @ x + self.Uc @ h_prev + self.bc)

        c = f * c_prev + i * g
        tanh_c = np.tanh(c)
        h = o * tanh_c

        self._cache = {
            'x': x.copy(), 'h_prev': h_prev, 'c_prev': c_prev,
            'f': f, 'i': i, 'o': o, 'g': g, 'c': c, 'tanh_c': tanh_c,
        }
        self.cell_state = c
        self.hidden_state = h.copy()
        if hidden_state is not None:
            hidden_state[:] = h
        return h.copy()

    def backward(self, grad_hidden, grad_cell=None) -> np.ndarray:
        """
        One-step BPTT through all four gates and the cell recurrence.

        Args:
            grad_hidden: dL/dh for the output of the last forward call
            grad_cell: optional extra dL/dc flowing in from a later step

        Returns:
            dL/dx. Parameter gradients are kept in ``self.grads`` and the
            gradients w.r.t. the previous hidden / cell state in
            ``grad_hidden_prev`` / ``grad_cell_prev``.
        """
        if self._cache is None:
            raise RuntimeError("Call forward() before backward()")
        dh = np.asarray(grad_hidden, dtype=np.float64).reshape(-1)
        if dh.shape[0] != self.hidden_size:
            raise ShapeError(
                f"LSTMLayer expects a gradient of length {self.hidden_size}, "
                f"got {dh.shape[0]}")

        k = self._cache
        f, i, o, g = k['f'], k['i'], k['o'], k['g']

        do = dh * k['tanh_c']
        dc = dh * o * (1.0 - k['tanh_c'] ** 2)
        if grad_cell is not None:
            dc = dc + np.asarray(grad_cell, dtype=np.float64).reshape(-1)

        df = dc * k['c_prev']
        di = dc * g
        dg = dc * i

        # Gate error terms at the pre-activations
        deltas = {
            'f': df * f * (1.0 - f),
            'i': di * i * (1.0 - i),
            'o': do * o * (1.0 - o),
            'c': dg * (1.0 - g * g),
        }

        dx = np.zeros(self.input_size)
        dh_prev = np.zeros(self.hidden_size)
        for gate, delta in deltas.items():
            W = getattr(self, f'W{gate}')
            U = getattr(self, f'U{gate}')
            self.grads[f'W{gate}'] = np.outer(delta, k['x'])
            self.grads[f'U{gate}'] = np.outer(delta, k['h_prev'])
            self.grads[f'b{gate}'] = delta.copy()
            dx += W.T @ delta
            dh_prev += U.T @ delta

        self.grad_hidden_prev = dh_prev
        self.grad_cell_prev = dc * f
        return dx

    def reset_state(self):
        self.hidden_state = np.zeros(self.hidden_size)
        self.cell_state = np.zeros(self.hidden_size)

    def parameters(self) -> Dict[str, np.ndarray]:
        return {name: getattr(self, name) for name in self.PARAMS}

    def gradients(self) -> Dict[str, Optional[np.ndarray]]:
        return dict(self.grads)

    def zero_grad(self):
        self.grads = {p: None for p in self.PARAMS}
        self.grad_hidden_prev = None
        self.grad_cell_prev = None

    def snapshot(self) -> Dict:
        return {
            'hidden_state': self.hidden_state.copy(),
            'cell_state': self.cell_state.copy(),
            'cache': None if self._cache is None else
                     {key: v.copy() for key, v in self._cache.items()},
        }

    def restore(self, snap: Dict):
        self.hidden_state = snap['hidden_state'].copy()
        self.cell_state = snap['cell_state'].copy()
        cache = snap['cache']
        self._cache = None if cache is None else \
            {key: v.copy() for key, v in cache.items()}

    def __repr__(self):
        return f"LSTMLayer({self.input_size} -> {self.hidden_size})"
