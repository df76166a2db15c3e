"""
Activation Library - stateless activation functions and their derivatives.

Every function works elementwise on numpy arrays (or plain floats). The
``*_derivative`` functions take the PRE-activation value, while
``backprop`` takes the cached POST-activation output, which is what the
layers keep around after a forward pass.
"""

from enum import Enum

import numpy as np


class Activation(Enum):
    SIGMOID = "sigmoid"
    TANH = "tanh"
    RELU = "relu"
    SOFTMAX = "softmax"
    LINEAR = "linear"


def sigmoid(x):
    # tanh form never overflows for large |x|
    return 0.5 * (1.0 + np.tanh(0.5 * np.asarray(x, dtype=np.float64)))


def sigmoid_derivative(x):
    s = sigmoid(x)
    return s * (1.0 - s)


def tanh(x):
    return np.tanh(np.asarray(x, dtype=np.float64))


def tanh_derivative(x):
    t = tanh(x)
    return 1.0 - t * t


def relu(x):
    return np.maximum(np.asarray(x, dtype=np.float64), 0.0)


def relu_derivative(x):
    return (np.asarray(x, dtype=np.float64) > 0).astype(np.float64)


def linear(x):
    return np.asarray(x, dtype=np.float64)


def linear_derivative(x):
    return np.ones_like(np.asarray(x, dtype=np.float64))


def softmax(x, temperature: float = 1.0):
    """Numerically stable softmax over the last axis."""
    z = np.asarray(x, dtype=np.float64) / temperature
    z = z - np.max(z, axis=-1, keepdims=True)
    e = np.exp(z)
    return e / np.sum(e, axis=-1, keepdims=True)


def softmax_derivative(x):
    """Diagonal of the softmax Jacobian, s_i * (1 - s_i)."""
    s = softmax(x)
    return s * (1.0 - s)


_FORWARD = {
    Activation.SIGMOID: sigmoid,
    Activation.TANH: tanh,
    Activation.RELU: relu,
    Activation.SOFTMAX: softmax,
    Activation.LINEAR: linear,
}


def activate(kind: Activation, x) -> np.ndarray:
    """Apply the activation ``kind`` to a pre-activation vector."""
    return _FORWARD[kind](x)


def backprop(kind: Activation, output: np.ndarray,
             grad: np.ndarray) -> np.ndarray:
    """
    Push ``grad`` (dL/d output) back through the activation.

    Derivatives are evaluated at the cached post-activation ``output``:
    sigmoid y(1-y), tanh 1-y^2, relu [y>0], linear 1. Softmax couples all
    outputs, so the full Jacobian-vector product y * (g - sum(g*y)) is used.
    """
    y = np.asarray(output, dtype=np.float64)
    g = np.asarray(grad, dtype=np.float64)
    if kind == Activation.SIGMOID:
        return g * y * (1.0 - y)
    if kind == Activation.TANH:
        return g * (1.0 - y * y)
    if kind == Activation.RELU:
        return g * (y > 0)
    if kind == Activation.SOFTMAX:
        return y * (g - np.sum(g * y))
    return g
