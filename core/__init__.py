"""
Curriculum Chess - Network Core

A small hand-rolled training stack in pure NumPy:
1. Activations - sigmoid, tanh, relu, softmax and their derivatives
2. DenseLayer - the fully connected ("Bayesian") front layer
3. LSTMLayer - one recurrent cell carrying hidden/cell state across calls
4. HybridNetwork - Dense -> LSTM composition with MSE loss
5. Optimizer - SGD (momentum), Adam, Adagrad, RMSProp
"""

from .activations import Activation, activate, backprop, softmax
from .dense import DenseLayer
from .errors import ConfigurationError, ShapeError
from .lstm import LSTMLayer
from .network import HybridNetwork, train_batch
from .optimizer import Optimizer, OptimizerType

__all__ = [
    'Activation',
    'activate',
    'backprop',
    'softmax',
    'DenseLayer',
    'LSTMLayer',
    'HybridNetwork',
    'train_batch',
    'Optimizer',
    'OptimizerType',
    'ConfigurationError',
    'ShapeError',
]
