"""
Error types shared by the network core and the training stack.

Configuration problems fail fast when an object is created. Numerical
problems (NaN/Inf outputs) are never raised; they are reported as
hallucination flags by the training engine instead.
"""


class ConfigurationError(ValueError):
    """Invalid dimensions or hyper-parameters supplied at creation time."""


class ShapeError(ValueError):
    """A vector passed to a layer or network has the wrong length."""


def require_positive(**sizes: int):
    """Raise ConfigurationError unless every named size is a positive int."""
    for name, value in sizes.items():
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ConfigurationError(
                f"{name} must be a positive integer, got {value!r}")
