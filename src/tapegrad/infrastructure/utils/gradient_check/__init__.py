"""
Numerical gradient checking utilities.

Exports
-------
- GradientCheckConfig: tolerances and finite-difference step.
- make_grad_model: wraps a forward model into a tape-based gradient model.
- numerical_gradient: central-difference gradient estimate.
- check_gradients: compares the two and raises `GradientCheckError`.
"""

from ._config import GradientCheckConfig
from ._numerical import (
    Model,
    make_grad_model,
    numerical_gradient,
    check_gradients,
)

__all__ = [
    GradientCheckConfig.__name__,
    "Model",
    make_grad_model.__name__,
    numerical_gradient.__name__,
    check_gradients.__name__,
]
