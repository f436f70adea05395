"""
Forward operations and the eager executor.

Importing this package registers the NumPy kernels used by `EagerContext`.
"""

from ._kernels import KERNELS, KernelSpec, register_kernel
from ._eager_context import EagerContext
from ._math_ops import (
    add,
    sub,
    mul,
    neg,
    exp,
    sqrt,
    log1p,
    div_no_nan,
    identity,
    ones_like,
    zeros_like,
    reciprocal,
    sqrt_grad,
    sum_to_shape,
)

__all__ = [
    EagerContext.__name__,
    KernelSpec.__name__,
    "KERNELS",
    register_kernel.__name__,
    add.__name__,
    sub.__name__,
    mul.__name__,
    neg.__name__,
    exp.__name__,
    sqrt.__name__,
    log1p.__name__,
    div_no_nan.__name__,
    identity.__name__,
    ones_like.__name__,
    zeros_like.__name__,
    reciprocal.__name__,
    sqrt_grad.__name__,
    sum_to_shape.__name__,
]
