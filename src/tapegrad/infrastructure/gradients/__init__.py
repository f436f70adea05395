"""
Gradient registry and built-in backward rules.

Importing this module registers all built-in rules into the table used by
`GradientRegistry.with_defaults()`.
"""

from ._registry import GradientRegistry, register_gradient
from ._math_grad import (
    AddGrad,
    SubGrad,
    MulGrad,
    NegGrad,
    ExpGrad,
    SqrtGrad,
    Log1pGrad,
    DivNoNanGrad,
    IdentityGrad,
    ReciprocalGrad,
    OnesLikeGrad,
    ZerosLikeGrad,
    SqrtGradGrad,
    SumToShapeGrad,
)

__all__ = [
    GradientRegistry.__name__,
    "register_gradient",
    AddGrad.__name__,
    SubGrad.__name__,
    MulGrad.__name__,
    NegGrad.__name__,
    ExpGrad.__name__,
    SqrtGrad.__name__,
    Log1pGrad.__name__,
    DivNoNanGrad.__name__,
    IdentityGrad.__name__,
    ReciprocalGrad.__name__,
    OnesLikeGrad.__name__,
    ZerosLikeGrad.__name__,
    SqrtGradGrad.__name__,
    SumToShapeGrad.__name__,
]
