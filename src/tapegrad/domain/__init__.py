"""
Domain contracts for tapegrad.

Exports the backend-agnostic interfaces (tensor handles, execution contexts,
gradient functions), the `OpType` enumeration and the engine's error types.
"""

from ._errors import (
    GradientError,
    UnregisteredGradientError,
    TapeConsumedError,
    GradientRuleError,
    ShapeMismatchError,
    OperationExecutionError,
    DuplicateRegistrationError,
    UnknownOpTypeError,
    GradientCheckError,
)
from ._op_type import OpType
from ._tensor import ITensorHandle
from ._context import IExecutionContext
from ._gradient_function import (
    ForwardOperation,
    GradientFunction,
    GradientFunctionFactory,
)

__all__ = [
    OpType.__name__,
    ITensorHandle.__name__,
    IExecutionContext.__name__,
    ForwardOperation.__name__,
    GradientFunction.__name__,
    "GradientFunctionFactory",
    GradientError.__name__,
    UnregisteredGradientError.__name__,
    TapeConsumedError.__name__,
    GradientRuleError.__name__,
    ShapeMismatchError.__name__,
    OperationExecutionError.__name__,
    DuplicateRegistrationError.__name__,
    UnknownOpTypeError.__name__,
    GradientCheckError.__name__,
]
