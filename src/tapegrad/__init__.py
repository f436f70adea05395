"""
tapegrad: tape-based reverse-mode automatic differentiation.

Typical use:

    ctx = EagerContext()
    x = TensorHandle.scalar(2.0)

    tape = Tape()
    tape.watch(x)
    y = ops.sqrt(RecordingContext(ctx, tape), x)

    (dx,) = tape.compute_gradient(ctx, targets=[y], sources=[x])
"""

from .domain import (
    OpType,
    ForwardOperation,
    GradientFunction,
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
from .infrastructure import ops
from .infrastructure.ops import EagerContext
from .infrastructure.tensor import TensorHandle
from .infrastructure.gradients import GradientRegistry, register_gradient
from .infrastructure.tape import OperationRecord, Tape, RecordingContext

__all__ = [
    "ops",
    OpType.__name__,
    ForwardOperation.__name__,
    GradientFunction.__name__,
    EagerContext.__name__,
    TensorHandle.__name__,
    GradientRegistry.__name__,
    "register_gradient",
    OperationRecord.__name__,
    Tape.__name__,
    RecordingContext.__name__,
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
