"""
Gradient-engine exceptions for tapegrad.

This module defines the error types raised while recording operations,
registering backward rules and running the backward traversal. Each
`GradientError` names the stage that failed so callers can tell a registry
problem from tape reuse or from a failing backward rule:

- "registry lookup"   : no backward rule registered for a recorded op type
- "tape reuse"        : a consumed non-persistent tape was used again
- "rule execution"    : a backward rule raised or returned malformed output
- "forward execution" : the executor could not run a forward operation
- "registration"      : a rule or op type could not be registered

None of these errors are retried internally. They propagate to the caller,
and a failing `Tape.compute_gradient` call returns no gradients.
"""

from __future__ import annotations

from typing import Any, Optional


class GradientError(RuntimeError):
    """
    Base class for errors raised by the gradient engine.

    Attributes
    ----------
    stage : str
        The engine stage that failed.
    op_type : Optional[str]
        The operation type involved, when one is known.
    """

    stage: str = "gradient"

    def __init__(self, message: str, *, op_type: Optional[Any] = None) -> None:
        super().__init__(f"[{self.stage}] {message}")
        self.op_type = None if op_type is None else str(op_type)


class UnregisteredGradientError(GradientError, LookupError):
    """
    Raised when the traversal reaches an operation type that has no
    registered gradient function.
    """

    stage = "registry lookup"

    def __init__(self, op_type: Any) -> None:
        super().__init__(
            f"No gradient registered for op type {str(op_type)!r}.", op_type=op_type
        )


class TapeConsumedError(GradientError):
    """
    Raised when a non-persistent tape is used after `compute_gradient` ran.

    Both recording new operations and a second gradient computation are
    rejected once the tape has been consumed.
    """

    stage = "tape reuse"

    def __init__(self, action: str) -> None:
        super().__init__(
            f"Cannot {action}: non-persistent tape was already used to compute "
            "gradients. Create the tape with persistent=True to reuse it."
        )
        self.action = action


class GradientRuleError(GradientError):
    """
    Raised when a backward rule fails or returns malformed gradients.

    When the rule itself raised, the original exception is chained as
    `__cause__`.
    """

    stage = "rule execution"


class ShapeMismatchError(GradientRuleError):
    """
    Raised when a gradient does not match the shape of the tensor it belongs to.

    This covers both gradients returned by backward rules and caller-provided
    seed gradients for targets.
    """

    def __init__(
        self,
        expected: tuple[int, ...],
        got: tuple[int, ...],
        *,
        what: str = "gradient",
        op_type: Optional[Any] = None,
    ) -> None:
        super().__init__(
            f"{what} shape mismatch: expected {tuple(expected)}, got {tuple(got)}",
            op_type=op_type,
        )
        self.expected = tuple(expected)
        self.got = tuple(got)


class OperationExecutionError(GradientError):
    """
    Raised by an execution context when a forward operation cannot run
    (wrong arity, missing attributes, or a kernel failure).
    """

    stage = "forward execution"


class DuplicateRegistrationError(GradientError, ValueError):
    """
    Raised when a gradient function is registered twice for one op type.
    """

    stage = "registration"

    def __init__(self, op_type: Any) -> None:
        super().__init__(
            f"Gradient already registered for op type {str(op_type)!r}.",
            op_type=op_type,
        )


class UnknownOpTypeError(GradientError, ValueError):
    """
    Raised when a string does not name a supported operation kind.
    """

    stage = "registration"

    def __init__(self, op_type: Any) -> None:
        super().__init__(f"Unknown op type {op_type!r}.", op_type=op_type)


class GradientCheckError(AssertionError):
    """
    Raised when analytic gradients disagree with finite-difference estimates.

    Attributes
    ----------
    mismatches : list[int]
        Indices of the inputs whose gradients disagreed.
    """

    def __init__(self, message: str, mismatches: list[int]) -> None:
        super().__init__(message)
        self.mismatches = list(mismatches)
