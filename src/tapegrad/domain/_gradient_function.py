"""
Gradient function interface definitions.

This module defines the abstract base class for backward rules used by the
tape-based automatic differentiation engine, along with `ForwardOperation`,
the read-only view of a recorded operation handed to a rule.

A backward rule is created per recorded operation (through the factory
registered for the operation's type) and maps the gradients flowing into the
operation's outputs to gradients for each of its inputs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Sequence

from ._context import IExecutionContext
from ._op_type import OpType
from ._tensor import ITensorHandle


@dataclass(frozen=True)
class ForwardOperation:
    """
    Resolved forward operation passed to gradient factories.

    Attributes
    ----------
    op_type : OpType
        The recorded operation kind.
    inputs : tuple[ITensorHandle, ...]
        Forward input handles, in call order.
    outputs : tuple[ITensorHandle, ...]
        Forward output handles, in call order.
    attrs : Mapping[str, Any]
        Read-only forward attributes.
    """

    op_type: OpType
    inputs: tuple[ITensorHandle, ...]
    outputs: tuple[ITensorHandle, ...]
    attrs: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


class GradientFunction(ABC):
    """
    Abstract base class for per-operation backward rules.

    A `GradientFunction` is instantiated on demand during the backward
    traversal, bound to one `ForwardOperation`, and called once.

    Notes
    -----
    - Rules compute with the execution context they are given rather than
      with raw arrays. Passing a recording context therefore records the
      backward computation too, which is how higher-order gradients work.
    - A rule may return `None` for an input to signal that no gradient
      flows to it.
    - Broadcast reduction (summing a gradient back to an operand's shape)
      is the rule's responsibility.
    """

    def __init__(self, forward_op: ForwardOperation) -> None:
        self.forward_op = forward_op

    @property
    def inputs(self) -> tuple[ITensorHandle, ...]:
        return self.forward_op.inputs

    @property
    def outputs(self) -> tuple[ITensorHandle, ...]:
        return self.forward_op.outputs

    @abstractmethod
    def compute(
        self,
        ctx: IExecutionContext,
        grad_outputs: Sequence[ITensorHandle],
    ) -> Sequence[Optional[ITensorHandle]]:
        """
        Compute gradients with respect to the forward inputs.

        Parameters
        ----------
        ctx : IExecutionContext
            Context used to run the operations making up the rule.
        grad_outputs : Sequence[ITensorHandle]
            One accumulated gradient per forward output, in output order.

        Returns
        -------
        Sequence[Optional[ITensorHandle]]
            Exactly one entry per forward input, in input order. `None`
            means no gradient flows to that input.
        """
        ...


GradientFunctionFactory = Callable[[ForwardOperation], GradientFunction]
