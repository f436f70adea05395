"""
Execution context interface.

An execution context runs forward operations: given an op type, input handles
and optional attributes, it returns the output handles. The eager numpy
executor and the recording wrapper both satisfy this protocol, which is what
lets recording stay transparent to op implementations: every op receives the
context explicitly and cannot tell whether it is being recorded.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, Sequence, Union, runtime_checkable

from ._op_type import OpType
from ._tensor import ITensorHandle


@runtime_checkable
class IExecutionContext(Protocol):
    """
    Forward-operation executor interface.
    """

    def execute(
        self,
        op_type: Union[OpType, str],
        inputs: Sequence[ITensorHandle],
        attrs: Optional[Mapping[str, Any]] = None,
    ) -> tuple[ITensorHandle, ...]:
        """
        Execute one operation.

        Parameters
        ----------
        op_type : OpType or str
            Operation kind to run.
        inputs : Sequence[ITensorHandle]
            Ordered input handles.
        attrs : Optional[Mapping[str, Any]]
            Non-tensor operation attributes (e.g. a target shape).

        Returns
        -------
        tuple[ITensorHandle, ...]
            Ordered output handles.

        Raises
        ------
        OperationExecutionError
            If the operation cannot be executed.
        """
        ...
