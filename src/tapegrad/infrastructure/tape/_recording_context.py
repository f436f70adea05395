"""
Recording execution context.

`RecordingContext` wraps another execution context and a `Tape`. Every
operation executed through it is forwarded unchanged to the wrapped context
and, unless the tape has recording suspended, appended to the tape together
with its input handles, output handles and attributes.

Because forward ops receive their context explicitly, recording is a visible
data-flow choice made by the caller: pass a `RecordingContext` to record, pass
the plain context not to.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence, Union

from ...domain._context import IExecutionContext
from ...domain._op_type import OpType
from ...domain._tensor import ITensorHandle
from ._tape import Tape


class RecordingContext(IExecutionContext):
    """
    Execution context that records every operation onto a tape.

    Parameters
    ----------
    inner : IExecutionContext
        Context that actually executes operations.
    tape : Tape
        Tape receiving the records.

    Notes
    -----
    - Forward results are returned exactly as produced by `inner`.
    - The context never watches anything; watching is up to the caller.
    - Contexts may be nested (a recording context wrapping another one) to
      record the same computation onto several tapes.
    """

    def __init__(self, inner: IExecutionContext, tape: Tape) -> None:
        if not isinstance(tape, Tape):
            raise TypeError(f"RecordingContext expects a Tape, got {type(tape)!r}")
        self._inner = inner
        self._tape = tape

    def __repr__(self) -> str:
        return f"RecordingContext(inner={self._inner!r}, tape={self._tape!r})"

    @property
    def inner(self) -> IExecutionContext:
        return self._inner

    @property
    def tape(self) -> Tape:
        return self._tape

    def execute(
        self,
        op_type: Union[OpType, str],
        inputs: Sequence[ITensorHandle],
        attrs: Optional[Mapping[str, Any]] = None,
    ) -> tuple[ITensorHandle, ...]:
        """
        Execute through the wrapped context and record the call.

        Raises
        ------
        TapeConsumedError
            If the tape is consumed and recording is active. The operation is
            still executed by the wrapped context before the error surfaces.
        OperationExecutionError
            Propagated from the wrapped context; nothing is recorded.
        """
        op = OpType.resolve(op_type)
        inputs = tuple(inputs)
        outputs = tuple(self._inner.execute(op, inputs, attrs))
        if self._tape.is_recording:
            self._tape.record_operation(op, inputs, outputs, attrs)
        return outputs
