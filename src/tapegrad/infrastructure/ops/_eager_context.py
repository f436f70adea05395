"""
Eager (immediate) execution context backed by NumPy kernels.

`EagerContext` is the plain executor that actually computes forward values.
It resolves the op type once, validates arity and attributes, runs the
registered kernel on the input values and wraps every output array in a fresh
`TensorHandle`.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence, Union

from ...domain._context import IExecutionContext
from ...domain._errors import OperationExecutionError
from ...domain._op_type import OpType
from ..tensor._tensor_handle import TensorHandle
from ._kernels import KERNELS

logger = logging.getLogger(__name__)


class EagerContext(IExecutionContext):
    """
    Execution context that runs operations immediately on NumPy values.

    Notes
    -----
    - The context is stateless; one instance may be shared freely.
    - Inputs must be `TensorHandle` instances; outputs are new handles.
    """

    def __repr__(self) -> str:
        return "EagerContext()"

    def execute(
        self,
        op_type: Union[OpType, str],
        inputs: Sequence[TensorHandle],
        attrs: Optional[Mapping[str, Any]] = None,
    ) -> tuple[TensorHandle, ...]:
        """
        Execute one operation eagerly.

        Parameters
        ----------
        op_type : OpType or str
            Operation kind.
        inputs : Sequence[TensorHandle]
            Input handles, in the order the kernel expects.
        attrs : Optional[Mapping[str, Any]]
            Operation attributes.

        Returns
        -------
        tuple[TensorHandle, ...]
            Newly created output handles.

        Raises
        ------
        UnknownOpTypeError
            If `op_type` is not a supported operation kind.
        OperationExecutionError
            If no kernel is registered, the arity or attributes are wrong, an
            input is not a `TensorHandle`, or the kernel itself fails.
        """
        op = OpType.resolve(op_type)
        spec = KERNELS.get(op)
        if spec is None:
            raise OperationExecutionError(
                f"No kernel registered for op type {op.value!r}.", op_type=op
            )

        inputs = tuple(inputs)
        if len(inputs) != spec.num_inputs:
            raise OperationExecutionError(
                f"{op.value} expects {spec.num_inputs} input(s), got {len(inputs)}.",
                op_type=op,
            )
        for i, t in enumerate(inputs):
            if not isinstance(t, TensorHandle):
                raise OperationExecutionError(
                    f"{op.value} input {i} must be a TensorHandle, got {type(t)!r}.",
                    op_type=op,
                )

        attrs = MappingProxyType(dict(attrs or {}))
        missing = [k for k in spec.required_attrs if k not in attrs]
        if missing:
            raise OperationExecutionError(
                f"{op.value} missing required attribute(s): {', '.join(missing)}.",
                op_type=op,
            )

        try:
            arrays = spec.fn([t.to_numpy() for t in inputs], attrs)
        except (ValueError, TypeError, ArithmeticError) as e:
            raise OperationExecutionError(
                f"{op.value} kernel failed: {e}", op_type=op
            ) from e

        outputs = tuple(TensorHandle(a) for a in arrays)
        logger.debug(
            "execute: op=%s inputs=%s outputs=%s",
            op.value,
            [t.id for t in inputs],
            [t.id for t in outputs],
        )
        return outputs
