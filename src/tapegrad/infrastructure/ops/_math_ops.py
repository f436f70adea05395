"""
Functional wrappers around `IExecutionContext.execute`.

Every wrapper takes the execution context as its first argument and runs a
single operation through it. Forward models and backward rules are written
against these wrappers, so whether an operation is merely executed or also
recorded depends only on which context the caller passes in.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

from ...domain._context import IExecutionContext
from ...domain._op_type import OpType
from ...domain._tensor import ITensorHandle


def _single(
    ctx: IExecutionContext,
    op_type: OpType,
    inputs: Sequence[ITensorHandle],
    attrs: Optional[Mapping[str, Any]] = None,
) -> ITensorHandle:
    outputs = ctx.execute(op_type, tuple(inputs), attrs)
    if len(outputs) != 1:
        raise RuntimeError(
            f"{op_type.value} produced {len(outputs)} outputs, expected exactly 1"
        )
    return outputs[0]


def add(ctx: IExecutionContext, a: ITensorHandle, b: ITensorHandle) -> ITensorHandle:
    """Elementwise a + b ("AddV2")."""
    return _single(ctx, OpType.ADD, (a, b))


def sub(ctx: IExecutionContext, a: ITensorHandle, b: ITensorHandle) -> ITensorHandle:
    """Elementwise a - b ("Sub")."""
    return _single(ctx, OpType.SUB, (a, b))


def mul(ctx: IExecutionContext, a: ITensorHandle, b: ITensorHandle) -> ITensorHandle:
    """Elementwise a * b ("Mul")."""
    return _single(ctx, OpType.MUL, (a, b))


def neg(ctx: IExecutionContext, x: ITensorHandle) -> ITensorHandle:
    """Elementwise -x ("Neg")."""
    return _single(ctx, OpType.NEG, (x,))


def exp(ctx: IExecutionContext, x: ITensorHandle) -> ITensorHandle:
    """Elementwise e**x ("Exp")."""
    return _single(ctx, OpType.EXP, (x,))


def sqrt(ctx: IExecutionContext, x: ITensorHandle) -> ITensorHandle:
    """Elementwise square root ("Sqrt")."""
    return _single(ctx, OpType.SQRT, (x,))


def log1p(ctx: IExecutionContext, x: ITensorHandle) -> ITensorHandle:
    """Elementwise log(1 + x) ("Log1p")."""
    return _single(ctx, OpType.LOG1P, (x,))


def div_no_nan(
    ctx: IExecutionContext, x: ITensorHandle, y: ITensorHandle
) -> ITensorHandle:
    """Elementwise x / y, returning 0 where y == 0 ("DivNoNan")."""
    return _single(ctx, OpType.DIV_NO_NAN, (x, y))


def identity(ctx: IExecutionContext, x: ITensorHandle) -> ITensorHandle:
    """New handle sharing the value of `x` ("Identity")."""
    return _single(ctx, OpType.IDENTITY, (x,))


def ones_like(ctx: IExecutionContext, x: ITensorHandle) -> ITensorHandle:
    return _single(ctx, OpType.ONES_LIKE, (x,))


def zeros_like(ctx: IExecutionContext, x: ITensorHandle) -> ITensorHandle:
    return _single(ctx, OpType.ZEROS_LIKE, (x,))


def reciprocal(ctx: IExecutionContext, x: ITensorHandle) -> ITensorHandle:
    return _single(ctx, OpType.RECIPROCAL, (x,))


def sqrt_grad(
    ctx: IExecutionContext, y: ITensorHandle, dy: ITensorHandle
) -> ITensorHandle:
    """dy * 0.5 / y, where y is the forward output of sqrt ("SqrtGrad")."""
    return _single(ctx, OpType.SQRT_GRAD, (y, dy))


def sum_to_shape(
    ctx: IExecutionContext, g: ITensorHandle, shape: tuple[int, ...]
) -> ITensorHandle:
    """
    Reduce a broadcast gradient `g` to `shape` ("SumToShape").

    Returns `g` itself when the shapes already match, so the common
    non-broadcasting case adds no operation.
    """
    shape = tuple(int(d) for d in shape)
    if tuple(g.shape) == shape:
        return g
    return _single(ctx, OpType.SUM_TO_SHAPE, (g,), {"shape": shape})
