"""
NumPy kernels for the eager execution context.

Each kernel takes the input arrays (and the op attributes) and returns a tuple
of output arrays. Kernels are registered per `OpType` through the
`register_kernel` decorator; `EagerContext` dispatches on the resolved enum
member.

Kernel conventions
------------------
- Binary kernels follow NumPy broadcasting.
- Outputs are always `np.ndarray` (rank-0 results are wrapped with
  `np.asarray`, since NumPy ufuncs return scalars for 0-d inputs).
- Kernels never mutate their inputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Sequence

import numpy as np

from ...domain._op_type import OpType

KernelFn = Callable[[Sequence[np.ndarray], Mapping[str, Any]], tuple[np.ndarray, ...]]


@dataclass(frozen=True)
class KernelSpec:
    """
    Registered kernel plus its arity.

    Attributes
    ----------
    fn : KernelFn
        The kernel callable.
    num_inputs : int
        Number of tensor inputs the kernel expects.
    required_attrs : tuple[str, ...]
        Attribute names that must be present when the op is executed.
    """

    fn: KernelFn
    num_inputs: int
    required_attrs: tuple[str, ...] = ()


KERNELS: Dict[OpType, KernelSpec] = {}


def register_kernel(
    op_type: OpType, *, num_inputs: int, required_attrs: tuple[str, ...] = ()
) -> Callable[[KernelFn], KernelFn]:
    """
    Decorator registering a NumPy kernel for `op_type`.

    Raises
    ------
    ValueError
        If a kernel is already registered for `op_type`.
    """

    def decorator(fn: KernelFn) -> KernelFn:
        if op_type in KERNELS:
            raise ValueError(f"Kernel already registered: {op_type.value!r}")
        KERNELS[op_type] = KernelSpec(
            fn=fn, num_inputs=num_inputs, required_attrs=tuple(required_attrs)
        )
        return fn

    return decorator


def _out(x: Any, dtype: np.dtype) -> tuple[np.ndarray, ...]:
    return (np.asarray(x, dtype=dtype),)


def _binary_dtype(a: np.ndarray, b: np.ndarray) -> np.dtype:
    return np.result_type(a, b)


def _float_dtype(x: np.ndarray) -> np.dtype:
    # Integer inputs promote to a float dtype instead of truncating.
    return np.result_type(x.dtype, np.float32)


# ---------------------------------------------------------------------
# Forward math
# ---------------------------------------------------------------------
@register_kernel(OpType.ADD, num_inputs=2)
def add_kernel(inputs, attrs):
    a, b = inputs
    return _out(np.add(a, b), _binary_dtype(a, b))


@register_kernel(OpType.SUB, num_inputs=2)
def sub_kernel(inputs, attrs):
    a, b = inputs
    return _out(np.subtract(a, b), _binary_dtype(a, b))


@register_kernel(OpType.MUL, num_inputs=2)
def mul_kernel(inputs, attrs):
    a, b = inputs
    return _out(np.multiply(a, b), _binary_dtype(a, b))


@register_kernel(OpType.NEG, num_inputs=1)
def neg_kernel(inputs, attrs):
    (x,) = inputs
    return _out(np.negative(x), x.dtype)


@register_kernel(OpType.EXP, num_inputs=1)
def exp_kernel(inputs, attrs):
    (x,) = inputs
    return _out(np.exp(x), _float_dtype(x))


@register_kernel(OpType.SQRT, num_inputs=1)
def sqrt_kernel(inputs, attrs):
    (x,) = inputs
    return _out(np.sqrt(x), _float_dtype(x))


@register_kernel(OpType.LOG1P, num_inputs=1)
def log1p_kernel(inputs, attrs):
    (x,) = inputs
    return _out(np.log1p(x), _float_dtype(x))


@register_kernel(OpType.DIV_NO_NAN, num_inputs=2)
def div_no_nan_kernel(inputs, attrs):
    """
    Elementwise x / y, with exactly 0 wherever y == 0.
    """
    x, y = inputs
    dtype = _binary_dtype(x, y)
    shape = np.broadcast_shapes(x.shape, y.shape)
    out = np.zeros(shape, dtype=dtype)
    np.divide(x, y, out=out, where=np.broadcast_to(y != 0, shape))
    return (out,)


# ---------------------------------------------------------------------
# Helpers used by backward rules
# ---------------------------------------------------------------------
@register_kernel(OpType.IDENTITY, num_inputs=1)
def identity_kernel(inputs, attrs):
    # Shares the input value; the output handle gets its own identity.
    (x,) = inputs
    return (x,)


@register_kernel(OpType.ONES_LIKE, num_inputs=1)
def ones_like_kernel(inputs, attrs):
    (x,) = inputs
    return (np.ones(x.shape, dtype=x.dtype),)


@register_kernel(OpType.ZEROS_LIKE, num_inputs=1)
def zeros_like_kernel(inputs, attrs):
    (x,) = inputs
    return (np.zeros(x.shape, dtype=x.dtype),)


@register_kernel(OpType.RECIPROCAL, num_inputs=1)
def reciprocal_kernel(inputs, attrs):
    (x,) = inputs
    dtype = _float_dtype(x)
    return _out(np.reciprocal(x.astype(dtype, copy=False)), dtype)


@register_kernel(OpType.SQRT_GRAD, num_inputs=2)
def sqrt_grad_kernel(inputs, attrs):
    """
    Gradient of sqrt expressed through its output: dy * 0.5 / y.

    Inputs are ordered (y, dy) where y = sqrt(x).
    """
    y, dy = inputs
    dtype = _binary_dtype(y, dy)
    return _out(dy * dtype.type(0.5) / y, dtype)


def sum_to_shape_reduce_axes(
    src_shape: tuple[int, ...], target_shape: tuple[int, ...]
) -> tuple[tuple[int, ...], int]:
    """
    Compute the reduction axes that collapse `src_shape` onto `target_shape`.

    `target_shape` is left-padded with ones to the rank of `src_shape`; every
    axis where the padded target is 1 and the source is not gets summed.

    Parameters
    ----------
    src_shape:
        The broadcast (larger) shape.
    target_shape:
        The original operand shape.

    Returns
    -------
    reduce_axes:
        Axes to sum over with `keepdims=True`.
    pad:
        Number of leading axes to drop afterwards.

    Raises
    ------
    ValueError
        If `target_shape` could not have been broadcast to `src_shape`.
    """
    src = tuple(int(d) for d in src_shape)
    tgt = tuple(int(d) for d in target_shape)

    if len(tgt) > len(src):
        raise ValueError(f"target_shape rank {len(tgt)} > src rank {len(src)}")

    pad = len(src) - len(tgt)
    padded_tgt = (1,) * pad + tgt

    for i, (sd, td) in enumerate(zip(src, padded_tgt)):
        if td not in (1, sd):
            raise ValueError(
                f"Cannot sum_to_shape from {src_shape} to {target_shape}: "
                f"dim mismatch at axis {i}: src={sd}, target={td}"
            )

    reduce_axes = tuple(
        i for i, (sd, td) in enumerate(zip(src, padded_tgt)) if td == 1 and sd != 1
    )
    return reduce_axes, pad


@register_kernel(OpType.SUM_TO_SHAPE, num_inputs=1, required_attrs=("shape",))
def sum_to_shape_kernel(inputs, attrs):
    """
    Sum a broadcast gradient back down to `attrs["shape"]`.
    """
    (g,) = inputs
    target = tuple(int(d) for d in attrs["shape"])
    if tuple(g.shape) == target:
        return (g,)

    reduce_axes, pad = sum_to_shape_reduce_axes(g.shape, target)

    x = g
    if reduce_axes:
        x = np.sum(x, axis=reduce_axes, keepdims=True)
    if pad:
        x = x.reshape(x.shape[pad:])

    return (np.asarray(x, dtype=g.dtype),)
