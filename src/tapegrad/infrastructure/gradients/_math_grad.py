"""
Backward rules for the elementwise math operations.

Each rule is a `GradientFunction` subclass registered as the built-in gradient
for one op type. Rules:

- read forward values from `self.inputs` / `self.outputs`,
- compute through the execution context they are given (so a recording
  context records the backward pass too),
- return exactly one gradient (or None) per forward input,
- reduce broadcast gradients back to each operand's shape.

Notes
-----
Rules that reuse a forward *output* (Exp, Sqrt) avoid recomputing the forward
function in the backward pass.
"""

from __future__ import annotations

from typing import Optional, Sequence

from ...domain._context import IExecutionContext
from ...domain._gradient_function import GradientFunction
from ...domain._op_type import OpType
from ...domain._tensor import ITensorHandle
from ..ops import _math_ops as ops
from ._registry import register_gradient

Grads = Sequence[Optional[ITensorHandle]]


@register_gradient(OpType.ADD)
class AddGrad(GradientFunction):
    """
    Gradient of out = x + y.

    Backward:

        dx = sum_to_shape(g, x.shape)
        dy = sum_to_shape(g, y.shape)
    """

    def compute(self, ctx: IExecutionContext, grad_outputs: Grads) -> Grads:
        (g,) = grad_outputs
        x, y = self.inputs
        return [
            ops.sum_to_shape(ctx, ops.identity(ctx, g), x.shape),
            ops.sum_to_shape(ctx, ops.identity(ctx, g), y.shape),
        ]


@register_gradient(OpType.SUB)
class SubGrad(GradientFunction):
    """
    Gradient of out = x - y.

    Backward:

        dx = g
        dy = -g
    """

    def compute(self, ctx: IExecutionContext, grad_outputs: Grads) -> Grads:
        (g,) = grad_outputs
        x, y = self.inputs
        return [
            ops.sum_to_shape(ctx, ops.identity(ctx, g), x.shape),
            ops.sum_to_shape(ctx, ops.neg(ctx, g), y.shape),
        ]


@register_gradient(OpType.MUL)
class MulGrad(GradientFunction):
    """
    Gradient of out = x * y.

    Backward:

        dx = g * y
        dy = g * x
    """

    def compute(self, ctx: IExecutionContext, grad_outputs: Grads) -> Grads:
        (g,) = grad_outputs
        x, y = self.inputs
        return [
            ops.sum_to_shape(ctx, ops.mul(ctx, g, y), x.shape),
            ops.sum_to_shape(ctx, ops.mul(ctx, g, x), y.shape),
        ]


@register_gradient(OpType.NEG)
class NegGrad(GradientFunction):
    """Gradient of out = -x: dx = -g."""

    def compute(self, ctx: IExecutionContext, grad_outputs: Grads) -> Grads:
        (g,) = grad_outputs
        return [ops.neg(ctx, g)]


@register_gradient(OpType.EXP)
class ExpGrad(GradientFunction):
    """
    Gradient of out = exp(x).

    Backward:

        d(exp(x))/dx = exp(x) = out
    """

    def compute(self, ctx: IExecutionContext, grad_outputs: Grads) -> Grads:
        (g,) = grad_outputs
        (out,) = self.outputs
        return [ops.mul(ctx, g, out)]


@register_gradient(OpType.SQRT)
class SqrtGrad(GradientFunction):
    """
    Gradient of out = sqrt(x).

    Backward:

        dx = g / (2 * out)
    """

    def compute(self, ctx: IExecutionContext, grad_outputs: Grads) -> Grads:
        (g,) = grad_outputs
        (out,) = self.outputs
        return [ops.sqrt_grad(ctx, out, g)]


@register_gradient(OpType.LOG1P)
class Log1pGrad(GradientFunction):
    """
    Gradient of out = log(1 + x).

    Backward:

        dx = g * 1 / (1 + x)
    """

    def compute(self, ctx: IExecutionContext, grad_outputs: Grads) -> Grads:
        (g,) = grad_outputs
        (x,) = self.inputs
        one_plus_x = ops.add(ctx, ops.ones_like(ctx, x), x)
        return [ops.mul(ctx, g, ops.reciprocal(ctx, one_plus_x))]


@register_gradient(OpType.DIV_NO_NAN)
class DivNoNanGrad(GradientFunction):
    """
    Gradient of out = div_no_nan(x, y).

    Backward:

        dx = div_no_nan(g, y)
        dy = -g * div_no_nan(div_no_nan(x, y), y)

    Notes
    -----
    Both gradients are exactly 0 wherever y == 0, never NaN or Inf, because
    every division goes through `div_no_nan`.
    """

    def compute(self, ctx: IExecutionContext, grad_outputs: Grads) -> Grads:
        (g,) = grad_outputs
        x, y = self.inputs
        grad_x = ops.div_no_nan(ctx, g, y)
        x_over_y2 = ops.div_no_nan(ctx, ops.div_no_nan(ctx, x, y), y)
        grad_y = ops.mul(ctx, ops.neg(ctx, g), x_over_y2)
        return [
            ops.sum_to_shape(ctx, grad_x, x.shape),
            ops.sum_to_shape(ctx, grad_y, y.shape),
        ]


@register_gradient(OpType.IDENTITY)
class IdentityGrad(GradientFunction):
    """Gradient of out = x: dx = g."""

    def compute(self, ctx: IExecutionContext, grad_outputs: Grads) -> Grads:
        (g,) = grad_outputs
        return [ops.identity(ctx, g)]


@register_gradient(OpType.RECIPROCAL)
class ReciprocalGrad(GradientFunction):
    """
    Gradient of out = 1 / x.

    Backward:

        dx = -g * out * out
    """

    def compute(self, ctx: IExecutionContext, grad_outputs: Grads) -> Grads:
        (g,) = grad_outputs
        (out,) = self.outputs
        return [ops.mul(ctx, ops.neg(ctx, g), ops.mul(ctx, out, out))]


class _NotDifferentiable(GradientFunction):
    # Output values do not depend on input values.

    def compute(self, ctx: IExecutionContext, grad_outputs: Grads) -> Grads:
        return [None] * len(self.inputs)


@register_gradient(OpType.ONES_LIKE)
class OnesLikeGrad(_NotDifferentiable):
    pass


@register_gradient(OpType.ZEROS_LIKE)
class ZerosLikeGrad(_NotDifferentiable):
    pass


@register_gradient(OpType.SQRT_GRAD)
class SqrtGradGrad(GradientFunction):
    """
    Gradient of out = dy * 0.5 / y (the Sqrt backward helper).

    Backward:

        d_y  = -g * out / y
        d_dy = g * 0.5 / y = sqrt_grad(y, g)
    """

    def compute(self, ctx: IExecutionContext, grad_outputs: Grads) -> Grads:
        (g,) = grad_outputs
        y, dy = self.inputs
        (out,) = self.outputs
        g_out = ops.mul(ctx, g, out)
        grad_y = ops.neg(ctx, ops.mul(ctx, g_out, ops.reciprocal(ctx, y)))
        grad_dy = ops.sqrt_grad(ctx, y, g)
        return [
            ops.sum_to_shape(ctx, grad_y, y.shape),
            ops.sum_to_shape(ctx, grad_dy, dy.shape),
        ]


@register_gradient(OpType.SUM_TO_SHAPE)
class SumToShapeGrad(GradientFunction):
    """
    Gradient of out = sum_to_shape(x, shape).

    Backward: broadcast g back to x.shape, done as zeros_like(x) + g.
    """

    def compute(self, ctx: IExecutionContext, grad_outputs: Grads) -> Grads:
        (g,) = grad_outputs
        (x,) = self.inputs
        return [ops.add(ctx, ops.zeros_like(ctx, x), g)]
