"""
Finite-difference gradient checking.

Helpers to validate the tape's analytic gradients against central-difference
estimates:

- `make_grad_model` turns a forward model into a gradient model that records
  the model on a fresh tape and returns d(sum of first output)/d(inputs).
- `numerical_gradient` estimates d(sum of first output)/d(inputs) by
  perturbing each input element by +/- eps.
- `check_gradients` runs both and raises `GradientCheckError` on mismatch.

A model is a callable `model(ctx, inputs) -> outputs` that runs its
operations through `ctx`.

Notes
-----
Finite differences are evaluated in float64 regardless of the input dtype, so
the estimate is not dominated by float32 rounding.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

import numpy as np

from ....domain._context import IExecutionContext
from ....domain._errors import GradientCheckError
from ...gradients._registry import GradientRegistry
from ...tape._recording_context import RecordingContext
from ...tape._tape import Tape
from ...tensor._tensor_handle import TensorHandle
from ._config import DEFAULT_EPS, GradientCheckConfig

logger = logging.getLogger(__name__)

Model = Callable[[IExecutionContext, Sequence[TensorHandle]], Sequence[TensorHandle]]


def make_grad_model(model: Model, registry: Optional[GradientRegistry] = None) -> Model:
    """
    Build a gradient model from a forward model.

    The returned callable creates a non-persistent tape, watches every input,
    runs `model` through a `RecordingContext` and returns one gradient per
    input of the sum of the first model output, the same quantity
    `numerical_gradient` estimates. Further outputs are ignored.

    Parameters
    ----------
    model : Model
        Forward model.
    registry : Optional[GradientRegistry]
        Registry for the tape. Defaults to all built-in rules.
    """

    def grad_model(
        ctx: IExecutionContext, inputs: Sequence[TensorHandle]
    ) -> Sequence[TensorHandle]:
        tape = Tape(persistent=False, registry=registry)
        for x in inputs:
            tape.watch(x)
        outputs = model(RecordingContext(ctx, tape), inputs)
        if not outputs:
            raise ValueError("model produced no outputs")
        return tape.compute_gradient(ctx, targets=outputs[:1], sources=inputs)

    return grad_model


def _sum_first_output(
    ctx: IExecutionContext, model: Model, inputs: Sequence[TensorHandle]
) -> float:
    outputs = model(ctx, inputs)
    if not outputs:
        raise ValueError("model produced no outputs")
    return float(np.sum(outputs[0].to_numpy(), dtype=np.float64))


def numerical_gradient(
    ctx: IExecutionContext,
    model: Model,
    inputs: Sequence[TensorHandle],
    eps: float = DEFAULT_EPS,
) -> list[np.ndarray]:
    """
    Central-difference gradient of sum(model(inputs)[0]) w.r.t. each input.

    Parameters
    ----------
    ctx : IExecutionContext
        Context used to run the model (normally a plain, non-recording one).
    model : Model
        Forward model.
    inputs : Sequence[TensorHandle]
        Point at which to differentiate.
    eps : float
        Perturbation step.

    Returns
    -------
    list[np.ndarray]
        One float64 array per input, shaped like that input.
    """
    base = [np.array(x.to_numpy(), dtype=np.float64) for x in inputs]
    grads: list[np.ndarray] = []

    for i, x_np in enumerate(base):
        grad = np.zeros_like(x_np)
        it = np.nditer(x_np, flags=["multi_index"])
        while not it.finished:
            idx = it.multi_index

            x_plus = x_np.copy()
            x_minus = x_np.copy()
            x_plus[idx] += eps
            x_minus[idx] -= eps

            args_plus = [TensorHandle.from_numpy(a, dtype=np.float64) for a in base]
            args_minus = list(args_plus)
            args_plus[i] = TensorHandle.from_numpy(x_plus, dtype=np.float64)
            args_minus[i] = TensorHandle.from_numpy(x_minus, dtype=np.float64)

            loss_plus = _sum_first_output(ctx, model, args_plus)
            loss_minus = _sum_first_output(ctx, model, args_minus)

            grad[idx] = (loss_plus - loss_minus) / (2.0 * eps)
            it.iternext()

        grads.append(grad)

    return grads


def check_gradients(
    ctx: IExecutionContext,
    model: Model,
    grad_model: Model,
    inputs: Sequence[TensorHandle],
    config: Optional[GradientCheckConfig] = None,
) -> list[np.ndarray]:
    """
    Compare analytic gradients from `grad_model` with finite differences.

    Returns
    -------
    list[np.ndarray]
        The analytic gradients, as arrays, when the check passes.

    Raises
    ------
    GradientCheckError
        If any input's gradient is outside the configured tolerance, or
        `grad_model` returns the wrong number of gradients.
    """
    config = config or GradientCheckConfig()

    analytic = [np.asarray(g.to_numpy()) for g in grad_model(ctx, inputs)]
    numeric = numerical_gradient(ctx, model, inputs, eps=config.eps)

    if len(analytic) != len(numeric):
        raise GradientCheckError(
            f"expected {len(numeric)} gradient(s), got {len(analytic)}",
            mismatches=list(range(len(numeric))),
        )

    mismatches: list[int] = []
    lines: list[str] = []
    for i, (a, n) in enumerate(zip(analytic, numeric)):
        if a.shape != n.shape or not np.allclose(
            a.astype(np.float64), n, atol=config.atol, rtol=config.rtol
        ):
            mismatches.append(i)
            lines.append(f"  input {i}: analytic={a!r} numerical={n!r}")

    if mismatches:
        raise GradientCheckError(
            "analytic and numerical gradients differ:\n" + "\n".join(lines),
            mismatches=mismatches,
        )

    logger.debug("check_gradients: %d input(s) within tolerance", len(analytic))
    return analytic
