from __future__ import annotations

from dataclasses import dataclass

DEFAULT_EPS: float = 1e-4
DEFAULT_ATOL: float = 1e-4
DEFAULT_RTOL: float = 1e-3


@dataclass(frozen=True)
class GradientCheckConfig:
    """
    Tolerances for comparing analytic and finite-difference gradients.

    Attributes
    ----------
    eps : float
        Central-difference step.
    atol : float
        Absolute tolerance.
    rtol : float
        Relative tolerance (relative to the numerical estimate).
    """

    eps: float = DEFAULT_EPS
    atol: float = DEFAULT_ATOL
    rtol: float = DEFAULT_RTOL

    def __post_init__(self) -> None:
        if not self.eps > 0:
            raise ValueError(f"eps must be positive, got {self.eps}")
        if self.atol < 0 or self.rtol < 0:
            raise ValueError(
                f"tolerances must be non-negative, got atol={self.atol}, rtol={self.rtol}"
            )
