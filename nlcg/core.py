"""Core interfaces shared across the iterator, line searches and executor."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, NamedTuple, Optional

Param = Any
Objective = Callable[[Param], float]
Gradient = Callable[[Param], Param]
Diagnostics = Dict[str, Any]

RTOL = 1e-8
ATOL = 1e-10


@dataclass(frozen=True)
class Problem:
    """Container describing an optimization problem.

    ``grad`` may be omitted for NumPy parameters, in which case central
    differences of ``fun`` are used.
    """

    fun: Objective
    grad: Optional[Gradient] = None
    dim: Optional[int] = None


class StepResult(NamedTuple):
    """What the iterator hands back to the driver after ``init`` or ``step``."""

    param: Param
    cost: float
    grad: Param
    kv: Diagnostics


@dataclass
class IterState:
    """Snapshot of the executor passed to callbacks after every iteration."""

    iteration: int
    param: Param
    cost: float
    grad: Param
    grad_norm: float
    kv: Diagnostics
    best_param: Param
    best_cost: float
    cost_count: int
    gradient_count: int


@dataclass
class OptimizeResult:
    """Result object returned by the executor and :func:`nonlinear_cg`."""

    x: Param
    fun: float
    nit: int
    success: bool
    message: str
    grad_norm: float
    nfev: int
    njev: int
    nhev: int
    history: List[Param] = field(default_factory=list)
    diagnostics: List[Diagnostics] = field(default_factory=list)
    best_x: Optional[Param] = None
    best_fun: Optional[float] = None


def check_convergence(grad_norm: float, tol: float) -> bool:
    """Return True if gradient norm satisfies tolerance."""
    return grad_norm <= max(tol, ATOL)


__all__ = [
    "ATOL",
    "Diagnostics",
    "Gradient",
    "IterState",
    "Objective",
    "OptimizeResult",
    "Param",
    "Problem",
    "RTOL",
    "StepResult",
    "check_convergence",
]
