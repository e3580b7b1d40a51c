"""Factory for building solvers from a plain configuration object."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional

from .beta import get_beta_rule
from .core import RTOL
from .line_search import (
    BacktrackingLineSearch,
    ConstantStepLineSearch,
    LineSearch,
    StrongWolfeLineSearch,
)
from .nonlinear_cg import BetaRule, NonlinearConjugateGradient

LINE_SEARCHES = ("strong_wolfe", "backtracking", "constant")


@dataclass(frozen=True)
class NLCGConfig:
    """
    Configuration for a nonlinear conjugate gradient run.

    Fields that do not apply to the selected line search are ignored by it.

    Args:
        beta: Beta rule name: "FR", "PR", "PR+", "HS" or "DY".
        line_search: "strong_wolfe", "backtracking" or "constant".
        alpha0: Initial trial step of the strong Wolfe and backtracking searches.
        c1: Sufficient decrease constant (Armijo ``c`` for backtracking).
        c2: Curvature constant of the strong Wolfe search.
        rho: Shrink factor of the backtracking search.
        step: Step length of the constant search.
        restart_iters: Restart every this many iterations; None disables.
        restart_orthogonality: Powell restart threshold; None disables.
        maxiter: Maximum number of iterations of the executor.
        tol: Gradient-norm tolerance of the executor.
        target_cost: Optional cost at which the executor stops.
    """

    beta: str = "PR"
    line_search: str = "strong_wolfe"
    alpha0: float = 1.0
    c1: float = 1e-4
    c2: float = 0.1
    rho: float = 0.5
    step: float = 1.0
    restart_iters: Optional[int] = None
    restart_orthogonality: Optional[float] = None
    maxiter: int = 1000
    tol: float = RTOL
    target_cost: Optional[float] = None

    def __post_init__(self) -> None:
        get_beta_rule(self.beta)
        if self.line_search not in LINE_SEARCHES:
            raise ValueError(
                f"Unsupported line search {self.line_search!r}. "
                f"Supported: {', '.join(LINE_SEARCHES)}."
            )
        if self.restart_iters is not None and self.restart_iters <= 0:
            raise ValueError("restart_iters must be positive.")
        if self.restart_orthogonality is not None and not (
            math.isfinite(self.restart_orthogonality) and self.restart_orthogonality > 0
        ):
            raise ValueError("restart_orthogonality must be a positive number.")
        if self.maxiter < 0:
            raise ValueError("maxiter must be non-negative.")
        if self.tol < 0:
            raise ValueError("tol must be non-negative.")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NLCGConfig":
        """Build a config from a dict, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        return cls(**data)


def create_line_search(config: NLCGConfig) -> LineSearch:
    """Create the line search selected by ``config.line_search``."""
    name = config.line_search
    if name == "strong_wolfe":
        return StrongWolfeLineSearch(alpha0=config.alpha0, c1=config.c1, c2=config.c2)
    elif name == "backtracking":
        return BacktrackingLineSearch(alpha0=config.alpha0, rho=config.rho, c=config.c1)
    elif name == "constant":
        return ConstantStepLineSearch(step=config.step)
    raise ValueError(f"Unsupported line search {name!r}.")


def create_solver(
    config: NLCGConfig,
    line_search: Optional[LineSearch] = None,
    beta_rule: Optional[BetaRule] = None,
) -> NonlinearConjugateGradient:
    """
    Create a solver from a configuration.

    Args:
        config: Solver configuration.
        line_search: Overrides the line search named in ``config``.
        beta_rule: Overrides the beta rule named in ``config``.

    Returns:
        A NonlinearConjugateGradient with the configured restart policy.
    """
    solver = NonlinearConjugateGradient(
        line_search if line_search is not None else create_line_search(config),
        beta_rule if beta_rule is not None else get_beta_rule(config.beta),
    )
    if config.restart_iters is not None:
        solver.restart_iters(config.restart_iters)
    if config.restart_orthogonality is not None:
        solver.restart_orthogonality(config.restart_orthogonality)
    return solver


__all__ = ["LINE_SEARCHES", "NLCGConfig", "create_line_search", "create_solver"]
