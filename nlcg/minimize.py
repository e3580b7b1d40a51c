"""Functional entry point mirroring the rest of the optimizers' call style."""

from __future__ import annotations

from typing import Callable, Optional, Union

from .config import NLCGConfig, create_solver
from .core import RTOL, IterState, OptimizeResult, Param, Problem
from .executor import Executor
from .line_search import LineSearch
from .nonlinear_cg import BetaRule


def nonlinear_cg(
    problem: Problem,
    x0: Param,
    beta: Union[str, BetaRule] = "PR",
    line_search: Union[str, LineSearch] = "strong_wolfe",
    maxiter: int = 1000,
    tol: float = RTOL,
    restart_iters: Optional[int] = None,
    restart_orthogonality: Optional[float] = None,
    target_cost: Optional[float] = None,
    callback: Optional[Callable[[IterState], None]] = None,
    history: bool = False,
) -> OptimizeResult:
    """Nonlinear conjugate gradient with a strong Wolfe line search by default.

    ``beta`` and ``line_search`` accept either a name understood by
    :class:`~nlcg.config.NLCGConfig` or a ready-made object.
    """
    config = NLCGConfig(
        beta=beta if isinstance(beta, str) else "PR",
        line_search=line_search if isinstance(line_search, str) else "strong_wolfe",
        restart_iters=restart_iters,
        restart_orthogonality=restart_orthogonality,
        maxiter=maxiter,
        tol=tol,
        target_cost=target_cost,
    )
    solver = create_solver(
        config,
        line_search=None if isinstance(line_search, str) else line_search,
        beta_rule=None if isinstance(beta, str) else beta,
    )
    executor = Executor(
        problem,
        solver,
        x0,
        maxiter=config.maxiter,
        tol=config.tol,
        target_cost=config.target_cost,
        callbacks=[callback] if callback is not None else None,
        history=history,
        ctrlc=False,
    )
    return executor.run()


__all__ = ["nonlinear_cg"]
