"""Nonlinear conjugate gradient iterator.

The iterator owns the search direction, the last beta and the restart policy.
The driver owns everything else: it calls :meth:`NonlinearConjugateGradient.init`
once and :meth:`NonlinearConjugateGradient.step` until its own stopping
criteria are met.

Example
-------
>>> import numpy as np
>>> from nlcg import NonlinearConjugateGradient, Oracle, Problem, StrongWolfeLineSearch
>>> A = np.array([[4.0, 1.0], [1.0, 3.0]])
>>> b = np.array([1.0, 2.0])
>>> oracle = Oracle(Problem(fun=lambda x: 0.5 * x @ A @ x - b @ x, grad=lambda x: A @ x - b))
>>> solver = NonlinearConjugateGradient(StrongWolfeLineSearch()).restart_iters(10)
>>> x, cost, grad, kv = solver.init(oracle, np.zeros(2))
>>> x, cost, grad, kv = solver.step(oracle, x, grad, cost, 0)
>>> sorted(kv)
['beta', 'restart_iter', 'restart_orthogonality']

References
----------
Jorge Nocedal & Stephen Wright, "Numerical Optimization", Second Edition,
2006, Springer-Verlag New York, algorithm 5.4.
"""

from __future__ import annotations

import math
from typing import Any, Callable, Dict, Optional, Union

import numpy as np

from .beta import BetaUpdate, PolakRibiere
from .core import Param, StepResult
from .errors import NotInitializedError
from .line_search import LineSearch, LineSearchResult
from .logging import get_logger
from .oracle import Oracle
from .vector import VectorOps, negate, norm_squared, ops_for

logger = get_logger(__name__)

BetaRule = Union[BetaUpdate, Callable[[Param, Param, Param], float]]


class NonlinearConjugateGradient:
    """
    Nonlinear conjugate gradient method with iteration and Powell restarts.

    Args:
        line_search: Line search used to move along each direction.
        beta_rule: Object with an ``update(grad, new_grad, p)`` method, or a
            plain callable with the same signature. Defaults to Polak-Ribiere.
        ops: Vector operations for the parameter type. If None, they are
            picked from the type of the starting point.

    Attributes:
        p: Current search direction, None until :meth:`init` has run.
        beta: Last blend coefficient, NaN until the first step completes.
    """

    name = "Nonlinear Conjugate Gradient"

    def __init__(
        self,
        line_search: LineSearch,
        beta_rule: Optional[BetaRule] = None,
        ops: Optional[VectorOps] = None,
    ) -> None:
        self.line_search = line_search
        self.beta_rule = beta_rule if beta_rule is not None else PolakRibiere(ops)
        self.ops = ops
        self.p: Optional[Param] = None
        self.beta = math.nan
        self._restart_iter: Optional[int] = None
        self._restart_orthogonality: Optional[float] = None

    def restart_iters(self, iters: int) -> "NonlinearConjugateGradient":
        """Restart (beta = 0) every ``iters`` iterations.

        Lets the method forget curvature information that is no longer useful.
        Iteration 0 never restarts.
        """
        if isinstance(iters, bool) or not isinstance(iters, (int, np.integer)) or iters <= 0:
            raise ValueError(f"restart_iters expects a positive integer, got {iters!r}")
        self._restart_iter = int(iters)
        return self

    def restart_orthogonality(self, nu: float) -> "NonlinearConjugateGradient":
        """Restart when consecutive gradients are far from orthogonal.

        A restart happens whenever ``|<g_k+1, g_k>| / ||g_k+1||^2 >= nu``.
        A typical value for ``nu`` is 0.1.
        """
        nu = float(nu)
        if not math.isfinite(nu) or nu <= 0:
            raise ValueError(f"restart_orthogonality expects a positive threshold, got {nu!r}")
        self._restart_orthogonality = nu
        return self

    @property
    def restart_iter_period(self) -> Optional[int]:
        return self._restart_iter

    @property
    def orthogonality_threshold(self) -> Optional[float]:
        return self._restart_orthogonality

    @property
    def initialized(self) -> bool:
        return self.p is not None

    def init(self, oracle: Oracle, x0: Param) -> StepResult:
        """Evaluate cost and gradient at ``x0`` and set ``p = -g0``."""
        ops = self._ops(x0)
        cost = oracle.cost(x0)
        grad = oracle.gradient(x0)
        self.p = negate(ops, grad)
        self.beta = math.nan
        return StepResult(x0, cost, grad, {})

    def step(
        self,
        oracle: Oracle,
        x: Param,
        grad: Optional[Param],
        cost: float,
        k: int,
    ) -> StepResult:
        """
        Advance one iteration from ``x``.

        Args:
            oracle: Oracle for every evaluation of this step.
            x: Current iterate. It is not modified.
            grad: Gradient at ``x`` if the driver cached it, else None.
            cost: Objective value at ``x``.
            k: Iteration index supplied by the driver, starting at 0.

        Returns:
            New iterate, its cost and gradient, and the diagnostics
            ``beta``, ``restart_iter`` and ``restart_orthogonality``.

        Raises:
            NotInitializedError: If :meth:`init` has not been called.
            OracleError, LineSearchError: Propagated unchanged. The direction
                and beta keep their values from before the call.
        """
        if self.p is None:
            raise NotInitializedError("step() called before init().")
        if k < 0:
            raise ValueError(f"iteration index must be non-negative, got {k}")
        ops = self._ops(x)
        p = self.p

        if grad is None:
            grad = oracle.gradient(x)

        self.line_search.set_search_direction(p)
        x_next = self._run_line_search(oracle, x, grad, cost).x

        new_grad = oracle.gradient(x_next)

        restart_iter = self._restart_iter is not None and k > 0 and k % self._restart_iter == 0
        restart_orthogonality = self._orthogonality_lost(ops, grad, new_grad)

        if restart_iter or restart_orthogonality:
            beta = 0.0
            p_next = negate(ops, new_grad)
        else:
            beta = float(self._update_beta(grad, new_grad, p))
            p_next = ops.add(negate(ops, new_grad), ops.scale(p, beta))

        new_cost = oracle.cost(x_next)

        self.p = p_next
        self.beta = beta
        if restart_iter or restart_orthogonality:
            logger.debug(
                "restart at iteration %d (iteration=%s, orthogonality=%s)",
                k,
                restart_iter,
                restart_orthogonality,
            )
        logger.debug("iteration %d: cost=%.6e beta=%.6e", k, new_cost, beta)
        kv = {
            "beta": beta,
            "restart_iter": restart_iter,
            "restart_orthogonality": restart_orthogonality,
        }
        return StepResult(x_next, new_cost, new_grad, kv)

    def _run_line_search(
        self, oracle: Oracle, x: Param, grad: Param, cost: float
    ) -> LineSearchResult:
        # Nested run on a fork; its evaluations are merged back even on failure.
        sub_oracle = oracle.fork()
        try:
            return self.line_search.run(sub_oracle, x, grad, cost)
        finally:
            oracle.consume(sub_oracle)

    def _orthogonality_lost(self, ops: VectorOps, grad: Param, new_grad: Param) -> bool:
        if self._restart_orthogonality is None:
            return False
        denom = norm_squared(ops, new_grad)
        if denom == 0.0:
            return False
        return abs(ops.dot(new_grad, grad)) / denom >= self._restart_orthogonality

    def _update_beta(self, grad: Param, new_grad: Param, p: Param) -> float:
        update = getattr(self.beta_rule, "update", None)
        if update is not None:
            return update(grad, new_grad, p)
        return self.beta_rule(grad, new_grad, p)

    def _ops(self, x: Param) -> VectorOps:
        return self.ops if self.ops is not None else ops_for(x)

    def state_dict(self) -> Dict[str, Any]:
        """Return the iterator state needed to resume: direction, beta, restart policy."""
        return {
            "p": self.p,
            "beta": self.beta,
            "restart_iter": self._restart_iter,
            "restart_orthogonality": self._restart_orthogonality,
        }

    def load_state_dict(self, state: Dict[str, Any]) -> None:
        """Restore a state produced by :meth:`state_dict`."""
        self.p = state["p"]
        self.beta = float(state["beta"])
        self._restart_iter = None
        self._restart_orthogonality = None
        if state.get("restart_iter") is not None:
            self.restart_iters(state["restart_iter"])
        if state.get("restart_orthogonality") is not None:
            self.restart_orthogonality(state["restart_orthogonality"])

    def __repr__(self) -> str:
        return (
            f"NonlinearConjugateGradient(line_search={self.line_search!r}, "
            f"beta_rule={self.beta_rule!r}, restart_iters={self._restart_iter}, "
            f"restart_orthogonality={self._restart_orthogonality})"
        )


__all__ = ["BetaRule", "NonlinearConjugateGradient"]
