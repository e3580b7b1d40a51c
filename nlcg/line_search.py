"""Line-search sub-solvers following Nocedal & Wright, chapter 3.

A line search is configured with a search direction and then run from a point
whose cost and gradient are already known. It evaluates the objective only
through the oracle it is handed, so the caller can account for every
evaluation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import NamedTuple, Optional

from .core import Param
from .errors import LineSearchError
from .logging import get_logger
from .oracle import Oracle
from .vector import VectorOps, axpy, ops_for

logger = get_logger(__name__)


class LineSearchResult(NamedTuple):
    """Accepted point of a line search.

    ``cost`` and ``grad`` are whatever the search evaluated at ``x`` and may be
    None when it did not need them.
    """

    x: Param
    cost: Optional[float]
    grad: Optional[Param]
    alpha: float
    nit: int


class LineSearch(ABC):
    """
    Base class for line searches.

    Subclasses implement :meth:`_search`; direction handling and the choice of
    vector operations live here.

    Args:
        ops: Vector operations for the parameter type. If None, they are
            picked from the type of the starting point on every run.
    """

    def __init__(self, ops: Optional[VectorOps] = None) -> None:
        self.ops = ops
        self._direction: Optional[Param] = None

    def set_search_direction(self, p: Param) -> None:
        """Set the direction searched by the next :meth:`run`."""
        self._direction = p

    @property
    def search_direction(self) -> Optional[Param]:
        return self._direction

    def run(self, oracle: Oracle, x: Param, grad: Param, cost: float) -> LineSearchResult:
        """
        Search along the configured direction starting from ``x``.

        Args:
            oracle: Oracle used for every evaluation.
            x: Starting point. It is not modified.
            grad: Gradient at ``x``.
            cost: Objective value at ``x``.

        Returns:
            The accepted point.

        Raises:
            LineSearchError: If no direction was set or no acceptable step
                was found.
            OracleError: Propagated from the oracle.
        """
        if self._direction is None:
            raise LineSearchError("No search direction set; call set_search_direction first.")
        ops = self.ops if self.ops is not None else ops_for(x)
        return self._search(oracle, ops, x, self._direction, grad, cost)

    @abstractmethod
    def _search(
        self,
        oracle: Oracle,
        ops: VectorOps,
        x: Param,
        p: Param,
        grad: Param,
        cost: float,
    ) -> LineSearchResult:
        pass


class ConstantStepLineSearch(LineSearch):
    """Take ``x + step * p`` without evaluating anything."""

    def __init__(self, step: float = 1.0, ops: Optional[VectorOps] = None) -> None:
        super().__init__(ops)
        if step <= 0:
            raise ValueError("step must be positive")
        self.step = float(step)

    def _search(self, oracle, ops, x, p, grad, cost):
        return LineSearchResult(axpy(ops, self.step, p, x), None, None, self.step, 0)


class BacktrackingLineSearch(LineSearch):
    """Classic Armijo backtracking line search.

    Starts from ``alpha0`` and multiplies by ``rho`` until the sufficient
    decrease condition ``f(x + alpha p) <= f(x) + c alpha <grad, p>`` holds.
    """

    def __init__(
        self,
        alpha0: float = 1.0,
        rho: float = 0.5,
        c: float = 1e-4,
        max_iter: int = 50,
        ops: Optional[VectorOps] = None,
    ) -> None:
        super().__init__(ops)
        if not (0 < c < 1):
            raise ValueError("Armijo constant c must lie in (0, 1)")
        if not (0 < rho < 1):
            raise ValueError("rho must lie in (0, 1)")
        if alpha0 <= 0:
            raise ValueError("alpha0 must be positive")
        if max_iter <= 0:
            raise ValueError("max_iter must be positive")
        self.alpha0 = float(alpha0)
        self.rho = float(rho)
        self.c = float(c)
        self.max_iter = int(max_iter)

    def _search(self, oracle, ops, x, p, grad, cost):
        grad_dot = ops.dot(grad, p)
        if grad_dot >= 0:
            raise LineSearchError("Search direction must be a descent direction.")
        alpha = self.alpha0
        for nit in range(1, self.max_iter + 1):
            candidate = axpy(ops, alpha, p, x)
            f_new = oracle.cost(candidate)
            if f_new <= cost + self.c * alpha * grad_dot:
                logger.debug("Armijo step accepted: alpha=%g after %d trials", alpha, nit)
                return LineSearchResult(candidate, f_new, None, alpha, nit)
            alpha *= self.rho
        raise LineSearchError(
            f"Armijo condition not satisfied after {self.max_iter} backtracking steps."
        )


class _Trial(NamedTuple):
    alpha: float
    x: Param
    cost: float
    grad: Optional[Param] = None
    slope: Optional[float] = None


class StrongWolfeLineSearch(LineSearch):
    """Strong Wolfe line search using bracketing and zoom.

    Algorithms 3.5 and 3.6 of Nocedal & Wright. The zoom phase picks trial
    steps by safeguarded quadratic interpolation and falls back to bisection
    when the interpolant is unusable. ``c2 = 0.1`` is the usual choice for
    conjugate gradient methods.

    Args:
        alpha0: Initial trial step.
        c1: Sufficient decrease constant.
        c2: Curvature constant; requires ``0 < c1 < c2 < 1``.
        max_iter: Maximum number of bracketing trials.
        max_zoom: Maximum number of zoom trials.
        ops: Vector operations, see :class:`LineSearch`.
    """

    def __init__(
        self,
        alpha0: float = 1.0,
        c1: float = 1e-4,
        c2: float = 0.1,
        max_iter: int = 40,
        max_zoom: int = 40,
        ops: Optional[VectorOps] = None,
    ) -> None:
        super().__init__(ops)
        if not (0 < c1 < c2 < 1):
            raise ValueError("Require 0 < c1 < c2 < 1 for Wolfe conditions.")
        if alpha0 <= 0:
            raise ValueError("alpha0 must be positive")
        if max_iter <= 0 or max_zoom <= 0:
            raise ValueError("max_iter and max_zoom must be positive")
        self.alpha0 = float(alpha0)
        self.c1 = float(c1)
        self.c2 = float(c2)
        self.max_iter = int(max_iter)
        self.max_zoom = int(max_zoom)

    def _search(self, oracle, ops, x, p, grad, cost):
        der0 = ops.dot(grad, p)
        if der0 >= 0:
            raise LineSearchError("Search direction must be a descent direction.")

        nit = 0

        def evaluate(alpha: float) -> _Trial:
            nonlocal nit
            nit += 1
            point = axpy(ops, alpha, p, x)
            return _Trial(alpha, point, oracle.cost(point))

        def with_slope(trial: _Trial) -> _Trial:
            g = oracle.gradient(trial.x)
            return trial._replace(grad=g, slope=ops.dot(g, p))

        def sufficient_decrease(trial: _Trial) -> bool:
            return trial.cost <= cost + self.c1 * trial.alpha * der0

        def curvature(trial: _Trial) -> bool:
            return abs(trial.slope) <= -self.c2 * der0

        def accept(trial: _Trial) -> LineSearchResult:
            logger.debug("strong Wolfe step accepted: alpha=%g after %d trials", trial.alpha, nit)
            return LineSearchResult(trial.x, trial.cost, trial.grad, trial.alpha, nit)

        def zoom(lo: _Trial, hi: _Trial) -> LineSearchResult:
            for _ in range(self.max_zoom):
                trial = evaluate(_interpolate(lo, hi))
                if not sufficient_decrease(trial) or trial.cost >= lo.cost:
                    hi = trial
                else:
                    trial = with_slope(trial)
                    if curvature(trial):
                        return accept(trial)
                    if trial.slope * (hi.alpha - lo.alpha) >= 0:
                        hi = lo
                    lo = trial
                if abs(hi.alpha - lo.alpha) < 1e-12:
                    break
            if lo.alpha > 0:
                logger.warning(
                    "zoom interval collapsed; accepting alpha=%g with sufficient decrease only",
                    lo.alpha,
                )
                return accept(lo)
            raise LineSearchError("Zoom phase found no step with sufficient decrease.")

        start = _Trial(0.0, x, cost, grad, der0)
        prev = start
        alpha = self.alpha0
        for i in range(self.max_iter):
            trial = evaluate(alpha)
            if not sufficient_decrease(trial) or (i > 0 and trial.cost >= prev.cost):
                return zoom(prev, trial)
            trial = with_slope(trial)
            if curvature(trial):
                return accept(trial)
            if trial.slope >= 0:
                return zoom(trial, prev)
            prev = trial
            alpha *= 2.0
        logger.warning(
            "bracketing stopped after %d trials; accepting alpha=%g", self.max_iter, prev.alpha
        )
        return accept(prev)


def _interpolate(lo: _Trial, hi: _Trial) -> float:
    """Minimizer of the quadratic through (lo.cost, lo.slope) and hi.cost.

    Falls back to the midpoint when the quadratic is not convex or its
    minimizer lies within 10% of either end of the bracket.
    """
    width = hi.alpha - lo.alpha
    midpoint = lo.alpha + 0.5 * width
    curvature = hi.cost - lo.cost - lo.slope * width
    if curvature <= 0:
        return midpoint
    alpha = lo.alpha - lo.slope * width * width / (2.0 * curvature)
    left, right = sorted((lo.alpha, hi.alpha))
    margin = 0.1 * abs(width)
    if left + margin <= alpha <= right - margin:
        return alpha
    return midpoint


__all__ = [
    "BacktrackingLineSearch",
    "ConstantStepLineSearch",
    "LineSearch",
    "LineSearchResult",
    "StrongWolfeLineSearch",
]
