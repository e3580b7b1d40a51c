"""Counting wrapper around a :class:`~nlcg.core.Problem`.

The oracle is the only window the solvers have onto the objective. It owns the
evaluation counters; nested solvers borrow a :meth:`Oracle.fork` with fresh
counters and hand it back through :meth:`Oracle.consume`.
"""

from __future__ import annotations

import numpy as np

from .core import Param, Problem
from .errors import OracleError
from .utils import approx_grad


class Oracle:
    """
    Evaluates cost and gradient of a problem and counts every evaluation.

    Any exception raised by the user's ``fun`` or ``grad`` is re-raised as
    :class:`~nlcg.errors.OracleError` with the original chained.

    Attributes:
        problem: The wrapped problem.
        cost_count: Number of objective evaluations, including those spent on
            finite-difference gradients.
        gradient_count: Number of analytic gradient evaluations.
    """

    def __init__(self, problem: Problem) -> None:
        self.problem = problem
        self.cost_count = 0
        self.gradient_count = 0

    def cost(self, x: Param) -> float:
        self.cost_count += 1
        try:
            value = self.problem.fun(x)
        except Exception as exc:
            raise OracleError(f"objective evaluation failed: {exc}") from exc
        return float(value)

    def gradient(self, x: Param) -> Param:
        if self.problem.grad is None:
            return self._finite_difference_gradient(x)
        self.gradient_count += 1
        try:
            return self.problem.grad(x)
        except Exception as exc:
            raise OracleError(f"gradient evaluation failed: {exc}") from exc

    def _finite_difference_gradient(self, x: Param) -> np.ndarray:
        if not isinstance(x, np.ndarray):
            raise TypeError(
                "Finite-difference gradients require NumPy parameters; "
                "supply Problem.grad for other parameter types."
            )
        return approx_grad(self.cost, x)

    def fork(self) -> "Oracle":
        """Return an oracle on the same problem with zeroed counters."""
        return Oracle(self.problem)

    def consume(self, other: "Oracle") -> None:
        """Add the counters accrued by ``other`` (typically a fork) to this oracle."""
        self.cost_count += other.cost_count
        self.gradient_count += other.gradient_count

    @property
    def counts(self) -> dict[str, int]:
        return {"cost": self.cost_count, "gradient": self.gradient_count}

    def __repr__(self) -> str:
        return (
            f"Oracle(cost_count={self.cost_count}, "
            f"gradient_count={self.gradient_count})"
        )


def as_oracle(problem_or_oracle: Problem | Oracle) -> Oracle:
    """Wrap a problem in a fresh oracle; pass oracles through unchanged."""
    if isinstance(problem_or_oracle, Oracle):
        return problem_or_oracle
    if isinstance(problem_or_oracle, Problem):
        return Oracle(problem_or_oracle)
    raise TypeError(
        f"Expected Problem or Oracle, got {type(problem_or_oracle).__name__}"
    )


__all__ = ["Oracle", "as_oracle"]
