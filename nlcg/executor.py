"""Outer iteration driver.

The executor owns the iterate, the cached gradient, the stopping criteria and
the bookkeeping around a solver exposing ``init(oracle, x0)`` and
``step(oracle, x, grad, cost, k)``: evaluation counters, history, callbacks,
logging, interrupt handling and checkpoints.
"""

from __future__ import annotations

import signal
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional, Protocol, Sequence, Union

from .checkpoint import Checkpoint, PathLike, build_checkpoint, load_checkpoint, save_checkpoint
from .core import RTOL, Diagnostics, IterState, OptimizeResult, Param, Problem, check_convergence
from .errors import NLCGError
from .logging import get_logger
from .nonlinear_cg import NonlinearConjugateGradient
from .oracle import Oracle, as_oracle
from .vector import ops_for

logger = get_logger(__name__)

MSG_GRAD_TOL = "Gradient tolerance satisfied."
MSG_TARGET_COST = "Target cost reached."
MSG_MAXITER = "Maximum iterations reached."
MSG_INTERRUPTED = "Interrupted by user."


class IterationCallback(Protocol):
    """
    Protocol for executor callbacks.

    A callback receives the :class:`~nlcg.core.IterState` after every
    completed iteration and may perform side effects such as logging or
    plotting.
    """

    def __call__(self, state: IterState) -> None:
        ...


class Executor:
    """
    Drive a solver until a stopping criterion is met.

    Args:
        problem: Problem to minimize, or an existing oracle whose counters
            should keep accumulating.
        solver: Iterator to drive, typically a
            :class:`~nlcg.nonlinear_cg.NonlinearConjugateGradient`.
        x0: Initial iterate.
        maxiter: Maximum number of iterations.
        tol: Stop once the gradient norm drops to ``max(tol, ATOL)``.
        target_cost: Stop once the cost drops to this value.
        callbacks: Called with an :class:`~nlcg.core.IterState` after each
            iteration.
        history: Record every iterate in the result.
        ctrlc: Handle SIGINT by stopping after the running iteration. Only
            effective on the main thread.
        checkpoint: Write a checkpoint every ``checkpoint.every`` iterations.
    """

    def __init__(
        self,
        problem: Union[Problem, Oracle],
        solver: NonlinearConjugateGradient,
        x0: Param,
        maxiter: int = 1000,
        tol: float = RTOL,
        target_cost: Optional[float] = None,
        callbacks: Optional[Sequence[IterationCallback]] = None,
        history: bool = False,
        ctrlc: bool = True,
        checkpoint: Optional[Checkpoint] = None,
    ) -> None:
        if maxiter < 0:
            raise ValueError("maxiter must be non-negative")
        if tol < 0:
            raise ValueError("tol must be non-negative")
        self.oracle = as_oracle(problem)
        self.solver = solver
        self.x0 = x0
        self.maxiter = int(maxiter)
        self.tol = float(tol)
        self.target_cost = target_cost
        self.callbacks: List[IterationCallback] = list(callbacks or [])
        self.history = history
        self.ctrlc = ctrlc
        self.checkpoint = checkpoint

        self._interrupted = False
        self._resume_state: Optional[dict] = None

    @classmethod
    def from_checkpoint(
        cls,
        path: PathLike,
        problem: Union[Problem, Oracle],
        solver: NonlinearConjugateGradient,
        **kwargs,
    ) -> "Executor":
        """
        Build an executor that continues the run saved at ``path``.

        The solver state (direction, beta, restart policy) is restored and
        ``kwargs`` are forwarded to the constructor. When ``problem`` is a
        :class:`~nlcg.core.Problem` the new oracle starts from the saved
        evaluation counters; an existing :class:`~nlcg.oracle.Oracle` keeps
        its own.
        """
        data = load_checkpoint(path)
        solver.load_state_dict(data["solver"])
        executor = cls(problem, solver, data["param"], **kwargs)
        if not isinstance(problem, Oracle):
            executor.oracle.cost_count = data["counts"]["cost"]
            executor.oracle.gradient_count = data["counts"]["gradient"]
        executor._resume_state = data
        logger.info("resuming from %s at iteration %d", path, data["iteration"])
        return executor

    def _stop_reason(self, grad_norm: float, cost: float) -> Optional[str]:
        if check_convergence(grad_norm, self.tol):
            return MSG_GRAD_TOL
        if self.target_cost is not None and cost <= self.target_cost:
            return MSG_TARGET_COST
        return None

    @contextmanager
    def _interrupt_guard(self) -> Iterator[None]:
        self._interrupted = False
        if not self.ctrlc or threading.current_thread() is not threading.main_thread():
            yield
            return

        def handler(signum, frame) -> None:
            logger.warning("interrupt received; stopping after the current iteration")
            self._interrupted = True

        previous = signal.signal(signal.SIGINT, handler)
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, previous)

    def _write_checkpoint(self, iteration: int, x: Param, grad: Param, cost: float) -> None:
        data = build_checkpoint(
            iteration, x, grad, cost, self.oracle.counts, self.solver.state_dict()
        )
        save_checkpoint(self.checkpoint.path, data)

    def run(self) -> OptimizeResult:
        """
        Run until convergence, ``maxiter``, the target cost or an interrupt.

        Returns:
            OptimizeResult describing the final iterate.

        Raises:
            NLCGError: Any oracle or line-search failure, after logging it.
        """
        oracle = self.oracle
        solver = self.solver
        logger.info(
            "starting %s (maxiter=%d, tol=%g)",
            getattr(solver, "name", type(solver).__name__),
            self.maxiter,
            self.tol,
        )

        with self._interrupt_guard():
            if self._resume_state is not None:
                state = self._resume_state
                x, grad, cost = state["param"], state["grad"], state["cost"]
                nit = state["iteration"]
            else:
                x, cost, grad, _ = solver.init(oracle, self.x0)
                nit = 0

            ops = solver.ops if getattr(solver, "ops", None) is not None else ops_for(x)
            hist: List[Param] = [x] if self.history else []
            diagnostics: List[Diagnostics] = []
            best_x, best_cost = x, cost
            grad_norm = ops.norm(grad)
            success = False
            message = MSG_MAXITER

            while True:
                reason = self._stop_reason(grad_norm, cost)
                if reason is not None:
                    success = True
                    message = reason
                    break
                if nit >= self.maxiter:
                    break
                if self._interrupted:
                    message = MSG_INTERRUPTED
                    break

                try:
                    x, cost, grad, kv = solver.step(oracle, x, grad, cost, nit)
                except NLCGError as exc:
                    logger.error("iteration %d failed: %s", nit, exc)
                    raise
                nit += 1
                grad_norm = ops.norm(grad)
                diagnostics.append(dict(kv))
                if cost < best_cost:
                    best_x, best_cost = x, cost
                if self.history:
                    hist.append(x)
                logger.debug(
                    "iteration %d: cost=%.6e |g|=%.3e nfev=%d njev=%d",
                    nit,
                    cost,
                    grad_norm,
                    oracle.cost_count,
                    oracle.gradient_count,
                )

                if self.callbacks:
                    info = IterState(
                        iteration=nit,
                        param=x,
                        cost=cost,
                        grad=grad,
                        grad_norm=grad_norm,
                        kv=dict(kv),
                        best_param=best_x,
                        best_cost=best_cost,
                        cost_count=oracle.cost_count,
                        gradient_count=oracle.gradient_count,
                    )
                    for cb in self.callbacks:
                        cb(info)

                if self.checkpoint is not None and nit % self.checkpoint.every == 0:
                    self._write_checkpoint(nit, x, grad, cost)

        logger.info("%s after %d iterations (cost=%.6e, |g|=%.3e)", message, nit, cost, grad_norm)
        return OptimizeResult(
            x=x,
            fun=float(cost),
            nit=nit,
            success=success,
            message=message,
            grad_norm=float(grad_norm),
            nfev=oracle.cost_count,
            njev=oracle.gradient_count,
            nhev=0,
            history=hist,
            diagnostics=diagnostics,
            best_x=best_x,
            best_fun=float(best_cost),
        )


__all__ = [
    "Executor",
    "IterationCallback",
    "MSG_GRAD_TOL",
    "MSG_INTERRUPTED",
    "MSG_MAXITER",
    "MSG_TARGET_COST",
]
