import math

import numpy as np
import pytest

from nlcg.beta import FletcherReeves, HestenesStiefel, PolakRibiere
from nlcg.core import Problem
from nlcg.errors import LineSearchError, NotInitializedError, OracleError
from nlcg.line_search import (
    BacktrackingLineSearch,
    ConstantStepLineSearch,
    StrongWolfeLineSearch,
)
from nlcg.nonlinear_cg import NonlinearConjugateGradient
from nlcg.oracle import Oracle

A = np.array([[4.0, 1.0], [1.0, 3.0]])
b = np.array([1.0, 2.0])


def quad_fun(x: np.ndarray) -> float:
    return float(0.5 * x @ (A @ x) - b @ x)


def quad_grad(x: np.ndarray) -> np.ndarray:
    return A @ x - b


def rosen(x: np.ndarray) -> float:
    return (1 - x[0]) ** 2 + 100 * (x[1] - x[0] ** 2) ** 2


def rosen_grad(x: np.ndarray) -> np.ndarray:
    return np.array(
        [
            -2 * (1 - x[0]) - 400 * x[0] * (x[1] - x[0] ** 2),
            200 * (x[1] - x[0] ** 2),
        ]
    )


def quad_oracle() -> Oracle:
    return Oracle(Problem(fun=quad_fun, grad=quad_grad, dim=2))


def test_init_sets_direction_to_negative_gradient():
    solver = NonlinearConjugateGradient(StrongWolfeLineSearch(), PolakRibiere())
    assert not solver.initialized
    assert solver.p is None
    x0 = np.array([0.3, -0.7])
    x, cost, grad, kv = solver.init(quad_oracle(), x0)
    assert solver.initialized
    assert np.allclose(solver.p, -quad_grad(x0))
    assert np.array_equal(x, x0)
    assert cost == pytest.approx(quad_fun(x0))
    assert kv == {}
    assert not math.isfinite(solver.beta)


def test_init_evaluates_cost_and_gradient_once():
    oracle = quad_oracle()
    NonlinearConjugateGradient(StrongWolfeLineSearch()).init(oracle, np.zeros(2))
    assert oracle.counts == {"cost": 1, "gradient": 1}


def test_step_before_init_raises():
    solver = NonlinearConjugateGradient(StrongWolfeLineSearch(), PolakRibiere())
    x = np.zeros(2)
    with pytest.raises(NotInitializedError):
        solver.step(quad_oracle(), x, None, quad_fun(x), 0)


def test_step_rejects_negative_iteration_index():
    solver = NonlinearConjugateGradient(StrongWolfeLineSearch())
    oracle = quad_oracle()
    x, cost, grad, _ = solver.init(oracle, np.zeros(2))
    with pytest.raises(ValueError):
        solver.step(oracle, x, grad, cost, -1)


def test_step_returns_diagnostics_and_finite_beta():
    solver = NonlinearConjugateGradient(StrongWolfeLineSearch(), PolakRibiere())
    oracle = quad_oracle()
    x, cost, grad, _ = solver.init(oracle, np.zeros(2))
    x1, cost1, grad1, kv = solver.step(oracle, x, grad, cost, 0)
    assert set(kv) == {"beta", "restart_iter", "restart_orthogonality"}
    assert kv["restart_iter"] is False
    assert kv["restart_orthogonality"] is False
    assert math.isfinite(kv["beta"])
    assert kv["beta"] == solver.beta
    assert cost1 == pytest.approx(quad_fun(x1))
    assert np.allclose(grad1, quad_grad(x1))
    assert cost1 < cost


def test_direction_update_blends_previous_direction():
    solver = NonlinearConjugateGradient(ConstantStepLineSearch(0.1), PolakRibiere())
    oracle = quad_oracle()
    x, cost, g0, _ = solver.init(oracle, np.array([1.0, 1.0]))
    p0 = solver.p.copy()
    x1, _, g1, kv = solver.step(oracle, x, g0, cost, 0)
    assert np.allclose(x1, x + 0.1 * p0)
    expected_beta = g1 @ (g1 - g0) / (g0 @ g0)
    assert kv["beta"] == pytest.approx(expected_beta)
    assert np.allclose(solver.p, -g1 + expected_beta * p0)


def test_step_does_not_modify_caller_iterate():
    solver = NonlinearConjugateGradient(StrongWolfeLineSearch())
    oracle = Oracle(Problem(fun=rosen, grad=rosen_grad))
    x0 = np.array([-1.2, 1.0])
    x, cost, grad, _ = solver.init(oracle, x0)
    x_before = x.copy()
    grad_before = grad.copy()
    x1, _, _, _ = solver.step(oracle, x, grad, cost, 0)
    assert np.array_equal(x, x_before)
    assert np.array_equal(grad, grad_before)
    assert x1 is not x


def test_plain_callable_beta_rule():
    calls = []

    def zero_beta(grad, new_grad, p):
        calls.append((grad, new_grad, p))
        return 0.0

    solver = NonlinearConjugateGradient(ConstantStepLineSearch(0.1), zero_beta)
    oracle = quad_oracle()
    x, cost, grad, _ = solver.init(oracle, np.array([1.0, 1.0]))
    p0 = solver.p.copy()
    _, _, g1, kv = solver.step(oracle, x, grad, cost, 0)
    assert len(calls) == 1
    assert np.array_equal(calls[0][0], grad)
    assert np.array_equal(calls[0][2], p0)
    assert kv["beta"] == 0.0
    assert np.allclose(solver.p, -g1)


def test_missing_gradient_is_recomputed():
    solver = NonlinearConjugateGradient(ConstantStepLineSearch(0.1))
    oracle = quad_oracle()
    x, cost, grad, _ = solver.init(oracle, np.array([1.0, 1.0]))
    before = oracle.gradient_count
    solver.step(oracle, x, None, cost, 0)
    assert oracle.gradient_count - before == 2


class RecordingLineSearch(StrongWolfeLineSearch):
    """Remembers how many evaluations its own sub-run performed."""

    def run(self, oracle, x, grad, cost):
        try:
            return super().run(oracle, x, grad, cost)
        finally:
            self.counts = (oracle.cost_count, oracle.gradient_count)


@pytest.mark.parametrize("cached", [True, False])
def test_counter_accounting(cached):
    user_calls = {"fun": 0, "grad": 0}

    def fun(x):
        user_calls["fun"] += 1
        return rosen(x)

    def grad(x):
        user_calls["grad"] += 1
        return rosen_grad(x)

    line_search = RecordingLineSearch()
    solver = NonlinearConjugateGradient(line_search, PolakRibiere()).restart_orthogonality(0.1)
    oracle = Oracle(Problem(fun=fun, grad=grad))
    x, cost, g, _ = solver.init(oracle, np.array([-1.2, 1.0]))
    for k in range(4):
        cost_before, grad_before = oracle.cost_count, oracle.gradient_count
        fun_before, user_grad_before = user_calls["fun"], user_calls["grad"]
        x, cost, g, _ = solver.step(oracle, x, g if cached else None, cost, k)
        ls_cost, ls_grad = line_search.counts
        assert oracle.cost_count - cost_before == ls_cost + 1
        assert oracle.gradient_count - grad_before == ls_grad + (1 if cached else 2)
        assert user_calls["fun"] - fun_before == oracle.cost_count - cost_before
        assert user_calls["grad"] - user_grad_before == oracle.gradient_count - grad_before


def test_oracle_failure_leaves_state_unchanged():
    calls = {"n": 0}

    def flaky_grad(x):
        calls["n"] += 1
        if calls["n"] == 5:
            raise RuntimeError("gradient service unavailable")
        return rosen_grad(x)

    solver = NonlinearConjugateGradient(StrongWolfeLineSearch(), PolakRibiere())
    solver.restart_orthogonality(0.1)
    oracle = Oracle(Problem(fun=rosen, grad=flaky_grad))
    x, cost, grad, _ = solver.init(oracle, np.array([-1.2, 1.0]))
    for k in range(10):
        p_before = solver.p.copy()
        beta_before = solver.beta
        try:
            x, cost, grad, _ = solver.step(oracle, x, grad, cost, k)
        except OracleError as exc:
            assert isinstance(exc.__cause__, RuntimeError)
            assert np.array_equal(solver.p, p_before)
            assert solver.beta == beta_before or (
                math.isnan(solver.beta) and math.isnan(beta_before)
            )
            break
    else:
        pytest.fail("the fifth gradient evaluation should have failed")
    assert calls["n"] == 5


def test_line_search_failure_propagates_and_counts_are_merged():
    line_search = BacktrackingLineSearch(alpha0=10.0, max_iter=2)
    solver = NonlinearConjugateGradient(line_search, PolakRibiere())
    oracle = Oracle(Problem(fun=rosen, grad=rosen_grad))
    x, cost, grad, _ = solver.init(oracle, np.array([-1.2, 1.0]))
    p_before = solver.p.copy()
    with pytest.raises(LineSearchError):
        solver.step(oracle, x, grad, cost, 0)
    assert oracle.cost_count == 1 + 2
    assert np.array_equal(solver.p, p_before)


def test_restart_setters_validate_input():
    solver = NonlinearConjugateGradient(StrongWolfeLineSearch())
    for bad in (0, -3, 2.5, True):
        with pytest.raises(ValueError):
            solver.restart_iters(bad)
    for bad in (0.0, -0.1, float("inf"), float("nan")):
        with pytest.raises(ValueError):
            solver.restart_orthogonality(bad)


def test_restart_setters_are_chainable():
    solver = NonlinearConjugateGradient(StrongWolfeLineSearch())
    assert solver.restart_iter_period is None
    assert solver.orthogonality_threshold is None
    assert solver.restart_iters(4).restart_orthogonality(0.2) is solver
    assert solver.restart_iter_period == 4
    assert solver.orthogonality_threshold == 0.2


def test_state_dict_round_trip():
    solver = NonlinearConjugateGradient(StrongWolfeLineSearch()).restart_iters(5)
    oracle = quad_oracle()
    x, cost, grad, _ = solver.init(oracle, np.zeros(2))
    solver.step(oracle, x, grad, cost, 0)
    state = solver.state_dict()

    other = NonlinearConjugateGradient(StrongWolfeLineSearch()).restart_orthogonality(0.3)
    other.load_state_dict(state)
    assert np.array_equal(other.p, solver.p)
    assert other.beta == solver.beta
    assert other.restart_iter_period == 5
    assert other.orthogonality_threshold is None


def test_fletcher_reeves_on_rosenbrock_reduces_cost_every_step():
    solver = NonlinearConjugateGradient(StrongWolfeLineSearch(), FletcherReeves())
    oracle = Oracle(Problem(fun=rosen, grad=rosen_grad))
    x, cost, grad, _ = solver.init(oracle, np.array([-1.2, 1.0]))
    for k in range(10):
        x, new_cost, grad, _ = solver.step(oracle, x, grad, cost, k)
        assert new_cost <= cost
        cost = new_cost


def test_hestenes_stiefel_on_linear_objective_gives_nan_beta():
    # The gradient of sum(x) never changes, so <y, p> is zero.
    problem = Problem(fun=lambda x: float(np.sum(x)), grad=lambda x: np.ones_like(x))
    solver = NonlinearConjugateGradient(ConstantStepLineSearch(0.1), HestenesStiefel())
    oracle = Oracle(problem)
    x, cost, grad, _ = solver.init(oracle, np.zeros(3))
    _, _, _, kv = solver.step(oracle, x, grad, cost, 0)
    assert math.isnan(kv["beta"])
    assert math.isnan(solver.beta)


def test_stepping_from_a_zero_gradient_gives_nan_beta():
    problem = Problem(fun=lambda x: float(0.5 * x @ x), grad=lambda x: x.copy())
    solver = NonlinearConjugateGradient(ConstantStepLineSearch(1.0), PolakRibiere())
    oracle = Oracle(problem)
    x, cost, grad, _ = solver.init(oracle, np.array([3.0, -4.0]))
    x, cost, grad, kv = solver.step(oracle, x, grad, cost, 0)
    assert np.array_equal(grad, np.zeros(2))
    assert kv["beta"] == 0.0
    _, _, _, kv = solver.step(oracle, x, grad, cost, 1)
    assert math.isnan(kv["beta"])
