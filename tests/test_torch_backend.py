"""The iterator and executor on PyTorch tensors."""

import pytest
import torch

from nlcg import Problem, nonlinear_cg
from nlcg.beta import FletcherReeves, PolakRibiere
from nlcg.checkpoint import Checkpoint, load_checkpoint
from nlcg.executor import Executor
from nlcg.line_search import StrongWolfeLineSearch
from nlcg.nonlinear_cg import NonlinearConjugateGradient
from nlcg.oracle import Oracle
from nlcg.vector import TORCH_OPS

A = torch.tensor([[4.0, 1.0], [1.0, 3.0]], dtype=torch.float64)
b = torch.tensor([1.0, 2.0], dtype=torch.float64)
X_STAR = torch.tensor([1.0 / 11.0, 7.0 / 11.0], dtype=torch.float64)


def fun(x):
    return 0.5 * x @ (A @ x) - b @ x


def grad(x):
    return A @ x - b


def autograd_grad(x):
    x = x.detach().clone().requires_grad_(True)
    (g,) = torch.autograd.grad(fun(x), x)
    return g


def test_quadratic_converges_with_tensors():
    res = nonlinear_cg(Problem(fun=fun, grad=grad), torch.zeros(2, dtype=torch.float64), tol=1e-8)
    assert res.success
    assert isinstance(res.x, torch.Tensor)
    assert torch.allclose(res.x, X_STAR, atol=1e-8)


def test_autograd_gradient():
    res = nonlinear_cg(
        Problem(fun=fun, grad=autograd_grad), torch.zeros(2, dtype=torch.float64), beta="PR+"
    )
    assert res.success
    assert torch.allclose(res.x, X_STAR, atol=1e-8)


def test_matrix_shaped_parameters():
    target = torch.arange(6, dtype=torch.float64).reshape(2, 3)

    def f(x):
        return ((x - target) ** 2).sum()

    def g(x):
        return 2 * (x - target)

    res = nonlinear_cg(Problem(fun=f, grad=g), torch.zeros(2, 3, dtype=torch.float64))
    assert res.x.shape == (2, 3)
    assert torch.allclose(res.x, target, atol=1e-8)


def test_tensor_step_preserves_dtype_and_direction():
    solver = NonlinearConjugateGradient(StrongWolfeLineSearch(), FletcherReeves(), ops=TORCH_OPS)
    oracle = Oracle(Problem(fun=fun, grad=grad))
    x, cost, g, _ = solver.init(oracle, torch.tensor([2.0, -3.0], dtype=torch.float64))
    assert torch.equal(solver.p, -g)
    x1, cost1, g1, kv = solver.step(oracle, x, g, cost, 0)
    assert x1.dtype == torch.float64
    assert cost1 < cost
    assert isinstance(kv["beta"], float)


def test_missing_gradient_for_tensors_is_rejected():
    solver = NonlinearConjugateGradient(StrongWolfeLineSearch(), PolakRibiere())
    with pytest.raises(TypeError):
        solver.init(Oracle(Problem(fun=fun)), torch.zeros(2, dtype=torch.float64))


def test_checkpoint_with_tensors(tmp_path):
    path = tmp_path / "ckpt.json"
    solver = NonlinearConjugateGradient(StrongWolfeLineSearch(), PolakRibiere())
    Executor(
        Problem(fun=fun, grad=grad),
        solver,
        torch.tensor([2.0, -3.0], dtype=torch.float64),
        maxiter=1,
        checkpoint=Checkpoint(path),
        ctrlc=False,
    ).run()
    data = load_checkpoint(path)
    assert isinstance(data["param"], torch.Tensor)
    assert data["param"].dtype == torch.float64
    assert torch.equal(data["solver"]["p"], solver.p)
