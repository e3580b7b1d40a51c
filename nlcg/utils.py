"""Finite-difference gradients for problems supplied without a gradient."""

from __future__ import annotations

import numpy as np

from .core import Objective


def approx_grad(fun: Objective, x: np.ndarray, eps: float = 1e-6) -> np.ndarray:
    """Compute a central-difference gradient approximation.

    Parameters
    ----------
    fun:
        Objective function returning a scalar given x.
    x:
        Point where the gradient is approximated. Any array shape is accepted;
        the gradient has the same shape.
    eps:
        Perturbation size for finite differences.

    ``fun`` is called ``2 * x.size`` times.
    """
    if eps <= 0:
        raise ValueError("eps must be positive")
    x = np.asarray(x, dtype=float)
    grad = np.zeros_like(x)
    flat_grad = grad.reshape(-1)
    for i in range(x.size):
        step = np.zeros(x.size)
        step[i] = eps
        step = step.reshape(x.shape)
        f_plus = fun(x + step)
        f_minus = fun(x - step)
        flat_grad[i] = (f_plus - f_minus) / (2.0 * eps)
    return grad


__all__ = ["approx_grad"]
