"""Algebraic operations the minimizer needs on the parameter space.

The iterator, the beta rules and the line searches never touch a parameter
directly; they go through an object satisfying :class:`VectorOps`. NumPy
arrays and PyTorch tensors are supported out of the box, and any other vector
type can be used by passing a custom implementation as ``ops=``.
"""

from __future__ import annotations

from typing import Any, Protocol

import numpy as np
import torch


class VectorOps(Protocol):
    """
    Protocol for the capability set {scale, add, dot, norm}.

    Implementations must return new values and leave their inputs untouched.
    """

    def scale(self, x: Any, alpha: float) -> Any:
        """Return ``alpha * x``."""
        ...

    def add(self, a: Any, b: Any) -> Any:
        """Return ``a + b``."""
        ...

    def dot(self, a: Any, b: Any) -> float:
        """Return the inner product ``<a, b>``."""
        ...

    def norm(self, a: Any) -> float:
        """Return the Euclidean norm ``sqrt(<a, a>)``."""
        ...


class NumpyOps:
    """VectorOps for ``numpy.ndarray`` of any shape."""

    def scale(self, x: np.ndarray, alpha: float) -> np.ndarray:
        return np.multiply(x, alpha)

    def add(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        return np.add(a, b)

    def dot(self, a: np.ndarray, b: np.ndarray) -> float:
        return float(np.dot(np.ravel(a), np.ravel(b)))

    def norm(self, a: np.ndarray) -> float:
        return float(np.linalg.norm(np.ravel(a)))

    def __repr__(self) -> str:
        return "NumpyOps()"


class TorchOps:
    """
    VectorOps for ``torch.Tensor``.

    Scalars come back as Python floats. Results are detached, so an oracle
    built on autograd does not accumulate a graph across iterations.
    """

    def scale(self, x: torch.Tensor, alpha: float) -> torch.Tensor:
        return x.detach() * alpha

    def add(self, a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
        return a.detach() + b.detach()

    def dot(self, a: torch.Tensor, b: torch.Tensor) -> float:
        return float(torch.dot(a.detach().reshape(-1), b.detach().reshape(-1)).item())

    def norm(self, a: torch.Tensor) -> float:
        return float(torch.linalg.vector_norm(a.detach()).item())

    def __repr__(self) -> str:
        return "TorchOps()"


NUMPY_OPS = NumpyOps()
TORCH_OPS = TorchOps()


def ops_for(x: Any) -> VectorOps:
    """
    Return the built-in VectorOps matching the type of ``x``.

    Raises
    ------
    TypeError
        If ``x`` is neither a NumPy array nor a PyTorch tensor.
    """
    if isinstance(x, torch.Tensor):
        return TORCH_OPS
    if isinstance(x, np.ndarray):
        return NUMPY_OPS
    raise TypeError(
        f"No built-in VectorOps for parameters of type {type(x).__name__}; "
        "pass ops= explicitly."
    )


def negate(ops: VectorOps, x: Any) -> Any:
    """Return ``-x``."""
    return ops.scale(x, -1.0)


def axpy(ops: VectorOps, alpha: float, x: Any, y: Any) -> Any:
    """Return ``alpha * x + y``."""
    return ops.add(ops.scale(x, alpha), y)


def subtract(ops: VectorOps, a: Any, b: Any) -> Any:
    """Return ``a - b``."""
    return ops.add(a, ops.scale(b, -1.0))


def norm_squared(ops: VectorOps, x: Any) -> float:
    return ops.norm(x) ** 2


__all__ = [
    "NUMPY_OPS",
    "NumpyOps",
    "TORCH_OPS",
    "TorchOps",
    "VectorOps",
    "axpy",
    "negate",
    "norm_squared",
    "ops_for",
    "subtract",
]
