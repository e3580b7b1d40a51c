"""Pytest configuration and shared fixtures for nlcg tests.

This module provides:
- Deterministic RNG fixtures for numpy and torch
- Test problems shared by several test modules
"""

import os

import numpy as np
import pytest
import torch


def _seed() -> int:
    return int(os.environ.get("TEST_RNG_SEED", "0"))


@pytest.fixture(scope="function")
def rng() -> np.random.Generator:
    """Provide a deterministic numpy RNG for tests.

    Uses seed from TEST_RNG_SEED environment variable (default: 0).
    """
    return np.random.default_rng(_seed())


@pytest.fixture(scope="function", autouse=True)
def set_random_seeds() -> None:
    """Seed numpy and torch globally before every test."""
    np.random.seed(_seed())
    torch.manual_seed(_seed())


@pytest.fixture
def spd_quadratic(rng: np.random.Generator):
    """Random 6-D strictly convex quadratic: returns (A, b, fun, grad)."""
    m = rng.standard_normal((6, 6))
    A = m @ m.T + 6.0 * np.eye(6)
    b = rng.standard_normal(6)

    def fun(x: np.ndarray) -> float:
        return float(0.5 * x @ (A @ x) - b @ x)

    def grad(x: np.ndarray) -> np.ndarray:
        return A @ x - b

    return A, b, fun, grad
