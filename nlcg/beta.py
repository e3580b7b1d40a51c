"""Update rules for the conjugate gradient blend coefficient beta.

Each rule maps ``(grad, new_grad, p)``, i.e. the gradient at the current
iterate, the gradient at the next iterate and the current search direction, to
the scalar ``beta`` used in ``p_next = -new_grad + beta * p``.

References
----------
Jorge Nocedal & Stephen Wright, "Numerical Optimization", Second Edition,
2006, Springer-Verlag New York, section 5.2.
"""

from __future__ import annotations

from typing import Optional, Protocol

import numpy as np

from .core import Param
from .vector import VectorOps, ops_for, subtract


class BetaUpdate(Protocol):
    """
    Protocol for stateless beta update rules.

    The iterator also accepts any plain callable with the signature of
    :meth:`update`.
    """

    def update(self, grad: Param, new_grad: Param, p: Param) -> float:
        ...


class _BetaRule:
    name = ""

    def __init__(self, ops: Optional[VectorOps] = None) -> None:
        self.ops = ops

    def _ops(self, x: Param) -> VectorOps:
        return self.ops if self.ops is not None else ops_for(x)

    def update(self, grad: Param, new_grad: Param, p: Param) -> float:
        raise NotImplementedError

    @staticmethod
    def _ratio(num: float, den: float) -> float:
        # IEEE division: a zero denominator gives inf or nan instead of raising.
        with np.errstate(divide="ignore", invalid="ignore"):
            return float(np.float64(num) / np.float64(den))

    def __call__(self, grad: Param, new_grad: Param, p: Param) -> float:
        return self.update(grad, new_grad, p)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class FletcherReeves(_BetaRule):
    """Eq. (5.41a): ``<g1, g1> / <g0, g0>``."""

    name = "FR"

    def update(self, grad: Param, new_grad: Param, p: Param) -> float:
        ops = self._ops(new_grad)
        return self._ratio(ops.dot(new_grad, new_grad), ops.dot(grad, grad))


class PolakRibiere(_BetaRule):
    """Eq. (5.44): ``<g1, g1 - g0> / <g0, g0>``."""

    name = "PR"

    def update(self, grad: Param, new_grad: Param, p: Param) -> float:
        ops = self._ops(new_grad)
        y = subtract(ops, new_grad, grad)
        return self._ratio(ops.dot(new_grad, y), ops.dot(grad, grad))


class PolakRibierePlus(PolakRibiere):
    """Eq. (5.45): ``max(0, beta_PR)``."""

    name = "PR+"

    def update(self, grad: Param, new_grad: Param, p: Param) -> float:
        return max(0.0, super().update(grad, new_grad, p))


class HestenesStiefel(_BetaRule):
    """Eq. (5.46): ``<g1, g1 - g0> / <g1 - g0, p>``."""

    name = "HS"

    def update(self, grad: Param, new_grad: Param, p: Param) -> float:
        ops = self._ops(new_grad)
        y = subtract(ops, new_grad, grad)
        return self._ratio(ops.dot(new_grad, y), ops.dot(y, p))


class DaiYuan(_BetaRule):
    """Eq. (5.49): ``<g1, g1> / <g1 - g0, p>``."""

    name = "DY"

    def update(self, grad: Param, new_grad: Param, p: Param) -> float:
        ops = self._ops(new_grad)
        y = subtract(ops, new_grad, grad)
        return self._ratio(ops.dot(new_grad, new_grad), ops.dot(y, p))


_RULES = {
    rule.name: rule
    for rule in (FletcherReeves, PolakRibiere, PolakRibierePlus, HestenesStiefel, DaiYuan)
}


def get_beta_rule(name: str, ops: Optional[VectorOps] = None) -> _BetaRule:
    """
    Instantiate a beta rule from its short name.

    Supported names (case insensitive): "FR", "PR", "PR+", "HS", "DY".

    Raises:
        ValueError: If the name is not supported.
    """
    key = name.upper()
    if key not in _RULES:
        raise ValueError(
            f"Unknown beta rule {name!r}. Supported: {', '.join(sorted(_RULES))}."
        )
    return _RULES[key](ops)


__all__ = [
    "BetaUpdate",
    "DaiYuan",
    "FletcherReeves",
    "HestenesStiefel",
    "PolakRibiere",
    "PolakRibierePlus",
    "get_beta_rule",
]
