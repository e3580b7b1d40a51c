"""Error kinds raised by the minimizer and its collaborators."""

from __future__ import annotations


class NLCGError(Exception):
    """Base class for all errors raised by nlcg."""


class OracleError(NLCGError):
    """The objective or its gradient raised while being evaluated.

    The exception raised by user code is chained as ``__cause__``.
    """


class LineSearchError(NLCGError):
    """A line search could not produce an acceptable step."""


class NotInitializedError(NLCGError, RuntimeError):
    """``step`` was called on an iterator that has not been initialized."""


class CheckpointError(NLCGError, ValueError):
    """A checkpoint is malformed or does not match the running problem."""


__all__ = [
    "CheckpointError",
    "LineSearchError",
    "NLCGError",
    "NotInitializedError",
    "OracleError",
]
