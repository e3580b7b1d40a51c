"""JSON checkpoints for resuming a minimization.

Checkpoint structure::

    {
        "version": "nlcg-checkpoint-1.0",
        "iteration": <integer>,          # completed iterations
        "cost": <float>,
        "param": <vector>,
        "grad": <vector>,
        "counts": {"cost": <integer>, "gradient": <integer>},
        "solver": {
            "p": <vector>,
            "beta": <float>,             # NaN before the first step
            "restart_iter": <integer or null>,
            "restart_orthogonality": <float or null>
        }
    }

Vectors are stored as ``{"backend": "numpy" | "torch", "dtype": <string>,
"shape": [<integer>, ...], "data": <nested list>}``.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Union

import numpy as np
import torch

from .core import Param
from .errors import CheckpointError
from .logging import get_logger

logger = get_logger(__name__)

CHECKPOINT_VERSION = "nlcg-checkpoint-1.0"

PathLike = Union[str, "os.PathLike[str]"]


@dataclass(frozen=True)
class Checkpoint:
    """
    Where and how often the executor writes checkpoints.

    Args:
        path: Destination file. It is overwritten on every write.
        every: Write after every ``every`` completed iterations.
    """

    path: PathLike
    every: int = 1

    def __post_init__(self) -> None:
        if self.every <= 0:
            raise ValueError(f"every must be positive, got {self.every}")


def encode_vector(x: Param) -> Dict[str, Any]:
    """Convert a NumPy array or PyTorch tensor to a JSON-compatible dict."""
    if isinstance(x, torch.Tensor):
        data = x.detach().cpu()
        return {
            "backend": "torch",
            "dtype": str(data.dtype).replace("torch.", ""),
            "shape": list(data.shape),
            "data": data.tolist(),
        }
    if isinstance(x, np.ndarray):
        return {
            "backend": "numpy",
            "dtype": str(x.dtype),
            "shape": list(x.shape),
            "data": x.tolist(),
        }
    raise CheckpointError(f"Cannot checkpoint parameters of type {type(x).__name__}")


def decode_vector(obj: Dict[str, Any]) -> Param:
    """Inverse of :func:`encode_vector`."""
    backend = obj["backend"]
    shape = tuple(obj["shape"])
    if backend == "numpy":
        return np.asarray(obj["data"], dtype=np.dtype(obj["dtype"])).reshape(shape)
    if backend == "torch":
        dtype = getattr(torch, obj["dtype"], None)
        if not isinstance(dtype, torch.dtype):
            raise CheckpointError(f"Unknown torch dtype {obj['dtype']!r}")
        return torch.tensor(obj["data"], dtype=dtype).reshape(shape)
    raise CheckpointError(f"Unknown vector backend {backend!r}")


def _validate_vector(obj: Any, field: str) -> None:
    if not isinstance(obj, dict):
        raise CheckpointError(f"Field '{field}' must be an object")
    for key in ("backend", "dtype", "shape", "data"):
        if key not in obj:
            raise CheckpointError(f"Field '{field}' is missing '{key}'")
    if obj["backend"] not in ("numpy", "torch"):
        raise CheckpointError(f"Field '{field}' has unknown backend {obj['backend']!r}")
    if not isinstance(obj["shape"], list) or not all(
        isinstance(n, int) and n >= 0 for n in obj["shape"]
    ):
        raise CheckpointError(f"Field '{field}.shape' must be a list of non-negative integers")


def validate_checkpoint(obj: Any) -> None:
    """
    Validate a checkpoint document.

    Raises
    ------
    CheckpointError
        If the document does not follow the structure in the module docstring.
    """
    if not isinstance(obj, dict):
        raise CheckpointError("Checkpoint must be a JSON object")
    if obj.get("version") != CHECKPOINT_VERSION:
        raise CheckpointError(
            f"Unsupported checkpoint version {obj.get('version')!r}, "
            f"expected {CHECKPOINT_VERSION!r}"
        )
    for key in ("iteration", "cost", "param", "grad", "counts", "solver"):
        if key not in obj:
            raise CheckpointError(f"Checkpoint is missing required field '{key}'")
    if not isinstance(obj["iteration"], int) or obj["iteration"] < 0:
        raise CheckpointError("Field 'iteration' must be a non-negative integer")
    if not isinstance(obj["cost"], (int, float)):
        raise CheckpointError("Field 'cost' must be a number")
    _validate_vector(obj["param"], "param")
    _validate_vector(obj["grad"], "grad")

    counts = obj["counts"]
    if not isinstance(counts, dict) or not all(
        isinstance(counts.get(key), int) for key in ("cost", "gradient")
    ):
        raise CheckpointError("Field 'counts' must hold integer 'cost' and 'gradient'")

    solver = obj["solver"]
    if not isinstance(solver, dict):
        raise CheckpointError("Field 'solver' must be an object")
    for key in ("p", "beta", "restart_iter", "restart_orthogonality"):
        if key not in solver:
            raise CheckpointError(f"Field 'solver' is missing '{key}'")
    _validate_vector(solver["p"], "solver.p")


def build_checkpoint(
    iteration: int,
    param: Param,
    grad: Param,
    cost: float,
    counts: Dict[str, int],
    solver_state: Dict[str, Any],
) -> Dict[str, Any]:
    """Assemble a checkpoint document from executor and solver state."""
    if solver_state.get("p") is None:
        raise CheckpointError("Cannot checkpoint an uninitialized solver")
    return {
        "version": CHECKPOINT_VERSION,
        "iteration": int(iteration),
        "cost": float(cost),
        "param": encode_vector(param),
        "grad": encode_vector(grad),
        "counts": {"cost": int(counts["cost"]), "gradient": int(counts["gradient"])},
        "solver": {
            "p": encode_vector(solver_state["p"]),
            "beta": float(solver_state["beta"]),
            "restart_iter": solver_state.get("restart_iter"),
            "restart_orthogonality": solver_state.get("restart_orthogonality"),
        },
    }


def save_checkpoint(path: PathLike, data: Dict[str, Any]) -> None:
    """Validate ``data`` and write it to ``path``, replacing any previous file."""
    validate_checkpoint(data)
    path = Path(path)
    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as fh:
        json.dump(data, fh)
    os.replace(tmp_path, path)
    logger.info("checkpoint written to %s at iteration %d", path, data["iteration"])


def load_checkpoint(path: PathLike) -> Dict[str, Any]:
    """
    Read and validate a checkpoint.

    Returns
    -------
    dict
        The checkpoint with ``param``, ``grad`` and ``solver["p"]`` decoded
        back to arrays or tensors.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            obj = json.load(fh)
    except json.JSONDecodeError as exc:
        raise CheckpointError(f"Checkpoint {path} is not valid JSON: {exc}") from exc
    validate_checkpoint(obj)
    obj["param"] = decode_vector(obj["param"])
    obj["grad"] = decode_vector(obj["grad"])
    obj["solver"]["p"] = decode_vector(obj["solver"]["p"])
    obj["solver"]["beta"] = float(obj["solver"]["beta"])
    return obj


__all__ = [
    "CHECKPOINT_VERSION",
    "Checkpoint",
    "build_checkpoint",
    "decode_vector",
    "encode_vector",
    "load_checkpoint",
    "save_checkpoint",
    "validate_checkpoint",
]
