"""nlcg - nonlinear conjugate gradient minimization for NumPy and PyTorch.

Example
-------
>>> import numpy as np
>>> from nlcg import Problem, nonlinear_cg
>>> def rosen(x):
...     return (1 - x[0])**2 + 100 * (x[1] - x[0]**2)**2
>>> def rosen_grad(x):
...     return np.array([
...         -2 * (1 - x[0]) - 400 * x[0] * (x[1] - x[0] ** 2),
...         200 * (x[1] - x[0] ** 2),
...     ])
>>> problem = Problem(fun=rosen, grad=rosen_grad, dim=2)
>>> res = nonlinear_cg(problem, np.array([-1.2, 1.0]), restart_iters=10,
...                    restart_orthogonality=0.1, tol=1e-6)
>>> bool(np.allclose(res.x, [1.0, 1.0], atol=1e-4))
True
"""

__version__ = "0.1.0"

from .beta import (
    BetaUpdate,
    DaiYuan,
    FletcherReeves,
    HestenesStiefel,
    PolakRibiere,
    PolakRibierePlus,
    get_beta_rule,
)
from .checkpoint import Checkpoint, load_checkpoint, save_checkpoint
from .config import NLCGConfig, create_line_search, create_solver
from .core import ATOL, RTOL, IterState, OptimizeResult, Problem, StepResult, check_convergence
from .errors import (
    CheckpointError,
    LineSearchError,
    NLCGError,
    NotInitializedError,
    OracleError,
)
from .executor import Executor
from .line_search import (
    BacktrackingLineSearch,
    ConstantStepLineSearch,
    LineSearch,
    LineSearchResult,
    StrongWolfeLineSearch,
)
from .logging import configure_logging, get_logger, set_log_level
from .minimize import nonlinear_cg
from .nonlinear_cg import NonlinearConjugateGradient
from .oracle import Oracle
from .utils import approx_grad
from .vector import NumpyOps, TorchOps, VectorOps, ops_for

__all__ = [
    "ATOL",
    "BacktrackingLineSearch",
    "BetaUpdate",
    "Checkpoint",
    "CheckpointError",
    "ConstantStepLineSearch",
    "DaiYuan",
    "Executor",
    "FletcherReeves",
    "HestenesStiefel",
    "IterState",
    "LineSearch",
    "LineSearchError",
    "LineSearchResult",
    "NLCGConfig",
    "NLCGError",
    "NonlinearConjugateGradient",
    "NotInitializedError",
    "NumpyOps",
    "OptimizeResult",
    "Oracle",
    "OracleError",
    "PolakRibiere",
    "PolakRibierePlus",
    "Problem",
    "RTOL",
    "StepResult",
    "StrongWolfeLineSearch",
    "TorchOps",
    "VectorOps",
    "approx_grad",
    "check_convergence",
    "configure_logging",
    "create_line_search",
    "create_solver",
    "get_beta_rule",
    "load_checkpoint",
    "nonlinear_cg",
    "ops_for",
    "save_checkpoint",
    "set_log_level",
    "get_logger",
]
