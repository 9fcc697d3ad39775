"""Solvers subpackage for lqsolve.

This subpackage provides the Krylov solvers for symmetric linear systems:

- :class:`SymmLQ` / :func:`symmlq`: SYMMLQ for self-adjoint, possibly
  indefinite (and shifted) systems
- :class:`ConjugateGradient` / :func:`cg`: Conjugate Gradient for symmetric
  positive-definite systems
- :func:`solve`: High-level API that dispatches to a registered method
- :class:`SolverInfo`: Dataclass containing solver convergence information

The SYMMLQ recurrence is exposed in :mod:`lqsolve.solvers.symmlq_state` for
callers that need to drive it step by step.

Example
-------
>>> import torch
>>> import lqsolve as lq
>>> A = torch.tensor([[1.0, 2.0], [2.0, 1.0]], dtype=torch.float64)  # indefinite
>>> b = torch.tensor([3.0, 3.0], dtype=torch.float64)
>>> x, info = lq.solve(A, b, method="symmlq")
>>> print(f"Converged: {info.converged}, iters: {info.iters}")

"""

from lqsolve.solvers.api import SolverInfo, solve
from lqsolve.solvers.base import IterativeLinearSolver
from lqsolve.solvers.cg import CGInfo, ConjugateGradient, cg
from lqsolve.solvers.registry import Method, SolverEntry, SolverRegistry, registry
from lqsolve.solvers.symmlq import SymmLQ, SymmLQInfo, symmlq
from lqsolve.solvers.symmlq_state import (
    SymmLQState,
    check_symmetry,
    init_state,
    refine_solution,
    state_beta_is_zero,
    state_has_converged,
    update_norms,
    update_state,
)

__all__ = [
    "CGInfo",
    "ConjugateGradient",
    "IterativeLinearSolver",
    "Method",
    "SolverEntry",
    "SolverInfo",
    "SolverRegistry",
    "SymmLQ",
    "SymmLQInfo",
    "SymmLQState",
    "cg",
    "check_symmetry",
    "init_state",
    "refine_solution",
    "registry",
    "solve",
    "state_beta_is_zero",
    "state_has_converged",
    "symmlq",
    "update_norms",
    "update_state",
]
