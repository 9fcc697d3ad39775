"""High-level solver API for symmetric linear systems.

This module provides the main :func:`solve` function that dispatches to one
of the registered Krylov methods.

The API supports:

- **method="symmlq"**: Symmetric, possibly indefinite (and shifted) systems
- **method="cg"**: Symmetric positive-definite systems
- **method="auto"**: Selects SYMMLQ, which does not require definiteness

Example
-------
>>> import torch
>>> import lqsolve as lq
>>> A = torch.tensor([[4.0, 1.0], [1.0, 3.0]], dtype=torch.float64)
>>> b = torch.tensor([1.0, 2.0], dtype=torch.float64)
>>> x, info = lq.solve(A, b)
>>> print(f"Converged: {info.converged}, iters: {info.iters}, method: {info.method}")

"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

# Importing the solver modules registers them
import lqsolve.solvers.cg  # noqa: F401
import lqsolve.solvers.symmlq  # noqa: F401
from lqsolve.solvers.registry import registry

if TYPE_CHECKING:
    from collections.abc import Callable

    import torch

    from lqsolve.iteration import IterationEvent


@dataclass
class SolverInfo:
    """Information about solver convergence.

    Attributes
    ----------
    converged : bool
        Whether the solver converged within tolerance.
    iters : int
        Number of iterations performed (initialization included).
    final_residual : float
        Final residual norm: estimated norm for SYMMLQ, relative norm
        ||r|| / ||b|| for CG.
    method : str
        Solver method used ("symmlq" or "cg").

    """

    converged: bool
    iters: int
    final_residual: float
    method: str


def solve(
    A: Any,
    b: Any,
    method: str = "auto",
    M: Any = None,
    goodb: bool = False,
    shift: float = 0.0,
    tol: float = 1e-10,
    maxiter: int = 1000,
    check: bool = False,
    callback: Callable[[IterationEvent], None] | None = None,
) -> tuple[torch.Tensor, SolverInfo]:
    """Solve a symmetric linear system.

    For **method="symmlq"**:

    .. math::

        (A - \\sigma I) x = b

    with :math:`A` self-adjoint, possibly indefinite.

    For **method="cg"**:

    .. math::

        A x = b

    with :math:`A` symmetric positive-definite.

    Parameters
    ----------
    A : LinearOperator, torch.Tensor or Callable[[torch.Tensor], torch.Tensor]
        System operator.
    b : torch.Tensor
        Right-hand side vector.
    method : str
        Solver method: "symmlq", "cg", or "auto".
        If "auto", selects SYMMLQ.
    M : LinearOperator, torch.Tensor or Callable, optional
        Symmetric positive-definite preconditioner.
    goodb : bool
        SYMMLQ only: accumulate the component along :math:`b` separately.
    shift : float
        SYMMLQ only: shift :math:`\\sigma`.
    tol : float
        Relative tolerance for convergence.
    maxiter : int
        Maximum number of iterations.
    check : bool
        Verify self-adjointness (SYMMLQ) or positive definiteness (CG).
    callback : Callable[[IterationEvent], None], optional
        Called after each iteration with the current event.

    Returns
    -------
    tuple[torch.Tensor, SolverInfo]
        Solution vector and convergence information.

    Raises
    ------
    SolverNotAvailableError
        If ``method`` does not name a registered solver.
    ValueError
        If ``goodb`` or ``shift`` is requested from a method that does not
        support it.

    """
    entry = registry.get(method)

    requested = {"goodb": goodb, "shift": shift}
    defaults = {"goodb": False, "shift": 0.0}
    options: dict[str, Any] = {}
    for name, value in requested.items():
        if name in entry.options:
            options[name] = value
        elif value != defaults[name]:
            msg = f"{name} is not supported by method='{entry.method.value}'."
            raise ValueError(msg)

    x, solver_info = entry.solver_fn(
        A,
        b,
        M_apply=M,
        tol=tol,
        maxiter=maxiter,
        check=check,
        callback=callback,
        **options,
    )

    info = SolverInfo(
        converged=solver_info.converged,
        iters=solver_info.iters,
        final_residual=solver_info.final_residual,
        method=entry.method.value,
    )
    return x, info
