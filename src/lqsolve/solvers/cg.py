"""Conjugate Gradient solver for symmetric positive-definite systems.

This module implements the preconditioned Conjugate Gradient (CG) method for
solving linear systems :math:`A x = b` where :math:`A` is symmetric
positive-definite, with an optional symmetric positive-definite
preconditioner :math:`M \\approx A^{-1}`.

Algorithm
---------
The standard preconditioned CG recurrence (Hestenes-Stiefel):

.. math::

    r_0 &= b - A x_0 \\\\
    \\text{for } k &= 1, 2, \\ldots \\\\
    z_{k-1} &= M r_{k-1} \\\\
    \\rho_{k-1} &= (r_{k-1}, z_{k-1}) \\\\
    p_k &= z_{k-1} + \\frac{\\rho_{k-1}}{\\rho_{k-2}} p_{k-1} \\quad (p_1 = z_0) \\\\
    q_k &= A p_k \\\\
    \\alpha_k &= \\rho_{k-1} / (p_k, q_k) \\\\
    x_k &= x_{k-1} + \\alpha_k p_k \\\\
    r_k &= r_{k-1} - \\alpha_k q_k

The iteration stops as soon as :math:`\\|r_k\\| \\leq \\delta \\|b\\|`.

Notes
-----
Unlike SYMMLQ, the vector passed as ``x`` *is* used as the initial guess.
Events emitted by CG carry the (unpreconditioned) residual vector.

Example
-------
>>> import torch
>>> def A_apply(x):
...     # Example: diagonal matrix
...     return 2.0 * x
>>> b = torch.randn(100, dtype=torch.float64)
>>> x, info = cg(A_apply, b, tol=1e-10)
>>> print(f"Converged: {info.converged}, iters: {info.iters}")

"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import torch

from lqsolve.exceptions import NonPositiveDefiniteOperatorError
from lqsolve.iteration import CallbackListener, IterationEvent, IterationListener
from lqsolve.operators import as_vector, aslinearoperator
from lqsolve.solvers.base import IterativeLinearSolver, TerminationRecorder
from lqsolve.solvers.registry import Method, registry

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from lqsolve.iteration import IterationManager

logger = logging.getLogger(__name__)


class ConjugateGradient(IterativeLinearSolver):
    """Preconditioned Conjugate Gradient solver.

    Parameters
    ----------
    max_iterations : int, optional
        Maximum number of iterations (initialization included).
    delta : float
        Relative tolerance: convergence when :math:`\\|r\\| \\leq \\delta \\|b\\|`.
    check : bool
        If True, raise :class:`NonPositiveDefiniteOperatorError` as soon as
        :math:`(r, M r) \\leq 0` or :math:`(p, A p) \\leq 0`.
    manager : IterationManager, optional
        Iteration manager to use instead of ``max_iterations``.

    """

    def __init__(
        self,
        max_iterations: int | None = None,
        delta: float = 1e-10,
        check: bool = False,
        *,
        manager: IterationManager | None = None,
    ) -> None:
        super().__init__(max_iterations, manager=manager)
        self._delta = delta
        self._check = check

    @property
    def delta(self) -> float:
        """Relative tolerance of the stopping rule."""
        return self._delta

    @property
    def check(self) -> bool:
        """Whether positive definiteness is verified at each iteration."""
        return self._check

    def solve(
        self,
        a: Any,
        b: Any,
        x0: torch.Tensor | None = None,
        *,
        m: Any = None,
    ) -> torch.Tensor:
        """Solve :math:`A x = b` into a new vector.

        Parameters
        ----------
        a : LinearOperator or torch.Tensor
            Symmetric positive-definite operator.
        b : torch.Tensor
            Right-hand side.
        x0 : torch.Tensor, optional
            Initial guess (not modified). Defaults to zero.
        m : LinearOperator or torch.Tensor, optional
            Symmetric positive-definite preconditioner.

        Returns
        -------
        torch.Tensor
            The solution.

        """
        b = as_vector(b)
        x = torch.zeros_like(b) if x0 is None else x0.clone()
        return self.solve_in_place(a, b, x, m=m)

    def solve_in_place(
        self,
        a: Any,
        b: Any,
        x0: torch.Tensor,
        *,
        m: Any = None,
    ) -> torch.Tensor:
        """Solve :math:`A x = b` starting from ``x0``, which is overwritten.

        Raises
        ------
        DimensionMismatchError
            If the operands have incompatible dimensions.
        NonPositiveDefiniteOperatorError
            If ``check`` is enabled and :math:`A` or :math:`M` is found not
            positive definite.
        MaxCountExceededError
            If the iteration cap is reached before convergence.

        """
        a = aslinearoperator(a)
        m = None if m is None else aslinearoperator(m)
        b = as_vector(b)
        self.check_parameters(a, b, x0, m)

        manager = self.manager
        manager.reset_iteration_count()
        rmax = self._delta * torch.linalg.norm(b).item()
        # Initialization counts as an iteration
        manager.increment_iteration_count()

        x = x0
        r = b - a.operate(x)
        rnorm = torch.linalg.norm(r).item()
        p = torch.zeros_like(x)

        event = self._event(x, b, r, rnorm)
        manager.fire_initialization_event(event)
        if rnorm <= rmax:
            logger.debug("CG: initial guess satisfies the tolerance")
            manager.fire_termination_event(event)
            return x

        rho_prev = 0.0
        while True:
            manager.increment_iteration_count()
            manager.fire_iteration_started_event(self._event(x, b, r, rnorm))

            z = r if m is None else m.operate(r)
            rho_next = torch.dot(r, z).item()
            if self._check and rho_next <= 0.0:
                raise NonPositiveDefiniteOperatorError(m, r)

            if manager.iterations == 2:
                p = z.clone()
            else:
                p = z + (rho_next / rho_prev) * p

            q = a.operate(p)
            pq = torch.dot(p, q).item()
            if self._check and pq <= 0.0:
                raise NonPositiveDefiniteOperatorError(a, p)

            alpha = rho_next / pq
            x.add_(p, alpha=alpha)
            r = r - alpha * q
            rho_prev = rho_next
            rnorm = torch.linalg.norm(r).item()

            event = self._event(x, b, r, rnorm)
            manager.fire_iteration_performed_event(event)
            if rnorm <= rmax:
                logger.debug(
                    "CG done: iterations=%d, residual=%.3e", manager.iterations, rnorm
                )
                manager.fire_termination_event(event)
                return x

    def _event(
        self, x: torch.Tensor, b: torch.Tensor, r: torch.Tensor, rnorm: float
    ) -> IterationEvent:
        return IterationEvent(
            source=self,
            iterations=self.manager.iterations,
            solution=x,
            rhs=b,
            residual_norm=rnorm,
            residual_vector=r,
        )


@dataclass
class CGInfo:
    """Information about CG solver convergence.

    Attributes
    ----------
    converged : bool
        Whether the solver converged within tolerance. Always True on
        return: the loop only exits once ``||r|| <= tol ||b||``, and
        exhausting ``maxiter`` raises :class:`MaxCountExceededError`.
    iters : int
        Number of iterations performed (initialization included).
    final_residual : float
        Final relative residual norm ||r|| / ||b||.

    """

    converged: bool
    iters: int
    final_residual: float


def cg(
    A_apply: Any,
    b: Any,
    x0: torch.Tensor | None = None,
    M_apply: Any = None,
    *,
    tol: float = 1e-10,
    maxiter: int = 1000,
    check: bool = False,
    callback: Callable[[IterationEvent], None] | None = None,
    listeners: Iterable[IterationListener] = (),
) -> tuple[torch.Tensor, CGInfo]:
    """Conjugate Gradient solver for symmetric positive-definite systems.

    Solves :math:`A x = b` where :math:`A` is symmetric positive-definite.

    Parameters
    ----------
    A_apply : LinearOperator, torch.Tensor or Callable[[torch.Tensor], torch.Tensor]
        System operator. A callable computes the matrix-vector product A @ x.
        Must preserve shape and dtype.
    b : torch.Tensor
        Right-hand side vector.
    x0 : torch.Tensor, optional
        Initial guess. If None, uses zero vector.
    M_apply : LinearOperator, torch.Tensor or Callable, optional
        Symmetric positive-definite preconditioner.
    tol : float
        Relative tolerance for convergence: ||r|| / ||b|| <= tol.
    maxiter : int
        Maximum number of iterations (initialization included).
    check : bool
        Raise if a non-positive curvature is encountered.
    callback : Callable[[IterationEvent], None], optional
        User-supplied function to call after each iteration.
        Called as callback(event) where event.solution is the current
        solution vector.
    listeners : Iterable[IterationListener]
        Additional listeners receiving every event of the solve.

    Returns
    -------
    tuple[torch.Tensor, CGInfo]
        Solution vector x and convergence information.

    Raises
    ------
    MaxCountExceededError
        If ``maxiter`` iterations are not enough to converge.

    """
    b = as_vector(b)
    n = b.numel()
    a = aslinearoperator(A_apply, n=n)
    m = None if M_apply is None else aslinearoperator(M_apply, n=n)

    solver = ConjugateGradient(maxiter, delta=tol, check=check)
    recorder = TerminationRecorder()
    solver.manager.add_iteration_listener(recorder)
    if callback is not None:
        solver.manager.add_iteration_listener(CallbackListener(callback))
    for listener in listeners:
        solver.manager.add_iteration_listener(listener)

    x = solver.solve(a, b, x0, m=m)

    assert recorder.event is not None
    b_norm = torch.linalg.norm(b).item()
    rnorm = recorder.event.residual_norm
    info = CGInfo(
        converged=True,
        iters=recorder.event.iterations,
        final_residual=rnorm / b_norm if b_norm > 0.0 else rnorm,
    )
    return x, info


registry.register(Method.CG, cg)
