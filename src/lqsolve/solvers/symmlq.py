"""SYMMLQ solver for symmetric, possibly indefinite systems.

This module implements the SYMMLQ method of Paige and Saunders (1975) for
solving

.. math::

    (A - \\sigma I) x = b

where :math:`A` is a self-adjoint linear operator accessed only through
matrix-vector products, and :math:`\\sigma` an optional shift. :math:`A` is
not required to be positive definite. An optional symmetric positive-definite
preconditioner :math:`M \\approx (A - \\sigma I)^{-1}` can be supplied.

The recurrence itself lives in :mod:`lqsolve.solvers.symmlq_state`; this
module drives it and reports progress through the
:class:`~lqsolve.iteration.IterationManager` of the solver.

Notes
-----
- The vector passed as ``x`` is never an initial guess: it is overwritten. To
  warm start, solve :math:`A \\, \\delta x = b - A x_0` and add the correction.
- The initialization phase counts as the first iteration, so that iteration
  counts are comparable whether or not self-adjointness checks are requested.
- The residual norms reported in events are estimates from the recurrence;
  no explicit residual vector is available.

Example
-------
>>> import torch
>>> import lqsolve as lq
>>> A = torch.diag(torch.tensor([2.0, 2.0, 2.0], dtype=torch.float64))
>>> b = torch.tensor([2.0, 2.0, 2.0], dtype=torch.float64)
>>> x, info = lq.symmlq(A, b, tol=1e-10)
>>> print(f"Converged: {info.converged}, iters: {info.iters}")

"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import torch

from lqsolve.iteration import CallbackListener, IterationEvent, IterationListener
from lqsolve.operators import as_vector, aslinearoperator
from lqsolve.solvers.base import IterativeLinearSolver, TerminationRecorder
from lqsolve.solvers.registry import Method, registry
from lqsolve.solvers.symmlq_state import (
    SymmLQState,
    init_state,
    refine_solution,
    state_beta_is_zero,
    state_has_converged,
    update_state,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from lqsolve.iteration import IterationManager

logger = logging.getLogger(__name__)


class SymmLQ(IterativeLinearSolver):
    """SYMMLQ iterative solver.

    Parameters
    ----------
    max_iterations : int, optional
        Maximum number of iterations (initialization included).
    delta : float
        Relative tolerance :math:`\\delta` of the default stopping rule
        :math:`\\|r\\| \\leq \\delta \\, \\|A\\| \\, \\|x\\|`.
    check : bool
        If True, :math:`A` and :math:`M` are probed for self-adjointness
        during initialization, at the cost of one extra matrix-vector
        product each.
    manager : IterationManager, optional
        Iteration manager to use instead of ``max_iterations``.

    Example
    -------
    >>> solver = SymmLQ(max_iterations=100, delta=1e-12, check=True)
    >>> x = solver.solve(A, b)
    >>> x = solver.solve(A, b, m=M, goodb=True, shift=0.5)

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
        """Whether self-adjointness is verified during initialization."""
        return self._check

    def solve(
        self,
        a: Any,
        b: Any,
        x: torch.Tensor | None = None,
        *,
        m: Any = None,
        goodb: bool = False,
        shift: float = 0.0,
    ) -> torch.Tensor:
        """Solve :math:`(A - \\sigma I) x = b` into a new vector.

        Parameters
        ----------
        a : LinearOperator or torch.Tensor
            Self-adjoint system operator.
        b : torch.Tensor
            Right-hand side.
        x : torch.Tensor, optional
            Vector whose copy receives the solution. Its values are ignored;
            it only fixes the type of the result.
        m : LinearOperator or torch.Tensor, optional
            Symmetric positive-definite preconditioner.
        goodb : bool
            Accumulate the component of the solution along :math:`b`
            separately. Useful when :math:`b` is close to an eigenvector.
        shift : float
            Shift :math:`\\sigma`.

        Returns
        -------
        torch.Tensor
            The solution.

        """
        b = as_vector(b)
        x = torch.zeros_like(b) if x is None else x.clone()
        return self.solve_in_place(a, b, x, m=m, goodb=goodb, shift=shift)

    def solve_in_place(
        self,
        a: Any,
        b: Any,
        x: torch.Tensor,
        *,
        m: Any = None,
        goodb: bool = False,
        shift: float = 0.0,
    ) -> torch.Tensor:
        """Solve :math:`(A - \\sigma I) x = b`, overwriting ``x``.

        Parameters are as in :meth:`solve`; ``x`` is the output buffer and is
        returned. Its previous content is discarded, and it must not share
        memory with ``b``.

        Raises
        ------
        ValueError
            If ``x`` shares its storage with ``b``.
        DimensionMismatchError
            If the operands have incompatible dimensions.
        NonSelfAdjointOperatorError
            If ``check`` is enabled and :math:`A` or :math:`M` is not
            self-adjoint.
        NonPositiveDefiniteOperatorError
            If :math:`M` is not positive definite.
        IllConditionedOperatorError
            If the operator is too ill-conditioned for the working precision.
        SingularOperatorError
            If :math:`b` is an eigenvector of :math:`A` for the eigenvalue
            :math:`\\sigma`.
        MaxCountExceededError
            If the iteration cap is reached before convergence.

        """
        a = aslinearoperator(a)
        m = None if m is None else aslinearoperator(m)
        b = as_vector(b)
        self.check_parameters(a, b, x, m)

        manager = self.manager
        # Initialization counts as an iteration
        manager.reset_iteration_count()
        manager.increment_iteration_count()

        logger.debug(
            "SYMMLQ start: n=%d, preconditioned=%s, goodb=%s, shift=%g",
            a.row_dimension,
            m is not None,
            goodb,
            shift,
        )
        state = SymmLQState(
            a=a, b=b, m=m, goodb=goodb, shift=shift, delta=self._delta, check=self._check
        )
        init_state(state)
        refine_solution(state, x)
        event = self._event(x, b, state)

        if state.b_is_null:
            logger.debug("SYMMLQ: right-hand side is zero, returning x = 0")
            manager.fire_initialization_event(event)
            manager.fire_termination_event(event)
            return x

        # Terminate at once if beta is essentially zero
        early_stop = state_beta_is_zero(state) or state_has_converged(state)
        manager.fire_initialization_event(event)
        if not early_stop:
            while True:
                manager.increment_iteration_count()
                manager.fire_iteration_started_event(self._event(x, b, state))
                update_state(state)
                refine_solution(state, x)
                manager.fire_iteration_performed_event(self._event(x, b, state))
                if state_has_converged(state):
                    break

        logger.debug(
            "SYMMLQ done: iterations=%d, residual estimate=%.3e",
            manager.iterations,
            state.rnorm,
        )
        manager.fire_termination_event(self._event(x, b, state))
        return x

    def _event(self, x: torch.Tensor, b: torch.Tensor, state: SymmLQState) -> IterationEvent:
        return IterationEvent(
            source=self,
            iterations=self.manager.iterations,
            solution=x,
            rhs=b,
            residual_norm=state.rnorm,
        )


@dataclass
class SymmLQInfo:
    """Information about SYMMLQ solver convergence.

    Attributes
    ----------
    converged : bool
        Whether the solver converged within tolerance. Always True on
        return: the solve only ends when the stopping rule is met or the
        Krylov space is exhausted (next Lanczos norm below machine
        precision), and fails with :class:`MaxCountExceededError` otherwise.
    iters : int
        Number of iterations performed (initialization included).
    final_residual : float
        Final residual norm estimate :math:`\\min(\\|r^C\\|, \\|r^L\\|)`.

    """

    converged: bool
    iters: int
    final_residual: float


def symmlq(
    A_apply: Any,
    b: Any,
    M_apply: Any = None,
    *,
    goodb: bool = False,
    shift: float = 0.0,
    tol: float = 1e-10,
    maxiter: int = 1000,
    check: bool = False,
    callback: Callable[[IterationEvent], None] | None = None,
    listeners: Iterable[IterationListener] = (),
) -> tuple[torch.Tensor, SymmLQInfo]:
    """SYMMLQ solver for symmetric, possibly indefinite systems.

    Solves :math:`(A - \\sigma I) x = b` where :math:`A` is self-adjoint.

    Parameters
    ----------
    A_apply : LinearOperator, torch.Tensor or Callable[[torch.Tensor], torch.Tensor]
        System operator. A callable computes the matrix-vector product A @ x.
    b : torch.Tensor
        Right-hand side vector.
    M_apply : LinearOperator, torch.Tensor or Callable, optional
        Symmetric positive-definite preconditioner.
    goodb : bool
        Accumulate the component of the solution along :math:`b` separately.
    shift : float
        Shift :math:`\\sigma`.
    tol : float
        Relative tolerance :math:`\\delta` of the stopping rule.
    maxiter : int
        Maximum number of iterations (initialization included).
    check : bool
        Probe the operators for self-adjointness.
    callback : Callable[[IterationEvent], None], optional
        User-supplied function to call after each iteration.
        Called as callback(event) where event.solution is the current
        solution vector.
    listeners : Iterable[IterationListener]
        Additional listeners receiving every event of the solve.

    Returns
    -------
    tuple[torch.Tensor, SymmLQInfo]
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

    solver = SymmLQ(maxiter, delta=tol, check=check)
    recorder = TerminationRecorder()
    solver.manager.add_iteration_listener(recorder)
    if callback is not None:
        solver.manager.add_iteration_listener(CallbackListener(callback))
    for listener in listeners:
        solver.manager.add_iteration_listener(listener)

    x = solver.solve(a, b, m=m, goodb=goodb, shift=shift)

    assert recorder.event is not None
    info = SymmLQInfo(
        converged=True,
        iters=recorder.event.iterations,
        final_residual=recorder.event.residual_norm,
    )
    return x, info


registry.register(Method.SYMMLQ, symmlq, options=("goodb", "shift"))
