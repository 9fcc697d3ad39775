"""Common machinery for iterative linear solvers.

:class:`IterativeLinearSolver` owns the :class:`~lqsolve.iteration.IterationManager`
of a solver and implements the parameter validation shared by all
preconditioned Krylov methods:

- :math:`A` must be square,
- :math:`b` and :math:`x` must have the dimension of :math:`A`,
- the preconditioner :math:`M`, if any, must be square with the dimension of
  :math:`A`.

Every mismatch raises before the first matrix-vector product is performed.

"""

from __future__ import annotations

from typing import TYPE_CHECKING

from lqsolve.exceptions import DimensionMismatchError, NonSquareOperatorError
from lqsolve.iteration import IterationEvent, IterationListener, IterationManager

if TYPE_CHECKING:
    import torch

    from lqsolve.operators import LinearOperator


class IterativeLinearSolver:
    """Base class for iterative solvers of :math:`A x = b`.

    Parameters
    ----------
    max_iterations : int, optional
        Maximum number of iterations. A new :class:`IterationManager` is
        created with this cap.
    manager : IterationManager, optional
        Pre-configured iteration manager (e.g. with a custom callback for the
        iteration cap). Exactly one of ``max_iterations`` and ``manager`` must
        be given.

    Raises
    ------
    ValueError
        If neither or both of ``max_iterations`` and ``manager`` are given.

    """

    def __init__(
        self,
        max_iterations: int | None = None,
        *,
        manager: IterationManager | None = None,
    ) -> None:
        if (max_iterations is None) == (manager is None):
            msg = "Exactly one of max_iterations and manager must be given."
            raise ValueError(msg)
        if manager is None:
            manager = IterationManager(max_iterations)  # pyright: ignore[reportArgumentType]
        self._manager = manager

    @property
    def manager(self) -> IterationManager:
        """The iteration manager attached to this solver."""
        return self._manager

    @staticmethod
    def check_parameters(
        a: LinearOperator,
        b: torch.Tensor,
        x: torch.Tensor,
        m: LinearOperator | None = None,
    ) -> None:
        """Validate the operands of a solve.

        Parameters
        ----------
        a : LinearOperator
            System operator.
        b : torch.Tensor
            Right-hand side.
        x : torch.Tensor
            Solution vector (initial guess or output buffer).
        m : LinearOperator, optional
            Preconditioner.

        Raises
        ------
        NonSquareOperatorError
            If ``a`` or ``m`` is not square.
        DimensionMismatchError
            If ``b``, ``x`` or ``m`` do not match the dimension of ``a``.
        ValueError
            If ``b`` or ``x`` is not one-dimensional, or if ``x`` shares its
            storage with ``b``.

        """
        if a.row_dimension != a.column_dimension:
            raise NonSquareOperatorError(a.row_dimension, a.column_dimension)
        for name, vec in (("b", b), ("x", x)):
            if vec.dim() != 1:
                msg = f"{name} must be a one-dimensional vector, got shape {tuple(vec.shape)}."
                raise ValueError(msg)
        if b.numel() != a.row_dimension:
            raise DimensionMismatchError(b.numel(), a.row_dimension)
        if x.numel() != a.column_dimension:
            raise DimensionMismatchError(x.numel(), a.column_dimension)
        if x.numel() > 0 and x.untyped_storage().data_ptr() == b.untyped_storage().data_ptr():
            msg = "x must not share memory with b: it is overwritten during the solve."
            raise ValueError(msg)
        if m is not None:
            if m.column_dimension != m.row_dimension:
                raise NonSquareOperatorError(m.row_dimension, m.column_dimension)
            if m.row_dimension != a.row_dimension:
                raise DimensionMismatchError(m.row_dimension, a.row_dimension)


class TerminationRecorder(IterationListener):
    """Listener keeping the termination event of the last solve."""

    def __init__(self) -> None:
        self.event: IterationEvent | None = None

    def termination_performed(self, event: IterationEvent) -> None:
        """Store the event."""
        self.event = event
