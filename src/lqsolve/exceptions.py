"""Exception taxonomy for lqsolve.

Every failure raised by an operator or a solver derives from
:class:`LinearSolverError`. The exceptions keep the objects that caused the
failure as attributes, so that callers can inspect the offending operator or
probe vectors after the solve was aborted.

None of these conditions is retried internally: when a solver raises, the
solution vector it was writing to must be considered invalid.

"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence

    import torch


class LinearSolverError(Exception):
    """Base class for all errors raised by lqsolve."""


class DimensionMismatchError(LinearSolverError, ValueError):
    """Raised when a vector or operator has an incompatible dimension.

    Parameters
    ----------
    actual : int
        The dimension that was found.
    expected : int
        The dimension that was required.

    """

    def __init__(self, actual: int, expected: int) -> None:
        self.actual = actual
        self.expected = expected
        super().__init__(f"Dimension mismatch: got {actual}, expected {expected}.")


class NonSquareOperatorError(DimensionMismatchError):
    """Raised when an operator is required to be square but is not.

    Parameters
    ----------
    rows : int
        Row dimension of the operator.
    columns : int
        Column dimension of the operator.

    """

    def __init__(self, rows: int, columns: int) -> None:
        super().__init__(rows, columns)
        self.rows = rows
        self.columns = columns
        self.args = (f"Operator is not square: {rows}x{columns}.",)


class NonSelfAdjointOperatorError(LinearSolverError):
    """Raised when an operator fails the self-adjointness probe.

    For probe vectors :math:`x`, :math:`y = L x` and :math:`z = L y`, the
    operator is rejected when

    .. math::

        |y^T y - x^T z| > \\text{threshold}

    Parameters
    ----------
    operator : Any
        The operator that was found not to be self-adjoint.
    vector1 : torch.Tensor
        First probe vector :math:`x`.
    vector2 : torch.Tensor
        Second probe vector :math:`y = L x`.
    threshold : float
        Tolerance used for the comparison.

    """

    def __init__(
        self,
        operator: Any,
        vector1: torch.Tensor,
        vector2: torch.Tensor,
        threshold: float,
    ) -> None:
        self.operator = operator
        self.vector1 = vector1
        self.vector2 = vector2
        self.threshold = threshold
        super().__init__(f"Operator is not self-adjoint (threshold {threshold:.3e}).")


class NonPositiveDefiniteOperatorError(LinearSolverError):
    """Raised when a quadratic form that must be positive is not.

    Parameters
    ----------
    operator : Any
        The offending operator. ``None`` when the failure was detected on the
        identity preconditioner.
    vector : torch.Tensor
        The vector for which the quadratic form was found non-positive.

    """

    def __init__(self, operator: Any, vector: torch.Tensor) -> None:
        self.operator = operator
        self.vector = vector
        super().__init__("Operator is not positive definite.")


class IllConditionedOperatorError(LinearSolverError):
    """Raised when the condition number estimate exceeds the precision bound.

    Parameters
    ----------
    condition_number : float
        The estimated condition number of the projected operator.

    """

    def __init__(self, condition_number: float) -> None:
        self.condition_number = condition_number
        super().__init__(
            f"Operator is ill-conditioned (condition number estimate {condition_number:.3e})."
        )


class SingularOperatorError(LinearSolverError):
    """Raised when the shifted operator is numerically singular.

    This happens when the starting vector of the Lanczos process is already an
    eigenvector of :math:`A - \\sigma I` for the eigenvalue zero.

    """

    def __init__(self) -> None:
        super().__init__("Operator is singular.")


class MaxCountExceededError(LinearSolverError):
    """Raised when the maximal number of iterations is exceeded.

    Parameters
    ----------
    max_count : int
        The iteration cap that was exceeded.

    """

    def __init__(self, max_count: int) -> None:
        self.max_count = max_count
        super().__init__(f"Maximal count ({max_count}) exceeded.")


class UnsupportedOperationError(LinearSolverError, NotImplementedError):
    """Raised when an optional capability is requested but not provided."""


class SolverNotAvailableError(LinearSolverError, ValueError):
    """Raised when a requested solver method is unknown or not registered.

    Parameters
    ----------
    method : Any
        The method (or method name) that was requested.
    available : Sequence[str]
        Names of the registered methods.

    """

    def __init__(self, method: Any, available: Sequence[str] = ()) -> None:
        self.method = method
        self.available = tuple(available)
        name = getattr(method, "value", method)
        msg = f"Solver '{name}' is not available."
        if self.available:
            msg += f" Registered methods: {', '.join(self.available)}."
        super().__init__(msg)


__all__ = [
    "DimensionMismatchError",
    "IllConditionedOperatorError",
    "LinearSolverError",
    "MaxCountExceededError",
    "NonPositiveDefiniteOperatorError",
    "NonSelfAdjointOperatorError",
    "NonSquareOperatorError",
    "SingularOperatorError",
    "SolverNotAvailableError",
    "UnsupportedOperationError",
]
