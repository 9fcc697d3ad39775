"""Linear operators accessed through matrix-vector products.

This module defines the operator contract used by every solver in lqsolve:

- :class:`LinearOperator`: abstract base exposing dimensions and ``operate``
- :class:`MatrixOperator`: operator backed by a dense 2-D tensor
- :class:`FunctionOperator`: operator backed by a user callable ``A_apply``

Solvers never access coefficients of an operator. Given :math:`x`, they only
ever request

.. math::

    y = A x

and, for transposable operators, :math:`y = A^T x`.

Vectors are one-dimensional :obj:`torch.Tensor` objects. Helpers
:func:`as_vector` and :func:`aslinearoperator` convert plain Python input using
the global :data:`lqsolve.config`.

Example
-------
>>> import torch
>>> import lqsolve as lq
>>> A = lq.MatrixOperator(torch.diag(torch.tensor([1.0, 2.0, 3.0], dtype=torch.float64)))
>>> A.operate(torch.ones(3, dtype=torch.float64))
tensor([1., 2., 3.], dtype=torch.float64)

"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import torch

from lqsolve.config import config
from lqsolve.exceptions import DimensionMismatchError, UnsupportedOperationError

if TYPE_CHECKING:
    from collections.abc import Callable


class LinearOperator(ABC):
    """Abstract linear operator :math:`A: \\mathbb{R}^n \\to \\mathbb{R}^m`.

    Subclasses provide :attr:`row_dimension`, :attr:`column_dimension` and
    :meth:`operate`. Transposable operators additionally override
    :meth:`operate_transpose` and :meth:`is_transposable`.

    """

    @property
    @abstractmethod
    def row_dimension(self) -> int:
        """Number of rows :math:`m` of the operator."""

    @property
    @abstractmethod
    def column_dimension(self) -> int:
        """Number of columns :math:`n` of the operator."""

    @property
    def shape(self) -> tuple[int, int]:
        """Shape ``(rows, columns)`` of the operator."""
        return (self.row_dimension, self.column_dimension)

    def is_square(self) -> bool:
        """Return True if the operator has as many rows as columns."""
        return self.row_dimension == self.column_dimension

    @abstractmethod
    def operate(self, x: torch.Tensor) -> torch.Tensor:
        """Return the product :math:`A x`.

        Parameters
        ----------
        x : torch.Tensor
            Vector of size :attr:`column_dimension`.

        Returns
        -------
        torch.Tensor
            Vector of size :attr:`row_dimension`.

        Raises
        ------
        DimensionMismatchError
            If ``x`` does not have :attr:`column_dimension` entries.

        """

    def operate_transpose(self, x: torch.Tensor) -> torch.Tensor:
        """Return the product :math:`A^T x`.

        Raises
        ------
        UnsupportedOperationError
            If the operator is not transposable.

        """
        msg = f"{type(self).__name__} does not implement operate_transpose."
        raise UnsupportedOperationError(msg)

    def is_transposable(self) -> bool:
        """Return True if :meth:`operate_transpose` is implemented."""
        return False

    def _check_column_vector(self, x: torch.Tensor) -> None:
        if x.numel() != self.column_dimension:
            raise DimensionMismatchError(x.numel(), self.column_dimension)

    def _check_row_vector(self, x: torch.Tensor) -> None:
        if x.numel() != self.row_dimension:
            raise DimensionMismatchError(x.numel(), self.row_dimension)

    def __repr__(self) -> str:
        """Return a string representation of the operator."""
        return f"{type(self).__name__}(shape={self.shape})"


class MatrixOperator(LinearOperator):
    """Linear operator backed by a dense 2-D tensor.

    Parameters
    ----------
    matrix : torch.Tensor
        Matrix of shape ``[m, n]``.

    Notes
    -----
    The operator only uses the matrix through ``matrix @ x`` and
    ``matrix.T @ x``. It is the natural wrapper for small test systems and for
    explicitly assembled preconditioners.

    """

    def __init__(self, matrix: torch.Tensor) -> None:
        if matrix.dim() != 2:
            msg = f"MatrixOperator expects a 2-D tensor, got shape {tuple(matrix.shape)}."
            raise ValueError(msg)
        self._matrix = matrix

    @property
    def matrix(self) -> torch.Tensor:
        """The underlying dense matrix."""
        return self._matrix

    @property
    def row_dimension(self) -> int:
        """Number of rows of the matrix."""
        return self._matrix.shape[0]

    @property
    def column_dimension(self) -> int:
        """Number of columns of the matrix."""
        return self._matrix.shape[1]

    def operate(self, x: torch.Tensor) -> torch.Tensor:
        """Return ``matrix @ x``."""
        self._check_column_vector(x)
        return self._matrix @ x

    def operate_transpose(self, x: torch.Tensor) -> torch.Tensor:
        """Return ``matrix.T @ x``."""
        self._check_row_vector(x)
        return self._matrix.T @ x

    def is_transposable(self) -> bool:
        """Dense matrices are always transposable."""
        return True

    def diagonal(self) -> torch.Tensor:
        """Return a copy of the main diagonal of the matrix."""
        return torch.diagonal(self._matrix).clone()


class FunctionOperator(LinearOperator):
    """Linear operator backed by a matrix-vector product callable.

    Parameters
    ----------
    A_apply : Callable[[torch.Tensor], torch.Tensor]
        Function that computes the matrix-vector product A @ x.
        Must preserve dtype and return a vector of ``rows`` entries.
    rows : int
        Row dimension of the operator.
    columns : int, optional
        Column dimension. Defaults to ``rows`` (square operator).
    AT_apply : Callable[[torch.Tensor], torch.Tensor], optional
        Function that computes the transposed product A^T @ x.

    Example
    -------
    >>> A = FunctionOperator(lambda x: 2.0 * x, rows=100)
    >>> A.shape
    (100, 100)

    """

    def __init__(
        self,
        A_apply: Callable[[torch.Tensor], torch.Tensor],
        rows: int,
        columns: int | None = None,
        AT_apply: Callable[[torch.Tensor], torch.Tensor] | None = None,
    ) -> None:
        if rows < 0 or (columns is not None and columns < 0):
            msg = f"Operator dimensions must be non-negative, got {rows}x{columns}."
            raise ValueError(msg)
        self._apply = A_apply
        self._apply_transpose = AT_apply
        self._rows = rows
        self._columns = rows if columns is None else columns

    @property
    def row_dimension(self) -> int:
        """Number of rows of the operator."""
        return self._rows

    @property
    def column_dimension(self) -> int:
        """Number of columns of the operator."""
        return self._columns

    def operate(self, x: torch.Tensor) -> torch.Tensor:
        """Return ``A_apply(x)`` after checking the input dimension."""
        self._check_column_vector(x)
        return self._apply(x)

    def operate_transpose(self, x: torch.Tensor) -> torch.Tensor:
        """Return ``AT_apply(x)`` if a transpose callable was supplied."""
        if self._apply_transpose is None:
            return super().operate_transpose(x)
        self._check_row_vector(x)
        return self._apply_transpose(x)

    def is_transposable(self) -> bool:
        """Return True if a transpose callable was supplied."""
        return self._apply_transpose is not None


def as_vector(data: Any) -> torch.Tensor:
    """Convert input data to a one-dimensional real tensor.

    Tensors are returned unchanged (after a dimensionality check); any other
    sequence is converted with the default dtype and device of
    :data:`lqsolve.config`.

    Parameters
    ----------
    data : Any
        A tensor, or anything accepted by :func:`torch.as_tensor`.

    Returns
    -------
    torch.Tensor
        One-dimensional tensor.

    Raises
    ------
    ValueError
        If the data is not one-dimensional.
    TypeError
        If a tensor with a non floating point dtype is supplied.

    """
    if isinstance(data, torch.Tensor):
        vec = data
    else:
        vec = torch.as_tensor(data, dtype=config.DEFAULT_DTYPE, device=config.DEFAULT_DEVICE)

    if vec.dim() != 1:
        msg = f"Expected a one-dimensional vector, got shape {tuple(vec.shape)}."
        raise ValueError(msg)
    if not vec.is_floating_point():
        msg = f"Expected a real floating point vector, got dtype {vec.dtype}."
        raise TypeError(msg)
    return vec


def aslinearoperator(
    obj: Any,
    n: int | None = None,
) -> LinearOperator:
    """Coerce an object to a :class:`LinearOperator`.

    Parameters
    ----------
    obj : Any
        One of:

        - a :class:`LinearOperator` (returned as is),
        - a 2-D :obj:`torch.Tensor` (wrapped in :class:`MatrixOperator`),
        - a callable ``A_apply(x)`` (wrapped in :class:`FunctionOperator`,
          requires ``n``),
        - a nested sequence (converted with the configured dtype and device).
    n : int, optional
        Dimension of the square operator when ``obj`` is a callable.

    Returns
    -------
    LinearOperator
        The coerced operator.

    Raises
    ------
    ValueError
        If ``obj`` is a callable and ``n`` is not given.

    """
    if isinstance(obj, LinearOperator):
        return obj
    if isinstance(obj, torch.Tensor):
        return MatrixOperator(obj)
    if callable(obj):
        if n is None:
            msg = "The dimension n is required to wrap a callable as a LinearOperator."
            raise ValueError(msg)
        return FunctionOperator(obj, rows=n)
    matrix = torch.as_tensor(obj, dtype=config.DEFAULT_DTYPE, device=config.DEFAULT_DEVICE)
    return MatrixOperator(matrix)
