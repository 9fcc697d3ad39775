"""Jacobi (diagonal) preconditioning.

The Jacobi preconditioner approximates the inverse of :math:`A` by the
inverse of its diagonal:

.. math::

    M = D^{-1}, \\qquad D = \\operatorname{diag}(a_{11}, \\ldots, a_{nn})

so that :math:`M x = x / d` element-wise. For a symmetric positive-definite
:math:`A` all diagonal entries are positive and :math:`M` is itself
symmetric positive-definite, as required by SYMMLQ and CG.

The square root :math:`M^{1/2} = D^{-1/2}` is available through
:meth:`JacobiPreconditioner.sqrt`, e.g. to build the symmetrically scaled
operator :math:`D^{-1/2} A D^{-1/2}`.

Notes
-----
When the operator is matrix-free, the diagonal is extracted by probing with
the unit vectors :math:`e_i`, which costs :math:`n` matrix-vector products.

"""

from __future__ import annotations

import torch

from lqsolve.config import config
from lqsolve.exceptions import NonSquareOperatorError
from lqsolve.operators import LinearOperator, MatrixOperator


class JacobiPreconditioner(LinearOperator):
    """Diagonal preconditioner :math:`M x = x / d`.

    Parameters
    ----------
    diag : torch.Tensor
        Diagonal coefficients :math:`d` of the operator being preconditioned.
    copy : bool
        If True (default), the coefficients are copied.

    Example
    -------
    >>> A = MatrixOperator(torch.diag(torch.tensor([2.0, 4.0], dtype=torch.float64)))
    >>> M = JacobiPreconditioner.create(A)
    >>> M.operate(torch.tensor([2.0, 4.0], dtype=torch.float64))
    tensor([1., 1.], dtype=torch.float64)

    """

    def __init__(self, diag: torch.Tensor, copy: bool = True) -> None:
        if diag.dim() != 1:
            msg = f"Expected a one-dimensional diagonal, got shape {tuple(diag.shape)}."
            raise ValueError(msg)
        self._diag = diag.clone() if copy else diag

    @classmethod
    def create(cls, a: LinearOperator) -> JacobiPreconditioner:
        """Build the Jacobi preconditioner of a square operator.

        Parameters
        ----------
        a : LinearOperator
            Operator to precondition.

        Returns
        -------
        JacobiPreconditioner
            Preconditioner with the diagonal of ``a``.

        Raises
        ------
        NonSquareOperatorError
            If ``a`` is not square.

        """
        n = a.column_dimension
        if a.row_dimension != n:
            raise NonSquareOperatorError(a.row_dimension, n)

        if isinstance(a, MatrixOperator):
            return cls(a.diagonal(), copy=False)

        # Matrix-free: probe with unit vectors
        entries = []
        for i in range(n):
            e_i = torch.zeros(n, dtype=config.DEFAULT_DTYPE, device=config.DEFAULT_DEVICE)
            e_i[i] = 1.0
            entries.append(a.operate(e_i)[i].item())
        return cls(
            torch.tensor(entries, dtype=config.DEFAULT_DTYPE, device=config.DEFAULT_DEVICE),
            copy=False,
        )

    @property
    def diag(self) -> torch.Tensor:
        """Diagonal coefficients :math:`d`."""
        return self._diag

    @property
    def row_dimension(self) -> int:
        """Size of the diagonal."""
        return self._diag.numel()

    @property
    def column_dimension(self) -> int:
        """Size of the diagonal."""
        return self._diag.numel()

    def operate(self, x: torch.Tensor) -> torch.Tensor:
        """Return ``x / diag``."""
        self._check_column_vector(x)
        return x / self._diag.to(dtype=x.dtype, device=x.device)

    def operate_transpose(self, x: torch.Tensor) -> torch.Tensor:
        """Diagonal operators are their own transpose."""
        return self.operate(x)

    def is_transposable(self) -> bool:
        """Diagonal operators are always transposable."""
        return True

    def sqrt(self) -> JacobiPreconditioner:
        """Return the square root :math:`D^{-1/2}` of the preconditioner."""
        return JacobiPreconditioner(torch.sqrt(self._diag), copy=False)
