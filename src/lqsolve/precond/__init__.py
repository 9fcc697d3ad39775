"""Preconditioning subpackage for lqsolve.

This subpackage provides preconditioners for the Krylov solvers:

- **Jacobi**: Inverse of the operator diagonal, extracted from a dense matrix
  or by probing a matrix-free operator.

"""

from lqsolve.precond.jacobi import JacobiPreconditioner

__all__ = [
    "JacobiPreconditioner",
]
