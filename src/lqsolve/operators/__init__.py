"""Operators subpackage for lqsolve.

This subpackage provides the linear operator contract and its dense and
matrix-free implementations.

"""

from lqsolve.operators.linear import (
    FunctionOperator,
    LinearOperator,
    MatrixOperator,
    as_vector,
    aslinearoperator,
)

__all__ = [
    "FunctionOperator",
    "LinearOperator",
    "MatrixOperator",
    "as_vector",
    "aslinearoperator",
]
