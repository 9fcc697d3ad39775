"""lqsolve: Krylov solvers for symmetric linear systems in PyTorch.

This package solves :math:`(A - \\sigma I) x = b` for a self-adjoint, possibly
indefinite operator :math:`A` with the SYMMLQ method, and symmetric
positive-definite systems with Conjugate Gradient. Operators may be dense
tensors, :class:`LinearOperator` instances or plain matrix-vector callables.
The package can be imported as ``lq`` for convenience:

.. code-block:: python

    import torch
    import lqsolve as lq

    # Symmetric indefinite system
    A = torch.tensor([[1.0, 2.0], [2.0, -3.0]], dtype=torch.float64)
    b = torch.tensor([1.0, 0.0], dtype=torch.float64)
    x, info = lq.solve(A, b)

    # Object API with a Jacobi preconditioner and progress listener
    solver = lq.SymmLQ(max_iterations=100, delta=1e-12, check=True)
    M = lq.JacobiPreconditioner.create(lq.MatrixOperator(A.abs()))
    x = solver.solve(A, b, m=M)

Library logging goes through the standard :mod:`logging` module under the
``lqsolve`` logger, which is silent unless the application configures it.

"""

import logging

from lqsolve._version import __version__
from lqsolve.config import LqsolveConfig, config
from lqsolve.exceptions import (
    DimensionMismatchError,
    IllConditionedOperatorError,
    LinearSolverError,
    MaxCountExceededError,
    NonPositiveDefiniteOperatorError,
    NonSelfAdjointOperatorError,
    NonSquareOperatorError,
    SingularOperatorError,
    SolverNotAvailableError,
    UnsupportedOperationError,
)
from lqsolve.iteration import (
    CallbackListener,
    IterationEvent,
    IterationListener,
    IterationManager,
)
from lqsolve.operators import (
    FunctionOperator,
    LinearOperator,
    MatrixOperator,
    as_vector,
    aslinearoperator,
)
from lqsolve.precond import JacobiPreconditioner
from lqsolve.solvers import (
    CGInfo,
    ConjugateGradient,
    SolverInfo,
    SymmLQ,
    SymmLQInfo,
    cg,
    solve,
    symmlq,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "CGInfo",
    # Iteration management
    "CallbackListener",
    "ConjugateGradient",
    # Errors
    "DimensionMismatchError",
    "FunctionOperator",
    "IllConditionedOperatorError",
    "IterationEvent",
    "IterationListener",
    "IterationManager",
    # Preconditioners
    "JacobiPreconditioner",
    "LinearOperator",
    "LinearSolverError",
    "LqsolveConfig",
    # Operators
    "MatrixOperator",
    "MaxCountExceededError",
    "NonPositiveDefiniteOperatorError",
    "NonSelfAdjointOperatorError",
    "NonSquareOperatorError",
    "SingularOperatorError",
    "SolverInfo",
    "SolverNotAvailableError",
    # Solvers
    "SymmLQ",
    "SymmLQInfo",
    "UnsupportedOperationError",
    # Version and config
    "__version__",
    "as_vector",
    "aslinearoperator",
    "cg",
    "config",
    "solve",
    "symmlq",
]
