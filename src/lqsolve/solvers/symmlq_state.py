"""State and recurrences of the SYMMLQ method.

This module holds the Lanczos/LQ recurrence of SYMMLQ (Paige and Saunders,
1975) as a plain data aggregate, :class:`SymmLQState`, and the free functions
that advance it:

- :func:`init_state`: First Lanczos step, seeds of all running quantities
- :func:`update_state`: One Lanczos step plus one plane rotation
- :func:`update_norms`: Norm estimates, safeguards and the stopping rule
- :func:`refine_solution`: Projection of the LQ iterate onto the output vector

Algorithm
---------
With a preconditioner :math:`M = P P^T`, the Lanczos process is run on
:math:`\\hat{A} = P^T (A - \\sigma I) P` and :math:`\\hat{b} = P^T b`:

.. math::

    \\beta_1 v_1 &= P^T b \\\\
    \\beta_{k+1} v_{k+1} &= \\hat{A} v_k - \\alpha_k v_k - \\beta_k v_{k-1}

Only products with :math:`P v_k` are ever formed, so :math:`P` itself is never
needed, only :math:`M`. The tridiagonal matrix :math:`T_k` is reduced to lower
triangular form :math:`T_k Q_k^T = L_k` by Givens rotations

.. math::

    \\gamma_k = \\sqrt{\\bar{\\gamma}_k^2 + \\beta_{k+1}^2}, \\quad
    c_k = \\bar{\\gamma}_k / \\gamma_k, \\quad
    s_k = \\beta_{k+1} / \\gamma_k

and the LQ iterate is accumulated as :math:`x^L_k = x^L_{k-1} + \\zeta_k w_k`.
The CG iterate :math:`x^C_k = x^L_{k-1} + \\bar{\\zeta}_k \\bar{w}_k` is
available at no extra cost, and :func:`refine_solution` reports whichever has
the smaller residual estimate.

Notes
-----
Several quantities relevant to iteration :math:`k` are only known at
iteration :math:`k + 1`; the comments below state the index held by each
variable at the end of a step.

In "good b" mode the component of :math:`x^L` along :math:`v_1` is
accumulated separately in ``bstep``:

.. math::

    x^L_k = x^{L2}_k + \\text{bstep}_k \\, v_1, \\qquad
    \\text{bstep}_k = \\text{bstep}_{k-1} + s_1 \\cdots s_{k-1} c_k \\zeta_k

which improves accuracy when :math:`b` is close to an eigenvector.

References
----------
C. C. Paige and M. A. Saunders, "Solution of Sparse Indefinite Systems of
Linear Equations", SIAM Journal on Numerical Analysis 12(4), 1975.

"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import torch

from lqsolve.exceptions import (
    IllConditionedOperatorError,
    NonPositiveDefiniteOperatorError,
    NonSelfAdjointOperatorError,
    SingularOperatorError,
)

if TYPE_CHECKING:
    from lqsolve.operators import LinearOperator


@dataclass
class SymmLQState:
    """Recurrence variables of one SYMMLQ solve.

    A state is created for a single solve and discarded afterwards. The
    inputs are given at construction; every other field is established by
    :func:`init_state`.

    Attributes
    ----------
    a : LinearOperator
        Self-adjoint system operator :math:`A`.
    b : torch.Tensor
        Right-hand side.
    m : LinearOperator, optional
        Symmetric positive-definite preconditioner :math:`M`.
    goodb : bool
        Accumulate the component of the solution along :math:`b` separately.
    shift : float
        Shift :math:`\\sigma` of the system :math:`(A - \\sigma I) x = b`.
    delta : float
        Relative tolerance of the default stopping rule.
    check : bool
        Probe :math:`A` and :math:`M` for self-adjointness during
        initialization.
    mb : torch.Tensor
        :math:`M b` (or :math:`b` without preconditioner).
    xl : torch.Tensor
        LQ iterate :math:`x^L` (only its part along ``wbar`` in good-b mode).
    mach_prec : float
        Unit roundoff of the dtype of ``b``.
    cbrt_mach_prec : float
        Cube root of ``mach_prec``.
    r1, r2, y, wbar : torch.Tensor
        Lanczos and rotation work vectors.
    beta1, beta, oldb : float
        :math:`\\beta_1`, :math:`\\beta_{k+1}`, :math:`\\beta_k`.
    gbar, dbar : float
        Intermediate diagonal and off-diagonal entries of :math:`L`.
    gamma_zeta, minus_eps_zeta : float
        :math:`\\bar{\\gamma}_k \\bar{\\zeta}_k` and
        :math:`-\\epsilon_{k+1} \\zeta_{k-1}`.
    snprod : float
        :math:`s_1 \\cdots s_{k-1}`.
    bstep : float
        Good-b correction coefficient.
    tnorm : float
        Squared Frobenius norm of :math:`T_k`.
    ynorm2 : float
        Squared norm of the LQ iterate coefficients.
    gmax, gmin : float
        Running extrema of :math:`|\\alpha_1|, \\gamma_1, \\ldots`.
    cgnorm, lqnorm, rnorm : float
        Residual norm estimates of the CG point, the LQ point, and their
        minimum.
    converged : bool
        Result of the last stopping test.
    b_is_null : bool
        True if :math:`b = 0` exactly.

    """

    a: LinearOperator
    b: torch.Tensor
    m: LinearOperator | None = None
    goodb: bool = False
    shift: float = 0.0
    delta: float = 0.0
    check: bool = False

    mb: torch.Tensor = field(init=False, repr=False)
    xl: torch.Tensor = field(init=False, repr=False)
    mach_prec: float = field(init=False)
    cbrt_mach_prec: float = field(init=False)

    r1: torch.Tensor = field(init=False, repr=False)
    r2: torch.Tensor = field(init=False, repr=False)
    y: torch.Tensor = field(init=False, repr=False)
    wbar: torch.Tensor = field(init=False, repr=False)

    beta1: float = field(init=False, default=0.0)
    beta: float = field(init=False, default=0.0)
    oldb: float = field(init=False, default=0.0)
    gbar: float = field(init=False, default=0.0)
    dbar: float = field(init=False, default=0.0)
    gamma_zeta: float = field(init=False, default=0.0)
    minus_eps_zeta: float = field(init=False, default=0.0)
    snprod: float = field(init=False, default=0.0)
    bstep: float = field(init=False, default=0.0)
    tnorm: float = field(init=False, default=0.0)
    ynorm2: float = field(init=False, default=0.0)
    gmax: float = field(init=False, default=0.0)
    gmin: float = field(init=False, default=0.0)
    cgnorm: float = field(init=False, default=0.0)
    lqnorm: float = field(init=False, default=0.0)
    rnorm: float = field(init=False, default=0.0)

    converged: bool = field(init=False, default=False)
    b_is_null: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        self.mb = self.b if self.m is None else self.m.operate(self.b)
        self.xl = torch.zeros_like(self.b)
        self.mach_prec = torch.finfo(self.b.dtype).eps
        self.cbrt_mach_prec = self.mach_prec ** (1.0 / 3.0)


def _dot(x: torch.Tensor, y: torch.Tensor) -> float:
    return torch.dot(x, y).item()


def check_symmetry(
    operator: LinearOperator,
    x: torch.Tensor,
    y: torch.Tensor,
    z: torch.Tensor,
    mach_prec: float,
    cbrt_mach_prec: float,
) -> None:
    """Probe an operator :math:`L` for self-adjointness.

    With :math:`y = L x` and :math:`z = L y`, a self-adjoint operator satisfies
    :math:`y^T y = x^T L^T L x = x^T z`.

    Parameters
    ----------
    operator : LinearOperator
        The operator :math:`L`, only used to report a failure.
    x, y, z : torch.Tensor
        Probe vectors.
    mach_prec : float
        Unit roundoff of the working dtype.
    cbrt_mach_prec : float
        Cube root of ``mach_prec``.

    Raises
    ------
    NonSelfAdjointOperatorError
        If :math:`|y^T y - x^T z| > (y^T y + \\epsilon) \\epsilon^{1/3}`.

    """
    s = _dot(y, y)
    t = _dot(x, z)
    epsa = (s + mach_prec) * cbrt_mach_prec
    if abs(s - t) > epsa:
        raise NonSelfAdjointOperatorError(operator, x, y, epsa)


def init_state(state: SymmLQState) -> None:
    """Perform the first Lanczos step and seed the recurrence.

    On return, either ``state.b_is_null`` is set (:math:`b = 0` exactly, the
    solution is zero) or the state describes iteration 1.

    Raises
    ------
    NonSelfAdjointOperatorError
        If checking is enabled and :math:`A` or :math:`M` fails the probe.
    NonPositiveDefiniteOperatorError
        If :math:`b^T M b < 0` or :math:`r_2^T M r_2 < 0`.
    IllConditionedOperatorError, SingularOperatorError
        See :func:`update_norms`.

    """
    state.xl.zero_()

    # y and beta1 are zero if b = 0
    state.r1 = state.b.clone()
    state.y = state.b.clone() if state.m is None else state.m.operate(state.r1)
    if state.m is not None and state.check:
        z = state.m.operate(state.y)
        check_symmetry(state.m, state.r1, state.y, z, state.mach_prec, state.cbrt_mach_prec)

    beta1 = _dot(state.r1, state.y)
    if beta1 < 0.0:
        raise NonPositiveDefiniteOperatorError(state.m, state.y)
    if beta1 == 0.0:
        state.b_is_null = True
        return
    state.b_is_null = False
    state.beta1 = math.sqrt(beta1)

    # r1 = b, y = M b, beta1 = beta[1]
    v = state.y / state.beta1
    y = state.a.operate(v)
    if state.check:
        z = state.a.operate(y)
        check_symmetry(state.a, v, y, z, state.mach_prec, state.cbrt_mach_prec)

    # y and beta are zero or tiny if b is an eigenvector
    y = y - state.shift * v
    alpha = _dot(v, y)
    y = y - (alpha / state.beta1) * state.r1

    # Orthogonalize against the first Lanczos vector
    vty = _dot(v, y)
    vtv = _dot(v, v)
    y = y - (vty / vtv) * v

    state.r2 = y
    state.y = y if state.m is None else state.m.operate(y)
    state.oldb = state.beta1
    beta = _dot(state.r2, state.y)
    if beta < 0.0:
        raise NonPositiveDefiniteOperatorError(state.m, state.y)
    state.beta = math.sqrt(beta)

    # oldb = beta[1], beta = beta[2], r2 = beta[2] M^-1 P' v[2], y = beta[2] P' v[2]
    state.cgnorm = state.beta1
    state.gbar = alpha
    state.dbar = state.beta
    state.gamma_zeta = state.beta1
    state.minus_eps_zeta = 0.0
    state.bstep = 0.0
    state.snprod = 1.0
    state.tnorm = alpha * alpha + state.beta * state.beta
    state.ynorm2 = 0.0
    state.gmax = abs(alpha) + state.mach_prec
    state.gmin = state.gmax

    state.wbar = torch.zeros_like(state.b) if state.goodb else v
    update_norms(state)


def update_state(state: SymmLQState) -> None:
    """Advance the recurrence by one iteration.

    Performs one Lanczos step, computes the plane rotation eliminating the
    new subdiagonal entry, updates the LQ iterate and all running norms, and
    ends with :func:`update_norms`.

    Raises
    ------
    NonPositiveDefiniteOperatorError
        If the preconditioned squared norm of the new Lanczos vector is
        negative.
    IllConditionedOperatorError, SingularOperatorError
        See :func:`update_norms`.

    """
    v = state.y / state.beta
    y = state.a.operate(v)
    y = y - state.shift * v - (state.beta / state.oldb) * state.r1
    alpha = _dot(v, y)
    y = y - (alpha / state.beta) * state.r2

    # y = beta[k+1] M^-1 P' v[k+1]
    state.r1 = state.r2
    state.r2 = y
    state.y = y if state.m is None else state.m.operate(y)
    state.oldb = state.beta
    beta = _dot(state.r2, state.y)
    if beta < 0.0:
        raise NonPositiveDefiniteOperatorError(state.m, state.y)
    state.beta = math.sqrt(beta)
    state.tnorm += alpha * alpha + state.oldb * state.oldb + state.beta * state.beta

    # Plane rotation for Q, with gamma = gamma[k-1], c = c[k-1], s = s[k-1]
    gamma = math.hypot(state.gbar, state.oldb)
    c = state.gbar / gamma
    s = state.oldb / gamma
    deltak = c * state.dbar + s * alpha
    state.gbar = s * state.dbar - c * alpha
    eps = s * state.beta
    state.dbar = -c * state.beta
    zeta = state.gamma_zeta / gamma

    # xl = xL[k-1], wbar = P' wbar[k]
    state.xl.add_(state.wbar, alpha=zeta * c).add_(v, alpha=zeta * s)
    state.wbar = s * state.wbar - c * v

    state.bstep += state.snprod * c * zeta
    state.snprod *= s
    state.gmax = max(state.gmax, gamma)
    state.gmin = min(state.gmin, gamma)
    state.ynorm2 += zeta * zeta
    state.gamma_zeta = state.minus_eps_zeta - deltak * zeta
    state.minus_eps_zeta = -eps * zeta

    update_norms(state)


def update_norms(state: SymmLQState) -> None:
    """Recompute the residual estimates and apply the stopping rule.

    The LQ residual norm is exact in exact arithmetic; the CG residual norm
    assumes the CG correction is applied. Convergence is declared from the
    CG estimate only:

    .. math::

        \\|r^C\\| \\leq \\|T\\| \\, \\|y\\| \\, \\max(\\epsilon, \\delta)

    Raises
    ------
    IllConditionedOperatorError
        If the condition number estimate :math:`\\kappa` satisfies
        :math:`\\kappa \\epsilon \\geq 0.1`.
    SingularOperatorError
        If :math:`\\beta_1 \\leq \\|T\\| \\, \\|y\\| \\, \\epsilon`, i.e. the
        iterate has converged to an eigenvector of :math:`A` for the
        eigenvalue :math:`\\sigma`.

    """
    anorm = math.sqrt(state.tnorm)
    ynorm = math.sqrt(state.ynorm2)
    epsa = anorm * state.mach_prec
    epsx = anorm * ynorm * state.mach_prec
    epsr = anorm * ynorm * state.delta
    diag = state.gbar if state.gbar != 0.0 else epsa
    if diag == 0.0:
        # T is zero: the shifted operator annihilates the Krylov space
        raise IllConditionedOperatorError(math.inf)

    state.lqnorm = math.hypot(state.gamma_zeta, state.minus_eps_zeta)
    qrnorm = state.snprod * state.beta1
    state.cgnorm = qrnorm * state.beta / abs(diag)

    # T[k] can look ill-conditioned when T[k+1] is not; do not overestimate.
    if state.lqnorm <= state.cgnorm:
        acond = state.gmax / state.gmin
    else:
        acond = state.gmax / min(state.gmin, abs(diag))
    if acond * state.mach_prec >= 0.1:
        raise IllConditionedOperatorError(acond)
    if state.beta1 <= epsx:
        raise SingularOperatorError

    state.rnorm = min(state.cgnorm, state.lqnorm)
    state.converged = state.cgnorm <= epsx or state.cgnorm <= epsr


def refine_solution(state: SymmLQState, x: torch.Tensor) -> None:
    """Write the best available iterate into ``x``.

    The LQ point is reported when its residual estimate is the smaller one;
    otherwise the CG point :math:`x^L + \\bar{\\zeta} \\bar{w}` is formed on
    the fly. In good-b mode both receive the correction along :math:`M b`.

    Parameters
    ----------
    state : SymmLQState
        Initialized state.
    x : torch.Tensor
        Output vector, overwritten in place.

    """
    if state.b_is_null:
        x.zero_()
        return

    if state.lqnorm < state.cgnorm:
        x.copy_(state.xl)
        if state.goodb:
            x.add_(state.mb, alpha=state.bstep / state.beta1)
        return

    anorm = math.sqrt(state.tnorm)
    diag = state.gbar if state.gbar != 0.0 else anorm * state.mach_prec
    zbar = state.gamma_zeta / diag
    x.copy_(state.xl).add_(state.wbar, alpha=zbar)
    if state.goodb:
        step = (state.bstep + state.snprod * zbar) / state.beta1
        x.add_(state.mb, alpha=step)


def state_beta_is_zero(state: SymmLQState) -> bool:
    """Return True if the next Lanczos norm is below machine precision."""
    return state.beta < state.mach_prec


def state_has_converged(state: SymmLQState) -> bool:
    """Return True if the default stopping criterion was met."""
    return state.converged
