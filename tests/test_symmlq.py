"""Tests for the SYMMLQ solver.

This module tests SYMMLQ against dense reference solutions for definite,
indefinite, shifted and preconditioned systems, and checks the event sequence
and the numerical safeguards.
"""

import logging
import math

import pytest
import torch

import lqsolve as lq
from lqsolve.solvers.symmlq_state import SymmLQState, refine_solution, update_norms


def _symmetric_matrix(eigenvalues: torch.Tensor, seed: int = 0) -> torch.Tensor:
    """Return an exactly symmetric matrix with the given spectrum."""
    n = eigenvalues.numel()
    g = torch.Generator().manual_seed(seed)
    q, _ = torch.linalg.qr(torch.randn(n, n, dtype=torch.float64, generator=g))
    a = q @ torch.diag(eigenvalues) @ q.T
    return 0.5 * (a + a.T)


def _spd_matrix(n: int = 20, seed: int = 0) -> torch.Tensor:
    return _symmetric_matrix(torch.linspace(1.0, 10.0, n, dtype=torch.float64), seed)


def _indefinite_matrix(n: int = 20, seed: int = 1) -> torch.Tensor:
    half = n // 2
    eigenvalues = torch.cat(
        [
            torch.linspace(-10.0, -1.0, half, dtype=torch.float64),
            torch.linspace(1.0, 10.0, n - half, dtype=torch.float64),
        ]
    )
    return _symmetric_matrix(eigenvalues, seed)


def _random_vector(n: int = 20, seed: int = 42) -> torch.Tensor:
    g = torch.Generator().manual_seed(seed)
    return torch.randn(n, dtype=torch.float64, generator=g)


def _relative_residual(a: torch.Tensor, x: torch.Tensor, b: torch.Tensor) -> float:
    return (torch.linalg.norm(a @ x - b) / torch.linalg.norm(b)).item()


class EventRecorder(lq.IterationListener):
    """Listener recording the kind and iteration count of every event."""

    def __init__(self) -> None:
        self.events: list[tuple[str, int]] = []

    def initialization_performed(self, event: lq.IterationEvent) -> None:
        self.events.append(("init", event.iterations))

    def iteration_started(self, event: lq.IterationEvent) -> None:
        self.events.append(("started", event.iterations))

    def iteration_performed(self, event: lq.IterationEvent) -> None:
        self.events.append(("performed", event.iterations))

    def termination_performed(self, event: lq.IterationEvent) -> None:
        self.events.append(("termination", event.iterations))

    @property
    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.events]


class TestSymmLQReference:
    """Test SYMMLQ against dense reference solutions."""

    def test_identity_single_iteration(self) -> None:
        """Identity operator is solved exactly during initialization."""
        b = torch.ones(4, dtype=torch.float64)
        solver = lq.SymmLQ(max_iterations=10)
        recorder = EventRecorder()
        solver.manager.add_iteration_listener(recorder)

        x = solver.solve(torch.eye(4, dtype=torch.float64), b)

        torch.testing.assert_close(x, b)
        assert solver.manager.iterations == 1
        assert recorder.kinds == ["init", "termination"]

    def test_scaled_identity(self) -> None:
        """2 I x = (2, 2, 2, 2) gives x = (1, 1, 1, 1)."""
        a = 2.0 * torch.eye(4, dtype=torch.float64)
        b = torch.full((4,), 2.0, dtype=torch.float64)

        x, info = lq.symmlq(a, b, tol=1e-10)

        torch.testing.assert_close(x, torch.ones(4, dtype=torch.float64))
        assert info.converged
        assert info.iters == 1

    def test_spd_matches_dense_solve(self) -> None:
        """SYMMLQ solution matches torch.linalg.solve on an SPD matrix."""
        a = _spd_matrix()
        b = _random_vector()

        x, info = lq.symmlq(a, b, tol=1e-12)
        x_dense = torch.linalg.solve(a, b)

        rel_error = (torch.linalg.norm(x - x_dense) / torch.linalg.norm(x_dense)).item()
        assert info.converged
        assert rel_error < 1e-8, f"Relative error too large: {rel_error}"
        assert _relative_residual(a, x, b) < 1e-8

    def test_indefinite_matches_dense_solve(self) -> None:
        """SYMMLQ handles symmetric indefinite matrices."""
        a = _indefinite_matrix()
        b = _random_vector()

        x, info = lq.symmlq(a, b, tol=1e-12)
        x_dense = torch.linalg.solve(a, b)

        rel_error = (torch.linalg.norm(x - x_dense) / torch.linalg.norm(x_dense)).item()
        assert info.converged
        assert rel_error < 1e-8, f"Relative error too large: {rel_error}"

    def test_matrix_free_operator(self) -> None:
        """A callable operator gives the same answer as the dense matrix."""
        a = _indefinite_matrix()
        b = _random_vector()

        x_dense_op, _ = lq.symmlq(a, b, tol=1e-12)
        x_callable, _ = lq.symmlq(lambda v: a @ v, b, tol=1e-12)

        torch.testing.assert_close(x_callable, x_dense_op)

    def test_shifted_system(self) -> None:
        """SYMMLQ with a shift solves (A - shift I) x = b."""
        a = _spd_matrix()
        b = _random_vector()
        shift = 0.5

        x, info = lq.symmlq(a, b, shift=shift, tol=1e-12)
        shifted = a - shift * torch.eye(a.shape[0], dtype=torch.float64)

        assert info.converged
        assert _relative_residual(shifted, x, b) < 1e-8

    def test_zero_shift_is_plain_solve(self) -> None:
        """A zero shift gives bit-identical results to no shift."""
        a = _indefinite_matrix()
        b = _random_vector()
        solver = lq.SymmLQ(max_iterations=200)

        x_plain = solver.solve(a, b)
        x_shift = solver.solve(a, b, shift=0.0)

        assert torch.equal(x_plain, x_shift)

    def test_goodb_matches_dense_solve(self) -> None:
        """Good-b mode converges to the same solution."""
        a = _indefinite_matrix()
        b = _random_vector()

        x, info = lq.symmlq(a, b, goodb=True, tol=1e-12)
        x_dense = torch.linalg.solve(a, b)

        rel_error = (torch.linalg.norm(x - x_dense) / torch.linalg.norm(x_dense)).item()
        assert info.converged
        assert rel_error < 1e-8, f"Relative error too large: {rel_error}"

    def test_goodb_with_shift_and_preconditioner(self) -> None:
        """Good-b mode combined with shift and preconditioner."""
        a = _spd_matrix() + torch.diag(torch.linspace(1.0, 20.0, 20, dtype=torch.float64))
        b = _random_vector()
        shift = 0.25
        m = lq.JacobiPreconditioner.create(lq.MatrixOperator(a))

        x, info = lq.symmlq(a, b, m, goodb=True, shift=shift, tol=1e-12)
        shifted = a - shift * torch.eye(20, dtype=torch.float64)

        assert info.converged
        assert _relative_residual(shifted, x, b) < 1e-8

    def test_jacobi_preconditioned(self) -> None:
        """Preconditioned and unpreconditioned solves agree."""
        scales = torch.linspace(1.0, 30.0, 20, dtype=torch.float64)
        a = _spd_matrix() + torch.diag(scales)
        b = _random_vector()
        m = lq.JacobiPreconditioner.create(lq.MatrixOperator(a))

        x_prec, info_prec = lq.symmlq(a, b, m, tol=1e-12)
        x_plain, _ = lq.symmlq(a, b, tol=1e-12)

        assert info_prec.converged
        torch.testing.assert_close(x_prec, x_plain, rtol=1e-7, atol=1e-9)

    def test_float32_solve(self) -> None:
        """Machine precision follows the dtype of b."""
        a = _spd_matrix().to(torch.float32)
        b = _random_vector().to(torch.float32)

        x, _ = lq.symmlq(a, b, tol=1e-6)

        assert x.dtype == torch.float32
        assert _relative_residual(a, x, b) < 1e-3


class TestSymmLQSolveInPlace:
    """Test output buffer semantics."""

    def test_previous_content_ignored(self) -> None:
        """The content of x is never used as an initial guess."""
        a = _spd_matrix()
        b = _random_vector()
        solver = lq.SymmLQ(max_iterations=200)

        x = torch.full((20,), 7.0, dtype=torch.float64)
        out = solver.solve_in_place(a, b, x)

        assert out is x
        assert torch.equal(x, solver.solve(a, b))

    def test_repeated_solves_identical(self) -> None:
        """Solving twice with the same solver gives identical results."""
        a = _indefinite_matrix()
        b = _random_vector()
        solver = lq.SymmLQ(max_iterations=200, delta=1e-12)

        x1 = solver.solve(a, b)
        iters1 = solver.manager.iterations
        x2 = solver.solve(a, b)

        assert torch.equal(x1, x2)
        assert solver.manager.iterations == iters1

    def test_solve_does_not_modify_inputs(self) -> None:
        """solve() leaves b and the template vector untouched."""
        a = _spd_matrix()
        b = _random_vector()
        b_copy = b.clone()
        template = torch.full((20,), 3.0, dtype=torch.float64)

        lq.SymmLQ(max_iterations=200).solve(a, b, template)

        assert torch.equal(b, b_copy)
        assert torch.equal(template, torch.full((20,), 3.0, dtype=torch.float64))


class TestSymmLQEvents:
    """Test the sequence of iteration events."""

    def test_event_order(self) -> None:
        """Init, started/performed pairs, then termination."""
        a = _spd_matrix()
        b = _random_vector()
        solver = lq.SymmLQ(max_iterations=200)
        recorder = EventRecorder()
        solver.manager.add_iteration_listener(recorder)

        solver.solve(a, b)

        kinds = recorder.kinds
        assert kinds[0] == "init"
        assert kinds[-1] == "termination"
        middle = kinds[1:-1]
        assert len(middle) > 0
        assert middle == ["started", "performed"] * (len(middle) // 2)

        counts = [count for _, count in recorder.events]
        assert counts[0] == 1
        assert counts[1] == 2
        assert counts[-1] == solver.manager.iterations

    def test_zero_rhs(self) -> None:
        """b = 0 returns x = 0 with only init and termination events."""
        a = _spd_matrix()
        b = torch.zeros(20, dtype=torch.float64)
        solver = lq.SymmLQ(max_iterations=10)
        recorder = EventRecorder()
        solver.manager.add_iteration_listener(recorder)

        x = solver.solve_in_place(a, b, torch.ones(20, dtype=torch.float64))

        assert torch.equal(x, torch.zeros(20, dtype=torch.float64))
        assert recorder.events == [("init", 1), ("termination", 1)]

    def test_event_has_no_residual_vector(self) -> None:
        """SYMMLQ events only carry a residual norm estimate."""
        events: list[lq.IterationEvent] = []
        a = _spd_matrix()
        b = _random_vector()

        lq.symmlq(a, b, callback=events.append)

        assert len(events) > 0
        assert not events[-1].provides_residual()
        with pytest.raises(lq.UnsupportedOperationError):
            _ = events[-1].residual
        assert events[-1].residual_norm >= 0.0

    def test_listener_removal(self) -> None:
        """A removed listener receives no further events."""
        solver = lq.SymmLQ(max_iterations=200)
        recorder = EventRecorder()
        solver.manager.add_iteration_listener(recorder)
        solver.manager.remove_iteration_listener(recorder)

        solver.solve(_spd_matrix(), _random_vector())

        assert recorder.events == []

    def test_debug_logging(self, caplog: pytest.LogCaptureFixture) -> None:
        """Solve start and end are logged at debug level."""
        caplog.set_level(logging.DEBUG, logger="lqsolve")

        lq.symmlq(_spd_matrix(), _random_vector())

        messages = [record.getMessage() for record in caplog.records]
        assert any(msg.startswith("SYMMLQ start") for msg in messages)
        assert any(msg.startswith("SYMMLQ done") for msg in messages)


class ResidualChecker(lq.IterationListener):
    """Listener comparing the reported residual norm with b - (A - shift I) x."""

    def __init__(self, a: torch.Tensor, shift: float) -> None:
        self.shifted = a - shift * torch.eye(a.shape[0], dtype=a.dtype)
        self.mismatches: list[tuple[int, float, float]] = []
        self.count = 0

    def iteration_performed(self, event: lq.IterationEvent) -> None:
        self.count += 1
        actual = torch.linalg.norm(event.rhs - self.shifted @ event.solution).item()
        if abs(actual - event.residual_norm) > 1e-6 * torch.linalg.norm(event.rhs).item():
            self.mismatches.append((event.iterations, actual, event.residual_norm))


class TestSymmLQIterates:
    """Test every intermediate iterate, not only the final one."""

    @pytest.mark.parametrize("goodb", [False, True])
    def test_residual_estimate_matches_iterate(self, goodb: bool) -> None:
        """The reported norm is the residual of the reported iterate."""
        a = _indefinite_matrix(30, seed=3)
        b = _random_vector(30)
        shift = 0.3
        checker = ResidualChecker(a, shift)

        lq.symmlq(a, b, goodb=goodb, shift=shift, tol=1e-12, listeners=[checker])

        assert checker.count > 10
        assert checker.mismatches == []


class TestSymmLQErrors:
    """Test error reporting."""

    def test_non_self_adjoint_operator(self) -> None:
        """An asymmetric A is rejected before any event is fired."""
        a = torch.tensor([[1.0, 2.0], [0.0, 1.0]], dtype=torch.float64)
        b = torch.tensor([1.0, 1.0], dtype=torch.float64)
        solver = lq.SymmLQ(max_iterations=10, check=True)
        recorder = EventRecorder()
        solver.manager.add_iteration_listener(recorder)

        with pytest.raises(lq.NonSelfAdjointOperatorError) as exc_info:
            solver.solve(a, b)

        assert recorder.events == []
        assert exc_info.value.threshold > 0.0
        assert isinstance(exc_info.value.operator, lq.MatrixOperator)

    def test_non_self_adjoint_preconditioner(self) -> None:
        """An asymmetric M is rejected when checking is enabled."""
        a = torch.eye(2, dtype=torch.float64)
        m = torch.tensor([[1.0, 2.0], [0.0, 1.0]], dtype=torch.float64)
        b = torch.tensor([1.0, 1.0], dtype=torch.float64)

        with pytest.raises(lq.NonSelfAdjointOperatorError):
            lq.SymmLQ(max_iterations=10, check=True).solve(a, b, m=m)

    def test_negative_definite_preconditioner(self) -> None:
        """A preconditioner with b^T M b < 0 raises."""
        a = torch.eye(2, dtype=torch.float64)
        m = -torch.eye(2, dtype=torch.float64)
        b = torch.tensor([1.0, 1.0], dtype=torch.float64)

        with pytest.raises(lq.NonPositiveDefiniteOperatorError):
            lq.SymmLQ(max_iterations=10).solve(a, b, m=m)

    def test_dimension_mismatch(self) -> None:
        """b with the wrong size raises before any iteration."""
        a = _spd_matrix(4)
        b = torch.ones(5, dtype=torch.float64)

        with pytest.raises(lq.DimensionMismatchError) as exc_info:
            lq.SymmLQ(max_iterations=10).solve(a, b)

        assert exc_info.value.actual == 5
        assert exc_info.value.expected == 4

    def test_non_square_operator(self) -> None:
        """A rectangular operator raises NonSquareOperatorError."""
        a = torch.ones(3, 4, dtype=torch.float64)
        b = torch.ones(3, dtype=torch.float64)

        with pytest.raises(lq.NonSquareOperatorError):
            lq.SymmLQ(max_iterations=10).solve_in_place(a, b, torch.zeros(4, dtype=torch.float64))

    def test_preconditioner_dimension_mismatch(self) -> None:
        """A preconditioner of the wrong size raises."""
        a = _spd_matrix(4)
        b = torch.ones(4, dtype=torch.float64)
        m = torch.eye(3, dtype=torch.float64)

        with pytest.raises(lq.DimensionMismatchError):
            lq.SymmLQ(max_iterations=10).solve(a, b, m=m)

    def test_output_aliasing_rhs(self) -> None:
        """Passing b itself (or a view of it) as x is rejected."""
        a = _spd_matrix(4)
        b = torch.ones(4, dtype=torch.float64)
        solver = lq.SymmLQ(max_iterations=10)

        with pytest.raises(ValueError, match="share memory"):
            solver.solve_in_place(a, b, b)
        with pytest.raises(ValueError, match="share memory"):
            solver.solve_in_place(a, b, b.view(4))

        assert torch.equal(b, torch.ones(4, dtype=torch.float64))

    def test_max_iterations_exceeded(self) -> None:
        """The default manager callback raises at the iteration cap."""
        with pytest.raises(lq.MaxCountExceededError) as exc_info:
            lq.SymmLQ(max_iterations=2).solve(_spd_matrix(), _random_vector())

        assert exc_info.value.max_count == 2

    def test_max_iterations_custom_callback(self) -> None:
        """A callback that returns lets the solve run to convergence."""
        calls: list[int] = []
        manager = lq.IterationManager(2, callback=calls.append)
        a = _spd_matrix()
        b = _random_vector()

        x = lq.SymmLQ(manager=manager).solve(a, b)

        assert len(calls) > 0
        assert all(count == 2 for count in calls)
        assert _relative_residual(a, x, b) < 1e-7

    def test_eigenvector_with_matching_shift(self) -> None:
        """b eigenvector of A for the shift makes A - shift I singular on K(b)."""
        a = torch.diag(torch.tensor([1.0, 2.0, 3.0], dtype=torch.float64))
        b = torch.tensor([1.0, 0.0, 0.0], dtype=torch.float64)

        with pytest.raises((lq.IllConditionedOperatorError, lq.SingularOperatorError)):
            lq.SymmLQ(max_iterations=10).solve(a, b, shift=1.0)


class TestUpdateNorms:
    """Unit tests of the stopping rule and safeguards."""

    @staticmethod
    def _state() -> SymmLQState:
        a = lq.MatrixOperator(torch.eye(2, dtype=torch.float64))
        state = SymmLQState(a=a, b=torch.ones(2, dtype=torch.float64), delta=1e-10)
        state.tnorm = 1.0
        state.ynorm2 = 1.0
        state.gbar = 1.0
        state.gamma_zeta = 1.0
        state.minus_eps_zeta = 0.0
        state.snprod = 1.0
        state.beta1 = 1.0
        state.beta = 1.0
        state.gmax = 1.0
        state.gmin = 1.0
        return state

    def test_not_converged(self) -> None:
        """Large residual estimates do not satisfy the stopping rule."""
        state = self._state()

        update_norms(state)

        assert state.lqnorm == pytest.approx(1.0)
        assert state.cgnorm == pytest.approx(1.0)
        assert state.rnorm == pytest.approx(1.0)
        assert not state.converged

    def test_converged(self) -> None:
        """A vanishing CG residual estimate satisfies the stopping rule."""
        state = self._state()
        state.beta = 0.0

        update_norms(state)

        assert state.cgnorm == 0.0
        assert state.converged

    def test_ill_conditioned(self) -> None:
        """A huge condition estimate raises IllConditionedOperatorError."""
        state = self._state()
        state.gmax = 1e20

        with pytest.raises(lq.IllConditionedOperatorError) as exc_info:
            update_norms(state)

        assert exc_info.value.condition_number == pytest.approx(1e20)

    def test_singular(self) -> None:
        """beta1 below ||T|| ||y|| eps raises SingularOperatorError."""
        state = self._state()
        state.beta1 = 1e-20

        with pytest.raises(lq.SingularOperatorError):
            update_norms(state)

    def test_zero_tridiagonal(self) -> None:
        """A zero projected operator is reported as infinitely ill-conditioned."""
        state = self._state()
        state.tnorm = 0.0
        state.gbar = 0.0

        with pytest.raises(lq.IllConditionedOperatorError) as exc_info:
            update_norms(state)

        assert math.isinf(exc_info.value.condition_number)

    def test_convergence_from_cg_estimate_only(self) -> None:
        """A vanishing LQ residual does not stop the iteration."""
        state = self._state()
        state.gamma_zeta = 0.0
        state.minus_eps_zeta = 0.0

        update_norms(state)

        assert state.lqnorm == 0.0
        assert state.cgnorm == pytest.approx(1.0)
        assert state.rnorm == 0.0
        assert not state.converged


class TestRefineSolution:
    """Unit tests of the LQ/CG point selection."""

    @staticmethod
    def _state(goodb: bool) -> SymmLQState:
        a = lq.MatrixOperator(torch.eye(2, dtype=torch.float64))
        state = SymmLQState(a=a, b=torch.ones(2, dtype=torch.float64), goodb=goodb)
        state.xl = torch.tensor([1.0, 2.0], dtype=torch.float64)
        state.wbar = torch.tensor([1.0, 0.0], dtype=torch.float64)
        state.beta1 = 4.0
        state.bstep = 2.0
        state.snprod = 0.5
        state.gbar = 2.0
        state.gamma_zeta = 4.0
        state.tnorm = 1.0
        return state

    @pytest.mark.parametrize(
        ("goodb", "expected"),
        [(False, [1.0, 2.0]), (True, [1.5, 2.5])],
    )
    def test_lq_point(self, goodb: bool, expected: list[float]) -> None:
        """x = xL (+ bstep / beta1 M b) when the LQ estimate is smaller."""
        state = self._state(goodb)
        state.lqnorm = 0.1
        state.cgnorm = 1.0
        x = torch.zeros(2, dtype=torch.float64)

        refine_solution(state, x)

        torch.testing.assert_close(x, torch.tensor(expected, dtype=torch.float64))

    @pytest.mark.parametrize(
        ("goodb", "expected"),
        [(False, [3.0, 2.0]), (True, [3.75, 2.75])],
    )
    def test_cg_point(self, goodb: bool, expected: list[float]) -> None:
        """x = xL + zbar wbar (+ (bstep + snprod zbar) / beta1 M b) otherwise."""
        state = self._state(goodb)
        state.lqnorm = 1.0
        state.cgnorm = 0.1
        x = torch.zeros(2, dtype=torch.float64)

        refine_solution(state, x)

        torch.testing.assert_close(x, torch.tensor(expected, dtype=torch.float64))

    def test_null_rhs(self) -> None:
        """A zero right-hand side gives x = 0."""
        state = self._state(False)
        state.b_is_null = True
        x = torch.ones(2, dtype=torch.float64)

        refine_solution(state, x)

        assert torch.equal(x, torch.zeros(2, dtype=torch.float64))
