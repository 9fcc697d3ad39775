"""Tests for iteration management."""

import pytest
import torch

import lqsolve as lq


def _event(iterations: int = 1, residual: torch.Tensor | None = None) -> lq.IterationEvent:
    x = torch.zeros(3, dtype=torch.float64)
    return lq.IterationEvent(
        source=None,
        iterations=iterations,
        solution=x,
        rhs=torch.ones(3, dtype=torch.float64),
        residual_norm=1.0,
        residual_vector=residual,
    )


class TestIterationManager:
    """Test the iteration counter."""

    def test_count_and_reset(self) -> None:
        """The count increments and resets to zero."""
        manager = lq.IterationManager(5)
        for _ in range(3):
            manager.increment_iteration_count()

        assert manager.iterations == 3
        assert manager.max_iterations == 5

        manager.reset_iteration_count()
        assert manager.iterations == 0

    def test_cap_reached_raises(self) -> None:
        """Incrementing past the cap raises MaxCountExceededError."""
        manager = lq.IterationManager(2)
        manager.increment_iteration_count()
        manager.increment_iteration_count()

        with pytest.raises(lq.MaxCountExceededError) as exc_info:
            manager.increment_iteration_count()

        assert exc_info.value.max_count == 2
        assert "2" in str(exc_info.value)

    def test_custom_callback(self) -> None:
        """A custom callback is invoked instead of raising."""
        calls: list[int] = []
        manager = lq.IterationManager(1, callback=calls.append)

        manager.increment_iteration_count()
        manager.increment_iteration_count()
        manager.increment_iteration_count()

        assert calls == [1, 1]
        assert manager.iterations == 3

    def test_negative_cap_rejected(self) -> None:
        """A negative cap raises ValueError."""
        with pytest.raises(ValueError, match="non-negative"):
            lq.IterationManager(-1)


class TestIterationListeners:
    """Test listener dispatch."""

    def test_events_dispatched_to_all_listeners(self) -> None:
        """Every listener receives every event, in registration order."""
        seen: list[tuple[str, str]] = []

        class Recorder(lq.IterationListener):
            def __init__(self, name: str) -> None:
                self.name = name

            def initialization_performed(self, event: lq.IterationEvent) -> None:
                seen.append((self.name, "init"))

            def termination_performed(self, event: lq.IterationEvent) -> None:
                seen.append((self.name, "termination"))

        manager = lq.IterationManager(10)
        manager.add_iteration_listener(Recorder("a"))
        manager.add_iteration_listener(Recorder("b"))

        event = _event()
        manager.fire_initialization_event(event)
        manager.fire_iteration_started_event(event)
        manager.fire_iteration_performed_event(event)
        manager.fire_termination_event(event)

        assert seen == [("a", "init"), ("b", "init"), ("a", "termination"), ("b", "termination")]

    def test_remove_unknown_listener(self) -> None:
        """Removing a listener that was never added is a no-op."""
        manager = lq.IterationManager(10)
        manager.remove_iteration_listener(lq.IterationListener())

    def test_callback_listener(self) -> None:
        """CallbackListener forwards performed iterations only."""
        received: list[lq.IterationEvent] = []
        manager = lq.IterationManager(10)
        manager.add_iteration_listener(lq.CallbackListener(received.append))

        event = _event(iterations=2)
        manager.fire_initialization_event(event)
        manager.fire_iteration_performed_event(event)
        manager.fire_termination_event(event)

        assert received == [event]


class TestIterationEvent:
    """Test event payload."""

    def test_residual_available(self) -> None:
        """An event built with a residual vector exposes it."""
        r = torch.tensor([1.0, 2.0, 3.0], dtype=torch.float64)
        event = _event(residual=r)

        assert event.provides_residual()
        assert event.residual is r

    def test_residual_unavailable(self) -> None:
        """Accessing a missing residual raises UnsupportedOperationError."""
        event = _event()

        assert not event.provides_residual()
        with pytest.raises(lq.UnsupportedOperationError):
            _ = event.residual
        with pytest.raises(NotImplementedError):
            _ = event.residual
