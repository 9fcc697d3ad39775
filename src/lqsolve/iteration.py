"""Iteration telemetry for iterative solvers.

This module provides the observation contract of the iterative solvers:

- :class:`IterationEvent`: Snapshot of a solver at a given iteration
- :class:`IterationListener`: Base class for objects notified of events
- :class:`IterationManager`: Iteration counter with a cap and listener fan-out

A solve emits events in a fixed order::

    initialization
    iteration started, iteration performed   (once per iteration)
    termination                              (exactly once)

The iteration count is incremented *before* each "started" event, and the
initialization phase of a solve counts as the first iteration.

Example
-------
>>> import lqsolve as lq
>>> class Printer(lq.IterationListener):
...     def iteration_performed(self, event):
...         print(event.iterations, event.residual_norm)
>>> solver = lq.SymmLQ(max_iterations=100, delta=1e-10)
>>> solver.manager.add_iteration_listener(Printer())

"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from lqsolve.exceptions import MaxCountExceededError, UnsupportedOperationError

if TYPE_CHECKING:
    from collections.abc import Callable

    import torch


@dataclass(frozen=True, eq=False)
class IterationEvent:
    """Snapshot of an iterative linear solver.

    Attributes
    ----------
    source : Any
        The solver that emitted the event.
    iterations : int
        Number of iterations performed so far (initialization included).
    solution : torch.Tensor
        Current estimate of the solution. This is the vector being updated by
        the solver; listeners must not modify it.
    rhs : torch.Tensor
        Right-hand side vector of the system.
    residual_norm : float
        Norm of the (possibly preconditioned) residual. For SYMMLQ this is an
        estimate obtained from the recurrence, not an explicit computation.
    residual_vector : torch.Tensor, optional
        Residual vector, if the solver provides it.

    """

    source: Any
    iterations: int
    solution: torch.Tensor
    rhs: torch.Tensor
    residual_norm: float
    residual_vector: torch.Tensor | None = None

    def provides_residual(self) -> bool:
        """Return True if :attr:`residual` can be accessed."""
        return self.residual_vector is not None

    @property
    def residual(self) -> torch.Tensor:
        """Residual vector :math:`r = b - A x`.

        Raises
        ------
        UnsupportedOperationError
            If the solver does not provide the residual vector.

        """
        if self.residual_vector is None:
            msg = f"{type(self.source).__name__} does not provide the residual vector."
            raise UnsupportedOperationError(msg)
        return self.residual_vector


class IterationListener:
    """Base class for objects observing an iterative solver.

    All hooks are no-ops; subclasses override the ones they need.

    """

    def initialization_performed(self, event: IterationEvent) -> None:
        """Invoked after the initialization phase of a solve."""

    def iteration_started(self, event: IterationEvent) -> None:
        """Invoked at the start of each iteration."""

    def iteration_performed(self, event: IterationEvent) -> None:
        """Invoked at the end of each iteration."""

    def termination_performed(self, event: IterationEvent) -> None:
        """Invoked once, when the solve terminates."""


def _raise_max_count_exceeded(max_count: int) -> None:
    raise MaxCountExceededError(max_count)


class IterationManager:
    """Iteration counter and listener registry.

    Parameters
    ----------
    max_iterations : int
        Maximum number of iterations.
    callback : Callable[[int], None], optional
        Invoked with ``max_iterations`` each time the count is incremented
        past the cap. Defaults to raising :class:`MaxCountExceededError`. A
        callback that returns normally lets the iteration continue.

    Example
    -------
    >>> manager = IterationManager(10)
    >>> manager.increment_iteration_count()
    >>> manager.iterations
    1

    """

    def __init__(
        self,
        max_iterations: int,
        callback: Callable[[int], None] | None = None,
    ) -> None:
        if max_iterations < 0:
            msg = f"max_iterations must be non-negative, got {max_iterations}."
            raise ValueError(msg)
        self._max_iterations = max_iterations
        self._callback = _raise_max_count_exceeded if callback is None else callback
        self._count = 0
        self._listeners: list[IterationListener] = []

    @property
    def iterations(self) -> int:
        """Number of iterations counted since the last reset."""
        return self._count

    @property
    def max_iterations(self) -> int:
        """The iteration cap."""
        return self._max_iterations

    def reset_iteration_count(self) -> None:
        """Reset the iteration count to zero."""
        self._count = 0

    def increment_iteration_count(self) -> None:
        """Increment the iteration count.

        Raises
        ------
        MaxCountExceededError
            If the count exceeds :attr:`max_iterations` and the default
            callback is in use.

        """
        self._count += 1
        if self._count > self._max_iterations:
            self._callback(self._max_iterations)

    def add_iteration_listener(self, listener: IterationListener) -> None:
        """Attach a listener."""
        self._listeners.append(listener)

    def remove_iteration_listener(self, listener: IterationListener) -> None:
        """Detach a listener. Unknown listeners are ignored."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    def fire_initialization_event(self, event: IterationEvent) -> None:
        """Notify all listeners that the initialization was performed."""
        for listener in list(self._listeners):
            listener.initialization_performed(event)

    def fire_iteration_started_event(self, event: IterationEvent) -> None:
        """Notify all listeners that an iteration started."""
        for listener in list(self._listeners):
            listener.iteration_started(event)

    def fire_iteration_performed_event(self, event: IterationEvent) -> None:
        """Notify all listeners that an iteration was performed."""
        for listener in list(self._listeners):
            listener.iteration_performed(event)

    def fire_termination_event(self, event: IterationEvent) -> None:
        """Notify all listeners that the solve terminated."""
        for listener in list(self._listeners):
            listener.termination_performed(event)


class CallbackListener(IterationListener):
    """Listener forwarding each performed iteration to a callable.

    Parameters
    ----------
    callback : Callable[[IterationEvent], None]
        Called as ``callback(event)`` after each iteration.

    """

    def __init__(self, callback: Callable[[IterationEvent], None]) -> None:
        self._callback = callback

    def iteration_performed(self, event: IterationEvent) -> None:
        """Forward the event to the callback."""
        self._callback(event)


__all__ = [
    "CallbackListener",
    "IterationEvent",
    "IterationListener",
    "IterationManager",
]
