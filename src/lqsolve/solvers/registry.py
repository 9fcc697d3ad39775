"""Method table used by :func:`lqsolve.solve`.

Each solver module registers its functional entry point here when it is
imported, together with the method-specific keyword options it understands
(e.g. ``shift`` for SYMMLQ). :func:`lqsolve.solve` never names a solver
itself: it resolves the user supplied method name through the registry and
forwards only the options the selected method declares.

Method names are the lower-case enum values (``"symmlq"``, ``"cg"``). The
special name ``"auto"`` resolves to the registry default, SYMMLQ, which does
not require a definite operator.

Example
-------
>>> import lqsolve
>>> from lqsolve.solvers.registry import Method, registry
>>> registry.resolve("auto")
<Method.SYMMLQ: 'symmlq'>
>>> entry = registry.get(Method.CG)
>>> entry.options
frozenset()

"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from lqsolve.exceptions import SolverNotAvailableError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable


class Method(Enum):
    """Krylov methods known to lqsolve."""

    SYMMLQ = "symmlq"
    CG = "cg"


@dataclass(frozen=True)
class SolverEntry:
    """A registered solver.

    Attributes
    ----------
    method : Method
        Method implemented by ``solver_fn``.
    solver_fn : Callable
        Functional entry point, called as
        ``solver_fn(A, b, M_apply=..., tol=..., maxiter=..., check=...,
        callback=..., **options)`` and returning ``(x, info)``.
    options : frozenset[str]
        Method-specific keyword options accepted by ``solver_fn``.

    """

    method: Method
    solver_fn: Callable[..., Any]
    options: frozenset[str] = field(default_factory=frozenset)


class SolverRegistry:
    """Mapping from :class:`Method` to registered solvers.

    Parameters
    ----------
    default : Method
        Method selected by the name ``"auto"``.

    """

    AUTO = "auto"

    def __init__(self, default: Method = Method.SYMMLQ) -> None:
        self._entries: dict[Method, SolverEntry] = {}
        self._default = default

    def register(
        self,
        method: Method,
        solver_fn: Callable[..., Any],
        options: Iterable[str] = (),
    ) -> None:
        """Register (or replace) the solver of ``method``."""
        self._entries[method] = SolverEntry(method, solver_fn, frozenset(options))

    def resolve(self, name: str | Method) -> Method:
        """Translate a method name into a registered :class:`Method`.

        Parameters
        ----------
        name : str or Method
            ``"auto"``, a method value such as ``"cg"`` (case-insensitive),
            or a :class:`Method`.

        Raises
        ------
        SolverNotAvailableError
            If the name is unknown or its method is not registered.

        """
        if isinstance(name, Method):
            method = name
        elif name.lower() == self.AUTO:
            method = self._default
        else:
            try:
                method = Method(name.lower())
            except ValueError:
                raise SolverNotAvailableError(name, self.names()) from None
        if method not in self._entries:
            raise SolverNotAvailableError(method, self.names())
        return method

    def get(self, name: str | Method) -> SolverEntry:
        """Return the entry registered for ``name`` (see :meth:`resolve`)."""
        return self._entries[self.resolve(name)]

    def is_available(self, method: Method) -> bool:
        """Return True if ``method`` has a registered solver."""
        return method in self._entries

    def names(self) -> list[str]:
        """Names accepted by :meth:`resolve`, in registration order."""
        return [method.value for method in self._entries]


registry = SolverRegistry()

__all__ = [
    "Method",
    "SolverEntry",
    "SolverRegistry",
    "registry",
]
