"""Reactions — computations re-run when the data they read changes.

A Reaction is the handle observe() hands back. It owns the set of dependency
buckets it joined during its last run, so unobserve() can tear every edge down
without scanning the registry.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from observa._registry import _Bucket
    from observa.runtime import Runtime


class Reaction:
    """A tracked zero-argument computation."""

    __slots__ = ("_fn", "_edges", "_runtime", "_observed", "_depth", "__weakref__")

    def __init__(self, fn: Callable[[], object], runtime: Runtime) -> None:
        self._fn = fn
        self._edges: set[_Bucket] = set()
        self._runtime = runtime
        self._observed = True
        # Nesting depth of runs in progress; 0 when idle.
        self._depth = 0

    @property
    def fn(self) -> Callable[[], object]:
        return self._fn

    @property
    def observed(self) -> bool:
        """False once unobserved, until the reaction is executed again."""
        return self._observed

    @property
    def dependency_count(self) -> int:
        """Number of (object, key) pairs this reaction currently depends on."""
        return len(self._edges)

    def dispose(self) -> None:
        """Stop this reaction. Same as unobserve(reaction)."""
        self._runtime.unobserve(self)

    def __repr__(self) -> str:
        state = "active" if self._observed else "inert"
        name = getattr(self._fn, "__name__", type(self._fn).__name__)
        return f"Reaction({name}, {state})"
