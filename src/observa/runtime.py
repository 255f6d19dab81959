"""Runtime — the entry points composing registry, views and scheduler.

A Runtime owns its dependency registry and its scheduler; runtimes never see
each other's views or reactions. The module-level functions act on
default_runtime.

Usage:
    state = observable({"count": 0})
    seen = []

    observe(lambda: seen.append(state["count"]))
    # seen == [0] — ran immediately

    state["count"] = 1
    # seen == [0] — the re-run is deferred to the next tick

    await next_tick()
    # seen == [0, 1]
"""

from __future__ import annotations

import logging
import types
import weakref
from collections.abc import MutableMapping, MutableSequence, MutableSet
from typing import Callable

from observa._registry import Registry
from observa._tracking import Defer, Scheduler
from observa.instrument import ObservableMap, ObservableSet, ObservableWeakMap, ObservableWeakSet
from observa.reaction import Reaction
from observa.views import (
    UNTRACKED_TYPES,
    ObservableList,
    View,
    is_object_like,
    is_trackable,
    object_view_class,
    unwrap,
)

logger = logging.getLogger("observa.runtime")

# (raw type, view class, whether dependency keys must be held weakly).
# Checked in order: the weak collections are mutable mappings/sets too.
_INSTRUMENTATIONS: tuple[tuple[type, type, bool], ...] = (
    (weakref.WeakKeyDictionary, ObservableWeakMap, True),
    (weakref.WeakValueDictionary, ObservableWeakMap, False),
    (weakref.WeakSet, ObservableWeakSet, True),
    (MutableMapping, ObservableMap, False),
    (MutableSet, ObservableSet, False),
    (MutableSequence, ObservableList, False),
)


def _view_class(raw: object) -> tuple[type, bool]:
    for raw_type, view_cls, weak in _INSTRUMENTATIONS:
        if isinstance(raw, raw_type):
            return view_cls, weak
    return object_view_class(type(raw)), False


class Runtime:
    """One independent reactivity context."""

    def __init__(self, defer: Defer | None = None) -> None:
        self.registry = Registry()
        self.scheduler = Scheduler(self.registry, defer)
        # Observed reactions, owned here until unobserved. Through their edges
        # they keep the objects they depend on, and those objects' views, alive.
        self._active: set[Reaction] = set()

    # --- Views ---

    def observable(self, target: object | None = None):
        """Return the observable view of target (a fresh record if omitted).

        Repeated calls return the same view; a view is returned unchanged.
        Dates, patterns, tuples and similar values are returned untracked.
        """
        if target is None:
            target = types.SimpleNamespace()
        if isinstance(target, View):
            return target
        if not is_object_like(target):
            raise TypeError(
                f"observable() expects an object or None, got {type(target).__name__}"
            )
        if isinstance(target, UNTRACKED_TYPES):
            return target
        return self._view_for(target)

    def is_observable(self, value: object) -> bool:
        if not is_object_like(value):
            raise TypeError(f"is_observable() expects an object, got {type(value).__name__}")
        return isinstance(value, View) and value._observa_target.runtime is self

    def _cached_view(self, raw: object) -> View | None:
        target = self.registry.lookup(raw)
        if target is None:
            return None
        return target.view

    def _view_for(self, raw: object) -> View:
        view = self._cached_view(raw)
        if view is None:
            view_cls, weak = _view_class(raw)
            target = self.registry.target_for(self, raw, weak)
            view = view_cls(target)
            target.view = view
        return view

    def reveal(self, value):
        """What a tracked read hands back for value.

        Inside a reaction, nested objects are wrapped so reads through them are
        tracked too. Outside, an existing view is reused but none is created.
        """
        if isinstance(value, View) or not is_trackable(value):
            return value
        if self.scheduler.running() is not None:
            return self._view_for(value)
        view = self._cached_view(value)
        return value if view is None else view

    # --- Reactions ---

    def observe(self, fn: Callable[[], object]) -> Reaction:
        """Run fn now and again whenever data it read changes.

        If the first run raises, the reaction is unobserved before the error
        propagates: the caller never got a handle to stop it with.
        """
        if not callable(fn):
            raise TypeError(f"observe() expects a callable, got {type(fn).__name__}")
        reaction = Reaction(fn, self)
        logger.debug("Observing %r", reaction)
        self._active.add(reaction)
        try:
            self.scheduler.run(reaction)
        except BaseException:
            self.unobserve(reaction)
            raise
        return reaction

    def unobserve(self, reaction: Reaction) -> None:
        """Stop reaction for good: unqueue it and release every edge."""
        self._check(reaction)
        self.scheduler.unqueue(reaction)
        self.registry.release(reaction)
        reaction._observed = False
        self._active.discard(reaction)
        logger.debug("Unobserved %r", reaction)

    def unqueue(self, reaction: Reaction) -> None:
        """Skip reaction on the next flush; later changes queue it again."""
        self._check(reaction)
        self.scheduler.unqueue(reaction)

    def execute(self, reaction: Reaction) -> object:
        """Run reaction synchronously, outside the pending set."""
        self._check(reaction)
        reaction._observed = True
        self._active.add(reaction)
        return self.scheduler.run(reaction)

    def _check(self, reaction: Reaction) -> None:
        if not isinstance(reaction, Reaction):
            raise TypeError(
                f"expected a Reaction returned by observe(), got {type(reaction).__name__}"
            )
        if reaction._runtime is not self:
            raise ValueError(f"{reaction!r} belongs to a different runtime")

    # --- Scheduling ---

    def set_scheduler(self, defer: Defer | None) -> None:
        """Install the deferral primitive flushes are scheduled with.

        defer(callback) must run callback once, after the current synchronous
        work. None restores the default (asyncio loop, else tick()).
        """
        self.scheduler.set_defer(defer)

    def next_tick(self, fn: Callable[[], object] | None = None):
        return self.scheduler.next_tick(fn)

    def flush(self) -> None:
        self.scheduler.flush()

    def tick(self) -> int:
        return self.scheduler.tick()

    @property
    def pending_count(self) -> int:
        return self.scheduler.pending_count

    def reset(self) -> None:
        """Drop pending work and restore the default deferral. For tests."""
        self.scheduler.reset()
        self.scheduler.set_defer(None)


default_runtime = Runtime()


def observable(target=None):
    """Wrap target for tracking. See Runtime.observable."""
    return default_runtime.observable(target)


def is_observable(value: object) -> bool:
    return default_runtime.is_observable(value)


def raw(value):
    """The raw object behind a view; any other value is returned as is."""
    return unwrap(value)


def observe(fn: Callable[[], object]) -> Reaction:
    """Run fn immediately, then re-run it after any change to data it read.

    Returns the Reaction (pass it to unobserve() to stop).

    Usage:
        counter = observable(SimpleNamespace(value=0))
        log = []

        r = observe(lambda: log.append(counter.value))
        # log == [0] — ran immediately

        counter.value = 1
        tick()
        # log == [0, 1] — re-ran on the next tick

        unobserve(r)
        counter.value = 2
        tick()
        # log == [0, 1] — stopped
    """
    return default_runtime.observe(fn)


def unobserve(reaction: Reaction) -> None:
    default_runtime.unobserve(reaction)


def unqueue(reaction: Reaction) -> None:
    default_runtime.unqueue(reaction)


def execute(reaction: Reaction) -> object:
    return default_runtime.execute(reaction)


def next_tick(fn: Callable[[], object] | None = None):
    """Schedule fn after the current synchronous work; return a future of its result.

    Inside a running event loop the future is an asyncio.Future; awaiting it
    also waits for every flush scheduled before it. Outside, it is a
    concurrent.futures.Future resolved by tick().
    """
    return default_runtime.next_tick(fn)


def set_scheduler(defer: Defer | None) -> None:
    """Set the deferral primitive of the default runtime.

    Call once at startup, e.g. with a UI framework's "call later" hook:
        observa.set_scheduler(loop.call_soon_threadsafe)
    """
    default_runtime.set_scheduler(defer)


def flush() -> None:
    """Run the pending reactions now instead of on the next tick."""
    default_runtime.flush()


def tick() -> int:
    """Run deferred callbacks queued while no event loop was running."""
    return default_runtime.tick()


def get_pending_count() -> int:
    """Number of reactions waiting for the next flush. Useful for testing."""
    return default_runtime.pending_count
