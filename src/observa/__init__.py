"""Observa: transparent reactivity for plain Python data."""

from importlib.metadata import version as _version

__version__ = _version("observa")

from observa._registry import ENUMERATE, ITERATE, LENGTH
from observa.views import View, ObservableObject, ObservableList
from observa.instrument import ObservableMap, ObservableSet, ObservableWeakMap, ObservableWeakSet
from observa.reaction import Reaction
from observa.runtime import (
    Runtime,
    default_runtime,
    observable,
    is_observable,
    raw,
    observe,
    unobserve,
    unqueue,
    execute,
    next_tick,
    set_scheduler,
    flush,
    tick,
    get_pending_count,
)

__all__ = [
    "observable",
    "is_observable",
    "raw",
    "observe",
    "unobserve",
    "unqueue",
    "execute",
    "next_tick",
    "set_scheduler",
    "flush",
    "tick",
    "get_pending_count",
    "Runtime",
    "default_runtime",
    "Reaction",
    "View",
    "ObservableObject",
    "ObservableList",
    "ObservableMap",
    "ObservableSet",
    "ObservableWeakMap",
    "ObservableWeakSet",
    "ENUMERATE",
    "ITERATE",
    "LENGTH",
]
