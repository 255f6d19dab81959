"""Dependency registry — who depends on which (object, key) pair.

Edges are stored per tracked object as key -> bucket of reactions, because
writes look dependents up by (object, key). Each reaction keeps the set of
buckets it joined, so teardown never has to scan the table.

Raw dicts and lists cannot be weakly referenced, so targets are indexed by
id(raw). A _Target holds its raw object and its view. From outside it is held
only through that view and through the buckets reactions joined, so once
neither is reachable the table entry (and the raw object) goes away.
"""

from __future__ import annotations

import weakref
from typing import TYPE_CHECKING, Callable, Hashable

if TYPE_CHECKING:
    from observa.reaction import Reaction
    from observa.views import View


class _SyntheticKey:
    __slots__ = ("name",)

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return self.name


# Interest in the key-set shape of a record or sequence.
ENUMERATE = _SyntheticKey("ENUMERATE")
# Interest in the aggregate shape of a collection (size, full traversal).
ITERATE = _SyntheticKey("ITERATE")
# The length marker of ordered sequences. Writes to it always enqueue.
LENGTH = _SyntheticKey("LENGTH")


class _Bucket:
    """The reactions depending on one (target, key) pair."""

    __slots__ = ("target", "key", "reactions", "__weakref__")

    def __init__(self, target: _Target, key: Hashable | None) -> None:
        self.target = target
        # None for weak targets: holding the key would keep it alive.
        self.key = key
        # Insertion-ordered set: dependents are queued in registration order.
        self.reactions: dict[Reaction, None] = {}


class _Target:
    """Tracking state of one raw object."""

    __slots__ = ("runtime", "raw", "buckets", "view", "__weakref__")

    def __init__(self, runtime, raw: object, weak: bool = False) -> None:
        self.runtime = runtime
        self.raw = raw
        self.buckets = weakref.WeakKeyDictionary() if weak else {}
        # Strong: the view lives as long as the target does. The cycle is
        # collected once neither the view nor any edge is referenced.
        self.view: View | None = None

    @property
    def weak(self) -> bool:
        return isinstance(self.buckets, weakref.WeakKeyDictionary)

    def __repr__(self) -> str:
        return f"_Target({type(self.raw).__name__}, {len(self.buckets)} keys)"


class Registry:
    """Per-object table of key -> reactions, plus per-reaction cleanup sets."""

    def __init__(self) -> None:
        self._targets: weakref.WeakValueDictionary[int, _Target] = weakref.WeakValueDictionary()

    def lookup(self, raw: object) -> _Target | None:
        target = self._targets.get(id(raw))
        if target is not None and target.raw is raw:
            return target
        return None

    def target_for(self, runtime, raw: object, weak: bool = False) -> _Target:
        """Return the tracking state for raw, creating it on first use."""
        target = self.lookup(raw)
        if target is None:
            target = _Target(runtime, raw, weak)
            self._targets[id(raw)] = target
        return target

    def register(self, target: _Target, key: Hashable, reaction: Reaction) -> None:
        """Record that reaction read (target, key)."""
        try:
            bucket = target.buckets.get(key)
        except TypeError:
            # Weak tables only accept weakly referenceable keys; other lookups
            # can never match a stored key, so there is nothing to depend on.
            if not target.weak:
                raise
            return
        if bucket is None:
            bucket = _Bucket(target, None if target.weak else key)
            target.buckets[key] = bucket
        bucket.reactions[reaction] = None
        reaction._edges.add(bucket)

    def for_each_dependent(
        self, target: _Target, key: Hashable, fn: Callable[[Reaction], None]
    ) -> None:
        """Call fn once for every reaction depending on (target, key)."""
        try:
            bucket = target.buckets.get(key)
        except TypeError:
            # Unhashable or non-weakrefable key: nothing can depend on it.
            return
        if bucket is None:
            return
        for reaction in list(bucket.reactions):
            fn(reaction)

    def release(self, reaction: Reaction) -> None:
        """Remove reaction from every bucket it joined."""
        for bucket in reaction._edges:
            bucket.reactions.pop(reaction, None)
            if not bucket.reactions and bucket.key is not None:
                buckets = bucket.target.buckets
                if buckets.get(bucket.key) is bucket:
                    del buckets[bucket.key]
        reaction._edges.clear()

    def __len__(self) -> int:
        return len(self._targets)
