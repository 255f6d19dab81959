"""Collection views — tracked maps and sets.

Built-in collections are not given attribute-level interception. Their view
implements the collection ABC on top of a handful of tracked primitives and
forwards each one to the owned raw collection; the ABC mixins supply the rest
of the API (update, setdefault, pop, isdisjoint, ...) through those primitives.

Lookups depend on (raw, key). Size and full traversal depend on the single
ITERATE key, which every membership change enqueues. Weak collections expose
no stable shape, so their views track lookups, inserts and deletes only.
"""

from __future__ import annotations

from collections.abc import Iterator, MutableMapping, MutableSet

from observa._registry import ITERATE
from observa.views import _MISSING, View, _enqueue, _reveal, _track, has_changed, unwrap


class _ShapeMixin:
    __slots__ = ()

    # Keys a whole-collection read depends on and a membership change enqueues.
    _shape: tuple = (ITERATE,)

    def _track_shape(self) -> None:
        for key in self._shape:
            _track(self, key)


class ObservableMap(_ShapeMixin, View, MutableMapping):
    """View over a dict (or any mutable mapping)."""

    __slots__ = ()

    # --- Read operations (track) ---

    def __getitem__(self, key):
        _track(self, key)
        return _reveal(self, self.__raw__[key])

    def get(self, key, default=None):
        _track(self, key)
        raw = self.__raw__
        if key in raw:
            return _reveal(self, raw[key])
        return default

    def __contains__(self, key) -> bool:
        _track(self, key)
        return key in self.__raw__

    def __iter__(self) -> Iterator:
        self._track_shape()
        return iter(self.__raw__)

    def __len__(self) -> int:
        self._track_shape()
        return len(self.__raw__)

    def copy(self):
        self._track_shape()
        return self.__raw__.copy()

    # --- Write operations (enqueue) ---

    def __setitem__(self, key, value) -> None:
        raw = self.__raw__
        value = unwrap(value)
        changed = has_changed(raw.get(key, _MISSING), value)
        raw[key] = value
        if changed:
            _enqueue(self, key, *self._shape)

    def __delitem__(self, key) -> None:
        del self.__raw__[key]
        _enqueue(self, key, *self._shape)

    def pop(self, key, *default):
        raw = self.__raw__
        if key not in raw:
            return raw.pop(key, *default)
        value = raw.pop(key)
        _enqueue(self, key, *self._shape)
        return value

    def popitem(self):
        key, value = self.__raw__.popitem()
        _enqueue(self, key, *self._shape)
        return key, value

    def clear(self) -> None:
        """Remove every item.

        Enqueues each removed key as well as the shape, so readers of a single
        key re-run too, not only size and traversal readers.
        """
        raw = self.__raw__
        keys = list(raw)
        raw.clear()
        if keys:
            _enqueue(self, *keys, *self._shape)


class ObservableSet(_ShapeMixin, View, MutableSet):
    """View over a set. A member is its own key."""

    __slots__ = ()

    @classmethod
    def _from_iterable(cls, iterable):
        # Results of &, |, - and ^ are plain sets, not views.
        return set(iterable)

    # --- Read operations (track) ---

    def __contains__(self, value) -> bool:
        value = unwrap(value)
        _track(self, value)
        return value in self.__raw__

    def __iter__(self) -> Iterator:
        self._track_shape()
        return iter(self.__raw__)

    def __len__(self) -> int:
        self._track_shape()
        return len(self.__raw__)

    def copy(self):
        self._track_shape()
        return self.__raw__.copy()

    # --- Write operations (enqueue) ---

    def add(self, value) -> None:
        raw = self.__raw__
        value = unwrap(value)
        present = value in raw
        raw.add(value)
        if not present:
            _enqueue(self, value, *self._shape)

    def discard(self, value) -> None:
        raw = self.__raw__
        value = unwrap(value)
        if value in raw:
            raw.discard(value)
            _enqueue(self, value, *self._shape)

    def clear(self) -> None:
        """Remove every member. Enqueues each removed member and the shape."""
        raw = self.__raw__
        members = list(raw)
        raw.clear()
        if members:
            _enqueue(self, *members, *self._shape)


class ObservableWeakMap(ObservableMap):
    """View over a WeakKeyDictionary or WeakValueDictionary."""

    __slots__ = ()
    _shape = ()


class ObservableWeakSet(ObservableSet):
    """View over a WeakSet."""

    __slots__ = ()
    _shape = ()
