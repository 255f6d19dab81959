"""Views — transparent facades that track reads and writes.

A view forwards every operation to its raw object. Reads made while a reaction
runs register (raw, key) edges; writes that change a value enqueue the
reactions depending on (raw, key) and on the key-set shape (ENUMERATE).

Values are always stored raw: a view written into a tracked object is unwrapped
first, so raw objects never hold views. Nested objects read inside a reaction
come back wrapped, extending tracking into the nested structure.

All state lives on the view's _Target; views are thin handles.
"""

from __future__ import annotations

import datetime
import decimal
import enum
import fractions
import functools
import operator
import pathlib
import re
import types
import uuid
import weakref
from collections.abc import MutableSequence
from typing import TYPE_CHECKING, Callable, Iterator

from observa._registry import ENUMERATE, LENGTH

if TYPE_CHECKING:
    from observa._registry import _Target

_MISSING = object()

# Not object-like: observable() and is_observable() reject these.
_PRIMITIVES = (type(None), bool, int, float, complex, str, bytes)
_CALLABLES = (
    types.FunctionType,
    types.BuiltinFunctionType,
    types.MethodType,
    types.BuiltinMethodType,
    type,
)

# Objects that break or make no sense behind a view. Never tracked.
UNTRACKED_TYPES = (
    datetime.date,
    datetime.time,
    datetime.timedelta,
    datetime.tzinfo,
    re.Pattern,
    re.Match,
    tuple,
    frozenset,
    range,
    bytearray,
    memoryview,
    decimal.Decimal,
    fractions.Fraction,
    enum.Enum,
    pathlib.PurePath,
    uuid.UUID,
    types.ModuleType,
)


def is_object_like(value: object) -> bool:
    return not isinstance(value, _PRIMITIVES) and not isinstance(value, _CALLABLES)


def is_trackable(value: object) -> bool:
    """Could value be given a view?"""
    return is_object_like(value) and not isinstance(value, UNTRACKED_TYPES)


def has_changed(old: object, new: object) -> bool:
    """Would writing new over old be visible to a reader?

    Trackable objects compare by identity: an equal but distinct container has
    no dependency edges yet, so readers must re-run to pick it up.
    """
    if old is new:
        return False
    if is_trackable(old) or is_trackable(new):
        return True
    return bool(old != new)


class View:
    """Base of every observable view."""

    __slots__ = ("_observa_target", "__weakref__")

    def __init__(self, target: _Target) -> None:
        object.__setattr__(self, "_observa_target", target)

    @property
    def __raw__(self):
        """The raw object behind this view."""
        return self._observa_target.raw

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._observa_target.raw!r})"


def unwrap(value):
    """Return the raw object behind value if it is a view, else value."""
    if isinstance(value, View):
        return value._observa_target.raw
    return value


# Helpers are module functions rather than View methods so they can never
# shadow an attribute of a wrapped record.


def _track(view: View, key) -> None:
    target = view._observa_target
    target.runtime.scheduler.track(target, key)


def _enqueue(view: View, *keys) -> None:
    target = view._observa_target
    target.runtime.scheduler.enqueue(target, *keys)


def _reveal(view: View, value):
    return view._observa_target.runtime.reveal(value)


# ─── Attribute records ───────────────────────────────────────────────────────


def _is_marker(name: str) -> bool:
    return name.startswith("__") and name.endswith("__")


def _class_attr(cls: type, name: str):
    for klass in cls.__mro__:
        namespace = vars(klass)
        if name in namespace:
            return namespace[name]
    return _MISSING


def _bound_to_view(view: View, raw: object, name: str):
    """Bind properties and methods of raw's class to the view.

    The getter or method body then reads and writes through the view, so its
    own accesses are tracked.
    """
    attr = _class_attr(type(raw), name)
    if isinstance(attr, property):
        return attr.__get__(view, type(raw))
    if isinstance(attr, types.FunctionType) and name not in getattr(raw, "__dict__", ()):
        return types.MethodType(attr, view)
    return _MISSING


class ObservableObject(View):
    """View over an object whose attributes are the tracked keys."""

    __slots__ = ()

    def __getattr__(self, name: str):
        target = self._observa_target
        raw = target.raw
        scheduler = target.runtime.scheduler
        if name == "__dict__":
            scheduler.track(target, ENUMERATE)
            return raw.__dict__
        try:
            value = _bound_to_view(self, raw, name)
            if value is _MISSING:
                value = getattr(raw, name)
        except AttributeError:
            # A missing attribute is still a dependency: adding it must re-run.
            if not _is_marker(name):
                scheduler.track(target, name)
            raise
        if _is_marker(name) or callable(value):
            return value
        scheduler.track(target, name)
        return target.runtime.reveal(value)

    def __setattr__(self, name: str, value) -> None:
        target = self._observa_target
        raw = target.raw
        value = unwrap(value)
        attr = _class_attr(type(raw), name)
        if isinstance(attr, property):
            # The setter runs against the view and tracks its own writes.
            attr.__set__(self, value)
            return
        if _is_marker(name):
            setattr(raw, name, value)
            return
        changed = has_changed(getattr(raw, name, _MISSING), value)
        setattr(raw, name, value)
        if changed:
            target.runtime.scheduler.enqueue(target, name, ENUMERATE)

    def __delattr__(self, name: str) -> None:
        target = self._observa_target
        raw = target.raw
        attr = _class_attr(type(raw), name)
        if isinstance(attr, property):
            attr.__delete__(self)
            return
        existed = not _is_marker(name) and hasattr(raw, name)
        delattr(raw, name)
        if existed:
            target.runtime.scheduler.enqueue(target, name, ENUMERATE)

    def __dir__(self):
        _track(self, ENUMERATE)
        return dir(self._observa_target.raw)


# Protocol methods a record class may define. Python looks these up on the
# type, so a view class per record class carries them, bound to the view.
_FORWARDED = (
    "__len__",
    "__iter__",
    "__contains__",
    "__getitem__",
    "__setitem__",
    "__delitem__",
    "__bool__",
    "__str__",
)

_view_classes: weakref.WeakKeyDictionary[type, type] = weakref.WeakKeyDictionary()


def object_view_class(cls: type) -> type:
    """The ObservableObject subclass used for instances of cls."""
    try:
        return _view_classes[cls]
    except KeyError:
        pass
    namespace: dict[str, object] = {"__slots__": ()}
    for name in _FORWARDED:
        attr = _class_attr(cls, name)
        if isinstance(attr, types.FunctionType):
            namespace[name] = attr
    if len(namespace) > 1:
        view_cls = type(f"ObservableObject[{cls.__name__}]", (ObservableObject,), namespace)
    else:
        view_cls = ObservableObject
    _view_classes[cls] = view_cls
    return view_cls


# ─── Ordered sequences ───────────────────────────────────────────────────────


def _start(index: int, length: int) -> int:
    if index < 0:
        index += length
    return max(0, min(index, length))


class ObservableList(View, MutableSequence):
    """View over a list. Indices are keys; len() reads the LENGTH marker.

    Whole-sequence reads (iteration, slicing, membership, equality) depend on
    ENUMERATE, which every change enqueues.
    """

    __slots__ = ()

    # --- Read operations (track) ---

    def __getitem__(self, index):
        raw = self.__raw__
        if isinstance(index, slice):
            _track(self, ENUMERATE)
            return [_reveal(self, item) for item in raw[index]]
        index = operator.index(index)
        if index < 0:
            # Which element a negative index names depends on the length.
            _track(self, LENGTH)
            if index + len(raw) >= 0:
                index += len(raw)
        _track(self, index)
        return _reveal(self, raw[index])

    def __len__(self) -> int:
        _track(self, LENGTH)
        return len(self.__raw__)

    def __iter__(self) -> Iterator:
        _track(self, ENUMERATE)
        return (_reveal(self, item) for item in self.__raw__)

    def __reversed__(self) -> Iterator:
        _track(self, ENUMERATE)
        return (_reveal(self, item) for item in reversed(self.__raw__))

    def __contains__(self, value) -> bool:
        _track(self, ENUMERATE)
        return unwrap(value) in self.__raw__

    def index(self, value, *args) -> int:
        _track(self, ENUMERATE)
        return self.__raw__.index(unwrap(value), *args)

    def count(self, value) -> int:
        _track(self, ENUMERATE)
        return self.__raw__.count(unwrap(value))

    def copy(self) -> list:
        _track(self, ENUMERATE)
        return list(self.__raw__)

    def __eq__(self, other) -> bool:
        _track(self, ENUMERATE)
        return self.__raw__ == unwrap(other)

    __hash__ = None

    # --- Write operations (enqueue) ---

    def _splice(self, mutate: Callable, *args, start: int = 0, resizes: bool = True):
        """Apply mutate to the raw sequence and enqueue what it changed.

        Only indices from start onward are compared. Resizing mutations write
        the LENGTH marker, which enqueues even if the length did not change.
        """
        raw = self.__raw__
        before = raw[start:]
        result = mutate(*args)
        after = raw[start:]
        keys: list = [
            start + offset
            for offset in range(max(len(before), len(after)))
            if offset >= len(before)
            or offset >= len(after)
            or has_changed(before[offset], after[offset])
        ]
        if resizes:
            keys.append(LENGTH)
        if keys:
            keys.append(ENUMERATE)
            _enqueue(self, *keys)
        return result

    def __setitem__(self, index, value) -> None:
        raw = self.__raw__
        if isinstance(index, slice):
            self._splice(raw.__setitem__, index, [unwrap(item) for item in value])
            return
        index = operator.index(index)
        if index < 0:
            index += len(raw)
        value = unwrap(value)
        changed = has_changed(raw[index], value)
        raw[index] = value
        if changed:
            _enqueue(self, index, ENUMERATE)

    def __delitem__(self, index) -> None:
        raw = self.__raw__
        start = 0 if isinstance(index, slice) else _start(operator.index(index), len(raw))
        self._splice(raw.__delitem__, index, start=start)

    def insert(self, index: int, value) -> None:
        raw = self.__raw__
        start = _start(index, len(raw))
        self._splice(raw.insert, index, unwrap(value), start=start)

    def append(self, value) -> None:
        raw = self.__raw__
        self._splice(raw.append, unwrap(value), start=len(raw))

    def extend(self, values) -> None:
        raw = self.__raw__
        values = [unwrap(value) for value in values]
        self._splice(raw.extend, values, start=len(raw))

    def __iadd__(self, values):
        self.extend(values)
        return self

    def pop(self, index: int = -1):
        raw = self.__raw__
        start = _start(index, len(raw))
        return self._splice(raw.pop, index, start=start)

    def remove(self, value) -> None:
        self._splice(self.__raw__.remove, unwrap(value))

    def clear(self) -> None:
        self._splice(self.__raw__.clear)

    def reverse(self) -> None:
        self._splice(self.__raw__.reverse, resizes=False)

    def sort(self, *, key=None, reverse: bool = False) -> None:
        self._splice(functools.partial(self.__raw__.sort, key=key, reverse=reverse), resizes=False)
