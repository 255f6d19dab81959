"""Tests for observable(), is_observable(), raw() and whole-runtime behavior."""

import datetime
import re
from types import SimpleNamespace

import pytest

from observa import (
    ObservableMap,
    ObservableObject,
    Runtime,
    is_observable,
    observable,
    observe,
    raw,
    tick,
)


class TestObservable:
    def test_same_raw_same_view(self):
        source = {"a": 1}
        assert observable(source) is observable(source)

    def test_view_is_returned_unchanged(self):
        view = observable({"a": 1})
        assert observable(view) is view

    def test_default_is_an_empty_record(self):
        view = observable()
        assert isinstance(view, ObservableObject)
        assert isinstance(raw(view), SimpleNamespace)
        assert vars(raw(view)) == {}

    def test_defaults_are_distinct(self):
        assert raw(observable()) is not raw(observable())

    @pytest.mark.parametrize("value", [1, 2.5, "text", b"bytes", True, len, lambda: None, int])
    def test_rejects_non_objects(self, value):
        with pytest.raises(TypeError):
            observable(value)

    @pytest.mark.parametrize(
        "value",
        [
            datetime.date(2024, 1, 1),
            datetime.datetime(2024, 1, 1, 12, 0),
            re.compile("x+"),
            (1, 2),
            frozenset({1}),
        ],
    )
    def test_untracked_types_are_returned_as_is(self, value):
        assert observable(value) is value

    def test_raw_source_is_untouched(self):
        source = {"a": 1}
        view = observable(source)
        assert type(source) is dict
        assert raw(view) is source
        assert view.__raw__ is source

    def test_raw_of_plain_value(self):
        source = {"a": 1}
        assert raw(source) is source
        assert raw(3) == 3


class TestIsObservable:
    def test_views_and_raw_objects(self):
        source = {"a": 1}
        assert is_observable(source) is False
        assert is_observable(observable(source)) is True

    def test_rejects_non_objects(self):
        with pytest.raises(TypeError):
            is_observable(1)
        with pytest.raises(TypeError):
            is_observable("text")

    def test_views_of_other_runtimes(self):
        other = Runtime()
        view = other.observable({})
        assert other.is_observable(view) is True
        assert is_observable(view) is False


class TestScenarios:
    def test_counter(self):
        counter = observable({"count": 0})
        log = []
        observe(lambda: log.append(counter["count"]))
        counter["count"] += 1
        tick()
        assert log == [0, 1]

    def test_two_reactions_one_change(self):
        state = observable(SimpleNamespace(name="ada"))
        greetings, lengths = [], []
        observe(lambda: greetings.append(f"hi {state.name}"))
        observe(lambda: lengths.append(len(state.name)))
        state.name = "grace"
        tick()
        assert greetings == ["hi ada", "hi grace"]
        assert lengths == [3, 5]

    def test_replacing_a_nested_object(self):
        state = observable(SimpleNamespace(a=SimpleNamespace(b=1)))
        log = []
        observe(lambda: log.append(state.a.b))
        state.a = SimpleNamespace(b=2)
        tick()
        assert log == [1, 2]
        # The new nested object is tracked after the re-run.
        state.a.b = 3
        tick()
        assert log == [1, 2, 3]

    def test_equal_replacement_still_reruns(self):
        state = observable(SimpleNamespace(items=[1]))
        log = []
        observe(lambda: log.append(list(state.items)))
        state.items = [1]
        tick()
        assert log == [[1], [1]]

    def test_mixed_structures(self):
        store = observable({"todos": [SimpleNamespace(title="a", done=False)]})
        log = []
        observe(lambda: log.append(sum(not todo.done for todo in store["todos"])))
        store["todos"][0].done = True
        tick()
        store["todos"].append(SimpleNamespace(title="b", done=False))
        tick()
        assert log == [1, 0, 1]


class TestRuntime:
    def test_fresh_runtime_is_empty(self, runtime):
        assert runtime.pending_count == 0
        assert len(runtime.registry) == 0
        assert runtime.tick() == 0

    def test_views_are_per_runtime(self):
        first, second = Runtime(), Runtime()
        source = {"a": 1}
        assert first.observable(source) is not second.observable(source)

    def test_runtime_observe_and_tick(self, runtime):
        state = runtime.observable(SimpleNamespace(a=0))
        log = []
        runtime.observe(lambda: log.append(state.a))
        state.a = 1
        assert runtime.pending_count == 1
        assert tick() == 0
        runtime.tick()
        assert log == [0, 1]

    def test_reset_drops_pending_work(self, runtime):
        state = runtime.observable(SimpleNamespace(a=0))
        log = []
        runtime.observe(lambda: log.append(state.a))
        state.a = 1
        runtime.reset()
        assert runtime.pending_count == 0
        assert runtime.tick() == 0
        state.a = 2
        runtime.tick()
        assert log == [0, 2]

    def test_custom_defer_at_construction(self):
        queued = []
        runtime = Runtime(defer=queued.append)
        state = runtime.observable(SimpleNamespace(a=0))
        runtime.observe(lambda: state.a)
        state.a = 1
        assert len(queued) == 1

    def test_collection_views_from_runtime(self, runtime):
        assert isinstance(runtime.observable({}), ObservableMap)
