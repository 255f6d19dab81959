"""Tests for the dependency registry."""

import gc
import weakref

from observa import ENUMERATE, Runtime
from observa._registry import Registry
from observa.reaction import Reaction


class _Raw:
    pass


def _reaction(runtime):
    return Reaction(lambda: None, runtime)


class TestRegistry:
    def test_target_for_is_stable(self, runtime):
        registry = Registry()
        raw = {}
        first = registry.target_for(runtime, raw)
        assert registry.target_for(runtime, raw) is first
        assert registry.lookup(raw) is first

    def test_lookup_unknown(self):
        assert Registry().lookup([]) is None

    def test_register_and_iterate(self, runtime):
        registry = Registry()
        target = registry.target_for(runtime, {})
        a, b = _reaction(runtime), _reaction(runtime)
        registry.register(target, "x", a)
        registry.register(target, "x", b)
        registry.register(target, "x", a)
        seen = []
        registry.for_each_dependent(target, "x", seen.append)
        assert sorted(map(id, seen)) == sorted([id(a), id(b)])
        assert a.dependency_count == 1

    def test_for_each_dependent_without_edges(self, runtime):
        registry = Registry()
        target = registry.target_for(runtime, {})
        seen = []
        registry.for_each_dependent(target, "missing", seen.append)
        registry.for_each_dependent(target, ENUMERATE, seen.append)
        assert seen == []

    def test_release_removes_every_edge(self, runtime):
        registry = Registry()
        first = registry.target_for(runtime, {})
        second = registry.target_for(runtime, [])
        reaction = _reaction(runtime)
        registry.register(first, "a", reaction)
        registry.register(first, ENUMERATE, reaction)
        registry.register(second, 0, reaction)
        assert reaction.dependency_count == 3

        registry.release(reaction)

        assert reaction.dependency_count == 0
        seen = []
        for target, key in [(first, "a"), (first, ENUMERATE), (second, 0)]:
            registry.for_each_dependent(target, key, seen.append)
        assert seen == []

    def test_release_prunes_empty_buckets(self, runtime):
        registry = Registry()
        target = registry.target_for(runtime, {})
        reaction = _reaction(runtime)
        registry.register(target, "a", reaction)
        registry.release(reaction)
        assert "a" not in target.buckets

    def test_release_keeps_shared_buckets(self, runtime):
        registry = Registry()
        target = registry.target_for(runtime, {})
        a, b = _reaction(runtime), _reaction(runtime)
        registry.register(target, "a", a)
        registry.register(target, "a", b)
        registry.release(a)
        seen = []
        registry.for_each_dependent(target, "a", seen.append)
        assert seen == [b]

    def test_weak_target_ignores_unreferenceable_keys(self, runtime):
        registry = Registry()
        target = registry.target_for(runtime, weakref.WeakSet(), weak=True)
        reaction = _reaction(runtime)
        registry.register(target, 42, reaction)
        assert reaction.dependency_count == 0

    def test_weak_target_does_not_hold_keys(self, runtime):
        registry = Registry()
        target = registry.target_for(runtime, weakref.WeakSet(), weak=True)
        key = _Raw()
        registry.register(target, key, _reaction(runtime))
        key_ref = weakref.ref(key)
        del key
        gc.collect()
        assert key_ref() is None


class TestTargetLifetime:
    def test_target_released_with_view(self):
        runtime = Runtime()
        view = runtime.observable(_Raw())
        raw_ref = weakref.ref(view.__raw__)
        assert len(runtime.registry) == 1
        del view
        gc.collect()
        assert raw_ref() is None
        assert len(runtime.registry) == 0

    def test_edges_keep_target_alive(self):
        runtime = Runtime()
        state = runtime.observable(_Raw())
        state.value = 1
        reaction = runtime.observe(lambda: state.value)
        del state
        gc.collect()
        assert len(runtime.registry) == 1
        runtime.unobserve(reaction)
        gc.collect()
        assert len(runtime.registry) == 0

    def test_reactions_are_kept_until_unobserved(self):
        runtime = Runtime()
        source = _Raw()
        source.value = 0
        log = []
        # Neither the view nor the handle is held by the caller.
        runtime.observe(lambda: log.append(runtime.observable(source).value))
        gc.collect()
        runtime.observable(source).value = 1
        runtime.tick()
        assert log == [0, 1]

    def test_view_lives_while_a_reaction_depends_on_it(self):
        runtime = Runtime()
        source = _Raw()
        source.value = 0
        reaction = runtime.observe(lambda: runtime.observable(source).value)
        view_ref = weakref.ref(runtime.observable(source))
        gc.collect()
        assert view_ref() is runtime.observable(source)
        runtime.unobserve(reaction)
        gc.collect()
        assert view_ref() is None
