"""Tests for the entity -> tracker association."""

from __future__ import annotations

import gc
import threading
import weakref
from dataclasses import dataclass

import pytest

from changetrack import (
    Trackable,
    TrackerNotActivatedError,
    as_trackable,
    create_tracker,
    get_or_create_tracker,
    get_tracker,
    is_trackable,
    tracked_count,
    try_get_tracker,
)
from changetrack.cache import register


class Entity:
    pass


class Marked(Trackable):
    pass


@dataclass
class Invoice:
    number: str


class Slotted:
    __slots__ = ("x",)


class TestLookup:
    def test_try_get_before_activation(self):
        assert try_get_tracker(Entity()) is None

    def test_try_get_never_creates(self):
        e = Entity()
        try_get_tracker(e)
        assert try_get_tracker(e) is None

    def test_get_or_create_reuses(self):
        e = Entity()
        first = get_or_create_tracker(e)
        second = get_or_create_tracker(e)
        assert first is second
        assert try_get_tracker(e) is first

    def test_distinct_entities_distinct_trackers(self):
        a, b = Entity(), Entity()
        assert get_or_create_tracker(a) is not get_or_create_tracker(b)

    def test_get_tracker_requires_activation(self):
        e = Entity()
        with pytest.raises(TrackerNotActivatedError):
            get_tracker(e)
        tracker = get_or_create_tracker(e)
        assert get_tracker(e) is tracker

    def test_not_activated_is_lookup_error(self):
        with pytest.raises(LookupError, match="Entity"):
            get_tracker(Entity())

    def test_unhashable_entity(self):
        a = Invoice("INV-1")
        b = Invoice("INV-1")
        assert a == b
        assert get_or_create_tracker(a) is not get_or_create_tracker(b)

    def test_new_trackers_are_disabled(self):
        assert get_or_create_tracker(Entity()).enabled is False

    def test_uncached_tracker(self):
        e = Entity()
        cached = create_tracker(e)
        fresh = create_tracker(e, use_cache=False)
        assert cached is get_or_create_tracker(e)
        assert fresh is not cached
        assert try_get_tracker(e) is cached

    def test_requires_weak_references(self):
        with pytest.raises(TypeError, match="__weakref__"):
            get_or_create_tracker(Slotted())


class TestLifetime:
    def test_does_not_keep_entity_alive(self):
        e = Entity()
        tracker = get_or_create_tracker(e)
        ref = weakref.ref(e)
        del e
        gc.collect()
        assert ref() is None
        assert tracker.entity is None

    def test_tracker_released_with_entity(self):
        e = Entity()
        tracker_ref = weakref.ref(get_or_create_tracker(e))
        del e
        gc.collect()
        assert tracker_ref() is None

    def test_no_leak_across_many_entities(self):
        gc.collect()
        before = tracked_count()
        entities = [Entity() for _ in range(200)]
        for e in entities:
            get_or_create_tracker(e)
        assert tracked_count() >= before + 200
        del entities, e
        gc.collect()
        assert tracked_count() <= before

    def test_entity_in_reference_cycle(self):
        e = Entity()
        e.self_ref = e
        get_or_create_tracker(e)
        ref = weakref.ref(e)
        del e
        gc.collect()
        assert ref() is None

    def test_rollback_after_collection_is_noop(self):
        e = Entity()
        tracker = get_or_create_tracker(e).enable()
        tracker.record_change(1, 2, "x")
        del e
        gc.collect()
        assert tracker.rollback() is tracker
        assert tracker.has_changed("x")


class TestConcurrentCreation:
    def test_one_tracker_under_race(self):
        e = Entity()
        barrier = threading.Barrier(8)
        results = []
        lock = threading.Lock()

        def worker():
            barrier.wait()
            tracker = get_or_create_tracker(e)
            with lock:
                results.append(tracker)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert len(results) == 8
        assert all(t is results[0] for t in results)


class TestTrackableCapability:
    def test_is_trackable(self):
        assert is_trackable(Marked())
        assert not is_trackable(Entity())
        assert not is_trackable(42)

    def test_as_trackable_enables(self):
        m = Marked()
        assert as_trackable(m) is m
        assert get_tracker(m).enabled is True

    def test_as_trackable_ignores_plain_objects(self):
        e = Entity()
        assert as_trackable(e) is e
        assert try_get_tracker(e) is None

    def test_as_trackable_reenables(self):
        m = Marked()
        get_or_create_tracker(m)
        as_trackable(m)
        assert get_tracker(m).enabled is True

    def test_register_leaves_existing_tracker_alone(self):
        m = Marked()
        tracker = get_or_create_tracker(m)
        register(m)
        assert tracker.enabled is False

    def test_register_creates_enabled_tracker(self):
        m = Marked()
        register(m)
        assert get_tracker(m).enabled is True
