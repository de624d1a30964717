"""Tracker association: at most one tracker per live entity, without owning it.

Entities are keyed by identity, never by __eq__/__hash__, so unhashable
entities (e.g. dataclasses with eq=True) work. The table holds a weak
reference to each entity and the tracker holds another; when the entity is
collected, the weakref callback drops the entry and the tracker with it.
"""

from __future__ import annotations

import logging
import weakref
from typing import TypeVar

from changetrack import _anchor
from changetrack.errors import TrackerNotActivatedError
from changetrack.tracker import ChangeTracker

logger = logging.getLogger("changetrack.cache")

T = TypeVar("T")


def _lookup(entity) -> ChangeTracker | None:
    entry = _anchor.trackers.get(id(entity))
    if entry is not None and entry[0]() is entity:
        return entry[1]
    return None


def try_get_tracker(entity: T) -> ChangeTracker[T] | None:
    """The entity's tracker, or None if it was never created. Never creates one."""
    return _lookup(entity)


def get_tracker(entity: T) -> ChangeTracker[T]:
    """The entity's tracker. Raises TrackerNotActivatedError if it was never created."""
    tracker = _lookup(entity)
    if tracker is None:
        raise TrackerNotActivatedError(entity)
    return tracker


def get_or_create_tracker(entity: T) -> ChangeTracker[T]:
    """The entity's tracker, created (disabled) on first call and reused afterwards."""
    tracker = _lookup(entity)
    if tracker is not None:
        return tracker

    with _anchor.trackers_lock:
        # Another thread may have created it while we waited.
        tracker = _lookup(entity)
        if tracker is None:
            tracker = ChangeTracker(entity)
            key = id(entity)

            def _on_collected(ref, key=key) -> None:
                with _anchor.trackers_lock:
                    entry = _anchor.trackers.get(key)
                    if entry is not None and entry[0] is ref:
                        del _anchor.trackers[key]

            _anchor.trackers[key] = (weakref.ref(entity, _on_collected), tracker)
            logger.debug("Created tracker for %s", type(entity).__qualname__)
    return tracker


def create_tracker(entity: T, use_cache: bool = True) -> ChangeTracker[T]:
    """Tracker factory. With use_cache=False, returns a fresh tracker nobody else shares."""
    if use_cache:
        return get_or_create_tracker(entity)
    return ChangeTracker(entity)


def tracked_count() -> int:
    """Number of live entities that currently have an associated tracker."""
    return len(_anchor.trackers)


def is_trackable(obj) -> bool:
    """Does obj's class opt in to change tracking (@trackable or Trackable)?"""
    return getattr(type(obj), "__trackable__", False) is True


def as_trackable(obj: T) -> T:
    """Create and enable obj's tracker if obj is trackable. Returns obj unchanged."""
    if is_trackable(obj):
        get_or_create_tracker(obj).enable()
    return obj


def register(obj: T) -> T:
    """Give a trackable obj an enabled tracker if it has none; leave existing trackers alone."""
    if is_trackable(obj) and _lookup(obj) is None:
        get_or_create_tracker(obj).enable()
    return obj
