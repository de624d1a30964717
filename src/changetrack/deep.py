"""Deep tracking registry: per-type accessors to nested dirty-capable handles.

Each accessor maps an entity to a nested tracker or trackable collection (or
None). A type's accessors are registered once; the first registration wins,
which makes the list static configuration rather than a runtime setting.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Callable, Iterable, Iterator

from changetrack import _anchor

if TYPE_CHECKING:
    from changetrack.tracker import DirtyCheckable

    Accessor = Callable[[object], DirtyCheckable | None]

logger = logging.getLogger("changetrack.deep")

# Per-thread set of entity and collection ids on the current deep walk.
_walk = threading.local()


@contextmanager
def visiting(obj) -> Iterator[bool]:
    """Put obj on the current deep walk. Yields False if it is already on it.

    Usage:
        with visiting(self) as first:
            return first and any(...)
    """
    seen = getattr(_walk, "visiting", None)
    if seen is None:
        seen = _walk.visiting = set()
    key = id(obj)
    if key in seen:
        yield False
        return
    seen.add(key)
    try:
        yield True
    finally:
        seen.discard(key)


def set_trackable_properties(cls: type, accessors: Iterable[Accessor]) -> bool:
    """Register the deep tracking accessors for cls.

    Returns True if accepted, False if cls already had accessors registered.

    Usage:
        set_trackable_properties(Order, [
            lambda o: try_get_tracker(o.customer),
            lambda o: o.lines,  # a TrackableList
        ])
    """
    accessors = tuple(accessors)
    with _anchor.deep_lock:
        if cls in _anchor.deep_accessors:
            logger.info(
                "Deep tracking accessors for %s already registered; ignoring", cls.__qualname__
            )
            return False
        _anchor.deep_accessors[cls] = accessors
    return True


def get_trackable_properties(cls: type) -> tuple:
    """Accessors registered for cls or its nearest registered base class."""
    for klass in cls.__mro__:
        accessors = _anchor.deep_accessors.get(klass)
        if accessors is not None:
            return accessors
    return ()


def has_deep_changes(entity) -> bool:
    """Is anything reachable through the registered accessors dirty?

    Entities already being checked further up the current walk are skipped,
    so back-references (child -> parent) terminate.
    """
    accessors = get_trackable_properties(type(entity))
    if not accessors:
        return False

    with visiting(entity) as first:
        if not first:
            return False
        for accessor in accessors:
            handle = accessor(entity)
            if handle is not None and handle.is_dirty(True):
                return True
        return False
