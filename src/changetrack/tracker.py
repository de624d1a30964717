"""Change tracker: the heart of changetrack.

One tracker per entity. Tracked setters report every write through
record_change(old, new, name); the tracker keeps the earliest original value of
each property that currently differs from its baseline. A write that returns a
property to its original value removes the entry, so "changed" always means
"differs from baseline", not "was written to".

Trackers are not synchronized. Mutating one entity from several threads at
once can interleave the read-modify-write on the original values.
"""

from __future__ import annotations

import logging
import weakref
from types import MappingProxyType
from typing import Generic, Mapping, Protocol, TypeVar, runtime_checkable

from changetrack.deep import has_deep_changes
from changetrack.mutators import property_name, try_set_property

logger = logging.getLogger("changetrack.tracker")

T = TypeVar("T")


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


@runtime_checkable
class DirtyCheckable(Protocol):
    """Anything that can answer "has something changed?": trackers and trackable collections."""

    def is_dirty(self, deep: bool = False) -> bool: ...


def values_equal(a, b) -> bool:
    """Equality for recorded values: identity, then ==, falling back to identity."""
    if a is b:
        return True
    try:
        return bool(a == b)
    except (TypeError, ValueError):
        logger.debug("Equality undefined for %s and %s; using identity", type(a), type(b))
        return False


class ChangeTracker(Generic[T]):
    """Records original values of an entity's changed properties."""

    __slots__ = ("_entity_ref", "_original_values", "_enabled", "_deep_tracking", "__weakref__")

    def __init__(self, entity: T) -> None:
        try:
            self._entity_ref = weakref.ref(entity)
        except TypeError:
            raise TypeError(
                f"{type(entity).__name__} instances cannot be tracked: "
                f"the type must support weak references (add '__weakref__' to __slots__)"
            ) from None
        self._original_values: dict[str, object] = {}
        self._enabled = False
        self._deep_tracking = False

    @property
    def entity(self) -> T | None:
        """The tracked entity, or None once it has been garbage collected."""
        return self._entity_ref()

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def deep_tracking(self) -> bool:
        return self._deep_tracking

    def enable(self, enable: bool = True) -> ChangeTracker[T]:
        """Turn recording on or off. Disabling keeps everything recorded so far."""
        self._enabled = enable
        return self

    def use_deep_tracking(self, deep: bool = True) -> ChangeTracker[T]:
        """Make is_dirty() follow nested entities and collections by default."""
        self._deep_tracking = deep
        return self

    # --- Queries ---

    def is_dirty(self, deep: bool | None = None) -> bool:
        """Has any property changed? With deep, also ask registered nested handles."""
        if self._original_values:
            return True
        if deep is None:
            deep = self._deep_tracking
        if not deep:
            return False
        entity = self._entity_ref()
        return entity is not None and has_deep_changes(entity)

    def has_changed(self, prop) -> bool:
        return property_name(prop) in self._original_values

    def get_changed_properties(self) -> tuple[str, ...]:
        return tuple(self._original_values)

    def get_original_values(self) -> Mapping[str, object]:
        """Read-only snapshot of name -> original value. Empty if nothing changed."""
        return MappingProxyType(dict(self._original_values))

    def get_original_value(self, prop, default=MISSING):
        """The recorded original value of prop, or default if it is unchanged."""
        return self._original_values.get(property_name(prop), default)

    # --- Recording ---

    def record_change(self, old, new, prop) -> ChangeTracker[T]:
        """Report a write of prop from old to new. Call before the field is overwritten.

        Usage (hand-written setter):
            @name.setter
            def name(self, value):
                tracker = try_get_tracker(self)
                if tracker is not None:
                    tracker.record_change(self._name, value, "name")
                self._name = value
        """
        if not self._enabled or values_equal(old, new):
            return self

        name = property_name(prop)
        if name in self._original_values:
            # Back to the baseline: the change cancelled itself out. The field
            # is being written by the caller, so no setter runs here.
            if values_equal(new, self._original_values[name]):
                del self._original_values[name]
        else:
            self._original_values[name] = old
        return self

    # --- Rollback / accept ---

    def rollback(self, prop=None) -> ChangeTracker[T]:
        """Restore original values (all, or only prop) and forget them."""
        if not self._enabled or not self._original_values:
            return self
        entity = self._entity_ref()
        if entity is None:
            return self

        if prop is None:
            restore = list(self._original_values.items())
        else:
            name = property_name(prop)
            if name not in self._original_values:
                return self
            restore = [(name, self._original_values[name])]

        # Disabled while writing so the restoring writes are not recorded.
        # Each entry is dropped as soon as its value is back, so a setter that
        # raises leaves only the unrestored properties recorded.
        self._enabled = False
        try:
            for name, value in restore:
                try_set_property(entity, name, value)
                del self._original_values[name]
        finally:
            self._enabled = True

        logger.debug("Rolled back %d properties on %s", len(restore), type(entity).__qualname__)
        return self

    def accept_changes(self, prop=None) -> ChangeTracker[T]:
        """Make current values the new baseline (all, or only prop)."""
        if not self._enabled:
            return self
        if prop is None:
            self._original_values.clear()
        else:
            self._original_values.pop(property_name(prop), None)
        return self

    def __repr__(self) -> str:
        entity = self._entity_ref()
        target = type(entity).__name__ if entity is not None else "<collected>"
        state = "enabled" if self._enabled else "disabled"
        return f"ChangeTracker({target}, {state}, changed={list(self._original_values)!r})"
