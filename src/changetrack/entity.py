"""Tracked attributes and trackable classes.

tracked() is a data descriptor whose setter reports every write to the
entity's tracker. @trackable turns annotated attributes into tracked ones,
marks the class as trackable and registers its attributes for deep tracking.

Usage:
    @trackable(collections=("lines",))
    @dataclass
    class Order:
        id: str
        lines: list[OrderLine] = field(default_factory=list)

    order = as_trackable(Order("A"))
    order.id = "B"
    get_tracker(order).has_changed(Order.id)  # True
"""

from __future__ import annotations

import dataclasses
import enum
from contextlib import contextmanager
from typing import Any, Generic, Iterable, TypeVar

from changetrack.cache import as_trackable, get_or_create_tracker, try_get_tracker
from changetrack.containers import TrackableDict, TrackableList
from changetrack.deep import set_trackable_properties
from changetrack.mutators import annotated_names
from changetrack.tracker import MISSING, ChangeTracker, DirtyCheckable

T = TypeVar("T")


class TrackingMode(enum.Enum):
    """Which attributes @trackable tracks."""

    ALL = "all"  # every annotated attribute except the excluded ones
    ONLY_MARKED = "only_marked"  # only tracked() descriptors and included names


class TrackedProperty(Generic[T]):
    """Data descriptor that stores its value in the instance __dict__ and records writes."""

    __slots__ = ("name", "default", "collection")

    def __init__(self, default: Any = MISSING, *, collection: bool = False) -> None:
        self.name: str | None = None
        self.default = default
        self.collection = collection

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, obj, objtype=None):
        if obj is None:
            return self
        try:
            return obj.__dict__[self.name]
        except KeyError:
            if self.default is not MISSING:
                return self.default
            raise AttributeError(
                f"{type(obj).__name__!r} object has no attribute {self.name!r}"
            ) from None

    def __set__(self, obj, value) -> None:
        if self.collection:
            value = _wrap_collection(value)
        old = obj.__dict__.get(self.name, self.default)
        if old is not MISSING:
            tracker = try_get_tracker(obj)
            if tracker is not None:
                tracker.record_change(old, value, self.name)
        obj.__dict__[self.name] = value

    def __delete__(self, obj) -> None:
        try:
            del obj.__dict__[self.name]
        except KeyError:
            raise AttributeError(self.name) from None

    def __repr__(self) -> str:
        kind = "collection" if self.collection else "value"
        return f"TrackedProperty({self.name!r}, {kind})"


def tracked(default: Any = MISSING, *, collection: bool = False) -> Any:
    """Declare a tracked attribute.

    With collection=True, assigned lists and dicts are wrapped in
    TrackableList / TrackableDict.

    Usage:
        class Customer(Trackable):
            name = tracked()
            tags = tracked(collection=True)
    """
    return TrackedProperty(default, collection=collection)


def _wrap_collection(value):
    if isinstance(value, list):
        return TrackableList(value)
    if isinstance(value, dict):
        return TrackableDict(value)
    return value


def dirty_handle(value) -> DirtyCheckable | None:
    """What deep tracking should ask about value: its tracker, value itself, or nothing."""
    if value is None:
        return None
    tracker = try_get_tracker(value)
    if tracker is not None:
        return tracker
    if isinstance(value, DirtyCheckable):
        return value
    return None


def _candidate_names(cls: type) -> list[str]:
    if dataclasses.is_dataclass(cls):
        return [f.name for f in dataclasses.fields(cls)]
    return annotated_names(cls)


def _class_attribute(cls: type, name: str):
    for klass in cls.__mro__:
        if name in vars(klass):
            return klass, vars(klass)[name]
    return None, MISSING


def _has_instance_dict(cls: type) -> bool:
    return any("__dict__" in vars(klass) for klass in cls.__mro__)


def _install(cls: type, name: str, collection: bool) -> None:
    owner, current = _class_attribute(cls, name)
    if isinstance(current, TrackedProperty):
        if owner is cls:
            current.collection = current.collection or collection
        elif collection and not current.collection:
            descriptor = TrackedProperty(current.default, collection=True)
            descriptor.__set_name__(cls, name)
            setattr(cls, name, descriptor)
        return
    if isinstance(current, property) or hasattr(type(current), "__set__"):
        raise TypeError(f"{cls.__name__}.{name} is already a descriptor and cannot be tracked")
    descriptor = TrackedProperty(current, collection=collection)
    descriptor.__set_name__(cls, name)
    setattr(cls, name, descriptor)


def _tracked_names(cls: type) -> list[str]:
    names: dict[str, None] = {}
    for klass in reversed(cls.__mro__):
        for name, attr in vars(klass).items():
            if isinstance(attr, TrackedProperty):
                names[name] = None
    return list(names)


def _accessor(name: str):
    def _get(entity):
        return dirty_handle(entity.__dict__.get(name))

    _get.__name__ = f"deep_{name}"
    return _get


def trackable(
    cls: type | None = None,
    *,
    mode: TrackingMode = TrackingMode.ALL,
    include: Iterable[str] = (),
    exclude: Iterable[str] = (),
    collections: Iterable[str] = (),
    deep: bool = True,
):
    """Class decorator: make instances of cls change-trackable.

    mode=ALL tracks every annotated attribute (or dataclass field) not in
    exclude; mode=ONLY_MARKED tracks only tracked() descriptors and names in
    include. Names in collections wrap assigned lists/dicts. With deep=True,
    each tracked attribute is registered for deep dirty checking.

    Apply on top of @dataclass, not below it. Classes whose instances have no
    __dict__ (dataclass(slots=True), __slots__ without "__dict__") are rejected.
    """

    def decorate(klass: type) -> type:
        if dataclasses.is_dataclass(klass) and klass.__dataclass_params__.frozen:
            raise TypeError(f"{klass.__name__} is a frozen dataclass and cannot be tracked")
        if not _has_instance_dict(klass):
            raise TypeError(
                f"{klass.__name__} uses __slots__ without __dict__; tracked attributes "
                f"store their values in the instance __dict__"
            )

        excluded = set(exclude)
        wrapped = set(collections)
        if mode is TrackingMode.ALL:
            names = [name for name in _candidate_names(klass) if name not in excluded]
        else:
            names = list(include)
        names += sorted(wrapped - excluded - set(names))
        for name in names:
            _install(klass, name, name in wrapped)

        klass.__trackable__ = True
        if deep:
            set_trackable_properties(klass, [_accessor(name) for name in _tracked_names(klass)])
        return klass

    if cls is not None:
        return decorate(cls)
    return decorate


class Trackable:
    """Mixin marking a class as trackable, with tracker access as methods."""

    __slots__ = ()
    __trackable__ = True

    def get_change_tracker(self) -> ChangeTracker:
        return get_or_create_tracker(self)

    def try_get_change_tracker(self) -> ChangeTracker | None:
        return try_get_tracker(self)

    def as_trackable(self):
        return as_trackable(self)


@contextmanager
def untracked(entity):
    """Suspend recording on entity's tracker for the block.

    Usage:
        with untracked(order):
            order.id = "loaded-from-db"  # not recorded
    """
    tracker = try_get_tracker(entity)
    if tracker is None:
        yield None
        return
    previous = tracker.enabled
    tracker.enable(False)
    try:
        yield tracker
    finally:
        tracker.enable(previous)
