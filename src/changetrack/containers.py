"""Trackable collections: lists and dicts that know when their structure changed.

Any structural mutation (insert, remove, replace, clear, reorder) marks the
collection dirty. Trackable elements get an enabled tracker when they are
inserted, and a tracker (if they have none) when they are read, so mutations
made through any reference to an element are observable.

is_dirty() is shallow by default: it reports structural changes only.
is_dirty(True) also asks every element's tracker (and nested trackable
collections) with deep tracking.

The flag cannot be reset; replace the wrapper to start over.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Generic, Iterable, Iterator, TypeVar, overload

from changetrack.cache import as_trackable, register, try_get_tracker
from changetrack.deep import visiting
from changetrack.errors import NotTrackableCollectionError
from changetrack.tracker import DirtyCheckable

T = TypeVar("T")
KT = TypeVar("KT")
VT = TypeVar("VT")


def _element_dirty(item) -> bool:
    tracker = try_get_tracker(item)
    if tracker is not None:
        return tracker.is_dirty(True)
    if isinstance(item, DirtyCheckable):
        return item.is_dirty(True)
    return False


def _any_element_dirty(collection, items) -> bool:
    # A collection already on the walk contains itself; its other elements
    # are being checked further up.
    with visiting(collection) as first:
        return first and any(_element_dirty(item) for item in items)


class TrackableList(Generic[T]):
    """A list wrapper that records structural changes."""

    __slots__ = ("_items", "_structural_change", "__weakref__")

    def __init__(self, items: Iterable[T] | None = None) -> None:
        self._items: list[T] = [as_trackable(item) for item in items] if items else []
        self._structural_change = False

    @property
    def has_structural_change(self) -> bool:
        return self._structural_change

    def is_dirty(self, deep: bool = False) -> bool:
        if self._structural_change:
            return True
        return deep and _any_element_dirty(self, self._items)

    def _touch(self) -> None:
        self._structural_change = True

    # --- Read operations (register) ---

    @overload
    def __getitem__(self, index: int) -> T: ...

    @overload
    def __getitem__(self, index: slice) -> list[T]: ...

    def __getitem__(self, index):
        if isinstance(index, slice):
            return [register(item) for item in self._items[index]]
        return register(self._items[index])

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        for item in self._items:
            yield register(item)

    def __reversed__(self) -> Iterator[T]:
        for item in reversed(self._items):
            yield register(item)

    def __contains__(self, item: T) -> bool:
        return item in self._items

    def __bool__(self) -> bool:
        return bool(self._items)

    def __eq__(self, other) -> bool:
        if isinstance(other, TrackableList):
            return self._items == other._items
        if isinstance(other, list):
            return self._items == other
        return NotImplemented

    __hash__ = None

    def index(self, item: T, *args) -> int:
        return self._items.index(item, *args)

    def count(self, item: T) -> int:
        return self._items.count(item)

    def copy(self) -> list[T]:
        """A plain list with the current elements."""
        return list(self)

    # --- Write operations (mark structural change) ---

    def append(self, item: T) -> None:
        self._items.append(as_trackable(item))
        self._touch()

    def extend(self, items: Iterable[T]) -> None:
        added = [as_trackable(item) for item in items]
        if added:
            self._items.extend(added)
            self._touch()

    def __iadd__(self, items: Iterable[T]) -> TrackableList[T]:
        self.extend(items)
        return self

    def insert(self, index: int, item: T) -> None:
        self._items.insert(index, as_trackable(item))
        self._touch()

    def __setitem__(self, index, value) -> None:
        if isinstance(index, slice):
            self._items[index] = [as_trackable(item) for item in value]
        else:
            self._items[index] = as_trackable(value)
        self._touch()

    def __delitem__(self, index) -> None:
        before = len(self._items)
        del self._items[index]
        if len(self._items) != before:
            self._touch()

    def pop(self, index: int = -1) -> T:
        result = self._items.pop(index)
        self._touch()
        return result

    def remove(self, item: T) -> None:
        self._items.remove(item)
        self._touch()

    def clear(self) -> None:
        if self._items:
            self._touch()
        self._items.clear()

    def sort(self, *, key=None, reverse: bool = False) -> None:
        if len(self._items) > 1:
            self._touch()
        self._items.sort(key=key, reverse=reverse)

    def reverse(self) -> None:
        if len(self._items) > 1:
            self._touch()
        self._items.reverse()

    def __repr__(self) -> str:
        return f"TrackableList({self._items!r})"


class TrackableDict(Generic[KT, VT]):
    """A dict wrapper that records structural changes."""

    __slots__ = ("_data", "_structural_change", "__weakref__")

    def __init__(self, data: Mapping[KT, VT] | Iterable[tuple[KT, VT]] | None = None) -> None:
        items = data.items() if hasattr(data, "items") else (data or ())
        self._data: dict[KT, VT] = {key: as_trackable(value) for key, value in items}
        self._structural_change = False

    @property
    def has_structural_change(self) -> bool:
        return self._structural_change

    def is_dirty(self, deep: bool = False) -> bool:
        if self._structural_change:
            return True
        return deep and _any_element_dirty(self, self._data.values())

    def _touch(self) -> None:
        self._structural_change = True

    # --- Read operations (register) ---

    def __getitem__(self, key: KT) -> VT:
        return register(self._data[key])

    def get(self, key: KT, default: VT | None = None) -> VT | None:
        if key in self._data:
            return register(self._data[key])
        return default

    def __contains__(self, key: KT) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[KT]:
        return iter(self._data)

    def __bool__(self) -> bool:
        return bool(self._data)

    def __eq__(self, other) -> bool:
        if isinstance(other, TrackableDict):
            return self._data == other._data
        if isinstance(other, dict):
            return self._data == other
        return NotImplemented

    __hash__ = None

    def keys(self):
        return self._data.keys()

    def values(self) -> list[VT]:
        return [register(value) for value in self._data.values()]

    def items(self) -> list[tuple[KT, VT]]:
        return [(key, register(value)) for key, value in self._data.items()]

    def copy(self) -> dict[KT, VT]:
        """A plain dict with the current entries."""
        return dict(self.items())

    # --- Write operations (mark structural change) ---

    def __setitem__(self, key: KT, value: VT) -> None:
        self._data[key] = as_trackable(value)
        self._touch()

    def try_add(self, key: KT, value: VT) -> bool:
        """Insert only if key is absent. Returns whether it was inserted."""
        if key in self._data:
            return False
        self[key] = value
        return True

    def __delitem__(self, key: KT) -> None:
        del self._data[key]
        self._touch()

    def pop(self, key: KT, *default) -> VT:
        if key not in self._data:
            return self._data.pop(key, *default)
        self._touch()
        return self._data.pop(key)

    def popitem(self) -> tuple[KT, VT]:
        result = self._data.popitem()
        self._touch()
        return result

    def setdefault(self, key: KT, default: VT | None = None) -> VT:
        if key not in self._data:
            self[key] = default
        return register(self._data[key])

    def update(self, other=None, **kwargs) -> None:
        pairs = list(other.items() if hasattr(other, "items") else (other or ()))
        pairs.extend(kwargs.items())
        for key, value in pairs:
            self._data[key] = as_trackable(value)
        if pairs:
            self._touch()

    def clear(self) -> None:
        if self._data:
            self._touch()
        self._data.clear()

    def __repr__(self) -> str:
        return f"TrackableDict({self._data!r})"


def as_trackable_list(collection) -> TrackableList:
    """Return collection if it is a TrackableList, otherwise raise NotTrackableCollectionError."""
    if isinstance(collection, TrackableList):
        return collection
    raise NotTrackableCollectionError("TrackableList", collection)


def as_trackable_dict(collection) -> TrackableDict:
    """Return collection if it is a TrackableDict, otherwise raise NotTrackableCollectionError."""
    if isinstance(collection, TrackableDict):
        return collection
    raise NotTrackableCollectionError("TrackableDict", collection)
