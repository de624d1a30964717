"""changetrack: dirty checking, rollback and accept for mutable Python object graphs."""

from importlib.metadata import version as _version

__version__ = _version("changetrack")

from changetrack.errors import ChangeTrackingError, TrackerNotActivatedError, NotTrackableCollectionError
from changetrack.tracker import ChangeTracker, DirtyCheckable, MISSING
from changetrack.cache import (
    as_trackable,
    create_tracker,
    get_or_create_tracker,
    get_tracker,
    is_trackable,
    tracked_count,
    try_get_tracker,
)
from changetrack.deep import set_trackable_properties, get_trackable_properties, has_deep_changes
from changetrack.containers import TrackableList, TrackableDict, as_trackable_list, as_trackable_dict
from changetrack.entity import Trackable, TrackingMode, dirty_handle, trackable, tracked, untracked

__all__ = [
    "ChangeTracker",
    "DirtyCheckable",
    "MISSING",
    "get_or_create_tracker",
    "try_get_tracker",
    "get_tracker",
    "create_tracker",
    "tracked_count",
    "is_trackable",
    "as_trackable",
    "set_trackable_properties",
    "get_trackable_properties",
    "has_deep_changes",
    "TrackableList",
    "TrackableDict",
    "as_trackable_list",
    "as_trackable_dict",
    "Trackable",
    "TrackingMode",
    "trackable",
    "tracked",
    "dirty_handle",
    "untracked",
    "ChangeTrackingError",
    "TrackerNotActivatedError",
    "NotTrackableCollectionError",
]
