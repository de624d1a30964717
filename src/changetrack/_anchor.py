"""Data anchor: plain Python structures that hold all shared tracking state.

Per-type tables (setter bindings, deep accessors) and the entity -> tracker
association table live here. Behavior modules read and write these directly.
"""

import threading

# Per-type property setters, built lazily on first rollback.
setters: dict[type, dict] = {}  # cls -> {property_name: setter(entity, value)}
setters_lock = threading.Lock()

# Per-type deep tracking accessors. Write-once per type.
deep_accessors: dict[type, tuple] = {}  # cls -> (accessor, ...)
deep_lock = threading.Lock()

# Tracker association: id(entity) -> (weakref(entity), tracker).
# Entries are removed by the weakref callback when the entity dies.
trackers: dict[int, tuple] = {}
# Reentrant: a weakref callback can fire from a GC pass triggered while held.
trackers_lock = threading.RLock()
