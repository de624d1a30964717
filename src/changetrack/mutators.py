"""Property setter bindings: write a value onto an entity by property name.

Used only by rollback. Bindings are built once per type, on first use, so
restoring a value is a dict lookup plus a call rather than a class walk.
"""

from __future__ import annotations

import dataclasses
import inspect
import logging
from typing import Any, Callable, ClassVar, Mapping, get_origin

from changetrack import _anchor

logger = logging.getLogger("changetrack.mutators")

Setter = Callable[[Any, Any], None]


def property_name(ref) -> str:
    """Resolve a property identifier or class-level property reference to its name.

    Accepts a plain string, a ``property`` object (``Order.total``) or a
    descriptor carrying a ``name`` (``Order.id`` for a tracked attribute).
    """
    if isinstance(ref, str):
        return ref
    if isinstance(ref, property):
        if ref.fget is not None:
            return ref.fget.__name__
        if ref.fset is not None:
            return ref.fset.__name__
    name = getattr(ref, "name", None)
    if isinstance(name, str):
        return name
    raise TypeError(f"Cannot resolve a property name from {ref!r}")


def _make_setter(name: str) -> Setter:
    def _set(entity, value) -> None:
        setattr(entity, name, value)

    _set.__name__ = f"set_{name}"
    return _set


def _is_classvar(annotation) -> bool:
    if isinstance(annotation, str):
        return annotation.startswith(("ClassVar", "typing.ClassVar"))
    return annotation is ClassVar or get_origin(annotation) is ClassVar


def _own_annotations(klass: type) -> dict:
    try:
        return inspect.get_annotations(klass)
    except NameError:
        # Lazily evaluated annotations with unresolved forward references
        # (3.14+). Only the names are needed.
        import annotationlib

        return annotationlib.get_annotations(klass, format=annotationlib.Format.FORWARDREF)


def annotated_names(klass: type) -> list[str]:
    """Instance attribute names annotated directly on klass (no ClassVars, no dunders)."""
    return [
        name
        for name, annotation in _own_annotations(klass).items()
        if not name.startswith("__") and not _is_classvar(annotation)
    ]


def _writable_names(cls: type) -> list[str]:
    frozen = dataclasses.is_dataclass(cls) and cls.__dataclass_params__.frozen
    names: dict[str, bool] = {}

    # Base classes first so the most-derived definition wins.
    for klass in reversed(cls.__mro__):
        if klass is object:
            continue
        if not frozen:
            for name in annotated_names(klass):
                names[name] = True
        for name, attr in vars(klass).items():
            if name.startswith("__"):
                continue
            if isinstance(attr, property):
                names[name] = attr.fset is not None
            elif hasattr(type(attr), "__set__"):
                names[name] = True

    if dataclasses.is_dataclass(cls) and not frozen:
        for f in dataclasses.fields(cls):
            names[f.name] = True

    return [name for name, writable in names.items() if writable]


def build_property_setters(cls: type) -> dict[str, Setter]:
    """Build a setter for every writable property of cls."""
    return {name: _make_setter(name) for name in _writable_names(cls)}


def get_property_setters(cls: type) -> Mapping[str, Setter]:
    """Setter bindings for cls, built on first request and reused afterwards."""
    setters = _anchor.setters.get(cls)
    if setters is not None:
        return setters
    with _anchor.setters_lock:
        setters = _anchor.setters.get(cls)
        if setters is None:
            setters = build_property_setters(cls)
            _anchor.setters[cls] = setters
            logger.debug("Built %d property setters for %s", len(setters), cls.__qualname__)
    return setters


def try_set_property(entity, name: str, value) -> bool:
    """Write value onto entity.name. Unknown names are skipped and return False."""
    setter = get_property_setters(type(entity)).get(name)
    if setter is None:
        logger.debug("No setter for %s.%s; skipped", type(entity).__qualname__, name)
        return False
    setter(entity, value)
    return True
