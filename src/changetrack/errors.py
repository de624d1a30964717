"""Exceptions raised by changetrack."""

from __future__ import annotations


class ChangeTrackingError(Exception):
    """Base class for change tracking usage errors."""


class TrackerNotActivatedError(ChangeTrackingError, LookupError):
    """A tracker was required but was never created for the entity."""

    def __init__(self, entity: object) -> None:
        self.entity = entity
        super().__init__(
            f"No change tracker for {type(entity).__name__} instance; "
            f"call get_or_create_tracker() or as_trackable() first"
        )


class NotTrackableCollectionError(ChangeTrackingError, TypeError):
    """A plain collection was given where a trackable wrapper was expected."""

    def __init__(self, expected: str, received: object) -> None:
        self.expected = expected
        self.received = received
        super().__init__(f"Expected a {expected}, got {type(received).__name__}")
