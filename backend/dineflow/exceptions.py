"""Error kinds raised by the order core and its collaborators."""

from typing import Optional


class DineflowError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str, detail: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class NotFound(DineflowError):
    """Unknown order, line item, staff member or restaurant."""


class InvalidTransition(DineflowError):
    """Backward, skipped or guarded status change."""


class Conflict(DineflowError):
    """Optimistic concurrency check failed: the record changed since it was read."""


class ValidationError(DineflowError):
    """Malformed order draft (empty cart, missing customer fields, bad quantities)."""


class PersistenceUnavailable(DineflowError):
    """The order store could not be reached."""
