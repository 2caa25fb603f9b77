"""Error taxonomy for projectflow.

Store errors are raised by the store client and caught by the sync
controller or the mutators; they never reach the UI.
"""

from __future__ import annotations


class ProjectFlowError(Exception):
    """Base class for all projectflow errors."""


class StoreError(ProjectFlowError):
    def __init__(
        self,
        message: str,
        collection: str = "",
        record_id: str | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.collection = collection
        self.record_id = record_id
        self.status = status


class StoreUnavailable(StoreError):
    """A read failed (network, auth or server error)."""


class StoreWriteError(StoreError):
    """An insert, update or delete was rejected or could not be sent."""


class AssistantError(ProjectFlowError):
    """The completion API call failed or returned something unusable."""


class ValidationError(ProjectFlowError, ValueError):
    """A required field is empty or malformed."""
