from typing import Any, Dict, Optional


class AdflowError(Exception):
    """Base class for errors raised by the ad-group services."""


class ValidationError(AdflowError):
    """Raised when input is malformed before any write is attempted."""


class ConfirmationRequired(ValidationError):
    """Raised when a destructive action was invoked without explicit confirmation."""

    def __init__(self, prompt: str):
        super().__init__(prompt)
        self.prompt = prompt


class ScrubConfirmationRequired(ConfirmationRequired):
    """Raised when a scrub would discard unresolved review work."""


class NotFoundError(AdflowError):
    """Raised when a required document does not exist."""


class StoreError(AdflowError):
    """Raised when the document store rejects or fails an operation."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class PartialStateError(AdflowError):
    """
    Raised when a committed batch could not be followed by its group update.

    The batch's effects are persisted; only the follow-up write is missing.
    It is idempotent and may be retried with ``pending_update``.
    """

    def __init__(self, group_id: str, path: str, pending_update: Dict[str, Any], *, cause: Optional[BaseException] = None):
        super().__init__(f"Group {group_id} was modified but {path} could not be updated: {cause}")
        self.group_id = group_id
        self.path = path
        self.pending_update = pending_update
        self.cause = cause
