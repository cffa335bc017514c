"""
Custom exceptions for the application
"""
from typing import Optional


class RizqError(Exception):
    """
    Base exception for domain errors

    Every subclass carries a stable ``code`` that the API layer returns to the
    client so it can render a specific message.
    """

    code = "error"
    retryable = False

    def __init__(self, message: str, resource_id: Optional[str] = None):
        self.resource_id = resource_id
        super().__init__(message)


class ValidationError(RizqError):
    """Malformed or missing required input (empty message, missing item, self-targeting)"""

    code = "validation_error"


class NotFoundError(RizqError):
    """Referenced deal, item, message or profile does not exist"""

    code = "not_found"


class ForbiddenError(RizqError):
    """
    Exception raised when a user tries to perform an operation they don't have permission for

    Also raised when the store rejects a write because of row-level permissions.
    """

    code = "forbidden"

    def __init__(self, message: str, resource_id: Optional[str] = None, attempted_by: Optional[str] = None):
        self.attempted_by = attempted_by
        super().__init__(message, resource_id=resource_id)


class InvalidTransitionError(RizqError):
    """Deal status change that the state machine does not allow"""

    code = "invalid_transition"

    def __init__(self, deal_uid: str, current_status: str, requested_status: str):
        self.deal_uid = deal_uid
        self.current_status = current_status
        self.requested_status = requested_status
        message = (
            f"Deal {deal_uid} cannot move from '{current_status}' "
            f"to '{requested_status}'"
        )
        super().__init__(message, resource_id=deal_uid)


class DuplicateDealError(RizqError):
    """An open deal between the same two items already exists"""

    code = "duplicate_deal"


class TransientError(RizqError):
    """Store unreachable or timed out; safe to retry"""

    code = "transient_error"
    retryable = True


class SendFailedError(RizqError):
    """
    Optimistic message send failed

    The pending entry has been retracted; ``content`` holds the text the user
    typed so the caller can put it back into the input.
    """

    code = "send_failed"

    def __init__(self, content: str, cause: Exception):
        self.content = content
        self.cause = cause
        super().__init__(f"Message was not sent: {cause}")

    @property
    def retryable(self) -> bool:
        return isinstance(self.cause, TransientError)
