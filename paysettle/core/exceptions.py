"""Error taxonomy shared by the payment, settlement and indexing services.

Routers translate these into HTTP responses; batch and queue code catches them
per item so one bad record never aborts a scheduled run.
"""

from typing import Any


class PaySettleError(Exception):
    """Base class for all domain errors."""


class IllegalStateTransition(PaySettleError, ValueError):
    """Raised when a state machine transition is not valid from the current state."""

    def __init__(self, entity: str, action: str, current_state: str):
        self.entity = entity
        self.action = action
        self.current_state = current_state
        super().__init__(
            f"Cannot {action} {entity} in status {current_state}"
        )


class NotFoundError(PaySettleError, LookupError):
    """Raised when a referenced aggregate does not exist."""

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InvariantViolation(PaySettleError, ValueError):
    """Raised when an operation would break a business invariant."""


class PermissionDenied(PaySettleError):
    """Raised when the acting user lacks the role an operation requires."""


class ExternalCallFailure(PaySettleError, RuntimeError):
    """Raised when a payment gateway call fails; the caller's transaction is aborted."""


class IndexSyncFailure(PaySettleError, RuntimeError):
    """Raised when the search backend rejects or cannot be reached for an index operation."""
