"""Error taxonomy for the field/ledger sync pipelines.

Every failure raised by the translators, posters and connectors derives from
SyncError so the pipeline handler can attach order context and turn it into a
500 response. Class names are also used as Temporal non-retryable error types.
"""

from typing import Any, Dict, Optional


class SyncError(Exception):
    """Base exception for sync failures.

    Attributes:
        order_id: Field-system work order / scheduled order id (if known)
        order_type: "Work Order" or "Planned Order" (if known)
        request_id: Material request id (if known)
    """

    def __init__(
        self,
        message: str,
        order_id: Optional[str] = None,
        order_type: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.order_id = order_id
        self.order_type = order_type
        self.request_id = request_id

    def with_context(
        self,
        order_id: Optional[str] = None,
        order_type: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> "SyncError":
        """Fill in missing context without overwriting what is already set."""
        self.order_id = self.order_id or order_id
        self.order_type = self.order_type or order_type
        self.request_id = self.request_id or request_id
        return self

    def context(self) -> Dict[str, Any]:
        return {
            k: v for k, v in {
                "order_id": self.order_id,
                "order_type": self.order_type,
                "request_id": self.request_id,
            }.items() if v is not None
        }

    def __str__(self) -> str:
        if self.order_type and self.order_id:
            return f"{self.order_type} {self.order_id}: {self.message}"
        return self.message


class ValidationError(SyncError):
    """Malformed or missing source fields. Aborts the current order."""
    pass


class ParseError(ValidationError):
    """A display string did not contain a bracketed reference code."""
    pass


class ReferenceLookupError(SyncError, LookupError):
    """Unresolvable cost center, account or catalog cross-reference."""
    pass


class AmbiguousMatchError(ReferenceLookupError):
    """More than one candidate matched where a unique match was required."""
    pass


class UnmatchedProductError(SyncError):
    """No ledger stock record carries the material's reference code."""
    pass


class InsufficientStockError(SyncError):
    """Requested quantity exceeds the ledger on-hand quantity."""

    def __init__(self, message: str, requested=None, on_hand=None, **kwargs):
        super().__init__(message, **kwargs)
        self.requested = requested
        self.on_hand = on_hand


class AlreadyPostedError(SyncError):
    """The order has already been posted to the ledger."""
    pass


class RemoteCallError(SyncError):
    """Non-2xx response or transport failure from a remote system."""

    def __init__(self, message: str, status_code: int = 0, response_body: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.response_body = response_body


class AuthenticationError(RemoteCallError):
    """Ledger session could not be obtained (or was rejected)."""
    pass


class JournalFinalizeError(RemoteCallError):
    """Journal entry was created but could not be posted; it is stuck in draft."""

    def __init__(self, message: str, move_id: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.move_id = move_id


class StoreError(SyncError):
    """Persistence failure in the state store."""
    pass


class StoreConflictError(StoreError):
    """Conditional update failed because the stored item changed."""
    pass

