"""Storefront error taxonomy.

Business-rule errors carry a clear user-facing message and are never
retried. TransientStoreError is the only retryable error; its user message is
deliberately generic. Every error knows its HTTP status so the API layer can
render it with a single exception handler.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError


class StorefrontError(Exception):
    """Base class for every error the storefront core reports."""

    code = "storefront_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def user_message(self) -> str:
        return self.message

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.user_message}


class InsufficientCopies(StorefrontError):
    code = "insufficient_copies"
    status_code = 409

    def __init__(self, book_id: str):
        super().__init__("No copies of this book are available right now")
        self.book_id = book_id


class NotFound(StorefrontError):
    code = "not_found"
    status_code = 404

    def __init__(self, kind: str, item_id: str):
        super().__init__(f"{kind.capitalize()} not found")
        self.kind = kind
        self.item_id = item_id


class InvalidStateTransition(StorefrontError):
    code = "invalid_state_transition"
    status_code = 409

    def __init__(self, from_state: str, to_state: str, allowed: list[str] | None = None):
        super().__init__(
            f"Cannot change status from {from_state} to {to_state}. "
            f"Allowed: {allowed or []}"
        )
        self.from_state = from_state
        self.to_state = to_state


class InvalidInventoryChange(StorefrontError):
    code = "invalid_inventory_change"
    status_code = 409


class Forbidden(StorefrontError):
    code = "forbidden"
    status_code = 403


class TransientStoreError(StorefrontError):
    code = "transient_store_error"
    status_code = 503
    retryable = True

    @property
    def user_message(self) -> str:
        return "The store is temporarily unavailable, please try again"


# ---------------------------------------------------------------------------
# Store boundary
# ---------------------------------------------------------------------------

def is_transient(error: Exception) -> bool:
    """Whether a SQLAlchemy error is a connectivity/availability failure."""
    if isinstance(error, (OperationalError, InterfaceError, PoolTimeoutError)):
        return True
    return isinstance(error, DBAPIError) and error.connection_invalidated


@asynccontextmanager
async def store_errors(step: str) -> AsyncGenerator[None, None]:
    """Translate transient SQLAlchemy failures raised inside the block."""
    try:
        yield
    except (DBAPIError, PoolTimeoutError) as e:
        if is_transient(e):
            raise TransientStoreError(f"{step}: {e}") from e
        raise
