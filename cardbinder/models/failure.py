"""
Operation outcomes and known failure types.

Mutation operations report their outcome through `OperationResult` so that
callers holding optimistic state can roll back on failure. Expected
conditions (cache miss, empty owned set) are never failures.

Failure classes:
- Catalog failures: the card-catalog service could not answer
- Storage write failures: a single or batch ownership write was rejected
- Subscription failures: a live owned-set feed was dropped or denied
"""

from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input validation failures
    INVALID_INPUT = "invalid_input"

    # Resource failures
    NOT_FOUND = "not_found"

    # Service failures
    CATALOG_UNAVAILABLE = "catalog_unavailable"
    STORAGE_WRITE_FAILED = "storage_write_failed"
    SUBSCRIPTION_FAILED = "subscription_failed"

    # Unknown
    UNKNOWN = "unknown"


T = TypeVar("T")


class FailureDetail(BaseModel):
    """Detailed information about a failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="Original error message",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )


class OperationResult(BaseModel, Generic[T]):
    """
    Outcome of an operation that may fail.

    A successful result never carries failure details; a failed result
    always does.
    """

    ok: bool = Field(
        ...,
        description="Whether the operation completed as requested",
    )
    data: T | None = Field(
        default=None,
        description="Result data (present on success)",
    )
    failure: FailureDetail | None = Field(
        default=None,
        description="Failure details (present on failure)",
    )

    @classmethod
    def success(cls, data: T | None = None) -> "OperationResult[T]":
        """Create a success result."""
        return cls(ok=True, data=data)

    @classmethod
    def failed(
        cls,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
    ) -> "OperationResult[Any]":
        """Create a failed result."""
        return cls(
            ok=False,
            failure=FailureDetail(kind=kind, message=message, detail=detail),
        )

    @property
    def message(self) -> str | None:
        """Failure message, or None on success."""
        return self.failure.message if self.failure else None


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        super().__init__(message)

    def to_result(self) -> OperationResult[Any]:
        """Convert to a failed OperationResult."""
        return OperationResult.failed(
            kind=self.kind,
            message=self.message,
            detail=self.detail,
        )


class CatalogError(KnownError):
    """
    Raised when the card-catalog service cannot answer a request.

    Carries the original transport or HTTP message. Failures are never cached.
    """

    def __init__(
        self,
        message: str,
        kind: FailureKind = FailureKind.CATALOG_UNAVAILABLE,
        status_code: int | None = None,
    ):
        self.status_code = status_code
        super().__init__(kind=kind, message=message)

    @property
    def not_found(self) -> bool:
        return self.kind == FailureKind.NOT_FOUND


class SubscriptionError(KnownError):
    """Raised from a live owned-set feed after the storage dropped it."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(kind=FailureKind.SUBSCRIPTION_FAILED, message=message, detail=detail)


class PersistedStoreError(Exception):
    """Raised by a persisted cache store when a read or write fails."""

    pass


class QuotaExceededError(PersistedStoreError):
    """Raised when a persisted cache write would exceed the store quota."""

    def __init__(self, key: str, required: int, quota: int) -> None:
        self.key = key
        self.required = required
        self.quota = quota
        super().__init__(f"Storing '{key}' needs {required} bytes, quota is {quota} bytes")
