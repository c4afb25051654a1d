from cardbinder.models.card import (
    Card,
    CardSet,
    format_card_number,
    normalize_card,
    normalize_set,
)
from cardbinder.models.failure import (
    CatalogError,
    FailureDetail,
    FailureKind,
    KnownError,
    OperationResult,
    PersistedStoreError,
    QuotaExceededError,
    SubscriptionError,
)
from cardbinder.models.ownership import (
    Condition,
    OwnedSetState,
    OwnershipRecord,
    OwnershipStats,
    compute_ownership_stats,
)

__all__ = [
    "Card",
    "CardSet",
    "CatalogError",
    "Condition",
    "FailureDetail",
    "FailureKind",
    "KnownError",
    "OperationResult",
    "OwnedSetState",
    "OwnershipRecord",
    "OwnershipStats",
    "PersistedStoreError",
    "QuotaExceededError",
    "SubscriptionError",
    "compute_ownership_stats",
    "format_card_number",
    "normalize_card",
    "normalize_set",
]
