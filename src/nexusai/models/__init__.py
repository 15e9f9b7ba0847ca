"""SQLModel entities and remote data shapes.

Table models are imported here to ensure they're registered with SQLModel
metadata before the local schema upgrade runs.
"""

from nexusai.models.generation import (
    FAILED_SYNC_THRESHOLD,
    GenerationDraft,
    GenerationQuery,
    GenerationRecord,
    GenerationType,
)
from nexusai.models.storage_settings import StorageSettings
from nexusai.models.subscription import UNLIMITED, Plan, Subscription, SubscriptionSnapshot

__all__ = [
    "FAILED_SYNC_THRESHOLD",
    "GenerationDraft",
    "GenerationQuery",
    "GenerationRecord",
    "GenerationType",
    "StorageSettings",
    "UNLIMITED",
    "Plan",
    "Subscription",
    "SubscriptionSnapshot",
]
