"""Repository layer for the local record store.

Provides data access abstractions for all local entities.
No base classes - each repository is self-contained.
"""

from nexusai.repositories.generation import GenerationRepository
from nexusai.repositories.storage_settings import StorageSettingsRepository

__all__ = [
    "GenerationRepository",
    "StorageSettingsRepository",
]
