"""Background workers for async processing tasks."""

from nexusai.workers.sync_worker import GenerationPusher, SyncCoordinator, SyncPassResult

__all__ = [
    "GenerationPusher",
    "SyncCoordinator",
    "SyncPassResult",
]
