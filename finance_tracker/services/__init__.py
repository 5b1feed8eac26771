"""Services package."""

from finance_tracker.services.storage import (
    StorageBackend,
    StorageError,
    StorageState,
    StorageUnavailableError,
    build_backend,
    probe_storage,
)

__all__ = [
    "StorageBackend",
    "StorageError",
    "StorageState",
    "StorageUnavailableError",
    "build_backend",
    "probe_storage",
]
