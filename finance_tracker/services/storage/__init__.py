"""
Storage Services Package

Provides abstract interfaces and two concrete implementations (MongoDB and
JSON files) for every entity. The selector picks one at startup.
"""

from finance_tracker.services.storage.interface import (
    BudgetStorageInterface,
    CategoryStorageInterface,
    CorruptStoreError,
    NotificationStorageInterface,
    StorageBackend,
    StorageError,
    StorageUnavailableError,
    TransactionStorageInterface,
    UserStorageInterface,
)
from finance_tracker.services.storage.json_backend import create_json_backend
from finance_tracker.services.storage.json_store import JsonRecordStore
from finance_tracker.services.storage.mongo_backend import (
    MongoConnection,
    create_mongo_backend,
    redact_uri,
)
from finance_tracker.services.storage.selector import (
    StorageState,
    build_backend,
    probe_storage,
)

__all__ = [
    # Interfaces
    "BudgetStorageInterface",
    "CategoryStorageInterface",
    "NotificationStorageInterface",
    "StorageBackend",
    "TransactionStorageInterface",
    "UserStorageInterface",
    # Exceptions
    "CorruptStoreError",
    "StorageError",
    "StorageUnavailableError",
    # JSON implementation
    "JsonRecordStore",
    "create_json_backend",
    # MongoDB implementation
    "MongoConnection",
    "create_mongo_backend",
    "redact_uri",
    # Selection
    "StorageState",
    "build_backend",
    "probe_storage",
]
