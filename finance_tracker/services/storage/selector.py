"""
Storage-Mode Selector

Decides once, at startup, which backend serves every request.

DESIGN DECISION: The decision is an immutable StorageState handed to the
backend factory. There is no re-probing: if MongoDB is down at startup
the process runs on JSON files until it is restarted.
"""

from dataclasses import dataclass, field
from typing import Optional

from pymongo import MongoClient
from pymongo.database import Database

from finance_tracker.config import Settings, StorageSettings
from finance_tracker.log import get_logger
from finance_tracker.models.records import StorageMode, UserSettings
from finance_tracker.services.storage.interface import StorageBackend, StorageUnavailableError
from finance_tracker.services.storage.json_backend import create_json_backend
from finance_tracker.services.storage.mongo_backend import (
    MongoConnection,
    create_mongo_backend,
    redact_uri,
)


logger = get_logger(__name__)


@dataclass(frozen=True)
class StorageState:
    """Outcome of the startup probe."""

    mode: StorageMode
    mongo_connected: bool = False
    mongo_error: Optional[str] = None
    database: Optional[Database] = field(default=None, repr=False, compare=False)

    def health(self) -> dict:
        """Diagnostic view (safe to log or return to an operator)."""
        return {
            "mode": StorageMode(self.mode).value,
            "mongoConnected": self.mongo_connected,
            "mongoError": self.mongo_error,
        }


def probe_storage(
    settings: StorageSettings,
    client: Optional[MongoClient] = None,
) -> StorageState:
    """
    Try MongoDB once and pick the storage mode.

    Args:
        settings: Connection settings (URI, timeout, TLS overrides)
        client: Pre-built client, used instead of one built from the URI

    Returns:
        StorageState in mongo mode when the server answered a ping,
        otherwise json mode with the reason kept in ``mongo_error``.
        Never raises for connectivity problems.
    """
    connection = MongoConnection(settings, client=client)
    try:
        database = connection.connect()
    except StorageUnavailableError as e:
        connection.close()
        state = StorageState(mode=StorageMode.JSON, mongo_error=str(e))
        logger.warning(
            "storage_mode_selected",
            mode=StorageMode.JSON.value,
            uri=redact_uri(settings.uri),
            reason=state.mongo_error,
        )
        return state

    logger.info(
        "storage_mode_selected",
        mode=StorageMode.MONGO.value,
        uri=redact_uri(settings.uri),
        database=database.name,
    )
    return StorageState(mode=StorageMode.MONGO, mongo_connected=True, database=database)


def default_user_settings(settings: Settings) -> UserSettings:
    """Settings assigned to newly registered users."""
    app = settings.app
    return UserSettings(currency=app.default_currency, theme=app.default_theme)


def build_backend(state: StorageState, settings: Settings) -> StorageBackend:
    """
    Build the service bundle for the selected mode.

    Raises:
        StorageUnavailableError: mongo mode without a connected database
    """
    defaults = default_user_settings(settings)

    if state.mode == StorageMode.MONGO:
        if state.database is None:
            raise StorageUnavailableError("mongo mode selected without a connected database")
        return create_mongo_backend(state.database, defaults)

    data_dir = settings.app.data_dir
    logger.info("json_backend_ready", data_dir=str(data_dir))
    return create_json_backend(data_dir, defaults)
