"""
Flat-File Record Store

One JSON file holds one collection: a single array of records.

GUARANTEES:
- Reads never fail. A missing, empty, unparsable or non-array file is an
  empty collection, and the file is reset to ``[]`` on the spot.
- Writes are atomic. The collection is written to ``<file>.tmp`` next to
  the target and renamed over it, so readers see either the old or the
  new collection, never a partial one.
- Every read-modify-write runs under one lock per file, shared by all
  stores in the process that point at the same path.

No cross-process locking is attempted.
"""

import json
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

from finance_tracker.log import get_logger
from finance_tracker.services.storage.interface import CorruptStoreError


logger = get_logger(__name__)

_locks: dict[str, threading.RLock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    key = str(path.resolve())
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = _locks[key] = threading.RLock()
        return lock


class JsonRecordStore:
    """
    A JSON array on disk, used like a tiny document collection.

    Usage:
        store = JsonRecordStore(Path("data/budgets.json"))
        with store.transaction() as records:
            records.append({...})
            store.write_all(records)
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self._lock = _lock_for(self._path)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def _tmp_path(self) -> Path:
        return self._path.with_name(self._path.name + ".tmp")

    def _load(self) -> list[dict]:
        """Parse the file, raising CorruptStoreError if it isn't a list."""
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise CorruptStoreError(f"{self._path} does not exist")
        except (OSError, UnicodeDecodeError) as e:
            raise CorruptStoreError(f"{self._path} is unreadable: {e}")

        if not raw.strip():
            raise CorruptStoreError(f"{self._path} is empty")

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptStoreError(f"{self._path} is not valid JSON: {e}")

        if not isinstance(parsed, list):
            raise CorruptStoreError(
                f"{self._path} holds a {type(parsed).__name__}, expected a list"
            )
        return parsed

    def read_all(self) -> list[dict]:
        """
        Read the whole collection.

        Self-healing: any problem with the file yields an empty
        collection and resets the file to ``[]``.
        """
        with self._lock:
            try:
                return self._load()
            except CorruptStoreError as e:
                if self._path.exists():
                    logger.warning(
                        "json_store_reset",
                        path=str(self._path),
                        reason=str(e),
                    )
                self.write_all([])
                return []

    def write_all(self, records: list[dict]) -> None:
        """Replace the whole collection atomically."""
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._tmp_path
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)

    @contextmanager
    def transaction(self) -> Iterator[list[dict]]:
        """
        Hold the file lock for a full read-modify-write.

        Yields the current records. Nothing is written unless the caller
        calls ``write_all`` inside the block.
        """
        with self._lock:
            yield self.read_all()
