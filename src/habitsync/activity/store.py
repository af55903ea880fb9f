"""Local activity record store over an injected key-value backend."""

import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from .exceptions import StoreError
from .models import ActivityRecord, Identity
from .schema import LOCAL_STORE_SCHEMA

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Minimal durable key-value interface, like browser local storage."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the raw value stored under key, or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete key if present."""

    def close(self) -> None:
        pass


class MemoryKeyValueStore(KeyValueStore):
    """In-memory store for tests and ephemeral sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class SQLiteKeyValueStore(KeyValueStore):
    """Durable key-value store in a single SQLite file."""

    def __init__(self, db_path: Union[str, Path] = Path("activity.db"), timeout: float = 30.0):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file (created if missing)
            timeout: Seconds to wait on a locked database
        """
        self.db_path = Path(db_path).expanduser()
        self.timeout = timeout
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        try:
            with self.connection() as conn:
                for statement in LOCAL_STORE_SCHEMA.get_all_sql_statements():
                    conn.execute(statement)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to initialize local store schema: {e}", store_path=str(self.db_path))

    @contextmanager
    def connection(self):
        """Database connection context manager."""
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def get(self, key: str) -> Optional[str]:
        try:
            with self.connection() as conn:
                row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
                return row["value"] if row else None
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read '{key}': {e}", storage_key=key, store_path=str(self.db_path))

    def set(self, key: str, value: str) -> None:
        try:
            with self.connection() as conn:
                conn.execute("""
                    INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
                """, (key, value))
        except sqlite3.Error as e:
            raise StoreError(f"Failed to write '{key}': {e}", storage_key=key, store_path=str(self.db_path))

    def remove(self, key: str) -> None:
        try:
            with self.connection() as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise StoreError(f"Failed to remove '{key}': {e}", storage_key=key, store_path=str(self.db_path))


class ActivityRecordStore:
    """Ordered collection of activity records under one namespaced key.

    Newest completions are kept first. Every mutation is a read-modify-write
    of the whole collection under a lock, so appends made while a sync pass
    is running are never lost; records are only ever added or removed whole.
    """

    def __init__(self, backend: KeyValueStore, storage_key: str = "activities:v1"):
        self.backend = backend
        self.storage_key = storage_key
        self._lock = threading.RLock()

    def _read_entries(self) -> List[Any]:
        raw = self.backend.get(self.storage_key)
        if not raw:
            return []

        try:
            entries = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Local activity store '{self.storage_key}' is corrupt, treating as empty: {e}")
            return []
        if not isinstance(entries, list):
            logger.warning(f"Local activity store '{self.storage_key}' is not a list, treating as empty")
            return []
        return entries

    @staticmethod
    def _parse(entries: List[Any]) -> Tuple[List[ActivityRecord], List[Any]]:
        records, unparsed = [], []
        for entry in entries:
            try:
                records.append(ActivityRecord.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed local activity entry: {e}")
                unparsed.append(entry)
        return records, unparsed

    def load(self) -> List[ActivityRecord]:
        """All local records. An unreadable payload reads as empty."""
        try:
            entries = self._read_entries()
        except StoreError:
            return []
        return self._parse(entries)[0]

    def _load_for_write(self) -> Tuple[List[ActivityRecord], List[Any]]:
        """Records plus the raw entries that failed to parse.

        Backend errors propagate here: writing back an empty list after a
        failed read would erase the stored history.
        """
        return self._parse(self._read_entries())

    def save(self, records: Iterable[ActivityRecord], unparsed: Iterable[Any] = ()) -> None:
        payload = json.dumps([record.to_dict() for record in records] + list(unparsed))
        self.backend.set(self.storage_key, payload)

    def _mutate(self, change: Callable[[List[ActivityRecord]], List[ActivityRecord]]) -> None:
        # Unparsed entries are kept as-is at the end
        with self._lock:
            records, unparsed = self._load_for_write()
            self.save(change(records), unparsed)

    def add(self, record: ActivityRecord) -> ActivityRecord:
        """Prepend a new record."""
        self._mutate(lambda records: [record] + records)
        return record

    def get(self, identity: Identity) -> Optional[ActivityRecord]:
        return next((r for r in self.load() if r.id == identity), None)

    def pending(self) -> List[ActivityRecord]:
        """Snapshot of records still carrying a placeholder identity."""
        return [r for r in self.load() if r.is_placeholder]

    def replace(self, identity: Identity, replacement: ActivityRecord) -> bool:
        """Swap the record with the given identity for replacement, in place.

        If a record with the replacement's identity already exists, the old
        record is dropped instead so no identity appears twice. Returns False
        when the original record is no longer present.
        """
        found = []

        def change(records):
            if not any(r.id == identity for r in records):
                return records
            found.append(True)
            duplicate = any(r.id == replacement.id for r in records)
            result = []
            for r in records:
                if r.id == identity:
                    if not duplicate:
                        result.append(replacement)
                else:
                    result.append(r)
            return result

        self._mutate(change)
        return bool(found)

    def remove(self, identity: Identity) -> bool:
        return self.remove_where(lambda r: r.id == identity) > 0

    def remove_where(self, predicate: Callable[[ActivityRecord], bool]) -> int:
        """Remove every record matching predicate; returns the number removed."""
        removed = []

        def change(records):
            kept = [r for r in records if not predicate(r)]
            removed.append(len(records) - len(kept))
            return kept

        self._mutate(change)
        return removed[0]

    def remove_owner(self, kind: str, owner_ref_id: str) -> int:
        return self.remove_where(lambda r: r.belongs_to(kind, owner_ref_id))

    def clear(self) -> int:
        """Remove all records unconditionally."""
        with self._lock:
            count = len(self.load())
            self.backend.remove(self.storage_key)
        return count
