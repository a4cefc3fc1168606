"""Durable key-value state store.

Each StateStore is one logical table keyed by a single string attribute
(request_id for material requests, order_id for work orders). Items are
flat JSON-serialisable dicts.

Backends:
- InMemoryStateStore: For tests and local runs
- SqliteStateStore: Single-file sqlite database, one row per item
"""

import copy
import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from core.errors import StoreError, StoreConflictError
from core.identifiers import to_key


REQUESTS_TABLE = "requests"
WORK_ORDERS_TABLE = "work_orders"


def _condition_holds(current: Optional[Dict[str, Any]], condition: Optional[Mapping[str, Any]]) -> bool:
    if condition is None:
        return True
    if current is None:
        return False
    return all(current.get(k) == v for k, v in condition.items())


class StateStore(ABC):
    """Abstract base class for a keyed state table."""

    def __init__(self, table: str, key_name: str):
        self.table = table
        self.key_name = key_name

    def _item_key(self, item: Mapping[str, Any]) -> str:
        if item.get(self.key_name) is None:
            raise StoreError(f"Item for table '{self.table}' is missing key '{self.key_name}'")
        return to_key(item[self.key_name])

    @abstractmethod
    async def get_item(self, key: Any) -> Optional[Dict[str, Any]]:
        """Return the item stored under key, or None."""
        pass

    @abstractmethod
    async def put_item(self, item: Mapping[str, Any]) -> None:
        """Insert or replace a whole item."""
        pass

    @abstractmethod
    async def scan_items(self) -> List[Dict[str, Any]]:
        """Return every item in the table."""
        pass

    @abstractmethod
    async def update_item(
        self,
        key: Any,
        attributes: Mapping[str, Any],
        condition: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Set the given attributes on an item and return the updated item.

        A missing item is created, unless a condition is given. With a
        condition, every listed attribute must currently hold the listed value.

        Raises:
            StoreConflictError: The condition does not hold
        """
        pass


class InMemoryStateStore(StateStore):
    """In-memory state table.

    WARNING: State is lost on restart. Use only for tests and local runs.
    """

    def __init__(self, table: str, key_name: str):
        super().__init__(table, key_name)
        self._items: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    async def get_item(self, key: Any) -> Optional[Dict[str, Any]]:
        with self._lock:
            item = self._items.get(to_key(key))
            return copy.deepcopy(item) if item is not None else None

    async def put_item(self, item: Mapping[str, Any]) -> None:
        key = self._item_key(item)
        with self._lock:
            self._items[key] = copy.deepcopy(dict(item))

    async def scan_items(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(item) for item in self._items.values()]

    async def update_item(
        self,
        key: Any,
        attributes: Mapping[str, Any],
        condition: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        k = to_key(key)
        with self._lock:
            current = self._items.get(k)
            if not _condition_holds(current, condition):
                raise StoreConflictError(f"Conditional update failed for {self.table}/{k}")
            updated = dict(current) if current is not None else {self.key_name: k}
            updated.update(copy.deepcopy(dict(attributes)))
            self._items[k] = updated
            return copy.deepcopy(updated)


class SqliteStateStore(StateStore):
    """State table backed by a sqlite database file.

    All tables share one sqlite table (state_item) partitioned by table name.
    """

    def __init__(self, db_path: Path, table: str, key_name: str):
        super().__init__(table, key_name)
        self.db_path = Path(db_path)
        self.init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=30)

    def init_db(self) -> None:
        """Create the state_item table if it does not exist."""
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open state database {self.db_path}: {e}") from e
        try:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS state_item (
                    table_name TEXT NOT NULL,
                    item_key TEXT NOT NULL,
                    attributes TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (table_name, item_key)
                )
            """)
            conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Cannot initialise state database {self.db_path}: {e}") from e
        finally:
            conn.close()

    def _read(self, cursor: sqlite3.Cursor, key: str) -> Optional[Dict[str, Any]]:
        cursor.execute(
            "SELECT attributes FROM state_item WHERE table_name = ? AND item_key = ?",
            (self.table, key),
        )
        row = cursor.fetchone()
        return json.loads(row[0]) if row else None

    def _write(self, cursor: sqlite3.Cursor, key: str, item: Mapping[str, Any]) -> None:
        cursor.execute(
            """
            INSERT INTO state_item (table_name, item_key, attributes, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(table_name, item_key)
            DO UPDATE SET attributes = excluded.attributes, updated_at = excluded.updated_at
            """,
            (self.table, key, json.dumps(dict(item), default=str), datetime.utcnow().isoformat()),
        )

    async def get_item(self, key: Any) -> Optional[Dict[str, Any]]:
        conn = self._connect()
        try:
            return self._read(conn.cursor(), to_key(key))
        except sqlite3.Error as e:
            raise StoreError(f"Error reading {self.table}/{key}: {e}") from e
        finally:
            conn.close()

    async def put_item(self, item: Mapping[str, Any]) -> None:
        key = self._item_key(item)
        conn = self._connect()
        try:
            self._write(conn.cursor(), key, item)
            conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Error writing {self.table}/{key}: {e}") from e
        finally:
            conn.close()

    async def scan_items(self) -> List[Dict[str, Any]]:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT attributes FROM state_item WHERE table_name = ? ORDER BY item_key",
                (self.table,),
            )
            return [json.loads(row[0]) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise StoreError(f"Error scanning {self.table}: {e}") from e
        finally:
            conn.close()

    async def update_item(
        self,
        key: Any,
        attributes: Mapping[str, Any],
        condition: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        k = to_key(key)
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute("BEGIN IMMEDIATE")
            current = self._read(cursor, k)
            if not _condition_holds(current, condition):
                conn.rollback()
                raise StoreConflictError(f"Conditional update failed for {self.table}/{k}")
            updated = dict(current) if current is not None else {self.key_name: k}
            updated.update(dict(attributes))
            self._write(cursor, k, updated)
            conn.commit()
            return updated
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"Error updating {self.table}/{k}: {e}") from e
        finally:
            conn.close()
