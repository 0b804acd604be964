"""
Local SQLite store of orders that have been fully packed.

The packing session refuses an invoice whose order is in this set, so an
order cannot be packed twice on the same station. The store also remembers
the most recently packed order.

DB location: <DataDir>/packed_orders.db
"""

import sqlite3
import time
from pathlib import Path
from typing import FrozenSet, Optional

from PySide6.QtCore import QObject, Signal

from exceptions import PackedOrderStoreError
from logger import get_logger

logger = get_logger(__name__)

DB_FILE_NAME = "packed_orders.db"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS packed_orders (
    order_id    TEXT PRIMARY KEY,
    packed_at   REAL NOT NULL
);
CREATE TABLE IF NOT EXISTS store_meta (
    key         TEXT PRIMARY KEY,
    value       TEXT
);
"""

_LAST_ORDER_KEY = "last_order_id"


class PackedOrderStore(QObject):
    """
    Set of packed order IDs backed by SQLite.

    Every mutation emits packed_orders_changed with the full new set, so
    listeners always see a complete snapshot. Connections are opened per
    call, so the store may be used from the effect dispatcher thread.

    Attributes:
        packed_orders_changed (Signal): Emitted with a frozenset of order IDs
    """
    packed_orders_changed = Signal(object)

    def __init__(self, data_dir: Path, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._path = str(self.data_dir / DB_FILE_NAME)
        self._init_schema()
        logger.info(f"PackedOrderStore initialized: {self._path}")

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, timeout=5)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(_SCHEMA)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def packed_orders(self) -> FrozenSet[str]:
        """
        Current packed order IDs.

        A read failure is logged and reported as an empty set so scanning can
        continue; the next successful mutation republishes the real set.
        """
        try:
            with self._connect() as conn:
                rows = conn.execute("SELECT order_id FROM packed_orders").fetchall()
        except sqlite3.Error as e:
            logger.error(f"Failed to read packed orders: {e}")
            return frozenset()
        return frozenset(row["order_id"] for row in rows)

    def is_packed(self, order_id: str) -> bool:
        return order_id in self.packed_orders()

    def last_order_id(self) -> Optional[str]:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT value FROM store_meta WHERE key = ?", (_LAST_ORDER_KEY,)
                ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Failed to read last packed order: {e}")
            return None
        return row["value"] if row else None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def mark_packed(self, order_id: str) -> None:
        """
        Add order_id to the packed set and make it the last packed order.

        Raises:
            PackedOrderStoreError: If the database cannot be written
        """
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO packed_orders (order_id, packed_at) VALUES (?, ?)",
                    (order_id, time.time()),
                )
                conn.execute(
                    "INSERT OR REPLACE INTO store_meta (key, value) VALUES (?, ?)",
                    (_LAST_ORDER_KEY, order_id),
                )
        except sqlite3.Error as e:
            raise PackedOrderStoreError(f"Cannot mark order {order_id} as packed: {e}") from e

        logger.info(f"Order {order_id} marked as packed")
        self._publish()

    def reset_order(self, order_id: str) -> None:
        """
        Remove order_id from the packed set so it can be packed again.

        Raises:
            PackedOrderStoreError: If the database cannot be written
        """
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM packed_orders WHERE order_id = ?", (order_id,))
                conn.execute(
                    "DELETE FROM store_meta WHERE key = ? AND value = ?",
                    (_LAST_ORDER_KEY, order_id),
                )
        except sqlite3.Error as e:
            raise PackedOrderStoreError(f"Cannot reset order {order_id}: {e}") from e

        logger.info(f"Order {order_id} reset to unpacked")
        self._publish()

    def clear_all(self) -> None:
        """Forget every packed order."""
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM packed_orders")
                conn.execute("DELETE FROM store_meta WHERE key = ?", (_LAST_ORDER_KEY,))
        except sqlite3.Error as e:
            raise PackedOrderStoreError(f"Cannot clear packed orders: {e}") from e

        logger.warning("All packed orders cleared")
        self._publish()

    def _publish(self) -> None:
        self.packed_orders_changed.emit(self.packed_orders())
