"""
In-memory scan history of the active order and its CSV export.

The log is cleared whenever a new invoice is loaded or the session is reset,
so an export always covers the current (or most recently packed) order only.

CSV format (UTF-8, '\\n' line endings, no quoting):
    timestamp,orderId,sku,quantity,source
    2025-11-05T14:30:45.123+00:00,ORD-1001,ORD-1001,1,INVOICE
    2025-11-05T14:30:51.870+00:00,ORD-1001,SKU-A,1,PRODUCT
"""
import csv
import threading
from datetime import timezone
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import pandas as pd

from exceptions import ExportError
from logger import get_logger
from models import ScanEvent

logger = get_logger(__name__)

CSV_COLUMNS = ['timestamp', 'orderId', 'sku', 'quantity', 'source']


def format_timestamp(event: ScanEvent) -> str:
    """ISO-8601 in UTC with an explicit +00:00 offset and milliseconds."""
    ts = event.timestamp
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat(timespec='milliseconds')


class ScanLog:
    """
    Append-only list of ScanEvent for the active order.

    record() and clear() are called by the packing session; snapshot() may be
    called from an export running concurrently and always returns a complete,
    consistent tuple.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._events: List[ScanEvent] = []

    def record(self, event: ScanEvent) -> None:
        with self._lock:
            self._events.append(event)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def snapshot(self) -> Tuple[ScanEvent, ...]:
        with self._lock:
            return tuple(self._events)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def to_dataframe(self, events: Optional[Sequence[ScanEvent]] = None) -> pd.DataFrame:
        """Build the CSV DataFrame from events, or from a fresh snapshot of the log."""
        if events is None:
            events = self.snapshot()
        rows = [
            {
                'timestamp': format_timestamp(event),
                'orderId': event.order_id,
                'sku': event.sku,
                'quantity': int(event.quantity),
                'source': event.source.name,
            }
            for event in events
        ]
        return pd.DataFrame(rows, columns=CSV_COLUMNS)

    def render_csv(self, events: Optional[Sequence[ScanEvent]] = None) -> str:
        """Render the log (or the given events) as CSV text."""
        return self.to_dataframe(events).to_csv(
            index=False,
            lineterminator='\n',
            quoting=csv.QUOTE_NONE,
            escapechar='\\',
        )

    def write_csv(self, path: Path, events: Optional[Sequence[ScanEvent]] = None) -> Path:
        """
        Write the log to path as UTF-8 CSV.

        Args:
            path: Target file; parent directories are created
            events: Snapshot to write; defaults to a fresh snapshot of the log

        Returns:
            The written path

        Raises:
            ExportError: If the file cannot be written
        """
        path = Path(path)
        if events is None:
            events = self.snapshot()
        text = self.render_csv(events)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'w', encoding='utf-8', newline='') as f:
                f.write(text)
        except OSError as e:
            logger.error(f"Failed to write scan log CSV to {path}: {e}", exc_info=True)
            raise ExportError(str(e), path=str(path)) from e

        logger.info(f"Scan log exported: {path} ({len(events)} events)")
        return path
