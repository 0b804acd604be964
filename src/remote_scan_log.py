"""
Shared scan-event log.

Every accepted scan is appended as one JSON line to a daily file in a shared
folder, so supervisors can audit packing across stations:

    <RemoteLogDir>/scan_events_2025-11-05.jsonl
    {"timestamp": "2025-11-05T14:30:45.123+00:00", "orderId": "ORD-1001", "sku": "ORD-1001",
     "quantity": 1, "source": "INVOICE", "operator": "ops@example.com", "device": "DOCK-2"}
"""
import json
import threading
from pathlib import Path
from typing import Optional

from exceptions import RemoteLogError
from logger import get_logger
from models import ScanEvent

logger = get_logger(__name__)


class RemoteScanLog:
    """
    Appends scan events to the shared JSONL log.

    append() is called from the effect dispatcher thread; a lock keeps
    concurrent appends from interleaving within this process.

    Attributes:
        log_dir (Path): Shared folder receiving the daily files
        device_id (str): Station name written into each entry
    """

    def __init__(self, log_dir: Path, device_id: str = ""):
        self.log_dir = Path(log_dir)
        self.device_id = device_id
        self.operator_id: Optional[str] = None
        self._lock = threading.Lock()

    def _file_for(self, event: ScanEvent) -> Path:
        return self.log_dir / f"scan_events_{event.timestamp:%Y-%m-%d}.jsonl"

    def append(self, event: ScanEvent) -> Path:
        """
        Append one event.

        Returns:
            The file the event was written to

        Raises:
            RemoteLogError: If the shared folder is unreachable or not writable
        """
        entry = event.to_dict()
        entry['operator'] = self.operator_id
        entry['device'] = self.device_id or None

        path = self._file_for(event)
        try:
            with self._lock:
                self.log_dir.mkdir(parents=True, exist_ok=True)
                with open(path, 'a', encoding='utf-8') as f:
                    f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except OSError as e:
            raise RemoteLogError(f"Cannot append scan event to {path}: {e}") from e

        logger.debug(f"Scan event logged: {event.source.name} {event.sku}")
        return path
