"""
Checklist of required vs. scanned units for the order being packed.
"""
from enum import Enum
from typing import List, Optional, Tuple

from models import ChecklistEntry, InvoicePayload


class ScanMatch(Enum):
    RECORDED = "RECORDED"
    ALREADY_COMPLETE = "ALREADY_COMPLETE"
    NOT_IN_CHECKLIST = "NOT_IN_CHECKLIST"


def normalize_sku(sku: str) -> str:
    """SKUs compare case-insensitively; whitespace is significant."""
    return str(sku).upper()


class Checklist:
    """
    Ordered checklist, one entry per invoice line, in invoice order.

    Lookup is by normalized (upper-cased) SKU. When several invoice lines
    carry the same SKU, scans fill them in invoice order: a scan goes to the
    first matching line that still needs units.
    """

    def __init__(self, entries: Optional[List[ChecklistEntry]] = None):
        self._entries: List[ChecklistEntry] = list(entries or [])

    @classmethod
    def from_invoice(cls, payload: InvoicePayload) -> "Checklist":
        return cls([ChecklistEntry(sku=item.sku, required=item.required_units) for item in payload.items])

    def entries(self) -> Tuple[ChecklistEntry, ...]:
        """Immutable snapshot of the current entries."""
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def _matching_indexes(self, sku: str) -> List[int]:
        key = normalize_sku(sku)
        return [i for i, entry in enumerate(self._entries) if normalize_sku(entry.sku) == key]

    def find(self, sku: str) -> Optional[ChecklistEntry]:
        """First entry for sku, or None."""
        indexes = self._matching_indexes(sku)
        return self._entries[indexes[0]] if indexes else None

    def record_scan(self, sku: str) -> ScanMatch:
        """
        Count one scanned unit of sku.

        Returns:
            RECORDED if a line was incremented, ALREADY_COMPLETE if every line
            for the SKU is already full, NOT_IN_CHECKLIST if no line matches
        """
        indexes = self._matching_indexes(sku)
        if not indexes:
            return ScanMatch.NOT_IN_CHECKLIST

        for i in indexes:
            entry = self._entries[i]
            if not entry.is_complete:
                self._entries[i] = ChecklistEntry(
                    sku=entry.sku,
                    required=entry.required,
                    scanned=min(entry.required, entry.scanned + 1),
                )
                return ScanMatch.RECORDED

        return ScanMatch.ALREADY_COMPLETE

    def clear(self) -> None:
        self._entries.clear()

    @property
    def scanned_count(self) -> int:
        return sum(entry.scanned for entry in self._entries)

    @property
    def total_required(self) -> int:
        return sum(entry.required for entry in self._entries)

    @property
    def is_complete(self) -> bool:
        return all(entry.is_complete for entry in self._entries)
