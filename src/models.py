"""
Data types shared by the codec, checklist, packing session and scan log.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Tuple, Union


@dataclass(frozen=True)
class InvoiceItem:
    """One invoice line: a SKU and how many units of it go in the parcel."""
    sku: str
    required_units: int = 0


@dataclass(frozen=True)
class InvoicePayload:
    """Decoded contents of an invoice QR code."""
    order_id: str
    items: Tuple[InvoiceItem, ...] = ()

    @property
    def total_units(self) -> int:
        return sum(item.required_units for item in self.items)


@dataclass(frozen=True)
class ChecklistEntry:
    """
    Packing progress for one invoice line.

    Attributes:
        sku: SKU as written on the invoice (case preserved)
        required: Units the invoice asks for
        scanned: Units scanned so far, never above required
    """
    sku: str
    required: int
    scanned: int = 0

    @property
    def remaining(self) -> int:
        return max(self.required - self.scanned, 0)

    @property
    def is_complete(self) -> bool:
        return self.scanned >= self.required


class ScanSource(Enum):
    INVOICE = "INVOICE"
    PRODUCT = "PRODUCT"


@dataclass(frozen=True)
class ScanEvent:
    """
    One accepted scan.

    Invoice scans are recorded with the order ID as SKU and quantity 1.
    The timestamp is timezone-aware (UTC).
    """
    timestamp: datetime
    order_id: str
    sku: str
    quantity: int
    source: ScanSource

    def to_dict(self) -> dict:
        """Convert to a JSON-ready dict with the timestamp as ISO string."""
        return {
            'timestamp': self.timestamp.isoformat(timespec='milliseconds'),
            'orderId': self.order_id,
            'sku': self.sku,
            'quantity': self.quantity,
            'source': self.source.name,
        }


@dataclass(frozen=True)
class AwaitingInvoice:
    """Initial phase: nothing loaded, the next scan must be an invoice."""


@dataclass(frozen=True)
class ReadyToPack:
    order_id: str
    checklist: Tuple[ChecklistEntry, ...] = ()
    scanned_count: int = 0
    total_required: int = 0


@dataclass(frozen=True)
class Completed:
    order_id: str
    checklist: Tuple[ChecklistEntry, ...] = field(default_factory=tuple)


SessionPhase = Union[AwaitingInvoice, ReadyToPack, Completed]

AWAITING_INVOICE = AwaitingInvoice()
