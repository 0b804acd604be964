"""
Packing session state machine.

A session moves through three phases:

    AwaitingInvoice --invoice QR--> ReadyToPack --last unit scanned--> Completed
          ^                                                                |
          +------------------- reset() / next invoice QR -----------------+

Each call to on_scan() applies one raw scanner string and returns a
ScanOutcome: the new phase snapshot, at most one notification for the
operator, and the effects the caller must dispatch (append the scan to the
remote log, persist the order as packed). The session itself performs no
I/O, so effects run after the transition has been committed and their
failure never rolls it back.

The session is not thread-safe; callers serialize on_scan()/reset().
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Collection, List, Optional, Tuple, Union

from checklist import Checklist, ScanMatch
from logger import get_logger, set_order_context
from models import (
    AWAITING_INVOICE,
    AwaitingInvoice,
    Completed,
    InvoicePayload,
    ReadyToPack,
    ScanEvent,
    ScanSource,
    SessionPhase,
)
from payload_codec import INVOICE_PREFIX, decode_invoice, decode_product_token
from scan_log import ScanLog

logger = get_logger(__name__)


@dataclass(frozen=True)
class PersistPacked:
    """Effect: record order_id in the packed-order set."""
    order_id: str


@dataclass(frozen=True)
class AppendLog:
    """Effect: append event to the remote scan log."""
    event: ScanEvent


Effect = Union[PersistPacked, AppendLog]


class ScanRejection(Enum):
    """Why a scan was refused; the session keeps its state for all of them."""
    MALFORMED_PAYLOAD = "MALFORMED_PAYLOAD"
    DUPLICATE_ORDER = "DUPLICATE_ORDER"
    UNKNOWN_SKU = "UNKNOWN_SKU"
    ALREADY_COMPLETE = "ALREADY_COMPLETE"
    ORDER_FINISHED = "ORDER_FINISHED"


@dataclass(frozen=True)
class ScanOutcome:
    """
    Result of one on_scan() call.

    Attributes:
        phase: Phase after the scan
        notification: Message for the operator, or None
        effects: Effects to dispatch, in emission order
        show_packed_overlay: Whether the "order packed" overlay should be shown
        rejection: Reason the scan was refused, or None if it was accepted or ignored
    """
    phase: SessionPhase
    notification: Optional[str] = None
    effects: Tuple[Effect, ...] = field(default_factory=tuple)
    show_packed_overlay: bool = False
    rejection: Optional[ScanRejection] = None

    @property
    def rejected(self) -> bool:
        return self.rejection is not None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PackingSession:
    """
    Owns the phase, checklist and scan log of one packing station.

    Attributes:
        phase (SessionPhase): Current phase snapshot
        invoice (InvoicePayload | None): Invoice of the current order
        checklist (Checklist): Progress of the current order
        scan_log (ScanLog): Accepted scans of the current order
        show_packed_overlay (bool): Set when an order completes, cleared by
                                    consume_overlay(), reset() or the next invoice
    """

    def __init__(self, clock: Callable[[], datetime] = _utc_now, scan_log: Optional[ScanLog] = None):
        self._clock = clock
        self.phase: SessionPhase = AWAITING_INVOICE
        self.invoice: Optional[InvoicePayload] = None
        self.checklist = Checklist()
        self.scan_log = scan_log if scan_log is not None else ScanLog()
        self.show_packed_overlay = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def on_scan(self, raw: str, packed_orders: Collection[str] = ()) -> ScanOutcome:
        """
        Apply one raw scanner string.

        Args:
            raw: Decoded barcode text, already debounced by the scanner feed
            packed_orders: Order IDs that were packed before; their invoices are refused

        Returns:
            ScanOutcome for the scan. Blank input returns the unchanged phase
            with no notification and no effects.
        """
        if not raw or not raw.strip():
            return self._outcome()

        phase = self.phase
        if isinstance(phase, AwaitingInvoice):
            return self._handle_invoice(raw, packed_orders)
        if isinstance(phase, ReadyToPack):
            return self._handle_product(raw, phase)
        return self._handle_completed(raw, phase, packed_orders)

    def reset(self) -> None:
        """Drop the current order and return to AwaitingInvoice. Emits no effects."""
        logger.info("Packing session reset")
        self.invoice = None
        self.checklist.clear()
        self.scan_log.clear()
        self.phase = AWAITING_INVOICE
        self.show_packed_overlay = False
        set_order_context(None)

    def consume_overlay(self) -> None:
        self.show_packed_overlay = False

    # ------------------------------------------------------------------
    # Phase handlers
    # ------------------------------------------------------------------

    def _handle_invoice(self, raw: str, packed_orders: Collection[str]) -> ScanOutcome:
        payload = decode_invoice(raw)
        if payload is None:
            logger.warning("Invalid invoice QR scanned")
            return self._outcome("Invalid invoice QR", rejection=ScanRejection.MALFORMED_PAYLOAD)

        order_id = payload.order_id
        if order_id in packed_orders:
            logger.warning(f"Order {order_id} scanned again after being packed")
            return self._outcome(f"Order {order_id} already packed", rejection=ScanRejection.DUPLICATE_ORDER)

        self.invoice = payload
        self.checklist = Checklist.from_invoice(payload)
        self.scan_log.clear()
        self.show_packed_overlay = False
        self.phase = ReadyToPack(
            order_id=order_id,
            checklist=self.checklist.entries(),
            scanned_count=0,
            total_required=payload.total_units,
        )
        set_order_context(order_id)
        logger.info(f"Invoice {order_id} loaded: {len(payload.items)} lines, {payload.total_units} units")

        event = self._record(order_id, order_id, ScanSource.INVOICE)
        return self._outcome(f"Invoice {order_id} ready", effects=[AppendLog(event)])

    def _handle_product(self, raw: str, phase: ReadyToPack) -> ScanOutcome:
        sku = decode_product_token(raw)
        if sku is None:
            logger.warning("Unsupported SKU barcode scanned")
            return self._outcome("Unsupported SKU barcode", rejection=ScanRejection.MALFORMED_PAYLOAD)

        match = self.checklist.record_scan(sku)
        if match is ScanMatch.NOT_IN_CHECKLIST:
            logger.warning(f"SKU {sku} is not part of order {phase.order_id}")
            return self._outcome(f"SKU {sku} not in checklist", rejection=ScanRejection.UNKNOWN_SKU)
        if match is ScanMatch.ALREADY_COMPLETE:
            logger.warning(f"SKU {sku} scanned beyond required quantity")
            return self._outcome(f"SKU {sku} already complete", rejection=ScanRejection.ALREADY_COMPLETE)

        effects: List[Effect] = [AppendLog(self._record(phase.order_id, sku, ScanSource.PRODUCT))]
        scanned = self.checklist.scanned_count
        logger.info(f"SKU {sku} recorded ({scanned}/{phase.total_required})")

        if not self.checklist.is_complete:
            self.phase = ReadyToPack(
                order_id=phase.order_id,
                checklist=self.checklist.entries(),
                scanned_count=scanned,
                total_required=phase.total_required,
            )
            return self._outcome(effects=effects)

        order_id = self.invoice.order_id if self.invoice is not None else phase.order_id
        self.phase = Completed(order_id=order_id, checklist=self.checklist.entries())
        self.show_packed_overlay = True
        effects.append(PersistPacked(order_id))
        logger.info(f"Order {order_id} packed")
        return self._outcome(f"Order {order_id} packed", effects=effects)

    def _handle_completed(self, raw: str, phase: Completed, packed_orders: Collection[str]) -> ScanOutcome:
        if raw.startswith(INVOICE_PREFIX):
            return self._handle_invoice(raw, packed_orders)
        return self._outcome(
            f"Order {phase.order_id} already packed. Scan next invoice.",
            rejection=ScanRejection.ORDER_FINISHED,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _record(self, order_id: str, sku: str, source: ScanSource) -> ScanEvent:
        event = ScanEvent(
            timestamp=self._clock(),
            order_id=order_id,
            sku=sku,
            quantity=1,
            source=source,
        )
        self.scan_log.record(event)
        return event

    def _outcome(
        self,
        notification: Optional[str] = None,
        effects: Optional[List[Effect]] = None,
        rejection: Optional[ScanRejection] = None,
    ) -> ScanOutcome:
        return ScanOutcome(
            phase=self.phase,
            notification=notification,
            effects=tuple(effects or ()),
            show_packed_overlay=self.show_packed_overlay,
            rejection=rejection,
        )
