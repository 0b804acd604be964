"""
View model of the packing station.

Bridges the packing session and its collaborators to the presentation layer.
The presentation layer observes a single immutable UiState through the
state_changed signal and drives the station through the command methods.
"""
import threading
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import FrozenSet, Optional, Set

from PySide6.QtCore import QObject, Signal

from effect_dispatcher import EffectDispatcher
from exceptions import ExportError
from logger import get_logger
from models import AWAITING_INVOICE, SessionPhase
from operator_auth import OperatorAuth
from packed_order_store import PackedOrderStore
from packing_session import AppendLog, PackingSession, PersistPacked, ScanOutcome
from remote_scan_log import RemoteScanLog

logger = get_logger(__name__)

EXPORT_FILE_PREFIX = "packing_log"


@dataclass(frozen=True)
class UiState:
    """
    Snapshot observed by the presentation layer.

    Attributes:
        is_signed_in: An operator is signed in
        phase: Current packing phase
        notification: Pending operator message, cleared by consume_notification()
        show_packed_overlay: Show the "order packed" overlay, cleared by consume_overlay()
        export_in_progress: A CSV export is running
        packed_orders: Orders known to be packed
    """
    is_signed_in: bool = False
    phase: SessionPhase = AWAITING_INVOICE
    notification: Optional[str] = None
    show_packed_overlay: bool = False
    export_in_progress: bool = False
    packed_orders: FrozenSet[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class ExportResult:
    """Outcome of export_csv(): a path on success, an ExportError otherwise."""
    success: bool
    path: Optional[Path] = None
    event_count: int = 0
    error: Optional[ExportError] = None


class PackerViewModel(QObject):
    """
    Single writer of UiState.

    Scans, resets and state publications are serialized by one lock, so two
    scans never interleave on the same checklist. Effects returned by the
    session are handed to the EffectDispatcher after the new state has been
    published and before the lock is released, so the dispatcher queue holds
    them in commit order.

    Orders completed here but not yet confirmed by the PackedOrderStore stay
    in packed_orders until a store update contains them.

    Attributes:
        state_changed (Signal): Emitted with the new UiState after every mutation
    """
    state_changed = Signal(object)

    def __init__(
        self,
        auth: OperatorAuth,
        packed_store: PackedOrderStore,
        remote_log: RemoteScanLog,
        export_dir: Path,
        session: Optional[PackingSession] = None,
        dispatcher: Optional[EffectDispatcher] = None,
        sync_effects: bool = False,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self.auth = auth
        self.packed_store = packed_store
        self.remote_log = remote_log
        self.export_dir = Path(export_dir)
        self.session = session or PackingSession()
        self.dispatcher = dispatcher or EffectDispatcher(self._run_effect, sync_mode=sync_effects)

        self._lock = threading.RLock()
        self._unconfirmed_packed: Set[str] = set()
        self._state = UiState(
            is_signed_in=auth.is_signed_in,
            packed_orders=packed_store.packed_orders(),
        )

        self.auth.auth_state_changed.connect(self._on_auth_state_changed)
        self.packed_store.packed_orders_changed.connect(self._on_packed_orders_changed)

        logger.info("PackerViewModel initialized")

    # ------------------------------------------------------------------
    # State cell
    # ------------------------------------------------------------------

    @property
    def state(self) -> UiState:
        with self._lock:
            return self._state

    def _publish(self, **changes) -> UiState:
        with self._lock:
            self._state = replace(self._state, **changes)
            state = self._state
        self.state_changed.emit(state)
        return state

    def _on_auth_state_changed(self, is_signed_in: bool) -> None:
        self._publish(is_signed_in=is_signed_in)

    def _on_packed_orders_changed(self, packed_orders) -> None:
        confirmed = frozenset(packed_orders)
        with self._lock:
            self._unconfirmed_packed -= confirmed
            merged = confirmed | self._unconfirmed_packed
            self._publish(packed_orders=merged)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def on_scan(self, raw: str) -> ScanOutcome:
        """Apply one scanner value and dispatch the resulting effects."""
        with self._lock:
            outcome = self.session.on_scan(raw, self._state.packed_orders)
            if not raw or not raw.strip():
                return outcome

            changes = {
                'phase': outcome.phase,
                'show_packed_overlay': outcome.show_packed_overlay,
            }
            if outcome.notification is not None:
                changes['notification'] = outcome.notification

            newly_packed = {e.order_id for e in outcome.effects if isinstance(e, PersistPacked)}
            if newly_packed:
                self._unconfirmed_packed |= newly_packed
                changes['packed_orders'] = self._state.packed_orders | newly_packed

            self._publish(**changes)
            self.dispatcher.submit_all(outcome.effects)

        return outcome

    def reset(self) -> None:
        """Abandon the current order and wait for the next invoice."""
        with self._lock:
            self.session.reset()
            self._publish(phase=self.session.phase, show_packed_overlay=False)

    def sign_in(self, email: str, password: str) -> None:
        """
        Sign an operator in.

        Raises:
            AuthenticationError: If the credentials are rejected
        """
        operator = self.auth.sign_in(email.strip(), password)
        self.remote_log.operator_id = operator.get('email')

    def sign_out(self) -> None:
        self.auth.sign_out()
        self.remote_log.operator_id = None
        self.reset()

    def consume_notification(self) -> None:
        self._publish(notification=None)

    def consume_overlay(self) -> None:
        with self._lock:
            self.session.consume_overlay()
            self._publish(show_packed_overlay=False)

    def export_csv(self, export_dir: Optional[Path] = None) -> ExportResult:
        """
        Write the scan log of the current order to a CSV file.

        The log is snapshotted once at the start, so scans arriving during the
        export do not tear the file. export_in_progress is cleared whether or
        not the write succeeds.

        Args:
            export_dir: Target directory, defaults to the configured export dir

        Returns:
            ExportResult with the written path, or the ExportError on failure
        """
        target_dir = Path(export_dir) if export_dir is not None else self.export_dir
        path = target_dir / f"{EXPORT_FILE_PREFIX}_{int(time.time())}.csv"

        self._publish(export_in_progress=True)
        try:
            events = self.session.scan_log.snapshot()
            written = self.session.scan_log.write_csv(path, events)
            return ExportResult(success=True, path=written, event_count=len(events))
        except ExportError as e:
            return ExportResult(success=False, error=e)
        finally:
            self._publish(export_in_progress=False)

    def shutdown(self) -> None:
        """Drain pending effects before the application exits."""
        self.dispatcher.shutdown()

    # ------------------------------------------------------------------
    # Effects
    # ------------------------------------------------------------------

    def _run_effect(self, effect) -> None:
        if isinstance(effect, AppendLog):
            self.remote_log.append(effect.event)
        elif isinstance(effect, PersistPacked):
            self.packed_store.mark_packed(effect.order_id)
        else:
            raise TypeError(f"Unknown effect: {effect!r}")
