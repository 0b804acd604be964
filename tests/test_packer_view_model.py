"""
Tests for src/packer_view_model.py — UiState publication and commands.

Uses real collaborators in tmp_path with effects executed inline
(sync_effects=True), so packed-order persistence is observable immediately.
"""
import json
import threading
from unittest.mock import MagicMock, patch

import pytest

from conftest import invoice_qr, product_token
from exceptions import AuthenticationError, ExportError
from models import AwaitingInvoice, Completed, ReadyToPack
from operator_auth import OperatorAuth
from packed_order_store import PackedOrderStore
from packer_view_model import PackerViewModel, UiState
from packing_session import AppendLog, PackingSession, PersistPacked, ScanRejection
from remote_scan_log import RemoteScanLog
from scan_log import ScanLog


@pytest.fixture
def auth(tmp_path):
    auth = OperatorAuth(tmp_path / "data")
    auth.register_operator("ops@example.com", "s3cret")
    return auth


@pytest.fixture
def store(tmp_path):
    return PackedOrderStore(tmp_path / "data")


@pytest.fixture
def remote_log(tmp_path):
    return RemoteScanLog(tmp_path / "events", device_id="DOCK-2")


@pytest.fixture
def view_model(qtbot, auth, store, remote_log, tmp_path, fake_clock):
    vm = PackerViewModel(
        auth=auth,
        packed_store=store,
        remote_log=remote_log,
        export_dir=tmp_path / "exports",
        session=PackingSession(clock=fake_clock),
        sync_effects=True,
    )
    yield vm
    vm.shutdown()


def _remote_entries(tmp_path):
    entries = []
    for path in sorted((tmp_path / "events").glob("*.jsonl")):
        entries.extend(json.loads(line) for line in path.read_text(encoding='utf-8').splitlines())
    return entries


class TestInitialState:

    def test_defaults(self, view_model):
        state = view_model.state
        assert state == UiState()
        assert isinstance(state.phase, AwaitingInvoice)

    def test_reflects_existing_packed_orders(self, qtbot, auth, store, remote_log, tmp_path):
        store.mark_packed("ORD-OLD")
        vm = PackerViewModel(auth, store, remote_log, tmp_path, sync_effects=True)
        assert vm.state.packed_orders == frozenset({"ORD-OLD"})


class TestScanning:

    def test_invoice_publishes_ready_state(self, view_model, qtbot):
        with qtbot.waitSignal(view_model.state_changed, timeout=1000) as blocker:
            view_model.on_scan(invoice_qr("ORD-1", [("SKU-A", 2)]))

        state = blocker.args[0]
        assert isinstance(state.phase, ReadyToPack)
        assert state.phase.total_required == 2
        assert state.notification == "Invoice ORD-1 ready"

    def test_blank_scan_publishes_nothing(self, view_model, qtbot):
        with qtbot.assertNotEmitted(view_model.state_changed):
            view_model.on_scan("   ")

    def test_notification_kept_until_consumed(self, view_model):
        view_model.on_scan(invoice_qr("ORD-1", [("SKU-A", 2)]))
        view_model.on_scan(product_token("SKU-A"))

        assert view_model.state.notification == "Invoice ORD-1 ready"

        view_model.consume_notification()
        assert view_model.state.notification is None

    def test_full_order_marks_packed(self, view_model, store, tmp_path):
        view_model.on_scan(invoice_qr("ORD-1", [("SKU-A", 1), ("SKU-B", 1)]))
        view_model.on_scan(product_token("SKU-A"))
        view_model.on_scan("sku-b")

        state = view_model.state
        assert isinstance(state.phase, Completed)
        assert state.show_packed_overlay is True
        assert state.notification == "Order ORD-1 packed"
        assert state.packed_orders == frozenset({"ORD-1"})
        assert store.packed_orders() == frozenset({"ORD-1"})

        entries = _remote_entries(tmp_path)
        assert [(e['sku'], e['source']) for e in entries] == [
            ("ORD-1", "INVOICE"), ("SKU-A", "PRODUCT"), ("SKU-B", "PRODUCT"),
        ]
        assert all(e['device'] == "DOCK-2" for e in entries)

    def test_packed_order_cannot_be_loaded_again(self, view_model):
        qr = invoice_qr("ORD-1", [("SKU-A", 1)])
        view_model.on_scan(qr)
        view_model.on_scan(product_token("SKU-A"))
        view_model.reset()

        outcome = view_model.on_scan(qr)

        assert outcome.rejected
        assert view_model.state.notification == "Order ORD-1 already packed"
        assert isinstance(view_model.state.phase, AwaitingInvoice)

    def test_packed_set_updated_before_store_confirms(self, qtbot, auth, store, remote_log, tmp_path, fake_clock):
        vm = PackerViewModel(
            auth, store, remote_log, tmp_path,
            session=PackingSession(clock=fake_clock),
        )
        qr = invoice_qr("ORD-9", [("SKU-A", 1)])
        with patch.object(vm.dispatcher, "submit_all"):
            vm.on_scan(qr)
            vm.on_scan(product_token("SKU-A"))
            vm.on_scan(qr)

        assert vm.state.packed_orders == frozenset({"ORD-9"})
        assert isinstance(vm.state.phase, Completed)
        assert vm.state.notification == "Order ORD-9 already packed"
        vm.shutdown()

    def test_effects_queued_while_state_lock_held(self, qtbot, auth, store, remote_log, tmp_path, fake_clock):
        lock_free_during_submit = []
        dispatcher = MagicMock()
        vm = PackerViewModel(
            auth, store, remote_log, tmp_path,
            session=PackingSession(clock=fake_clock),
            dispatcher=dispatcher,
        )

        def try_lock_from_other_thread(effects):
            def attempt():
                acquired = vm._lock.acquire(blocking=False)
                if acquired:
                    vm._lock.release()
                lock_free_during_submit.append(acquired)
            worker = threading.Thread(target=attempt)
            worker.start()
            worker.join()

        dispatcher.submit_all.side_effect = try_lock_from_other_thread

        vm.on_scan(invoice_qr("ORD-1", [("SKU-A", 1)]))
        vm.on_scan(product_token("SKU-A"))

        assert lock_free_during_submit == [False, False]
        submitted = [call.args[0] for call in dispatcher.submit_all.call_args_list]
        assert [type(e) for e in submitted[1]] == [AppendLog, PersistPacked]

    def test_failed_store_read_keeps_unconfirmed_order(self, view_model, store):
        qr = invoice_qr("ORD-1", [("SKU-A", 1)])
        with patch.object(store, "packed_orders", return_value=frozenset()):
            view_model.on_scan(qr)
            view_model.on_scan(product_token("SKU-A"))

        assert view_model.state.packed_orders == frozenset({"ORD-1"})

        view_model.reset()
        outcome = view_model.on_scan(qr)
        assert outcome.rejection is ScanRejection.DUPLICATE_ORDER

    def test_confirmed_order_can_be_reset_in_store(self, view_model, store):
        view_model.on_scan(invoice_qr("ORD-1", [("SKU-A", 1)]))
        view_model.on_scan(product_token("SKU-A"))

        store.reset_order("ORD-1")

        assert view_model.state.packed_orders == frozenset()

    def test_remote_log_failure_keeps_transition(self, view_model, remote_log):
        with patch.object(remote_log, "append", side_effect=OSError("share offline")):
            view_model.on_scan(invoice_qr("ORD-1", [("SKU-A", 1)]))

        assert isinstance(view_model.state.phase, ReadyToPack)
        assert len(view_model.dispatcher.failures()) == 1

    def test_overlay_consumed(self, view_model):
        view_model.on_scan(invoice_qr("ORD-1", [("SKU-A", 1)]))
        view_model.on_scan(product_token("SKU-A"))

        view_model.consume_overlay()

        assert view_model.state.show_packed_overlay is False
        assert isinstance(view_model.state.phase, Completed)

    def test_reset(self, view_model):
        view_model.on_scan(invoice_qr("ORD-1", [("SKU-A", 2)]))
        view_model.on_scan(product_token("SKU-A"))

        view_model.reset()

        assert isinstance(view_model.state.phase, AwaitingInvoice)
        assert len(view_model.session.scan_log) == 0


class TestAuthentication:

    def test_sign_in_updates_state_and_remote_log(self, view_model, remote_log):
        view_model.sign_in(" ops@example.com ", "s3cret")

        assert view_model.state.is_signed_in is True
        assert remote_log.operator_id == "ops@example.com"

    def test_rejected_sign_in_propagates(self, view_model):
        with pytest.raises(AuthenticationError):
            view_model.sign_in("ops@example.com", "wrong")
        assert view_model.state.is_signed_in is False

    def test_sign_out_resets_session(self, view_model, remote_log):
        view_model.sign_in("ops@example.com", "s3cret")
        view_model.on_scan(invoice_qr("ORD-1", [("SKU-A", 2)]))

        view_model.sign_out()

        assert view_model.state.is_signed_in is False
        assert isinstance(view_model.state.phase, AwaitingInvoice)
        assert remote_log.operator_id is None


class TestExport:

    def test_export_writes_csv(self, view_model, tmp_path):
        view_model.on_scan(invoice_qr("ORD-1", [("SKU-A", 2)]))
        view_model.on_scan(product_token("SKU-A"))

        result = view_model.export_csv()

        assert result.success
        assert result.event_count == 2
        assert result.path.parent == tmp_path / "exports"
        assert result.path.name.startswith("packing_log_")
        lines = result.path.read_text(encoding='utf-8').splitlines()
        assert lines[0] == "timestamp,orderId,sku,quantity,source"
        assert lines[1] == "2025-11-05T14:30:00.000+00:00,ORD-1,ORD-1,1,INVOICE"
        assert lines[2] == "2025-11-05T14:30:01.000+00:00,ORD-1,SKU-A,1,PRODUCT"
        assert view_model.state.export_in_progress is False

    def test_export_flag_published(self, view_model, qtbot, tmp_path):
        seen = []
        view_model.state_changed.connect(lambda state: seen.append(state.export_in_progress))

        view_model.export_csv(tmp_path / "elsewhere")

        assert seen == [True, False]

    def test_export_failure_reported(self, view_model, tmp_path):
        error = ExportError("Permission denied", path="/readonly/x.csv")
        with patch.object(ScanLog, "write_csv", side_effect=error):
            result = view_model.export_csv()

        assert result.success is False
        assert result.error is error
        assert view_model.state.export_in_progress is False
