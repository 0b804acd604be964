"""
Console packing station.

Reads a keyboard-wedge scanner (one code per line on stdin), runs each code
through the packing session and prints the operator notifications.

Usage:
    python src/main.py --email ops@example.com --password secret
    python src/main.py --labels SKU-A SKU-B --labels-dir ./labels

Station commands typed instead of a scan:
    :export    write the scan log of the current order to CSV
    :reset     abandon the current order
    :quit      exit
"""
import argparse
import getpass
import sys
from pathlib import Path
from typing import List, Optional, TextIO

from PySide6.QtCore import QCoreApplication

from exceptions import AuthenticationError, ConfigError
from label_printer import ProductLabelPrinter
from logger import get_logger, set_device_context
from models import Completed, ReadyToPack
from operator_auth import OperatorAuth
from packed_order_store import PackedOrderStore
from packer_view_model import PackerViewModel, UiState
from remote_scan_log import RemoteScanLog
from scanner_feed import ScanDebouncer, ScannerFeed
from settings import AppSettings, load_settings

logger = get_logger(__name__)


def describe_state(state: UiState) -> str:
    """One status line for the console."""
    phase = state.phase
    if isinstance(phase, ReadyToPack):
        lines = ", ".join(f"{e.sku} {e.scanned}/{e.required}" for e in phase.checklist)
        return f"[{phase.order_id}] {phase.scanned_count}/{phase.total_required} scanned: {lines}"
    if isinstance(phase, Completed):
        return f"[{phase.order_id}] packed. Scan next invoice."
    return "Scan invoice QR"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Packer's Assistant console station")
    parser.add_argument('--config', default='config.ini', help="Path to config.ini")
    parser.add_argument('--email', help="Operator e-mail")
    parser.add_argument('--password', help="Operator password (prompted if omitted)")
    parser.add_argument('--export-dir', type=Path, help="Override the CSV export directory")
    parser.add_argument('--labels', nargs='+', metavar='SKU', help="Print product labels and exit")
    parser.add_argument('--labels-dir', type=Path, default=Path('labels'), help="Directory for label PNGs")
    return parser


def print_labels(settings: AppSettings, skus: List[str], output_dir: Path) -> int:
    printer = ProductLabelPrinter(
        output_dir,
        dpi=settings.label_dpi,
        width_mm=settings.label_width_mm,
        height_mm=settings.label_height_mm,
    )
    for sku, path in printer.render_skus(skus).items():
        print(f"{sku}: {path}")
    return 0


def run_station(view_model: PackerViewModel, feed: ScannerFeed, app: QCoreApplication,
                stream: TextIO, out: TextIO) -> None:
    """Process stdin lines until EOF or ':quit'."""
    def show(state: UiState) -> None:
        if state.notification:
            print(f"> {state.notification}", file=out)
            view_model.consume_notification()
        if state.show_packed_overlay:
            print("*** ORDER PACKED ***", file=out)
            view_model.consume_overlay()

    feed.barcode_scanned.connect(view_model.on_scan)
    print(describe_state(view_model.state), file=out)

    for line in stream:
        command = line.strip()
        if command == ':quit':
            break
        if command == ':reset':
            view_model.reset()
        elif command == ':export':
            result = view_model.export_csv()
            if result.success:
                print(f"> CSV exported: {result.path} ({result.event_count} events)", file=out)
            else:
                print(f"> {result.error.get_display_message()}", file=out)
        else:
            feed.submit(line.rstrip("\r\n"))

        # Deliver packed-order updates queued by the effect dispatcher thread
        app.processEvents()
        show(view_model.state)
        print(describe_state(view_model.state), file=out)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    if args.labels:
        return print_labels(settings, args.labels, args.labels_dir)

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    set_device_context(settings.device_id or None)

    auth = OperatorAuth(settings.data_dir)
    view_model = PackerViewModel(
        auth=auth,
        packed_store=PackedOrderStore(settings.data_dir),
        remote_log=RemoteScanLog(settings.remote_log_dir, device_id=settings.device_id),
        export_dir=args.export_dir or settings.export_dir,
    )

    email = args.email or input("Email: ")
    password = args.password or getpass.getpass("Password: ")
    try:
        view_model.sign_in(email, password)
    except AuthenticationError as e:
        print(f"Sign-in failed: {e}", file=sys.stderr)
        view_model.shutdown()
        return 1

    feed = ScannerFeed(ScanDebouncer(settings.debounce_seconds))
    try:
        run_station(view_model, feed, app, sys.stdin, sys.stdout)
    finally:
        view_model.sign_out()
        view_model.shutdown()
        logger.info("Station stopped")
    return 0


if __name__ == '__main__':
    sys.exit(main())
