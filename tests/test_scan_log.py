"""
Unit tests for src/scan_log.py — scan history and CSV export.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from exceptions import ExportError
from models import ScanEvent, ScanSource
from scan_log import CSV_COLUMNS, ScanLog, format_timestamp

T1 = datetime(2025, 11, 5, 14, 30, 45, 123000, tzinfo=timezone.utc)
T2 = datetime(2025, 11, 5, 14, 30, 51, 870000, tzinfo=timezone.utc)


@pytest.fixture
def scan_log():
    log = ScanLog()
    log.record(ScanEvent(T1, "O1", "O1", 1, ScanSource.INVOICE))
    log.record(ScanEvent(T2, "O1", "SKU-A", 1, ScanSource.PRODUCT))
    return log


class TestFormatTimestamp:

    def test_utc_with_explicit_offset(self):
        event = ScanEvent(T1, "O1", "O1", 1, ScanSource.INVOICE)
        assert format_timestamp(event) == "2025-11-05T14:30:45.123+00:00"

    def test_other_zone_converted_to_utc(self):
        cet = timezone(timedelta(hours=1))
        event = ScanEvent(datetime(2025, 11, 5, 15, 30, 45, tzinfo=cet), "O1", "O1", 1, ScanSource.INVOICE)
        assert format_timestamp(event) == "2025-11-05T14:30:45.000+00:00"

    def test_naive_timestamp_treated_as_utc(self):
        event = ScanEvent(datetime(2025, 11, 5, 14, 30, 45), "O1", "O1", 1, ScanSource.INVOICE)
        assert format_timestamp(event) == "2025-11-05T14:30:45.000+00:00"


class TestRenderCsv:

    def test_exact_document(self, scan_log):
        assert scan_log.render_csv() == (
            "timestamp,orderId,sku,quantity,source\n"
            "2025-11-05T14:30:45.123+00:00,O1,O1,1,INVOICE\n"
            "2025-11-05T14:30:51.870+00:00,O1,SKU-A,1,PRODUCT\n"
        )

    def test_empty_log_has_header_only(self):
        assert ScanLog().render_csv() == "timestamp,orderId,sku,quantity,source\n"

    def test_dataframe_columns(self, scan_log):
        df = scan_log.to_dataframe()
        assert list(df.columns) == CSV_COLUMNS
        assert df['source'].tolist() == ["INVOICE", "PRODUCT"]

    def test_render_is_idempotent(self, scan_log):
        assert scan_log.render_csv() == scan_log.render_csv()

    def test_render_given_snapshot(self, scan_log):
        snapshot = scan_log.snapshot()
        scan_log.record(ScanEvent(T2, "O1", "SKU-B", 1, ScanSource.PRODUCT))

        text = scan_log.render_csv(snapshot)

        assert "SKU-B" not in text
        assert len(text.splitlines()) == 3


class TestScanLog:

    def test_snapshot_is_immutable_copy(self, scan_log):
        snapshot = scan_log.snapshot()
        scan_log.clear()

        assert len(snapshot) == 2
        assert len(scan_log) == 0

    def test_insertion_order(self, scan_log):
        assert [e.sku for e in scan_log.snapshot()] == ["O1", "SKU-A"]


class TestWriteCsv:

    def test_write_creates_file(self, scan_log, tmp_path):
        target = tmp_path / "exports" / "log.csv"

        written = scan_log.write_csv(target)

        assert written == target
        assert target.read_bytes().decode('utf-8') == scan_log.render_csv()
        assert b"\r\n" not in target.read_bytes()

    def test_write_failure_raises_export_error(self, scan_log, tmp_path):
        target = tmp_path / "log.csv"

        with patch("builtins.open", side_effect=PermissionError("read-only share")):
            with pytest.raises(ExportError) as exc_info:
                scan_log.write_csv(target)

        assert exc_info.value.path == str(target)
        assert "read-only share" in str(exc_info.value)
