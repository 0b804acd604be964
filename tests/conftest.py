"""
Pytest configuration file for Packer's Assistant tests.

Puts 'src' on sys.path so tests import modules by name, and provides
helpers for building scanner payloads.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Run Qt headless when no display is available.
os.environ.setdefault('QT_QPA_PLATFORM', 'offscreen')

# Get the repository root directory (parent of tests directory)
repo_root = Path(__file__).parent.parent

src_dir = repo_root / 'src'
if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))

from models import InvoiceItem, InvoicePayload  # noqa: E402
from payload_codec import encode_invoice, encode_product_token  # noqa: E402


def invoice_qr(order_id, items, pad=False):
    """
    Build a PKG1 payload the way invoice printers do.

    Args:
        order_id: Order identifier
        items: List of (sku, units) tuples
        pad: Keep base64 padding (producers normally strip it)
    """
    payload = InvoicePayload(
        order_id=order_id,
        items=tuple(InvoiceItem(sku=sku, required_units=units) for sku, units in items),
    )
    return encode_invoice(payload, pad=pad)


def product_token(sku, pad=False):
    return encode_product_token(sku, pad=pad)


class FakeClock:
    """Deterministic UTC clock that advances one second per reading."""

    def __init__(self, start=None, step=timedelta(seconds=1)):
        self.now = start or datetime(2025, 11, 5, 14, 30, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self):
        current = self.now
        self.now = self.now + self.step
        return current


@pytest.fixture
def fake_clock():
    return FakeClock()
