"""
Decoding and encoding of scanned barcode payloads.

Two payload kinds reach the packing station:

Invoice QR code:
    "PKG1:" + base64url(JSON), JSON = {"o": "<orderId>", "i": [["<sku>", <units>], ...]}

Product barcode:
    "PKT1:" + base64url(JSON), JSON = {"s": "<sku>"}
    or the bare SKU printed as plain text (EAN/UPC or internal code)

Producers usually strip base64 padding, so the decoder re-pads to a multiple
of 4 before decoding. The public decode functions never raise: any malformed
input yields None and the packing session turns that into an operator
notification.
"""
import base64
import json
import re
from typing import Any, List, Optional

from exceptions import PayloadError
from logger import get_logger
from models import InvoiceItem, InvoicePayload

logger = get_logger(__name__)

INVOICE_PREFIX = "PKG1:"
PRODUCT_PREFIX = "PKT1:"

_BASE64URL_RE = re.compile(r'\A[A-Za-z0-9_-]*={0,2}\Z')


def _pad_base64(value: str) -> str:
    return value + "=" * ((4 - len(value) % 4) % 4)


def _decode_json_body(raw: str, prefix: str) -> Any:
    """
    Strip the prefix, base64url-decode the rest and parse it as JSON.

    Raises:
        PayloadError: If base64, UTF-8 or JSON decoding fails
    """
    padded = _pad_base64(raw[len(prefix):])
    if not _BASE64URL_RE.match(padded):
        raise PayloadError(f"{prefix} body is not base64url", raw=raw)
    try:
        data = base64.urlsafe_b64decode(padded)
        return json.loads(data.decode('utf-8'))
    except (ValueError, TypeError, RecursionError) as e:
        # binascii.Error, UnicodeError and JSONDecodeError are all ValueErrors;
        # RecursionError comes from deeply nested JSON arrays or objects
        raise PayloadError(f"Cannot decode {prefix} payload: {e}", raw=raw) from e


def _encode_json_body(obj: Any, prefix: str, pad: bool) -> str:
    body = json.dumps(obj, ensure_ascii=False, separators=(',', ':')).encode('utf-8')
    encoded = base64.urlsafe_b64encode(body).decode('ascii')
    if not pad:
        encoded = encoded.rstrip('=')
    return prefix + encoded


def _as_text(value: Any) -> str:
    """Render a JSON scalar as text the way the label producers do; None is blank."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _coerce_units(value: Any) -> int:
    """
    Convert a JSON units value to a non-negative int.

    Numbers and numeric strings are truncated ("2.0" -> 2); anything else,
    including a missing value, counts as 0.
    """
    if isinstance(value, bool) or value is None:
        return 0
    try:
        units = int(float(value))
    except (ValueError, TypeError, OverflowError):
        return 0
    return max(units, 0)


def _parse_invoice(raw: str) -> InvoicePayload:
    if not raw.startswith(INVOICE_PREFIX):
        raise PayloadError("Missing invoice prefix", raw=raw)

    root = _decode_json_body(raw, INVOICE_PREFIX)
    if not isinstance(root, dict):
        raise PayloadError("Invoice body is not a JSON object", raw=raw)

    order_id = _as_text(root.get("o"))
    if not order_id.strip():
        raise PayloadError("Invoice has no order id", raw=raw)

    raw_items = root.get("i")
    if not isinstance(raw_items, list):
        raw_items = []

    items: List[InvoiceItem] = []
    for index, pair in enumerate(raw_items):
        if not isinstance(pair, list) or not pair:
            logger.debug(f"Skipping malformed item #{index} in order {order_id}: {pair!r}")
            continue
        sku = _as_text(pair[0])
        if not sku.strip():
            logger.debug(f"Skipping item #{index} without SKU in order {order_id}")
            continue
        units = _coerce_units(pair[1]) if len(pair) > 1 else 0
        items.append(InvoiceItem(sku=sku, required_units=units))

    return InvoicePayload(order_id=order_id, items=tuple(items))


def decode_invoice(raw: str) -> Optional[InvoicePayload]:
    """
    Decode an invoice QR payload.

    Args:
        raw: Text read by the scanner

    Returns:
        The invoice, or None if the text is not a valid PKG1 payload.
        Item entries that are malformed are skipped without failing the invoice.
    """
    try:
        return _parse_invoice(raw)
    except PayloadError as e:
        logger.debug(f"Invoice decode failed: {e}")
        return None


def decode_product_token(raw: str) -> Optional[str]:
    """
    Decode a product barcode into an upper-cased SKU.

    PKT1 tokens carry the SKU in the "s" field; anything else is taken as
    the SKU itself (trimmed).

    Returns:
        The normalized SKU, or None for a blank token or an undecodable PKT1 token
    """
    if raw.startswith(PRODUCT_PREFIX):
        try:
            body = _decode_json_body(raw, PRODUCT_PREFIX)
        except PayloadError as e:
            logger.debug(f"Product token decode failed: {e}")
            return None
        sku = _as_text(body.get("s")) if isinstance(body, dict) else ""
        if not sku.strip():
            logger.debug("Product token has no SKU")
            return None
        return sku.upper()

    sku = raw.strip().upper()
    return sku or None


def encode_invoice(payload: InvoicePayload, pad: bool = False) -> str:
    """Encode an invoice as a PKG1 payload (unpadded by default)."""
    body = {
        "o": payload.order_id,
        "i": [[item.sku, item.required_units] for item in payload.items],
    }
    return _encode_json_body(body, INVOICE_PREFIX, pad)


def encode_product_token(sku: str, pad: bool = False) -> str:
    """Encode a SKU as a PKT1 token (unpadded by default)."""
    if not sku or not sku.strip():
        raise PayloadError("Cannot encode a blank SKU", raw=sku)
    return _encode_json_body({"s": sku}, PRODUCT_PREFIX, pad)
