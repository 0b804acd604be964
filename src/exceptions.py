"""
Custom exceptions for Packer's Assistant.

Scan-pipeline problems (bad QR codes, unknown SKUs, repeated orders) are not
exceptions for the caller: the packing session turns them into a short
notification for the operator and keeps its state. The classes below cover
the failures that do reach a caller or a log:

Exception hierarchy:
    PackerAssistantError (base)
    ├── PayloadError (malformed invoice or SKU payload, codec-internal)
    ├── AuthenticationError (sign-in rejected)
    ├── ExportError (CSV scan log could not be written)
    ├── RemoteLogError (scan event could not be appended to the shared log)
    ├── PackedOrderStoreError (packed-order database unavailable)
    └── ConfigError (invalid config.ini value)
"""

from typing import Optional


class PackerAssistantError(Exception):
    """
    Base exception for all Packer's Assistant errors.

    Catch this to handle any application error with a single clause; it does
    not inherit from built-in errors such as ValueError or OSError.
    """
    pass


class PayloadError(PackerAssistantError):
    """
    Raised inside the payload codec when a scanned string cannot be decoded.

    The decode functions convert it into a None result; the encoders raise
    it for values that cannot be encoded.

    Attributes:
        raw (str): The scanned text that failed to decode
    """

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class AuthenticationError(PackerAssistantError):
    """
    Raised when an operator cannot be signed in.

    Covers unknown e-mail addresses, wrong passwords, deactivated operators
    and blank credentials. The message is safe to show on the sign-in screen.

    Attributes:
        email (str): The e-mail address that was attempted
    """

    def __init__(self, message: str, email: Optional[str] = None):
        super().__init__(message)
        self.email = email


class ExportError(PackerAssistantError):
    """
    Raised when the CSV scan log cannot be written.

    Attributes:
        path (str): Target file or directory of the failed export
    """

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path

    def get_display_message(self) -> str:
        """Short message for the operator, e.g. a snackbar or console line."""
        if self.path:
            return f"Export failed: {self} ({self.path})"
        return f"Export failed: {self}"


class RemoteLogError(PackerAssistantError):
    """Raised when a scan event cannot be appended to the shared scan log."""
    pass


class PackedOrderStoreError(PackerAssistantError):
    """Raised when the packed-order database cannot be written."""
    pass


class ConfigError(PackerAssistantError):
    """Raised when config.ini holds a value that cannot be used."""
    pass
