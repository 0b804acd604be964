"""
Scanner feed: raw barcode text from the scanner into the packing session.

Handheld and camera scanners report the same code many times while it stays
in view. The feed drops a value identical to the previous one if it arrives
within the debounce window (1.2 s by default); everything it emits is
processed by the session unconditionally.
"""
import time
from typing import Callable, Iterable, Optional, TextIO, Union

from PySide6.QtCore import QObject, Signal

from logger import get_logger

logger = get_logger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 1.2


class ScanDebouncer:
    """
    Suppresses an unchanged value seen again within window_seconds.

    A different value is always accepted and restarts the window.
    """

    def __init__(self, window_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.window_seconds = window_seconds
        self._clock = clock
        self._last_value: Optional[str] = None
        self._last_time = 0.0

    def accept(self, value: str) -> bool:
        now = self._clock()
        if value == self._last_value and now - self._last_time <= self.window_seconds:
            return False
        self._last_value = value
        self._last_time = now
        return True

    def reset(self) -> None:
        self._last_value = None
        self._last_time = 0.0


class ScannerFeed(QObject):
    """
    Debounced stream of scanned strings.

    Attributes:
        barcode_scanned (Signal): Emitted with each accepted raw string, in arrival order
    """
    barcode_scanned = Signal(str)

    def __init__(self, debouncer: Optional[ScanDebouncer] = None, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.debouncer = debouncer or ScanDebouncer()

    def submit(self, raw: str) -> bool:
        """
        Offer one decoded value to the feed.

        Returns:
            True if the value was emitted, False if blank or debounced
        """
        if not raw or not raw.strip():
            return False
        if not self.debouncer.accept(raw):
            logger.debug(f"Debounced repeat scan: {raw[:40]}")
            return False
        self.barcode_scanned.emit(raw)
        return True

    def feed_lines(self, stream: Union[TextIO, Iterable[str]]) -> int:
        """
        Pump a keyboard-wedge scanner (one code per line) into the feed.

        Args:
            stream: Text stream or iterable of lines, e.g. sys.stdin

        Returns:
            Number of values emitted
        """
        emitted = 0
        for line in stream:
            if self.submit(line.rstrip("\r\n")):
                emitted += 1
        return emitted
