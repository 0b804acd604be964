"""
Background dispatcher for packing-session effects.

Appending a scan to the shared log or persisting a packed order can be slow
on a network share; the scan loop must not wait for either. Effects are
queued in emission order and executed one at a time by a daemon thread.
"""

import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Deque, List, Optional

from logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class EffectFailure:
    """An effect whose handler raised; kept so callers and tests can inspect it."""
    effect: object
    error: Exception
    failed_at: datetime


class EffectDispatcher:
    """
    FIFO write-behind queue for session effects.

    Behaviour:
    - submit(effect): non-blocking, appends to the queue
    - flush(): blocking, waits until the queue is empty and no effect is running
    - shutdown(): flush then stop the daemon thread

    A handler exception is logged and recorded in failures(); it never
    propagates to the submitter and never stops the worker.

    sync_mode=True runs each effect inline inside submit(); used by unit tests
    and by callers without a running event loop.
    """

    def __init__(
        self,
        handler: Callable[[object], None],
        sync_mode: bool = False,
        on_failure: Optional[Callable[[EffectFailure], None]] = None,
    ) -> None:
        self._handler = handler
        self._sync_mode = sync_mode
        self._on_failure = on_failure
        self._failures: List[EffectFailure] = []
        self._failures_lock = threading.Lock()

        if sync_mode:
            return

        self._condition = threading.Condition()
        self._queue: Deque[object] = deque()
        self._is_running_effect = False
        self._stop = False
        self._thread = threading.Thread(
            target=self._run, daemon=True, name="effect-dispatcher"
        )
        self._thread.start()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit(self, effect: object) -> None:
        if self._sync_mode:
            self._execute(effect)
            return

        with self._condition:
            if self._stop:
                logger.warning(f"Dispatcher stopped, dropping effect: {effect}")
                return
            self._queue.append(effect)
            self._condition.notify()

    def submit_all(self, effects) -> None:
        for effect in effects:
            self.submit(effect)

    def flush(self) -> None:
        """Block until every submitted effect has been executed."""
        if self._sync_mode:
            return

        with self._condition:
            while self._queue or self._is_running_effect:
                self._condition.wait()

    def shutdown(self) -> None:
        """Flush pending effects and stop the worker. Safe to call twice."""
        if self._sync_mode:
            return

        self.flush()
        with self._condition:
            self._stop = True
            self._condition.notify_all()
        self._thread.join(timeout=10)

    def failures(self) -> List[EffectFailure]:
        with self._failures_lock:
            return list(self._failures)

    @property
    def pending_count(self) -> int:
        if self._sync_mode:
            return 0
        with self._condition:
            return len(self._queue)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _execute(self, effect: object) -> None:
        try:
            self._handler(effect)
        except Exception as e:
            logger.error(f"Effect failed: {effect}: {e}", exc_info=True)
            failure = EffectFailure(effect=effect, error=e, failed_at=datetime.now(timezone.utc))
            with self._failures_lock:
                self._failures.append(failure)
            if self._on_failure is not None:
                self._on_failure(failure)

    def _run(self) -> None:
        while True:
            with self._condition:
                while not self._queue and not self._stop:
                    self._condition.wait()

                if self._stop and not self._queue:
                    break

                effect = self._queue.popleft()
                self._is_running_effect = True

            # Run outside the lock so submit() never blocks on a slow handler
            try:
                self._execute(effect)
            finally:
                with self._condition:
                    self._is_running_effect = False
                    self._condition.notify_all()
