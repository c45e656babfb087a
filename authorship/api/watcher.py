"""
ClaimWatcher — background daemon thread that follows a registry file for new claims.

Poll loop:
    1. Reload the snapshot from the JsonClaimStore
    2. Dispatch events newer than the last seen sequence to the callback

Lets a process other than the writer (a dashboard, an auditor, `authorship
watch`) observe accepted claims live.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from authorship import API_POLL_INTERVAL_SECS
from authorship.events import ClaimEvent

logger = logging.getLogger(__name__)


class ClaimWatcher:
    """Daemon thread that delivers newly persisted claim events.

    Usage:
        watcher = ClaimWatcher(JsonClaimStore(), on_event=print)
        watcher.start()
        # ... later ...
        watcher.stop()
    """

    def __init__(
        self,
        store: Any,
        on_event: Callable[[ClaimEvent], None],
        poll_interval: float = API_POLL_INTERVAL_SECS,
        start_sequence: int = 0,
    ) -> None:
        self._store = store
        self._on_event = on_event
        self._poll_interval = poll_interval
        self._next_sequence = start_sequence
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def next_sequence(self) -> int:
        return self._next_sequence

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="claim-watcher", daemon=True
        )
        self._thread.start()
        logger.info("ClaimWatcher started (poll interval: %ss)", self._poll_interval)

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("ClaimWatcher stopped")

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll()
            except Exception:
                logger.exception("ClaimWatcher poll error")
            self._stop_event.wait(self._poll_interval)

    def poll(self) -> int:
        """Check the store once. Returns the number of events delivered."""
        snapshot = self._store.load()
        raw_events = snapshot["events"][self._next_sequence:]
        delivered = 0
        for raw in raw_events:
            event = ClaimEvent.from_dict(raw)
            if event.sequence != self._next_sequence:
                logger.warning(
                    "Skipping out-of-order event %d (expected %d)",
                    event.sequence, self._next_sequence,
                )
                break
            try:
                self._on_event(event)
            except Exception:
                logger.exception("Claim event callback failed on event %d", event.sequence)
            self._next_sequence += 1
            delivered += 1
        return delivered
