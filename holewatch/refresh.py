"""Per-target background refresh with a single-flight guarantee.

A :class:`RefreshCoordinator` runs at most one fetch thread for its target.
The thread hands its result back over a private one-slot queue; the UI loop
picks it up with :meth:`RefreshCoordinator.poll_completion`, which waits for
at most a few milliseconds. Only the UI thread touches the stored snapshot.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from holewatch.models import Idle, InFlight, MetricsSnapshot, RefreshState, Target

logger = logging.getLogger(__name__)

POLL_TIMEOUT = 0.01  # seconds

Fetcher = Callable[[], MetricsSnapshot]
Clock = Callable[[], float]


@dataclass
class _BackgroundFetch:
    thread: threading.Thread
    results: queue.Queue[MetricsSnapshot]


class RefreshCoordinator:
    """Owns one target's snapshot and its fetch lifecycle (Idle <-> InFlight)."""

    def __init__(
        self,
        target: Target,
        fetch: Fetcher,
        *,
        clock: Clock = time.monotonic,
        poll_timeout: float = POLL_TIMEOUT,
    ) -> None:
        self.target = target
        self._fetch = fetch
        self._clock = clock
        self._poll_timeout = poll_timeout
        # -inf: never updated, so the first staleness check triggers a fetch
        self._state: RefreshState = Idle(last_update=float("-inf"))
        self._snapshot = MetricsSnapshot()
        self._last_completed: float | None = None
        self._background: _BackgroundFetch | None = None

    # ── Read-only views ────────────────────────────────────────────────

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return isinstance(self._state, InFlight)

    @property
    def last_update(self) -> float | None:
        """Monotonic time of the last completed fetch, or None if none yet."""
        return self._last_completed

    def snapshot(self) -> MetricsSnapshot:
        return self._snapshot

    def is_stale(self, now: float, interval: float) -> bool:
        if not isinstance(self._state, Idle):
            return False
        return now - self._state.last_update > interval

    # ── Lifecycle ──────────────────────────────────────────────────────

    def request_refresh(self) -> None:
        """Start a background fetch unless one is already outstanding."""
        if self._background is not None:
            logger.debug("%s: refresh already in flight", self.target.display_name)
            return

        results: queue.Queue[MetricsSnapshot] = queue.Queue(maxsize=1)
        thread = threading.Thread(
            target=self._run,
            args=(results,),
            name=f"holewatch-fetch-{self.target.id}",
            daemon=True,
        )
        self._background = _BackgroundFetch(thread=thread, results=results)
        self._state = InFlight(started_at=self._clock())
        logger.debug("%s: refresh started", self.target.display_name)
        thread.start()

    def poll_completion(self) -> bool:
        """Apply a finished fetch if there is one. Returns True on update."""
        background = self._background
        if background is None:
            return False
        try:
            fetched = background.results.get(timeout=self._poll_timeout)
        except queue.Empty:
            return False

        background.thread.join()
        self._background = None

        # Fields missing from this fetch keep their previous value
        self._snapshot = fetched.merged_over(self._snapshot)
        now = self._clock()
        self._last_completed = now
        self._state = Idle(last_update=now)
        logger.info(
            "%s: refresh completed%s",
            self.target.display_name,
            " (no data)" if fetched.is_empty else "",
        )
        return True

    def _run(self, results: queue.Queue[MetricsSnapshot]) -> None:
        # Exactly one message per fetch, whatever happens in the provider
        try:
            snapshot = self._fetch()
        except Exception:
            logger.exception("%s: fetch failed", self.target.display_name)
            snapshot = MetricsSnapshot()
        results.put(snapshot)
