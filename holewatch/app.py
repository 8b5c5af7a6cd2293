"""Central dashboard state driven by ticks and user commands."""

from __future__ import annotations

import enum
import logging
import queue
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass

from holewatch.models import MetricsSnapshot, Target
from holewatch.provider import ProviderAdmin, ProviderError
from holewatch.refresh import RefreshCoordinator

logger = logging.getLogger(__name__)

MAX_SQUASH_FACTOR = 2**16
DISABLE_SECONDS = 60


class Command(enum.Enum):
    SELECT_NEXT = "select_next"
    SELECT_PREVIOUS = "select_previous"
    FORCE_REFRESH = "force_refresh"
    ZOOM_IN = "zoom_in"
    ZOOM_OUT = "zoom_out"
    ENABLE_PROVIDER = "enable_provider"
    DISABLE_PROVIDER = "disable_provider"
    QUIT = "quit"


@dataclass
class TargetView:
    """A target with its coordinator and optional admin capability."""

    target: Target
    coordinator: RefreshCoordinator
    admin: ProviderAdmin | None = None

    @property
    def snapshot(self) -> MetricsSnapshot:
        return self.coordinator.snapshot()


@dataclass
class _PendingMutation:
    view: TargetView
    thread: threading.Thread
    results: queue.Queue[str]


class ApplicationState:
    """Owns the targets, the selection and display parameters.

    Only the UI loop calls into this object. Background fetches report back
    through their coordinators, and enable/disable calls through a one-slot
    queue collected on the next tick, never by touching this state directly.
    """

    def __init__(
        self,
        targets: Sequence[TargetView],
        refresh_interval: float,
        *,
        refresh_all: bool = False,
    ) -> None:
        if not targets:
            raise ValueError("at least one target is required")
        self._targets = list(targets)
        self.selected_index = 0
        self.refresh_interval = refresh_interval
        self.refresh_all = refresh_all
        self.chart_squash_factor = 1
        self.status_message: str | None = None
        self._mutations: dict[int, _PendingMutation] = {}

    @property
    def targets(self) -> list[TargetView]:
        return self._targets

    @property
    def selected(self) -> TargetView:
        return self._targets[self.selected_index]

    @property
    def mutation_pending(self) -> bool:
        return self.selected.target.id in self._mutations

    # ── Events ─────────────────────────────────────────────────────────

    def on_tick(self, now: float | None = None) -> None:
        """Collect finished work and start new fetches where data is stale."""
        if now is None:
            now = time.monotonic()
        self._collect_mutations()
        views = self._targets if self.refresh_all else [self.selected]
        for view in views:
            coordinator = view.coordinator
            coordinator.poll_completion()
            if not coordinator.in_flight and coordinator.is_stale(now, self.refresh_interval):
                coordinator.request_refresh()

    def handle(self, command: Command) -> bool:
        """Apply *command*. Returns False when the loop should stop."""
        if command is Command.QUIT:
            return False

        count = len(self._targets)
        if command is Command.SELECT_NEXT:
            self.selected_index = (self.selected_index + 1) % count
        elif command is Command.SELECT_PREVIOUS:
            self.selected_index = (self.selected_index - 1 + count) % count
        elif command is Command.FORCE_REFRESH:
            self.selected.coordinator.request_refresh()
        elif command is Command.ZOOM_IN:
            self.chart_squash_factor = max(1, self.chart_squash_factor // 2)
        elif command is Command.ZOOM_OUT:
            self.chart_squash_factor = min(MAX_SQUASH_FACTOR, self.chart_squash_factor * 2)
        elif command is Command.ENABLE_PROVIDER:
            self._mutate(enable=True)
        elif command is Command.DISABLE_PROVIDER:
            self._mutate(enable=False)
        return True

    def _mutate(self, *, enable: bool) -> None:
        view = self.selected
        if view.admin is None:
            # read-only target: nothing to switch, just reload
            view.coordinator.request_refresh()
            return
        if view.target.id in self._mutations:
            logger.debug("%s: mutation already in flight", view.target.display_name)
            return

        results: queue.Queue[str] = queue.Queue(maxsize=1)
        thread = threading.Thread(
            target=_run_mutation,
            args=(view.admin, view.target.display_name, enable, results),
            name=f"holewatch-mutate-{view.target.id}",
            daemon=True,
        )
        self._mutations[view.target.id] = _PendingMutation(view, thread, results)
        verb = "Enabling" if enable else "Disabling"
        self.status_message = f"{verb} {view.target.display_name}..."
        thread.start()

    def _collect_mutations(self) -> None:
        for target_id, pending in list(self._mutations.items()):
            try:
                message = pending.results.get_nowait()
            except queue.Empty:
                continue
            pending.thread.join()
            del self._mutations[target_id]
            self.status_message = message
            pending.view.coordinator.request_refresh()


def _run_mutation(
    admin: ProviderAdmin, name: str, enable: bool, results: queue.Queue[str]
) -> None:
    # Exactly one message per mutation
    action = "enable" if enable else "disable"
    try:
        if enable:
            admin.enable()
            message = f"Enabled {name}"
        else:
            admin.disable(DISABLE_SECONDS)
            message = f"Disabled {name} for {DISABLE_SECONDS}s"
    except ProviderError as e:
        logger.error("%s: failed to %s: %s", name, action, e)
        message = f"Failed to {action} {name}: {e}"
    except Exception:
        logger.exception("%s: failed to %s", name, action)
        message = f"Failed to {action} {name}"
    results.put(message)
