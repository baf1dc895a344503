"""Connectivity monitor: single source of truth for online/offline state.

This module provides:
- ConnectivityEvent: A state transition delivered to subscribers
- ConnectivityMonitor: Two-state machine fed by network signals and probes

Architecture:
    platform network listener ──report()──┐
                                          ├─► ConnectivityMonitor ─► subscribers
    periodic reachability probe ─report()─┘                          (SyncDriver, UI badge)

Both sources go through report(), so subscribers observe one ordered
stream of transitions. Subscribers are only called when the state
actually changes. The periodic probe recovers from stale "online" signals
(e.g. a captive portal or a dead backend behind a working Wi-Fi).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from edusync.core.config import DEFAULT_PROBE_INTERVAL
from edusync.core.types import ConnectivityState, utc_now

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

SOURCE_PLATFORM = "platform"
SOURCE_PROBE = "probe"


@dataclass
class ConnectivityEvent:
    """A transition between online and offline.

    Attributes:
        previous: State before the transition.
        current: State after the transition.
        source: What reported it ("platform", "probe"...).
        timestamp: When the transition happened.
    """

    previous: ConnectivityState
    current: ConnectivityState
    source: str
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def came_online(self) -> bool:
        """Check if this is an offline -> online transition."""
        return (
            self.previous == ConnectivityState.OFFLINE
            and self.current == ConnectivityState.ONLINE
        )

    @property
    def went_offline(self) -> bool:
        """Check if this is an online -> offline transition."""
        return (
            self.previous == ConnectivityState.ONLINE
            and self.current == ConnectivityState.OFFLINE
        )


class ConnectivityMonitor:
    """Tracks network reachability and notifies subscribers of transitions.

    Usage:
        monitor = ConnectivityMonitor(prober=remote.health_check)
        unsubscribe = monitor.subscribe(on_change)
        monitor.start()          # periodic probe

        monitor.report(True)     # from the platform network listener

        monitor.stop()
    """

    def __init__(
        self,
        prober: Callable[[], bool] | None = None,
        probe_interval: float = DEFAULT_PROBE_INTERVAL,
        initial_state: ConnectivityState = ConnectivityState.OFFLINE,
    ) -> None:
        """Initialize the monitor.

        Args:
            prober: Reachability check returning True when online.
            probe_interval: Seconds between periodic probes.
            initial_state: State before the first signal.
        """
        self._prober = prober
        self._probe_interval = probe_interval
        self._state = initial_state
        self._last_change: datetime | None = None
        self._last_source: str | None = None

        self._lock = threading.RLock()
        self._subscribers: list[Callable[[ConnectivityEvent], None]] = []
        self._scheduler: BackgroundScheduler | None = None

    @property
    def state(self) -> ConnectivityState:
        """Current state."""
        return self._state

    @property
    def is_online(self) -> bool:
        """Check if the monitor considers the network reachable."""
        return self._state == ConnectivityState.ONLINE

    @property
    def is_running(self) -> bool:
        """Check if the periodic probe is scheduled."""
        return self._scheduler is not None

    # === Subscribers ===

    def subscribe(
        self, callback: Callable[[ConnectivityEvent], None]
    ) -> Callable[[], None]:
        """Register a callback for state transitions.

        Callbacks run synchronously, in subscription order, on the thread
        that reported the change.

        Returns:
            A function removing the subscription.
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, event: ConnectivityEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception("Connectivity subscriber failed")

    # === Signals ===

    def report(self, online: bool, source: str = SOURCE_PLATFORM) -> bool:
        """Feed a reachability signal into the state machine.

        Args:
            online: Whether the source sees the network as reachable.
            source: Name of the signal source, for logging.

        Returns:
            True if the state changed.
        """
        new_state = ConnectivityState.ONLINE if online else ConnectivityState.OFFLINE
        with self._lock:
            if new_state == self._state:
                return False
            event = ConnectivityEvent(previous=self._state, current=new_state, source=source)
            self._state = new_state
            self._last_change = event.timestamp
            self._last_source = source

        logger.info(
            "Connectivity changed: %s -> %s (%s)",
            event.previous.value,
            event.current.value,
            source,
        )
        self._notify(event)
        return True

    def probe(self) -> bool:
        """Run the reachability check and report its result.

        A prober that raises counts as offline. Without a prober the
        current state is kept.

        Returns:
            The probed reachability.
        """
        if self._prober is None:
            return self.is_online
        try:
            online = bool(self._prober())
        except Exception as e:
            logger.debug("Reachability probe failed: %s", e)
            online = False
        self.report(online, SOURCE_PROBE)
        return online

    def _probe_job(self) -> None:
        try:
            self.probe()
        except Exception:
            logger.exception("Error during scheduled reachability probe")

    # === Lifecycle ===

    def start(self) -> None:
        """Start the periodic reachability probe."""
        with self._lock:
            if self._scheduler is not None:
                return  # Already running
            if self._prober is None:
                logger.debug("No prober configured, periodic probe disabled")
                return

            self._scheduler = BackgroundScheduler()
            self._scheduler.add_job(
                self._probe_job,
                trigger=IntervalTrigger(seconds=self._probe_interval),
                id="connectivity_probe",
                name="Reachability probe",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            self._scheduler.start()
        logger.info("Connectivity probe started (every %.0fs)", self._probe_interval)

    def stop(self) -> None:
        """Stop the periodic probe. Safe to call multiple times."""
        with self._lock:
            scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            logger.info("Connectivity probe stopped")

    def status(self) -> dict[str, Any]:
        """Get current status as a dictionary."""
        return {
            "state": self._state.value,
            "is_online": self.is_online,
            "last_change": self._last_change.isoformat() if self._last_change else None,
            "last_source": self._last_source,
        }
