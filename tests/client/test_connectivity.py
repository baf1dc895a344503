"""Tests for the connectivity monitor."""

from unittest.mock import MagicMock

import pytest

from edusync.client.connectivity import ConnectivityEvent, ConnectivityMonitor
from edusync.core.types import ConnectivityState


class TestStateMachine:
    """Tests for state transitions."""

    def test_starts_offline(self) -> None:
        """Should be offline until the first signal."""
        monitor = ConnectivityMonitor()
        assert monitor.state == ConnectivityState.OFFLINE
        assert not monitor.is_online

    def test_report_changes_state(self) -> None:
        monitor = ConnectivityMonitor()

        assert monitor.report(True) is True
        assert monitor.is_online
        assert monitor.report(False, source="probe") is True
        assert monitor.state == ConnectivityState.OFFLINE

    def test_report_same_state_is_noop(self) -> None:
        monitor = ConnectivityMonitor()
        assert monitor.report(False) is False

    def test_status(self) -> None:
        monitor = ConnectivityMonitor()
        monitor.report(True, source="platform")

        status = monitor.status()

        assert status["state"] == "online"
        assert status["is_online"] is True
        assert status["last_source"] == "platform"
        assert status["last_change"] is not None


class TestSubscribers:
    """Tests for change notifications."""

    def test_notifies_on_change_only(self) -> None:
        """Subscribers should only see actual transitions."""
        monitor = ConnectivityMonitor()
        events: list[ConnectivityEvent] = []
        monitor.subscribe(events.append)

        monitor.report(True)
        monitor.report(True)
        monitor.report(False)

        assert [(e.previous, e.current) for e in events] == [
            (ConnectivityState.OFFLINE, ConnectivityState.ONLINE),
            (ConnectivityState.ONLINE, ConnectivityState.OFFLINE),
        ]
        assert events[0].came_online
        assert events[1].went_offline

    def test_subscription_order(self) -> None:
        monitor = ConnectivityMonitor()
        calls: list[str] = []
        monitor.subscribe(lambda e: calls.append("first"))
        monitor.subscribe(lambda e: calls.append("second"))

        monitor.report(True)

        assert calls == ["first", "second"]

    def test_unsubscribe(self) -> None:
        monitor = ConnectivityMonitor()
        callback = MagicMock()
        unsubscribe = monitor.subscribe(callback)

        unsubscribe()
        unsubscribe()
        monitor.report(True)

        callback.assert_not_called()

    def test_failing_subscriber_does_not_stop_others(self) -> None:
        """An exception in one subscriber should be logged and skipped."""
        monitor = ConnectivityMonitor()
        after = MagicMock()
        monitor.subscribe(MagicMock(side_effect=RuntimeError("boom")))
        monitor.subscribe(after)

        monitor.report(True)

        after.assert_called_once()
        assert monitor.is_online

    def test_subscriber_sees_new_state(self) -> None:
        """The state should already be updated when subscribers run."""
        monitor = ConnectivityMonitor()
        seen: list[bool] = []
        monitor.subscribe(lambda e: seen.append(monitor.is_online))

        monitor.report(True)

        assert seen == [True]


class TestProbe:
    """Tests for the reachability probe."""

    def test_probe_reports_result(self) -> None:
        prober = MagicMock(return_value=True)
        monitor = ConnectivityMonitor(prober=prober)
        events: list[ConnectivityEvent] = []
        monitor.subscribe(events.append)

        assert monitor.probe() is True

        assert monitor.is_online
        assert events[0].source == "probe"

    def test_probe_exception_means_offline(self) -> None:
        monitor = ConnectivityMonitor(
            prober=MagicMock(side_effect=ConnectionError("unreachable")),
            initial_state=ConnectivityState.ONLINE,
        )

        assert monitor.probe() is False
        assert not monitor.is_online

    def test_probe_without_prober_keeps_state(self) -> None:
        monitor = ConnectivityMonitor(initial_state=ConnectivityState.ONLINE)
        assert monitor.probe() is True
        assert monitor.is_online


class TestLifecycle:
    """Tests for the periodic probe scheduler."""

    def test_start_and_stop(self) -> None:
        monitor = ConnectivityMonitor(prober=MagicMock(return_value=True), probe_interval=3600)

        monitor.start()
        assert monitor.is_running
        monitor.start()  # Already running

        monitor.stop()
        assert not monitor.is_running
        monitor.stop()

    def test_start_without_prober_is_noop(self) -> None:
        monitor = ConnectivityMonitor()
        monitor.start()
        assert not monitor.is_running

    @pytest.mark.parametrize("online", [True, False])
    def test_scheduled_job_probes(self, online: bool) -> None:
        """The scheduled job should feed the probe result into the monitor."""
        monitor = ConnectivityMonitor(prober=MagicMock(return_value=online))

        monitor._probe_job()

        assert monitor.is_online is online
