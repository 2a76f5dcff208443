"""Tests for the host network self-check."""
import httpx
import pytest

from pulsemonitor.services.monitor_state import NETWORK_ENDPOINT_ID
from pulsemonitor.services.network_monitor import NetworkMonitor


class Connectivity:
    """Mock transport whose reachability can be toggled."""

    def __init__(self):
        self.online = True
        self.requests = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests += 1
        if not self.online:
            raise httpx.ConnectError("Network is unreachable", request=request)
        return httpx.Response(200)


@pytest.fixture
def connectivity():
    return Connectivity()


@pytest.fixture
def network_monitor(state, dispatcher, connectivity):
    return NetworkMonitor(state, dispatcher, url="https://check.example.com",
                          transport=httpx.MockTransport(connectivity))


class TestNetworkMonitor:
    async def test_steady_connection_does_nothing(self, network_monitor, state, speech):
        assert await network_monitor.check_once() is None
        assert await network_monitor.check_once() is None
        assert state.get_incidents() == []
        assert speech.spoken == []

    async def test_disconnect_opens_network_incident_and_notifies(self, network_monitor, state, connectivity, speech):
        connectivity.online = False
        result = await network_monitor.check_once()

        assert not result.suppressed
        incident = state.get_ongoing_incident(NETWORK_ENDPOINT_ID)
        assert incident is not None
        alert = state.get_active_alerts()[0]
        assert alert.type == "connectivity"
        assert alert.severity == "critical"
        assert len(speech.spoken) == 1
        assert state.get_network_status().is_connected is False

    async def test_still_disconnected_never_renotifies(self, network_monitor, state, connectivity, speech):
        connectivity.online = False
        await network_monitor.check_once()
        for _ in range(5):
            assert await network_monitor.check_once() is None
        assert len(speech.spoken) == 1
        assert len(state.get_incidents()) == 1

    async def test_reconnect_resolves_network_incident(self, network_monitor, state, connectivity, speech):
        connectivity.online = False
        await network_monitor.check_once()
        connectivity.online = True
        result = await network_monitor.check_once()

        assert not result.suppressed
        assert state.get_ongoing_incident(NETWORK_ENDPOINT_ID) is None
        assert state.get_active_alerts() == []
        assert "restored" in speech.spoken[-1]

    async def test_flapping_within_cooldown(self, network_monitor, connectivity, speech):
        results = []
        for online in (False, True, False):
            connectivity.online = online
            results.append(await network_monitor.check_once())

        assert [r.suppressed for r in results] == [False, False, True]
        assert len(speech.spoken) == 2

    async def test_schedules_on_interval(self, network_monitor, scheduler, state):
        state.update_settings({"network_check_interval": 30})
        scheduler.start()
        try:
            network_monitor.start(scheduler)
            job = scheduler.scheduler.get_job("network_check")
            assert job.trigger.interval.total_seconds() == 30
            network_monitor.stop()
            assert scheduler.scheduler.get_job("network_check") is None
        finally:
            await scheduler.stop()

    async def test_malformed_check_url_counts_as_disconnected(self, state, dispatcher):
        def handler(request):
            raise httpx.InvalidURL("Invalid URL")

        monitor = NetworkMonitor(state, dispatcher, url="https://check.example.com",
                                 transport=httpx.MockTransport(handler))
        result = await monitor.check_once()

        assert result is not None
        assert state.get_network_status().is_connected is False
        assert state.get_ongoing_incident(NETWORK_ENDPOINT_ID) is not None
