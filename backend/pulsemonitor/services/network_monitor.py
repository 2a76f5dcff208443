"""Self-check of the host's own network reachability."""
import logging
from typing import TYPE_CHECKING, Optional, Tuple

import httpx

from ..config import settings as app_settings
from ..errors import ConflictError
from .alerter import NotificationDispatcher
from .delivery import DispatchResult
from .monitor_state import NETWORK_ENDPOINT_ID, NETWORK_ENDPOINT_NAME, MonitorState

if TYPE_CHECKING:
    from .scheduler import SchedulerService

logger = logging.getLogger(__name__)

NETWORK_CHECK_TIMEOUT = 5  # seconds
NETWORK_JOB_ID = "network_check"
OUTAGE_MESSAGE = "Internet connectivity lost - services may not function properly"


class NetworkMonitor:
    """Polls a well-known URL and turns connectivity transitions into alerts.

    Only transitions act: connected -> disconnected opens an incident under
    the NETWORK sentinel id and notifies; disconnected -> connected resolves
    it and notifies. Both notifications pass through the dispatcher's
    cooldown. Repeated same-state samples only refresh the timestamps.
    """

    def __init__(
        self,
        state: MonitorState,
        dispatcher: NotificationDispatcher,
        url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.state = state
        self.dispatcher = dispatcher
        self.url = url or app_settings.network_check_url
        self._transport = transport
        self._scheduler: Optional["SchedulerService"] = None

    def start(self, scheduler: "SchedulerService"):
        """Register the periodic self-check; the first sample runs immediately."""
        self._scheduler = scheduler
        self.reschedule()
        logger.info(
            f"Network connectivity check started "
            f"(every {self.state.get_settings().network_check_interval}s against {self.url})"
        )

    def reschedule(self):
        """Apply the current poll interval."""
        if self._scheduler is None:
            return
        self._scheduler.add_interval_job(
            self.check_once,
            seconds=self.state.get_settings().network_check_interval,
            job_id=NETWORK_JOB_ID,
        )

    def stop(self):
        if self._scheduler is not None:
            self._scheduler.remove_job(NETWORK_JOB_ID)
            self._scheduler = None

    async def probe(self) -> Tuple[bool, Optional[str]]:
        """Return (connected, error). Any HTTP response counts as connected."""
        try:
            async with httpx.AsyncClient(timeout=NETWORK_CHECK_TIMEOUT, transport=self._transport) as client:
                response = await client.head(self.url)
            logger.debug(f"Network check: HTTP {response.status_code}")
            return True, None
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return False, str(e) or type(e).__name__

    async def check_once(self) -> Optional[DispatchResult]:
        """Take one sample; returns the notification outcome on a transition."""
        connected, error = await self.probe()
        if not self.state.set_network_status(connected):
            return None

        if not connected:
            logger.error(f"Network connectivity lost: {error}")
            alert = None
            try:
                _, alert = self.state.open_incident(
                    NETWORK_ENDPOINT_ID,
                    OUTAGE_MESSAGE,
                    alert_type="connectivity",
                    endpoint_name=NETWORK_ENDPOINT_NAME,
                )
            except ConflictError:
                logger.debug("Network incident already ongoing")
            return await self.dispatcher.notify_network_change(False, alert)

        logger.info("Network connectivity restored")
        self.state.resolve_incidents_for_endpoint(NETWORK_ENDPOINT_ID, "Network connectivity restored")
        return await self.dispatcher.notify_network_change(True)
