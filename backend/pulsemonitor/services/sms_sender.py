"""SMS sender service - batched delivery through an HTTP SMS gateway."""
import logging
from dataclasses import dataclass
from typing import List, Optional

import httpx

from ..schemas.settings import MonitoringSettings
from .delivery import SendResult

logger = logging.getLogger(__name__)

SMS_TIMEOUT = 30  # seconds


@dataclass
class SmsConfig:
    """Gateway configuration for sending SMS."""
    api_url: str
    api_key: str
    sender_id: str = "PULSE"

    @classmethod
    def from_settings(cls, settings: MonitoringSettings) -> "SmsConfig":
        return cls(
            api_url=settings.sms_api_url,
            api_key=settings.sms_api_key,
            sender_id=settings.sms_sender_id,
        )


class SmsSenderService:
    """Sends one gateway request per message, whatever the number of phones."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = SMS_TIMEOUT):
        self._transport = transport
        self.timeout = timeout

    async def send_batch(self, config: SmsConfig, phones: List[str], message: str) -> SendResult:
        """Send ``message`` to every phone in a single request. Never raises."""
        phones = [phone for phone in phones if phone]
        if not phones:
            return SendResult("sms", False, error="No phone numbers provided")
        if not config.api_url or not config.api_key:
            logger.warning("SMS not configured - missing gateway URL or API key")
            return SendResult("sms", False, phones, error="SMS not configured")

        payload = {
            "recipient": phones,
            "sender": config.sender_id,
            "message": message,
            "is_schedule": False,
            "schedule_date": "",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    config.api_url,
                    params={"key": config.api_key},
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
        except httpx.TimeoutException:
            logger.error(f"SMS gateway timed out for {len(phones)} recipient(s)")
            return SendResult("sms", False, phones, error="SMS gateway timeout")
        except httpx.HTTPError as e:
            logger.error(f"SMS failed: {type(e).__name__}: {e}")
            return SendResult("sms", False, phones, error=str(e))

        if response.status_code >= 400:
            logger.error(f"SMS gateway returned {response.status_code}")
            return SendResult("sms", False, phones, error=f"HTTP {response.status_code}", detail=response.text[:200])

        logger.info(f"SMS sent to {', '.join(phones)}")
        return SendResult("sms", True, phones, detail=response.text[:200])


# Global instance
sms_sender_service = SmsSenderService()
