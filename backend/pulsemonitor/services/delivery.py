"""Delivery results shared by the notification channels."""
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class SendResult:
    """Outcome of one send on one channel."""
    channel: str  # email, sms, tts
    success: bool
    recipients: List[str] = field(default_factory=list)
    error: Optional[str] = None
    detail: Optional[str] = None  # e.g. provider response or a warning


@dataclass
class DispatchResult:
    """Per-channel outcomes of dispatching one alert."""
    tts: Optional[SendResult] = None
    emails: List[SendResult] = field(default_factory=list)
    sms: Optional[SendResult] = None
    suppressed: bool = False  # Held back by the cooldown

    @property
    def emails_sent(self) -> int:
        return sum(1 for result in self.emails if result.success)

    @property
    def sms_sent(self) -> int:
        return len(self.sms.recipients) if self.sms and self.sms.success else 0
