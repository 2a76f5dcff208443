"""Alerter service - fans an alert out to speech, email and SMS."""
import html
import logging
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from ..schemas.incident import Alert
from ..utils.clock import utcnow
from .delivery import DispatchResult, SendResult
from .email_sender import EmailConfig, EmailSenderService, email_sender_service
from .sms_sender import SmsConfig, SmsSenderService, sms_sender_service
from .speech import SpeechService, speech_service

if TYPE_CHECKING:
    from .monitor_state import MonitorState

logger = logging.getLogger(__name__)

KIND_DISCONNECTED = "disconnected"
KIND_CONNECTED = "connected"

SEVERITY_COLORS = {"critical": "#ef4444", "warning": "#f59e0b", "info": "#3b82f6"}


class NotificationCooldown:
    """Suppresses repeat notifications of the same kind within a window.

    A notification of kind k is allowed only if no notification of kind k
    was allowed in the last ``window`` seconds. Different kinds do not
    block each other.
    """

    def __init__(self, window: float, clock: Callable[[], float] = time.monotonic):
        self.window = window
        self._clock = clock
        self._last_sent: Dict[str, float] = {}

    def allow(self, kind: str) -> bool:
        """Record and allow a notification, or return False if it is in cooldown."""
        now = self._clock()
        last = self._last_sent.get(kind)
        if last is not None and now - last < self.window:
            return False
        self._last_sent[kind] = now
        return True

    def reset(self):
        self._last_sent.clear()


def _target(endpoint: Any) -> Optional[str]:
    if endpoint is None:
        return None
    url = getattr(endpoint, "url", None)
    if url:
        return url
    host = getattr(endpoint, "host", None)
    if host:
        port = getattr(endpoint, "port", None)
        return f"{host}:{port}" if port else host
    return None


def build_email_subject(alert: Alert, endpoint: Any = None) -> str:
    name = endpoint.name if endpoint is not None else alert.endpoint_name
    return f"[{alert.severity.upper()}] {name}: {alert.type}"


def build_email_text(alert: Alert, endpoint: Any = None) -> str:
    """Plain-text alert body."""
    name = endpoint.name if endpoint is not None else alert.endpoint_name
    lines = [
        f"Pulse Monitor {alert.severity.upper()} Alert",
        "=" * 40,
        "",
        f"Monitor: {name}",
    ]
    if endpoint is not None:
        lines.append(f"Type: {endpoint.type.upper()}")
    target = _target(endpoint)
    if target:
        lines.append(f"Target: {target}")
    lines += [
        f"Status: {alert.status}",
        f"Message: {alert.message or ''}",
        f"Time: {alert.created_at.strftime('%Y-%m-%d %H:%M:%S UTC')}",
        "",
        "--",
        "Pulse Monitor",
    ]
    return "\n".join(lines)


def build_email_html(alert: Alert, endpoint: Any = None) -> str:
    """HTML alert body with a severity-coloured header."""
    color = SEVERITY_COLORS.get(alert.severity, SEVERITY_COLORS["warning"])
    rows = [("Monitor", endpoint.name if endpoint is not None else alert.endpoint_name)]
    if endpoint is not None:
        rows.append(("Type", endpoint.type.upper()))
    rows += [
        ("Severity", alert.severity),
        ("Message", alert.message or ""),
        ("Time", alert.created_at.strftime("%Y-%m-%d %H:%M:%S UTC")),
    ]
    target = _target(endpoint)
    if target:
        rows.append(("Target", target))

    row_html = "\n".join(
        f'<tr><td style="font-weight:600;color:#666;padding:8px 16px 8px 0">{html.escape(label)}</td>'
        f'<td style="color:#333;padding:8px 0">{html.escape(str(value))}</td></tr>'
        for label, value in rows
    )
    return (
        "<!DOCTYPE html><html><body style=\"font-family:sans-serif;background:#f5f5f5;padding:20px\">"
        "<div style=\"max-width:600px;margin:0 auto;background:#fff;border-radius:8px;overflow:hidden\">"
        f"<div style=\"background:{color};color:#fff;padding:20px;text-align:center\">"
        "<h1 style=\"margin:0;font-size:24px\">Pulse Monitor Alert</h1></div>"
        f"<table style=\"padding:30px;width:100%\">{row_html}</table>"
        "<div style=\"background:#f9f9f9;padding:15px;text-align:center;font-size:12px;color:#999\">"
        f"Sent by Pulse Monitor at {utcnow().isoformat()}</div>"
        "</div></body></html>"
    )


class NotificationDispatcher:
    """Sends alerts to the recipients resolved from contacts and groups."""

    def __init__(
        self,
        state: "MonitorState",
        email_sender: Optional[EmailSenderService] = None,
        sms_sender: Optional[SmsSenderService] = None,
        speech: Optional[SpeechService] = None,
        cooldown: Optional[NotificationCooldown] = None,
    ):
        self.state = state
        self.email_sender = email_sender or email_sender_service
        self.sms_sender = sms_sender or sms_sender_service
        self.speech = speech or speech_service
        self.cooldown = cooldown or NotificationCooldown(state.get_settings().network_notification_cooldown)

    async def dispatch(self, alert: Alert, endpoint: Any = None) -> DispatchResult:
        """Deliver one alert over every enabled channel.

        Speech first, then one email per recipient, then a single SMS request
        for all phones. A failing channel or recipient never stops the rest.
        """
        settings = self.state.get_settings()
        recipients = self.state.resolve_recipients()
        result = DispatchResult()
        name = endpoint.name if endpoint is not None else alert.endpoint_name

        logger.info(
            f"Dispatching {alert.severity} alert for {name} to "
            f"{len(recipients.email)} email and {len(recipients.sms)} SMS recipient(s)"
        )

        if settings.sound_enabled and settings.tts_enabled:
            is_down = alert.status != "resolved"
            text = settings.custom_alert_text or (
                f"Alert! {name} is {'down' if is_down else 'recovered'}. {alert.message or ''}"
            )
            result.tts = await self._speak(text)

        if settings.email_enabled and recipients.email:
            config = EmailConfig.from_settings(settings)
            subject = build_email_subject(alert, endpoint)
            text_body = build_email_text(alert, endpoint)
            html_body = build_email_html(alert, endpoint)
            for contact in recipients.email:
                result.emails.append(await self._send_email(config, contact.email, subject, text_body, html_body))

        if settings.sms_enabled and recipients.sms:
            message = f"[{alert.severity}] {name}: {alert.message or ''}"
            result.sms = await self._send_sms(SmsConfig.from_settings(settings), recipients.phone_numbers, message)

        self._record(result, f"alert {alert.id}", alert.endpoint_id, name)
        return result

    async def notify_network_change(self, is_connected: bool, alert: Optional[Alert] = None) -> DispatchResult:
        """Announce a connectivity transition, subject to the cooldown."""
        settings = self.state.get_settings()
        self.cooldown.window = settings.network_notification_cooldown
        kind = KIND_CONNECTED if is_connected else KIND_DISCONNECTED
        if not self.cooldown.allow(kind):
            logger.info(f"Skipping network {kind} notification - in cooldown")
            return DispatchResult(suppressed=True)

        recipients = self.state.resolve_recipients()
        result = DispatchResult()
        status_text = "restored" if is_connected else "lost"
        timestamp = datetime.now().astimezone().isoformat()

        if settings.sound_enabled and settings.tts_enabled:
            text = (
                "Network connectivity has been restored. All systems operational."
                if is_connected
                else "Warning! Network connectivity has been lost. Services may not function properly."
            )
            result.tts = await self._speak(text)

        if settings.email_enabled and recipients.email:
            config = EmailConfig.from_settings(settings)
            subject = (
                "[INFO] Network Connectivity Restored" if is_connected
                else "[CRITICAL] Network Connectivity Lost"
            )
            text_body = f"Network connectivity has been {status_text}. Timestamp: {timestamp}"
            html_body = (
                f"<h2>Network Status Update</h2><p>Network connectivity has been {status_text}.</p>"
                f"<p>Timestamp: {timestamp}</p>"
            )
            for contact in recipients.email:
                result.emails.append(await self._send_email(config, contact.email, subject, text_body, html_body))

        if settings.sms_enabled and recipients.sms:
            message = f"[{'info' if is_connected else 'critical'}] Network connectivity {status_text}"
            result.sms = await self._send_sms(SmsConfig.from_settings(settings), recipients.phone_numbers, message)

        self._record(result, f"network {kind}", alert.endpoint_id if alert else None, "Network connectivity")
        return result

    async def _speak(self, text: str) -> SendResult:
        settings = self.state.get_settings()
        try:
            return await self.speech.speak(text, rate=settings.tts_rate, voice=settings.tts_voice)
        except Exception as e:
            logger.error(f"TTS error: {e}")
            return SendResult("tts", False, error=str(e))

    async def _send_email(self, config: EmailConfig, to: str, subject: str, text_body: str, html_body: str) -> SendResult:
        try:
            return await self.email_sender.send_email(config, to, subject, text_body, html_body)
        except Exception as e:
            logger.error(f"Email error for {to}: {e}")
            return SendResult("email", False, [to], error=str(e))

    async def _send_sms(self, config: SmsConfig, phones, message: str) -> SendResult:
        try:
            return await self.sms_sender.send_batch(config, phones, message)
        except Exception as e:
            logger.error(f"Batch SMS error: {e}")
            return SendResult("sms", False, list(phones), error=str(e))

    def _record(self, result: DispatchResult, subject: str, endpoint_id: Optional[str], name: str):
        for send in [*result.emails, result.sms]:
            if send is not None and send.success:
                self.state.add_activity(
                    "notification_sent", send.channel, endpoint_id, name,
                    recipients=send.recipients, subject=subject,
                )
        logger.info(
            f"Notification for {subject}: {result.emails_sent}/{len(result.emails)} emails, "
            f"{result.sms_sent} SMS recipient(s)"
        )
