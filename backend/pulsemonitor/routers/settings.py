"""Settings API endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..schemas.settings import SettingsUpdate
from ..services.alerter import NotificationDispatcher
from ..services.email_sender import EmailConfig
from ..services.monitor_state import MonitorState
from ..services.network_monitor import NetworkMonitor
from ..services.sms_sender import SmsConfig
from .deps import get_dispatcher, get_network_monitor, get_state

router = APIRouter(prefix="/api/settings", tags=["settings"])


class TestEmailRequest(BaseModel):
    """Recipient for a test email; omit to only verify the SMTP login."""
    to: Optional[str] = None


class TestSmsRequest(BaseModel):
    phone: str


class TestTtsRequest(BaseModel):
    text: Optional[str] = None


@router.get("")
async def get_settings(state: MonitorState = Depends(get_state)):
    """Get current settings with secrets masked."""
    return state.get_settings().masked()


@router.put("")
async def update_settings(
    update: SettingsUpdate,
    state: MonitorState = Depends(get_state),
    network_monitor: Optional[NetworkMonitor] = Depends(get_network_monitor),
):
    """Update settings. Fields left out keep their current value."""
    changes = update.model_dump(exclude_unset=True)
    settings = state.update_settings(changes)
    if "network_check_interval" in changes and network_monitor is not None:
        network_monitor.reschedule()
    return settings.masked()


@router.post("/test-email")
async def test_email(
    request: TestEmailRequest,
    state: MonitorState = Depends(get_state),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Verify the SMTP configuration and optionally send a test email."""
    settings = state.get_settings()
    if not settings.smtp_host:
        raise HTTPException(status_code=400, detail="SMTP host is not configured")

    config = EmailConfig.from_settings(settings)
    if not request.to:
        result = await dispatcher.email_sender.verify(config)
    else:
        body = "\n".join([
            "Pulse Monitor Test Email",
            "=" * 40,
            "",
            "If you received this message, your SMTP configuration is working correctly.",
            "",
            f"SMTP Host: {config.host}",
            f"SMTP Port: {config.port}",
            f"TLS Enabled: {config.use_tls}",
            f"From: {config.sender or 'Not set'}",
        ])
        result = await dispatcher.email_sender.send_email(config, request.to, "Pulse Monitor - Email Test", body)

    if not result.success:
        raise HTTPException(status_code=502, detail=f"Email test failed: {result.error}")
    return {"success": True, "message": result.detail or f"Test email sent to {request.to}"}


@router.post("/test-sms")
async def test_sms(
    request: TestSmsRequest,
    state: MonitorState = Depends(get_state),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Send a test SMS to one phone number."""
    config = SmsConfig.from_settings(state.get_settings())
    result = await dispatcher.sms_sender.send_batch(
        config, [request.phone], "Pulse Monitor SMS test message - Configuration is working!"
    )
    if not result.success:
        raise HTTPException(status_code=502, detail=f"SMS test failed: {result.error}")
    return {"success": True, "message": f"Test SMS sent to {request.phone}"}


@router.post("/test-tts")
async def test_tts(
    request: TestTtsRequest,
    state: MonitorState = Depends(get_state),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Speak a test phrase on the monitoring host, regardless of the TTS toggle."""
    settings = state.get_settings()
    result = await dispatcher.speech.speak(
        request.text or "This is a test of the text to speech system.",
        rate=settings.tts_rate,
        voice=settings.tts_voice,
    )
    return {"success": result.success, "error": result.error, "detail": result.detail}
