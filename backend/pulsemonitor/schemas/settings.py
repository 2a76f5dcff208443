"""Runtime monitoring settings schemas."""
from typing import Optional
from pydantic import BaseModel, Field


class MonitoringSettings(BaseModel):
    """Settings consumed by the state machine, dispatcher and self-check."""
    # Incident policy
    consecutive_failures_threshold: int = Field(default=3, ge=1, le=100)
    auto_resolve: bool = True

    # Local speech alerts
    sound_enabled: bool = True
    tts_enabled: bool = True
    tts_rate: float = Field(default=1.0, gt=0, le=4)
    tts_voice: str = "default"
    custom_alert_text: Optional[str] = None  # Overrides the alert message when set

    # Email alert settings
    email_enabled: bool = False
    smtp_host: str = ""
    smtp_port: int = Field(default=587, ge=1, le=65535)
    smtp_use_tls: bool = True
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_from: str = ""

    # SMS alert settings (batched HTTP API)
    sms_enabled: bool = False
    sms_api_url: str = "https://api.mnotify.com/api/sms/quick"
    sms_api_key: str = ""
    sms_sender_id: str = "PULSE"

    # Host connectivity self-check
    network_check_interval: int = Field(default=10, ge=1, le=3600)  # seconds
    network_notification_cooldown: int = Field(default=60, ge=0, le=86400)  # seconds

    def masked(self) -> dict:
        """Dump for clients with secrets replaced by '***'."""
        data = self.model_dump()
        for key in ("smtp_password", "sms_api_key"):
            data[key] = "***" if data[key] else ""
        return data


class SettingsUpdate(BaseModel):
    """Schema for updating settings."""
    consecutive_failures_threshold: Optional[int] = Field(None, ge=1, le=100)
    auto_resolve: Optional[bool] = None

    sound_enabled: Optional[bool] = None
    tts_enabled: Optional[bool] = None
    tts_rate: Optional[float] = Field(None, gt=0, le=4)
    tts_voice: Optional[str] = None
    custom_alert_text: Optional[str] = None

    email_enabled: Optional[bool] = None
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = Field(None, ge=1, le=65535)
    smtp_use_tls: Optional[bool] = None
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_from: Optional[str] = None

    sms_enabled: Optional[bool] = None
    sms_api_url: Optional[str] = None
    sms_api_key: Optional[str] = None
    sms_sender_id: Optional[str] = None

    network_check_interval: Optional[int] = Field(None, ge=1, le=3600)
    network_notification_cooldown: Optional[int] = Field(None, ge=0, le=86400)
