"""Tests for the email and speech channels."""
import asyncio
import smtplib
from unittest.mock import AsyncMock, MagicMock, patch

from pulsemonitor.services.email_sender import EmailConfig, EmailSenderService
from pulsemonitor.services.speech import SpeechService, build_commands

CONFIG = EmailConfig(host="mail.example.com", port=587, username="alerts", password="pw", from_address="noc@example.com")


class TestEmailSender:
    async def test_not_configured(self):
        result = await EmailSenderService().send_email(
            EmailConfig(host="", port=587, username="", password=""), "a@example.com", "s", "b"
        )
        assert not result.success
        assert result.error == "Email not configured"

    async def test_delivers_one_message(self):
        sender = EmailSenderService()
        with patch.object(sender, "_deliver") as deliver:
            result = await sender.send_email(CONFIG, "a@example.com", "[CRITICAL] API: incident", "down")

        assert result.success
        assert result.recipients == ["a@example.com"]
        config, to_address, message = deliver.call_args.args
        assert to_address == "a@example.com"
        assert "From: noc@example.com" in message

    async def test_authentication_failure_is_reported(self):
        sender = EmailSenderService()
        error = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        with patch.object(sender, "_deliver", side_effect=error):
            result = await sender.send_email(CONFIG, "a@example.com", "s", "b")
        assert not result.success
        assert result.error.startswith("Authentication failed")

    async def test_connection_failure_is_reported(self):
        sender = EmailSenderService()
        with patch.object(sender, "_deliver", side_effect=ConnectionRefusedError("refused")):
            result = await sender.send_email(CONFIG, "a@example.com", "s", "b")
        assert not result.success
        assert "refused" in result.error

    def test_sender_falls_back_to_username(self):
        assert EmailConfig(host="h", port=25, username="alerts", password="").sender == "alerts"


class TestBuildCommands:
    def test_macos_voice_and_rate(self):
        [command] = build_commands("hi", rate=1.5, voice="Samantha", platform="darwin")
        assert command == ["say", "-v", "Samantha", "-r", "300", "hi"]

    def test_linux_has_fallback(self):
        commands = build_commands("hi", platform="linux")
        assert [c[0] for c in commands] == ["espeak", "spd-say"]

    def test_windows_escapes_quotes(self):
        [command] = build_commands("it's down", platform="win32")
        assert "it''s down" in command[-1]

    def test_unknown_platform(self):
        assert build_commands("hi", platform="plan9") == []


def _process(returncode=0, communicate=None):
    process = MagicMock()
    process.returncode = returncode
    process.communicate = communicate or AsyncMock(return_value=(b"", b""))
    process.wait = AsyncMock(return_value=returncode)
    return process


class TestSpeechService:
    async def test_no_command_available(self):
        with patch("pulsemonitor.services.speech.shutil.which", return_value=None):
            result = await SpeechService(platform="linux").speak("hello")
        assert not result.success
        assert result.error == "TTS not available"

    async def test_falls_back_to_next_command(self):
        processes = [_process(returncode=1, communicate=AsyncMock(return_value=(b"", b"no audio"))), _process()]
        spawn = AsyncMock(side_effect=processes)
        with patch("pulsemonitor.services.speech.shutil.which", return_value="/usr/bin/x"), \
                patch("pulsemonitor.services.speech.asyncio.create_subprocess_exec", spawn):
            result = await SpeechService(platform="linux").speak("hello")

        assert result.success
        assert [call.args[0] for call in spawn.call_args_list] == ["espeak", "spd-say"]

    async def test_timeout_counts_as_spoken(self):
        process = _process(communicate=AsyncMock(side_effect=asyncio.TimeoutError))
        with patch("pulsemonitor.services.speech.shutil.which", return_value="/usr/bin/say"), \
                patch("pulsemonitor.services.speech.asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            result = await SpeechService(platform="darwin").speak("hello")

        assert result.success
        process.kill.assert_called_once()
