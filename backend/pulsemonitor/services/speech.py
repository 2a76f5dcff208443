"""Local text-to-speech alerts through the platform's speech command."""
import asyncio
import logging
import shutil
import sys
from typing import List, Optional

from .delivery import SendResult

logger = logging.getLogger(__name__)

TTS_TIMEOUT = 60  # seconds
TTS_TIMEOUT_WINDOWS = 120


def build_commands(text: str, rate: float = 1.0, voice: str = "default", platform: str = sys.platform) -> List[List[str]]:
    """Candidate speech commands for this platform, in order of preference."""
    if platform == "darwin":
        command = ["say"]
        if voice and voice != "default":
            command += ["-v", voice]
        return [command + ["-r", str(round(rate * 200)), text]]
    if platform.startswith("linux"):
        return [
            ["espeak", "-s", str(round(rate * 175)), text],
            ["spd-say", "--wait", "-r", str(round((rate - 1) * 50)), text],
        ]
    if platform == "win32":
        escaped = text.replace("'", "''")
        script = (
            "Add-Type -AssemblyName System.Speech; "
            "$speak = New-Object System.Speech.Synthesis.SpeechSynthesizer; "
            f"$speak.Rate = {round((rate - 1) * 5)}; "
            f"$speak.Speak('{escaped}')"
        )
        return [["powershell", "-Command", script]]
    return []


class SpeechService:
    """Speaks alert text; the call returns once speech has finished."""

    def __init__(self, platform: str = sys.platform):
        self.platform = platform

    async def speak(self, text: str, rate: float = 1.0, voice: str = "default") -> SendResult:
        candidates = [
            command for command in build_commands(text, rate, voice, self.platform)
            if shutil.which(command[0])
        ]
        if not candidates:
            logger.info("No text-to-speech command available on this host")
            return SendResult("tts", False, error="TTS not available")

        timeout = TTS_TIMEOUT_WINDOWS if self.platform == "win32" else TTS_TIMEOUT
        last_error: Optional[str] = None
        for command in candidates:
            try:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                last_error = str(e)
                continue

            try:
                _, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
                logger.warning("TTS process timeout - speech may have been cut off")
                return SendResult("tts", True, detail="Process timeout - speech may have completed")
            except asyncio.CancelledError:
                process.kill()
                raise

            if process.returncode == 0:
                return SendResult("tts", True)
            last_error = stderr.decode(errors="replace").strip() or f"{command[0]} exited with {process.returncode}"

        logger.warning(f"System TTS failed: {last_error}")
        return SendResult("tts", False, error=last_error)


# Global instance
speech_service = SpeechService()
