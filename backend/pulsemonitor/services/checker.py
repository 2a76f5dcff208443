"""Checker service - performs HTTP/HTTPS, ICMP, TCP, SSH, SFTP and Telnet checks.

Every probe resolves to a CheckResult. Network, protocol and timeout errors
are reported as DOWN with a message; nothing escapes CheckerService.check.
"""
import asyncio
import io
import logging
import re
import socket
import ssl
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional
from urllib.parse import urlparse

import httpx
import paramiko
from cryptography import x509
from cryptography.x509.oid import NameOID

from ..schemas.endpoint import (
    EndpointBase,
    HttpEndpoint,
    IcmpEndpoint,
    SshEndpoint,
    TcpEndpoint,
    TelnetEndpoint,
)
from ..schemas.status import SslInfo

logger = logging.getLogger(__name__)

STATUS_UP = "UP"
STATUS_DOWN = "DOWN"

TIMEOUT_MESSAGE = "Connection timeout"

# Budget for the opportunistic certificate lookup on HTTPS checks
SSL_INFO_TIMEOUT = 5

# Slack on top of the endpoint timeout before a probe is abandoned
HARD_TIMEOUT_GRACE = 1.0

# Telnet option negotiation bytes
IAC, DONT, DO, WONT, WILL = 255, 254, 253, 252, 251


@dataclass
class CheckResult:
    """Result of a single probe."""
    status: str  # UP, DOWN
    response_time_ms: Optional[int] = None
    message: Optional[str] = None
    status_code: Optional[int] = None  # HTTP only
    ssl_info: Optional[SslInfo] = None  # HTTPS only

    @property
    def is_up(self) -> bool:
        return self.status == STATUS_UP


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _down(start: float, message: str) -> CheckResult:
    return CheckResult(status=STATUS_DOWN, response_time_ms=_elapsed_ms(start), message=message)


class Probe(ABC):
    """Protocol-specific check. Implementations may raise; the checker converts."""

    @abstractmethod
    async def check(self, endpoint: EndpointBase) -> CheckResult:
        ...


class HttpProbe(Probe):
    """UP iff the status matches and the expected content (if any) is present."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    async def check(self, endpoint: HttpEndpoint) -> CheckResult:
        url = endpoint.url
        if not url.startswith("http"):
            url = f"{'https' if endpoint.type == 'https' else 'http'}://{url}"

        start = time.monotonic()
        try:
            async with httpx.AsyncClient(
                timeout=endpoint.timeout,
                follow_redirects=endpoint.follow_redirects,
                verify=not endpoint.ignore_tls,
                transport=self._transport,
            ) as client:
                response = await client.request(
                    endpoint.method,
                    url,
                    headers=endpoint.headers or None,
                    content=endpoint.body,
                )
        except httpx.TimeoutException:
            return _down(start, TIMEOUT_MESSAGE)
        except httpx.ConnectError as e:
            return _down(start, f"Connection error: {e}")
        except httpx.HTTPError as e:
            return _down(start, f"{type(e).__name__}: {e}")

        response_time = _elapsed_ms(start)

        status_ok = response.status_code == endpoint.expected_status
        content_ok = True
        if endpoint.expected_content and status_ok:
            content_ok = endpoint.expected_content in response.text

        is_up = status_ok and content_ok
        if is_up:
            message = f"HTTP {response.status_code} OK"
        elif not content_ok:
            message = f"HTTP {response.status_code} (content mismatch)"
        else:
            message = f"HTTP {response.status_code}, expected {endpoint.expected_status}"

        ssl_info = None
        budget = min(SSL_INFO_TIMEOUT, endpoint.timeout - (time.monotonic() - start))
        if url.startswith("https://") and budget > 0:
            ssl_info = await get_ssl_info(url, timeout=budget)

        return CheckResult(
            status=STATUS_UP if is_up else STATUS_DOWN,
            response_time_ms=response_time,
            message=message,
            status_code=response.status_code,
            ssl_info=ssl_info,
        )


class IcmpProbe(Probe):
    """UP iff a single echo request is answered within the timeout."""

    _time_pattern = re.compile(r"time[=<](\d+\.?\d*)\s*ms")

    async def check(self, endpoint: IcmpEndpoint) -> CheckResult:
        wait_seconds = max(1, int(round(endpoint.timeout)))
        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                "ping", "-c", "1", "-W", str(wait_seconds), endpoint.host,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            return _down(start, "ping command not available")

        try:
            stdout, _ = await proc.communicate()
        except asyncio.CancelledError:
            # Outer timeout fired - do not leave the child running
            if proc.returncode is None:
                proc.kill()
            raise

        if proc.returncode != 0:
            return _down(start, "Host unreachable")

        match = self._time_pattern.search(stdout.decode(errors="replace"))
        response_time = int(round(float(match.group(1)))) if match else _elapsed_ms(start)
        return CheckResult(
            status=STATUS_UP,
            response_time_ms=response_time,
            message=f"Ping OK ({response_time}ms)",
        )


class TcpProbe(Probe):
    """UP iff a TCP connection to host:port completes."""

    async def check(self, endpoint: TcpEndpoint) -> CheckResult:
        start = time.monotonic()
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(endpoint.host, endpoint.port),
                timeout=endpoint.timeout,
            )
        except OSError as e:
            return _down(start, _describe_os_error(e))

        response_time = _elapsed_ms(start)
        await _close_writer(writer)
        return CheckResult(
            status=STATUS_UP,
            response_time_ms=response_time,
            message=f"TCP connection successful to {endpoint.host}:{endpoint.port}",
        )


class SshProbe(Probe):
    """UP iff authentication succeeds and the transport is established.

    For SFTP endpoints a listing of '/' must also succeed or be refused with
    permission denied.
    """

    async def check(self, endpoint: SshEndpoint) -> CheckResult:
        start = time.monotonic()
        loop = asyncio.get_running_loop()
        # paramiko is blocking - run it in the default thread pool
        message = await loop.run_in_executor(None, self._run_session, endpoint)
        if message is not None:
            return _down(start, message)

        label = "SFTP" if endpoint.type == "sftp" else "SSH"
        return CheckResult(
            status=STATUS_UP,
            response_time_ms=_elapsed_ms(start),
            message=f"{label} connection successful to {endpoint.host}:{endpoint.port}",
        )

    def _run_session(self, endpoint: SshEndpoint) -> Optional[str]:
        """Connect and verify the session. Returns an error message or None."""
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            connect_args = dict(
                hostname=endpoint.host,
                port=endpoint.port,
                username=endpoint.username,
                timeout=endpoint.timeout,
                banner_timeout=endpoint.timeout,
                auth_timeout=endpoint.timeout,
                allow_agent=False,
                look_for_keys=False,
            )
            if endpoint.private_key:
                connect_args["pkey"] = load_private_key(endpoint.private_key)
            else:
                connect_args["password"] = endpoint.password

            client.connect(**connect_args)
            transport = client.get_transport()
            if transport is None or not transport.is_authenticated():
                return "SSH session not established"

            if endpoint.type == "sftp":
                return self._list_root(client)
            return None
        except paramiko.AuthenticationException:
            return "Authentication failed"
        except socket.timeout:
            return TIMEOUT_MESSAGE
        except (paramiko.SSHException, OSError) as e:
            return str(e) or type(e).__name__
        finally:
            client.close()

    def _list_root(self, client: paramiko.SSHClient) -> Optional[str]:
        sftp = client.open_sftp()
        try:
            sftp.listdir("/")
        except PermissionError:
            # The subsystem answered; the account just cannot read '/'
            return None
        except IOError as e:
            return f"SFTP error: {e}"
        finally:
            sftp.close()
        return None


class TelnetProbe(Probe):
    """UP iff the connection opens and the initial negotiation completes."""

    # How long to wait for the server to start option negotiation
    negotiation_wait = 1.0

    async def check(self, endpoint: TelnetEndpoint) -> CheckResult:
        start = time.monotonic()
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(endpoint.host, endpoint.port),
                timeout=endpoint.timeout,
            )
        except OSError as e:
            return _down(start, _describe_os_error(e))

        try:
            await self._negotiate(reader, writer, min(self.negotiation_wait, endpoint.timeout))
        except (ConnectionError, OSError) as e:
            return _down(start, _describe_os_error(e))
        finally:
            await _close_writer(writer)

        return CheckResult(
            status=STATUS_UP,
            response_time_ms=_elapsed_ms(start),
            message=f"Telnet connection successful to {endpoint.host}:{endpoint.port}",
        )

    async def _negotiate(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, wait: float):
        """Refuse every option the server offers. Silent servers are accepted."""
        try:
            data = await asyncio.wait_for(reader.read(1024), timeout=wait)
        except asyncio.TimeoutError:
            return

        replies = bytearray()
        i = 0
        while i < len(data) - 2:
            if data[i] == IAC and data[i + 1] in (DO, DONT, WILL, WONT):
                command, option = data[i + 1], data[i + 2]
                if command == DO:
                    replies += bytes([IAC, WONT, option])
                elif command == WILL:
                    replies += bytes([IAC, DONT, option])
                i += 3
            else:
                i += 1

        if replies:
            writer.write(bytes(replies))
            await writer.drain()


def load_private_key(text: str) -> paramiko.PKey:
    """Parse an OpenSSH/PEM private key from its text form."""
    text = text.replace("\\n", "\n")
    for key_class in (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey):
        try:
            return key_class.from_private_key(io.StringIO(text))
        except paramiko.SSHException:
            continue
    raise paramiko.SSHException("Unsupported or invalid private key")


async def get_ssl_info(url: str, timeout: float = SSL_INFO_TIMEOUT) -> Optional[SslInfo]:
    """Fetch the certificate validity window for an HTTPS URL.

    Returns None when the certificate cannot be read; never raises.
    """
    parsed = urlparse(url)
    host = parsed.hostname
    if not host:
        return None
    port = parsed.port or 443

    loop = asyncio.get_running_loop()
    try:
        return await asyncio.wait_for(
            loop.run_in_executor(None, _read_certificate, host, port, timeout),
            timeout=timeout,
        )
    except Exception as e:
        logger.debug(f"Could not read certificate for {host}:{port}: {e}")
        return None


def _read_certificate(host: str, port: int, timeout: float) -> Optional[SslInfo]:
    """Read and parse the peer certificate (blocking)."""
    # Only the validity window is wanted, not chain trust
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE

    with socket.create_connection((host, port), timeout=timeout) as sock:
        with context.wrap_socket(sock, server_hostname=host) as ssock:
            cert_der = ssock.getpeercert(binary_form=True)
    if not cert_der:
        return None

    cert = x509.load_der_x509_certificate(cert_der)
    valid_to = cert.not_valid_after_utc
    return SslInfo(
        issuer=_name_attribute(cert.issuer, NameOID.ORGANIZATION_NAME)
        or _name_attribute(cert.issuer, NameOID.COMMON_NAME)
        or "Unknown",
        subject=_name_attribute(cert.subject, NameOID.COMMON_NAME) or host,
        valid_from=cert.not_valid_before_utc,
        valid_to=valid_to,
        days_remaining=(valid_to - datetime.now(timezone.utc)).days,
    )


def _name_attribute(name: x509.Name, oid) -> Optional[str]:
    values = name.get_attributes_for_oid(oid)
    return str(values[0].value) if values else None


def _describe_os_error(error: OSError) -> str:
    if isinstance(error, TimeoutError):
        return TIMEOUT_MESSAGE
    if isinstance(error, ConnectionRefusedError):
        return "Connection refused"
    if isinstance(error, socket.gaierror):
        return f"DNS lookup failed: {error}"
    return str(error) or type(error).__name__


async def _close_writer(writer: asyncio.StreamWriter):
    writer.close()
    try:
        await writer.wait_closed()
    except (ConnectionError, OSError):
        pass


class CheckerService:
    """Dispatches an endpoint to the probe for its kind, under a hard timeout."""

    def __init__(self, probes: Optional[Dict[str, Probe]] = None):
        if probes is None:
            ssh_probe = SshProbe()
            http_probe = HttpProbe()
            probes = {
                "http": http_probe,
                "https": http_probe,
                "icmp": IcmpProbe(),
                "tcp": TcpProbe(),
                "ssh": ssh_probe,
                "sftp": ssh_probe,
                "telnet": TelnetProbe(),
            }
        self.probes = probes

    async def check(self, endpoint: EndpointBase) -> CheckResult:
        """Run one check. Always returns a result; never raises past here."""
        kind = getattr(endpoint, "type", None)
        probe = self.probes.get(kind)
        if probe is None:
            return CheckResult(status=STATUS_DOWN, response_time_ms=0, message=f"Unknown monitor type: {kind}")

        start = time.monotonic()
        try:
            return await asyncio.wait_for(
                probe.check(endpoint),
                timeout=endpoint.timeout + HARD_TIMEOUT_GRACE,
            )
        except asyncio.TimeoutError:
            return _down(start, TIMEOUT_MESSAGE)
        except Exception as e:
            logger.warning(f"Probe for {endpoint.name} ({kind}) failed: {type(e).__name__}: {e}")
            return _down(start, str(e) or type(e).__name__)


# Global instance
checker_service = CheckerService()
