"""Endpoint schemas - one variant per probe kind."""
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from ..utils.clock import new_id, utcnow

ENDPOINT_TYPES = ("http", "https", "icmp", "tcp", "ssh", "telnet", "sftp")

# Masked in read snapshots handed to the transport layer
SECRET_FIELDS = ("password", "private_key")


class EndpointBase(BaseModel):
    """Fields shared by every endpoint kind."""
    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    enabled: bool = True
    timeout: float = Field(default=10, gt=0, le=300)  # seconds
    interval: int = Field(default=60, ge=5, le=86400)  # seconds between checks
    application_id: Optional[str] = None
    group_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class HttpEndpoint(EndpointBase):
    """HTTP or HTTPS endpoint."""
    type: Literal["http", "https"] = "http"
    url: str = Field(..., min_length=1)
    method: str = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None
    expected_status: int = Field(default=200, ge=100, le=599)
    expected_content: Optional[str] = None  # Substring the body must contain
    ignore_tls: bool = False
    follow_redirects: bool = True


class IcmpEndpoint(EndpointBase):
    """Ping target."""
    type: Literal["icmp"] = "icmp"
    host: str = Field(..., min_length=1)


class TcpEndpoint(EndpointBase):
    """Plain TCP connect target."""
    type: Literal["tcp"] = "tcp"
    host: str = Field(..., min_length=1)
    port: int = Field(..., ge=1, le=65535)


class SshEndpoint(EndpointBase):
    """SSH or SFTP server, authenticated by password or private key."""
    type: Literal["ssh", "sftp"] = "ssh"
    host: str = Field(..., min_length=1)
    port: int = Field(default=22, ge=1, le=65535)
    username: str = Field(..., min_length=1)
    password: Optional[str] = None
    private_key: Optional[str] = None

    @model_validator(mode="after")
    def _require_credentials(self):
        if not self.password and not self.private_key:
            raise ValueError("Password or private key is required")
        return self


class TelnetEndpoint(EndpointBase):
    """Telnet server."""
    type: Literal["telnet"] = "telnet"
    host: str = Field(..., min_length=1)
    port: int = Field(default=23, ge=1, le=65535)


Endpoint = Annotated[
    Union[HttpEndpoint, IcmpEndpoint, TcpEndpoint, SshEndpoint, TelnetEndpoint],
    Field(discriminator="type"),
]

endpoint_adapter: TypeAdapter = TypeAdapter(Endpoint)


class EndpointUpdate(BaseModel):
    """Partial update for an endpoint. Only set fields are applied."""
    model_config = ConfigDict(extra="forbid")

    type: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    enabled: Optional[bool] = None
    timeout: Optional[float] = None
    interval: Optional[int] = None
    application_id: Optional[str] = None
    group_id: Optional[str] = None
    tags: Optional[List[str]] = None
    url: Optional[str] = None
    method: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    body: Optional[str] = None
    expected_status: Optional[int] = None
    expected_content: Optional[str] = None
    ignore_tls: Optional[bool] = None
    follow_redirects: Optional[bool] = None
    host: Optional[str] = None
    port: Optional[int] = None
    username: Optional[str] = None
    password: Optional[str] = None
    private_key: Optional[str] = None


def masked(endpoint: BaseModel) -> Dict[str, Any]:
    """Dump an endpoint for clients with credentials replaced by '***'."""
    data = endpoint.model_dump(mode="json")
    for field in SECRET_FIELDS:
        if field in data:
            data[field] = "***" if data[field] else None
    return data
