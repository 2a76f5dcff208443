"""Validation of endpoint and entity payloads."""
from typing import Any, Dict, List, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import ConfigurationError
from ..schemas.endpoint import ENDPOINT_TYPES, endpoint_adapter

M = TypeVar("M", bound=BaseModel)

# Accepted spellings that map onto a canonical endpoint type
TYPE_ALIASES = {"ping": "icmp"}


def _format_errors(error: ValidationError) -> List[str]:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        messages.append(f"{location}: {item['msg']}" if location else item["msg"])
    return messages


def validate_endpoint(data: Dict[str, Any]):
    """Build an Endpoint from a raw payload.

    Raises:
        ConfigurationError: Listing every missing or invalid field
    """
    errors = []
    if not data.get("name"):
        errors.append("Name is required")

    kind = str(data.get("type") or "").lower()
    kind = TYPE_ALIASES.get(kind, kind)

    if not kind:
        errors.append("Type is required")
    elif kind in ("http", "https"):
        if not data.get("url"):
            errors.append("URL is required for HTTP/HTTPS monitors")
    elif kind == "icmp":
        if not data.get("host"):
            errors.append("Host is required for ICMP monitors")
    elif kind == "tcp":
        if not data.get("host"):
            errors.append("Host is required for TCP monitors")
        if not data.get("port"):
            errors.append("Port is required for TCP monitors")
    elif kind in ("ssh", "sftp"):
        if not data.get("host"):
            errors.append("Host is required")
        if not data.get("username"):
            errors.append("Username is required")
        if not data.get("password") and not data.get("private_key"):
            errors.append("Password or private key is required")
    elif kind == "telnet":
        if not data.get("host"):
            errors.append("Host is required for Telnet monitors")
    else:
        errors.append(f"Unknown monitor type: {kind} (expected one of {', '.join(ENDPOINT_TYPES)})")

    if errors:
        raise ConfigurationError(errors)

    try:
        return endpoint_adapter.validate_python({**data, "type": kind})
    except ValidationError as e:
        raise ConfigurationError(_format_errors(e)) from e


def validate_model(model_cls: Type[M], data: Dict[str, Any]) -> M:
    """Validate a payload against a schema, raising ConfigurationError."""
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(_format_errors(e)) from e
