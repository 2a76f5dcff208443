"""Tests for endpoint payload validation."""
import pytest

from pulsemonitor.errors import ConfigurationError
from pulsemonitor.schemas.endpoint import HttpEndpoint, IcmpEndpoint, SshEndpoint
from pulsemonitor.services.validation import validate_endpoint


class TestValidateEndpoint:
    def test_http_defaults(self):
        endpoint = validate_endpoint({"name": "Site", "type": "https", "url": "https://example.com"})
        assert isinstance(endpoint, HttpEndpoint)
        assert endpoint.expected_status == 200
        assert endpoint.method == "GET"
        assert endpoint.interval == 60

    def test_ping_alias(self):
        endpoint = validate_endpoint({"name": "Gateway", "type": "ping", "host": "10.0.0.1"})
        assert isinstance(endpoint, IcmpEndpoint)
        assert endpoint.type == "icmp"

    def test_ssh_with_private_key(self):
        endpoint = validate_endpoint({
            "name": "Box", "type": "sftp", "host": "files", "username": "ops", "private_key": "KEY",
        })
        assert isinstance(endpoint, SshEndpoint)
        assert endpoint.port == 22

    @pytest.mark.parametrize("payload,message", [
        ({"type": "http", "url": "http://x"}, "Name is required"),
        ({"name": "x"}, "Type is required"),
        ({"name": "x", "type": "http"}, "URL is required for HTTP/HTTPS monitors"),
        ({"name": "x", "type": "icmp"}, "Host is required for ICMP monitors"),
        ({"name": "x", "type": "tcp", "host": "h"}, "Port is required for TCP monitors"),
        ({"name": "x", "type": "ssh", "host": "h", "username": "u"}, "Password or private key is required"),
        ({"name": "x", "type": "telnet"}, "Host is required for Telnet monitors"),
    ])
    def test_missing_fields(self, payload, message):
        with pytest.raises(ConfigurationError) as exc:
            validate_endpoint(payload)
        assert message in exc.value.errors

    def test_unknown_type(self):
        with pytest.raises(ConfigurationError) as exc:
            validate_endpoint({"name": "x", "type": "gopher"})
        assert exc.value.errors[0].startswith("Unknown monitor type: gopher")

    def test_schema_errors_are_collected(self):
        with pytest.raises(ConfigurationError) as exc:
            validate_endpoint({"name": "x", "type": "tcp", "host": "h", "port": 80, "interval": 1})
        assert any("interval" in error for error in exc.value.errors)
