"""Tests for batched SMS delivery."""
import json

import httpx

from pulsemonitor.services.sms_sender import SmsConfig, SmsSenderService

CONFIG = SmsConfig(api_url="https://sms.example.com/api/sms/quick", api_key="key-123", sender_id="PULSE")


class TestSendBatch:
    async def test_three_numbers_one_request(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"status": "success"})

        sender = SmsSenderService(transport=httpx.MockTransport(handler))
        result = await sender.send_batch(CONFIG, ["+1555000001", "+1555000002", "+1555000003"], "[critical] API: down")

        assert result.success
        assert len(requests) == 1
        body = json.loads(requests[0].content)
        assert body["recipient"] == ["+1555000001", "+1555000002", "+1555000003"]
        assert body["sender"] == "PULSE"
        assert body["message"] == "[critical] API: down"
        assert requests[0].url.params["key"] == "key-123"

    async def test_gateway_error_is_reported(self):
        sender = SmsSenderService(transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom")))
        result = await sender.send_batch(CONFIG, ["+1555000001"], "hi")
        assert not result.success
        assert result.error == "HTTP 500"

    async def test_connection_error_is_reported(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        sender = SmsSenderService(transport=httpx.MockTransport(handler))
        result = await sender.send_batch(CONFIG, ["+1555000001"], "hi")
        assert not result.success
        assert "unreachable" in result.error

    async def test_no_phones(self):
        result = await SmsSenderService().send_batch(CONFIG, [], "hi")
        assert not result.success

    async def test_not_configured(self):
        result = await SmsSenderService().send_batch(SmsConfig(api_url="", api_key=""), ["+1555000001"], "hi")
        assert result.error == "SMS not configured"
