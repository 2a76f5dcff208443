"""Tests for the notification dispatcher and cooldown."""
from pulsemonitor.services.alerter import (
    KIND_CONNECTED,
    KIND_DISCONNECTED,
    NotificationCooldown,
    NotificationDispatcher,
    build_email_html,
    build_email_subject,
)
from pulsemonitor.schemas.incident import Alert

from fakes import RecordingEmailSender, RecordingSmsSender, RecordingSpeech, down, up


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def _enable_channels(state, **extra):
    state.update_settings({"email_enabled": True, "sms_enabled": True, "smtp_host": "smtp.example.com",
                           "smtp_username": "alerts", **extra})


def _add_contacts(state):
    state.create_contact({"name": "Alice", "email": "alice@example.com", "phone": "+1555000001", "notify_sms": True})
    state.create_contact({"name": "Bob", "email": "bob@example.com", "phone": "+1555000002", "notify_sms": True})
    state.create_contact({"name": "Carol", "email": "carol@example.com", "phone": "+1555000003", "notify_sms": True})


class TestNotificationCooldown:
    def test_same_kind_within_window_is_suppressed(self):
        clock = FakeClock()
        cooldown = NotificationCooldown(60, clock=clock)
        assert cooldown.allow(KIND_DISCONNECTED)
        clock.advance(10)
        assert not cooldown.allow(KIND_DISCONNECTED)

    def test_same_kind_after_window_is_allowed(self):
        clock = FakeClock()
        cooldown = NotificationCooldown(60, clock=clock)
        assert cooldown.allow(KIND_DISCONNECTED)
        clock.advance(61)
        assert cooldown.allow(KIND_DISCONNECTED)

    def test_dedup_is_per_kind(self):
        clock = FakeClock()
        cooldown = NotificationCooldown(60, clock=clock)
        assert cooldown.allow(KIND_DISCONNECTED)
        clock.advance(5)
        assert cooldown.allow(KIND_CONNECTED)
        clock.advance(5)
        assert not cooldown.allow(KIND_DISCONNECTED)


class TestDispatch:
    async def test_one_email_per_recipient_and_one_sms_batch(self, state, http_endpoint, dispatcher,
                                                             email_sender, sms_sender):
        _enable_channels(state)
        _add_contacts(state)
        await state.record_check(http_endpoint.id, up())
        outcome = await state.record_check(http_endpoint.id, down())

        result = await dispatcher.dispatch(outcome.alert, http_endpoint)

        assert len(email_sender.sent) == 3
        assert len(sms_sender.batches) == 1
        phones, message = sms_sender.batches[0]
        assert sorted(phones) == ["+1555000001", "+1555000002", "+1555000003"]
        assert message.startswith("[critical] API:")
        assert result.emails_sent == 3
        assert result.sms_sent == 3

    async def test_email_failure_does_not_block_others(self, state, http_endpoint, sms_sender, speech):
        _enable_channels(state)
        _add_contacts(state)
        email_sender = RecordingEmailSender(failing={"alice@example.com"})
        dispatcher = NotificationDispatcher(state, email_sender=email_sender, sms_sender=sms_sender, speech=speech)
        alert = Alert(endpoint_id=http_endpoint.id, endpoint_name="API", message="Connection refused")

        result = await dispatcher.dispatch(alert, http_endpoint)

        assert len(email_sender.sent) == 3
        assert result.emails_sent == 2
        failed = [r for r in result.emails if not r.success]
        assert failed[0].recipients == ["alice@example.com"]
        assert len(sms_sender.batches) == 1

    async def test_disabled_channels_send_nothing(self, state, http_endpoint, dispatcher, email_sender, sms_sender,
                                                  speech):
        _add_contacts(state)
        state.update_settings({"tts_enabled": False})
        alert = Alert(endpoint_id=http_endpoint.id, endpoint_name="API", message="down")

        result = await dispatcher.dispatch(alert, http_endpoint)

        assert email_sender.sent == []
        assert sms_sender.batches == []
        assert speech.spoken == []
        assert result.tts is None

    async def test_custom_alert_text_is_spoken(self, state, http_endpoint, dispatcher, speech):
        state.update_settings({"custom_alert_text": "Wake up"})
        await dispatcher.dispatch(Alert(endpoint_id=http_endpoint.id, message="down"), http_endpoint)
        assert speech.spoken == ["Wake up"]


class TestNetworkNotifications:
    async def test_two_disconnects_within_window_notify_once(self, state):
        speech = RecordingSpeech()
        dispatcher = NotificationDispatcher(
            state, email_sender=RecordingEmailSender(), sms_sender=RecordingSmsSender(), speech=speech,
            cooldown=NotificationCooldown(60, clock=FakeClock()),
        )
        first = await dispatcher.notify_network_change(False)
        second = await dispatcher.notify_network_change(False)

        assert not first.suppressed
        assert second.suppressed
        assert len(speech.spoken) == 1

    async def test_disconnect_reconnect_disconnect_within_window(self, state):
        speech = RecordingSpeech()
        dispatcher = NotificationDispatcher(
            state, email_sender=RecordingEmailSender(), sms_sender=RecordingSmsSender(), speech=speech,
            cooldown=NotificationCooldown(60, clock=FakeClock()),
        )
        results = [
            await dispatcher.notify_network_change(False),
            await dispatcher.notify_network_change(True),
            await dispatcher.notify_network_change(False),
        ]
        assert [r.suppressed for r in results] == [False, False, True]
        assert len(speech.spoken) == 2

    async def test_network_email_subject(self, state, email_sender, sms_sender, speech):
        _enable_channels(state)
        state.create_contact({"name": "Alice", "email": "alice@example.com"})
        dispatcher = NotificationDispatcher(state, email_sender=email_sender, sms_sender=sms_sender, speech=speech)
        await dispatcher.notify_network_change(False)
        assert email_sender.sent == [("alice@example.com", "[CRITICAL] Network Connectivity Lost")]


class TestEmailTemplates:
    def test_subject_and_html(self, http_endpoint):
        alert = Alert(endpoint_id=http_endpoint.id, endpoint_name="API", message="<b>refused</b>")
        assert build_email_subject(alert, http_endpoint) == "[CRITICAL] API: incident"
        html = build_email_html(alert, http_endpoint)
        assert "&lt;b&gt;refused&lt;/b&gt;" in html
        assert "http://api.internal/health" in html

