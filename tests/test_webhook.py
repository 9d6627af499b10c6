"""Tests for webhook delivery handling and the /webhook/twitch route."""

import json

import pytest
from fastapi.testclient import TestClient

from conftest import WEBHOOK_SECRET, signed_headers
from streamalerts.app import create_app
from streamalerts.core.dependencies import get_webhook_dispatcher
from streamalerts.models import AlertEvent, AlertKind, SubscriptionStatus
from streamalerts.services import WebhookDispatcher
from streamalerts.services.webhook import DeliveryState

RAID_SUBSCRIPTION = {
    "id": "sub-raid-1",
    "type": "channel.raid",
    "version": "1",
    "status": "enabled",
    "condition": {"to_broadcaster_user_id": "1337", "from_broadcaster_user_id": ""},
    "created_at": "2024-05-01T12:00:00Z",
}


def _notification(event: dict, subscription: dict = RAID_SUBSCRIPTION) -> bytes:
    return json.dumps({"subscription": subscription, "event": event}, ensure_ascii=False).encode()


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def client(dispatcher):
    app = create_app()
    app.dependency_overrides[get_webhook_dispatcher] = lambda: dispatcher
    return TestClient(app)


# ============================================================================
# Authenticity
# ============================================================================


class TestVerification:
    @pytest.mark.asyncio
    async def test_forged_delivery_rejected(self, dispatcher, received):
        body = _notification({"from_broadcaster_user_name": "Foo", "viewers": 12})
        headers = signed_headers(body, "notification", secret="wrong-secret")

        result = await dispatcher.handle(headers, body)

        assert result.status_code == 403
        assert result.state == DeliveryState.REJECTED
        assert received == []

    @pytest.mark.asyncio
    async def test_missing_signature_header_rejected(self, dispatcher, received):
        body = _notification({"from_broadcaster_user_name": "Foo", "viewers": 12})
        headers = signed_headers(body, "notification")
        del headers["Twitch-Eventsub-Message-Signature"]

        result = await dispatcher.handle(headers, body)

        assert result.status_code == 403
        assert received == []

    @pytest.mark.asyncio
    async def test_missing_secret_is_server_error(self, broadcaster, registry, received):
        dispatcher = WebhookDispatcher("", broadcaster, registry)
        body = _notification({"from_broadcaster_user_name": "Foo", "viewers": 12})

        result = await dispatcher.handle(signed_headers(body, "notification"), body)

        assert result.status_code == 500
        assert received == []


# ============================================================================
# Message types
# ============================================================================


class TestMessageTypes:
    @pytest.mark.asyncio
    async def test_challenge_echoed(self, dispatcher):
        body = json.dumps({"challenge": "abc123", "subscription": RAID_SUBSCRIPTION}).encode()

        headers = signed_headers(body, "webhook_callback_verification")
        result = await dispatcher.handle(headers, body)

        assert result.status_code == 200
        assert result.body == "abc123"
        assert result.media_type == "text/plain"

    @pytest.mark.asyncio
    async def test_notification_publishes_one_event(self, dispatcher, received):
        body = _notification({"from_broadcaster_user_name": "Foo", "viewers": 12})

        result = await dispatcher.handle(signed_headers(body, "notification"), body)

        assert result.status_code == 204
        assert received == [
            AlertEvent(kind=AlertKind.RAID, actor="Foo", attributes={"viewerCount": 12})
        ]

    @pytest.mark.asyncio
    async def test_unhandled_notification_acknowledged(self, dispatcher, received):
        subscription = {**RAID_SUBSCRIPTION, "type": "channel.update"}
        body = _notification({"title": "new title"}, subscription)

        result = await dispatcher.handle(signed_headers(body, "notification"), body)

        assert result.status_code == 204
        assert received == []

    @pytest.mark.asyncio
    async def test_broadcast_failure_still_acknowledged(self, dispatcher, broadcaster):
        def explode(event):
            raise RuntimeError("listener down")

        broadcaster.add_listener(explode)
        body = _notification({"from_broadcaster_user_name": "Foo", "viewers": 12})

        result = await dispatcher.handle(signed_headers(body, "notification"), body)

        assert result.status_code == 204

    @pytest.mark.asyncio
    async def test_normalizer_failure_still_acknowledged(self, dispatcher, monkeypatch):
        def boom(body):
            raise ValueError("bad payload")

        monkeypatch.setattr("streamalerts.services.webhook.normalize", boom)
        body = _notification({"from_broadcaster_user_name": "Foo", "viewers": 12})

        result = await dispatcher.handle(signed_headers(body, "notification"), body)

        assert result.status_code == 204

    @pytest.mark.asyncio
    async def test_revocation_marks_subscription_revoked(self, dispatcher, registry):
        subscription = {**RAID_SUBSCRIPTION, "status": "authorization_revoked"}
        body = json.dumps({"subscription": subscription}).encode()

        first = await dispatcher.handle(
            signed_headers(body, "revocation", message_id="rev-1"), body
        )
        second = await dispatcher.handle(
            signed_headers(body, "revocation", message_id="rev-2"), body
        )

        assert first.status_code == 204
        assert second.status_code == 204
        revoked = registry.get("channel.raid", {"to_broadcaster_user_id": "1337"})
        assert revoked.status == SubscriptionStatus.REVOKED
        assert len(registry.all()) == 1

    @pytest.mark.asyncio
    async def test_unknown_message_type_acknowledged(self, dispatcher, received):
        body = b"{}"

        result = await dispatcher.handle(signed_headers(body, "something_new"), body)

        assert result.status_code == 204
        assert received == []

    @pytest.mark.asyncio
    async def test_duplicate_message_id_processed_once(self, dispatcher, received):
        body = _notification({"from_broadcaster_user_name": "Foo", "viewers": 12})
        headers = signed_headers(body, "notification", message_id="dup-1")

        first = await dispatcher.handle(headers, body)
        second = await dispatcher.handle(headers, body)

        assert first.status_code == second.status_code == 204
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_stream_online_updates_live_state(self, dispatcher, received):
        subscription = {**RAID_SUBSCRIPTION, "type": "stream.online"}
        body = _notification({"broadcaster_user_id": "1337", "type": "live"}, subscription)

        await dispatcher.handle(signed_headers(body, "notification"), body)

        assert dispatcher.live_state.get() is True
        assert received == []


# ============================================================================
# HTTP route
# ============================================================================


class TestWebhookRoute:
    def test_raid_end_to_end(self, client, received):
        body = _notification({"from_broadcaster_user_name": "Foo", "viewers": 12})

        response = client.post(
            "/webhook/twitch", content=body, headers=signed_headers(body, "notification")
        )

        assert response.status_code == 204
        assert response.content == b""
        assert len(received) == 1
        assert received[0].kind == AlertKind.RAID
        assert received[0].actor == "Foo"
        assert received[0].attributes["viewerCount"] == 12

    def test_challenge_plain_text(self, client):
        body = json.dumps({"challenge": "abc123", "subscription": RAID_SUBSCRIPTION}).encode()

        response = client.post(
            "/webhook/twitch",
            content=body,
            headers=signed_headers(body, "webhook_callback_verification"),
        )

        assert response.status_code == 200
        assert response.text == "abc123"
        assert response.headers["content-type"].startswith("text/plain")

    def test_forged_delivery_403(self, client, received):
        body = _notification({"from_broadcaster_user_name": "Foo", "viewers": 12})
        headers = signed_headers(body, "notification")
        tampered = body.replace(b"12", b"99")

        response = client.post("/webhook/twitch", content=tampered, headers=headers)

        assert response.status_code == 403
        assert received == []

    def test_unicode_body_verified_on_raw_bytes(self, client, received):
        # Non-ASCII and unusual key order must survive because nothing is re-serialized
        body = (
            '{"event":{"viewers":7,"from_broadcaster_user_name":"Ñiño ✨"},'
            '"subscription":{"type":"channel.raid","version":"1"}}'
        ).encode()

        response = client.post(
            "/webhook/twitch", content=body, headers=signed_headers(body, "notification")
        )

        assert response.status_code == 204
        assert received[0].actor == "Ñiño ✨"

    def test_missing_secret_500(self, monkeypatch):
        monkeypatch.setenv("WEBHOOK_SECRET", "")
        app = create_app()
        body = b'{"challenge":"abc123"}'

        response = TestClient(app).post(
            "/webhook/twitch",
            content=body,
            headers=signed_headers(body, "webhook_callback_verification"),
        )

        assert response.status_code == 500

    def test_dispatcher_built_from_settings(self, monkeypatch):
        monkeypatch.setenv("WEBHOOK_SECRET", WEBHOOK_SECRET)
        app = create_app()
        body = b'{"challenge":"from-settings"}'

        response = TestClient(app).post(
            "/webhook/twitch",
            content=body,
            headers=signed_headers(body, "webhook_callback_verification"),
        )

        assert response.status_code == 200
        assert response.text == "from-settings"


class TestMalformedChallenge:
    @pytest.mark.asyncio
    async def test_non_object_subscription_still_echoed(self, dispatcher):
        body = b'{"challenge":"abc123","subscription":"x"}'
        headers = signed_headers(body, "webhook_callback_verification")

        result = await dispatcher.handle(headers, body)

        assert result.status_code == 200
        assert result.body == "abc123"
