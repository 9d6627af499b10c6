"""Tests for the Twitch API client against a mocked transport."""

import httpx
import pytest

from streamalerts.core.errors import CredentialAuthorizationError, UpstreamAPIError
from streamalerts.services import TwitchAPIClient


def _client(handler) -> TwitchAPIClient:
    return TwitchAPIClient("client-id", "client-secret", transport=httpx.MockTransport(handler))


class TestTwitchAPIClient:
    def test_oauth_url(self, api):
        url = api.generate_oauth_url(
            "https://alerts.example.com/auth/twitch/callback", ["bits:read", "user:read:chat"], "s"
        )

        assert url.startswith("https://id.twitch.tv/oauth2/authorize?client_id=client-id")
        assert "scope=bits%3Aread%20user%3Aread%3Achat" in url
        assert url.endswith("&state=s")

    @pytest.mark.asyncio
    async def test_list_follows_pagination(self):
        pages = {
            None: {"data": [{"id": "a"}], "pagination": {"cursor": "c1"}},
            "c1": {"data": [{"id": "b"}], "pagination": {}},
        }

        def handler(request):
            assert request.headers["Client-Id"] == "client-id"
            return httpx.Response(200, json=pages[request.url.params.get("after")])

        result = await _client(handler).list_eventsub_subscriptions("token")

        assert [s["id"] for s in result] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_network_error_wrapped(self):
        def handler(request):
            raise httpx.ConnectError("refused")

        with pytest.raises(UpstreamAPIError) as exc_info:
            await _client(handler).request_app_token()

        assert exc_info.value.status_code is None
        assert exc_info.value.is_transient

    @pytest.mark.asyncio
    async def test_rejected_refresh_value(self):
        def handler(request):
            return httpx.Response(400, json={"status": 400, "message": "Invalid refresh token"})

        with pytest.raises(CredentialAuthorizationError) as exc_info:
            await _client(handler).refresh_token("bad")

        assert exc_info.value.detail["message"] == "Invalid refresh token"
        assert not exc_info.value.is_transient

    @pytest.mark.asyncio
    async def test_app_token_400_is_not_authorization_error(self):
        def handler(request):
            return httpx.Response(400, json={"message": "invalid client"})

        with pytest.raises(UpstreamAPIError) as exc_info:
            await _client(handler).request_app_token()

        assert not isinstance(exc_info.value, CredentialAuthorizationError)

    @pytest.mark.asyncio
    async def test_create_rejection_carries_status(self):
        def handler(request):
            return httpx.Response(
                403, json={"message": "subscription missing proper authorization"}
            )

        with pytest.raises(UpstreamAPIError) as exc_info:
            await _client(handler).create_eventsub_subscription(
                "token",
                sub_type="channel.follow",
                version="2",
                condition={"broadcaster_user_id": "1"},
                callback="https://alerts.example.com/webhook/twitch",
                secret="s",
            )

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_non_json_success_is_upstream_error(self):
        def handler(request):
            return httpx.Response(200, text="<html>gateway</html>")

        with pytest.raises(UpstreamAPIError) as exc_info:
            await _client(handler).list_eventsub_subscriptions("token")

        assert exc_info.value.status_code == 200
        assert "gateway" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_non_object_success_is_upstream_error(self):
        def handler(request):
            return httpx.Response(200, json=["not", "an", "object"])

        with pytest.raises(UpstreamAPIError):
            await _client(handler).get_user("token", login="niibot")


class TestValidateToken:
    @pytest.mark.asyncio
    async def test_valid_token_returns_metadata(self, api, fake_twitch):
        fake_twitch.validations["user-access-1"] = {
            "client_id": "client-id",
            "login": "niibot",
            "user_id": "1001",
            "scopes": ["bits:read"],
            "expires_in": 3600,
        }

        info = await api.validate_token("user-access-1")

        assert info["login"] == "niibot"
        assert info["scopes"] == ["bits:read"]

    @pytest.mark.asyncio
    async def test_invalid_token_returns_none(self, api):
        assert await api.validate_token("expired") is None

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        def handler(request):
            return httpx.Response(503, text="unavailable")

        with pytest.raises(UpstreamAPIError) as exc_info:
            await _client(handler).validate_token("token")

        assert exc_info.value.status_code == 503
