"""Shared fixtures: a fake Twitch backend behind httpx.MockTransport."""

import itertools
import json
from urllib.parse import parse_qsl

import httpx
import pytest
import pytest_asyncio

from streamalerts.core.config import get_settings
from streamalerts.core.dependencies import reset_services
from streamalerts.models import Credential, CredentialTier
from streamalerts.services import (
    Broadcaster,
    CredentialManager,
    MemoryCredentialStore,
    SubscriptionRegistrar,
    SubscriptionRegistry,
    TwitchAPIClient,
    WebhookDispatcher,
    compute_signature,
)

WEBHOOK_SECRET = "s3cr3t-webhook-value"
CALLBACK_URL = "https://alerts.example.com/webhook/twitch"
REDIRECT_URI = "https://alerts.example.com/auth/twitch/callback"


class FakeTwitch:
    """Just enough of id.twitch.tv and Helix for the client, manager, and registrar."""

    def __init__(self) -> None:
        self.subscriptions: list[dict] = []
        self.create_calls: list[dict] = []
        self.token_calls: list[dict] = []
        self.list_calls = 0
        # (type, version) -> HTTP status to fail creation with
        self.create_failures: dict[tuple[str, str], int] = {}
        self.list_status = 200
        self.token_status = 200
        self.token_error: Exception | None = None
        self.users = {
            "user-access-1": {"id": "1001", "login": "niibot", "display_name": "Niibot"},
        }
        self.logins = {"niibot": {"id": "1001", "login": "niibot", "display_name": "Niibot"}}
        # access value -> /oauth2/validate payload; unknown values are invalid
        self.validations: dict[str, dict] = {}
        # When set, every endpoint answers 200 with this non-JSON body
        self.garbage_body: str | None = None
        self._ids = itertools.count(1)

    # --- OAuth ---

    def _token(self, request: httpx.Request) -> httpx.Response:
        form = dict(parse_qsl(request.content.decode()))
        self.token_calls.append(form)
        if self.token_error is not None:
            raise self.token_error
        if self.token_status != 200:
            return httpx.Response(
                self.token_status, json={"status": self.token_status, "message": "Invalid token"}
            )

        n = next(self._ids)
        grant = form["grant_type"]
        if grant == "client_credentials":
            return httpx.Response(
                200, json={"access_token": f"app-access-{n}", "expires_in": 5000000}
            )
        if grant == "authorization_code":
            return httpx.Response(
                200,
                json={
                    "access_token": "user-access-1",
                    "refresh_token": "user-refresh-1",
                    "expires_in": 14400,
                },
            )
        return httpx.Response(
            200,
            json={
                "access_token": f"refreshed-access-{n}",
                "refresh_token": f"refreshed-refresh-{n}",
                "expires_in": 14400,
            },
        )

    # --- Helix ---

    def _users(self, request: httpx.Request) -> httpx.Response:
        login = request.url.params.get("login")
        if login:
            user = self.logins.get(login)
        else:
            token = request.headers["Authorization"].removeprefix("Bearer ")
            user = self.users.get(token)
        return httpx.Response(200, json={"data": [user] if user else []})

    def _list(self, request: httpx.Request) -> httpx.Response:
        self.list_calls += 1
        if self.list_status != 200:
            return httpx.Response(self.list_status, json={"message": "unavailable"})
        data = self.subscriptions
        status = request.url.params.get("status")
        sub_type = request.url.params.get("type")
        if status:
            data = [s for s in data if s["status"] == status]
        if sub_type:
            data = [s for s in data if s["type"] == sub_type]
        return httpx.Response(200, json={"data": data, "total": len(data), "pagination": {}})

    def _create(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.create_calls.append(body)
        failure = self.create_failures.get((body["type"], body["version"]))
        if failure:
            return httpx.Response(failure, json={"status": failure, "message": "invalid"})

        record = {
            "id": f"sub-{next(self._ids)}",
            "type": body["type"],
            "version": body["version"],
            "status": "webhook_callback_verification_pending",
            "condition": body["condition"],
            "created_at": "2024-05-01T12:00:00Z",
            "transport": {"method": "webhook", "callback": body["transport"]["callback"]},
        }
        self.subscriptions.append(record)
        return httpx.Response(202, json={"data": [record], "total": len(self.subscriptions)})

    def _validate(self, request: httpx.Request) -> httpx.Response:
        token = request.headers["Authorization"].removeprefix("OAuth ")
        info = self.validations.get(token)
        if info is None:
            return httpx.Response(401, json={"status": 401, "message": "invalid access token"})
        return httpx.Response(200, json=info)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if self.garbage_body is not None:
            return httpx.Response(200, text=self.garbage_body)
        if request.url.host == "id.twitch.tv" and path == "/oauth2/token":
            return self._token(request)
        if request.url.host == "id.twitch.tv" and path == "/oauth2/validate":
            return self._validate(request)
        if path == "/helix/users":
            return self._users(request)
        if path == "/helix/eventsub/subscriptions":
            if request.method == "GET":
                return self._list(request)
            return self._create(request)
        return httpx.Response(404, json={"message": f"unexpected {request.method} {path}"})


def signed_headers(
    body: bytes,
    message_type: str,
    *,
    secret: str = WEBHOOK_SECRET,
    message_id: str = "msg-0001",
    timestamp: str = "2024-05-01T12:00:00.123Z",
) -> dict[str, str]:
    return {
        "Twitch-Eventsub-Message-Id": message_id,
        "Twitch-Eventsub-Message-Timestamp": timestamp,
        "Twitch-Eventsub-Message-Type": message_type,
        "Twitch-Eventsub-Message-Signature": compute_signature(
            secret, message_id, timestamp, body
        ),
        "Content-Type": "application/json",
    }


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Isolate settings and singletons per test."""
    for key in (
        "CLIENT_ID",
        "CLIENT_SECRET",
        "WEBHOOK_SECRET",
        "PUBLIC_URL",
        "DATABASE_URL",
        "CHANNEL_LOGIN",
        "BROADCASTER_ID",
    ):
        monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    reset_services()
    yield
    get_settings.cache_clear()
    reset_services()


@pytest.fixture
def fake_twitch():
    return FakeTwitch()


@pytest.fixture
def api(fake_twitch):
    return TwitchAPIClient(
        "client-id", "client-secret", transport=httpx.MockTransport(fake_twitch.handler)
    )


@pytest.fixture
def store():
    return MemoryCredentialStore()


@pytest.fixture
def manager(api, store):
    return CredentialManager(api, store, redirect_uri=REDIRECT_URI)


@pytest_asyncio.fixture
async def manager_with_app_token(manager, store):
    await store.put("app", Credential(name=CredentialTier.APP, access="app-access-0"))
    await manager.load()
    return manager


@pytest.fixture
def registry():
    return SubscriptionRegistry()


@pytest.fixture
def registrar(api, manager_with_app_token, registry):
    return SubscriptionRegistrar(
        api,
        manager_with_app_token,
        callback_url=CALLBACK_URL,
        webhook_secret=WEBHOOK_SECRET,
        registry=registry,
    )


@pytest.fixture
def broadcaster():
    return Broadcaster()


@pytest.fixture
def received(broadcaster):
    """AlertEvents that reached the broadcaster."""
    events: list = []
    broadcaster.add_listener(events.append)
    return events


@pytest.fixture
def dispatcher(broadcaster, registry):
    return WebhookDispatcher(WEBHOOK_SECRET, broadcaster, registry)
