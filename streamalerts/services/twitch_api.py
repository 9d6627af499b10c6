"""Twitch API client service.

Token endpoints:
- client_credentials: App Access Token, used for EventSub subscription management.
- authorization_code: User/Chat tokens from the OAuth flow.
- refresh_token: Renews User/Chat tokens; Twitch may rotate the refresh value.

Every method raises ``UpstreamAPIError`` on failure; callers decide whether the
failure is terminal, retried, or reported.
"""

import logging
from urllib.parse import quote

import httpx

from streamalerts.core.errors import CredentialAuthorizationError, UpstreamAPIError

logger = logging.getLogger(__name__)

HELIX_BASE = "https://api.twitch.tv/helix"
OAUTH_BASE = "https://id.twitch.tv/oauth2"


class TwitchAPIClient:
    """Client for the Twitch identity provider and Helix API.

    Manages a shared httpx client for connection reuse.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret

        # Shared HTTP client, reused across requests
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        """Close the shared HTTP client. Call on app shutdown."""
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _headers(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Client-Id": self.client_id}

    @staticmethod
    def _error_detail(response: httpx.Response) -> object:
        try:
            return response.json()
        except ValueError:
            return response.text

    @staticmethod
    def _json(response: httpx.Response) -> dict:
        """Decode a success body; anything but a JSON object is an upstream failure."""
        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamAPIError(
                f"Non-JSON response from {response.url.path}",
                status_code=response.status_code,
                detail=response.text[:200],
            ) from e
        if not isinstance(body, dict):
            raise UpstreamAPIError(
                f"Unexpected response shape from {response.url.path}",
                status_code=response.status_code,
            )
        return body

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self._http.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise UpstreamAPIError(f"Timeout calling {url}") from e
        except httpx.HTTPError as e:
            raise UpstreamAPIError(f"{type(e).__name__} calling {url}: {e}") from e

    async def _token_request(self, data: dict[str, str], *, grant: str) -> dict:
        response = await self._request(
            "POST",
            f"{OAUTH_BASE}/token",
            data={"client_id": self.client_id, "client_secret": self.client_secret, **data},
        )
        if response.status_code != 200:
            detail = self._error_detail(response)
            logger.error(f"Token request ({grant}) failed: {response.status_code}")
            # 400/401 on code or refresh grants mean the value itself was rejected
            if grant != "client_credentials" and response.status_code in (400, 401):
                raise CredentialAuthorizationError(
                    f"{grant} rejected by identity provider",
                    status_code=response.status_code,
                    detail=detail,
                )
            raise UpstreamAPIError(
                f"{grant} request failed",
                status_code=response.status_code,
                detail=detail,
            )

        payload = self._json(response)
        if not payload.get("access_token"):
            raise UpstreamAPIError(f"No access_token in {grant} response", status_code=200)
        return payload

    # ------------------------------------------------------------------
    # OAuth flow
    # ------------------------------------------------------------------

    def generate_oauth_url(
        self, redirect_uri: str, scopes: list[str], state: str | None = None
    ) -> str:
        """Generate Twitch OAuth authorization URL."""
        scope_string = quote(" ".join(scopes), safe="")
        encoded_redirect_uri = quote(redirect_uri, safe="")

        url = (
            f"{OAUTH_BASE}/authorize"
            f"?client_id={self.client_id}"
            f"&redirect_uri={encoded_redirect_uri}"
            f"&response_type=code"
            f"&scope={scope_string}"
            f"&force_verify=true"
        )
        if state:
            url += f"&state={quote(state, safe='')}"
        return url

    async def request_app_token(self) -> dict:
        """Client-credentials exchange. Returns the raw token payload."""
        return await self._token_request(
            {"grant_type": "client_credentials"}, grant="client_credentials"
        )

    async def exchange_code(self, code: str, redirect_uri: str) -> dict:
        """Exchange an OAuth authorization code. Returns the raw token payload."""
        return await self._token_request(
            {"code": code, "grant_type": "authorization_code", "redirect_uri": redirect_uri},
            grant="authorization_code",
        )

    async def refresh_token(self, refresh_token: str) -> dict:
        """Exchange a refresh value. The returned payload may carry a rotated refresh value."""
        return await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            grant="refresh_token",
        )

    async def validate_token(self, access_token: str) -> dict | None:
        """Token metadata (client_id, login, user_id, scopes, expires_in), or None if invalid."""
        response = await self._request(
            "GET",
            f"{OAUTH_BASE}/validate",
            headers={"Authorization": f"OAuth {access_token}"},
        )
        if response.status_code == 401:
            return None
        if response.status_code != 200:
            raise UpstreamAPIError(
                "Token validation failed",
                status_code=response.status_code,
                detail=self._error_detail(response),
            )
        return self._json(response)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def get_user(self, token: str, *, login: str | None = None) -> dict | None:
        """Look up a user by login, or the token's own user when *login* is None."""
        params = {"login": login} if login else None
        response = await self._request(
            "GET", f"{HELIX_BASE}/users", params=params, headers=self._headers(token)
        )
        if response.status_code != 200:
            raise UpstreamAPIError(
                "Failed to fetch user",
                status_code=response.status_code,
                detail=self._error_detail(response),
            )

        users = self._json(response).get("data", [])
        if not users:
            logger.warning(f"No user found for login: {login}")
            return None

        user = users[0]
        return {
            "id": user.get("id"),
            "login": user.get("login"),
            "display_name": user.get("display_name"),
        }

    # ------------------------------------------------------------------
    # EventSub
    # ------------------------------------------------------------------

    async def list_eventsub_subscriptions(
        self, token: str, *, status: str | None = None, sub_type: str | None = None
    ) -> list[dict]:
        """List EventSub subscriptions, following pagination cursors."""
        results: list[dict] = []
        cursor: str | None = None
        while True:
            params: dict[str, str] = {}
            if status:
                params["status"] = status
            if sub_type:
                params["type"] = sub_type
            if cursor:
                params["after"] = cursor

            response = await self._request(
                "GET",
                f"{HELIX_BASE}/eventsub/subscriptions",
                params=params,
                headers=self._headers(token),
            )
            if response.status_code != 200:
                raise UpstreamAPIError(
                    "Failed to list EventSub subscriptions",
                    status_code=response.status_code,
                    detail=self._error_detail(response),
                )

            body = self._json(response)
            results.extend(body.get("data", []))
            cursor = (body.get("pagination") or {}).get("cursor")
            if not cursor:
                return results

    async def create_eventsub_subscription(
        self,
        token: str,
        *,
        sub_type: str,
        version: str,
        condition: dict[str, str],
        callback: str,
        secret: str,
    ) -> dict:
        """Create a webhook-transport EventSub subscription. Returns the created record."""
        response = await self._request(
            "POST",
            f"{HELIX_BASE}/eventsub/subscriptions",
            json={
                "type": sub_type,
                "version": version,
                "condition": condition,
                "transport": {"method": "webhook", "callback": callback, "secret": secret},
            },
            headers=self._headers(token),
        )
        if response.status_code not in (200, 202):
            raise UpstreamAPIError(
                f"Failed to create {sub_type} v{version}",
                status_code=response.status_code,
                detail=self._error_detail(response),
            )

        data = self._json(response).get("data", [])
        return data[0] if data else {}
