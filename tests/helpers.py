"""Shared test helpers: fake endpoints, a fake browser, JWTs and a scripted provider."""

from __future__ import annotations

import base64
import http.client
import json
import threading

from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlencode, urlparse, urlsplit

import httpx

from ailogin.auth.providers import JwtClaimsProvider
from ailogin.types import ProviderConfig


if TYPE_CHECKING:
    from collections.abc import Callable

    from ailogin.models import OAuthTokens
    from ailogin.types import AuthorizationResult


ANTHROPIC_TOKEN_URL = "https://console.anthropic.com/v1/oauth/token"  # noqa: S105
ANTHROPIC_PROFILE_URL = "https://api.claude.ai/api/profile"
ANTHROPIC_API_KEY_URL = "https://api.anthropic.com/api/oauth/claude_cli/create_api_key"
OPENAI_TOKEN_URL = "https://auth.openai.com/oauth/token"  # noqa: S105

HOUR_MS = 3600 * 1000
MINUTE_MS = 60 * 1000


def http_get(url: str, timeout: float = 5.0) -> tuple[int, dict[str, str], str]:
    """GET ``url`` on the IPv4 loopback without following redirects."""
    parsed = urlsplit(url)
    conn = http.client.HTTPConnection("127.0.0.1", parsed.port, timeout=timeout)
    try:
        target = parsed.path + (f"?{parsed.query}" if parsed.query else "")
        conn.request("GET", target)
        resp = conn.getresponse()
        return resp.status, dict(resp.getheaders()), resp.read().decode("utf-8")
    finally:
        conn.close()


def request_body(request: httpx.Request) -> dict[str, Any]:
    """Decode a JSON or form-encoded request body."""
    content = request.content.decode("utf-8")
    if request.headers.get("content-type", "").startswith("application/json"):
        return json.loads(content)
    return {k: v[0] for k, v in parse_qs(content).items()}


class FakeEndpoints:
    """Routes ``httpx.MockTransport`` requests to canned responses.

    Each route maps ``(method, url)`` to a responder called with the
    request; it returns an ``httpx.Response`` or raises a transport
    error. Unrouted requests get a 404.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}

    def add(
        self,
        method: str,
        url: str,
        status: int = 200,
        json_body: Any = None,
        text: str | None = None,
    ) -> None:
        def respond(_request: httpx.Request) -> httpx.Response:
            if json_body is not None:
                return httpx.Response(status, json=json_body)
            return httpx.Response(status, text=text or "")

        self._routes[(method, url)] = respond

    def add_handler(
        self, method: str, url: str, handler: Callable[[httpx.Request], httpx.Response]
    ) -> None:
        self._routes[(method, url)] = handler

    def fail(self, method: str, url: str) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        self._routes[(method, url)] = respond

    def calls(self, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url.copy_with(query=None)) == url]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, str(request.url.copy_with(query=None)))
        responder = self._routes.get(key)
        if responder is None:
            return httpx.Response(404, json={"error": "not_found"})
        return responder(request)


class FakeBrowser:
    """Stands in for ``webbrowser.open``.

    On each call it parses the authorization URL and, unless
    ``respond`` returns None, hits the callback from a background
    thread the way a browser following the provider redirect would.
    """

    def __init__(
        self,
        respond: Callable[[dict[str, str]], dict[str, str] | None] | None = None,
        opened: bool = True,
    ) -> None:
        self.respond = respond or (lambda p: {"code": "ABC123", "state": p["state"]})
        self.opened = opened
        self.urls: list[str] = []
        self.params: list[dict[str, str]] = []
        self.responses: list[tuple[int, dict[str, str], str]] = []
        self._threads: list[threading.Thread] = []

    def __call__(self, url: str) -> bool:
        self.urls.append(url)
        params = {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}
        self.params.append(params)
        query = self.respond(params)
        if query is not None:
            callback = f"{params['redirect_uri']}?{urlencode(query)}"
            thread = threading.Thread(
                target=lambda: self.responses.append(http_get(callback)), daemon=True
            )
            thread.start()
            self._threads.append(thread)
        return self.opened

    def join(self, timeout: float = 5.0) -> None:
        for thread in self._threads:
            thread.join(timeout)


def make_jwt(claims: dict[str, Any]) -> str:
    """Build an unsigned compact JWT carrying ``claims``."""

    def segment(obj: dict[str, Any]) -> str:
        raw = json.dumps(obj).encode("utf-8")
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")

    return f"{segment({'alg': 'none', 'typ': 'JWT'})}.{segment(claims)}.sig"


class StubProvider(JwtClaimsProvider):
    """Provider with scripted authorize and refresh outcomes."""

    def __init__(
        self,
        provider_id: str = "stub",
        outcome: AuthorizationResult | Exception | None = None,
        refresh_outcome: OAuthTokens | Exception | None = None,
    ) -> None:
        super().__init__(
            ProviderConfig(
                id=provider_id,
                name="Stub",
                icon="stub",
                description="Scripted provider",
                authorize_url="https://idp.example/authorize",
                token_url="https://idp.example/token",
                client_id="cid",
            )
        )
        self.outcome = outcome
        self.refresh_outcome = refresh_outcome
        self.authorize_calls = 0
        self.refresh_calls: list[str] = []

    async def authorize(self) -> AuthorizationResult:
        self.authorize_calls += 1
        if isinstance(self.outcome, Exception):
            raise self.outcome
        assert self.outcome is not None
        return self.outcome

    async def refresh_token(self, refresh_token: str) -> OAuthTokens:
        self.refresh_calls.append(refresh_token)
        if isinstance(self.refresh_outcome, Exception):
            raise self.refresh_outcome
        assert self.refresh_outcome is not None
        return self.refresh_outcome
