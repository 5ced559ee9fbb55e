"""Unit tests for PKCE generation and OAuth2 provider plugins."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import re
import socket

from base64 import urlsafe_b64encode
from pathlib import Path

import httpx
import pytest

from ailogin.auth.pkce import PkceCodes, base64url_encode, challenge_for, generate_state
from ailogin.auth.providers import (
    AnthropicProvider,
    JwtClaimsProvider,
    OpenAIProvider,
    create_providers_from_settings,
    now_ms,
    read_claude_cli_credentials,
)
from ailogin.config import AILoginSettings, AnthropicSettings, OpenAISettings
from ailogin.exceptions import (
    AuthFlowTimeout,
    BrowserLaunchError,
    InvalidAuthorizationCodeError,
    ProfileFetchError,
    ProviderDeniedAuthorization,
    TokenExchangeError,
    TokenRefreshError,
    UnsupportedOperationError,
)
from ailogin.models import OAuthTokens
from ailogin.types import ProviderConfig
from tests.helpers import (
    ANTHROPIC_API_KEY_URL,
    ANTHROPIC_PROFILE_URL,
    ANTHROPIC_TOKEN_URL,
    HOUR_MS,
    MINUTE_MS,
    OPENAI_TOKEN_URL,
    FakeBrowser,
    FakeEndpoints,
    make_jwt,
    request_body,
)


# ── PKCE Tests ──────────────────────────────────────────────────────


class TestPkceCodes:
    """Tests for PkceCodes generation."""

    def test_generate_returns_pair(self) -> None:
        """generate() returns a verifier/challenge pair using S256."""
        pkce = PkceCodes.generate()
        assert pkce.code_verifier
        assert pkce.code_challenge
        assert pkce.method == "S256"

    def test_verifier_is_url_safe(self) -> None:
        """Verifier contains only unpadded base64url characters."""
        pkce = PkceCodes.generate()
        assert re.fullmatch(r"[A-Za-z0-9_-]+", pkce.code_verifier)

    def test_verifier_lengths(self) -> None:
        """32 and 64 random bytes give 43 and 86 characters."""
        assert len(PkceCodes.generate(32).code_verifier) == 43
        assert len(PkceCodes.generate(64).code_verifier) == 86

    def test_challenge_matches_verifier_sha256(self) -> None:
        """Challenge is the base64url SHA-256 of the verifier."""
        pkce = PkceCodes.generate()
        digest = hashlib.sha256(pkce.code_verifier.encode("ascii")).digest()
        assert pkce.code_challenge == urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")

    def test_rfc7636_vector(self) -> None:
        """challenge_for matches the RFC 7636 appendix B example."""
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert challenge_for(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_injected_random_source_is_deterministic(self) -> None:
        """A pinned random source yields a pinned verifier."""
        pkce = PkceCodes.generate(32, random_bytes=lambda n: b"\x00" * n)
        assert pkce.code_verifier == "A" * 43
        assert pkce.code_challenge == challenge_for("A" * 43)

    def test_generate_uniqueness(self) -> None:
        """Verifiers and challenges do not repeat across many generations."""
        samples = [PkceCodes.generate() for _ in range(500)]
        assert len({pkce.code_verifier for pkce in samples}) == 500
        assert len({pkce.code_challenge for pkce in samples}) == 500

    def test_frozen_dataclass(self) -> None:
        """PkceCodes is immutable."""
        pkce = PkceCodes.generate()
        with pytest.raises(AttributeError):
            pkce.code_verifier = "new"  # type: ignore[misc]

    def test_state(self) -> None:
        """State is 32 random bytes, base64url encoded."""
        state = generate_state()
        assert len(state) == 43
        assert state != generate_state()
        assert generate_state(lambda n: b"\xff" * n) == base64url_encode(b"\xff" * 32)


# ── Fixtures ────────────────────────────────────────────────────────


@pytest.fixture
def anthropic(http_client: httpx.AsyncClient, fast_timeouts) -> AnthropicProvider:
    return AnthropicProvider(
        AnthropicSettings(), http_client=http_client, timeouts=fast_timeouts
    )


@pytest.fixture
def openai(http_client: httpx.AsyncClient, fast_timeouts) -> OpenAIProvider:
    return OpenAIProvider(
        OpenAISettings(preferred_port=None), http_client=http_client, timeouts=fast_timeouts
    )


# ── Authorization URL ───────────────────────────────────────────────


class TestAuthorizeURL:
    """Tests for build_authorize_url()."""

    def test_anthropic_url(self, anthropic: AnthropicProvider) -> None:
        """Anthropic URL carries the standard and extra parameters."""
        pkce = PkceCodes.generate(32)
        url = anthropic.build_authorize_url("http://localhost:5555/callback", "st", pkce)
        parsed = httpx.URL(url)
        params = dict(parsed.params)

        assert str(parsed.copy_with(query=None)) == "https://claude.ai/oauth/authorize"
        assert params["response_type"] == "code"
        assert params["client_id"] == "9d1c250a-e61b-44d9-88ed-5944d1962f5e"
        assert params["redirect_uri"] == "http://localhost:5555/callback"
        assert params["scope"] == "org:create_api_key user:profile user:inference"
        assert params["code_challenge"] == pkce.code_challenge
        assert params["code_challenge_method"] == "S256"
        assert params["state"] == "st"
        assert params["code"] == "true"

    def test_openai_url(self, openai: OpenAIProvider) -> None:
        """OpenAI URL carries its simplified-flow parameters."""
        url = openai.build_authorize_url(
            "http://localhost:1455/auth/callback", "st", PkceCodes.generate()
        )
        params = dict(httpx.URL(url).params)

        assert url.startswith("https://auth.openai.com/oauth/authorize?")
        assert params["scope"] == "openid profile email offline_access"
        assert params["id_token_add_organizations"] == "true"
        assert params["codex_cli_simplified_flow"] == "true"
        assert params["originator"] == "codex_cli_rs"
        assert params["client_id"] == "app_EMoamEEZ73f0CkXaXp7hrann"


# ── Token endpoint ──────────────────────────────────────────────────


class TestExchangeCode:
    """Tests for exchange_code()."""

    @pytest.mark.asyncio
    async def test_anthropic_json_exchange(
        self, anthropic: AnthropicProvider, endpoints: FakeEndpoints
    ) -> None:
        """Anthropic posts JSON including state; scope string becomes scopes."""
        endpoints.add(
            "POST",
            ANTHROPIC_TOKEN_URL,
            json_body={
                "access_token": "at",
                "refresh_token": "rt",
                "expires_in": 3600,
                "scope": "user:profile user:inference",
            },
        )
        before = now_ms()
        tokens = await anthropic.exchange_code(
            "ABC123", "verifier", "http://localhost:1/callback", "st"
        )

        body = request_body(endpoints.calls(ANTHROPIC_TOKEN_URL)[0])
        assert body == {
            "grant_type": "authorization_code",
            "code": "ABC123",
            "redirect_uri": "http://localhost:1/callback",
            "client_id": anthropic.config.client_id,
            "code_verifier": "verifier",
            "state": "st",
        }
        assert tokens.access_token == "at"
        assert tokens.refresh_token == "rt"
        assert tokens.scopes == ["user:profile", "user:inference"]
        assert before + HOUR_MS <= tokens.expires_at <= now_ms() + HOUR_MS

    @pytest.mark.asyncio
    async def test_openai_form_exchange_defaults(
        self, openai: OpenAIProvider, endpoints: FakeEndpoints
    ) -> None:
        """OpenAI posts a form without state; missing fields use defaults."""
        endpoints.add(
            "POST",
            OPENAI_TOKEN_URL,
            json_body={"access_token": "at", "refresh_token": "rt", "id_token": "idt"},
        )
        before = now_ms()
        tokens = await openai.exchange_code(
            "code", "ver", "http://localhost:1455/auth/callback", "st"
        )

        request = endpoints.calls(OPENAI_TOKEN_URL)[0]
        assert request.headers["content-type"].startswith("application/x-www-form-urlencoded")
        body = request_body(request)
        assert "state" not in body
        assert body["code_verifier"] == "ver"
        assert tokens.id_token == "idt"
        assert tokens.scopes == ["openid", "profile", "email", "offline_access"]
        assert before + HOUR_MS <= tokens.expires_at <= now_ms() + HOUR_MS

    @pytest.mark.asyncio
    async def test_no_expiry_means_never_expires(
        self, anthropic: AnthropicProvider, endpoints: FakeEndpoints
    ) -> None:
        """Without expires_in and without a default, expires_at stays unset."""
        endpoints.add("POST", ANTHROPIC_TOKEN_URL, json_body={"access_token": "at"})
        tokens = await anthropic.exchange_code("c", "v", "http://localhost:1/callback")
        assert tokens.expires_at is None
        assert anthropic.is_expired(tokens) is False

    @pytest.mark.asyncio
    async def test_401_is_invalid_code(
        self, anthropic: AnthropicProvider, endpoints: FakeEndpoints
    ) -> None:
        """HTTP 401 maps to InvalidAuthorizationCodeError."""
        endpoints.add("POST", ANTHROPIC_TOKEN_URL, status=401, json_body={"error": "invalid_grant"})
        with pytest.raises(InvalidAuthorizationCodeError) as exc_info:
            await anthropic.exchange_code("bad", "v", "http://localhost:1/callback")
        assert exc_info.value.message == "Invalid authorization code"
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_non_2xx_carries_status_and_body(
        self, anthropic: AnthropicProvider, endpoints: FakeEndpoints
    ) -> None:
        """Other failures keep status and body."""
        endpoints.add("POST", ANTHROPIC_TOKEN_URL, status=500, text="upstream broke")
        with pytest.raises(TokenExchangeError) as exc_info:
            await anthropic.exchange_code("c", "v", "http://localhost:1/callback")
        assert not isinstance(exc_info.value, InvalidAuthorizationCodeError)
        assert exc_info.value.status_code == 500
        assert exc_info.value.body == "upstream broke"

    @pytest.mark.asyncio
    async def test_transport_failure(
        self, anthropic: AnthropicProvider, endpoints: FakeEndpoints
    ) -> None:
        """Transport failures raise TokenExchangeError without a status."""
        endpoints.fail("POST", ANTHROPIC_TOKEN_URL)
        with pytest.raises(TokenExchangeError) as exc_info:
            await anthropic.exchange_code("c", "v", "http://localhost:1/callback")
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_missing_access_token(
        self, anthropic: AnthropicProvider, endpoints: FakeEndpoints
    ) -> None:
        """A 2xx response without access_token is an exchange failure."""
        endpoints.add("POST", ANTHROPIC_TOKEN_URL, json_body={"token_type": "Bearer"})
        with pytest.raises(TokenExchangeError, match="missing access_token"):
            await anthropic.exchange_code("c", "v", "http://localhost:1/callback")


class TestRefreshToken:
    """Tests for refresh_token()."""

    @pytest.mark.asyncio
    async def test_refresh_keeps_prior_refresh_token(
        self, openai: OpenAIProvider, endpoints: FakeEndpoints
    ) -> None:
        """A response without refresh_token keeps the one sent."""
        endpoints.add("POST", OPENAI_TOKEN_URL, json_body={"access_token": "new", "expires_in": 60})
        tokens = await openai.refresh_token("old-rt")

        body = request_body(endpoints.calls(OPENAI_TOKEN_URL)[0])
        assert body == {
            "grant_type": "refresh_token",
            "refresh_token": "old-rt",
            "client_id": openai.config.client_id,
        }
        assert tokens.access_token == "new"
        assert tokens.refresh_token == "old-rt"

    @pytest.mark.asyncio
    async def test_refresh_rotates_refresh_token(
        self, anthropic: AnthropicProvider, endpoints: FakeEndpoints
    ) -> None:
        """A returned refresh_token replaces the old one."""
        endpoints.add(
            "POST",
            ANTHROPIC_TOKEN_URL,
            json_body={"access_token": "new", "refresh_token": "rt2", "expires_in": 60},
        )
        tokens = await anthropic.refresh_token("rt1")
        assert tokens.refresh_token == "rt2"

    @pytest.mark.asyncio
    async def test_refresh_failure(
        self, anthropic: AnthropicProvider, endpoints: FakeEndpoints
    ) -> None:
        """Non-2xx refresh raises TokenRefreshError."""
        endpoints.add("POST", ANTHROPIC_TOKEN_URL, status=400, json_body={"error": "invalid_grant"})
        with pytest.raises(TokenRefreshError, match="400"):
            await anthropic.refresh_token("rt")

    @pytest.mark.asyncio
    async def test_refresh_transport_failure(
        self, anthropic: AnthropicProvider, endpoints: FakeEndpoints
    ) -> None:
        """Transport failures raise TokenRefreshError."""
        endpoints.fail("POST", ANTHROPIC_TOKEN_URL)
        with pytest.raises(TokenRefreshError):
            await anthropic.refresh_token("rt")

    @pytest.mark.asyncio
    async def test_refresh_mistyped_fields(
        self, anthropic: AnthropicProvider, endpoints: FakeEndpoints
    ) -> None:
        """A 2xx body with wrongly typed token fields raises TokenRefreshError."""
        endpoints.add(
            "POST",
            ANTHROPIC_TOKEN_URL,
            json_body={"access_token": "new", "refresh_token": 123, "id_token": {"x": 1}},
        )
        with pytest.raises(TokenRefreshError, match="invalid fields") as exc_info:
            await anthropic.refresh_token("rt")
        assert exc_info.value.provider == "anthropic"


class TestIsExpired:
    """Tests for the expiry buffer."""

    def test_boundary(self, anthropic: AnthropicProvider) -> None:
        """Expiring exactly at the buffer edge counts as expired."""
        now = 1_700_000_000_000
        buffer_ms = 5 * MINUTE_MS
        assert anthropic.is_expired(OAuthTokens(access_token="a", expires_at=now + buffer_ms), now)
        assert not anthropic.is_expired(
            OAuthTokens(access_token="a", expires_at=now + buffer_ms + 1), now
        )
        assert anthropic.is_expired(OAuthTokens(access_token="a", expires_at=now - 1), now)

    def test_no_expiry(self, anthropic: AnthropicProvider) -> None:
        """Tokens without expires_at never expire."""
        assert not anthropic.is_expired(OAuthTokens(access_token="a"))

    def test_custom_buffer(self) -> None:
        """The buffer is configurable."""
        provider = AnthropicProvider(AnthropicSettings(), expiry_buffer_seconds=0)
        now = now_ms()
        assert not provider.is_expired(OAuthTokens(access_token="a", expires_at=now + 1000), now)


# ── Profiles ────────────────────────────────────────────────────────


class TestProfileEndpoint:
    """Tests for profile-endpoint identity."""

    @pytest.mark.asyncio
    async def test_fetch_profile_headers_and_mapping(
        self, anthropic: AnthropicProvider, endpoints: FakeEndpoints
    ) -> None:
        """Profile request is authenticated and nested payloads are mapped."""
        endpoints.add(
            "GET",
            ANTHROPIC_PROFILE_URL,
            json_body={
                "account": {
                    "uuid": "acct-1",
                    "email_address": "ada@example.com",
                    "full_name": "Ada Lovelace",
                }
            },
        )
        profile = await anthropic.fetch_profile("at")

        request = endpoints.calls(ANTHROPIC_PROFILE_URL)[0]
        assert request.headers["Authorization"] == "Bearer at"
        assert request.headers["anthropic-beta"] == "oauth-2025-04-20"
        assert request.headers["User-Agent"] == "claude-code/2.0.25"
        assert profile.id == "acct-1"
        assert profile.email == "ada@example.com"
        assert profile.name == "Ada Lovelace"

    @pytest.mark.asyncio
    async def test_flat_payload_without_id(
        self, anthropic: AnthropicProvider, endpoints: FakeEndpoints
    ) -> None:
        """Flat payloads without an id fall back to the provider id."""
        endpoints.add("GET", ANTHROPIC_PROFILE_URL, json_body={"email": "a@b.c", "name": "A"})
        profile = await anthropic.fetch_profile("at")
        assert profile.id == "claude-user"
        assert profile.email == "a@b.c"

    @pytest.mark.asyncio
    async def test_fetch_profile_failure(
        self, anthropic: AnthropicProvider, endpoints: FakeEndpoints
    ) -> None:
        """Non-2xx profile responses raise ProfileFetchError."""
        endpoints.add("GET", ANTHROPIC_PROFILE_URL, status=403, text="forbidden")
        with pytest.raises(ProfileFetchError, match="403"):
            await anthropic.fetch_profile("at")

    @pytest.mark.asyncio
    async def test_resolve_profile_degrades(
        self, anthropic: AnthropicProvider, endpoints: FakeEndpoints
    ) -> None:
        """After authorization a profile failure yields a minimal profile."""
        endpoints.fail("GET", ANTHROPIC_PROFILE_URL)
        profile = await anthropic.resolve_profile(OAuthTokens(access_token="at"))
        assert profile.id == "claude-user"
        assert profile.email is None


class TestIdTokenProfile:
    """Tests for id_token identity."""

    def test_sub_email_name(self, openai: OpenAIProvider) -> None:
        """sub, email and name come from the claims."""
        token = make_jwt({"sub": "user-1", "email": "a@b.c", "name": "A"})
        profile = openai.profile_from_id_token(token)
        assert (profile.id, profile.email, profile.name) == ("user-1", "a@b.c", "A")

    def test_account_claim_fallback(self, openai: OpenAIProvider) -> None:
        """Without sub the nested ChatGPT account id is used."""
        token = make_jwt({"https://api.openai.com/auth": {"chatgpt_account_id": "acct-9"}})
        assert openai.profile_from_id_token(token).id == "acct-9"

    @pytest.mark.parametrize("token", [None, "", "not-a-jwt", "a.!!!.c", "a.bm90LWpzb24.c"])
    def test_malformed_token_never_raises(self, openai: OpenAIProvider, token: str | None) -> None:
        """Malformed tokens yield the placeholder identity."""
        assert openai.profile_from_id_token(token).id == "unknown"

    @pytest.mark.asyncio
    async def test_fetch_profile_placeholder(self, openai: OpenAIProvider) -> None:
        """fetch_profile has no endpoint to call and returns the placeholder."""
        assert (await openai.fetch_profile("at")).id == "unknown"


# ── Presets ─────────────────────────────────────────────────────────


class TestAnthropicPreset:
    """Anthropic-specific behavior."""

    def test_config(self, anthropic: AnthropicProvider) -> None:
        """Preset ids, body encoding and port policy."""
        assert anthropic.id == "anthropic"
        assert anthropic.config.token_body == "json"
        assert anthropic.config.verifier_bytes == 32
        assert anthropic.config.preferred_port is None
        assert anthropic.config.redirect_path == "/callback"

    def test_success_redirect_by_scope(self, anthropic: AnthropicProvider) -> None:
        """Inference-only grants go to claude.ai, others to the console."""
        inference = OAuthTokens(access_token="a", scopes=["user:inference"])
        full = OAuthTokens(access_token="a", scopes=["user:profile", "user:inference"])
        assert anthropic.success_redirect_url(inference).startswith("https://claude.ai/")
        assert anthropic.success_redirect_url(full).startswith("https://console.anthropic.com/")
        assert anthropic.error_redirect_url.startswith("https://claude.ai/")

    @pytest.mark.asyncio
    async def test_create_api_key(
        self, anthropic: AnthropicProvider, endpoints: FakeEndpoints
    ) -> None:
        """create_api_key posts the name with bearer auth."""
        endpoints.add("POST", ANTHROPIC_API_KEY_URL, json_body={"api_key": "sk-ant-1"})
        key = await anthropic.create_api_key(OAuthTokens(access_token="at"), "desk")

        request = endpoints.calls(ANTHROPIC_API_KEY_URL)[0]
        assert key == "sk-ant-1"
        assert request.headers["Authorization"] == "Bearer at"
        assert json.loads(request.content) == {"name": "desk"}

    @pytest.mark.asyncio
    async def test_create_api_key_failure(
        self, anthropic: AnthropicProvider, endpoints: FakeEndpoints
    ) -> None:
        """Key endpoint failures raise TokenExchangeError."""
        endpoints.add("POST", ANTHROPIC_API_KEY_URL, status=403, text="missing scope")
        with pytest.raises(TokenExchangeError) as exc_info:
            await anthropic.create_api_key(OAuthTokens(access_token="at"))
        assert exc_info.value.status_code == 403


class TestClaudeCliCredentials:
    """Tests for importing Claude CLI credentials."""

    def _write(self, path: Path, expires_at: int | None) -> None:
        oauth = {"accessToken": "cli-at", "refreshToken": "cli-rt", "scopes": ["user:inference"]}
        if expires_at is not None:
            oauth["expiresAt"] = expires_at
        path.write_text(json.dumps({"claudeAiOauth": oauth}), encoding="utf-8")

    def test_valid_credentials(self, tmp_path: Path) -> None:
        """Credentials valid for over ten minutes are returned."""
        path = tmp_path / "creds.json"
        now = now_ms()
        self._write(path, now + HOUR_MS)
        tokens = read_claude_cli_credentials(path, now)
        assert tokens is not None
        assert tokens.access_token == "cli-at"
        assert tokens.refresh_token == "cli-rt"
        assert tokens.scopes == ["user:inference"]

    def test_expiring_soon(self, tmp_path: Path) -> None:
        """Credentials expiring within ten minutes are ignored."""
        path = tmp_path / "creds.json"
        now = now_ms()
        self._write(path, now + 9 * MINUTE_MS)
        assert read_claude_cli_credentials(path, now) is None

    def test_missing_and_malformed(self, tmp_path: Path) -> None:
        """Missing, non-JSON and wrong-shape files yield None."""
        assert read_claude_cli_credentials(tmp_path / "absent.json") is None
        bad = tmp_path / "bad.json"
        bad.write_text("{not json", encoding="utf-8")
        assert read_claude_cli_credentials(bad) is None
        bad.write_text(json.dumps({"claudeAiOauth": {"refreshToken": "x"}}), encoding="utf-8")
        assert read_claude_cli_credentials(bad) is None

    @pytest.mark.asyncio
    async def test_provider_reads_configured_path(self, tmp_path: Path) -> None:
        """load_cli_credentials reads the configured file."""
        path = tmp_path / "creds.json"
        self._write(path, now_ms() + HOUR_MS)
        provider = AnthropicProvider(AnthropicSettings(cli_credentials_path=str(path)))
        tokens = await provider.load_cli_credentials()
        assert tokens is not None
        assert tokens.access_token == "cli-at"


class TestOpenAIPreset:
    """OpenAI-specific behavior."""

    def test_config(self) -> None:
        """Preset ids, body encoding and port policy."""
        provider = OpenAIProvider(OpenAISettings())
        assert provider.id == "openai"
        assert provider.config.token_body == "form"
        assert provider.config.preferred_port == 1455
        assert provider.config.redirect_path == "/auth/callback"
        assert provider.config.default_expires_in == 3600

    @pytest.mark.asyncio
    async def test_create_api_key_token_exchange(
        self, openai: OpenAIProvider, endpoints: FakeEndpoints
    ) -> None:
        """The id_token is exchanged for an API key."""
        endpoints.add("POST", OPENAI_TOKEN_URL, json_body={"access_token": "sk-openai"})
        key = await openai.create_api_key(OAuthTokens(access_token="at", id_token="idt"))

        body = request_body(endpoints.calls(OPENAI_TOKEN_URL)[0])
        assert key == "sk-openai"
        assert body["grant_type"] == "urn:ietf:params:oauth:grant-type:token-exchange"
        assert body["requested_token"] == "openai-api-key"
        assert body["subject_token"] == "idt"
        assert body["subject_token_type"] == "urn:ietf:params:oauth:token-type:id_token"

    @pytest.mark.asyncio
    async def test_create_api_key_requires_id_token(self, openai: OpenAIProvider) -> None:
        """Without an id_token there is nothing to exchange."""
        with pytest.raises(TokenExchangeError, match="id_token"):
            await openai.create_api_key(OAuthTokens(access_token="at"))


class TestUnsupportedOperations:
    """Base-class defaults for optional capabilities."""

    @pytest.mark.asyncio
    async def test_generic_provider_has_no_extras(self) -> None:
        """A plain claims provider cannot mint keys or import CLI tokens."""
        provider = JwtClaimsProvider(
            ProviderConfig(
                id="custom",
                name="Custom",
                icon="custom",
                description="",
                authorize_url="https://idp.example/authorize",
                token_url="https://idp.example/token",
                client_id="cid",
            )
        )
        with pytest.raises(UnsupportedOperationError):
            await provider.create_api_key(OAuthTokens(access_token="a"))
        with pytest.raises(UnsupportedOperationError):
            await provider.load_cli_credentials()


def test_create_providers_from_settings() -> None:
    """Enabled presets are created in display order."""
    providers = create_providers_from_settings(AILoginSettings())
    assert [p.id for p in providers] == ["anthropic", "openai"]

    settings = AILoginSettings(openai={"enabled": False}, timeout={"refresh": 3})
    providers = create_providers_from_settings(settings)
    assert [p.id for p in providers] == ["anthropic"]
    assert providers[0].timeouts.refresh == 3


# ── Full authorization flow ─────────────────────────────────────────


class TestAuthorize:
    """End-to-end authorize() against the real localhost listener."""

    def _anthropic(self, http_client, fast_timeouts, browser) -> AnthropicProvider:
        return AnthropicProvider(
            AnthropicSettings(),
            http_client=http_client,
            open_browser=browser,
            timeouts=fast_timeouts,
        )

    @pytest.mark.asyncio
    async def test_success(self, http_client, fast_timeouts, endpoints: FakeEndpoints) -> None:
        """The browser redirect is exchanged and the profile fetched."""
        endpoints.add(
            "POST",
            ANTHROPIC_TOKEN_URL,
            json_body={"access_token": "at", "refresh_token": "rt", "expires_in": 3600},
        )
        endpoints.add("GET", ANTHROPIC_PROFILE_URL, json_body={"email": "ada@example.com"})
        browser = FakeBrowser()
        provider = self._anthropic(http_client, fast_timeouts, browser)

        result = await provider.authorize()
        browser.join()

        sent = browser.params[0]
        body = request_body(endpoints.calls(ANTHROPIC_TOKEN_URL)[0])
        assert result.tokens.access_token == "at"
        assert result.profile.email == "ada@example.com"
        assert body["code"] == "ABC123"
        assert body["state"] == sent["state"]
        assert body["redirect_uri"] == sent["redirect_uri"]
        assert challenge_for(body["code_verifier"]) == sent["code_challenge"]
        status, headers, _ = browser.responses[0]
        assert status == 302
        assert headers["Location"].startswith("https://console.anthropic.com/oauth/code/success")

    @pytest.mark.asyncio
    async def test_denied(self, http_client, fast_timeouts, endpoints: FakeEndpoints) -> None:
        """A denial rejects without calling the token endpoint."""
        browser = FakeBrowser(lambda p: {"error": "access_denied", "state": p["state"]})
        provider = self._anthropic(http_client, fast_timeouts, browser)

        with pytest.raises(ProviderDeniedAuthorization) as exc_info:
            await provider.authorize()
        browser.join()

        assert exc_info.value.message == "access_denied"
        assert endpoints.calls(ANTHROPIC_TOKEN_URL) == []

    @pytest.mark.asyncio
    async def test_timeout_frees_port(self, http_client) -> None:
        """A flow with no redirect times out and releases its port."""
        from ailogin.config import TimeoutSettings

        browser = FakeBrowser(lambda p: None)
        provider = AnthropicProvider(
            AnthropicSettings(),
            http_client=http_client,
            open_browser=browser,
            timeouts=TimeoutSettings(authorize=0.2),
        )
        with pytest.raises(AuthFlowTimeout, match="timed out"):
            await provider.authorize()

        port = httpx.URL(browser.params[0]["redirect_uri"]).port
        sock = socket.socket()
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind(("127.0.0.1", port))
        finally:
            sock.close()

    @pytest.mark.asyncio
    async def test_browser_failure(self, http_client, fast_timeouts) -> None:
        """An opener that raises fails the flow."""

        def broken(_url: str) -> bool:
            raise OSError("no display")

        provider = self._anthropic(http_client, fast_timeouts, broken)
        with pytest.raises(BrowserLaunchError, match="no display"):
            await provider.authorize()

    @pytest.mark.asyncio
    async def test_browser_not_opened_logs_url(
        self, http_client, fast_timeouts, endpoints: FakeEndpoints, caplog
    ) -> None:
        """An opener returning False logs the URL and keeps waiting."""
        endpoints.add("POST", ANTHROPIC_TOKEN_URL, json_body={"access_token": "at"})
        endpoints.add("GET", ANTHROPIC_PROFILE_URL, status=500)
        browser = FakeBrowser(opened=False)
        provider = self._anthropic(http_client, fast_timeouts, browser)

        with caplog.at_level(logging.WARNING, logger="ailogin.auth"):
            result = await provider.authorize()
        browser.join()

        assert browser.urls[0] in caplog.text
        assert result.profile.id == "claude-user"

    @pytest.mark.asyncio
    async def test_openai_flow_profile_from_id_token(
        self, http_client, fast_timeouts, endpoints: FakeEndpoints
    ) -> None:
        """OpenAI identity comes from the id_token claims."""
        endpoints.add(
            "POST",
            OPENAI_TOKEN_URL,
            json_body={
                "access_token": "at",
                "refresh_token": "rt",
                "id_token": make_jwt({"sub": "u-1", "email": "g@example.com"}),
            },
        )
        browser = FakeBrowser()
        provider = OpenAIProvider(
            OpenAISettings(preferred_port=None),
            http_client=http_client,
            open_browser=browser,
            timeouts=fast_timeouts,
        )
        result = await provider.authorize()
        browser.join()

        assert result.profile.id == "u-1"
        assert result.profile.email == "g@example.com"
        assert browser.params[0]["redirect_uri"].endswith("/auth/callback")
        status, _, body = browser.responses[0]
        assert status == 200
        assert "Authentication Complete" in body

    @pytest.mark.asyncio
    async def test_concurrent_flows_use_distinct_ports(
        self, http_client, fast_timeouts, endpoints: FakeEndpoints
    ) -> None:
        """Two flows at once each get their own listener."""
        endpoints.add("POST", ANTHROPIC_TOKEN_URL, json_body={"access_token": "at"})
        endpoints.add("GET", ANTHROPIC_PROFILE_URL, json_body={"id": "x"})
        browser = FakeBrowser()
        provider = self._anthropic(http_client, fast_timeouts, browser)

        await asyncio.gather(provider.authorize(), provider.authorize())
        browser.join()

        ports = {httpx.URL(p["redirect_uri"]).port for p in browser.params}
        assert len(ports) == 2
