"""OAuth2 provider abstractions.

Defines the OAuthProvider ABC, the two provider variants (profile
endpoint and ID-token claims) and the Anthropic and OpenAI presets.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import asyncio
import json
import logging
import secrets
import time
import webbrowser

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import httpx

from pydantic import ValidationError

from ..config import AnthropicSettings, OpenAISettings, TimeoutSettings
from ..exceptions import (
    BrowserLaunchError,
    InvalidAuthorizationCodeError,
    ProfileFetchError,
    TokenError,
    TokenExchangeError,
    TokenRefreshError,
    UnsupportedOperationError,
)
from ..log import redact_sensitive_data
from ..models import OAuthProfile, OAuthTokens
from ..types import AuthorizationResult, ProviderConfig
from .callback_server import OAuthCallbackServer
from .claims import claim_str, decode_jwt_claims, verify_id_token
from .pkce import PkceCodes, generate_state


if TYPE_CHECKING:
    from collections.abc import Callable

    from ..config import AILoginSettings


logger = logging.getLogger("ailogin.auth")

# Imported CLI credentials must stay valid at least this long
CLI_CREDENTIALS_MIN_VALIDITY_MS = 10 * 60 * 1000

TOKEN_EXCHANGE_GRANT = "urn:ietf:params:oauth:grant-type:token-exchange"
ID_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:id_token"  # noqa: S105


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class OAuthProvider(ABC):
    """Abstract base class for OAuth2 providers.

    Parameters
    ----------
    config : ProviderConfig
        Static endpoints, client id and flow options.
    http_client : httpx.AsyncClient, optional
        Shared client. When omitted the provider creates and owns one.
    open_browser : callable, optional
        ``(url) -> bool`` used to launch the system browser
        (default ``webbrowser.open``).
    timeouts : TimeoutSettings, optional
        Flow, exchange, refresh and profile timeouts in seconds.
    expiry_buffer_seconds : int
        Tokens expiring within this window count as expired.
    """

    def __init__(
        self,
        config: ProviderConfig,
        http_client: httpx.AsyncClient | None = None,
        open_browser: Callable[[str], bool] | None = None,
        timeouts: TimeoutSettings | None = None,
        expiry_buffer_seconds: int = 300,
    ) -> None:
        """Initialize OAuth provider."""
        self.config = config
        self.timeouts = timeouts or TimeoutSettings()
        self.expiry_buffer_seconds = expiry_buffer_seconds
        self._open_browser = open_browser or webbrowser.open
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def id(self) -> str:
        """Stable provider id (token store key)."""
        return self.config.id

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=30.0)
            self._owns_client = True
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        if (
            self._owns_client
            and self._http_client is not None
            and not self._http_client.is_closed
        ):
            await self._http_client.aclose()
            self._http_client = None

    # -- authorization flow ----------------------------------------------

    async def authorize(self) -> AuthorizationResult:
        """Run the full browser authorization flow.

        Starts a localhost callback listener, opens the system browser
        on the authorization URL and waits for the redirect. The code
        exchange runs while the browser request is held open, so the
        browser sees the final outcome.

        Returns
        -------
        AuthorizationResult
            The issued tokens and the user's profile.

        Raises
        ------
        AuthenticationError
            On bind failure, browser failure, timeout, denial, state
            mismatch, missing code, or a failed exchange.
        """
        flow_id = secrets.token_hex(8)
        pkce = PkceCodes.generate(self.config.verifier_bytes)
        state = generate_state()

        async def on_code(code: str) -> OAuthTokens:
            return await self.exchange_code(
                code, pkce.code_verifier, listener.redirect_uri, state
            )

        listener = OAuthCallbackServer(
            expected_state=state,
            on_code=on_code,
            loop=asyncio.get_running_loop(),
            callback_path=self.config.redirect_path,
            exchange_timeout=self.timeouts.exchange,
            success_redirect=self.success_redirect_url,
            error_redirect_url=self.error_redirect_url,
            provider=self.id,
            flow_id=flow_id,
        )
        listener.start(self.config.preferred_port)
        logger.info("Starting %s authorization (flow %s)", self.id, flow_id)

        try:
            url = self.build_authorize_url(listener.redirect_uri, state, pkce)
            self._launch_browser(url, flow_id)
            tokens: OAuthTokens = await listener.wait(self.timeouts.authorize)
        finally:
            await asyncio.to_thread(listener.close)

        profile = await self.resolve_profile(tokens)
        logger.info("%s authorization complete (flow %s)", self.id, flow_id)
        return AuthorizationResult(tokens=tokens, profile=profile)

    def _launch_browser(self, url: str, flow_id: str) -> None:
        try:
            opened = self._open_browser(url)
        except Exception as exc:
            msg = f"Could not open browser: {exc}"
            raise BrowserLaunchError(msg, provider=self.id, flow_id=flow_id) from exc
        if not opened:
            logger.warning("Could not open a browser. Sign in by visiting: %s", url)

    def build_authorize_url(self, redirect_uri: str, state: str, pkce: PkceCodes) -> str:
        """Build the full authorization URL.

        Parameters
        ----------
        redirect_uri : str
            The callback URL to redirect to after authorization.
        state : str
            CSRF protection nonce.
        pkce : PkceCodes
            PKCE verifier/challenge pair for this flow.

        Returns
        -------
        str
            The full authorization URL.
        """
        params: dict[str, str] = dict(self.config.extra_authorize_params)
        params.update(
            {
                "response_type": "code",
                "client_id": self.config.client_id,
                "redirect_uri": redirect_uri,
                "scope": " ".join(self.config.scopes),
                "code_challenge": pkce.code_challenge,
                "code_challenge_method": pkce.method,
                "state": state,
            }
        )
        return f"{self.config.authorize_url}?{urlencode(params)}"

    def success_redirect_url(self, tokens: OAuthTokens) -> str | None:  # noqa: ARG002
        """Where to send the browser after a successful exchange (None: show a page)."""
        return None

    @property
    def error_redirect_url(self) -> str | None:
        """Where to send the browser after a failed exchange (None: show a page)."""
        return None

    # -- token endpoint ---------------------------------------------------

    async def _post_token(self, data: dict[str, str], timeout: float) -> httpx.Response:
        client = await self._get_client()
        headers = {"Accept": "application/json"}
        if self.config.token_body == "json":
            return await client.post(
                self.config.token_url, json=data, headers=headers, timeout=timeout
            )
        return await client.post(
            self.config.token_url, data=data, headers=headers, timeout=timeout
        )

    async def exchange_code(
        self,
        code: str,
        code_verifier: str,
        redirect_uri: str,
        state: str | None = None,
    ) -> OAuthTokens:
        """Exchange an authorization code for tokens.

        Parameters
        ----------
        code : str
            The authorization code from the callback.
        code_verifier : str
            The PKCE code verifier of this flow.
        redirect_uri : str
            The redirect URI used in the authorization request.
        state : str, optional
            The flow state, echoed when the provider expects it.

        Returns
        -------
        OAuthTokens
            The issued token set.

        Raises
        ------
        InvalidAuthorizationCodeError
            If the token endpoint answers 401.
        TokenExchangeError
            On any other non-2xx answer or a transport failure.
        """
        data: dict[str, str] = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.config.client_id,
            "code_verifier": code_verifier,
        }
        if self.config.send_state_in_exchange and state is not None:
            data["state"] = state

        try:
            resp = await self._post_token(data, self.timeouts.exchange)
        except httpx.HTTPError as exc:
            msg = f"Token exchange request failed: {exc}"
            raise TokenExchangeError(msg, provider=self.id) from exc

        if resp.status_code == 401:
            raise InvalidAuthorizationCodeError(
                "Invalid authorization code", status_code=401, body=resp.text, provider=self.id
            )
        if not resp.is_success:
            msg = f"Token exchange failed: {resp.status_code}"
            raise TokenExchangeError(
                msg, status_code=resp.status_code, body=resp.text, provider=self.id
            )

        raw = self._json_body(resp, TokenExchangeError)
        return self._parse_token_response(raw, TokenExchangeError)

    async def refresh_token(self, refresh_token: str) -> OAuthTokens:
        """Obtain a new access token with a refresh token.

        The prior refresh token is kept when the response carries none.

        Raises
        ------
        TokenRefreshError
            If the refresh fails.
        """
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.config.client_id,
        }
        try:
            resp = await self._post_token(data, self.timeouts.refresh)
        except httpx.HTTPError as exc:
            msg = f"Token refresh request failed: {exc}"
            raise TokenRefreshError(msg, provider=self.id) from exc

        if not resp.is_success:
            msg = f"Token refresh failed: {resp.status_code}"
            raise TokenRefreshError(msg, provider=self.id, status_code=resp.status_code)

        return self._parse_token_response(
            self._json_body(resp, TokenRefreshError),
            TokenRefreshError,
            fallback_refresh_token=refresh_token,
        )

    def _json_body(self, resp: httpx.Response, error_cls: type[TokenError]) -> dict[str, Any]:
        try:
            raw = resp.json()
        except ValueError as exc:
            msg = "Token endpoint returned invalid JSON"
            raise error_cls(msg, provider=self.id) from exc
        if not isinstance(raw, dict):
            msg = "Token endpoint returned an unexpected payload"
            raise error_cls(msg, provider=self.id)
        logger.debug("Token response from %s: %s", self.id, redact_sensitive_data(raw))
        return raw

    def _parse_token_response(
        self,
        raw: dict[str, Any],
        error_cls: type[TokenError] = TokenExchangeError,
        fallback_refresh_token: str | None = None,
    ) -> OAuthTokens:
        """Convert a token endpoint response into ``OAuthTokens``.

        ``expires_at`` is ``now + expires_in``; without ``expires_in``
        the provider default applies, and with no default the token
        never expires. Scopes come from the space-separated ``scope``
        field, else the configured scopes.
        """
        access_token = raw.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            msg = "Token response is missing access_token"
            raise error_cls(msg, provider=self.id)

        expires_in = raw.get("expires_in", self.config.default_expires_in)
        expires_at = None
        if expires_in is not None:
            try:
                expires_at = now_ms() + int(float(expires_in) * 1000)
            except (TypeError, ValueError) as exc:
                msg = f"Token response has invalid expires_in: {expires_in!r}"
                raise error_cls(msg, provider=self.id) from exc

        scope = raw.get("scope")
        if isinstance(scope, str) and scope.strip():
            scopes: list[str] | None = scope.split()
        else:
            scopes = list(self.config.scopes) or None

        try:
            return OAuthTokens(
                access_token=access_token,
                refresh_token=raw.get("refresh_token") or fallback_refresh_token,
                id_token=raw.get("id_token"),
                expires_at=expires_at,
                scopes=scopes,
            )
        except ValidationError as exc:
            fields = ", ".join(str(err["loc"][0]) for err in exc.errors() if err["loc"])
            msg = f"Token response has invalid fields: {fields}"
            raise error_cls(msg, provider=self.id) from exc

    def is_expired(self, tokens: OAuthTokens, now: int | None = None) -> bool:
        """Whether ``tokens`` expire within the expiry buffer.

        Parameters
        ----------
        tokens : OAuthTokens
            The stored token set.
        now : int, optional
            Current time in epoch milliseconds (default: wall clock).

        Returns
        -------
        bool
            False when the token has no ``expires_at``.
        """
        if tokens.expires_at is None:
            return False
        current = now_ms() if now is None else now
        return tokens.expires_at <= current + self.expiry_buffer_seconds * 1000

    # -- identity and extras ---------------------------------------------

    @abstractmethod
    async def fetch_profile(self, access_token: str) -> OAuthProfile:
        """Fetch the user's profile.

        Parameters
        ----------
        access_token : str
            A valid access token.

        Returns
        -------
        OAuthProfile
            The user's identity.
        """

    async def resolve_profile(self, tokens: OAuthTokens) -> OAuthProfile:
        """Resolve the profile stored after a successful authorization."""
        return await self.fetch_profile(tokens.access_token)

    async def create_api_key(  # noqa: ARG002
        self, tokens: OAuthTokens, name: str = "ailogin"
    ) -> str:
        """Mint a long-lived API key from an OAuth grant.

        Raises
        ------
        UnsupportedOperationError
            If the provider has no API-key endpoint.
        """
        msg = f"Provider {self.id} cannot create API keys"
        raise UnsupportedOperationError(msg, provider=self.id)

    async def load_cli_credentials(self) -> OAuthTokens | None:
        """Read tokens left by the provider's own CLI, if it has one.

        Raises
        ------
        UnsupportedOperationError
            If the provider has no CLI credential source.
        """
        msg = f"Provider {self.id} has no CLI credentials to import"
        raise UnsupportedOperationError(msg, provider=self.id)


class ProfileEndpointProvider(OAuthProvider):
    """Provider whose identity comes from an authenticated profile endpoint.

    A profile failure during ``authorize`` degrades to a minimal
    profile carrying the configured fallback id; calling
    ``fetch_profile`` directly raises ``ProfileFetchError``.
    """

    def _api_headers(self, access_token: str) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        headers.update(dict(self.config.request_headers))
        return headers

    async def fetch_profile(self, access_token: str) -> OAuthProfile:
        """Fetch the profile from ``config.profile_url``."""
        if not self.config.profile_url:
            return OAuthProfile(id=self.config.fallback_profile_id)

        try:
            client = await self._get_client()
            resp = await client.get(
                self.config.profile_url,
                headers=self._api_headers(access_token),
                timeout=self.timeouts.profile,
            )
        except httpx.HTTPError as exc:
            msg = f"Profile request failed: {exc}"
            raise ProfileFetchError(msg, provider=self.id) from exc

        if not resp.is_success:
            msg = f"Profile fetch failed: {resp.status_code}"
            raise ProfileFetchError(msg, provider=self.id, status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as exc:
            msg = "Profile endpoint returned invalid JSON"
            raise ProfileFetchError(msg, provider=self.id) from exc

        return self._profile_from_payload(data if isinstance(data, dict) else {})

    def _profile_from_payload(self, data: dict[str, Any]) -> OAuthProfile:
        """Map a profile payload to ``OAuthProfile``.

        Accepts flat ``{id, email, name}`` payloads as well as payloads
        nesting the user under ``account``.
        """
        account = data.get("account") if isinstance(data.get("account"), dict) else {}
        return OAuthProfile(
            id=(
                claim_str(data, "id")
                or claim_str(account, "uuid")
                or self.config.fallback_profile_id
            ),
            email=(
                claim_str(data, "email")
                or claim_str(account, "email_address")
                or claim_str(account, "email")
            ),
            name=(
                claim_str(data, "name")
                or claim_str(account, "full_name")
                or claim_str(account, "display_name")
            ),
        )

    async def resolve_profile(self, tokens: OAuthTokens) -> OAuthProfile:
        try:
            return await self.fetch_profile(tokens.access_token)
        except ProfileFetchError as exc:
            logger.warning("Profile fetch for %s failed, using minimal profile: %s", self.id, exc)
            return OAuthProfile(id=self.config.fallback_profile_id)


class JwtClaimsProvider(OAuthProvider):
    """Provider whose identity is read from the ``id_token`` claims.

    Parameters
    ----------
    config : ProviderConfig
        Static provider description.
    account_claim : tuple[str, ...]
        Claim path holding an account id, used when ``sub`` is absent.
    verify_id_token : bool
        Verify the ``id_token`` signature before trusting its claims
        (requires authlib and ``jwks_url``).
    jwks_url : str
        The issuer's key set, for verification.
    issuer : str
        Expected ``iss`` claim, for verification.
    **kwargs
        Passed to ``OAuthProvider``.
    """

    def __init__(
        self,
        config: ProviderConfig,
        account_claim: tuple[str, ...] = (),
        verify_id_token: bool = False,
        jwks_url: str = "",
        issuer: str = "",
        **kwargs: Any,
    ) -> None:
        """Initialize claims-based provider."""
        super().__init__(config, **kwargs)
        self.account_claim = account_claim
        self.verify_id_token = verify_id_token
        self.jwks_url = jwks_url
        self.issuer = issuer

    def profile_from_id_token(self, id_token: str | None) -> OAuthProfile:
        """Build a profile from unverified ``id_token`` claims. Never raises."""
        claims = decode_jwt_claims(id_token) or {}
        profile_id = claim_str(claims, "sub")
        if profile_id is None and self.account_claim:
            profile_id = claim_str(claims, *self.account_claim)
        return OAuthProfile(
            id=profile_id or self.config.fallback_profile_id,
            email=claim_str(claims, "email"),
            name=claim_str(claims, "name"),
        )

    async def fetch_profile(self, access_token: str) -> OAuthProfile:  # noqa: ARG002
        """Return a placeholder; identity is only available from the ``id_token``."""
        return OAuthProfile(id=self.config.fallback_profile_id)

    async def resolve_profile(self, tokens: OAuthTokens) -> OAuthProfile:
        if self.verify_id_token and tokens.id_token:
            client = await self._get_client()
            await verify_id_token(
                tokens.id_token,
                jwks_url=self.jwks_url,
                issuer=self.issuer,
                audience=self.config.client_id,
                http_client=client,
                timeout=self.timeouts.profile,
            )
        return self.profile_from_id_token(tokens.id_token)


class AnthropicProvider(ProfileEndpointProvider):
    """Anthropic (Claude) provider with preset endpoints.

    Parameters
    ----------
    settings : AnthropicSettings, optional
        Endpoint and client settings (defaults from the environment).
    **kwargs
        Passed to ``OAuthProvider``.
    """

    def __init__(self, settings: AnthropicSettings | None = None, **kwargs: Any) -> None:
        """Initialize Anthropic provider."""
        settings = settings or AnthropicSettings()
        config = ProviderConfig(
            id="anthropic",
            name=settings.name,
            icon=settings.icon,
            description=settings.description,
            authorize_url=settings.authorize_url,
            token_url=settings.token_url,
            client_id=settings.client_id,
            scopes=tuple(settings.scopes.split()),
            redirect_path=settings.redirect_path,
            profile_url=settings.profile_url,
            preferred_port=settings.preferred_port,
            verifier_bytes=32,
            token_body="json",
            send_state_in_exchange=True,
            extra_authorize_params=(("code", "true"),),
            fallback_profile_id="claude-user",
            request_headers=(
                ("anthropic-beta", settings.beta_header),
                ("User-Agent", settings.user_agent),
            ),
        )
        super().__init__(config, **kwargs)
        self.settings = settings

    def success_redirect_url(self, tokens: OAuthTokens) -> str | None:
        """Inference-only grants land on claude.ai, full grants on the console."""
        if tokens.scopes == ["user:inference"]:
            return self.settings.claude_ai_success_url
        return self.settings.console_success_url

    @property
    def error_redirect_url(self) -> str | None:
        """Failed exchanges land on the claude.ai page."""
        return self.settings.claude_ai_success_url

    async def create_api_key(self, tokens: OAuthTokens, name: str = "ailogin") -> str:
        """Create a console API key with an ``org:create_api_key`` grant.

        Returns
        -------
        str
            The new API key.

        Raises
        ------
        TokenExchangeError
            If the key endpoint fails or returns no key.
        """
        try:
            client = await self._get_client()
            resp = await client.post(
                self.settings.create_api_key_url,
                json={"name": name},
                headers=self._api_headers(tokens.access_token),
                timeout=self.timeouts.profile,
            )
        except httpx.HTTPError as exc:
            msg = f"API key request failed: {exc}"
            raise TokenExchangeError(msg, provider=self.id) from exc

        if not resp.is_success:
            msg = f"API key creation failed: {resp.status_code}"
            raise TokenExchangeError(
                msg, status_code=resp.status_code, body=resp.text, provider=self.id
            )
        try:
            api_key = resp.json().get("api_key")
        except (ValueError, AttributeError) as exc:
            msg = "API key endpoint returned an unexpected payload"
            raise TokenExchangeError(msg, provider=self.id) from exc
        if not api_key:
            msg = "API key endpoint returned no key"
            raise TokenExchangeError(msg, provider=self.id)
        return str(api_key)

    async def load_cli_credentials(self) -> OAuthTokens | None:
        """Read the Claude CLI's stored OAuth tokens.

        Returns None when the file is missing or malformed, or when the
        tokens expire within ten minutes.
        """
        return await asyncio.to_thread(
            read_claude_cli_credentials, Path(self.settings.cli_credentials_path)
        )


def read_claude_cli_credentials(path: Path, now: int | None = None) -> OAuthTokens | None:
    """Parse ``claudeAiOauth`` tokens from a Claude CLI credentials file."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        logger.debug("No readable Claude CLI credentials at %s", path)
        return None

    oauth = data.get("claudeAiOauth") if isinstance(data, dict) else None
    if not isinstance(oauth, dict):
        return None
    try:
        tokens = OAuthTokens.model_validate(oauth)
    except ValidationError:
        logger.warning("Ignoring malformed Claude CLI credentials at %s", path)
        return None

    deadline = (now_ms() if now is None else now) + CLI_CREDENTIALS_MIN_VALIDITY_MS
    if tokens.expires_at is not None and tokens.expires_at < deadline:
        logger.info("Claude CLI credentials at %s expire too soon to import", path)
        return None
    return tokens


class OpenAIProvider(JwtClaimsProvider):
    """OpenAI (ChatGPT) provider with preset endpoints.

    Parameters
    ----------
    settings : OpenAISettings, optional
        Endpoint and client settings (defaults from the environment).
    **kwargs
        Passed to ``OAuthProvider``.
    """

    ACCOUNT_CLAIM = ("https://api.openai.com/auth", "chatgpt_account_id")

    def __init__(self, settings: OpenAISettings | None = None, **kwargs: Any) -> None:
        """Initialize OpenAI provider."""
        settings = settings or OpenAISettings()
        config = ProviderConfig(
            id="openai",
            name=settings.name,
            icon=settings.icon,
            description=settings.description,
            authorize_url=settings.authorize_url,
            token_url=settings.token_url,
            client_id=settings.client_id,
            scopes=tuple(settings.scopes.split()),
            redirect_path=settings.redirect_path,
            preferred_port=settings.preferred_port,
            verifier_bytes=64,
            token_body="form",
            extra_authorize_params=(
                ("id_token_add_organizations", "true"),
                ("codex_cli_simplified_flow", "true"),
                ("originator", settings.originator),
            ),
            default_expires_in=settings.default_expires_in,
        )
        super().__init__(
            config,
            account_claim=self.ACCOUNT_CLAIM,
            verify_id_token=settings.verify_id_token,
            jwks_url=settings.jwks_url or f"{settings.issuer.rstrip('/')}/.well-known/jwks.json",
            issuer=settings.issuer,
            **kwargs,
        )
        self.settings = settings

    async def create_api_key(  # noqa: ARG002
        self, tokens: OAuthTokens, name: str = "ailogin"
    ) -> str:
        """Exchange the stored ``id_token`` for an API key (token-exchange grant).

        OpenAI does not name keys minted this way, so ``name`` is ignored.
        """
        if not tokens.id_token:
            msg = "No id_token stored; reconnect to create an API key"
            raise TokenExchangeError(msg, provider=self.id)

        data = {
            "grant_type": TOKEN_EXCHANGE_GRANT,
            "client_id": self.config.client_id,
            "requested_token": "openai-api-key",
            "subject_token": tokens.id_token,
            "subject_token_type": ID_TOKEN_TYPE,
        }
        try:
            resp = await self._post_token(data, self.timeouts.exchange)
        except httpx.HTTPError as exc:
            msg = f"API key exchange request failed: {exc}"
            raise TokenExchangeError(msg, provider=self.id) from exc

        if not resp.is_success:
            msg = f"API key exchange failed: {resp.status_code}"
            raise TokenExchangeError(
                msg, status_code=resp.status_code, body=resp.text, provider=self.id
            )
        raw = self._json_body(resp, TokenExchangeError)
        api_key = raw.get("access_token")
        if not api_key:
            msg = "API key exchange returned no key"
            raise TokenExchangeError(msg, provider=self.id)
        return str(api_key)


def create_providers_from_settings(
    settings: AILoginSettings, **kwargs: Any
) -> list[OAuthProvider]:
    """Create the enabled provider presets from settings.

    Parameters
    ----------
    settings : AILoginSettings
        The loaded configuration.
    **kwargs
        Passed to every provider (e.g. ``http_client``, ``open_browser``).

    Returns
    -------
    list[OAuthProvider]
        Providers in display order.
    """
    kwargs.setdefault("timeouts", settings.timeout)
    kwargs.setdefault("expiry_buffer_seconds", settings.expiry_buffer_seconds)

    providers: list[OAuthProvider] = []
    if settings.anthropic.enabled:
        providers.append(AnthropicProvider(settings.anthropic, **kwargs))
    if settings.openai.enabled:
        providers.append(OpenAIProvider(settings.openai, **kwargs))
    return providers
