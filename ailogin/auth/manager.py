"""OAuth connection manager.

Provides OAuthManager, the facade the UI and IPC layer talk to. It
owns the provider registry and the token store, turns errors into
result objects at its boundary, and refreshes expired tokens
transparently when a caller asks for an access token.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging

from typing import TYPE_CHECKING, Any

from ..exceptions import (
    AILoginError,
    AuthenticationError,
    StorageError,
    UnknownProviderError,
)
from ..models import (
    ApiKeyResult,
    ConnectResult,
    DisconnectResult,
    ListResult,
    OAuthProviderStatus,
    StoredProviderData,
)
from .providers import create_providers_from_settings, now_ms
from .token_store import create_token_store


if TYPE_CHECKING:
    from collections.abc import Iterable

    from ..config import AILoginSettings
    from ..models import OAuthProfile, OAuthTokens
    from .providers import OAuthProvider
    from .token_store import TokenStore


logger = logging.getLogger("ailogin.auth")


def _error_message(exc: BaseException) -> str:
    """Bare message for result objects (no context suffix)."""
    if isinstance(exc, AILoginError):
        return exc.message
    return str(exc) or type(exc).__name__


class OAuthManager:
    """Registry of OAuth providers over one token store.

    Parameters
    ----------
    store : TokenStore
        Where connected accounts are persisted.
    providers : iterable of OAuthProvider
        Providers to register, in display order.
    """

    def __init__(self, store: TokenStore, providers: Iterable[OAuthProvider] = ()) -> None:
        """Initialize the OAuth manager."""
        self.store = store
        self._providers: dict[str, OAuthProvider] = {}
        for provider in providers:
            self.register(provider)

    @classmethod
    def from_settings(
        cls, settings: AILoginSettings | None = None, **provider_kwargs: Any
    ) -> OAuthManager:
        """Build a manager with the configured store and enabled presets.

        Parameters
        ----------
        settings : AILoginSettings, optional
            Loaded configuration (default: ``get_settings()``).
        **provider_kwargs : Any
            Passed to every provider (e.g. ``http_client``, ``open_browser``).
        """
        if settings is None:
            from ..config import get_settings

            settings = get_settings()
        store = create_token_store(settings.store)
        return cls(store, create_providers_from_settings(settings, **provider_kwargs))

    async def __aenter__(self) -> OAuthManager:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def register(self, provider: OAuthProvider) -> None:
        """Register ``provider``, replacing any provider with the same id."""
        if provider.id in self._providers:
            logger.debug("Replacing registered provider %s", provider.id)
        self._providers[provider.id] = provider

    def get_provider(self, provider_id: str) -> OAuthProvider:
        """Return the provider registered as ``provider_id``.

        Raises
        ------
        UnknownProviderError
            If no provider has that id.
        """
        try:
            return self._providers[provider_id]
        except KeyError:
            msg = f"Unknown provider: {provider_id}"
            raise UnknownProviderError(msg, provider=provider_id) from None

    @property
    def provider_ids(self) -> list[str]:
        """Registered provider ids, in registration order."""
        return list(self._providers)

    async def list(self) -> ListResult:
        """Describe every registered provider and its connection.

        Reads the store once and never refreshes or writes.
        """
        data = await self.store.load()
        current = now_ms()
        statuses = []
        for provider in self._providers.values():
            record = data.providers.get(provider.id)
            status = OAuthProviderStatus(
                id=provider.id,
                name=provider.config.name,
                icon=provider.config.icon,
                description=provider.config.description,
                connected=record is not None,
            )
            if record is not None:
                status.profile = record.profile
                status.expires_at = record.tokens.expires_at
                status.is_expired = provider.is_expired(record.tokens, current)
            statuses.append(status)
        return ListResult(providers=statuses)

    async def connect(self, provider_id: str) -> ConnectResult:
        """Run the provider's browser flow and persist the result.

        Never raises; failures come back as ``success=False`` with the
        error message. Storage is only written after a successful
        exchange.
        """
        try:
            provider = self.get_provider(provider_id)
            result = await provider.authorize()
            await self._persist(provider_id, result.tokens, result.profile)
        except Exception as exc:  # noqa: BLE001
            return self._connect_failed(provider_id, exc)

        logger.info("Connected %s as %s", provider_id, result.profile.id)
        return ConnectResult(success=True, profile=result.profile)

    async def import_cli_credentials(self, provider_id: str) -> ConnectResult:
        """Connect using tokens left by the provider's own CLI.

        Never raises; see ``connect``.
        """
        try:
            provider = self.get_provider(provider_id)
            tokens = await provider.load_cli_credentials()
            if tokens is None:
                return ConnectResult(success=False, error="No valid CLI credentials found")
            profile = await provider.resolve_profile(tokens)
            await self._persist(provider_id, tokens, profile)
        except Exception as exc:  # noqa: BLE001
            return self._connect_failed(provider_id, exc)

        logger.info("Imported CLI credentials for %s", provider_id)
        return ConnectResult(success=True, profile=profile)

    def _connect_failed(self, provider_id: str, exc: Exception) -> ConnectResult:
        if isinstance(exc, AILoginError):
            logger.warning("Connecting %s failed: %s", provider_id, exc)
        else:
            logger.exception("Unexpected error connecting %s", provider_id)
        return ConnectResult(success=False, error=_error_message(exc))

    async def _persist(
        self, provider_id: str, tokens: OAuthTokens, profile: OAuthProfile
    ) -> None:
        record = StoredProviderData(tokens=tokens, profile=profile, connected_at=now_ms())
        await self.store.save_provider(provider_id, record)

    async def disconnect(self, provider_id: str) -> DisconnectResult:
        """Forget the stored account for ``provider_id``.

        Idempotent: disconnecting an absent account succeeds. Tokens
        are not revoked at the provider.
        """
        try:
            removed = await self.store.remove_provider(provider_id)
        except StorageError as exc:
            logger.warning("Disconnecting %s failed: %s", provider_id, exc)
            return DisconnectResult(success=False, error=exc.message)

        if removed:
            logger.info("Disconnected %s", provider_id)
        return DisconnectResult(success=True)

    async def get_access_token(self, provider_id: str) -> str | None:
        """Return a usable access token, refreshing it if needed.

        Returns None (without any network call) for unknown or
        unconnected providers. An expired token is refreshed when a
        refresh token is stored; without one the stored token is
        returned as-is. A refreshed token set replaces the stored tokens
        while profile and ``connectedAt`` are kept. Returns None when the
        refresh fails or its result cannot be saved.
        """
        provider = self._providers.get(provider_id)
        if provider is None:
            return None
        record = await self.store.get_provider(provider_id)
        if record is None:
            return None
        if not provider.is_expired(record.tokens):
            return record.tokens.access_token

        refresh_token = record.tokens.refresh_token
        if not refresh_token:
            logger.debug("%s token is expiring and cannot be refreshed", provider_id)
            return record.tokens.access_token

        try:
            tokens = await provider.refresh_token(refresh_token)
        except AuthenticationError as exc:
            logger.warning("Refreshing %s token failed: %s", provider_id, exc)
            return None

        if tokens.id_token is None and record.tokens.id_token is not None:
            tokens.id_token = record.tokens.id_token
        try:
            await self.store.save_provider(
                provider_id, record.model_copy(update={"tokens": tokens})
            )
        except StorageError as exc:
            logger.warning("Refreshed %s token could not be saved: %s", provider_id, exc)
            return None

        logger.debug("Refreshed %s access token", provider_id)
        return tokens.access_token

    async def create_api_key(self, provider_id: str, name: str = "ailogin") -> ApiKeyResult:
        """Mint a long-lived API key from the stored grant.

        Never raises; failures come back as ``success=False``.
        """
        try:
            provider = self.get_provider(provider_id)
            if await self.get_access_token(provider_id) is None:
                return ApiKeyResult(success=False, error=f"Not connected: {provider_id}")
            record = await self.store.get_provider(provider_id)
            if record is None:
                return ApiKeyResult(success=False, error=f"Not connected: {provider_id}")
            api_key = await provider.create_api_key(record.tokens, name)
        except AILoginError as exc:
            logger.warning("Creating %s API key failed: %s", provider_id, exc)
            return ApiKeyResult(success=False, error=exc.message)

        logger.info("Created %s API key %r", provider_id, name)
        return ApiKeyResult(success=True, api_key=api_key)

    async def close(self) -> None:
        """Close the HTTP clients of all registered providers."""
        for provider in self._providers.values():
            await provider.close()
