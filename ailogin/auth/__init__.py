"""OAuth2 authorization for AI model providers.

Provides PKCE generation, the localhost callback listener, provider
plugins, token storage, and the OAuthManager facade.
"""

from __future__ import annotations

from .callback_server import OAuthCallbackServer
from .manager import OAuthManager
from .pkce import PkceCodes, generate_state
from .providers import (
    AnthropicProvider,
    JwtClaimsProvider,
    OAuthProvider,
    OpenAIProvider,
    ProfileEndpointProvider,
    create_providers_from_settings,
)
from .token_store import (
    JsonFileTokenStore,
    KeyringTokenStore,
    MemoryTokenStore,
    TokenStore,
    create_token_store,
)


__all__ = [
    "AnthropicProvider",
    "JsonFileTokenStore",
    "JwtClaimsProvider",
    "KeyringTokenStore",
    "MemoryTokenStore",
    "OAuthCallbackServer",
    "OAuthManager",
    "OAuthProvider",
    "OpenAIProvider",
    "PkceCodes",
    "ProfileEndpointProvider",
    "TokenStore",
    "create_providers_from_settings",
    "create_token_store",
    "generate_state",
]
