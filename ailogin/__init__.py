"""ailogin - OAuth sign-in for AI model providers from desktop processes.

Runs the OAuth 2.0 authorization code flow with PKCE through the system
browser and a transient localhost callback server, persists the issued
tokens, and refreshes them on demand.
"""

from __future__ import annotations

from .auth import (
    AnthropicProvider,
    JsonFileTokenStore,
    MemoryTokenStore,
    OAuthManager,
    OAuthProvider,
    OpenAIProvider,
    TokenStore,
)
from .config import AILoginSettings, get_settings
from .exceptions import (
    AILoginError,
    AuthenticationError,
    AuthFlowTimeout,
    StorageError,
    TokenError,
)
from .log import enable_debug, get_logger, set_level
from .models import (
    ConnectResult,
    DisconnectResult,
    ListResult,
    OAuthProfile,
    OAuthTokens,
)


__version__ = "0.1.0"

__all__ = [
    "AILoginError",
    "AILoginSettings",
    "AnthropicProvider",
    "AuthFlowTimeout",
    "AuthenticationError",
    "ConnectResult",
    "DisconnectResult",
    "JsonFileTokenStore",
    "ListResult",
    "MemoryTokenStore",
    "OAuthManager",
    "OAuthProfile",
    "OAuthProvider",
    "OAuthTokens",
    "OpenAIProvider",
    "StorageError",
    "TokenError",
    "TokenStore",
    "__version__",
    "enable_debug",
    "get_logger",
    "get_settings",
    "set_level",
]
