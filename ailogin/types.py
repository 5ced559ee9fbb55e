"""Shared type definitions for ailogin.

Static provider descriptions and in-flight flow results. Persisted
and wire-level structures live in :mod:`ailogin.models`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Literal


if TYPE_CHECKING:
    from .models import OAuthProfile, OAuthTokens


@dataclass(frozen=True)
class ProviderConfig:
    """Static description of one OAuth provider.

    Attributes
    ----------
    id : str
        Stable provider id used as the token store key.
    name : str
        Display name.
    icon : str
        Icon key for the UI.
    description : str
        One-line description for the UI.
    authorize_url : str
        Authorization endpoint.
    token_url : str
        Token endpoint (code exchange and refresh).
    client_id : str
        Public OAuth2 client id.
    scopes : tuple[str, ...]
        Requested scopes, in order.
    redirect_path : str
        Path of the localhost callback (e.g. ``/callback``).
    profile_url : str or None
        Profile endpoint, if the provider has one.
    preferred_port : int or None
        Fixed callback port; ``None`` binds an ephemeral port.
    verifier_bytes : int
        Random bytes behind the PKCE code verifier (32 or 64).
    token_body : {"json", "form"}
        Encoding of token endpoint request bodies.
    send_state_in_exchange : bool
        Whether ``state`` is echoed in the code exchange body.
    extra_authorize_params : tuple[tuple[str, str], ...]
        Provider-specific authorization URL parameters.
    default_expires_in : int or None
        Lifetime assumed when the token response omits ``expires_in``.
    fallback_profile_id : str
        Profile id used when no identity can be determined.
    request_headers : tuple[tuple[str, str], ...]
        Extra headers sent on profile and API calls.
    """

    id: str
    name: str
    icon: str
    description: str
    authorize_url: str
    token_url: str
    client_id: str
    scopes: tuple[str, ...] = ()
    redirect_path: str = "/callback"
    profile_url: str | None = None
    preferred_port: int | None = None
    verifier_bytes: int = 64
    token_body: Literal["json", "form"] = "form"
    send_state_in_exchange: bool = False
    extra_authorize_params: tuple[tuple[str, str], ...] = ()
    default_expires_in: int | None = None
    fallback_profile_id: str = "unknown"
    request_headers: tuple[tuple[str, str], ...] = field(default=())


@dataclass
class AuthorizationResult:
    """Outcome of a successful ``OAuthProvider.authorize`` call."""

    tokens: OAuthTokens
    profile: OAuthProfile


class FlowState(str, Enum):
    """State of a single callback listener.

    A listener starts in ``LISTENING`` and moves forward only:
    ``LISTENING -> RECEIVED -> RESOLVED | REJECTED`` or
    ``LISTENING -> REJECTED`` on timeout.
    """

    LISTENING = "listening"
    RECEIVED = "received"
    RESOLVED = "resolved"
    REJECTED = "rejected"
