"""Pydantic models for persisted OAuth state and manager results.

Field names are snake_case in Python and camelCase on the wire,
matching the on-disk document and the IPC payloads.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict:
        """Dump to a camelCase dict, omitting unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


class OAuthTokens(_CamelModel):
    """Token set issued by a provider.

    ``expires_at`` is an absolute epoch-milliseconds timestamp; ``None``
    means the token never expires.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str
    refresh_token: str | None = None
    id_token: str | None = None
    expires_at: int | None = None
    scopes: list[str] | None = None


class OAuthProfile(_CamelModel):
    """User identity as reported by a provider."""

    model_config = ConfigDict(extra="allow")

    id: str
    email: str | None = None
    name: str | None = None
    avatar: str | None = None


class StoredProviderData(_CamelModel):
    """Everything persisted for one connected provider."""

    model_config = ConfigDict(extra="allow")

    tokens: OAuthTokens
    profile: OAuthProfile
    connected_at: int


class OAuthStorageData(_CamelModel):
    """The whole token store document.

    Keys are provider ids; ids with no registered provider are kept
    as-is so older or newer builds sharing the file do not lose data.
    """

    model_config = ConfigDict(extra="allow")

    providers: dict[str, StoredProviderData] = Field(default_factory=dict)


class OAuthProviderStatus(_CamelModel):
    """Read-only view of one provider for the UI."""

    id: str
    name: str
    icon: str
    description: str
    connected: bool
    profile: OAuthProfile | None = None
    expires_at: int | None = None
    is_expired: bool = False


class ListResult(_CamelModel):
    """Result of ``OAuthManager.list``."""

    providers: list[OAuthProviderStatus] = Field(default_factory=list)


class ConnectResult(_CamelModel):
    """Result of ``OAuthManager.connect``."""

    success: bool
    profile: OAuthProfile | None = None
    error: str | None = None


class DisconnectResult(_CamelModel):
    """Result of ``OAuthManager.disconnect``."""

    success: bool
    error: str | None = None


class ApiKeyResult(_CamelModel):
    """Result of ``OAuthManager.create_api_key``."""

    success: bool
    api_key: str | None = None
    error: str | None = None


class ProviderRequest(_CamelModel):
    """IPC request naming a provider (``{"providerId": ...}``)."""

    provider_id: str = Field(min_length=1)
