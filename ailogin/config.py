"""Configuration system for ailogin using pydantic-settings.

Supports layered configuration:
1. Built-in defaults (lowest priority)
2. pyproject.toml [tool.ailogin] section (project-level)
3. ./ailogin.toml (project-level, explicit)
4. ~/.config/ailogin/config.toml (user-level, overrides project)
5. Environment variables (highest priority)

Environment variables use AILOGIN_ prefix with nested delimiter __.
Example: AILOGIN_OPENAI__CLIENT_ID, AILOGIN_TIMEOUT__AUTHORIZE
"""

from __future__ import annotations

import os
import sys

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


def _find_config_files() -> list[Path]:
    """Find all configuration files in order of precedence (lowest first)."""
    files = []

    pyproject = Path("pyproject.toml")
    if pyproject.exists():
        files.append(pyproject)

    ailogin_toml = Path("ailogin.toml")
    if ailogin_toml.exists():
        files.append(ailogin_toml)

    if sys.platform == "win32":
        user_config = Path(os.environ.get("APPDATA", "~")) / "ailogin" / "config.toml"
    else:
        user_config = Path("~/.config/ailogin/config.toml")
    user_config = user_config.expanduser()
    if user_config.exists():
        files.append(user_config)

    env_config = os.environ.get("AILOGIN_CONFIG_FILE")
    if env_config:
        env_path = Path(env_config)
        if env_path.exists():
            files.append(env_path)

    return files


def _load_toml_config() -> dict[str, Any]:
    """Load and merge all TOML configuration files."""
    merged: dict[str, Any] = {}

    for config_file in _find_config_files():
        try:
            data = tomllib.loads(config_file.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError):
            continue

        if config_file.name == "pyproject.toml":
            data = data.get("tool", {}).get("ailogin", {})

        merged = _deep_merge(merged, data)

    return merged


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _default_store_path() -> str:
    return str(Path("~/.ailogin/oauth.json").expanduser())


class AnthropicSettings(BaseSettings):
    """Anthropic (Claude) provider endpoints and client settings.

    Environment prefix: AILOGIN_ANTHROPIC__
    Example: AILOGIN_ANTHROPIC__CLIENT_ID=your-client-id

    TOML section: [tool.ailogin.anthropic]
    """

    model_config = SettingsConfigDict(
        env_prefix="AILOGIN_ANTHROPIC__",
        extra="ignore",
    )

    enabled: bool = Field(default=True, description="Register the provider with the manager")
    name: str = "Claude"
    icon: str = "anthropic"
    description: str = "Anthropic AI Assistant"
    client_id: str = "9d1c250a-e61b-44d9-88ed-5944d1962f5e"
    authorize_url: str = "https://claude.ai/oauth/authorize"
    token_url: str = "https://console.anthropic.com/v1/oauth/token"  # noqa: S105
    profile_url: str = "https://api.claude.ai/api/profile"
    create_api_key_url: str = "https://api.anthropic.com/api/oauth/claude_cli/create_api_key"
    console_success_url: str = "https://console.anthropic.com/oauth/code/success?app=claude-code"
    claude_ai_success_url: str = "https://claude.ai/oauth/code/success?app=claude-code"
    scopes: str = Field(
        default="org:create_api_key user:profile user:inference",
        description="Space-separated OAuth2 scopes to request",
    )
    redirect_path: str = "/callback"
    preferred_port: int | None = Field(
        default=None,
        ge=1,
        le=65535,
        description="Fixed callback port (unset for an ephemeral port)",
    )
    cli_credentials_path: str = Field(
        default_factory=lambda: str(Path("~/.claude/.credentials.json").expanduser()),
        description="Claude CLI credentials file used by `ailogin import-cli`",
    )
    beta_header: str = "oauth-2025-04-20"
    user_agent: str = "claude-code/2.0.25"


class OpenAISettings(BaseSettings):
    """OpenAI provider endpoints and client settings.

    Environment prefix: AILOGIN_OPENAI__
    Example: AILOGIN_OPENAI__PREFERRED_PORT=1455

    TOML section: [tool.ailogin.openai]
    """

    model_config = SettingsConfigDict(
        env_prefix="AILOGIN_OPENAI__",
        extra="ignore",
    )

    enabled: bool = Field(default=True, description="Register the provider with the manager")
    name: str = "OpenAI"
    icon: str = "openai"
    description: str = "OpenAI ChatGPT"
    client_id: str = "app_EMoamEEZ73f0CkXaXp7hrann"
    issuer: str = "https://auth.openai.com"
    scopes: str = Field(
        default="openid profile email offline_access",
        description="Space-separated OAuth2 scopes to request",
    )
    redirect_path: str = "/auth/callback"
    preferred_port: int | None = Field(
        default=1455,
        ge=1,
        le=65535,
        description="Fixed callback port; falls back to an ephemeral port when busy",
    )
    originator: str = "codex_cli_rs"
    default_expires_in: int = Field(
        default=3600,
        ge=60,
        description="Token lifetime assumed when the token endpoint omits expires_in",
    )
    verify_id_token: bool = Field(
        default=False,
        description="Verify the id_token signature against the issuer JWKS (requires authlib)",
    )
    jwks_url: str = ""

    @property
    def authorize_url(self) -> str:
        """Authorization endpoint derived from the issuer."""
        return f"{self.issuer.rstrip('/')}/oauth/authorize"

    @property
    def token_url(self) -> str:
        """Token endpoint derived from the issuer."""
        return f"{self.issuer.rstrip('/')}/oauth/token"


class StoreSettings(BaseSettings):
    """Token store settings.

    Environment prefix: AILOGIN_STORE__
    Example: AILOGIN_STORE__BACKEND=keyring
    """

    model_config = SettingsConfigDict(
        env_prefix="AILOGIN_STORE__",
        extra="ignore",
    )

    backend: Literal["file", "memory", "keyring"] = Field(
        default="file",
        description="Token storage backend: file, memory, or keyring",
    )
    path: str = Field(
        default_factory=_default_store_path,
        description="JSON document used by the file backend",
    )
    keyring_service: str = Field(
        default="ailogin-oauth",
        description="Service name used by the keyring backend",
    )


class TimeoutSettings(BaseSettings):
    """Timeout settings in seconds.

    Environment prefix: AILOGIN_TIMEOUT__
    Example: AILOGIN_TIMEOUT__AUTHORIZE=120
    """

    model_config = SettingsConfigDict(
        env_prefix="AILOGIN_TIMEOUT__",
        extra="ignore",
    )

    authorize: float = Field(default=300.0, gt=0, description="Wait for the browser callback")
    exchange: float = Field(default=30.0, gt=0, description="Authorization code exchange")
    refresh: float = Field(default=10.0, gt=0, description="Refresh token request")
    profile: float = Field(default=10.0, gt=0, description="Profile and API-key requests")


class LogSettings(BaseSettings):
    """Logging settings.

    Environment prefix: AILOGIN_LOG__
    Example: AILOGIN_LOG__LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="AILOGIN_LOG__",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"


class AILoginSettings(BaseSettings):
    """Main settings aggregating all configuration sections.

    Environment prefix: AILOGIN__

    Configuration sources (in order of precedence):
    1. Built-in defaults
    2. pyproject.toml [tool.ailogin] section
    3. ./ailogin.toml (project-level)
    4. ~/.config/ailogin/config.toml (user-level, overrides project)
    5. Environment variables (highest priority)
    """

    model_config = SettingsConfigDict(
        env_prefix="AILOGIN__",
        env_nested_delimiter="__",
        extra="ignore",
    )

    anthropic: AnthropicSettings = Field(default_factory=AnthropicSettings)
    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    timeout: TimeoutSettings = Field(default_factory=TimeoutSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    expiry_buffer_seconds: int = Field(
        default=300,
        ge=0,
        description="Tokens expiring within this window are treated as expired",
    )

    def __init__(self, **data: Any) -> None:
        toml_config = _load_toml_config()
        merged = _deep_merge(toml_config, data)
        super().__init__(**merged)

    def to_env(self) -> str:
        """Export settings as shell environment variables."""
        lines = [
            "# ailogin Environment Variables",
            "# Generated by: ailogin config --env",
            "",
        ]

        for attr_name in ("anthropic", "openai", "store", "timeout", "log"):
            section_data = getattr(self, attr_name).model_dump()
            for field_name, field_value in section_data.items():
                env_name = f"AILOGIN_{attr_name.upper()}__{field_name.upper()}"
                if isinstance(field_value, bool):
                    value_str = "true" if field_value else "false"
                elif field_value is None:
                    value_str = ""
                else:
                    value_str = str(field_value)
                lines.append(f'export {env_name}="{value_str}"')

        return "\n".join(lines)

    def show(self) -> str:
        """Format settings as a readable table."""
        lines = ["ailogin Configuration", "=" * 60, ""]

        show_sections = [
            ("Anthropic", "anthropic"),
            ("OpenAI", "openai"),
            ("Token Store", "store"),
            ("Timeouts", "timeout"),
            ("Logging", "log"),
        ]

        for display_name, attr_name in show_sections:
            lines.append(f"\n{display_name}")
            lines.append("-" * 40)
            for field_name, field_value in getattr(self, attr_name).model_dump().items():
                value_str = str(field_value)
                if len(value_str) > 50:
                    value_str = value_str[:47] + "..."
                lines.append(f"  {field_name:22} = {value_str}")

        lines.append(f"\n  {'expiry_buffer_seconds':22} = {self.expiry_buffer_seconds}")
        return "\n".join(lines)


@lru_cache(maxsize=1)
def get_settings() -> AILoginSettings:
    """Get the global settings instance (cached).

    Call clear_settings() to reload configuration.
    """
    return AILoginSettings()


def clear_settings() -> None:
    """Clear the cached settings to force reload."""
    get_settings.cache_clear()


def reload_settings() -> AILoginSettings:
    """Reload settings from all sources."""
    clear_settings()
    return get_settings()
