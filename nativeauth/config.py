"""Configuration system for nativeauth using pydantic-settings.

Supports layered configuration (lowest priority first):
1. Built-in defaults
2. pyproject.toml [tool.nativeauth] section (project-level)
3. ./nativeauth.toml (project-level, explicit)
4. The file named by NATIVEAUTH_CONFIG_FILE
5. Environment variables
6. Keyword arguments passed to NativeAuthSettings()

Environment variables use the NATIVEAUTH_ prefix with nested delimiter __.
Example: NATIVEAUTH_OAUTH2__CLIENT_ID, NATIVEAUTH_LOG__LEVEL
"""

from __future__ import annotations

import logging
import os
import tomllib

from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


if TYPE_CHECKING:
    from pydantic.fields import FieldInfo


logger = logging.getLogger("nativeauth.config")


def _find_config_files() -> list[Path]:
    """Find all configuration files in order of precedence (lowest first)."""
    files = []

    # Project-level pyproject.toml [tool.nativeauth] (lowest file priority)
    pyproject = Path("pyproject.toml")
    if pyproject.exists():
        files.append(pyproject)

    explicit = Path("nativeauth.toml")
    if explicit.exists():
        files.append(explicit)

    # Environment variable override for config file (highest file priority)
    env_config = os.environ.get("NATIVEAUTH_CONFIG_FILE")
    if env_config:
        env_path = Path(env_config).expanduser()
        if env_path.exists():
            files.append(env_path)
        else:
            logger.warning("NATIVEAUTH_CONFIG_FILE points to a missing file: %s", env_path)

    return files


def _load_toml_config() -> dict[str, Any]:
    """Load and merge all TOML configuration files."""
    merged: dict[str, Any] = {}

    for config_file in _find_config_files():
        try:
            data = tomllib.loads(config_file.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            logger.warning("Ignoring unreadable config file %s: %s", config_file, exc)
            continue

        # Handle pyproject.toml [tool.nativeauth] section
        if config_file.name == "pyproject.toml":
            data = data.get("tool", {}).get("nativeauth", {})

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


class _TomlConfigSource(PydanticBaseSettingsSource):
    """Settings source backed by the merged TOML configuration files."""

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        """Unused; values are provided wholesale by ``__call__``."""
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        """Return the merged TOML data."""
        return _load_toml_config()


# Field names that contain sensitive data and must be redacted in output.
_SENSITIVE_FIELDS: set[str] = {"client_secret"}

_REDACTED = "********"

_TOML_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\b": "\\b",
    "\t": "\\t",
    "\n": "\\n",
    "\f": "\\f",
    "\r": "\\r",
}


def _toml_string(value: str) -> str:
    """Quote ``value`` as a TOML basic string."""
    escaped = "".join(
        _TOML_ESCAPES.get(ch) or (f"\\u{ord(ch):04x}" if ch < " " or ch == "\x7f" else ch)
        for ch in value
    )
    return f'"{escaped}"'


class OAuth2Settings(BaseSettings):
    """OAuth2 client configuration.

    Environment prefix: NATIVEAUTH_OAUTH2__
    Example: NATIVEAUTH_OAUTH2__CLIENT_ID=your-client-id
    Example: NATIVEAUTH_OAUTH2__PROVIDER=google

    TOML section: [oauth2] (or [tool.nativeauth.oauth2] in pyproject.toml)
    """

    model_config = SettingsConfigDict(
        env_prefix="NATIVEAUTH_OAUTH2__",
        extra="ignore",
    )

    # Provider selection
    provider: Literal["microsoft", "google", "facebook", "custom"] = Field(
        default="custom",
        description="Identity provider: microsoft, google, facebook, or custom",
    )

    # Client credentials
    client_id: str = Field(
        default="",
        description="OAuth2 client ID from the provider",
    )
    client_secret: str = Field(
        default="",
        description="OAuth2 client secret (empty for public clients)",
    )

    scopes: str = Field(
        default="",
        description="Space-separated OAuth2 scopes to request",
    )
    login_hint: str = Field(
        default="",
        description="Account hint forwarded to the provider's sign-in page",
    )

    # Endpoint URLs (required for custom provider)
    authorize_url: str = Field(
        default="",
        description="Authorization endpoint URL (required for custom provider)",
    )
    token_url: str = Field(
        default="",
        description="Token exchange endpoint URL (required for custom provider)",
    )

    # Provider-specific
    tenant_id: str = Field(
        default="common",
        description="Azure AD tenant ID (for Microsoft provider)",
    )

    # Redirect listener
    redirect_host: str = Field(
        default="localhost",
        description="Host name used in the redirect URI",
    )
    redirect_port: int = Field(
        default=6502,
        ge=0,
        le=65535,
        description="Loopback port registered as the redirect URI",
    )

    # Timeouts
    auth_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Maximum seconds to wait for the browser callback",
    )
    exchange_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Token endpoint request timeout in seconds",
    )

    @field_validator("provider", mode="before")
    @classmethod
    def _normalize_provider(cls, v: Any) -> Any:
        """Accept provider names in any case."""
        return v.strip().lower() if isinstance(v, str) else v

    @property
    def scope_list(self) -> list[str]:
        """Configured scopes as a list."""
        return self.scopes.split()


class LogSettings(BaseSettings):
    """Logging settings.

    Environment prefix: NATIVEAUTH_LOG__
    Example: NATIVEAUTH_LOG__LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="NATIVEAUTH_LOG__",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, v: Any) -> Any:
        """Accept level names in any case."""
        return v.upper() if isinstance(v, str) else v


class NativeAuthSettings(BaseSettings):
    """Main settings aggregating all configuration sections.

    Environment prefix: NATIVEAUTH_

    Configuration sources (in order of precedence):
    1. Built-in defaults
    2. pyproject.toml [tool.nativeauth] section
    3. ./nativeauth.toml
    4. NATIVEAUTH_CONFIG_FILE
    5. Environment variables
    6. Keyword arguments
    """

    model_config = SettingsConfigDict(
        env_prefix="NATIVEAUTH_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    oauth2: OAuth2Settings = Field(default_factory=OAuth2Settings)
    log: LogSettings = Field(default_factory=LogSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Place TOML files below environment variables."""
        return (init_settings, env_settings, _TomlConfigSource(settings_cls))

    def _sections(self) -> dict[str, dict[str, Any]]:
        """Dump each section with sensitive fields excluded."""
        sections = ("oauth2", "log")
        return self.model_dump(exclude=dict.fromkeys(sections, _SENSITIVE_FIELDS))  # type: ignore[arg-type]

    def to_toml(self) -> str:
        """Export settings as a TOML string with secrets redacted."""
        lines = ["# nativeauth configuration", "# Generated by: nativeauth config --toml", ""]
        for section_name, section_data in self._sections().items():
            lines.append(f"[{section_name}]")
            for field_name, field_value in section_data.items():
                if isinstance(field_value, str):
                    value_str = _toml_string(field_value)
                else:
                    value_str = str(field_value)
                lines.append(f"{field_name} = {value_str}")
            section_cls = type(getattr(self, section_name))
            lines.extend(
                f'{rn} = "{_REDACTED}"'
                for rn in sorted(_SENSITIVE_FIELDS & section_cls.model_fields.keys())
            )
            lines.append("")
        return "\n".join(lines)

    def show(self) -> str:
        """Format settings as a readable table with secrets redacted."""
        lines = ["nativeauth Configuration", "=" * 60]
        titles = {"oauth2": "OAuth2 Client", "log": "Logging"}
        for section_name, section_data in self._sections().items():
            lines.append(f"\n{titles[section_name]}")
            lines.append("-" * 40)
            for field_name, field_value in section_data.items():
                lines.append(f"  {field_name:24} = {field_value}")
            section_cls = type(getattr(self, section_name))
            lines.extend(
                f"  {rn:24} = {_REDACTED}"
                for rn in sorted(_SENSITIVE_FIELDS & section_cls.model_fields.keys())
            )
        return "\n".join(lines)


@lru_cache(maxsize=1)
def get_settings() -> NativeAuthSettings:
    """Get the global settings instance (cached).

    Call clear_settings() to reload configuration.
    """
    return NativeAuthSettings()


def clear_settings() -> None:
    """Clear the cached settings to force reload."""
    get_settings.cache_clear()


def reload_settings() -> NativeAuthSettings:
    """Reload settings from all sources."""
    clear_settings()
    return get_settings()
