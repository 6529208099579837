"""Configuration system for socialgate using pydantic-settings.

Supports layered configuration:
1. Built-in defaults (lowest priority)
2. pyproject.toml [tool.socialgate] section (project-level)
3. ./socialgate.toml (project-level, explicit)
4. ~/.config/socialgate/config.toml (user-level, overrides project)
5. $SOCIALGATE_CONFIG_FILE (explicit file, overrides user-level)
6. Environment variables (highest priority)

Environment variables use the SOCIALGATE__ prefix with nested delimiter __.
Example: SOCIALGATE__PROVIDERS__GOOGLE__CLIENT_ID, SOCIALGATE__SESSION__LIFETIME
"""

from __future__ import annotations

import os
import sys

from collections.abc import Callable, Mapping
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib  # type: ignore[import-not-found]
    except ImportError:
        tomllib = None


#: Provider sections present even when no configuration mentions them.
DEFAULT_PROVIDER_NAMES: tuple[str, ...] = ("google", "github")


def _find_config_files() -> list[Path]:
    """Find all configuration files in order of precedence (lowest first)."""
    files = []

    # Project-level pyproject.toml [tool.socialgate] (lowest file priority)
    pyproject = Path("pyproject.toml")
    if pyproject.exists():
        files.append(pyproject)

    # Explicit socialgate.toml (project-level)
    project_toml = Path("socialgate.toml")
    if project_toml.exists():
        files.append(project_toml)

    # User-level config (overrides project configs)
    if sys.platform == "win32":
        user_config = Path(os.environ.get("APPDATA", "~")) / "socialgate" / "config.toml"
    else:
        user_config = Path("~/.config/socialgate/config.toml")
    user_config = user_config.expanduser()
    if user_config.exists():
        files.append(user_config)

    # Environment variable override for config file (highest file priority)
    env_config = os.environ.get("SOCIALGATE_CONFIG_FILE")
    if env_config:
        env_path = Path(env_config)
        if env_path.exists():
            files.append(env_path)

    return files


def _load_toml_config() -> dict[str, Any]:
    """Load and merge all TOML configuration files."""
    if tomllib is None:
        return {}

    merged: dict[str, Any] = {}

    for config_file in _find_config_files():
        try:
            data = tomllib.loads(config_file.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError):
            continue  # Unreadable or invalid files are skipped

        # Handle pyproject.toml [tool.socialgate] section
        if config_file.name == "pyproject.toml":
            data = data.get("tool", {}).get("socialgate", {})

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


def _split_csv(v: Any) -> list[str]:
    if isinstance(v, str):
        return [s.strip() for s in v.split(",") if s.strip()]
    return v or []


# Field names that contain sensitive data and must be redacted in output.
_SENSITIVE_FIELDS: set[str] = {
    "client_secret",
    "redis_url",
}

_REDACTED = "********"


class ProviderSettings(BaseModel):
    """Credentials and switches for one social provider.

    TOML section: [tool.socialgate.providers.<name>]
    Example: SOCIALGATE__PROVIDERS__GITHUB__CLIENT_ID=abc123

    Unknown keys are kept and passed through to the provider's config, so
    custom providers can declare their own required keys.
    """

    model_config = ConfigDict(extra="allow")

    client_id: str = Field(default="", description="OAuth client ID from the provider")
    client_secret: str = Field(default="", description="OAuth client secret")
    redirect: str = Field(
        default="",
        description="Absolute callback URL registered with the provider",
    )
    enabled: bool = Field(default=False, description="Offer this provider for sign-in")
    scopes: str = Field(
        default="",
        description="Space-separated scopes (empty uses the provider's defaults)",
    )


class SessionSettings(BaseSettings):
    """Session lifetime, cookie and storage settings.

    Environment prefix: SOCIALGATE_SESSION__
    Example: SOCIALGATE_SESSION__LIFETIME=480
    """

    model_config = SettingsConfigDict(
        env_prefix="SOCIALGATE_SESSION__",
        extra="ignore",
    )

    lifetime: int = Field(
        default=120,
        ge=1,
        description="Session lifetime in minutes",
    )
    cookie: str = Field(default="socialgate_session", description="Session cookie name")
    secure_cookie: bool = Field(
        default=False,
        description="Only send the session cookie over HTTPS",
    )
    same_site: Literal["lax", "strict", "none"] = "lax"
    backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="Session storage backend: 'memory' (single process) or 'redis'",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for the redis backend",
    )
    redis_prefix: str = Field(default="socialgate", description="Key prefix for Redis keys")
    redis_pool_size: int = Field(default=10, ge=1, le=100)


class DirectorySettings(BaseSettings):
    """User directory storage settings.

    Environment prefix: SOCIALGATE_DIRECTORY__
    Example: SOCIALGATE_DIRECTORY__BACKEND=redis
    """

    model_config = SettingsConfigDict(
        env_prefix="SOCIALGATE_DIRECTORY__",
        extra="ignore",
    )

    backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    redis_prefix: str = "socialgate"
    redis_pool_size: int = Field(default=10, ge=1, le=100)


class FlowSettings(BaseSettings):
    """Redirect targets and protections of the authentication flows.

    Environment prefix: SOCIALGATE_FLOW__
    Example: SOCIALGATE_FLOW__HOME_PATH=/app
    """

    model_config = SettingsConfigDict(
        env_prefix="SOCIALGATE_FLOW__",
        extra="ignore",
    )

    login_path: str = Field(default="/login", description="Where failed sign-ins land")
    home_path: str = Field(
        default="/dashboard",
        description="Where successful sign-ins land when no intended URL is stored",
    )
    logout_redirect: str = Field(default="/", description="Where logouts land")
    login_rate_limit: int = Field(
        default=10,
        ge=1,
        description="Maximum sign-in redirects per client IP within the window",
    )
    login_rate_window: float = Field(
        default=60.0,
        gt=0,
        description="Rate limit window in seconds",
    )
    trusted_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Extra origins allowed to POST to state-changing endpoints",
    )

    @field_validator("trusted_origins", mode="before")
    @classmethod
    def parse_comma_separated(cls, v: Any) -> list[str]:
        """Parse comma-separated strings from env vars."""
        return _split_csv(v)


class LogSettings(BaseSettings):
    """Logging settings.

    Environment prefix: SOCIALGATE_LOG__
    Example: SOCIALGATE_LOG__LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="SOCIALGATE_LOG__",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    format: str = "%(name)s - %(levelname)s - %(message)s"


def _default_providers() -> dict[str, ProviderSettings]:
    return {name: ProviderSettings() for name in DEFAULT_PROVIDER_NAMES}


class SocialGateSettings(BaseSettings):
    """Main settings aggregating all configuration sections.

    Environment prefix: SOCIALGATE__

    Configuration sources (in order of precedence):
    1. Built-in defaults
    2. pyproject.toml [tool.socialgate] section
    3. ./socialgate.toml (project-level)
    4. ~/.config/socialgate/config.toml (user-level, overrides project)
    5. $SOCIALGATE_CONFIG_FILE
    6. Environment variables (highest priority)
    """

    model_config = SettingsConfigDict(
        env_prefix="SOCIALGATE__",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Nested settings
    session: SessionSettings = Field(default_factory=SessionSettings)
    directory: DirectorySettings = Field(default_factory=DirectorySettings)
    flow: FlowSettings = Field(default_factory=FlowSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    providers: dict[str, ProviderSettings] = Field(default_factory=_default_providers)

    @field_validator("providers", mode="after")
    @classmethod
    def _ensure_default_providers(cls, v: dict[str, ProviderSettings]) -> dict[str, ProviderSettings]:
        """Keep google and github sections even when a file defines only one."""
        for name in DEFAULT_PROVIDER_NAMES:
            v.setdefault(name, ProviderSettings())
        return v

    def __init__(self, **data: Any) -> None:
        # Load TOML configuration first
        toml_config = _load_toml_config()

        # Merge TOML config with explicit data (explicit takes precedence)
        merged = _deep_merge(toml_config, data)

        super().__init__(**merged)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Rank environment variables above TOML files (passed as init data)."""
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    _SECTIONS: ClassVar[tuple[tuple[str, str, str], ...]] = (
        ("session", "SESSION", "Session"),
        ("directory", "DIRECTORY", "User Directory"),
        ("flow", "FLOW", "Authentication Flow"),
        ("log", "LOG", "Logging"),
    )

    def _section_items(self) -> list[tuple[str, str, str, dict[str, Any], set[str]]]:
        """(attr, env name, title, redacted values, sensitive names) per section."""
        items = []
        for attr, env_name, title in self._SECTIONS:
            section = getattr(self, attr)
            sensitive = _SENSITIVE_FIELDS & set(type(section).model_fields)
            items.append(
                (attr, env_name, title, section.model_dump(exclude=sensitive), sensitive)
            )
        for name, provider in self.providers.items():
            data = provider.model_dump()
            sensitive = _SENSITIVE_FIELDS & set(data)
            for key in sensitive:
                data.pop(key)
            items.append(
                (
                    f"providers.{name}",
                    f"PROVIDERS__{name.upper()}",
                    f"Provider: {name}",
                    data,
                    sensitive,
                )
            )
        return items

    def to_toml(self) -> str:
        """Export settings as TOML string."""
        lines = ["# socialgate Configuration", "# Generated by: socialgate config --toml", ""]

        for attr, _, _, section_data, sensitive in self._section_items():
            lines.append(f"[{attr}]")
            for field_name, field_value in section_data.items():
                if isinstance(field_value, list):
                    value_str = "[" + ", ".join(f'"{v}"' for v in field_value) + "]"
                elif isinstance(field_value, bool):
                    value_str = "true" if field_value else "false"
                elif isinstance(field_value, str):
                    value_str = f'"{field_value}"'
                else:
                    value_str = str(field_value)
                lines.append(f"{field_name} = {value_str}")
            lines.extend(f'{rn} = "{_REDACTED}"' for rn in sorted(sensitive))
            lines.append("")

        return "\n".join(lines)

    def to_env(self) -> str:
        """Export settings as shell environment variables."""
        lines = [
            "# socialgate Environment Variables",
            "# Generated by: socialgate config --env",
            "",
        ]

        for _, env_prefix, _, section_data, sensitive in self._section_items():
            for field_name, field_value in section_data.items():
                env_name = f"SOCIALGATE__{env_prefix}__{field_name.upper()}"
                if isinstance(field_value, list):
                    value_str = ",".join(str(v) for v in field_value)
                elif isinstance(field_value, bool):
                    value_str = "true" if field_value else "false"
                else:
                    value_str = str(field_value)
                lines.append(f'export {env_name}="{value_str}"')
            for redacted_name in sorted(sensitive):
                env_name = f"SOCIALGATE__{env_prefix}__{redacted_name.upper()}"
                lines.append(f'export {env_name}="{_REDACTED}"')

        return "\n".join(lines)

    def show(self) -> str:
        """Format settings as a readable table."""
        lines = ["socialgate Configuration", "=" * 60, ""]

        for _, _, title, section_data, sensitive in self._section_items():
            lines.append(f"\n{title}")
            lines.append("-" * 40)
            for field_name, field_value in section_data.items():
                # Truncate long values
                value_str = str(field_value)
                if len(value_str) > 50:
                    value_str = value_str[:47] + "..."
                lines.append(f"  {field_name:20} = {value_str}")
            lines.extend(f"  {rn:20} = {_REDACTED}" for rn in sorted(sensitive))

        return "\n".join(lines)


@lru_cache(maxsize=1)
def get_settings() -> SocialGateSettings:
    """Get the global settings instance (cached).

    Call clear_settings() to reload configuration.
    """
    return SocialGateSettings()


def clear_settings() -> None:
    """Clear the cached settings to force reload."""
    get_settings.cache_clear()


def reload_settings() -> SocialGateSettings:
    """Reload settings from all sources."""
    clear_settings()
    return get_settings()


ConfigSource = Callable[[str], Mapping[str, Any]]


def settings_config_source(name: str) -> dict[str, Any]:
    """Configuration source backed by ``get_settings().providers``.

    Parameters
    ----------
    name : str
        Provider name.

    Returns
    -------
    dict[str, Any]
        The provider's settings, or an empty mapping when unconfigured.
    """
    provider = get_settings().providers.get(name)
    if provider is None:
        return {}
    return provider.model_dump()
