"""pr-review - Configuration system with Pydantic Settings"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import pydantic_settings
from pydantic import Field, SecretStr
from pydantic_settings import (
    DotEnvSettingsSource,
    EnvSettingsSource,
    PydanticBaseSettingsSource,
)
from pydantic_settings.main import SettingsConfigDict

from pr_review.providers.base import ProviderID

__all__ = [
    "Settings",
    "settings",
    "get_settings",
    "reload_settings",
]

ENV_PREFIX = "PR_REVIEW_"
SESSION_FILE_NAME = "last-session.jsonl"
SESSIONS_DIR_NAME = "sessions"


class Settings(pydantic_settings.BaseSettings):
    """Application settings with type-safe validation"""

    debug: bool = Field(default=False)
    log_level: str = Field(default="WARNING")

    # Model defaults
    provider_default: str = Field(default=ProviderID.ANTHROPIC.value)
    model_default: str = Field(default="claude-sonnet-4-20250514", min_length=1)

    # Filesystem paths
    cache_dir: str = Field(default_factory=lambda: str(_resolve_app_dir("cache")))

    # Transport
    max_retries: int = Field(default=2, ge=0, le=10)
    request_timeout: float = Field(default=600.0, gt=0)
    max_output_tokens: int = Field(default=8192, gt=0)
    max_tool_rounds: int = Field(default=25, ge=1)

    # Diff retrieval
    default_context_lines: int = Field(default=10, ge=0)
    large_diff_tokens: int = Field(default=50000, gt=0)

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[pydantic_settings.BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        del env_settings, dotenv_settings

        return (
            init_settings,
            EnvSettingsSource(settings_cls, env_prefix=ENV_PREFIX, case_sensitive=False),
            DotEnvSettingsSource(
                settings_cls,
                env_prefix=ENV_PREFIX,
                env_file=_dotenv_paths(settings_cls),
                case_sensitive=False,
            ),
            file_secret_settings,
        )

    def get_default_provider(self) -> Optional[ProviderID]:
        """Parse provider_default, returning None when it names no known provider."""
        try:
            return ProviderID(self.provider_default)
        except ValueError:
            return None

    def get_api_key_for_provider(self, provider_id: ProviderID | str) -> Optional[SecretStr]:
        """
        Retrieve the API key for a provider from the environment.

        Looks up ``PR_REVIEW_<PROVIDER>_API_KEY`` first, then the provider's
        conventional variable (``ANTHROPIC_API_KEY``, ``OPENAI_API_KEY``).

        Args:
            provider_id: The provider ID (ProviderID enum or string).

        Returns:
            The API key SecretStr if found, None otherwise.
        """
        provider_enum = ProviderID(provider_id) if isinstance(provider_id, str) else provider_id
        provider_name = provider_enum.value.replace(".", "").replace("-", "_").upper()

        for env_var in (f"{ENV_PREFIX}{provider_name}_API_KEY", f"{provider_name}_API_KEY"):
            env_key = os.getenv(env_var)
            if env_key:
                return SecretStr(env_key)

        return None

    def cache_dir_path(self) -> Path:
        """
        Get the cache directory path as a Path object.

        Returns:
            The cache directory path with ~ expanded.
        """
        return Path(self.cache_dir).expanduser()

    def sessions_dir_path(self) -> Path:
        """Internal location where fresh synthesis conversations are written."""
        return self.cache_dir_path() / SESSIONS_DIR_NAME

    def session_file_path(self) -> Path:
        """The well-known pointer to the last review's conversation."""
        return self.cache_dir_path() / SESSION_FILE_NAME


APP_DIR_NAME = "pr-review"


def _xdg_base_dir(env_var_name: str, fallback: Path) -> Path:
    env_value = os.getenv(env_var_name)
    if env_value:
        return Path(env_value).expanduser()
    return fallback


def _resolve_app_dir(kind: str) -> Path:
    home = Path.home()
    if kind == "config":
        base = _xdg_base_dir("XDG_CONFIG_HOME", home / ".config")
    elif kind == "cache":
        base = _xdg_base_dir("XDG_CACHE_HOME", home / ".cache")
    else:
        raise ValueError(f"Unsupported app dir kind: {kind}")

    return base / APP_DIR_NAME


def _dotenv_paths(settings_cls: type[pydantic_settings.BaseSettings]) -> tuple[Path | str, ...]:
    explicit_env_files = settings_cls.model_config.get("env_file")
    if explicit_env_files is not None:
        if isinstance(explicit_env_files, (str, Path)):
            return (explicit_env_files,)
        return tuple(explicit_env_files)

    return (".env", _resolve_app_dir("config") / ".env")


settings: Settings = Settings()


def get_settings() -> Settings:
    """
    Get the global settings singleton instance.

    Returns:
        The global Settings instance.
    """
    return settings


def reload_settings() -> Settings:
    """
    Reload settings by creating a new Settings instance.

    Returns:
        A new Settings instance with current environment values.
    """
    global settings
    settings = Settings()
    return settings
