"""Configuration settings for cross_imagegen.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_cache_dir() -> Path:
    """Return the default cache archive directory."""
    return Path.home() / ".cache" / "cross-imagegen" / "docker"


def _default_logs_dir() -> Path:
    """Return the default build log directory."""
    return Path.home() / ".local" / "share" / "cross-imagegen" / "logs"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the XIMG_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="XIMG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Target registry and image naming
    docker_dir: Path = Field(
        default=Path("docker"),
        description="Root directory holding one build description per target",
    )
    organization: str = Field(
        default="cross",
        min_length=1,
        description="Namespace prefix for image names",
    )
    image_version: str = Field(
        default="v0.1.0",
        min_length=1,
        description="Release tag shared by every target image",
    )
    label_namespace: str = Field(
        default="io.cross-imagegen",
        description="Prefix for labels stamped on built images",
    )

    # Paths
    cache_dir: Path = Field(
        default_factory=_default_cache_dir,
        description="Directory for serialized image cache archives",
    )
    logs_dir: Path = Field(
        default_factory=_default_logs_dir,
        description="Directory for build and stage logs",
    )
    docker_bin: str = Field(
        default="docker",
        description="Docker CLI executable",
    )

    # Operational modes
    offline: bool = Field(
        default=False,
        description="Offline mode - never query remote registries",
    )
    fail_fast: bool = Field(
        default=False,
        description="Stop a full-matrix run at the first required target failure",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Timeouts (in seconds)
    registry_timeout: int = Field(
        default=30,
        ge=1,
        description="Timeout for container registry requests",
    )

    # CI stage commands
    install_command: str | None = Field(
        default=None,
        description="Command run once the target image is ready",
    )
    script_command: str | None = Field(
        default=None,
        description="Build/test command run after install",
    )
    after_success_command: str | None = Field(
        default=None,
        description="Command run after install and script succeeded",
    )


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
