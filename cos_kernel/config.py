"""Configuration settings for cos_kernel.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from cos_kernel.kernel.registry import InstallationLayout


def _default_cache_dir() -> Path:
    """Return the default catalog scratch cache directory."""
    return Path.home() / ".cache" / "cos-kernel"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the COS_KERNEL_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="COS_KERNEL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    install_dir: Path = Field(
        default_factory=Path.cwd,
        description="Root directory for fetched and installed artifacts",
    )
    cache_dir: Path = Field(
        default_factory=_default_cache_dir,
        description="Directory for cached catalog listings",
    )
    os_release_path: Path = Field(
        default=Path("/etc/os-release"),
        description="Release metadata file providing BUILD_ID",
    )

    # Remote catalogs
    bucket: str = Field(
        default="cos-tools",
        description="Object storage bucket holding build artifacts",
    )
    storage_base_url: str = Field(
        default="https://storage.googleapis.com",
        description="Base URL of the object storage HTTP endpoint",
    )
    image_project: str = Field(
        default="cos-cloud",
        description="Compute project publishing COS images",
    )
    catalog_max_age_minutes: int = Field(
        default=60,
        ge=0,
        description="Age after which cached catalog listings are regenerated",
    )

    # Build
    cross_compile: str = Field(
        default="x86_64-cros-linux-gnu-",
        description="Cross-compilation prefix passed to make",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Timeouts (in seconds)
    download_timeout: int = Field(
        default=3600,
        ge=10,
        description="Timeout for artifact downloads",
    )
    catalog_timeout: int = Field(
        default=120,
        ge=10,
        description="Timeout for catalog listing requests",
    )


@dataclass(frozen=True)
class RunConfig:
    """Immutable per-invocation configuration.

    Built once by the CLI after argument parsing and passed explicitly to
    every component.
    """

    settings: Settings
    build_id: str | None = None
    layout: InstallationLayout | None = None
    extract: bool = True
    kernel_config: Path | None = None
    print_only: bool = False
    make_verbose: bool = False


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def make_run_config(
    settings: Settings,
    build_id: str | None = None,
    extract: bool = True,
    kernel_config: Path | None = None,
    print_only: bool = False,
    make_verbose: bool = False,
) -> RunConfig:
    """Create a RunConfig, deriving the installation layout from build_id."""
    layout = (
        InstallationLayout.for_build(settings.install_dir, build_id)
        if build_id is not None
        else None
    )
    return RunConfig(
        settings=settings,
        build_id=build_id,
        layout=layout,
        extract=extract,
        kernel_config=kernel_config,
        print_only=print_only,
        make_verbose=make_verbose,
    )


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


__all__ = [
    "RunConfig",
    "Settings",
    "get_settings",
    "make_run_config",
    "print_settings_json",
]
