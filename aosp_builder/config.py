"""Configuration settings for aosp_builder.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.

Settings hold every tunable of the run. BuildConfig is the frozen set of
values a single invocation resolves once and passes to every phase.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_FALLBACK_TARGETS = [
    "aosp_arm64-userdebug",
    "aosp_arm64-user",
    "aosp_x86_64-userdebug",
    "aosp_x86_64-user",
]


def _default_ccache_dir() -> Path:
    """Return the default compiler cache directory."""
    return Path.home() / ".ccache"


def _default_repo_install_dir() -> Path:
    """Return the directory the repo launcher is installed into."""
    return Path.home() / ".bin"


def _default_shell_profile() -> Path:
    """Return the shell profile that persists the PATH change."""
    return Path.home() / ".bashrc"


def _default_rbe_script() -> Path:
    """Return the packaged RBE environment script."""
    return Path(__file__).parent / "data" / "rbe.sh"


def _default_rbe_cache_dir() -> Path:
    """Return the default reclient deps cache directory."""
    return Path.home() / ".cache" / "reclient" / "cache"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the AOSP_BUILD_
    prefix. BUILDKITE and BUILDKITE_AOSP_CLEAN keep their CI names.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="AOSP_BUILD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Source
    manifest_url: str = Field(
        default="https://android.googlesource.com/platform/manifest",
        description="Upstream manifest repository",
    )
    branch: str = Field(
        default="android-14.0.0_r22",
        description="Manifest branch to build",
    )
    target: str = Field(
        default="aosp_arm64-userdebug",
        description="Lunch target to build",
    )
    fallback_targets: list[str] = Field(
        default_factory=lambda: list(DEFAULT_FALLBACK_TARGETS),
        description="Lunch targets tried in order when the requested one fails",
    )

    # Paths
    build_dir: Path = Field(
        default=Path("aosp"),
        description="Build directory (created if missing)",
    )
    log_file_name: str = Field(
        default="aosp-build.log",
        description="Log file name, placed next to the build directory",
    )
    rbe_script: Path = Field(
        default_factory=_default_rbe_script,
        description="RBE environment script copied into the build directory",
    )

    # Sync
    sync_jobs: int = Field(
        default=4,
        ge=1,
        description="Parallel jobs for repo sync",
    )
    sync_attempts: int = Field(
        default=3,
        ge=1,
        description="Total repo sync attempts before giving up",
    )
    sync_retry_delay: float = Field(
        default=30.0,
        ge=0,
        description="Seconds to wait between repo sync attempts",
    )
    high_core_threshold: int = Field(
        default=8,
        ge=1,
        description="CPU count above which sync jobs are capped",
    )
    high_core_sync_cap: int = Field(
        default=4,
        ge=1,
        description="Sync job ceiling on high-core hosts",
    )

    # Host requirements
    min_disk_gb: int = Field(default=100, ge=0, description="Free disk space floor")
    min_ram_gb: int = Field(default=16, ge=0, description="Total RAM floor")
    min_java_major: int = Field(default=11, ge=1, description="Minimum Java major")

    # repo launcher
    repo_url: str = Field(
        default="https://storage.googleapis.com/git-repo-downloads/repo",
        description="Download URL of the repo launcher",
    )
    repo_install_dir: Path = Field(
        default_factory=_default_repo_install_dir,
        description="Directory the repo launcher is installed into",
    )
    shell_profile: Path = Field(
        default_factory=_default_shell_profile,
        description="Shell profile that receives the PATH export",
    )
    download_timeout: int = Field(
        default=300,
        ge=1,
        description="Timeout for the repo launcher download",
    )

    # Compiler cache
    use_ccache: bool = Field(default=True, description="Enable ccache")
    ccache_dir: Path = Field(
        default_factory=_default_ccache_dir,
        description="ccache directory",
    )
    ccache_max_size: str = Field(default="50G", description="ccache size ceiling")

    # Remote build execution
    rbe_service: str = Field(
        default="unix:///mnt/ephemeral/buildbarn/.cache/bb_clientd/grpc",
        description="RBE service endpoint",
    )
    rbe_server_address: str = Field(
        default="unix:///tmp/reproxy.sock",
        description="reproxy server address",
    )
    rbe_instance: str = Field(default="default", description="RBE instance name")
    rbe_worker_pool: str = Field(default="default", description="RBE worker pool")
    rbe_remote_jobs: int = Field(
        default=500,
        ge=1,
        description="Ninja remote job count",
    )
    rbe_exec_strategy: str = Field(
        default="remote_local_fallback",
        description="Exec strategy for remotely executed tools",
    )
    rbe_cache_dir: Path = Field(
        default_factory=_default_rbe_cache_dir,
        description="reclient deps cache directory",
    )
    rbe_verbosity: int = Field(default=4, ge=0, description="reproxy log verbosity")

    # CI
    buildkite: bool = Field(
        default=False,
        validation_alias=AliasChoices("AOSP_BUILD_BUILDKITE", "BUILDKITE"),
        description="Buildkite CI marker; enables artifact upload",
    )
    force_clean: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "AOSP_BUILD_FORCE_CLEAN", "BUILDKITE_AOSP_CLEAN"
        ),
        description="Force a clean build",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    @field_validator("buildkite", mode="before")
    @classmethod
    def _parse_buildkite(cls, value: Any) -> Any:
        # Buildkite exports BUILDKITE=true; nothing else enables upload
        if isinstance(value, str):
            return value.strip() == "true"
        return value

    @field_validator("force_clean", mode="before")
    @classmethod
    def _parse_force_clean(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip() == "1"
        return value


@dataclass(frozen=True)
class BuildConfig:
    """Values resolved once per invocation.

    Attributes:
        branch: Manifest branch.
        target: Requested lunch target.
        sync_jobs: Requested repo sync parallelism (before clamping).
        build_dir: Absolute build directory.
        use_rbe: Whether to source the RBE environment.
        clean: Whether to wipe the build directory first.
        log_file_name: Log file name placed next to the build directory.
    """

    branch: str
    target: str
    sync_jobs: int
    build_dir: Path
    use_rbe: bool = False
    clean: bool = False
    log_file_name: str = "aosp-build.log"

    @property
    def log_path(self) -> Path:
        """Build log location, next to the build directory."""
        return self.build_dir.parent / self.log_file_name

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        branch: str | None = None,
        target: str | None = None,
        sync_jobs: int | None = None,
        build_dir: Path | None = None,
        use_rbe: bool = False,
        clean: bool = False,
    ) -> BuildConfig:
        """Resolve a BuildConfig from settings and CLI overrides.

        Args:
            settings: Loaded settings.
            branch: Branch flag value.
            target: Target flag value.
            sync_jobs: Jobs flag value.
            build_dir: Build directory flag value.
            use_rbe: RBE flag.
            clean: Clean flag; BUILDKITE_AOSP_CLEAN also enables it.

        Returns:
            Frozen BuildConfig.
        """
        directory = build_dir if build_dir is not None else settings.build_dir
        return cls(
            branch=branch or settings.branch,
            target=target or settings.target,
            sync_jobs=sync_jobs if sync_jobs is not None else settings.sync_jobs,
            build_dir=directory.expanduser().absolute(),
            use_rbe=use_rbe,
            clean=clean or settings.force_clean,
            log_file_name=settings.log_file_name,
        )


def get_settings() -> Settings:
    """Get the application settings.

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


__all__ = [
    "DEFAULT_FALLBACK_TARGETS",
    "BuildConfig",
    "Settings",
    "get_settings",
    "print_settings_json",
]
