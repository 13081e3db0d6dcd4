"""Build environment setup.

This module handles:
- Compiler cache variables (USE_CCACHE, CCACHE_DIR, CCACHE_MAXSIZE)
- RBE variables when remote execution is requested
- A non-fatal Java version check

Nothing here can abort the run.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

from aosp_builder.builds.rbe import rbe_environment
from aosp_builder.logs import success

if TYPE_CHECKING:
    from aosp_builder.config import Settings

logger = logging.getLogger(__name__)

_JAVA_VERSION_RE = re.compile(r'version\s+"([^"]+)"')


@dataclass(frozen=True)
class BuildEnvironment:
    """Variables handed to every toolchain child process."""

    variables: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str]) -> BuildEnvironment:
        return cls(variables=tuple(sorted(mapping.items())))

    def to_dict(self) -> dict[str, str]:
        return dict(self.variables)

    def get(self, name: str, default: str | None = None) -> str | None:
        return self.to_dict().get(name, default)

    def merged(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        """Return base (default: os.environ) overlaid with these variables."""
        env = dict(os.environ if base is None else base)
        env.update(self.variables)
        return env


def java_major_version(version_output: str) -> int | None:
    """Parse the major version from `java -version` output.

    Handles both the legacy "1.8.0_292" form and "17.0.2".

    Returns:
        Major version, or None if the output is not recognised.
    """
    match = _JAVA_VERSION_RE.search(version_output)
    if not match:
        return None
    parts = re.split(r"[._+-]", match.group(1))
    try:
        major = int(parts[0])
        if major == 1 and len(parts) > 1:
            major = int(parts[1])
    except ValueError:
        return None
    return major


def check_java_version(min_major: int) -> bool:
    """Warn when the installed Java is older than min_major.

    A missing or unparseable Java is not reported.

    Returns:
        False only when an outdated Java was detected.
    """
    try:
        result = subprocess.run(
            ["java", "-version"],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        logger.debug("java not found, skipping version check")
        return True

    # java prints its version banner on stderr
    major = java_major_version(result.stderr or result.stdout)
    if major is not None and major < min_major:
        logger.warning(
            "Java version %d detected. AOSP requires Java %d or higher.",
            major,
            min_major,
        )
        return False
    return True


def setup_environment(settings: Settings, use_rbe: bool = False) -> BuildEnvironment:
    """Prepare cache directories and compose the build environment.

    Args:
        settings: Loaded settings.
        use_rbe: Include the RBE variable set.

    Returns:
        BuildEnvironment for the toolchain processes.
    """
    logger.info("Setting up build environment...")
    check_java_version(settings.min_java_major)

    variables: dict[str, str] = {}
    if settings.use_ccache:
        try:
            settings.ccache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(
                "Cannot create ccache directory %s, building without ccache: %s",
                settings.ccache_dir,
                e,
            )
        else:
            variables.update(
                {
                    "USE_CCACHE": "1",
                    "CCACHE_DIR": str(settings.ccache_dir),
                    "CCACHE_MAXSIZE": settings.ccache_max_size,
                }
            )

    if use_rbe:
        try:
            settings.rbe_cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(
                "Cannot create RBE cache directory %s: %s", settings.rbe_cache_dir, e
            )
        variables.update(rbe_environment(settings))

    success(logger, "Build environment setup completed")
    return BuildEnvironment.from_mapping(variables)


__all__ = [
    "BuildEnvironment",
    "check_java_version",
    "java_major_version",
    "setup_environment",
]
