"""Host precondition checks.

An unsupported platform is fatal. Disk and memory shortfalls are only
warnings; the run proceeds and lets the build decide.
"""

from __future__ import annotations

import logging
import os
import shutil
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from aosp_builder.errors import UnsupportedPlatformError
from aosp_builder.host.repo_tool import ensure_repo
from aosp_builder.logs import success

if TYPE_CHECKING:
    import httpx

    from aosp_builder.config import Settings

logger = logging.getLogger(__name__)

GIB = 1024**3


def check_platform(platform: str | None = None) -> None:
    """Fail unless running on Linux.

    Raises:
        UnsupportedPlatformError: On any other platform.
    """
    platform = platform if platform is not None else sys.platform
    if not platform.startswith("linux"):
        raise UnsupportedPlatformError(platform)


def _existing_ancestor(path: Path) -> Path:
    """Return path or its nearest existing parent."""
    path = path.absolute()
    for candidate in (path, *path.parents):
        if candidate.exists():
            return candidate
    return Path("/")


def check_disk_space(path: Path, min_gb: int) -> bool:
    """Warn when free space at path is below min_gb.

    Returns:
        True if enough space is available.
    """
    free = shutil.disk_usage(_existing_ancestor(path)).free
    if free < min_gb * GIB:
        logger.warning(
            "Available disk space is less than %dGB (%.1fGB free). "
            "AOSP build may fail.",
            min_gb,
            free / GIB,
        )
        return False
    return True


def total_memory_bytes() -> int:
    """Total physical memory of the host."""
    return os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES")


def check_memory(min_gb: int, total_bytes: int | None = None) -> bool:
    """Warn when total RAM is below min_gb.

    Returns:
        True if enough memory is installed.
    """
    total = total_bytes if total_bytes is not None else total_memory_bytes()
    if total < min_gb * GIB:
        logger.warning(
            "Total RAM is less than %dGB (%.1fGB). Build may be slow or fail.",
            min_gb,
            total / GIB,
        )
        return False
    return True


def run_preflight(
    settings: Settings,
    path: Path,
    client: httpx.Client | None = None,
) -> Path:
    """Run all precondition checks.

    Args:
        settings: Loaded settings.
        path: Location whose filesystem receives the build.
        client: Optional HTTPX client for the repo download.

    Returns:
        Path to the repo launcher.

    Raises:
        UnsupportedPlatformError: If not on Linux.
        DownloadError: If the repo launcher is missing and cannot be fetched.
    """
    logger.info("Checking prerequisites...")
    check_platform()
    repo = ensure_repo(settings, client=client)
    check_disk_space(path, settings.min_disk_gb)
    check_memory(settings.min_ram_gb)
    success(logger, "Prerequisites check completed")
    return repo


__all__ = [
    "check_disk_space",
    "check_memory",
    "check_platform",
    "run_preflight",
    "total_memory_bytes",
]
