"""repo launcher installation.

This module handles:
- Locating the repo launcher on PATH or in the install directory
- Downloading it when missing and marking it executable
- Persisting the PATH change to the user's shell profile
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from aosp_builder.errors import DownloadError

if TYPE_CHECKING:
    from aosp_builder.config import Settings

logger = logging.getLogger(__name__)

REPO_EXECUTABLE = "repo"

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024


def find_repo(install_dir: Path | None = None) -> Path | None:
    """Find the repo launcher.

    Args:
        install_dir: Extra directory checked after PATH.

    Returns:
        Path to the launcher, or None if not found.
    """
    found = shutil.which(REPO_EXECUTABLE)
    if found:
        return Path(found)
    if install_dir is not None:
        candidate = install_dir / REPO_EXECUTABLE
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return candidate
    return None


def path_export_line(install_dir: Path, home: Path | None = None) -> str:
    """Compose the shell line that puts install_dir on PATH.

    Directories under the home directory are written relative to $HOME.
    """
    home = home or Path.home()
    try:
        relative = install_dir.relative_to(home)
        location = f"$HOME/{relative}"
    except ValueError:
        location = str(install_dir)
    return f'export PATH="{location}:$PATH"'


def persist_path(install_dir: Path, profile: Path, home: Path | None = None) -> bool:
    """Append the PATH export to a shell profile unless already present.

    Args:
        install_dir: Directory to put on PATH.
        profile: Shell profile file (created if missing).
        home: Home directory used to shorten the path.

    Returns:
        True if the profile was modified.
    """
    line = path_export_line(install_dir, home=home)
    existing = profile.read_text(encoding="utf-8") if profile.exists() else ""
    if line in existing.splitlines():
        return False

    with profile.open("a", encoding="utf-8") as f:
        if existing and not existing.endswith("\n"):
            f.write("\n")
        f.write(line + "\n")
    logger.info("Added %s to PATH in %s", install_dir, profile)
    return True


def prepend_to_path(directory: Path) -> None:
    """Put directory first on this process's PATH."""
    current = os.environ.get("PATH", "")
    entries = current.split(os.pathsep) if current else []
    if str(directory) in entries:
        return
    os.environ["PATH"] = os.pathsep.join([str(directory), *entries])


def install_repo(
    settings: Settings,
    client: httpx.Client | None = None,
) -> Path:
    """Download the repo launcher into the install directory.

    A profile that cannot be updated only produces a warning; the
    launcher is already on PATH for this process.

    Args:
        settings: Settings with repo_url, repo_install_dir and shell_profile.
        client: Optional HTTPX client (one is created if not provided).

    Returns:
        Path to the installed launcher.

    Raises:
        DownloadError: If the download fails or the launcher cannot be
            written.
    """
    install_dir = settings.repo_install_dir
    dest_path = install_dir / REPO_EXECUTABLE
    logger.info("Installing repo tool from %s to %s", settings.repo_url, dest_path)

    owns_client = client is None
    if client is None:
        client = httpx.Client(follow_redirects=True)

    try:
        with client.stream(
            "GET", settings.repo_url, timeout=settings.download_timeout
        ) as response:
            response.raise_for_status()
            install_dir.mkdir(parents=True, exist_ok=True)
            with dest_path.open("wb") as f:
                for chunk in response.iter_bytes(DOWNLOAD_CHUNK_SIZE):
                    f.write(chunk)
        # a+rx, owner writable
        dest_path.chmod(0o755)
    except httpx.HTTPStatusError as e:
        dest_path.unlink(missing_ok=True)
        raise DownloadError(
            f"HTTP error downloading {settings.repo_url}: "
            f"{e.response.status_code} {e.response.reason_phrase}"
        ) from e
    except httpx.TimeoutException as e:
        dest_path.unlink(missing_ok=True)
        raise DownloadError(f"Timeout downloading {settings.repo_url}") from e
    except httpx.RequestError as e:
        dest_path.unlink(missing_ok=True)
        raise DownloadError(
            f"Network error downloading {settings.repo_url}: {e}"
        ) from e
    except OSError as e:
        if dest_path.is_file():
            dest_path.unlink()
        raise DownloadError(f"Failed to write {dest_path}: {e}") from e
    finally:
        if owns_client:
            client.close()

    prepend_to_path(install_dir)
    try:
        persist_path(install_dir, settings.shell_profile)
    except OSError as e:
        logger.warning(
            "Could not update %s, add %s to PATH manually: %s",
            settings.shell_profile,
            install_dir,
            e,
        )
    return dest_path


def ensure_repo(
    settings: Settings,
    client: httpx.Client | None = None,
) -> Path:
    """Return the repo launcher, installing it first if needed."""
    existing = find_repo(settings.repo_install_dir)
    if existing is not None:
        logger.debug("Using repo tool at %s", existing)
        if existing.parent == settings.repo_install_dir:
            prepend_to_path(settings.repo_install_dir)
        return existing
    return install_repo(settings, client=client)


__all__ = [
    "REPO_EXECUTABLE",
    "ensure_repo",
    "find_repo",
    "install_repo",
    "path_export_line",
    "persist_path",
    "prepend_to_path",
]
