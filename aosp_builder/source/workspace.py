"""Build directory handling.

The build directory is reused between runs for incremental builds. A
lock file next to it keeps two runs from working on the same tree.
"""

from __future__ import annotations

import fcntl
import logging
import os
import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from aosp_builder.errors import MissingScriptError, WorkspaceError, WorkspaceLockedError

logger = logging.getLogger(__name__)

RBE_SCRIPT_NAME = "rbe.sh"


def lock_path_for(build_dir: Path) -> Path:
    """Lock file location for a build directory.

    The lock lives beside the directory so that cleaning it does not
    drop the lock.
    """
    return build_dir.parent / f".{build_dir.name}.lock"


@contextmanager
def workspace_lock(build_dir: Path) -> Iterator[Path]:
    """Hold an exclusive advisory lock on a build directory.

    Acquisition does not wait: a second run against the same directory
    fails immediately.

    Args:
        build_dir: Build directory to lock.

    Yields:
        Path of the lock file.

    Raises:
        WorkspaceLockedError: If another process holds the lock.
        WorkspaceError: If the lock file cannot be created.
    """
    lock_file = lock_path_for(build_dir)
    try:
        lock_file.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(lock_file), os.O_RDWR | os.O_CREAT, 0o644)
    except OSError as e:
        raise WorkspaceError(f"Cannot create lock file '{lock_file}': {e}") from e

    lock_acquired = False
    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            raise WorkspaceLockedError(str(build_dir)) from None
        lock_acquired = True
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        logger.debug("Workspace lock acquired: %s", lock_file)
        yield lock_file
    finally:
        if lock_acquired:
            fcntl.flock(fd, fcntl.LOCK_UN)
            logger.debug("Workspace lock released: %s", lock_file)
        os.close(fd)


def create_build_dir(build_dir: Path) -> bool:
    """Create the build directory if needed.

    Returns:
        True if the directory was created, False if it already existed.

    Raises:
        WorkspaceError: If the path exists as a file or cannot be created.
    """
    logger.info("Creating build directory: %s", build_dir)
    if build_dir.is_dir():
        logger.info("Build directory '%s' already exists", build_dir)
        return False

    try:
        build_dir.mkdir(parents=True)
    except OSError as e:
        raise WorkspaceError(
            f"Failed to create build directory '{build_dir}'. "
            f"Check permissions and path: {e}"
        ) from e
    logger.info("Successfully created build directory '%s'", build_dir)
    return True


def clean_build_dir(build_dir: Path) -> bool:
    """Remove and recreate an existing build directory.

    Returns:
        True if a directory was removed.

    Raises:
        WorkspaceError: If removal or recreation fails.
    """
    if not build_dir.is_dir():
        return False

    logger.info("Cleaning build directory %s...", build_dir)
    try:
        shutil.rmtree(build_dir)
        build_dir.mkdir(parents=True)
    except OSError as e:
        raise WorkspaceError(f"Failed to clean build directory '{build_dir}': {e}") from e
    return True


def stage_rbe_script(source: Path, build_dir: Path) -> Path:
    """Copy the RBE environment script into the build directory.

    Args:
        source: Script to copy.
        build_dir: Build directory.

    Returns:
        Path of the copy.

    Raises:
        MissingScriptError: If source does not exist.
        WorkspaceError: If the copy fails.
    """
    if not source.is_file():
        raise MissingScriptError(f"RBE script not found at {source}")

    dest = build_dir / RBE_SCRIPT_NAME
    logger.info("Copying RBE script from %s to build directory...", source)
    try:
        shutil.copyfile(source, dest)
    except OSError as e:
        raise WorkspaceError(f"Failed to copy RBE script to '{dest}': {e}") from e
    return dest


__all__ = [
    "RBE_SCRIPT_NAME",
    "clean_build_dir",
    "create_build_dir",
    "lock_path_for",
    "stage_rbe_script",
    "workspace_lock",
]
