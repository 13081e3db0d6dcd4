"""Lunch target selection.

lunch is a bash function defined by the environment setup script, so
every probe runs in a fresh `bash -c` that sources the script first.
Selection is first-match-wins: the requested target, then the fallback
list in order.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from aosp_builder.errors import (
    ENVSETUP_MISSING,
    NOT_INITIALIZED,
    RBE_SCRIPT_MISSING,
    MissingScriptError,
    TargetSelectionError,
    WorkspaceError,
)
from aosp_builder.logs import success
from aosp_builder.source.sync import is_initialized
from aosp_builder.source.workspace import RBE_SCRIPT_NAME

if TYPE_CHECKING:
    from aosp_builder.config import BuildConfig, Settings
    from aosp_builder.host.environment import BuildEnvironment

logger = logging.getLogger(__name__)

ENVSETUP_SCRIPT = "build/envsetup.sh"

# Lines of the target listing echoed when the requested target fails
LISTING_PREVIEW_LINES = 20


@dataclass
class TargetSelection:
    """The lunch target a build will use."""

    target: str
    requested: str
    fell_back: bool = False


def select_first(
    candidates: Iterable[str],
    selector: Callable[[str], bool],
) -> str | None:
    """Return the first candidate the selector accepts, or None."""
    for candidate in candidates:
        if selector(candidate):
            return candidate
    return None


def setup_script(build_dir: Path, use_rbe: bool) -> str:
    """Pick the environment script to source, relative to build_dir.

    Raises:
        MissingScriptError: If the chosen script does not exist.
    """
    if use_rbe:
        if not (build_dir / RBE_SCRIPT_NAME).is_file():
            raise MissingScriptError(
                "RBE script not found. Please ensure rbe.sh exists in the "
                "build directory.",
                code=RBE_SCRIPT_MISSING,
            )
        logger.info("Using RBE (Remote Build Execution) environment")
        return RBE_SCRIPT_NAME

    if not (build_dir / ENVSETUP_SCRIPT).is_file():
        raise MissingScriptError(
            f"Build environment not found: {build_dir / ENVSETUP_SCRIPT}",
            code=ENVSETUP_MISSING,
        )
    logger.info("Using standard build environment")
    return ENVSETUP_SCRIPT


def source_command(script: str) -> str:
    """Shell fragment sourcing an environment script."""
    return f"source {shlex.quote(script)}"


def run_bash(
    script: str,
    cwd: Path,
    env: dict[str, str] | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run a bash snippet and capture combined output."""
    return subprocess.run(
        ["bash", "-c", script],
        cwd=cwd,
        env=env,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        errors="replace",
        check=False,
    )


def try_lunch(
    build_dir: Path,
    script: str,
    target: str,
    env: dict[str, str] | None = None,
) -> bool:
    """Check whether lunch accepts target.

    Returns:
        True if `lunch <target>` exits 0.
    """
    snippet = (
        f"{source_command(script)} >/dev/null 2>&1 && lunch {shlex.quote(target)}"
    )
    try:
        result = run_bash(snippet, build_dir, env=env)
    except OSError as e:
        logger.error("Failed to run lunch: %s", e)
        return False
    if result.returncode != 0:
        logger.debug("lunch %s failed: %s", target, result.stdout.strip())
        return False
    return True


def available_targets(
    build_dir: Path,
    script: str,
    env: dict[str, str] | None = None,
) -> list[str]:
    """Capture the output of bare `lunch`, one entry per line."""
    snippet = f"{source_command(script)} >/dev/null 2>&1 && lunch"
    try:
        result = run_bash(snippet, build_dir, env=env)
    except OSError as e:
        logger.error("Failed to list lunch targets: %s", e)
        return []
    return [line for line in result.stdout.splitlines() if line.strip()]


def select_target(
    config: BuildConfig,
    settings: Settings,
    environment: BuildEnvironment | None = None,
) -> TargetSelection:
    """Select the requested lunch target or the first working fallback.

    Args:
        config: Build configuration (target, build_dir, use_rbe).
        settings: Settings with the fallback target list.
        environment: Build environment for child processes.

    Returns:
        TargetSelection.

    Raises:
        MissingScriptError: If the environment script is missing.
        TargetSelectionError: If no target can be selected.
    """
    build_dir = config.build_dir
    logger.info("Setting up build configuration for target: %s", config.target)
    env = environment.merged() if environment is not None else None
    script = setup_script(build_dir, config.use_rbe)

    logger.info("Attempting to set lunch target: %s", config.target)
    if try_lunch(build_dir, script, config.target, env=env):
        logger.info("Successfully set lunch target: %s", config.target)
        success(logger, "Build configuration completed")
        return TargetSelection(target=config.target, requested=config.target)

    logger.warning(
        "Target '%s' not found. Showing available targets...", config.target
    )
    logger.info("Available lunch targets:")
    for line in available_targets(build_dir, script, env=env)[:LISTING_PREVIEW_LINES]:
        logger.info("%s", line)

    found = select_first(
        settings.fallback_targets,
        lambda candidate: try_lunch(build_dir, script, candidate, env=env),
    )
    if found is None:
        raise TargetSelectionError(
            "Could not find a valid lunch target. Please check available "
            "targets and try again."
        )

    logger.info("Successfully set fallback target: %s", found)
    success(logger, "Build configuration completed")
    return TargetSelection(target=found, requested=config.target, fell_back=True)


def list_targets(
    build_dir: Path,
    environment: BuildEnvironment | None = None,
) -> list[str]:
    """List the lunch targets of an initialized build directory.

    Raises:
        WorkspaceError: If build_dir is not an initialized repo client.
        MissingScriptError: If build/envsetup.sh is missing.
    """
    logger.info("Listing available lunch targets...")
    if not build_dir.is_dir() or not is_initialized(build_dir):
        raise WorkspaceError(
            "Build directory not found or not initialized. "
            "Run the build first.",
            code=NOT_INITIALIZED,
        )
    if not (build_dir / ENVSETUP_SCRIPT).is_file():
        raise MissingScriptError(
            "Build environment not found. Run the build first to set up "
            "the environment.",
            code=ENVSETUP_MISSING,
        )
    env = environment.merged() if environment is not None else None
    return available_targets(build_dir, ENVSETUP_SCRIPT, env=env)


__all__ = [
    "ENVSETUP_SCRIPT",
    "LISTING_PREVIEW_LINES",
    "TargetSelection",
    "available_targets",
    "list_targets",
    "select_first",
    "select_target",
    "setup_script",
    "try_lunch",
]
