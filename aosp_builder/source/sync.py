"""Manifest fetch and repo sync.

This module handles:
- Deciding between repo init, re-init on branch change, or reuse
- Clamping sync parallelism to the host
- Retrying a failed sync with fewer jobs

The job clamping and retry schedule are plain functions so they can be
exercised without running repo.
"""

from __future__ import annotations

import logging
import os
import re
import shlex
import subprocess
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from aosp_builder.errors import INIT_FAILED, SyncError
from aosp_builder.logs import success
from aosp_builder.source.workspace import stage_rbe_script

if TYPE_CHECKING:
    from aosp_builder.config import BuildConfig, Settings
    from aosp_builder.host.environment import BuildEnvironment

logger = logging.getLogger(__name__)

REPO_MARKER = ".repo"
SYNC_FLAGS = ["--no-tags", "--no-clone-bundle", "--fail-fast"]

_REVISION_RE = re.compile(r'revision="([^"]*)"')
_REF_PREFIXES = ("refs/heads/", "refs/tags/")


class InitAction(str, Enum):
    """What fetch did to the repo client before syncing."""

    INITIALIZED = "initialized"
    REINITIALIZED = "reinitialized"
    SKIPPED = "skipped"


@dataclass
class SyncOutcome:
    """Result of the sync retry loop.

    Attributes:
        success: Whether any attempt succeeded.
        attempts: Number of attempts made.
        jobs_used: Parallelism of each attempt, in order.
    """

    success: bool
    attempts: int
    jobs_used: list[int] = field(default_factory=list)


@dataclass
class FetchResult:
    """Result of a successful fetch."""

    action: InitAction
    sync: SyncOutcome
    previous_branch: str | None = None


def clamp_sync_jobs(
    requested: int,
    cpu_count: int,
    high_core_threshold: int = 8,
    high_core_cap: int = 4,
) -> int:
    """Resolve sync parallelism for this host.

    Never more than cpu_count. On hosts with more than
    high_core_threshold CPUs, anything above high_core_cap is lowered to
    high_core_cap to stay under the server's rate limits.

    Args:
        requested: Jobs asked for on the command line.
        cpu_count: CPUs available.
        high_core_threshold: CPU count that triggers the cap.
        high_core_cap: Cap applied on high-core hosts.

    Returns:
        Jobs to use, at least 1.
    """
    jobs = min(requested, cpu_count)
    if cpu_count > high_core_threshold and jobs > high_core_cap:
        jobs = high_core_cap
    return max(jobs, 1)


def next_sync_jobs(jobs: int) -> int:
    """Halve parallelism for the next attempt, never below 1."""
    return max(jobs // 2, 1)


def sync_jobs_schedule(initial: int, attempts: int) -> list[int]:
    """Parallelism of each attempt when every attempt fails."""
    schedule: list[int] = []
    jobs = max(initial, 1)
    for _ in range(attempts):
        schedule.append(jobs)
        jobs = next_sync_jobs(jobs)
    return schedule


def retry_sync(
    attempt: Callable[[int], bool],
    initial_jobs: int,
    max_attempts: int = 3,
    delay: float = 30.0,
    sleep: Callable[[float], None] = time.sleep,
) -> SyncOutcome:
    """Run attempt(jobs) until it succeeds or attempts run out.

    Between attempts, waits delay seconds and halves the jobs.

    Args:
        attempt: Callable running one sync with the given jobs.
        initial_jobs: Jobs for the first attempt.
        max_attempts: Total attempts allowed.
        delay: Seconds between attempts.
        sleep: Sleep function.

    Returns:
        SyncOutcome describing the attempts.
    """
    jobs = max(initial_jobs, 1)
    used: list[int] = []

    for number in range(1, max_attempts + 1):
        used.append(jobs)
        if attempt(jobs):
            return SyncOutcome(success=True, attempts=number, jobs_used=used)

        if number < max_attempts:
            logger.warning(
                "Repo sync failed (attempt %d/%d). Retrying in %g seconds...",
                number,
                max_attempts,
                delay,
            )
            sleep(delay)
            jobs = next_sync_jobs(jobs)
            logger.info("Reducing sync jobs to %d for retry", jobs)

    return SyncOutcome(success=False, attempts=len(used), jobs_used=used)


def normalize_revision(revision: str) -> str:
    """Strip refs/heads/ or refs/tags/ from a manifest revision."""
    for prefix in _REF_PREFIXES:
        if revision.startswith(prefix):
            return revision[len(prefix) :]
    return revision


def parse_manifest_revision(manifest_xml: str) -> str | None:
    """Return the first revision attribute of a manifest, normalized."""
    match = _REVISION_RE.search(manifest_xml)
    if not match:
        return None
    return normalize_revision(match.group(1))


def is_initialized(build_dir: Path) -> bool:
    """Whether build_dir is already a repo client."""
    return (build_dir / REPO_MARKER).is_dir()


def current_branch(
    repo: Path | str,
    build_dir: Path,
    env: dict[str, str] | None = None,
) -> str | None:
    """Branch the repo client in build_dir tracks.

    Returns:
        Branch name, or None when it cannot be determined.
    """
    try:
        result = subprocess.run(
            [str(repo), "manifest"],
            cwd=build_dir,
            capture_output=True,
            text=True,
            env=env,
            check=False,
        )
    except OSError as e:
        logger.warning("Could not query manifest: %s", e)
        return None

    if result.returncode != 0:
        logger.warning("repo manifest failed with exit code %d", result.returncode)
        return None
    return parse_manifest_revision(result.stdout)


def _repo_init(
    repo: Path | str,
    manifest_url: str,
    branch: str,
    build_dir: Path,
    env: dict[str, str] | None,
) -> None:
    cmd = [str(repo), "init", "-u", manifest_url, "-b", branch]
    logger.info("Running: %s", shlex.join(cmd))
    try:
        result = subprocess.run(cmd, cwd=build_dir, env=env, check=False)
    except OSError as e:
        raise SyncError(f"Failed to run repo init: {e}", code=INIT_FAILED) from e
    if result.returncode != 0:
        raise SyncError(
            f"repo init failed with exit code {result.returncode}",
            code=INIT_FAILED,
        )


def ensure_initialized(
    repo: Path | str,
    config: BuildConfig,
    manifest_url: str,
    env: dict[str, str] | None = None,
) -> tuple[InitAction, str | None]:
    """Initialize, re-initialize or reuse the repo client.

    Args:
        repo: repo launcher.
        config: Build configuration (branch, build_dir).
        manifest_url: Manifest repository URL.
        env: Child process environment.

    Returns:
        The action taken and the previously tracked branch, if any.

    Raises:
        SyncError: If repo init fails.
    """
    build_dir = config.build_dir

    if not is_initialized(build_dir):
        logger.info("New build directory, initializing repo...")
        _repo_init(repo, manifest_url, config.branch, build_dir, env)
        return InitAction.INITIALIZED, None

    logger.info("Repo already initialized, checking if branch needs to be updated...")
    previous = current_branch(repo, build_dir, env=env)
    if previous == config.branch:
        logger.info("Already on correct branch '%s'", config.branch)
        return InitAction.SKIPPED, previous

    logger.info("Switching from branch '%s' to '%s'", previous, config.branch)
    _repo_init(repo, manifest_url, config.branch, build_dir, env)
    return InitAction.REINITIALIZED, previous


def compose_sync_command(repo: Path | str, jobs: int) -> list[str]:
    """Compose the repo sync command line."""
    return [str(repo), "sync", f"-j{jobs}", *SYNC_FLAGS]


def run_sync(
    repo: Path | str,
    build_dir: Path,
    jobs: int,
    env: dict[str, str] | None = None,
) -> bool:
    """Run a single repo sync.

    Returns:
        True if repo sync exited 0.
    """
    cmd = compose_sync_command(repo, jobs)
    logger.info("Running: %s", shlex.join(cmd))
    try:
        result = subprocess.run(cmd, cwd=build_dir, env=env, check=False)
    except OSError as e:
        logger.error("Failed to run repo sync: %s", e)
        return False
    return result.returncode == 0


def fetch_manifest(
    config: BuildConfig,
    settings: Settings,
    repo: Path | str,
    environment: BuildEnvironment | None = None,
    cpu_count: int | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> FetchResult:
    """Fetch the manifest and sync every project.

    Args:
        config: Build configuration.
        settings: Settings (manifest URL, retry policy, RBE script).
        repo: repo launcher.
        environment: Build environment for child processes.
        cpu_count: CPUs to clamp against (default: os.cpu_count()).
        sleep: Sleep function used between sync attempts.

    Returns:
        FetchResult.

    Raises:
        SyncError: If init fails or every sync attempt fails.
        MissingScriptError: If the RBE script is missing.
    """
    logger.info("Fetching AOSP manifest for branch: %s", config.branch)
    logger.info("Using build directory '%s'", config.build_dir)
    env = environment.merged() if environment is not None else None

    action, previous = ensure_initialized(repo, config, settings.manifest_url, env)
    stage_rbe_script(settings.rbe_script, config.build_dir)

    logger.info("Syncing repository (this may take a long time)...")
    cpus = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
    jobs = clamp_sync_jobs(
        config.sync_jobs,
        cpus,
        high_core_threshold=settings.high_core_threshold,
        high_core_cap=settings.high_core_sync_cap,
    )
    logger.info("Using %d parallel jobs for repo sync to avoid rate limiting", jobs)
    logger.info("If you get 429 errors, try reducing sync jobs with -j option")

    outcome = retry_sync(
        lambda j: run_sync(repo, config.build_dir, j, env=env),
        jobs,
        max_attempts=settings.sync_attempts,
        delay=settings.sync_retry_delay,
        sleep=sleep,
    )
    if not outcome.success:
        raise SyncError(
            f"Repo sync failed after {outcome.attempts} attempts. "
            "Try running with fewer jobs using -j option."
        )

    success(logger, "Manifest fetched and repository synced")
    return FetchResult(action=action, sync=outcome, previous_branch=previous)


__all__ = [
    "REPO_MARKER",
    "FetchResult",
    "InitAction",
    "SyncOutcome",
    "clamp_sync_jobs",
    "compose_sync_command",
    "current_branch",
    "ensure_initialized",
    "fetch_manifest",
    "is_initialized",
    "next_sync_jobs",
    "normalize_revision",
    "parse_manifest_revision",
    "retry_sync",
    "run_sync",
    "sync_jobs_schedule",
]
