"""Build runner for the AOSP compile step.

This module handles:
- Composing the bash script that sources the environment, runs lunch
  and invokes make
- Streaming combined stdout/stderr to the console and the build log
- Reporting the exit status of make itself

A failed build is reported in the result, not raised; the caller decides
what happens next.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

from aosp_builder.logs import success, tee_line

if TYPE_CHECKING:
    from aosp_builder.config import BuildConfig
    from aosp_builder.host.environment import BuildEnvironment

logger = logging.getLogger(__name__)

PRODUCT_OUT = Path("out") / "target" / "product"


@dataclass
class BuildResult:
    """Result of a build execution.

    Attributes:
        success: Whether the build succeeded.
        exit_code: Exit code of the build command (-1 if it never ran).
        target: Lunch target built.
        product_out: Directory holding per-product outputs.
        log_path: Path to the build log file.
        started_at: Build start time.
        finished_at: Build finish time.
        command: The script that was executed.
        error_message: Error message if build failed.
    """

    success: bool
    exit_code: int
    target: str
    product_out: Path
    log_path: Path
    started_at: datetime
    finished_at: datetime
    command: str
    error_message: str | None = None

    @property
    def duration(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


def compose_build_script(setup: str, target: str, jobs: int) -> str:
    """Compose the bash script for one build.

    Args:
        setup: Environment script, relative to the build directory.
        target: Lunch target.
        jobs: make parallelism.

    Returns:
        Script suitable for `bash -c`.
    """
    return (
        f"source {shlex.quote(setup)} && "
        f"lunch {shlex.quote(target)} && "
        f"make -j{jobs}"
    )


def run_build(
    config: BuildConfig,
    setup: str,
    target: str,
    environment: BuildEnvironment | None = None,
    jobs: int | None = None,
    stream: TextIO | None = None,
) -> BuildResult:
    """Run the compile step.

    Args:
        config: Build configuration (build_dir, log_path).
        setup: Environment script, relative to the build directory.
        target: Lunch target selected earlier.
        environment: Build environment for the child process.
        jobs: make parallelism (default: CPU count).
        stream: Console stream for build output (default: sys.stdout).

    Returns:
        BuildResult with execution details.
    """
    build_dir = config.build_dir
    log_path = config.log_path
    jobs = jobs or os.cpu_count() or 1
    script = compose_build_script(setup, target, jobs)
    env = environment.merged() if environment is not None else None

    logger.info("Starting AOSP build...")
    logger.info("Building with %d parallel jobs", jobs)
    logger.debug("Build script: %s", script)

    started_at = datetime.now(timezone.utc)
    error_message: str | None = None

    with log_path.open("a", encoding="utf-8") as log_file:
        log_file.write(f"# Command: {script}\n")
        log_file.write(f"# Started: {started_at.isoformat()}\n")
        log_file.write(f"# CWD: {build_dir}\n")
        log_file.write("# " + "=" * 70 + "\n")
        log_file.flush()

        try:
            proc = subprocess.Popen(
                ["bash", "-c", script],
                cwd=build_dir,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            exit_code = -1
            error_message = f"Failed to execute build: {e}"
        else:
            assert proc.stdout is not None
            with proc.stdout:
                for line in proc.stdout:
                    tee_line(line, log_file, stream)
            exit_code = proc.wait()
            if exit_code != 0:
                error_message = f"Build failed with exit code {exit_code}"

        finished_at = datetime.now(timezone.utc)
        duration = (finished_at - started_at).total_seconds()
        log_file.write(f"# Finished: {finished_at.isoformat()}\n")
        log_file.write(f"# Exit code: {exit_code}\n")
        log_file.write(f"# Duration: {duration:.1f}s\n")

    product_out = build_dir / PRODUCT_OUT
    if error_message is None:
        success(logger, "AOSP build completed successfully!")
        logger.info("Build artifacts are available in: %s/*/", product_out)
    else:
        logger.error(
            "AOSP build failed. Check the log file for details: %s (%s)",
            log_path,
            error_message,
        )

    return BuildResult(
        success=error_message is None,
        exit_code=exit_code,
        target=target,
        product_out=product_out,
        log_path=log_path,
        started_at=started_at,
        finished_at=finished_at,
        command=script,
        error_message=error_message,
    )


__all__ = ["PRODUCT_OUT", "BuildResult", "compose_build_script", "run_build"]
