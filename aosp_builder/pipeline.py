"""End-to-end build pipeline.

Phases run strictly in order: lock, clean, preflight, workspace,
environment, fetch, target selection, build, upload. A fatal error stops
the run and is returned as a PipelineResult. The upload phase runs after
every build, whether it succeeded or failed.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from aosp_builder.builds.artifacts import UploadReport, upload_artifacts
from aosp_builder.builds.lunch import TargetSelection, select_target, setup_script
from aosp_builder.builds.runner import BuildResult, run_build
from aosp_builder.errors import BUILD_FAILED, BuilderError
from aosp_builder.host.environment import setup_environment
from aosp_builder.host.preflight import run_preflight
from aosp_builder.logs import success
from aosp_builder.source.sync import FetchResult, fetch_manifest
from aosp_builder.source.workspace import (
    clean_build_dir,
    create_build_dir,
    workspace_lock,
)
from aosp_builder.types import Phase

if TYPE_CHECKING:
    import httpx

    from aosp_builder.config import BuildConfig, Settings

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Outcome of a pipeline run.

    Attributes:
        success: Whether every phase succeeded.
        phase: Phase that failed, or DONE when the run succeeded.
        message: Human-readable summary.
        code: Error code when the run failed.
        fetch: Fetch result, if the fetch phase completed.
        selection: Target selection, if that phase completed.
        build: Build result, if the build phase ran.
        upload: Upload report, if the upload phase ran.
    """

    success: bool
    phase: Phase
    message: str
    code: str | None = None
    fetch: FetchResult | None = None
    selection: TargetSelection | None = None
    build: BuildResult | None = None
    upload: UploadReport | None = None

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1


def log_run_header(config: BuildConfig) -> None:
    logger.info("Starting AOSP build process...")
    logger.info("Branch: %s", config.branch)
    logger.info("Target: %s", config.target)
    logger.info("Build directory: %s", config.build_dir)
    logger.info("Sync jobs: %d", config.sync_jobs)
    logger.info("Use RBE: %s", config.use_rbe)
    logger.info("Clean build: %s", config.clean)


def run_pipeline(
    config: BuildConfig,
    settings: Settings,
    client: httpx.Client | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> PipelineResult:
    """Run every phase for one build.

    Args:
        config: Resolved build configuration.
        settings: Loaded settings.
        client: Optional HTTPX client for the repo download.
        sleep: Sleep function used between sync attempts.

    Returns:
        PipelineResult; fatal errors are reported here, not raised.
    """
    log_run_header(config)
    result = PipelineResult(success=False, phase=Phase.LOCK, message="")

    try:
        with workspace_lock(config.build_dir):
            if config.clean:
                result.phase = Phase.CLEAN
                clean_build_dir(config.build_dir)

            result.phase = Phase.PREFLIGHT
            repo = run_preflight(settings, config.build_dir, client=client)

            result.phase = Phase.WORKSPACE
            create_build_dir(config.build_dir)

            result.phase = Phase.ENVIRONMENT
            environment = setup_environment(settings, use_rbe=config.use_rbe)

            result.phase = Phase.FETCH
            result.fetch = fetch_manifest(
                config, settings, repo, environment=environment, sleep=sleep
            )

            result.phase = Phase.TARGET
            result.selection = select_target(config, settings, environment)

            result.phase = Phase.BUILD
            result.build = run_build(
                config,
                setup_script(config.build_dir, config.use_rbe),
                result.selection.target,
                environment=environment,
            )

            result.phase = Phase.UPLOAD
            result.upload = upload_artifacts(
                config.build_dir, config.log_path, enabled=settings.buildkite
            )
    except BuilderError as e:
        logger.error("%s", e)
        result.message = str(e)
        result.code = e.code
        return result

    if result.build.success:
        success(logger, "AOSP build process completed successfully!")
        result.phase = Phase.DONE
        result.success = True
        result.message = "Build completed"
    else:
        logger.error("AOSP build process failed!")
        result.phase = Phase.BUILD
        result.message = result.build.error_message or "Build failed"
        result.code = BUILD_FAILED
    return result


__all__ = ["PipelineResult", "log_run_header", "run_pipeline"]
