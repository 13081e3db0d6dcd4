"""Tests for pipeline.py module.

Phase functions are patched in the pipeline namespace; workspace
handling uses the real filesystem under tmp_path.
"""

from contextlib import ExitStack
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from aosp_builder.builds.artifacts import UploadReport
from aosp_builder.builds.lunch import TargetSelection
from aosp_builder.builds.runner import BuildResult
from aosp_builder.config import BuildConfig
from aosp_builder.errors import (
    BUILD_FAILED,
    DOWNLOAD_ERROR,
    NO_VIABLE_TARGET,
    SYNC_FAILED,
    WORKSPACE_ERROR,
    DownloadError,
    SyncError,
    TargetSelectionError,
)
from aosp_builder.host.environment import BuildEnvironment
from aosp_builder.pipeline import PipelineResult, run_pipeline
from aosp_builder.source.sync import FetchResult, InitAction, SyncOutcome
from aosp_builder.types import Phase


def make_build_result(config, success=True):
    now = datetime.now(timezone.utc)
    return BuildResult(
        success=success,
        exit_code=0 if success else 1,
        target=config.target,
        product_out=config.build_dir / "out" / "target" / "product",
        log_path=config.log_path,
        started_at=now,
        finished_at=now,
        command="make",
        error_message=None if success else "Build failed with exit code 1",
    )


class Phases:
    """Patches every phase the pipeline calls and records the order."""

    def __init__(self, config, build_success=True, real=()):
        self.config = config
        self.real = set(real)
        self.order: list[str] = []
        self.build_success = build_success
        self.mocks: dict[str, MagicMock] = {}
        self._stack = ExitStack()

    def _record(self, name, result):
        def side_effect(*args, **kwargs):
            self.order.append(name)
            if isinstance(result, Exception):
                raise result
            return result

        return side_effect

    def __enter__(self):
        results = {
            "run_preflight": Path("/usr/bin/repo"),
            "setup_environment": BuildEnvironment(),
            "fetch_manifest": FetchResult(
                action=InitAction.INITIALIZED,
                sync=SyncOutcome(success=True, attempts=1, jobs_used=[4]),
            ),
            "select_target": TargetSelection(
                target=self.config.target, requested=self.config.target
            ),
            "setup_script": "build/envsetup.sh",
            "run_build": make_build_result(self.config, self.build_success),
            "upload_artifacts": UploadReport(enabled=False),
        }
        results.update(getattr(self, "overrides", {}))
        for name, result in results.items():
            if name in self.real:
                continue
            self.mocks[name] = self._stack.enter_context(
                patch(
                    f"aosp_builder.pipeline.{name}",
                    side_effect=self._record(name, result),
                )
            )
        return self

    def __exit__(self, *exc):
        return self._stack.__exit__(*exc)


class TestRunPipeline:
    """Tests for run_pipeline function."""

    def test_phase_order(self, build_config, settings):
        """Phases should run strictly in order."""
        with Phases(build_config) as phases:
            result = run_pipeline(build_config, settings)

        assert result.success is True
        assert result.phase is Phase.DONE
        assert result.exit_code == 0
        assert phases.order == [
            "run_preflight",
            "setup_environment",
            "fetch_manifest",
            "select_target",
            "setup_script",
            "run_build",
            "upload_artifacts",
        ]
        assert build_config.build_dir.is_dir()

    def test_build_failure_still_uploads(self, build_config, settings):
        """A failed build is reported, and upload runs exactly once."""
        enabled = settings.model_copy(update={"buildkite": True})

        with Phases(build_config, build_success=False) as phases:
            result = run_pipeline(build_config, enabled)

        assert result.success is False
        assert result.phase is Phase.BUILD
        assert result.code == BUILD_FAILED
        assert result.exit_code == 1
        upload = phases.mocks["upload_artifacts"]
        upload.assert_called_once()
        assert upload.call_args.kwargs["enabled"] is True
        assert phases.order[-2:] == ["run_build", "upload_artifacts"]

    def test_upload_disabled_without_marker(self, build_config, settings):
        """Upload is told it is disabled when BUILDKITE is unset."""
        with Phases(build_config, build_success=False) as phases:
            run_pipeline(build_config, settings)

        assert phases.mocks["upload_artifacts"].call_args.kwargs["enabled"] is False

    def test_sync_failure_is_fatal(self, build_config, settings):
        """A fatal fetch error stops the run before build and upload."""
        phases = Phases(build_config)
        phases.overrides = {"fetch_manifest": SyncError("Repo sync failed")}

        with phases:
            result = run_pipeline(build_config, settings)

        assert isinstance(result, PipelineResult)
        assert result.success is False
        assert result.phase is Phase.FETCH
        assert result.code == SYNC_FAILED
        assert "run_build" not in phases.order
        assert "upload_artifacts" not in phases.order

    def test_target_failure_is_fatal(self, build_config, settings):
        """No viable target stops the run."""
        phases = Phases(build_config)
        phases.overrides = {"select_target": TargetSelectionError("none")}

        with phases:
            result = run_pipeline(build_config, settings)

        assert result.phase is Phase.TARGET
        assert result.code == NO_VIABLE_TARGET
        assert result.build is None

    def test_clean_runs_first(self, settings):
        """The clean flag wipes the directory before any other phase."""
        config = BuildConfig.from_settings(settings, clean=True)
        (config.build_dir / ".repo").mkdir(parents=True)
        (config.build_dir / "stale.o").write_text("x")
        seen_at_preflight = []

        with Phases(config) as phases:
            phases.mocks["run_preflight"].side_effect = (
                lambda *a, **k: seen_at_preflight.extend(config.build_dir.iterdir())
                or Path("/usr/bin/repo")
            )
            result = run_pipeline(config, settings)

        assert result.success is True
        assert seen_at_preflight == []
        assert config.build_dir.is_dir()

    def test_no_clean_keeps_tree(self, build_config, settings):
        """Without clean, an existing tree is reused."""
        (build_config.build_dir / ".repo").mkdir(parents=True)

        with Phases(build_config):
            run_pipeline(build_config, settings)

        assert (build_config.build_dir / ".repo").is_dir()

    def test_locked_workspace(self, build_config, settings):
        """A concurrent run against the same directory fails immediately."""
        from aosp_builder.source.workspace import workspace_lock

        with workspace_lock(build_config.build_dir):
            with Phases(build_config) as phases:
                result = run_pipeline(build_config, settings)

        assert result.success is False
        assert result.phase is Phase.LOCK
        assert result.code == "workspace_locked"
        assert phases.order == []

    @pytest.mark.parametrize("use_rbe", [False, True])
    def test_rbe_flag_forwarded(self, settings, use_rbe):
        """The RBE flag reaches environment setup and script selection."""
        config = BuildConfig.from_settings(settings, use_rbe=use_rbe)

        with Phases(config) as phases:
            run_pipeline(config, settings)

        env_call = phases.mocks["setup_environment"].call_args
        assert env_call.kwargs["use_rbe"] is use_rbe
        assert phases.mocks["setup_script"].call_args[0][1] is use_rbe

    def test_unwritable_cache_dir_does_not_abort(
        self, build_config, settings, tmp_path
    ):
        """A cache directory that cannot be created only warns."""
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        blocked = settings.model_copy(update={"ccache_dir": blocker / "ccache"})

        with Phases(build_config, real=["setup_environment"]) as phases:
            with patch("aosp_builder.host.environment.check_java_version"):
                result = run_pipeline(build_config, blocked)

        assert result.success is True
        environment = phases.mocks["fetch_manifest"].call_args.kwargs["environment"]
        assert environment.get("USE_CCACHE") is None

    def test_unwritable_lock_location(self, settings, tmp_path):
        """A lock file that cannot be created fails the run with a result."""
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        config = BuildConfig.from_settings(settings, build_dir=blocker / "aosp")

        with Phases(config) as phases:
            result = run_pipeline(config, settings)

        assert result.success is False
        assert result.phase is Phase.LOCK
        assert result.code == WORKSPACE_ERROR
        assert phases.order == []

    def test_download_failure_is_fatal(self, build_config, settings):
        """A failed repo download stops the run in preflight."""
        phases = Phases(build_config)
        phases.overrides = {"run_preflight": DownloadError("Failed to write repo")}

        with phases:
            result = run_pipeline(build_config, settings)

        assert result.phase is Phase.PREFLIGHT
        assert result.code == DOWNLOAD_ERROR
        assert "upload_artifacts" not in phases.order
