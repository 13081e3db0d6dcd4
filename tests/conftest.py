"""Shared fixtures for aosp_builder tests."""

import logging
import os

import pytest

from aosp_builder.config import BuildConfig, Settings
from aosp_builder.logs import LOGGER_NAME

_CI_VARS = ("BUILDKITE", "BUILDKITE_AOSP_CLEAN")


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Keep CI and AOSP_BUILD_ variables of the host out of the tests."""
    for name in list(os.environ):
        if name.startswith("AOSP_BUILD_") or name in _CI_VARS:
            monkeypatch.delenv(name, raising=False)
    yield
    package_logger = logging.getLogger(LOGGER_NAME)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing every path into tmp_path."""
    rbe_script = tmp_path / "scripts" / "rbe.sh"
    rbe_script.parent.mkdir()
    rbe_script.write_text("source build/envsetup.sh\n")
    return Settings(
        build_dir=tmp_path / "aosp",
        rbe_script=rbe_script,
        ccache_dir=tmp_path / "ccache",
        rbe_cache_dir=tmp_path / "reclient",
        repo_install_dir=tmp_path / "bin",
        shell_profile=tmp_path / ".bashrc",
        sync_retry_delay=0,
    )


@pytest.fixture
def build_config(settings) -> BuildConfig:
    """BuildConfig resolved from the temporary settings."""
    return BuildConfig.from_settings(settings)
