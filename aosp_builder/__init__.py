"""AOSP Builder - Orchestration for fetching, syncing and building AOSP.

This package wraps the external Android toolchain (repo, envsetup/lunch,
make and buildkite-agent) behind a single command with logging, retries
and artifact upload.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
