"""Source tree management module.

This module handles:
- Build directory creation, cleaning and locking
- repo init / branch switching
- repo sync with job clamping and retries
"""

from aosp_builder.source.sync import (
    InitAction,
    SyncOutcome,
    clamp_sync_jobs,
    fetch_manifest,
    retry_sync,
    sync_jobs_schedule,
)
from aosp_builder.source.workspace import (
    clean_build_dir,
    create_build_dir,
    stage_rbe_script,
    workspace_lock,
)

__all__ = [
    "InitAction",
    "SyncOutcome",
    "clamp_sync_jobs",
    "clean_build_dir",
    "create_build_dir",
    "fetch_manifest",
    "retry_sync",
    "stage_rbe_script",
    "sync_jobs_schedule",
    "workspace_lock",
]
