"""Host preparation module.

This module handles:
- Platform, disk and memory checks
- Installing the repo launcher when it is missing
- Compiler cache and Java environment checks
"""

from aosp_builder.host.environment import (
    BuildEnvironment,
    check_java_version,
    java_major_version,
    setup_environment,
)
from aosp_builder.host.preflight import (
    check_disk_space,
    check_memory,
    check_platform,
    run_preflight,
)
from aosp_builder.host.repo_tool import ensure_repo, find_repo, install_repo

__all__ = [
    "BuildEnvironment",
    "check_disk_space",
    "check_java_version",
    "check_memory",
    "check_platform",
    "ensure_repo",
    "find_repo",
    "install_repo",
    "java_major_version",
    "run_preflight",
    "setup_environment",
]
