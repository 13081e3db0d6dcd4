"""Shared type definitions for aosp_builder."""

from enum import Enum


class Phase(str, Enum):
    """Pipeline phases, in execution order."""

    LOCK = "lock"
    CLEAN = "clean"
    PREFLIGHT = "preflight"
    WORKSPACE = "workspace"
    ENVIRONMENT = "environment"
    FETCH = "fetch"
    TARGET = "target"
    BUILD = "build"
    UPLOAD = "upload"
    DONE = "done"


__all__ = ["Phase"]
