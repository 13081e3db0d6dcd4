"""Error definitions for aosp_builder.

Every fatal condition raised by a phase is a BuilderError subclass with a
stable ``code``. Phases raise; the pipeline catches and turns errors into
a result; only the CLI decides the process exit code.
"""

# Error code constants
UNSUPPORTED_PLATFORM = "unsupported_platform"
MISSING_SCRIPT = "missing_script"
RBE_SCRIPT_MISSING = "rbe_script_missing"
ENVSETUP_MISSING = "envsetup_missing"
NOT_INITIALIZED = "not_initialized"
INIT_FAILED = "init_failed"
SYNC_FAILED = "sync_failed"
NO_VIABLE_TARGET = "no_viable_target"
WORKSPACE_LOCKED = "workspace_locked"
WORKSPACE_ERROR = "workspace_error"
DOWNLOAD_ERROR = "download_error"
BUILD_FAILED = "build_failed"


class BuilderError(Exception):
    """Base error for fatal orchestration failures."""

    def __init__(self, message: str, code: str = "builder_error") -> None:
        """Initialize BuilderError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


class UnsupportedPlatformError(BuilderError):
    """Raised when the host OS cannot build AOSP."""

    def __init__(self, platform: str) -> None:
        super().__init__(
            f"This tool is designed for Linux systems only (got {platform})",
            code=UNSUPPORTED_PLATFORM,
        )
        self.platform = platform


class DownloadError(BuilderError):
    """Raised when the repo launcher cannot be downloaded."""

    def __init__(self, message: str, code: str = DOWNLOAD_ERROR) -> None:
        super().__init__(message, code=code)


class WorkspaceError(BuilderError):
    """Raised when the build directory cannot be prepared."""

    def __init__(self, message: str, code: str = WORKSPACE_ERROR) -> None:
        super().__init__(message, code=code)


class WorkspaceLockedError(WorkspaceError):
    """Raised when another run holds the build directory lock."""

    def __init__(self, build_dir: str) -> None:
        super().__init__(
            f"Build directory '{build_dir}' is in use by another run",
            code=WORKSPACE_LOCKED,
        )
        self.build_dir = build_dir


class MissingScriptError(BuilderError):
    """Raised when a required helper script is absent."""

    def __init__(self, message: str, code: str = MISSING_SCRIPT) -> None:
        super().__init__(message, code=code)


class SyncError(BuilderError):
    """Raised when repo init or repo sync cannot complete."""

    def __init__(self, message: str, code: str = SYNC_FAILED) -> None:
        super().__init__(message, code=code)


class TargetSelectionError(BuilderError):
    """Raised when neither the requested nor any fallback target works."""

    def __init__(self, message: str, code: str = NO_VIABLE_TARGET) -> None:
        super().__init__(message, code=code)


__all__ = [
    "BUILD_FAILED",
    "DOWNLOAD_ERROR",
    "ENVSETUP_MISSING",
    "INIT_FAILED",
    "MISSING_SCRIPT",
    "NOT_INITIALIZED",
    "NO_VIABLE_TARGET",
    "RBE_SCRIPT_MISSING",
    "SYNC_FAILED",
    "UNSUPPORTED_PLATFORM",
    "WORKSPACE_ERROR",
    "WORKSPACE_LOCKED",
    "BuilderError",
    "DownloadError",
    "MissingScriptError",
    "SyncError",
    "TargetSelectionError",
    "UnsupportedPlatformError",
    "WorkspaceError",
    "WorkspaceLockedError",
]
