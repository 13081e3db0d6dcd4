"""Buildkite artifact upload.

Runs after every build, successful or not, so diagnostics are available
for failed runs. Archive and upload failures are warnings only.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import tarfile
from dataclasses import dataclass, field
from pathlib import Path

from aosp_builder.logs import success

logger = logging.getLogger(__name__)

RBE_LOG_DIR = Path("out") / "soong" / ".temp" / "rbe"
RBE_LOG_ARCHIVE = "rbe_logs.tar.gz"
AGENT = "buildkite-agent"


@dataclass
class UploadReport:
    """What the upload phase did.

    Attributes:
        enabled: Whether the CI marker was set.
        archive: RBE log archive, if one was created.
        uploaded: Files uploaded successfully.
        failed: Files whose upload failed.
    """

    enabled: bool
    archive: Path | None = None
    uploaded: list[Path] = field(default_factory=list)
    failed: list[Path] = field(default_factory=list)


def archive_rbe_logs(build_dir: Path) -> Path | None:
    """Pack the RBE log directory into a gzip tarball.

    Returns:
        Archive path, or None when there are no logs or packing failed.
    """
    source = build_dir / RBE_LOG_DIR
    if not source.is_dir():
        logger.info("No RBE logs found at %s/", RBE_LOG_DIR)
        return None

    archive = build_dir / RBE_LOG_ARCHIVE
    logger.info("Creating RBE logs archive...")
    try:
        with tarfile.open(archive, "w:gz") as tar:
            for entry in sorted(source.iterdir()):
                tar.add(entry, arcname=str(RBE_LOG_DIR / entry.name))
    except (OSError, tarfile.TarError) as e:
        logger.warning("Failed to create RBE logs archive: %s", e)
        archive.unlink(missing_ok=True)
        return None
    return archive


def upload_artifact(path: Path, cwd: Path) -> bool:
    """Upload one file with buildkite-agent.

    Returns:
        True if the agent reported success.
    """
    cmd = [AGENT, "artifact", "upload", str(path)]
    logger.debug("Running: %s", shlex.join(cmd))
    try:
        result = subprocess.run(cmd, cwd=cwd, check=False)
    except OSError as e:
        logger.warning("Failed to upload %s to Buildkite: %s", path.name, e)
        return False
    if result.returncode != 0:
        logger.warning(
            "Failed to upload %s to Buildkite (exit code %d)",
            path.name,
            result.returncode,
        )
        return False
    return True


def upload_artifacts(build_dir: Path, log_path: Path, enabled: bool) -> UploadReport:
    """Upload the RBE log archive and the build log.

    Args:
        build_dir: Build directory.
        log_path: Build log file.
        enabled: Whether the Buildkite marker is set.

    Returns:
        UploadReport.
    """
    if not enabled:
        logger.info("BUILDKITE environment not set, skipping artifact upload")
        return UploadReport(enabled=False)

    logger.info("BUILDKITE environment detected, preparing artifacts for upload...")
    report = UploadReport(enabled=True)

    report.archive = archive_rbe_logs(build_dir)
    candidates: list[Path] = []
    if report.archive is not None:
        logger.info("Uploading RBE logs to Buildkite...")
        candidates.append(report.archive)
    if log_path.is_file():
        logger.info("Uploading build log to Buildkite...")
        candidates.append(log_path)

    for path in candidates:
        if upload_artifact(path, cwd=build_dir):
            report.uploaded.append(path)
        else:
            report.failed.append(path)

    success(logger, "Buildkite artifact upload completed")
    return report


__all__ = [
    "RBE_LOG_ARCHIVE",
    "RBE_LOG_DIR",
    "UploadReport",
    "archive_rbe_logs",
    "upload_artifact",
    "upload_artifacts",
]
