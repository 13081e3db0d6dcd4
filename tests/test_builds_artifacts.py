"""Tests for builds/artifacts.py module."""

import tarfile
from unittest.mock import MagicMock, patch

from aosp_builder.builds.artifacts import (
    RBE_LOG_ARCHIVE,
    RBE_LOG_DIR,
    UploadReport,
    archive_rbe_logs,
    upload_artifact,
    upload_artifacts,
)


def make_rbe_logs(build_dir):
    """Create a small RBE log directory."""
    log_dir = build_dir / RBE_LOG_DIR
    log_dir.mkdir(parents=True)
    (log_dir / "reproxy.INFO").write_text("reproxy started\n")
    (log_dir / "rbe_metrics.txt").write_text("metrics\n")
    return log_dir


class TestArchiveRbeLogs:
    """Tests for archive_rbe_logs function."""

    def test_creates_archive(self, tmp_path):
        """Should tar the RBE log directory."""
        make_rbe_logs(tmp_path)

        archive = archive_rbe_logs(tmp_path)

        assert archive == tmp_path / RBE_LOG_ARCHIVE
        with tarfile.open(archive, "r:gz") as tar:
            names = tar.getnames()
        assert "out/soong/.temp/rbe/reproxy.INFO" in names
        assert "out/soong/.temp/rbe/rbe_metrics.txt" in names

    def test_no_logs(self, tmp_path):
        """Should return None without an RBE log directory."""
        assert archive_rbe_logs(tmp_path) is None
        assert not (tmp_path / RBE_LOG_ARCHIVE).exists()

    def test_archive_failure_is_warning(self, tmp_path, caplog):
        """A packing error should be logged and return None."""
        make_rbe_logs(tmp_path)

        with patch(
            "aosp_builder.builds.artifacts.tarfile.open",
            side_effect=OSError("disk full"),
        ):
            assert archive_rbe_logs(tmp_path) is None

        assert "Failed to create RBE logs archive" in caplog.text


class TestUploadArtifact:
    """Tests for upload_artifact function."""

    def test_success(self, tmp_path):
        """Should call buildkite-agent artifact upload."""
        with patch("aosp_builder.builds.artifacts.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0)
            assert upload_artifact(tmp_path / "x.log", cwd=tmp_path) is True

        cmd = mock_run.call_args[0][0]
        assert cmd == ["buildkite-agent", "artifact", "upload", str(tmp_path / "x.log")]

    def test_failure_is_warning(self, tmp_path, caplog):
        """A non-zero exit should be a warning."""
        with patch("aosp_builder.builds.artifacts.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=1)
            assert upload_artifact(tmp_path / "x.log", cwd=tmp_path) is False
        assert "Failed to upload" in caplog.text

    def test_agent_missing(self, tmp_path):
        """A missing agent binary should not raise."""
        with patch(
            "aosp_builder.builds.artifacts.subprocess.run",
            side_effect=FileNotFoundError("buildkite-agent"),
        ):
            assert upload_artifact(tmp_path / "x.log", cwd=tmp_path) is False


class TestUploadArtifacts:
    """Tests for upload_artifacts function."""

    def test_disabled(self, tmp_path):
        """Should not touch buildkite-agent when the marker is unset."""
        log_path = tmp_path / "aosp-build.log"
        log_path.write_text("log\n")

        with patch("aosp_builder.builds.artifacts.subprocess.run") as mock_run:
            report = upload_artifacts(tmp_path, log_path, enabled=False)

        assert report == UploadReport(enabled=False)
        mock_run.assert_not_called()

    def test_uploads_archive_and_log(self, tmp_path):
        """Should upload the RBE archive and the build log."""
        build_dir = tmp_path / "aosp"
        make_rbe_logs(build_dir)
        log_path = tmp_path / "aosp-build.log"
        log_path.write_text("log\n")

        with patch("aosp_builder.builds.artifacts.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0)
            report = upload_artifacts(build_dir, log_path, enabled=True)

        assert report.enabled is True
        assert report.archive == build_dir / RBE_LOG_ARCHIVE
        assert report.uploaded == [build_dir / RBE_LOG_ARCHIVE, log_path]
        assert report.failed == []
        assert mock_run.call_count == 2

    def test_log_only(self, tmp_path):
        """Without RBE logs only the build log is uploaded."""
        build_dir = tmp_path / "aosp"
        build_dir.mkdir()
        log_path = tmp_path / "aosp-build.log"
        log_path.write_text("log\n")

        with patch("aosp_builder.builds.artifacts.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0)
            report = upload_artifacts(build_dir, log_path, enabled=True)

        assert report.archive is None
        assert report.uploaded == [log_path]

    def test_upload_failures_tolerated(self, tmp_path):
        """Failed uploads are recorded, not raised."""
        build_dir = tmp_path / "aosp"
        make_rbe_logs(build_dir)
        log_path = tmp_path / "aosp-build.log"
        log_path.write_text("log\n")

        with patch("aosp_builder.builds.artifacts.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=1)
            report = upload_artifacts(build_dir, log_path, enabled=True)

        assert report.uploaded == []
        assert len(report.failed) == 2
