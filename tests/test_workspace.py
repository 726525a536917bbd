"""
Tests for TempWorkspace and artifact delivery.
"""

import pytest

from swc.jobs.paths import deliver_artifact, handle_output_collision
from swc.jobs.workspace import TempWorkspace, WORKSPACE_PREFIX


class TestTempWorkspace:
    def test_acquire_creates_unique_directory(self, workspace_root):
        first = TempWorkspace("job-1", str(workspace_root))
        second = TempWorkspace("job-1", str(workspace_root))

        path_a = first.acquire()
        path_b = second.acquire()

        assert path_a.is_dir()
        assert path_b.is_dir()
        assert path_a != path_b
        assert path_a.name.startswith(f"{WORKSPACE_PREFIX}job-1-")

    def test_release_removes_contents(self, workspace_root):
        workspace = TempWorkspace("job-1", str(workspace_root))
        path = workspace.acquire()
        (path / "nested").mkdir()
        (path / "nested" / "file.webm").write_bytes(b"x")

        workspace.release()

        assert not path.exists()
        assert workspace.location == path

    def test_release_is_idempotent(self, workspace_root):
        workspace = TempWorkspace("job-1", str(workspace_root))
        workspace.acquire()
        workspace.release()
        workspace.release()

    def test_release_before_acquire_is_noop(self):
        TempWorkspace("job-1").release()

    def test_path_unavailable_after_release(self, workspace_root):
        workspace = TempWorkspace("job-1", str(workspace_root))
        workspace.acquire()
        workspace.release()
        with pytest.raises(RuntimeError):
            _ = workspace.path

    def test_context_manager_releases_on_error(self, workspace_root):
        """The directory is removed even when the body raises."""
        with pytest.raises(KeyError):
            with TempWorkspace("job-1", str(workspace_root)) as workspace:
                path = workspace.path
                raise KeyError("boom")
        assert not path.exists()

    def test_unsafe_job_id_sanitized(self, workspace_root):
        workspace = TempWorkspace("../../etc/passwd", str(workspace_root))
        path = workspace.acquire()
        assert path.parent == workspace_root
        workspace.release()


class TestOutputCollision:
    def test_free_path_unchanged(self, tmp_path):
        target = tmp_path / "A.mp3"
        assert handle_output_collision(target) == target

    def test_existing_path_suffixed(self, tmp_path):
        (tmp_path / "A.mp3").write_bytes(b"x")
        (tmp_path / "A_001.mp3").write_bytes(b"x")
        assert handle_output_collision(tmp_path / "A.mp3") == tmp_path / "A_002.mp3"

    def test_overwrite_keeps_path(self, tmp_path):
        (tmp_path / "A.mp3").write_bytes(b"x")
        assert handle_output_collision(tmp_path / "A.mp3", overwrite_existing=True) == tmp_path / "A.mp3"


class TestDeliverArtifact:
    def test_moves_into_destination(self, tmp_path):
        artifact = tmp_path / "ws" / "A.mp3"
        artifact.parent.mkdir()
        artifact.write_bytes(b"encoded")
        destination = tmp_path / "out" / "nested"

        final = deliver_artifact(artifact, destination)

        assert final == destination / "A.mp3"
        assert final.read_bytes() == b"encoded"
        assert not artifact.exists()

    def test_collision_gets_suffix(self, tmp_path):
        destination = tmp_path / "out"
        destination.mkdir()
        (destination / "A.mp3").write_bytes(b"old")
        artifact = tmp_path / "A.mp3"
        artifact.write_bytes(b"new")

        final = deliver_artifact(artifact, destination)

        assert final == destination / "A_001.mp3"
        assert (destination / "A.mp3").read_bytes() == b"old"
