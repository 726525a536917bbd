"""
Job-scoped scratch directories.

A TempWorkspace holds the intermediate files between the download and
transcode stages of one job.

- Created when the job enters DOWNLOADING
- Deleted when the job reaches any terminal state, on every exit path
  (success, failure, cancellation, unexpected exception)
- Never reused across two jobs: each workspace is a fresh mkdtemp
"""

import logging
import re
import shutil
import tempfile
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

WORKSPACE_PREFIX = "swc-job-"

_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9_.-]+")


class TempWorkspace:
    """
    Context manager owning one job's scratch directory.

    Usage:
        with TempWorkspace(job_id, root) as workspace:
            path = workspace.path / "file.webm"
    """

    def __init__(self, job_id: str, root: Optional[str] = None):
        self.job_id = job_id
        self.root = root
        self._path: Optional[Path] = None
        self._released = False

    @property
    def path(self) -> Path:
        if self._path is None:
            raise RuntimeError(f"Workspace for job {self.job_id} is not acquired")
        if self._released:
            raise RuntimeError(f"Workspace for job {self.job_id} was released")
        return self._path

    @property
    def location(self) -> Optional[Path]:
        """Directory path even after release (for inspection)."""
        return self._path

    def acquire(self) -> Path:
        if self._path is not None:
            raise RuntimeError(f"Workspace for job {self.job_id} already acquired")
        if self.root is not None:
            Path(self.root).mkdir(parents=True, exist_ok=True)
        safe_id = _UNSAFE_CHARS_RE.sub("_", self.job_id)[:40]
        self._path = Path(tempfile.mkdtemp(prefix=f"{WORKSPACE_PREFIX}{safe_id}-", dir=self.root))
        logger.debug(f"[Workspace] Created {self._path}")
        return self._path

    def release(self) -> None:
        """Delete the directory and everything in it. Idempotent."""
        if self._path is None or self._released:
            return
        self._released = True
        shutil.rmtree(self._path, ignore_errors=True)
        if self._path.exists():
            # Second pass for files that appeared while the first was running
            try:
                shutil.rmtree(self._path)
            except OSError as e:
                logger.error(f"[Workspace] Failed to remove {self._path}: {e}")
                return
        logger.debug(f"[Workspace] Released {self._path}")

    def __enter__(self) -> "TempWorkspace":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
