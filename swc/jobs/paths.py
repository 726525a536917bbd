"""
Destination path handling for delivered artifacts.
"""

import logging
import shutil
import threading
from pathlib import Path

logger = logging.getLogger(__name__)

MAX_COLLISION_SUFFIX = 999

# Concurrent jobs may deliver the same name; pick-and-move must be atomic
_DELIVERY_LOCK = threading.Lock()


def handle_output_collision(output_path: Path, overwrite_existing: bool = False) -> Path:
    """
    Handle destination file collision.

    If the destination already exists:
    - overwrite_existing=True: return the original path (will overwrite)
    - overwrite_existing=False: return the first free `<stem>_NNN<ext>`

    Raises:
        FileExistsError: If no free suffix remains
    """
    if not output_path.exists() or overwrite_existing:
        return output_path

    base = output_path.stem
    extension = output_path.suffix
    parent = output_path.parent

    for counter in range(1, MAX_COLLISION_SUFFIX + 1):
        candidate = parent / f"{base}_{counter:03d}{extension}"
        if not candidate.exists():
            return candidate

    raise FileExistsError(f"No free destination name for {output_path}")


def deliver_artifact(artifact: Path, destination_dir: Path, overwrite_existing: bool = False) -> Path:
    """
    Move a finished artifact out of its workspace into the destination.

    Returns:
        Final path of the delivered file
    """
    destination_dir.mkdir(parents=True, exist_ok=True)
    with _DELIVERY_LOCK:
        target = handle_output_collision(destination_dir / artifact.name, overwrite_existing)
        # shutil.move copies across filesystems (tmpfs workspace → volume)
        final_path = Path(shutil.move(str(artifact), str(target)))
    logger.info(f"[Deliver] {artifact.name} → {final_path}")
    return final_path
