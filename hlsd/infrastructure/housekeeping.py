import logging
import shutil
from pathlib import Path
from hlsd.config.models import StorageConfig

logger = logging.getLogger(__name__)


def remove_path(path: Path) -> bool:
    """Deletes a file or directory tree. Failures are logged, not raised."""
    try:
        if path.is_dir():
            shutil.rmtree(path)
        elif path.exists():
            path.unlink()
        else:
            return False
    except OSError as e:
        logger.error(f"Failed removing {path}: {e}")
        return False
    logger.debug(f"Removed {path}")
    return True


class HousekeepingService:
    """Prepares the scratch area and clears leftovers from previous runs."""

    def __init__(self, storage: StorageConfig):
        self.storage = storage

    def prepare(self) -> int:
        """Creates temp and scratch directories, deleting anything already in them.

        Jobs are not persisted, so nothing left behind by an earlier process can
        still be claimed. Returns the number of removed entries.
        """
        temp_dir = self.storage.temp_dir
        scratch_dir = self.storage.scratch_dir
        temp_dir.mkdir(parents=True, exist_ok=True)
        scratch_dir.mkdir(parents=True, exist_ok=True)

        removed = 0
        for entry in list(scratch_dir.iterdir()) + [p for p in temp_dir.iterdir() if p != scratch_dir]:
            if remove_path(entry):
                removed += 1
        if removed:
            logger.info(f"Housekeeping: removed {removed} stale entries from {temp_dir}")
        return removed
