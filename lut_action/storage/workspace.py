"""Per-job scratch directories with age-based cleanup."""

import logging
import os
import shutil
import time
from typing import Optional

from lut_action.config import settings

logger = logging.getLogger(__name__)


class JobWorkspace:
    """Manages scratch files (downloaded originals, transcoded outputs) per job."""

    def __init__(self, base_dir: Optional[str] = None, max_age_hours: float = 2):
        self._base_dir = base_dir or settings.processing_dir
        os.makedirs(self._base_dir, exist_ok=True)
        self._max_age_seconds = max_age_hours * 3600

    @property
    def base_dir(self) -> str:
        return self._base_dir

    def job_dir(self, job_id: str) -> str:
        """Get or create the directory for a job's files."""
        path = os.path.join(self._base_dir, job_id)
        os.makedirs(path, exist_ok=True)
        return path

    def path_for(self, job_id: str, filename: str) -> str:
        return os.path.join(self.job_dir(job_id), os.path.basename(filename))

    def release(self, job_id: str) -> None:
        """Remove everything the job wrote. Safe to call more than once."""
        path = os.path.join(self._base_dir, job_id)
        if os.path.isdir(path):
            shutil.rmtree(path, ignore_errors=True)
            logger.debug("Released workspace %s", path)

    def cleanup_expired(self) -> int:
        """Remove job directories older than the max age. Returns count removed."""
        now = time.time()
        removed = 0
        if not os.path.exists(self._base_dir):
            return 0
        for entry in os.listdir(self._base_dir):
            path = os.path.join(self._base_dir, entry)
            if not os.path.isdir(path):
                continue
            if now - os.path.getmtime(path) > self._max_age_seconds:
                shutil.rmtree(path, ignore_errors=True)
                removed += 1
        if removed:
            logger.info("Removed %d stale job workspace(s)", removed)
        return removed
