"""
TALKREEL Job Registry

Process-wide, in-memory store of generation jobs.

Policy:
- Jobs live for a fixed TTL measured from creation (default 30 minutes),
  regardless of how recently they were updated
- Expired jobs are swept on every create; an optional asyncio reaper sweeps
  on a fixed interval as well
- All access goes through a lock; callers only ever receive copies
"""

import asyncio
import random
import string
import threading
import time
from typing import Callable, Dict, Optional

from schemas import JobState
from utils.constants import JOB_ID_PREFIX
from utils.errors import InvalidJobIdError
from utils.logger import get_logger
logger = get_logger("job_registry")

DEFAULT_TTL_SEC = 30 * 60

_BASE36 = string.digits + string.ascii_lowercase
_IMMUTABLE_FIELDS = ("id", "created_at")


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_job_id() -> str:
    """job-<base36 millisecond timestamp>-<6 random base36 chars>"""
    timestamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(random.choices(_BASE36, k=6))
    return f"{JOB_ID_PREFIX}{timestamp}-{suffix}"


def validate_job_id(job_id: str) -> str:
    """Reject ids that cannot have come from :func:`generate_job_id`."""
    if not job_id or not job_id.strip():
        raise InvalidJobIdError("Missing job ID.")
    if not job_id.startswith(JOB_ID_PREFIX):
        raise InvalidJobIdError(f"Invalid job ID format: {job_id!r}")
    return job_id


class JobRegistry:
    """Flat key-value map of JobState with creation-time expiry."""

    def __init__(self, ttl_sec: float = DEFAULT_TTL_SEC, clock: Callable[[], float] = time.time):
        self.ttl_sec = ttl_sec
        self._clock = clock
        self._jobs: Dict[str, JobState] = {}
        self._lock = threading.Lock()
        self._reaper: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def create(self, job_id: str, operation_handle: str) -> JobState:
        self.sweep_expired()
        now = self._clock()
        job = JobState(
            id=job_id,
            operation_handle=operation_handle,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            if job_id in self._jobs:
                logger.warning(f"[Registry] Job {job_id} already exists, replacing")
            self._jobs[job_id] = job
        logger.debug(f"[Registry] Created {job_id} (operation={operation_handle})")
        return job.model_copy(deep=True)

    def get(self, job_id: str) -> Optional[JobState]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def update(self, job_id: str, **fields) -> Optional[JobState]:
        """
        Merge ``fields`` into the job and refresh ``updated_at``.

        Returns:
            The updated snapshot, or None when the job does not exist.
        """
        for name in _IMMUTABLE_FIELDS:
            if name in fields:
                raise ValueError(f"JobState.{name} cannot be updated")

        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            merged = job.model_dump()
            merged.update(fields)
            merged["updated_at"] = self._clock()
            updated = JobState.model_validate(merged)
            self._jobs[job_id] = updated
            return updated.model_copy(deep=True)

    def sweep_expired(self) -> int:
        """Remove every job older than the TTL. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [
                job_id for job_id, job in self._jobs.items()
                if now - job.created_at > self.ttl_sec
            ]
            for job_id in expired:
                del self._jobs[job_id]
        if expired:
            logger.info(f"[Registry] Swept {len(expired)} expired job(s)")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._jobs.clear()

    # ------------------------------------------------------------------
    # Background reaper
    # ------------------------------------------------------------------

    async def _reaper_loop(self, interval_sec: float):
        while True:
            await asyncio.sleep(interval_sec)
            try:
                self.sweep_expired()
            except Exception as e:
                logger.error(f"[Registry] Reaper error: {e}")

    def start_reaper(self, interval_sec: float = 60.0) -> asyncio.Task:
        """Register the sweep loop in the running event loop."""
        if self._reaper is None or self._reaper.done():
            self._reaper = asyncio.ensure_future(self._reaper_loop(interval_sec))
            logger.info(f"[Registry] Reaper started (every {interval_sec:.0f}s, ttl={self.ttl_sec:.0f}s)")
        return self._reaper

    def stop_reaper(self) -> None:
        if self._reaper is not None:
            self._reaper.cancel()
            self._reaper = None


job_registry = JobRegistry()
