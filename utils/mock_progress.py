"""
Deterministic stand-in for a generation backend.

Used whenever there is nothing real to poll: no provider configured, or the
registry no longer knows the job. The seed combines a hash of the job id with
the current wall-clock minute, so repeated polls inside one minute agree and
the value moves on as minutes pass.
"""

import time
from dataclasses import dataclass
from typing import Optional

from schemas import JobStatus
from utils.constants import MOCK_VIDEO_URL_TEMPLATE

QUEUED_BELOW = 15
COMPLETE_FROM = 85

_STAGES = [
    (25, "Synthesizing voice audio..."),
    (45, "Generating talking-head animation..."),
    (65, "Compositing B-roll footage..."),
    (80, "Applying subtitles and effects..."),
    (100, "Finalizing video render..."),
]


@dataclass
class MockProgress:
    status: JobStatus
    progress: int
    message: str
    video_url: Optional[str] = None


def progress_seed(job_id: str, now: Optional[float] = None) -> int:
    now = time.time() if now is None else now
    id_hash = sum(ord(ch) for ch in job_id)
    minute_bucket = int(now // 60)
    return (id_hash + minute_bucket) % 100


def mock_progress(job_id: str, now: Optional[float] = None) -> MockProgress:
    seed = progress_seed(job_id, now)

    if seed < QUEUED_BELOW:
        return MockProgress(
            status=JobStatus.QUEUED,
            progress=0,
            message="Job is queued and waiting to start.",
        )

    if seed >= COMPLETE_FROM:
        return MockProgress(
            status=JobStatus.COMPLETE,
            progress=100,
            message="Video generation complete. Ready for download.",
            video_url=MOCK_VIDEO_URL_TEMPLATE.format(job_id=job_id),
        )

    # 15..84 -> 5..95
    scaled = (seed - QUEUED_BELOW) / (COMPLETE_FROM - QUEUED_BELOW) * 95
    progress = int(scaled + 0.5) + 5
    message = next((msg for limit, msg in _STAGES if progress <= limit), _STAGES[-1][1])
    return MockProgress(status=JobStatus.PROCESSING, progress=progress, message=message)
