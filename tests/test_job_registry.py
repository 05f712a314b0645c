"""
Unit tests for the in-memory job registry.
"""
import sys
import os
import re
import asyncio
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from schemas import JobStatus
from utils.errors import InvalidJobIdError
from utils.job_registry import JobRegistry, generate_job_id, validate_job_id


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestJobIds:

    def test_format(self):
        job_id = generate_job_id()
        assert re.fullmatch(r"job-[0-9a-z]+-[0-9a-z]{6}", job_id)

    def test_unique(self):
        assert len({generate_job_id() for _ in range(200)}) == 200

    def test_validate(self):
        assert validate_job_id("job-abc-123456") == "job-abc-123456"

    @pytest.mark.parametrize("bad", ["", "   ", "abc-123", "JOB-x"])
    def test_invalid(self, bad):
        with pytest.raises(InvalidJobIdError):
            validate_job_id(bad)


class TestRegistry:

    def test_create_get(self):
        reg = JobRegistry(clock=FakeClock())
        created = reg.create("job-1", "operations/abc")
        assert created.status == JobStatus.QUEUED
        assert created.progress == 0
        assert reg.get("job-1").operation_handle == "operations/abc"
        assert "job-1" in reg
        assert len(reg) == 1

    def test_get_missing(self):
        assert JobRegistry().get("job-nope") is None

    def test_get_returns_copy(self):
        reg = JobRegistry()
        reg.create("job-1", "op")
        snapshot = reg.get("job-1")
        snapshot.progress = 99
        assert reg.get("job-1").progress == 0

    def test_update_merges_and_keeps_created_at(self):
        clock = FakeClock()
        reg = JobRegistry(clock=clock)
        reg.create("job-1", "op")
        clock.now += 10

        updated = reg.update("job-1", status=JobStatus.PROCESSING, progress=50)
        assert updated.status == JobStatus.PROCESSING
        assert updated.progress == 50
        assert updated.operation_handle == "op"
        assert updated.created_at == 1_000_000.0
        assert updated.updated_at == 1_000_010.0

        again = reg.update("job-1", audio_duration_sec=3.0)
        assert again.status == JobStatus.PROCESSING
        assert again.progress == 50

    def test_update_missing_returns_none(self):
        assert JobRegistry().update("job-x", progress=10) is None

    def test_immutable_fields(self):
        reg = JobRegistry()
        reg.create("job-1", "op")
        with pytest.raises(ValueError):
            reg.update("job-1", created_at=0.0)
        with pytest.raises(ValueError):
            reg.update("job-1", id="job-2")

    def test_invalid_progress_rejected(self):
        reg = JobRegistry()
        reg.create("job-1", "op")
        with pytest.raises(ValueError):
            reg.update("job-1", progress=150)

    def test_ttl_from_creation_not_update(self):
        clock = FakeClock()
        reg = JobRegistry(ttl_sec=60, clock=clock)
        reg.create("job-old", "op")

        clock.now += 50
        reg.update("job-old", progress=10)
        clock.now += 11

        # sweep happens on create
        reg.create("job-new", "op")
        assert reg.get("job-old") is None
        assert reg.get("job-new") is not None

    def test_sweep_keeps_fresh_jobs(self):
        clock = FakeClock()
        reg = JobRegistry(ttl_sec=60, clock=clock)
        reg.create("job-1", "op")
        clock.now += 60
        assert reg.sweep_expired() == 0
        clock.now += 1
        assert reg.sweep_expired() == 1
        assert len(reg) == 0

    def test_reaper_sweeps(self):
        clock = FakeClock()
        reg = JobRegistry(ttl_sec=1, clock=clock)
        reg.create("job-1", "op")
        clock.now += 5

        async def scenario():
            reg.start_reaper(interval_sec=0.01)
            await asyncio.sleep(0.1)
            reg.stop_reaper()

        asyncio.run(scenario())
        assert len(reg) == 0
