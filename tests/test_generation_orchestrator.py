"""
Unit tests for the generation orchestrator state machine.

Tests cover:
1. Happy path (audio → animation → polling → complete)
2. Partial success policy (animation failure with / without audio)
3. Polling budget exhaustion and transient poll errors
4. Cancellation (token and task) with no registry writes afterwards
5. Transition table enforcement
"""
import sys
import os
import asyncio
import base64
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pipeline
from pipeline import GenerationOrchestrator, GenerationRequest, polling_progress
from agents.video_agent import VideoAnimatorClient
from schemas import AnimationStatus, GenerationState, JobStatus
from utils.cancellation import CancellationToken
from utils.constants import MOCK_OPERATION_HANDLE
from utils.errors import IllegalTransitionError, ProviderError, TransientProviderError
from utils.job_registry import JobRegistry
from utils.mock_progress import MockProgress

PCM_B64 = base64.b64encode(b"\x00" * 48000 * 3).decode()
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
SCRIPT = "Hello world. This is amazing and incredible technology."

POLICY = {
    "poll_interval_sec": 0,
    "max_poll_attempts": 60,
    "job_ttl_sec": 1800,
    "reaper_interval_sec": 60,
    "tts_max_retries": 3,
    "tts_base_delay_sec": 0,
    "animation_duration_sec": 8,
    "request_timeout_sec": 5,
}


# ==========================================================================
# Fakes
# ==========================================================================

class FakeSpeech:
    def __init__(self, configured=True, result=PCM_B64):
        self.is_configured = configured
        self.result = result
        self.calls = []

    async def synthesize(self, text, voice_id, style_prefix=None, token=None):
        self.calls.append((text, voice_id, style_prefix))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class FakeAnimator:
    def __init__(self, polls=None, start=None, on_poll=None):
        self.start = start if start is not None else "models/veo/operations/op-1"
        self.polls = list(polls or [AnimationStatus(done=False, progress=10)])
        self.on_poll = on_poll
        self.start_calls = []
        self.poll_count = 0

    async def start_animation(self, prompt, image_bytes, mime_type, duration_sec=8):
        self.start_calls.append((prompt, mime_type, duration_sec))
        if isinstance(self.start, Exception):
            raise self.start
        return self.start

    async def poll_animation(self, handle):
        self.poll_count += 1
        if self.on_poll:
            self.on_poll(self.poll_count)
        outcome = self.polls[min(self.poll_count, len(self.polls)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _veo_client_replying(*replies):
    """Real Veo client whose HTTP layer returns ``replies`` in order, repeating the last."""
    client = VideoAnimatorClient(api_key="test-key")
    queue = list(replies)

    async def fake_request_json(method, url, body=None):
        return queue.pop(0) if len(queue) > 1 else queue[0]

    client._request_json = fake_request_json
    return client


class SpyRegistry(JobRegistry):
    """Counts every write."""

    def __init__(self):
        super().__init__()
        self.writes = []

    def update(self, job_id, **fields):
        self.writes.append(fields)
        return super().update(job_id, **fields)


def _request(**overrides):
    values = dict(script=SCRIPT, image_bytes=PNG, voice_id="Puck", style_prefix="Say it:")
    values.update(overrides)
    return GenerationRequest(**values)


def _orchestrator(speech=None, animator=None, registry=None, **policy):
    merged = dict(POLICY, **policy)
    return GenerationOrchestrator(
        speech or FakeSpeech(),
        animator or FakeAnimator(),
        registry if registry is not None else SpyRegistry(),
        policy=merged,
    )


# ==========================================================================
# Happy path
# ==========================================================================

class TestHappyPath:

    def test_complete_with_audio_and_video(self):
        animator = FakeAnimator(polls=[
            AnimationStatus(done=False, progress=50),
            AnimationStatus(done=True, payload="VIDEO", progress=100),
        ])
        orch = _orchestrator(animator=animator)
        snapshot = asyncio.run(orch.run(_request()))

        assert snapshot.state == GenerationState.COMPLETE
        assert snapshot.progress == 100
        assert snapshot.audio_payload.startswith("data:audio/wav;base64,")
        assert snapshot.audio_duration_sec == 3
        assert snapshot.audio_source == "gemini"
        assert snapshot.video_payload == "data:video/mp4;base64,VIDEO"

        job = orch.registry.get(orch.job_id)
        assert job.status == JobStatus.COMPLETE
        assert job.progress == 100
        assert job.audio_payload == snapshot.audio_payload
        assert job.video_payload == snapshot.video_payload

    def test_registry_progress_sequence(self):
        animator = FakeAnimator(polls=[
            AnimationStatus(done=False, progress=50),
            AnimationStatus(done=True, payload="VIDEO"),
        ])
        orch = _orchestrator(animator=animator)
        asyncio.run(orch.run(_request()))

        statuses = [(w.get("status"), w.get("progress")) for w in orch.registry.writes if "status" in w]
        assert statuses == [
            (JobStatus.PROCESSING, 50),
            (JobStatus.POLLING, 78),
            (JobStatus.COMPLETE, 100),
        ]

    def test_animation_request(self):
        animator = FakeAnimator(polls=[AnimationStatus(done=True, payload="V")])
        orch = _orchestrator(animator=animator)
        asyncio.run(orch.run(_request()))
        prompt, mime, duration = animator.start_calls[0]
        assert mime == "image/png"
        assert duration == 8
        assert prompt == pipeline.get_animation_prompt()

    def test_speech_arguments(self):
        speech = FakeSpeech()
        orch = _orchestrator(speech=speech, animator=FakeAnimator(polls=[AnimationStatus(done=True, payload="V")]))
        asyncio.run(orch.run(_request(language="Tamil")))
        assert speech.calls == [(f"Speak in Tamil. {SCRIPT}", "Puck", "Say it:")]

    def test_polling_band(self):
        assert polling_progress(0) == 60
        assert polling_progress(100) == 95
        assert polling_progress(50) == 78


# ==========================================================================
# Audio policy
# ==========================================================================

class TestAudioStage:

    def test_unconfigured_speech_is_mock(self):
        speech = FakeSpeech(configured=False)
        orch = _orchestrator(speech=speech, animator=FakeAnimator(polls=[AnimationStatus(done=True, payload="V")]))
        snapshot = asyncio.run(orch.run(_request()))
        assert speech.calls == []
        assert snapshot.audio_source == "mock"
        assert snapshot.audio_payload is None
        assert snapshot.audio_duration_sec == 3  # 8 words / 2.5
        assert snapshot.state == GenerationState.COMPLETE

    def test_audio_failure_is_not_fatal(self):
        speech = FakeSpeech(result=TransientProviderError("exhausted"))
        orch = _orchestrator(speech=speech, animator=FakeAnimator(polls=[AnimationStatus(done=True, payload="V")]))
        snapshot = asyncio.run(orch.run(_request()))
        assert snapshot.state == GenerationState.COMPLETE
        assert snapshot.audio_payload is None
        assert snapshot.video_payload == "data:video/mp4;base64,V"


# ==========================================================================
# Partial success
# ==========================================================================

class TestAnimationFailures:

    def test_terminal_error_with_audio_completes(self):
        animator = FakeAnimator(polls=[AnimationStatus(done=True, error="Image rejected")])
        orch = _orchestrator(animator=animator)
        snapshot = asyncio.run(orch.run(_request()))

        assert snapshot.state == GenerationState.COMPLETE
        assert snapshot.audio_payload is not None
        assert snapshot.video_payload is None
        assert orch.registry.get(orch.job_id).status == JobStatus.COMPLETE

    def test_terminal_error_without_audio_is_error(self):
        animator = FakeAnimator(polls=[AnimationStatus(done=True, error="Image rejected")])
        orch = _orchestrator(speech=FakeSpeech(configured=False), animator=animator)
        snapshot = asyncio.run(orch.run(_request()))

        assert snapshot.state == GenerationState.ERROR
        assert "Image rejected" in snapshot.error_message
        assert orch.registry.get(orch.job_id).status == JobStatus.ERROR

    def test_terminal_poll_exception_with_audio_completes(self):
        animator = FakeAnimator(polls=[ProviderError("403 forbidden", status=403)])
        snapshot = asyncio.run(_orchestrator(animator=animator).run(_request()))
        assert snapshot.state == GenerationState.COMPLETE

    def test_start_failure_with_audio_completes(self):
        animator = FakeAnimator(start=ProviderError("quota", status=400))
        orch = _orchestrator(animator=animator)
        snapshot = asyncio.run(orch.run(_request()))

        assert snapshot.state == GenerationState.COMPLETE
        assert animator.poll_count == 0
        job = orch.registry.get(orch.job_id)
        assert job.status == JobStatus.COMPLETE
        assert job.audio_payload == snapshot.audio_payload

    def test_start_failure_without_audio_is_error(self):
        animator = FakeAnimator(start=ProviderError("quota", status=400))
        orch = _orchestrator(speech=FakeSpeech(configured=False), animator=animator)
        snapshot = asyncio.run(orch.run(_request()))
        assert snapshot.state == GenerationState.ERROR
        assert orch.registry.get(orch.job_id).status == JobStatus.ERROR

    def test_unexpected_poll_body_resolves(self):
        animator = _veo_client_replying({"name": "models/veo/operations/op-1"}, ["unexpected"])
        orch = _orchestrator(animator=animator)
        snapshot = asyncio.run(orch.run(_request()))

        assert snapshot.state == GenerationState.COMPLETE
        assert snapshot.video_payload is None
        assert orch.registry.get(orch.job_id).status == JobStatus.COMPLETE

    def test_unexpected_poll_body_without_audio_is_error(self):
        animator = _veo_client_replying({"name": "models/veo/operations/op-1"}, ["unexpected"])
        orch = _orchestrator(speech=FakeSpeech(configured=False), animator=animator)
        snapshot = asyncio.run(orch.run(_request()))

        assert snapshot.state == GenerationState.ERROR
        assert "AttributeError" in snapshot.error_message
        assert orch.registry.get(orch.job_id).status == JobStatus.ERROR

    def test_unexpected_start_body_resolves(self):
        animator = _veo_client_replying(["unexpected"])
        orch = _orchestrator(animator=animator)
        snapshot = asyncio.run(orch.run(_request()))

        assert snapshot.state == GenerationState.COMPLETE
        assert orch.registry.get(orch.job_id).status == JobStatus.COMPLETE


# ==========================================================================
# Polling budget / transient errors
# ==========================================================================

class TestPolling:

    def test_budget_exhausted_completes(self):
        animator = FakeAnimator(polls=[AnimationStatus(done=False, progress=30)])
        orch = _orchestrator(animator=animator)
        snapshot = asyncio.run(orch.run(_request()))

        assert animator.poll_count == 60
        assert snapshot.state == GenerationState.COMPLETE
        assert snapshot.progress == 100
        assert snapshot.audio_payload is not None
        job = orch.registry.get(orch.job_id)
        assert job.status == JobStatus.COMPLETE
        assert job.progress == 100

    def test_transient_errors_swallowed(self):
        animator = FakeAnimator(polls=[
            TransientProviderError("502", status=502),
            asyncio.TimeoutError(),
            AnimationStatus(done=True, payload="V"),
        ])
        snapshot = asyncio.run(_orchestrator(animator=animator).run(_request()))
        assert animator.poll_count == 3
        assert snapshot.state == GenerationState.COMPLETE
        assert snapshot.video_payload == "data:video/mp4;base64,V"

    def test_mock_operation_uses_mock_progress(self, monkeypatch):
        def fake_mock(job_id, now=None):
            return MockProgress(status=JobStatus.COMPLETE, progress=100, message="done")

        monkeypatch.setattr(pipeline, "mock_progress", fake_mock)
        animator = FakeAnimator(start=MOCK_OPERATION_HANDLE)
        orch = _orchestrator(animator=animator)
        snapshot = asyncio.run(orch.run(_request()))

        assert animator.poll_count == 0
        assert snapshot.state == GenerationState.COMPLETE
        assert snapshot.video_url == f"https://storage.example.com/videos/{orch.job_id}/final-output.mp4"
        assert orch.registry.get(orch.job_id).video_url == snapshot.video_url

    def test_registry_expiry_mid_run(self):
        registry = SpyRegistry()
        animator = FakeAnimator(
            polls=[AnimationStatus(done=False, progress=10), AnimationStatus(done=True, payload="V")],
            on_poll=lambda n: registry.clear() if n == 1 else None,
        )
        orch = _orchestrator(animator=animator, registry=registry)
        snapshot = asyncio.run(orch.run(_request()))

        assert snapshot.state == GenerationState.COMPLETE
        assert registry.get(orch.job_id) is None


# ==========================================================================
# Cancellation
# ==========================================================================

async def _wait_for_state(orch, state, limit=1000):
    for _ in range(limit):
        if orch.state == state:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"never reached {state}")


class TestCancellation:

    def test_cancel_after_entering_polling(self):
        """Scenario: cancelled right after polling starts; status never error/complete."""
        registry = SpyRegistry()
        animator = FakeAnimator(polls=[AnimationStatus(done=True, payload="V")])
        orch = _orchestrator(animator=animator, registry=registry, poll_interval_sec=30)
        token = CancellationToken()

        async def scenario():
            task = asyncio.ensure_future(orch.run(_request(), token))
            await _wait_for_state(orch, GenerationState.POLLING_VIDEO)
            writes_at_cancel = len(registry.writes)
            token.cancel("user navigated back")
            snapshot = await asyncio.wait_for(task, timeout=5)
            return snapshot, writes_at_cancel

        snapshot, writes_at_cancel = asyncio.run(scenario())

        assert snapshot.state == GenerationState.CANCELLED
        assert len(registry.writes) == writes_at_cancel
        assert animator.poll_count == 0
        status = registry.get(orch.job_id).status
        assert status not in (JobStatus.ERROR, JobStatus.COMPLETE)

    def test_cancel_before_run(self):
        registry = SpyRegistry()
        speech = FakeSpeech()
        orch = _orchestrator(speech=speech, registry=registry)

        async def scenario():
            token = CancellationToken()
            token.cancel()
            return await orch.run(_request(), token)

        snapshot = asyncio.run(scenario())
        assert snapshot.state == GenerationState.CANCELLED
        assert speech.calls == []
        assert registry.get(orch.job_id) is None

    def test_cancel_during_audio(self):
        registry = SpyRegistry()
        token = CancellationToken()

        class SlowSpeech(FakeSpeech):
            async def synthesize(self, text, voice_id, style_prefix=None, token=None):
                return await token.run(asyncio.sleep(30, result=PCM_B64))

        orch = _orchestrator(speech=SlowSpeech(), registry=registry)

        async def scenario():
            task = asyncio.ensure_future(orch.run(_request(), token))
            await _wait_for_state(orch, GenerationState.GENERATING_AUDIO)
            token.cancel()
            return await asyncio.wait_for(task, timeout=5)

        snapshot = asyncio.run(scenario())
        assert snapshot.state == GenerationState.CANCELLED
        assert registry.writes == []
        assert len(registry) == 0

    def test_task_cancellation_recorded(self):
        registry = SpyRegistry()
        orch = _orchestrator(registry=registry, poll_interval_sec=30)

        async def scenario():
            task = asyncio.ensure_future(orch.run(_request()))
            await _wait_for_state(orch, GenerationState.POLLING_VIDEO)
            writes = len(registry.writes)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return writes

        writes = asyncio.run(scenario())
        assert orch.state == GenerationState.CANCELLED
        assert len(registry.writes) == writes


# ==========================================================================
# Transition table
# ==========================================================================

class TestTransitions:

    def test_illegal_transition_raises(self):
        orch = _orchestrator()
        with pytest.raises(IllegalTransitionError):
            orch._transition(GenerationState.COMPLETE)
        with pytest.raises(IllegalTransitionError):
            orch._transition(GenerationState.POLLING_VIDEO)

    def test_terminal_states_are_final(self):
        for terminal in pipeline.TERMINAL_STATES:
            assert pipeline.TRANSITIONS[terminal] == set()
        for state, targets in pipeline.TRANSITIONS.items():
            if state not in pipeline.TERMINAL_STATES:
                assert GenerationState.CANCELLED in targets

    def test_run_twice_rejected(self):
        orch = _orchestrator(animator=FakeAnimator(polls=[AnimationStatus(done=True, payload="V")]))
        asyncio.run(orch.run(_request()))
        with pytest.raises(IllegalTransitionError):
            asyncio.run(orch.run(_request()))

    def test_job_id_assigned_up_front(self):
        orch = _orchestrator()
        assert orch.job_id.startswith("job-")
        assert orch.current_snapshot().job_id == orch.job_id
        assert orch.current_snapshot().state == GenerationState.IDLE
