"""
TALKREEL 생성 파이프라인

한 번의 생성 요청 = 하나의 GenerationOrchestrator.

실행 플로우:
1. generating-audio  - SpeechSynthesisClient로 내레이션 생성 → WAV 프레이밍 (10 → 40%)
2. generating-video  - VideoAnimatorClient로 portrait animation 시작, Job 등록 (50%)
3. polling-video     - 고정 간격 폴링 (60 → 95%), 완료 시 100%
4. complete | error | cancelled

정책:
- 오디오 실패는 치명적이지 않음 (키 없음 = mock 경로)
- 애니메이션 실패라도 오디오가 있으면 complete (부분 성공)
- 폴링 예산 소진은 complete
- 취소 토큰이 발화한 뒤에는 레지스트리를 절대 갱신하지 않음
"""

import asyncio
import aiohttp
from dataclasses import dataclass
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# .env 파일 로드
load_dotenv()

from config import get_animation_prompt, load_generation_policy
from schemas import AnimationStatus, GenerationSnapshot, GenerationState, JobStatus
from agents.tts_agent import estimated_speech_sec, language_prefix
from agents.video_agent import sniff_image_mime
from utils.audio_framer import pcm_base64_to_wav_data_url, reported_duration_sec
from utils.cancellation import CancellationToken
from utils.constants import MOCK_OPERATION_HANDLE, MOCK_VIDEO_URL_TEMPLATE
from utils.errors import (
    GenerationCancelled,
    IllegalTransitionError,
    ProviderError,
    TransientProviderError,
)
from utils.job_registry import JobRegistry, generate_job_id
from utils.mock_progress import mock_progress
from utils.logger import get_logger
logger = get_logger("pipeline")


S = GenerationState

TRANSITIONS = {
    S.IDLE: {S.GENERATING_AUDIO, S.CANCELLED},
    S.GENERATING_AUDIO: {S.GENERATING_VIDEO, S.ERROR, S.CANCELLED},
    S.GENERATING_VIDEO: {S.POLLING_VIDEO, S.COMPLETE, S.ERROR, S.CANCELLED},
    S.POLLING_VIDEO: {S.COMPLETE, S.ERROR, S.CANCELLED},
    S.COMPLETE: set(),
    S.ERROR: set(),
    S.CANCELLED: set(),
}

TERMINAL_STATES = frozenset(state for state, targets in TRANSITIONS.items() if not targets)

AUDIO_START_PROGRESS = 10
AUDIO_DONE_PROGRESS = 40
VIDEO_STARTED_PROGRESS = 50
POLL_BAND_START = 60
POLL_BAND_WIDTH = 0.35


def polling_progress(provider_progress: float) -> int:
    """Map provider progress (0-100) onto the 60-95% band."""
    provider_progress = min(100.0, max(0.0, provider_progress))
    return int(POLL_BAND_START + provider_progress * POLL_BAND_WIDTH + 0.5)


@dataclass
class GenerationRequest:
    """Inputs of one talking-avatar generation."""
    script: str
    image_bytes: bytes
    voice_id: str
    style_prefix: Optional[str] = None
    language: Optional[str] = None


class GenerationOrchestrator:
    """
    Talking-avatar 생성 상태 머신

    음성 → 애니메이션 → 폴링을 순차 실행. 모든 대기 지점은 취소 토큰과 경합.
    """

    def __init__(
        self,
        speech,
        animator,
        registry: JobRegistry,
        policy: Optional[Dict[str, Any]] = None,
        job_id: Optional[str] = None,
    ):
        """
        Args:
            speech: SpeechSynthesisClient (또는 동일 인터페이스)
            animator: VideoAnimatorClient (또는 동일 인터페이스)
            registry: 상태를 공개할 JobRegistry
            policy: generation 정책 (기본: config/generation_policy.yaml)
            job_id: 미리 정한 job id (기본: 새로 생성)
        """
        self.speech = speech
        self.animator = animator
        self.registry = registry
        self.policy = policy or load_generation_policy()
        self.job_id = job_id or generate_job_id()
        self.snapshot = GenerationSnapshot(job_id=self.job_id)
        self.operation_handle: Optional[str] = None
        self._registered = False
        self._token: Optional[CancellationToken] = None

    @property
    def state(self) -> GenerationState:
        return self.snapshot.state

    def current_snapshot(self) -> GenerationSnapshot:
        return self.snapshot.model_copy(deep=True)

    # ------------------------------------------------------------------
    # State / registry
    # ------------------------------------------------------------------

    def _transition(self, target: GenerationState, **fields) -> None:
        current = self.snapshot.state
        if target not in TRANSITIONS[current]:
            raise IllegalTransitionError(f"{current.value} -> {target.value}")
        logger.info(f"[Orchestrator] {self.job_id}: {current.value} -> {target.value}")
        self.snapshot = self.snapshot.model_copy(update={"state": target, **fields})

    def _set(self, **fields) -> None:
        self.snapshot = self.snapshot.model_copy(update=fields)

    def _publish(self, **fields) -> None:
        """Registry write. Refused once the token has fired."""
        self._token.raise_if_cancelled()
        if not self._registered:
            return
        if self.registry.update(self.job_id, **fields) is None:
            logger.warning(f"[Orchestrator] {self.job_id}: registry entry expired, continuing locally")
            self._registered = False

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self, request: GenerationRequest, token: Optional[CancellationToken] = None) -> GenerationSnapshot:
        """
        Run the whole generation once.

        Returns the final snapshot (complete / error / cancelled). Re-raises
        ``asyncio.CancelledError`` after recording the cancellation.
        """
        if self.snapshot.state != S.IDLE:
            raise IllegalTransitionError(f"run() called in state {self.snapshot.state.value}")

        self._token = token or CancellationToken()
        try:
            self._token.raise_if_cancelled()
            await self._generate_audio(request)
            await self._generate_video(request)
            if self.snapshot.state == S.POLLING_VIDEO:
                await self._poll_video()
        except GenerationCancelled as e:
            self._mark_cancelled(str(e))
        except asyncio.CancelledError:
            self._token.cancel("task cancelled")
            self._mark_cancelled("task cancelled")
            raise

        return self.current_snapshot()

    def _mark_cancelled(self, reason: str) -> None:
        if self.snapshot.state in TERMINAL_STATES:
            return
        logger.info(f"[Orchestrator] {self.job_id}: cancelled ({reason})")
        self._transition(S.CANCELLED)

    async def _generate_audio(self, request: GenerationRequest) -> None:
        self._transition(S.GENERATING_AUDIO, progress=AUDIO_START_PROGRESS)

        if not self.speech.is_configured:
            logger.info("  [Audio] Speech provider not configured, using mock narration")
            self._set(
                audio_source="mock",
                audio_duration_sec=float(estimated_speech_sec(request.script)),
                progress=AUDIO_DONE_PROGRESS,
            )
            return

        text = request.script
        prefix = language_prefix(request.language)
        if prefix:
            text = f"{prefix} {text}"

        try:
            pcm_base64 = await self.speech.synthesize(
                text, request.voice_id, request.style_prefix, token=self._token
            )
            data_url, pcm_len = pcm_base64_to_wav_data_url(pcm_base64)
        except (ProviderError, ValueError) as e:
            # 오디오 실패는 치명적이지 않음
            logger.warning(f"  [Audio] Narration failed, continuing without audio: {e}")
            self._set(progress=AUDIO_DONE_PROGRESS)
            return

        self._token.raise_if_cancelled()
        self._set(
            audio_payload=data_url,
            audio_duration_sec=float(reported_duration_sec(pcm_len)),
            audio_source="gemini",
            progress=AUDIO_DONE_PROGRESS,
        )
        logger.info(f"  [Audio] Narration ready (~{self.snapshot.audio_duration_sec:.0f}s)")

    def _finish_without_video(self, reason: str) -> None:
        """Partial success when audio exists, otherwise error."""
        if self.snapshot.audio_payload:
            logger.warning(f"  [Video] {reason}. Completing with audio only")
            self._transition(S.COMPLETE, progress=100)
            status = JobStatus.COMPLETE
            self._publish(status=status, progress=100, error_message=reason)
        else:
            logger.error(f"  [Video] {reason}")
            self._transition(S.ERROR, error_message=reason)
            self._publish(status=JobStatus.ERROR, error_message=reason)

    async def _generate_video(self, request: GenerationRequest) -> None:
        self._token.raise_if_cancelled()
        self._transition(S.GENERATING_VIDEO)

        mime_type = sniff_image_mime(request.image_bytes)
        try:
            handle = await self._token.run(self.animator.start_animation(
                get_animation_prompt(),
                request.image_bytes,
                mime_type,
                self.policy["animation_duration_sec"],
            ))
        except GenerationCancelled:
            raise
        except Exception as e:
            self._token.raise_if_cancelled()
            if not isinstance(e, ProviderError):
                logger.error(f"  [Video] Unexpected start failure: {type(e).__name__}: {e}")
            # 작업이 시작되지 않았어도 결과를 조회할 수 있도록 등록
            self.registry.create(self.job_id, operation_handle="")
            self._registered = True
            self._publish(
                audio_payload=self.snapshot.audio_payload,
                audio_duration_sec=self.snapshot.audio_duration_sec,
            )
            self._finish_without_video(f"Animation failed to start: {e}")
            return

        self._token.raise_if_cancelled()
        self.operation_handle = handle
        self.registry.create(self.job_id, operation_handle=handle)
        self._registered = True
        self._set(progress=VIDEO_STARTED_PROGRESS)
        self._publish(
            status=JobStatus.PROCESSING,
            progress=VIDEO_STARTED_PROGRESS,
            audio_payload=self.snapshot.audio_payload,
            audio_duration_sec=self.snapshot.audio_duration_sec,
        )
        self._transition(S.POLLING_VIDEO)

    async def _poll_once(self) -> AnimationStatus:
        if self.operation_handle == MOCK_OPERATION_HANDLE:
            mock = mock_progress(self.job_id)
            if mock.status == JobStatus.COMPLETE:
                return AnimationStatus(done=True, progress=100)
            return AnimationStatus(done=False, progress=mock.progress)
        return await self._token.run(self.animator.poll_animation(self.operation_handle))

    async def _poll_video(self) -> None:
        interval = self.policy["poll_interval_sec"]
        max_attempts = self.policy["max_poll_attempts"]

        for attempt in range(1, max_attempts + 1):
            self._token.raise_if_cancelled()
            await self._token.sleep(interval)
            self._token.raise_if_cancelled()

            try:
                status = await self._poll_once()
            except TransientProviderError as e:
                logger.warning(f"  [Poll] Attempt {attempt}/{max_attempts} failed (retrying): {e}")
                continue
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.warning(f"  [Poll] Attempt {attempt}/{max_attempts} network error (retrying): {e}")
                continue
            except ProviderError as e:
                self._token.raise_if_cancelled()
                self._finish_without_video(f"Animation failed: {e}")
                return
            except GenerationCancelled:
                raise
            except Exception as e:
                # 알 수 없는 응답 형태도 종료 상태로 정리
                self._token.raise_if_cancelled()
                self._finish_without_video(f"Animation failed: {type(e).__name__}: {e}")
                return

            self._token.raise_if_cancelled()

            if status.done and status.error:
                self._finish_without_video(f"Animation failed: {status.error}")
                return

            if status.done:
                video_url = None
                if self.operation_handle == MOCK_OPERATION_HANDLE:
                    video_url = MOCK_VIDEO_URL_TEMPLATE.format(job_id=self.job_id)
                video_payload = f"data:video/mp4;base64,{status.payload}" if status.payload else None
                self._transition(S.COMPLETE, progress=100, video_payload=video_payload, video_url=video_url)
                self._publish(
                    status=JobStatus.COMPLETE,
                    progress=100,
                    video_payload=video_payload,
                    video_url=video_url,
                )
                logger.info(f"  [Poll] Video ready after {attempt} attempt(s)")
                return

            progress = polling_progress(status.progress)
            self._set(progress=progress)
            self._publish(status=JobStatus.POLLING, progress=progress)
            logger.debug(f"  [Poll] Attempt {attempt}/{max_attempts}: pending ({progress}%)")

        # 예산 소진 = soft completion
        self._token.raise_if_cancelled()
        logger.warning(f"  [Poll] No result after {max_attempts} attempts, completing with collected artifacts")
        self._transition(S.COMPLETE, progress=100)
        self._publish(status=JobStatus.COMPLETE, progress=100)
