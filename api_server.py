"""
TALKREEL FastAPI Server

스크립트 분석 / 스토리보드 / B-roll / 음성 / 스크립트 초안 / 아바타 영상 생성 API
영상 생성은 백그라운드 asyncio task로 실행하고, 상태는 폴링으로 조회
"""

import os
import base64
import binascii
import asyncio
import time
from dataclasses import dataclass, field
from dotenv import load_dotenv

# .env 파일 로드
load_dotenv()

from typing import Optional, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import load_generation_policy
from schemas import (
    AnalyzeScriptRequest,
    GenerateAudioRequest,
    GenerateScriptRequest,
    GenerateVideoRequest,
    GenerationState,
    StoryboardRequest,
)
from agents.pexels_agent import PexelsAgent
from agents.script_agent import ScriptAgent
from agents.script_analyzer import analyze_script, word_count
from agents.storyboard_builder import build_preview
from agents.tts_agent import SpeechSynthesisClient
from agents.video_agent import VideoAnimatorClient
from agents.voice_catalog import VALID_AGES, VALID_GENDERS, VOICE_PROFILES, find_voice, suggest_voices
from pipeline import GenerationOrchestrator, GenerationRequest
from utils.cancellation import CancellationToken
from utils.constants import MAX_KEYWORD_CHARS, MAX_SCRIPT_CHARS
from utils.errors import InvalidJobIdError, ProviderError, ScriptValidationError
from utils.job_registry import job_registry, validate_job_id
from utils.mock_progress import mock_progress
from utils.logger import get_logger
logger = get_logger("api_server")

MIN_AUDIO_SCRIPT_CHARS = 5

policy = load_generation_policy()
job_registry.ttl_sec = policy["job_ttl_sec"]

speech_client = SpeechSynthesisClient(
    max_retries=policy["tts_max_retries"],
    base_delay_sec=policy["tts_base_delay_sec"],
    timeout_sec=policy["request_timeout_sec"],
)
animator_client = VideoAnimatorClient(timeout_sec=policy["request_timeout_sec"])
script_agent = ScriptAgent()

# FastAPI 앱 생성
app = FastAPI(title="TALKREEL API", version="1.0")

# CORS 설정
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@dataclass
class ActiveGeneration:
    """백그라운드에서 실행 중(또는 끝난)인 생성 작업"""
    orchestrator: GenerationOrchestrator
    token: CancellationToken
    task: Optional[asyncio.Task] = None
    started_at: float = field(default_factory=time.time)


# job_id → 생성 작업 (레지스트리 등록 전 상태 조회 / 취소용)
active_generations: Dict[str, ActiveGeneration] = {}

# 스냅샷 상태 → 응답 status
_SNAPSHOT_STATUS = {
    GenerationState.IDLE: "queued",
    GenerationState.GENERATING_AUDIO: "processing",
    GenerationState.GENERATING_VIDEO: "processing",
    GenerationState.POLLING_VIDEO: "polling",
    GenerationState.COMPLETE: "complete",
    GenerationState.ERROR: "error",
    GenerationState.CANCELLED: "cancelled",
}


# ============================================================================
# Error handlers / lifecycle
# ============================================================================

@app.exception_handler(ScriptValidationError)
async def validation_error_handler(request: Request, exc: ScriptValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(InvalidJobIdError)
async def invalid_job_id_handler(request: Request, exc: InvalidJobIdError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.on_event("startup")
async def start_background_jobs():
    job_registry.start_reaper(policy["reaper_interval_sec"])


@app.on_event("shutdown")
async def stop_background_jobs():
    job_registry.stop_reaper()
    for generation in active_generations.values():
        if generation.task is not None and not generation.task.done():
            generation.token.cancel("server shutdown")
            generation.task.cancel()


def _validate_script(script: Optional[str]) -> str:
    script = (script or "").strip()
    if not script:
        raise ScriptValidationError("Missing or empty 'script' field.")
    if len(script) > MAX_SCRIPT_CHARS:
        raise ScriptValidationError(f"Script exceeds maximum length of {MAX_SCRIPT_CHARS:,} characters.")
    return script


def _decode_image(image_base64: str) -> bytes:
    data = (image_base64 or "").strip()
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        image_bytes = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise ScriptValidationError("Invalid 'image_base64' field.")
    if not image_bytes:
        raise ScriptValidationError("Missing or invalid 'image_base64' field.")
    return image_bytes


def _prune_generations():
    """레지스트리 TTL보다 오래된 종료 작업 정리"""
    now = time.time()
    stale = [
        job_id for job_id, gen in active_generations.items()
        if gen.task is not None and gen.task.done() and now - gen.started_at > job_registry.ttl_sec
    ]
    for job_id in stale:
        del active_generations[job_id]


def _snapshot_view(job_id: str, snapshot) -> dict:
    return {
        "job_id": job_id,
        "status": _SNAPSHOT_STATUS[snapshot.state],
        "progress": snapshot.progress,
        "video_url": snapshot.video_url,
        "video_payload": snapshot.video_payload,
        "audio_payload": snapshot.audio_payload,
        "audio_duration_sec": snapshot.audio_duration_sec,
        "error": snapshot.error_message,
    }


# ============================================================================
# Script / storyboard
# ============================================================================

@app.post("/api/analyze-script")
def analyze_script_endpoint(req: AnalyzeScriptRequest):
    """스크립트 분석 (키워드 / 감정 / 브레이크포인트)"""
    script = _validate_script(req.script)
    return analyze_script(script)


@app.post("/api/storyboard")
def storyboard_endpoint(req: StoryboardRequest):
    """스토리보드 + 자막 타임라인"""
    script = _validate_script(req.script)
    resolver = PexelsAgent().resolve_cutaway if req.live_broll else None
    result = build_preview(script, clip_resolver=resolver)
    return {
        "storyboard": result.storyboard,
        "subtitles": result.subtitles,
        "music_mood": result.music_mood,
        "analysis": result.analysis,
        "fallback": result.fallback,
    }


@app.get("/api/broll")
def broll_endpoint(keyword: Optional[str] = None):
    """키워드별 B-roll 클립 (Pexels, 실패 시 placeholder)"""
    keyword = (keyword or "").strip()
    if not keyword:
        raise HTTPException(status_code=400, detail="Missing required query parameter 'keyword'.")
    if len(keyword) > MAX_KEYWORD_CHARS:
        raise HTTPException(
            status_code=400,
            detail=f"Keyword exceeds maximum length of {MAX_KEYWORD_CHARS} characters.",
        )
    return PexelsAgent().search(keyword)


@app.post("/api/generate-script")
async def generate_script_endpoint(req: GenerateScriptRequest):
    """주제 → 내레이션 스크립트 초안"""
    script, source = await script_agent.generate_script(req.topic, req.tone, req.duration, req.language)
    return {"script": script, "source": source}


# ============================================================================
# Voices / audio
# ============================================================================

@app.get("/api/voices")
async def voices_endpoint(gender: Optional[str] = None, age: Optional[str] = None):
    """보이스 목록 (필터가 있으면 추천 3개)"""
    if gender and gender not in VALID_GENDERS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid 'gender' parameter. Must be one of: {', '.join(VALID_GENDERS)}.",
        )
    if age and age not in VALID_AGES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid 'age' parameter. Must be one of: {', '.join(VALID_AGES)}.",
        )

    if gender or age:
        voices = suggest_voices(gender, age)
        return {"voices": voices, "total": len(voices), "filtered": True}
    return {"voices": VOICE_PROFILES, "total": len(VOICE_PROFILES), "filtered": False}


@app.post("/api/generate-audio")
async def generate_audio_endpoint(req: GenerateAudioRequest):
    """내레이션 미리듣기 (키가 없으면 mock)"""
    script = (req.script or "").strip()
    if len(script) < MIN_AUDIO_SCRIPT_CHARS:
        raise ScriptValidationError(f"Script must be at least {MIN_AUDIO_SCRIPT_CHARS} characters.")
    if not (req.gemini_voice or "").strip():
        raise ScriptValidationError("Missing gemini_voice parameter.")

    try:
        result = await speech_client.narrate(script, req.gemini_voice, req.style_prefix, req.language)
    except ProviderError as e:
        logger.error(f"[API] Audio generation failed: {e}")
        raise HTTPException(status_code=502, detail="Audio generation failed. Please try again.")

    return {
        "audio_data_url": result.audio_data_url,
        "duration_sec": result.duration_sec,
        "source": result.source,
    }


# ============================================================================
# Video generation
# ============================================================================

async def _run_generation(generation: ActiveGeneration, request: GenerationRequest):
    orchestrator = generation.orchestrator
    try:
        snapshot = await orchestrator.run(request, generation.token)
        logger.info(f"[API] Generation {orchestrator.job_id} finished: {snapshot.state.value}")
    except asyncio.CancelledError:
        logger.info(f"[API] Generation {orchestrator.job_id} task cancelled")
        raise
    except Exception as e:
        logger.error(f"[API] Generation {orchestrator.job_id} crashed: {type(e).__name__}: {e}")


@app.post("/api/generate-video")
async def generate_video_endpoint(req: GenerateVideoRequest):
    """아바타 영상 생성 시작 (백그라운드)"""
    script = _validate_script(req.script)
    if not (req.voice_id or "").strip():
        raise ScriptValidationError("Missing or invalid 'voice_id' field.")
    image_bytes = _decode_image(req.image_base64)

    voice = find_voice(req.voice_id)
    gemini_voice = voice.gemini_voice if voice else req.voice_id
    style_prefix = req.style_prefix if req.style_prefix is not None else (voice.style_prefix if voice else None)

    _prune_generations()

    orchestrator = GenerationOrchestrator(speech_client, animator_client, job_registry, policy=policy)
    generation = ActiveGeneration(orchestrator=orchestrator, token=CancellationToken())
    request = GenerationRequest(
        script=script,
        image_bytes=image_bytes,
        voice_id=gemini_voice,
        style_prefix=style_prefix,
        language=req.language,
    )
    job_id = orchestrator.job_id
    active_generations[job_id] = generation
    generation.task = asyncio.ensure_future(_run_generation(generation, request))

    estimated = max(60, min(300, int(word_count(script) * 2 + 0.5)))
    logger.info(f"[API] Queued {job_id} ({word_count(script)} words, voice={gemini_voice})")

    return {
        "job_id": job_id,
        "status": "queued",
        "estimated_time_sec": estimated,
        "message": f"Video generation job {job_id} has been queued. Check status at /api/generate-video/{job_id}.",
    }


@app.get("/api/generate-video/{job_id}")
async def generation_status_endpoint(job_id: str):
    """생성 상태 조회: 취소된 작업 → 레지스트리 → 실행 중 스냅샷 → mock progress 순"""
    validate_job_id(job_id)

    generation = active_generations.get(job_id)
    # 취소 이후에는 레지스트리에 쓰지 않으므로 로컬 스냅샷이 기준
    if generation is not None and generation.token.cancelled:
        view = _snapshot_view(job_id, generation.orchestrator.current_snapshot())
        view["status"] = _SNAPSHOT_STATUS[GenerationState.CANCELLED]
        return view

    job = job_registry.get(job_id)
    if job is not None:
        return {
            "job_id": job.id,
            "status": job.status.value,
            "progress": job.progress,
            "video_url": job.video_url,
            "video_payload": job.video_payload,
            "audio_payload": job.audio_payload,
            "audio_duration_sec": job.audio_duration_sec,
            "error": job.error_message,
        }

    if generation is not None:
        return _snapshot_view(job_id, generation.orchestrator.current_snapshot())

    mock = mock_progress(job_id)
    return {
        "job_id": job_id,
        "status": mock.status.value,
        "progress": mock.progress,
        "video_url": mock.video_url,
        "message": mock.message,
    }


@app.delete("/api/generate-video/{job_id}")
async def cancel_generation_endpoint(job_id: str):
    """실행 중인 생성 취소"""
    validate_job_id(job_id)

    generation = active_generations.get(job_id)
    if generation is None or generation.task is None or generation.task.done():
        raise HTTPException(status_code=404, detail="No active generation for this job.")

    generation.token.cancel("cancelled by user")
    logger.info(f"[API] Cancel requested for {job_id}")
    return {"job_id": job_id, "status": "cancelled"}


@app.get("/health")
async def health_check():
    """헬스 체크"""
    running = sum(1 for gen in active_generations.values() if gen.task is not None and not gen.task.done())
    return {
        "status": "ok",
        "version": "1.0",
        "active_generations": running,
        "registered_jobs": len(job_registry),
    }


if __name__ == "__main__":
    import uvicorn

    print("""
============================================================
              TALKREEL API Server v1.0
============================================================
  Server: http://localhost:8000
  API Docs: http://localhost:8000/docs
============================================================
    """)

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "api_server:app",
        host="0.0.0.0",
        port=port,
        reload=False,
        log_level="info"
    )
