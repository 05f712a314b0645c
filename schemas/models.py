"""
TALKREEL Data Models

공통 데이터 모델 정의 (Pydantic 기반)
- ScriptAnalysis: 스크립트 분석 결과 (키워드 / 감정 / 브레이크포인트)
- StoryboardSegment / SubtitleSegment: 타임라인
- JobState: 작업 레지스트리 레코드
- GenerationSnapshot: 오케스트레이터 로컬 상태
"""

import time
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field, model_validator


class Sentiment(str, Enum):
    """스크립트 톤 (voice / music 매칭용)"""
    EXCITED = "excited"
    EDUCATIONAL = "educational"
    CALM = "calm"
    PROFESSIONAL = "professional"
    FRIENDLY = "friendly"


class SegmentKind(str, Enum):
    """스토리보드 세그먼트 종류"""
    TALKING_HEAD = "talking-head"
    CUTAWAY = "cutaway"


class JobStatus(str, Enum):
    """레지스트리에 기록되는 작업 상태"""
    QUEUED = "queued"
    PROCESSING = "processing"
    POLLING = "polling"
    COMPLETE = "complete"
    ERROR = "error"


class GenerationState(str, Enum):
    """오케스트레이터 상태 머신"""
    IDLE = "idle"
    GENERATING_AUDIO = "generating-audio"
    GENERATING_VIDEO = "generating-video"
    POLLING_VIDEO = "polling-video"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"


# ============================================================================
# Script analysis
# ============================================================================

class Breakpoint(BaseModel):
    """One sentence of the script anchored on the spoken timeline."""
    time: float = Field(ge=0, description="누적 시작 시각 (초, 소수 1자리)")
    keyword: str = ""
    text: str


class ScriptAnalysis(BaseModel):
    keywords: List[str] = Field(default_factory=list)
    sentiment: Sentiment = Sentiment.FRIENDLY
    breakpoints: List[Breakpoint] = Field(default_factory=list)
    estimated_duration_sec: float = 0.0


# ============================================================================
# Storyboard / subtitles
# ============================================================================

class CutawayClip(BaseModel):
    """B-roll clip shown in place of the talking head."""
    id: str
    keyword: str
    url: str
    thumbnail: str
    duration_sec: float
    source_provider: str = "pexels"
    attribution: Optional[str] = None


class StoryboardSegment(BaseModel):
    id: str
    kind: SegmentKind
    start_time: float
    end_time: float
    text: str
    keyword: Optional[str] = None
    cutaway_clip: Optional[CutawayClip] = None

    @model_validator(mode="after")
    def _check_span(self):
        if self.start_time > self.end_time:
            raise ValueError(
                f"segment {self.id}: start_time {self.start_time} > end_time {self.end_time}"
            )
        return self


class SubtitleSegment(BaseModel):
    id: str
    text: str
    start_time: float
    end_time: float
    highlight_word: Optional[str] = None


# ============================================================================
# Voices
# ============================================================================

class VoiceProfile(BaseModel):
    id: str
    name: str
    gender: str  # male | female | neutral
    age: str  # young | adult | mature
    style: Sentiment
    language: str = "English"
    gemini_voice: str
    style_prefix: Optional[str] = None
    pitch: int = Field(default=50, ge=0, le=100)
    stability: int = Field(default=75, ge=0, le=100)


# ============================================================================
# Jobs
# ============================================================================

class JobState(BaseModel):
    """
    Registry record for one generation job.

    Owned by the JobRegistry; everything handed out is a copy.
    """
    id: str
    operation_handle: str
    status: JobStatus = JobStatus.QUEUED
    progress: int = Field(default=0, ge=0, le=100)
    video_payload: Optional[str] = None  # data URL (base64 mp4)
    video_url: Optional[str] = None  # mock path only
    audio_payload: Optional[str] = None  # data URL (base64 wav)
    audio_duration_sec: Optional[float] = None
    error_message: Optional[str] = None
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)


class AnimationStatus(BaseModel):
    """Result of polling a long-running animation operation."""
    done: bool = False
    payload: Optional[str] = None  # base64 video
    error: Optional[str] = None
    progress: float = Field(default=0.0, ge=0, le=100)


class GenerationSnapshot(BaseModel):
    """Orchestrator-local view of a run, valid before the registry entry exists."""
    job_id: str
    state: GenerationState = GenerationState.IDLE
    progress: int = 0
    audio_payload: Optional[str] = None
    audio_duration_sec: Optional[float] = None
    audio_source: Optional[str] = None  # gemini | mock
    video_payload: Optional[str] = None
    video_url: Optional[str] = None
    error_message: Optional[str] = None


# ============================================================================
# API requests
# ============================================================================

class AnalyzeScriptRequest(BaseModel):
    script: str


class StoryboardRequest(BaseModel):
    script: str
    live_broll: bool = False


class GenerateAudioRequest(BaseModel):
    script: str
    gemini_voice: str
    style_prefix: Optional[str] = None
    language: Optional[str] = None


class GenerateScriptRequest(BaseModel):
    topic: str
    tone: Sentiment = Sentiment.PROFESSIONAL
    duration: int = Field(default=60, description="60 or 90 seconds")
    language: str = "English"


class GenerateVideoRequest(BaseModel):
    image_base64: str
    script: str
    voice_id: str
    style_prefix: Optional[str] = None
    language: Optional[str] = None
