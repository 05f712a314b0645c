"""
TALKREEL Data Models (Pydantic Schemas)
"""

from .models import (
    Sentiment,
    SegmentKind,
    JobStatus,
    GenerationState,
    Breakpoint,
    ScriptAnalysis,
    CutawayClip,
    StoryboardSegment,
    SubtitleSegment,
    VoiceProfile,
    JobState,
    AnimationStatus,
    GenerationSnapshot,
    AnalyzeScriptRequest,
    StoryboardRequest,
    GenerateAudioRequest,
    GenerateScriptRequest,
    GenerateVideoRequest,
)

__all__ = [
    "Sentiment",
    "SegmentKind",
    "JobStatus",
    "GenerationState",
    "Breakpoint",
    "ScriptAnalysis",
    "CutawayClip",
    "StoryboardSegment",
    "SubtitleSegment",
    "VoiceProfile",
    "JobState",
    "AnimationStatus",
    "GenerationSnapshot",
    "AnalyzeScriptRequest",
    "StoryboardRequest",
    "GenerateAudioRequest",
    "GenerateScriptRequest",
    "GenerateVideoRequest",
]
