"""
TALKREEL Agents Package

- script_analyzer: 키워드 / 감정 / 브레이크포인트 (순수 함수)
- storyboard_builder: 스토리보드 + 자막 타임라인
- SpeechSynthesisClient: Gemini TTS 내레이션
- VideoAnimatorClient: Veo portrait animation
- PexelsAgent: cutaway B-roll 검색
- ScriptAgent: 스크립트 초안 작성
- voice_catalog: 보이스 프로필 / 추천
"""

from .script_analyzer import analyze_script
from .storyboard_builder import build_preview, StoryboardResult
from .tts_agent import SpeechSynthesisClient, TTSResult
from .video_agent import VideoAnimatorClient, sniff_image_mime
from .pexels_agent import PexelsAgent
from .script_agent import ScriptAgent
from .voice_catalog import VOICE_PROFILES, find_voice, suggest_voices

__all__ = [
    "analyze_script",
    "build_preview",
    "StoryboardResult",
    "SpeechSynthesisClient",
    "TTSResult",
    "VideoAnimatorClient",
    "sniff_image_mime",
    "PexelsAgent",
    "ScriptAgent",
    "VOICE_PROFILES",
    "find_voice",
    "suggest_voices",
]
