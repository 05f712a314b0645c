"""
TALKREEL 공통 상수 모듈

Shared constants used across the analyzer, the providers and the orchestrator.
"""
import os

# ─── Speaking rate ───────────────────────────────────────
WORDS_PER_SECOND = 2.5

# ─── Audio format (Gemini TTS output) ────────────────────
PCM_SAMPLE_RATE = 24000
PCM_CHANNELS = 1
PCM_BITS_PER_SAMPLE = 16
PCM_BYTES_PER_SECOND = PCM_SAMPLE_RATE * PCM_CHANNELS * (PCM_BITS_PER_SAMPLE // 8)

# ─── Gemini 모델명 ────────────────────────────────────────
GEMINI_API_BASE = os.getenv(
    "GEMINI_API_BASE",
    "https://generativelanguage.googleapis.com/v1beta",
)
MODEL_GEMINI_FLASH = "gemini-2.0-flash"
MODEL_GEMINI_TTS = "gemini-2.5-flash-preview-tts"
MODEL_VEO = "veo-2.0-generate-001"

# ─── Pexels ──────────────────────────────────────────────
PEXELS_VIDEO_API = "https://api.pexels.com/videos"

# ─── Jobs ────────────────────────────────────────────────
JOB_ID_PREFIX = "job-"
MOCK_OPERATION_HANDLE = "mock-operation"
MOCK_VIDEO_URL_TEMPLATE = "https://storage.example.com/videos/{job_id}/final-output.mp4"

# ─── Script limits ───────────────────────────────────────
MAX_SCRIPT_CHARS = 10000
MAX_KEYWORD_CHARS = 100

SUPPORTED_LANGUAGES = [
    "Hindi", "Tamil", "Telugu", "Bengali",
    "Marathi", "Kannada", "Malayalam", "Gujarati",
]
