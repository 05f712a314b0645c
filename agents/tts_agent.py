"""
TTS Agent: Generates narration audio with Gemini TTS.
API 키가 없으면 mock 경로 (오디오 없이 예상 길이만 반환).
Transient 실패는 exponential backoff로 재시도.
"""

import os
import asyncio
import aiohttp
from typing import Optional
from dataclasses import dataclass
from dotenv import load_dotenv

from agents.script_analyzer import word_count
from utils.audio_framer import pcm_base64_to_wav_data_url, reported_duration_sec
from utils.cancellation import CancellationToken
from utils.constants import GEMINI_API_BASE, MODEL_GEMINI_TTS, SUPPORTED_LANGUAGES, WORDS_PER_SECOND
from utils.errors import ProviderError, ProviderNotConfiguredError, TransientProviderError
from utils.logger import get_logger
logger = get_logger("tts_agent")


load_dotenv()


@dataclass
class TTSResult:
    """TTS 생성 결과"""
    audio_data_url: Optional[str]  # data:audio/wav;base64,... (mock이면 None)
    duration_sec: int
    source: str  # "gemini" | "mock"
    pcm_bytes: int = 0


def language_prefix(language: Optional[str]) -> str:
    """Spoken instruction for non-English narration, empty for English."""
    if language and language in SUPPORTED_LANGUAGES:
        return f"Speak in {language}."
    return ""


def estimated_speech_sec(script: str) -> int:
    return int(word_count(script) / WORDS_PER_SECOND + 0.5)


class SpeechSynthesisClient:
    """
    Gemini TTS wrapper: text + voice -> base64 PCM (24kHz / 16-bit / mono).
    """

    def __init__(
        self,
        api_key: str = None,
        max_retries: int = 3,
        base_delay_sec: float = 1.0,
        timeout_sec: float = 60.0,
        model: str = MODEL_GEMINI_TTS,
    ):
        """
        Initialize the speech client.

        Args:
            api_key: Gemini API key (default: GEMINI_API_KEY)
            max_retries: Total attempts for transient failures
            base_delay_sec: First backoff delay, doubled per retry
            timeout_sec: Per-request timeout
            model: Gemini TTS model name
        """
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        self.max_retries = max(1, max_retries)
        self.base_delay_sec = base_delay_sec
        self.timeout_sec = timeout_sec
        self.model = model
        if self.api_key:
            logger.info("[TTS Agent] Provider: Gemini TTS")
        else:
            logger.warning("[TTS Agent] Warning: GEMINI_API_KEY not set, narration will use the mock path")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _request_speech(self, spoken_text: str, voice_name: str) -> str:
        """Single TTS request. Returns base64 PCM."""
        url = f"{GEMINI_API_BASE}/models/{self.model}:generateContent"
        body = {
            "contents": [{"parts": [{"text": spoken_text}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {
                        "prebuiltVoiceConfig": {"voiceName": voice_name},
                    },
                },
            },
        }

        timeout = aiohttp.ClientTimeout(total=self.timeout_sec)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, params={"key": self.api_key}, json=body) as resp:
                    if resp.status >= 500 or resp.status == 429:
                        raise TransientProviderError(
                            f"Gemini TTS API error {resp.status}: {await resp.text()}", status=resp.status
                        )
                    if resp.status >= 400:
                        raise ProviderError(
                            f"Gemini TTS API error {resp.status}: {await resp.text()}", status=resp.status
                        )
                    data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientProviderError(f"Gemini TTS request failed: {e}") from e

        try:
            return data["candidates"][0]["content"]["parts"][0]["inlineData"]["data"]
        except (KeyError, IndexError, TypeError):
            raise ProviderError("No audio data in Gemini TTS response")

    async def synthesize(
        self,
        text: str,
        voice_id: str,
        style_prefix: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> str:
        """
        Synthesize ``text`` with a prebuilt voice.

        Transient failures are retried up to ``max_retries`` attempts with
        delays of base, 2*base, 4*base ... Backoff sleeps honor ``token``.

        Returns:
            base64 PCM audio

        Raises:
            ProviderNotConfiguredError: no API key
            ProviderError: terminal failure or retries exhausted
            GenerationCancelled: token fired
        """
        if not self.api_key:
            raise ProviderNotConfiguredError("GEMINI_API_KEY is not set")

        spoken_text = f"{style_prefix} {text}" if style_prefix else text
        last_error: Optional[ProviderError] = None

        for attempt in range(self.max_retries):
            request = self._request_speech(spoken_text, voice_id)
            try:
                if token is not None:
                    return await token.run(request)
                return await request
            except TransientProviderError as e:
                last_error = e

            if attempt < self.max_retries - 1:
                delay = self.base_delay_sec * (2 ** attempt)
                logger.warning(
                    f"     [TTS] Attempt {attempt + 1}/{self.max_retries} failed: {last_error}. "
                    f"Retrying in {delay:.1f}s"
                )
                if token is not None:
                    await token.sleep(delay)
                else:
                    await asyncio.sleep(delay)

        logger.error(f"     [TTS] Giving up after {self.max_retries} attempts: {last_error}")
        raise last_error

    async def narrate(
        self,
        script: str,
        voice_id: str,
        style_prefix: Optional[str] = None,
        language: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> TTSResult:
        """
        Narration as a playable WAV data URL.

        Without an API key this is the mock path: no audio, duration estimated
        from the word count.
        """
        if not self.api_key:
            return TTSResult(audio_data_url=None, duration_sec=estimated_speech_sec(script), source="mock")

        spoken = script
        lang = language_prefix(language)
        if lang:
            spoken = f"{lang} {script}"

        logger.info(f"  [TTS Agent] Generating narration ({word_count(script)} words, voice={voice_id})...")
        pcm_base64 = await self.synthesize(spoken, voice_id, style_prefix, token=token)
        data_url, pcm_len = pcm_base64_to_wav_data_url(pcm_base64)
        duration = reported_duration_sec(pcm_len)
        logger.info(f"     [TTS Agent] Audio ready ({pcm_len} PCM bytes, ~{duration}s)")
        return TTSResult(audio_data_url=data_url, duration_sec=duration, source="gemini", pcm_bytes=pcm_len)
