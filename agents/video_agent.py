"""
Video Agent: Animates a portrait into a talking-head clip with Veo.

- start_animation: Veo Image-to-Video long-running 작업 시작 (operation name 반환)
- poll_animation: operation 상태 조회 (done / payload / error)
- API 키가 없으면 mock operation handle을 반환하고, 폴링은 mock progress가 담당

세로(9:16) 숏폼 포맷 고정.
"""

import os
import json
import base64
import asyncio
import aiohttp
from typing import Optional, Dict, Any
from dotenv import load_dotenv

from schemas import AnimationStatus
from utils.constants import GEMINI_API_BASE, MODEL_VEO, MOCK_OPERATION_HANDLE
from utils.errors import ProviderError, TransientProviderError
from utils.logger import get_logger
logger = get_logger("video_agent")


load_dotenv()

_PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
_JPEG_MAGIC = b"\xff\xd8\xff"


def sniff_image_mime(image_bytes: bytes) -> str:
    """Image MIME type from magic bytes. Unknown data is sent as JPEG."""
    if image_bytes[:3] == _JPEG_MAGIC:
        return "image/jpeg"
    if image_bytes[:8] == _PNG_MAGIC:
        return "image/png"
    if len(image_bytes) >= 12 and image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


def _decode_body(text: str) -> Dict[str, Any]:
    """Operation JSON object, or ProviderError for anything else."""
    try:
        data = json.loads(text)
    except ValueError as e:
        raise ProviderError(f"Veo returned malformed JSON: {e}") from e
    if not isinstance(data, dict):
        raise ProviderError(f"Veo returned unexpected body type: {type(data).__name__}")
    return data


class VideoAnimatorClient:
    """
    Veo 기반 portrait animation 클라이언트

    작업 시작과 상태 조회만 담당. 폴링 주기 / 재시도 예산은 오케스트레이터 소관.
    """

    def __init__(self, api_key: str = None, timeout_sec: float = 60.0, model: str = MODEL_VEO):
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        self.timeout_sec = timeout_sec
        self.model = model

        if self.api_key:
            logger.info(f"  Video Agent: Using Veo ({self.model}) for portrait animation.")
        else:
            logger.warning("  Video Agent: No GEMINI_API_KEY. Animation will use the mock operation.")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _request_json(self, method: str, url: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        timeout = aiohttp.ClientTimeout(total=self.timeout_sec)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(method, url, params={"key": self.api_key}, json=body) as resp:
                    if resp.status == 429 or resp.status >= 500:
                        raise TransientProviderError(
                            f"Veo API error {resp.status}: {await resp.text()}", status=resp.status
                        )
                    if resp.status >= 400:
                        raise ProviderError(
                            f"Veo API error {resp.status}: {await resp.text()}", status=resp.status
                        )
                    return _decode_body(await resp.text())
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientProviderError(f"Veo request failed: {e}") from e

    async def start_animation(
        self,
        prompt: str,
        image_bytes: bytes,
        mime_type: str,
        duration_sec: int = 8,
    ) -> str:
        """
        Start an Image-to-Video operation.

        Args:
            prompt: Animation prompt
            image_bytes: Raw portrait image
            mime_type: Sniffed MIME type of ``image_bytes``
            duration_sec: Requested clip length

        Returns:
            Operation name, or ``MOCK_OPERATION_HANDLE`` when unconfigured
        """
        if not self.api_key:
            logger.info("     [Veo] Not configured, returning mock operation")
            return MOCK_OPERATION_HANDLE

        url = f"{GEMINI_API_BASE}/models/{self.model}:predictLongRunning"
        body = {
            "instances": [{
                "prompt": prompt,
                "image": {
                    "bytesBase64Encoded": base64.b64encode(image_bytes).decode("ascii"),
                    "mimeType": mime_type,
                },
            }],
            "parameters": {
                "aspectRatio": "9:16",
                "personGeneration": "allow_all",
                "sampleCount": 1,
                "durationSeconds": duration_sec,
            },
        }

        logger.info(f"     [Veo] Sending Image-to-Video request ({mime_type}, {len(image_bytes)} bytes)...")
        data = await self._request_json("POST", url, body)
        name = data.get("name")
        if not name:
            raise ProviderError("Veo response did not include an operation name")

        logger.info(f"     [Veo] Operation started: {name}")
        return name

    async def poll_animation(self, handle: str) -> AnimationStatus:
        """
        Query a long-running operation once.

        An explicit provider error is reported as ``done`` with ``error`` set,
        not raised. HTTP-level failures raise.
        """
        data = await self._request_json("GET", f"{GEMINI_API_BASE}/{handle}")

        if data.get("error"):
            err = data["error"]
            message = err.get("message") if isinstance(err, dict) else str(err)
            return AnimationStatus(done=True, error=message or "Video generation failed")

        if not data.get("done"):
            percent = (data.get("metadata") or {}).get("progressPercent", 0)
            try:
                percent = min(100.0, max(0.0, float(percent)))
            except (TypeError, ValueError):
                percent = 0.0
            return AnimationStatus(done=False, progress=percent)

        try:
            samples = data["response"]["generateVideoResponse"]["generatedSamples"]
        except (KeyError, TypeError):
            samples = (data.get("response") or {}).get("generatedSamples")

        payload = None
        if samples:
            payload = ((samples[0] or {}).get("video") or {}).get("bytesBase64Encoded")

        if not payload:
            return AnimationStatus(done=True, error="No video data in completed response")

        return AnimationStatus(done=True, payload=payload, progress=100)
