"""
Pexels B-roll Agent - 키워드별 cutaway 스톡 영상 검색
API 키가 없거나 요청이 실패하면 결정적(deterministic) placeholder 클립으로 폴백
"""

import os
import re
import requests
from typing import Optional, List, Dict, Any, Set

from schemas import CutawayClip
from utils.constants import PEXELS_VIDEO_API
from utils.logger import get_logger
logger = get_logger("pexels_agent")


# placeholder 클립 메타데이터 (촬영자, 길이)
_PLACEHOLDER_CREDITS = [
    ("Cottonbro Studio", 3),
    ("Mikhail Nilov", 5),
    ("Tima Miroshnichenko", 4),
    ("Rodnae Productions", 6),
]


def placeholder_clips(keyword: str) -> List[CutawayClip]:
    """Pexels-style placeholder results; same keyword, same clips."""
    slug = re.sub(r"\s+", "-", keyword.lower())
    return [
        CutawayClip(
            id=f"broll-{slug}-{n}",
            keyword=keyword,
            url=f"https://player.vimeo.com/external/placeholder-{slug}-{n}.hd.mp4",
            thumbnail=f"https://images.pexels.com/videos/placeholder/{slug}-{n}/free-video-thumbnail.jpg",
            duration_sec=duration,
            source_provider="pexels",
            attribution=photographer,
        )
        for n, (photographer, duration) in enumerate(_PLACEHOLDER_CREDITS, start=1)
    ]


class PexelsAgent:
    """Pexels Video Search API를 통해 cutaway 클립을 검색"""

    def __init__(self, api_key: str = None, timeout: float = 15):
        self.api_key = api_key or os.getenv("PEXELS_API_KEY")
        self.base_url = PEXELS_VIDEO_API
        self.timeout = timeout
        # 세션 내 중복 방지: 이미 사용된 클립 ID 추적
        self.used_clip_ids: Set[str] = set()

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def search_videos(
        self,
        query: str,
        per_page: int = 5,
        orientation: str = "portrait",
    ) -> List[Dict[str, Any]]:
        """Pexels Video Search API 호출. 실패 시 빈 리스트"""
        if not self.api_key:
            return []

        headers = {"Authorization": self.api_key}
        params = {
            "query": query,
            "per_page": per_page,
            "orientation": orientation,
        }

        try:
            resp = requests.get(
                f"{self.base_url}/search",
                headers=headers,
                params=params,
                timeout=self.timeout,
            )
            if not resp.ok:
                logger.warning(f"    [Pexels] Search failed: HTTP {resp.status_code} {resp.reason}")
                return []
            data = resp.json()
            videos = data.get("videos") if isinstance(data, dict) else None
            return videos if isinstance(videos, list) else []

        except (requests.RequestException, ValueError) as e:
            logger.warning(f"    [Pexels] Search error: {e}")
            return []

    @staticmethod
    def _to_clip(video: Dict[str, Any], keyword: str) -> CutawayClip:
        files = video.get("video_files") or []
        # HD 우선, 없으면 첫 번째 파일
        chosen = next((f for f in files if f.get("quality") == "hd"), files[0] if files else {})
        return CutawayClip(
            id=f"pexels-{video.get('id')}",
            keyword=keyword,
            url=chosen.get("link", ""),
            thumbnail=video.get("image", ""),
            duration_sec=video.get("duration", 0),
            source_provider="pexels",
            attribution=(video.get("user") or {}).get("name"),
        )

    def search(self, keyword: str, per_page: int = 5) -> List[CutawayClip]:
        """
        Cutaway clips for a keyword. Never raises.

        Returns:
            Pexels results, or placeholder clips when unconfigured / failed / empty
        """
        if not self.api_key:
            return placeholder_clips(keyword)

        videos = self.search_videos(keyword, per_page=per_page)
        clips = []
        for video in videos:
            try:
                clips.append(self._to_clip(video, keyword))
            except (AttributeError, TypeError, ValueError) as e:
                logger.debug(f"    [Pexels] Skipping malformed result: {e}")

        if not clips:
            return placeholder_clips(keyword)
        return clips

    def resolve_cutaway(self, keyword: str, index: int, span_sec: float) -> Optional[CutawayClip]:
        """Storyboard clip resolver: first clip not already used in this session."""
        clips = self.search(keyword)
        for clip in clips:
            if clip.id not in self.used_clip_ids:
                self.used_clip_ids.add(clip.id)
                return clip
        return clips[0] if clips else None
