"""
TALKREEL Configuration Loader
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional

# 기본 설정 디렉토리
CONFIG_DIR = Path(__file__).parent

ANIMATION_PROMPT = (
    "The person in this portrait speaks naturally and directly to the camera, "
    "with subtle head movements, natural blinking and expressive facial gestures. "
    "Static camera, soft studio lighting, vertical framing."
)


def get_default_generation_policy() -> Dict[str, Any]:
    """기본 generation 정책 반환"""
    return {
        "poll_interval_sec": 5.0,
        "max_poll_attempts": 60,
        "job_ttl_sec": 30 * 60,
        "reaper_interval_sec": 60.0,
        "tts_max_retries": 3,
        "tts_base_delay_sec": 1.0,
        "animation_duration_sec": 8,
        "request_timeout_sec": 60.0,
    }


def load_generation_policy(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Generation 정책 로드

    Args:
        config_path: 설정 파일 경로 (기본: config/generation_policy.yaml)

    Returns:
        정책 딕셔너리. 파일에 없는 키는 기본값으로 채움
    """
    if config_path is None:
        config_path = CONFIG_DIR / "generation_policy.yaml"

    policy = get_default_generation_policy()
    if not os.path.exists(config_path):
        return policy

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    policy.update(config.get("generation_policy", {}))
    return policy


def get_animation_prompt() -> str:
    """Fixed prompt sent with every portrait animation request."""
    return ANIMATION_PROMPT
