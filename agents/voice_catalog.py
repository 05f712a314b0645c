"""
Voice catalog: narrator profiles mapped to Gemini prebuilt voices.
"""

from typing import List, Optional

from schemas import Sentiment, VoiceProfile

VALID_GENDERS = ("male", "female", "neutral")
VALID_AGES = ("young", "adult", "mature")

# 필터 결과가 이 수 미만이면 해당 필터는 무시 (선택지 유지)
MIN_FILTER_MATCHES = 3

VOICE_PROFILES: List[VoiceProfile] = [
    VoiceProfile(
        id="v1", name="Alex", gender="male", age="young",
        style=Sentiment.EXCITED, gemini_voice="Puck",
        style_prefix="Say this with high energy and genuine excitement:",
        pitch=55, stability=70,
    ),
    VoiceProfile(
        id="v2", name="Sarah", gender="female", age="adult",
        style=Sentiment.PROFESSIONAL, gemini_voice="Kore",
        style_prefix="Say this in a clear, confident, professional tone:",
        pitch=60, stability=80,
    ),
    VoiceProfile(
        id="v3", name="Jordan", gender="neutral", age="adult",
        style=Sentiment.CALM, gemini_voice="Charon",
        style_prefix="Say this slowly and calmly:",
        pitch=50, stability=85,
    ),
    VoiceProfile(
        id="v4", name="Maya", gender="female", age="young",
        style=Sentiment.FRIENDLY, gemini_voice="Aoede",
        style_prefix="Say this warmly, like talking to a friend:",
        pitch=65, stability=75,
    ),
    VoiceProfile(
        id="v5", name="Marcus", gender="male", age="mature",
        style=Sentiment.EDUCATIONAL, gemini_voice="Fenrir",
        style_prefix="Say this like an experienced teacher explaining a topic:",
        pitch=40, stability=90,
    ),
    VoiceProfile(
        id="v6", name="Priya", gender="female", age="adult",
        style=Sentiment.EXCITED, gemini_voice="Leda",
        style_prefix="Say this with bright, upbeat enthusiasm:",
        pitch=58, stability=72,
    ),
]


def find_voice(voice_id: str) -> Optional[VoiceProfile]:
    """Profile by id (``v1``..) or by Gemini voice name."""
    for voice in VOICE_PROFILES:
        if voice.id == voice_id or voice.gemini_voice == voice_id:
            return voice
    return None


def suggest_voices(
    gender: Optional[str] = None,
    age: Optional[str] = None,
    limit: int = 3,
) -> List[VoiceProfile]:
    """
    Suggest up to ``limit`` voices for a perceived gender / age.

    Each filter only applies when it still leaves at least three candidates.
    Distinct styles are picked first, then remaining slots fill in catalog order.
    """
    candidates = list(VOICE_PROFILES)

    if gender:
        matches = [v for v in candidates if v.gender == gender]
        if len(matches) >= MIN_FILTER_MATCHES:
            candidates = matches

    if age:
        matches = [v for v in candidates if v.age == age]
        if len(matches) >= MIN_FILTER_MATCHES:
            candidates = matches

    result: List[VoiceProfile] = []
    seen_styles = set()
    for voice in candidates:
        if len(result) >= limit:
            break
        if voice.style not in seen_styles:
            seen_styles.add(voice.style)
            result.append(voice)

    for voice in candidates:
        if len(result) >= limit:
            break
        if voice not in result:
            result.append(voice)

    return result
