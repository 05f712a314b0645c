"""
Unit tests for voice profiles and suggestions.
"""
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from agents.voice_catalog import VOICE_PROFILES, find_voice, suggest_voices


def test_catalog_shape():
    assert len(VOICE_PROFILES) == 6
    assert len({v.id for v in VOICE_PROFILES}) == 6
    assert all(v.gemini_voice for v in VOICE_PROFILES)


def test_find_voice_by_id_or_gemini_name():
    assert find_voice("v2").name == "Sarah"
    assert find_voice("Kore").id == "v2"
    assert find_voice("nobody") is None


def test_no_filter_diverse_styles():
    voices = suggest_voices()
    assert [v.id for v in voices] == ["v1", "v2", "v3"]
    assert len({v.style for v in voices}) == 3


def test_gender_filter_applies_with_three_matches():
    voices = suggest_voices(gender="female")
    assert [v.id for v in voices] == ["v2", "v4", "v6"]
    assert all(v.gender == "female" for v in voices)


def test_gender_filter_ignored_below_three():
    """Only two male voices: the filter is dropped."""
    voices = suggest_voices(gender="male")
    assert [v.id for v in voices] == ["v1", "v2", "v3"]


def test_age_filter_ignored_below_three():
    voices = suggest_voices(gender="female", age="adult")
    # two adult females only; gender filter alone remains
    assert [v.id for v in voices] == ["v2", "v4", "v6"]


def test_age_filter_applies():
    voices = suggest_voices(age="adult")
    assert [v.id for v in voices] == ["v2", "v3", "v6"]


def test_limit():
    assert len(suggest_voices(limit=5)) == 5
