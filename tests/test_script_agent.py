"""
Unit tests for script drafting (Gemini path and template fallback).
"""
import sys
import os
import asyncio
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from agents.script_agent import ScriptAgent, build_script_prompt, target_word_count, template_script
from schemas import Sentiment
from utils.errors import ScriptValidationError


def test_target_words():
    assert target_word_count(60) == 150
    assert target_word_count(90) == 225


def test_template_contains_topic_and_hook():
    script = template_script("remote work", Sentiment.EXCITED, 150)
    assert script.startswith("You won't believe what I discovered about remote work!")
    assert script.endswith("Follow for more game-changing tips!")


def test_template_trimmed_when_far_over_target():
    script = template_script("remote work", Sentiment.EDUCATIONAL, 20)
    assert len(script.split()) == 20
    assert script.endswith(".")


def test_template_within_tolerance_untouched():
    full = template_script("remote work", Sentiment.CALM, 1000)
    words = len(full.split())
    assert template_script("remote work", Sentiment.CALM, words - 10) == full


def test_prompt_mentions_requirements():
    prompt = build_script_prompt("budget travel", Sentiment.FRIENDLY, 225, "Hindi")
    assert '"budget travel"' in prompt
    assert "Exactly 225 words" in prompt
    assert "Tone: friendly" in prompt
    assert "write the script in Hindi" in prompt


def test_short_topic_rejected(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    with pytest.raises(ScriptValidationError):
        asyncio.run(ScriptAgent().generate_script("  ai "))


def test_template_when_unconfigured(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    script, source = asyncio.run(ScriptAgent().generate_script("home workouts", Sentiment.PROFESSIONAL))
    assert source == "template"
    assert "home workouts" in script


def test_gemini_path():
    agent = ScriptAgent(api_key="test-key")
    prompts = []

    async def fake_draft(prompt):
        prompts.append(prompt)
        return "  A drafted script.  "

    agent._draft_with_gemini = fake_draft
    script, source = asyncio.run(agent.generate_script("home workouts", Sentiment.CALM, 90, "Tamil"))
    assert (script, source) == ("A drafted script.", "gemini")
    assert "Exactly 225 words" in prompts[0]


def test_gemini_failure_falls_back():
    agent = ScriptAgent(api_key="test-key")

    async def broken(prompt):
        raise RuntimeError("quota exceeded")

    agent._draft_with_gemini = broken
    script, source = asyncio.run(agent.generate_script("home workouts", Sentiment.FRIENDLY))
    assert source == "template"
    assert script.startswith("Hey!")
