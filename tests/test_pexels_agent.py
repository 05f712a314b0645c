"""
Unit tests for the Pexels B-roll agent (fallbacks never raise).
"""
import sys
import os
import requests

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import agents.pexels_agent as pexels_agent
from agents.pexels_agent import PexelsAgent, placeholder_clips


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code
        self.ok = status_code < 400
        self.reason = "OK" if self.ok else "Error"

    def json(self):
        return self._payload


PEXELS_PAYLOAD = {
    "videos": [
        {
            "id": 123,
            "duration": 7,
            "image": "https://images.pexels.com/videos/123/thumb.jpg",
            "user": {"name": "Jane Doe"},
            "video_files": [
                {"link": "https://videos.pexels.com/123-sd.mp4", "quality": "sd"},
                {"link": "https://videos.pexels.com/123-hd.mp4", "quality": "hd"},
            ],
        },
        {
            "id": 456,
            "duration": 4,
            "image": "https://images.pexels.com/videos/456/thumb.jpg",
            "user": {"name": "John Roe"},
            "video_files": [{"link": "https://videos.pexels.com/456-sd.mp4", "quality": "sd"}],
        },
    ]
}


def test_placeholder_clips_deterministic():
    clips = placeholder_clips("Morning Routine")
    assert [c.id for c in clips] == [f"broll-morning-routine-{n}" for n in range(1, 5)]
    assert [c.duration_sec for c in clips] == [3, 5, 4, 6]
    assert clips[0].attribution == "Cottonbro Studio"
    assert all(c.source_provider == "pexels" for c in clips)
    assert placeholder_clips("Morning Routine") == clips


def test_unconfigured_uses_placeholders(monkeypatch):
    monkeypatch.delenv("PEXELS_API_KEY", raising=False)
    agent = PexelsAgent()
    assert not agent.is_configured
    assert agent.search("coffee") == placeholder_clips("coffee")


def test_search_maps_results(monkeypatch):
    seen = {}

    def fake_get(url, headers=None, params=None, timeout=None):
        seen.update(url=url, headers=headers, params=params)
        return FakeResponse(PEXELS_PAYLOAD)

    monkeypatch.setattr(pexels_agent.requests, "get", fake_get)
    clips = PexelsAgent(api_key="key").search("coffee")

    assert seen["url"].endswith("/search")
    assert seen["headers"] == {"Authorization": "key"}
    assert seen["params"]["orientation"] == "portrait"
    assert seen["params"]["per_page"] == 5

    assert [c.id for c in clips] == ["pexels-123", "pexels-456"]
    assert clips[0].url.endswith("123-hd.mp4")
    assert clips[1].url.endswith("456-sd.mp4")
    assert clips[0].attribution == "Jane Doe"
    assert clips[0].duration_sec == 7


def test_http_error_falls_back(monkeypatch):
    monkeypatch.setattr(pexels_agent.requests, "get", lambda *a, **kw: FakeResponse({}, status_code=500))
    assert PexelsAgent(api_key="key").search("coffee") == placeholder_clips("coffee")


def test_network_error_falls_back(monkeypatch):
    def boom(*args, **kwargs):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(pexels_agent.requests, "get", boom)
    assert PexelsAgent(api_key="key").search("coffee") == placeholder_clips("coffee")


def test_empty_results_fall_back(monkeypatch):
    monkeypatch.setattr(pexels_agent.requests, "get", lambda *a, **kw: FakeResponse({"videos": []}))
    assert PexelsAgent(api_key="key").search("coffee") == placeholder_clips("coffee")


def test_non_object_body_falls_back(monkeypatch):
    for payload in (["unexpected"], "text", {"videos": "nope"}):
        monkeypatch.setattr(pexels_agent.requests, "get", lambda *a, p=payload, **kw: FakeResponse(p))
        assert PexelsAgent(api_key="key").search("coffee") == placeholder_clips("coffee")


def test_malformed_entries_skipped(monkeypatch):
    payload = {"videos": ["bogus", PEXELS_PAYLOAD["videos"][1]]}
    monkeypatch.setattr(pexels_agent.requests, "get", lambda *a, **kw: FakeResponse(payload))
    clips = PexelsAgent(api_key="key").search("coffee")
    assert [c.id for c in clips] == ["pexels-456"]


def test_resolve_cutaway_avoids_reuse(monkeypatch):
    monkeypatch.delenv("PEXELS_API_KEY", raising=False)
    agent = PexelsAgent()
    first = agent.resolve_cutaway("coffee", 0, 2.0)
    second = agent.resolve_cutaway("coffee", 1, 2.0)
    assert first.id == "broll-coffee-1"
    assert second.id == "broll-coffee-2"
