"""
Storyboard Builder: lays the analyzed script out on a timeline.

Two independent partitions are produced:
- storyboard segments, one talking-head (+ optional cutaway) per breakpoint
- subtitle cues, an even split of the estimated duration over sentence fragments

Subtitle boundaries are not aligned with storyboard boundaries.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from schemas import (
    CutawayClip,
    ScriptAnalysis,
    SegmentKind,
    StoryboardSegment,
    SubtitleSegment,
)
from agents.script_analyzer import analyze_script, word_count
from utils.constants import WORDS_PER_SECOND
from utils.logger import get_logger
logger = get_logger("storyboard_builder")

TALKING_HEAD_SHARE = 0.6
FALLBACK_TEXT_CHARS = 80

# (keyword, breakpoint index, cutaway span in seconds) -> clip
ClipResolver = Callable[[str, int, float], Optional[CutawayClip]]

_SUBTITLE_SPLIT = re.compile(r"[.!?]+")


@dataclass
class StoryboardResult:
    storyboard: List[StoryboardSegment]
    subtitles: List[SubtitleSegment]
    analysis: Optional[ScriptAnalysis] = None
    fallback: bool = False
    music_mood: str = "friendly"
    warnings: List[str] = field(default_factory=list)


def placeholder_clip(keyword: str, index: int, span_sec: float) -> CutawayClip:
    """Deterministic stock-clip reference used until a real clip is picked."""
    return CutawayClip(
        id=f"broll-{index}",
        keyword=keyword,
        url=f"https://images.pexels.com/videos/{1000 + index}/free-video.mp4",
        thumbnail=f"https://images.pexels.com/photos/{3000 + index * 100}/pexels-photo.jpeg?auto=compress&w=300",
        duration_sec=span_sec,
        source_provider="pexels",
        attribution="Stock Creator",
    )


def build_storyboard(
    analysis: ScriptAnalysis,
    clip_resolver: Optional[ClipResolver] = None,
) -> List[StoryboardSegment]:
    """
    Each breakpoint spans [time, next.time) (or to the estimated duration).
    The talking head takes the first 60%; a keyword adds a cutaway for the rest.
    """
    resolver = clip_resolver or placeholder_clip
    segments: List[StoryboardSegment] = []
    breakpoints = analysis.breakpoints

    for i, bp in enumerate(breakpoints):
        end = breakpoints[i + 1].time if i + 1 < len(breakpoints) else analysis.estimated_duration_sec
        split = bp.time + (end - bp.time) * TALKING_HEAD_SHARE

        segments.append(StoryboardSegment(
            id=f"seg-{i}-talk",
            kind=SegmentKind.TALKING_HEAD,
            start_time=bp.time,
            end_time=split,
            text=bp.text,
        ))

        if bp.keyword:
            segments.append(StoryboardSegment(
                id=f"seg-{i}-cutaway",
                kind=SegmentKind.CUTAWAY,
                start_time=split,
                end_time=end,
                text=bp.text,
                keyword=bp.keyword,
                cutaway_clip=resolver(bp.keyword, i, end - split),
            ))

    return segments


def split_subtitle_fragments(script: str) -> List[str]:
    return [frag.strip() for frag in _SUBTITLE_SPLIT.split(script) if frag.strip()]


def build_subtitles(
    script: str,
    total_duration: float,
    keywords: Optional[List[str]] = None,
) -> List[SubtitleSegment]:
    """Equal share of ``total_duration`` per sentence fragment, in order."""
    fragments = split_subtitle_fragments(script)
    if not fragments:
        return []

    share = total_duration / len(fragments)
    subtitles = []
    for i, text in enumerate(fragments):
        lower = text.lower()
        highlight = next((kw for kw in (keywords or []) if kw in lower), None)
        subtitles.append(SubtitleSegment(
            id=f"sub-{i}",
            text=text,
            start_time=i * share,
            end_time=(i + 1) * share,
            highlight_word=highlight,
        ))
    return subtitles


def fallback_storyboard(script: str) -> StoryboardResult:
    """Single talking head and single subtitle over the whole script."""
    duration = word_count(script) / WORDS_PER_SECOND
    return StoryboardResult(
        storyboard=[StoryboardSegment(
            id="seg-0",
            kind=SegmentKind.TALKING_HEAD,
            start_time=0.0,
            end_time=duration,
            text=script[:FALLBACK_TEXT_CHARS] + "...",
        )],
        subtitles=[SubtitleSegment(
            id="sub-0",
            text=script,
            start_time=0.0,
            end_time=duration,
        )],
        fallback=True,
    )


def build_preview(
    script: str,
    analyze: Callable[[str], ScriptAnalysis] = analyze_script,
    clip_resolver: Optional[ClipResolver] = None,
) -> StoryboardResult:
    """
    Analyze the script and build both timelines.

    Any analysis failure, or a script with no sentence structure, degrades to
    :func:`fallback_storyboard` instead of surfacing an error.
    """
    try:
        analysis = analyze(script)
    except Exception as e:
        logger.warning(f"[Storyboard] Analysis failed, using single-segment fallback: {e}")
        result = fallback_storyboard(script)
        result.warnings.append(f"analysis failed: {e}")
        return result

    if not analysis.breakpoints:
        logger.info("[Storyboard] No sentence structure found, using single-segment fallback")
        result = fallback_storyboard(script)
        result.analysis = analysis
        result.music_mood = analysis.sentiment.value
        return result

    storyboard = build_storyboard(analysis, clip_resolver)
    subtitles = build_subtitles(script, analysis.estimated_duration_sec, analysis.keywords)
    cutaways = sum(1 for seg in storyboard if seg.kind == SegmentKind.CUTAWAY)
    logger.info(
        f"[Storyboard] {len(storyboard)} segments ({cutaways} cutaways), "
        f"{len(subtitles)} subtitles, {analysis.estimated_duration_sec:.1f}s"
    )

    return StoryboardResult(
        storyboard=storyboard,
        subtitles=subtitles,
        analysis=analysis,
        music_mood=analysis.sentiment.value,
    )
