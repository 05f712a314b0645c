"""
Script Analyzer: turns a narration script into keywords, a tone label and
timed sentence breakpoints.

Pure functions only; no provider calls. The speaking-rate constant
(2.5 words/sec) drives every timing estimate in the system.
"""

import math
import re
from collections import Counter
from typing import List

from schemas import Breakpoint, ScriptAnalysis, Sentiment
from utils.constants import WORDS_PER_SECOND

DEFAULT_MAX_KEYWORDS = 8

STOP_WORDS = frozenset([
    "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "is", "it", "as", "was", "are", "be",
    "this", "that", "these", "those", "i", "you", "he", "she", "we",
    "they", "my", "your", "his", "her", "our", "their", "its", "not",
    "do", "does", "did", "will", "would", "could", "should", "may",
    "might", "can", "have", "has", "had", "been", "being", "am", "were",
    "just", "so", "than", "too", "very", "also", "about", "up", "out",
    "if", "then", "no", "all", "each", "every", "both", "few", "more",
    "some", "any", "most", "other", "into", "over", "such", "what",
    "which", "who", "whom", "how", "when", "where", "why", "here",
    "there", "now", "get", "got", "make", "like", "think", "know",
    "take", "come", "go", "see", "look", "want", "give", "use",
])

# 카테고리별 키워드 (substring 매칭: "meditat"은 meditate/meditation 모두 매칭)
SENTIMENT_PATTERNS = {
    Sentiment.EXCITED: [
        "amazing", "incredible", "wow", "awesome", "unbelievable", "insane",
        "mind-blowing", "exciting", "game-changer", "love", "best",
    ],
    Sentiment.EDUCATIONAL: [
        "learn", "study", "research", "data", "science", "fact", "explain",
        "understand", "important", "key", "lesson", "tip", "strategy",
    ],
    Sentiment.CALM: [
        "relax", "peace", "mindful", "gentle", "slow", "breathe", "quiet",
        "serene", "meditat", "balance",
    ],
    Sentiment.PROFESSIONAL: [
        "business", "revenue", "growth", "market", "invest", "profit", "roi",
        "performance", "metrics", "scale", "enterprise",
    ],
    Sentiment.FRIENDLY: [
        "hey", "guys", "friend", "together", "fun", "enjoy", "share",
        "welcome", "join", "happy", "glad",
    ],
}

DEFAULT_SENTIMENT = Sentiment.FRIENDLY

_NON_WORD_CHARS = re.compile(r"[^a-z0-9\s'-]")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


def _round1(value: float) -> float:
    """Round half up to one decimal place."""
    return math.floor(value * 10 + 0.5) / 10


def word_count(text: str) -> int:
    return len(text.split())


def extract_keywords(text: str, max_keywords: int = DEFAULT_MAX_KEYWORDS) -> List[str]:
    """
    Most frequent content words, highest count first.

    Tokens of 3 characters or fewer and stop words are dropped. Equal counts
    keep first-seen order.
    """
    cleaned = _NON_WORD_CHARS.sub("", text.lower())
    words = [w for w in cleaned.split() if len(w) > 3 and w not in STOP_WORDS]

    freq = Counter(words)
    # Counter preserves insertion order and sorted() is stable
    ranked = sorted(freq.items(), key=lambda item: item[1], reverse=True)
    return [word for word, _ in ranked[:max_keywords]]


def analyze_sentiment(text: str) -> Sentiment:
    """
    Score each tone by keyword containment and return the single best one.

    No matches, or a shared top score, resolves to ``friendly``.
    """
    lower = text.lower()
    scores = {
        sentiment: sum(1 for word in words if word in lower)
        for sentiment, words in SENTIMENT_PATTERNS.items()
    }

    top = max(scores.values())
    if top == 0:
        return DEFAULT_SENTIMENT

    leaders = [sentiment for sentiment, score in scores.items() if score == top]
    if len(leaders) > 1:
        return DEFAULT_SENTIMENT
    return leaders[0]


def split_sentences(script: str) -> List[str]:
    return [s.strip() for s in _SENTENCE_SPLIT.split(script) if s.strip()]


def compute_breakpoints(script: str, keywords: List[str]) -> List[Breakpoint]:
    """
    One breakpoint per sentence, at the cumulative spoken start time.

    Each sentence gets the first keyword it contains, otherwise the top
    keyword, otherwise an empty string.
    """
    breakpoints: List[Breakpoint] = []
    cumulative = 0.0

    for sentence in split_sentences(script):
        duration = word_count(sentence) / WORDS_PER_SECOND
        sentence_lower = sentence.lower()
        matched = next((kw for kw in keywords if kw in sentence_lower), None)
        if matched is None:
            matched = keywords[0] if keywords else ""

        breakpoints.append(Breakpoint(
            time=_round1(cumulative),
            keyword=matched,
            text=sentence,
        ))
        cumulative += duration

    return breakpoints


def estimate_duration(script: str) -> float:
    """Spoken length of the whole script in seconds (one decimal)."""
    return _round1(word_count(script) / WORDS_PER_SECOND)


def analyze_script(script: str, max_keywords: int = DEFAULT_MAX_KEYWORDS) -> ScriptAnalysis:
    """Run the full analysis on a trimmed, non-empty script."""
    keywords = extract_keywords(script, max_keywords)
    return ScriptAnalysis(
        keywords=keywords,
        sentiment=analyze_sentiment(script),
        breakpoints=compute_breakpoints(script, keywords),
        estimated_duration_sec=estimate_duration(script),
    )
