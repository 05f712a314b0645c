"""
Script Agent: Drafts a short-form narration script for a topic.

Gemini (gemini-2.0-flash) 우선, 키가 없거나 실패하면 톤별 템플릿으로 폴백.
"""

import os
from typing import Optional, Tuple

from dotenv import load_dotenv
from google import genai
from google.genai import types

from schemas import Sentiment
from utils.constants import MODEL_GEMINI_FLASH
from utils.errors import ScriptValidationError
from utils.logger import get_logger
logger = get_logger("script_agent")


load_dotenv()

MIN_TOPIC_CHARS = 3
WORD_TOLERANCE = 10

# 길이(초) → 목표 단어 수
TARGET_WORDS = {60: 150, 90: 225}


HOOKS = {
    Sentiment.EXCITED: "You won't believe what I discovered about {topic}!",
    Sentiment.EDUCATIONAL: "Let me break down everything you need to know about {topic}.",
    Sentiment.CALM: "Here's something interesting about {topic} that most people miss.",
    Sentiment.PROFESSIONAL: "Today I want to share key insights about {topic}.",
    Sentiment.FRIENDLY: "Hey! Let's talk about something I'm really passionate about: {topic}.",
}

BODIES = {
    Sentiment.EXCITED: (
        "This is absolutely game-changing. {topic} is transforming the way we think about content creation. "
        "The results speak for themselves. People are seeing massive growth by implementing these strategies. "
        "And the best part? Anyone can start doing this today. You don't need expensive tools or years of experience. "
        "Just focus on consistency and authenticity. The algorithm rewards creators who show up every single day "
        "with genuine value."
    ),
    Sentiment.EDUCATIONAL: (
        "First, let's understand the fundamentals. {topic} works because it taps into how people naturally "
        "consume content. Research shows that short-form video gets three times more engagement than static posts. "
        "The key is structuring your message clearly. Start with a hook, deliver your value, and end with a clear "
        "next step. Keep your sentences short. Use visual breaks every five to seven seconds. This keeps viewers "
        "watching until the end."
    ),
    Sentiment.CALM: (
        "What makes {topic} special is the simplicity behind it. When you strip away the noise, the core principle "
        "is straightforward. Focus on delivering genuine value to your audience. Build trust through consistency. "
        "The numbers follow naturally when you prioritize authenticity over virality. Take your time with each "
        "piece of content. Quality always wins in the long run."
    ),
    Sentiment.PROFESSIONAL: (
        "The data around {topic} is compelling. Industry reports show significant growth in this space. "
        "Organizations that adopt these practices early see measurable improvements in their reach and engagement. "
        "The implementation process is straightforward. Start with a clear strategy, measure your results, and "
        "iterate based on data. This systematic approach ensures sustainable growth over time."
    ),
    Sentiment.FRIENDLY: (
        "So here's the deal with {topic}. I've been experimenting with this for a while now, and I want to share "
        "what actually works. Forget the complicated strategies you see everywhere. The secret is keeping things "
        "simple and real. Your audience can tell when you're being genuine. Show up as yourself, share what you "
        "know, and don't overthink it. That's literally the whole formula."
    ),
}

CALLS_TO_ACTION = {
    Sentiment.EXCITED: "Start implementing this today and watch what happens. Follow for more game-changing tips!",
    Sentiment.EDUCATIONAL: (
        "Save this for later and share it with someone who needs to hear this. Follow for more insights."
    ),
    Sentiment.CALM: (
        "Take a moment to think about how this applies to your journey. Follow for more thoughtful content."
    ),
    Sentiment.PROFESSIONAL: (
        "Connect with me to discuss how to apply these strategies to your goals. Follow for weekly insights."
    ),
    Sentiment.FRIENDLY: "Drop a comment and let me know what you think! Follow along for more real talk.",
}


def target_word_count(duration_sec: int) -> int:
    return TARGET_WORDS.get(duration_sec, TARGET_WORDS[90])


def template_script(topic: str, tone: Sentiment, target_words: int) -> str:
    """Hook + body + call to action, cut to ``target_words`` when far over."""
    tone = Sentiment(tone)
    full = " ".join([
        HOOKS[tone].format(topic=topic),
        BODIES[tone].format(topic=topic),
        CALLS_TO_ACTION[tone],
    ])

    words = full.split()
    if len(words) > target_words + WORD_TOLERANCE:
        return " ".join(words[:target_words]) + "."
    return full


def build_script_prompt(topic: str, tone: Sentiment, target_words: int, language: str) -> str:
    return f"""Write a short-form video script about "{topic}" for social media (TikTok/Reels/Shorts).

Requirements:
- Exactly {target_words} words (±{WORD_TOLERANCE} words)
- Tone: {Sentiment(tone).value}
- Language: {language} (write the script in {language})
- Format: Plain text, no stage directions, just spoken words
- Structure: Hook (first 3 seconds) → Main points → Call to action
- Make it engaging, conversational, and punchy
- Use short sentences for better subtitling
- No emojis, no hashtags, no platform-specific formatting

Return ONLY the script text, nothing else."""


class ScriptAgent:
    """
    Narration script drafting.

    Returns ``(script, source)`` where source is ``"gemini"`` or ``"template"``.
    """

    def __init__(self, api_key: str = None, model: str = MODEL_GEMINI_FLASH):
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        self.model = model
        self._client: Optional[genai.Client] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def _draft_with_gemini(self, prompt: str) -> str:
        response = await self._get_client().aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config=types.GenerateContentConfig(temperature=0.8),
        )
        return (response.text or "").strip()

    async def generate_script(
        self,
        topic: str,
        tone: Sentiment = Sentiment.PROFESSIONAL,
        duration_sec: int = 60,
        language: str = "English",
    ) -> Tuple[str, str]:
        topic = (topic or "").strip()
        if len(topic) < MIN_TOPIC_CHARS:
            raise ScriptValidationError(f"Topic must be at least {MIN_TOPIC_CHARS} characters")

        tone = Sentiment(tone or Sentiment.PROFESSIONAL)
        language = language or "English"
        target = target_word_count(duration_sec)

        if self.api_key:
            try:
                logger.info(f"[Script Agent] Drafting {target}-word {tone.value} script with {self.model}...")
                script = await self._draft_with_gemini(build_script_prompt(topic, tone, target, language))
                script = (script or "").strip()
                if script:
                    return script, "gemini"
                logger.warning("[Script Agent] Empty Gemini response, falling back to template")
            except Exception as e:
                logger.warning(f"[Script Agent] Gemini API error, falling back to template: {e}")

        return template_script(topic, tone, target), "template"
