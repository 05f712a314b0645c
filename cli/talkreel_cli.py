"""
TALKREEL CLI - Command-line runner for script analysis and avatar generation.

  analyze   스크립트 분석 + 스토리보드 JSON 출력
  generate  스크립트 + 인물 사진 → narration.wav / avatar.mp4 (Ctrl-C로 취소)
"""

import os
import sys
import json
import base64
import signal
import asyncio
import argparse
from pathlib import Path

# Add parent directory to path for imports
sys.path.append(str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from config import load_generation_policy
from agents.pexels_agent import PexelsAgent
from agents.storyboard_builder import build_preview
from agents.tts_agent import SpeechSynthesisClient
from agents.video_agent import VideoAnimatorClient
from agents.voice_catalog import VOICE_PROFILES, find_voice
from pipeline import GenerationOrchestrator, GenerationRequest
from schemas import GenerationState
from utils.cancellation import CancellationToken
from utils.job_registry import JobRegistry


def print_banner():
    """Print TALKREEL banner."""
    print("""
=====================================================================
              TALKREEL - Talking Avatar Reel Generator
              Script → Voice → Animated Portrait (9:16)
=====================================================================
""")


def _read_script(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        script = f.read().strip()
    if not script:
        raise SystemExit(f"[ERROR] Script file is empty: {path}")
    return script


def _decode_data_url(data_url: str) -> bytes:
    return base64.b64decode(data_url.split(",", 1)[1])


def cmd_analyze(args) -> int:
    script = _read_script(args.script)
    resolver = PexelsAgent().resolve_cutaway if args.live_broll else None
    result = build_preview(script, clip_resolver=resolver)

    output = {
        "analysis": result.analysis.model_dump(mode="json") if result.analysis else None,
        "fallback": result.fallback,
        "music_mood": result.music_mood,
        "storyboard": [seg.model_dump(mode="json") for seg in result.storyboard],
        "subtitles": [sub.model_dump(mode="json") for sub in result.subtitles],
    }
    print(json.dumps(output, indent=2, ensure_ascii=False))
    return 0


async def _generate(args, token: CancellationToken):
    policy = load_generation_policy(args.config)
    if args.poll_interval is not None:
        policy["poll_interval_sec"] = args.poll_interval

    voice = find_voice(args.voice)
    if voice is None:
        raise SystemExit(f"[ERROR] Unknown voice: {args.voice} (choose from {', '.join(v.id for v in VOICE_PROFILES)})")

    with open(args.image, "rb") as f:
        image_bytes = f.read()

    request = GenerationRequest(
        script=_read_script(args.script),
        image_bytes=image_bytes,
        voice_id=voice.gemini_voice,
        style_prefix=voice.style_prefix,
        language=args.language,
    )

    speech = SpeechSynthesisClient(
        max_retries=policy["tts_max_retries"],
        base_delay_sec=policy["tts_base_delay_sec"],
        timeout_sec=policy["request_timeout_sec"],
    )
    animator = VideoAnimatorClient(timeout_sec=policy["request_timeout_sec"])
    orchestrator = GenerationOrchestrator(speech, animator, JobRegistry(ttl_sec=policy["job_ttl_sec"]), policy=policy)

    print(f"Job ID: {orchestrator.job_id}")
    print(f"Voice: {voice.name} ({voice.gemini_voice})")

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel, "interrupted by user")
    except NotImplementedError:
        # Windows: KeyboardInterrupt가 task를 취소하고 오케스트레이터가 cancelled로 정리
        pass

    return await orchestrator.run(request, token)


def cmd_generate(args) -> int:
    token = CancellationToken()
    try:
        snapshot = asyncio.run(_generate(args, token))
    except (KeyboardInterrupt, asyncio.CancelledError):
        print("\n\n[INTERRUPTED] Generation cancelled by user.")
        return 130

    out_dir = Path(args.output)
    out_dir.mkdir(parents=True, exist_ok=True)

    print("\n" + "=" * 60)
    print(f"State: {snapshot.state.value}  Progress: {snapshot.progress}%")

    if snapshot.state == GenerationState.CANCELLED:
        print("[CANCELLED] Generation cancelled. Nothing written.")
        return 130

    if snapshot.audio_payload:
        audio_path = out_dir / "narration.wav"
        audio_path.write_bytes(_decode_data_url(snapshot.audio_payload))
        print(f"Narration: {audio_path} (~{snapshot.audio_duration_sec:.0f}s)")
    elif snapshot.audio_source == "mock":
        print(f"Narration: mock (estimated {snapshot.audio_duration_sec:.0f}s, GEMINI_API_KEY not set)")

    if snapshot.video_payload:
        video_path = out_dir / "avatar.mp4"
        video_path.write_bytes(_decode_data_url(snapshot.video_payload))
        print(f"Avatar video: {video_path}")
    elif snapshot.video_url:
        print(f"Avatar video (mock): {snapshot.video_url}")

    if snapshot.error_message:
        print(f"[ERROR] {snapshot.error_message}")

    print("=" * 60)
    return 0 if snapshot.state == GenerationState.COMPLETE else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="talkreel", description="TALKREEL talking-avatar reel generator")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Analyze a script and print the storyboard")
    analyze.add_argument("script", help="Path to a plain-text script")
    analyze.add_argument("--live-broll", action="store_true", help="Resolve cutaways through Pexels")
    analyze.set_defaults(func=cmd_analyze)

    generate = sub.add_parser("generate", help="Generate narration and an animated avatar")
    generate.add_argument("script", help="Path to a plain-text script")
    generate.add_argument("image", help="Portrait image (JPEG / PNG / WebP)")
    generate.add_argument("--voice", default="v1", help="Voice id or Gemini voice name (default: v1)")
    generate.add_argument("--language", default=None, help="Narration language, e.g. Hindi")
    generate.add_argument("--output", default="outputs", help="Output directory")
    generate.add_argument("--config", default=None, help="generation_policy.yaml path")
    generate.add_argument("--poll-interval", type=float, default=None, help="Override poll interval (sec)")
    generate.set_defaults(func=cmd_generate)

    return parser


def main(argv=None) -> int:
    """Main CLI entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    if args.command == "generate":
        print_banner()
        if not os.getenv("GEMINI_API_KEY"):
            print("[WARNING] GEMINI_API_KEY not found. Narration and animation will use mock results.\n")

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
