from pathlib import Path
import argparse
import logging
import os
import sys

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from dotenv import find_dotenv, load_dotenv

from app import config
from app.summary_service import SummaryService
from pipeline.backends import select_backend
from pipeline.transcript_pipeline import TranscriptPipeline
from services.bilibili_client import BilibiliClient
from services.subtitle_resolver import SubtitleResolver
from services.summarizer import Summarizer


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="bili-summary",
        description="Bilibili Video Summary AI Agent",
    )
    parser.add_argument("video_id", help="Bilibili BV ID or URL")
    parser.add_argument("-k", "--key", help="OpenAI API Key")
    parser.add_argument("-b", "--base-url", help="OpenAI Base URL")
    parser.add_argument("-m", "--model", help="OpenAI chat model")
    parser.add_argument("-o", "--output", help="Save summary to file")
    parser.add_argument("--comment", action="store_true", help="Post summary as a comment on the video")
    parser.add_argument(
        "--transcribe",
        action="store_true",
        help="Enable audio transcription if subtitles are missing",
    )
    parser.add_argument(
        "--force-transcribe",
        action="store_true",
        help="Force audio transcription even if subtitles exist",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    load_dotenv(find_dotenv(usecwd=True))
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    args = parse_args(argv)

    api_key = args.key or os.getenv("OPENAI_API_KEY", "").strip()
    if not api_key:
        print(
            "Error: OpenAI API Key is required. Please provide it via --key option "
            "or OPENAI_API_KEY environment variable."
        )
        return 1

    base_url = args.base_url or os.getenv("OPENAI_BASE_URL", "").strip() or None
    model = args.model or os.getenv("OPENAI_CHAT_MODEL", "").strip() or config.DEFAULT_CHAT_MODEL

    try:
        client = BilibiliClient.from_env()
        service = SummaryService(
            client=client,
            resolver=SubtitleResolver(client),
            summarizer=Summarizer(api_key=api_key, base_url=base_url),
            pipeline=TranscriptPipeline(
                backend=select_backend(openai_api_key=api_key, openai_base_url=base_url),
                show_progress=True,
            ),
            chat_model=model,
        )

        print(f"Fetching {args.video_id}...")
        if args.force_transcribe:
            print("Force transcription enabled. Skipping subtitle fetch.")
        result = service.run(
            args.video_id,
            transcribe=args.transcribe,
            force_transcribe=args.force_transcribe,
        )

        video = result.video
        print(f"Title: {video.title}")
        print(f"Duration: {video.duration // 60}m {video.duration % 60}s")
        if video.total_pages > 1:
            print(f"Note: This video has {video.total_pages} parts. Processed part {video.current_page}.")
            if "p=" not in args.video_id:
                print(f"To summarize a specific part, use ?p=X (e.g. {video.bvid}?p=2)")

        if result.summary is None:
            print(result.reason or "No subtitles found.")
            return 0

        print(f"Found transcript ({len(result.segments)} lines, from {result.source}).")
        print(f"Transcript saved to temporary file: {result.transcript_path}")

        print("\n" + "=" * 50)
        print("VIDEO SUMMARY")
        print("=" * 50 + "\n")
        print(result.summary)
        print("\n" + "=" * 50)

        if args.output:
            with open(args.output, "w", encoding="utf-8") as f:
                f.write(result.summary)
            print(f"Summary saved to {args.output}")

        if args.comment:
            print("\nPosting summary to comments...")
            if service.post_comment(result):
                print("✅ Comment posted successfully!")
            else:
                print("❌ Failed to post comment. Check your BILIBILI_JCT (CSRF token) and SESSDATA.")

        return 0
    except Exception as exc:
        print(f"Error: {exc}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
