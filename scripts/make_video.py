#!/usr/bin/env python3
from __future__ import annotations

import argparse
import shutil
from pathlib import Path

from ayah_reels.core.errors import AppError
from ayah_reels.main import configure_logging
from ayah_reels.services.generation_pipeline import GenerationOrchestrator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Render a recitation video for a range of ayat.")
    parser.add_argument("--surah", type=int, required=True)
    parser.add_argument("--ayah-start", type=int, required=True)
    parser.add_argument("--ayah-end", type=int)
    parser.add_argument("--reciter", type=str, default="ar.alafasy")
    parser.add_argument("--translation", type=str, default="en.sahih")
    parser.add_argument("--background", type=str, default="default", help='Background clip URL or "default".')
    parser.add_argument("--resolution", type=int, default=720)
    parser.add_argument("--platform", type=str, choices=["reel", "youtube"], default="reel")
    parser.add_argument("--request-id", type=str)
    parser.add_argument("--output", type=str, help="Where to move the rendered file.")
    return parser


def main() -> None:
    args = build_parser().parse_args()
    configure_logging()

    payload = {
        "surah": args.surah,
        "ayah_start": args.ayah_start,
        "ayah_end": args.ayah_end if args.ayah_end is not None else args.ayah_start,
        "reciter_id": args.reciter,
        "translation_id": args.translation,
        "background_url": args.background,
        "resolution": args.resolution,
        "platform": args.platform,
    }
    if args.request_id:
        payload["request_id"] = args.request_id

    try:
        result = GenerationOrchestrator().start(payload)
    except AppError as exc:
        raise SystemExit(f"Generation failed: {exc.message}") from exc

    if result.status != "completed" or not result.output_path:
        raise SystemExit(f"Request {result.request_id} is already processing.")

    output = Path(result.output_path)
    if args.output:
        target = Path(args.output)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(output), target)
        output = target
    print(f"{output} ({result.verse_count} ayat, {result.total_duration:.2f}s)")


if __name__ == "__main__":
    main()
