"""Run one pipeline variant against the saved trim descriptor.

Usage:
    python -m run_pipeline vertical
    python -m run_pipeline zoom_out --data trim-results.json --no-vertical
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import utils
from config import ensure_dirs, load_settings
from models import VARIANTS, PipelineOptions
from pipelines import PipelineContext, load_edit_request, run_pipeline

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Trim/crop/speed pipeline driven by a JSON descriptor")
    p.add_argument("variant", choices=VARIANTS)
    p.add_argument("--data", type=Path, default=None, help="descriptor JSON (default: CUTTER_TRIM_DATA)")
    p.add_argument("--input-dir", type=Path, default=None)
    p.add_argument("--output-dir", type=Path, default=None)
    p.add_argument("--no-vertical", action="store_true", help="skip the 9:16 crop")
    p.add_argument("--no-screenshots", action="store_true")
    p.add_argument("--remove-sources", action="store_true", help="delete source files after the run")
    p.add_argument("--overlay-preview", action="store_true", help="zoom_out: overlay a shrunken intro")
    p.add_argument("--music", type=Path, default=None, help="zoom_out: replace audio with this track")
    p.add_argument("--suffix", default=None, help="text appended to vertical output names")
    return p


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")

    settings = load_settings()
    ensure_dirs(settings)
    utils.configure(settings)

    options = PipelineOptions(
        produce_vertical=settings.produce_vertical and not args.no_vertical,
        produce_screenshots=settings.produce_screenshots and not args.no_screenshots,
        remove_source_files=settings.remove_source_files or args.remove_sources,
        vertical_suffix=settings.vertical_suffix if args.suffix is None else args.suffix,
        overlay_preview=args.overlay_preview,
        music_path=args.music or settings.music_path,
    )
    ctx = PipelineContext(
        input_dir=(args.input_dir or settings.input_dir).resolve(),
        output_dir=(args.output_dir or settings.output_dir).resolve(),
        options=options,
    )

    try:
        request = load_edit_request(args.data or settings.trim_data_path)
        log.info("📁 Global Video Title: %s", request.all_videos_title)
        result = asyncio.run(run_pipeline(args.variant, request, ctx))
    except Exception as e:
        log.error("❌ %s failed: %s", args.variant, e)
        return 1

    for path in result.outputs:
        log.info("✅ %s", path)
    if result.merged:
        log.info("🎞️ %s", result.merged)
    return 0


if __name__ == "__main__":
    sys.exit(main())
