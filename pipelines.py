# pipelines.py — trim / vertical / intro / zoom-in / zoom-out orchestration
#
# Records are processed strictly in order, one ffmpeg call at a time. Names of
# intermediate files are deterministic so a re-run resumes from disk.

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional

import utils
from models import EditRequest, PipelineOptions, VideoEdit

log = logging.getLogger(__name__)

@dataclass
class PipelineContext:
    input_dir: Path
    output_dir: Path
    options: PipelineOptions = field(default_factory=PipelineOptions)

    @property
    def final_dir(self) -> Path:
        return self.output_dir / "final"

    def source(self, edit: VideoEdit) -> Path:
        return self.input_dir / edit.filename

@dataclass
class PipelineResult:
    outputs: List[Path] = field(default_factory=list)
    skipped: List[Path] = field(default_factory=list)
    merged: Optional[Path] = None

    def as_dict(self) -> dict:
        return {
            "outputs": [str(p) for p in self.outputs],
            "skipped": [str(p) for p in self.skipped],
            "merged": str(self.merged) if self.merged else None,
        }

def load_edit_request(path) -> EditRequest:
    with open(path, "r", encoding="utf-8") as f:
        return EditRequest.model_validate(json.load(f))

def _announce(index: int, total: int, edit: VideoEdit) -> None:
    log.info("[%d/%d] 🎬 Processing: %s", index, total, edit.filename)

async def _merge_title(videos: List[Path], ctx: PipelineContext, title: str) -> Optional[Path]:
    if len(videos) <= 1:
        log.info("ℹ️ Not enough horizontal videos to merge. (%d)", len(videos))
        return None
    name = utils.sanitize_file_name(title) or "merged_horizontal"
    merged = await utils.merge_videos(videos, ctx.output_dir, name)
    log.info("🎞️ Merged horizontal video created: %s", merged)
    return merged

def _remove_sources(request: EditRequest, ctx: PipelineContext) -> None:
    if not ctx.options.remove_source_files:
        return
    for edit in request.videos:
        src = ctx.source(edit)
        try:
            os.unlink(src)
            log.info("🗑️ Deleted source file: %s", src)
        except OSError as e:
            log.error("⚠️ Error deleting source file: %s (%s)", src, e)

# =========================
# Variants
# =========================
async def run_trim(request: EditRequest, ctx: PipelineContext) -> PipelineResult:
    result = PipelineResult()
    for edit in request.videos:
        src = ctx.source(edit)
        base = utils.base_name_for(edit.filename, edit.custom_name)
        # _TRIM keeps plain trims apart from the vertical deliverable "<base><ext>"
        out = utils.output_path(ctx.output_dir, f"{base}_TRIM", src.suffix)
        log.info("🎬 Processing: %s → %s", edit.filename, out.name)
        if out.exists():
            result.skipped.append(out)
        result.outputs.append(await utils.make_horizontal_video(src, ctx.output_dir, f"{base}_TRIM",
                                                                edit.trim_start, edit.clip_duration))
    return result

async def run_vertical(request: EditRequest, ctx: PipelineContext) -> PipelineResult:
    result = PipelineResult()
    horizontals: List[Path] = []
    total = len(request.videos)

    for index, edit in enumerate(request.videos, start=1):
        _announce(index, total, edit)
        src = ctx.source(edit)
        base = utils.base_name_for(edit.filename, edit.custom_name)
        final_out = utils.output_path(ctx.output_dir, base, src.suffix)
        screenshot = ctx.output_dir / f"{base}.jpg"

        if final_out.exists():
            log.info("⚠️ Skipping video — already exists: %s", final_out)
            result.skipped.append(final_out)
            horizontal = utils.output_path(ctx.output_dir, f"{base}_HORIZONTAL", src.suffix)
            if horizontal.exists():
                horizontals.append(horizontal)
        else:
            horizontal = await utils.make_horizontal_video(src, ctx.output_dir, f"{base}_HORIZONTAL",
                                                           edit.trim_start, edit.clip_duration)
            horizontals.append(horizontal)
            if ctx.options.produce_vertical:
                vertical = await utils.make_vertical_video(horizontal, ctx.output_dir, base,
                                                           edit.video_width, edit.video_height)
                log.info("✅ Created final vertical video: %s", vertical)
                result.outputs.append(vertical)

        if ctx.options.produce_screenshots and not screenshot.exists():
            await utils.create_screenshot(src, screenshot, edit.midpoint)
            log.info("🖼️ Created screenshot at %.1fs: %s", edit.midpoint, screenshot)
            result.outputs.append(screenshot)

    result.merged = await _merge_title(horizontals, ctx, request.all_videos_title)
    _remove_sources(request, ctx)
    log.info("🎉 All videos processed.")
    return result

async def run_intro(request: EditRequest, ctx: PipelineContext) -> PipelineResult:
    result = PipelineResult()
    total = len(request.videos)

    for index, edit in enumerate(request.videos, start=1):
        _announce(index, total, edit)
        src = ctx.source(edit)
        base = utils.base_name_for(edit.filename, edit.custom_name)
        vertical = ctx.output_dir / f"VERTICAL {base}.mp4"
        screenshot = ctx.output_dir / f"{base}_screenshot.jpg"
        still = ctx.output_dir / f"{base}_screenshot_video.mp4"
        merged = ctx.output_dir / f"WITH_INTRO {base}.mp4"

        await utils.trim_and_crop_to_vertical(src, vertical, edit.trim_start, edit.clip_duration,
                                              edit.video_width, edit.video_height)

        if screenshot.exists():
            log.info("⚠️ Skipping screenshot — already exists: %s", screenshot)
        else:
            await utils.create_screenshot(src, screenshot, edit.midpoint, size=None)
            await utils.crop_screenshot_to_vertical(screenshot, screenshot, edit.video_width, edit.video_height)

        if merged.exists():
            log.info("⚠️ Skipping merge — already exists: %s", merged)
            result.skipped.append(merged)
        else:
            width, height, _, _ = utils.vertical_crop(edit.video_width, edit.video_height)
            await utils.screenshot_to_video(screenshot, still, width, height, duration=2)
            await utils.concat_videos([still, vertical], merged)
            log.info("🎞️ Merged video created: %s", merged)
        result.outputs.append(merged)

    _remove_sources(request, ctx)
    log.info("🎉 All videos processed.")
    return result

async def run_zoom_in(request: EditRequest, ctx: PipelineContext) -> PipelineResult:
    result = PipelineResult()
    horizontals: List[Path] = []
    verticals: List[Path] = []
    thumbnails: List[Path] = []
    suffix = ctx.options.vertical_suffix

    for counter, edit in enumerate(request.videos, start=1):
        _announce(counter, len(request.videos), edit)
        src = ctx.source(edit)
        base = utils.base_name_for(edit.filename, edit.custom_name)
        tag = f"{counter}_{base}"
        split = edit.split_point

        parts: List[Path] = []
        if split > edit.trim_start:
            first = await utils.make_horizontal_video(src, ctx.output_dir, f"{tag}__first",
                                                      edit.trim_start, split - edit.trim_start)
            parts.append(await utils.speed_up_video(first, ctx.output_dir, f"{tag}__first_x2", 2))
        if edit.trim_stop > split:
            parts.append(await utils.make_horizontal_video(src, ctx.output_dir, f"{tag}__second",
                                                           split, edit.trim_stop - split))
        horizontal = await utils.merge_videos(parts, ctx.output_dir, f"{tag}__base")
        horizontals.append(horizontal)

        if ctx.options.produce_vertical:
            verticals.append(await utils.make_vertical_video(horizontal, ctx.output_dir, f"{base}{suffix}",
                                                             edit.video_width, edit.video_height))

        if ctx.options.produce_screenshots:
            thumb = await utils.create_screenshot_last_frame(horizontal, ctx.output_dir / f"{base}.jpg")
            log.info("📸 Created screenshot: %s", thumb)
            thumbnails.append(thumb)

    utils.copy_files_to_final(thumbnails, ctx.final_dir)
    utils.copy_files_to_final(verticals, ctx.final_dir)
    result.outputs += verticals + thumbnails

    result.merged = await _merge_title(horizontals, ctx, request.all_videos_title)
    if result.merged:
        utils.copy_files_to_final([result.merged], ctx.final_dir)

    _remove_sources(request, ctx)
    log.info("🎉 All videos processed.")
    return result

async def run_zoom_out(request: EditRequest, ctx: PipelineContext) -> PipelineResult:
    result = PipelineResult()
    verticals: List[Path] = []
    screenshots: List[Path] = []
    opts = ctx.options

    for counter, edit in enumerate(request.videos, start=1):
        _announce(counter, len(request.videos), edit)
        src = ctx.source(edit)
        base = utils.base_name_for(edit.filename, edit.custom_name)
        tag = f"{counter}_{base}"

        # shave the last 0.1s so the reversed clip does not start on a black frame
        base_clip = await utils.make_horizontal_video(src, ctx.output_dir, f"{tag}___BASE___",
                                                      edit.trim_start, max(0.1, edit.clip_duration - 0.1))
        if opts.overlay_preview:
            preview = await utils.make_horizontal_video(src, ctx.output_dir, f"{tag}___3SECONDS___", 0, 3)
            small = await utils.resize_video_by_6(preview, ctx.output_dir, f"{tag}___3SECONDS_RESIZED___")
            base_clip = await utils.put_video_on_video(base_clip, small, ctx.output_dir, f"{tag}___HORIZONTAL___")

        whole_x2 = await utils.speed_up_video(src, ctx.output_dir, f"{tag}___baseSpeededBy2", 2)
        base_x6 = await utils.speed_up_video(base_clip, ctx.output_dir, f"{tag}___baseSpeededBy6", 6)
        reverted = await utils.revert_video(base_x6)
        final = await utils.merge_videos([reverted, whole_x2], ctx.output_dir, f"{tag}___FINAL___")

        if opts.music_path:
            final = await utils.add_music_to_video(final, ctx.output_dir, f"{tag}___FINAL___MUSIC", opts.music_path)

        if opts.produce_vertical:
            verticals.append(await utils.make_vertical_video(
                final, ctx.output_dir, f"{tag}{opts.vertical_suffix} ___FINAL___VERTICAL",
                edit.video_width, edit.video_height))
        else:
            result.outputs.append(final)

        if opts.produce_screenshots:
            shot = await utils.create_screenshot(base_clip, ctx.output_dir / f"{base}.jpg", 1)
            log.info("📸 Created screenshot: %s", shot)
            screenshots.append(shot)

    utils.copy_files_to_final(screenshots, ctx.final_dir)
    utils.copy_files_to_final(verticals, ctx.final_dir)
    result.outputs += verticals + screenshots

    _remove_sources(request, ctx)
    log.info("🎉 All videos processed.")
    return result

PIPELINES: Dict[str, Callable[[EditRequest, PipelineContext], Awaitable[PipelineResult]]] = {
    "trim": run_trim,
    "vertical": run_vertical,
    "intro": run_intro,
    "zoom_in": run_zoom_in,
    "zoom_out": run_zoom_out,
}

async def run_pipeline(variant: str, request: EditRequest, ctx: PipelineContext) -> PipelineResult:
    if variant not in PIPELINES:
        raise KeyError(f"unknown pipeline variant: {variant}")
    log.info("🚀 Starting %s (%d videos) title=%r", variant, len(request.videos), request.all_videos_title)
    ctx.output_dir.mkdir(parents=True, exist_ok=True)
    try:
        return await PIPELINES[variant](request, ctx)
    except Exception as e:
        log.error("❌ Error processing trim data (%s): %s", variant, e)
        raise
