# utils.py — ffmpeg helpers, paths, crop geometry, durations
#
# Every render step skips itself when its output already exists, so a
# half-finished pipeline resumes where it stopped.

import asyncio
import logging
import math
import os
import re
import shutil
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

log = logging.getLogger(__name__)

PathLike = Union[str, Path]

FFMPEG = "ffmpeg"
FFPROBE = "ffprobe"
FFMPEG_TIMEOUT = 3600

VERTICAL_ASPECT = 9 / 16
SCREENSHOT_SIZE = "1280x720"
CONCAT_LIST_NAME = "concat_list.txt"

VIDEO_EXTENSIONS = (".mp4", ".mov", ".avi", ".mkv", ".webm")
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp")

class FFmpegError(RuntimeError):
    def __init__(self, cmd: Sequence[str], output: str):
        self.cmd = list(cmd)
        self.output = output
        tool = os.path.basename(self.cmd[0]) if self.cmd else "ffmpeg"
        super().__init__(f"{tool} failed: {(output or 'unknown error')[-500:]}")

def configure(settings) -> None:
    global FFMPEG, FFPROBE, FFMPEG_TIMEOUT
    FFMPEG = settings.ffmpeg
    FFPROBE = settings.ffprobe
    FFMPEG_TIMEOUT = settings.ffmpeg_timeout

# =========================
# Pure helpers
# =========================
def sanitize_file_name(name: str) -> str:
    return re.sub(r'[\\/:*?"<>|]', "", name or "")

def base_name_for(filename: str, custom_name: str = "") -> str:
    custom = (custom_name or "").strip()
    if custom:
        return sanitize_file_name(custom)
    return sanitize_file_name(f"trimmed_{Path(filename).stem}")

def output_path(folder: PathLike, name_prefix: str, ext: str) -> Path:
    return Path(folder) / f"{name_prefix}{ext}"

def vertical_crop(width: int, height: int, aspect: float = VERTICAL_ASPECT) -> Tuple[int, int, int, int]:
    """Centered crop rectangle (w, h, x, y) keeping full height."""
    if width <= 0 or height <= 0:
        raise ValueError(f"invalid video dimensions {width}x{height}")
    target_h = int(height)
    target_w = min(int(width), math.floor(target_h * aspect))
    x = max(0, math.floor((width - target_w) / 2))
    return target_w, target_h, x, 0

def crop_filter(width: int, height: int) -> str:
    w, h, x, y = vertical_crop(width, height)
    return f"crop={w}:{h}:{x}:{y}"

def concat_list_line(path: PathLike) -> str:
    escaped = str(path).replace("'", "'\\''")
    return f"file '{escaped}'"

def atempo_chain(factor: float) -> str:
    if factor <= 0:
        raise ValueError(f"speed factor must be positive, got {factor}")
    parts: List[str] = []
    remaining = float(factor)
    while remaining > 2.0:
        parts.append("atempo=2.0")
        remaining /= 2.0
    while remaining < 0.5:
        parts.append("atempo=0.5")
        remaining /= 0.5
    parts.append(f"atempo={remaining:g}")
    return ",".join(parts)

def _skip_existing(path: Path, what: str = "video") -> bool:
    if path.exists():
        log.info("⚠️ Skipping %s — already exists: %s", what, path)
        return True
    return False

# =========================
# Process runners
# =========================
async def _run(cmd: Sequence[str], timeout: Optional[int] = None) -> Tuple[int, str]:
    proc = await asyncio.create_subprocess_exec(
        *cmd, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout or FFMPEG_TIMEOUT)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        return (1, "Timed out")
    out = (stdout or b"").decode(errors="replace") + "\n" + (stderr or b"").decode(errors="replace")
    return proc.returncode, out.strip()

async def _ffmpeg(args: Sequence[str], out_path: Path, timeout: Optional[int] = None) -> Path:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    cmd = [FFMPEG, "-hide_banner", "-loglevel", "error", "-y", *args, str(out_path)]
    code, out = await _run(cmd, timeout=timeout)
    if code != 0 or not out_path.exists():
        raise FFmpegError(cmd, out)
    return out_path

async def ffprobe_duration(path: PathLike) -> Optional[float]:
    if not path or not os.path.exists(path): return None
    code, out = await _run([
        FFPROBE, "-v", "error", "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1", str(path)
    ], timeout=60)
    if code != 0 or not out.strip():
        return None
    try:
        return float(out.strip().splitlines()[-1])
    except ValueError:
        return None

async def ffprobe_has_audio(path: PathLike) -> bool:
    code, out = await _run([
        FFPROBE, "-v", "error", "-select_streams", "a",
        "-show_entries", "stream=index", "-of", "csv=p=0", str(path)
    ], timeout=60)
    return code == 0 and bool(out.strip())

# =========================
# Render steps
# =========================
async def make_horizontal_video(input_path: PathLike, output_folder: PathLike, name_prefix: str,
                                start_time: float, duration: float) -> Path:
    out = output_path(output_folder, name_prefix, Path(input_path).suffix)
    if _skip_existing(out): return out
    log.info("✂️ Trimming %s [%.2fs +%.2fs]", input_path, start_time, duration)
    return await _ffmpeg(["-ss", f"{start_time:g}", "-i", str(input_path),
                          "-t", f"{duration:g}", "-r", "30"], out)

async def make_vertical_video(input_path: PathLike, output_folder: PathLike, name_prefix: str,
                              video_width: int, video_height: int) -> Path:
    out = output_path(output_folder, name_prefix, Path(input_path).suffix)
    if _skip_existing(out): return out
    log.info("📐 Vertical crop %s (%s)", input_path, crop_filter(video_width, video_height))
    return await _ffmpeg(["-i", str(input_path), "-vf", crop_filter(video_width, video_height)], out)

async def trim_and_crop_to_vertical(input_path: PathLike, out_path: PathLike, start_time: float,
                                    duration: float, video_width: int, video_height: int) -> Path:
    out = Path(out_path)
    if _skip_existing(out): return out
    return await _ffmpeg(["-ss", f"{start_time:g}", "-i", str(input_path), "-t", f"{duration:g}",
                          "-vf", crop_filter(video_width, video_height)], out)

async def create_screenshot(input_path: PathLike, out_path: PathLike, timestamp: float,
                            size: str = SCREENSHOT_SIZE) -> Path:
    out = Path(out_path)
    if _skip_existing(out, "screenshot"): return out
    args = ["-ss", f"{max(0.0, timestamp):g}", "-i", str(input_path), "-frames:v", "1"]
    if size:
        args += ["-s", size]
    return await _ffmpeg(args, out, timeout=120)

async def create_screenshot_last_frame(input_path: PathLike, out_path: PathLike,
                                       size: str = SCREENSHOT_SIZE) -> Path:
    out = Path(out_path)
    if _skip_existing(out, "screenshot"): return out
    duration = await ffprobe_duration(input_path)
    if not duration or duration <= 0:
        raise FFmpegError([FFPROBE, str(input_path)], "Invalid video duration.")
    # stay a little before the end so the seek still lands on a frame
    return await create_screenshot(input_path, out, duration - 0.1, size=size)

async def crop_screenshot_to_vertical(input_path: PathLike, out_path: PathLike,
                                      video_width: int, video_height: int) -> Path:
    src, out = Path(input_path), Path(out_path)
    # ffmpeg cannot read and write the same file
    target = out.with_name(out.stem + ".tmp" + out.suffix) if src.resolve() == out.resolve() else out
    await _ffmpeg(["-i", str(src), "-vf", crop_filter(video_width, video_height)], target, timeout=120)
    if target != out:
        target.replace(out)
    return out

async def screenshot_to_video(image_path: PathLike, out_path: PathLike, width: int, height: int,
                              duration: float = 2) -> Path:
    out = Path(out_path)
    if _skip_existing(out): return out
    return await _ffmpeg(["-loop", "1", "-i", str(image_path), "-t", f"{duration:g}",
                          "-c:v", "libx264", "-s", f"{width}x{height}", "-r", "25",
                          "-pix_fmt", "yuv420p"], out)

async def concat_videos(input_paths: Sequence[PathLike], out_path: PathLike,
                        list_path: Optional[PathLike] = None) -> Path:
    if not input_paths:
        raise ValueError("No videos provided to merge.")
    out = Path(out_path)
    lst = Path(list_path) if list_path else out.parent / CONCAT_LIST_NAME
    lst.parent.mkdir(parents=True, exist_ok=True)
    lst.write_text("\n".join(concat_list_line(Path(p).resolve()) for p in input_paths), encoding="utf-8")
    return await _ffmpeg(["-f", "concat", "-safe", "0", "-i", str(lst), "-c", "copy"], out)

async def merge_videos(videos: Sequence[PathLike], output_folder: PathLike, name_prefix: str) -> Path:
    if not videos:
        raise ValueError("No videos provided to merge.")
    out = output_path(output_folder, name_prefix, Path(videos[0]).suffix)
    if _skip_existing(out): return out
    await concat_videos(videos, out, Path(output_folder) / CONCAT_LIST_NAME)
    log.info("✅ Merged video saved to: %s", out)
    return out

async def speed_up_video(input_path: PathLike, output_folder: PathLike, name_prefix: str,
                         speed_factor: float) -> Path:
    out = output_path(output_folder, name_prefix, Path(input_path).suffix)
    if _skip_existing(out): return out
    args = ["-i", str(input_path), "-filter:v", f"setpts={1 / speed_factor:g}*PTS"]
    if await ffprobe_has_audio(input_path):
        args += ["-filter:a", atempo_chain(speed_factor)]
    else:
        args += ["-an"]
    log.info("⏩ Speeding up %s x%g", input_path, speed_factor)
    return await _ffmpeg([*args, "-r", "30"], out)

async def revert_video(video_path: PathLike) -> Path:
    src = Path(video_path)
    out = src.with_name(f"{src.stem}__reverted{src.suffix}")
    if _skip_existing(out): return out
    args = ["-i", str(src), "-vf", "reverse"]
    args += ["-af", "areverse"] if await ffprobe_has_audio(src) else ["-an"]
    await _ffmpeg(args, out)
    log.info("✅ Reverted video saved to: %s", out)
    return out

async def resize_video_by_6(input_path: PathLike, output_folder: PathLike, name_prefix: str) -> Path:
    out = output_path(output_folder, name_prefix, Path(input_path).suffix)
    if _skip_existing(out): return out
    # keep dimensions even for libx264
    vf = "scale=trunc(iw/12)*2:trunc(ih/12)*2,pad=iw+20:ih+20:10:10:red"
    return await _ffmpeg(["-i", str(input_path), "-vf", vf], out)

async def put_video_on_video(base_path: PathLike, overlay_path: PathLike, output_folder: PathLike,
                             name_prefix: str) -> Path:
    out = output_path(output_folder, name_prefix, Path(base_path).suffix)
    if _skip_existing(out): return out
    graph = ";".join([
        "[1:v]format=yuva420p,fade=t=in:st=0:d=1:alpha=1,fade=t=out:st=2:d=1:alpha=1[ovl]",
        "[0:v][ovl]overlay=x=(W-w)/2:y=H*0.25:enable='between(t,0,4)'",
    ])
    return await _ffmpeg(["-i", str(base_path), "-i", str(overlay_path), "-filter_complex", graph,
                          "-c:v", "libx264", "-pix_fmt", "yuv420p", "-crf", "23", "-preset", "veryfast"], out)

async def add_music_to_video(input_path: PathLike, output_folder: PathLike, name_prefix: str,
                             mp3_path: PathLike) -> Path:
    if not Path(mp3_path).exists():
        raise FileNotFoundError(f"Audio file not found: {mp3_path}")
    out = output_path(output_folder, name_prefix, Path(input_path).suffix)
    if _skip_existing(out): return out
    return await _ffmpeg(["-i", str(input_path), "-i", str(mp3_path), "-map", "0:v", "-map", "1:a",
                          "-c:v", "libx264", "-c:a", "aac", "-shortest",
                          "-preset", "veryfast", "-crf", "23"], out)

# =========================
# Files
# =========================
def copy_files_to_final(paths: Iterable[PathLike], final_dir: PathLike) -> List[Path]:
    dest_dir = Path(final_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)
    copied = []
    for p in paths:
        dest = dest_dir / Path(p).name
        log.info("📦 Copying %s -> %s", p, dest)
        shutil.copyfile(p, dest)
        copied.append(dest)
    return copied

def media_kind(name: str) -> Optional[str]:
    ext = os.path.splitext(name)[1].lower()
    if ext in VIDEO_EXTENSIONS: return "video"
    if ext in IMAGE_EXTENSIONS: return "image"
    return None
