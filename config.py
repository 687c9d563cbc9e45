# config.py — env-driven settings (folders, ffmpeg, pipeline toggles)

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

load_dotenv()


def _truthy_env(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() not in {"0", "false", "no", "off", ""}


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return int(default)
    try:
        return int(float(raw))
    except ValueError:
        return int(default)


@dataclass(frozen=True)
class Settings:
    input_dir: Path
    output_dir: Path
    trim_data_path: Path
    ffmpeg: str
    ffprobe: str
    ffmpeg_timeout: int
    produce_vertical: bool
    produce_screenshots: bool
    remove_source_files: bool
    vertical_suffix: str
    music_path: Optional[Path]
    cors_origins: Tuple[str, ...]
    host: str
    port: int
    supabase_url: str
    supabase_key: str

    @property
    def final_dir(self) -> Path:
        return self.output_dir / "final"

    @property
    def status_path(self) -> Path:
        return self.output_dir / "pipeline-status.json"


def load_settings() -> Settings:
    input_dir = Path(os.getenv("CUTTER_INPUT_DIR", "inputFolder")).expanduser().resolve()
    output_dir = Path(os.getenv("CUTTER_OUTPUT_DIR", "outputFolder")).expanduser().resolve()
    trim_data_path = Path(os.getenv("CUTTER_TRIM_DATA", "trim-results.json")).expanduser().resolve()

    raw_music = os.getenv("CUTTER_MUSIC_PATH", "").strip()
    music_path = Path(raw_music).expanduser().resolve() if raw_music else None

    origins = tuple(o.strip() for o in os.getenv("CUTTER_CORS_ORIGINS", "*").split(",") if o.strip())

    return Settings(
        input_dir=input_dir,
        output_dir=output_dir,
        trim_data_path=trim_data_path,
        ffmpeg=os.getenv("CUTTER_FFMPEG", "ffmpeg").strip() or "ffmpeg",
        ffprobe=os.getenv("CUTTER_FFPROBE", "ffprobe").strip() or "ffprobe",
        # Long renders (reverse/areverse buffer the whole clip) need a generous ceiling.
        ffmpeg_timeout=max(60, _int_env("CUTTER_FFMPEG_TIMEOUT", 3600)),
        produce_vertical=_truthy_env("CUTTER_PRODUCE_VERTICAL", "1"),
        produce_screenshots=_truthy_env("CUTTER_PRODUCE_SCREENSHOTS", "1"),
        remove_source_files=_truthy_env("CUTTER_REMOVE_SOURCE_FILES", "0"),
        vertical_suffix=os.getenv("CUTTER_VERTICAL_SUFFIX", ""),
        music_path=music_path,
        cors_origins=origins or ("*",),
        host=os.getenv("CUTTER_HOST", "127.0.0.1"),
        port=_int_env("CUTTER_PORT", 3000),
        supabase_url=os.getenv("SUPABASE_URL", "").strip(),
        supabase_key=os.getenv("SUPABASE_KEY", "").strip(),
    )


def ensure_dirs(settings: Settings) -> None:
    for d in (settings.input_dir, settings.output_dir, settings.final_dir):
        d.mkdir(parents=True, exist_ok=True)
