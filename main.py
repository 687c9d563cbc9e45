import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

import db_history
import utils
from config import Settings, ensure_dirs, load_settings
from models import VARIANTS, EditRequest, JobStatus
from pipelines import load_edit_request
from workers import JobRunner

log = logging.getLogger(__name__)

APP_TITLE = "Vertical Cutter"
APP_VERSION = "1.0.0"
app = FastAPI(title=APP_TITLE, version=APP_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(load_settings().cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_STATE: Dict[str, Any] = {}

def _get_settings() -> Settings:
    s = _STATE.get("settings")
    if isinstance(s, Settings):
        return s
    raise RuntimeError("Server not initialized")

def _get_runner() -> JobRunner:
    r = _STATE.get("runner")
    if isinstance(r, JobRunner):
        return r
    raise RuntimeError("Server not initialized (missing runner)")

def _mount_input_folder(settings: Settings) -> None:
    # startup can run more than once per process; the newest folder wins
    app.router.routes[:] = [r for r in app.router.routes if getattr(r, "name", None) != "inputFolder"]
    app.mount("/inputFolder", StaticFiles(directory=str(settings.input_dir)), name="inputFolder")

@app.on_event("startup")
def _startup() -> None:
    settings = load_settings()
    ensure_dirs(settings)
    utils.configure(settings)
    _STATE["settings"] = settings
    _STATE["runner"] = JobRunner(settings)
    _mount_input_folder(settings)
    log.info("✅ Serving %s at http://%s:%d/files", settings.input_dir, settings.host, settings.port)

def _inside(folder: Path, name: str) -> Optional[Path]:
    path = (folder / name).resolve()
    if path.parent != folder.resolve() or not path.is_file():
        return None
    return path

def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()

def _file_info(entry: Path) -> dict:
    st = entry.stat()
    # st_birthtime only exists on macOS/BSD
    created = getattr(st, "st_birthtime", st.st_ctime)
    return {
        "name": entry.name,
        "sizeBytes": st.st_size,
        "sizeMB": f"{st.st_size / (1024 * 1024):.2f}",
        "createdAt": _iso(created),
        "modifiedAt": _iso(st.st_mtime),
        "extension": entry.suffix.lower(),
        "path": f"/inputFolder/{entry.name}",
    }

# =========================
# Health
# =========================
@app.get("/")
def root():
    return {"ok": True, "service": APP_TITLE, "version": APP_VERSION}

# =========================
# Input folder
# =========================
@app.get("/files")
def list_files():
    folder = _get_settings().input_dir
    videos, images = [], []
    try:
        for entry in sorted(folder.iterdir(), key=lambda p: p.name):
            if not entry.is_file():
                continue
            kind = utils.media_kind(entry.name)
            if kind == "video":
                videos.append(_file_info(entry))
            elif kind == "image":
                images.append(_file_info(entry))
    except OSError as e:
        log.error("❌ Error reading folder or files: %s", e)
        return JSONResponse({"error": "Failed to read files from input folder"}, status_code=500)
    return {"videos": videos, "images": images}

# =========================
# Trim descriptor + jobs
# =========================
def _check_variant(variant: str) -> None:
    if variant not in VARIANTS:
        raise HTTPException(404, f"Unknown variant '{variant}'. Expected one of: {', '.join(VARIANTS)}")

@app.post("/trim")
async def submit_trim(request: EditRequest, variant: Optional[str] = Query(None)):
    settings = _get_settings()
    if variant:
        _check_variant(variant)
    if not request.videos:
        return JSONResponse({"error": "videos must be a non-empty list"}, status_code=400)

    missing = [v.filename for v in request.videos if not _inside(settings.input_dir, v.filename)]
    if missing:
        raise HTTPException(404, f"Not found in input folder: {', '.join(missing)}")

    settings.trim_data_path.parent.mkdir(parents=True, exist_ok=True)
    settings.trim_data_path.write_text(
        request.model_dump_json(by_alias=True, indent=2), encoding="utf-8"
    )
    log.info("📁 Saved %d trims for %r to %s", len(request.videos), request.all_videos_title,
             settings.trim_data_path)

    job = _get_runner().submit(variant, request) if variant else None
    return {
        "ok": True,
        "saved": str(settings.trim_data_path),
        "job": job.model_dump(mode="json") if job else None,
    }

@app.post("/process/{variant}", response_model=JobStatus)
async def process(variant: str):
    _check_variant(variant)
    settings = _get_settings()
    if not settings.trim_data_path.exists():
        raise HTTPException(404, "No trim data saved yet")
    try:
        request = load_edit_request(settings.trim_data_path)
    except ValueError as e:
        return JSONResponse({"error": f"Invalid trim data: {e}"}, status_code=400)
    return _get_runner().submit(variant, request)

@app.get("/jobs/{job_id}", response_model=JobStatus)
def job_status(job_id: str):
    job = _get_runner().get(job_id)
    if not job:
        raise HTTPException(404, "Job not found")
    return job

@app.get("/runs")
def recent_runs(limit: int = Query(50, ge=1, le=500)):
    s = _get_settings()
    return {"runs": db_history.get_recent_runs(s.supabase_url, s.supabase_key, limit)}

# =========================
# Outputs
# =========================
@app.get("/download/{filename}")
def download(filename: str):
    path = _inside(_get_settings().final_dir, filename)
    if not path:
        raise HTTPException(404, "File not found")
    return FileResponse(str(path), filename=path.name, headers={"Cache-Control": "no-cache"})

if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    s = load_settings()
    uvicorn.run("main:app", host=s.host, port=s.port)
