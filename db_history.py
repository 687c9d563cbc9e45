# db_history.py
# Run-history persistence only. NO FastAPI. NO ffmpeg.

import logging
from typing import Optional

from supabase import Client, create_client

log = logging.getLogger(__name__)

RUNS_TABLE = "pipeline_runs"

_sb: Optional[Client] = None
_sb_key: Optional[tuple] = None


def get_db(url: str, key: str) -> Optional[Client]:
    """Lazy init. Never crash the pipeline if env vars are missing."""
    global _sb, _sb_key
    if not url or not key:
        return None
    if _sb is not None and _sb_key == (url, key):
        return _sb
    _sb = create_client(url, key)
    _sb_key = (url, key)
    return _sb


def insert_run(
    *,
    url: str,
    key: str,
    job_id: str,
    variant: str,
    title: str,
    state: str,
    outputs: list,
    error: Optional[str] = None,
) -> bool:
    db = get_db(url, key)
    if not db:
        return False

    db.table(RUNS_TABLE).insert({
        "job_id": job_id,
        "variant": variant,
        "title": title,
        "state": state,
        "outputs": outputs,
        "error": error,
    }).execute()
    return True


def get_recent_runs(url: str, key: str, limit: int = 50):
    db = get_db(url, key)
    if not db:
        return []

    res = (
        db.table(RUNS_TABLE)
        .select("*")
        .order("created_at", desc=True)
        .limit(limit)
        .execute()
    )
    return res.data or []
