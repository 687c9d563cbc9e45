# workers.py — background pipeline jobs (one at a time) + JSON status file

import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional

import db_history
from config import Settings
from models import EditRequest, JobStatus, PipelineOptions
from pipelines import PipelineContext, run_pipeline

log = logging.getLogger(__name__)

# oldest finished jobs are dropped once the registry grows past this
MAX_JOBS = 50

def _now() -> datetime:
    return datetime.now(timezone.utc)

class JobRunner:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.jobs: Dict[str, JobStatus] = {}
        self._lock = asyncio.Lock()
        self._tasks: Dict[str, asyncio.Task] = {}

    def options(self) -> PipelineOptions:
        s = self.settings
        return PipelineOptions(
            produce_vertical=s.produce_vertical,
            produce_screenshots=s.produce_screenshots,
            remove_source_files=s.remove_source_files,
            vertical_suffix=s.vertical_suffix,
            music_path=s.music_path,
        )

    def get(self, job_id: str) -> Optional[JobStatus]:
        return self.jobs.get(job_id)

    def _prune(self) -> None:
        finished = [k for k, j in self.jobs.items() if j.state in ("done", "failed")]
        for job_id in finished[:max(0, len(self.jobs) - MAX_JOBS)]:
            del self.jobs[job_id]

    def write_status(self) -> None:
        path = self.settings.status_path
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"jobs": [j.model_dump(mode="json") for j in self.jobs.values()]}
        path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")

    def submit(self, variant: str, request: EditRequest) -> JobStatus:
        job = JobStatus(job_id=uuid.uuid4().hex, variant=variant)
        self.jobs[job.job_id] = job
        self.write_status()
        self._tasks[job.job_id] = asyncio.create_task(self.run(job, request))
        return job

    async def run(self, job: JobStatus, request: EditRequest) -> JobStatus:
        # variants share output/ and concat_list.txt
        async with self._lock:
            job.state = "running"
            job.started_at = _now()
            self.write_status()
            ctx = PipelineContext(self.settings.input_dir, self.settings.output_dir, self.options())
            try:
                result = await run_pipeline(job.variant, request, ctx)
                job.outputs = result.as_dict()["outputs"]
                if result.merged:
                    job.outputs.append(str(result.merged))
                job.state = "done"
            except Exception as e:
                job.state = "failed"
                job.error = str(e)
            finally:
                job.finished_at = _now()
                self._prune()
                self.write_status()
                self._tasks.pop(job.job_id, None)
        self._record_history(job, request)
        return job

    def _record_history(self, job: JobStatus, request: EditRequest) -> None:
        try:
            db_history.insert_run(
                url=self.settings.supabase_url, key=self.settings.supabase_key,
                job_id=job.job_id, variant=job.variant, title=request.all_videos_title,
                state=job.state, outputs=job.outputs, error=job.error,
            )
        except Exception as e:
            log.warning("⚠️ insert_run failed: %s", e)
