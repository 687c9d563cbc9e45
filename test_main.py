from __future__ import annotations

import json
import os
import tempfile
import time
import unittest
from pathlib import Path
from unittest import mock

from fastapi.testclient import TestClient

import main
import workers
from pipelines import PipelineResult

RECORD = {
    "filename": "a.mp4",
    "customName": "Moon",
    "trimStart": 1,
    "trimStop": 3,
    "videoWidth": 1920,
    "videoHeight": 1080,
}


class TestServer(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        root = Path(self._tmp.name)
        self.input_dir = root / "inputFolder"
        self.output_dir = root / "outputFolder"
        self.trim_data = root / "trim-results.json"

        env = mock.patch.dict(os.environ, {
            "CUTTER_INPUT_DIR": str(self.input_dir),
            "CUTTER_OUTPUT_DIR": str(self.output_dir),
            "CUTTER_TRIM_DATA": str(self.trim_data),
            "SUPABASE_URL": "",
            "SUPABASE_KEY": "",
        })
        env.start()
        self.addCleanup(env.stop)

        self.client = TestClient(main.app)
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)

    def wait_for_job(self, job_id: str) -> dict:
        for _ in range(200):
            job = self.client.get(f"/jobs/{job_id}").json()
            if job["state"] in ("done", "failed"):
                return job
            time.sleep(0.01)
        self.fail(f"job {job_id} did not finish")

    def test_health(self) -> None:
        res = self.client.get("/")
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.json()["ok"])

    def test_files_split_videos_and_images(self) -> None:
        (self.input_dir / "b.mp4").write_bytes(b"\0" * 1024 * 1024)
        (self.input_dir / "a.MOV").write_bytes(b"v")
        (self.input_dir / "cover.JPG").write_bytes(b"i")
        (self.input_dir / "notes.txt").write_text("skip me")
        (self.input_dir / "folder.mp4").mkdir()

        res = self.client.get("/files")
        self.assertEqual(res.status_code, 200)
        body = res.json()
        self.assertEqual([v["name"] for v in body["videos"]], ["a.MOV", "b.mp4"])
        self.assertEqual([i["name"] for i in body["images"]], ["cover.JPG"])

        big = body["videos"][1]
        self.assertEqual(big["sizeBytes"], 1024 * 1024)
        self.assertEqual(big["sizeMB"], "1.00")
        self.assertEqual(big["extension"], ".mp4")
        self.assertEqual(big["path"], "/inputFolder/b.mp4")
        self.assertIn("createdAt", big)
        self.assertIn("modifiedAt", big)

    def test_input_file_is_served(self) -> None:
        (self.input_dir / "a.mp4").write_bytes(b"video")
        self.assertEqual(self.client.get("/inputFolder/a.mp4").content, b"video")
        self.assertEqual(self.client.get("/inputFolder/missing.mp4").status_code, 404)

    def test_input_folder_serves_any_file(self) -> None:
        (self.input_dir / "notes.txt").write_text("cut at 3s", encoding="utf-8")
        res = self.client.get("/inputFolder/notes.txt")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.text, "cut at 3s")

    def test_trim_saves_descriptor(self) -> None:
        (self.input_dir / "a.mp4").write_bytes(b"video")
        res = self.client.post("/trim", json={"allVideosTitle": "Night", "videos": [RECORD]})
        self.assertEqual(res.status_code, 200)
        self.assertIsNone(res.json()["job"])

        saved = json.loads(self.trim_data.read_text(encoding="utf-8"))
        self.assertEqual(saved["allVideosTitle"], "Night")
        self.assertEqual(saved["videos"][0]["customName"], "Moon")
        self.assertEqual(saved["videos"][0]["trimStop"], 3)

    def test_trim_rejects_missing_source(self) -> None:
        res = self.client.post("/trim", json={"allVideosTitle": "Night", "videos": [RECORD]})
        self.assertEqual(res.status_code, 404)
        self.assertFalse(self.trim_data.exists())

    def test_trim_rejects_inverted_range(self) -> None:
        bad = {**RECORD, "trimStart": 5}
        res = self.client.post("/trim", json={"allVideosTitle": "Night", "videos": [bad]})
        self.assertEqual(res.status_code, 422)

    def test_trim_rejects_empty_list(self) -> None:
        res = self.client.post("/trim", json={"allVideosTitle": "Night", "videos": []})
        self.assertEqual(res.status_code, 400)

    def test_trim_with_variant_queues_job(self) -> None:
        (self.input_dir / "a.mp4").write_bytes(b"video")
        with mock.patch.object(workers, "run_pipeline", mock.AsyncMock(return_value=PipelineResult())):
            res = self.client.post("/trim?variant=vertical", json={"allVideosTitle": "N", "videos": [RECORD]})
            self.assertEqual(res.status_code, 200)
            finished = self.wait_for_job(res.json()["job"]["job_id"])
        self.assertEqual(res.json()["job"]["variant"], "vertical")
        self.assertEqual(finished["state"], "done")

    def test_process_unknown_variant(self) -> None:
        self.assertEqual(self.client.post("/process/spin").status_code, 404)

    def test_process_without_descriptor(self) -> None:
        self.assertEqual(self.client.post("/process/vertical").status_code, 404)

    def test_process_queues_saved_descriptor(self) -> None:
        self.trim_data.write_text(json.dumps([RECORD]), encoding="utf-8")
        with mock.patch.object(workers, "run_pipeline", mock.AsyncMock(return_value=PipelineResult())):
            res = self.client.post("/process/zoom_in")
            self.assertEqual(res.status_code, 200)
            finished = self.wait_for_job(res.json()["job_id"])
        self.assertEqual(res.json()["variant"], "zoom_in")
        self.assertEqual(finished["state"], "done")

    def test_process_with_invalid_descriptor(self) -> None:
        self.trim_data.write_text("{not json", encoding="utf-8")
        self.assertEqual(self.client.post("/process/trim").status_code, 400)

    def test_unknown_job(self) -> None:
        self.assertEqual(self.client.get("/jobs/nope").status_code, 404)

    def test_download_from_final_folder(self) -> None:
        (self.output_dir / "final" / "Moon.mp4").write_bytes(b"done")
        self.assertEqual(self.client.get("/download/Moon.mp4").content, b"done")
        self.assertEqual(self.client.get("/download/other.mp4").status_code, 404)

    def test_runs_empty_without_supabase(self) -> None:
        self.assertEqual(self.client.get("/runs").json(), {"runs": []})


if __name__ == "__main__":
    unittest.main()
