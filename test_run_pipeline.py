from __future__ import annotations

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import run_pipeline
import utils
from pipelines import PipelineResult
from test_utils import fake_runner


class TestCli(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        (self.root / "in").mkdir()
        (self.root / "in" / "a.mp4").write_bytes(b"video")
        self.data = self.root / "trim.json"
        self.data.write_text(json.dumps({"allVideosTitle": "T", "videos": [{
            "filename": "a.mp4", "customName": "Clip", "trimStart": 0, "trimStop": 2,
            "videoWidth": 1280, "videoHeight": 720,
        }]}), encoding="utf-8")

        env = mock.patch.dict(os.environ, {
            "CUTTER_INPUT_DIR": str(self.root / "in"),
            "CUTTER_OUTPUT_DIR": str(self.root / "out"),
        })
        env.start()
        self.addCleanup(env.stop)
        self.calls: list = []

    def test_runs_variant(self) -> None:
        with mock.patch.object(utils, "_run", side_effect=fake_runner(self.calls)):
            code = run_pipeline.main(["vertical", "--data", str(self.data), "--no-screenshots"])
        self.assertEqual(code, 0)
        self.assertTrue((self.root / "out" / "Clip.mp4").exists())
        self.assertFalse((self.root / "out" / "Clip.jpg").exists())

    def test_flags_map_to_options(self) -> None:
        track = self.root / "track.mp3"
        with mock.patch.object(run_pipeline, "run_pipeline", mock.AsyncMock(return_value=PipelineResult())) as run:
            code = run_pipeline.main([
                "zoom_out", "--data", str(self.data), "--no-vertical", "--no-screenshots", "--remove-sources",
                "--overlay-preview", "--music", str(track), "--suffix", " #cut",
            ])
        self.assertEqual(code, 0)
        opts = run.call_args.args[2].options
        self.assertFalse(opts.produce_vertical)
        self.assertFalse(opts.produce_screenshots)
        self.assertTrue(opts.remove_source_files)
        self.assertTrue(opts.overlay_preview)
        self.assertEqual(opts.music_path, track)
        self.assertEqual(opts.vertical_suffix, " #cut")

    def test_failure_returns_nonzero(self) -> None:
        with mock.patch.object(utils, "_run", mock.AsyncMock(return_value=(1, "bad"))):
            code = run_pipeline.main(["trim", "--data", str(self.data)])
        self.assertEqual(code, 1)

    def test_unknown_variant_rejected(self) -> None:
        with self.assertRaises(SystemExit):
            run_pipeline.main(["spin"])


if __name__ == "__main__":
    unittest.main()
