"""End-to-end tests for WorkflowJobClient against a scripted engine."""

import json

import pytest
import requests

from comfy_media import (
    ConnectivityError,
    ExecutionError,
    JpegFormat,
    PngFormat,
    SubmissionError,
    WavFormat,
    WorkflowJobClient,
    WorkflowTimeoutError,
)
from comfy_media.client import enumerate_artifacts, parse_workflow
from comfy_media.schemas import NodeOutput

from conftest import FakeEngine, history_completed, history_pending, make_image_bytes

WORKFLOW = json.dumps({"1": {"class_type": "KSampler", "inputs": {"seed": 5}}})


def make_client(engine, clock, **kwargs):
    return WorkflowJobClient(engine, sleep=clock.sleep, clock=clock, **kwargs)


def image_entry(name, kind="output", subfolder=""):
    return {"filename": name, "subfolder": subfolder, "type": kind}


class TestEndToEnd:
    def test_png_scenario(self, clock, png_bytes):
        outputs = {"9": {"images": [image_entry("out.png")]}}
        engine = FakeEngine(
            prompt_reply={"prompt_id": "abc", "number": 1},
            history=[
                history_pending("abc"),
                history_pending("abc"),
                history_completed("abc", outputs),
            ],
            files={"out.png": png_bytes},
        )

        records = make_client(engine, clock).run(WORKFLOW, PngFormat(), timeout_minutes=1)

        assert len(records) == 1
        assert records[0].filename == "out.png"
        assert records[0].mime_type == "image/png"
        assert records[0].ok
        assert engine.posted == [{"prompt": json.loads(WORKFLOW)}]
        assert [path for _, path, _ in engine.calls] == [
            "/system_stats",
            "/prompt",
            "/history/abc",
            "/history/abc",
            "/history/abc",
            "/view",
        ]
        # grace delay, then one interval per poll
        assert clock.sleeps == [5.0, 1.0, 1.0, 1.0]

    def test_execute_returns_job(self, clock, png_bytes):
        engine = FakeEngine(
            history=[history_completed("abc", {"9": {"images": [image_entry("out.png")]}})],
            files={"out.png": png_bytes},
        )
        result = make_client(engine, clock).execute(WORKFLOW, JpegFormat(quality=70), 1)
        assert result.job.id == "abc"
        assert result.job.timeout_minutes == 1
        assert result.records[0].mime_type == "image/jpeg"
        assert result.failures == []

    def test_mapping_workflow_accepted(self, clock, png_bytes):
        engine = FakeEngine(
            history=[history_completed("abc", {"9": {"images": [image_entry("out.png")]}})],
            files={"out.png": png_bytes},
        )
        make_client(engine, clock).run({"1": {"inputs": {}}}, PngFormat(), 1)
        assert engine.posted == [{"prompt": {"1": {"inputs": {}}}}]


class TestFatalErrors:
    @pytest.mark.parametrize("workflow", ["{not json", "", "[1, 2]", "42"])
    def test_malformed_workflow_never_polls(self, clock, workflow):
        engine = FakeEngine()
        with pytest.raises(SubmissionError) as excinfo:
            make_client(engine, clock).run(workflow, PngFormat(), 1)
        assert excinfo.value.cause == SubmissionError.MALFORMED_WORKFLOW
        assert engine.paths("/history/") == []
        assert engine.posted == []

    @pytest.mark.parametrize("reply", [{}, {"prompt_id": ""}, {"prompt_id": None}, ["x"]])
    def test_missing_prompt_id(self, clock, reply):
        engine = FakeEngine(prompt_reply=reply)
        with pytest.raises(SubmissionError) as excinfo:
            make_client(engine, clock).run(WORKFLOW, PngFormat(), 1)
        assert excinfo.value.cause == SubmissionError.MISSING_JOB_ID
        assert engine.paths("/history/") == []

    def test_submission_transport_failure(self, clock):
        engine = FakeEngine(prompt_error=requests.HTTPError("400 Client Error: Bad Request"))
        with pytest.raises(SubmissionError) as excinfo:
            make_client(engine, clock).run(WORKFLOW, PngFormat(), 1)
        assert excinfo.value.cause == SubmissionError.REQUEST_FAILED

    def test_non_json_submission_reply(self, clock):
        engine = FakeEngine(prompt_error=requests.JSONDecodeError("Expecting value", "<html>", 0))
        with pytest.raises(SubmissionError) as excinfo:
            make_client(engine, clock).run(WORKFLOW, PngFormat(), 1)
        assert excinfo.value.cause == SubmissionError.REQUEST_FAILED
        assert engine.paths("/history/") == []

    def test_connectivity_failure_stops_before_submission(self, clock):
        engine = FakeEngine(system_stats_error=requests.ConnectionError("refused"))
        with pytest.raises(ConnectivityError):
            make_client(engine, clock).run(WORKFLOW, PngFormat(), 1)
        assert engine.posted == []
        assert engine.paths() == ["/system_stats"]

    def test_engine_error_status(self, clock):
        engine = FakeEngine(history=[history_completed("abc", {"9": {}}, status_str="error")])
        with pytest.raises(ExecutionError) as excinfo:
            make_client(engine, clock).run(WORKFLOW, PngFormat(), 1)
        assert excinfo.value.cause == ExecutionError.ENGINE_ERROR
        assert engine.paths("/view") == []

    @pytest.mark.parametrize("outputs", [{}, None])
    def test_no_outputs(self, clock, outputs):
        engine = FakeEngine(history=[history_completed("abc", outputs)])
        with pytest.raises(ExecutionError) as excinfo:
            make_client(engine, clock).run(WORKFLOW, PngFormat(), 1)
        assert excinfo.value.cause == ExecutionError.NO_OUTPUTS

    def test_timeout(self, clock):
        engine = FakeEngine(history=[history_pending("abc")])
        with pytest.raises(WorkflowTimeoutError):
            make_client(engine, clock).run(WORKFLOW, PngFormat(), 1)
        assert 0 < len(engine.paths("/history/")) <= 60


class TestArtifactFanOut:
    def test_partial_failures_keep_order_and_count(self, clock):
        names = [f"img_{i}.png" for i in range(6)]
        failing = {"img_1.png", "img_4.png"}
        files = {
            name: (requests.ConnectionError(f"{name} unavailable") if name in failing else make_image_bytes(seed=i))
            for i, name in enumerate(names)
        }
        # Earlier files finish last so completion order differs from input order.
        delays = {name: 0.02 * (len(names) - i) for i, name in enumerate(names)}
        outputs = {
            "3": {"images": [image_entry(n) for n in names[:3]]},
            "7": {"images": [image_entry(n, kind="temp") for n in names[3:]]},
        }
        engine = FakeEngine(history=[history_completed("abc", outputs)], files=files, file_delays=delays)

        records = make_client(engine, clock, max_workers=6).run(WORKFLOW, JpegFormat(quality=60), 1)

        assert [r.filename for r in records] == names
        for record in records:
            if record.filename in failing:
                assert record.error == f"{record.filename} unavailable"
            else:
                assert record.ok and record.data

    def test_mixed_media_under_wav(self, clock, wav_bytes, png_bytes):
        outputs = {
            "5": {
                "images": [image_entry("preview.png")],
                "audios": [image_entry("song.wav")],
            }
        }
        engine = FakeEngine(
            history=[history_completed("abc", outputs)],
            files={"preview.png": png_bytes, "song.wav": wav_bytes},
        )
        records = make_client(engine, clock).run(WORKFLOW, WavFormat(), 1)

        assert [r.filename for r in records] == ["preview.png", "song.wav"]
        assert records[0].error == "only jpeg, png and wav are supported"
        assert records[1].content == wav_bytes
        assert records[1].mime_type == "audio/wav"

    def test_input_kind_refs_dropped(self, clock, png_bytes):
        outputs = {
            "1": {"images": [image_entry("src.png", kind="input"), image_entry("out.png")]},
        }
        engine = FakeEngine(history=[history_completed("abc", outputs)], files={"out.png": png_bytes})
        records = make_client(engine, clock).run(WORKFLOW, PngFormat(), 1)
        assert [r.filename for r in records] == ["out.png"]

    def test_unexpected_download_error_keeps_count(self, clock, png_bytes):
        outputs = {"9": {"images": [image_entry("a.png"), image_entry("b.png")]}}
        engine = FakeEngine(
            history=[history_completed("abc", outputs)],
            files={"a.png": png_bytes, "b.png": ConnectionResetError("peer reset")},
        )
        records = make_client(engine, clock).run(WORKFLOW, PngFormat(), 1)

        assert [r.filename for r in records] == ["a.png", "b.png"]
        assert records[0].ok
        assert records[1].error == "peer reset"


def test_enumerate_artifacts_preserves_engine_order():
    outputs = {
        "20": NodeOutput.model_validate({"audios": [image_entry("b.wav")], "images": [image_entry("a.png")]}),
        "4": NodeOutput.model_validate({"images": [image_entry("c.png", kind="temp")]}),
    }
    assert [ref.filename for ref in enumerate_artifacts(outputs)] == ["a.png", "b.wav", "c.png"]


def test_parse_workflow_bytes():
    assert parse_workflow(b'{"1": {}}') == {"1": {}}
