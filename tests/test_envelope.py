# tests/test_envelope.py
"""Tests for the response metadata envelope and step metrics."""
from __future__ import annotations

import json
import time
from datetime import datetime

import pytest


class TestBuildEnvelope:
    """Test build_envelope() returns a well-formed metadata dict."""

    def test_returns_all_required_keys(self):
        from medimind.envelope import build_envelope

        env = build_envelope(document_type="prescription")
        assert set(env) == {
            "version",
            "pipeline",
            "document_type",
            "schema_version",
            "model",
            "model_temperature",
            "timestamp",
            "duration_s",
            "tokens",
            "steps",
            "normalization",
            "document",
        }

    def test_version_matches_health(self):
        from medimind.envelope import build_envelope, package_version
        from medimind.sdk import health

        assert build_envelope(document_type="chat")["version"] == package_version()
        assert health()["version"] == package_version()

    def test_default_values(self):
        from medimind.envelope import build_envelope

        env = build_envelope(document_type="chat")
        assert env["pipeline"] == "extraction"
        assert env["tokens"] == {"input": 0, "output": 0}
        assert env["steps"] == []
        assert env["normalization"] is None

    def test_timestamp_is_iso(self):
        from medimind.envelope import build_envelope

        env = build_envelope(document_type="chat")
        assert datetime.fromisoformat(env["timestamp"]).tzinfo is not None

    def test_json_serializable(self):
        from medimind.envelope import build_envelope

        env = build_envelope(
            document_type="prescription",
            schema_version="5",
            duration_s=1.2,
            tokens={"input": 10, "output": 5},
            normalization={"dropped_records": 1},
        )
        assert json.loads(json.dumps(env))["normalization"] == {"dropped_records": 1}


class TestMetrics:
    def test_track_step_records_duration_and_tokens(self):
        from medimind.metrics import PipelineMetrics, TokenTracker, track_step

        tracker = TokenTracker()
        metrics = PipelineMetrics()
        with track_step(metrics, "Invoke", tracker):
            tracker.add_usage("m", {"prompt_tokens": 12, "completion_tokens": 3})
            time.sleep(0.001)
        step = metrics.steps[0]
        assert step.name == "Invoke"
        assert step.input_tokens == 12
        assert step.total_tokens == 15
        assert metrics.total_duration_s > 0

    def test_step_recorded_on_exception(self):
        from medimind.metrics import PipelineMetrics, TokenTracker, track_step

        metrics = PipelineMetrics()
        with pytest.raises(RuntimeError):
            with track_step(metrics, "Invoke", TokenTracker()):
                raise RuntimeError("boom")
        assert [s.name for s in metrics.steps] == ["Invoke"]

    def test_to_dict(self):
        from medimind.metrics import PipelineMetrics, StepMetric

        metrics = PipelineMetrics(steps=[StepMetric("Compose", 0.5), StepMetric("Invoke", 1.0, 10, 2)])
        data = metrics.to_dict()
        assert data["total_duration_s"] == 1.5
        assert data["steps"][1]["output_tokens"] == 2
        assert metrics.total_input_tokens == 10

    def test_tokens_are_attributed_per_thread(self):
        import threading

        from medimind.metrics import PipelineMetrics, TokenTracker, track_step

        tracker = TokenTracker()
        metrics = PipelineMetrics()
        worker = threading.Thread(
            target=tracker.add_usage, args=("m", {"prompt_tokens": 100, "completion_tokens": 50})
        )
        with track_step(metrics, "Invoke", tracker):
            tracker.add_usage("m", {"prompt_tokens": 7, "completion_tokens": 1})
            worker.start()
            worker.join()
        assert (metrics.steps[0].input_tokens, metrics.steps[0].output_tokens) == (7, 1)
