"""Per-step timing and token accounting for extraction runs.

``TokenTracker`` plugs into ``dspy.settings.usage_tracker``.  DSPy reports
usage on the thread that made the completion call, so the tracker keeps a
separate tally per thread; ``run_batch`` workers therefore never see each
other's tokens in their step metrics.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from typing import Any, Generator


@dataclass
class StepMetric:
    name: str
    duration_s: float
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class PipelineMetrics:
    """Steps of one request, in the order they ran."""

    steps: list[StepMetric] = field(default_factory=list)

    @property
    def total_duration_s(self) -> float:
        return sum(step.duration_s for step in self.steps)

    @property
    def total_input_tokens(self) -> int:
        return sum(step.input_tokens for step in self.steps)

    @property
    def total_output_tokens(self) -> int:
        return sum(step.output_tokens for step in self.steps)

    def to_dict(self) -> dict[str, Any]:
        steps = []
        for step in self.steps:
            entry = asdict(step)
            entry["duration_s"] = round(step.duration_s, 4)
            steps.append(entry)
        return {"total_duration_s": round(self.total_duration_s, 4), "steps": steps}


class TokenTracker:
    """Thread-aware usage sink with DSPy's ``add_usage(model, usage)`` signature."""

    def __init__(self) -> None:
        self._totals: dict[int, list[int]] = {}
        self._lock = threading.Lock()

    def add_usage(self, model: str, usage: dict) -> None:  # noqa: ARG002
        usage = usage or {}
        key = threading.get_ident()
        with self._lock:
            tally = self._totals.setdefault(key, [0, 0])
            tally[0] += int(usage.get("prompt_tokens") or 0)
            tally[1] += int(usage.get("completion_tokens") or 0)

    def current(self) -> tuple[int, int]:
        """``(input, output)`` tokens reported so far on the calling thread."""
        with self._lock:
            tally = self._totals.get(threading.get_ident(), (0, 0))
            return tally[0], tally[1]


_tracker = TokenTracker()


def get_tracker() -> TokenTracker:
    return _tracker


def set_tracker(tracker: TokenTracker) -> None:
    global _tracker
    _tracker = tracker


@contextmanager
def track_step(
    metrics: PipelineMetrics,
    step_name: str,
    tracker: TokenTracker | None = None,
) -> Generator[None, None, None]:
    """Append a :class:`StepMetric` for the wrapped block, even if it raises."""
    tracker = tracker or get_tracker()
    before_in, before_out = tracker.current()
    started = time.perf_counter()
    try:
        yield
    finally:
        after_in, after_out = tracker.current()
        metrics.steps.append(
            StepMetric(
                step_name,
                time.perf_counter() - started,
                after_in - before_in,
                after_out - before_out,
            )
        )
