"""
Latency Metrics for RAG evaluation.

Per-question stage timing (LatencyTracer):
  retrieval, reranking, generation, agent_reasoning, tool_call, total

Statistics over many questions: p50, p95, p99, mean, std, min, max.

Metric computation is never traced: it is an evaluation artifact,
not production latency.
"""

import logging
import math
import time
from typing import Dict, List, Optional

import numpy as np

logger = logging.getLogger(__name__)

STAGES = [
    "retrieval",
    "reranking",
    "generation",
    "agent_reasoning",
    "tool_call",
]


class LatencyTracer:
    """
    Stage-stamped timer.

    start() sets the origin, mark(stage) books the time since the previous
    mark (or start) under stage. Stages never marked report 0.0.
    """

    def __init__(self):
        self._origin: Optional[float] = None
        self._last: Optional[float] = None
        self._stages: Dict[str, float] = {}

    def start(self):
        self._origin = time.perf_counter()
        self._last = self._origin
        self._stages = {}

    def mark(self, stage: str) -> float:
        """Record elapsed ms since the previous mark. Returns the elapsed ms."""
        if self._last is None:
            self.start()
        now = time.perf_counter()
        elapsed = (now - self._last) * 1000
        self._last = now
        self._stages[stage] = self._stages.get(stage, 0.0) + elapsed
        return elapsed

    def record(self, stage: str, ms: float):
        """Book an externally measured duration (e.g. agent step timings)."""
        self._stages[stage] = self._stages.get(stage, 0.0) + max(0.0, float(ms or 0.0))

    def summary(self) -> Dict[str, float]:
        result = {stage: round(self._stages.get(stage, 0.0), 2) for stage in STAGES}
        for stage, ms in self._stages.items():
            if stage not in result:
                result[stage] = round(ms, 2)
        if self._origin is None:
            result["total"] = 0.0
        else:
            result["total"] = round((self._last - self._origin) * 1000, 2)
        return result


def tokens_per_second(tokens_output: Optional[int], generation_ms: float) -> Optional[float]:
    """Output tokens per second of generation; None when nothing was produced."""
    if not tokens_output or tokens_output <= 0 or generation_ms <= 0:
        return None
    return tokens_output / (generation_ms / 1000)


def compute_latency_stats(latencies: List[float]) -> Dict[str, float]:
    """Compute p50, p95, p99, mean, std, min, max for a list of latencies."""
    valid = [x for x in latencies if x is not None and not math.isnan(x)]
    if not valid:
        return {
            "p50": 0.0, "p95": 0.0, "p99": 0.0,
            "mean": 0.0, "std": 0.0, "min": 0.0, "max": 0.0,
            "count": 0,
        }

    arr = np.array(valid, dtype=float)

    # Filter outliers (>3 std dev from mean)
    if len(arr) > 10:
        mean, std = arr.mean(), arr.std()
        if std > 0:
            arr = arr[np.abs(arr - mean) <= 3 * std]

    return {
        "p50": float(np.percentile(arr, 50)),
        "p95": float(np.percentile(arr, 95)),
        "p99": float(np.percentile(arr, 99)),
        "mean": float(np.mean(arr)),
        "std": float(np.std(arr)),
        "min": float(np.min(arr)),
        "max": float(np.max(arr)),
        "count": len(arr),
    }


def latency_profile(vectors: List[dict]) -> Dict[str, Dict[str, float]]:
    """
    Stats per stage over a list of metric vectors (as dicts).

    Keys are the `<stage>_ms` fields of the metric vector.
    """
    profile = {}
    for stage in ["total"] + STAGES:
        key = f"{stage}_ms"
        profile[key] = compute_latency_stats(
            [v.get(key) for v in vectors if v.get(key) is not None]
        )
    return profile
