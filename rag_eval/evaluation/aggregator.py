"""
Aggregator - run-level and cross-run statistics over persisted questions.

Policies:
  - Means are taken per metric over the questions where that metric is
    non-null; validity is metric-specific, not run-specific
  - The mean of an empty valid set is 0.0 (aggregate absence of data is
    reported as 0, unlike the per-question null)
  - improvement = (rag - baseline) / baseline x 100; with baseline == 0 it
    is 100 when rag > 0, else 0

Everything here is read-only over the store, so repeated calls over
unchanged data give identical results.
"""

import logging
from typing import Dict, Iterable, List, Optional

from rag_eval.evaluation.latency_metrics import latency_profile
from rag_eval.storage.records import COMPLETED, BaselineMetrics, MetricVector

logger = logging.getLogger(__name__)

QUALITY_METRICS = [
    "faithfulness",
    "answer_relevancy",
    "context_precision",
    "context_recall",
    "answer_correctness",
    "academic_rigor",
    "citation_accuracy",
    "terminology_correctness",
    "hallucination_rate",
    "factual_consistency",
    "source_attribution",
    "contradiction_score",
    "ndcg",
    "mrr",
    "precision",
]

LATENCY_METRICS = [
    "total_ms",
    "retrieval_ms",
    "reranking_ms",
    "generation_ms",
    "agent_reasoning_ms",
    "tool_call_ms",
    "tokens_per_second",
]

BASELINE_METRICS = ["answer_relevancy", "answer_correctness", "hallucination_rate"]


def mean_valid(values: Iterable[Optional[float]]) -> float:
    """Mean over non-null values; 0.0 when there are none."""
    valid = [float(v) for v in values if v is not None]
    if not valid:
        return 0.0
    return sum(valid) / len(valid)


def improvement_pct(rag_value: float, baseline_value: float) -> float:
    """Relative improvement of rag over baseline, in percent."""
    if baseline_value == 0:
        return 100.0 if rag_value > 0 else 0.0
    return (rag_value - baseline_value) / baseline_value * 100


def aggregate_vectors(vectors: List[MetricVector]) -> Dict[str, float]:
    """Mean of every metric vector field over its valid values."""
    return {
        field: mean_valid(getattr(v, field) for v in vectors)
        for field in QUALITY_METRICS + LATENCY_METRICS
    }


def snapshot(vectors: List[MetricVector]) -> MetricVector:
    """Aggregate metric vector (means) for an ablation result."""
    return MetricVector(**aggregate_vectors(vectors))


def aggregate_baseline(baselines: List[BaselineMetrics]) -> Dict[str, float]:
    return {
        field: mean_valid(getattr(b, field) for b in baselines)
        for field in BASELINE_METRICS
    }


def summarize_run(store, run_id: str) -> dict:
    """
    Aggregate metrics, baseline comparison and counts for one run.

    Returns:
        Dict with keys run, rag, baseline, improvements, latency, summary.
    """
    run = store.get_run(run_id)
    questions = store.list_questions(run_id)
    evaluated = [q for q in questions if q.metrics is not None]

    rag = aggregate_vectors([q.metrics for q in evaluated])
    baseline = aggregate_baseline([q.baseline_metrics for q in evaluated if q.baseline_metrics])

    improvements = {
        "answer_relevancy": improvement_pct(rag["answer_relevancy"], baseline["answer_relevancy"]),
        "answer_correctness": improvement_pct(rag["answer_correctness"], baseline["answer_correctness"]),
        "hallucination_reduction": improvement_pct(
            1 - rag["hallucination_rate"], 1 - baseline["hallucination_rate"]
        ),
    }

    return {
        "run": run.model_dump(),
        "rag": rag,
        "baseline": baseline,
        "improvements": improvements,
        "latency": latency_profile([q.metrics.model_dump() for q in evaluated]),
        "summary": {
            "total_questions": len(questions),
            "evaluated_questions": len(evaluated),
            "failed_questions": sum(1 for q in questions if q.error),
            "rag_better_than_baseline": rag["answer_correctness"] > baseline["answer_correctness"],
        },
    }


def hallucination_summary(store) -> Dict[str, float]:
    """Hallucination-family means across every completed run."""
    vectors: List[MetricVector] = []
    baselines: List[BaselineMetrics] = []
    runs = store.list_runs(status=COMPLETED)
    for run in runs:
        for q in store.list_questions(run.id):
            if q.metrics is not None:
                vectors.append(q.metrics)
            if q.baseline_metrics is not None:
                baselines.append(q.baseline_metrics)

    logger.debug("Hallucination summary over %d runs, %d questions", len(runs), len(vectors))
    return {
        "runs": len(runs),
        "questions": len(vectors),
        "hallucination_rate": mean_valid(v.hallucination_rate for v in vectors),
        "factual_consistency": mean_valid(v.factual_consistency for v in vectors),
        "source_attribution": mean_valid(v.source_attribution for v in vectors),
        "contradiction_free": mean_valid(v.contradiction_score for v in vectors),
        "baseline_hallucination_rate": mean_valid(b.hallucination_rate for b in baselines),
    }
