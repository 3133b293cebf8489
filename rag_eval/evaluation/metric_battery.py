"""
Metric Battery - builds the full metric vector for one answer.

Each metric is computed in isolation: an exception in one leaves that field
None and is logged, the others still run. The vector is only returned when
the core-quality fields are populated (faithfulness and answer relevancy
always; precision, recall and correctness whenever ground truth exists).
Otherwise MetricError is raised and nothing should be persisted.
"""

import logging
from typing import Callable, Dict, List, Optional

from rag_eval.errors import MetricError
from rag_eval.evaluation import domain_metrics, hallucination_metrics, quality_metrics
from rag_eval.evaluation.latency_metrics import tokens_per_second
from rag_eval.evaluation.retrieval_metrics import mrr, ndcg_at_k, precision_at_k
from rag_eval.generation.hallucination_detector import HallucinationDetector
from rag_eval.storage.records import BaselineMetrics, MetricVector

logger = logging.getLogger(__name__)

GROUND_TRUTH_METRICS = ("context_precision", "context_recall", "answer_correctness")


def _isolated(name: str, fn: Callable, failures: List[str]) -> Optional[float]:
    try:
        value = fn()
    except Exception as e:
        logger.warning("Metric %s failed: %s", name, e)
        failures.append(name)
        return None
    return None if value is None else float(value)


def compute_metric_vector(
    question: str,
    answer: str,
    contexts: List[str],
    ground_truth: Optional[str] = None,
    retrieved_ids: Optional[List[str]] = None,
    relevant_ids: Optional[List[str]] = None,
    domain: Optional[str] = "university",
    latency: Optional[Dict[str, float]] = None,
    tokens_output: Optional[int] = None,
    judge=None,
    embedder=None,
    detector: Optional[HallucinationDetector] = None,
) -> MetricVector:
    """
    Compute every metric for a RAG answer.

    Args:
        latency: LatencyTracer.summary() output for the answer's pipeline run
        tokens_output: output tokens reported by the generation call

    Raises:
        MetricError: a core-quality metric could not be computed
    """
    detector = detector or HallucinationDetector(use_nli=False)
    retrieved_ids = retrieved_ids or []
    failures: List[str] = []

    metrics = {
        # Core quality
        "faithfulness": lambda: quality_metrics.faithfulness(answer, contexts, detector),
        "answer_relevancy": lambda: quality_metrics.answer_relevancy(question, answer, judge, embedder),
        "context_precision": lambda: quality_metrics.context_precision(question, contexts, ground_truth, judge),
        "context_recall": lambda: quality_metrics.context_recall(ground_truth, contexts, judge),
        "answer_correctness": lambda: quality_metrics.answer_correctness(answer, ground_truth, judge, embedder),
        # Domain quality
        "academic_rigor": lambda: domain_metrics.academic_rigor(answer, contexts, domain, judge),
        "citation_accuracy": lambda: domain_metrics.citation_accuracy(answer, contexts, domain, judge),
        "terminology_correctness": lambda: domain_metrics.terminology_correctness(answer, contexts, domain, judge),
        # Hallucination
        "hallucination_rate": lambda: hallucination_metrics.hallucination_rate(answer, contexts, detector, judge),
        "factual_consistency": lambda: hallucination_metrics.factual_consistency(answer, contexts, detector),
        "source_attribution": lambda: hallucination_metrics.source_attribution(answer, contexts),
        "contradiction_score": lambda: hallucination_metrics.contradiction_score(answer, contexts, detector),
        # Retrieval ranking
        "ndcg": lambda: ndcg_at_k(retrieved_ids, relevant_ids),
        "mrr": lambda: mrr(retrieved_ids, relevant_ids),
        "precision": lambda: precision_at_k(retrieved_ids, relevant_ids),
    }
    values = {name: _isolated(name, fn, failures) for name, fn in metrics.items()}

    missing = [m for m in ("faithfulness", "answer_relevancy") if values[m] is None]
    if ground_truth:
        missing += [m for m in GROUND_TRUTH_METRICS if values[m] is None]
    if missing:
        raise MetricError(f"Core metrics unavailable: {', '.join(missing)}")

    latency = latency or {}
    generation_ms = latency.get("generation", 0.0)
    vector = MetricVector(
        **values,
        total_ms=latency.get("total", 0.0),
        retrieval_ms=latency.get("retrieval", 0.0),
        reranking_ms=latency.get("reranking", 0.0),
        generation_ms=generation_ms,
        agent_reasoning_ms=latency.get("agent_reasoning", 0.0),
        tool_call_ms=latency.get("tool_call", 0.0),
        tokens_per_second=tokens_per_second(tokens_output, generation_ms),
    )
    if failures:
        logger.info("Metric vector computed with %d failed optional metrics: %s",
                    len(failures), ", ".join(failures))
    return vector


def compute_baseline_metrics(
    question: str,
    answer: str,
    ground_truth: Optional[str] = None,
    judge=None,
    embedder=None,
    detector: Optional[HallucinationDetector] = None,
) -> BaselineMetrics:
    """Relevancy, correctness and hallucination rate for an ungrounded answer."""
    failures: List[str] = []
    return BaselineMetrics(
        answer_relevancy=_isolated(
            "baseline_answer_relevancy",
            lambda: quality_metrics.answer_relevancy(question, answer, judge, embedder),
            failures,
        ),
        answer_correctness=_isolated(
            "baseline_answer_correctness",
            lambda: quality_metrics.answer_correctness(answer, ground_truth, judge, embedder),
            failures,
        ),
        hallucination_rate=_isolated(
            "baseline_hallucination_rate",
            lambda: hallucination_metrics.hallucination_rate(answer, [], detector, judge),
            failures,
        ),
    )
