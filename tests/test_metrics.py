"""Metric edge cases: retrieval ranking, lexical helpers, quality, hallucination, domain."""

import math

import pytest

from rag_eval.evaluation import domain_metrics, hallucination_metrics, quality_metrics
from rag_eval.evaluation.generation_metrics import bow_cosine, f1_token, keyword_overlap
from rag_eval.evaluation.metric_battery import compute_baseline_metrics, compute_metric_vector
from rag_eval.evaluation.retrieval_metrics import mrr, ndcg_at_k, precision_at_k
from rag_eval.errors import MetricError
from rag_eval.generation.hallucination_detector import (
    CONTRADICTED,
    SUPPORTED,
    UNSUPPORTED,
    HallucinationDetector,
    extract_claims,
)

CONTEXT = (
    "Qualitative research collects non-numeric data through interviews, "
    "observation and document analysis."
)


# ============================================================
# Retrieval ranking
# ============================================================

def test_retrieval_metrics_none_without_labels():
    assert ndcg_at_k(["c1", "c2"], None) is None
    assert mrr(["c1", "c2"], None) is None
    assert precision_at_k(["c1", "c2"], None) is None


def test_retrieval_metrics_values():
    retrieved = ["c3", "c1", "c2"]
    assert precision_at_k(retrieved, ["c1"]) == pytest.approx(1 / 3)
    assert mrr(retrieved, ["c1"]) == pytest.approx(0.5)
    assert ndcg_at_k(retrieved, ["c1"]) == pytest.approx(1 / math.log2(3))
    assert ndcg_at_k(["c1", "c2"], ["c1", "c2"]) == pytest.approx(1.0)


def test_retrieval_metrics_empty_retrieval_is_zero():
    assert precision_at_k([], ["c1"]) == 0.0
    assert mrr([], ["c1"]) == 0.0
    assert ndcg_at_k([], ["c1"]) == 0.0


# ============================================================
# Lexical helpers
# ============================================================

def test_lexical_helpers_empty_inputs():
    assert f1_token("", "text") == 0.0
    assert bow_cosine("text", "") == 0.0
    assert keyword_overlap("the of and", CONTEXT) == 0.0


def test_identical_texts_score_one():
    assert f1_token(CONTEXT, CONTEXT) == pytest.approx(1.0)
    assert bow_cosine(CONTEXT, CONTEXT) == pytest.approx(1.0)


# ============================================================
# Claims and detector
# ============================================================

def test_extract_claims_skips_short_questions_and_citations():
    answer = (
        "Here is the answer:\n"
        "- Qualitative research uses interviews with participants [Source 1].\n"
        "Is this clear?\n"
        "Yes."
    )
    assert extract_claims(answer) == ["Qualitative research uses interviews with participants ."]


def test_keyword_detector_statuses(detector):
    supported, contradicted, unsupported = detector.classify(
        [
            "Qualitative research collects data through interviews.",
            "Qualitative research never collects data through interviews.",
            "Quantum computers factor large primes quickly.",
        ],
        [CONTEXT],
        ["c1"],
    )
    assert supported.status == SUPPORTED
    assert supported.evidence_chunk_id == "c1"
    assert contradicted.status == CONTRADICTED
    assert unsupported.status == UNSUPPORTED


def test_detector_without_contexts_marks_everything_unsupported(detector):
    details = detector.classify(["Qualitative research collects interview data."], [])
    assert [d.status for d in details] == [UNSUPPORTED]


def test_detector_reports_fallback_method(detector):
    assert detector.method == "keyword_fallback"


# ============================================================
# Core quality
# ============================================================

def test_faithfulness_edge_cases(detector):
    assert quality_metrics.faithfulness("Yes.", [CONTEXT], detector) == 1.0
    assert quality_metrics.faithfulness(
        "Qualitative research collects data through interviews.", [], detector
    ) == 0.0
    assert quality_metrics.faithfulness(
        "Qualitative research collects data through interviews.", [CONTEXT], detector
    ) == 1.0


def test_answer_relevancy_empty_answer_is_zero(judge):
    assert quality_metrics.answer_relevancy("What is qualitative research?", "", judge) == 0.0
    assert quality_metrics.answer_relevancy("What is qualitative research?", "   ") == 0.0


def test_ground_truth_metrics_none_without_ground_truth(judge):
    assert quality_metrics.context_precision("q", [CONTEXT], None, judge) is None
    assert quality_metrics.context_recall(None, [CONTEXT], judge) is None
    assert quality_metrics.answer_correctness("answer", None, judge) is None


def test_ground_truth_metrics_zero_without_contexts(judge):
    assert quality_metrics.context_precision("q", [], CONTEXT, judge) == 0.0
    assert quality_metrics.context_recall(CONTEXT, [], judge) == 0.0


def test_context_metrics_use_judge_then_lexical_fallback(judge):
    assert quality_metrics.context_precision("q", [CONTEXT], CONTEXT, judge) == 0.9
    assert quality_metrics.context_recall(CONTEXT, [CONTEXT], judge) == 0.7
    assert quality_metrics.context_precision("q", [CONTEXT, "Unrelated cooking recipe."], CONTEXT) == 0.5
    assert quality_metrics.context_recall(CONTEXT, [CONTEXT]) == 1.0


def test_answer_correctness_weights(judge):
    # identical text: semantic 1.0, factual from judge 0.8
    assert quality_metrics.answer_correctness(CONTEXT, CONTEXT, judge) == pytest.approx(0.3 + 0.7 * 0.8)
    assert quality_metrics.answer_correctness(CONTEXT, CONTEXT) == pytest.approx(1.0)
    assert quality_metrics.answer_correctness("", CONTEXT, judge) == 0.0


# ============================================================
# Hallucination family
# ============================================================

def test_hallucination_rate_edge_cases(detector, judge):
    assert hallucination_metrics.hallucination_rate("", [CONTEXT], detector) == 1.0
    assert hallucination_metrics.hallucination_rate("Yes.", [CONTEXT], detector) == 0.0
    answer = "Qualitative research collects data through interviews. Quantum computers factor large primes quickly."
    assert hallucination_metrics.hallucination_rate(answer, [CONTEXT], detector) == 0.5


def test_hallucination_rate_without_contexts_is_finite(detector, judge):
    answer = "Qualitative research was formalised in 1967 by sociologists. It relies on interviews with people."
    with_judge = hallucination_metrics.hallucination_rate(answer, [], detector, judge)
    without_judge = hallucination_metrics.hallucination_rate(answer, [], detector)
    assert with_judge == 0.4
    assert without_judge == 0.5
    assert not math.isnan(without_judge)


def test_factual_consistency(detector):
    assert hallucination_metrics.factual_consistency("Anything at all here.", [], detector) is None
    answer = "Qualitative research collects data through interviews. Quantum computers factor large primes quickly."
    assert hallucination_metrics.factual_consistency(answer, [CONTEXT], detector) == pytest.approx(0.75)


def test_source_attribution():
    contexts = [CONTEXT, "Deductive research tests hypotheses from theory."]
    assert hallucination_metrics.source_attribution("No citations in this answer.", contexts) is None
    answer = (
        "Qualitative research collects data through interviews [Source 1]. "
        "Deductive research tests hypotheses [Source 2]. "
        "Survey weighting corrects sampling bias [Source 5]."
    )
    assert hallucination_metrics.source_attribution(answer, contexts) == pytest.approx(2 / 3)


def test_contradiction_score(detector):
    assert hallucination_metrics.contradiction_score("Yes.", [CONTEXT], detector) == 1.0
    answer = (
        "Qualitative research collects data through interviews. "
        "Qualitative research never collects data through interviews."
    )
    assert hallucination_metrics.contradiction_score(answer, [], detector) == 0.0


# ============================================================
# Domain rubrics
# ============================================================

def test_domain_metrics_none_without_judge():
    assert domain_metrics.academic_rigor("An answer about research.", [CONTEXT]) is None


def test_domain_metrics_with_judge(judge):
    answer = "An answer about research."
    assert domain_metrics.academic_rigor(answer, [CONTEXT], "university", judge) == 0.75
    assert domain_metrics.citation_accuracy(answer, [CONTEXT], "university", judge) == 0.75
    assert domain_metrics.terminology_correctness(answer, [CONTEXT], "general", judge) == 0.75
    assert domain_metrics.citation_accuracy("An answer about research.", [], "university", judge) is None
    assert domain_metrics.academic_rigor("", [CONTEXT], "university", judge) == 0.0


def test_unknown_domain_uses_general_rubric():
    assert domain_metrics.get_rubric("astrophysics") == domain_metrics.get_rubric("general")


# ============================================================
# Metric battery
# ============================================================

def test_metric_vector_full(judge, detector):
    vector = compute_metric_vector(
        question="What data does qualitative research collect?",
        answer="Qualitative research collects data through interviews [Source 1].",
        contexts=[CONTEXT],
        ground_truth=CONTEXT,
        retrieved_ids=["c1"],
        relevant_ids=["c1"],
        latency={"retrieval": 10.0, "generation": 500.0, "total": 520.0},
        tokens_output=50,
        judge=judge,
        detector=detector,
    )
    assert vector.faithfulness == 1.0
    assert vector.context_precision == 0.9
    assert vector.source_attribution == 1.0
    assert vector.mrr == 1.0
    assert vector.total_ms == 520.0
    assert vector.tokens_per_second == pytest.approx(100.0)


def test_metric_vector_without_labels_leaves_ranking_none(detector):
    vector = compute_metric_vector(
        question="What data does qualitative research collect?",
        answer="Qualitative research collects data through interviews.",
        contexts=[CONTEXT],
        detector=detector,
    )
    assert vector.ndcg is None
    assert vector.answer_correctness is None
    assert vector.academic_rigor is None


def test_metric_vector_isolates_optional_failures(judge, detector):
    class BrokenRubricJudge(type(judge)):
        def rubric_score(self, *args, **kwargs):
            raise RuntimeError("rubric exploded")

    vector = compute_metric_vector(
        question="What data does qualitative research collect?",
        answer="Qualitative research collects data through interviews.",
        contexts=[CONTEXT],
        ground_truth=CONTEXT,
        judge=BrokenRubricJudge(),
        detector=detector,
    )
    assert vector.academic_rigor is None
    assert vector.answer_correctness is not None


def test_metric_vector_raises_when_core_metric_fails(judge, detector):
    class BrokenDetector(HallucinationDetector):
        def classify(self, claims, contexts, chunk_ids=None):
            raise RuntimeError("detector exploded")

    with pytest.raises(MetricError):
        compute_metric_vector(
            question="q",
            answer="Qualitative research collects data through interviews.",
            contexts=[CONTEXT],
            detector=BrokenDetector(use_nli=False),
        )


def test_baseline_metrics_with_zero_contexts(detector):
    baseline = compute_baseline_metrics(
        question="What is qualitative research?",
        answer="Qualitative research was formalised in 1967 by sociologists.",
        ground_truth=CONTEXT,
        detector=detector,
    )
    assert baseline.hallucination_rate == 1.0
    assert baseline.answer_correctness is not None
    assert not math.isnan(baseline.answer_relevancy)
