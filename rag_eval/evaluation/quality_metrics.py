"""
Core answer-quality metrics: faithfulness, answer relevancy, context
precision, context recall, answer correctness.

Judge-backed metrics take an optional judge; when it is missing or returns
nothing usable, a deterministic lexical estimate is used instead.

Edge-case policies (never raise):
  - Answer without checkable claims -> faithfulness 1.0
  - Claims but no contexts -> faithfulness 0.0
  - No ground truth -> context precision / recall / correctness None
  - Ground truth but no contexts -> context precision / recall 0.0
"""

import logging
from typing import List, Optional

from rag_eval.evaluation.generation_metrics import bow_cosine, f1_token, keyword_overlap
from rag_eval.generation.hallucination_detector import (
    SUPPORTED,
    HallucinationDetector,
    extract_claims,
)

logger = logging.getLogger(__name__)

SEMANTIC_WEIGHT = 0.3
FACTUAL_WEIGHT = 0.7

CONTEXT_RELEVANCE_THRESHOLD = 0.3
STATEMENT_SUPPORT_THRESHOLD = 0.5


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


def text_similarity(text_a: str, text_b: str, embedder=None) -> float:
    """Embedding cosine when an embedder is usable, else bag-of-words cosine."""
    if not text_a or not text_b:
        return 0.0
    if embedder is not None:
        try:
            sim = embedder.similarity(text_a, text_b)
        except Exception as e:
            logger.warning("Embedding similarity failed, using lexical cosine: %s", e)
            sim = None
        if sim is not None:
            return _clamp(sim)
    return _clamp(bow_cosine(text_a, text_b))


def faithfulness(
    answer: str,
    contexts: List[str],
    detector: Optional[HallucinationDetector] = None,
) -> float:
    """Fraction of answer claims entailed by at least one context passage."""
    claims = extract_claims(answer)
    if not claims:
        return 1.0
    if not any(c and c.strip() for c in contexts):
        return 0.0

    detector = detector or HallucinationDetector(use_nli=False)
    details = detector.classify(claims, contexts)
    supported = sum(1 for d in details if d.status == SUPPORTED)
    return supported / len(details)


def answer_relevancy(question: str, answer: str, judge=None, embedder=None) -> float:
    """Similarity between the question and the question the answer implies."""
    if not question or not answer or not answer.strip():
        return 0.0
    implied = None
    if judge is not None:
        implied = judge.reconstruct_question(answer)
    return text_similarity(question, implied or answer, embedder)


def context_precision(
    question: str,
    contexts: List[str],
    ground_truth: Optional[str],
    judge=None,
) -> Optional[float]:
    """Fraction of retrieved contexts relevant to the ground truth."""
    if not ground_truth:
        return None
    if not contexts:
        return 0.0
    if judge is not None:
        score = judge.context_precision(question, ground_truth, contexts)
        if score is not None:
            return score
    relevant = sum(
        1 for c in contexts
        if keyword_overlap(ground_truth, c) >= CONTEXT_RELEVANCE_THRESHOLD
    )
    return relevant / len(contexts)


def context_recall(
    ground_truth: Optional[str],
    contexts: List[str],
    judge=None,
) -> Optional[float]:
    """Fraction of ground-truth statements supported by the retrieved contexts."""
    if not ground_truth:
        return None
    if not contexts:
        return 0.0
    if judge is not None:
        score = judge.context_recall(ground_truth, contexts)
        if score is not None:
            return score
    statements = extract_claims(ground_truth) or [ground_truth]
    covered = sum(
        1 for s in statements
        if max(keyword_overlap(s, c) for c in contexts) >= STATEMENT_SUPPORT_THRESHOLD
    )
    return covered / len(statements)


def answer_correctness(
    answer: str,
    ground_truth: Optional[str],
    judge=None,
    embedder=None,
) -> Optional[float]:
    """0.3 x semantic similarity + 0.7 x factual score against the ground truth."""
    if not ground_truth:
        return None
    if not answer or not answer.strip():
        return 0.0

    semantic = text_similarity(answer, ground_truth, embedder)
    factual = None
    if judge is not None:
        factual = judge.factual_correctness(answer, ground_truth)
    if factual is None:
        factual = f1_token(answer, ground_truth)

    return _clamp(SEMANTIC_WEIGHT * semantic + FACTUAL_WEIGHT * factual)
