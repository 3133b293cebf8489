"""
Hallucination-family metrics.

  - hallucination_rate: fraction of claims not supported by any context
  - factual_consistency: NLI-style mean (entailed 1.0, neutral 0.5, contradicted 0.0)
  - source_attribution: fraction of [Source N] citations that point at a
    supplied chunk supporting the citing sentence
  - contradiction_score: contradiction freedom, 1.0 = no contradictions

Denominator policy for hallucination_rate without contexts (baseline
answers): the judge's ungrounded estimate when available, otherwise the
fraction of claims carrying unverifiable specifics (numbers, years,
percentages, author citations, quoted titles). Never divides by zero.
"""

import logging
import re
from itertools import combinations
from typing import List, Optional

from rag_eval.evaluation.generation_metrics import content_words, keyword_overlap
from rag_eval.generation.hallucination_detector import (
    CONTRADICTED,
    SUPPORTED,
    HallucinationDetector,
    extract_claims,
    has_negation,
)

logger = logging.getLogger(__name__)

CONSISTENCY_SCORES = {"supported": 1.0, "unsupported": 0.5, "contradicted": 0.0}

CITATION_RE = re.compile(r"\[Source\s*(\d+(?:\s*,\s*\d+)*)\]", re.IGNORECASE)
ATTRIBUTION_THRESHOLD = 0.3

# Near-duplicate claim pairs with flipped negation count as self-contradiction
SELF_CONTRADICTION_SIMILARITY = 0.6

SPECIFICS_RE = re.compile(
    r"\b(1[5-9]|20)\d{2}\b"          # years
    r"|\d+(?:[.,]\d+)?\s*%"          # percentages
    r"|\b\d+(?:[.,]\d+)?\b"          # other figures
    r"|\bet al\b"                    # author citations
    r"|\"[^\"]{3,}\"",               # quoted titles
    re.IGNORECASE,
)


def _has_contexts(contexts: List[str]) -> bool:
    return any(c and c.strip() for c in contexts or [])


def _detector(detector: Optional[HallucinationDetector]) -> HallucinationDetector:
    return detector or HallucinationDetector(use_nli=False)


def intrinsic_hallucination_rate(claims: List[str]) -> float:
    """Fraction of claims with specifics that cannot be checked without sources."""
    if not claims:
        return 0.0
    flagged = sum(1 for c in claims if SPECIFICS_RE.search(c))
    return flagged / len(claims)


def hallucination_rate(
    answer: str,
    contexts: List[str],
    detector: Optional[HallucinationDetector] = None,
    judge=None,
) -> float:
    """Fraction of answer claims not supported by any supplied context."""
    if not answer or not answer.strip():
        return 1.0
    claims = extract_claims(answer)
    if not claims:
        return 0.0

    if not _has_contexts(contexts):
        if judge is not None:
            estimate = judge.ungrounded_hallucination(answer)
            if estimate is not None:
                return estimate
        return intrinsic_hallucination_rate(claims)

    details = _detector(detector).classify(claims, contexts)
    unsupported = sum(1 for d in details if d.status != SUPPORTED)
    return unsupported / len(details)


def factual_consistency(
    answer: str,
    contexts: List[str],
    detector: Optional[HallucinationDetector] = None,
) -> Optional[float]:
    """Mean entailment score of the answer's claims against the contexts."""
    if not _has_contexts(contexts):
        return None
    claims = extract_claims(answer)
    if not claims:
        return 1.0
    details = _detector(detector).classify(claims, contexts)
    return sum(CONSISTENCY_SCORES[d.status] for d in details) / len(details)


def extract_citations(answer: str) -> List[tuple]:
    """(source number, citing sentence without citations) per citation."""
    citations = []
    for sentence in re.split(r"(?<=[.!?])\s+|\n+", answer or ""):
        numbers = []
        for match in CITATION_RE.finditer(sentence):
            numbers.extend(int(n) for n in re.findall(r"\d+", match.group(1)))
        if not numbers:
            continue
        bare = CITATION_RE.sub("", sentence).strip()
        citations.extend((n, bare) for n in numbers)
    return citations


def source_attribution(answer: str, contexts: List[str]) -> Optional[float]:
    """Fraction of citations mapping to a supplied chunk that supports the sentence."""
    citations = extract_citations(answer)
    if not citations:
        return None
    valid = 0
    for number, sentence in citations:
        if not 1 <= number <= len(contexts):
            continue
        if not content_words(sentence) or keyword_overlap(sentence, contexts[number - 1]) >= ATTRIBUTION_THRESHOLD:
            valid += 1
    return valid / len(citations)


def _self_contradictions(claims: List[str]) -> set:
    involved = set()
    words = [content_words(c) for c in claims]
    for i, j in combinations(range(len(claims)), 2):
        if not words[i] or not words[j]:
            continue
        jaccard = len(words[i] & words[j]) / len(words[i] | words[j])
        if jaccard >= SELF_CONTRADICTION_SIMILARITY and has_negation(claims[i]) != has_negation(claims[j]):
            involved.update((i, j))
    return involved


def contradiction_score(
    answer: str,
    contexts: List[str],
    detector: Optional[HallucinationDetector] = None,
) -> float:
    """1 - fraction of claims that contradict another claim or a context."""
    claims = extract_claims(answer)
    if not claims:
        return 1.0
    involved = _self_contradictions(claims)
    if _has_contexts(contexts):
        details = _detector(detector).classify(claims, contexts)
        involved.update(i for i, d in enumerate(details) if d.status == CONTRADICTED)
    return 1.0 - len(involved) / len(claims)
