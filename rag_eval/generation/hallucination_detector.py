"""
Hallucination Detector - NLI-based claim verification.

Three-step detection:
  1. CLAIM EXTRACTION: Split an answer into verifiable factual claims
  2. EVIDENCE MATCHING: Compare claims against context passages via NLI
  3. VERDICT: supported, contradicted or unsupported per claim

NLI Model: cross-encoder/nli-deberta-v3-small (~200MB, fast)
Fallback: keyword matching (with negation check) if NLI model unavailable
"""

import logging
import re
from typing import List, Optional

import numpy as np
from pydantic import BaseModel

from rag_eval.evaluation.generation_metrics import content_words, keyword_overlap

logger = logging.getLogger(__name__)

SUPPORTED = "supported"
CONTRADICTED = "contradicted"
UNSUPPORTED = "unsupported"


class ClaimDetail(BaseModel):
    """Verdict for a single extracted claim."""
    claim_text: str
    status: str  # "supported", "contradicted", "unsupported"
    evidence_index: Optional[int] = None
    evidence_chunk_id: Optional[str] = None
    nli_score: float = 0.0


# ============================================================
# Sentences to skip (not factual claims)
# ============================================================
SKIP_PATTERNS = [
    r"^based on",
    r"^according to the (provided )?(context|sources)",
    r"^in summary",
    r"^to summarize",
    r"^overall",
    r"^note that",
    r"^please note",
    r"^for more",
    r"^see also",
    r"^in conclusion",
    r"^\[source",
    r"^source:",
    r"^here",
    r"^let me",
    r"^i ",
    r"^you can",
    r"^you should",
    r"^the following",
    r"^below",
    r"^above",
]

NEGATIONS = {"not", "no", "never", "none", "cannot", "neither", "nor", "without"}
NEGATION_SUFFIX = "n't"


def has_negation(text: str) -> bool:
    lowered = text.lower()
    if NEGATION_SUFFIX in lowered:
        return True
    return any(w in NEGATIONS for w in re.findall(r"\w+", lowered))


def extract_claims(text: str) -> List[str]:
    """Extract verifiable factual claims from an answer."""
    if not text:
        return []
    # Remove code blocks (not claims)
    text_clean = re.sub(r"```[\s\S]*?```", "", text)
    text_clean = re.sub(r"`[^`]+`", "[CODE]", text_clean)
    # Remove bullet / numbering markers, keep the sentence
    text_clean = re.sub(r"(?m)^\s*(?:[-*•]|\d+[.)])\s+", "", text_clean)

    sentences = re.split(r"(?<=[.!?])\s+|\n+", text_clean)

    claims = []
    for sent in sentences:
        # Citations do not change the claim
        sent = re.sub(r"\[Source[^\]]*\]", "", sent, flags=re.IGNORECASE).strip()
        if not sent or len(sent.split()) < 4:
            continue
        if any(re.match(p, sent.lower()) for p in SKIP_PATTERNS):
            continue
        if sent.endswith("?") or sent.endswith(":"):
            continue
        claims.append(sent)
    return claims


def _softmax(row) -> np.ndarray:
    arr = np.asarray(row, dtype=float)
    arr = np.exp(arr - arr.max())
    return arr / arr.sum()


class HallucinationDetector:
    """Classifies answer claims against context passages."""

    NLI_MODEL = "cross-encoder/nli-deberta-v3-small"
    ENTAILMENT_THRESHOLD = 0.7
    CONTRADICTION_THRESHOLD = 0.7
    KEYWORD_SUPPORT_THRESHOLD = 0.5

    def __init__(self, use_nli: bool = True, model_name: Optional[str] = None):
        self._nli_model = None
        self._use_nli = use_nli
        self._nli_available = None
        self._last_classified = None
        self.model_name = model_name or self.NLI_MODEL

    @property
    def nli_model(self):
        """Lazy load NLI model."""
        if self._nli_model is None and self._use_nli and self._nli_available is not False:
            try:
                from sentence_transformers import CrossEncoder
                self._nli_model = CrossEncoder(self.model_name, max_length=512)
                self._nli_available = True
                logger.info("NLI model loaded: %s", self.model_name)
            except Exception as e:
                logger.warning("NLI model unavailable, using keyword fallback: %s", e)
                self._nli_available = False
        return self._nli_model

    @property
    def method(self) -> str:
        return "nli" if self._use_nli and self.nli_model is not None else "keyword_fallback"

    def classify(
        self,
        claims: List[str],
        contexts: List[str],
        chunk_ids: Optional[List[str]] = None,
    ) -> List[ClaimDetail]:
        """Verdict per claim. Without contexts every claim is unsupported."""
        passages = [c for c in contexts if c and c.strip()]
        ids = list(chunk_ids or [])
        if not passages:
            return [ClaimDetail(claim_text=c, status=UNSUPPORTED) for c in claims]

        # Several metrics classify the same answer against the same contexts
        key = (tuple(claims), tuple(passages), tuple(ids))
        if self._last_classified is not None and self._last_classified[0] == key:
            return self._last_classified[1]

        if self._use_nli and self.nli_model is not None:
            details = [self._nli_match_single(c, passages, ids) for c in claims]
        else:
            details = [self._keyword_match_single(c, passages, ids) for c in claims]
        self._last_classified = (key, details)
        return details

    # ============================================================
    # NLI-based evidence matching
    # ============================================================

    def _nli_match_single(
        self,
        claim: str,
        passages: List[str],
        chunk_ids: List[str],
    ) -> ClaimDetail:
        pairs = [(passage, claim) for passage in passages]
        try:
            # Logits per pair: [contradiction, entailment, neutral]
            scores = self.nli_model.predict(pairs, batch_size=32, show_progress_bar=False)
        except Exception as e:
            logger.warning("NLI prediction failed for claim, using keyword fallback: %s", e)
            return self._keyword_match_single(claim, passages, chunk_ids)

        best_status = UNSUPPORTED
        best_score = 0.0
        best_index = None
        for i, row in enumerate(scores):
            if hasattr(row, "__len__") and len(row) == 3:
                probs = _softmax(row)
                contradiction, entailment = float(probs[0]), float(probs[1])
            else:
                entailment, contradiction = float(row), 0.0

            if entailment > self.ENTAILMENT_THRESHOLD and (
                best_status != SUPPORTED or entailment > best_score
            ):
                best_status, best_score, best_index = SUPPORTED, entailment, i
            elif (
                contradiction > self.CONTRADICTION_THRESHOLD
                and best_status != SUPPORTED
                and contradiction > best_score
            ):
                best_status, best_score, best_index = CONTRADICTED, contradiction, i

        return ClaimDetail(
            claim_text=claim,
            status=best_status,
            evidence_index=best_index,
            evidence_chunk_id=self._chunk_id(chunk_ids, best_index),
            nli_score=round(best_score, 4),
        )

    # ============================================================
    # Keyword-based fallback
    # ============================================================

    def _keyword_match_single(
        self,
        claim: str,
        passages: List[str],
        chunk_ids: List[str],
    ) -> ClaimDetail:
        """Best keyword overlap decides; a negation mismatch on a match is a contradiction."""
        if not content_words(claim):
            return ClaimDetail(claim_text=claim, status=UNSUPPORTED)

        best_overlap = 0.0
        best_index = None
        for i, passage in enumerate(passages):
            overlap = keyword_overlap(claim, passage)
            if overlap > best_overlap:
                best_overlap, best_index = overlap, i

        status = UNSUPPORTED
        if best_index is not None and best_overlap >= self.KEYWORD_SUPPORT_THRESHOLD:
            if has_negation(claim) != has_negation(self._sentence_for(claim, passages[best_index])):
                status = CONTRADICTED
            else:
                status = SUPPORTED

        return ClaimDetail(
            claim_text=claim,
            status=status,
            evidence_index=best_index,
            evidence_chunk_id=self._chunk_id(chunk_ids, best_index),
            nli_score=round(best_overlap, 4),
        )

    # ============================================================
    # Helpers
    # ============================================================

    @staticmethod
    def _sentence_for(claim: str, passage: str) -> str:
        """Passage sentence with the highest keyword overlap with the claim."""
        sentences = [s for s in re.split(r"(?<=[.!?])\s+", passage) if s.strip()]
        if not sentences:
            return passage
        return max(sentences, key=lambda s: keyword_overlap(claim, s))

    @staticmethod
    def _chunk_id(chunk_ids: List[str], index: Optional[int]) -> Optional[str]:
        if index is None or index >= len(chunk_ids):
            return None
        return chunk_ids[index]
