"""
Lexical text-similarity helpers shared by the metric battery.

  - f1_token: token-overlap F1 (factual-overlap fallback)
  - bow_cosine: bag-of-words cosine (fallback when no embedding model)
  - keyword_overlap: fraction of a claim's content words found in a passage

Error handling:
  - Empty texts -> return 0.0
  - Texts > 2000 tokens -> truncate before computing
"""

import logging
import math
import re
from collections import Counter
from typing import List, Set

logger = logging.getLogger(__name__)

MAX_TOKENS = 2000

STOPWORDS = {
    "the", "a", "an", "is", "are", "was", "were", "be", "been", "being",
    "and", "or", "but", "if", "then", "of", "to", "in", "on", "for", "with",
    "as", "by", "at", "from", "that", "this", "these", "those", "it", "its",
    "which", "who", "what", "when", "where", "how", "why", "can", "could",
    "should", "would", "will", "may", "might", "do", "does", "did", "has",
    "have", "had", "not", "no", "so", "than", "such", "also", "into", "about",
}


def _tokenize(text: str) -> List[str]:
    """Simple whitespace + punctuation tokenizer."""
    return re.findall(r"\w+", text.lower())


def _truncate(text: str, max_tokens: int = MAX_TOKENS) -> str:
    """Truncate text to max_tokens words."""
    tokens = text.split()
    if len(tokens) > max_tokens:
        return " ".join(tokens[:max_tokens])
    return text


def content_words(text: str) -> Set[str]:
    """Lowercased tokens minus stopwords and 1-2 char fragments."""
    return {t for t in _tokenize(text) if t not in STOPWORDS and len(t) > 2}


def f1_token(predicted: str, ground_truth: str) -> float:
    """F1 score of token overlap between predicted and ground_truth."""
    if not predicted or not ground_truth:
        return 0.0

    pred_set = set(_tokenize(_truncate(predicted)))
    gt_set = set(_tokenize(_truncate(ground_truth)))
    if not pred_set or not gt_set:
        return 0.0

    common = pred_set & gt_set
    if not common:
        return 0.0

    precision = len(common) / len(pred_set)
    recall = len(common) / len(gt_set)
    return 2 * precision * recall / (precision + recall)


def bow_cosine(text_a: str, text_b: str) -> float:
    """Cosine similarity of term-frequency vectors over content words."""
    if not text_a or not text_b:
        return 0.0
    a = Counter(t for t in _tokenize(_truncate(text_a)) if t not in STOPWORDS)
    b = Counter(t for t in _tokenize(_truncate(text_b)) if t not in STOPWORDS)
    if not a or not b:
        return 0.0
    dot = sum(a[t] * b[t] for t in a.keys() & b.keys())
    norm = math.sqrt(sum(v * v for v in a.values())) * math.sqrt(sum(v * v for v in b.values()))
    return dot / norm if norm > 0 else 0.0


def keyword_overlap(claim: str, passage: str) -> float:
    """Fraction of the claim's content words present in the passage."""
    claim_words = content_words(claim)
    if not claim_words:
        return 0.0
    return len(claim_words & content_words(passage)) / len(claim_words)
