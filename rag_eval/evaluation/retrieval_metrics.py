"""
Retrieval ranking metrics: nDCG, MRR, Precision.

All functions receive:
  - retrieved_ids: List[str] -- chunk IDs retrieved (ordered by relevance)
  - relevant_ids: Optional[List[str]] -- ground truth chunk IDs

relevant_ids=None means no relevance labels were supplied: the metric is
left None rather than estimated. An empty retrieval scores 0.0.
"""

import logging
import math
from typing import List, Optional

logger = logging.getLogger(__name__)


def precision_at_k(
    retrieved_ids: List[str],
    relevant_ids: Optional[List[str]],
    k: Optional[int] = None,
) -> Optional[float]:
    """Fraction of top-k results that are relevant."""
    if relevant_ids is None:
        return None
    top_k = retrieved_ids[:k] if k else list(retrieved_ids)
    if not top_k or not relevant_ids:
        return 0.0
    relevant_set = set(relevant_ids)
    return sum(1 for rid in top_k if rid in relevant_set) / len(top_k)


def mrr(retrieved_ids: List[str], relevant_ids: Optional[List[str]]) -> Optional[float]:
    """Mean Reciprocal Rank: 1/rank of first relevant result."""
    if relevant_ids is None:
        return None
    relevant_set = set(relevant_ids)
    for i, rid in enumerate(retrieved_ids):
        if rid in relevant_set:
            return 1.0 / (i + 1)
    return 0.0


def ndcg_at_k(
    retrieved_ids: List[str],
    relevant_ids: Optional[List[str]],
    k: Optional[int] = None,
) -> Optional[float]:
    """Normalized Discounted Cumulative Gain with binary relevance."""
    if relevant_ids is None:
        return None
    if not relevant_ids or not retrieved_ids:
        return 0.0
    relevant_set = set(relevant_ids)
    k = k or len(retrieved_ids)
    top_k = retrieved_ids[:k]

    dcg = 0.0
    for i, rid in enumerate(top_k):
        if rid in relevant_set:
            dcg += 1.0 / math.log2(i + 2)  # i+2 because log2(1)=0

    ideal_k = min(k, len(relevant_set))
    idcg = sum(1.0 / math.log2(i + 2) for i in range(ideal_k))

    return dcg / idcg if idcg > 0 else 0.0
