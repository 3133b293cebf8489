"""
No Reranker - used when a configuration disables reranking.
Returns the first top_k chunks in retrieval order.
"""

import logging
from typing import List

logger = logging.getLogger(__name__)


class NoReranker:
    """Identity reranker."""

    name = "none"

    def rerank(self, query: str, chunks: List, top_k: int = 5) -> List:
        return list(chunks[:top_k])
