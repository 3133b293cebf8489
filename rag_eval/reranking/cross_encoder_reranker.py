"""
Cross-Encoder Reranker - scores question-passage pairs directly.
Supports multiple cross-encoder models; loaded lazily on first use.
"""

import logging
import time
from typing import List, Optional

logger = logging.getLogger(__name__)

CROSS_ENCODER_MODELS = {
    "ms-marco-mini-6": {
        "full_name": "cross-encoder/ms-marco-MiniLM-L-6-v2",
        "description": "Fast baseline cross-encoder",
    },
    "ms-marco-mini-12": {
        "full_name": "cross-encoder/ms-marco-MiniLM-L-12-v2",
        "description": "Better quality cross-encoder",
    },
    "bge-reranker-large": {
        "full_name": "BAAI/bge-reranker-large",
        "description": "State-of-the-art reranker",
    },
}


class CrossEncoderReranker:
    """Reorders RetrievedChunk lists by cross-encoder relevance."""

    name = "cross_encoder"

    def __init__(
        self,
        model_name: str = "ms-marco-mini-6",
        device: Optional[str] = None,
        batch_size: int = 32,
    ):
        if model_name not in CROSS_ENCODER_MODELS:
            raise ValueError(
                f"Unknown model: {model_name}. Available: {list(CROSS_ENCODER_MODELS.keys())}"
            )
        self.model_name = model_name
        self.config = CROSS_ENCODER_MODELS[model_name]
        self.device = device
        self.batch_size = batch_size
        self._model = None

    @property
    def model(self):
        if self._model is None:
            from sentence_transformers import CrossEncoder

            start = time.time()
            self._model = CrossEncoder(self.config["full_name"], device=self.device)
            logger.info("Cross-encoder %s loaded in %.1fs", self.config["full_name"], time.time() - start)
        return self._model

    def rerank(self, query: str, chunks: List, top_k: int = 5) -> List:
        """Score every (query, chunk) pair and return the top_k, best first."""
        if not chunks:
            return []

        start = time.time()
        scores = self.model.predict(
            [[query, c.content or ""] for c in chunks],
            batch_size=self.batch_size,
            show_progress_bar=False,
        )
        reranked = [
            c.model_copy(update={"score": float(s)})
            for c, s in zip(chunks, scores)
        ]
        reranked.sort(key=lambda c: c.score, reverse=True)

        logger.info(
            "Reranked %d chunks in %.3fs (model=%s)",
            len(chunks), time.time() - start, self.model_name,
        )
        return reranked[:top_k]
