"""
Embedding Manager for semantic-similarity metrics.

Used by answer relevancy and answer correctness. The model is loaded lazily;
if sentence-transformers or the model is unavailable, similarity() returns
None and callers fall back to bag-of-words cosine.
"""

import hashlib
import logging
import time
from typing import Dict, List, Optional

import numpy as np

logger = logging.getLogger(__name__)

# Model configurations
MODEL_CONFIGS = {
    "all-MiniLM-L6-v2": {
        "full_name": "sentence-transformers/all-MiniLM-L6-v2",
        "dimension": 384,
        "description": "Lightweight baseline, fast inference",
    },
    "multilingual-MiniLM": {
        "full_name": "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2",
        "dimension": 384,
        "description": "Multilingual (English / Indonesian) questions and answers",
    },
    "bge-large": {
        "full_name": "BAAI/bge-large-en-v1.5",
        "dimension": 1024,
        "description": "State-of-the-art English embeddings",
    },
    "e5-large": {
        "full_name": "intfloat/e5-large-v2",
        "dimension": 1024,
        "description": "Competitive alternative to BGE",
    },
}

DEFAULT_MODEL = "all-MiniLM-L6-v2"


class EmbeddingManager:
    """Lazy sentence-transformers wrapper with an in-memory embedding cache."""

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL,
        device: Optional[str] = None,
        max_cache_entries: int = 4096,
    ):
        if model_name not in MODEL_CONFIGS:
            raise ValueError(
                f"Unknown model: {model_name}. Available: {list(MODEL_CONFIGS.keys())}"
            )
        self.model_name = model_name
        self.config = MODEL_CONFIGS[model_name]
        self.device = device
        self.max_cache_entries = max_cache_entries
        self._model = None
        self._available = None
        self._cache: Dict[str, np.ndarray] = {}

    @property
    def model(self):
        """Lazy-load the embedding model. None if it cannot be loaded."""
        if self._model is None and self._available is not False:
            try:
                from sentence_transformers import SentenceTransformer

                start = time.time()
                self._model = SentenceTransformer(self.config["full_name"], device=self.device)
                self._available = True
                logger.info(
                    "Embedding model %s loaded in %.1fs",
                    self.config["full_name"], time.time() - start,
                )
            except Exception as e:
                logger.warning("Embedding model unavailable, using lexical similarity: %s", e)
                self._available = False
        return self._model

    @property
    def available(self) -> bool:
        return self.model is not None

    @staticmethod
    def _key(text: str) -> str:
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    def embed(self, texts: List[str]) -> Optional[np.ndarray]:
        """Normalized embeddings, one row per text. None if no model."""
        if self.model is None:
            return None

        missing = [t for t in texts if self._key(t) not in self._cache]
        if missing:
            vectors = self.model.encode(
                missing,
                normalize_embeddings=True,
                show_progress_bar=False,
            )
            if len(self._cache) + len(missing) > self.max_cache_entries:
                self._cache.clear()
            for text, vec in zip(missing, vectors):
                self._cache[self._key(text)] = np.asarray(vec, dtype=np.float32)

        return np.vstack([self._cache[self._key(t)] for t in texts])

    def similarity(self, text_a: str, text_b: str) -> Optional[float]:
        """Cosine similarity clamped to [0, 1], or None if no model."""
        if not text_a or not text_b:
            return 0.0
        vectors = self.embed([text_a, text_b])
        if vectors is None:
            return None
        denom = float(np.linalg.norm(vectors[0]) * np.linalg.norm(vectors[1]))
        if denom == 0:
            return 0.0
        return min(1.0, max(0.0, float(np.dot(vectors[0], vectors[1]) / denom)))
