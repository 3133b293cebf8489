"""
Context Retriever adapters.

Contract consumed by the evaluation engine:
    retrieve(question, top_k, min_similarity, strategy) -> ContextResult

  - chunks are ordered by descending relevance
  - an empty result is valid, not an error
  - min_similarity filters; it does not guarantee a result count

Implementations:
  - HttpContextRetriever: POSTs to an external retrieval service
  - StaticContextRetriever: in-process lexical search over a fixed corpus
    (offline runs and tests)
"""

import json
import logging
from pathlib import Path
from typing import List, Optional

import requests
import yaml
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from rag_eval.errors import ValidationError
from rag_eval.evaluation.generation_metrics import bow_cosine, content_words

logger = logging.getLogger(__name__)

STRATEGIES = ("vector", "keyword", "hybrid")

# Fusion weights for the static hybrid strategy
VECTOR_WEIGHT = 0.6
KEYWORD_WEIGHT = 0.4


class RetrievedChunk(BaseModel):
    """A single retrieved context passage."""
    chunk_id: str
    content: str
    score: float = 0.0
    document_id: Optional[str] = None
    document_title: Optional[str] = None


class ContextResult(BaseModel):
    """Ordered chunks plus the strategy the retriever actually used."""
    chunks: List[RetrievedChunk] = []
    strategy: str = "hybrid"

    @property
    def contents(self) -> List[str]:
        return [c.content for c in self.chunks]

    @property
    def chunk_ids(self) -> List[str]:
        return [c.chunk_id for c in self.chunks]


def _validate_strategy(strategy: str):
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown retrieval strategy: {strategy}. Available: {STRATEGIES}")


def _rank(chunks: List[RetrievedChunk], top_k: int, min_similarity: float) -> List[RetrievedChunk]:
    kept = [c for c in chunks if c.score >= min_similarity]
    kept.sort(key=lambda c: c.score, reverse=True)
    return kept[:top_k]


class HttpContextRetriever:
    """Adapter for a retrieval service exposing POST {endpoint} -> {chunks, retrievalStrategy}."""

    def __init__(self, endpoint: str, timeout: int = 30, session: Optional[requests.Session] = None):
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()

    def retrieve(
        self,
        question: str,
        top_k: int = 5,
        min_similarity: float = 0.3,
        strategy: str = "hybrid",
        chunking_strategy: Optional[str] = None,
    ) -> ContextResult:
        _validate_strategy(strategy)
        payload = {
            "query": question,
            "topK": top_k,
            "minSimilarity": min_similarity,
            "strategy": strategy,
        }
        if chunking_strategy:
            payload["chunkingStrategy"] = chunking_strategy

        response = self.session.post(self.endpoint, json=payload, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()

        chunks = []
        for item in data.get("chunks", []):
            chunk_id = item.get("chunkId") or item.get("chunk_id")
            if not chunk_id:
                logger.warning("Skipping retrieved chunk without an id")
                continue
            chunks.append(RetrievedChunk(
                chunk_id=str(chunk_id),
                content=item.get("content", ""),
                score=float(item.get("similarity", item.get("score", 0.0)) or 0.0),
                document_id=item.get("documentId") or item.get("document_id"),
                document_title=item.get("documentTitle") or item.get("document_title"),
            ))
        effective = data.get("retrievalStrategy") or data.get("strategy") or strategy
        logger.debug("Retrieved %d chunks via %s for: %s", len(chunks), effective, question[:60])
        return ContextResult(chunks=_rank(chunks, top_k, min_similarity), strategy=effective)


class StaticContextRetriever:
    """Lexical retrieval over an in-memory corpus."""

    def __init__(self, corpus: List[RetrievedChunk]):
        self.corpus = list(corpus)

    @classmethod
    def from_file(cls, path: str) -> "StaticContextRetriever":
        """Load a JSON or YAML list of {chunk_id, content, document_title?}."""
        file_path = Path(path)
        if not file_path.exists():
            raise ValidationError(f"Corpus file not found: {path}")
        text = file_path.read_text(encoding="utf-8")
        try:
            if file_path.suffix in (".yaml", ".yml"):
                items = yaml.safe_load(text) or []
            else:
                items = json.loads(text)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ValidationError(f"Invalid corpus file {path}: {e}") from e
        if not isinstance(items, list):
            raise ValidationError(f"{path} must contain a list of chunks")
        try:
            return cls([RetrievedChunk(**item) for item in items])
        except (PydanticValidationError, TypeError) as e:
            raise ValidationError(f"Malformed chunk in {path}: {e}") from e

    @staticmethod
    def _keyword_score(question: str, content: str) -> float:
        query_words = content_words(question)
        if not query_words:
            return 0.0
        return len(query_words & content_words(content)) / len(query_words)

    def retrieve(
        self,
        question: str,
        top_k: int = 5,
        min_similarity: float = 0.3,
        strategy: str = "hybrid",
        chunking_strategy: Optional[str] = None,
    ) -> ContextResult:
        _validate_strategy(strategy)
        scored = []
        for chunk in self.corpus:
            vector = bow_cosine(question, chunk.content)
            keyword = self._keyword_score(question, chunk.content)
            if strategy == "vector":
                score = vector
            elif strategy == "keyword":
                score = keyword
            else:
                score = VECTOR_WEIGHT * vector + KEYWORD_WEIGHT * keyword
            scored.append(chunk.model_copy(update={"score": round(score, 4)}))
        return ContextResult(chunks=_rank(scored, top_k, min_similarity), strategy=strategy)
