"""Context retriever adapters: service responses and corpus files."""

import json

import pytest

from rag_eval.errors import ValidationError
from rag_eval.retrieval.context_retriever import HttpContextRetriever, StaticContextRetriever


class FakeResponse:
    def __init__(self, data):
        self.data = data

    def raise_for_status(self):
        pass

    def json(self):
        return self.data


class FakeSession:
    def __init__(self, data):
        self.data = data
        self.payloads = []

    def post(self, url, json=None, timeout=None):
        self.payloads.append(json)
        return FakeResponse(self.data)


def test_http_retriever_maps_service_response():
    session = FakeSession({
        "retrievalStrategy": "hybrid",
        "chunks": [
            {"chunkId": "a", "content": "first", "similarity": 0.4},
            {"chunkId": "b", "content": "second", "similarity": 0.9, "documentTitle": "Guide"},
            {"chunkId": "c", "content": "weak", "similarity": 0.1},
        ],
    })
    retriever = HttpContextRetriever("http://retrieval.local/search", session=session)
    result = retriever.retrieve("q", top_k=5, min_similarity=0.3, chunking_strategy="semantic")

    assert [c.chunk_id for c in result.chunks] == ["b", "a"]
    assert result.chunks[0].document_title == "Guide"
    assert result.strategy == "hybrid"
    assert session.payloads[0]["chunkingStrategy"] == "semantic"


def test_http_retriever_skips_chunks_without_id():
    session = FakeSession({"chunks": [
        {"content": "anonymous", "similarity": 0.9},
        {"chunk_id": "kept", "content": "named", "score": 0.8},
    ]})
    result = HttpContextRetriever("http://retrieval.local/search", session=session).retrieve("q")
    assert [c.chunk_id for c in result.chunks] == ["kept"]


def test_unknown_strategy_rejected():
    with pytest.raises(ValueError):
        StaticContextRetriever([]).retrieve("q", strategy="telepathy")


def test_corpus_from_yaml(tmp_path):
    path = tmp_path / "corpus.yaml"
    path.write_text(
        "- chunk_id: c1\n"
        "  content: Qualitative research uses interviews.\n"
        "- chunk_id: c2\n"
        "  content: Deductive research tests hypotheses.\n",
        encoding="utf-8",
    )
    retriever = StaticContextRetriever.from_file(str(path))
    result = retriever.retrieve("qualitative interviews", min_similarity=0.1)
    assert result.chunks[0].chunk_id == "c1"


@pytest.mark.parametrize("name, content", [
    ("corpus.yaml", "- chunk_id: c1\n  content: [unclosed\n"),
    ("corpus.json", "{broken"),
    ("corpus.json", json.dumps({"chunk_id": "c1", "content": "not a list"})),
    ("corpus.json", json.dumps([{"chunk_id": "c1"}])),
])
def test_malformed_corpus_file(tmp_path, name, content):
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ValidationError):
        StaticContextRetriever.from_file(str(path))


def test_missing_corpus_file(tmp_path):
    with pytest.raises(ValidationError):
        StaticContextRetriever.from_file(str(tmp_path / "nope.json"))
