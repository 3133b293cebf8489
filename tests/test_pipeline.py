"""RAG pipeline paths, agent steps, guardrails, reranker selection."""

import pytest

from rag_eval.errors import ValidationError
from rag_eval.generation.llm_manager import LLMError
from rag_eval.pipeline.agent import AgentResult, AgentStep, DecomposingAgent, parse_sub_questions
from rag_eval.pipeline.guardrails import OutputGuardrail
from rag_eval.pipeline.pipeline_config import EvaluationConfig
from rag_eval.pipeline.rag_pipeline import RAGPipeline, build_reranker
from rag_eval.reranking.no_reranker import NoReranker

from conftest import BASELINE_ANSWER, CORPUS, StubLLM

QUESTION = "What data does qualitative research collect through interviews?"


# ============================================================
# Guardrails
# ============================================================

def test_guardrail_redacts_pii():
    result = OutputGuardrail().check(
        "Contact budi@univ.ac.id or 0812-3456-7890, NIK 3201234567890123 [Source 1]",
        ["passage"],
    )
    assert "budi@univ.ac.id" not in result.text
    assert "[REDACTED_EMAIL]" in result.text
    assert "[REDACTED_PHONE]" in result.text
    assert "[REDACTED_NIK]" in result.text
    assert {v.rule for v in result.violations} == {
        "output_pii_email", "output_pii_phone", "output_pii_nik",
    }
    assert result.triggered == 3


def test_guardrail_flags_citation_to_missing_source():
    result = OutputGuardrail().check("Interviews are common [Source 3].", ["one", "two"])
    assert [v.rule for v in result.violations] == ["unverified_citation"]
    assert result.text == "Interviews are common [Source 3]."


def test_guardrail_flags_empty_answer():
    result = OutputGuardrail().check("   ", [])
    assert [v.rule for v in result.violations] == ["empty_answer"]


def test_clean_answer_passes():
    result = OutputGuardrail().check("Interviews are common [Source 1].", ["one"])
    assert result.triggered == 0


# ============================================================
# Agent
# ============================================================

@pytest.mark.parametrize("text, expected", [
    ('["a", "b", "c", "d"]', ["a", "b", "c"]),
    ('```json\n["a"]\n```', ["a"]),
    ("not json", ["original"]),
    ('{"a": 1}', ["original"]),
    ("[]", ["original"]),
])
def test_parse_sub_questions(text, expected):
    assert parse_sub_questions(text, "original", 3) == expected


def test_agent_decomposes_retrieves_and_synthesizes(retriever):
    agent = DecomposingAgent(StubLLM(), retriever)
    result = agent.run(QUESTION, [], top_k=3, min_similarity=0.0)

    assert [s.step_type for s in result.steps] == ["reasoning", "tool_call", "tool_call", "synthesis"]
    assert [s.step_index for s in result.steps] == [0, 1, 2, 3]
    assert 0 < len(result.chunks) <= 3
    assert result.answer.endswith("[Source 1]")
    assert result.tokens_output > 0


def test_agent_synthesis_error_raises(retriever):
    agent = DecomposingAgent(StubLLM(fail_on=["[Source 1]"]), retriever)
    with pytest.raises(LLMError):
        agent.run(QUESTION, [], top_k=3, min_similarity=0.0)


# ============================================================
# Pipeline
# ============================================================

class RecordingReranker:
    name = "recording"

    def __init__(self):
        self.seen = None

    def rerank(self, query, chunks, top_k=5):
        self.seen = (len(chunks), top_k)
        return list(reversed(chunks))[:top_k]


def test_rag_path_traces_stages(retriever):
    pipeline = RAGPipeline(EvaluationConfig(), retriever, llm=StubLLM())
    rag = pipeline.answer_with_rag(QUESTION)

    assert rag.chunk_ids[0] == "c1"
    assert rag.answer == f"{CORPUS[0].content} [Source 1]"
    assert rag.retrieval_strategy == "hybrid"
    assert rag.reranker_strategy is None
    assert rag.agent_steps_used is None
    assert rag.guardrails_triggered is None
    for stage in ("retrieval", "reranking", "generation", "agent_reasoning", "tool_call", "total"):
        assert stage in rag.latency
    assert rag.latency["reranking"] == 0.0
    assert rag.latency["total"] >= rag.latency["generation"]


def test_reranker_receives_extra_candidates(retriever):
    reranker = RecordingReranker()
    config = EvaluationConfig(use_reranker=True, top_k=1, min_similarity=0.0)
    pipeline = RAGPipeline(config, retriever, llm=StubLLM(), reranker=reranker)
    rag = pipeline.answer_with_rag(QUESTION)

    assert reranker.seen == (2, 1)
    assert len(rag.chunks) == 1
    assert rag.reranker_strategy == "recording"


class FixedAgent:
    def run(self, question, chunks, **kwargs):
        return AgentResult(
            answer="Interviews [Source 1]",
            chunks=CORPUS[:1],
            steps=[
                AgentStep(step_index=0, step_type="reasoning", duration_ms=12.5),
                AgentStep(step_index=1, step_type="tool_call", duration_ms=3.0),
                AgentStep(step_index=2, step_type="tool_call", duration_ms=4.0),
                AgentStep(step_index=3, step_type="synthesis", duration_ms=1.0),
            ],
            tokens_output=2,
        )


def test_agentic_mode_books_agent_latency(retriever):
    config = EvaluationConfig(use_agentic_mode=True)
    pipeline = RAGPipeline(config, retriever, llm=StubLLM(), agent=FixedAgent())
    rag = pipeline.answer_with_rag(QUESTION)

    assert rag.agent_steps_used == 4
    assert rag.chunk_ids == ["c1"]
    assert rag.latency["agent_reasoning"] == 12.5
    assert rag.latency["tool_call"] == 7.0


def test_agentic_mode_builds_default_agent(retriever):
    config = EvaluationConfig(use_agentic_mode=True, min_similarity=0.0)
    pipeline = RAGPipeline(config, retriever, llm=StubLLM())
    assert isinstance(pipeline.agent, DecomposingAgent)
    assert pipeline.answer_with_rag(QUESTION).agent_steps_used == 4


class ChunkingRecorder:
    def __init__(self, inner):
        self.inner = inner
        self.chunking = []

    def retrieve(self, question, chunking_strategy=None, **kwargs):
        self.chunking.append(chunking_strategy)
        return self.inner.retrieve(question, chunking_strategy=chunking_strategy, **kwargs)


def test_agent_searches_the_configured_chunking_index(retriever):
    recorder = ChunkingRecorder(retriever)
    config = EvaluationConfig(use_agentic_mode=True, chunking_strategy="semantic", min_similarity=0.0)
    RAGPipeline(config, recorder, llm=StubLLM()).answer_with_rag(QUESTION)
    # initial retrieval plus one tool call per sub-question
    assert recorder.chunking == ["semantic", "semantic", "semantic"]


def test_guardrails_count_on_answer(retriever):
    config = EvaluationConfig(use_guardrails=True)
    pipeline = RAGPipeline(config, retriever, llm=StubLLM())
    rag = pipeline.answer_with_rag(QUESTION)
    assert rag.guardrails_triggered == 0


def test_baseline_path_uses_no_context(retriever):
    llm = StubLLM()
    pipeline = RAGPipeline(EvaluationConfig(), retriever, llm=llm)
    baseline = pipeline.answer_baseline(QUESTION)
    assert baseline.answer == BASELINE_ANSWER
    assert llm.calls == [QUESTION]
    assert baseline.latency_ms >= 0.0


def test_generation_error_raises(retriever):
    pipeline = RAGPipeline(EvaluationConfig(), retriever, llm=StubLLM(fail_on=["FAIL:"]))
    with pytest.raises(LLMError):
        pipeline.answer_with_rag("FAIL: anything")


def test_build_reranker():
    assert isinstance(build_reranker(None), NoReranker)
    assert isinstance(build_reranker("none"), NoReranker)
    with pytest.raises(ValidationError):
        build_reranker("bogus")


def test_no_reranker_keeps_retrieval_order():
    assert NoReranker().rerank("q", CORPUS, top_k=2) == CORPUS[:2]
