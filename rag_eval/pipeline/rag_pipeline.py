"""
RAG Pipeline - the two answer paths evaluated for every question.

RAG path (per EvaluationConfig):
  retrieval → reranking (optional) → generation or agent (optional)
  → output guardrails (optional)

Baseline path:
  question → generation with the baseline system prompt, no context

Latency is traced only around retrieval and generation work; scoring the
answers happens outside the pipeline.
"""

import logging
import time
from typing import Dict, List, Optional

from pydantic import BaseModel

from rag_eval.errors import ValidationError
from rag_eval.evaluation.latency_metrics import LatencyTracer
from rag_eval.generation.llm_manager import LLMError, LLMManager
from rag_eval.generation.prompt_templates import (
    BASELINE_SYSTEM_PROMPT,
    SYSTEM_PROMPT,
    build_context,
    build_rag_prompt,
)
from rag_eval.pipeline.agent import DecomposingAgent
from rag_eval.pipeline.guardrails import OutputGuardrail
from rag_eval.pipeline.pipeline_config import EvaluationConfig
from rag_eval.retrieval.context_retriever import RetrievedChunk
from rag_eval.reranking.no_reranker import NoReranker

logger = logging.getLogger(__name__)

# Candidates fetched per final chunk when a reranker is active
RERANK_CANDIDATE_FACTOR = 2

AGENT_STAGES = {"reasoning": "agent_reasoning", "tool_call": "tool_call"}


# ============================================================
# Data models
# ============================================================

class RAGAnswer(BaseModel):
    """Grounded answer plus everything the metric battery needs."""
    answer: str
    chunks: List[RetrievedChunk] = []
    retrieval_strategy: Optional[str] = None
    reranker_strategy: Optional[str] = None
    latency: Dict[str, float] = {}
    tokens_output: int = 0
    agent_steps_used: Optional[int] = None
    guardrails_triggered: Optional[int] = None

    @property
    def contexts(self) -> List[str]:
        return [c.content for c in self.chunks]

    @property
    def chunk_ids(self) -> List[str]:
        return [c.chunk_id for c in self.chunks]


class BaselineAnswer(BaseModel):
    answer: str
    latency_ms: float = 0.0
    tokens_output: int = 0


def build_reranker(strategy: Optional[str]):
    """Reranker instance for a configuration's reranker_strategy."""
    if strategy in (None, "", "none"):
        return NoReranker()
    if strategy == "cross_encoder":
        from rag_eval.reranking.cross_encoder_reranker import CrossEncoderReranker
        return CrossEncoderReranker()
    raise ValidationError(f"Unknown reranker strategy: {strategy}")


# ============================================================
# RAG Pipeline
# ============================================================

class RAGPipeline:
    """Answers one question both ways under one EvaluationConfig."""

    def __init__(
        self,
        config: EvaluationConfig,
        retriever,
        llm=None,
        reranker=None,
        agent=None,
        guardrail=None,
    ):
        self.config = config
        self.retriever = retriever
        self.llm = llm or LLMManager(provider=config.llm_provider, model=config.llm_model)

        self.reranker = None
        if config.use_reranker:
            self.reranker = reranker or build_reranker(config.reranker_strategy or "cross_encoder")

        self.agent = None
        if config.use_agentic_mode:
            self.agent = agent or DecomposingAgent(self.llm, retriever)

        self.guardrail = None
        if config.use_guardrails:
            self.guardrail = guardrail or OutputGuardrail()

    def _generate(self, prompt: str, system_prompt: str):
        response = self.llm.generate(
            prompt,
            system_prompt=system_prompt,
            temperature=self.config.temperature,
        )
        if response.error:
            raise LLMError(response.error)
        return response

    # ============================================================
    # RAG path
    # ============================================================

    def answer_with_rag(self, question: str) -> RAGAnswer:
        """
        Run the configured RAG path.

        Raises whatever the retriever or generator raises; the caller
        treats that as a failure of this question only.
        """
        cfg = self.config
        tracer = LatencyTracer()
        tracer.start()

        if not cfg.use_rag:
            response = self._generate(question, BASELINE_SYSTEM_PROMPT)
            tracer.mark("generation")
            return RAGAnswer(
                answer=response.text,
                retrieval_strategy="none",
                latency=tracer.summary(),
                tokens_output=response.tokens_output,
            )

        # 1. Retrieval
        fetch_k = cfg.top_k * RERANK_CANDIDATE_FACTOR if self.reranker else cfg.top_k
        result = self.retriever.retrieve(
            question,
            top_k=fetch_k,
            min_similarity=cfg.min_similarity,
            strategy=cfg.retrieval_strategy,
            chunking_strategy=cfg.chunking_strategy,
        )
        tracer.mark("retrieval")

        # 2. Reranking
        chunks = list(result.chunks)
        if self.reranker is not None:
            chunks = self.reranker.rerank(question, chunks, top_k=cfg.top_k)
            tracer.mark("reranking")
        else:
            chunks = chunks[: cfg.top_k]

        # 3. Generation
        agent_steps = None
        if self.agent is not None:
            agent_result = self.agent.run(
                question,
                chunks,
                top_k=cfg.top_k,
                min_similarity=cfg.min_similarity,
                strategy=cfg.retrieval_strategy,
                chunking_strategy=cfg.chunking_strategy,
                temperature=cfg.temperature,
            )
            tracer.mark("generation")
            for step in agent_result.steps:
                if step.step_type in AGENT_STAGES:
                    tracer.record(AGENT_STAGES[step.step_type], step.duration_ms)
            answer = agent_result.answer
            chunks = agent_result.chunks
            tokens_output = agent_result.tokens_output
            agent_steps = len(agent_result.steps)
        else:
            prompt = build_rag_prompt(build_context(chunks), question)
            response = self._generate(prompt, SYSTEM_PROMPT)
            tracer.mark("generation")
            answer = response.text
            tokens_output = response.tokens_output

        # 4. Guardrails
        triggered = None
        if self.guardrail is not None:
            checked = self.guardrail.check(answer, [c.content for c in chunks])
            answer = checked.text
            triggered = checked.triggered

        return RAGAnswer(
            answer=answer,
            chunks=chunks,
            retrieval_strategy=result.strategy,
            reranker_strategy=getattr(self.reranker, "name", None) if self.reranker else None,
            latency=tracer.summary(),
            tokens_output=tokens_output,
            agent_steps_used=agent_steps,
            guardrails_triggered=triggered,
        )

    # ============================================================
    # Baseline path
    # ============================================================

    def answer_baseline(self, question: str) -> BaselineAnswer:
        """Ungrounded answer from the question alone."""
        start = time.perf_counter()
        response = self._generate(question, BASELINE_SYSTEM_PROMPT)
        return BaselineAnswer(
            answer=response.text,
            latency_ms=(time.perf_counter() - start) * 1000,
            tokens_output=response.tokens_output,
        )
