"""
Agentic answering for agentic-mode configurations.

DecomposingAgent runs a fixed plan:
  1. reasoning: ask the LLM to split the question into sub-questions
  2. tool_call: one retrieval per sub-question, results merged by chunk id
  3. synthesis: grounded answer over the merged chunks

Each step is timed; the pipeline books reasoning and tool-call time into
the agent_reasoning / tool_call latency stages.
"""

import json
import logging
import re
import time
from typing import List, Optional

from pydantic import BaseModel

from rag_eval.generation.llm_manager import LLMError
from rag_eval.generation.prompt_templates import (
    AGENTIC_SYSTEM_PROMPT,
    build_context,
    build_rag_prompt,
)
from rag_eval.retrieval.context_retriever import RetrievedChunk

logger = logging.getLogger(__name__)

DECOMPOSE_PROMPT = """Break this academic question into at most {n} simpler \
sub-questions that together answer the original question.

Question: {question}

Return only a JSON array of strings."""


class AgentStep(BaseModel):
    step_index: int
    step_type: str  # "reasoning", "tool_call" or "synthesis"
    detail: str = ""
    duration_ms: float = 0.0


class AgentResult(BaseModel):
    answer: str
    steps: List[AgentStep] = []
    chunks: List[RetrievedChunk] = []
    tokens_output: int = 0


def parse_sub_questions(text: str, question: str, limit: int) -> List[str]:
    """JSON array from the reply (code fences tolerated). Falls back to the question."""
    cleaned = re.sub(r"```(?:json)?", "", text or "").strip()
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        return [question]
    subs = [s.strip() for s in parsed if isinstance(s, str) and s.strip()] if isinstance(parsed, list) else []
    return subs[:limit] or [question]


class DecomposingAgent:
    """Decompose, retrieve per sub-question, synthesize."""

    def __init__(self, llm, retriever, max_sub_questions: int = 3):
        self.llm = llm
        self.retriever = retriever
        self.max_sub_questions = max_sub_questions

    def run(
        self,
        question: str,
        chunks: List[RetrievedChunk],
        top_k: int = 5,
        min_similarity: float = 0.3,
        strategy: str = "hybrid",
        chunking_strategy: Optional[str] = None,
        temperature: float = 0.3,
    ) -> AgentResult:
        steps: List[AgentStep] = []

        # 1. Reasoning
        start = time.perf_counter()
        plan = self.llm.generate(
            DECOMPOSE_PROMPT.format(n=self.max_sub_questions, question=question),
            temperature=temperature,
            max_tokens=256,
        )
        sub_questions = parse_sub_questions(plan.text, question, self.max_sub_questions)
        steps.append(AgentStep(
            step_index=0, step_type="reasoning",
            detail=f"{len(sub_questions)} sub-questions",
            duration_ms=(time.perf_counter() - start) * 1000,
        ))

        # 2. Tool calls
        merged = {c.chunk_id: c for c in chunks}
        for sub in sub_questions:
            start = time.perf_counter()
            result = self.retriever.retrieve(
                sub, top_k=top_k, min_similarity=min_similarity,
                strategy=strategy, chunking_strategy=chunking_strategy,
            )
            for c in result.chunks:
                if c.chunk_id not in merged or merged[c.chunk_id].score < c.score:
                    merged[c.chunk_id] = c
            steps.append(AgentStep(
                step_index=len(steps), step_type="tool_call",
                detail=f"search_documents: {sub[:80]}",
                duration_ms=(time.perf_counter() - start) * 1000,
            ))

        evidence = sorted(merged.values(), key=lambda c: c.score, reverse=True)[:top_k]

        # 3. Synthesis
        start = time.perf_counter()
        response = self.llm.generate(
            build_rag_prompt(build_context(evidence), question),
            system_prompt=AGENTIC_SYSTEM_PROMPT,
            temperature=temperature,
        )
        if response.error:
            raise LLMError(response.error)
        steps.append(AgentStep(
            step_index=len(steps), step_type="synthesis",
            duration_ms=(time.perf_counter() - start) * 1000,
        ))

        logger.debug("Agent finished in %d steps with %d chunks", len(steps), len(evidence))
        return AgentResult(
            answer=response.text,
            steps=steps,
            chunks=evidence,
            tokens_output=response.tokens_output,
        )
