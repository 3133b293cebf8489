"""Shared fixtures: deterministic stand-ins for the LLM, judge and retriever."""

import sys
from pathlib import Path
from typing import List, Optional

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from rag_eval.evaluation.evaluation_runner import EvaluationRunner
from rag_eval.generation.hallucination_detector import HallucinationDetector
from rag_eval.generation.llm_manager import LLMResponse
from rag_eval.retrieval.context_retriever import RetrievedChunk, StaticContextRetriever
from rag_eval.storage.store import InMemoryStore

CORPUS = [
    RetrievedChunk(
        chunk_id="c1",
        document_title="Metodologi Penelitian",
        content=(
            "Qualitative research collects non-numeric data through interviews, "
            "observation and document analysis to understand social phenomena."
        ),
    ),
    RetrievedChunk(
        chunk_id="c2",
        document_title="Metodologi Penelitian",
        content=(
            "Deductive research starts from a general theory and tests hypotheses "
            "with empirical data collected by the researcher."
        ),
    ),
    RetrievedChunk(
        chunk_id="c3",
        document_title="Panduan Skripsi",
        content=(
            "The thesis introduction chapter contains the research background, "
            "problem statement, objectives and benefits of the research."
        ),
    ),
]

QUESTIONS = [
    {
        "question": "What data does qualitative research collect through interviews?",
        "ground_truth": (
            "Qualitative research collects non-numeric data through interviews, "
            "observation and document analysis."
        ),
        "relevant_chunk_ids": ["c1"],
    },
    {
        "question": "FAIL: how does deductive research test hypotheses?",
        "ground_truth": "Deductive research tests hypotheses derived from a general theory.",
    },
]

BASELINE_ANSWER = (
    "Qualitative research was formalised in 1967 by two sociologists. "
    "It usually relies on interviews with participants."
)


class StubLLM:
    """
    Deterministic generator.

    RAG prompts are answered with the first supplied passage plus a
    [Source 1] citation; prompts without context get BASELINE_ANSWER.
    Prompts containing any fail_on marker come back with an error set.
    """

    def __init__(self, fail_on: Optional[List[str]] = None):
        self.fail_on = fail_on or []
        self.calls = []

    def generate(self, prompt, system_prompt="", max_tokens=1024, temperature=0.3):
        self.calls.append(prompt)
        if any(marker in prompt for marker in self.fail_on):
            return LLMResponse(text="", model="stub", provider="stub", error="stub failure")

        if prompt.startswith("Break this academic question"):
            text = '["What is qualitative research?", "How is qualitative data collected?"]'
        elif "[Source 1]" in prompt:
            lines = prompt.splitlines()
            start = next(i for i, line in enumerate(lines) if line.startswith("[Source 1]"))
            text = f"{lines[start + 1]} [Source 1]"
        else:
            text = BASELINE_ANSWER
        return LLMResponse(
            text=text, model="stub", provider="stub",
            tokens_input=len(prompt.split()), tokens_output=len(text.split()),
        )


class StubJudge:
    """Fixed judge scores; reconstruct_question defers to the answer itself."""

    def __init__(self, factual=0.8, precision=0.9, recall=0.7, ungrounded=0.4, rubric=0.75):
        self.factual = factual
        self.precision = precision
        self.recall = recall
        self.ungrounded = ungrounded
        self.rubric = rubric

    def factual_correctness(self, answer, ground_truth):
        return self.factual

    def context_precision(self, question, ground_truth, contexts):
        return self.precision

    def context_recall(self, ground_truth, contexts):
        return self.recall

    def ungrounded_hallucination(self, answer):
        return self.ungrounded

    def reconstruct_question(self, answer):
        return None

    def rubric_score(self, criterion, domain_label, criteria, answer, contexts):
        return self.rubric


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def retriever():
    return StaticContextRetriever(CORPUS)


@pytest.fixture
def llm():
    return StubLLM(fail_on=["FAIL:"])


@pytest.fixture
def judge():
    return StubJudge()


@pytest.fixture
def detector():
    return HallucinationDetector(use_nli=False)


@pytest.fixture
def runner(store, retriever, llm, judge, detector):
    return EvaluationRunner(
        store=store,
        retriever=retriever,
        llm=llm,
        judge=judge,
        detector=detector,
    )


@pytest.fixture
def questions():
    return [dict(q) for q in QUESTIONS]
