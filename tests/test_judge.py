"""LLM judge score parsing and failure handling."""

import pytest

from rag_eval.generation.judge import LLMJudge, parse_score
from rag_eval.generation.llm_manager import LLMError, LLMResponse


@pytest.mark.parametrize("text, expected", [
    ("0.85", 0.85),
    ("Score: 0.4\nbecause...", 0.4),
    ("1.7", 1.0),
    ("-0.2", 0.0),
    ("no number here", None),
    ("", None),
    (None, None),
])
def test_parse_score(text, expected):
    assert parse_score(text) == expected


class ReplyLLM:
    def __init__(self, text="0.6", error=None, raises=False):
        self.text = text
        self.error = error
        self.raises = raises
        self.prompts = []

    def generate(self, prompt, system_prompt="", max_tokens=1024, temperature=0.3):
        self.prompts.append(prompt)
        if self.raises:
            raise LLMError("provider down")
        return LLMResponse(text=self.text, model="stub", provider="stub", error=self.error)


def test_judge_scores_reply():
    llm = ReplyLLM("0.6")
    judge = LLMJudge(llm)
    assert judge.factual_correctness("answer", "truth") == 0.6
    assert judge.context_recall("truth", ["ctx one", "ctx two"]) == 0.6
    assert "answer" in llm.prompts[0]


@pytest.mark.parametrize("llm", [
    ReplyLLM(error="rate limited"),
    ReplyLLM(raises=True),
    ReplyLLM(text="I cannot judge this"),
])
def test_judge_failure_yields_none(llm):
    judge = LLMJudge(llm)
    assert judge.ungrounded_hallucination("answer") is None
    assert judge.rubric_score("rigor", "academic", ["cites sources"], "answer", []) is None


def test_reconstruct_question_first_line():
    judge = LLMJudge(ReplyLLM("What is validity?\nExtra text"))
    assert judge.reconstruct_question("Validity is ...") == "What is validity?"
    assert LLMJudge(ReplyLLM("   ")).reconstruct_question("x") is None
