"""
LLM-as-judge capability.

Every judge call asks the model for a single number in [0, 1], parses the
first number in the reply and clamps it. Any failure (LLM error, empty or
unparsable reply) yields None so the calling metric can fall back to its
lexical estimate or stay null. The judge never raises.
"""

import logging
import re
from typing import List, Optional

from rag_eval.generation import prompt_templates as pt
from rag_eval.generation.llm_manager import LLMError

logger = logging.getLogger(__name__)

NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")

MAX_CONTEXT_CHARS = 6000


def parse_score(text: str) -> Optional[float]:
    """First number in the reply, clamped to [0, 1]. None if there is none."""
    if not text:
        return None
    match = NUMBER_RE.search(text.strip())
    if not match:
        return None
    return min(1.0, max(0.0, float(match.group())))


def _join_contexts(contexts: List[str], numbered: bool = False) -> str:
    text = pt._numbered(contexts) if numbered else "\n\n".join(contexts)
    return text[:MAX_CONTEXT_CHARS]


class LLMJudge:
    """Scores answers with an LLM. `llm` is anything exposing generate() like LLMManager."""

    def __init__(self, llm, temperature: float = 0.0, max_tokens: int = 10):
        self.llm = llm
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _ask(self, prompt: str, max_tokens: Optional[int] = None) -> Optional[str]:
        try:
            response = self.llm.generate(
                prompt,
                max_tokens=max_tokens or self.max_tokens,
                temperature=self.temperature,
            )
        except LLMError as e:
            logger.warning("Judge call failed: %s", e)
            return None
        if response.error:
            logger.warning("Judge call failed: %s", response.error)
            return None
        return response.text

    def score(self, prompt: str) -> Optional[float]:
        score = parse_score(self._ask(prompt))
        if score is None:
            logger.debug("Judge reply had no usable score")
        return score

    # ============================================================
    # Metric-specific judgements
    # ============================================================

    def factual_correctness(self, answer: str, ground_truth: str) -> Optional[float]:
        return self.score(pt.FACTUAL_CORRECTNESS_PROMPT.format(
            answer=answer, ground_truth=ground_truth, instruction=pt.SCORE_INSTRUCTION,
        ))

    def context_precision(
        self, question: str, ground_truth: str, contexts: List[str],
    ) -> Optional[float]:
        return self.score(pt.CONTEXT_PRECISION_PROMPT.format(
            question=question, ground_truth=ground_truth,
            contexts=_join_contexts(contexts, numbered=True),
            instruction=pt.SCORE_INSTRUCTION,
        ))

    def context_recall(self, ground_truth: str, contexts: List[str]) -> Optional[float]:
        return self.score(pt.CONTEXT_RECALL_PROMPT.format(
            ground_truth=ground_truth, contexts=_join_contexts(contexts),
            instruction=pt.SCORE_INSTRUCTION,
        ))

    def ungrounded_hallucination(self, answer: str) -> Optional[float]:
        return self.score(pt.UNGROUNDED_HALLUCINATION_PROMPT.format(
            answer=answer, instruction=pt.SCORE_INSTRUCTION,
        ))

    def reconstruct_question(self, answer: str) -> Optional[str]:
        text = self._ask(pt.QUESTION_RECONSTRUCTION_PROMPT.format(answer=answer), max_tokens=80)
        if not text or not text.strip():
            return None
        return text.strip().splitlines()[0]

    def rubric_score(
        self,
        criterion: str,
        domain_label: str,
        criteria: List[str],
        answer: str,
        contexts: List[str],
    ) -> Optional[float]:
        return self.score(pt.DOMAIN_PROMPT.format(
            criterion=criterion,
            domain_label=domain_label,
            answer=answer,
            contexts=_join_contexts(contexts) or "(none)",
            criteria="\n".join(f"{i}. {c}" for i, c in enumerate(criteria, 1)),
            instruction=pt.SCORE_INSTRUCTION,
        ))
