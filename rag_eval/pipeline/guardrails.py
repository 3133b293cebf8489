"""
Output guardrails for guardrail-enabled configurations.

Checks a generated answer before it is scored:
  - PII (emails, phone numbers, national id numbers): redacted
  - citations to sources that were never supplied: flagged
  - empty answers: flagged

The number of violations is stored on the question as guardrails_triggered.
"""

import logging
import re
from typing import List

from pydantic import BaseModel

from rag_eval.evaluation.hallucination_metrics import extract_citations

logger = logging.getLogger(__name__)

PII_PATTERNS = {
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    "phone": re.compile(r"\b(?:\+?62|0)[\s-]?\d{2,4}[\s-]?\d{3,4}[\s-]?\d{3,4}\b"),
    "nik": re.compile(r"\b\d{16}\b"),
}


class GuardrailViolation(BaseModel):
    rule: str
    severity: str  # "low", "medium", "high"
    action: str    # "flagged" or "modified"
    description: str = ""


class GuardrailResult(BaseModel):
    text: str
    violations: List[GuardrailViolation] = []

    @property
    def triggered(self) -> int:
        return len(self.violations)


class OutputGuardrail:
    """Validates and sanitizes an answer against the contexts it was given."""

    def check(self, answer: str, contexts: List[str]) -> GuardrailResult:
        violations = []
        text = answer or ""

        if not text.strip():
            violations.append(GuardrailViolation(
                rule="empty_answer", severity="medium", action="flagged",
                description="Model returned an empty answer",
            ))

        for pii_type, pattern in PII_PATTERNS.items():
            if pattern.search(text):
                violations.append(GuardrailViolation(
                    rule=f"output_pii_{pii_type}", severity="high", action="modified",
                    description=f"Answer contained a potential {pii_type}",
                ))
                text = pattern.sub(f"[REDACTED_{pii_type.upper()}]", text)

        dangling = sorted({n for n, _ in extract_citations(text) if not 1 <= n <= len(contexts)})
        if dangling:
            violations.append(GuardrailViolation(
                rule="unverified_citation", severity="low", action="flagged",
                description=f"Citations to unknown sources: {dangling}",
            ))

        if violations:
            logger.info("Guardrails triggered: %s", ", ".join(v.rule for v in violations))
        return GuardrailResult(text=text, violations=violations)
