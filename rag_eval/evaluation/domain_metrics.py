"""
Domain-quality metrics: academic rigor, citation accuracy, terminology
correctness.

Judge scores with a rubric selected by domain label. The battery only owns
the input/output shape; judging is delegated to the judge capability.
Without a judge every domain metric is None. Citation accuracy is also None
when there are no contexts to cite.
"""

import logging
from typing import List, Optional

logger = logging.getLogger(__name__)

DOMAIN_RUBRICS = {
    "university": {
        "label": "university-level academic question answering",
        "academic_rigor": [
            "Appropriate academic register and language",
            "Logical argument structure",
            "Depth of analysis",
            "Correct use of technical terms",
            "Objectivity and neutrality",
        ],
        "citation_accuracy": [
            "Main claims are supported by the source context",
            "Sources are attributed correctly",
            "No fabricated references",
            "Quotations are faithful to the original source",
        ],
        "terminology_correctness": [
            "Technical terms are used precisely and consistently",
            "Definitions are accurate",
            "No misuse of jargon",
            "Consistent with standard terminology of the field",
            "Abbreviations are used correctly",
        ],
    },
    "general": {
        "label": "general question answering",
        "academic_rigor": [
            "Clear and well-organized explanation",
            "Claims are reasoned rather than asserted",
            "Balanced and objective tone",
        ],
        "citation_accuracy": [
            "Claims drawn from the context are attributed to it",
            "No fabricated sources",
        ],
        "terminology_correctness": [
            "Terms are used with their accepted meaning",
            "No contradictory use of the same term",
        ],
    },
}

DOMAIN_ALIASES = {
    "academic": "university",
    "akademik/universitas": "university",
    "akademik": "university",
}

CRITERIA = {
    "academic_rigor": "academic rigor",
    "citation_accuracy": "citation accuracy",
    "terminology_correctness": "terminology correctness",
}

# Contexts passed per criterion, most relevant first
CONTEXT_LIMITS = {"academic_rigor": 3, "citation_accuracy": None, "terminology_correctness": 2}


def get_rubric(domain: Optional[str]) -> dict:
    """Rubric for a domain label. Unknown labels use the general rubric."""
    key = (domain or "general").strip().lower()
    key = DOMAIN_ALIASES.get(key, key)
    if key not in DOMAIN_RUBRICS:
        logger.debug("No rubric for domain '%s', using general", domain)
        key = "general"
    return DOMAIN_RUBRICS[key]


def domain_score(
    metric: str,
    answer: str,
    contexts: List[str],
    domain: Optional[str],
    judge=None,
) -> Optional[float]:
    """One rubric-based judge score."""
    if judge is None:
        return None
    if metric == "citation_accuracy" and not contexts:
        return None
    if not answer or not answer.strip():
        return 0.0

    rubric = get_rubric(domain)
    limit = CONTEXT_LIMITS[metric]
    return judge.rubric_score(
        criterion=CRITERIA[metric],
        domain_label=rubric["label"],
        criteria=rubric[metric],
        answer=answer,
        contexts=list(contexts[:limit]) if limit else list(contexts),
    )


def academic_rigor(answer, contexts, domain=None, judge=None) -> Optional[float]:
    return domain_score("academic_rigor", answer, contexts, domain, judge)


def citation_accuracy(answer, contexts, domain=None, judge=None) -> Optional[float]:
    return domain_score("citation_accuracy", answer, contexts, domain, judge)


def terminology_correctness(answer, contexts, domain=None, judge=None) -> Optional[float]:
    return domain_score("terminology_correctness", answer, contexts, domain, judge)
