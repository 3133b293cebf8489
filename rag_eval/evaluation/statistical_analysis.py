"""
Paired significance testing of RAG answers against baseline answers.

For each metric scored on both paths of a run (relevancy, correctness,
hallucination rate) the per-question pairs are compared with:
  - Shapiro-Wilk normality of both samples and of the differences
  - paired t-test when all three look normal, Wilcoxon signed-rank otherwise
  - Cohen's d on the paired differences
  - bootstrap 95% CI of the mean difference (rag - baseline)

alpha defaults to 0.05; the bootstrap is seeded so reports are reproducible.
"""

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np
from pydantic import BaseModel

logger = logging.getLogger(__name__)

PAIRED_METRICS = ["answer_relevancy", "answer_correctness", "hallucination_rate"]


class StatisticalResult(BaseModel):
    """Outcome of one paired comparison."""
    metric: str
    n: int
    mean_rag: float
    mean_baseline: float
    difference: float
    p_value: float
    test: str
    significant: bool
    effect_size: float
    effect_label: str
    ci_lower: float
    ci_upper: float

    def summary(self) -> str:
        return (
            f"{self.metric}: rag={self.mean_rag:.4f} baseline={self.mean_baseline:.4f} "
            f"delta={self.difference:+.4f} p={self.p_value:.4f} ({self.test}) "
            f"d={self.effect_size:.3f} ({self.effect_label}) "
            f"CI=[{self.ci_lower:.4f}, {self.ci_upper:.4f}]"
        )


def _paired_arrays(a: List[Optional[float]], b: List[Optional[float]]) -> Tuple[np.ndarray, np.ndarray]:
    """Drop pairs where either side is missing."""
    x = np.array([np.nan if v is None else v for v in a], dtype=float)
    y = np.array([np.nan if v is None else v for v in b], dtype=float)
    keep = ~(np.isnan(x) | np.isnan(y))
    return x[keep], y[keep]


# ============================================================
# Tests
# ============================================================

def is_normal(data, alpha: float = 0.05) -> bool:
    """Shapiro-Wilk; fewer than 3 points or a constant sample count as non-normal."""
    from scipy import stats

    arr = np.asarray(data, dtype=float)
    if len(arr) < 3 or np.ptp(arr) == 0:
        return False
    _, p_value = stats.shapiro(arr)
    return p_value > alpha


def paired_test(x: np.ndarray, y: np.ndarray, alpha: float = 0.05) -> Tuple[str, float]:
    """(test name, p-value) for paired samples x (rag) and y (baseline)."""
    from scipy import stats

    if len(x) < 3:
        return "insufficient_data", 1.0

    if is_normal(x, alpha) and is_normal(y, alpha) and is_normal(x - y, alpha):
        _, p_value = stats.ttest_rel(x, y)
        return "paired_t_test", float(p_value)

    if not np.any(x - y):
        return "wilcoxon_zero_diff", 1.0
    _, p_value = stats.wilcoxon(x, y, alternative="two-sided")
    return "wilcoxon_signed_rank", float(p_value)


def cohens_d(x: np.ndarray, y: np.ndarray) -> Tuple[float, str]:
    """Effect size of the paired differences with Cohen's labels."""
    if len(x) < 2:
        return 0.0, "insufficient_data"
    diff = x - y
    sd = np.std(diff, ddof=1)
    d = float(np.mean(diff) / sd) if sd > 0 else 0.0

    size = abs(d)
    if size < 0.2:
        label = "negligible"
    elif size < 0.5:
        label = "small"
    elif size < 0.8:
        label = "medium"
    else:
        label = "large"
    return d, label


def bootstrap_ci(
    x: np.ndarray,
    y: np.ndarray,
    n_bootstrap: int = 10000,
    ci_level: float = 0.95,
    seed: int = 42,
) -> Tuple[float, float]:
    """Percentile bootstrap CI for mean(x - y)."""
    if len(x) < 3:
        return 0.0, 0.0
    rng = np.random.RandomState(seed)
    diff = x - y
    idx = rng.randint(0, len(diff), size=(n_bootstrap, len(diff)))
    means = diff[idx].mean(axis=1)
    tail = (1 - ci_level) / 2 * 100
    return float(np.percentile(means, tail)), float(np.percentile(means, 100 - tail))


def compare_paired(
    metric: str,
    rag_scores: List[Optional[float]],
    baseline_scores: List[Optional[float]],
    alpha: float = 0.05,
    n_bootstrap: int = 10000,
    seed: int = 42,
) -> StatisticalResult:
    x, y = _paired_arrays(rag_scores, baseline_scores)
    test, p_value = paired_test(x, y, alpha)
    d, label = cohens_d(x, y)
    ci_lower, ci_upper = bootstrap_ci(x, y, n_bootstrap=n_bootstrap, seed=seed)

    mean_rag = float(np.mean(x)) if len(x) else 0.0
    mean_baseline = float(np.mean(y)) if len(y) else 0.0
    return StatisticalResult(
        metric=metric,
        n=len(x),
        mean_rag=mean_rag,
        mean_baseline=mean_baseline,
        difference=mean_rag - mean_baseline,
        p_value=p_value,
        test=test,
        significant=p_value < alpha,
        effect_size=d,
        effect_label=label,
        ci_lower=ci_lower,
        ci_upper=ci_upper,
    )


# ============================================================
# Run-level comparison
# ============================================================

def compare_rag_vs_baseline(
    store,
    run_id: str,
    alpha: float = 0.05,
    n_bootstrap: int = 10000,
    seed: int = 42,
) -> Dict[str, StatisticalResult]:
    """Paired comparison per metric over the evaluated questions of a run."""
    questions = [
        q for q in store.list_questions(run_id)
        if q.metrics is not None and q.baseline_metrics is not None
    ]
    results = {}
    for metric in PAIRED_METRICS:
        results[metric] = compare_paired(
            metric,
            [getattr(q.metrics, metric) for q in questions],
            [getattr(q.baseline_metrics, metric) for q in questions],
            alpha=alpha,
            n_bootstrap=n_bootstrap,
            seed=seed,
        )
        logger.debug("%s", results[metric].summary())
    return results
