"""
Ablation studies: the same question set through several configurations.

Each configuration becomes a child evaluation run (study_id set) executed by
the EvaluationRunner, so per-question failure handling and persistence are
identical to standalone runs. The per-configuration result is the aggregate
metric snapshot of that run.

Ranking: mean answer_correctness descending, ties broken by lower
hallucination_rate. Failed configurations, including those where no
question could be evaluated, get their own result entry (status "failed")
and are left out of the ranking.
"""

import logging
from typing import List, Optional, Union

from tqdm import tqdm

from rag_eval.errors import EvaluationCancelled, ValidationError
from rag_eval.evaluation.aggregator import snapshot
from rag_eval.evaluation.question_sets import ACADEMIC_QUESTIONS
from rag_eval.pipeline.pipeline_config import (
    ABLATION_CONFIGS,
    EvaluationConfig,
    build_config,
    get_ablation_config,
)
from rag_eval.storage.records import (
    COMPLETED,
    FAILED,
    PENDING,
    RUNNING,
    AblationResult,
    AblationStudy,
    utcnow,
)

logger = logging.getLogger(__name__)

# Used when a study is created without explicit configurations
DEFAULT_STUDY_CONFIGS = 5


def _resolve_config(item: Union[str, dict, EvaluationConfig]) -> EvaluationConfig:
    if isinstance(item, EvaluationConfig):
        return item
    if isinstance(item, str):
        return get_ablation_config(item)
    if isinstance(item, dict):
        return build_config(item)
    raise ValidationError(f"Unsupported configuration entry: {item!r}")


def _or_one(value: Optional[float]) -> float:
    return value if value is not None else 1.0


def rank_results(results: List[AblationResult]) -> List[AblationResult]:
    """Completed results with at least one evaluated question, best first."""
    completed = [r for r in results if r.status == COMPLETED and r.questions_evaluated > 0]

    def key(r: AblationResult):
        correctness = r.metrics.answer_correctness or 0.0
        return (-correctness, _or_one(r.metrics.hallucination_rate))

    return sorted(completed, key=key)


def _pct(value: Optional[float]) -> str:
    return f"{value * 100:.1f}%" if value is not None else "n/a"


def generate_report(study: AblationStudy, results: List[AblationResult]) -> str:
    """Markdown report for a finished study."""
    ranked = rank_results(results)
    n_questions = len(study.questions)

    lines = [f"# Ablation Study: {study.name}", ""]
    if study.description:
        lines += [study.description, ""]

    lines += [
        "## Summary",
        "",
        f"- Configurations: {len(results)}",
        f"- Questions: {n_questions}",
    ]
    failed = [r for r in results if r.status == FAILED]
    if failed:
        lines.append(f"- Failed configurations: {', '.join(r.config_name for r in failed)}")

    if ranked:
        best = ranked[0]
        lines.append(
            f"- Best configuration: **{best.config_name}** "
            f"(answer correctness {_pct(best.metrics.answer_correctness)})"
        )
        if best.description:
            lines.append(f"  - {best.description}")
        top_faith = max(ranked, key=lambda r: r.metrics.faithfulness or 0.0)
        lines.append(
            f"- Best faithfulness: {top_faith.config_name} ({_pct(top_faith.metrics.faithfulness)})"
        )
        top_rel = max(ranked, key=lambda r: r.metrics.answer_relevancy or 0.0)
        lines.append(
            f"- Best relevancy: {top_rel.config_name} ({_pct(top_rel.metrics.answer_relevancy)})"
        )
        least = min(ranked, key=lambda r: _or_one(r.metrics.hallucination_rate))
        lines.append(
            f"- Lowest hallucination: {least.config_name} ({_pct(least.metrics.hallucination_rate)})"
        )
        lowest = min(ranked, key=lambda r: r.metrics.total_ms)
        lines.append(f"- Lowest latency: {lowest.config_name} ({lowest.metrics.total_ms:.0f}ms)")
    else:
        lines.append("- Best configuration: none (every configuration failed)")

    lines += [
        "",
        "## Results",
        "",
        "| Rank | Configuration | Correctness | Faithfulness | Relevancy | Precision | Hallucination | Agent Steps |",
        "|------|---------------|-------------|--------------|-----------|-----------|---------------|-------------|",
    ]
    for rank, r in enumerate(ranked, 1):
        m = r.metrics
        lines.append(
            f"| {rank} | {r.config_name} | {_pct(m.answer_correctness)} | {_pct(m.faithfulness)} | "
            f"{_pct(m.answer_relevancy)} | {_pct(m.context_precision)} | {_pct(m.hallucination_rate)} | "
            f"{r.agent_steps} |"
        )

    lines += [
        "",
        "## Latency",
        "",
        "| Configuration | Total | Retrieval | Reranking | Generation | Agent Reasoning |",
        "|---------------|-------|-----------|-----------|------------|-----------------|",
    ]
    for r in ranked:
        m = r.metrics
        lines.append(
            f"| {r.config_name} | {m.total_ms:.0f}ms | {m.retrieval_ms:.0f}ms | "
            f"{m.reranking_ms:.0f}ms | {m.generation_ms:.0f}ms | {m.agent_reasoning_ms:.0f}ms |"
        )

    return "\n".join(lines) + "\n"


class AblationRunner:
    """
    Creates and runs ablation studies on top of an EvaluationRunner.

    Usage:
        ablation = AblationRunner(runner)
        study = ablation.create_study("retrieval", ["vector_only", "hybrid_no_rerank"])
        study = ablation.run_study(study.id)
        print(study.report)
    """

    def __init__(self, runner, show_progress: bool = True):
        self.runner = runner
        self.store = runner.store
        self.show_progress = show_progress

    def create_study(
        self,
        name: str,
        configurations: Optional[List[Union[str, dict, EvaluationConfig]]] = None,
        questions: Optional[List[dict]] = None,
        description: str = "",
    ) -> AblationStudy:
        if not name:
            raise ValidationError("Study name is required")
        configs = (
            [_resolve_config(c) for c in configurations]
            if configurations
            else ABLATION_CONFIGS[:DEFAULT_STUDY_CONFIGS]
        )
        if questions is None:
            questions = [q.to_run_input() for q in ACADEMIC_QUESTIONS]
        if not questions:
            raise ValidationError("An ablation study needs at least one question")
        for q in questions:
            if not q.get("question"):
                raise ValidationError(f"Question entry without text: {q!r}")

        study = self.store.create_study(AblationStudy(
            name=name,
            description=description or (
                f"Ablation study comparing {len(configs)} configurations "
                f"on {len(questions)} questions"
            ),
            configurations=configs,
            questions=questions,
        ))
        logger.info("Created ablation study %s (%d configs, %d questions)",
                    study.id, len(configs), len(questions))
        return study

    def _run_config(self, study: AblationStudy, config: EvaluationConfig, cancel_token) -> AblationResult:
        run = self.runner.create_run(
            name=f"{study.name} / {config.name}",
            config=config,
            questions=study.questions,
            description=config.description,
            study_id=study.id,
        )
        run = self.runner.execute(run.id, cancel_token=cancel_token)
        evaluated = [q for q in self.store.list_questions(run.id) if q.metrics is not None]
        vectors = [q.metrics for q in evaluated]
        if not vectors:
            logger.warning("Configuration %s evaluated no question (run %s)", config.name, run.id)
            return AblationResult(
                config_name=config.name,
                description=config.description,
                status=FAILED,
                run_id=run.id,
                error="no question evaluated",
            )
        return AblationResult(
            config_name=config.name,
            description=config.description,
            status=COMPLETED,
            run_id=run.id,
            questions_evaluated=len(vectors),
            metrics=snapshot(vectors),
            agent_steps=sum(q.agent_steps_used or 0 for q in evaluated),
        )

    def run_study(self, study_id: str, cancel_token=None) -> AblationStudy:
        """
        Run every configuration of a study and store results and report.

        Raises:
            StudyNotFoundError: unknown study id
            RunConflictError: the study is already running
            EvaluationCancelled: cancel_token was set (study marked failed)
        """
        if not study_id:
            raise ValidationError("Study id is required")
        study = self.store.update_study(
            study_id,
            expected_status=(PENDING, COMPLETED, FAILED),
            status=RUNNING,
            results=[],
            report=None,
            error=None,
            completed_at=None,
        )
        logger.info("Running ablation study %s: %d configurations",
                    study.name, len(study.configurations))

        results: List[AblationResult] = []
        try:
            configs = tqdm(
                study.configurations,
                desc="Ablation",
                unit="config",
                disable=not self.show_progress,
            )
            for config in configs:
                try:
                    result = self._run_config(study, config, cancel_token)
                except EvaluationCancelled:
                    raise
                except Exception as e:
                    logger.error("Configuration %s failed: %s", config.name, e)
                    result = AblationResult(
                        config_name=config.name,
                        description=config.description,
                        status=FAILED,
                        error=str(e),
                    )
                results.append(result)
                self.store.update_study(study_id, results=results)

            report = generate_report(study, results)
            study = self.store.update_study(
                study_id,
                status=COMPLETED,
                results=results,
                report=report,
                completed_at=utcnow(),
            )
        except Exception as e:
            logger.error("Ablation study %s failed: %s", study_id, e)
            try:
                self.store.update_study(
                    study_id, status=FAILED, error=str(e), completed_at=utcnow()
                )
            except Exception as store_error:
                logger.error("Could not mark study %s as failed: %s", study_id, store_error)
            raise

        ranked = rank_results(results)
        logger.info("Ablation study %s completed; best configuration: %s",
                    study_id, ranked[0].config_name if ranked else "none")
        return study
