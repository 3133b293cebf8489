"""
Evaluation Runner - drives one evaluation run.

State machine per run: pending → running → {completed, failed}

For each question:
  1. RAG path (retrieval, reranking, generation) under a latency tracer
  2. Baseline path (question only)
  3. Metric battery for both answers (not traced)
  4. One store update with answers + metric vector, then one progress update

Failure handling:
  - Per-question errors (retrieval, generation, core metric) are logged,
    recorded on the question and counted in failed_questions; the run goes on
  - Errors outside the per-question boundary (store failures, cancellation)
    flip the run to failed, keep persisted progress and propagate
  - Validation happens before any state transition

completed_questions counts questions that produced a usable metric vector.
"""

import logging
import threading
import time
from typing import Dict, List, Optional

from rag_eval.errors import EvaluationCancelled, ValidationError
from rag_eval.embedding.embedding_manager import MODEL_CONFIGS, EmbeddingManager
from rag_eval.evaluation.metric_battery import compute_baseline_metrics, compute_metric_vector
from rag_eval.generation.hallucination_detector import HallucinationDetector
from rag_eval.generation.judge import LLMJudge
from rag_eval.pipeline.pipeline_config import EvaluationConfig, build_config
from rag_eval.pipeline.rag_pipeline import RAGPipeline
from rag_eval.storage.records import (
    COMPLETED,
    FAILED,
    PENDING,
    RUNNING,
    EvaluationQuestion,
    EvaluationRun,
    utcnow,
)

logger = logging.getLogger(__name__)

# Fields cleared when a question fails, so a re-executed run never keeps stale results
CLEARED_ON_FAILURE = {
    "rag_answer": None,
    "baseline_answer": None,
    "retrieved_contexts": [],
    "retrieved_chunk_ids": [],
    "metrics": None,
    "baseline_metrics": None,
    "rag_latency_ms": None,
    "baseline_latency_ms": None,
}


class CancellationToken:
    """Cooperative cancellation, checked between questions."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class EvaluationRunner:
    """
    Runs evaluation runs stored in a store.

    Usage:
        runner = EvaluationRunner(store, retriever, llm=LLMManager("ollama", "llama3.1"))
        run = runner.create_run("hybrid-v1", config, questions)
        run = runner.execute(run.id)
    """

    def __init__(
        self,
        store,
        retriever,
        llm=None,
        judge=None,
        embedder=None,
        detector: Optional[HallucinationDetector] = None,
        reranker=None,
        agent=None,
        guardrail=None,
        pipeline_factory=None,
    ):
        self.store = store
        self.retriever = retriever
        self.llm = llm
        self.judge = judge
        self.embedder = embedder
        self.detector = detector or HallucinationDetector()
        self.reranker = reranker
        self.agent = agent
        self.guardrail = guardrail
        self.pipeline_factory = pipeline_factory or RAGPipeline
        self._embedders: Dict[str, EmbeddingManager] = {}

    # ============================================================
    # Run creation
    # ============================================================

    def create_run(
        self,
        name: str,
        config: Optional[EvaluationConfig] = None,
        questions: Optional[List[dict]] = None,
        description: str = "",
        study_id: Optional[str] = None,
    ) -> EvaluationRun:
        """Create a pending run and attach its questions."""
        if not name:
            raise ValidationError("Run name is required")
        if isinstance(config, dict):
            config = build_config(config)
        run = self.store.create_run(EvaluationRun(
            name=name,
            description=description,
            config=config or EvaluationConfig(),
            study_id=study_id,
        ))
        if questions:
            self.store.add_questions(run.id, [
                EvaluationQuestion(
                    run_id=run.id,
                    question=q["question"],
                    ground_truth=q.get("ground_truth"),
                    relevant_chunk_ids=q.get("relevant_chunk_ids"),
                )
                for q in questions
            ])
        return self.store.get_run(run.id)

    # ============================================================
    # Capabilities per configuration
    # ============================================================

    def _embedder_for(self, config: EvaluationConfig):
        if self.embedder is not None or not config.embedding_model:
            return self.embedder
        name = config.embedding_model
        if name not in self._embedders:
            self._embedders[name] = EmbeddingManager(name)
        return self._embedders[name]

    def _judge_for(self, config: EvaluationConfig, pipeline):
        if not config.judge_enabled:
            return None
        return self.judge if self.judge is not None else LLMJudge(pipeline.llm)

    def _build_pipeline(self, config: EvaluationConfig):
        if config.embedding_model and config.embedding_model not in MODEL_CONFIGS:
            raise ValidationError(f"Unknown embedding model: {config.embedding_model}")
        return self.pipeline_factory(
            config,
            self.retriever,
            llm=self.llm,
            reranker=self.reranker,
            agent=self.agent,
            guardrail=self.guardrail,
        )

    # ============================================================
    # Single question
    # ============================================================

    def _evaluate_question(
        self,
        pipeline,
        config: EvaluationConfig,
        question: EvaluationQuestion,
    ) -> dict:
        """Answer both ways and score. Returns the fields to persist."""
        rag = pipeline.answer_with_rag(question.question)
        baseline = pipeline.answer_baseline(question.question)

        judge = self._judge_for(config, pipeline)
        embedder = self._embedder_for(config)

        metrics = compute_metric_vector(
            question=question.question,
            answer=rag.answer,
            contexts=rag.contexts,
            ground_truth=question.ground_truth,
            retrieved_ids=rag.chunk_ids,
            relevant_ids=question.relevant_chunk_ids,
            domain=config.domain,
            latency=rag.latency,
            tokens_output=rag.tokens_output,
            judge=judge,
            embedder=embedder,
            detector=self.detector,
        )
        baseline_metrics = compute_baseline_metrics(
            question=question.question,
            answer=baseline.answer,
            ground_truth=question.ground_truth,
            judge=judge,
            embedder=embedder,
            detector=self.detector,
        )

        return {
            "rag_answer": rag.answer,
            "baseline_answer": baseline.answer,
            "retrieved_contexts": rag.contexts,
            "retrieved_chunk_ids": rag.chunk_ids,
            "metrics": metrics,
            "baseline_metrics": baseline_metrics,
            "rag_latency_ms": int(round(rag.latency.get("total", 0.0))),
            "baseline_latency_ms": int(round(baseline.latency_ms)),
            "retrieval_strategy": rag.retrieval_strategy,
            "reranker_strategy": rag.reranker_strategy,
            "agent_steps_used": rag.agent_steps_used,
            "guardrails_triggered": rag.guardrails_triggered,
            "error": None,
        }

    # ============================================================
    # Run execution
    # ============================================================

    def execute(
        self,
        run_id: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> EvaluationRun:
        """
        Execute every question of a run.

        Raises:
            ValidationError: missing run id or unusable configuration
            RunNotFoundError: unknown run id
            RunConflictError: the run is already being executed
            EvaluationCancelled: cancel_token was set (run marked failed)
            StoreError: persistence failed (run marked failed if possible)
        """
        if not run_id:
            raise ValidationError("Run id is required")

        run = self.store.get_run(run_id)
        config = build_config(run.config.model_dump())
        pipeline = self._build_pipeline(config)

        run = self.store.update_run(
            run_id,
            expected_status=(PENDING, COMPLETED, FAILED),
            status=RUNNING,
            started_at=utcnow(),
            completed_at=None,
            error=None,
            completed_questions=0,
            failed_questions=0,
        )
        logger.info("Starting evaluation run %s (%s) with config %s",
                    run.id, run.name, config.name)

        completed = 0
        failed = 0
        start = time.perf_counter()
        try:
            questions = self.store.list_questions(run_id)
            total = len(questions)
            for idx, question in enumerate(questions):
                if cancel_token is not None and cancel_token.cancelled:
                    raise EvaluationCancelled(
                        f"Run {run_id} cancelled after {idx}/{total} questions"
                    )

                try:
                    fields = self._evaluate_question(pipeline, config, question)
                except Exception as e:
                    failed += 1
                    logger.error("Question %s failed (%d/%d): %s", question.id, idx + 1, total, e)
                    self.store.update_question(
                        run_id, question.id, error=str(e), **CLEARED_ON_FAILURE
                    )
                    self.store.update_run(run_id, failed_questions=failed)
                    continue

                self.store.update_question(run_id, question.id, **fields)
                completed += 1
                self.store.update_run(run_id, completed_questions=completed)

                m = fields["metrics"]
                logger.info(
                    "[%d/%d] faithfulness=%.3f relevancy=%.3f hallucination=%s latency=%dms",
                    idx + 1, total, m.faithfulness, m.answer_relevancy,
                    f"{m.hallucination_rate:.3f}" if m.hallucination_rate is not None else "n/a",
                    fields["rag_latency_ms"],
                )

            run = self.store.update_run(
                run_id,
                status=COMPLETED,
                completed_at=utcnow(),
                completed_questions=completed,
                failed_questions=failed,
            )
        except EvaluationCancelled as e:
            logger.warning("%s", e)
            self._mark_failed(run_id, "cancelled")
            raise
        except Exception as e:
            logger.error("Evaluation run %s failed: %s", run_id, e)
            self._mark_failed(run_id, str(e))
            raise

        logger.info(
            "Run %s completed: %d/%d questions evaluated, %d failed (%.1fs)",
            run_id, completed, run.total_questions, failed, time.perf_counter() - start,
        )
        return run

    def _mark_failed(self, run_id: str, error: str):
        try:
            self.store.update_run(run_id, status=FAILED, completed_at=utcnow(), error=error)
        except Exception as e:
            logger.error("Could not mark run %s as failed: %s", run_id, e)
