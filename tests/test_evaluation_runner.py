"""Run lifecycle: per-question isolation, progress, validation, cancellation."""

import pytest

from rag_eval.errors import EvaluationCancelled, RunConflictError, RunNotFoundError, ValidationError
from rag_eval.evaluation.evaluation_runner import CancellationToken, EvaluationRunner
from rag_eval.pipeline.pipeline_config import EvaluationConfig
from rag_eval.storage.records import COMPLETED, FAILED, PENDING, RUNNING

from conftest import BASELINE_ANSWER


def test_create_run_is_pending_with_questions(runner, questions):
    run = runner.create_run("hybrid-v1", EvaluationConfig(), questions)
    assert run.status == PENDING
    assert run.total_questions == 2
    assert run.completed_questions == 0


def test_create_run_requires_name(runner):
    with pytest.raises(ValidationError):
        runner.create_run("", EvaluationConfig())


def test_one_failing_question_does_not_fail_the_run(runner, store, questions):
    run = runner.create_run("hybrid-v1", EvaluationConfig(), questions)
    run = runner.execute(run.id)

    assert run.status == COMPLETED
    assert run.completed_questions == 1
    assert run.failed_questions == 1
    assert run.completed_at is not None

    ok, failed = store.list_questions(run.id)
    assert ok.metrics is not None
    assert ok.metrics.faithfulness == 1.0
    assert ok.metrics.ndcg == 1.0
    assert ok.retrieved_chunk_ids[0] == "c1"
    assert ok.baseline_answer == BASELINE_ANSWER
    assert ok.baseline_metrics.hallucination_rate == 0.4
    assert ok.rag_latency_ms is not None
    assert ok.error is None

    assert failed.metrics is None
    assert failed.rag_answer is None
    assert "stub failure" in failed.error


def test_metric_time_is_not_in_latency(store, retriever, llm, detector, questions):
    class SlowJudge:
        def __getattr__(self, name):
            import time

            def slow(*args, **kwargs):
                time.sleep(0.05)
                return None
            return slow

    runner = EvaluationRunner(store, retriever, llm=llm, judge=SlowJudge(), detector=detector)
    run = runner.create_run("latency", EvaluationConfig(), questions[:1])
    runner.execute(run.id)
    question = store.list_questions(run.id)[0]
    # ten judge calls at 50ms each would dominate if they were traced
    assert question.metrics.total_ms < 200


def test_execute_validates_before_state_change(runner):
    with pytest.raises(ValidationError):
        runner.execute("")
    with pytest.raises(RunNotFoundError):
        runner.execute("missing")


def test_unknown_embedding_model_rejected_before_running(runner, store, questions):
    run = runner.create_run("bad", EvaluationConfig(embedding_model="no-such-model"), questions)
    with pytest.raises(ValidationError):
        runner.execute(run.id)
    assert store.get_run(run.id).status == PENDING


def test_running_run_cannot_be_executed_again(runner, store, questions):
    run = runner.create_run("busy", EvaluationConfig(), questions)
    store.update_run(run.id, status=RUNNING)
    with pytest.raises(RunConflictError):
        runner.execute(run.id)


def test_completed_run_can_be_re_executed(runner, store, questions):
    run = runner.create_run("again", EvaluationConfig(), questions)
    runner.execute(run.id)
    run = runner.execute(run.id)
    assert run.status == COMPLETED
    assert run.completed_questions == 1


def test_cancellation_marks_run_failed_and_keeps_progress(runner, store, questions):
    token = CancellationToken()

    class CancellingStore:
        """Cancels right after the first question is persisted."""

        def __init__(self, inner):
            self.inner = inner

        def __getattr__(self, name):
            return getattr(self.inner, name)

        def update_run(self, run_id, expected_status=None, **fields):
            result = self.inner.update_run(run_id, expected_status=expected_status, **fields)
            if fields.get("completed_questions") == 1:
                token.cancel()
            return result

    good_questions = [questions[0], questions[0]]
    run = runner.create_run("cancel", EvaluationConfig(), good_questions)
    runner.store = CancellingStore(store)

    with pytest.raises(EvaluationCancelled):
        runner.execute(run.id, cancel_token=token)

    run = store.get_run(run.id)
    assert run.status == FAILED
    assert run.error == "cancelled"
    assert run.completed_questions == 1


def test_store_failure_marks_run_failed(runner, store, questions):
    run = runner.create_run("broken-store", EvaluationConfig(), questions)

    original = store.update_question

    def exploding_update_question(*args, **kwargs):
        raise OSError("disk full")

    store.update_question = exploding_update_question
    try:
        with pytest.raises(OSError):
            runner.execute(run.id)
    finally:
        store.update_question = original

    run = store.get_run(run.id)
    assert run.status == FAILED
    assert "disk full" in run.error


def test_judge_disabled_leaves_judge_only_metrics_none(runner, store, questions):
    run = runner.create_run("no-judge", EvaluationConfig(judge_enabled=False), questions[:1])
    runner.execute(run.id)
    metrics = store.list_questions(run.id)[0].metrics
    assert metrics.academic_rigor is None
    assert metrics.answer_correctness is not None


def test_baseline_config_skips_retrieval(runner, store, questions):
    run = runner.create_run("no-rag", EvaluationConfig(use_rag=False), questions[:1])
    runner.execute(run.id)
    question = store.list_questions(run.id)[0]
    assert question.retrieved_chunk_ids == []
    assert question.retrieval_strategy == "none"
    assert question.metrics.faithfulness == 0.0
