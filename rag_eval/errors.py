"""
Exception hierarchy for the evaluation engine.

Per-question errors are caught inside the run loop and never reach callers.
Everything raised from here that escapes a runner is a run-level failure or a
validation failure.
"""


class EvaluationError(Exception):
    """Base class for evaluation engine errors."""
    pass


class ValidationError(EvaluationError):
    """Missing run id, malformed configuration or bad input. Raised before any state change."""
    pass


class RunNotFoundError(EvaluationError):
    """No evaluation run with the given id."""
    pass


class StudyNotFoundError(EvaluationError):
    """No ablation study with the given id."""
    pass


class RunConflictError(EvaluationError):
    """Another orchestrator already owns the run (single writer per run id)."""
    pass


class EvaluationCancelled(EvaluationError):
    """Run stopped at a question boundary because its cancel token was set."""
    pass


class MetricError(EvaluationError):
    """A required metric could not be computed for a question."""
    pass


class StoreError(EvaluationError):
    """Persistent store unavailable or a write failed."""
    pass
