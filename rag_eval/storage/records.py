"""
Persisted records: evaluation runs, their questions, ablation studies.

The metric vector is embedded in the question record. It is either None
(question not evaluated, or evaluation failed) or a full MetricVector whose
core-quality fields are set; the runner writes it in one update.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from rag_eval.pipeline.pipeline_config import EvaluationConfig

# Lifecycle states shared by runs and studies
PENDING = "pending"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"

STATUSES = (PENDING, RUNNING, COMPLETED, FAILED)


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> str:
    return datetime.utcnow().isoformat()


class MetricVector(BaseModel):
    """Full metric vector for the RAG answer of one question."""
    # Core quality
    faithfulness: Optional[float] = None
    answer_relevancy: Optional[float] = None
    context_precision: Optional[float] = None
    context_recall: Optional[float] = None
    answer_correctness: Optional[float] = None
    # Domain quality
    academic_rigor: Optional[float] = None
    citation_accuracy: Optional[float] = None
    terminology_correctness: Optional[float] = None
    # Hallucination
    hallucination_rate: Optional[float] = None
    factual_consistency: Optional[float] = None
    source_attribution: Optional[float] = None
    contradiction_score: Optional[float] = None
    # Retrieval ranking
    ndcg: Optional[float] = None
    mrr: Optional[float] = None
    precision: Optional[float] = None
    # Latency (ms)
    total_ms: float = 0.0
    retrieval_ms: float = 0.0
    reranking_ms: float = 0.0
    generation_ms: float = 0.0
    agent_reasoning_ms: float = 0.0
    tool_call_ms: float = 0.0
    tokens_per_second: Optional[float] = None


class BaselineMetrics(BaseModel):
    """Metrics computed for the ungrounded baseline answer."""
    answer_relevancy: Optional[float] = None
    answer_correctness: Optional[float] = None
    hallucination_rate: Optional[float] = None


class EvaluationRun(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    config: EvaluationConfig = Field(default_factory=EvaluationConfig)
    status: str = PENDING
    total_questions: int = 0
    completed_questions: int = 0
    failed_questions: int = 0
    error: Optional[str] = None
    study_id: Optional[str] = None
    created_at: str = Field(default_factory=utcnow)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None


class EvaluationQuestion(BaseModel):
    id: str = Field(default_factory=new_id)
    run_id: str
    position: int = 0
    question: str
    ground_truth: Optional[str] = None
    relevant_chunk_ids: Optional[List[str]] = None
    rag_answer: Optional[str] = None
    baseline_answer: Optional[str] = None
    retrieved_contexts: List[str] = []
    retrieved_chunk_ids: List[str] = []
    metrics: Optional[MetricVector] = None
    baseline_metrics: Optional[BaselineMetrics] = None
    rag_latency_ms: Optional[int] = None
    baseline_latency_ms: Optional[int] = None
    retrieval_strategy: Optional[str] = None
    reranker_strategy: Optional[str] = None
    agent_steps_used: Optional[int] = None
    guardrails_triggered: Optional[int] = None
    error: Optional[str] = None
    created_at: str = Field(default_factory=utcnow)


class AblationResult(BaseModel):
    """Per-configuration outcome of an ablation study."""
    config_name: str
    description: str = ""
    status: str = COMPLETED
    run_id: Optional[str] = None
    questions_evaluated: int = 0
    agent_steps: int = 0
    metrics: MetricVector = Field(default_factory=MetricVector)
    error: Optional[str] = None


class AblationStudy(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    status: str = PENDING
    configurations: List[EvaluationConfig] = []
    questions: List[dict] = []
    results: List[AblationResult] = []
    report: Optional[str] = None
    error: Optional[str] = None
    created_at: str = Field(default_factory=utcnow)
    completed_at: Optional[str] = None
