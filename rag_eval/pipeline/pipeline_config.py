"""
Evaluation and ablation configurations.

A single EvaluationConfig describes one pipeline variant under test: how
context is retrieved (strategy, top_k, min_similarity, chunking index),
which optional stages run (reranking, agentic mode, guardrails), and which
models generate and judge. Configs are explicit objects handed to the
runners; nothing is read from process-wide state during a run.

ABLATION_CONFIGS holds the predefined variants for ablation studies:
  1. baseline_no_rag (Control): LLM only, no retrieval
  2. vector_only / bm25_only / hybrid_no_rerank: retrieval strategy
  3. hybrid_cross_encoder: + reranking
  4. semantic_chunking / hierarchical_chunking: chunking strategy
  5. agentic_mode / full_system: + agent, + guardrails
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from rag_eval.errors import ValidationError

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "config.yaml"

ENV_PREFIX = "RAG_EVAL_"


class EvaluationConfig(BaseModel):
    """Configuration for one evaluation run / ablation variant."""
    name: str = "default"
    description: str = ""
    use_rag: bool = True
    retrieval_strategy: Literal["vector", "keyword", "hybrid"] = "hybrid"
    chunking_strategy: Literal[
        "recursive", "semantic", "sentence_window", "hierarchical"
    ] = "recursive"
    use_reranker: bool = False
    reranker_strategy: Optional[str] = None
    use_agentic_mode: bool = False
    use_guardrails: bool = False
    top_k: int = Field(default=5, ge=1, le=50)
    min_similarity: float = Field(default=0.3, ge=0.0, le=1.0)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    llm_provider: str = "ollama"
    llm_model: str = "llama3.1:8b-instruct-q4_K_M"
    domain: str = "university"
    judge_enabled: bool = True
    embedding_model: Optional[str] = None


# ============================================================
# Predefined ablation variants
# ============================================================

ABLATION_CONFIGS: List[EvaluationConfig] = [
    EvaluationConfig(
        name="baseline_no_rag",
        description="Baseline without retrieval: the model answers from its own knowledge",
        use_rag=False,
        retrieval_strategy="vector",
    ),
    EvaluationConfig(
        name="vector_only",
        description="Vector similarity search only",
        retrieval_strategy="vector",
    ),
    EvaluationConfig(
        name="bm25_only",
        description="Okapi BM25 keyword search only",
        retrieval_strategy="keyword",
    ),
    EvaluationConfig(
        name="hybrid_no_rerank",
        description="Hybrid retrieval (vector + BM25) without reranking",
        retrieval_strategy="hybrid",
    ),
    EvaluationConfig(
        name="hybrid_cross_encoder",
        description="Hybrid retrieval with cross-encoder reranking",
        retrieval_strategy="hybrid",
        use_reranker=True,
        reranker_strategy="cross_encoder",
    ),
    EvaluationConfig(
        name="semantic_chunking",
        description="Hybrid retrieval with reranking over semantically chunked documents",
        retrieval_strategy="hybrid",
        chunking_strategy="semantic",
        use_reranker=True,
        reranker_strategy="cross_encoder",
    ),
    EvaluationConfig(
        name="hierarchical_chunking",
        description="Hybrid retrieval with reranking over parent-child chunks",
        retrieval_strategy="hybrid",
        chunking_strategy="hierarchical",
        use_reranker=True,
        reranker_strategy="cross_encoder",
    ),
    EvaluationConfig(
        name="agentic_mode",
        description="Agentic RAG with multi-step reasoning and tool calls",
        retrieval_strategy="hybrid",
        use_reranker=True,
        reranker_strategy="cross_encoder",
        use_agentic_mode=True,
    ),
    EvaluationConfig(
        name="full_system",
        description="All components: hybrid retrieval, reranking, semantic chunks, agent and guardrails",
        retrieval_strategy="hybrid",
        chunking_strategy="semantic",
        use_reranker=True,
        reranker_strategy="cross_encoder",
        use_agentic_mode=True,
        use_guardrails=True,
    ),
]

ABLATION_REGISTRY: Dict[str, EvaluationConfig] = {c.name: c for c in ABLATION_CONFIGS}


def get_ablation_config(name: str) -> EvaluationConfig:
    """Get a predefined ablation variant by name."""
    if name not in ABLATION_REGISTRY:
        available = ", ".join(ABLATION_REGISTRY.keys())
        raise ValidationError(f"Unknown ablation config '{name}'. Available: {available}")
    return ABLATION_REGISTRY[name]


# ============================================================
# Loading
# ============================================================

def build_config(data: Dict[str, Any]) -> EvaluationConfig:
    """Validate a raw mapping into an EvaluationConfig."""
    try:
        return EvaluationConfig(**data)
    except PydanticValidationError as e:
        raise ValidationError(f"Malformed evaluation config: {e}") from e
    except TypeError as e:
        raise ValidationError(f"Malformed evaluation config: {e}") from e


def _env_overrides() -> Dict[str, str]:
    """Collect RAG_EVAL_* variables (after loading .env)."""
    env_path = PROJECT_ROOT / ".env"
    if env_path.exists():
        from dotenv import load_dotenv
        load_dotenv(env_path)

    overrides = {}
    for field_name in EvaluationConfig.model_fields:
        value = os.getenv(f"{ENV_PREFIX}{field_name.upper()}")
        if value is not None:
            overrides[field_name] = value
    return overrides


def load_yaml(path: Optional[str] = None) -> Dict[str, Any]:
    """Read the whole config.yaml. Missing default file -> empty dict."""
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        if path:
            raise ValidationError(f"Config file not found: {config_path}")
        return {}

    with open(config_path, encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValidationError(f"Invalid YAML in {config_path}: {e}") from e
    if not isinstance(raw, dict):
        raise ValidationError(f"Config file {config_path} must contain a mapping")
    logger.debug("Loaded config from %s", config_path)
    return raw


def load_config(
    path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> EvaluationConfig:
    """
    Load the evaluation config.

    Precedence (lowest to highest): config.yaml `evaluation` section,
    RAG_EVAL_* environment variables, explicit overrides.
    """
    data: Dict[str, Any] = dict(load_yaml(path).get("evaluation") or {})
    data.update(_env_overrides())
    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})

    return build_config(data)
