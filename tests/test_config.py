"""Evaluation config loading, overrides and ablation registry."""

import pytest

from rag_eval.errors import ValidationError
from rag_eval.pipeline.pipeline_config import (
    ABLATION_CONFIGS,
    EvaluationConfig,
    build_config,
    get_ablation_config,
    load_config,
)


def test_defaults():
    config = EvaluationConfig()
    assert config.top_k == 5
    assert config.min_similarity == 0.3
    assert config.retrieval_strategy == "hybrid"
    assert config.use_rag is True


def test_load_config_from_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "evaluation:\n"
        "  retrieval_strategy: keyword\n"
        "  top_k: 8\n"
        "  use_reranker: true\n",
        encoding="utf-8",
    )
    config = load_config(str(path))
    assert config.retrieval_strategy == "keyword"
    assert config.top_k == 8
    assert config.use_reranker is True


def test_env_and_explicit_overrides(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("evaluation:\n  top_k: 8\n", encoding="utf-8")
    monkeypatch.setenv("RAG_EVAL_TOP_K", "3")
    monkeypatch.setenv("RAG_EVAL_DOMAIN", "general")

    config = load_config(str(path))
    assert config.top_k == 3
    assert config.domain == "general"

    config = load_config(str(path), overrides={"top_k": 10, "llm_model": None})
    assert config.top_k == 10
    assert config.llm_model == EvaluationConfig().llm_model


@pytest.mark.parametrize("data", [
    {"top_k": 0},
    {"min_similarity": 1.5},
    {"retrieval_strategy": "telepathy"},
])
def test_malformed_config_raises_validation_error(data):
    with pytest.raises(ValidationError):
        build_config(data)


def test_missing_explicit_config_file_raises(tmp_path):
    with pytest.raises(ValidationError):
        load_config(str(tmp_path / "nope.yaml"))


def test_non_mapping_config_file_raises(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_config(str(path))


def test_ablation_registry():
    names = [c.name for c in ABLATION_CONFIGS]
    assert names[0] == "baseline_no_rag"
    assert len(names) == len(set(names)) == 9
    assert get_ablation_config("baseline_no_rag").use_rag is False
    assert get_ablation_config("full_system").use_guardrails is True
    with pytest.raises(ValidationError):
        get_ablation_config("nonexistent")


def test_unparsable_yaml_raises_validation_error(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("evaluation:\n  top_k: [5\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_config(str(path))
