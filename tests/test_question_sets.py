"""Default question set, sampling and question file import/export."""

import json

import pytest

from rag_eval.errors import ValidationError
from rag_eval.evaluation.question_sets import (
    ACADEMIC_QUESTIONS,
    CATEGORIES,
    EvalQuestion,
    load_questions,
    questions_by_category,
    sample_questions,
    save_questions,
    verify_questions,
)


def test_default_set_is_labelled():
    assert len(ACADEMIC_QUESTIONS) == 11
    assert all(q.ground_truth for q in ACADEMIC_QUESTIONS)
    assert all(q.category in CATEGORIES for q in ACADEMIC_QUESTIONS)
    assert len(questions_by_category("research_methodology")) == 4
    assert len(questions_by_category("academic_writing")) == 2


def test_sampling_is_reproducible():
    assert sample_questions(4) == sample_questions(4)
    assert len(sample_questions(100)) == len(ACADEMIC_QUESTIONS)


def test_run_input_shape():
    q = EvalQuestion(question="q", ground_truth="gt", relevant_chunk_ids=["c1"])
    assert q.to_run_input() == {"question": "q", "ground_truth": "gt", "relevant_chunk_ids": ["c1"]}


def test_save_and_load_json(tmp_path):
    path = tmp_path / "sets" / "questions.json"
    save_questions(ACADEMIC_QUESTIONS[:2], str(path))
    assert load_questions(str(path)) == ACADEMIC_QUESTIONS[:2]


def test_load_yaml_with_questions_key(tmp_path):
    path = tmp_path / "questions.yaml"
    path.write_text(
        "questions:\n"
        "  - question: Apa itu validitas?\n"
        "    ground_truth: Ketepatan instrumen.\n"
        "    category: data_collection\n"
        "  - question: Apa itu reliabilitas?\n",
        encoding="utf-8",
    )
    questions = load_questions(str(path))
    assert [q.question for q in questions] == ["Apa itu validitas?", "Apa itu reliabilitas?"]
    assert questions[1].ground_truth is None
    assert questions[1].category == "general_academic"


@pytest.mark.parametrize("content", [
    "{not json",
    json.dumps({"items": []}),
    json.dumps([{"ground_truth": "no question"}]),
    json.dumps(["just a string"]),
])
def test_malformed_question_files(tmp_path, content):
    path = tmp_path / "questions.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ValidationError):
        load_questions(str(path))


def test_unparsable_yaml_question_file(tmp_path):
    path = tmp_path / "questions.yaml"
    path.write_text("- question: [unclosed\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_questions(str(path))


def test_missing_question_file(tmp_path):
    with pytest.raises(ValidationError):
        load_questions(str(tmp_path / "nope.json"))


def test_verify_questions():
    stats = verify_questions([
        EvalQuestion(question="a", ground_truth="x", category="data_collection"),
        EvalQuestion(question="b", relevant_chunk_ids=["c1"], difficulty="hard", language="en"),
    ])
    assert stats["total"] == 2
    assert stats["with_ground_truth"] == 1
    assert stats["with_relevant_chunks"] == 1
    assert stats["by_category"] == {"data_collection": 1, "general_academic": 1}
    assert stats["by_difficulty"] == {"medium": 1, "hard": 1}
    assert stats["by_language"] == {"id": 1, "en": 1}
