"""
Persistent store for runs, questions and ablation studies.

Two backends share one contract:
  - InMemoryStore: dict-backed, for tests and one-shot CLI use
  - JsonFileStore: one JSON file per record under results_dir/

Guarantees:
  - every update touches a single record and is applied atomically
    (in-process lock; JSON files are replaced via os.replace)
  - update_run/update_study accept expected_status for compare-and-set
    transitions, which is how single-writer ownership of a run is enforced
  - completed_questions never decreases, except when a run is restarted
  - delete_run cascades to the run's questions
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from rag_eval.errors import RunConflictError, RunNotFoundError, StoreError, StudyNotFoundError
from rag_eval.storage.records import (
    RUNNING,
    AblationStudy,
    EvaluationQuestion,
    EvaluationRun,
)

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent.parent
RESULTS_DIR = PROJECT_ROOT / "experiments" / "results"

RUNS = "runs"
STUDIES = "studies"


def _questions_kind(run_id: str) -> str:
    return f"questions/{run_id}"


class BaseStore:
    """Store logic on top of four storage primitives implemented by backends."""

    def __init__(self):
        self._lock = threading.RLock()

    # Backend primitives
    def _read(self, kind: str, key: str) -> Optional[dict]:
        raise NotImplementedError

    def _write(self, kind: str, key: str, data: dict):
        raise NotImplementedError

    def _delete(self, kind: str, key: str):
        raise NotImplementedError

    def _list(self, kind: str) -> List[dict]:
        raise NotImplementedError

    def _drop_kind(self, kind: str):
        for data in self._list(kind):
            self._delete(kind, data["id"])

    @staticmethod
    def _merge(record: BaseModel, fields: dict) -> BaseModel:
        data = record.model_dump()
        data.update(fields)
        return type(record).model_validate(data)

    # ============================================================
    # Runs
    # ============================================================

    def create_run(self, run: EvaluationRun) -> EvaluationRun:
        with self._lock:
            if self._read(RUNS, run.id) is not None:
                raise StoreError(f"Run {run.id} already exists")
            self._write(RUNS, run.id, run.model_dump(mode="json"))
        logger.debug("Created run %s (%s)", run.id, run.name)
        return run

    def get_run(self, run_id: str) -> EvaluationRun:
        data = self._read(RUNS, run_id)
        if data is None:
            raise RunNotFoundError(f"Evaluation run not found: {run_id}")
        return EvaluationRun.model_validate(data)

    def list_runs(self, status: Optional[str] = None) -> List[EvaluationRun]:
        runs = [EvaluationRun.model_validate(d) for d in self._list(RUNS)]
        if status:
            runs = [r for r in runs if r.status == status]
        return sorted(runs, key=lambda r: r.created_at)

    def update_run(
        self,
        run_id: str,
        expected_status: Optional[Iterable[str]] = None,
        **fields,
    ) -> EvaluationRun:
        """Apply fields to one run atomically. expected_status makes it a compare-and-set."""
        with self._lock:
            run = self.get_run(run_id)
            if expected_status is not None and run.status not in set(expected_status):
                raise RunConflictError(
                    f"Run {run_id} is '{run.status}', expected one of {sorted(expected_status)}"
                )
            new_count = fields.get("completed_questions")
            restarting = fields.get("status") == RUNNING
            if new_count is not None and new_count < run.completed_questions and not restarting:
                raise StoreError(
                    f"completed_questions cannot decrease ({run.completed_questions} -> {new_count})"
                )
            updated = self._merge(run, fields)
            self._write(RUNS, run_id, updated.model_dump(mode="json"))
            return updated

    def delete_run(self, run_id: str):
        with self._lock:
            self.get_run(run_id)
            self._drop_kind(_questions_kind(run_id))
            self._delete(RUNS, run_id)
        logger.info("Deleted run %s and its questions", run_id)

    # ============================================================
    # Questions
    # ============================================================

    def add_questions(
        self,
        run_id: str,
        questions: List[EvaluationQuestion],
    ) -> List[EvaluationQuestion]:
        """Attach questions to a run and refresh its total_questions."""
        with self._lock:
            run = self.get_run(run_id)
            existing = len(self._list(_questions_kind(run_id)))
            stored = []
            for offset, q in enumerate(questions):
                q = self._merge(q, {"run_id": run_id, "position": existing + offset})
                self._write(_questions_kind(run_id), q.id, q.model_dump(mode="json"))
                stored.append(q)
            self.update_run(run_id, total_questions=existing + len(stored))
        logger.debug("Added %d questions to run %s (%s)", len(stored), run_id, run.name)
        return stored

    def list_questions(self, run_id: str) -> List[EvaluationQuestion]:
        questions = [
            EvaluationQuestion.model_validate(d)
            for d in self._list(_questions_kind(run_id))
        ]
        return sorted(questions, key=lambda q: q.position)

    def get_question(self, run_id: str, question_id: str) -> EvaluationQuestion:
        data = self._read(_questions_kind(run_id), question_id)
        if data is None:
            raise StoreError(f"Question {question_id} not found in run {run_id}")
        return EvaluationQuestion.model_validate(data)

    def update_question(self, run_id: str, question_id: str, **fields) -> EvaluationQuestion:
        with self._lock:
            question = self.get_question(run_id, question_id)
            updated = self._merge(question, fields)
            self._write(_questions_kind(run_id), question_id, updated.model_dump(mode="json"))
            return updated

    # ============================================================
    # Ablation studies
    # ============================================================

    def create_study(self, study: AblationStudy) -> AblationStudy:
        with self._lock:
            if self._read(STUDIES, study.id) is not None:
                raise StoreError(f"Study {study.id} already exists")
            self._write(STUDIES, study.id, study.model_dump(mode="json"))
        return study

    def get_study(self, study_id: str) -> AblationStudy:
        data = self._read(STUDIES, study_id)
        if data is None:
            raise StudyNotFoundError(f"Ablation study not found: {study_id}")
        return AblationStudy.model_validate(data)

    def list_studies(self, limit: Optional[int] = None) -> List[AblationStudy]:
        studies = [AblationStudy.model_validate(d) for d in self._list(STUDIES)]
        studies.sort(key=lambda s: s.created_at, reverse=True)
        return studies[:limit] if limit else studies

    def update_study(
        self,
        study_id: str,
        expected_status: Optional[Iterable[str]] = None,
        **fields,
    ) -> AblationStudy:
        with self._lock:
            study = self.get_study(study_id)
            if expected_status is not None and study.status not in set(expected_status):
                raise RunConflictError(
                    f"Study {study_id} is '{study.status}', expected one of {sorted(expected_status)}"
                )
            updated = self._merge(study, fields)
            self._write(STUDIES, study_id, updated.model_dump(mode="json"))
            return updated


class InMemoryStore(BaseStore):
    """Dict-backed store. Records are kept as JSON-compatible dicts."""

    def __init__(self):
        super().__init__()
        self._data: Dict[str, Dict[str, dict]] = {}

    def _read(self, kind, key):
        data = self._data.get(kind, {}).get(key)
        return json.loads(json.dumps(data)) if data is not None else None

    def _write(self, kind, key, data):
        self._data.setdefault(kind, {})[key] = data

    def _delete(self, kind, key):
        self._data.get(kind, {}).pop(key, None)

    def _list(self, kind):
        return [json.loads(json.dumps(d)) for d in self._data.get(kind, {}).values()]


class JsonFileStore(BaseStore):
    """
    One JSON file per record:
        {results_dir}/runs/{run_id}.json
        {results_dir}/questions/{run_id}/{question_id}.json
        {results_dir}/studies/{study_id}.json
    """

    def __init__(self, results_dir: Optional[str] = None):
        super().__init__()
        self.results_dir = Path(results_dir or RESULTS_DIR)
        try:
            self.results_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot create results dir {self.results_dir}: {e}") from e

    def _path(self, kind: str, key: str) -> Path:
        return self.results_dir / kind / f"{key}.json"

    def _read(self, kind, key):
        path = self._path(kind, key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to read {path}: {e}") from e

    def _write(self, kind, key, data):
        path = self._path(kind, key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp, path)
        except OSError as e:
            raise StoreError(f"Failed to write {path}: {e}") from e

    def _delete(self, kind, key):
        path = self._path(kind, key)
        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            raise StoreError(f"Failed to delete {path}: {e}") from e

    def _list(self, kind):
        folder = self.results_dir / kind
        if not folder.exists():
            return []
        records = []
        for path in sorted(folder.glob("*.json")):
            try:
                records.append(json.loads(path.read_text(encoding="utf-8")))
            except (OSError, json.JSONDecodeError) as e:
                raise StoreError(f"Failed to read {path}: {e}") from e
        return records
