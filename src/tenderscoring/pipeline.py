"""Batch evaluation pipeline assembly and execution."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pendulum
import structlog
import yaml
from pydantic import ValidationError as SchemaValidationError

from . import __version__
from .core import Actor, EvaluationMatrix, RubricStore
from .errors import NotFound, ScoringError, ValidationError
from .events import MatrixEvent
from .export import ResultsWriter, export_matrix, export_rankings
from .schemas import MatrixSetup, Rubric, ScoreSubmission


class ScoreLoadError(ValueError):
    """Raised when score loading encounters invalid records."""

    def __init__(self, errors: list[str], partial: list[ScoreSubmission]):
        super().__init__("Score loading failed")
        self.errors = errors
        self.partial = partial

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"Score loading failed: {self.errors}"


def _read_document(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        try:
            if path.suffix.lower() in {".yaml", ".yml"}:
                data = yaml.safe_load(handle)
            else:
                data = json.load(handle)
        except (json.JSONDecodeError, yaml.YAMLError) as exc:
            raise ValidationError(f"{path.name}: invalid document ({exc})") from exc
    if not isinstance(data, dict):
        raise ValidationError(f"{path.name}: document must be a mapping")
    return data


class RubricLoader:
    """Load a rubric definition and register it as an active rubric."""

    def __init__(self, store: RubricStore):
        self._store = store

    def load(self, path: Path) -> Rubric:
        definition = _read_document(path)
        return self._store.create_rubric(definition, activate=True)


class MatrixLoader:
    """Load a matrix setup document."""

    def load(self, path: Path, *, rubric: Rubric | None = None) -> MatrixSetup:
        data = _read_document(path)
        if rubric is not None:
            data.setdefault("rubric_id", rubric.id)
            data.setdefault("rubric_version", rubric.version)
        try:
            return MatrixSetup.model_validate(data)
        except SchemaValidationError as exc:
            raise ValidationError(f"{path.name}: {exc}") from exc


class ScoreLoader:
    """Load score submissions from JSON lines."""

    def load(self, path: Path) -> list[ScoreSubmission]:
        submissions: list[ScoreSubmission] = []
        errors: list[str] = []
        with path.open("r", encoding="utf-8") as handle:
            for idx, line in enumerate(handle, start=1):
                raw = line.strip()
                if not raw:
                    continue
                try:
                    record = json.loads(raw)
                except json.JSONDecodeError as exc:
                    errors.append(f"line {idx}: invalid JSON ({exc})")
                    continue
                if not isinstance(record, dict):
                    errors.append(f"line {idx}: expected an object")
                    continue
                try:
                    submissions.append(ScoreSubmission.model_validate(record))
                except SchemaValidationError as exc:
                    errors.append(f"line {idx}: {exc.errors()[0]['msg']}")
                    continue
        if errors:
            raise ScoreLoadError(errors, submissions)
        return submissions


class AuditLogger:
    """Append-only audit logger writing JSON lines."""

    def __init__(self, path: Path):
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def append(self, record: dict) -> None:
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record, ensure_ascii=False))
            handle.write("\n")


class EventLog(AuditLogger):
    """Event sink persisting matrix events as JSON lines."""

    def publish(self, event: MatrixEvent) -> None:
        self.append(event.to_dict())


class EvaluationPipeline:
    """End-to-end batch evaluation orchestrator."""

    def __init__(
        self,
        *,
        store: RubricStore,
        matrix_factory: Callable[..., EvaluationMatrix],
        rubric_loader: RubricLoader | None = None,
        matrix_loader: MatrixLoader | None = None,
        score_loader: ScoreLoader | None = None,
        writer: ResultsWriter | None = None,
    ) -> None:
        self._store = store
        self._matrix_factory = matrix_factory
        self._rubrics = rubric_loader or RubricLoader(store)
        self._matrices = matrix_loader or MatrixLoader()
        self._scores = score_loader or ScoreLoader()
        self._writer = writer or ResultsWriter()
        self._logger = structlog.get_logger(__name__)

    def run(
        self,
        *,
        rubric_path: Path,
        matrix_path: Path,
        scores_path: Path,
        output_path: Path,
        csv_path: Path | None = None,
        audit_logger: AuditLogger | None = None,
        event_log: EventLog | None = None,
        chair_id: str = "chair",
    ) -> EvaluationMatrix:
        rubric = self._rubrics.load(rubric_path)
        setup = self._matrices.load(matrix_path, rubric=rubric)
        chair = Actor(actor_id=chair_id, role="chair")
        matrix = self._matrix_factory(
            setup,
            created_by=chair,
            sinks=[event_log] if event_log else [],
        )

        errors: list[str] = []
        try:
            submissions = self._scores.load(scores_path)
        except ScoreLoadError as exc:
            submissions = exc.partial
            errors.extend(exc.errors)
            self._logger.warning("pipeline.partial_load", errors=exc.errors)

        for submission in submissions:
            actor = Actor(actor_id=submission.evaluator_id, role="evaluator")
            try:
                current = matrix.get_score(submission.vendor_id, submission.evaluator_id)
                expected_version: int | None = current.version
            except NotFound:
                expected_version = None
            try:
                matrix.submit(submission, actor=actor, expected_version=expected_version)
            except ScoringError as exc:
                errors.append(
                    f"{submission.vendor_id}/{submission.evaluator_id}: {exc}"
                )

        if matrix.status == "InProgress":
            matrix.close_evaluation(actor=chair, reason="batch run closed")

        results = matrix.results()
        rows = export_rankings(results)
        payload = {
            "metadata": {
                "matrix_id": setup.matrix_id,
                "tender_id": setup.tender_id,
                "rubric_id": rubric.id,
                "rubric_version": rubric.version,
                "status": matrix.status,
                "submission_count": len(submissions),
                "missing": [list(pair) for pair in matrix.missing_pairs()],
                "errors": errors,
                "timestamp": pendulum.now().to_iso8601_string(),
                "app_version": __version__,
            },
            "results": results.model_dump(mode="json"),
            "rankings": rows,
            "export": export_matrix(matrix),
        }
        self._writer.write_json(output_path, payload)
        if csv_path is not None:
            self._writer.write_csv(csv_path, rows)

        if audit_logger:
            for entry in matrix.audit_log():
                audit_logger.append(entry.model_dump(mode="json"))

        self._logger.info(
            "pipeline.completed",
            matrix_id=setup.matrix_id,
            status=matrix.status,
            recommended_award=results.recommended_award,
            consensus_reached=results.consensus_reached,
            errors=len(errors),
        )
        return matrix
