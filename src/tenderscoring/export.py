"""Tabular and document exports of matrix results."""

from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Any

import pendulum

from .core import EvaluationMatrix
from .schemas import MatrixResults

EXPORT_COLUMNS: tuple[str, ...] = (
    "rank",
    "vendor_id",
    "vendor_name",
    "technical_score",
    "financial_score",
    "final_score",
    "compliance",
    "recommendation",
)


def export_rankings(results: MatrixResults) -> list[dict[str, Any]]:
    """Flatten rankings into rows ready for CSV or JSON serialization."""
    return [
        {
            "rank": row.rank,
            "vendor_id": row.vendor_id,
            "vendor_name": row.vendor_name or row.vendor_id,
            "technical_score": row.technical_score,
            "financial_score": row.financial_score,
            "final_score": row.total_score,
            "compliance": row.compliance,
            "recommendation": row.recommendation,
        }
        for row in results.rankings
    ]


def export_matrix(matrix: EvaluationMatrix) -> dict[str, Any]:
    """Build the results document handed to reporting collaborators."""
    setup = matrix.setup
    results = matrix.results()
    completed = next(
        (
            entry.timestamp
            for entry in reversed(matrix.audit_log())
            if entry.action == "status_evaluationcomplete"
        ),
        None,
    )
    return {
        "matrix": setup.name or setup.matrix_id,
        "matrix_id": setup.matrix_id,
        "tender_id": setup.tender_id,
        "tender": setup.tender_title or setup.tender_id,
        "status": matrix.status,
        "rubric": {"id": matrix.rubric.id, "version": matrix.rubric.version},
        "evaluation_date": _iso(completed),
        "vendors": [
            {
                "vendor_id": row.vendor_id,
                "name": row.vendor_name or row.vendor_id,
                "total_score": row.total_score,
                "technical_compliance": row.compliance,
                "recommendation": row.recommendation,
            }
            for row in results.rankings
        ],
        "recommended_award": results.recommended_award,
        "alternative_options": list(results.alternative_options),
        "summary": results.evaluation_summary,
    }


class ResultsWriter:
    """Persist exported results."""

    def write_json(self, path: Path, payload: dict | list[dict]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(payload, ensure_ascii=False, indent=2, default=_json_default),
            encoding="utf-8",
        )

    def write_csv(self, path: Path, rows: list[dict[str, Any]]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.DictWriter(handle, fieldnames=list(EXPORT_COLUMNS))
            writer.writeheader()
            for row in rows:
                writer.writerow({column: row.get(column) for column in EXPORT_COLUMNS})


def _iso(value: Any) -> str | None:
    if value is None:
        return None
    return pendulum.instance(value).to_iso8601_string()


def _json_default(value):  # type: ignore[override]
    if isinstance(value, pendulum.DateTime):
        return value.to_iso8601_string()
    if hasattr(value, "isoformat"):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
