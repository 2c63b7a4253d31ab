from __future__ import annotations

import itertools
from typing import Any, Callable

import pendulum
import pytest

from tenderscoring.core import Actor, EvaluationMatrix, RubricStore
from tenderscoring.schemas import MatrixSetup, RubricSnapshot


class FakeClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: pendulum.DateTime | None = None):
        self._start = start or pendulum.datetime(2024, 2, 15, 10, 0, 0, tz="UTC")
        self._ticks = itertools.count()

    def __call__(self) -> pendulum.DateTime:
        return self._start.add(seconds=next(self._ticks))


def _medical_rubric_definition(**overrides: Any) -> dict[str, Any]:
    definition: dict[str, Any] = {
        "id": "RUB-MED",
        "name": "Medical Equipment Evaluation Rubric",
        "description": "Standardized evaluation criteria for medical equipment procurement",
        "version": "2.1",
        "applicable_categories": ["Medical Equipment", "Laboratory Equipment"],
        "passing_threshold": 70,
        "criteria": [
            {
                "id": "CRIT-001",
                "name": "Technical Specifications",
                "weight": 30,
                "category": "technical",
                "mandatory": True,
                "passing_score": 70,
                "sub_criteria": [
                    {"id": "SUB-001", "name": "Equipment Quality", "weight": 60, "mandatory": True},
                    {
                        "id": "SUB-002",
                        "name": "Technical Standards Compliance",
                        "weight": 40,
                        "type": "Boolean",
                        "mandatory": True,
                    },
                ],
            },
            {
                "id": "CRIT-002",
                "name": "Financial Proposal",
                "weight": 25,
                "category": "financial",
                "mandatory": True,
                "passing_score": 60,
            },
            {
                "id": "CRIT-003",
                "name": "Company Experience",
                "weight": 25,
                "category": "experience",
                "mandatory": True,
                "passing_score": 65,
            },
            {
                "id": "CRIT-004",
                "name": "Delivery & Support",
                "weight": 20,
                "category": "delivery",
                "mandatory": True,
                "passing_score": 70,
            },
        ],
    }
    definition.update(overrides)
    return definition


def _ensure_medical_rubric(store: RubricStore) -> None:
    if not store.list_rubrics():
        store.create_rubric(_medical_rubric_definition(), activate=True)


@pytest.fixture
def rubric_definition() -> Callable[..., dict[str, Any]]:
    return _medical_rubric_definition


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> RubricStore:
    return RubricStore(now_provider=clock)


@pytest.fixture
def rubric(store: RubricStore) -> RubricSnapshot:
    _ensure_medical_rubric(store)
    return store.bind("RUB-MED")


@pytest.fixture
def make_matrix(store: RubricStore, clock: FakeClock) -> Callable[..., EvaluationMatrix]:
    _ensure_medical_rubric(store)

    def _make(**overrides: Any) -> EvaluationMatrix:
        sinks = overrides.pop("sinks", ())
        setup: dict[str, Any] = {
            "matrix_id": "MAT-001",
            "name": "Medical Equipment Supply 2024",
            "tender_id": "TND-2024-001",
            "rubric_id": "RUB-MED",
            "committee": ["EVAL-001"],
            "vendors": [
                {"vendor_id": "VEN-001", "name": "PrimeCare Medical Ltd"},
                {"vendor_id": "VEN-002", "name": "Falcon Diagnostics Ltd"},
            ],
        }
        setup.update(overrides)
        snapshot = store.bind(setup["rubric_id"])
        return EvaluationMatrix(
            MatrixSetup.model_validate(setup),
            snapshot,
            rubric_store=store,
            sinks=sinks,
            created_by=Actor(actor_id="CHAIR-001", role="chair"),
            now_provider=clock,
        )

    return _make
