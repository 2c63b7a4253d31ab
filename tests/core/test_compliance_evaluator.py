from __future__ import annotations

from typing import Any, Callable

import pytest

from tenderscoring.core import ComplianceCheck, ComplianceConfig, ComplianceEvaluator
from tenderscoring.schemas import RubricSnapshot


def _snapshot(definition: dict[str, Any]) -> RubricSnapshot:
    fields = ("id", "name", "version", "criteria", "passing_threshold", "primary_criterion_id")
    return RubricSnapshot.model_validate({key: definition.get(key) for key in fields})


def test_evaluator_satisfies_protocol():
    assert isinstance(ComplianceEvaluator(), ComplianceCheck)


def test_all_thresholds_met(rubric: RubricSnapshot):
    compliant, issues = ComplianceEvaluator().check_compliance(
        rubric,
        {"CRIT-001": 88, "CRIT-002": 85, "CRIT-003": 92, "CRIT-004": 90},
    )

    assert compliant is True
    assert issues == []


def test_mandatory_below_passing_is_critical(rubric: RubricSnapshot):
    compliant, issues = ComplianceEvaluator().check_compliance(
        rubric,
        {"CRIT-001": 60, "CRIT-002": 100, "CRIT-003": 100, "CRIT-004": 100},
    )

    assert compliant is False
    assert [(issue.criterion_id, issue.severity) for issue in issues] == [("CRIT-001", "Critical")]
    assert "60% against a passing score of 70%" in issues[0].issue


def test_passing_score_is_inclusive(rubric: RubricSnapshot):
    compliant, _ = ComplianceEvaluator().check_compliance(
        rubric,
        {"CRIT-001": 70, "CRIT-002": 60, "CRIT-003": 65, "CRIT-004": 70},
    )

    assert compliant is True


def test_unscored_mandatory_criterion_is_critical(rubric: RubricSnapshot):
    compliant, issues = ComplianceEvaluator().check_compliance(
        rubric,
        {"CRIT-001": 88, "CRIT-002": 85, "CRIT-003": 92},
    )

    assert compliant is False
    assert issues[0].criterion_id == "CRIT-004"
    assert issues[0].issue == "criterion 'Delivery & Support' is mandatory and unscored"


def test_weak_mandatory_sub_criterion_is_major(rubric: RubricSnapshot):
    compliant, issues = ComplianceEvaluator().check_compliance(
        rubric,
        {"CRIT-002": 85, "CRIT-003": 92, "CRIT-004": 90},
        {"SUB-001": 50, "SUB-002": 100},
    )

    # roll-up: (50 * 60 + 100 * 40) / 100 = 70, exactly the passing score
    assert compliant is True
    assert [(issue.criterion_id, issue.severity) for issue in issues] == [("SUB-001", "Major")]


def test_major_findings_can_be_disabled(rubric: RubricSnapshot):
    evaluator = ComplianceEvaluator(config=ComplianceConfig(emit_major_for_sub_criteria=False))

    compliant, issues = evaluator.check_compliance(
        rubric,
        {"CRIT-002": 85, "CRIT-003": 92, "CRIT-004": 90},
        {"SUB-001": 50, "SUB-002": 100},
    )

    assert compliant is True
    assert issues == []


def test_optional_criterion_below_floor_is_minor(rubric_definition: Callable[..., dict[str, Any]]):
    definition = rubric_definition()
    definition["criteria"][3]["mandatory"] = False
    snapshot = _snapshot(definition)

    compliant, issues = ComplianceEvaluator().check_compliance(
        snapshot,
        {"CRIT-001": 88, "CRIT-002": 85, "CRIT-003": 92, "CRIT-004": 45},
    )

    assert compliant is True
    assert [(issue.criterion_id, issue.severity) for issue in issues] == [("CRIT-004", "Minor")]

    compliant, issues = ComplianceEvaluator().check_compliance(
        snapshot,
        {"CRIT-001": 88, "CRIT-002": 85, "CRIT-003": 92},
    )
    assert compliant is True
    assert issues == []


def test_threshold_uses_normalized_percentage(rubric_definition: Callable[..., dict[str, Any]]):
    definition = rubric_definition()
    definition["criteria"][1]["max_score"] = 10
    snapshot = _snapshot(definition)

    compliant, issues = ComplianceEvaluator().check_compliance(
        snapshot,
        {"CRIT-001": 88, "CRIT-002": 5.5, "CRIT-003": 92, "CRIT-004": 90},
    )

    assert compliant is False
    assert issues[0].criterion_id == "CRIT-002"


@pytest.mark.parametrize(
    "sub_passing, sub_score, flagged",
    [(40, 50, False), (85, 80, True), (None, 65, True)],
)
def test_sub_criterion_passing_score_overrides_parent(
    rubric_definition: Callable[..., dict[str, Any]],
    sub_passing,
    sub_score,
    flagged,
):
    definition = rubric_definition()
    definition["criteria"][0]["sub_criteria"][0]["passing_score"] = sub_passing
    snapshot = _snapshot(definition)

    _, issues = ComplianceEvaluator().check_compliance(
        snapshot,
        {"CRIT-002": 85, "CRIT-003": 92, "CRIT-004": 90},
        {"SUB-001": sub_score, "SUB-002": 100},
    )

    majors = [issue.criterion_id for issue in issues if issue.severity == "Major"]
    assert majors == (["SUB-001"] if flagged else [])
