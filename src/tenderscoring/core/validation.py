"""Submission validation against a bound rubric."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Mapping

from rapidfuzz import fuzz, process

from ..schemas import Criterion, RubricSnapshot, SubCriterion


@dataclass
class SubmissionRules:
    """Tunables for submission validation."""

    suggestion_cutoff: float = 60.0


def suggest(identifier: str, choices: Iterable[str], *, cutoff: float = 60.0) -> str | None:
    """Return the closest known identifier, if any is similar enough."""
    match = process.extractOne(identifier, list(choices), scorer=fuzz.ratio, score_cutoff=cutoff)
    return match[0] if match else None


def submission_issues(
    rubric: RubricSnapshot,
    scores: Mapping[str, float],
    sub_scores: Mapping[str, float],
    *,
    rules: SubmissionRules | None = None,
    annotated: Iterable[str] = (),
) -> list[str]:
    """Return every reason a score sheet cannot be accepted."""
    rules = rules or SubmissionRules()
    issues: list[str] = []
    known = rubric.criterion_ids()
    known_subs = rubric.sub_criterion_ids()

    for criterion_id, value in scores.items():
        criterion = rubric.criterion(criterion_id)
        if criterion is None:
            issues.append(_unknown(criterion_id, known + known_subs, rules, "criterion"))
            continue
        issues.extend(_range_issues(criterion, value))
        if any(sub.id in sub_scores for sub in criterion.sub_criteria):
            issues.append(
                f"criterion {criterion.name!r} is scored both directly and through sub-criteria"
            )

    for sub_id, value in sub_scores.items():
        parent = rubric.parent_of(sub_id)
        if parent is None:
            issues.append(_unknown(sub_id, known_subs, rules, "sub-criterion"))
            continue
        sub = parent.sub_criterion(sub_id)
        if sub is not None:
            issues.extend(_range_issues(sub, value))

    for criterion in rubric.criteria:
        if not criterion.mandatory:
            continue
        scored = criterion.id in scores or any(
            sub.id in sub_scores for sub in criterion.sub_criteria
        )
        if not scored:
            issues.append(f"criterion {criterion.name!r} is mandatory and unscored")

    for identifier in dict.fromkeys(annotated):
        if identifier not in known and identifier not in known_subs:
            issues.append(_unknown(identifier, known + known_subs, rules, "annotated criterion"))

    return issues


def _unknown(identifier: str, choices: list[str], rules: SubmissionRules, label: str) -> str:
    message = f"unknown {label} {identifier!r}"
    hint = suggest(identifier, choices, cutoff=rules.suggestion_cutoff)
    if hint:
        message += f"; did you mean {hint!r}?"
    return message


def _range_issues(criterion: Criterion | SubCriterion, value: float) -> list[str]:
    if not math.isfinite(value):
        return [f"score for {criterion.name!r} must be a finite number"]
    if value < 0 or value > criterion.max_score:
        return [
            f"score {value:g} for {criterion.name!r} is outside 0..{criterion.max_score:g}"
        ]
    if criterion.type == "Boolean" and value not in (0, criterion.max_score):
        return [
            f"boolean criterion {criterion.name!r} takes 0 or {criterion.max_score:g}, got {value:g}"
        ]
    return []
