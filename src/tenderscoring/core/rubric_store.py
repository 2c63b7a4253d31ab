"""Versioned rubric storage and validation."""

from __future__ import annotations

import itertools
import threading
from typing import Any, Callable, Iterable

import pendulum
import structlog
from pydantic import ValidationError as SchemaValidationError

from ..errors import NotFound, StateError, ValidationError
from ..schemas import Criterion, Rubric, RubricDefinition, RubricSnapshot

_WEIGHT_TOTAL = 100.0
_WEIGHT_TOLERANCE = 1e-9


def weight_issues(criteria: Iterable[Criterion]) -> list[str]:
    """Return weight-sum violations for top-level and sub-criterion siblings."""
    criteria = list(criteria)
    issues: list[str] = []
    if not criteria:
        return ["rubric has no criteria"]
    total = sum(criterion.weight for criterion in criteria)
    if abs(total - _WEIGHT_TOTAL) > _WEIGHT_TOLERANCE:
        issues.append(f"top-level criterion weights sum to {total:g}, expected 100")
    for criterion in criteria:
        if not criterion.sub_criteria:
            continue
        sub_total = sum(sub.weight for sub in criterion.sub_criteria)
        if abs(sub_total - _WEIGHT_TOTAL) > _WEIGHT_TOLERANCE:
            issues.append(
                f"sub-criterion weights of {criterion.id!r} sum to {sub_total:g}, expected 100"
            )
    return issues


def structure_issues(rubric: Rubric | RubricDefinition) -> list[str]:
    """Return structural problems that block creation regardless of status."""
    issues: list[str] = []
    seen: set[str] = set()
    for criterion in rubric.criteria:
        for identifier in (criterion.id, *(sub.id for sub in criterion.sub_criteria)):
            if identifier in seen:
                issues.append(f"duplicate criterion id {identifier!r}")
            seen.add(identifier)
        if criterion.mandatory and criterion.passing_score is None:
            issues.append(f"mandatory criterion {criterion.id!r} has no passing score")
    primary = rubric.primary_criterion_id
    if primary is not None and primary not in {c.id for c in rubric.criteria}:
        issues.append(f"primary criterion {primary!r} is not a top-level criterion")
    return issues


class RubricStore:
    """Holds every version of every rubric.

    Versions are immutable values. Edits to a rubric that a matrix has bound
    produce a new Draft version; the bound version is left untouched.
    """

    def __init__(self, *, now_provider: Callable[[], Any] | None = None) -> None:
        self._rubrics: dict[str, list[Rubric]] = {}
        self._bindings: dict[tuple[str, str], int] = {}
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        self._now = now_provider or (lambda: pendulum.now("UTC"))
        self._logger = structlog.get_logger(__name__)

    def create_rubric(
        self,
        data: RubricDefinition | dict[str, Any],
        *,
        activate: bool = False,
    ) -> Rubric:
        definition = self._parse_definition(data)
        issues = structure_issues(definition)
        if activate:
            issues.extend(weight_issues(definition.criteria))
        if issues:
            raise ValidationError(issues)

        with self._lock:
            rubric_id = definition.id or f"RUB-{next(self._ids):04d}"
            if rubric_id in self._rubrics:
                raise ValidationError(f"rubric {rubric_id!r} already exists")
            now = self._now()
            rubric = Rubric(
                id=rubric_id,
                name=definition.name,
                description=definition.description,
                version=definition.version,
                applicable_categories=tuple(definition.applicable_categories),
                criteria=tuple(definition.criteria),
                passing_threshold=definition.passing_threshold,
                primary_criterion_id=definition.primary_criterion_id,
                status="Active" if activate else "Draft",
                created_at=now,
                last_modified=now,
            )
            self._rubrics[rubric_id] = [rubric]

        self._logger.info(
            "rubric.created",
            rubric_id=rubric.id,
            version=rubric.version,
            status=rubric.status,
        )
        return rubric

    def get(self, rubric_id: str, version: str | None = None) -> Rubric:
        with self._lock:
            versions = self._rubrics.get(rubric_id)
            if not versions:
                raise NotFound(f"unknown rubric {rubric_id!r}")
            if version is None:
                return versions[-1]
            for rubric in versions:
                if rubric.version == version:
                    return rubric
        raise NotFound(f"unknown rubric version {rubric_id!r}@{version}")

    def versions(self, rubric_id: str) -> list[Rubric]:
        with self._lock:
            if rubric_id not in self._rubrics:
                raise NotFound(f"unknown rubric {rubric_id!r}")
            return list(self._rubrics[rubric_id])

    def list_rubrics(self, *, status: str | None = None) -> list[Rubric]:
        with self._lock:
            latest = [versions[-1] for versions in self._rubrics.values()]
        if status is None:
            return latest
        return [rubric for rubric in latest if rubric.status == status]

    def is_frozen(self, rubric_id: str, version: str) -> bool:
        with self._lock:
            return self._bindings.get((rubric_id, version), 0) > 0

    def update_rubric(self, rubric_id: str, **changes: Any) -> Rubric:
        """Apply content edits to the latest version of a rubric.

        A bound version is copied into a new Draft version with a bumped
        version string. An unbound Draft or Active version is edited in place
        and returns to Draft, so it must be activated again.
        """
        allowed = {
            "name",
            "description",
            "applicable_categories",
            "criteria",
            "passing_threshold",
            "primary_criterion_id",
        }
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(f"cannot edit rubric fields: {', '.join(sorted(unknown))}")

        with self._lock:
            current = self.get(rubric_id)
            if current.status == "Archived":
                raise StateError(f"rubric {rubric_id!r} is archived")
            frozen = self.is_frozen(rubric_id, current.version)
            fields = current.model_dump(
                mode="python",
                exclude={"status", "created_at", "last_modified", "usage_count", "version"},
            )
            fields.update(changes)
            try:
                definition = RubricDefinition.model_validate(
                    {**fields, "version": current.version}
                )
            except SchemaValidationError as exc:
                raise ValidationError(_schema_messages(exc)) from exc
            issues = structure_issues(definition)
            if issues:
                raise ValidationError(issues)

            version = _next_version(current.version) if frozen else current.version
            updated = Rubric(
                id=rubric_id,
                name=definition.name,
                description=definition.description,
                version=version,
                applicable_categories=tuple(definition.applicable_categories),
                criteria=tuple(definition.criteria),
                passing_threshold=definition.passing_threshold,
                primary_criterion_id=definition.primary_criterion_id,
                status="Draft",
                created_at=current.created_at if not frozen else self._now(),
                last_modified=self._now(),
                usage_count=0 if frozen else current.usage_count,
            )
            if frozen:
                self._rubrics[rubric_id].append(updated)
            else:
                self._rubrics[rubric_id][-1] = updated

        self._logger.info(
            "rubric.updated",
            rubric_id=rubric_id,
            version=updated.version,
            copied=frozen,
        )
        return updated

    def add_criterion(self, rubric_id: str, criterion: Criterion | dict[str, Any]) -> Rubric:
        if isinstance(criterion, dict):
            try:
                criterion = Criterion.model_validate(criterion)
            except SchemaValidationError as exc:
                raise ValidationError(_schema_messages(exc)) from exc
        current = self.get(rubric_id)
        return self.update_rubric(rubric_id, criteria=[*current.criteria, criterion])

    def activate(self, rubric_id: str) -> Rubric:
        with self._lock:
            current = self.get(rubric_id)
            if current.status == "Active":
                return current
            if current.status == "Archived":
                raise StateError(f"rubric {rubric_id!r} is archived")
            issues = structure_issues(current) + weight_issues(current.criteria)
            if issues:
                raise ValidationError(issues)
            activated = current.model_copy(
                update={"status": "Active", "last_modified": self._now()}
            )
            self._rubrics[rubric_id][-1] = activated

        self._logger.info("rubric.activated", rubric_id=rubric_id, version=activated.version)
        return activated

    def archive(self, rubric_id: str) -> Rubric:
        """Archive every version of a rubric; existing bindings keep their snapshots."""
        with self._lock:
            current = self.get(rubric_id)
            if current.status == "Archived":
                return current
            now = self._now()
            self._rubrics[rubric_id] = [
                rubric
                if rubric.status == "Archived"
                else rubric.model_copy(update={"status": "Archived", "last_modified": now})
                for rubric in self._rubrics[rubric_id]
            ]
            archived = self._rubrics[rubric_id][-1]

        self._logger.info("rubric.archived", rubric_id=rubric_id, version=archived.version)
        return archived

    def bind(self, rubric_id: str, version: str | None = None) -> RubricSnapshot:
        """Freeze an active rubric version and return its immutable snapshot."""
        with self._lock:
            rubric = self.get(rubric_id, version)
            if rubric.status == "Archived":
                raise StateError(f"rubric {rubric_id!r} is archived and cannot be bound")
            if rubric.status != "Active":
                raise StateError(f"rubric {rubric_id!r} must be Active before binding")
            key = (rubric.id, rubric.version)
            self._bindings[key] = self._bindings.get(key, 0) + 1
            self._replace(rubric, rubric.model_copy(update={"usage_count": rubric.usage_count + 1}))
            snapshot = RubricSnapshot.from_rubric(rubric)

        self._logger.info("rubric.bound", rubric_id=rubric.id, version=rubric.version)
        return snapshot

    def release(self, rubric_id: str, version: str) -> None:
        """Drop one binding, e.g. when a matrix is cancelled."""
        with self._lock:
            key = (rubric_id, version)
            count = self._bindings.get(key, 0)
            if count <= 1:
                self._bindings.pop(key, None)
            else:
                self._bindings[key] = count - 1

    def _replace(self, old: Rubric, new: Rubric) -> None:
        versions = self._rubrics[old.id]
        for index, rubric in enumerate(versions):
            if rubric.version == old.version:
                versions[index] = new
                return

    @staticmethod
    def _parse_definition(data: RubricDefinition | dict[str, Any]) -> RubricDefinition:
        if isinstance(data, RubricDefinition):
            return data
        try:
            return RubricDefinition.model_validate(data)
        except SchemaValidationError as exc:
            raise ValidationError(_schema_messages(exc)) from exc


def _schema_messages(exc: SchemaValidationError) -> list[str]:
    return [
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    ]


def _next_version(version: str) -> str:
    major, _, minor = version.partition(".")
    if major.isdigit() and (minor.isdigit() or not minor):
        return f"{major}.{int(minor or 0) + 1}"
    return f"{version}.1"
