from __future__ import annotations

from typing import Any, Callable

import pytest

from tenderscoring.core import RubricStore
from tenderscoring.errors import NotFound, StateError, ValidationError


def test_create_active_rubric(store: RubricStore, rubric_definition: Callable[..., dict[str, Any]]):
    rubric = store.create_rubric(rubric_definition(), activate=True)

    assert rubric.status == "Active"
    assert rubric.total_weight == 100
    assert rubric.created_at is not None
    assert store.get("RUB-MED").version == "2.1"


@pytest.mark.parametrize("weights", [(30, 25, 25, 25), (30, 25, 25, 10), (0, 0, 0, 0)])
def test_weights_not_summing_to_100_cannot_activate(
    store: RubricStore,
    rubric_definition: Callable[..., dict[str, Any]],
    weights: tuple[int, ...],
):
    definition = rubric_definition()
    for criterion, weight in zip(definition["criteria"], weights):
        criterion["weight"] = weight

    with pytest.raises(ValidationError):
        store.create_rubric(definition, activate=True)

    draft = store.create_rubric(definition)
    assert draft.status == "Draft"
    with pytest.raises(ValidationError) as exc:
        store.activate(draft.id)
    assert "expected 100" in str(exc.value)
    assert store.get(draft.id).status == "Draft"


def test_sub_criterion_weights_checked_on_activation(
    store: RubricStore,
    rubric_definition: Callable[..., dict[str, Any]],
):
    definition = rubric_definition()
    definition["criteria"][0]["sub_criteria"][1]["weight"] = 30
    store.create_rubric(definition)

    with pytest.raises(ValidationError) as exc:
        store.activate("RUB-MED")
    assert "sub-criterion weights of 'CRIT-001'" in str(exc.value)


def test_negative_weight_rejected(store: RubricStore, rubric_definition: Callable[..., dict[str, Any]]):
    definition = rubric_definition()
    definition["criteria"][0]["weight"] = -5

    with pytest.raises(ValidationError):
        store.create_rubric(definition)


def test_mandatory_criterion_requires_passing_score(
    store: RubricStore,
    rubric_definition: Callable[..., dict[str, Any]],
):
    definition = rubric_definition()
    del definition["criteria"][1]["passing_score"]

    with pytest.raises(ValidationError) as exc:
        store.create_rubric(definition)
    assert "'CRIT-002' has no passing score" in str(exc.value)


def test_sub_criteria_cannot_nest(store: RubricStore, rubric_definition: Callable[..., dict[str, Any]]):
    definition = rubric_definition()
    definition["criteria"][0]["sub_criteria"][0]["sub_criteria"] = [
        {"id": "SUB-001a", "name": "Too deep", "weight": 100}
    ]

    with pytest.raises(ValidationError):
        store.create_rubric(definition)


def test_duplicate_criterion_ids_rejected(
    store: RubricStore,
    rubric_definition: Callable[..., dict[str, Any]],
):
    definition = rubric_definition()
    definition["criteria"][1]["id"] = "CRIT-001"

    with pytest.raises(ValidationError) as exc:
        store.create_rubric(definition)
    assert "duplicate criterion id 'CRIT-001'" in str(exc.value)


def test_bind_returns_snapshot_and_freezes(
    store: RubricStore,
    rubric_definition: Callable[..., dict[str, Any]],
):
    store.create_rubric(rubric_definition(), activate=True)

    snapshot = store.bind("RUB-MED")

    assert snapshot.version == "2.1"
    assert snapshot.criterion_ids() == ["CRIT-001", "CRIT-002", "CRIT-003", "CRIT-004"]
    assert store.is_frozen("RUB-MED", "2.1")
    assert store.get("RUB-MED").usage_count == 1
    with pytest.raises(Exception):
        snapshot.passing_threshold = 10  # type: ignore[misc]


def test_edit_of_bound_rubric_creates_new_version(
    store: RubricStore,
    rubric_definition: Callable[..., dict[str, Any]],
):
    store.create_rubric(rubric_definition(), activate=True)
    snapshot = store.bind("RUB-MED")

    edited = store.update_rubric("RUB-MED", passing_threshold=75)

    assert edited.version == "2.2"
    assert edited.status == "Draft"
    assert store.get("RUB-MED", "2.1").passing_threshold == 70
    assert store.get("RUB-MED", "2.1").status == "Active"
    assert snapshot.passing_threshold == 70
    assert [rubric.version for rubric in store.versions("RUB-MED")] == ["2.1", "2.2"]


def test_edit_of_unbound_rubric_returns_to_draft(
    store: RubricStore,
    rubric_definition: Callable[..., dict[str, Any]],
):
    store.create_rubric(rubric_definition(), activate=True)

    edited = store.update_rubric("RUB-MED", name="Medical Rubric (revised)")

    assert edited.version == "2.1"
    assert edited.status == "Draft"
    assert store.activate("RUB-MED").status == "Active"


def test_add_criterion_breaks_weight_sum(store: RubricStore, rubric_definition: Callable[..., dict[str, Any]]):
    store.create_rubric(rubric_definition(), activate=True)

    store.add_criterion("RUB-MED", {"id": "CRIT-005", "name": "Warranty", "weight": 10})

    with pytest.raises(ValidationError):
        store.activate("RUB-MED")


def test_archived_rubric_cannot_be_bound(store: RubricStore, rubric_definition: Callable[..., dict[str, Any]]):
    store.create_rubric(rubric_definition(), activate=True)
    store.archive("RUB-MED")

    with pytest.raises(StateError):
        store.bind("RUB-MED")
    with pytest.raises(StateError):
        store.update_rubric("RUB-MED", name="x")


def test_archive_covers_every_version(store: RubricStore, rubric_definition: Callable[..., dict[str, Any]]):
    store.create_rubric(rubric_definition(), activate=True)
    store.bind("RUB-MED")
    store.update_rubric("RUB-MED", name="Medical Rubric (revised)")

    store.archive("RUB-MED")

    assert [(rubric.version, rubric.status) for rubric in store.versions("RUB-MED")] == [
        ("2.1", "Archived"),
        ("2.2", "Archived"),
    ]
    with pytest.raises(StateError):
        store.bind("RUB-MED", "2.1")
    with pytest.raises(StateError):
        store.bind("RUB-MED", "2.2")


def test_draft_rubric_cannot_be_bound(store: RubricStore, rubric_definition: Callable[..., dict[str, Any]]):
    store.create_rubric(rubric_definition())

    with pytest.raises(StateError):
        store.bind("RUB-MED")


def test_unknown_rubric(store: RubricStore):
    with pytest.raises(NotFound):
        store.get("RUB-404")


def test_release_unfreezes(store: RubricStore, rubric_definition: Callable[..., dict[str, Any]]):
    store.create_rubric(rubric_definition(), activate=True)
    store.bind("RUB-MED")

    store.release("RUB-MED", "2.1")

    assert not store.is_frozen("RUB-MED", "2.1")


def test_generated_ids_and_status_filter(store: RubricStore, rubric_definition: Callable[..., dict[str, Any]]):
    first = store.create_rubric(rubric_definition(id=None), activate=True)
    second = store.create_rubric(rubric_definition(id=None, name="Draft rubric"))

    assert first.id == "RUB-0001"
    assert second.id == "RUB-0002"
    assert [rubric.id for rubric in store.list_rubrics(status="Active")] == ["RUB-0001"]
