"""Tests for the review scheduler."""
from datetime import timedelta

import pytest
from faker import Faker

from questvault.clock import ManualClock
from questvault.errors import InvalidTransition, NotFound, ValidationError
from questvault.models.models import MissedItem
from questvault.models.plan_models import ReviewOutcome
from questvault.services.record_store import RecordStore
from questvault.services.review_scheduler import ReviewScheduler

fake = Faker()


def test_record_miss_creates_item(scheduler: ReviewScheduler, clock: ManualClock, owner_id: str) -> None:
    item = scheduler.record_miss(owner_id, "ephemeral")

    assert item.id is not None
    assert item.owner_id == owner_id
    assert item.subject_key == "ephemeral"
    assert item.repetition_level == 0
    assert item.miss_count == 1
    assert item.is_retired is False
    assert item.error_type == "meaning"
    assert item.next_review_at == clock.now() + timedelta(minutes=1)


def test_record_miss_twice_extends_single_item(
    scheduler: ReviewScheduler, store: RecordStore, clock: ManualClock, owner_id: str
) -> None:
    first = scheduler.record_miss(owner_id, "ephemeral")
    first_due = first.next_review_at

    second = scheduler.record_miss(owner_id, "ephemeral")

    assert second.id == first.id
    assert second.next_review_at > first_due
    assert second.miss_count == 2
    assert store.count(MissedItem, MissedItem.owner_id == owner_id) == 1


def test_record_miss_after_due_extends_from_now(
    scheduler: ReviewScheduler, clock: ManualClock, owner_id: str
) -> None:
    scheduler.record_miss(owner_id, "ephemeral")
    clock.advance(minutes=30)

    item = scheduler.record_miss(owner_id, "ephemeral")

    assert item.next_review_at == clock.now() + timedelta(minutes=1)


def test_record_miss_is_per_owner(scheduler: ReviewScheduler, store: RecordStore) -> None:
    scheduler.record_miss("amy", "ephemeral")
    scheduler.record_miss("ben", "ephemeral")

    assert store.count(MissedItem) == 2


def test_record_miss_requires_keys(scheduler: ReviewScheduler, owner_id: str) -> None:
    with pytest.raises(ValidationError):
        scheduler.record_miss(owner_id, "")
    with pytest.raises(ValidationError):
        scheduler.record_miss("", "ephemeral")


def test_list_due(scheduler: ReviewScheduler, clock: ManualClock, owner_id: str) -> None:
    """Only items whose time has come, oldest due first."""
    scheduler.record_miss(owner_id, "alpha")
    clock.advance(seconds=10)
    scheduler.record_miss(owner_id, "beta")
    clock.advance(seconds=10)
    scheduler.record_miss(owner_id, "gamma")
    scheduler.record_miss("someone-else", "alpha")

    assert scheduler.list_due(owner_id) == []

    clock.advance(seconds=55)  # alpha and beta are due, gamma is not
    due = scheduler.list_due(owner_id)
    assert [item.subject_key for item in due] == ["alpha", "beta"]
    assert scheduler.count_due(owner_id) == 2

    clock.advance(minutes=5)
    assert [item.subject_key for item in scheduler.list_due(owner_id)] == ["alpha", "beta", "gamma"]


def test_due_exactly_at_review_time(scheduler: ReviewScheduler, clock: ManualClock, owner_id: str) -> None:
    item = scheduler.record_miss(owner_id, "ephemeral")
    clock.set(item.next_review_at)

    assert [i.id for i in scheduler.list_due(owner_id)] == [item.id]


def test_interval_grows_exponentially(scheduler: ReviewScheduler) -> None:
    assert scheduler.interval(0) == timedelta(minutes=1)
    assert scheduler.interval(1) == timedelta(minutes=2)
    assert scheduler.interval(3) == timedelta(minutes=8)
    with pytest.raises(ValidationError):
        scheduler.interval(-1)


def test_clear_success_levels_up(scheduler: ReviewScheduler, clock: ManualClock, owner_id: str) -> None:
    item = scheduler.record_miss(owner_id, "ephemeral")
    clock.advance(minutes=1)

    cleared = scheduler.clear(item.id, ReviewOutcome.SUCCESS)

    assert cleared.repetition_level == 1
    assert cleared.next_review_at == clock.now() + timedelta(minutes=2)
    assert cleared.last_reviewed_at == clock.now()
    assert scheduler.list_due(owner_id) == []

    clock.advance(minutes=2)
    cleared = scheduler.clear(item.id, ReviewOutcome.SUCCESS)
    assert cleared.repetition_level == 2
    assert cleared.next_review_at == clock.now() + timedelta(minutes=4)


def test_clear_failure_resets_level(scheduler: ReviewScheduler, clock: ManualClock, owner_id: str) -> None:
    item = scheduler.record_miss(owner_id, "ephemeral")
    scheduler.clear(item.id, ReviewOutcome.SUCCESS)
    scheduler.clear(item.id, ReviewOutcome.SUCCESS)

    cleared = scheduler.clear(item.id, ReviewOutcome.FAILURE)

    assert cleared.repetition_level == 0
    assert cleared.next_review_at == clock.now() + timedelta(minutes=1)
    assert cleared.is_retired is False


def test_clear_at_threshold_retires(scheduler: ReviewScheduler, clock: ManualClock, owner_id: str) -> None:
    """Mastery threshold is 3: the third success retires the item."""
    item = scheduler.record_miss(owner_id, "ephemeral")
    scheduler.clear(item.id, ReviewOutcome.SUCCESS)
    scheduler.clear(item.id, ReviewOutcome.SUCCESS)
    clock.advance(days=1)
    assert [i.id for i in scheduler.list_due(owner_id)] == [item.id]

    retired = scheduler.clear(item.id, ReviewOutcome.SUCCESS)

    assert retired.is_retired is True
    assert retired.retired_at == clock.now()
    assert retired.repetition_level == 3
    assert scheduler.list_due(owner_id) == []
    assert scheduler.list_vault(owner_id) == []
    assert [i.id for i in scheduler.list_vault(owner_id, include_retired=True)] == [item.id]

    with pytest.raises(InvalidTransition):
        scheduler.clear(item.id, ReviewOutcome.SUCCESS)


def test_miss_after_retirement_opens_new_item(
    scheduler: ReviewScheduler, store: RecordStore, owner_id: str
) -> None:
    item = scheduler.record_miss(owner_id, "ephemeral")
    for _ in range(3):
        scheduler.clear(item.id, ReviewOutcome.SUCCESS)

    fresh = scheduler.record_miss(owner_id, "ephemeral")

    assert fresh.id != item.id
    assert fresh.repetition_level == 0
    assert store.count(MissedItem, MissedItem.owner_id == owner_id) == 2


def test_clear_unknown_item(scheduler: ReviewScheduler) -> None:
    with pytest.raises(NotFound):
        scheduler.clear(12345, ReviewOutcome.SUCCESS)


def test_next_due_at(scheduler: ReviewScheduler, clock: ManualClock, owner_id: str) -> None:
    assert scheduler.next_due_at(owner_id) is None

    first = scheduler.record_miss(owner_id, "alpha")
    clock.advance(seconds=30)
    scheduler.record_miss(owner_id, "beta")

    assert scheduler.next_due_at(owner_id) == first.next_review_at


def test_settings_are_validated(store: RecordStore) -> None:
    with pytest.raises(ValidationError):
        ReviewScheduler(store, growth_factor=1.0)
    with pytest.raises(ValidationError):
        ReviewScheduler(store, mastery_threshold=0)
    with pytest.raises(ValidationError):
        ReviewScheduler(store, base_interval=timedelta(0))


def test_vault_lists_all_open_items(scheduler: ReviewScheduler, owner_id: str) -> None:
    subjects = [fake.unique.word() for _ in range(5)]
    for subject in subjects:
        scheduler.record_miss(owner_id, subject)

    vault = scheduler.list_vault(owner_id)

    assert sorted(item.subject_key for item in vault) == sorted(subjects)


def test_get_item(scheduler: ReviewScheduler, owner_id: str) -> None:
    item = scheduler.record_miss(owner_id, "ephemeral")

    assert scheduler.get_item(item.id).subject_key == "ephemeral"
    with pytest.raises(NotFound):
        scheduler.get_item(item.id + 100)


def test_clear_accepts_outcome_values(scheduler: ReviewScheduler, clock: ManualClock, owner_id: str) -> None:
    item = scheduler.record_miss(owner_id, "ephemeral")
    clock.advance(minutes=1)

    cleared = scheduler.clear(item.id, "success")

    assert cleared.repetition_level == 1


def test_clear_rejects_unknown_outcome(
    scheduler: ReviewScheduler, store: RecordStore, clock: ManualClock, owner_id: str
) -> None:
    item = scheduler.record_miss(owner_id, "ephemeral")
    clock.advance(minutes=1)
    scheduler.clear(item.id, ReviewOutcome.SUCCESS)

    with pytest.raises(ValidationError):
        scheduler.clear(item.id, "maybe")

    store.db.expire_all()
    reloaded = store.get(MissedItem, item.id)
    assert reloaded.repetition_level == 1
    assert reloaded.version == 2
