"""Tests for the progress service."""
import pytest

from questvault.clock import ManualClock
from questvault.errors import InvalidTransition, NotFound, ValidationError
from questvault.models.models import RefundRequest
from questvault.models.plan_models import RefundStatus
from questvault.services.progress_service import ProgressService
from questvault.services.record_store import RecordStore


def test_get_or_create(progress: ProgressService, owner_id: str) -> None:
    stats = progress.get_or_create(owner_id)

    assert stats.level == 1
    assert stats.xp == 0
    assert stats.next_level_xp == 100
    assert stats.max_hp == 100
    assert stats.points == 0
    assert progress.get_or_create(owner_id).id == stats.id


def test_award_without_level_up(progress: ProgressService, owner_id: str) -> None:
    stats = progress.award(owner_id, xp=40, points=10)

    assert stats.level == 1
    assert stats.xp == 40
    assert stats.points == 10


def test_award_levels_up_repeatedly(progress: ProgressService, owner_id: str) -> None:
    """300 xp: 100 for level 2, 120 for level 3, 80 left over."""
    stats = progress.award(owner_id, xp=300, points=100)

    assert stats.level == 3
    assert stats.xp == 80
    assert stats.next_level_xp == 144
    assert stats.max_hp == 120
    assert stats.points == 100


def test_awards_accumulate(progress: ProgressService, owner_id: str) -> None:
    progress.award(owner_id, xp=60)
    stats = progress.award(owner_id, xp=60, points=5)

    assert stats.level == 2
    assert stats.xp == 20
    assert stats.points == 5


def test_negative_award_is_rejected(progress: ProgressService, owner_id: str) -> None:
    with pytest.raises(ValidationError):
        progress.award(owner_id, xp=-1)
    with pytest.raises(ValidationError):
        progress.award(owner_id, points=-5)


def test_request_refund_debits_points(progress: ProgressService, clock: ManualClock, owner_id: str) -> None:
    progress.award(owner_id, points=100)

    request = progress.request_refund(owner_id, 60)

    assert request.status == RefundStatus.PENDING
    assert request.amount == 60
    assert request.requested_at == clock.now()
    assert request.processed_at is None
    assert progress.get_or_create(owner_id).points == 40


def test_request_refund_with_insufficient_points(
    progress: ProgressService, store: RecordStore, owner_id: str
) -> None:
    progress.award(owner_id, points=30)

    with pytest.raises(ValidationError):
        progress.request_refund(owner_id, 31)

    assert progress.get_or_create(owner_id).points == 30
    assert store.count(RefundRequest) == 0


@pytest.mark.parametrize("amount", [0, -10, True, 2.5])
def test_request_refund_rejects_bad_amounts(progress: ProgressService, owner_id: str, amount) -> None:
    progress.award(owner_id, points=100)

    with pytest.raises(ValidationError):
        progress.request_refund(owner_id, amount)

    assert progress.get_or_create(owner_id).points == 100


def test_process_refund(progress: ProgressService, clock: ManualClock, owner_id: str) -> None:
    progress.award(owner_id, points=100)
    approved = progress.request_refund(owner_id, 50)
    rejected = progress.request_refund(owner_id, 20)
    clock.advance(hours=2)

    progress.process_refund(approved.id, approved=True)
    progress.process_refund(rejected.id, approved=False)

    assert approved.status == RefundStatus.APPROVED
    assert approved.processed_at == clock.now()
    assert rejected.status == RefundStatus.REJECTED
    # Points stay debited either way
    assert progress.get_or_create(owner_id).points == 30
    assert progress.list_refund_requests(status=RefundStatus.PENDING) == []
    assert [r.id for r in progress.list_refund_requests(owner_id=owner_id)] == [approved.id, rejected.id]


def test_processed_refund_cannot_be_processed_again(progress: ProgressService, owner_id: str) -> None:
    progress.award(owner_id, points=10)
    request = progress.request_refund(owner_id, 10)
    progress.process_refund(request.id, approved=False)

    with pytest.raises(InvalidTransition):
        progress.process_refund(request.id, approved=True)

    assert request.status == RefundStatus.REJECTED


def test_process_unknown_refund(progress: ProgressService) -> None:
    with pytest.raises(NotFound):
        progress.process_refund(404, approved=True)
