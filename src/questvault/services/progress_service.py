"""Service for learner experience, levels and points."""
import logging
import math
from typing import List, Optional

from questvault import monitoring
from questvault.clock import Clock, SystemClock
from questvault.errors import DuplicateRecord, InvalidTransition, ValidationError
from questvault.models.models import LearnerStats, RefundRequest
from questvault.models.plan_models import RefundStatus
from questvault.services.record_store import RecordStore

logger = logging.getLogger(__name__)

LEVEL_XP_GROWTH = 1.2
HP_PER_LEVEL = 10


class ProgressService:
    """Service for awarding experience and points, and cashing points out."""

    def __init__(self, store: RecordStore, clock: Optional[Clock] = None):
        """Initialize the service with a record store."""
        self.store = store
        self.clock = clock or SystemClock()

    def get_or_create(self, owner_id: str) -> LearnerStats:
        """Get a learner's stats, creating level 1 stats on first use."""
        stats = self.store.find(LearnerStats, LearnerStats.owner_id == owner_id)
        if stats is not None:
            return stats
        try:
            return self.store.insert(
                LearnerStats(
                    owner_id=owner_id,
                    level=1,
                    xp=0,
                    next_level_xp=100,
                    max_hp=100,
                    points=0,
                )
            )
        except DuplicateRecord:
            # Inside a transaction the session is already rolled back
            if self.store.in_transaction:
                raise
            stats = self.store.find(LearnerStats, LearnerStats.owner_id == owner_id)
            if stats is None:
                raise
            return stats

    def award(self, owner_id: str, xp: int = 0, points: int = 0) -> LearnerStats:
        """Add experience and points, levelling up as often as the xp allows."""
        if xp < 0 or points < 0:
            raise ValidationError("xp and points must not be negative")

        stats = self.get_or_create(owner_id)
        level = stats.level
        total_xp = stats.xp + xp
        next_level_xp = stats.next_level_xp
        max_hp = stats.max_hp

        while total_xp >= next_level_xp:
            total_xp -= next_level_xp
            level += 1
            max_hp += HP_PER_LEVEL
            next_level_xp = math.floor(next_level_xp * LEVEL_XP_GROWTH)

        if level > stats.level:
            logger.info("Learner %s reached level %d", owner_id, level)

        return self.store.update(
            LearnerStats,
            stats.id,
            {
                "level": level,
                "xp": total_xp,
                "next_level_xp": next_level_xp,
                "max_hp": max_hp,
                "points": stats.points + points,
            },
            expected_version=stats.version,
        )

    def request_refund(self, owner_id: str, amount: int) -> RefundRequest:
        """Debit points and file a pending refund request in one transaction."""
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError(f"Refund amount must be a positive integer, got {amount!r}")

        with self.store.transaction():
            stats = self.get_or_create(owner_id)
            if stats.points < amount:
                raise ValidationError(
                    f"{owner_id} has {stats.points} points, cannot refund {amount}"
                )
            self.store.update(
                LearnerStats,
                stats.id,
                {"points": stats.points - amount},
                expected_version=stats.version,
            )
            request = self.store.insert(
                RefundRequest(
                    owner_id=owner_id,
                    amount=amount,
                    status=RefundStatus.PENDING,
                    requested_at=self.clock.now(),
                )
            )

        monitoring.refunds_requested.inc()
        logger.info("Refund %s of %d points requested by %s", request.id, amount, owner_id)
        return request

    def process_refund(self, request_id: int, approved: bool) -> RefundRequest:
        """Approve or reject a pending request. Debited points are not returned."""
        request = self.store.get(RefundRequest, request_id)
        if request.status != RefundStatus.PENDING:
            raise InvalidTransition(f"Refund {request_id} is already {request.status.value}")

        status = RefundStatus.APPROVED if approved else RefundStatus.REJECTED
        request = self.store.update(
            RefundRequest,
            request_id,
            {"status": status, "processed_at": self.clock.now()},
            expected_version=request.version,
        )
        monitoring.refunds_processed.labels(status=status.value).inc()
        logger.info("Refund %s of %s %s", request.id, request.owner_id, status.value)
        return request

    def list_refund_requests(
        self, status: Optional[RefundStatus] = None, owner_id: Optional[str] = None
    ) -> List[RefundRequest]:
        """Get refund requests, oldest first."""
        criteria = []
        if status is not None:
            criteria.append(RefundRequest.status == status)
        if owner_id is not None:
            criteria.append(RefundRequest.owner_id == owner_id)
        return self.store.query(
            RefundRequest,
            *criteria,
            order_by=[RefundRequest.requested_at, RefundRequest.id],
        )
