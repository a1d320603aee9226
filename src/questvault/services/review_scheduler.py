"""Service for scheduling re-study of missed items."""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from questvault import monitoring
from questvault.clock import Clock, SystemClock
from questvault.config import settings
from questvault.errors import DuplicateRecord, InvalidTransition, ValidationError
from questvault.models.models import MissedItem
from questvault.models.plan_models import ReviewOutcome
from questvault.services.record_store import RecordStore

logger = logging.getLogger(__name__)


class ReviewScheduler:
    """Tracks a learner's missed items and decides when they are due again.

    The interval after reaching level ``n`` is ``base_interval * growth_factor ** n``.
    A failed review drops the item back to level 0. Reaching
    ``mastery_threshold`` retires the item: it is kept for history but never
    returned as due.
    """

    def __init__(
        self,
        store: RecordStore,
        clock: Optional[Clock] = None,
        base_interval: Optional[timedelta] = None,
        growth_factor: Optional[float] = None,
        mastery_threshold: Optional[int] = None,
    ):
        """Initialize the scheduler; unset tunables come from settings."""
        self.store = store
        self.clock = clock or SystemClock()
        self.base_interval = (
            base_interval if base_interval is not None
            else timedelta(minutes=settings.review.base_interval_minutes)
        )
        self.growth_factor = growth_factor if growth_factor is not None else settings.review.growth_factor
        self.mastery_threshold = (
            mastery_threshold if mastery_threshold is not None else settings.review.mastery_threshold
        )

        if self.base_interval <= timedelta(0):
            raise ValidationError("base_interval must be positive")
        if self.growth_factor <= 1:
            raise ValidationError("growth_factor must be greater than 1")
        if self.mastery_threshold < 1:
            raise ValidationError("mastery_threshold must be at least 1")

    def interval(self, level: int) -> timedelta:
        """Time until the next review for an item at ``level``."""
        if level < 0:
            raise ValidationError(f"level must be >= 0, got {level}")
        return self.base_interval * (self.growth_factor ** level)

    def _open_item(self, owner_id: str, subject_key: str) -> Optional[MissedItem]:
        return self.store.find(
            MissedItem,
            MissedItem.owner_id == owner_id,
            MissedItem.subject_key == subject_key,
            MissedItem.is_retired == False,  # noqa: E712
        )

    def record_miss(self, owner_id: str, subject_key: str, error_type: str = "meaning") -> MissedItem:
        """Record a wrong answer.

        An open record for the same learner and subject is reused and pushed
        further out instead of creating a duplicate.
        """
        if not owner_id or not subject_key:
            raise ValidationError("owner_id and subject_key are required")

        now = self.clock.now()
        existing = self._open_item(owner_id, subject_key)
        if existing is None:
            try:
                item = self.store.insert(
                    MissedItem(
                        owner_id=owner_id,
                        subject_key=subject_key,
                        error_type=error_type,
                        repetition_level=0,
                        next_review_at=now + self.base_interval,
                        miss_count=1,
                        is_retired=False,
                    )
                )
            except DuplicateRecord:
                # Another request created it first; extend that one instead.
                # Inside a transaction the session is already rolled back.
                if self.store.in_transaction:
                    raise
                existing = self._open_item(owner_id, subject_key)
                if existing is None:
                    raise
            else:
                monitoring.misses_recorded.labels(reused="false").inc()
                logger.info("Recorded miss %s for %s: %r", item.id, owner_id, subject_key)
                return item

        item = self.store.update(
            MissedItem,
            existing.id,
            {
                "next_review_at": max(existing.next_review_at, now) + self.base_interval,
                "miss_count": existing.miss_count + 1,
                "error_type": error_type,
            },
            expected_version=existing.version,
        )
        monitoring.misses_recorded.labels(reused="true").inc()
        logger.info(
            "Extended miss %s for %s: %r (missed %d times)",
            item.id,
            owner_id,
            subject_key,
            item.miss_count,
        )
        return item

    def list_due(self, owner_id: str) -> List[MissedItem]:
        """Get open items whose review time has come, oldest first."""
        return self.store.query(
            MissedItem,
            MissedItem.owner_id == owner_id,
            MissedItem.is_retired == False,  # noqa: E712
            MissedItem.next_review_at <= self.clock.now(),
            order_by=[MissedItem.next_review_at, MissedItem.id],
        )

    def count_due(self, owner_id: str) -> int:
        return self.store.count(
            MissedItem,
            MissedItem.owner_id == owner_id,
            MissedItem.is_retired == False,  # noqa: E712
            MissedItem.next_review_at <= self.clock.now(),
        )

    def next_due_at(self, owner_id: str) -> Optional[datetime]:
        """When the earliest open item becomes (or became) due."""
        items = self.store.query(
            MissedItem,
            MissedItem.owner_id == owner_id,
            MissedItem.is_retired == False,  # noqa: E712
            order_by=[MissedItem.next_review_at],
            limit=1,
        )
        return items[0].next_review_at if items else None

    def list_vault(self, owner_id: str, include_retired: bool = False) -> List[MissedItem]:
        """Get all of a learner's missed items, due or not."""
        criteria = [MissedItem.owner_id == owner_id]
        if not include_retired:
            criteria.append(MissedItem.is_retired == False)  # noqa: E712
        return self.store.query(
            MissedItem,
            *criteria,
            order_by=[MissedItem.next_review_at, MissedItem.id],
        )

    def get_item(self, item_id: int) -> MissedItem:
        return self.store.get(MissedItem, item_id)

    def clear(self, item_id: int, outcome: ReviewOutcome) -> MissedItem:
        """Apply the result of re-studying an item."""
        outcome = ReviewOutcome.coerce(outcome)
        item = self.store.get(MissedItem, item_id)
        if item.is_retired:
            raise InvalidTransition(f"Missed item {item_id} is already retired")

        now = self.clock.now()
        if outcome == ReviewOutcome.SUCCESS:
            level = item.repetition_level + 1
            patch = {"repetition_level": level, "last_reviewed_at": now}
            if level >= self.mastery_threshold:
                patch.update(is_retired=True, retired_at=now)
            else:
                patch["next_review_at"] = now + self.interval(level)
        else:
            level = 0
            patch = {
                "repetition_level": 0,
                "last_reviewed_at": now,
                "next_review_at": now + self.base_interval,
            }

        item = self.store.update(MissedItem, item_id, patch, expected_version=item.version)

        monitoring.reviews_cleared.labels(outcome=outcome.value).inc()
        if item.is_retired:
            monitoring.items_retired.inc()
            logger.info("Missed item %s of %s retired at level %d", item.id, item.owner_id, level)
        else:
            logger.debug(
                "Missed item %s of %s now at level %d, next review %s",
                item.id,
                item.owner_id,
                level,
                item.next_review_at,
            )
        return item
