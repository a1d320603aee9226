"""Service for distributing a content pool into sequentially unlocked batches."""
import logging
import math
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from questvault import monitoring
from questvault.clock import Clock, SystemClock
from questvault.config import settings
from questvault.errors import DuplicateRecord, InvalidTransition, ValidationError
from questvault.models.models import BatchAssignment, CompletionReward, Plan, PlanItem
from questvault.models.plan_models import (
    AttemptOutcome,
    BatchSpec,
    BatchStatus,
    DistributionPlan,
    PeriodSpec,
)
from questvault.services.record_store import RecordStore

logger = logging.getLogger(__name__)


def _require_positive(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{name} must be a positive integer, got {value!r}")


def build_plan(total_units: int, units_per_batch: int, duration_periods: int) -> DistributionPlan:
    """Partition ``total_units`` into batches spread over ``duration_periods``.

    The first ``total_batches % duration_periods`` periods get one extra batch.
    Periods left without batches are omitted, and the last batch carries the
    remainder of units.
    """
    _require_positive("total_units", total_units)
    _require_positive("units_per_batch", units_per_batch)
    _require_positive("duration_periods", duration_periods)

    total_batches = math.ceil(total_units / units_per_batch)
    base, remainder = divmod(total_batches, duration_periods)

    batches: List[BatchSpec] = []
    periods: List[PeriodSpec] = []
    cursor = 0
    for period_index in range(1, duration_periods + 1):
        count = base + (1 if period_index <= remainder else 0)
        if count == 0:
            continue
        periods.append(
            PeriodSpec(
                period_index=period_index,
                batch_count=count,
                first_batch=cursor + 1,
                last_batch=cursor + count,
            )
        )
        for _ in range(count):
            start = cursor * units_per_batch
            end = min(start + units_per_batch, total_units)
            cursor += 1
            batches.append(
                BatchSpec(
                    batch_index=cursor,
                    period_index=period_index,
                    start_offset=start,
                    end_offset=end,
                    unit_count=end - start,
                )
            )

    return DistributionPlan(
        total_units=total_units,
        units_per_batch=units_per_batch,
        duration_periods=duration_periods,
        batches=tuple(batches),
        periods=tuple(periods),
    )


class SequencePlanner:
    """Builds plans and moves learners through their batches."""

    def __init__(self, store: RecordStore, clock: Optional[Clock] = None):
        """Initialize the planner with a record store and a clock."""
        self.store = store
        self.clock = clock or SystemClock()

    def build_plan(self, total_units: int, units_per_batch: int, duration_periods: int) -> DistributionPlan:
        """Compute a distribution without persisting anything."""
        return build_plan(total_units, units_per_batch, duration_periods)

    def distribution(self, plan: Plan) -> DistributionPlan:
        """Rebuild the deterministic distribution a stored plan was created from."""
        return build_plan(plan.total_units, plan.units_per_batch, plan.duration_periods)

    def create_plan(
        self,
        subject_keys: Sequence[str],
        units_per_batch: Optional[int] = None,
        duration_periods: Optional[int] = None,
        title: str = "",
        starts_at: Optional[datetime] = None,
        period_length_days: Optional[int] = None,
    ) -> Plan:
        """Persist a content pool together with its distribution."""
        subject_keys = list(subject_keys)
        if not subject_keys:
            raise ValidationError("Content pool is empty")
        if units_per_batch is None:
            units_per_batch = settings.plan.units_per_batch
        if duration_periods is None:
            duration_periods = settings.plan.duration_periods
        if period_length_days is None:
            period_length_days = settings.plan.period_length_days
        _require_positive("period_length_days", period_length_days)
        distribution = build_plan(len(subject_keys), units_per_batch, duration_periods)

        with self.store.transaction():
            plan = self.store.insert(
                Plan(
                    title=title,
                    total_units=distribution.total_units,
                    units_per_batch=distribution.units_per_batch,
                    duration_periods=distribution.duration_periods,
                    total_batches=distribution.total_batches,
                    starts_at=starts_at,
                    period_length_days=period_length_days,
                )
            )
            self.store.insert_all(
                PlanItem(plan_id=plan.id, position=position, subject_key=key)
                for position, key in enumerate(subject_keys, start=1)
            )

        monitoring.plans_created.inc()
        logger.info(
            "Created plan %s (%r): %d units in %d batches over %d periods",
            plan.id,
            title,
            distribution.total_units,
            distribution.total_batches,
            len(distribution.periods),
        )
        return plan

    def batch_items(self, plan: Plan, batch_index: int) -> List[str]:
        """Get the subject keys that make up one batch."""
        try:
            spec = self.distribution(plan).batch(batch_index)
        except IndexError as e:
            raise ValidationError(str(e)) from e
        items = self.store.query(
            PlanItem,
            PlanItem.plan_id == plan.id,
            PlanItem.position > spec.start_offset,
            PlanItem.position <= spec.end_offset,
            order_by=[PlanItem.position],
        )
        return [item.subject_key for item in items]

    def period_deadline(self, plan: Plan, period_index: int) -> Optional[datetime]:
        """End of a period, or None when the plan has no start date."""
        if period_index < 1 or period_index > plan.duration_periods:
            raise ValidationError(f"Period {period_index} is outside 1..{plan.duration_periods}")
        if plan.starts_at is None:
            return None
        return plan.starts_at + timedelta(days=plan.period_length_days * period_index)

    def assign_to_learner(self, plan: Plan, owner_id: str) -> List[BatchAssignment]:
        """Create one assignment per batch: the first open, the rest locked."""
        if self.store.count(
            BatchAssignment,
            BatchAssignment.owner_id == owner_id,
            BatchAssignment.plan_id == plan.id,
        ):
            raise InvalidTransition(f"Plan {plan.id} is already assigned to {owner_id}")

        assignments = [
            BatchAssignment(
                owner_id=owner_id,
                plan_id=plan.id,
                batch_index=spec.batch_index,
                period_index=spec.period_index,
                status=BatchStatus.OPEN if spec.batch_index == 1 else BatchStatus.LOCKED,
                score=0.0,
            )
            for spec in self.distribution(plan).batches
        ]
        try:
            self.store.insert_all(assignments)
        except DuplicateRecord as e:
            raise InvalidTransition(f"Plan {plan.id} is already assigned to {owner_id}") from e

        monitoring.assignments_created.inc(len(assignments))
        logger.info("Assigned plan %s to %s (%d batches)", plan.id, owner_id, len(assignments))
        return assignments

    def assign_to_learners(self, plan: Plan, owner_ids: Iterable[str]) -> List[BatchAssignment]:
        """Deploy a plan to several learners."""
        assignments = []
        for owner_id in owner_ids:
            assignments.extend(self.assign_to_learner(plan, owner_id))
        return assignments

    def list_assignments(self, owner_id: str, plan: Plan) -> List[BatchAssignment]:
        """Get a learner's assignments for a plan in batch order."""
        return self.store.query(
            BatchAssignment,
            BatchAssignment.owner_id == owner_id,
            BatchAssignment.plan_id == plan.id,
            order_by=[BatchAssignment.batch_index],
        )

    def current_assignment(self, owner_id: str, plan: Plan) -> Optional[BatchAssignment]:
        """Get the open assignment with the lowest batch index, if any."""
        open_assignments = self.store.query(
            BatchAssignment,
            BatchAssignment.owner_id == owner_id,
            BatchAssignment.plan_id == plan.id,
            BatchAssignment.status == BatchStatus.OPEN,
            order_by=[BatchAssignment.batch_index],
            limit=1,
        )
        return open_assignments[0] if open_assignments else None

    def record_score(self, assignment: BatchAssignment, score: float) -> BatchAssignment:
        """Store the result of an attempt."""
        return self.store.update(
            BatchAssignment,
            assignment.id,
            {"score": float(score), "attempted_at": self.clock.now()},
        )

    def advance(self, assignment: BatchAssignment, outcome: AttemptOutcome) -> BatchAssignment:
        """Apply an attempt outcome to an open assignment.

        A pass unlocks the next locked batch of the same learner and plan.
        A fail unlocks nothing.
        """
        outcome = AttemptOutcome.coerce(outcome)
        status = assignment.status
        if status.is_terminal:
            raise InvalidTransition(
                f"Assignment {assignment.id} is already {status.value}"
            )
        if status != BatchStatus.OPEN:
            raise InvalidTransition(
                f"Assignment {assignment.id} is {status.value} and cannot be attempted"
            )

        new_status = BatchStatus.PASSED if outcome == AttemptOutcome.PASSED else BatchStatus.FAILED
        with self.store.transaction():
            updated = self.store.update(
                BatchAssignment,
                assignment.id,
                {"status": new_status},
                expected_version=assignment.version,
            )
            unlocked = None
            if new_status == BatchStatus.PASSED:
                locked = self.store.query(
                    BatchAssignment,
                    BatchAssignment.owner_id == updated.owner_id,
                    BatchAssignment.plan_id == updated.plan_id,
                    BatchAssignment.batch_index > updated.batch_index,
                    BatchAssignment.status == BatchStatus.LOCKED,
                    order_by=[BatchAssignment.batch_index],
                    limit=1,
                )
                if locked:
                    following = locked[0]
                    unlocked = self.store.update(
                        BatchAssignment,
                        following.id,
                        {"status": BatchStatus.OPEN},
                        expected_version=following.version,
                    )

        monitoring.assignments_advanced.labels(outcome=new_status.value).inc()
        logger.info(
            "Batch %d of plan %s for %s is now %s%s",
            updated.batch_index,
            updated.plan_id,
            updated.owner_id,
            new_status.value,
            f"; unlocked batch {unlocked.batch_index}" if unlocked is not None else "",
        )
        return updated

    def next_unlocked(self, assignment: BatchAssignment) -> Optional[BatchAssignment]:
        """Get the assignment right after this one, if it is open."""
        return self.store.find(
            BatchAssignment,
            BatchAssignment.owner_id == assignment.owner_id,
            BatchAssignment.plan_id == assignment.plan_id,
            BatchAssignment.batch_index == assignment.batch_index + 1,
            BatchAssignment.status == BatchStatus.OPEN,
        )

    def is_fully_cleared(self, owner_id: str, plan: Plan) -> bool:
        """True iff the learner has assignments for the plan and all of them passed."""
        total = self.store.count(
            BatchAssignment,
            BatchAssignment.owner_id == owner_id,
            BatchAssignment.plan_id == plan.id,
        )
        if not total:
            return False
        passed = self.store.count(
            BatchAssignment,
            BatchAssignment.owner_id == owner_id,
            BatchAssignment.plan_id == plan.id,
            BatchAssignment.status == BatchStatus.PASSED,
        )
        return passed == total

    def claim_completion_reward(
        self, owner_id: str, plan: Plan, xp: int = 0, points: int = 0
    ) -> Optional[CompletionReward]:
        """Record the completion reward once.

        Returns the new reward, or None if it had been claimed before.
        """
        if not self.is_fully_cleared(owner_id, plan):
            raise InvalidTransition(f"Plan {plan.id} is not cleared by {owner_id}")
        existing = self.store.find(
            CompletionReward,
            CompletionReward.owner_id == owner_id,
            CompletionReward.plan_id == plan.id,
        )
        if existing is not None:
            logger.debug("Completion reward for plan %s already claimed by %s", plan.id, owner_id)
            return None
        try:
            reward = self.store.insert(
                CompletionReward(
                    owner_id=owner_id,
                    plan_id=plan.id,
                    xp=xp,
                    points=points,
                    claimed_at=self.clock.now(),
                )
            )
        except DuplicateRecord:
            if self.store.in_transaction:
                raise
            logger.debug("Completion reward for plan %s claimed concurrently by %s", plan.id, owner_id)
            return None
        monitoring.rewards_claimed.inc()
        logger.info("Completion reward for plan %s paid to %s", plan.id, owner_id)
        return reward
