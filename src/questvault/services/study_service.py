"""Service tying batch attempts to missed-item reviews and rewards."""
import logging
from typing import List, Mapping, Optional

from questvault import monitoring
from questvault.config import settings
from questvault.errors import ConcurrentUpdate, InvalidTransition, ValidationError
from questvault.models.models import BatchAssignment, MissedItem, Plan
from questvault.models.plan_models import (
    AttemptOutcome,
    BatchResult,
    BatchStatus,
    ReviewOutcome,
)
from questvault.services.progress_service import ProgressService
from questvault.services.review_scheduler import ReviewScheduler
from questvault.services.sequence_planner import SequencePlanner

logger = logging.getLogger(__name__)


class StudyService:
    """Delivery layer for a learner working through a plan.

    All three collaborators must share one record store so that a batch
    submission commits or rolls back as a whole.
    """

    def __init__(
        self,
        scheduler: ReviewScheduler,
        planner: SequencePlanner,
        progress: Optional[ProgressService] = None,
    ):
        self.scheduler = scheduler
        self.planner = planner
        self.progress = progress or ProgressService(planner.store, clock=planner.clock)
        self.store = planner.store
        if scheduler.store is not self.store or self.progress.store is not self.store:
            raise ValidationError("scheduler, planner and progress must share one record store")

    def submit_batch(self, assignment: BatchAssignment, answers: Mapping[str, bool]) -> BatchResult:
        """Grade a batch attempt and apply everything that follows from it.

        ``answers`` maps subject keys of the batch to whether they were
        answered correctly. Items left unanswered count as mistakes. Every
        mistake is recorded as a missed item.

        The assignment is re-read before anything is written. If it is no
        longer open, or changed since the caller loaded it, nothing is
        applied.
        """
        expected_version = assignment.version
        with self.store.transaction():
            current = self.store.reload(BatchAssignment, assignment.id)
            if current.status != BatchStatus.OPEN:
                raise InvalidTransition(
                    f"Assignment {current.id} is {current.status.value} and cannot be attempted"
                )
            if current.version != expected_version:
                raise ConcurrentUpdate(
                    f"Assignment {current.id} is at version {current.version}, expected {expected_version}"
                )

            plan = current.plan
            items = self.planner.batch_items(plan, current.batch_index)
            if not items:
                raise ValidationError(
                    f"Batch {current.batch_index} of plan {plan.id} has no items to grade"
                )
            unknown = set(answers) - set(items)
            if unknown:
                raise ValidationError(f"Answers for subjects outside the batch: {sorted(unknown)}")

            details = {key: bool(answers.get(key, False)) for key in items}
            mistakes = [key for key, correct in details.items() if not correct]
            score = round(100.0 * (len(items) - len(mistakes)) / len(items), 1)

            missed_ids = [
                self.scheduler.record_miss(current.owner_id, key).id for key in mistakes
            ]

            failed = len(mistakes) >= settings.study.max_mistakes or score < settings.study.pass_score
            outcome = AttemptOutcome.FAILED if failed else AttemptOutcome.PASSED

            self.planner.record_score(current, score)
            self.planner.advance(current, outcome)

            result = BatchResult(
                assignment_id=current.id,
                outcome=outcome,
                score=score,
                mistakes=mistakes,
                missed_item_ids=missed_ids,
                details=details,
            )
            if outcome == AttemptOutcome.PASSED:
                self._apply_pass(current, plan, result)

        monitoring.batch_scores.observe(score)
        if outcome == AttemptOutcome.FAILED:
            logger.info(
                "%s failed batch %d of plan %s with %.1f%% (%d mistakes)",
                current.owner_id,
                current.batch_index,
                plan.id,
                score,
                len(mistakes),
            )
        return result

    def _apply_pass(self, assignment: BatchAssignment, plan: Plan, result: BatchResult) -> None:
        result.points_awarded = settings.study.points_per_batch
        self.progress.award(assignment.owner_id, points=settings.study.points_per_batch)

        unlocked = self.planner.next_unlocked(assignment)
        result.unlocked_batch = unlocked.batch_index if unlocked is not None else None

        if not self.planner.is_fully_cleared(assignment.owner_id, plan):
            return
        result.plan_cleared = True
        reward = self.planner.claim_completion_reward(
            assignment.owner_id,
            plan,
            xp=settings.study.completion_xp,
            points=settings.study.completion_points,
        )
        if reward is not None:
            self.progress.award(assignment.owner_id, xp=reward.xp, points=reward.points)
            result.reward_claimed = True
            result.points_awarded += reward.points

    def review_due(self, owner_id: str, results: Mapping[int, bool]) -> List[MissedItem]:
        """Clear reviewed items; ``results`` maps missed item ids to correctness."""
        cleared = []
        with self.store.transaction():
            for item_id, correct in results.items():
                item = self.scheduler.get_item(item_id)
                if item.owner_id != owner_id:
                    raise ValidationError(f"Missed item {item_id} does not belong to {owner_id}")
                outcome = ReviewOutcome.SUCCESS if correct else ReviewOutcome.FAILURE
                cleared.append(self.scheduler.clear(item_id, outcome))
        return cleared
