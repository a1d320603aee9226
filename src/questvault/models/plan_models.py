"""Plain data structures shared by the planning and review services."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from questvault.errors import ValidationError


class BatchStatus(Enum):
    """Lifecycle of a learner's batch assignment."""
    LOCKED = "locked"
    OPEN = "open"
    PASSED = "passed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (BatchStatus.PASSED, BatchStatus.FAILED)


class AttemptOutcome(Enum):
    """Result of attempting an open batch."""
    PASSED = "passed"
    FAILED = "failed"

    @classmethod
    def coerce(cls, value) -> "AttemptOutcome":
        """Accept a member, its value, or any enum with the same value."""
        return _coerce(cls, value)


class ReviewOutcome(Enum):
    """Result of re-studying a missed item."""
    SUCCESS = "success"
    FAILURE = "failure"

    @classmethod
    def coerce(cls, value) -> "ReviewOutcome":
        return _coerce(cls, value)



class RefundStatus(Enum):
    """Lifecycle of a points refund request."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

def _coerce(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, Enum):
        value = value.value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"{value!r} is not a valid {enum_cls.__name__} ({allowed})") from None


@dataclass(frozen=True)
class BatchSpec:
    """One batch of a plan. Offsets are 0-based and end-exclusive."""
    batch_index: int
    period_index: int
    start_offset: int
    end_offset: int
    unit_count: int


@dataclass(frozen=True)
class PeriodSpec:
    """Batches assigned to one period (e.g. a week)."""
    period_index: int
    batch_count: int
    first_batch: int
    last_batch: int


@dataclass(frozen=True)
class DistributionPlan:
    """Deterministic partition of a content pool across a deployment window."""
    total_units: int
    units_per_batch: int
    duration_periods: int
    batches: Tuple[BatchSpec, ...]
    periods: Tuple[PeriodSpec, ...]

    @property
    def total_batches(self) -> int:
        return len(self.batches)

    def batch(self, batch_index: int) -> BatchSpec:
        """Get a batch by its 1-based index."""
        if batch_index < 1 or batch_index > len(self.batches):
            raise IndexError(f"Batch {batch_index} is outside 1..{len(self.batches)}")
        return self.batches[batch_index - 1]

    def batches_in_period(self, period_index: int) -> List[BatchSpec]:
        return [b for b in self.batches if b.period_index == period_index]


@dataclass
class TimelineStatus:
    """Time remaining until a deadline."""
    time_left: str
    hours_remaining: int
    is_warning: bool
    is_corroded: bool


@dataclass
class BatchResult:
    """Outcome of submitting answers for one batch."""
    assignment_id: int
    outcome: AttemptOutcome
    score: float
    mistakes: List[str] = field(default_factory=list)
    missed_item_ids: List[int] = field(default_factory=list)
    unlocked_batch: Optional[int] = None
    points_awarded: int = 0
    plan_cleared: bool = False
    reward_claimed: bool = False
    details: Dict[str, bool] = field(default_factory=dict)
