"""Database models for questvault."""
from sqlalchemy import (
    Boolean,
    Column,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship, validates

from questvault.errors import ValidationError
from questvault.models.base import Base, TimestampMixin, UTCDateTime
from questvault.models.plan_models import BatchStatus, RefundStatus


def _require_text(field: str, value: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} must be a non-empty string")
    return value


def _require_at_least(field: str, value: int, minimum: int) -> int:
    if value is None or value < minimum:
        raise ValidationError(f"{field} must be >= {minimum}, got {value}")
    return value


class MissedItem(Base, TimestampMixin):
    """A content unit a learner answered incorrectly."""

    __tablename__ = "missed_items"
    __table_args__ = (
        # At most one open record per learner and subject
        Index(
            "uq_missed_items_open",
            "owner_id",
            "subject_key",
            unique=True,
            sqlite_where=text("is_retired = 0"),
            postgresql_where=text("is_retired = false"),
        ),
        Index("ix_missed_items_due", "owner_id", "is_retired", "next_review_at"),
    )

    id = Column(Integer, primary_key=True)
    owner_id = Column(String, nullable=False)
    subject_key = Column(String, nullable=False)
    error_type = Column(String, nullable=False, default="meaning")
    repetition_level = Column(Integer, nullable=False, default=0)
    next_review_at = Column(UTCDateTime(), nullable=False)
    last_reviewed_at = Column(UTCDateTime())
    miss_count = Column(Integer, nullable=False, default=1)
    is_retired = Column(Boolean, nullable=False, default=False)
    retired_at = Column(UTCDateTime())
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @validates("owner_id", "subject_key")
    def validate_keys(self, key, value):
        return _require_text(key, value)

    @validates("repetition_level")
    def validate_level(self, key, value):
        return _require_at_least(key, value, 0)

    def __repr__(self) -> str:
        return (
            f"<MissedItem {self.id} {self.owner_id}:{self.subject_key} "
            f"level={self.repetition_level} retired={self.is_retired}>"
        )


class Plan(Base, TimestampMixin):
    """A content pool distributed into batches over a number of periods."""

    __tablename__ = "plans"

    id = Column(Integer, primary_key=True)
    title = Column(String, nullable=False, default="")
    total_units = Column(Integer, nullable=False)
    units_per_batch = Column(Integer, nullable=False)
    duration_periods = Column(Integer, nullable=False)
    total_batches = Column(Integer, nullable=False)
    starts_at = Column(UTCDateTime())
    period_length_days = Column(Integer, nullable=False, default=7)

    # Relationships
    items = relationship(
        "PlanItem",
        back_populates="plan",
        order_by="PlanItem.position",
        cascade="all, delete-orphan",
    )
    assignments = relationship("BatchAssignment", back_populates="plan")

    @validates("total_units", "units_per_batch", "duration_periods", "total_batches", "period_length_days")
    def validate_counts(self, key, value):
        return _require_at_least(key, value, 1)


class PlanItem(Base):
    """One content unit of a plan's pool, in pool order."""

    __tablename__ = "plan_items"
    __table_args__ = (UniqueConstraint("plan_id", "position", name="uq_plan_items_position"),)

    id = Column(Integer, primary_key=True)
    plan_id = Column(Integer, ForeignKey("plans.id"), nullable=False)
    position = Column(Integer, nullable=False)  # 1-based
    subject_key = Column(String, nullable=False)

    # Relationships
    plan = relationship("Plan", back_populates="items")

    @validates("subject_key")
    def validate_subject_key(self, key, value):
        return _require_text(key, value)


class BatchAssignment(Base, TimestampMixin):
    """A learner's progress through one batch of a plan."""

    __tablename__ = "batch_assignments"
    __table_args__ = (
        UniqueConstraint("owner_id", "plan_id", "batch_index", name="uq_batch_assignments_batch"),
    )

    id = Column(Integer, primary_key=True)
    owner_id = Column(String, nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("plans.id"), nullable=False)
    batch_index = Column(Integer, nullable=False)
    period_index = Column(Integer, nullable=False)
    status = Column(Enum(BatchStatus), nullable=False, default=BatchStatus.LOCKED)
    score = Column(Float, nullable=False, default=0.0)
    attempted_at = Column(UTCDateTime())
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    plan = relationship("Plan", back_populates="assignments")

    @validates("owner_id")
    def validate_owner(self, key, value):
        return _require_text(key, value)

    @validates("batch_index", "period_index")
    def validate_index(self, key, value):
        return _require_at_least(key, value, 1)

    @validates("score")
    def validate_score(self, key, value):
        if value is None or value < 0 or value > 100:
            raise ValidationError(f"score must be between 0 and 100, got {value}")
        return value

    def __repr__(self) -> str:
        return (
            f"<BatchAssignment {self.id} {self.owner_id} plan={self.plan_id} "
            f"batch={self.batch_index} {self.status.value if self.status else None}>"
        )


class CompletionReward(Base, TimestampMixin):
    """Persisted flag that a plan's completion reward was paid out."""

    __tablename__ = "completion_rewards"
    __table_args__ = (UniqueConstraint("owner_id", "plan_id", name="uq_completion_rewards_plan"),)

    id = Column(Integer, primary_key=True)
    owner_id = Column(String, nullable=False)
    plan_id = Column(Integer, ForeignKey("plans.id"), nullable=False)
    xp = Column(Integer, nullable=False, default=0)
    points = Column(Integer, nullable=False, default=0)
    claimed_at = Column(UTCDateTime(), nullable=False)


class LearnerStats(Base, TimestampMixin):
    """Experience, level and points of a learner."""

    __tablename__ = "learner_stats"

    id = Column(Integer, primary_key=True)
    owner_id = Column(String, unique=True, nullable=False)
    level = Column(Integer, nullable=False, default=1)
    xp = Column(Integer, nullable=False, default=0)
    next_level_xp = Column(Integer, nullable=False, default=100)
    max_hp = Column(Integer, nullable=False, default=100)
    points = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @validates("owner_id")
    def validate_owner(self, key, value):
        return _require_text(key, value)

    @validates("points")
    def validate_points(self, key, value):
        return _require_at_least(key, value, 0)


class RefundRequest(Base, TimestampMixin):
    """A learner's request to cash out points. The points are debited up front."""

    __tablename__ = "refund_requests"

    id = Column(Integer, primary_key=True)
    owner_id = Column(String, nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    status = Column(Enum(RefundStatus), nullable=False, default=RefundStatus.PENDING)
    requested_at = Column(UTCDateTime(), nullable=False)
    processed_at = Column(UTCDateTime())
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @validates("owner_id")
    def validate_owner(self, key, value):
        return _require_text(key, value)

    @validates("amount")
    def validate_amount(self, key, value):
        return _require_at_least(key, value, 1)

    def __repr__(self) -> str:
        return f"<RefundRequest {self.id} {self.owner_id} {self.amount} {self.status.value if self.status else None}>"
