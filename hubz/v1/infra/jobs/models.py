"""
Background job model and status state machine.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, DateTime, Index, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from hubz.infra.database import Base
from hubz.v1.core.exceptions import InvalidJobTransitionError

LAST_ERROR_MAX_LENGTH = 1000


class JobStatus(str, Enum):
    """Job status enumeration."""

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


class JobType(str, Enum):
    """Job types with a built-in handler."""

    EMAIL_SEND = "email_send"
    WEBHOOK_CALL = "webhook_call"
    DATA_CLEANUP = "data_cleanup"


# Forward-only lifecycle; FAILED -> PENDING is the retry edge
ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.DONE, JobStatus.FAILED}),
    JobStatus.FAILED: frozenset({JobStatus.PENDING}),
    JobStatus.DONE: frozenset(),
}


def can_transition(current: JobStatus | str, target: JobStatus | str) -> bool:
    """Check whether the state machine allows current -> target."""
    return JobStatus(target) in ALLOWED_TRANSITIONS[JobStatus(current)]


def ensure_transition(
    current: JobStatus | str, target: JobStatus | str, job_id: UUID | None = None
) -> None:
    """Raise InvalidJobTransitionError unless current -> target is allowed."""
    if not can_transition(current, target):
        raise InvalidJobTransitionError(
            job_id, JobStatus(current).value, JobStatus(target).value
        )


def truncate_error(message: str) -> str:
    return message[:LAST_ERROR_MAX_LENGTH]


class BackgroundJob(Base):
    """
    Persisted unit of deferred work.

    Lifecycle:
    - created PENDING by whatever submits work
    - claimed to PROCESSING by the engine, then DONE or FAILED
    - FAILED jobs with attempts < max_attempts go back to PENDING on retry
    - deleted by cleanup once updated_at is older than the retention window
    """

    __tablename__ = "background_jobs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    job_type: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Handler key for the payload"
    )
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Job-specific parameters",
    )

    # Job state
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=JobStatus.PENDING.value,
        comment="Job status: pending|processing|done|failed",
    )
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Failed execution attempts"
    )
    max_attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=3, comment="Attempts before the job is abandoned"
    )
    last_error: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Last error message"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    executed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="When the job completed"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'done', 'failed')",
            name="background_jobs_status_check",
        ),
        CheckConstraint(
            "attempts >= 0 AND attempts <= max_attempts",
            name="background_jobs_attempts_check",
        ),
        Index("ix_background_jobs_status_updated_at", "status", "updated_at"),
        Index("ix_background_jobs_updated_at", "updated_at"),
    )

    def can_retry(self) -> bool:
        """Check if the job is failed and still has attempts left."""
        return self.status == JobStatus.FAILED.value and self.attempts < self.max_attempts

    def is_abandoned(self) -> bool:
        """A failed job that exhausted its retry budget."""
        return self.status == JobStatus.FAILED.value and self.attempts >= self.max_attempts

    def __repr__(self) -> str:
        return (
            f"<BackgroundJob id={self.id} type={self.job_type} status={self.status} "
            f"attempts={self.attempts}/{self.max_attempts}>"
        )
