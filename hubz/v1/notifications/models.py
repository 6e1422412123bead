"""
Notification models.

Preferences are owned by the user settings service; this subsystem only reads
them to decide who receives reminders and digests. Goal deadline notices are
written here, one row per goal and milestone already sent.
"""

from datetime import UTC, date, datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from hubz.infra.database import Base


class ReminderFrequency(str, Enum):
    """How far ahead deadline reminders look."""

    ONE_DAY = "one_day"
    THREE_DAYS = "three_days"
    ONE_WEEK = "one_week"

    @property
    def days(self) -> int:
        return REMINDER_WINDOW_DAYS[self]


REMINDER_WINDOW_DAYS = {
    ReminderFrequency.ONE_DAY: 1,
    ReminderFrequency.THREE_DAYS: 3,
    ReminderFrequency.ONE_WEEK: 7,
}


class UserPreferences(Base):
    __tablename__ = "user_preferences"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, unique=True)
    timezone: Mapped[str] = mapped_column(
        Text, nullable=False, default="UTC", comment="IANA timezone name"
    )
    reminder_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    digest_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    reminder_frequency: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=ReminderFrequency.THREE_DAYS.value,
        comment="one_day|three_days|one_week",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        CheckConstraint(
            "reminder_frequency IN ('one_day', 'three_days', 'one_week')",
            name="user_preferences_reminder_frequency_check",
        ),
    )

    @property
    def frequency(self) -> ReminderFrequency:
        return ReminderFrequency(self.reminder_frequency)

    def __repr__(self) -> str:
        return (
            f"<UserPreferences user_id={self.user_id} reminders={self.reminder_enabled} "
            f"digest={self.digest_enabled} frequency={self.reminder_frequency}>"
        )


class GoalDeadlineNotice(Base):
    """A goal deadline notification already sent for one milestone."""

    __tablename__ = "goal_deadline_notifications"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    goal_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    days_before_deadline: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="Milestone: 7, 3 or 1"
    )
    deadline_date: Mapped[date] = mapped_column(Date, nullable=False)
    notified_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        UniqueConstraint(
            "goal_id",
            "days_before_deadline",
            name="goal_deadline_notifications_goal_days_key",
        ),
        CheckConstraint(
            "days_before_deadline > 0",
            name="goal_deadline_notifications_days_check",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<GoalDeadlineNotice goal_id={self.goal_id} "
            f"days_before={self.days_before_deadline}>"
        )
