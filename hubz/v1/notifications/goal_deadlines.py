"""
Goal deadline notices: tell goal owners a deadline is 7, 3 or 1 day(s) away.

Each (goal, milestone) pair is sent at most once. A notice row is recorded
after the email goes out, so a failed send is tried again on the next run
while the goal is still at that milestone.
"""

from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hubz.config.logging import get_logger
from hubz.v1.core.exceptions import RecipientNotFoundError
from hubz.v1.core.registries import EmailSender
from hubz.v1.infra.batch import BatchOutcome, BatchRunResult, run_batch
from hubz.v1.notifications.delivery import OutgoingEmail
from hubz.v1.notifications.models import GoalDeadlineNotice
from hubz.v1.notifications.sources import DueGoal, GoalSource, RecipientDirectory
from hubz.v1.notifications.timezones import Clock, local_today, utc_now

logger = get_logger(__name__)

NOTICE_DAYS = (7, 3, 1)


def days_text(days: int) -> str:
    if days == 1:
        return "tomorrow"
    if days == 7:
        return "in 1 week"
    return f"in {days} days"


@dataclass(frozen=True)
class GoalMilestone:
    goal: DueGoal
    days_before: int

    def describe(self) -> str:
        return f"{self.goal.goal_id}:{self.days_before}"


def render_goal_deadline(first_name: str | None, milestone: GoalMilestone) -> tuple[str, str]:
    """Plain-text subject and body for a goal deadline email."""
    goal = milestone.goal
    when = days_text(milestone.days_before)
    subject = f"Goal deadline {when}: {goal.title} - Hubz"
    body = (
        f"Hello {first_name or 'there'},\n\n"
        f"Your goal \"{goal.title}\" is due {when} ({goal.deadline:%d/%m/%Y}).\n"
    )
    return subject, body


class GoalNoticeStore(Protocol):
    async def exists(self, goal_id: UUID, days_before: int) -> bool: ...

    async def record(self, goal: DueGoal, days_before: int) -> GoalDeadlineNotice: ...


class SqlAlchemyGoalNoticeStore:
    """GoalNoticeStore backed by the goal_deadline_notifications table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def exists(self, goal_id: UUID, days_before: int) -> bool:
        async with self.session_factory() as session:
            found = await session.scalar(
                select(GoalDeadlineNotice.id)
                .where(
                    GoalDeadlineNotice.goal_id == goal_id,
                    GoalDeadlineNotice.days_before_deadline == days_before,
                )
                .limit(1)
            )
        return found is not None

    async def record(self, goal: DueGoal, days_before: int) -> GoalDeadlineNotice:
        notice = GoalDeadlineNotice(
            goal_id=goal.goal_id,
            user_id=goal.user_id,
            days_before_deadline=days_before,
            deadline_date=goal.deadline,
            notified_at=datetime.now(UTC),
        )
        async with self.session_factory() as session:
            session.add(notice)
            await session.commit()
            await session.refresh(notice)
            return notice


class GoalDeadlineBatch:
    """
    Daily goal deadline check.

    Subjects are (goal, milestone) pairs for goals due at today + 7, 3 and 1
    days, with "today" taken in the scheduler timezone. A milestone already
    recorded counts as skipped; a missing owner or a failed send counts as a
    failure for that milestone only.
    """

    name = "goal-deadlines"
    email_category = "goal_deadline"

    def __init__(
        self,
        goals: GoalSource,
        notices: GoalNoticeStore,
        recipients: RecipientDirectory,
        sender: EmailSender,
        timezone: str = "UTC",
        clock: Clock = utc_now,
    ):
        self.goals = goals
        self.notices = notices
        self.recipients = recipients
        self.sender = sender
        self.timezone = timezone
        self.clock = clock

    async def run(self) -> BatchRunResult:
        return await self.run_for_date(local_today(self.clock, self.timezone))

    async def run_for_date(self, reference: date) -> BatchRunResult:
        """Check the milestones as if today were ``reference``."""

        async def fetch() -> list[GoalMilestone]:
            milestones = []
            for days in NOTICE_DAYS:
                target = reference + timedelta(days=days)
                due = await self.goals.find_due_on(target)
                logger.info(
                    "Goals due at milestone",
                    days_before=days,
                    deadline=target.isoformat(),
                    goal_count=len(due),
                )
                milestones.extend(GoalMilestone(goal, days) for goal in due)
            return milestones

        return await run_batch(
            self.name, fetch, self._notify, describe=GoalMilestone.describe
        )

    async def _notify(self, milestone: GoalMilestone) -> BatchOutcome:
        goal = milestone.goal
        if await self.notices.exists(goal.goal_id, milestone.days_before):
            logger.debug(
                "Goal deadline already notified",
                goal_id=str(goal.goal_id),
                days_before=milestone.days_before,
            )
            return BatchOutcome.SKIPPED

        recipient = await self.recipients.get_recipient(goal.user_id)
        if recipient is None:
            raise RecipientNotFoundError(goal.user_id)

        subject, body = render_goal_deadline(recipient.first_name, milestone)
        await self.sender.send(
            OutgoingEmail(
                to=recipient.email,
                subject=subject,
                body=body,
                category=self.email_category,
            )
        )
        await self.notices.record(goal, milestone.days_before)

        logger.info(
            "Goal deadline notice sent",
            goal_id=str(goal.goal_id),
            user_id=str(goal.user_id),
            days_before=milestone.days_before,
        )
        return BatchOutcome.SUCCESS
