"""
Read access to workspace data owned by the CRUD services.

Only the columns the reminder, digest and goal deadline batches consume are declared.
These tables are never created or written here outside of tests; timestamps
are stored as naive wall-clock values, as the workspace services write them.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Protocol
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    MetaData,
    Table,
    Text,
    Uuid,
    and_,
    case,
    func,
    select,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

TASK_STATUS_DONE = "DONE"

workspace_metadata = MetaData()

users = Table(
    "users",
    workspace_metadata,
    Column("id", Uuid, primary_key=True),
    Column("email", Text, nullable=False),
    Column("first_name", Text),
)

tasks = Table(
    "tasks",
    workspace_metadata,
    Column("id", Uuid, primary_key=True),
    Column("title", Text, nullable=False),
    Column("assignee_id", Uuid),
    Column("organization_id", Uuid),
    Column("goal_id", Uuid),
    Column("status", Text, nullable=False),
    Column("due_date", DateTime),
    Column("updated_at", DateTime),
)

goals = Table(
    "goals",
    workspace_metadata,
    Column("id", Uuid, primary_key=True),
    Column("title", Text, nullable=False),
    Column("user_id", Uuid),
    Column("organization_id", Uuid),
    Column("deadline", Date),
)

events = Table(
    "events",
    workspace_metadata,
    Column("id", Uuid, primary_key=True),
    Column("title", Text, nullable=False),
    Column("user_id", Uuid),
    Column("organization_id", Uuid),
    Column("start_time", DateTime),
)

habits = Table(
    "habits",
    workspace_metadata,
    Column("id", Uuid, primary_key=True),
    Column("user_id", Uuid, nullable=False),
)

habit_logs = Table(
    "habit_logs",
    workspace_metadata,
    Column("id", Uuid, primary_key=True),
    Column("habit_id", Uuid, nullable=False),
    Column("date", Date, nullable=False),
    Column("completed", Boolean, nullable=False),
)


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min)


def _day_end(day: date) -> datetime:
    return datetime.combine(day, time.max)


@dataclass(frozen=True)
class Recipient:
    email: str
    first_name: str | None = None


@dataclass(frozen=True)
class UpcomingItem:
    """A task, goal or event with a date inside the reminder window."""

    kind: str  # task|goal|event
    title: str
    due_date: date
    item_id: UUID
    organization_id: UUID | None = None


@dataclass(frozen=True)
class WeeklyActivity:
    """Raw counts for one user's week, before any scoring."""

    task_count: int = 0
    tasks_completed_this_week: int = 0
    tasks_completed_last_week: int = 0
    goals_in_progress: int = 0
    goals_completed: int = 0
    habit_count: int = 0
    habit_logs_completed: int = 0
    upcoming_events_count: int = 0


@dataclass(frozen=True)
class DueGoal:
    """A goal owned by a user whose deadline falls on a given day."""

    goal_id: UUID
    user_id: UUID
    title: str
    deadline: date
    organization_id: UUID | None = None


class RecipientDirectory(Protocol):
    async def get_recipient(self, user_id: UUID) -> Recipient | None: ...


class DeadlineSource(Protocol):
    async def find_upcoming(self, user_id: UUID, start: date, end: date) -> list[UpcomingItem]: ...


class ActivitySource(Protocol):
    async def weekly_activity(
        self, user_id: UUID, week_start: date, today: date
    ) -> WeeklyActivity: ...


class GoalSource(Protocol):
    async def find_due_on(self, day: date) -> list[DueGoal]: ...


class SqlRecipientDirectory:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_recipient(self, user_id: UUID) -> Recipient | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(users.c.email, users.c.first_name).where(users.c.id == user_id)
            )
            row = result.first()

        if row is None:
            return None
        return Recipient(email=row.email, first_name=row.first_name)


class SqlDeadlineSource:
    """Open tasks assigned to the user, personal goals and personal events."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def find_upcoming(self, user_id: UUID, start: date, end: date) -> list[UpcomingItem]:
        window_start, window_end = _day_start(start), _day_end(end)
        items: list[UpcomingItem] = []

        async with self.session_factory() as session:
            task_rows = await session.execute(
                select(tasks.c.id, tasks.c.title, tasks.c.due_date, tasks.c.organization_id).where(
                    tasks.c.assignee_id == user_id,
                    tasks.c.status != TASK_STATUS_DONE,
                    tasks.c.due_date.between(window_start, window_end),
                )
            )
            items.extend(
                UpcomingItem("task", row.title, row.due_date.date(), row.id, row.organization_id)
                for row in task_rows
            )

            goal_rows = await session.execute(
                select(goals.c.id, goals.c.title, goals.c.deadline).where(
                    goals.c.user_id == user_id,
                    goals.c.organization_id.is_(None),
                    goals.c.deadline.between(start, end),
                )
            )
            items.extend(
                UpcomingItem("goal", row.title, row.deadline, row.id) for row in goal_rows
            )

            event_rows = await session.execute(
                select(events.c.id, events.c.title, events.c.start_time).where(
                    events.c.user_id == user_id,
                    events.c.organization_id.is_(None),
                    events.c.start_time.between(window_start, window_end),
                )
            )
            items.extend(
                UpcomingItem("event", row.title, row.start_time.date(), row.id)
                for row in event_rows
            )

        return items


class SqlActivitySource:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def weekly_activity(self, user_id: UUID, week_start: date, today: date) -> WeeklyActivity:
        """
        Count one user's activity for the digest.

        - tasks completed this week (week_start..today) and last week
        - personal goals, completed once they have tasks and all are done
        - completed habit logs this week
        - personal events starting next Monday..Sunday
        """
        last_week_start = week_start - timedelta(days=7)
        last_week_end = week_start - timedelta(days=1)
        next_week_start = week_start + timedelta(days=7)
        next_week_end = next_week_start + timedelta(days=6)

        async with self.session_factory() as session:
            task_count = await session.scalar(
                select(func.count(tasks.c.id)).where(tasks.c.assignee_id == user_id)
            )
            this_week = await self._count_completed_tasks(session, user_id, week_start, today)
            last_week = await self._count_completed_tasks(
                session, user_id, last_week_start, last_week_end
            )

            goal_rows = await session.execute(
                select(
                    goals.c.id,
                    func.count(tasks.c.id).label("total"),
                    func.coalesce(
                        func.sum(case((tasks.c.status == TASK_STATUS_DONE, 1), else_=0)), 0
                    ).label("done"),
                )
                .select_from(goals.outerjoin(tasks, tasks.c.goal_id == goals.c.id))
                .where(goals.c.user_id == user_id, goals.c.organization_id.is_(None))
                .group_by(goals.c.id)
            )
            goals_completed = goals_in_progress = 0
            for row in goal_rows:
                if row.total > 0 and row.done == row.total:
                    goals_completed += 1
                else:
                    goals_in_progress += 1

            habit_count = await session.scalar(
                select(func.count(habits.c.id)).where(habits.c.user_id == user_id)
            )
            habit_logs_completed = await session.scalar(
                select(func.count(habit_logs.c.id))
                .select_from(habit_logs.join(habits, habits.c.id == habit_logs.c.habit_id))
                .where(
                    habits.c.user_id == user_id,
                    habit_logs.c.completed.is_(True),
                    habit_logs.c.date.between(week_start, today),
                )
            )
            upcoming_events = await session.scalar(
                select(func.count(events.c.id)).where(
                    events.c.user_id == user_id,
                    events.c.organization_id.is_(None),
                    events.c.start_time.between(
                        _day_start(next_week_start), _day_end(next_week_end)
                    ),
                )
            )

        return WeeklyActivity(
            task_count=task_count or 0,
            tasks_completed_this_week=this_week,
            tasks_completed_last_week=last_week,
            goals_in_progress=goals_in_progress,
            goals_completed=goals_completed,
            habit_count=habit_count or 0,
            habit_logs_completed=habit_logs_completed or 0,
            upcoming_events_count=upcoming_events or 0,
        )

    async def _count_completed_tasks(
        self, session: AsyncSession, user_id: UUID, start: date, end: date
    ) -> int:
        count = await session.scalar(
            select(func.count(tasks.c.id)).where(
                and_(
                    tasks.c.assignee_id == user_id,
                    tasks.c.status == TASK_STATUS_DONE,
                    tasks.c.updated_at.between(_day_start(start), _day_end(end)),
                )
            )
        )
        return count or 0


class SqlGoalSource:
    """Personal and organization goals, notified to the goal owner."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def find_due_on(self, day: date) -> list[DueGoal]:
        async with self.session_factory() as session:
            rows = await session.execute(
                select(
                    goals.c.id,
                    goals.c.user_id,
                    goals.c.title,
                    goals.c.deadline,
                    goals.c.organization_id,
                )
                .where(goals.c.deadline == day, goals.c.user_id.is_not(None))
                .order_by(goals.c.title, goals.c.id)
            )
            return [
                DueGoal(row.id, row.user_id, row.title, row.deadline, row.organization_id)
                for row in rows
            ]
