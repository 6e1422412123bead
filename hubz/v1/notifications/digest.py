"""
Weekly digest: a summary of one user's week and a highlight to celebrate.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from uuid import UUID

from hubz.config.logging import get_logger
from hubz.v1.core.exceptions import RecipientNotFoundError
from hubz.v1.core.registries import EmailSender
from hubz.v1.notifications.delivery import OutgoingEmail
from hubz.v1.notifications.models import UserPreferences
from hubz.v1.notifications.sources import (
    ActivitySource,
    RecipientDirectory,
    WeeklyActivity,
)
from hubz.v1.notifications.timezones import Clock, local_today, utc_now

logger = get_logger(__name__)


def week_start(day: date) -> date:
    """Monday of the week containing ``day``."""
    return day - timedelta(days=day.weekday())


def habit_completion_rate(habit_count: int, completed_logs: int, days: int) -> int:
    """Percentage of expected habit check-ins done; 100 when there is nothing expected."""
    expected = habit_count * days
    if expected <= 0:
        return 100
    return (completed_logs * 100) // expected


def top_achievement(
    tasks_this_week: int, tasks_last_week: int, goals_completed: int, habit_rate: int
) -> str | None:
    """Pick the single most notable achievement, in priority order."""
    if goals_completed > 0:
        if goals_completed == 1:
            return "Goal reached this week!"
        return f"{goals_completed} goals reached this week!"

    if tasks_this_week > tasks_last_week and tasks_this_week > 5:
        return f"+{tasks_this_week - tasks_last_week} tasks completed compared to last week!"

    if habit_rate >= 90:
        return f"Excellent habit completion rate: {habit_rate}%!"

    if tasks_this_week >= 10:
        return f"{tasks_this_week} tasks completed this week - well done!"

    if habit_rate >= 70:
        return f"Good consistency with your habits: {habit_rate}%!"

    return None


@dataclass(frozen=True)
class WeeklyDigestData:
    tasks_completed_this_week: int
    tasks_completed_last_week: int
    goals_in_progress: int
    goals_completed: int
    habits_completion_rate: int
    upcoming_events_count: int
    top_achievement: str | None = None


def has_activity(activity: WeeklyActivity) -> bool:
    return any(
        (
            activity.task_count,
            activity.goals_in_progress,
            activity.goals_completed,
            activity.habit_count,
            activity.upcoming_events_count,
        )
    )


def render_digest(first_name: str | None, data: WeeklyDigestData) -> tuple[str, str]:
    subject = "Your weekly Hubz recap"
    lines = [
        f"Hello {first_name or 'there'},",
        "",
        "Here is your week:",
        f"  Tasks completed: {data.tasks_completed_this_week} "
        f"(last week: {data.tasks_completed_last_week})",
        f"  Goals in progress: {data.goals_in_progress}",
        f"  Goals completed: {data.goals_completed}",
        f"  Habit completion: {data.habits_completion_rate}%",
        f"  Events next week: {data.upcoming_events_count}",
    ]
    if data.top_achievement:
        lines.extend(["", data.top_achievement])
    return subject, "\n".join(lines) + "\n"


class WeeklyDigestGenerator:
    """NotificationGenerator for the Monday digest."""

    email_category = "weekly_digest"

    def __init__(
        self,
        activity: ActivitySource,
        recipients: RecipientDirectory,
        sender: EmailSender,
        clock: Clock = utc_now,
    ):
        self.activity = activity
        self.recipients = recipients
        self.sender = sender
        self.clock = clock

    async def generate(
        self, user_id: UUID, preferences: UserPreferences
    ) -> WeeklyDigestData | None:
        today = local_today(self.clock, preferences.timezone)
        start = week_start(today)

        activity = await self.activity.weekly_activity(user_id, start, today)
        if not has_activity(activity):
            logger.debug("No activity for weekly digest", user_id=str(user_id))
            return None

        habit_rate = habit_completion_rate(
            activity.habit_count,
            activity.habit_logs_completed,
            (today - start).days + 1,
        )
        return WeeklyDigestData(
            tasks_completed_this_week=activity.tasks_completed_this_week,
            tasks_completed_last_week=activity.tasks_completed_last_week,
            goals_in_progress=activity.goals_in_progress,
            goals_completed=activity.goals_completed,
            habits_completion_rate=habit_rate,
            upcoming_events_count=activity.upcoming_events_count,
            top_achievement=top_achievement(
                activity.tasks_completed_this_week,
                activity.tasks_completed_last_week,
                activity.goals_completed,
                habit_rate,
            ),
        )

    async def deliver(
        self, user_id: UUID, preferences: UserPreferences, content: WeeklyDigestData
    ) -> None:
        recipient = await self.recipients.get_recipient(user_id)
        if recipient is None:
            raise RecipientNotFoundError(user_id)

        subject, body = render_digest(recipient.first_name, content)
        await self.sender.send(
            OutgoingEmail(
                to=recipient.email,
                subject=subject,
                body=body,
                category=self.email_category,
            )
        )

        logger.info("Weekly digest sent", user_id=str(user_id))
