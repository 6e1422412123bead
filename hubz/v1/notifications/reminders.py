"""
Deadline reminders: upcoming tasks, goals and events for one user.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from uuid import UUID

from hubz.config.logging import get_logger
from hubz.v1.core.exceptions import RecipientNotFoundError
from hubz.v1.core.registries import EmailSender
from hubz.v1.notifications.delivery import OutgoingEmail
from hubz.v1.notifications.models import UserPreferences
from hubz.v1.notifications.sources import (
    DeadlineSource,
    RecipientDirectory,
    UpcomingItem,
)
from hubz.v1.notifications.timezones import Clock, local_today, utc_now

logger = get_logger(__name__)

KIND_LABELS = {"task": "Task", "goal": "Goal", "event": "Event"}


def urgency_label(due_date: date, today: date) -> str:
    days_until = (due_date - today).days
    if days_until <= 0:
        return "Today"
    if days_until == 1:
        return "Tomorrow"
    if days_until <= 3:
        return f"In {days_until} days"
    if days_until <= 7:
        return "This week"
    return "Next week"


@dataclass(frozen=True)
class DeadlineItem:
    kind: str
    title: str
    due_date: date
    urgency: str
    item_id: UUID
    organization_id: UUID | None = None


@dataclass
class DeadlineReminderData:
    today_items: list[DeadlineItem] = field(default_factory=list)
    this_week_items: list[DeadlineItem] = field(default_factory=list)
    next_week_items: list[DeadlineItem] = field(default_factory=list)

    @property
    def has_reminders(self) -> bool:
        return bool(self.today_items or self.this_week_items or self.next_week_items)

    @property
    def total_count(self) -> int:
        return len(self.today_items) + len(self.this_week_items) + len(self.next_week_items)


def group_deadlines(items: list[UpcomingItem], today: date) -> DeadlineReminderData:
    """Sort by due date and split into today/tomorrow, this week and later."""
    data = DeadlineReminderData()
    one_week_from_today = today + timedelta(days=7)

    for item in sorted(items, key=lambda i: i.due_date):
        deadline = DeadlineItem(
            kind=item.kind,
            title=item.title,
            due_date=item.due_date,
            urgency=urgency_label(item.due_date, today),
            item_id=item.item_id,
            organization_id=item.organization_id,
        )
        if item.due_date <= today + timedelta(days=1):
            data.today_items.append(deadline)
        elif item.due_date < one_week_from_today:
            data.this_week_items.append(deadline)
        else:
            data.next_week_items.append(deadline)

    return data


def render_reminder(first_name: str | None, data: DeadlineReminderData) -> tuple[str, str]:
    """Plain-text subject and body for a reminder email."""
    subject = f"Reminder: {data.total_count} upcoming deadline(s) - Hubz"

    lines = [f"Hello {first_name or 'there'},", ""]
    for heading, section in (
        ("Today / Tomorrow", data.today_items),
        ("This week", data.this_week_items),
        ("Next week", data.next_week_items),
    ):
        if not section:
            continue
        lines.append(f"{heading} ({len(section)})")
        lines.extend(
            f"  - [{KIND_LABELS.get(item.kind, item.kind)}] {item.title} "
            f"({item.due_date:%d/%m/%Y}, {item.urgency})"
            for item in section
        )
        lines.append("")

    return subject, "\n".join(lines).rstrip() + "\n"


class DeadlineReminderGenerator:
    """
    NotificationGenerator for deadline reminders.

    The window runs from today to today + 1, 3 or 7 days depending on the
    user's reminder frequency, with "today" taken in the user's timezone.
    """

    email_category = "deadline_reminder"

    def __init__(
        self,
        deadlines: DeadlineSource,
        recipients: RecipientDirectory,
        sender: EmailSender,
        clock: Clock = utc_now,
    ):
        self.deadlines = deadlines
        self.recipients = recipients
        self.sender = sender
        self.clock = clock

    async def generate(
        self, user_id: UUID, preferences: UserPreferences
    ) -> DeadlineReminderData | None:
        today = local_today(self.clock, preferences.timezone)
        end = today + timedelta(days=preferences.frequency.days)

        items = await self.deadlines.find_upcoming(user_id, today, end)
        data = group_deadlines(items, today)

        if not data.has_reminders:
            logger.debug("No deadline reminders", user_id=str(user_id))
            return None
        return data

    async def deliver(
        self, user_id: UUID, preferences: UserPreferences, content: DeadlineReminderData
    ) -> None:
        recipient = await self.recipients.get_recipient(user_id)
        if recipient is None:
            raise RecipientNotFoundError(user_id)

        subject, body = render_reminder(recipient.first_name, content)
        await self.sender.send(
            OutgoingEmail(
                to=recipient.email,
                subject=subject,
                body=body,
                category=self.email_category,
            )
        )

        logger.info(
            "Deadline reminder sent",
            user_id=str(user_id),
            items=content.total_count,
        )
