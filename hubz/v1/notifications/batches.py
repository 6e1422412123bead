"""
Per-user notification batches (deadline reminders, weekly digest).

Both batches have the same shape:
1. load the preferences with the relevant flag enabled
2. per user, generate the content; nothing to send counts as skipped
3. deliver the content generated in step 2; any error counts as a failure for
   that user only
"""

from collections.abc import Awaitable, Callable
from typing import Any, Protocol
from uuid import UUID

from hubz.v1.infra.batch import BatchOutcome, BatchRunResult, run_batch
from hubz.v1.notifications.models import UserPreferences
from hubz.v1.notifications.preferences import PreferenceStore


class NotificationGenerator(Protocol):
    async def generate(self, user_id: UUID, preferences: UserPreferences) -> Any | None:
        """Build the content for one user, or None when there is nothing to send."""
        ...

    async def deliver(
        self, user_id: UUID, preferences: UserPreferences, content: Any
    ) -> None:
        """Send content previously returned by ``generate``."""
        ...


class NotificationBatch:
    def __init__(
        self,
        name: str,
        fetch_preferences: Callable[[], Awaitable[list[UserPreferences]]],
        generator: NotificationGenerator,
    ):
        self.name = name
        self.fetch_preferences = fetch_preferences
        self.generator = generator

    async def run(self) -> BatchRunResult:
        return await run_batch(
            self.name,
            self.fetch_preferences,
            self._notify,
            describe=lambda prefs: str(prefs.user_id),
        )

    async def _notify(self, preferences: UserPreferences) -> BatchOutcome:
        content = await self.generator.generate(preferences.user_id, preferences)
        if content is None:
            return BatchOutcome.SKIPPED

        await self.generator.deliver(preferences.user_id, preferences, content)
        return BatchOutcome.SUCCESS


def deadline_reminder_batch(
    preferences: PreferenceStore, generator: NotificationGenerator
) -> NotificationBatch:
    return NotificationBatch("deadline-reminders", preferences.find_by_reminder_enabled, generator)


def weekly_digest_batch(
    preferences: PreferenceStore, generator: NotificationGenerator
) -> NotificationBatch:
    return NotificationBatch("weekly-digest", preferences.find_by_digest_enabled, generator)
