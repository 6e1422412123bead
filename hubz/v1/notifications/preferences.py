"""
Preference store: which users opted into reminders and digests.
"""

from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hubz.v1.notifications.models import UserPreferences


class PreferenceStore(Protocol):
    async def find_by_reminder_enabled(self) -> list[UserPreferences]: ...

    async def find_by_digest_enabled(self) -> list[UserPreferences]: ...


class SqlAlchemyPreferenceStore:
    """PreferenceStore backed by the user_preferences table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def find_by_reminder_enabled(self) -> list[UserPreferences]:
        return await self._find(UserPreferences.reminder_enabled.is_(True))

    async def find_by_digest_enabled(self) -> list[UserPreferences]:
        return await self._find(UserPreferences.digest_enabled.is_(True))

    async def _find(self, criterion) -> list[UserPreferences]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(UserPreferences)
                .where(criterion)
                .order_by(UserPreferences.created_at, UserPreferences.user_id)
            )
            return list(result.scalars().all())
