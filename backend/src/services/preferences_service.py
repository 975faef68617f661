"""Service layer for user preference operations."""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.authorization import AuthorizationRules, CallerContext, Operation
from models.user_preferences import UserPreferences


class PreferencesService:
    """Per-owner theme preferences, one theme per client surface."""

    table = "user_preferences"

    def __init__(self, rules: AuthorizationRules) -> None:
        self.rules = rules

    async def _get(self, db: AsyncSession, owner_id: str) -> UserPreferences | None:
        result = await db.execute(
            select(UserPreferences).where(UserPreferences.owner_id == owner_id),
        )
        preferences = result.scalar_one_or_none()
        if preferences is not None:
            self.rules.check(
                CallerContext(owner_id=owner_id), self.table, Operation.READ, preferences,
            )
        return preferences

    async def get_all(self, db: AsyncSession, owner_id: str) -> dict[str, str]:
        """Get every saved theme for an owner, keyed by surface."""
        preferences = await self._get(db, owner_id)
        if preferences is None:
            return {}
        return dict(preferences.themes or {})

    async def get_theme(self, db: AsyncSession, owner_id: str, surface: str) -> str | None:
        """Get the saved theme for one surface, None if the owner never set one."""
        return (await self.get_all(db, owner_id)).get(surface)

    async def set_theme(
        self,
        db: AsyncSession,
        owner_id: str,
        surface: str,
        theme: str,
    ) -> dict[str, str]:
        """
        Save the theme for one surface, keeping the other surfaces' themes.

        Returns:
            All saved themes after the update.
        """
        ctx = CallerContext(owner_id=owner_id)
        preferences = await self._get(db, owner_id)
        if preferences is None:
            preferences = UserPreferences(owner_id=owner_id, themes={surface: theme})
            self.rules.check(ctx, self.table, Operation.INSERT, preferences)
            db.add(preferences)
        else:
            self.rules.check(ctx, self.table, Operation.MODIFY, preferences)
            # Reassign so the JSON column is marked dirty
            preferences.themes = {**(preferences.themes or {}), surface: theme}

        await db.flush()
        return dict(preferences.themes)
