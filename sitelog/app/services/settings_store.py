"""Tenant settings store and the ordered override lookup."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sitelog.app.models.setting import Setting
from sitelog.app.schemas.tenant import TenantSettings

logger = logging.getLogger(__name__)


def first_configured(*candidates: str | None, default: str) -> str:
    """
    Return the first candidate that is set and not blank.

    Candidates are ordered most specific first (client, then tenant), with
    ``default`` as the built-in value.
    """
    for candidate in candidates:
        if candidate and candidate.strip():
            return candidate
    return default


class SettingsStore:
    """Read/write access to the key/value ``settings`` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, key: str) -> str | None:
        result = await self.db.execute(select(Setting).where(Setting.key == key))
        setting = result.scalar_one_or_none()
        return setting.value if setting else None

    async def set(self, key: str, value: str | None) -> None:
        result = await self.db.execute(select(Setting).where(Setting.key == key))
        setting = result.scalar_one_or_none()
        if setting is None:
            self.db.add(Setting(key=key, value=value))
        else:
            setting.value = value
        await self.db.flush()

    async def load_tenant_settings(self) -> TenantSettings:
        """Load every known override in one query."""
        result = await self.db.execute(
            select(Setting).where(Setting.key.in_(TenantSettings.keys()))
        )
        values = {setting.key: setting.value for setting in result.scalars().all()}
        logger.debug(f"[SETTINGS] Loaded tenant overrides: {sorted(k for k, v in values.items() if v)}")
        return TenantSettings(**values)
