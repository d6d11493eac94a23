"""Service layer for settings stored in the database."""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lanwatch.models.global_setting import GlobalSetting


async def get_setting(db: AsyncSession, key: str) -> dict[str, Any] | None:
    """Get a stored setting by key.

    Args:
        db: Database session
        key: Setting key

    Returns:
        Setting value as dict or None if not found
    """
    result = await db.execute(select(GlobalSetting).where(GlobalSetting.key == key))
    setting = result.scalar_one_or_none()
    return setting.value if setting else None


async def set_setting(db: AsyncSession, key: str, value: dict[str, Any] | None) -> GlobalSetting:
    """Set or update a stored setting.

    Args:
        db: Database session
        key: Setting key
        value: Setting value (JSON-serializable dict)

    Returns:
        Updated or created GlobalSetting instance
    """
    result = await db.execute(select(GlobalSetting).where(GlobalSetting.key == key))
    setting = result.scalar_one_or_none()

    if setting:
        setting.value = value
    else:
        setting = GlobalSetting(key=key, value=value)
        db.add(setting)

    await db.flush()
    await db.refresh(setting)
    return setting
