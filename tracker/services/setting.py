"""Per-user preferences with site-wide defaults."""

from datetime import datetime, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.constants import (
    DEFAULT_SETTINGS,
    LOCAL_TIMEZONE,
    TIMEZONE_SETTING,
    TIMEZONE_SUBCLASS,
)
from tracker.core.exceptions import UserError
from tracker.middleware.audit_logger import log_data_modification
from tracker.models.setting import ProfileSetting, Setting, SettingValue
from tracker.models.user import User


def resolve_timezone(name: str) -> tzinfo:
    """`local` is the server's timezone; anything else is a tz database name."""
    if name == LOCAL_TIMEZONE:
        return datetime.now().astimezone().tzinfo
    return ZoneInfo(name)


class SettingService:
    """Service for user preferences."""

    def __init__(self, db: AsyncSession, actor_id: Optional[int] = None):
        self.db = db
        self.actor_id = actor_id

    async def install_defaults(self) -> None:
        """Create the built-in settings that do not exist yet."""
        result = await self.db.execute(select(Setting.name))
        existing = set(result.scalars().all())
        for name, default, values in DEFAULT_SETTINGS:
            if name in existing:
                continue
            self.db.add(
                Setting(
                    name=name,
                    default_value=default,
                    subclass=TIMEZONE_SUBCLASS if name == TIMEZONE_SETTING else None,
                )
            )
            for sortindex, value in enumerate(values, start=1):
                self.db.add(SettingValue(name=name, value=value, sortindex=sortindex * 5))
        await self.db.flush()

    async def legal_values(self, setting: Setting) -> list[str]:
        result = await self.db.execute(
            select(SettingValue.value)
            .where(SettingValue.name == setting.name)
            .order_by(SettingValue.sortindex)
        )
        return list(result.scalars().all())

    async def get_settings(self, user: Optional[User]) -> dict[str, dict]:
        """
        Every setting with the value in effect for the user.

        Anonymous users get the defaults. A user's own value is ignored
        while the setting is disabled.

        Returns:
            `{name: {value, default_value, is_default, is_enabled, legal_values}}`
        """
        result = await self.db.execute(select(Setting).order_by(Setting.name))
        settings_by_name = {setting.name: setting for setting in result.scalars().all()}

        own: dict[str, str] = {}
        if user is not None and user.id:
            result = await self.db.execute(
                select(ProfileSetting.setting_name, ProfileSetting.setting_value).where(
                    ProfileSetting.user_id == user.id
                )
            )
            own = dict(result.all())

        values = {}
        for name, setting in settings_by_name.items():
            is_default = not setting.is_enabled or name not in own
            values[name] = {
                "value": setting.default_value if is_default else own[name],
                "default_value": setting.default_value,
                "is_default": is_default,
                "is_enabled": setting.is_enabled,
                "legal_values": await self.legal_values(setting),
            }
        return values

    async def setting(self, user: Optional[User], name: str) -> Optional[str]:
        """The value in effect for one setting; None if there is no such setting."""
        entry = (await self.get_settings(user)).get(name)
        return entry["value"] if entry else None

    async def timezone(self, user: Optional[User]) -> tzinfo:
        return resolve_timezone(await self.setting(user, TIMEZONE_SETTING) or LOCAL_TIMEZONE)

    async def _check_value(self, setting: Setting, value: str) -> str:
        if setting.subclass == TIMEZONE_SUBCLASS:
            if value != LOCAL_TIMEZONE:
                try:
                    ZoneInfo(value)
                except (ZoneInfoNotFoundError, ValueError):
                    raise UserError("setting_value_invalid", name=setting.name, value=value)
            return value
        if value not in await self.legal_values(setting):
            raise UserError("setting_value_invalid", name=setting.name, value=value)
        return value

    async def set_settings(self, user: User, changes: dict[str, Optional[str]]) -> dict[str, list]:
        """
        Store the user's own values; None goes back to the site default.

        Returns:
            Changes made, as `{name: [old, new]}`

        Raises:
            UserError: `setting_name_invalid`, `setting_disabled` or
                `setting_value_invalid`
        """
        current = await self.get_settings(user)
        made: dict[str, list] = {}
        for name, value in changes.items():
            setting = await self.db.get(Setting, name)
            if setting is None:
                raise UserError("setting_name_invalid", name=name)
            if not setting.is_enabled:
                raise UserError("setting_disabled", status_code=403, name=name)

            if value is not None:
                value = await self._check_value(setting, value)

            await self.db.execute(
                delete(ProfileSetting).where(
                    ProfileSetting.user_id == user.id,
                    ProfileSetting.setting_name == name,
                )
            )
            if value is not None:
                self.db.add(ProfileSetting(user_id=user.id, setting_name=name, setting_value=value))

            new = setting.default_value if value is None else value
            if new != current[name]["value"]:
                made[name] = [current[name]["value"], new]

        await self.db.flush()
        if made:
            log_data_modification(
                action="update",
                resource="user_settings",
                resource_id=user.id,
                user_id=self.actor_id,
                changes=made,
            )
        return made
