"""Per-user preference models."""

from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from tracker.database import Base


class Setting(Base):
    """A user preference and its site-wide default."""

    __tablename__ = "setting"

    name: Mapped[str] = mapped_column(String(32), primary_key=True)
    default_value: Mapped[str] = mapped_column(String(32), nullable=False)
    # Disabled settings always use the default.
    is_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )
    # Settings with a subclass validate values themselves instead of
    # listing them in setting_value.
    subclass: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    def __repr__(self) -> str:
        return f"<Setting(name={self.name}, default={self.default_value})>"


class SettingValue(Base):
    """A legal value of a setting."""

    __tablename__ = "setting_value"
    __table_args__ = (
        UniqueConstraint("name", "value", name="setting_value_nv_unique_idx"),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    name: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("setting.name", ondelete="CASCADE"),
        nullable=False,
    )
    value: Mapped[str] = mapped_column(String(32), nullable=False)
    sortindex: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class ProfileSetting(Base):
    """A user's own value for a setting."""

    __tablename__ = "profile_setting"
    __table_args__ = (
        UniqueConstraint("user_id", "setting_name", name="profile_setting_value_unique_idx"),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("profiles.userid", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    setting_name: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("setting.name", ondelete="CASCADE"),
        nullable=False,
    )
    setting_value: Mapped[str] = mapped_column(String(32), nullable=False)
