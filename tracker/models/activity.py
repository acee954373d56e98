"""Account history models: profile activity, audit log and login failures."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from tracker.database import Base


class ProfileActivity(Base):
    """A change made to a user profile, and who made it."""

    __tablename__ = "profiles_activity"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    # The user whose profile changed
    user_id: Mapped[int] = mapped_column(
        "userid",
        Integer,
        ForeignKey("profiles.userid", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # The user who made the change
    who: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("profiles.userid", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    profiles_when: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    fieldname: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    oldvalue: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    newvalue: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<ProfileActivity(user_id={self.user_id}, who={self.who}, field={self.fieldname})>"


class AuditLog(Base):
    """Administrative audit trail."""

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    # Acting user; null for system changes
    user_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("profiles.userid", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    class_name: Mapped[str] = mapped_column(
        "class",
        String(255),
        nullable=False,
    )
    object_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
    )
    field: Mapped[str] = mapped_column(String(64), nullable=False)
    removed: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    added: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    at_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<AuditLog(class={self.class_name}, object_id={self.object_id}, field={self.field})>"


class LoginFailure(Base):
    """A failed login attempt, kept for account lockout."""

    __tablename__ = "login_failure"

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
    ip_addr: Mapped[str] = mapped_column(String(40), nullable=False)
    login_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
