"""User (profile) model definition."""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from tracker.database import Base


class User(Base):
    """User profile used for authentication and authorization."""

    __tablename__ = "profiles"

    # Primary key
    id: Mapped[int] = mapped_column(
        "userid",
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    # Identity
    login_name: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )
    realname: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
    )
    nickname: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
        index=True,
    )
    extern_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
    )

    # Authentication
    cryptpassword: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    password_change_required: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    password_change_reason: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default="",
    )
    mfa: Mapped[str] = mapped_column(
        String(8),
        nullable=False,
        default="",
    )
    mfa_required_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Account status
    disabledtext: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
    )
    disable_mail: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    is_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )
    mybugslink: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )
    bounce_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    # Timestamps
    creation_ts: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    last_seen_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, login={self.login_name}, enabled={self.is_enabled})>"

    @property
    def login(self) -> str:
        return self.login_name

    @property
    def name(self) -> str:
        return self.realname or ""

    @property
    def nick(self) -> str:
        """Nickname, falling back to the local part of the login."""
        if not self.id:
            return ""
        if self.nickname:
            return self.nickname
        return self.login_name.split("@", 1)[0]

    @property
    def identity(self) -> str:
        """`Real Name <login>` when the user has a name, the login otherwise."""
        if not self.id:
            return ""
        if self.realname:
            return f"{self.realname} <{self.login_name}>"
        return self.login_name

    @property
    def name_or_login(self) -> str:
        return self.realname or self.login_name

    @property
    def email_address(self) -> str:
        """Primary email, which defaults to the login."""
        return self.email or self.login_name

    @property
    def email_disabled(self) -> bool:
        """Mail is never sent to disabled accounts."""
        return bool(self.disable_mail) or not self.is_enabled

    @property
    def email_enabled(self) -> bool:
        return not self.email_disabled

    @property
    def can_login_with_password(self) -> bool:
        """Accounts created with the `*` password only authenticate externally."""
        return bool(self.cryptpassword) and self.cryptpassword != "*"
