"""Token model for pending account and email changes."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from tracker.database import Base


class Token(Base):
    """One-time token sent to a user.

    `eventdata` carries the payload, e.g. `login:email` for account creation
    or `old_login:new_login` for email changes.
    """

    __tablename__ = "tokens"

    token: Mapped[str] = mapped_column(
        String(16),
        primary_key=True,
    )

    # Owner reference; null for account creation tokens
    user_id: Mapped[Optional[int]] = mapped_column(
        "userid",
        Integer,
        ForeignKey("profiles.userid", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    issuedate: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    tokentype: Mapped[str] = mapped_column(String(16), nullable=False)
    eventdata: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Token(type={self.tokentype}, user_id={self.user_id})>"
