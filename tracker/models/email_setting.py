"""Email notification preference model."""

from sqlalchemy import ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from tracker.database import Base


class EmailSetting(Base):
    """The user wants mail for `event` while in `relationship` to a bug."""

    __tablename__ = "email_setting"
    __table_args__ = (
        UniqueConstraint("user_id", "relationship", "event", name="email_setting_user_id_idx"),
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
    relationship: Mapped[int] = mapped_column(Integer, nullable=False)
    event: Mapped[int] = mapped_column(Integer, nullable=False)
