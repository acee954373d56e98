"""Group and group mapping model definitions."""

from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from tracker.constants import GRANT_DIRECT, GROUP_MEMBERSHIP
from tracker.database import Base


class Group(Base):
    """A named set of users that grants privileges."""

    __tablename__ = "groups"

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
    )

    # Bug groups restrict bug visibility; system groups grant privileges.
    isbuggroup: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    # Users whose login matches this regexp are members automatically.
    userregexp: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
    )
    isactive: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )
    icon_url: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    # Owner reference (set null on delete)
    owner_user_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("profiles.userid", ondelete="SET NULL"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Group(id={self.id}, name={self.name})>"


class UserGroupMap(Base):
    """Membership or bless right of a user in a group."""

    __tablename__ = "user_group_map"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "group_id", "isbless", "grant_type",
            name="user_group_map_user_id_idx",
        ),
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
    group_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    isbless: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    grant_type: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=GRANT_DIRECT,
    )

    def __repr__(self) -> str:
        return (
            f"<UserGroupMap(user_id={self.user_id}, group_id={self.group_id}, "
            f"isbless={self.isbless}, grant_type={self.grant_type})>"
        )


class GroupGroupMap(Base):
    """A grant from one group (grantor) to the members of another (member)."""

    __tablename__ = "group_group_map"
    __table_args__ = (
        UniqueConstraint(
            "member_id", "grantor_id", "grant_type",
            name="group_group_map_member_id_idx",
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    member_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    grantor_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    grant_type: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=GROUP_MEMBERSHIP,
    )

    def __repr__(self) -> str:
        return (
            f"<GroupGroupMap(member_id={self.member_id}, grantor_id={self.grantor_id}, "
            f"grant_type={self.grant_type})>"
        )
