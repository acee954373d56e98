"""Product and per-product group control model definitions."""

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from tracker.constants import CONTROLMAPNA
from tracker.database import Base


class Product(Base):
    """Product that bugs are filed against."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    name: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
    )
    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
    )
    isactive: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, name={self.name}, active={self.isactive})>"


class GroupControlMap(Base):
    """How a group restricts and empowers users on one product."""

    __tablename__ = "group_control_map"
    __table_args__ = (
        UniqueConstraint("product_id", "group_id", name="group_control_map_product_id_idx"),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    group_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Entry: only group members may file bugs in the product.
    entry: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    membercontrol: Mapped[int] = mapped_column(Integer, nullable=False, default=CONTROLMAPNA)
    othercontrol: Mapped[int] = mapped_column(Integer, nullable=False, default=CONTROLMAPNA)

    # Per-product privileges
    canedit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    editcomponents: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    editbugs: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    canconfirm: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<GroupControlMap(product_id={self.product_id}, group_id={self.group_id})>"
