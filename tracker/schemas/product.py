"""Product schemas."""

from tracker.schemas.common import BaseSchema


class ProductResponse(BaseSchema):
    """Schema for product response."""

    id: int
    name: str
    description: str
    isactive: bool


class ProductAccessResponse(BaseSchema):
    """What the current user may do with a product."""

    product: str
    can_see: bool
    can_enter: bool
    can_edit: bool
    can_admin: bool
    privileges: list[str]
