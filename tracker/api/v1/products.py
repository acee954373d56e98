"""Product API endpoints."""

from typing import Annotated, Literal

from fastapi import APIRouter, Query

from tracker.api.deps import DbSession, OptionalPermissions
from tracker.schemas.product import ProductAccessResponse, ProductResponse
from tracker.services.product import ProductService

router = APIRouter()


@router.get(
    "",
    response_model=list[ProductResponse],
    summary="List products",
    description=(
        "Products visible to the caller. `selectable` products can be searched, "
        "`enterable` ones accept new bugs, `accessible` is either."
    ),
)
async def list_products(
    permissions: OptionalPermissions,
    db: DbSession,
    scope: Annotated[Literal["selectable", "enterable", "accessible"], Query()] = "selectable",
) -> list[ProductResponse]:
    product_service = ProductService(db, permissions)
    products = await product_service.list_products(scope)
    return [ProductResponse.model_validate(p) for p in products]


@router.get(
    "/{name}/access",
    response_model=ProductAccessResponse,
    summary="Get the caller's rights on a product",
)
async def get_product_access(
    name: str,
    permissions: OptionalPermissions,
    db: DbSession,
) -> ProductAccessResponse:
    product_service = ProductService(db, permissions)
    return ProductAccessResponse.model_validate(await product_service.access(name))
