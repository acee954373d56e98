"""API v1 router combining all endpoint routers."""

from fastapi import APIRouter

from tracker.api.v1 import auth, groups, products, users

router = APIRouter()

# Include all routers
router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(groups.router, prefix="/groups", tags=["Groups"])
router.include_router(products.router, prefix="/products", tags=["Products"])
