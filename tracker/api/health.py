"""Health check endpoints for load balancers and orchestrators."""

from fastapi import APIRouter
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from tracker import __version__
from tracker.api.deps import DbSession, RedisClient
from tracker.constants import SYSTEM_GROUPS
from tracker.models.group import Group
from tracker.schemas.common import HealthResponse

router = APIRouter(tags=["Health"])


async def _check_database(db: AsyncSession) -> tuple[str, str]:
    """Database connectivity, then whether the system groups were seeded."""
    try:
        await db.execute(text("SELECT 1"))
        result = await db.execute(
            select(func.count(Group.id)).where(Group.name.in_(SYSTEM_GROUPS))
        )
        seeded = result.scalar_one()
    except Exception as e:
        return f"unhealthy: {e}", "unknown"

    if seeded < len(SYSTEM_GROUPS):
        return "healthy", f"missing {len(SYSTEM_GROUPS) - seeded} system group(s)"
    return "healthy", "healthy"


@router.get("/health", response_model=HealthResponse, summary="Basic health check")
async def health_check() -> HealthResponse:
    return HealthResponse(status="healthy", version=__version__)


@router.get(
    "/health/ready",
    response_model=HealthResponse,
    summary="Readiness check",
    description=(
        "Checks database and Redis connectivity. Sessions live in Redis, so "
        "either being unreachable fails readiness; unseeded system groups degrade it."
    ),
)
async def readiness_check(db: DbSession, redis_client: RedisClient) -> HealthResponse:
    db_status, groups_status = await _check_database(db)

    redis_status = "healthy"
    try:
        await redis_client.ping()
    except Exception as e:
        redis_status = f"unhealthy: {e}"

    if db_status != "healthy" or redis_status != "healthy":
        overall = "unhealthy"
    elif groups_status != "healthy":
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        redis=redis_status,
        system_groups=groups_status,
    )


@router.get("/health/live", response_model=HealthResponse, summary="Liveness check")
async def liveness_check() -> HealthResponse:
    """The process is up; dependencies are not consulted."""
    return HealthResponse(status="alive", version=__version__)
