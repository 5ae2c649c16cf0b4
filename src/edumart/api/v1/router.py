"""Primary API router definition."""

from fastapi import APIRouter

from . import access, exchanges, memberships, points

api_router = APIRouter()

api_router.include_router(points.router)
api_router.include_router(memberships.router)
api_router.include_router(exchanges.router)
api_router.include_router(access.router)


@api_router.get("/health", tags=["health"])
async def healthcheck() -> dict[str, str]:
    """Basic health probe endpoint."""
    return {"status": "ok"}
