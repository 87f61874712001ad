"""Health check endpoint."""

from fastapi import APIRouter, Depends

from quotaguard import __version__
from quotaguard.dependencies import rate_limit
from quotaguard.schemas.limits import GENEROUS
from quotaguard.services.rate_limit import get_rate_limiter

router = APIRouter(tags=["health"])


@router.get("/health", dependencies=[Depends(rate_limit(GENEROUS, namespace="health"))])
async def health_check() -> dict:
    """Return API health status, version and rate limit store size."""
    stats = get_rate_limiter().stats()
    return {
        "status": "ok",
        "version": __version__,
        "rate_limit": {
            "total_entries": stats.total_entries,
            "active_entries": stats.active_entries,
        },
    }
