"""Leaderboard and statistics endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends

from manga_reader.api.deps import ServiceContainer, get_services, require_admin
from manga_reader.api.schemas import ok

router = APIRouter(prefix="/api/v1/analytics", tags=["analytics"])


@router.get("/manga/top")
def top_manga(period: Optional[str] = None, limit: int = 10, services: ServiceContainer = Depends(get_services)):
    return ok(services.analytics.get_top_manga(period, limit))


@router.get("/chapters/top")
def top_chapters(period: Optional[str] = None, limit: int = 10, services: ServiceContainer = Depends(get_services)):
    return ok(services.analytics.get_top_chapters(period, limit))


@router.get("/pages/top")
def top_pages(period: Optional[str] = None, limit: int = 10, services: ServiceContainer = Depends(get_services)):
    return ok(services.analytics.get_top_pages(period, limit))


@router.post("/reset/{period}", dependencies=[Depends(require_admin)])
def reset_stats(period: str, services: ServiceContainer = Depends(get_services)):
    removed = services.analytics.reset_stats(period)
    return ok({"period": period.lower(), "sets_removed": removed})


@router.get("/stats", dependencies=[Depends(require_admin)])
def stats(limit: int = 10, services: ServiceContainer = Depends(get_services)):
    return ok(services.analytics.get_stats(limit))
