"""Manga catalog endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from manga_reader.api.deps import ServiceContainer, get_services, require_admin
from manga_reader.api.schemas import MangaRequest, ok, pagination_meta
from manga_reader.core.entities import MangaFilter
from manga_reader.services.common import clamp_limit, clamp_offset

router = APIRouter(prefix="/api/v1/manga", tags=["manga"])


def parse_genres(raw: Optional[str]):
    if not raw:
        return []
    return [g.strip() for g in raw.split(",") if g.strip()]


@router.get("")
def list_manga(
    title: str = "",
    status_filter: str = Query("", alias="status"),
    genres: Optional[str] = None,
    limit: int = 10,
    offset: int = 0,
    services: ServiceContainer = Depends(get_services),
):
    """
    List manga. `genres` is comma separated and every listed genre must match.
    """
    flt = MangaFilter(
        title=title,
        status=status_filter,
        genres=parse_genres(genres),
        limit=clamp_limit(limit),
        offset=clamp_offset(offset),
    )
    items = services.manga.list(flt)
    return ok(items, meta=pagination_meta(len(items), flt.limit, flt.offset))


@router.get("/popular")
def popular_manga(
    period: Optional[str] = None,
    limit: int = 10,
    services: ServiceContainer = Depends(get_services),
):
    return ok(services.manga.get_popular(period, limit))


@router.get("/{manga_id}")
def get_manga(manga_id: int, services: ServiceContainer = Depends(get_services)):
    return ok(services.manga.get_by_id(manga_id))


@router.get("/{manga_id}/chapters")
def get_manga_chapters(manga_id: int, services: ServiceContainer = Depends(get_services)):
    return ok(services.manga.get_chapters(manga_id))


@router.post("", status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_admin)])
def create_manga(body: MangaRequest, services: ServiceContainer = Depends(get_services)):
    return ok(services.manga.create(body.to_entity()))


@router.put("/{manga_id}", dependencies=[Depends(require_admin)])
def update_manga(manga_id: int, body: MangaRequest, services: ServiceContainer = Depends(get_services)):
    return ok(services.manga.update(body.to_entity(manga_id)))


@router.delete("/{manga_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(require_admin)])
def delete_manga(manga_id: int, services: ServiceContainer = Depends(get_services)):
    services.manga.delete(manga_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
