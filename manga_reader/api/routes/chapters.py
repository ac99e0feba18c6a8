"""Chapter endpoints."""
from fastapi import APIRouter, Depends, Response, status

from manga_reader.api.deps import ServiceContainer, get_services, require_admin
from manga_reader.api.schemas import ChapterRequest, ok

router = APIRouter(prefix="/api/v1/chapters", tags=["chapters"])


@router.get("/{chapter_id}")
def get_chapter(chapter_id: int, services: ServiceContainer = Depends(get_services)):
    """Chapter with its lifetime view count."""
    return ok(services.chapters.get_by_id(chapter_id))


@router.get("/{chapter_id}/pages")
def get_chapter_pages(chapter_id: int, services: ServiceContainer = Depends(get_services)):
    return ok(services.chapters.get_pages(chapter_id))


@router.post("", status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_admin)])
def create_chapter(body: ChapterRequest, services: ServiceContainer = Depends(get_services)):
    return ok(services.chapters.create(body.to_entity()))


@router.put("/{chapter_id}", dependencies=[Depends(require_admin)])
def update_chapter(chapter_id: int, body: ChapterRequest, services: ServiceContainer = Depends(get_services)):
    return ok(services.chapters.update(body.to_entity(chapter_id)))


@router.delete("/{chapter_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(require_admin)])
def delete_chapter(chapter_id: int, services: ServiceContainer = Depends(get_services)):
    services.chapters.delete(chapter_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
