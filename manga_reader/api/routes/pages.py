"""Page endpoints."""
from fastapi import APIRouter, Depends, Response, status

from manga_reader.api.deps import ServiceContainer, get_services, require_admin
from manga_reader.api.schemas import PageRequest, ok

router = APIRouter(prefix="/api/v1/pages", tags=["pages"])


@router.get("/{page_id}")
def get_page(page_id: int, services: ServiceContainer = Depends(get_services)):
    return ok(services.pages.get_by_id(page_id))


@router.post("", status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_admin)])
def create_page(body: PageRequest, services: ServiceContainer = Depends(get_services)):
    return ok(services.pages.create(body.to_entity()))


@router.put("/{page_id}", dependencies=[Depends(require_admin)])
def update_page(page_id: int, body: PageRequest, services: ServiceContainer = Depends(get_services)):
    return ok(services.pages.update(body.to_entity(page_id)))


@router.delete("/{page_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(require_admin)])
def delete_page(page_id: int, services: ServiceContainer = Depends(get_services)):
    services.pages.delete(page_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
