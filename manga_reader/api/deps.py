"""
FastAPI dependencies: the per-app service container and authentication.

Services are built once by create_app and hung on app.state; handlers reach
them through the request, never through module globals.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import sessionmaker

from manga_reader.auth.tokens import Claims, TokenService
from manga_reader.caching.cache_aside import CacheAside
from manga_reader.core import errors
from manga_reader.core.config import ReaderConfig
from manga_reader.core.entities import Role
from manga_reader.data.kv_store import KVStore
from manga_reader.services import AnalyticsService, ChapterService, MangaService, PageService, UserService


@dataclass
class ServiceContainer:
    config: ReaderConfig
    store: KVStore
    session_factory: sessionmaker
    cache: CacheAside
    tokens: TokenService
    manga: MangaService
    chapters: ChapterService
    pages: PageService
    users: UserService
    analytics: AnalyticsService


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def current_claims(
    authorization: Optional[str] = Header(None),
    services: ServiceContainer = Depends(get_services),
) -> Claims:
    """Validate `Authorization: Bearer <access token>`."""
    if not authorization:
        raise errors.unauthorized("Authorization header is required")
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1].strip():
        raise errors.unauthorized("Authorization header must be 'Bearer <token>'")
    return services.tokens.validate_access(parts[1].strip())


def require_admin(claims: Claims = Depends(current_claims)) -> Claims:
    if claims.role != Role.ADMIN:
        raise errors.forbidden("Admin role required")
    return claims
