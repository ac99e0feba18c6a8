"""
FastAPI application for the manga reader backend.

create_app() is the composition root: it builds the KV store, database
session factory, cache, analytics engine, token service and application
services, and attaches them to app.state. Nothing here is a module-level
singleton, so tests build as many independent apps as they need.

Usage:
    uvicorn manga_reader.api.server:create_app --factory --reload
    # or
    manga-reader serve
"""
import time
import traceback
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request as StarletteRequest
from starlette.responses import Response as StarletteResponse

from manga_reader import __version__
from manga_reader.analytics.engine import AnalyticsEngine
from manga_reader.api.deps import ServiceContainer
from manga_reader.api.routes import ROUTERS
from manga_reader.api.schemas import fail
from manga_reader.auth.passwords import PasswordHasher
from manga_reader.auth.tokens import TokenService, utc_now
from manga_reader.caching.cache_aside import CacheAside
from manga_reader.caching.cache_policy import TTLPolicy
from manga_reader.core.config import ReaderConfig, load_config
from manga_reader.core.errors import OPAQUE_KINDS, AppError, ErrorKind
from manga_reader.data.database import create_tables, engine_from_config, make_session_factory, session_scope
from manga_reader.data.kv_store import KVStore, RedisStore
from manga_reader.data.repositories import (
    SQLChapterRepository,
    SQLMangaRepository,
    SQLPageRepository,
    SQLUserRepository,
)
from manga_reader.services import AnalyticsService, ChapterService, MangaService, PageService, UserService
from manga_reader.utils.logger import get_logger, set_level

logger = get_logger("api.server")

STATUS_CODES = {
    401: ErrorKind.UNAUTHORIZED,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.CONFLICT,
}


def build_services(
    config: ReaderConfig,
    store: KVStore,
    session_factory: sessionmaker,
    clock: Callable = utc_now,
) -> ServiceContainer:
    """Wire every component through its constructor."""
    manga_repo = SQLMangaRepository(session_factory)
    chapter_repo = SQLChapterRepository(session_factory)
    page_repo = SQLPageRepository(session_factory)
    user_repo = SQLUserRepository(session_factory)

    ttl = TTLPolicy.from_config(config)
    cache = CacheAside(store)
    engine = AnalyticsEngine(store, manga_repo, chapter_repo, page_repo)
    analytics = AnalyticsService(engine, cache, ttl)
    tokens = TokenService.from_config(config, clock)

    return ServiceContainer(
        config=config,
        store=store,
        session_factory=session_factory,
        cache=cache,
        tokens=tokens,
        manga=MangaService(manga_repo, chapter_repo, page_repo, cache, analytics, ttl),
        chapters=ChapterService(chapter_repo, manga_repo, page_repo, cache, analytics, ttl),
        pages=PageService(page_repo, chapter_repo, cache, analytics, ttl),
        users=UserService(user_repo, tokens, PasswordHasher(config.bcrypt_rounds)),
        analytics=analytics,
    )


# ---------------------------------------------------------------------------
# Request logging middleware
# Logs every non-OPTIONS request with method, path, status, and duration_ms.
# ---------------------------------------------------------------------------

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: StarletteRequest, call_next) -> StarletteResponse:
        if request.method == "OPTIONS":
            return await call_next(request)
        t0 = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - t0) * 1000, 1)
        logger.info(
            "%s %s -> %d  %.1fms",
            request.method, request.url.path, response.status_code, duration_ms,
        )
        return response


# ---------------------------------------------------------------------------
# Error rendering
# ---------------------------------------------------------------------------

async def app_error_handler(request: Request, exc: AppError):
    if exc.kind in OPAQUE_KINDS:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc)
    elif exc.cause is not None:
        logger.warning("%s on %s %s: %s", exc.code, request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=fail(exc.code, exc.message, exc.details))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    # The offending input is not echoed back; it may not be JSON-encodable (NaN)
    details = [{k: v for k, v in err.items() if k != "input"} for err in exc.errors()]
    return JSONResponse(
        status_code=400,
        content=fail(ErrorKind.VALIDATION.value, "Request validation failed", jsonable_encoder(details)),
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    kind = STATUS_CODES.get(exc.status_code)
    if kind is None:
        kind = ErrorKind.BAD_REQUEST if exc.status_code < 500 else ErrorKind.INTERNAL
    return JSONResponse(status_code=exc.status_code, content=fail(kind.value, str(exc.detail)))


async def global_exception_handler(request: Request, exc: Exception):
    """Log unhandled exceptions; the client only ever sees a generic message."""
    logger.error("Unhandled exception: %s\n%s", exc, traceback.format_exc())
    return JSONResponse(
        status_code=500,
        content=fail(ErrorKind.INTERNAL.value, "Internal server error"),
    )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    config: Optional[ReaderConfig] = None,
    store: Optional[KVStore] = None,
    session_factory: Optional[sessionmaker] = None,
    clock: Callable = utc_now,
) -> FastAPI:
    """
    Build the application.

    Args:
        config: Settings; loaded from config/default.yaml + environment if omitted
        store: KV/ranking store; Redis from config if omitted
        session_factory: SQLAlchemy sessionmaker; built from database_url if omitted
        clock: Time source for token issuing/validation
    """
    config = config or load_config()
    set_level(config.log_level)

    if session_factory is None:
        session_factory = make_session_factory(engine_from_config(config))
    if store is None:
        store = RedisStore.from_config(config)

    services = build_services(config, store, session_factory, clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # In production, use migrations instead
        try:
            create_tables(session_factory.kw["bind"])
        except SQLAlchemyError as e:
            logger.warning("Could not create tables: %s. Tables should already exist.", e)
        if not store.ping():
            logger.warning("KV store unreachable at startup; serving without cache")
        logger.info("Manga reader API started (env=%s)", config.env)
        yield
        logger.info("Manga reader API stopped")

    app = FastAPI(
        title="Manga Reader API",
        description="Manga catalog with cached reads, view analytics and JWT auth",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    for router in ROUTERS:
        app.include_router(router)

    @app.get("/health")
    def health_check():
        """Detailed health check including database and cache connectivity."""
        health_status = {
            "service": "healthy",
            "version": __version__,
            "database": "unknown",
            "cache": "unknown",
        }

        try:
            with session_scope(session_factory) as session:
                session.execute(text("SELECT 1"))
            health_status["database"] = "healthy"
        except SQLAlchemyError as e:
            logger.error("Database health check failed: %s", e)
            health_status["database"] = "unhealthy"
            health_status["service"] = "degraded"

        if store.ping():
            health_status["cache"] = "healthy"
        else:
            health_status["cache"] = "unhealthy: no response"
            health_status["service"] = "degraded"

        health_status["cache_stats"] = services.cache.stats.summary()
        return health_status

    return app
