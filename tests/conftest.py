"""Pytest configuration: in-memory stores, a fake clock and a wired test app."""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from manga_reader.analytics.engine import AnalyticsEngine
from manga_reader.api.server import build_services, create_app
from manga_reader.auth.passwords import PasswordHasher
from manga_reader.auth.tokens import TokenService
from manga_reader.caching.cache_aside import CacheAside
from manga_reader.core.config import ReaderConfig
from manga_reader.core.entities import Chapter, Manga, Page, Role
from manga_reader.data.database import create_tables, make_engine, make_session_factory
from manga_reader.data.kv_store import InMemoryStore, KVStoreError
from manga_reader.data.repositories import (
    SQLChapterRepository,
    SQLMangaRepository,
    SQLPageRepository,
    SQLUserRepository,
)

ACCESS_SECRET = "test-access-secret-that-is-long-enough-0001"
REFRESH_SECRET = "test-refresh-secret-that-is-long-enough-0002"
ADMIN_PASSWORD = "admin-password"


class FakeClock:
    """Manually advanced clock usable both as a datetime source and a monotonic source."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def monotonic(self) -> float:
        return self.now.timestamp()

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return ReaderConfig(
        env="test",
        database_url="sqlite://",
        jwt_secret=ACCESS_SECRET,
        jwt_refresh_secret=REFRESH_SECRET,
        bcrypt_rounds=4,
        log_level="WARNING",
    )


@pytest.fixture
def store(clock):
    s = InMemoryStore(clock=clock.monotonic)
    yield s
    s.flush()


class BrokenStore:
    """Every operation fails, like a Redis that went away."""

    def ping(self):
        return False

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise KVStoreError(f"{name} failed: connection refused")
        return fail


@pytest.fixture
def broken_store():
    return BrokenStore()


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    create_tables(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def manga_repo(session_factory):
    return SQLMangaRepository(session_factory)


@pytest.fixture
def chapter_repo(session_factory):
    return SQLChapterRepository(session_factory)


@pytest.fixture
def page_repo(session_factory):
    return SQLPageRepository(session_factory)


@pytest.fixture
def user_repo(session_factory):
    return SQLUserRepository(session_factory)


@pytest.fixture
def cache(store):
    return CacheAside(store)


@pytest.fixture
def engine(store, manga_repo, chapter_repo, page_repo):
    return AnalyticsEngine(store, manga_repo, chapter_repo, page_repo)


@pytest.fixture
def tokens(clock):
    return TokenService(ACCESS_SECRET, REFRESH_SECRET, clock=clock)


@pytest.fixture
def hasher():
    return PasswordHasher(rounds=4)


@pytest.fixture
def services(config, store, session_factory, clock):
    return build_services(config, store, session_factory, clock)


@pytest.fixture
def catalog(manga_repo, chapter_repo, page_repo):
    """Two manga; the first has two chapters with two pages each."""
    m1 = manga_repo.create(Manga(title="Berserk", author="Miura", genres=["action", "dark fantasy"]))
    m2 = manga_repo.create(Manga(title="Yotsuba", author="Azuma", genres=["comedy"]))
    c1 = chapter_repo.create(Chapter(manga_id=m1, number=1, title="The Black Swordsman"))
    c2 = chapter_repo.create(Chapter(manga_id=m1, number=2, title="The Brand"))
    pages = [
        page_repo.create(Page(chapter_id=c, number=n, image_path=f"/img/{c}/{n}.png"))
        for c in (c1, c2)
        for n in (1, 2)
    ]
    return {"manga": [m1, m2], "chapters": [c1, c2], "pages": pages}


@pytest.fixture
def app(config, store, session_factory, clock):
    return create_app(config=config, store=store, session_factory=session_factory, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_headers(app):
    services = app.state.services
    admin = services.users.register("admin", "admin@example.com", ADMIN_PASSWORD, role=Role.ADMIN)
    pair = services.tokens.issue_token_pair(admin)
    return {"Authorization": f"Bearer {pair.access_token}"}


@pytest.fixture
def user_headers(app):
    services = app.state.services
    user = services.users.register("reader", "reader@example.com", "reader-password")
    pair = services.tokens.issue_token_pair(user)
    return {"Authorization": f"Bearer {pair.access_token}"}
