"""
Authoritative store: repositories over the SQLAlchemy models.

Each repository is described by a Protocol so services can be exercised
against any implementation. The SQL implementations translate storage
failures into AppError:
- missing rows            -> entity-specific NOT_FOUND
- unique violations       -> CONFLICT (USER_ALREADY_EXISTS for usernames)
- other integrity errors  -> VALIDATION_ERROR (NOT NULL, foreign key, check)
- anything else           -> DATABASE_ERROR (cause logged, never rendered)
"""
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from manga_reader.core import errors
from manga_reader.core.errors import ErrorKind
from manga_reader.core.entities import Chapter, Manga, MangaFilter, Page, User
from manga_reader.data.models import ChapterRow, GenreRow, MangaRow, PageRow, UserRow
from manga_reader.utils.logger import get_logger

logger = get_logger("data.repositories")


# ── Protocols ────────────────────────────────────────────────────────────

class MangaRepository(Protocol):
    def create(self, manga: Manga) -> int: ...
    def get_by_id(self, manga_id: int) -> Manga: ...
    def list(self, flt: MangaFilter) -> List[Manga]: ...
    def update(self, manga: Manga) -> None: ...
    def delete(self, manga_id: int) -> None: ...
    def add_genre_to_manga(self, manga_id: int, genre: str) -> None: ...
    def remove_genre_from_manga(self, manga_id: int, genre: str) -> None: ...
    def get_genres_for_manga(self, manga_id: int) -> List[str]: ...


class ChapterRepository(Protocol):
    def create(self, chapter: Chapter) -> int: ...
    def get_by_id(self, chapter_id: int) -> Chapter: ...
    def list_by_manga(self, manga_id: int) -> List[Chapter]: ...
    def update(self, chapter: Chapter) -> None: ...
    def delete(self, chapter_id: int) -> None: ...
    def delete_by_manga_id(self, manga_id: int) -> None: ...


class PageRepository(Protocol):
    def create(self, page: Page) -> int: ...
    def get_by_id(self, page_id: int) -> Page: ...
    def list_by_chapter(self, chapter_id: int) -> List[Page]: ...
    def update(self, page: Page) -> None: ...
    def delete(self, page_id: int) -> None: ...
    def delete_by_chapter_id(self, chapter_id: int) -> None: ...


class UserRepository(Protocol):
    def create(self, user: User) -> int: ...
    def get_by_id(self, user_id: int) -> User: ...
    def get_by_username(self, username: str) -> User: ...
    def get_by_email(self, email: str) -> User: ...
    def update(self, user: User) -> None: ...
    def delete(self, user_id: int) -> None: ...


# ── Row -> entity conversion ─────────────────────────────────────────────

def _to_manga(row: MangaRow) -> Manga:
    return Manga(
        id=row.id,
        title=row.title,
        description=row.description or "",
        cover_image=row.cover_image,
        status=row.status,
        author=row.author or "",
        artist=row.artist,
        genres=row.genres,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_chapter(row: ChapterRow) -> Chapter:
    return Chapter(
        id=row.id,
        manga_id=row.manga_id,
        number=float(row.number),
        title=row.title,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_page(row: PageRow) -> Page:
    return Page.model_validate(row)


def _to_user(row: UserRow) -> User:
    return User.model_validate(row)


# ── Base ─────────────────────────────────────────────────────────────────

# SQLSTATE for unique_violation; sqlite only reports it in the message
UNIQUE_VIOLATION_PGCODE = "23505"


def _is_unique_violation(e: IntegrityError) -> bool:
    pgcode = getattr(e.orig, "pgcode", None)
    if pgcode:
        return pgcode == UNIQUE_VIOLATION_PGCODE
    message = str(e.orig).lower()
    return "unique" in message or "duplicate" in message


class _SQLRepository:
    """Shared session handling and error translation."""

    entity_name = "entity"

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _session(self, operation: str, item: Any = None) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except errors.AppError:
            session.rollback()
            raise
        except IntegrityError as e:
            session.rollback()
            logger.warning("Integrity error during %s %s: %s", operation, self.entity_name, e.orig)
            raise self._integrity_error(e, item)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Database error during %s %s: %s", operation, self.entity_name, e)
            raise errors.database_error(cause=e)
        finally:
            session.close()

    def _integrity_error(self, e: IntegrityError, item: Any) -> errors.AppError:
        """Unique violations are conflicts; NOT NULL, FK and CHECK failures are bad input."""
        entity = self.entity_name.capitalize()
        if _is_unique_violation(e):
            return errors.conflict(f"{entity} conflicts with an existing record", cause=e)
        return errors.AppError(ErrorKind.VALIDATION, f"{entity} violates a data constraint", cause=e)

    @staticmethod
    def _require(row, not_found: Callable[[], errors.AppError]):
        if row is None:
            raise not_found()
        return row


# ── Manga ────────────────────────────────────────────────────────────────

class SQLMangaRepository(_SQLRepository):
    entity_name = "manga"

    def _genre_rows(self, session: Session, names: List[str]) -> List[GenreRow]:
        rows = []
        for name in sorted({n.strip() for n in names if n and n.strip()}):
            genre = session.execute(select(GenreRow).where(GenreRow.name == name)).scalar_one_or_none()
            if genre is None:
                genre = GenreRow(name=name)
                session.add(genre)
            rows.append(genre)
        return rows

    def create(self, manga: Manga) -> int:
        with self._session("create") as session:
            row = MangaRow(
                title=manga.title,
                description=manga.description,
                cover_image=manga.cover_image,
                status=manga.status.value,
                author=manga.author,
                artist=manga.artist,
            )
            row.genre_rows = self._genre_rows(session, manga.genres)
            session.add(row)
            session.flush()
            return row.id

    def get_by_id(self, manga_id: int) -> Manga:
        with self._session("get") as session:
            row = self._require(session.get(MangaRow, manga_id), lambda: errors.manga_not_found(manga_id))
            return _to_manga(row)

    def list(self, flt: MangaFilter) -> List[Manga]:
        with self._session("list") as session:
            query = select(MangaRow)
            if flt.title:
                query = query.where(MangaRow.title.ilike(f"%{flt.title}%"))
            if flt.status:
                query = query.where(MangaRow.status == flt.status)
            for genre in flt.genres:
                query = query.where(MangaRow.genre_rows.any(GenreRow.name == genre))
            query = query.order_by(MangaRow.id).limit(flt.limit).offset(flt.offset)
            return [_to_manga(row) for row in session.execute(query).scalars().all()]

    def update(self, manga: Manga) -> None:
        with self._session("update") as session:
            row = self._require(session.get(MangaRow, manga.id), lambda: errors.manga_not_found(manga.id))
            row.title = manga.title
            row.description = manga.description
            row.cover_image = manga.cover_image
            row.status = manga.status.value
            row.author = manga.author
            row.artist = manga.artist
            row.genre_rows = self._genre_rows(session, manga.genres)

    def delete(self, manga_id: int) -> None:
        with self._session("delete") as session:
            row = self._require(session.get(MangaRow, manga_id), lambda: errors.manga_not_found(manga_id))
            session.delete(row)

    def add_genre_to_manga(self, manga_id: int, genre: str) -> None:
        with self._session("add genre to") as session:
            row = self._require(session.get(MangaRow, manga_id), lambda: errors.manga_not_found(manga_id))
            if genre not in row.genres:
                row.genre_rows = row.genre_rows + self._genre_rows(session, [genre])

    def remove_genre_from_manga(self, manga_id: int, genre: str) -> None:
        with self._session("remove genre from") as session:
            row = self._require(session.get(MangaRow, manga_id), lambda: errors.manga_not_found(manga_id))
            row.genre_rows = [g for g in row.genre_rows if g.name != genre]

    def get_genres_for_manga(self, manga_id: int) -> List[str]:
        with self._session("get genres for") as session:
            row = self._require(session.get(MangaRow, manga_id), lambda: errors.manga_not_found(manga_id))
            return row.genres


# ── Chapters ─────────────────────────────────────────────────────────────

class SQLChapterRepository(_SQLRepository):
    entity_name = "chapter"

    def create(self, chapter: Chapter) -> int:
        with self._session("create") as session:
            row = ChapterRow(manga_id=chapter.manga_id, number=chapter.number, title=chapter.title)
            session.add(row)
            session.flush()
            return row.id

    def get_by_id(self, chapter_id: int) -> Chapter:
        with self._session("get") as session:
            row = self._require(session.get(ChapterRow, chapter_id), lambda: errors.chapter_not_found(chapter_id))
            return _to_chapter(row)

    def list_by_manga(self, manga_id: int) -> List[Chapter]:
        with self._session("list") as session:
            query = select(ChapterRow).where(ChapterRow.manga_id == manga_id).order_by(ChapterRow.number)
            return [_to_chapter(row) for row in session.execute(query).scalars().all()]

    def update(self, chapter: Chapter) -> None:
        with self._session("update") as session:
            row = self._require(session.get(ChapterRow, chapter.id), lambda: errors.chapter_not_found(chapter.id))
            row.manga_id = chapter.manga_id
            row.number = chapter.number
            row.title = chapter.title

    def delete(self, chapter_id: int) -> None:
        with self._session("delete") as session:
            row = self._require(session.get(ChapterRow, chapter_id), lambda: errors.chapter_not_found(chapter_id))
            session.delete(row)

    def delete_by_manga_id(self, manga_id: int) -> None:
        with self._session("delete") as session:
            rows = session.execute(select(ChapterRow).where(ChapterRow.manga_id == manga_id)).scalars().all()
            for row in rows:
                session.delete(row)


# ── Pages ────────────────────────────────────────────────────────────────

class SQLPageRepository(_SQLRepository):
    entity_name = "page"

    def create(self, page: Page) -> int:
        with self._session("create") as session:
            row = PageRow(chapter_id=page.chapter_id, number=page.number, image_path=page.image_path)
            session.add(row)
            session.flush()
            return row.id

    def get_by_id(self, page_id: int) -> Page:
        with self._session("get") as session:
            row = self._require(session.get(PageRow, page_id), lambda: errors.page_not_found(page_id))
            return _to_page(row)

    def list_by_chapter(self, chapter_id: int) -> List[Page]:
        with self._session("list") as session:
            query = select(PageRow).where(PageRow.chapter_id == chapter_id).order_by(PageRow.number)
            return [_to_page(row) for row in session.execute(query).scalars().all()]

    def update(self, page: Page) -> None:
        with self._session("update") as session:
            row = self._require(session.get(PageRow, page.id), lambda: errors.page_not_found(page.id))
            row.chapter_id = page.chapter_id
            row.number = page.number
            row.image_path = page.image_path

    def delete(self, page_id: int) -> None:
        with self._session("delete") as session:
            row = self._require(session.get(PageRow, page_id), lambda: errors.page_not_found(page_id))
            session.delete(row)

    def delete_by_chapter_id(self, chapter_id: int) -> None:
        with self._session("delete") as session:
            rows = session.execute(select(PageRow).where(PageRow.chapter_id == chapter_id)).scalars().all()
            for row in rows:
                session.delete(row)


# ── Users ────────────────────────────────────────────────────────────────

class SQLUserRepository(_SQLRepository):
    entity_name = "user"

    def _integrity_error(self, e: IntegrityError, item: Any) -> errors.AppError:
        message = str(e.orig).lower()
        if isinstance(item, User) and _is_unique_violation(e):
            if "username" in message:
                return errors.user_exists(item.username, cause=e)
            if "email" in message:
                return errors.conflict("User with this email already exists", cause=e)
        return super()._integrity_error(e, item)

    def create(self, user: User) -> int:
        with self._session("create", user) as session:
            row = UserRow(
                username=user.username,
                email=user.email,
                password_hash=user.password_hash,
                role=user.role.value,
            )
            session.add(row)
            session.flush()
            return row.id

    def get_by_id(self, user_id: int) -> User:
        with self._session("get") as session:
            row = self._require(session.get(UserRow, user_id), lambda: errors.user_not_found(user_id))
            return _to_user(row)

    def _get_one(self, session: Session, column, value) -> Optional[UserRow]:
        return session.execute(select(UserRow).where(column == value)).scalar_one_or_none()

    def get_by_username(self, username: str) -> User:
        with self._session("get") as session:
            row = self._require(self._get_one(session, UserRow.username, username),
                                lambda: errors.user_not_found(username))
            return _to_user(row)

    def get_by_email(self, email: str) -> User:
        with self._session("get") as session:
            row = self._require(self._get_one(session, UserRow.email, email),
                                lambda: errors.user_not_found(email))
            return _to_user(row)

    def update(self, user: User) -> None:
        with self._session("update", user) as session:
            row = self._require(session.get(UserRow, user.id), lambda: errors.user_not_found(user.id))
            row.username = user.username
            row.email = user.email
            row.role = user.role.value
            if user.password_hash:
                row.password_hash = user.password_hash

    def delete(self, user_id: int) -> None:
        with self._session("delete") as session:
            row = self._require(session.get(UserRow, user_id), lambda: errors.user_not_found(user_id))
            session.delete(row)
