"""
SQLAlchemy database models.
These are the authoritative source of truth for catalog and user data.

Postgres is authoritative for:
- Manga (with genres through manga_genres)
- Chapters and pages
- Users and their password hashes

View counts are NOT stored here; they live in the ranking store.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Table, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from manga_reader.data.database import Base


manga_genres = Table(
    "manga_genres",
    Base.metadata,
    Column("manga_id", Integer, ForeignKey("manga.id", ondelete="CASCADE"), primary_key=True),
    Column("genre_id", Integer, ForeignKey("genres.id", ondelete="CASCADE"), primary_key=True),
)


class GenreRow(Base):
    __tablename__ = "genres"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class MangaRow(Base):
    __tablename__ = "manga"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    cover_image = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="ongoing", index=True)  # ongoing, completed, hiatus
    author = Column(String(100), nullable=True)
    artist = Column(String(100), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    genre_rows = relationship("GenreRow", secondary=manga_genres, lazy="selectin", order_by="GenreRow.name")
    chapters = relationship("ChapterRow", back_populates="manga", cascade="all, delete-orphan")

    @property
    def genres(self):
        return [g.name for g in self.genre_rows]


class ChapterRow(Base):
    __tablename__ = "chapters"
    __table_args__ = (UniqueConstraint("manga_id", "number", name="uq_chapters_manga_number"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    manga_id = Column(Integer, ForeignKey("manga.id", ondelete="CASCADE"), nullable=False, index=True)
    number = Column(Numeric(8, 2), nullable=False)  # 1.5, 2.3 style extras
    title = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    manga = relationship("MangaRow", back_populates="chapters")
    pages = relationship("PageRow", back_populates="chapter", cascade="all, delete-orphan")


class PageRow(Base):
    __tablename__ = "pages"
    __table_args__ = (UniqueConstraint("chapter_id", "number", name="uq_pages_chapter_number"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    chapter_id = Column(Integer, ForeignKey("chapters.id", ondelete="CASCADE"), nullable=False, index=True)
    number = Column(Integer, nullable=False)
    image_path = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    chapter = relationship("ChapterRow", back_populates="pages")


class UserRow(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), unique=True, nullable=False)
    email = Column(String(100), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="user")  # user, admin

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
