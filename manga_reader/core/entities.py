"""
Domain entities.

Pydantic models so they serialize straight into cache entries and API
responses. The SQLAlchemy tables in manga_reader.data.models are the
authoritative storage shapes; repositories convert between the two.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class MangaStatus(str, Enum):
    ONGOING = "ongoing"
    COMPLETED = "completed"
    HIATUS = "hiatus"


class StatsPeriod(str, Enum):
    """Ranking bucket. Each period is reset independently on its own schedule."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ALL_TIME = "all_time"


class SubjectKind(str, Enum):
    """What a view event is about."""
    MANGA = "manga"
    CHAPTER = "chapter"
    PAGE = "page"


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class Manga(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int = 0
    title: str
    description: str = ""
    cover_image: Optional[str] = None
    status: MangaStatus = MangaStatus.ONGOING
    author: str = ""
    artist: Optional[str] = None
    genres: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MangaFilter(BaseModel):
    """Listing filter. Only the unfiltered form (pagination alone) is cacheable."""
    title: str = ""
    genres: List[str] = Field(default_factory=list)
    status: str = ""
    limit: int = 10
    offset: int = 0

    @property
    def is_unfiltered(self) -> bool:
        return not self.title and not self.status and not self.genres


class Chapter(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int = 0
    manga_id: int
    number: float  # float so that 1.5-style extra chapters are allowed
    title: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ChapterWithStats(Chapter):
    views: int = 0


class Page(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int = 0
    chapter_id: int
    number: int
    image_path: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class User(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int = 0
    username: str
    email: str
    password_hash: str = Field(default="", exclude=True)
    role: Role = Role.USER
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class MangaStat(BaseModel):
    manga_id: int
    title: str
    views: int


class ChapterStat(BaseModel):
    chapter_id: int
    manga_id: int
    number: float
    title: str
    views: int


class PageStat(BaseModel):
    page_id: int
    chapter_id: int
    number: int
    views: int


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
