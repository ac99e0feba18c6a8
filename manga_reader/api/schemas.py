"""
Pydantic schemas for the HTTP API.

Every response is wrapped in the same envelope:
    {"success": true,  "data": ..., "meta": ...}
    {"success": false, "error": {"code": ..., "message": ..., "details": ...}}
"""
from typing import Any, Dict, List, Optional

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict, Field

from manga_reader.core.entities import Chapter, Manga, MangaStatus, Page


# ============================================================================
# Envelopes
# ============================================================================

def ok(data: Any = None, meta: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    body = {"success": True, "data": jsonable_encoder(data)}
    if meta is not None:
        body["meta"] = meta
    return body


def fail(code: str, message: str, details: Any = None) -> Dict[str, Any]:
    error = {"code": code, "message": message}
    if details is not None:
        error["details"] = jsonable_encoder(details)
    return {"success": False, "error": error}


def pagination_meta(count: int, limit: int, offset: int) -> Dict[str, int]:
    return {
        "total": count,
        "per_page": limit,
        "current_page": offset // limit + 1,
        "last_page": (count + limit - 1) // limit,
    }


# ============================================================================
# Users
# ============================================================================

class RegisterRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    username: str = Field(..., description="3-50 letters, digits or underscores")
    email: str
    password: str = Field(..., description="At least 6 characters")


class LoginRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    username: str = Field(..., description="Username or email")
    password: str


class RefreshRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    refresh_token: str


class ProfileUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    username: Optional[str] = None
    email: Optional[str] = None


class PasswordChangeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    old_password: str
    new_password: str


# ============================================================================
# Catalog
# ============================================================================

class MangaRequest(BaseModel):
    """Create/replace body for a manga."""
    model_config = ConfigDict(extra="forbid")

    title: str
    description: str = ""
    cover_image: Optional[str] = None
    status: MangaStatus = MangaStatus.ONGOING
    author: str = ""
    artist: Optional[str] = None
    genres: List[str] = Field(default_factory=list)

    def to_entity(self, manga_id: int = 0) -> Manga:
        return Manga(id=manga_id, **self.model_dump())


class ChapterRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    manga_id: int
    number: float = Field(..., allow_inf_nan=False)
    title: str

    def to_entity(self, chapter_id: int = 0) -> Chapter:
        return Chapter(id=chapter_id, **self.model_dump())


class PageRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    chapter_id: int
    number: int
    image_path: str

    def to_entity(self, page_id: int = 0) -> Page:
        return Page(id=page_id, **self.model_dump())
