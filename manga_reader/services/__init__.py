"""Application services: catalog, accounts and analytics."""
from manga_reader.services.analytics import AnalyticsService
from manga_reader.services.chapter import ChapterService
from manga_reader.services.manga import MangaService
from manga_reader.services.page import PageService
from manga_reader.services.user import UserService

__all__ = ["AnalyticsService", "ChapterService", "MangaService", "PageService", "UserService"]
