"""Page operations. Cached reads, invalidate-after-write."""
from typing import List, Optional

from manga_reader.caching import cache_policy
from manga_reader.caching.cache_aside import CacheAside
from manga_reader.caching.cache_policy import TTLPolicy
from manga_reader.core import errors
from manga_reader.core.entities import Chapter, Page, SubjectKind
from manga_reader.data.repositories import ChapterRepository, PageRepository
from manga_reader.services.analytics import AnalyticsService
from manga_reader.services.common import require_text
from manga_reader.utils.logger import get_logger

logger = get_logger("services.page")


class PageService:
    def __init__(
        self,
        page_repo: PageRepository,
        chapter_repo: ChapterRepository,
        cache: CacheAside,
        analytics: AnalyticsService,
        ttl: Optional[TTLPolicy] = None,
    ):
        self.page_repo = page_repo
        self.chapter_repo = chapter_repo
        self.cache = cache
        self.analytics = analytics
        self.ttl = ttl or TTLPolicy()

    def _validate(self, page: Page) -> None:
        if page.chapter_id <= 0:
            raise errors.validation_error("Chapter ID is required")
        require_text(page.image_path, "Image path is required")
        if page.number <= 0:
            raise errors.validation_error("Page number must be positive")

    def _chapter(self, chapter_id: int) -> Chapter:
        return self.cache.get_or_load(
            cache_policy.chapter_key(chapter_id),
            lambda: self.chapter_repo.get_by_id(chapter_id),
            self.ttl.item,
            Chapter,
        )

    def create(self, page: Page) -> Page:
        self._validate(page)
        self.chapter_repo.get_by_id(page.chapter_id)
        page_id = self.page_repo.create(page)
        created = self.page_repo.get_by_id(page_id)
        self.cache.invalidate(cache_policy.chapter_pages_key(page.chapter_id))
        return created

    def get_by_id(self, page_id: int) -> Page:
        page = self.cache.get_or_load(
            cache_policy.page_key(page_id),
            lambda: self.page_repo.get_by_id(page_id),
            self.ttl.item,
            Page,
        )
        try:
            manga_id = self._chapter(page.chapter_id).manga_id
        except errors.AppError as e:
            # The view still counts; only the parent context is lost
            logger.error("Failed to load chapter %s for page %s view: %s", page.chapter_id, page_id, e)
            self.analytics.record_view(SubjectKind.PAGE, page_id, page.chapter_id)
        else:
            self.analytics.record_view(SubjectKind.PAGE, page_id, page.chapter_id, manga_id)
        return page

    def list_by_chapter(self, chapter_id: int) -> List[Page]:
        self.chapter_repo.get_by_id(chapter_id)
        return self.cache.get_or_load(
            cache_policy.chapter_pages_key(chapter_id),
            lambda: self.page_repo.list_by_chapter(chapter_id),
            self.ttl.nested_list,
            List[Page],
        )

    def update(self, page: Page) -> Page:
        existing = self.page_repo.get_by_id(page.id)
        self._validate(page)
        moved = page.chapter_id != existing.chapter_id
        if moved:
            self.chapter_repo.get_by_id(page.chapter_id)

        self.page_repo.update(page)
        updated = self.page_repo.get_by_id(page.id)

        keys = [cache_policy.page_key(page.id), cache_policy.chapter_pages_key(existing.chapter_id)]
        if moved:
            keys.append(cache_policy.chapter_pages_key(page.chapter_id))
        self.cache.invalidate(*keys)
        if moved or page.number != existing.number:
            self.analytics.invalidate_leaderboards(SubjectKind.PAGE)
        return updated

    def delete(self, page_id: int) -> None:
        page = self.page_repo.get_by_id(page_id)
        self.page_repo.delete(page_id)
        self.cache.invalidate(cache_policy.page_key(page_id), cache_policy.chapter_pages_key(page.chapter_id))
        self.analytics.invalidate_leaderboards(SubjectKind.PAGE)
