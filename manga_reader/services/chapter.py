"""Chapter operations. Cached reads, invalidate-after-write."""
import math
from typing import List, Optional

from manga_reader.caching import cache_policy
from manga_reader.caching.cache_aside import CacheAside
from manga_reader.caching.cache_policy import TTLPolicy
from manga_reader.core import errors
from manga_reader.core.entities import Chapter, ChapterWithStats, Page, SubjectKind
from manga_reader.data.repositories import ChapterRepository, MangaRepository, PageRepository
from manga_reader.services.analytics import AnalyticsService
from manga_reader.services.common import require_text
from manga_reader.utils.logger import get_logger

logger = get_logger("services.chapter")


class ChapterService:
    def __init__(
        self,
        chapter_repo: ChapterRepository,
        manga_repo: MangaRepository,
        page_repo: PageRepository,
        cache: CacheAside,
        analytics: AnalyticsService,
        ttl: Optional[TTLPolicy] = None,
    ):
        self.chapter_repo = chapter_repo
        self.manga_repo = manga_repo
        self.page_repo = page_repo
        self.cache = cache
        self.analytics = analytics
        self.ttl = ttl or TTLPolicy()

    def _validate(self, chapter: Chapter) -> None:
        require_text(chapter.title, "Chapter title must not be empty")
        if chapter.manga_id <= 0:
            raise errors.validation_error("Manga ID is required")
        if not math.isfinite(chapter.number):
            raise errors.validation_error("Chapter number must be a finite number")
        if chapter.number < 0:
            raise errors.validation_error("Chapter number must not be negative")

    def create(self, chapter: Chapter) -> Chapter:
        self._validate(chapter)
        self.manga_repo.get_by_id(chapter.manga_id)
        chapter_id = self.chapter_repo.create(chapter)
        created = self.chapter_repo.get_by_id(chapter_id)
        self.cache.invalidate(cache_policy.manga_chapters_key(chapter.manga_id))
        return created

    def get_by_id(self, chapter_id: int) -> ChapterWithStats:
        """Chapter plus its lifetime views as they stood before this read."""
        chapter = self.cache.get_or_load(
            cache_policy.chapter_key(chapter_id),
            lambda: self.chapter_repo.get_by_id(chapter_id),
            self.ttl.item,
            Chapter,
        )
        views = self.analytics.get_views(SubjectKind.CHAPTER, chapter_id)
        self.analytics.record_view(SubjectKind.CHAPTER, chapter_id, chapter.manga_id)
        return ChapterWithStats(**chapter.model_dump(), views=views)

    def list_by_manga(self, manga_id: int) -> List[Chapter]:
        self.manga_repo.get_by_id(manga_id)
        return self.cache.get_or_load(
            cache_policy.manga_chapters_key(manga_id),
            lambda: self.chapter_repo.list_by_manga(manga_id),
            self.ttl.nested_list,
            List[Chapter],
        )

    def update(self, chapter: Chapter) -> Chapter:
        existing = self.chapter_repo.get_by_id(chapter.id)
        self._validate(chapter)
        moved = chapter.manga_id != existing.manga_id
        if moved:
            self.manga_repo.get_by_id(chapter.manga_id)

        self.chapter_repo.update(chapter)
        updated = self.chapter_repo.get_by_id(chapter.id)

        keys = [cache_policy.chapter_key(chapter.id), cache_policy.manga_chapters_key(existing.manga_id)]
        if moved:
            keys.append(cache_policy.manga_chapters_key(chapter.manga_id))
        self.cache.invalidate(*keys)
        if moved or chapter.title != existing.title or chapter.number != existing.number:
            # Chapter leaderboards embed manga_id, number and title
            self.analytics.invalidate_leaderboards(SubjectKind.CHAPTER)
        return updated

    def delete(self, chapter_id: int) -> None:
        chapter = self.chapter_repo.get_by_id(chapter_id)
        page_keys = [cache_policy.page_key(p.id) for p in self.page_repo.list_by_chapter(chapter_id)]

        self.chapter_repo.delete(chapter_id)

        self.cache.invalidate(
            cache_policy.chapter_key(chapter_id),
            cache_policy.chapter_pages_key(chapter_id),
            cache_policy.manga_chapters_key(chapter.manga_id),
            *page_keys,
        )
        self.analytics.invalidate_leaderboards(SubjectKind.CHAPTER)
        if page_keys:
            self.analytics.invalidate_leaderboards(SubjectKind.PAGE)
        logger.info("Deleted chapter %s of manga %s", chapter_id, chapter.manga_id)

    def get_pages(self, chapter_id: int) -> List[Page]:
        self.chapter_repo.get_by_id(chapter_id)
        return self.cache.get_or_load(
            cache_policy.chapter_pages_key(chapter_id),
            lambda: self.page_repo.list_by_chapter(chapter_id),
            self.ttl.nested_list,
            List[Page],
        )
