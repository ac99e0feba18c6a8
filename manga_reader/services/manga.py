"""
Manga catalog operations.

Reads are cache-aside and count a manga view on every call, cached or not.
Writes hit the database first and then invalidate:
- create: manga:list:*
- update: manga:{id}, manga:list:*, manga:popular:*
- delete: the above plus manga:{id}:chapters and the cached chapters and
          pages removed with it
"""
from typing import List, Optional, Union

from manga_reader.caching import cache_policy
from manga_reader.caching.cache_aside import CacheAside
from manga_reader.caching.cache_policy import TTLPolicy
from manga_reader.core.entities import Chapter, Manga, MangaFilter, MangaStat, StatsPeriod, SubjectKind
from manga_reader.data.repositories import ChapterRepository, MangaRepository, PageRepository
from manga_reader.services.analytics import AnalyticsService
from manga_reader.services.common import clamp_limit, clamp_offset, require_text
from manga_reader.utils.logger import get_logger

logger = get_logger("services.manga")


class MangaService:
    def __init__(
        self,
        manga_repo: MangaRepository,
        chapter_repo: ChapterRepository,
        page_repo: PageRepository,
        cache: CacheAside,
        analytics: AnalyticsService,
        ttl: Optional[TTLPolicy] = None,
    ):
        self.manga_repo = manga_repo
        self.chapter_repo = chapter_repo
        self.page_repo = page_repo
        self.cache = cache
        self.analytics = analytics
        self.ttl = ttl or TTLPolicy()

    def create(self, manga: Manga) -> Manga:
        require_text(manga.title, "Manga title must not be empty")
        manga_id = self.manga_repo.create(manga)
        created = self.manga_repo.get_by_id(manga_id)
        self.cache.invalidate_pattern(cache_policy.MANGA_LIST_PATTERN)
        logger.info("Created manga %s (%s)", created.id, created.title)
        return created

    def get_by_id(self, manga_id: int) -> Manga:
        manga = self.cache.get_or_load(
            cache_policy.manga_key(manga_id),
            lambda: self.manga_repo.get_by_id(manga_id),
            self.ttl.item,
            Manga,
        )
        self.analytics.record_view(SubjectKind.MANGA, manga_id)
        return manga

    def list(self, flt: MangaFilter) -> List[Manga]:
        """Paginated listing. Only the unfiltered form goes through the cache."""
        flt = flt.model_copy(update={"limit": clamp_limit(flt.limit), "offset": clamp_offset(flt.offset)})
        if not flt.is_unfiltered:
            return self.manga_repo.list(flt)
        return self.cache.get_or_load(
            cache_policy.manga_list_key(flt.limit, flt.offset),
            lambda: self.manga_repo.list(flt),
            self.ttl.manga_list,
            List[Manga],
        )

    def update(self, manga: Manga) -> Manga:
        self.manga_repo.get_by_id(manga.id)
        require_text(manga.title, "Manga title must not be empty")
        self.manga_repo.update(manga)
        updated = self.manga_repo.get_by_id(manga.id)

        self.cache.invalidate(cache_policy.manga_key(manga.id))
        self.cache.invalidate_pattern(cache_policy.MANGA_LIST_PATTERN)
        # Leaderboards embed titles
        self.analytics.invalidate_leaderboards(SubjectKind.MANGA)
        return updated

    def delete(self, manga_id: int) -> None:
        self.manga_repo.get_by_id(manga_id)
        chapters = self.chapter_repo.list_by_manga(manga_id)
        dependent_keys = []
        for chapter in chapters:
            dependent_keys.append(cache_policy.chapter_key(chapter.id))
            dependent_keys.append(cache_policy.chapter_pages_key(chapter.id))
            for page in self.page_repo.list_by_chapter(chapter.id):
                dependent_keys.append(cache_policy.page_key(page.id))

        self.manga_repo.delete(manga_id)

        self.cache.invalidate(
            cache_policy.manga_key(manga_id),
            cache_policy.manga_chapters_key(manga_id),
            *dependent_keys,
        )
        self.cache.invalidate_pattern(cache_policy.MANGA_LIST_PATTERN)
        self.analytics.invalidate_leaderboards(SubjectKind.MANGA)
        if chapters:
            self.analytics.invalidate_leaderboards(SubjectKind.CHAPTER)
            self.analytics.invalidate_leaderboards(SubjectKind.PAGE)
        logger.info("Deleted manga %s with %d chapters", manga_id, len(chapters))

    def get_chapters(self, manga_id: int) -> List[Chapter]:
        self.manga_repo.get_by_id(manga_id)
        return self.cache.get_or_load(
            cache_policy.manga_chapters_key(manga_id),
            lambda: self.chapter_repo.list_by_manga(manga_id),
            self.ttl.nested_list,
            List[Chapter],
        )

    def get_popular(
        self,
        period: Union[str, StatsPeriod, None] = None,
        limit: Optional[int] = None,
    ) -> List[MangaStat]:
        return self.analytics.get_top_manga(period, limit)
