"""
View analytics and time-windowed leaderboards.

Every view is folded straight into one ranking sorted set per period
(stats:{kind}:top:{period}) plus a lifetime counter. Counters are
approximate: a failed increment is logged and lost, never retried.
Periods are independent buckets; an external scheduler calls
reset_stats(period) when a window rolls over.
"""
from typing import Callable, Dict, List, Optional, Tuple

from manga_reader.caching import cache_policy
from manga_reader.core import errors
from manga_reader.core.entities import ChapterStat, MangaStat, PageStat, StatsPeriod, SubjectKind
from manga_reader.data.kv_store import KVStore, KVStoreError
from manga_reader.data.repositories import ChapterRepository, MangaRepository, PageRepository
from manga_reader.utils.logger import get_logger

logger = get_logger("analytics.engine")


class AnalyticsEngine:
    """
    Records view events and serves top-N rankings joined with catalog metadata.

    Args:
        store: Ranking store (sorted sets + string counters)
        manga_repo / chapter_repo / page_repo: Metadata source for rankings
    """

    def __init__(
        self,
        store: KVStore,
        manga_repo: MangaRepository,
        chapter_repo: ChapterRepository,
        page_repo: PageRepository,
    ):
        self.store = store
        self.manga_repo = manga_repo
        self.chapter_repo = chapter_repo
        self.page_repo = page_repo
        self._joiners: Dict[SubjectKind, Callable] = {
            SubjectKind.MANGA: self._manga_stat,
            SubjectKind.CHAPTER: self._chapter_stat,
            SubjectKind.PAGE: self._page_stat,
        }

    # ── Recording ────────────────────────────────────────────────────────

    def record_view(self, kind: SubjectKind, subject_id: int, *parent_ids: int) -> None:
        """
        Count one view of a subject in every period and in its lifetime counter.

        parent_ids (chapter/manga of a page, manga of a chapter) only enrich
        the log line. Never raises.
        """
        keys = [cache_policy.ranking_key(kind, period) for period in StatsPeriod]
        try:
            self.store.zincrby_multi(keys, 1, str(subject_id))
        except KVStoreError as e:
            logger.error("Failed to record %s view %s (parents=%s): %s",
                         kind.value, subject_id, list(parent_ids), e)

        counter = cache_policy.view_counter_key(kind, subject_id)
        try:
            self.store.incr(counter)
        except KVStoreError as e:
            logger.error("Failed to increment %s (parents=%s): %s", counter, list(parent_ids), e)

    # ── Reading ──────────────────────────────────────────────────────────

    def get_views(self, kind: SubjectKind, subject_id: int) -> int:
        """Lifetime views of one subject; 0 if never viewed or the store is down."""
        counter = cache_policy.view_counter_key(kind, subject_id)
        try:
            value = self.store.get(counter)
        except KVStoreError as e:
            logger.error("Failed to read %s: %s", counter, e)
            return 0
        try:
            return int(value) if value is not None else 0
        except ValueError:
            logger.warning("Non-integer view counter at %s: %r", counter, value)
            return 0

    def get_top_ids(self, kind: SubjectKind, period: StatsPeriod, limit: int) -> List[Tuple[int, int]]:
        """
        Raw (subject_id, views) pairs, highest first.

        A store failure raises INTERNAL_ERROR: rankings live only in the
        store, so there is nothing to fall back to.
        """
        if limit <= 0:
            return []
        key = cache_policy.ranking_key(kind, period)
        try:
            rows = self.store.zrevrange_with_scores(key, 0, limit - 1)
        except KVStoreError as e:
            logger.error("Failed to read ranking %s: %s", key, e)
            raise errors.internal_error("Failed to get statistics", cause=e)

        ranked = []
        for member, score in rows:
            try:
                ranked.append((int(member), int(score)))
            except ValueError:
                logger.warning("Skipping non-numeric member %r in %s", member, key)
        return ranked

    def get_top_n(self, kind: SubjectKind, period: StatsPeriod, limit: int) -> list:
        """
        Top subjects for a period joined with their metadata.

        Subjects deleted from the catalog since they were viewed are skipped,
        so fewer than limit rows may come back.
        """
        joiner = self._joiners[kind]
        results = []
        for subject_id, views in self.get_top_ids(kind, period, limit):
            stat = self._join(kind, subject_id, views, joiner)
            if stat is not None:
                results.append(stat)
        return results

    def get_top_manga(self, period: StatsPeriod, limit: int) -> List[MangaStat]:
        return self.get_top_n(SubjectKind.MANGA, period, limit)

    def get_top_chapters(self, period: StatsPeriod, limit: int) -> List[ChapterStat]:
        return self.get_top_n(SubjectKind.CHAPTER, period, limit)

    def get_top_pages(self, period: StatsPeriod, limit: int) -> List[PageStat]:
        return self.get_top_n(SubjectKind.PAGE, period, limit)

    def _join(self, kind: SubjectKind, subject_id: int, views: int, joiner: Callable):
        try:
            return joiner(subject_id, views)
        except errors.AppError as e:
            if e.is_not_found:
                logger.debug("Skipping ranked %s %s: no longer in catalog", kind.value, subject_id)
                return None
            raise

    def _manga_stat(self, manga_id: int, views: int) -> MangaStat:
        manga = self.manga_repo.get_by_id(manga_id)
        return MangaStat(manga_id=manga.id, title=manga.title, views=views)

    def _chapter_stat(self, chapter_id: int, views: int) -> ChapterStat:
        chapter = self.chapter_repo.get_by_id(chapter_id)
        return ChapterStat(
            chapter_id=chapter.id,
            manga_id=chapter.manga_id,
            number=chapter.number,
            title=chapter.title,
            views=views,
        )

    def _page_stat(self, page_id: int, views: int) -> PageStat:
        page = self.page_repo.get_by_id(page_id)
        return PageStat(page_id=page.id, chapter_id=page.chapter_id, number=page.number, views=views)

    # ── Maintenance ──────────────────────────────────────────────────────

    def reset_stats(self, period: StatsPeriod) -> int:
        """
        Clear one period's ranking sets for every subject kind.

        One multi-key DEL, so Redis applies it atomically. Other periods and
        lifetime counters are untouched. Returns the number of sets removed.
        """
        keys = [cache_policy.ranking_key(kind, period) for kind in SubjectKind]
        try:
            removed = self.store.delete(*keys)
        except KVStoreError as e:
            logger.error("Failed to reset %s statistics: %s", period.value, e)
            raise errors.internal_error("Failed to reset statistics", cause=e)
        logger.info("Reset %s statistics (%d sets removed)", period.value, removed)
        return removed

    def score(self, kind: SubjectKind, period: StatsPeriod, subject_id: int) -> Optional[int]:
        """Current score of one subject in one period, None if absent."""
        key = cache_policy.ranking_key(kind, period)
        try:
            value = self.store.zscore(key, str(subject_id))
        except KVStoreError as e:
            logger.error("Failed to read score from %s: %s", key, e)
            return None
        return int(value) if value is not None else None
