"""
Leaderboards and view statistics.

Wraps the AnalyticsEngine with the leaderboard cache
({kind}:popular:{period}:{limit}) and is the single entry point the
catalog services use to record views.
"""
from typing import Dict, List, Optional, Union

from manga_reader.analytics.engine import AnalyticsEngine
from manga_reader.caching import cache_policy
from manga_reader.caching.cache_aside import CacheAside
from manga_reader.caching.cache_policy import TTLPolicy
from manga_reader.core import errors
from manga_reader.core.entities import ChapterStat, MangaStat, PageStat, StatsPeriod, SubjectKind
from manga_reader.services.common import clamp_limit, parse_period
from manga_reader.utils.logger import get_logger

logger = get_logger("services.analytics")

STAT_SCHEMAS = {
    SubjectKind.MANGA: List[MangaStat],
    SubjectKind.CHAPTER: List[ChapterStat],
    SubjectKind.PAGE: List[PageStat],
}


class AnalyticsService:
    def __init__(self, engine: AnalyticsEngine, cache: CacheAside, ttl: Optional[TTLPolicy] = None):
        self.engine = engine
        self.cache = cache
        self.ttl = ttl or TTLPolicy()

    def record_view(self, kind: SubjectKind, subject_id: int, *parent_ids: int) -> None:
        self.engine.record_view(kind, subject_id, *parent_ids)

    def get_views(self, kind: SubjectKind, subject_id: int) -> int:
        return self.engine.get_views(kind, subject_id)

    def get_top(
        self,
        kind: SubjectKind,
        period: Union[str, StatsPeriod, None] = None,
        limit: Optional[int] = None,
    ) -> list:
        """Cached leaderboard. The TTL grows with the period length."""
        period = parse_period(period)
        limit = clamp_limit(limit)
        return self.cache.get_or_load(
            cache_policy.popular_key(kind, period, limit),
            lambda: self.engine.get_top_n(kind, period, limit),
            self.ttl.popular(period),
            STAT_SCHEMAS[kind],
        )

    def get_top_manga(self, period=None, limit=None) -> List[MangaStat]:
        return self.get_top(SubjectKind.MANGA, period, limit)

    def get_top_chapters(self, period=None, limit=None) -> List[ChapterStat]:
        return self.get_top(SubjectKind.CHAPTER, period, limit)

    def get_top_pages(self, period=None, limit=None) -> List[PageStat]:
        return self.get_top(SubjectKind.PAGE, period, limit)

    def reset_stats(self, period: Union[str, StatsPeriod]) -> int:
        """
        Clear one period's rankings, then drop its cached leaderboards so the
        next read reflects the reset.
        """
        if not period:
            raise errors.validation_error("Period is required")
        period = parse_period(period)
        removed = self.engine.reset_stats(period)
        self.cache.invalidate_pattern(cache_policy.popular_period_pattern(period))
        return removed

    def invalidate_leaderboards(self, kind: SubjectKind) -> None:
        """Drop every cached leaderboard of one kind, e.g. after a title change."""
        self.cache.invalidate_pattern(cache_policy.popular_pattern(kind))

    def get_stats(self, limit: Optional[int] = None) -> Dict[str, list]:
        """
        All-time top entries of every kind with their lifetime view counts.

        Read straight from the ranking store, bypassing the leaderboard cache.
        """
        limit = clamp_limit(limit)
        stats = {}
        for kind, label in ((SubjectKind.MANGA, "manga"),
                            (SubjectKind.CHAPTER, "chapters"),
                            (SubjectKind.PAGE, "pages")):
            rows = self.engine.get_top_n(kind, StatsPeriod.ALL_TIME, limit)
            stats[label] = [
                {**row.model_dump(), "lifetime_views": self.engine.get_views(kind, _subject_id(kind, row))}
                for row in rows
            ]
        return stats


def _subject_id(kind: SubjectKind, row) -> int:
    if kind is SubjectKind.MANGA:
        return row.manga_id
    if kind is SubjectKind.CHAPTER:
        return row.chapter_id
    return row.page_id
