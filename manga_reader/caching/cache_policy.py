"""
Redis caching policy: what gets cached, under which key, for how long.

Architecture:
  PostgreSQL -> source of truth (manga, chapters, pages, users)
  Redis      -> cache-aside store for reads + ranking sets for views

Cache keys are a stable contract; existing cached data written by other
deployments must keep decoding to the same entity.
"""
from dataclasses import dataclass

from manga_reader.core.config import ReaderConfig
from manga_reader.core.entities import StatsPeriod, SubjectKind

# ────────────────────────────────────────────────────────────────────────────
# Cache Policy Table
# ────────────────────────────────────────────────────────────────────────────
#
# Data Type        | Key Pattern                        | TTL      | Invalidated by
# -----------------+------------------------------------+----------+----------------------------
# Single manga     | manga:{id}                         | 30 min   | manga update/delete
# Single chapter   | chapter:{id}                       | 30 min   | chapter update/delete
# Single page      | page:{id}                          | 30 min   | page update/delete
# Manga chapters   | manga:{id}:chapters                | 15 min   | chapter create/update/delete
# Chapter pages    | chapter:{id}:pages                 | 15 min   | page create/update/delete
# Manga listing    | manga:list:{limit}:{offset}        | 10 min   | any manga write (pattern)
# Leaderboard      | {kind}:popular:{period}:{limit}    | 1h..24h  | stats reset, title changes
#
# Filtered manga listings (title/status/genres) are never cached.
#
# Consistency: a read-miss racing a write can repopulate a just-invalidated
# key with the pre-write row. Staleness is bounded by the entry's TTL.

DEFAULT_TTL_ITEM = 30 * 60
DEFAULT_TTL_NESTED_LIST = 15 * 60
DEFAULT_TTL_MANGA_LIST = 10 * 60
DEFAULT_TTL_POPULAR = {
    StatsPeriod.DAILY: 1 * 3600,
    StatsPeriod.WEEKLY: 4 * 3600,
    StatsPeriod.MONTHLY: 12 * 3600,
    StatsPeriod.ALL_TIME: 24 * 3600,
}


# ── Key builders ─────────────────────────────────────────────────────────

def manga_key(manga_id: int) -> str:
    return f"manga:{manga_id}"


def chapter_key(chapter_id: int) -> str:
    return f"chapter:{chapter_id}"


def page_key(page_id: int) -> str:
    return f"page:{page_id}"


def manga_chapters_key(manga_id: int) -> str:
    return f"manga:{manga_id}:chapters"


def chapter_pages_key(chapter_id: int) -> str:
    return f"chapter:{chapter_id}:pages"


def manga_list_key(limit: int, offset: int) -> str:
    return f"manga:list:{limit}:{offset}"


def popular_key(kind: SubjectKind, period: StatsPeriod, limit: int) -> str:
    return f"{kind.value}:popular:{period.value}:{limit}"


# Glob patterns for scan-then-delete invalidation

MANGA_LIST_PATTERN = "manga:list:*"


def popular_pattern(kind: SubjectKind, period: StatsPeriod = None) -> str:
    if period is None:
        return f"{kind.value}:popular:*"
    return f"{kind.value}:popular:{period.value}:*"


def popular_period_pattern(period: StatsPeriod) -> str:
    """Leaderboards of every kind for one period."""
    return f"*:popular:{period.value}:*"


# ── Ranking store keys ───────────────────────────────────────────────────

def ranking_key(kind: SubjectKind, period: StatsPeriod) -> str:
    """Sorted set of subject_id -> views for one (kind, period) bucket."""
    return f"stats:{kind.value}:top:{period.value}"


def view_counter_key(kind: SubjectKind, subject_id: int) -> str:
    """Lifetime view counter for one subject; never reset."""
    return f"stats:{kind.value}:views:{subject_id}"


@dataclass(frozen=True)
class TTLPolicy:
    """TTLs in seconds, resolved once from configuration."""
    item: int = DEFAULT_TTL_ITEM
    nested_list: int = DEFAULT_TTL_NESTED_LIST
    manga_list: int = DEFAULT_TTL_MANGA_LIST
    popular_daily: int = DEFAULT_TTL_POPULAR[StatsPeriod.DAILY]
    popular_weekly: int = DEFAULT_TTL_POPULAR[StatsPeriod.WEEKLY]
    popular_monthly: int = DEFAULT_TTL_POPULAR[StatsPeriod.MONTHLY]
    popular_all_time: int = DEFAULT_TTL_POPULAR[StatsPeriod.ALL_TIME]

    @classmethod
    def from_config(cls, config: ReaderConfig) -> "TTLPolicy":
        return cls(
            item=config.cache_ttl_item,
            nested_list=config.cache_ttl_nested_list,
            manga_list=config.cache_ttl_manga_list,
            popular_daily=config.cache_ttl_popular_daily,
            popular_weekly=config.cache_ttl_popular_weekly,
            popular_monthly=config.cache_ttl_popular_monthly,
            popular_all_time=config.cache_ttl_popular_all_time,
        )

    def popular(self, period: StatsPeriod) -> int:
        """Slower-changing aggregates are cached longer."""
        return {
            StatsPeriod.DAILY: self.popular_daily,
            StatsPeriod.WEEKLY: self.popular_weekly,
            StatsPeriod.MONTHLY: self.popular_monthly,
            StatsPeriod.ALL_TIME: self.popular_all_time,
        }[period]
