"""Argument normalization shared by the services."""
from typing import Optional, Union

from manga_reader.core import errors
from manga_reader.core.entities import StatsPeriod

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def clamp_limit(limit: Optional[int]) -> int:
    """Missing or non-positive limits fall back to the default; large ones are capped."""
    if limit is None or limit <= 0:
        return DEFAULT_LIMIT
    return min(limit, MAX_LIMIT)


def clamp_offset(offset: Optional[int]) -> int:
    if offset is None or offset < 0:
        return 0
    return offset


def parse_period(value: Union[str, StatsPeriod, None], default: StatsPeriod = StatsPeriod.ALL_TIME) -> StatsPeriod:
    """Resolve a period name; an unknown name is a VALIDATION_ERROR."""
    if value is None or value == "":
        return default
    if isinstance(value, StatsPeriod):
        return value
    try:
        return StatsPeriod(value.lower())
    except ValueError:
        raise errors.validation_error(
            f"Invalid period: {value}",
            details={"allowed": [p.value for p in StatsPeriod]},
        )


def require_text(value: Optional[str], message: str) -> str:
    if value is None or not value.strip():
        raise errors.validation_error(message)
    return value
