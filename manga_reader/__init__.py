"""
Manga Reader - catalog backend

A read-heavy manga catalog service with:
- Cache-aside reads over Redis with invalidate-after-write
- Time-windowed view leaderboards on Redis sorted sets
- Dual-secret access/refresh JWT authentication
"""

__version__ = '0.1.0'

from manga_reader.core.config import ReaderConfig, load_config
from manga_reader.core.errors import AppError, ErrorKind

__all__ = [
    'AppError',
    'ErrorKind',
    'ReaderConfig',
    'load_config',
]
