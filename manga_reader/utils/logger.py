"""
Package logging for the manga reader backend.

All module loggers are children of ROOT_NAME and share one stdout handler.
The level starts from the LOG_LEVEL environment variable and is re-applied
from ReaderConfig by the server and the CLI once configuration is loaded.
"""
import logging
import os
import sys
from typing import Optional

ROOT_NAME = "manga_reader"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_root = logging.getLogger(ROOT_NAME)
# Records stop here; the application root logger never sees them twice
_root.propagate = False


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def set_level(level: str) -> None:
    """Set the package level, attaching the console handler on first use."""
    level = level.upper()
    if not _root.handlers:
        _root.addHandler(_console_handler())
    _root.setLevel(level)
    for handler in _root.handlers:
        handler.setLevel(level)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger for `manga_reader.<name>`, or the package logger itself."""
    return logging.getLogger(f"{ROOT_NAME}.{name}") if name else _root


set_level(os.getenv("LOG_LEVEL", "INFO"))
