"""View counting and popularity rankings."""
from manga_reader.analytics.engine import AnalyticsEngine

__all__ = ["AnalyticsEngine"]
