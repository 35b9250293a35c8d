"""Pydantic schemas for stats responses."""

from formdesk_stats.schemas.stats import (
    DateRange,
    DayBucketedSeries,
    GlobalStats,
    StatsReport,
    TemplateStat,
    TrendingQuestion,
    UserRollup,
)

__all__ = [
    "DateRange",
    "DayBucketedSeries",
    "GlobalStats",
    "StatsReport",
    "TemplateStat",
    "TrendingQuestion",
    "UserRollup",
]
