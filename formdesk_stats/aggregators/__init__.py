"""Data aggregation logic for the activity dashboard."""

from formdesk_stats.aggregators.stats_aggregator import (
    StatsAggregator,
    build_stats_report,
    get_aggregator,
    rank_templates,
    rank_trending_questions,
)

__all__ = [
    "StatsAggregator",
    "build_stats_report",
    "get_aggregator",
    "rank_templates",
    "rank_trending_questions",
]
