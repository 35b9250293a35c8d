"""HTTP routes for the stats service."""

from formdesk_stats.api.stats import router as stats_router

__all__ = ["stats_router"]
