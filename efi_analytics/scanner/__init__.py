"""Orchestration of fetch, back-fill, aggregation and classification."""

from .service import AnalyticsService, group_by_expiration

__all__ = ["AnalyticsService", "group_by_expiration"]
