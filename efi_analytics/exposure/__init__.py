"""Dealer exposure aggregation and derived gamma levels."""

from .aggregator import ExposureAggregator, compute_exposure
from .levels import gex_profile, summarize_gamma_levels

__all__ = ["ExposureAggregator", "compute_exposure", "gex_profile", "summarize_gamma_levels"]
