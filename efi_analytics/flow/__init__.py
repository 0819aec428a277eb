"""Option print classification."""

from .classifier import (
    DEFAULT_DARK_POOL_EXCHANGES,
    FlowClassifier,
    annotate_prints,
    categorize_contract_flow,
    classify_flow,
    count_by_label,
    days_to_expiry,
    group_trades_by_time_window,
    moneyness,
    premium_bucket,
)

__all__ = [
    "DEFAULT_DARK_POOL_EXCHANGES",
    "FlowClassifier",
    "annotate_prints",
    "categorize_contract_flow",
    "classify_flow",
    "count_by_label",
    "days_to_expiry",
    "group_trades_by_time_window",
    "moneyness",
    "premium_bucket",
]
