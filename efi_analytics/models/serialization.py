"""Serialization helpers shared between the API and the CLI."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from .exposure import ExposureResult, GammaLevels
from .flow import CategorizedPrint, FlowSummary


def serialize_flow_summary(
    summary: FlowSummary,
    categorized: Optional[Iterable[CategorizedPrint]] = None,
    include_trades: bool = False,
) -> Dict[str, Any]:
    """Return a JSON-compatible representation of a flow summary."""

    payload = summary.to_dict()
    if include_trades:
        payload["labeled_trades"] = [item.to_dict() for item in summary.labeled_trades]
    if categorized is not None:
        payload["categorized"] = [item.to_dict() for item in categorized]
    return payload


def serialize_exposure(result: ExposureResult, levels: Optional[GammaLevels] = None) -> Dict[str, Any]:
    """Return a JSON-compatible payload for an exposure result and its levels."""

    payload = result.to_dict()
    payload["levels"] = levels.to_dict() if levels is not None else None
    return payload


__all__ = ["serialize_exposure", "serialize_flow_summary"]
