from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .flow import TradePrint
from .option import ContractSnapshot, OptionGreeks, OptionType


class FlowClassifyRequest(BaseModel):
    trades: List[TradePrint]
    min_size: Optional[int] = Field(default=None, ge=0)
    block_threshold: Optional[float] = Field(default=None, gt=0)
    window_ms: Optional[int] = Field(default=None, gt=0)
    categorize: bool = False


class FlowClassifyResponse(BaseModel):
    summary: Dict[str, Any]
    labeled_trades: List[Dict[str, Any]] = Field(default_factory=list)
    categorized: List[Dict[str, Any]] = Field(default_factory=list)
    category_counts: Dict[str, int] = Field(default_factory=dict)


class ExposureRequest(BaseModel):
    spot: float
    contracts: List[ContractSnapshot]
    gamma_ceiling: Optional[float] = Field(default=None, gt=0)
    gamma_floor: Optional[float] = Field(default=None, ge=0)
    top_walls: int = Field(default=5, ge=1)


class ExposureResponse(BaseModel):
    exposure: Dict[str, Any]
    levels: Optional[Dict[str, Any]] = None


class ImpliedVolatilityRequest(BaseModel):
    price: float = Field(gt=0)
    spot: float = Field(gt=0)
    strike: float = Field(gt=0)
    time_to_expiration: float = Field(gt=0, description="Years until expiration")
    option_type: OptionType
    risk_free_rate: Optional[float] = None


class ImpliedVolatilityResponse(BaseModel):
    implied_volatility: float
    greeks: OptionGreeks


class ProbabilityRequest(BaseModel):
    spot: float = Field(gt=0)
    strike: float = Field(gt=0)
    volatility: float = Field(gt=0)
    time_to_expiration: float = Field(gt=0, description="Years until expiration")
    risk_free_rate: Optional[float] = None


class ProbabilityResponse(BaseModel):
    sell_call: float
    sell_put: float
    call_itm: float
    put_itm: float
    strikes: Dict[str, Optional[float]] = Field(default_factory=dict)
