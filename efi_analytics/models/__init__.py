from .exposure import ExposureBucket, ExposureResult, GammaLevels, GammaWall
from .flow import (
    BlockDetail,
    CategorizedPrint,
    DarkPoolDetail,
    FlowSummary,
    LabeledTrade,
    PREMIUM_BUCKETS,
    PremiumStats,
    SweepDetail,
    TimeWindow,
    TradeLabel,
    TradePrint,
)
from .option import ContractSnapshot, OptionContractKey, OptionGreeks, OptionType
from .report import AnalyticsError, ExposureReport, FlowReport
from .requests import (
    ExposureRequest,
    ExposureResponse,
    FlowClassifyRequest,
    FlowClassifyResponse,
    ImpliedVolatilityRequest,
    ImpliedVolatilityResponse,
    ProbabilityRequest,
    ProbabilityResponse,
)
from .serialization import serialize_exposure, serialize_flow_summary

__all__ = [
    "AnalyticsError",
    "BlockDetail",
    "CategorizedPrint",
    "ContractSnapshot",
    "DarkPoolDetail",
    "ExposureBucket",
    "ExposureReport",
    "ExposureRequest",
    "ExposureResponse",
    "ExposureResult",
    "FlowClassifyRequest",
    "FlowClassifyResponse",
    "FlowReport",
    "FlowSummary",
    "GammaLevels",
    "GammaWall",
    "ImpliedVolatilityRequest",
    "ImpliedVolatilityResponse",
    "LabeledTrade",
    "OptionContractKey",
    "OptionGreeks",
    "OptionType",
    "PREMIUM_BUCKETS",
    "PremiumStats",
    "ProbabilityRequest",
    "ProbabilityResponse",
    "SweepDetail",
    "TimeWindow",
    "TradeLabel",
    "TradePrint",
    "serialize_exposure",
    "serialize_flow_summary",
]
