from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class SimulationParametersRequest(BaseModel):
    symbol: str = Field(..., min_length=1)
    quantity_usd: float = Field(..., gt=0)
    fee_tier: str = "VIP0"
    exchange: str = "OKX"
    order_type: str = Field("market", pattern="^market$")


class SimulationParametersResponse(BaseModel):
    symbol: str
    quantity_usd: float
    fee_tier: str
    side: str
    exchange: str
    order_type: str


class SimulationResultResponse(BaseModel):
    timestamp: datetime
    symbol: str
    quantity_usd: float
    execution_price: float
    mid_price: float
    slippage: float
    slippage_fraction: float
    fees: float
    fee_fraction: float
    market_impact: float
    market_impact_fraction: float
    net_cost: float
    net_cost_fraction: float
    maker_proportion: float
    filled_quantity_usd: float
    internal_latency_ms: float


class SimulationStateResponse(BaseModel):
    connected: bool
    error: Optional[str] = None
    error_kind: Optional[str] = None
    parameters: SimulationParametersResponse
    result: Optional[SimulationResultResponse] = None
    book_timestamp: Optional[datetime] = None


class FeeTierResponse(BaseModel):
    tier_id: str
    maker_rate: float
    taker_rate: float


class AssetProfileResponse(BaseModel):
    symbol: str
    temporary_impact: float
    permanent_impact: float
    volatility: float


class FeeTierListResponse(BaseModel):
    default: str
    tiers: List[FeeTierResponse]


class AssetProfileListResponse(BaseModel):
    default: str
    assets: List[AssetProfileResponse]
