"""
Domain Models - Simulation
Order parameters and the cost estimate produced for them
"""

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class OrderSide(str, Enum):
    """Order direction (only buys walk the book today)"""
    BUY = "buy"


class ErrorKind(str, Enum):
    """Origin of the error currently shown to consumers"""
    CONNECTION = "connection"
    COMPUTATION = "computation"


@dataclass(frozen=True)
class OrderParameters:
    """User supplied order to price - replaced wholesale, never edited"""
    symbol: str
    quantity_usd: float
    fee_tier: str
    side: OrderSide = OrderSide.BUY
    exchange: str = "OKX"
    order_type: str = "market"

    def __post_init__(self):
        if not self.symbol:
            raise ValueError("Symbol cannot be empty")
        if not math.isfinite(self.quantity_usd) or self.quantity_usd <= 0:
            raise ValueError("Quantity must be a positive USD amount")
        if self.order_type != "market":
            raise ValueError(f"Unsupported order type: {self.order_type}")


@dataclass(frozen=True)
class SimulationResult:
    """
    Cost estimate for one order against one snapshot.

    Absolute figures: slippage is a price difference, fees and market impact
    are quote-currency amounts. Fractions are relative to the mid price
    (slippage) or to the order quantity (fees, impact).
    """
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
