"""
Domain Models - Order Book
Immutable level-2 order book snapshot
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Tuple

# (price, size)
PriceLevel = Tuple[float, float]


def _check_levels(side: str, levels: Tuple[PriceLevel, ...]) -> None:
    for price, size in levels:
        for label, value in (("price", price), ("size", size)):
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"{side} {label} must be a finite non-negative number, got {value!r}")


@dataclass(frozen=True)
class OrderBookSnapshot:
    """
    Point-in-time view of one instrument's book.

    Asks are ordered ascending and bids descending, so index 0 of each side
    is the best price. A new snapshot replaces the previous one; instances
    are never updated in place.
    """
    timestamp: datetime
    exchange: str
    symbol: str
    asks: Tuple[PriceLevel, ...] = ()
    bids: Tuple[PriceLevel, ...] = ()

    def __post_init__(self):
        # accept any sequence of pairs, store tuples
        object.__setattr__(self, "asks", tuple((float(p), float(s)) for p, s in self.asks))
        object.__setattr__(self, "bids", tuple((float(p), float(s)) for p, s in self.bids))
        _check_levels("ask", self.asks)
        _check_levels("bid", self.bids)

    @property
    def is_usable(self) -> bool:
        """Both sides carry at least one level"""
        return bool(self.asks) and bool(self.bids)

    @property
    def best_ask(self) -> float:
        return self.asks[0][0]

    @property
    def best_bid(self) -> float:
        return self.bids[0][0]

    @property
    def ask_notional(self) -> float:
        """Visible ask-side depth in quote currency"""
        return sum(price * size for price, size in self.asks)
