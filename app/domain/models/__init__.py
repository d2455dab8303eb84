"""
Domain Models Package
Export all domain entities
"""

from .order_book import OrderBookSnapshot, PriceLevel
from .simulation import ErrorKind, OrderParameters, OrderSide, SimulationResult

__all__ = [
    # Enums
    "ErrorKind",
    "OrderSide",

    # Entities
    "OrderBookSnapshot",
    "OrderParameters",
    "PriceLevel",
    "SimulationResult",
]
