"""
Models Module

This module contains all SQLAlchemy database models.
"""

from .trade import Trade, Charge, OptionsTrade, HedgePosition
from .tag import StrategyTag, EmotionalTag, MarketTag
from .capital import CapitalPool, CapitalTransaction

__all__ = [
    "Trade",
    "Charge",
    "OptionsTrade",
    "HedgePosition",
    "StrategyTag",
    "EmotionalTag",
    "MarketTag",
    "CapitalPool",
    "CapitalTransaction",
]
