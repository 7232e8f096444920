"""
Schemas Module

This module contains all Pydantic schemas for request/response validation.
"""

# Calculation schemas
from .calculations import (
    BrokerageRate,
    SttRates,
    ChargeRates,
    ChargeBreakdown,
    PnLResult,
    LegInput,
    CombinedTotals,
    CombinedPnL,
    EquityPnL,
)

# Trading schemas
from .trading import (
    ChargesInput,
    OptionsTradeInput,
    HedgePositionInput,
    TradeCreate,
    TradeUpdate,
    TradeExitRequest,
    TradeOut,
    TradeDetailResponse,
    TradeExitResponse,
    TradeFilters,
    TradeListResponse,
    TagCreate,
    TagOut,
)

# Capital schemas
from .capital import (
    CapitalSetupRequest,
    CapitalTransactionRequest,
    CapitalTransactionOut,
    CapitalPoolOut,
    CapitalAllocation,
    CapitalOverview,
    TransactionListResponse,
)

__all__ = [
    "BrokerageRate",
    "SttRates",
    "ChargeRates",
    "ChargeBreakdown",
    "PnLResult",
    "LegInput",
    "CombinedTotals",
    "CombinedPnL",
    "EquityPnL",
    "ChargesInput",
    "OptionsTradeInput",
    "HedgePositionInput",
    "TradeCreate",
    "TradeUpdate",
    "TradeExitRequest",
    "TradeOut",
    "TradeDetailResponse",
    "TradeExitResponse",
    "TradeFilters",
    "TradeListResponse",
    "TagCreate",
    "TagOut",
    "CapitalSetupRequest",
    "CapitalTransactionRequest",
    "CapitalTransactionOut",
    "CapitalPoolOut",
    "CapitalAllocation",
    "CapitalOverview",
    "TransactionListResponse",
]
