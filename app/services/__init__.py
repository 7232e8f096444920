"""
Services Module

This module contains the business logic of the trading journal.
"""

# Calculators
from .charge_calculator import calculate_charges, default_charge_rates, zero_charges
from .pnl_calculator import (
    calculate_pnl,
    calculate_hedge_pnl,
    calculate_combined_pnl,
    calculate_equity_pnl,
    calculate_risk_reward,
    calculate_holding_duration,
)

# Service classes
from .capital_service import CapitalService, get_capital_service
from .trade_service import TradeService, get_trade_service

__all__ = [
    # Charges
    "calculate_charges",
    "default_charge_rates",
    "zero_charges",

    # P&L
    "calculate_pnl",
    "calculate_hedge_pnl",
    "calculate_combined_pnl",
    "calculate_equity_pnl",
    "calculate_risk_reward",
    "calculate_holding_duration",

    # Trades & Capital
    "TradeService",
    "get_trade_service",
    "CapitalService",
    "get_capital_service",
]
