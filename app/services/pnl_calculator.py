"""
P&L Calculator

Gross/net profit-and-loss and percentage return for a trade leg, the
combined result for a trade with a hedge, risk/reward and holding time.
"""

import math
from datetime import datetime, timezone
from typing import Optional, Union

from app.models.enums import PositionType
from app.schemas.calculations import (
    ChargeBreakdown, PnLResult, LegInput, CombinedPnL, CombinedTotals, EquityPnL
)
from app.services.charge_calculator import round_currency, is_short

def _percentage(numerator: float, denominator: float) -> float:
    # Callers are expected to guard a zero base; mirror float division semantics
    if denominator == 0:
        return math.copysign(math.inf, numerator) if numerator else math.nan
    return (numerator / denominator) * 100

def _gross(entry_value: float, exit_value: float, position: Union[PositionType, str]) -> float:
    if is_short(position):
        return entry_value - exit_value
    return exit_value - entry_value

def calculate_pnl(
    entry_value: float,
    exit_value: float,
    charges: ChargeBreakdown,
    position: Union[PositionType, str]
) -> PnLResult:
    """Calculate P&L for a trade"""
    gross_pnl = _gross(entry_value, exit_value, position)
    net_pnl = gross_pnl - charges.total
    return PnLResult(
        gross_pnl=round_currency(gross_pnl),
        net_pnl=round_currency(net_pnl),
        percentage_return=round_currency(_percentage(net_pnl, entry_value)),
    )

def calculate_hedge_pnl(
    entry_value: float,
    exit_value: float,
    charges: ChargeBreakdown,
    position: Union[PositionType, str]
) -> PnLResult:
    """Calculate P&L for a hedge leg; the leg carries its own charge set"""
    gross_pnl = _gross(entry_value, exit_value, position)
    net_pnl = gross_pnl - charges.total
    return PnLResult(
        gross_pnl=round_currency(gross_pnl),
        net_pnl=round_currency(net_pnl),
        percentage_return=round_currency(_percentage(net_pnl, entry_value)),
    )

def calculate_combined_pnl(main_trade: LegInput, hedge_trade: Optional[LegInput] = None) -> CombinedPnL:
    """Combine the main trade with an optional hedge leg.

    The combined return is measured against the capital deployed in both
    legs (main entry value plus hedge entry value).
    """
    main_pnl = calculate_pnl(
        main_trade.entry_value, main_trade.exit_value, main_trade.charges, main_trade.position
    )

    if hedge_trade is None:
        return CombinedPnL(
            main_trade=main_pnl,
            combined=CombinedTotals(
                gross_pnl=main_pnl.gross_pnl,
                net_pnl=main_pnl.net_pnl,
                total_charges=round_currency(main_trade.charges.total),
                percentage_return=main_pnl.percentage_return,
            ),
        )

    hedge_pnl = calculate_hedge_pnl(
        hedge_trade.entry_value, hedge_trade.exit_value, hedge_trade.charges, hedge_trade.position
    )
    net_pnl = main_pnl.net_pnl + hedge_pnl.net_pnl
    capital = main_trade.entry_value + hedge_trade.entry_value

    return CombinedPnL(
        main_trade=main_pnl,
        hedge_trade=hedge_pnl,
        combined=CombinedTotals(
            gross_pnl=round_currency(main_pnl.gross_pnl + hedge_pnl.gross_pnl),
            net_pnl=round_currency(net_pnl),
            total_charges=round_currency(main_trade.charges.total + hedge_trade.charges.total),
            percentage_return=round_currency(_percentage(net_pnl, capital)),
        ),
    )

def calculate_equity_pnl(
    entry_price: float,
    quantity: float,
    ltp_price: float,
    exit_price: Optional[float] = None,
    position: Union[PositionType, str] = PositionType.BUY
) -> EquityPnL:
    """Equity P&L without charges; realised on exit_price, otherwise marked to LTP"""
    entry_value = entry_price * quantity
    current_value = ltp_price * quantity
    exit_value = exit_price * quantity if exit_price else 0.0

    calculation_value = (exit_price or ltp_price) * quantity
    gross_pnl = _gross(entry_value, calculation_value, position)

    return EquityPnL(
        entry_value=round_currency(entry_value),
        current_value=round_currency(current_value),
        exit_value=round_currency(exit_value),
        gross_pnl=round_currency(gross_pnl),
        net_pnl=round_currency(gross_pnl),
        percentage_return=round_currency(_percentage(gross_pnl, entry_value)),
        is_realized=bool(exit_price),
    )

def calculate_risk_reward(
    entry_price: float,
    stop_loss: Optional[float],
    target: Optional[float]
) -> Optional[float]:
    if not stop_loss or not target:
        return None

    risk = abs(entry_price - stop_loss)
    reward = abs(target - entry_price)
    if risk == 0:
        return None

    return round_currency(reward / risk)

def to_naive_utc(value: datetime) -> datetime:
    """Aware datetimes are converted to UTC; naive ones are taken as UTC already"""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

def calculate_holding_duration(entry_date: datetime, exit_date: Optional[datetime]) -> Optional[int]:
    """Holding duration in minutes, None while the position is open"""
    if exit_date is None:
        return None

    seconds = (to_naive_utc(exit_date) - to_naive_utc(entry_date)).total_seconds()
    return int(math.floor(seconds / 60 + 0.5))
