"""
Charge Calculator

Brokerage and statutory charges (STT, exchange, SEBI, stamp duty) for a
round-trip trade on Indian exchanges. Pure functions, no database access.
"""

import math
from typing import Dict, List, Optional, Union

from app.core.config import settings
from app.models.enums import InstrumentType, PositionType, ChargeType, POSITION_ALIASES
from app.schemas.calculations import ChargeRates, ChargeBreakdown, BrokerageRate, SttRates

def round_currency(value: float) -> float:
    """Round to 2 decimals, halves towards +infinity"""
    if not math.isfinite(value):
        return value
    return math.floor(value * 100 + 0.5) / 100

def normalize_position(position: Union[PositionType, str]) -> PositionType:
    key = getattr(position, "value", position)
    return POSITION_ALIASES[str(key).upper()]

def is_short(position: Union[PositionType, str]) -> bool:
    return normalize_position(position) == PositionType.SELL

def default_charge_rates() -> ChargeRates:
    """Rate table built from the configured defaults"""
    return ChargeRates(
        brokerage=BrokerageRate(type=settings.brokerage_type, value=settings.brokerage_value),
        stt=SttRates(
            equity=settings.stt_equity_rate,
            futures=settings.stt_futures_rate,
            options=settings.stt_options_rate,
        ),
        exchange=settings.exchange_rate,
        sebi=settings.sebi_rate,
        stamp_duty=settings.stamp_duty_rate,
    )

def zero_charges() -> ChargeBreakdown:
    return ChargeBreakdown()

def _stt_rate(rates: ChargeRates, instrument: InstrumentType) -> float:
    instrument = InstrumentType(instrument)
    if instrument == InstrumentType.FUTURES:
        return rates.stt.futures
    if instrument == InstrumentType.OPTIONS:
        return rates.stt.options
    return rates.stt.equity

def calculate_charges(
    entry_value: float,
    exit_value: float,
    instrument: Union[InstrumentType, str],
    position: Union[PositionType, str],
    rates: Optional[ChargeRates] = None
) -> ChargeBreakdown:
    """Calculate all charges for a trade.

    STT is only levied when the trade closes on the sell side. Each
    component is rounded to the paisa on its own and ``total`` is the sum
    of the rounded components.
    """
    rates = rates or default_charge_rates()
    turnover = entry_value + exit_value
    sell_value = exit_value if is_short(position) else entry_value

    if rates.brokerage.type == "flat":
        brokerage = rates.brokerage.value * 2  # Both sides
    else:
        brokerage = (turnover * rates.brokerage.value) / 100

    stt = sell_value * _stt_rate(rates, instrument) if is_short(position) else 0.0

    components = {
        "brokerage": round_currency(brokerage),
        "stt": round_currency(stt),
        "exchange": round_currency(turnover * rates.exchange),
        "sebi": round_currency(turnover * rates.sebi),
        "stamp_duty": round_currency(turnover * rates.stamp_duty),
    }
    return ChargeBreakdown(total=round(sum(components.values()), 2), **components)

def build_charge_rows(
    breakdown: ChargeBreakdown,
    rates: Optional[ChargeRates],
    instrument: Union[InstrumentType, str],
    position: Union[PositionType, str],
    entry_value: float,
    exit_value: float,
    exempt: bool = False
) -> List[Dict]:
    """Line items (one per charge type) describing a breakdown for persistence"""
    turnover = entry_value + exit_value
    sell_value = exit_value if is_short(position) else entry_value

    if exempt:
        label = f"{InstrumentType(instrument).value.lower()} - no charges"
        return [
            {"charge_type": ChargeType.BROKERAGE, "rate": 0.0, "base_amount": exit_value,
             "amount": 0.0, "description": f"Brokerage charges ({label})"},
            {"charge_type": ChargeType.STT, "rate": 0.0, "base_amount": exit_value,
             "amount": 0.0, "description": f"Securities Transaction Tax ({label})"},
            {"charge_type": ChargeType.EXCHANGE, "rate": 0.0, "base_amount": exit_value,
             "amount": 0.0, "description": f"Exchange charges ({label})"},
            {"charge_type": ChargeType.SEBI, "rate": 0.0, "base_amount": exit_value,
             "amount": 0.0, "description": f"SEBI charges ({label})"},
            {"charge_type": ChargeType.STAMP_DUTY, "rate": 0.0, "base_amount": exit_value,
             "amount": 0.0, "description": f"Stamp duty ({label})"},
        ]

    rates = rates or default_charge_rates()
    flat = rates.brokerage.type == "flat"
    return [
        {
            "charge_type": ChargeType.BROKERAGE,
            "rate": rates.brokerage.value,
            "base_amount": 2.0 if flat else turnover,
            "amount": breakdown.brokerage,
            "description": "Brokerage charges (flat per side)" if flat else "Brokerage charges (% of turnover)",
        },
        {
            "charge_type": ChargeType.STT,
            "rate": _stt_rate(rates, instrument) if is_short(position) else 0.0,
            "base_amount": sell_value if is_short(position) else 0.0,
            "amount": breakdown.stt,
            "description": "Securities Transaction Tax",
        },
        {
            "charge_type": ChargeType.EXCHANGE,
            "rate": rates.exchange,
            "base_amount": turnover,
            "amount": breakdown.exchange,
            "description": "Exchange transaction charges",
        },
        {
            "charge_type": ChargeType.SEBI,
            "rate": rates.sebi,
            "base_amount": turnover,
            "amount": breakdown.sebi,
            "description": "SEBI turnover fee",
        },
        {
            "charge_type": ChargeType.STAMP_DUTY,
            "rate": rates.stamp_duty,
            "base_amount": turnover,
            "amount": breakdown.stamp_duty,
            "description": "Stamp duty",
        },
    ]
