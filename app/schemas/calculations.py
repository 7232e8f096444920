from pydantic import BaseModel
from typing import Optional, Literal, Dict, Any, Union

from app.models.enums import PositionType

class BrokerageRate(BaseModel):
    type: Literal["flat", "percentage"] = "flat"
    value: float = 20.0  # rupees per side when flat, percent of turnover otherwise

class SttRates(BaseModel):
    equity: float = 0.001
    futures: float = 0.0001
    options: float = 0.0005

class ChargeRates(BaseModel):
    """Rate table used by the charge calculator"""
    brokerage: BrokerageRate = BrokerageRate()
    stt: SttRates = SttRates()
    exchange: float = 0.0000173
    sebi: float = 0.000001
    stamp_duty: float = 0.00003

    def with_overrides(self, overrides: Optional[Dict[str, Any]] = None) -> "ChargeRates":
        """Return a copy with a partial override applied.

        Nested tables (brokerage, stt) are merged key by key, so
        ``{"stt": {"options": 0.000625}}`` only replaces the options rate.
        """
        if not overrides:
            return self
        merged = self.model_dump()
        for key, value in overrides.items():
            if isinstance(value, BaseModel):
                value = value.model_dump()
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = {**merged[key], **value}
            else:
                merged[key] = value
        return ChargeRates.model_validate(merged)

class ChargeBreakdown(BaseModel):
    brokerage: float = 0.0
    stt: float = 0.0
    exchange: float = 0.0
    sebi: float = 0.0
    stamp_duty: float = 0.0
    total: float = 0.0

class PnLResult(BaseModel):
    gross_pnl: float
    net_pnl: float
    percentage_return: float

class LegInput(BaseModel):
    """One leg (main trade or hedge) fed into the combined P&L"""
    entry_value: float
    exit_value: float
    charges: ChargeBreakdown
    position: Union[PositionType, str]

class CombinedTotals(BaseModel):
    gross_pnl: float
    net_pnl: float
    total_charges: float
    percentage_return: float

class CombinedPnL(BaseModel):
    main_trade: PnLResult
    hedge_trade: Optional[PnLResult] = None
    combined: CombinedTotals

class EquityPnL(BaseModel):
    entry_value: float
    current_value: float
    exit_value: float
    gross_pnl: float
    net_pnl: float
    percentage_return: float
    is_realized: bool
