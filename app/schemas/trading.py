from pydantic import BaseModel, Field, field_validator
from typing import Optional, Literal, List
from datetime import datetime

from app.models.enums import (
    TradeType, InstrumentType, PositionType, OptionType, ChargeType, POSITION_ALIASES
)
from app.schemas.calculations import ChargeBreakdown, CombinedPnL

def _normalize_position(value):
    if value is None or isinstance(value, PositionType):
        return value
    if isinstance(value, str) and value.upper() in POSITION_ALIASES:
        return POSITION_ALIASES[value.upper()]
    return value

class ChargesInput(BaseModel):
    """Charges entered by hand on trade entry"""
    brokerage: float = Field(0.0, ge=0, allow_inf_nan=False)
    stt: float = Field(0.0, ge=0, allow_inf_nan=False)
    exchange: float = Field(0.0, ge=0, allow_inf_nan=False)
    sebi: float = Field(0.0, ge=0, allow_inf_nan=False)
    stamp_duty: float = Field(0.0, ge=0, allow_inf_nan=False)
    gst: float = Field(0.0, ge=0, allow_inf_nan=False)

class OptionsTradeInput(BaseModel):
    option_type: OptionType
    strike_price: float = Field(..., gt=0, allow_inf_nan=False)
    expiry_date: datetime
    lot_size: int = Field(1, gt=0)
    underlying: str = Field(..., min_length=1)

class HedgePositionInput(BaseModel):
    position: PositionType
    quantity: float = Field(..., gt=0, allow_inf_nan=False)
    entry_price: float = Field(..., gt=0, allow_inf_nan=False)
    entry_date: datetime
    exit_price: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    exit_date: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("position", mode="before")
    @classmethod
    def normalize_position(cls, value):
        return _normalize_position(value)

class TradeCreate(BaseModel):
    symbol: str = Field(..., min_length=1)
    trade_type: TradeType = TradeType.INTRADAY
    instrument: InstrumentType
    position: PositionType  # LONG / SHORT are accepted and stored as BUY / SELL
    quantity: float = Field(..., gt=0, allow_inf_nan=False)
    entry_price: float = Field(..., gt=0, allow_inf_nan=False)
    entry_date: datetime

    stop_loss: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    target: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    confidence_level: Optional[int] = Field(None, ge=1, le=10)

    emotional_state: Optional[str] = None
    market_condition: Optional[str] = None
    followed_plan: Optional[bool] = None
    fomo_trade: bool = False
    revenge_trade: bool = False
    notes: Optional[str] = None
    is_draft: bool = False

    custom_brokerage: bool = False
    brokerage_type: Optional[Literal["flat", "percentage"]] = None
    brokerage_value: Optional[float] = Field(None, ge=0, allow_inf_nan=False)

    capital_pool_id: Optional[int] = None
    charges: Optional[ChargesInput] = None
    options_trade: Optional[OptionsTradeInput] = None
    hedge_position: Optional[HedgePositionInput] = None

    strategy_tag_ids: List[int] = []
    emotional_tag_ids: List[int] = []
    market_tag_ids: List[int] = []

    @field_validator("position", mode="before")
    @classmethod
    def normalize_position(cls, value):
        return _normalize_position(value)

class TradeUpdate(BaseModel):
    """Partial edit; unset fields keep their stored value, explicit nulls clear them"""
    symbol: Optional[str] = Field(None, min_length=1)
    trade_type: Optional[TradeType] = None
    instrument: Optional[InstrumentType] = None
    position: Optional[PositionType] = None
    quantity: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    entry_price: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    entry_date: Optional[datetime] = None
    exit_price: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    exit_date: Optional[datetime] = None

    stop_loss: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    target: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    confidence_level: Optional[int] = Field(None, ge=1, le=10)

    emotional_state: Optional[str] = None
    market_condition: Optional[str] = None
    followed_plan: Optional[bool] = None
    fomo_trade: Optional[bool] = None
    revenge_trade: Optional[bool] = None
    notes: Optional[str] = None
    is_draft: Optional[bool] = None

    custom_brokerage: Optional[bool] = None
    brokerage_type: Optional[Literal["flat", "percentage"]] = None
    brokerage_value: Optional[float] = Field(None, ge=0, allow_inf_nan=False)

    capital_pool_id: Optional[int] = None
    charges: Optional[ChargesInput] = None
    options_trade: Optional[OptionsTradeInput] = None
    hedge_position: Optional[HedgePositionInput] = None

    strategy_tag_ids: Optional[List[int]] = None
    emotional_tag_ids: Optional[List[int]] = None
    market_tag_ids: Optional[List[int]] = None

    @field_validator("position", mode="before")
    @classmethod
    def normalize_position(cls, value):
        return _normalize_position(value)

class TradeExitRequest(BaseModel):
    exit_price: float
    exit_date: str  # ISO 8601, validated by the trade service

class ChargeOut(BaseModel):
    id: int
    charge_type: ChargeType
    rate: float
    base_amount: float
    amount: float
    description: Optional[str] = None

    class Config:
        from_attributes = True

class OptionsTradeOut(BaseModel):
    id: int
    option_type: OptionType
    strike_price: float
    expiry_date: datetime
    lot_size: int
    underlying: str

    class Config:
        from_attributes = True

class HedgePositionOut(BaseModel):
    id: int
    position: PositionType
    quantity: float
    entry_price: float
    entry_date: datetime
    exit_price: Optional[float] = None
    exit_date: Optional[datetime] = None
    entry_value: float
    exit_value: Optional[float] = None
    gross_pnl: Optional[float] = None
    net_pnl: Optional[float] = None
    total_charges: Optional[float] = None
    percentage_return: Optional[float] = None
    notes: Optional[str] = None
    charges: List[ChargeOut] = []

    class Config:
        from_attributes = True

class TagCreate(BaseModel):
    name: str = Field(..., min_length=1)
    color: str = "#6b7280"
    description: Optional[str] = None

class TagOut(BaseModel):
    id: int
    name: str
    color: str
    description: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True

class TradeOut(BaseModel):
    id: int
    symbol: str
    trade_type: TradeType
    instrument: InstrumentType
    position: PositionType
    quantity: float
    entry_price: float
    entry_date: datetime
    exit_price: Optional[float] = None
    exit_date: Optional[datetime] = None

    entry_value: float
    exit_value: Optional[float] = None
    turnover: float
    gross_pnl: Optional[float] = None
    net_pnl: Optional[float] = None
    total_charges: Optional[float] = None
    percentage_return: Optional[float] = None
    holding_duration: Optional[int] = None

    stop_loss: Optional[float] = None
    target: Optional[float] = None
    risk_amount: Optional[float] = None
    reward_amount: Optional[float] = None
    risk_reward_ratio: Optional[float] = None
    confidence_level: Optional[int] = None

    emotional_state: Optional[str] = None
    market_condition: Optional[str] = None
    followed_plan: Optional[bool] = None
    fomo_trade: Optional[bool] = None
    revenge_trade: Optional[bool] = None
    notes: Optional[str] = None
    is_draft: Optional[bool] = None

    custom_brokerage: Optional[bool] = None
    brokerage_type: Optional[str] = None
    brokerage_value: Optional[float] = None
    capital_pool_id: Optional[int] = None

    charges: List[ChargeOut] = []
    options_trade: Optional[OptionsTradeOut] = None
    hedge_position: Optional[HedgePositionOut] = None
    strategy_tags: List[TagOut] = []
    emotional_tags: List[TagOut] = []
    market_tags: List[TagOut] = []

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class TradeDetailResponse(TradeOut):
    combined_pnl: Optional[CombinedPnL] = None

class ExitPnL(BaseModel):
    gross_pnl: float
    net_pnl: float
    percentage_return: float
    charges: ChargeBreakdown

class TradeExitResponse(BaseModel):
    success: bool = True
    trade: TradeOut
    pnl: ExitPnL

class TradeFilters(BaseModel):
    search: Optional[str] = None
    instrument: Optional[InstrumentType] = None
    position: Optional[PositionType] = None
    trade_type: Optional[TradeType] = None
    status: Optional[Literal["open", "closed"]] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    sort_by: Literal["entry_date", "exit_date", "net_pnl", "symbol", "created_at"] = "entry_date"
    sort_order: Literal["asc", "desc"] = "desc"

    @field_validator("position", mode="before")
    @classmethod
    def normalize_position(cls, value):
        return _normalize_position(value)

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

class TradeListResponse(BaseModel):
    trades: List[TradeOut]
    pagination: Pagination
