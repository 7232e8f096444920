from sqlalchemy import Column, Integer, String, DateTime, Float, Boolean, ForeignKey, Text, Table, Enum as SAEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.models.enums import TradeType, InstrumentType, PositionType, OptionType, ChargeType

trade_strategy_tags = Table(
    "trade_strategy_tags",
    Base.metadata,
    Column("trade_id", Integer, ForeignKey("trades.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("strategy_tags.id", ondelete="CASCADE"), primary_key=True),
)

trade_emotional_tags = Table(
    "trade_emotional_tags",
    Base.metadata,
    Column("trade_id", Integer, ForeignKey("trades.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("emotional_tags.id", ondelete="CASCADE"), primary_key=True),
)

trade_market_tags = Table(
    "trade_market_tags",
    Base.metadata,
    Column("trade_id", Integer, ForeignKey("trades.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("market_tags.id", ondelete="CASCADE"), primary_key=True),
)

class Trade(Base):
    __tablename__ = "trades"

    id = Column(Integer, primary_key=True, index=True)
    symbol = Column(String, nullable=False, index=True)

    # Classification
    trade_type = Column(SAEnum(TradeType), nullable=False, default=TradeType.INTRADAY)
    instrument = Column(SAEnum(InstrumentType), nullable=False)
    position = Column(SAEnum(PositionType), nullable=False)

    # Entry / exit (stored as naive UTC)
    quantity = Column(Float, nullable=False)
    entry_price = Column(Float, nullable=False)
    entry_date = Column(DateTime, nullable=False)
    exit_price = Column(Float, nullable=True)  # null while the position is open
    exit_date = Column(DateTime, nullable=True)

    # Derived values, recomputed by the trade service
    entry_value = Column(Float, nullable=False)
    exit_value = Column(Float, nullable=True)
    turnover = Column(Float, nullable=False)
    gross_pnl = Column(Float, nullable=True)
    net_pnl = Column(Float, nullable=True)
    total_charges = Column(Float, nullable=True)
    percentage_return = Column(Float, nullable=True)
    holding_duration = Column(Integer, nullable=True)  # minutes

    # Risk management
    stop_loss = Column(Float, nullable=True)
    target = Column(Float, nullable=True)
    risk_amount = Column(Float, nullable=True)
    reward_amount = Column(Float, nullable=True)
    risk_reward_ratio = Column(Float, nullable=True)
    confidence_level = Column(Integer, nullable=True)  # 1-10

    # Psychology (advisory only)
    emotional_state = Column(String, nullable=True)
    market_condition = Column(String, nullable=True)
    followed_plan = Column(Boolean, nullable=True)
    fomo_trade = Column(Boolean, default=False)
    revenge_trade = Column(Boolean, default=False)
    notes = Column(Text, nullable=True)
    is_draft = Column(Boolean, default=False)

    # Per-trade brokerage override
    custom_brokerage = Column(Boolean, default=False)
    brokerage_type = Column(String, nullable=True)  # flat, percentage
    brokerage_value = Column(Float, nullable=True)

    capital_pool_id = Column(Integer, ForeignKey("capital_pools.id", ondelete="SET NULL"), nullable=True, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    charges = relationship("Charge", back_populates="trade", cascade="all, delete-orphan",
                           order_by="Charge.id")
    options_trade = relationship("OptionsTrade", back_populates="trade", uselist=False,
                                 cascade="all, delete-orphan")
    hedge_position = relationship("HedgePosition", back_populates="trade", uselist=False,
                                  cascade="all, delete-orphan")
    strategy_tags = relationship("StrategyTag", secondary=trade_strategy_tags)
    emotional_tags = relationship("EmotionalTag", secondary=trade_emotional_tags)
    market_tags = relationship("MarketTag", secondary=trade_market_tags)
    capital_pool = relationship("CapitalPool")

    @property
    def is_open(self) -> bool:
        return self.exit_price is None

    def __repr__(self):
        return f"<Trade(id={self.id}, symbol={self.symbol}, position={self.position}, open={self.is_open})>"

class Charge(Base):
    __tablename__ = "charges"

    id = Column(Integer, primary_key=True, index=True)
    trade_id = Column(Integer, ForeignKey("trades.id", ondelete="CASCADE"), nullable=True, index=True)
    hedge_id = Column(Integer, ForeignKey("hedge_positions.id", ondelete="CASCADE"), nullable=True, index=True)
    charge_type = Column(SAEnum(ChargeType), nullable=False)
    rate = Column(Float, nullable=False, default=0.0)
    base_amount = Column(Float, nullable=False, default=0.0)
    amount = Column(Float, nullable=False, default=0.0)
    description = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    trade = relationship("Trade", back_populates="charges")
    hedge = relationship("HedgePosition", back_populates="charges")

class OptionsTrade(Base):
    __tablename__ = "options_trades"

    id = Column(Integer, primary_key=True, index=True)
    trade_id = Column(Integer, ForeignKey("trades.id", ondelete="CASCADE"), nullable=False, unique=True)
    option_type = Column(SAEnum(OptionType), nullable=False)
    strike_price = Column(Float, nullable=False)
    expiry_date = Column(DateTime, nullable=False)
    lot_size = Column(Integer, nullable=False, default=1)
    underlying = Column(String, nullable=False)

    trade = relationship("Trade", back_populates="options_trade")

class HedgePosition(Base):
    __tablename__ = "hedge_positions"

    id = Column(Integer, primary_key=True, index=True)
    trade_id = Column(Integer, ForeignKey("trades.id", ondelete="CASCADE"), nullable=False, unique=True)
    position = Column(SAEnum(PositionType), nullable=False)
    quantity = Column(Float, nullable=False)
    entry_price = Column(Float, nullable=False)
    entry_date = Column(DateTime, nullable=False)
    exit_price = Column(Float, nullable=True)
    exit_date = Column(DateTime, nullable=True)
    entry_value = Column(Float, nullable=False)
    exit_value = Column(Float, nullable=True)
    gross_pnl = Column(Float, nullable=True)
    net_pnl = Column(Float, nullable=True)
    total_charges = Column(Float, nullable=True)
    percentage_return = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)

    trade = relationship("Trade", back_populates="hedge_position")
    charges = relationship("Charge", back_populates="hedge", cascade="all, delete-orphan",
                           order_by="Charge.id")
