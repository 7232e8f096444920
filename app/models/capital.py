from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey, Enum as SAEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.models.enums import PoolType, TransactionType

class CapitalPool(Base):
    __tablename__ = "capital_pools"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    pool_type = Column(SAEnum(PoolType), nullable=False, unique=True)
    description = Column(String, nullable=True)

    # current_amount is always initial_amount replayed through the transactions
    initial_amount = Column(Float, nullable=False)
    current_amount = Column(Float, nullable=False)
    total_pnl = Column(Float, nullable=False, default=0.0)
    total_invested = Column(Float, nullable=False, default=0.0)
    total_withdrawn = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    transactions = relationship(
        "CapitalTransaction",
        back_populates="pool",
        cascade="all, delete-orphan",
        order_by="CapitalTransaction.id",
    )

    def __repr__(self):
        return f"<CapitalPool(id={self.id}, type={self.pool_type}, current={self.current_amount})>"

class CapitalTransaction(Base):
    __tablename__ = "capital_transactions"

    id = Column(Integer, primary_key=True, index=True)
    pool_id = Column(Integer, ForeignKey("capital_pools.id", ondelete="CASCADE"), nullable=False, index=True)
    transaction_type = Column(SAEnum(TransactionType), nullable=False)
    amount = Column(Float, nullable=False)
    balance_after = Column(Float, nullable=False)
    description = Column(String, nullable=True)

    # Optional link to whatever caused the entry, e.g. ("TRADE", trade id)
    reference_id = Column(Integer, nullable=True, index=True)
    reference_type = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    pool = relationship("CapitalPool", back_populates="transactions")

    def __repr__(self):
        return f"<CapitalTransaction(id={self.id}, pool_id={self.pool_id}, type={self.transaction_type}, amount={self.amount})>"
