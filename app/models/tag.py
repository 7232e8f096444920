from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.sql import func
from app.core.database import Base

class _TagColumns:
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    color = Column(String, nullable=False, default="#6b7280")
    description = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<{type(self).__name__}(id={self.id}, name={self.name})>"

class StrategyTag(_TagColumns, Base):
    __tablename__ = "strategy_tags"

class EmotionalTag(_TagColumns, Base):
    __tablename__ = "emotional_tags"

class MarketTag(_TagColumns, Base):
    __tablename__ = "market_tags"
