from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

from app.models.enums import PoolType, TransactionType

class CapitalSetupRequest(BaseModel):
    total_amount: float = Field(..., allow_inf_nan=False)
    equity_amount: float = Field(..., allow_inf_nan=False)
    fno_amount: float = Field(..., allow_inf_nan=False)
    description: Optional[str] = None

class CapitalTransactionRequest(BaseModel):
    pool_id: int
    transaction_type: TransactionType
    amount: float = Field(..., allow_inf_nan=False)  # sign is checked by the service
    description: Optional[str] = None
    reference_id: Optional[int] = None
    reference_type: Optional[str] = None

class CapitalTransactionOut(BaseModel):
    id: int
    pool_id: int
    transaction_type: TransactionType
    amount: float
    balance_after: float
    description: Optional[str] = None
    reference_id: Optional[int] = None
    reference_type: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class CapitalPoolOut(BaseModel):
    id: int
    name: str
    pool_type: PoolType
    description: Optional[str] = None
    initial_amount: float
    current_amount: float
    total_pnl: float
    total_invested: float
    total_withdrawn: float
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class CapitalAllocation(BaseModel):
    total_capital: float
    equity_capital: float
    fno_capital: float
    total_pnl: float
    equity_pnl: float
    fno_pnl: float
    total_return: float
    equity_return: float
    fno_return: float
    total_invested: float
    equity_invested: float
    fno_invested: float

class CapitalOverview(BaseModel):
    pools: List[CapitalPoolOut]
    allocation: CapitalAllocation

class TransactionPagination(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool

class TransactionListResponse(BaseModel):
    transactions: List[CapitalTransactionOut]
    pagination: TransactionPagination
