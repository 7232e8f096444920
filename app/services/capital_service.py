import math
from typing import Dict, List, Optional, Tuple
from sqlalchemy.orm import Session
from loguru import logger
from fastapi import Depends

from app.core.config import settings
from app.core.database import get_db
from app.core.errors import (
    ValidationError, NotFoundError, InsufficientBalanceError, ReferencedTransactionError
)
from app.models.capital import CapitalPool, CapitalTransaction
from app.models.trade import Trade
from app.models.enums import (
    PoolType, TransactionType, TradeType, InstrumentType, REFERENCE_TYPE_TRADE
)
from app.schemas.capital import CapitalSetupRequest, CapitalTransactionRequest
from app.services.charge_calculator import round_currency

CREDIT_TYPES = {TransactionType.DEPOSIT, TransactionType.PROFIT, TransactionType.TRANSFER_IN}
DEBIT_TYPES = {TransactionType.WITHDRAWAL, TransactionType.LOSS, TransactionType.TRANSFER_OUT}

INSUFFICIENT_BALANCE_MESSAGES = {
    TransactionType.WITHDRAWAL: "Insufficient balance for withdrawal",
    TransactionType.LOSS: "Loss amount cannot exceed current balance",
    TransactionType.TRANSFER_OUT: "Insufficient balance for transfer",
}

POOL_NAMES = {
    PoolType.TOTAL: "Total Capital",
    PoolType.EQUITY: "Equity Capital",
    PoolType.FNO: "F&O Capital",
}

def uses_invested_capital(trade: Trade) -> bool:
    """Intraday options only move P&L through the pool, everything else ties up its entry value"""
    return not (
        trade.trade_type == TradeType.INTRADAY and trade.instrument == InstrumentType.OPTIONS
    )

def apply_transaction_effect(
    transaction_type: TransactionType,
    amount: float,
    balance: float,
    total_pnl: float,
    total_withdrawn: float
) -> Tuple[float, float, float]:
    """Apply one ledger entry to (balance, total_pnl, total_withdrawn)"""
    transaction_type = TransactionType(transaction_type)
    if transaction_type in CREDIT_TYPES:
        balance += amount
    else:
        balance -= amount

    if transaction_type == TransactionType.PROFIT:
        total_pnl += amount
    elif transaction_type == TransactionType.LOSS:
        total_pnl -= amount
    elif transaction_type == TransactionType.WITHDRAWAL:
        total_withdrawn += amount

    return balance, total_pnl, total_withdrawn

class CapitalService:
    def __init__(self, db: Session):
        self.db = db

    # ---------- pools ----------

    def get_pool(self, pool_id: int) -> CapitalPool:
        pool = self.db.query(CapitalPool).filter(CapitalPool.id == pool_id).first()
        if not pool:
            raise NotFoundError("Capital pool not found", {"pool_id": pool_id})
        return pool

    def get_pools(self) -> List[CapitalPool]:
        return self.db.query(CapitalPool).order_by(CapitalPool.id.asc()).all()

    def get_allocation(self) -> Dict:
        """Pools together with the capital / P&L / return summary per pool"""
        pools = self.get_pools()
        by_type = {pool.pool_type: pool for pool in pools}

        def _amount(pool_type: PoolType, attr: str) -> float:
            pool = by_type.get(pool_type)
            return getattr(pool, attr) if pool else 0.0

        def _return(pool_type: PoolType) -> float:
            pool = by_type.get(pool_type)
            if not pool or not pool.initial_amount:
                return 0.0
            return round_currency(pool.total_pnl / pool.initial_amount * 100)

        return {
            "pools": pools,
            "allocation": {
                "total_capital": _amount(PoolType.TOTAL, "current_amount"),
                "equity_capital": _amount(PoolType.EQUITY, "current_amount"),
                "fno_capital": _amount(PoolType.FNO, "current_amount"),
                "total_pnl": _amount(PoolType.TOTAL, "total_pnl"),
                "equity_pnl": _amount(PoolType.EQUITY, "total_pnl"),
                "fno_pnl": _amount(PoolType.FNO, "total_pnl"),
                "total_return": _return(PoolType.TOTAL),
                "equity_return": _return(PoolType.EQUITY),
                "fno_return": _return(PoolType.FNO),
                "total_invested": _amount(PoolType.TOTAL, "total_invested"),
                "equity_invested": _amount(PoolType.EQUITY, "total_invested"),
                "fno_invested": _amount(PoolType.FNO, "total_invested"),
            },
        }

    def setup_pools(self, request: CapitalSetupRequest) -> List[CapitalPool]:
        """Create the TOTAL / EQUITY / FNO pools, or re-base the existing ones in place"""
        amounts = {
            PoolType.TOTAL: ("total_amount", request.total_amount),
            PoolType.EQUITY: ("equity_amount", request.equity_amount),
            PoolType.FNO: ("fno_amount", request.fno_amount),
        }
        for field, amount in amounts.values():
            if amount is None or not math.isfinite(amount) or amount <= 0:
                raise ValidationError(f"{field} must be greater than 0", field=field)
        if request.equity_amount + request.fno_amount > request.total_amount:
            raise ValidationError(
                "Equity and F&O amounts cannot exceed total capital",
                field="equity_amount",
                details={"equity_amount": request.equity_amount, "fno_amount": request.fno_amount,
                         "total_amount": request.total_amount},
            )

        descriptions = {
            PoolType.TOTAL: request.description,
            PoolType.EQUITY: f"Equity trading capital (₹{request.equity_amount:,.2f})",
            PoolType.FNO: f"F&O trading capital (₹{request.fno_amount:,.2f})",
        }

        try:
            existing = {pool.pool_type: pool for pool in self.get_pools()}
            for pool_type, (_, amount) in amounts.items():
                pool = existing.get(pool_type)
                if pool is None:
                    pool = CapitalPool(
                        name=POOL_NAMES[pool_type],
                        pool_type=pool_type,
                        initial_amount=amount,
                        current_amount=amount,
                        total_pnl=0.0,
                        total_invested=0.0,
                        total_withdrawn=0.0,
                        description=descriptions[pool_type],
                    )
                    self.db.add(pool)
                else:
                    pool.initial_amount = amount
                    pool.description = descriptions[pool_type]
                    # Existing ledger entries still apply on top of the new base
                    self.recalculate_pool(pool)

            self.db.commit()
            pools = self.get_pools()
            logger.info(f"Capital pools configured: total={request.total_amount}, "
                        f"equity={request.equity_amount}, fno={request.fno_amount}")
            return pools

        except Exception as e:
            logger.error(f"Error configuring capital pools: {e}")
            self.db.rollback()
            raise

    # ---------- transactions ----------

    def _apply_transaction(
        self,
        pool: CapitalPool,
        transaction_type: TransactionType,
        amount: float,
        description: Optional[str] = None,
        reference_id: Optional[int] = None,
        reference_type: Optional[str] = None,
        enforce_balance: bool = True
    ) -> CapitalTransaction:
        """Record a ledger entry and move the pool totals; the caller commits"""
        transaction_type = TransactionType(transaction_type)
        if enforce_balance and transaction_type in DEBIT_TYPES and amount > pool.current_amount:
            raise InsufficientBalanceError(
                INSUFFICIENT_BALANCE_MESSAGES[transaction_type],
                {"pool_id": pool.id, "amount": amount, "current_amount": pool.current_amount},
            )

        balance, total_pnl, total_withdrawn = apply_transaction_effect(
            transaction_type, amount, pool.current_amount, pool.total_pnl, pool.total_withdrawn
        )

        transaction = CapitalTransaction(
            pool_id=pool.id,
            transaction_type=transaction_type,
            amount=amount,
            description=description,
            reference_id=reference_id,
            reference_type=reference_type,
            balance_after=round_currency(balance),
        )
        self.db.add(transaction)

        pool.current_amount = round_currency(balance)
        pool.total_pnl = round_currency(total_pnl)
        pool.total_withdrawn = round_currency(total_withdrawn)
        self.db.flush()
        return transaction

    def post_transaction(self, request: CapitalTransactionRequest) -> CapitalTransaction:
        if request.amount is None or not math.isfinite(request.amount) or request.amount <= 0:
            raise ValidationError("Amount must be greater than 0", field="amount")

        pool = self.get_pool(request.pool_id)

        try:
            transaction = self._apply_transaction(
                pool,
                request.transaction_type,
                request.amount,
                description=request.description,
                reference_id=request.reference_id,
                reference_type=request.reference_type,
            )
            self.db.commit()
            self.db.refresh(transaction)
            logger.info(f"Posted {transaction.transaction_type.value} of {transaction.amount} "
                        f"to pool {pool.id}, balance {transaction.balance_after}")
            return transaction

        except InsufficientBalanceError as e:
            logger.warning(f"Rejected {request.transaction_type} on pool {pool.id}: {e.message}")
            self.db.rollback()
            raise
        except Exception as e:
            logger.error(f"Error creating capital transaction: {e}")
            self.db.rollback()
            raise

    def list_transactions(
        self,
        pool_id: Optional[int] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> Dict:
        limit = limit or settings.transactions_page_limit
        query = self.db.query(CapitalTransaction)
        if pool_id is not None:
            query = query.filter(CapitalTransaction.pool_id == pool_id)

        total = query.count()
        transactions = (
            query.order_by(CapitalTransaction.created_at.desc(), CapitalTransaction.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return {
            "transactions": transactions,
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "has_more": offset + limit < total,
            },
        }

    def delete_transaction(self, transaction_id: int) -> CapitalPool:
        """Delete a ledger entry and rebuild its pool from the remaining ones"""
        transaction = (
            self.db.query(CapitalTransaction)
            .filter(CapitalTransaction.id == transaction_id)
            .first()
        )
        if not transaction:
            raise NotFoundError("Capital transaction not found", {"transaction_id": transaction_id})

        if transaction.reference_type == REFERENCE_TYPE_TRADE and transaction.reference_id is not None:
            trade_exists = (
                self.db.query(Trade.id).filter(Trade.id == transaction.reference_id).first()
            )
            if trade_exists:
                raise ReferencedTransactionError(
                    "Transaction belongs to an existing trade; delete the trade first",
                    {"transaction_id": transaction_id, "trade_id": transaction.reference_id},
                )

        try:
            pool = transaction.pool
            self.db.delete(transaction)
            self.db.flush()
            self.recalculate_pool(pool)
            self.db.commit()
            self.db.refresh(pool)
            logger.info(f"Deleted capital transaction {transaction_id}; pool {pool.id} "
                        f"recalculated to {pool.current_amount}")
            return pool

        except Exception as e:
            logger.error(f"Error deleting capital transaction {transaction_id}: {e}")
            self.db.rollback()
            raise

    def recalculate_pool(self, pool: CapitalPool) -> CapitalPool:
        """Replay every remaining transaction of the pool from its initial amount.

        total_invested is reset to 0; ledger entries do not carry it.
        O(n) in the number of transactions on the pool.
        """
        transactions = (
            self.db.query(CapitalTransaction)
            .filter(CapitalTransaction.pool_id == pool.id)
            .order_by(CapitalTransaction.created_at.asc(), CapitalTransaction.id.asc())
            .all()
        )

        balance, total_pnl, total_withdrawn = pool.initial_amount, 0.0, 0.0
        for transaction in transactions:
            balance, total_pnl, total_withdrawn = apply_transaction_effect(
                transaction.transaction_type, transaction.amount, balance, total_pnl, total_withdrawn
            )

        pool.current_amount = round_currency(balance)
        pool.total_pnl = round_currency(total_pnl)
        pool.total_withdrawn = round_currency(total_withdrawn)
        pool.total_invested = 0.0
        self.db.flush()
        return pool

    def recalculate_pool_by_id(self, pool_id: int) -> CapitalPool:
        pool = self.get_pool(pool_id)
        try:
            self.recalculate_pool(pool)
            self.db.commit()
            self.db.refresh(pool)
            logger.info(f"Pool {pool_id} recalculated to {pool.current_amount}")
            return pool
        except Exception as e:
            logger.error(f"Error recalculating pool {pool_id}: {e}")
            self.db.rollback()
            raise

    # ---------- trade side effects (flushed in the caller's unit of work) ----------

    def _trade_entries(self, trade: Trade, *transaction_types: TransactionType):
        return self.db.query(CapitalTransaction).filter(
            CapitalTransaction.pool_id == trade.capital_pool_id,
            CapitalTransaction.reference_type == REFERENCE_TYPE_TRADE,
            CapitalTransaction.reference_id == trade.id,
            CapitalTransaction.transaction_type.in_(transaction_types),
        )

    def reserved_for_trade(self, trade: Trade) -> float:
        """Capital still tied up by a trade: its TRANSFER_OUT entries minus TRANSFER_IN entries"""
        reserved = 0.0
        for entry in self._trade_entries(trade, TransactionType.TRANSFER_OUT, TransactionType.TRANSFER_IN):
            if entry.transaction_type == TransactionType.TRANSFER_OUT:
                reserved += entry.amount
            else:
                reserved -= entry.amount
        return round_currency(reserved)

    def is_settled(self, trade: Trade) -> bool:
        """True once a PROFIT or LOSS entry has been booked for the trade"""
        return self._trade_entries(trade, TransactionType.PROFIT, TransactionType.LOSS).first() is not None

    def reserve_for_trade(self, trade: Trade) -> Optional[CapitalTransaction]:
        """Bring the capital reserved by an open position in line with its entry value.

        Posts TRANSFER_OUT for the first reservation or a larger position and
        TRANSFER_IN when the position shrinks or stops tying up capital
        (e.g. reclassified as intraday options).
        """
        if trade.capital_pool_id is None or not trade.is_open:
            return None

        pool = self.get_pool(trade.capital_pool_id)
        target = trade.entry_value if uses_invested_capital(trade) else 0.0
        reserved = self.reserved_for_trade(trade)
        delta = round_currency(target - reserved)
        if delta == 0:
            return None

        if delta > 0:
            transaction = self._apply_transaction(
                pool,
                TransactionType.TRANSFER_OUT,
                delta,
                description=f"Position {'Entry' if reserved == 0 else 'Increase'}: {trade.symbol}",
                reference_id=trade.id,
                reference_type=REFERENCE_TYPE_TRADE,
            )
        else:
            transaction = self._apply_transaction(
                pool,
                TransactionType.TRANSFER_IN,
                -delta,
                description=f"Position Reduced: {trade.symbol} - capital released",
                reference_id=trade.id,
                reference_type=REFERENCE_TYPE_TRADE,
                enforce_balance=False,
            )
        pool.total_invested = round_currency(max(0.0, pool.total_invested + delta))
        return transaction

    def settle_trade(self, trade: Trade) -> List[CapitalTransaction]:
        """Book a closed trade into its pool: release reserved capital, then post the net P&L once"""
        if trade.capital_pool_id is None or trade.net_pnl is None:
            return []

        pool = self.get_pool(trade.capital_pool_id)
        posted = []

        # Released whatever the trade's current classification is
        reserved = self.reserved_for_trade(trade)
        if reserved > 0:
            posted.append(self._apply_transaction(
                pool,
                TransactionType.TRANSFER_IN,
                reserved,
                description=f"Position Exit: {trade.symbol} - capital released",
                reference_id=trade.id,
                reference_type=REFERENCE_TYPE_TRADE,
                enforce_balance=False,
            ))
            pool.total_invested = round_currency(max(0.0, pool.total_invested - reserved))

        if trade.net_pnl != 0 and not self.is_settled(trade):
            is_profit = trade.net_pnl > 0
            posted.append(self._apply_transaction(
                pool,
                TransactionType.PROFIT if is_profit else TransactionType.LOSS,
                abs(trade.net_pnl),
                description=f"Position Exit: {trade.symbol} - {'Profit' if is_profit else 'Loss'}",
                reference_id=trade.id,
                reference_type=REFERENCE_TYPE_TRADE,
                # A realised loss is booked even if it takes the pool below zero
                enforce_balance=False,
            ))
        elif trade.net_pnl != 0:
            logger.warning(f"Trade {trade.id} already has P&L booked in pool {pool.id}; "
                           f"not posting it again")

        logger.info(f"Settled trade {trade.id} into pool {pool.id}: net P&L {trade.net_pnl}, "
                    f"balance {pool.current_amount}")
        return posted

def get_capital_service(db: Session = Depends(get_db)) -> CapitalService:
    """Dependency injection for CapitalService"""
    return CapitalService(db)
