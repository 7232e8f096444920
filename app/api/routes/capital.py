from fastapi import APIRouter, Depends, HTTPException, status, Query
from typing import List, Optional
from loguru import logger

from app.core.errors import JournalError, journal_http_error
from app.schemas.capital import (
    CapitalSetupRequest, CapitalTransactionRequest, CapitalTransactionOut, CapitalPoolOut,
    CapitalOverview, TransactionListResponse
)
from app.services.capital_service import CapitalService, get_capital_service

router = APIRouter()

@router.get("", response_model=CapitalOverview)
async def get_capital(
    service: CapitalService = Depends(get_capital_service)
):
    """Get all capital pools and the allocation summary"""
    try:
        return service.get_allocation()
    except Exception as e:
        logger.error(f"Failed to fetch capital data: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch capital data: {str(e)}"
        )

@router.post("", response_model=List[CapitalPoolOut])
async def setup_capital_pools(
    setup_request: CapitalSetupRequest,
    service: CapitalService = Depends(get_capital_service)
):
    """
    Create or update the Total / Equity / F&O capital pools.

    **Example Request:**
    ```json
    {
        "total_amount": 500000,
        "equity_amount": 300000,
        "fno_amount": 200000,
        "description": "FY25 trading capital"
    }
    ```
    """
    try:
        return service.setup_pools(setup_request)
    except JournalError as e:
        raise journal_http_error(e)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to update capital pools: {str(e)}"
        )

@router.get("/transactions", response_model=TransactionListResponse)
async def list_transactions(
    pool_id: Optional[int] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: CapitalService = Depends(get_capital_service)
):
    """Get capital transactions, newest first"""
    try:
        return service.list_transactions(pool_id, limit, offset)
    except Exception as e:
        logger.error(f"Failed to fetch capital transactions: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch transactions: {str(e)}"
        )

@router.post("/transactions", response_model=CapitalTransactionOut, status_code=status.HTTP_201_CREATED)
async def post_transaction(
    transaction_request: CapitalTransactionRequest,
    service: CapitalService = Depends(get_capital_service)
):
    """Post a deposit, withdrawal, profit, loss or transfer against a pool"""
    try:
        return service.post_transaction(transaction_request)
    except JournalError as e:
        raise journal_http_error(e)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create transaction: {str(e)}"
        )

@router.delete("/transactions/{transaction_id}", response_model=CapitalPoolOut)
async def delete_transaction(
    transaction_id: int,
    service: CapitalService = Depends(get_capital_service)
):
    """Delete a transaction; the owning pool is rebuilt from its remaining ledger"""
    try:
        return service.delete_transaction(transaction_id)
    except JournalError as e:
        raise journal_http_error(e)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to delete transaction: {str(e)}"
        )

@router.post("/pools/{pool_id}/recalculate", response_model=CapitalPoolOut)
async def recalculate_pool(
    pool_id: int,
    service: CapitalService = Depends(get_capital_service)
):
    """Rebuild a pool's balance and totals from its ledger"""
    try:
        return service.recalculate_pool_by_id(pool_id)
    except JournalError as e:
        raise journal_http_error(e)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to recalculate pool: {str(e)}"
        )
