from fastapi import APIRouter, Depends, HTTPException, status, Query
from typing import Optional, Literal
from datetime import datetime
from loguru import logger

from app.core.errors import JournalError, journal_http_error
from app.models.enums import InstrumentType, TradeType
from app.schemas.trading import (
    TradeCreate, TradeUpdate, TradeExitRequest, TradeOut, TradeDetailResponse,
    TradeExitResponse, TradeListResponse, TradeFilters
)
from app.services.trade_service import TradeService, get_trade_service

router = APIRouter()

@router.get("", response_model=TradeListResponse)
async def list_trades(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    search: Optional[str] = Query(None, description="Match on symbol or notes"),
    instrument: Optional[InstrumentType] = None,
    side: Optional[Literal["BUY", "SELL", "LONG", "SHORT"]] = None,
    trade_type: Optional[TradeType] = None,
    trade_status: Optional[str] = Query(None, alias="status", pattern="^(open|closed)$"),
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    sort_by: str = Query("entry_date", pattern="^(entry_date|exit_date|net_pnl|symbol|created_at)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    service: TradeService = Depends(get_trade_service)
):
    """Get all trades with filters and pagination"""
    try:
        filters = TradeFilters(
            search=search,
            instrument=instrument,
            position=side,
            trade_type=trade_type,
            status=trade_status,
            date_from=date_from,
            date_to=date_to,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        return service.list_trades(filters, page=page, limit=limit)
    except Exception as e:
        logger.error(f"Failed to fetch trades: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch trades: {str(e)}"
        )

@router.post("", response_model=TradeOut, status_code=status.HTTP_201_CREATED)
async def create_trade(
    trade_request: TradeCreate,
    service: TradeService = Depends(get_trade_service)
):
    """
    Record a new open trade.

    **Example Request:**
    ```json
    {
        "symbol": "RELIANCE",
        "instrument": "EQUITY",
        "trade_type": "POSITIONAL",
        "position": "BUY",
        "quantity": 10,
        "entry_price": 2500.00,
        "entry_date": "2024-01-01T09:15:00Z",
        "stop_loss": 2450,
        "target": 2600,
        "capital_pool_id": 2
    }
    ```
    """
    try:
        return service.create_trade(trade_request)
    except JournalError as e:
        raise journal_http_error(e)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create trade: {str(e)}"
        )

@router.get("/{trade_id}", response_model=TradeDetailResponse)
async def get_trade(
    trade_id: int,
    service: TradeService = Depends(get_trade_service)
):
    """Get a trade with its charges, nested records and combined P&L"""
    try:
        trade = service.get_trade(trade_id)
        detail = TradeDetailResponse.model_validate(trade)
        detail.combined_pnl = service.combined_pnl(trade)
        return detail
    except JournalError as e:
        raise journal_http_error(e)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch trade: {str(e)}"
        )

@router.put("/{trade_id}", response_model=TradeOut)
async def update_trade(
    trade_id: int,
    trade_request: TradeUpdate,
    service: TradeService = Depends(get_trade_service)
):
    """Edit a trade; every derived value is recomputed from the submitted fields"""
    try:
        return service.update_trade(trade_id, trade_request)
    except JournalError as e:
        raise journal_http_error(e)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to update trade: {str(e)}"
        )

@router.post("/{trade_id}/exit", response_model=TradeExitResponse)
async def exit_trade(
    trade_id: int,
    exit_request: TradeExitRequest,
    service: TradeService = Depends(get_trade_service)
):
    """Exit an open trade and settle it into its capital pool"""
    try:
        trade, pnl = service.exit_trade(trade_id, exit_request.exit_price, exit_request.exit_date)
        return TradeExitResponse(success=True, trade=TradeOut.model_validate(trade), pnl=pnl)
    except JournalError as e:
        raise journal_http_error(e)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to exit trade: {str(e)}"
        )

@router.delete("/{trade_id}")
async def delete_trade(
    trade_id: int,
    service: TradeService = Depends(get_trade_service)
):
    """Delete a trade (charges, nested records and tag links go with it)"""
    try:
        service.delete_trade(trade_id)
        return {"status": "success", "message": "Trade deleted successfully"}
    except JournalError as e:
        raise journal_http_error(e)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to delete trade: {str(e)}"
        )
