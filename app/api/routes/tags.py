from fastapi import APIRouter, Depends, HTTPException, status
from typing import List

from app.core.errors import JournalError, journal_http_error
from app.models.enums import TagKind
from app.schemas.trading import TagCreate, TagOut
from app.services.trade_service import TradeService, get_trade_service

router = APIRouter()

@router.get("/{kind}", response_model=List[TagOut])
async def list_tags(
    kind: TagKind,
    service: TradeService = Depends(get_trade_service)
):
    """List strategy, emotional or market tags"""
    return service.list_tags(kind)

@router.post("/{kind}", response_model=TagOut, status_code=status.HTTP_201_CREATED)
async def create_tag(
    kind: TagKind,
    tag_request: TagCreate,
    service: TradeService = Depends(get_trade_service)
):
    """Create a strategy, emotional or market tag"""
    try:
        return service.create_tag(kind, tag_request)
    except JournalError as e:
        raise journal_http_error(e)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create tag: {str(e)}"
        )
