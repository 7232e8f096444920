import math
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union
from sqlalchemy.orm import Session
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from loguru import logger
from fastapi import Depends

from app.core.config import settings
from app.core.database import get_db
from app.core.errors import ValidationError, NotFoundError, AlreadyClosedError, ConflictError
from app.models.trade import Trade, Charge, OptionsTrade, HedgePosition
from app.models.tag import StrategyTag, EmotionalTag, MarketTag
from app.models.enums import InstrumentType, ChargeType, TagKind
from app.schemas.calculations import ChargeBreakdown, ChargeRates, LegInput, CombinedPnL
from app.schemas.trading import (
    TradeCreate, TradeUpdate, TradeFilters, ChargesInput, OptionsTradeInput, HedgePositionInput, TagCreate
)
from app.services.capital_service import CapitalService
from app.services.charge_calculator import (
    calculate_charges, build_charge_rows, default_charge_rates, zero_charges, round_currency
)
from app.services.pnl_calculator import (
    calculate_pnl, calculate_hedge_pnl, calculate_combined_pnl, calculate_equity_pnl,
    calculate_risk_reward, calculate_holding_duration, to_naive_utc
)

TAG_MODELS = {
    TagKind.STRATEGY: StrategyTag,
    TagKind.EMOTIONAL: EmotionalTag,
    TagKind.MARKET: MarketTag,
}

TAG_FIELDS = {
    "strategy_tag_ids": ("strategy_tags", TagKind.STRATEGY),
    "emotional_tag_ids": ("emotional_tags", TagKind.EMOTIONAL),
    "market_tag_ids": ("market_tags", TagKind.MARKET),
}

REQUIRED_FIELDS = ("symbol", "trade_type", "instrument", "position", "quantity", "entry_price", "entry_date")

CHARGE_FIELDS = {
    ChargeType.BROKERAGE: "brokerage",
    ChargeType.STT: "stt",
    ChargeType.EXCHANGE: "exchange",
    ChargeType.SEBI: "sebi",
    ChargeType.STAMP_DUTY: "stamp_duty",
}

def parse_exit_date(value: Union[str, datetime, None]) -> datetime:
    """Parse an ISO 8601 exit timestamp into naive UTC"""
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if not value or not isinstance(value, str):
        raise ValidationError("Invalid exit date format", field="exit_date")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return to_naive_utc(datetime.fromisoformat(text))
    except ValueError:
        raise ValidationError("Invalid exit date format", field="exit_date", details={"value": value})

def breakdown_from_rows(rows: List[Charge]) -> ChargeBreakdown:
    """Rebuild a charge breakdown from stored line items; GST only counts towards the total"""
    values = {field: 0.0 for field in CHARGE_FIELDS.values()}
    total = 0.0
    for row in rows:
        field = CHARGE_FIELDS.get(row.charge_type)
        if field:
            values[field] += row.amount
        total += row.amount
    return ChargeBreakdown(total=round_currency(total), **values)

def _manual_charge_rows(charges: ChargesInput, base_amount: float) -> List[Dict]:
    return [
        {"charge_type": ChargeType.BROKERAGE, "rate": 0.0, "base_amount": base_amount,
         "amount": charges.brokerage, "description": "Brokerage charges"},
        {"charge_type": ChargeType.STT, "rate": 0.0, "base_amount": base_amount,
         "amount": charges.stt, "description": "Securities Transaction Tax"},
        {"charge_type": ChargeType.EXCHANGE, "rate": 0.0, "base_amount": base_amount,
         "amount": charges.exchange, "description": "Exchange charges"},
        {"charge_type": ChargeType.SEBI, "rate": 0.0, "base_amount": base_amount,
         "amount": charges.sebi, "description": "SEBI charges"},
        {"charge_type": ChargeType.STAMP_DUTY, "rate": 0.0, "base_amount": base_amount,
         "amount": charges.stamp_duty, "description": "Stamp duty"},
        {"charge_type": ChargeType.GST, "rate": 0.0, "base_amount": charges.brokerage,
         "amount": charges.gst, "description": "GST on brokerage"},
    ]

class TradeService:
    def __init__(self, db: Session):
        self.db = db
        self.capital_service = CapitalService(db)

    # ---------- reads ----------

    def get_trade(self, trade_id: int) -> Trade:
        trade = self.db.query(Trade).filter(Trade.id == trade_id).first()
        if not trade:
            raise NotFoundError("Trade not found", {"trade_id": trade_id})
        return trade

    def list_trades(self, filters: Optional[TradeFilters] = None, page: int = 1, limit: int = 50) -> Dict:
        """Trades matching the filters, sorted and paginated"""
        filters = filters or TradeFilters()
        page = max(page, 1)
        limit = max(limit, 1)
        query = self.db.query(Trade)

        if filters.search:
            pattern = f"%{filters.search}%"
            query = query.filter(or_(Trade.symbol.ilike(pattern), Trade.notes.ilike(pattern)))
        if filters.instrument:
            query = query.filter(Trade.instrument == filters.instrument)
        if filters.position:
            query = query.filter(Trade.position == filters.position)
        if filters.trade_type:
            query = query.filter(Trade.trade_type == filters.trade_type)
        if filters.status == "open":
            query = query.filter(Trade.exit_price.is_(None))
        elif filters.status == "closed":
            query = query.filter(Trade.exit_price.isnot(None))
        if filters.date_from:
            query = query.filter(Trade.entry_date >= to_naive_utc(filters.date_from))
        if filters.date_to:
            query = query.filter(Trade.entry_date <= to_naive_utc(filters.date_to))

        total = query.count()
        column = getattr(Trade, filters.sort_by)
        order = column.asc() if filters.sort_order == "asc" else column.desc()
        trades = query.order_by(order, Trade.id.desc()).offset((page - 1) * limit).limit(limit).all()

        return {
            "trades": trades,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit,
            },
        }

    def combined_pnl(self, trade: Trade) -> Optional[CombinedPnL]:
        """Main leg plus closed hedge leg, None while the trade is open"""
        if trade.is_open:
            return None

        main = LegInput(
            entry_value=trade.entry_value,
            exit_value=trade.exit_value,
            charges=breakdown_from_rows(trade.charges),
            position=trade.position,
        )
        hedge = None
        if trade.hedge_position is not None and trade.hedge_position.exit_price is not None:
            hedge = LegInput(
                entry_value=trade.hedge_position.entry_value,
                exit_value=trade.hedge_position.exit_value,
                charges=breakdown_from_rows(trade.hedge_position.charges),
                position=trade.hedge_position.position,
            )
        return calculate_combined_pnl(main, hedge)

    # ---------- tags ----------

    def list_tags(self, kind: TagKind) -> List:
        model = TAG_MODELS[TagKind(kind)]
        return self.db.query(model).order_by(model.name.asc()).all()

    def create_tag(self, kind: TagKind, data: TagCreate):
        model = TAG_MODELS[TagKind(kind)]
        try:
            tag = model(name=data.name, color=data.color, description=data.description, is_active=True)
            self.db.add(tag)
            self.db.commit()
            self.db.refresh(tag)
            return tag
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(f"A {TagKind(kind).value} tag named '{data.name}' already exists",
                                {"name": data.name})

    def _resolve_tags(self, kind: TagKind, tag_ids: List[int]) -> List:
        if not tag_ids:
            return []
        model = TAG_MODELS[kind]
        tags = self.db.query(model).filter(model.id.in_(tag_ids)).all()
        missing = sorted(set(tag_ids) - {tag.id for tag in tags})
        if missing:
            raise ValidationError(f"Unknown {kind.value} tag ids: {missing}", field=f"{kind.value}_tag_ids")
        return tags

    # ---------- derived fields ----------

    def _rates_for(self, trade: Trade) -> ChargeRates:
        rates = default_charge_rates()
        if trade.custom_brokerage and trade.brokerage_type and trade.brokerage_value is not None:
            rates = rates.with_overrides(
                {"brokerage": {"type": trade.brokerage_type, "value": trade.brokerage_value}}
            )
        return rates

    def _is_exempt(self, instrument: InstrumentType) -> bool:
        return settings.equity_charges_exempt and instrument == InstrumentType.EQUITY

    def _recompute(self, trade: Trade, manual_charges: Optional[ChargesInput] = None,
                   reopened: bool = False) -> ChargeBreakdown:
        """Recompute every derived field of the trade from its stored inputs"""
        trade.entry_value = round_currency(trade.quantity * trade.entry_price)

        trade.risk_amount = (
            round_currency(abs(trade.entry_price - trade.stop_loss) * trade.quantity)
            if trade.stop_loss else None
        )
        trade.reward_amount = (
            round_currency(abs(trade.target - trade.entry_price) * trade.quantity)
            if trade.target else None
        )
        trade.risk_reward_ratio = calculate_risk_reward(trade.entry_price, trade.stop_loss, trade.target)

        if trade.is_open:
            trade.exit_date = None
            trade.exit_value = None
            trade.turnover = trade.entry_value
            trade.gross_pnl = None
            trade.net_pnl = None
            trade.percentage_return = None
            trade.holding_duration = None
            if manual_charges is not None:
                trade.charges = [Charge(**row) for row in _manual_charge_rows(manual_charges, trade.entry_value)]
            elif reopened:
                trade.charges = []
            breakdown = breakdown_from_rows(trade.charges)
            trade.total_charges = breakdown.total if trade.charges else None
            return breakdown

        trade.exit_value = round_currency(trade.quantity * trade.exit_price)
        trade.turnover = round_currency(trade.entry_value + trade.exit_value)

        exempt = False
        if manual_charges is not None:
            rows = _manual_charge_rows(manual_charges, trade.turnover)
            trade.charges = [Charge(**row) for row in rows]
            breakdown = breakdown_from_rows(trade.charges)
        else:
            exempt = self._is_exempt(trade.instrument)
            rates = self._rates_for(trade)
            if exempt:
                breakdown = zero_charges()
            else:
                breakdown = calculate_charges(
                    trade.entry_value, trade.exit_value, trade.instrument, trade.position, rates
                )
            rows = build_charge_rows(
                breakdown, rates, trade.instrument, trade.position,
                trade.entry_value, trade.exit_value, exempt=exempt
            )
            trade.charges = [Charge(**row) for row in rows]

        if exempt:
            pnl = calculate_equity_pnl(
                trade.entry_price, trade.quantity, trade.exit_price, trade.exit_price, trade.position
            )
        else:
            pnl = calculate_pnl(trade.entry_value, trade.exit_value, breakdown, trade.position)

        trade.total_charges = breakdown.total
        trade.gross_pnl = pnl.gross_pnl
        trade.net_pnl = pnl.net_pnl
        trade.percentage_return = pnl.percentage_return
        trade.holding_duration = calculate_holding_duration(trade.entry_date, trade.exit_date)
        return breakdown

    def _recompute_hedge(self, hedge: HedgePosition) -> None:
        hedge.entry_value = round_currency(hedge.quantity * hedge.entry_price)
        if hedge.exit_price is None:
            hedge.exit_date = None
            hedge.exit_value = None
            hedge.gross_pnl = None
            hedge.net_pnl = None
            hedge.total_charges = None
            hedge.percentage_return = None
            hedge.charges = []
            return

        # Hedge legs are option positions
        hedge.exit_value = round_currency(hedge.quantity * hedge.exit_price)
        rates = default_charge_rates()
        breakdown = calculate_charges(
            hedge.entry_value, hedge.exit_value, InstrumentType.OPTIONS, hedge.position, rates
        )
        hedge.charges = [
            Charge(**row) for row in build_charge_rows(
                breakdown, rates, InstrumentType.OPTIONS, hedge.position, hedge.entry_value, hedge.exit_value
            )
        ]
        pnl = calculate_hedge_pnl(hedge.entry_value, hedge.exit_value, breakdown, hedge.position)
        hedge.total_charges = breakdown.total
        hedge.gross_pnl = pnl.gross_pnl
        hedge.net_pnl = pnl.net_pnl
        hedge.percentage_return = pnl.percentage_return

    # ---------- nested records ----------

    def _validate_hedge(self, data: HedgePositionInput) -> None:
        if data.exit_price is not None and data.exit_date is None:
            raise ValidationError("Hedge exit date is required with a hedge exit price",
                                  field="hedge_position.exit_date")
        if data.exit_date is not None and to_naive_utc(data.exit_date) < to_naive_utc(data.entry_date):
            raise ValidationError("Hedge exit date cannot be before its entry date",
                                  field="hedge_position.exit_date")

    def _sync_hedge(self, trade: Trade, data: HedgePositionInput) -> None:
        """Create the hedge leg if absent, otherwise overwrite all of its fields"""
        hedge = trade.hedge_position
        if hedge is None:
            hedge = HedgePosition()
            trade.hedge_position = hedge
        hedge.position = data.position
        hedge.quantity = data.quantity
        hedge.entry_price = data.entry_price
        hedge.entry_date = to_naive_utc(data.entry_date)
        hedge.exit_price = data.exit_price
        hedge.exit_date = to_naive_utc(data.exit_date) if data.exit_date else None
        hedge.notes = data.notes
        self._recompute_hedge(hedge)

    def _sync_options(self, trade: Trade, data: OptionsTradeInput) -> None:
        options = trade.options_trade
        if options is None:
            options = OptionsTrade()
            trade.options_trade = options
        options.option_type = data.option_type
        options.strike_price = data.strike_price
        options.expiry_date = to_naive_utc(data.expiry_date)
        options.lot_size = data.lot_size
        options.underlying = data.underlying

    def _validate_exit_window(self, entry_date: datetime, exit_price: Optional[float],
                              exit_date: Optional[datetime]) -> None:
        if exit_price is None:
            return
        if exit_date is None:
            raise ValidationError("Exit date is required when an exit price is set", field="exit_date")
        if exit_date < entry_date:
            raise ValidationError(
                "Exit date cannot be before entry date",
                field="exit_date",
                details={"entry_date": entry_date.isoformat(), "exit_date": exit_date.isoformat()},
            )

    # ---------- lifecycle ----------

    def create_trade(self, data: TradeCreate) -> Trade:
        """Record a new open position"""
        if data.capital_pool_id is not None:
            self.capital_service.get_pool(data.capital_pool_id)
        if data.hedge_position is not None:
            self._validate_hedge(data.hedge_position)
        tags = {
            relation: self._resolve_tags(kind, getattr(data, field))
            for field, (relation, kind) in TAG_FIELDS.items()
        }

        try:
            trade = Trade(
                symbol=data.symbol.strip().upper(),
                trade_type=data.trade_type,
                instrument=data.instrument,
                position=data.position,
                quantity=data.quantity,
                entry_price=data.entry_price,
                entry_date=to_naive_utc(data.entry_date),
                stop_loss=data.stop_loss,
                target=data.target,
                confidence_level=data.confidence_level,
                emotional_state=data.emotional_state,
                market_condition=data.market_condition,
                followed_plan=data.followed_plan,
                fomo_trade=data.fomo_trade,
                revenge_trade=data.revenge_trade,
                notes=data.notes,
                is_draft=data.is_draft,
                custom_brokerage=data.custom_brokerage,
                brokerage_type=data.brokerage_type,
                brokerage_value=data.brokerage_value,
                capital_pool_id=data.capital_pool_id,
                **tags,
            )
            if data.options_trade is not None:
                self._sync_options(trade, data.options_trade)
            if data.hedge_position is not None:
                self._sync_hedge(trade, data.hedge_position)
            self._recompute(trade, manual_charges=data.charges)

            self.db.add(trade)
            self.db.flush()
            self.capital_service.reserve_for_trade(trade)

            self.db.commit()
            self.db.refresh(trade)
            logger.info(f"Created trade {trade.id}: {trade.position.value} {trade.quantity} "
                        f"{trade.symbol} @ {trade.entry_price}")
            return trade

        except Exception as e:
            logger.error(f"Error creating trade for {data.symbol}: {e}")
            self.db.rollback()
            raise

    def exit_trade(self, trade_id: int, exit_price: float,
                   exit_date: Union[str, datetime]) -> Tuple[Trade, Dict]:
        """Close an open trade: charges, P&L, holding time and pool settlement in one commit"""
        valid_number = isinstance(exit_price, (int, float)) and not isinstance(exit_price, bool)
        if not valid_number or not math.isfinite(exit_price) or exit_price <= 0:
            raise ValidationError("Exit price must be positive", field="exit_price")
        exit_at = parse_exit_date(exit_date)

        trade = self.get_trade(trade_id)
        if not trade.is_open:
            logger.warning(f"Rejected exit of trade {trade_id}: already closed")
            raise AlreadyClosedError("Trade is already closed",
                                     {"trade_id": trade_id, "exit_price": trade.exit_price})
        self._validate_exit_window(trade.entry_date, exit_price, exit_at)

        try:
            trade.exit_price = float(exit_price)
            trade.exit_date = exit_at
            breakdown = self._recompute(trade)
            self.db.flush()
            self.capital_service.settle_trade(trade)

            self.db.commit()
            self.db.refresh(trade)
            logger.info(f"Exited trade {trade.id} ({trade.symbol}) @ {trade.exit_price}: "
                        f"net P&L {trade.net_pnl}")
            return trade, {
                "gross_pnl": trade.gross_pnl,
                "net_pnl": trade.net_pnl,
                "percentage_return": trade.percentage_return,
                "charges": breakdown,
            }

        except Exception as e:
            logger.error(f"Error exiting trade {trade_id}: {e}")
            self.db.rollback()
            raise

    def update_trade(self, trade_id: int, data: TradeUpdate) -> Trade:
        """Apply an edit and recompute all derived fields from the merged values"""
        trade = self.get_trade(trade_id)
        changes = data.model_dump(exclude_unset=True)
        manual_charges = data.charges if "charges" in changes else None
        options_data = data.options_trade if "options_trade" in changes else None
        hedge_data = data.hedge_position if "hedge_position" in changes else None
        for nested in ("charges", "options_trade", "hedge_position", *TAG_FIELDS):
            changes.pop(nested, None)

        for field in REQUIRED_FIELDS:
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be null", field=field)
        for field in ("entry_date", "exit_date"):
            if changes.get(field) is not None:
                changes[field] = to_naive_utc(changes[field])
        if "exit_price" in changes and changes["exit_price"] is None:
            changes["exit_date"] = None

        merged_entry_date = changes.get("entry_date", trade.entry_date)
        merged_exit_price = changes.get("exit_price", trade.exit_price)
        merged_exit_date = changes.get("exit_date", trade.exit_date)
        self._validate_exit_window(merged_entry_date, merged_exit_price, merged_exit_date)

        previous_pool_id = trade.capital_pool_id
        if "capital_pool_id" in changes and changes["capital_pool_id"] != previous_pool_id:
            if previous_pool_id is not None:
                raise ValidationError("Capital pool cannot be changed once linked", field="capital_pool_id")
            self.capital_service.get_pool(changes["capital_pool_id"])
        if hedge_data is not None:
            self._validate_hedge(hedge_data)
        tags = {
            relation: self._resolve_tags(kind, getattr(data, field))
            for field, (relation, kind) in TAG_FIELDS.items()
            if getattr(data, field) is not None
        }

        was_open = trade.is_open
        try:
            if "symbol" in changes:
                changes["symbol"] = changes["symbol"].strip().upper()
            for field, value in changes.items():
                setattr(trade, field, value)
            for relation, values in tags.items():
                setattr(trade, relation, values)
            if options_data is not None:
                self._sync_options(trade, options_data)
            if hedge_data is not None:
                self._sync_hedge(trade, hedge_data)

            self._recompute(trade, manual_charges=manual_charges, reopened=not was_open and trade.is_open)
            self.db.flush()

            if was_open and trade.is_open:
                # Newly linked pool, resized position or reclassified trade
                self.capital_service.reserve_for_trade(trade)
            if was_open and not trade.is_open:
                self.capital_service.settle_trade(trade)

            self.db.commit()
            self.db.refresh(trade)
            logger.info(f"Updated trade {trade.id} ({trade.symbol}); open={trade.is_open}")
            return trade

        except Exception as e:
            logger.error(f"Error updating trade {trade_id}: {e}")
            self.db.rollback()
            raise

    def delete_trade(self, trade_id: int) -> None:
        """Delete a trade with its charges, nested records and tag links"""
        trade = self.get_trade(trade_id)
        try:
            if trade.capital_pool_id is not None:
                # Ledger entries for the trade are left in place and become deletable
                logger.warning(f"Deleting trade {trade_id} linked to pool {trade.capital_pool_id}; "
                               f"capital transactions are not reversed")
            self.db.delete(trade)
            self.db.commit()
            logger.info(f"Deleted trade {trade_id}")
        except Exception as e:
            logger.error(f"Error deleting trade {trade_id}: {e}")
            self.db.rollback()
            raise

def get_trade_service(db: Session = Depends(get_db)) -> TradeService:
    """Dependency injection for TradeService"""
    return TradeService(db)
