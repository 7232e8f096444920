"""
Tests for the trade lifecycle: entry, exit, edits, deletion and the capital
pool side effects of each.
"""
from datetime import datetime

import pytest
from pydantic import ValidationError as SchemaValidationError

from app.core.errors import ValidationError, NotFoundError, AlreadyClosedError, ConflictError, \
    InsufficientBalanceError
from app.models.capital import CapitalTransaction
from app.models.enums import ChargeType, PositionType, TagKind, TransactionType
from app.models.trade import Charge, Trade
from app.schemas.trading import ChargesInput, TagCreate, TradeFilters, TradeUpdate
from app.services.trade_service import breakdown_from_rows

EXIT_DATE = "2024-01-01T15:30:00Z"

def _ledger(db, pool_id):
    return [
        (t.transaction_type, t.amount)
        for t in db.query(CapitalTransaction)
        .filter(CapitalTransaction.pool_id == pool_id)
        .order_by(CapitalTransaction.id)
    ]

class TestCreate:
    def test_open_trade_has_no_exit_values(self, make_trade):
        trade = make_trade(symbol=" reliance ", stop_loss=95, target=110)

        assert trade.symbol == "RELIANCE"
        assert trade.is_open
        assert trade.entry_value == 1000
        assert trade.turnover == 1000
        assert trade.exit_value is None
        assert trade.gross_pnl is None and trade.net_pnl is None
        assert trade.percentage_return is None and trade.holding_duration is None
        assert trade.risk_amount == 50
        assert trade.reward_amount == 100
        assert trade.risk_reward_ratio == 2.0

    def test_long_short_stored_as_buy_sell(self, make_trade):
        assert make_trade(position="LONG").position == PositionType.BUY
        assert make_trade(position="short").position == PositionType.SELL

    def test_manual_charges_recorded_on_entry(self, make_trade):
        trade = make_trade(charges=ChargesInput(brokerage=20, stt=1.5, gst=3.6))

        assert trade.total_charges == pytest.approx(25.1)
        assert len(trade.charges) == 6
        gst = next(c for c in trade.charges if c.charge_type == ChargeType.GST)
        assert gst.base_amount == 20

    def test_unknown_pool_is_rejected(self, trade_service, make_trade):
        with pytest.raises(NotFoundError):
            make_trade(capital_pool_id=42)
        assert trade_service.db.query(Trade).count() == 0

    def test_entry_reserves_pool_capital(self, db, make_trade, pools):
        equity = pools["EQUITY"]
        trade = make_trade(capital_pool_id=equity.id)

        assert equity.current_amount == 59000
        assert equity.total_invested == 1000
        assert _ledger(db, equity.id) == [(TransactionType.TRANSFER_OUT, 1000)]
        assert trade.capital_pool_id == equity.id

    def test_entry_larger_than_pool_is_rejected(self, db, make_trade, pools):
        with pytest.raises(InsufficientBalanceError):
            make_trade(instrument="FUTURES", quantity=50, entry_price=1000, capital_pool_id=pools["FNO"].id)

        assert db.query(Trade).count() == 0
        assert pools["FNO"].current_amount == 40000

    def test_intraday_options_do_not_reserve(self, db, make_trade, pools):
        fno = pools["FNO"]
        make_trade(instrument="OPTIONS", trade_type="INTRADAY", quantity=50, capital_pool_id=fno.id)

        assert fno.current_amount == 40000
        assert _ledger(db, fno.id) == []

class TestTags:
    def test_create_and_attach(self, trade_service, make_trade):
        tag = trade_service.create_tag(TagKind.STRATEGY, TagCreate(name="Breakout"))
        trade = make_trade(strategy_tag_ids=[tag.id])

        assert [t.name for t in trade.strategy_tags] == ["Breakout"]
        assert [t.name for t in trade_service.list_tags(TagKind.STRATEGY)] == ["Breakout"]
        assert trade_service.list_tags(TagKind.MARKET) == []

    def test_duplicate_name_conflicts(self, trade_service):
        trade_service.create_tag(TagKind.EMOTIONAL, TagCreate(name="Calm"))
        with pytest.raises(ConflictError):
            trade_service.create_tag(TagKind.EMOTIONAL, TagCreate(name="Calm"))

    def test_unknown_tag_id(self, make_trade):
        with pytest.raises(ValidationError) as exc:
            make_trade(market_tag_ids=[999])
        assert exc.value.field == "market_tag_ids"

    def test_update_replaces_or_keeps_tags(self, trade_service, make_trade):
        first = trade_service.create_tag(TagKind.STRATEGY, TagCreate(name="Breakout"))
        second = trade_service.create_tag(TagKind.STRATEGY, TagCreate(name="Pullback"))
        trade = make_trade(strategy_tag_ids=[first.id])

        trade = trade_service.update_trade(trade.id, TradeUpdate(notes="kept"))
        assert [t.id for t in trade.strategy_tags] == [first.id]

        trade = trade_service.update_trade(trade.id, TradeUpdate(strategy_tag_ids=[second.id]))
        assert [t.id for t in trade.strategy_tags] == [second.id]

        trade = trade_service.update_trade(trade.id, TradeUpdate(strategy_tag_ids=[]))
        assert trade.strategy_tags == []

class TestExit:
    def test_equity_exit_has_no_charges(self, trade_service, make_trade):
        trade = make_trade()
        trade, pnl = trade_service.exit_trade(trade.id, 110, EXIT_DATE)

        assert trade.exit_value == 1100
        assert trade.turnover == 2100
        assert trade.gross_pnl == 100
        assert trade.net_pnl == 100
        assert trade.percentage_return == 10.0
        assert trade.total_charges == 0
        assert trade.holding_duration == 375
        assert len(trade.charges) == 5
        assert all(c.amount == 0 for c in trade.charges)
        assert pnl["net_pnl"] == 100
        assert pnl["charges"].total == 0

    def test_futures_exit_charges(self, trade_service, make_trade):
        trade = make_trade(instrument="FUTURES", quantity=50, entry_price=1000)
        trade, pnl = trade_service.exit_trade(trade.id, 1040, EXIT_DATE)

        assert trade.total_charges == pytest.approx(44.92)
        assert sum(c.amount for c in trade.charges) == pytest.approx(trade.total_charges)
        assert trade.gross_pnl == 2000
        assert trade.net_pnl == pytest.approx(1955.08)
        assert trade.percentage_return == pytest.approx(3.91)
        assert pnl["charges"].brokerage == 40

    def test_custom_brokerage_override(self, trade_service, make_trade):
        trade = make_trade(
            instrument="FUTURES", quantity=50, entry_price=1000,
            custom_brokerage=True, brokerage_type="flat", brokerage_value=10,
        )
        trade, pnl = trade_service.exit_trade(trade.id, 1040, EXIT_DATE)

        assert pnl["charges"].brokerage == 20
        assert trade.total_charges == pytest.approx(24.92)

    def test_double_exit_is_rejected(self, trade_service, make_trade):
        trade = make_trade()
        trade_service.exit_trade(trade.id, 110, EXIT_DATE)

        with pytest.raises(AlreadyClosedError):
            trade_service.exit_trade(trade.id, 120, EXIT_DATE)

        trade = trade_service.get_trade(trade.id)
        assert trade.exit_price == 110
        assert trade.net_pnl == 100

    @pytest.mark.parametrize("exit_price,exit_date,field", [
        (0, EXIT_DATE, "exit_price"),
        (-5, EXIT_DATE, "exit_price"),
        (float("nan"), EXIT_DATE, "exit_price"),
        (110, "not-a-date", "exit_date"),
        (110, "2023-12-31T10:00:00Z", "exit_date"),
    ])
    def test_invalid_exit_leaves_trade_open(self, trade_service, make_trade, exit_price, exit_date, field):
        trade = make_trade()

        with pytest.raises(ValidationError) as exc:
            trade_service.exit_trade(trade.id, exit_price, exit_date)

        assert exc.value.field == field
        assert trade_service.get_trade(trade.id).is_open

    def test_exit_unknown_trade(self, trade_service):
        with pytest.raises(NotFoundError):
            trade_service.exit_trade(999, 110, EXIT_DATE)

    def test_profitable_exit_settles_pool(self, db, capital_service, trade_service, make_trade, pools):
        fno = pools["FNO"]
        trade = make_trade(instrument="FUTURES", quantity=30, entry_price=1000, capital_pool_id=fno.id)
        assert fno.current_amount == 10000
        assert fno.total_invested == 30000

        trade, _ = trade_service.exit_trade(trade.id, 1040, EXIT_DATE)

        assert trade.net_pnl == pytest.approx(1157.04)
        assert fno.current_amount == pytest.approx(41157.04)
        assert fno.total_pnl == pytest.approx(1157.04)
        assert fno.total_invested == 0
        assert [t for t, _ in _ledger(db, fno.id)] == [
            TransactionType.TRANSFER_OUT, TransactionType.TRANSFER_IN, TransactionType.PROFIT
        ]

        # the ledger alone reproduces the balance
        replayed = capital_service.recalculate_pool_by_id(fno.id)
        assert replayed.current_amount == pytest.approx(41157.04)

    def test_losing_exit_posts_loss(self, db, trade_service, make_trade, pools):
        equity = pools["EQUITY"]
        trade = make_trade(capital_pool_id=equity.id)
        trade_service.exit_trade(trade.id, 90, EXIT_DATE)

        assert equity.current_amount == 59900
        assert equity.total_pnl == -100
        assert _ledger(db, equity.id) == [
            (TransactionType.TRANSFER_OUT, 1000),
            (TransactionType.TRANSFER_IN, 1000),
            (TransactionType.LOSS, 100),
        ]

    def test_flat_exit_posts_no_pnl(self, db, trade_service, make_trade, pools):
        equity = pools["EQUITY"]
        trade = make_trade(capital_pool_id=equity.id)
        trade_service.exit_trade(trade.id, 100, EXIT_DATE)

        assert equity.current_amount == 60000
        assert [t for t, _ in _ledger(db, equity.id)] == [
            TransactionType.TRANSFER_OUT, TransactionType.TRANSFER_IN
        ]

    def test_intraday_options_settle_pnl_only(self, db, trade_service, make_trade, pools):
        fno = pools["FNO"]
        trade = make_trade(instrument="OPTIONS", trade_type="INTRADAY", quantity=50, capital_pool_id=fno.id)
        trade, _ = trade_service.exit_trade(trade.id, 120, EXIT_DATE)

        assert trade.total_charges == pytest.approx(40.53)
        assert trade.net_pnl == pytest.approx(959.47)
        assert fno.current_amount == pytest.approx(40959.47)
        assert [t for t, _ in _ledger(db, fno.id)] == [TransactionType.PROFIT]

class TestHedge:
    HEDGE = {
        "position": "BUY",
        "quantity": 50,
        "entry_price": 100,
        "entry_date": datetime(2024, 1, 1, 9, 20),
        "exit_price": 80,
        "exit_date": datetime(2024, 1, 1, 15, 0),
    }

    def test_combined_pnl_includes_hedge(self, trade_service, make_trade):
        trade = make_trade(
            instrument="FUTURES", quantity=50, entry_price=1000, hedge_position=self.HEDGE,
            options_trade={"option_type": "PUT", "strike_price": 1000,
                           "expiry_date": datetime(2024, 1, 25), "lot_size": 50, "underlying": "NIFTY"},
        )
        assert trade.hedge_position.total_charges == pytest.approx(40.44)
        assert trade.hedge_position.net_pnl == pytest.approx(-1040.44)
        assert trade.options_trade.underlying == "NIFTY"
        assert trade_service.combined_pnl(trade) is None

        trade, _ = trade_service.exit_trade(trade.id, 1040, EXIT_DATE)
        combined = trade_service.combined_pnl(trade)

        assert combined.main_trade.net_pnl == pytest.approx(1955.08)
        assert combined.hedge_trade.net_pnl == pytest.approx(-1040.44)
        assert combined.combined.gross_pnl == 1000
        assert combined.combined.net_pnl == pytest.approx(914.64)
        assert combined.combined.total_charges == pytest.approx(85.36)
        assert combined.combined.percentage_return == pytest.approx(1.66)

    def test_hedge_exit_before_entry(self, make_trade):
        hedge = dict(self.HEDGE, exit_date=datetime(2024, 1, 1, 9, 0))
        with pytest.raises(ValidationError) as exc:
            make_trade(hedge_position=hedge)
        assert exc.value.field == "hedge_position.exit_date"

    def test_update_overwrites_hedge(self, trade_service, make_trade):
        trade = make_trade(hedge_position=self.HEDGE)
        hedge_id = trade.hedge_position.id

        trade = trade_service.update_trade(
            trade.id, TradeUpdate(hedge_position=dict(self.HEDGE, exit_price=None, exit_date=None))
        )

        assert trade.hedge_position.id == hedge_id
        assert trade.hedge_position.net_pnl is None
        assert trade.hedge_position.charges == []

class TestUpdate:
    def test_closing_through_update_settles(self, db, trade_service, make_trade, pools):
        equity = pools["EQUITY"]
        trade = make_trade(capital_pool_id=equity.id)

        trade = trade_service.update_trade(
            trade.id, TradeUpdate(exit_price=110, exit_date=datetime(2024, 1, 1, 15, 30))
        )

        assert trade.net_pnl == 100
        assert trade.holding_duration == 375
        assert equity.current_amount == 60100
        assert [t for t, _ in _ledger(db, equity.id)][-1] == TransactionType.PROFIT

    def test_edit_recomputes_closed_trade(self, trade_service, make_trade):
        trade = make_trade()
        trade_service.exit_trade(trade.id, 110, EXIT_DATE)

        trade = trade_service.update_trade(trade.id, TradeUpdate(quantity=20))

        assert trade.entry_value == 2000
        assert trade.exit_value == 2200
        assert trade.net_pnl == 200
        assert trade.percentage_return == 10.0

    def test_reopening_clears_exit_fields(self, db, trade_service, make_trade):
        trade = make_trade()
        trade_service.exit_trade(trade.id, 110, EXIT_DATE)

        trade = trade_service.update_trade(trade.id, TradeUpdate(exit_price=None))

        assert trade.is_open
        assert trade.exit_date is None
        assert trade.exit_value is None
        assert trade.net_pnl is None
        assert trade.holding_duration is None
        assert trade.charges == []
        assert db.query(Charge).count() == 0

    def test_exit_price_requires_exit_date(self, trade_service, make_trade):
        trade = make_trade()
        with pytest.raises(ValidationError) as exc:
            trade_service.update_trade(trade.id, TradeUpdate(exit_price=110))
        assert exc.value.field == "exit_date"

    def test_required_field_cannot_be_cleared(self, trade_service, make_trade):
        trade = make_trade()
        with pytest.raises(ValidationError) as exc:
            trade_service.update_trade(trade.id, TradeUpdate(quantity=None))
        assert exc.value.field == "quantity"

    def test_linked_pool_cannot_change(self, trade_service, make_trade, pools):
        trade = make_trade(capital_pool_id=pools["EQUITY"].id)
        with pytest.raises(ValidationError):
            trade_service.update_trade(trade.id, TradeUpdate(capital_pool_id=pools["TOTAL"].id))

    def test_linking_open_trade_reserves_capital(self, trade_service, make_trade, pools):
        equity = pools["EQUITY"]
        trade = make_trade()

        trade_service.update_trade(trade.id, TradeUpdate(capital_pool_id=equity.id))

        assert equity.current_amount == 59000
        assert equity.total_invested == 1000

    def test_update_unknown_trade(self, trade_service):
        with pytest.raises(NotFoundError):
            trade_service.update_trade(999, TradeUpdate(notes="x"))

class TestListAndDelete:
    def test_filters_and_pagination(self, trade_service, make_trade):
        first = make_trade(symbol="INFY", notes="gap up")
        make_trade(symbol="TCS", position="SELL")
        make_trade(symbol="HDFCBANK", instrument="FUTURES")
        trade_service.exit_trade(first.id, 110, EXIT_DATE)

        def symbols(**kwargs):
            page = trade_service.list_trades(TradeFilters(**kwargs))
            return sorted(t.symbol for t in page["trades"])

        assert symbols(status="closed") == ["INFY"]
        assert symbols(status="open") == ["HDFCBANK", "TCS"]
        assert symbols(search="gap") == ["INFY"]
        assert symbols(position="SHORT") == ["TCS"]
        assert symbols(instrument="FUTURES") == ["HDFCBANK"]

        page = trade_service.list_trades(TradeFilters(sort_by="symbol", sort_order="asc"), page=2, limit=2)
        assert [t.symbol for t in page["trades"]] == ["TCS"]
        assert page["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}

    def test_delete_removes_children(self, db, trade_service, make_trade):
        trade = make_trade(hedge_position=TestHedge.HEDGE)
        trade_service.exit_trade(trade.id, 110, EXIT_DATE)

        trade_service.delete_trade(trade.id)

        assert db.query(Trade).count() == 0
        assert db.query(Charge).count() == 0
        with pytest.raises(NotFoundError):
            trade_service.get_trade(trade.id)

    def test_delete_leaves_ledger_in_place(self, db, trade_service, make_trade, pools):
        equity = pools["EQUITY"]
        trade = make_trade(capital_pool_id=equity.id)

        trade_service.delete_trade(trade.id)

        assert equity.current_amount == 59000
        assert len(_ledger(db, equity.id)) == 1

    def test_delete_unknown_trade(self, trade_service):
        with pytest.raises(NotFoundError):
            trade_service.delete_trade(999)

class TestLedgerConsistency:
    def test_reclosing_does_not_book_pnl_twice(self, db, capital_service, trade_service, make_trade, pools):
        equity = pools["EQUITY"]
        trade = make_trade(capital_pool_id=equity.id)
        trade_service.exit_trade(trade.id, 110, EXIT_DATE)
        assert equity.current_amount == 60100

        trade_service.update_trade(trade.id, TradeUpdate(exit_price=None))
        trade = trade_service.update_trade(
            trade.id, TradeUpdate(exit_price=110, exit_date=datetime(2024, 1, 1, 15, 30))
        )

        assert trade.net_pnl == 100
        assert equity.current_amount == 60100
        assert equity.total_pnl == 100
        assert _ledger(db, equity.id) == [
            (TransactionType.TRANSFER_OUT, 1000),
            (TransactionType.TRANSFER_IN, 1000),
            (TransactionType.PROFIT, 100),
        ]
        assert capital_service.recalculate_pool_by_id(equity.id).current_amount == 60100

    def test_reclassified_trade_releases_reserved_capital(self, db, capital_service, trade_service,
                                                         make_trade, pools):
        fno = pools["FNO"]
        trade = make_trade(instrument="OPTIONS", trade_type="POSITIONAL", capital_pool_id=fno.id)
        assert fno.current_amount == 39000

        trade_service.update_trade(trade.id, TradeUpdate(trade_type="INTRADAY"))
        assert fno.current_amount == 40000
        assert fno.total_invested == 0

        trade, _ = trade_service.exit_trade(trade.id, 100, EXIT_DATE)

        assert trade.net_pnl == pytest.approx(-40.09)
        assert fno.current_amount == pytest.approx(39959.91)
        assert capital_service.reserved_for_trade(trade) == 0
        assert capital_service.recalculate_pool_by_id(fno.id).current_amount == pytest.approx(39959.91)

    def test_resizing_open_trade_adjusts_reservation(self, db, capital_service, trade_service,
                                                     make_trade, pools):
        equity = pools["EQUITY"]
        trade = make_trade(capital_pool_id=equity.id)

        trade_service.update_trade(trade.id, TradeUpdate(quantity=15))
        assert equity.current_amount == 58500
        assert equity.total_invested == 1500

        trade = trade_service.update_trade(trade.id, TradeUpdate(entry_price=80))
        assert trade.entry_value == 1200
        assert equity.current_amount == 58800
        assert equity.total_invested == 1200
        assert capital_service.reserved_for_trade(trade) == 1200

        trade, _ = trade_service.exit_trade(trade.id, 90, EXIT_DATE)

        assert trade.net_pnl == 150
        assert equity.current_amount == 60150
        assert equity.total_invested == 0
        assert capital_service.recalculate_pool_by_id(equity.id).current_amount == 60150

    def test_resize_beyond_pool_balance_is_rejected(self, trade_service, make_trade, pools):
        equity = pools["EQUITY"]
        trade = make_trade(capital_pool_id=equity.id)

        with pytest.raises(InsufficientBalanceError):
            trade_service.update_trade(trade.id, TradeUpdate(quantity=1000))

        assert trade_service.get_trade(trade.id).quantity == 10
        assert equity.current_amount == 59000

class TestNonFiniteInput:
    @pytest.mark.parametrize("field", ["quantity", "entry_price", "stop_loss"])
    @pytest.mark.parametrize("value", [float("nan"), float("inf")])
    def test_trade_numbers_must_be_finite(self, field, value):
        with pytest.raises(SchemaValidationError):
            TradeUpdate(**{field: value})

def test_stored_charges_total_rounds_half_up():
    rows = [Charge(charge_type=ChargeType.BROKERAGE, amount=0.125), Charge(charge_type=ChargeType.GST, amount=0.0)]
    breakdown = breakdown_from_rows(rows)
    assert breakdown.brokerage == 0.125
    assert breakdown.total == 0.13
