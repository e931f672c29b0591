"""Tests for the fill normalizer: numeric parsing, sides, attribution, account state, deposits."""

import math

import pytest

from conftest import BUILDER, raw_fill
from ledger_core.contracts import PositionSide, Side
from ledger_core.normalizer import (
    is_attributed_fill,
    normalize_fill,
    normalize_fills,
    parse_account_state,
    parse_deposits,
    parse_float,
    parse_side,
)


class TestParseFloat:
    @pytest.mark.parametrize(
        "value,expected",
        [("1.5", 1.5), (2, 2.0), ("-0.25", -0.25), ("abc", 0.0), (None, 0.0), ("", 0.0), ("nan", 0.0), ("inf", 0.0), (True, 0.0)],
    )
    def test_values(self, value, expected) -> None:
        assert parse_float(value) == expected

    def test_default(self) -> None:
        assert parse_float("bad", default=-1.0) == -1.0


class TestParseSide:
    def test_exchange_codes(self) -> None:
        assert parse_side("B") is Side.BUY
        assert parse_side("A") is Side.SELL

    def test_words(self) -> None:
        assert parse_side("buy") is Side.BUY
        assert parse_side("Sell") is Side.SELL

    def test_unknown_is_sell(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level("WARNING", logger="ledger.normalizer"):
            assert parse_side("?") is Side.SELL
        assert "Unknown fill side" in caplog.text


class TestAttribution:
    def test_builder_fee_attributes(self) -> None:
        assert is_attributed_fill({"builderFee": "0.01"}, "0xother")

    def test_target_match_is_exact(self) -> None:
        assert is_attributed_fill({"builder": BUILDER}, BUILDER)
        assert not is_attributed_fill({"builder": BUILDER.upper()}, BUILDER)

    def test_target_mismatch(self) -> None:
        assert not is_attributed_fill({"builder": "0xsomeone"}, BUILDER)

    def test_no_target_any_builder(self) -> None:
        assert is_attributed_fill({"builder": "0xsomeone"}, "")
        assert not is_attributed_fill({}, "")

    def test_zero_builder_fee_not_attributed(self) -> None:
        assert not is_attributed_fill({"builderFee": "0"}, BUILDER)


class TestNormalizeFill:
    def test_fields(self) -> None:
        t = normalize_fill(raw_fill(1_000, "B", 100.0, 2.5, closed_pnl=3.0, fee=0.1, builder=BUILDER, tid=77))
        assert t.time_ms == 1_000
        assert t.coin == "BTC"
        assert t.side is Side.BUY
        assert t.px == 100.0
        assert t.sz == 2.5
        assert t.notional == 250.0
        assert t.closed_pnl == 3.0
        assert t.fee == 0.1
        assert t.builder == BUILDER
        assert t.is_attributed
        assert t.trade_id == "77"
        assert t.signed_size == 2.5

    def test_malformed_numbers_default_to_zero(self, caplog: pytest.LogCaptureFixture) -> None:
        fill = {"coin": "ETH", "px": "oops", "sz": None, "side": "A", "time": "123", "fee": "x"}
        with caplog.at_level("WARNING", logger="ledger.normalizer"):
            t = normalize_fill(fill)
        assert t.px == 0.0
        assert t.sz == 0.0
        assert t.fee == 0.0
        assert t.notional == 0.0
        assert t.time_ms == 123
        assert "invalid px/sz" in caplog.text

    def test_trade_id_falls_back_to_hash(self) -> None:
        t = normalize_fill({"coin": "BTC", "px": "1", "sz": "1", "side": "B", "time": 1, "hash": "0xh"})
        assert t.tid is None
        assert t.trade_id == "0xh"

    def test_trade_id_without_tid_or_hash_is_distinct(self) -> None:
        first = normalize_fill({"coin": "BTC", "px": "10", "sz": "1", "side": "B", "time": 1})
        second = normalize_fill({"coin": "BTC", "px": "12", "sz": "1", "side": "A", "time": 2})
        assert first.trade_id
        assert second.trade_id
        assert first.trade_id != second.trade_id

    def test_normalize_fills_none(self) -> None:
        assert normalize_fills(None) == []

    def test_order_preserved(self) -> None:
        fills = [raw_fill(3, "B", 1, 1), raw_fill(1, "A", 1, 1)]
        assert [t.time_ms for t in normalize_fills(fills)] == [3, 1]


class TestAccountState:
    def test_parse(self, account_state) -> None:
        state = parse_account_state(account_state)
        assert state.account_value == 50_000.0
        assert state.withdrawable == 48_000.0
        assert state.total_margin_used == 1200.5
        assert len(state.positions) == 1
        pos = state.positions[0]
        assert pos.coin == "BTC"
        assert pos.size == 0.5
        assert pos.side is PositionSide.LONG
        assert pos.leverage == 25.0
        assert pos.liquidation_px == 45_000.0
        assert state.unrealized_pnl == 250.0

    def test_none_is_empty(self) -> None:
        state = parse_account_state(None)
        assert state.account_value == 0.0
        assert state.positions == ()
        assert state.unrealized_pnl == 0.0

    def test_missing_liquidation_px(self) -> None:
        state = parse_account_state({"assetPositions": [{"position": {"coin": "ETH", "szi": "-1", "liquidationPx": None}}]})
        assert state.positions[0].liquidation_px is None
        assert state.positions[0].side is PositionSide.SHORT


class TestDeposits:
    def test_keeps_positive_deposits_and_transfers(self) -> None:
        updates = [
            {"time": 1, "hash": "0x1", "delta": {"type": "deposit", "usdc": "100"}},
            {"time": 2, "hash": "0x2", "delta": {"type": "withdraw", "usdc": "50"}},
            {"time": 3, "hash": "0x3", "delta": {"type": "internalTransfer", "usdc": "25.5"}},
            {"time": 4, "hash": "0x4", "delta": {"type": "deposit", "usdc": "0"}},
        ]
        deposits = parse_deposits(updates)
        assert [d.tx_hash for d in deposits] == ["0x1", "0x3"]
        assert [d.kind for d in deposits] == ["deposit", "internalTransfer"]
        assert math.isclose(sum(d.amount for d in deposits), 125.5)

    def test_flat_shape(self) -> None:
        deposits = parse_deposits([{"time": 9, "hash": "0x9", "type": "deposit", "usdc": "10"}])
        assert deposits[0].amount == 10.0
        assert deposits[0].time_ms == 9

    def test_none(self) -> None:
        assert parse_deposits(None) == []
