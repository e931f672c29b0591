"""Tests for report orchestration and the leaderboard."""

from unittest.mock import MagicMock

import pytest

from conftest import BUILDER, OTHER, USER, raw_fill
from data import FetchError, StaticDataSource
from ledger_core.contracts import QueryScope
from reports import (
    LedgerQuery,
    QueryValidationError,
    build_deposits_report,
    build_leaderboard,
    build_pnl_report,
    build_positions_report,
    build_trades_report,
    fetch_account,
)


@pytest.fixture
def source(snapshot) -> StaticDataSource:
    return StaticDataSource(fills=snapshot["fills"], states=snapshot["states"], ledger=snapshot["ledger"])


class TestLedgerQuery:
    def test_normalizes_user_and_coin(self) -> None:
        q = LedgerQuery(user="  0xABC ", coin="")
        assert q.user == "0xabc"
        assert q.coin is None

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"user": ""},
            {"user": "0x1", "cap_capital": 0},
            {"user": "0x1", "cap_capital": -5},
            {"user": "0x1", "from_ms": 10, "to_ms": 5},
        ],
    )
    def test_validation(self, kwargs) -> None:
        with pytest.raises(QueryValidationError):
            LedgerQuery(**kwargs).validate()

    def test_validation_error_is_value_error(self) -> None:
        assert issubclass(QueryValidationError, ValueError)


def test_fetch_account_runs_both_fetches(source) -> None:
    account = fetch_account(source, USER)
    assert len(account.fills) == 6
    assert account.state.account_value == 50_000.0


def test_fetch_error_propagates() -> None:
    failing = MagicMock()
    failing.fetch_user_fills.side_effect = FetchError("down", 503)
    failing.fetch_account_state.return_value = None
    with pytest.raises(FetchError):
        build_pnl_report(failing, LedgerQuery(user=USER))


class TestPnlReport:
    def test_loose(self, source) -> None:
        report = build_pnl_report(source, LedgerQuery(user=USER), BUILDER)
        assert report.pnl.realized_pnl == 250.0
        assert report.pnl.unrealized_pnl == 250.0
        assert report.lifecycles.total == 3
        assert report.lifecycles.open == 1
        assert report.lifecycles.tainted == 1

    def test_strict(self, source) -> None:
        report = build_pnl_report(source, LedgerQuery(user=USER, attribution_only=True), BUILDER)
        assert report.pnl.realized_pnl == 150.0
        assert report.pnl.tainted
        assert report.lifecycles.total == 1
        d = report.to_dict()
        assert d["lifecycles"]["tainted"] == 1
        assert d["attribution_only"] is True

    def test_validation_runs_before_fetch(self) -> None:
        failing = MagicMock()
        with pytest.raises(QueryValidationError):
            build_pnl_report(failing, LedgerQuery(user=""))
        failing.fetch_user_fills.assert_not_called()


class TestTradesReport:
    def test_most_recent_first(self, source) -> None:
        report = build_trades_report(source, LedgerQuery(user=USER), BUILDER)
        times = [t.time_ms for t in report.trades]
        assert times == sorted(times, reverse=True)
        assert report.stats.trade_count == 6
        assert report.total_pnl == 250.0
        assert list(report.by_coin) == ["BTC", "ETH", "SOL"]

    def test_scope_keeps_taint_from_full_history(self, source) -> None:
        # The BTC close at 2000 belongs to an episode that opened at 1000.
        report = build_trades_report(
            source, LedgerQuery(user=USER, from_ms=1_500, attribution_only=True), BUILDER
        )
        assert [t.coin for t in report.trades] == ["ETH", "ETH", "ETH"]

    def test_to_dict(self, source) -> None:
        d = build_trades_report(source, LedgerQuery(user=USER, coin="ETH"), BUILDER).to_dict()
        assert d["total_volume"] == pytest.approx(1_250.0)
        assert len(d["trades"]) == 3
        assert d["trades"][0]["side"] == "A"


class TestPositionsReport:
    def test_snapshots_and_lifecycles(self, source) -> None:
        report = build_positions_report(source, LedgerQuery(user=USER, coin="ETH"), BUILDER, include_lifecycles=True)
        assert len(report.snapshots) == 3
        assert report.snapshots[0].net_size == 0.0
        assert [lc.coin for lc in report.lifecycles] == ["ETH"]
        d = report.to_dict()
        assert d["current"]["account_value"] == 50_000.0
        assert len(d["lifecycles"]) == 1

    def test_without_lifecycles(self, source) -> None:
        report = build_positions_report(source, LedgerQuery(user=USER), BUILDER)
        assert report.lifecycles is None
        assert "lifecycles" not in report.to_dict()


def test_deposits_report(source) -> None:
    report = build_deposits_report(source, LedgerQuery(user=USER))
    assert [d.tx_hash for d in report.deposits] == ["0xd3", "0xd1"]
    assert report.total == 5_250.0
    assert report.count == 2

    windowed = build_deposits_report(source, LedgerQuery(user=USER, from_ms=600))
    assert windowed.total == 250.0


class TestLeaderboard:
    def test_ranked_by_pnl(self, source) -> None:
        entries = build_leaderboard(source, [USER, OTHER], target_builder=BUILDER)
        assert [e.user for e in entries] == [USER, OTHER]
        assert [e.rank for e in entries] == [1, 2]
        assert entries[0].metric_value == 250.0

    def test_ranked_by_return_pct(self, source) -> None:
        entries = build_leaderboard(source, [USER, OTHER], metric="returnPct", target_builder=BUILDER)
        # OTHER: 5 on 1000 equity -> 995 capital; USER: 250 on the 10k cap
        assert entries[0].user == USER
        assert entries[0].return_pct == pytest.approx(2.5)
        assert entries[1].return_pct == pytest.approx(5 / 995 * 100)

    def test_strict_drops_tainted(self, source) -> None:
        entries = build_leaderboard(source, [USER, OTHER], attribution_only=True, target_builder=BUILDER)
        assert [e.user for e in entries] == [OTHER]

    def test_exclude_tainted_in_loose_mode(self) -> None:
        fills = {
            "0xa": [raw_fill(1, "B", 10.0, 1.0), raw_fill(2, "A", 11.0, 1.0, builder=BUILDER)],
            "0xb": [raw_fill(1, "B", 10.0, 1.0)],
        }
        source = StaticDataSource(fills=fills)
        # loose-mode PnL is never flagged tainted, so both accounts stay
        entries = build_leaderboard(source, ["0xa", "0xb"], exclude_tainted=True, target_builder=BUILDER)
        assert len(entries) == 2
        by_user = {e.user: e for e in entries}
        assert by_user["0xa"].lifecycles.tainted == 1
        assert by_user["0xb"].lifecycles.open == 1

    def test_entry_to_dict(self, source) -> None:
        (entry,) = build_leaderboard(source, [OTHER], target_builder=BUILDER)
        d = entry.to_dict()
        assert d["lifecycles"] == {"open": 0, "closed": 1, "tainted": 0, "total": 1}
        assert d["attributed_trade_count"] == 2

    def test_failing_account_is_dropped(self, source) -> None:
        dropped: list[str] = []

        class Flaky:
            def fetch_user_fills(self, user):
                if user == OTHER:
                    raise FetchError("down", 500)
                return source.fetch_user_fills(user)

            def fetch_account_state(self, user):
                return source.fetch_account_state(user)

            def fetch_ledger_updates(self, user):
                return []

        entries = build_leaderboard(
            Flaky(), [USER, OTHER], target_builder=BUILDER, on_drop=lambda user, exc: dropped.append(user)
        )
        assert [e.user for e in entries] == [USER]
        assert dropped == [OTHER]

    def test_unknown_metric(self, source) -> None:
        with pytest.raises(QueryValidationError):
            build_leaderboard(source, [USER], metric="sharpe")

    def test_dedupes_users(self, source) -> None:
        entries = build_leaderboard(source, [USER, USER.upper(), " "], metric="tradeCount")
        assert len(entries) == 1
        assert entries[0].metric_value == 6.0

    def test_scope_applies(self, source) -> None:
        entries = build_leaderboard(source, [USER], metric="volume", scope=QueryScope(coin="SOL"))
        assert entries[0].volume == pytest.approx(60.0)
