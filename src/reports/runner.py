"""
Per-account report pipelines: fetch -> normalize -> reconstruct -> filter -> aggregate.

The data source is passed in explicitly; nothing here reads the
environment. Fills and account state for one account are fetched
concurrently and both awaited before the engine runs.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from data.fetcher import LedgerDataSource
from ledger_core.aggregator import (
    CoinBreakdown,
    LifecycleStats,
    PnLPoint,
    TradeStats,
    breakdown_by_coin,
    daily_pnl_series,
    filter_lifecycles,
    filter_snapshots,
    filter_trades,
    filter_trades_for_output,
    lifecycle_stats,
    summarize_trades,
)
from ledger_core.contracts import (
    DEFAULT_CAP_CAPITAL,
    AccountState,
    DepositRecord,
    NormalizedTrade,
    PnLResult,
    PositionLifecycle,
    PositionSnapshot,
    QueryScope,
)
from ledger_core.lifecycle import reconstruct_lifecycles
from ledger_core.normalizer import normalize_fills, parse_account_state, parse_deposits
from ledger_core.pnl import calculate_pnl
from ledger_core.position_history import build_position_history

logger = logging.getLogger("ledger.reports")


class QueryValidationError(ValueError):
    """Raised for a missing user or out-of-range query parameters."""


@dataclass(frozen=True)
class LedgerQuery:
    """One account query. ``cap_capital`` is the already-resolved capital cap."""

    user: str
    coin: str | None = None
    from_ms: int | None = None
    to_ms: int | None = None
    attribution_only: bool = False
    cap_capital: float = DEFAULT_CAP_CAPITAL

    def __post_init__(self) -> None:
        object.__setattr__(self, "user", (self.user or "").strip().lower())
        object.__setattr__(self, "coin", (self.coin or "").strip() or None)

    @property
    def scope(self) -> QueryScope:
        return QueryScope(coin=self.coin, from_ms=self.from_ms, to_ms=self.to_ms)

    def validate(self) -> LedgerQuery:
        if not self.user:
            raise QueryValidationError("user is required")
        if self.cap_capital <= 0:
            raise QueryValidationError(f"max start capital must be positive, got {self.cap_capital}")
        if self.from_ms is not None and self.to_ms is not None and self.from_ms > self.to_ms:
            raise QueryValidationError(f"from_ms ({self.from_ms}) is after to_ms ({self.to_ms})")
        return self


@dataclass
class AccountData:
    """Raw account data after both fetches complete."""

    user: str
    fills: list[dict[str, Any]]
    state: AccountState


@dataclass
class PnLReport:
    pnl: PnLResult
    lifecycles: LifecycleStats

    def to_dict(self) -> dict[str, Any]:
        return {**self.pnl.to_dict(), "lifecycles": self.lifecycles.to_dict()}


@dataclass
class TradesReport:
    user: str
    attribution_only: bool
    trades: list[NormalizedTrade]
    stats: TradeStats
    by_coin: dict[str, CoinBreakdown]
    daily: list[PnLPoint] = field(default_factory=list)

    @property
    def total_volume(self) -> float:
        return self.stats.total_volume

    @property
    def total_pnl(self) -> float:
        return self.stats.total_pnl

    @property
    def total_fees(self) -> float:
        return self.stats.total_fees

    def to_dict(self) -> dict[str, Any]:
        return {
            "user": self.user,
            "attribution_only": self.attribution_only,
            "trades": [t.to_dict() for t in self.trades],
            "total_volume": self.total_volume,
            "total_pnl": self.total_pnl,
            "total_fees": self.total_fees,
            "stats": self.stats.to_dict(),
            "by_coin": {coin: b.to_dict() for coin, b in self.by_coin.items()},
            "daily": [p.to_dict() for p in self.daily],
        }


@dataclass
class PositionsReport:
    user: str
    attribution_only: bool
    snapshots: list[PositionSnapshot]
    state: AccountState
    lifecycles: list[PositionLifecycle] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "user": self.user,
            "attribution_only": self.attribution_only,
            "positions": [s.to_dict() for s in self.snapshots],
            "current": self.state.to_dict(),
        }
        if self.lifecycles is not None:
            out["lifecycles"] = [lc.to_dict() for lc in self.lifecycles]
        return out


@dataclass
class DepositsReport:
    user: str
    deposits: list[DepositRecord]

    @property
    def total(self) -> float:
        return sum(d.amount for d in self.deposits)

    @property
    def count(self) -> int:
        return len(self.deposits)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user": self.user,
            "deposits": [d.to_dict() for d in self.deposits],
            "total_deposits": self.total,
            "deposit_count": self.count,
        }


def fetch_account(source: LedgerDataSource, user: str) -> AccountData:
    """Fetch fills and account state in parallel. FetchError propagates."""
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="ledger-fetch") as pool:
        fills_future = pool.submit(source.fetch_user_fills, user)
        state_future = pool.submit(source.fetch_account_state, user)
        fills = fills_future.result()
        raw_state = state_future.result()
    logger.debug("Fetched %d fills for %s", len(fills), user)
    return AccountData(user=user, fills=fills, state=parse_account_state(raw_state))


def _load(source: LedgerDataSource, query: LedgerQuery, target_builder: str) -> tuple[
    AccountData, list[NormalizedTrade], list[PositionLifecycle]
]:
    query.validate()
    account = fetch_account(source, query.user)
    trades = normalize_fills(account.fills, target_builder)
    lifecycles = reconstruct_lifecycles(trades, target_builder)
    return account, trades, lifecycles


def build_pnl_report(source: LedgerDataSource, query: LedgerQuery, target_builder: str = "") -> PnLReport:
    account, trades, lifecycles = _load(source, query, target_builder)
    result = calculate_pnl(
        trades,
        lifecycles,
        account.state,
        scope=query.scope,
        attribution_only=query.attribution_only,
        cap_capital=query.cap_capital,
        user=query.user,
    )
    relevant = filter_lifecycles(lifecycles, QueryScope(), query.attribution_only)
    return PnLReport(pnl=result, lifecycles=lifecycle_stats(lifecycles, relevant))


def build_trades_report(source: LedgerDataSource, query: LedgerQuery, target_builder: str = "") -> TradesReport:
    """Trades in scope, most recent first.

    Lifecycles are rebuilt over the full history before the scope filter so
    a trade whose episode began outside the window keeps its taint.
    """
    _, trades, lifecycles = _load(source, query, target_builder)
    in_scope = filter_trades(trades, query.scope)
    out = filter_trades_for_output(in_scope, lifecycles, query.attribution_only)
    out.sort(key=lambda t: t.time_ms, reverse=True)
    return TradesReport(
        user=query.user,
        attribution_only=query.attribution_only,
        trades=out,
        stats=summarize_trades(out),
        by_coin=breakdown_by_coin(out),
        daily=daily_pnl_series(out),
    )


def build_positions_report(
    source: LedgerDataSource,
    query: LedgerQuery,
    target_builder: str = "",
    include_lifecycles: bool = False,
) -> PositionsReport:
    account, trades, lifecycles = _load(source, query, target_builder)
    history = build_position_history(trades, target_builder, attribution_only=query.attribution_only)
    return PositionsReport(
        user=query.user,
        attribution_only=query.attribution_only,
        snapshots=filter_snapshots(history, query.scope),
        state=account.state,
        lifecycles=filter_lifecycles(lifecycles, query.scope, query.attribution_only) if include_lifecycles else None,
    )


def build_deposits_report(source: LedgerDataSource, query: LedgerQuery) -> DepositsReport:
    """Deposits and inbound transfers inside the time range, newest first. Coin is ignored."""
    query.validate()
    deposits = parse_deposits(source.fetch_ledger_updates(query.user))
    window = QueryScope(from_ms=query.from_ms, to_ms=query.to_ms)
    kept = [d for d in deposits if window.contains("", d.time_ms)]
    kept.sort(key=lambda d: d.time_ms, reverse=True)
    return DepositsReport(user=query.user, deposits=kept)
