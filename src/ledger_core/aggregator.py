"""
Output filter/aggregator: uniform coin/time/attribution filters and summary stats.

Thin re-derivation layer over already-computed trades and lifecycles:
grouping, extrema, win rate, per-coin breakdowns, daily PnL series.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

from ledger_core.contracts import (
    LifecycleStatus,
    NormalizedTrade,
    PositionLifecycle,
    PositionSnapshot,
    QueryScope,
)
from ledger_core.pnl import tainted_trade_ids


@dataclass(frozen=True)
class TradeStats:
    """Presentation stats over a list of trades."""

    trade_count: int = 0
    attributed_trade_count: int = 0
    win_rate: float = 0.0
    total_volume: float = 0.0
    total_pnl: float = 0.0
    total_fees: float = 0.0
    avg_pnl: float = 0.0
    best_trade: float = 0.0
    worst_trade: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CoinBreakdown:
    coin: str
    trade_count: int
    volume: float
    realized_pnl: float
    fees: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LifecycleStats:
    open: int
    closed: int
    tainted: int
    total: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PnLPoint:
    """Realized PnL for one UTC day plus the running total."""

    day: str
    pnl: float
    cumulative: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


def filter_trades(trades: Iterable[NormalizedTrade], scope: QueryScope) -> list[NormalizedTrade]:
    return [t for t in trades if scope.contains(t.coin, t.time_ms)]


def filter_trades_for_output(
    trades: Iterable[NormalizedTrade],
    lifecycles: Iterable[PositionLifecycle],
    attribution_only: bool,
) -> list[NormalizedTrade]:
    """In strict mode keep attributed trades that sit in no tainted lifecycle."""
    if not attribution_only:
        return list(trades)
    excluded = tainted_trade_ids(lifecycles)
    return [t for t in trades if t.is_attributed and t.trade_id not in excluded]


def filter_lifecycles(
    lifecycles: Iterable[PositionLifecycle],
    scope: QueryScope,
    attribution_only: bool,
) -> list[PositionLifecycle]:
    """Strict mode keeps pure, untainted lifecycles.

    from_ms bounds the start time; to_ms bounds the end time, so open
    lifecycles always pass the upper bound.
    """
    out: list[PositionLifecycle] = []
    for lc in lifecycles:
        if attribution_only and (lc.is_tainted or not lc.is_attribution_pure):
            continue
        if scope.coin and lc.coin != scope.coin:
            continue
        if scope.from_ms is not None and lc.start_time < scope.from_ms:
            continue
        if scope.to_ms is not None and lc.end_time is not None and lc.end_time > scope.to_ms:
            continue
        out.append(lc)
    return out


def filter_snapshots(snapshots: Iterable[PositionSnapshot], scope: QueryScope) -> list[PositionSnapshot]:
    return [s for s in snapshots if scope.contains(s.coin, s.time_ms)]


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


def summarize_trades(trades: Sequence[NormalizedTrade]) -> TradeStats:
    if not trades:
        return TradeStats()
    pnls = [t.closed_pnl for t in trades]
    total_pnl = sum(pnls)
    wins = sum(1 for p in pnls if p > 0)
    return TradeStats(
        trade_count=len(trades),
        attributed_trade_count=sum(1 for t in trades if t.is_attributed),
        win_rate=wins / len(trades) * 100,
        total_volume=sum(t.notional for t in trades),
        total_pnl=total_pnl,
        total_fees=sum(t.fee for t in trades),
        avg_pnl=total_pnl / len(trades),
        best_trade=max(pnls),
        worst_trade=min(pnls),
    )


def breakdown_by_coin(trades: Iterable[NormalizedTrade]) -> dict[str, CoinBreakdown]:
    """Volume, PnL, fees and count per coin, ordered by volume descending."""
    acc: dict[str, list[float]] = {}
    for t in trades:
        row = acc.setdefault(t.coin, [0, 0.0, 0.0, 0.0])
        row[0] += 1
        row[1] += t.notional
        row[2] += t.closed_pnl
        row[3] += t.fee
    ordered = sorted(acc.items(), key=lambda kv: kv[1][1], reverse=True)
    return {
        coin: CoinBreakdown(coin=coin, trade_count=int(r[0]), volume=r[1], realized_pnl=r[2], fees=r[3])
        for coin, r in ordered
    }


def lifecycle_stats(
    all_lifecycles: Sequence[PositionLifecycle],
    relevant: Sequence[PositionLifecycle],
) -> LifecycleStats:
    """Open/closed/total over *relevant*; tainted counted over every lifecycle."""
    return LifecycleStats(
        open=sum(1 for lc in relevant if lc.status is LifecycleStatus.OPEN),
        closed=sum(1 for lc in relevant if lc.status is LifecycleStatus.CLOSED),
        tainted=sum(1 for lc in all_lifecycles if lc.is_tainted),
        total=len(relevant),
    )


def daily_pnl_series(trades: Iterable[NormalizedTrade]) -> list[PnLPoint]:
    """Realized PnL bucketed by UTC day, with cumulative total, oldest first."""
    by_day: dict[str, float] = {}
    for t in sorted(trades, key=lambda t: t.time_ms):
        day = datetime.fromtimestamp(t.time_ms / 1000, tz=timezone.utc).date().isoformat()
        by_day[day] = by_day.get(day, 0.0) + t.closed_pnl
    out: list[PnLPoint] = []
    cumulative = 0.0
    for day, pnl in by_day.items():
        cumulative += pnl
        out.append(PnLPoint(day=day, pnl=pnl, cumulative=cumulative))
    return out
