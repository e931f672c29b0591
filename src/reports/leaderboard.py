"""
Leaderboard: rank many accounts by one metric over the same scope.

Each account runs its own pipeline in a bounded thread pool. A failure for
one account drops that account and never aborts the ranking.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass
from typing import Any, Callable, Iterable

from data.fetcher import LedgerDataSource
from ledger_core.aggregator import LifecycleStats, filter_lifecycles, lifecycle_stats
from ledger_core.contracts import DEFAULT_CAP_CAPITAL, PnLResult, QueryScope
from ledger_core.lifecycle import reconstruct_lifecycles
from ledger_core.normalizer import normalize_fills
from ledger_core.pnl import calculate_pnl
from reports.runner import QueryValidationError, fetch_account

logger = logging.getLogger("ledger.leaderboard")

METRICS: dict[str, Callable[[PnLResult], float]] = {
    "pnl": lambda r: r.realized_pnl,
    "returnPct": lambda r: r.return_pct,
    "volume": lambda r: r.volume,
    "tradeCount": lambda r: float(r.trade_count),
}


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    user: str
    metric_value: float
    volume: float
    pnl: float
    return_pct: float
    trade_count: int
    attributed_trade_count: int
    tainted: bool
    lifecycles: LifecycleStats

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _account_metrics(
    source: LedgerDataSource,
    user: str,
    scope: QueryScope,
    attribution_only: bool,
    cap_capital: float,
    target_builder: str,
) -> tuple[PnLResult, LifecycleStats]:
    account = fetch_account(source, user)
    trades = normalize_fills(account.fills, target_builder)
    lifecycles = reconstruct_lifecycles(trades, target_builder)
    result = calculate_pnl(
        trades,
        lifecycles,
        account.state,
        scope=scope,
        attribution_only=attribution_only,
        cap_capital=cap_capital,
        user=user,
    )
    relevant = filter_lifecycles(lifecycles, QueryScope(), attribution_only)
    return result, lifecycle_stats(lifecycles, relevant)


def build_leaderboard(
    source: LedgerDataSource,
    users: Iterable[str],
    *,
    metric: str = "pnl",
    scope: QueryScope | None = None,
    attribution_only: bool = False,
    exclude_tainted: bool = False,
    cap_capital: float = DEFAULT_CAP_CAPITAL,
    target_builder: str = "",
    max_workers: int = 4,
    on_drop: Callable[[str, Exception], None] | None = None,
) -> list[LeaderboardEntry]:
    """Rank *users* descending by *metric*.

    Accounts whose PnL is flagged tainted are dropped in strict mode, and
    whenever *exclude_tainted* is set. *on_drop* is called for every account
    whose pipeline raised. Ties keep the order of *users*.
    """
    if metric not in METRICS:
        raise QueryValidationError(f"Unknown metric '{metric}'. Supported: {sorted(METRICS)}")
    if cap_capital <= 0:
        raise QueryValidationError(f"max start capital must be positive, got {cap_capital}")
    scope = scope or QueryScope()

    # dedupe, keep first-seen order
    accounts = list(dict.fromkeys(u.strip().lower() for u in users if u and u.strip()))
    if not accounts:
        return []

    rows: list[tuple[PnLResult, LifecycleStats]] = []
    with ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="ledger-board") as pool:
        futures = {
            pool.submit(_account_metrics, source, user, scope, attribution_only, cap_capital, target_builder): user
            for user in accounts
        }
        for future in as_completed(futures):
            user = futures[future]
            try:
                rows.append(future.result())
            except Exception as exc:
                logger.warning("Dropping %s from leaderboard: %s", user, exc)
                if on_drop is not None:
                    on_drop(user, exc)

    if attribution_only or exclude_tainted:
        rows = [row for row in rows if not row[0].tainted]

    key = METRICS[metric]
    order = {user: i for i, user in enumerate(accounts)}
    rows.sort(key=lambda row: (-key(row[0]), order[row[0].user]))
    logger.info("Ranked %d/%d accounts by %s", len(rows), len(accounts), metric)
    return [
        LeaderboardEntry(
            rank=i,
            user=r.user,
            metric_value=key(r),
            volume=r.volume,
            pnl=r.realized_pnl,
            return_pct=r.return_pct,
            trade_count=r.trade_count,
            attributed_trade_count=r.attributed_trade_count,
            tainted=r.tainted,
            lifecycles=stats,
        )
        for i, (r, stats) in enumerate(rows, 1)
    ]
