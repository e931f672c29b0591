"""
PnL & return normalizer: trades + lifecycles + account state -> PnLResult.

Return % uses a capped capital base so accounts of very different size can
be ranked side by side:

    estimated_start   = current_equity - realized_pnl + fees_paid
    effective_capital = clamp(estimated_start, 100, cap_capital)
    return_pct        = realized_pnl / effective_capital * 100
"""

from __future__ import annotations

from typing import Iterable, Sequence

from ledger_core.contracts import (
    DEFAULT_CAP_CAPITAL,
    MIN_EFFECTIVE_CAPITAL,
    AccountState,
    NormalizedTrade,
    PnLResult,
    PositionLifecycle,
    QueryScope,
)


def effective_capital(
    current_equity: float,
    realized_pnl: float,
    fees_paid: float,
    cap_capital: float = DEFAULT_CAP_CAPITAL,
    floor: float = MIN_EFFECTIVE_CAPITAL,
) -> float:
    """Back realized gains and fees out of equity, then floor and cap it."""
    estimated_start = current_equity - realized_pnl + fees_paid
    return min(max(estimated_start, floor), cap_capital)


def tainted_trade_ids(lifecycles: Iterable[PositionLifecycle]) -> set[str]:
    """Trade ids that belong to at least one tainted lifecycle."""
    ids: set[str] = set()
    for lc in lifecycles:
        if lc.is_tainted:
            ids.update(lc.trade_ids)
    return ids


def calculate_pnl(
    trades: Sequence[NormalizedTrade],
    lifecycles: Sequence[PositionLifecycle],
    account_state: AccountState | None,
    scope: QueryScope | None = None,
    attribution_only: bool = False,
    cap_capital: float = DEFAULT_CAP_CAPITAL,
    user: str = "",
) -> PnLResult:
    """Aggregate scope-matched trades into a PnLResult.

    With *attribution_only*, unattributed trades and trades from tainted
    lifecycles are left out of the sums. ``tainted`` is still reported from
    the full scope-matched set so the caller sees the mix it was shielded from.
    Unrealized PnL comes from the live account state and ignores the scope.
    """
    scope = scope or QueryScope()
    excluded = tainted_trade_ids(lifecycles) if attribution_only else set()

    realized_pnl = 0.0
    fees_paid = 0.0
    volume = 0.0
    trade_count = 0
    attributed_count = 0
    any_attributed = False
    any_unattributed = False

    for trade in trades:
        if not scope.contains(trade.coin, trade.time_ms):
            continue
        if trade.is_attributed:
            any_attributed = True
            attributed_count += 1
        else:
            any_unattributed = True

        if attribution_only and (not trade.is_attributed or trade.trade_id in excluded):
            continue
        realized_pnl += trade.closed_pnl
        fees_paid += trade.fee
        volume += trade.notional
        trade_count += 1

    state = account_state or AccountState()
    current_equity = state.account_value
    capital = effective_capital(current_equity, realized_pnl, fees_paid, cap_capital)
    return_pct = realized_pnl / capital * 100 if capital > 0 else 0.0

    return PnLResult(
        user=user,
        coin=scope.coin,
        from_ms=scope.from_ms,
        to_ms=scope.to_ms,
        attribution_only=attribution_only,
        realized_pnl=realized_pnl,
        unrealized_pnl=state.unrealized_pnl,
        return_pct=return_pct,
        effective_capital=capital,
        cap_capital=cap_capital,
        fees_paid=fees_paid,
        volume=volume,
        trade_count=trade_count,
        attributed_trade_count=attributed_count,
        tainted=attribution_only and any_attributed and any_unattributed,
        current_equity=current_equity,
    )
