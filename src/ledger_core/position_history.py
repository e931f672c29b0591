"""
Position history builder: one running-position snapshot per trade, per coin.

Uses the same cost-basis machine as the lifecycle reconstructor. Taint on a
snapshot reflects only the episode the resulting position belongs to; the
flags reset once the position is flat again.
"""

from __future__ import annotations

import logging
from typing import Iterable

from ledger_core.contracts import NormalizedTrade, PositionSide, PositionSnapshot
from ledger_core.lifecycle import CostBasis, group_by_coin, iter_position_legs

logger = logging.getLogger("ledger.history")


def _side(net_size: float) -> PositionSide:
    if net_size > 0:
        return PositionSide.LONG
    if net_size < 0:
        return PositionSide.SHORT
    return PositionSide.FLAT


def _coin_history(coin: str, coin_trades: list[NormalizedTrade]) -> list[PositionSnapshot]:
    out: list[PositionSnapshot] = []
    has_attributed = False
    has_unattributed = False
    for event in iter_position_legs(coin_trades, CostBasis()):
        if event.opened:
            has_attributed = False
            has_unattributed = False
        if event.leg.is_attributed:
            has_attributed = True
        else:
            has_unattributed = True
        if not event.final:
            continue
        if event.closed:
            # a flat snapshot belongs to no episode
            has_attributed = False
            has_unattributed = False
        out.append(
            PositionSnapshot(
                time_ms=event.leg.time_ms,
                coin=coin,
                net_size=event.net_size,
                avg_entry_px=event.avg_entry_px,
                side=_side(event.net_size),
                tainted=has_attributed and has_unattributed,
                attribution_pure=has_attributed and not has_unattributed,
                trade_id=event.leg.trade_id,
            )
        )
    return out


def build_position_history(
    trades: Iterable[NormalizedTrade],
    target_builder: str = "",
    attribution_only: bool = False,
) -> list[PositionSnapshot]:
    """Snapshot the running position after every trade, most recent first.

    With *attribution_only*, snapshots from tainted or not purely attributed
    episodes are dropped rather than flagged.
    """
    snapshots: list[PositionSnapshot] = []
    for coin, coin_trades in group_by_coin(trades).items():
        snapshots.extend(_coin_history(coin, coin_trades))

    if attribution_only:
        snapshots = [s for s in snapshots if s.attribution_pure and not s.tainted]
    snapshots.sort(key=lambda s: s.time_ms, reverse=True)
    logger.debug("Built %d position snapshots for builder %r", len(snapshots), target_builder or "*")
    return snapshots
