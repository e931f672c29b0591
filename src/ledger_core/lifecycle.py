"""
Lifecycle reconstructor: chronological trades -> position lifecycles (round trips).

Per coin, a running cost-basis state machine tracks signed net size. An
episode opens when the position leaves flat and closes when it returns
within FLAT_EPSILON of zero. A fill that crosses zero is split: the closing
leg ends the current episode, the residual opens the next one at the fill
price.

Taint is OR-accumulated per episode: one unattributed trade in an otherwise
attributed episode taints all of it. It never carries into the next episode.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, Iterator

from ledger_core.contracts import (
    FLAT_EPSILON,
    LifecycleStatus,
    NormalizedTrade,
    PositionLifecycle,
    PositionSide,
    Side,
)

logger = logging.getLogger("ledger.lifecycle")


# ---------------------------------------------------------------------------
# Shared state machine (also used by position_history)
# ---------------------------------------------------------------------------


@dataclass
class CostBasis:
    """Running position for one coin using the average-cost method.

    total_cost is avg_entry_px * |net_size|, kept incrementally.
    """

    net_size: float = 0.0
    avg_entry_px: float = 0.0
    total_cost: float = 0.0

    def is_flat(self) -> bool:
        return abs(self.net_size) < FLAT_EPSILON

    def adds(self, side: Side) -> bool:
        """True when a fill on *side* grows (or opens) the position."""
        if side is Side.BUY:
            return self.net_size >= 0
        return self.net_size <= 0

    def reset(self) -> None:
        self.net_size = 0.0
        self.avg_entry_px = 0.0
        self.total_cost = 0.0

    def apply(self, side: Side, px: float, sz: float) -> None:
        """Apply a fill that does not cross zero."""
        if self.adds(side):
            self.total_cost += px * sz
            self.net_size += sz * side.sign
        else:
            reduce = min(abs(self.net_size), sz)
            self.total_cost -= self.avg_entry_px * reduce
            self.net_size += reduce * side.sign
        if self.is_flat():
            self.reset()
        else:
            self.avg_entry_px = self.total_cost / abs(self.net_size)

    @property
    def position_side(self) -> PositionSide:
        if self.is_flat():
            return PositionSide.FLAT
        return PositionSide.LONG if self.net_size > 0 else PositionSide.SHORT


@dataclass(frozen=True)
class LegEvent:
    """One applied leg of a fill and the position right after it.

    A fill yields one leg, or two when it crosses zero. ``final`` marks the
    last leg of its fill.
    """

    leg: NormalizedTrade
    opened: bool
    closed: bool
    final: bool
    net_size: float
    avg_entry_px: float


def split_fill(trade: NormalizedTrade, close_size: float) -> tuple[NormalizedTrade, NormalizedTrade]:
    """Split a zero-crossing fill into (closing leg, residual leg).

    closed_pnl stays on the closing leg; fees are split pro-rata by size.
    """
    residual_size = trade.sz - close_size
    share = close_size / trade.sz if trade.sz > 0 else 0.0
    closing = replace(
        trade,
        sz=close_size,
        notional=trade.px * close_size,
        fee=trade.fee * share,
        builder_fee=trade.builder_fee * share,
    )
    residual = replace(
        trade,
        sz=residual_size,
        notional=trade.px * residual_size,
        fee=trade.fee - closing.fee,
        builder_fee=trade.builder_fee - closing.builder_fee,
        closed_pnl=0.0,
    )
    return closing, residual


def iter_position_legs(coin_trades: Iterable[NormalizedTrade], basis: CostBasis | None = None) -> Iterator[LegEvent]:
    """Replay one coin's chronologically ordered trades through the cost-basis machine."""
    basis = basis if basis is not None else CostBasis()
    for trade in coin_trades:
        was_flat = basis.is_flat()
        if was_flat and trade.sz <= 0:
            logger.debug("Skipping zero-size fill %s for %s while flat", trade.trade_id, trade.coin)
            continue

        if not was_flat and not basis.adds(trade.side) and trade.sz > abs(basis.net_size) + FLAT_EPSILON:
            closing, residual = split_fill(trade, abs(basis.net_size))
            basis.apply(closing.side, closing.px, closing.sz)
            yield LegEvent(closing, opened=False, closed=True, final=False,
                           net_size=0.0, avg_entry_px=0.0)
            basis.apply(residual.side, residual.px, residual.sz)
            yield LegEvent(residual, opened=True, closed=basis.is_flat(), final=True,
                           net_size=basis.net_size, avg_entry_px=basis.avg_entry_px)
            continue

        basis.apply(trade.side, trade.px, trade.sz)
        yield LegEvent(trade, opened=was_flat, closed=basis.is_flat(), final=True,
                       net_size=basis.net_size, avg_entry_px=basis.avg_entry_px)


def group_by_coin(trades: Iterable[NormalizedTrade]) -> dict[str, list[NormalizedTrade]]:
    """Stable chronological sort, then partition by coin (first-seen order)."""
    by_coin: dict[str, list[NormalizedTrade]] = {}
    for trade in sorted(trades, key=lambda t: t.time_ms):
        by_coin.setdefault(trade.coin, []).append(trade)
    return by_coin


# ---------------------------------------------------------------------------
# Lifecycle accumulator
# ---------------------------------------------------------------------------


def _weighted_px(legs: Iterable[NormalizedTrade]) -> float | None:
    size = 0.0
    value = 0.0
    for leg in legs:
        size += leg.sz
        value += leg.px * leg.sz
    if size <= 0:
        return None
    return value / size


@dataclass
class _Episode:
    coin: str
    ordinal: int
    side: PositionSide
    start_time: int
    legs: list[NormalizedTrade] = field(default_factory=list)
    has_attributed: bool = False
    has_unattributed: bool = False
    max_size: float = 0.0
    realized_pnl: float = 0.0
    fees_paid: float = 0.0

    def add(self, event: LegEvent) -> None:
        leg = event.leg
        self.legs.append(leg)
        if leg.is_attributed:
            self.has_attributed = True
        else:
            self.has_unattributed = True
        self.realized_pnl += leg.closed_pnl
        self.fees_paid += leg.fee
        self.max_size = max(self.max_size, abs(event.net_size))

    def build(self, end_time: int | None, fallback_entry_px: float) -> PositionLifecycle:
        entry_side = Side.BUY if self.side is PositionSide.LONG else Side.SELL
        entry_px = _weighted_px(t for t in self.legs if t.side is entry_side)
        exit_px = _weighted_px(t for t in self.legs if t.side is not entry_side)
        closed = end_time is not None
        return PositionLifecycle(
            id=f"{self.coin}-{self.start_time}-{self.ordinal}",
            coin=self.coin,
            side=self.side,
            start_time=self.start_time,
            end_time=end_time,
            avg_entry_px=entry_px if entry_px is not None else fallback_entry_px,
            avg_exit_px=exit_px if closed else None,
            max_size=self.max_size,
            realized_pnl=self.realized_pnl,
            fees_paid=self.fees_paid,
            trade_count=len(self.legs),
            has_attributed_trades=self.has_attributed,
            has_unattributed_trades=self.has_unattributed,
            status=LifecycleStatus.CLOSED if closed else LifecycleStatus.OPEN,
            trades=tuple(self.legs),
        )


def _coin_lifecycles(coin: str, coin_trades: list[NormalizedTrade]) -> list[PositionLifecycle]:
    out: list[PositionLifecycle] = []
    basis = CostBasis()
    episode: _Episode | None = None
    ordinal = 0
    for event in iter_position_legs(coin_trades, basis):
        if event.opened or episode is None:
            ordinal += 1
            side = PositionSide.LONG if event.leg.side is Side.BUY else PositionSide.SHORT
            episode = _Episode(coin=coin, ordinal=ordinal, side=side, start_time=event.leg.time_ms)
        episode.add(event)
        if event.closed:
            out.append(episode.build(end_time=event.leg.time_ms, fallback_entry_px=0.0))
            episode = None

    if episode is not None and not basis.is_flat():
        out.append(episode.build(end_time=None, fallback_entry_px=basis.avg_entry_px))
    return out


def reconstruct_lifecycles(
    trades: Iterable[NormalizedTrade],
    target_builder: str = "",
) -> list[PositionLifecycle]:
    """Rebuild every position lifecycle, most recent first.

    Attribution was resolved at normalization time, so *target_builder* only
    tags the debug log. Ordering key is end_time (start_time for open ones).
    """
    lifecycles: list[PositionLifecycle] = []
    for coin, coin_trades in group_by_coin(trades).items():
        lifecycles.extend(_coin_lifecycles(coin, coin_trades))

    lifecycles.sort(key=lambda lc: lc.end_time if lc.end_time is not None else lc.start_time, reverse=True)
    logger.debug(
        "Reconstructed %d lifecycles (%d tainted) for builder %r",
        len(lifecycles), sum(1 for lc in lifecycles if lc.is_tainted), target_builder or "*",
    )
    return lifecycles
