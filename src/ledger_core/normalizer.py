"""
Fill normalizer: raw exchange records -> canonical engine types.

Numeric fields arrive as decimal strings. A malformed value in one record
degrades to 0.0 (with a warning) instead of aborting the batch.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable, Mapping

from ledger_core.contracts import (
    AccountState,
    AssetPosition,
    DepositRecord,
    NormalizedTrade,
    Side,
)

logger = logging.getLogger("ledger.normalizer")

DEPOSIT_KINDS = frozenset({"deposit", "internalTransfer"})


def parse_float(value: Any, default: float = 0.0) -> float:
    """Parse a decimal string (or number) to float. Never raises."""
    if value is None or isinstance(value, bool):
        return default
    try:
        out = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(out):
        return default
    return out


def _parse_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def parse_side(value: Any) -> Side:
    """B/buy -> BUY, A/sell -> SELL. Unknown values are logged and read as SELL."""
    raw = str(value or "").strip().lower()
    if raw in ("b", "buy", "bid"):
        return Side.BUY
    if raw not in ("a", "sell", "ask"):
        logger.warning("Unknown fill side %r; treating as sell", value)
    return Side.SELL


def is_attributed_fill(fill: Mapping[str, Any], target_builder: str) -> bool:
    """Attribution rule for one fill.

    Attributed when the builder tag equals the target exactly, when no target is
    configured and any builder tag/fee is present, or when a builder fee
    was paid.
    """
    builder = str(fill.get("builder") or "").strip()
    builder_fee = parse_float(fill.get("builderFee"))
    if builder_fee > 0:
        return True
    target = (target_builder or "").strip()
    if target:
        return builder == target
    return bool(builder)


def normalize_fill(fill: Mapping[str, Any], target_builder: str = "") -> NormalizedTrade:
    px = parse_float(fill.get("px"))
    sz = parse_float(fill.get("sz"))
    if px == 0.0 or sz == 0.0:
        logger.warning(
            "Fill %s for %s has missing or invalid px/sz (px=%r sz=%r)",
            fill.get("tid") or fill.get("hash"), fill.get("coin"), fill.get("px"), fill.get("sz"),
        )
    builder = str(fill.get("builder") or "").strip() or None
    return NormalizedTrade(
        time_ms=_parse_int(fill.get("time")) or 0,
        coin=str(fill.get("coin") or ""),
        side=parse_side(fill.get("side")),
        px=px,
        sz=abs(sz),
        fee=parse_float(fill.get("fee")),
        builder_fee=parse_float(fill.get("builderFee")),
        closed_pnl=parse_float(fill.get("closedPnl")),
        notional=px * abs(sz),
        hash=str(fill.get("hash") or ""),
        oid=_parse_int(fill.get("oid")),
        tid=_parse_int(fill.get("tid")),
        builder=builder,
        is_attributed=is_attributed_fill(fill, target_builder),
    )


def normalize_fills(
    fills: Iterable[Mapping[str, Any]] | None,
    target_builder: str = "",
) -> list[NormalizedTrade]:
    """Normalize raw fills. Order-preserving, no filtering."""
    return [normalize_fill(f, target_builder) for f in fills or []]


def parse_account_state(raw: Mapping[str, Any] | None) -> AccountState:
    """Parse a clearinghouse-state payload. None yields an empty state."""
    if not raw:
        return AccountState()
    summary = raw.get("marginSummary") or {}
    positions: list[AssetPosition] = []
    for entry in raw.get("assetPositions") or []:
        pos = entry.get("position") if isinstance(entry, Mapping) else None
        if not pos:
            continue
        leverage = pos.get("leverage")
        lev_value = leverage.get("value") if isinstance(leverage, Mapping) else leverage
        liq = pos.get("liquidationPx")
        positions.append(
            AssetPosition(
                coin=str(pos.get("coin") or ""),
                size=parse_float(pos.get("szi")),
                entry_px=parse_float(pos.get("entryPx")),
                unrealized_pnl=parse_float(pos.get("unrealizedPnl")),
                liquidation_px=parse_float(liq) if liq not in (None, "") else None,
                margin_used=parse_float(pos.get("marginUsed")),
                leverage=parse_float(lev_value),
                position_value=parse_float(pos.get("positionValue")),
                return_on_equity=parse_float(pos.get("returnOnEquity")),
            )
        )
    return AccountState(
        account_value=parse_float(summary.get("accountValue")),
        withdrawable=parse_float(raw.get("withdrawable")),
        total_margin_used=parse_float(summary.get("totalMarginUsed")),
        positions=tuple(positions),
    )


def parse_deposits(updates: Iterable[Mapping[str, Any]] | None) -> list[DepositRecord]:
    """Keep positive USDC deposits/internal transfers from non-funding ledger updates.

    Accepts the live shape ({"time", "hash", "delta": {"type", "usdc"}}) and
    a flat shape with type/usdc at the top level.
    """
    out: list[DepositRecord] = []
    for update in updates or []:
        delta = update.get("delta")
        body = delta if isinstance(delta, Mapping) else update
        kind = str(body.get("type") or "")
        amount = parse_float(body.get("usdc"))
        if kind not in DEPOSIT_KINDS or amount <= 0:
            continue
        out.append(
            DepositRecord(
                time_ms=_parse_int(update.get("time")) or 0,
                amount=amount,
                tx_hash=str(update.get("hash") or ""),
                kind=kind,
            )
        )
    return out
