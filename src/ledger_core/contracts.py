"""
Data contracts for ledger-core: trades, lifecycles, snapshots, account state, PnL.

ledger-core consumes raw exchange fills (plain mappings) and produces these.
No I/O; these are plain dataclasses. Every output entity has to_dict()
returning JSON-safe data for the presentation layer.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

# A position whose absolute size is below this is flat.
FLAT_EPSILON = 1e-4

DEFAULT_CAP_CAPITAL = 10_000.0
MIN_EFFECTIVE_CAPITAL = 100.0


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Side(str, Enum):
    """Execution side as reported by the exchange: B = bid (buy), A = ask (sell)."""

    BUY = "B"
    SELL = "A"

    @property
    def sign(self) -> int:
        return 1 if self is Side.BUY else -1


class PositionSide(str, Enum):
    LONG = "long"
    SHORT = "short"
    FLAT = "flat"


class LifecycleStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


# ---------------------------------------------------------------------------
# Engine inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NormalizedTrade:
    """Canonical form of one exchange fill. Output of the fill normalizer."""

    time_ms: int
    coin: str
    side: Side
    px: float
    sz: float
    fee: float
    builder_fee: float
    closed_pnl: float
    notional: float
    hash: str = ""
    oid: int | None = None
    tid: int | None = None
    builder: str | None = None
    is_attributed: bool = False

    @property
    def trade_id(self) -> str:
        """Exchange trade id when present, else the transaction hash.

        Fills carrying neither get a composite key. Split legs of one fill
        share it, distinct fills do not.
        """
        if self.tid is not None:
            return str(self.tid)
        if self.hash:
            return self.hash
        return f"{self.coin}:{self.time_ms}:{self.oid}:{self.side.value}:{self.px}"

    @property
    def signed_size(self) -> float:
        return self.sz * self.side.sign

    def to_dict(self) -> dict[str, Any]:
        return _plain(asdict(self))


@dataclass(frozen=True)
class AssetPosition:
    """One open position from the account-state snapshot. size is signed."""

    coin: str
    size: float
    entry_px: float
    unrealized_pnl: float
    liquidation_px: float | None = None
    margin_used: float = 0.0
    leverage: float = 0.0
    position_value: float = 0.0
    return_on_equity: float = 0.0

    @property
    def side(self) -> PositionSide:
        if self.size > 0:
            return PositionSide.LONG
        if self.size < 0:
            return PositionSide.SHORT
        return PositionSide.FLAT

    def to_dict(self) -> dict[str, Any]:
        return _plain(asdict(self))


@dataclass(frozen=True)
class AccountState:
    """Current account snapshot: equity plus open asset positions."""

    account_value: float = 0.0
    withdrawable: float = 0.0
    total_margin_used: float = 0.0
    positions: tuple[AssetPosition, ...] = ()

    @property
    def unrealized_pnl(self) -> float:
        return sum(p.unrealized_pnl for p in self.positions)

    def to_dict(self) -> dict[str, Any]:
        return _plain(asdict(self))


@dataclass(frozen=True)
class QueryScope:
    """Coin and inclusive time-range filter. None means unbounded."""

    coin: str | None = None
    from_ms: int | None = None
    to_ms: int | None = None

    def contains(self, coin: str, time_ms: int) -> bool:
        if self.coin and coin != self.coin:
            return False
        if self.from_ms is not None and time_ms < self.from_ms:
            return False
        if self.to_ms is not None and time_ms > self.to_ms:
            return False
        return True


# ---------------------------------------------------------------------------
# Engine outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PositionLifecycle:
    """One continuous non-flat episode for a coin, from open to flat (or still open).

    Taint: an episode mixing attributed and unattributed trades is tainted
    and excluded from strict attribution reporting.
    """

    id: str
    coin: str
    side: PositionSide
    start_time: int
    end_time: int | None
    avg_entry_px: float
    avg_exit_px: float | None
    max_size: float
    realized_pnl: float
    fees_paid: float
    trade_count: int
    has_attributed_trades: bool
    has_unattributed_trades: bool
    status: LifecycleStatus
    trades: tuple[NormalizedTrade, ...] = field(default=(), repr=False)

    @property
    def is_tainted(self) -> bool:
        return self.has_attributed_trades and self.has_unattributed_trades

    @property
    def is_attribution_pure(self) -> bool:
        return self.has_attributed_trades and not self.has_unattributed_trades

    @property
    def trade_ids(self) -> frozenset[str]:
        return frozenset(t.trade_id for t in self.trades)

    def to_dict(self, *, include_trades: bool = False) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "coin": self.coin,
            "side": self.side.value,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "avg_entry_px": self.avg_entry_px,
            "avg_exit_px": self.avg_exit_px,
            "max_size": self.max_size,
            "realized_pnl": self.realized_pnl,
            "fees_paid": self.fees_paid,
            "trade_count": self.trade_count,
            "is_tainted": self.is_tainted,
            "is_attribution_pure": self.is_attribution_pure,
            "status": self.status.value,
        }
        if include_trades:
            out["trades"] = [t.to_dict() for t in self.trades]
        return out


@dataclass(frozen=True)
class PositionSnapshot:
    """Running position for one coin right after one trade."""

    time_ms: int
    coin: str
    net_size: float
    avg_entry_px: float
    side: PositionSide
    tainted: bool
    attribution_pure: bool
    trade_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return _plain(asdict(self))


@dataclass(frozen=True)
class PnLResult:
    """Realized/unrealized PnL with capped-capital return normalization."""

    user: str
    coin: str | None
    from_ms: int | None
    to_ms: int | None
    attribution_only: bool
    realized_pnl: float
    unrealized_pnl: float
    return_pct: float
    effective_capital: float
    cap_capital: float
    fees_paid: float
    volume: float
    trade_count: int
    attributed_trade_count: int
    tainted: bool
    current_equity: float

    def to_dict(self) -> dict[str, Any]:
        return _plain(asdict(self))


@dataclass(frozen=True)
class DepositRecord:
    """Incoming USDC transfer from the non-funding ledger."""

    time_ms: int
    amount: float
    tx_hash: str
    kind: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
