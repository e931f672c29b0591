"""Pytest fixtures: raw exchange fills and account snapshots for deterministic tests."""

import itertools
from typing import Any, Callable

import pytest

BUILDER = "0xbuilder"
USER = "0xabc0000000000000000000000000000000000001"
OTHER = "0xabc0000000000000000000000000000000000002"

_tids = itertools.count(1)


def raw_fill(
    time: int,
    side: str,
    px: float,
    sz: float,
    *,
    coin: str = "BTC",
    closed_pnl: float = 0.0,
    fee: float = 0.0,
    builder: str | None = None,
    builder_fee: float | None = None,
    tid: int | None = None,
) -> dict[str, Any]:
    """Build one fill in the exchange's JSON shape (numbers as decimal strings)."""
    out: dict[str, Any] = {
        "coin": coin,
        "px": str(px),
        "sz": str(sz),
        "side": side,
        "time": time,
        "closedPnl": str(closed_pnl),
        "fee": str(fee),
        "hash": f"0xhash{time}",
        "oid": time,
        "tid": tid if tid is not None else next(_tids),
    }
    if builder is not None:
        out["builder"] = builder
    if builder_fee is not None:
        out["builderFee"] = str(builder_fee)
    return out


@pytest.fixture
def make_fill() -> Callable[..., dict[str, Any]]:
    return raw_fill


@pytest.fixture
def account_state() -> dict[str, Any]:
    """clearinghouseState payload: $50k equity, one open BTC long."""
    return {
        "marginSummary": {"accountValue": "50000.0", "totalMarginUsed": "1200.5"},
        "withdrawable": "48000.0",
        "assetPositions": [
            {
                "position": {
                    "coin": "BTC",
                    "szi": "0.5",
                    "entryPx": "60000",
                    "unrealizedPnl": "250.0",
                    "liquidationPx": "45000",
                    "marginUsed": "1200.5",
                    "leverage": {"type": "cross", "value": 25},
                    "positionValue": "30250",
                    "returnOnEquity": "0.2",
                }
            }
        ],
    }


@pytest.fixture
def mixed_fills() -> list[dict[str, Any]]:
    """BTC round trip (tainted), ETH round trip (pure attributed), SOL open long (unattributed)."""
    return [
        raw_fill(1_000, "B", 100.0, 10.0, coin="BTC"),
        raw_fill(2_000, "A", 110.0, 10.0, coin="BTC", closed_pnl=100.0, builder=BUILDER),
        raw_fill(3_000, "B", 50.0, 5.0, coin="ETH", builder=BUILDER, fee=0.5),
        raw_fill(4_000, "B", 60.0, 5.0, coin="ETH", builder=BUILDER, fee=0.5),
        raw_fill(5_000, "A", 70.0, 10.0, coin="ETH", closed_pnl=150.0, builder=BUILDER, fee=1.0),
        raw_fill(6_000, "B", 20.0, 3.0, coin="SOL"),
    ]


@pytest.fixture
def snapshot(mixed_fills: list[dict[str, Any]], account_state: dict[str, Any]) -> dict[str, Any]:
    """Snapshot file content for StaticDataSource / file-backed CLI runs."""
    return {
        "fills": {
            USER: mixed_fills,
            OTHER: [
                raw_fill(1_500, "B", 10.0, 1.0, coin="BTC", builder=BUILDER),
                raw_fill(2_500, "A", 15.0, 1.0, coin="BTC", closed_pnl=5.0, builder=BUILDER),
            ],
        },
        "states": {
            USER: account_state,
            OTHER: {"marginSummary": {"accountValue": "1000"}, "assetPositions": []},
        },
        "ledger": {
            USER: [
                {"time": 500, "hash": "0xd1", "delta": {"type": "deposit", "usdc": "5000.0"}},
                {"time": 700, "hash": "0xd2", "delta": {"type": "withdraw", "usdc": "100.0"}},
                {"time": 900, "hash": "0xd3", "delta": {"type": "internalTransfer", "usdc": "250.0"}},
                {"time": 950, "hash": "0xd4", "delta": {"type": "deposit", "usdc": "-3"}},
            ],
        },
    }
