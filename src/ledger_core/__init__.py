"""
ledger-core: pure position-lifecycle and PnL engine.

No I/O, no network, no side effects. Consumes raw exchange fills and an
account-state snapshot, produces lifecycles, position snapshots and
capital-normalized PnL. Fully deterministic and unit-testable.
"""

from ledger_core.contracts import (
    AccountState,
    AssetPosition,
    DepositRecord,
    LifecycleStatus,
    NormalizedTrade,
    PnLResult,
    PositionLifecycle,
    PositionSide,
    PositionSnapshot,
    QueryScope,
    Side,
)
from ledger_core.lifecycle import reconstruct_lifecycles
from ledger_core.normalizer import normalize_fills, parse_account_state, parse_deposits
from ledger_core.pnl import calculate_pnl, effective_capital
from ledger_core.position_history import build_position_history

__all__ = [
    "AccountState",
    "AssetPosition",
    "build_position_history",
    "calculate_pnl",
    "DepositRecord",
    "effective_capital",
    "LifecycleStatus",
    "normalize_fills",
    "NormalizedTrade",
    "parse_account_state",
    "parse_deposits",
    "PnLResult",
    "PositionLifecycle",
    "PositionSide",
    "PositionSnapshot",
    "QueryScope",
    "reconstruct_lifecycles",
    "Side",
]
