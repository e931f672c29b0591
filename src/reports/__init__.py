"""
Report orchestration: wires a data source into ledger_core for one account
(pnl, trades, positions, deposits) or many (leaderboard).
"""

from reports.leaderboard import METRICS, LeaderboardEntry, build_leaderboard
from reports.runner import (
    DepositsReport,
    LedgerQuery,
    PnLReport,
    PositionsReport,
    QueryValidationError,
    TradesReport,
    build_deposits_report,
    build_pnl_report,
    build_positions_report,
    build_trades_report,
    fetch_account,
)

__all__ = [
    "build_deposits_report",
    "build_leaderboard",
    "build_pnl_report",
    "build_positions_report",
    "build_trades_report",
    "DepositsReport",
    "fetch_account",
    "LeaderboardEntry",
    "LedgerQuery",
    "METRICS",
    "PnLReport",
    "PositionsReport",
    "QueryValidationError",
    "TradesReport",
]
