"""
Human-readable report output for the terminal.

Every CLI command uses these formatters; --json bypasses them and prints
the report's plain data instead.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from reports import DepositsReport, LeaderboardEntry, PnLReport, PositionsReport, TradesReport


def _fmt_ts(time_ms: int | None) -> str:
    if time_ms is None:
        return "-"
    return datetime.fromtimestamp(time_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _fmt_scope(coin: str | None, from_ms: int | None, to_ms: int | None) -> str:
    return f"coin={coin or 'all'}  from={_fmt_ts(from_ms)}  to={_fmt_ts(to_ms)}"


def format_pnl(report: PnLReport) -> str:
    r = report.pnl
    lc = report.lifecycles
    mode = "attribution-only" if r.attribution_only else "all trades"
    lines = [
        f"=== PnL: {r.user} ({mode}) ===",
        f"Scope        : {_fmt_scope(r.coin, r.from_ms, r.to_ms)}",
        f"Realized PnL : ${r.realized_pnl:+,.2f}",
        f"Unrealized   : ${r.unrealized_pnl:+,.2f}",
        f"Return       : {r.return_pct:+.2f}%  (capital ${r.effective_capital:,.2f}, cap ${r.cap_capital:,.2f})",
        f"Equity       : ${r.current_equity:,.2f}",
        f"Fees         : ${r.fees_paid:,.2f}",
        f"Volume       : ${r.volume:,.2f}",
        f"Trades       : {r.trade_count} ({r.attributed_trade_count} attributed)",
        f"Lifecycles   : {lc.total} ({lc.open} open / {lc.closed} closed, {lc.tainted} tainted)",
    ]
    if r.tainted:
        lines.append("Warning      : attributed and unattributed trades are mixed in this scope")
    lines.append("===")
    return "\n".join(lines)


def format_trades(report: TradesReport, limit: int = 50) -> str:
    s = report.stats
    lines = [
        f"=== Trades: {report.user} ===",
        f"Trades       : {s.trade_count} ({s.attributed_trade_count} attributed)",
        f"Volume       : ${s.total_volume:,.2f}",
        f"Realized PnL : ${s.total_pnl:+,.2f}  (avg {s.avg_pnl:+,.2f}, best {s.best_trade:+,.2f}, worst {s.worst_trade:+,.2f})",
        f"Fees         : ${s.total_fees:,.2f}",
        f"Win rate     : {s.win_rate:.1f}%",
    ]
    if report.by_coin:
        lines.append("")
        lines.append("By coin:")
        for coin, b in report.by_coin.items():
            lines.append(f"  {coin:10s} {b.trade_count:>5d} trades  vol ${b.volume:>14,.2f}  pnl ${b.realized_pnl:+,.2f}")
    if report.trades:
        lines.append("")
        shown = report.trades[:limit]
        lines.append(f"Recent trades ({len(shown)} of {len(report.trades)}):")
        for t in shown:
            tag = "*" if t.is_attributed else " "
            lines.append(
                f" {tag}{_fmt_ts(t.time_ms)}  {t.coin:8s} {t.side.name:4s} {t.sz:>12.4f} @ {t.px:<12.4f}"
                f" pnl {t.closed_pnl:+.2f}  fee {t.fee:.4f}"
            )
    else:
        lines.append("")
        lines.append("No trades in scope.")
    lines.append("===")
    return "\n".join(lines)


def format_positions(report: PositionsReport, limit: int = 50) -> str:
    lines = [f"=== Positions: {report.user} ==="]
    open_positions = [p for p in report.state.positions if p.size != 0]
    if open_positions:
        lines.append("Current:")
        for p in open_positions:
            lines.append(
                f"  {p.coin:8s} {p.side.value:5s} {p.size:+.4f} @ {p.entry_px:.4f}  upnl ${p.unrealized_pnl:+,.2f}"
            )
    else:
        lines.append("Current: flat")

    lines.append("")
    if report.snapshots:
        shown = report.snapshots[:limit]
        lines.append(f"History ({len(shown)} of {len(report.snapshots)}):")
        for s in shown:
            flag = " TAINTED" if s.tainted else ""
            lines.append(f"  {_fmt_ts(s.time_ms)}  {s.coin:8s} {s.side.value:5s} {s.net_size:+.4f} @ {s.avg_entry_px:.4f}{flag}")
    else:
        lines.append("No position history in scope.")

    if report.lifecycles is not None:
        lines.append("")
        lines.append(f"Lifecycles ({len(report.lifecycles)}):")
        for lc in report.lifecycles:
            exit_px = f"{lc.avg_exit_px:.4f}" if lc.avg_exit_px is not None else "-"
            lines.append(
                f"  {lc.id}  {lc.side.value:5s} {lc.status.value:6s} entry {lc.avg_entry_px:.4f} exit {exit_px}"
                f"  pnl ${lc.realized_pnl:+,.2f}{' TAINTED' if lc.is_tainted else ''}"
            )
    lines.append("===")
    return "\n".join(lines)


def format_deposits(report: DepositsReport) -> str:
    lines = [
        f"=== Deposits: {report.user} ===",
        f"Total        : ${report.total:,.2f} over {report.count} deposits",
    ]
    for d in report.deposits:
        lines.append(f"  {_fmt_ts(d.time_ms)}  {d.kind:16s} ${d.amount:,.2f}  {d.tx_hash}")
    lines.append("===")
    return "\n".join(lines)


def format_leaderboard(entries: Sequence[LeaderboardEntry], metric: str) -> str:
    if not entries:
        return "No accounts ranked."
    lines = [
        f"=== Leaderboard by {metric} ===",
        f"{'#':>3s}  {'user':44s} {'value':>14s} {'pnl':>12s} {'return':>9s} {'volume':>14s} {'trades':>6s}",
    ]
    for e in entries:
        lines.append(
            f"{e.rank:>3d}  {e.user:44s} {e.metric_value:>14,.2f} {e.pnl:>+12,.2f} {e.return_pct:>+8.2f}%"
            f" {e.volume:>14,.2f} {e.trade_count:>6d}{'  *' if e.tainted else ''}"
        )
    lines.append("===")
    return "\n".join(lines)
