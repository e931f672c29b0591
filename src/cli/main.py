"""
CLI entry point: ledger pnl | trades | positions | leaderboard | deposits | health.

Every command loads config from --config (default config.yaml), builds the
configured data source, runs one report and prints it human-readable (or
as JSON with --json). Structured events go to stderr.
"""

import json
import logging
import sys
from typing import Any, Callable

import click
from dotenv import load_dotenv

from config import AppConfig, ConfigError, load_config

load_dotenv()

logger = logging.getLogger("ledger")


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s  %(message)s",
        stream=sys.stderr,
    )


@click.group()
@click.option("--config", "config_path", default="config.yaml", help="Path to config file.")
@click.pass_context
def cli(ctx: click.Context, config_path: str) -> None:
    """trade-ledger: position lifecycles, attribution-aware PnL and leaderboards."""
    _setup_logging()
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


def _scope_options(func: Callable) -> Callable:
    """Options shared by every per-account report."""
    options = [
        click.option("--coin", default=None, help="Restrict to one coin (e.g. BTC)."),
        click.option("--from-ms", "from_ms", default=None, type=int, help="Inclusive start time (ms since epoch)."),
        click.option("--to-ms", "to_ms", default=None, type=int, help="Inclusive end time (ms since epoch)."),
        click.option("--attribution-only", is_flag=True, default=False, help="Only count builder-attributed, untainted activity."),
        click.option("--max-start-capital", "max_start_capital", default=None, type=float,
                     help="Capital cap for return normalization (overrides config/env)."),
        click.option("--json", "as_json", is_flag=True, default=False, help="Print the report as JSON."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


class _ObservedSource:
    """Delegating data source that records fetch sizes for the fetch_complete event."""

    def __init__(self, inner: Any) -> None:
        self._inner = inner
        self.fills = 0
        self.positions = 0

    def fetch_user_fills(self, user: str) -> list[dict[str, Any]]:
        fills = self._inner.fetch_user_fills(user)
        self.fills = len(fills)
        return fills

    def fetch_account_state(self, user: str) -> dict[str, Any] | None:
        state = self._inner.fetch_account_state(user)
        self.positions = len((state or {}).get("assetPositions") or [])
        return state

    def fetch_ledger_updates(self, user: str) -> list[dict[str, Any]]:
        return self._inner.fetch_ledger_updates(user)


def _load(ctx: click.Context) -> AppConfig:
    try:
        return load_config(ctx.obj["config_path"])
    except (FileNotFoundError, ConfigError) as exc:
        raise click.ClickException(str(exc)) from exc


def _events(cfg: AppConfig, user: str = ""):
    from cli.structured_log import StructuredEventLogger

    return StructuredEventLogger(
        user,
        enabled=cfg.alerting.structured_logs,
        webhook_url=cfg.alerting.webhook_url,
    )


def _run_report(
    ctx: click.Context,
    command: str,
    user: str,
    build: Callable[[Any, Any, AppConfig], Any],
    render: Callable[[Any], str],
    summarize: Callable[[Any], dict[str, Any]],
    *,
    coin: str | None = None,
    from_ms: int | None = None,
    to_ms: int | None = None,
    attribution_only: bool = False,
    max_start_capital: float | None = None,
    as_json: bool = False,
) -> None:
    cfg = _load(ctx)
    from data import FetchError, get_data_source
    from reports import LedgerQuery, QueryValidationError

    query = LedgerQuery(
        user=user,
        coin=coin,
        from_ms=from_ms,
        to_ms=to_ms,
        attribution_only=attribution_only,
        cap_capital=max_start_capital if max_start_capital is not None else cfg.max_start_capital,
    )
    try:
        query.validate()
    except QueryValidationError as exc:
        raise click.UsageError(str(exc), ctx=ctx) from exc

    events = _events(cfg, query.user)
    events.query_start(command, coin=query.coin, from_ms=from_ms, to_ms=to_ms, attribution_only=attribution_only)
    try:
        source = _ObservedSource(get_data_source(cfg.data))
        report = build(source, query, cfg)
    except FetchError as exc:
        events.fetch_failed(str(exc), exc.status_code)
        raise click.ClickException(f"Fetch failed: {exc}") from exc
    except (FileNotFoundError, ValueError) as exc:
        events.error("data source unavailable", str(exc))
        raise click.ClickException(str(exc)) from exc
    events.fetch_complete(source.fills, source.positions)
    events.query_complete(command, **summarize(report))

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2, default=str))
    else:
        click.echo(render(report))


# ---------- ledger pnl ----------


@cli.command()
@click.option("--user", required=True, help="Account address.")
@_scope_options
@click.pass_context
def pnl(ctx: click.Context, user: str, as_json: bool, **scope: Any) -> None:
    """Realized/unrealized PnL with capped-capital return %."""
    from cli.output import format_pnl
    from reports import build_pnl_report

    _run_report(
        ctx, "pnl", user,
        build=lambda src, q, cfg: build_pnl_report(src, q, cfg.target_builder),
        render=format_pnl,
        summarize=lambda r: {"realized_pnl": r.pnl.realized_pnl, "trades": r.pnl.trade_count, "tainted": r.pnl.tainted},
        as_json=as_json,
        **scope,
    )


# ---------- ledger trades ----------


@cli.command()
@click.option("--user", required=True, help="Account address.")
@click.option("--limit", default=50, help="Number of trades to list in text output.")
@_scope_options
@click.pass_context
def trades(ctx: click.Context, user: str, limit: int, as_json: bool, **scope: Any) -> None:
    """Normalized trades in scope, most recent first, with summary stats."""
    from cli.output import format_trades
    from reports import build_trades_report

    _run_report(
        ctx, "trades", user,
        build=lambda src, q, cfg: build_trades_report(src, q, cfg.target_builder),
        render=lambda r: format_trades(r, limit=limit),
        summarize=lambda r: {"trades": r.stats.trade_count, "volume": r.total_volume},
        as_json=as_json,
        **scope,
    )


# ---------- ledger positions ----------


@cli.command()
@click.option("--user", required=True, help="Account address.")
@click.option("--include-lifecycles", is_flag=True, default=False, help="Also list reconstructed lifecycles.")
@_scope_options
@click.pass_context
def positions(ctx: click.Context, user: str, include_lifecycles: bool, as_json: bool, **scope: Any) -> None:
    """Position history snapshots and current open positions."""
    from cli.output import format_positions
    from reports import build_positions_report

    _run_report(
        ctx, "positions", user,
        build=lambda src, q, cfg: build_positions_report(src, q, cfg.target_builder, include_lifecycles),
        render=format_positions,
        summarize=lambda r: {"snapshots": len(r.snapshots)},
        as_json=as_json,
        **scope,
    )


# ---------- ledger deposits ----------


@cli.command()
@click.option("--user", required=True, help="Account address.")
@click.option("--from-ms", "from_ms", default=None, type=int, help="Inclusive start time (ms since epoch).")
@click.option("--to-ms", "to_ms", default=None, type=int, help="Inclusive end time (ms since epoch).")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the report as JSON.")
@click.pass_context
def deposits(ctx: click.Context, user: str, from_ms: int | None, to_ms: int | None, as_json: bool) -> None:
    """USDC deposits and inbound transfers, newest first."""
    from cli.output import format_deposits
    from reports import build_deposits_report

    _run_report(
        ctx, "deposits", user,
        build=lambda src, q, cfg: build_deposits_report(src, q),
        render=format_deposits,
        summarize=lambda r: {"deposits": r.count, "total": r.total},
        from_ms=from_ms,
        to_ms=to_ms,
        as_json=as_json,
    )


# ---------- ledger leaderboard ----------


@cli.command()
@click.option("--users", "users_csv", default="", help="Comma-separated accounts (default: leaderboard.users in config).")
@click.option("--metric", default="pnl", type=click.Choice(["pnl", "returnPct", "volume", "tradeCount"]),
              help="Ranking metric.")
@click.option("--coin", default=None, help="Restrict to one coin.")
@click.option("--from-ms", "from_ms", default=None, type=int, help="Inclusive start time (ms since epoch).")
@click.option("--to-ms", "to_ms", default=None, type=int, help="Inclusive end time (ms since epoch).")
@click.option("--attribution-only", is_flag=True, default=False, help="Only builder-attributed activity; tainted accounts dropped.")
@click.option("--exclude-tainted", is_flag=True, default=False, help="Drop tainted accounts in any mode.")
@click.option("--max-start-capital", "max_start_capital", default=None, type=float, help="Capital cap for return %.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the ranking as JSON.")
@click.pass_context
def leaderboard(
    ctx: click.Context,
    users_csv: str,
    metric: str,
    coin: str | None,
    from_ms: int | None,
    to_ms: int | None,
    attribution_only: bool,
    exclude_tainted: bool,
    max_start_capital: float | None,
    as_json: bool,
) -> None:
    """Rank accounts by PnL, return %, volume or trade count."""
    cfg = _load(ctx)
    from cli.output import format_leaderboard
    from data import get_data_source
    from ledger_core.contracts import QueryScope
    from reports import QueryValidationError, build_leaderboard

    users = [u.strip() for u in users_csv.split(",") if u.strip()] or list(cfg.leaderboard.users)
    if not users:
        raise click.UsageError("No accounts given. Pass --users or set leaderboard.users in config.", ctx=ctx)
    if from_ms is not None and to_ms is not None and from_ms > to_ms:
        raise click.UsageError(f"from_ms ({from_ms}) is after to_ms ({to_ms})", ctx=ctx)

    events = _events(cfg)
    events.query_start("leaderboard", metric=metric, accounts=len(users), coin=coin)
    try:
        source = get_data_source(cfg.data)
    except (FileNotFoundError, ValueError) as exc:
        events.error("data source unavailable", str(exc))
        raise click.ClickException(str(exc)) from exc

    try:
        entries = build_leaderboard(
            source,
            users,
            metric=metric,
            scope=QueryScope(coin=coin or None, from_ms=from_ms, to_ms=to_ms),
            attribution_only=attribution_only,
            exclude_tainted=exclude_tainted,
            cap_capital=max_start_capital if max_start_capital is not None else cfg.max_start_capital,
            target_builder=cfg.target_builder,
            max_workers=cfg.leaderboard.max_workers,
            on_drop=lambda user, exc: events.account_dropped(user, str(exc)),
        )
    except QueryValidationError as exc:
        raise click.UsageError(str(exc), ctx=ctx) from exc
    events.query_complete("leaderboard", ranked=len(entries), accounts=len(users))

    if as_json:
        click.echo(json.dumps([e.to_dict() for e in entries], indent=2))
    else:
        click.echo(format_leaderboard(entries, metric))


# ---------- ledger health ----------


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check config and data source construction.

    Exit code 0 = healthy, 1 = unhealthy.
    """
    checks: list[tuple[str, bool, str]] = []

    try:
        cfg = load_config(ctx.obj["config_path"])
        checks.append(("config", True, f"loaded (source={cfg.data.source}, builder={cfg.target_builder or '*'})"))
    except (FileNotFoundError, ConfigError) as e:
        checks.append(("config", False, str(e)))
        _print_health(checks)
        raise SystemExit(1)

    try:
        from data import get_data_source

        source = get_data_source(cfg.data)
        checks.append(("data_source", True, type(source).__name__))
    except (FileNotFoundError, ValueError) as e:
        checks.append(("data_source", False, str(e)))

    _print_health(checks)
    healthy = all(ok for _, ok, _ in checks)
    raise SystemExit(0 if healthy else 1)


def _print_health(checks: list[tuple[str, bool, str]]) -> None:
    for name, ok, detail in checks:
        status = "OK" if ok else "FAIL"
        click.echo(f"  [{status}] {name}: {detail}")
    healthy = all(ok for _, ok, _ in checks)
    click.echo(f"\nHealth: {'HEALTHY' if healthy else 'UNHEALTHY'}")


if __name__ == "__main__":
    cli()
