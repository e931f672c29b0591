"""
Data sources: fetch raw fills, account state and ledger updates per user.

Depends on nothing in ledger_core; ledger_core never imports data.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from data.fetcher import FetchError, LedgerDataSource, StaticDataSource

if TYPE_CHECKING:
    from config.loader import DataConfig

__all__ = [
    "FetchError",
    "get_data_source",
    "LedgerDataSource",
    "StaticDataSource",
]


def get_data_source(cfg: DataConfig) -> LedgerDataSource:
    """Build the configured source. Lazy import keeps requests off the file path."""
    if cfg.source == "file":
        return StaticDataSource.from_json(cfg.snapshot_path)
    if cfg.source == "hyperliquid":
        from data.hyperliquid_fetcher import HyperliquidInfoSource

        return HyperliquidInfoSource(
            cfg.api_url,
            max_retries=cfg.max_retries,
            retry_delay_s=cfg.retry_delay_s,
            timeout_s=cfg.timeout_s,
        )
    raise ValueError(f"Unsupported data source '{cfg.source}'. Supported: ['hyperliquid', 'file']")
