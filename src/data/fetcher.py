"""
Fetch fills, account state and ledger updates from a data source.

Configurable adapter: the engine entry points take a LedgerDataSource
argument; pick the implementation per provider at the edge.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping, Protocol


class FetchError(RuntimeError):
    """Raised when the upstream data source fails after all retries."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LedgerDataSource(Protocol):
    """Protocol for account data sources. Implement per provider."""

    def fetch_user_fills(self, user: str) -> list[dict[str, Any]]:
        """Raw historical fills for *user* (exchange JSON shape)."""
        ...

    def fetch_account_state(self, user: str) -> dict[str, Any] | None:
        """Raw clearinghouse state for *user*."""
        ...

    def fetch_ledger_updates(self, user: str) -> list[dict[str, Any]]:
        """Raw non-funding ledger updates (deposits, transfers, withdrawals)."""
        ...


class StaticDataSource:
    """In-memory snapshot keyed by lower-cased user; for tests and offline runs.

    Unknown users get no fills, no state and no ledger updates.
    """

    def __init__(
        self,
        fills: Mapping[str, list[dict[str, Any]]] | None = None,
        states: Mapping[str, dict[str, Any]] | None = None,
        ledger: Mapping[str, list[dict[str, Any]]] | None = None,
    ) -> None:
        self._fills = {k.lower(): list(v) for k, v in (fills or {}).items()}
        self._states = {k.lower(): v for k, v in (states or {}).items()}
        self._ledger = {k.lower(): list(v) for k, v in (ledger or {}).items()}

    @classmethod
    def from_json(cls, path: str | Path) -> StaticDataSource:
        """Load a snapshot file: {"fills": {...}, "states": {...}, "ledger": {...}}."""
        snapshot_path = Path(path)
        if not snapshot_path.exists():
            raise FileNotFoundError(f"Snapshot file not found: {snapshot_path}")
        with open(snapshot_path) as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            raise ValueError(f"Snapshot must be a JSON object, got {type(raw).__name__}")
        return cls(fills=raw.get("fills"), states=raw.get("states"), ledger=raw.get("ledger"))

    @property
    def users(self) -> list[str]:
        return sorted(set(self._fills) | set(self._states))

    def fetch_user_fills(self, user: str) -> list[dict[str, Any]]:
        return list(self._fills.get(user.lower(), []))

    def fetch_account_state(self, user: str) -> dict[str, Any] | None:
        return self._states.get(user.lower())

    def fetch_ledger_updates(self, user: str) -> list[dict[str, Any]]:
        return list(self._ledger.get(user.lower(), []))
