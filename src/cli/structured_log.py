"""
Structured JSON event logger for report runs.

Emits one JSON object per line to stderr so log aggregators can parse
query outcomes alongside the human-readable report on stdout.

Optional webhook: when configured, alert events (account_dropped,
fetch_failed, error) are POSTed to the URL.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

import requests

logger = logging.getLogger("ledger.events")

ALERT_EVENTS = frozenset({"account_dropped", "fetch_failed", "error"})


class StructuredEventLogger:
    """Emit structured JSON events to stderr and optional webhook."""

    def __init__(
        self,
        user: str = "",
        *,
        enabled: bool = True,
        webhook_url: str = "",
        stream: Any = None,
        session: requests.Session | None = None,
    ) -> None:
        self._user = user
        self._enabled = enabled
        self._webhook_url = webhook_url.strip()
        self._stream = stream or sys.stderr
        self._session = session

    def _emit(self, event_type: str, **fields: Any) -> dict:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event_type,
            "user": fields.pop("user", self._user),
            **fields,
        }
        if self._enabled:
            self._stream.write(json.dumps(record, default=str) + "\n")
            self._stream.flush()

        if self._webhook_url and event_type in ALERT_EVENTS:
            self._post_webhook(record)

        return record

    def _post_webhook(self, record: dict) -> None:
        poster = self._session or requests
        try:
            resp = poster.post(self._webhook_url, json=record, timeout=5)
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Webhook POST failed: %s", exc)

    def query_start(self, command: str, **params: Any) -> dict:
        return self._emit("query_start", command=command, **params)

    def fetch_complete(self, fills: int, positions: int) -> dict:
        return self._emit("fetch_complete", fills=fills, positions=positions)

    def query_complete(self, command: str, **summary: Any) -> dict:
        return self._emit("query_complete", command=command, **summary)

    def account_dropped(self, user: str, reason: str) -> dict:
        return self._emit("account_dropped", user=user, reason=reason)

    def fetch_failed(self, message: str, status_code: int | None = None) -> dict:
        return self._emit("fetch_failed", message=message, status_code=status_code)

    def error(self, message: str, detail: str = "") -> dict:
        return self._emit("error", message=message, detail=detail)
