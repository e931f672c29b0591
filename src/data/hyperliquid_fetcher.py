"""
Hyperliquid info fetcher: implements LedgerDataSource against the public info API.

Every request is a JSON POST {"type": ..., "user": ...} to one endpoint.
Failures (network, non-2xx, undecodable body) are retried with linear
backoff before a terminal FetchError; a failed fetch is never reported
as an empty history.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import requests

from data.fetcher import FetchError

logger = logging.getLogger("ledger.fetcher")

DEFAULT_API_URL = "https://api.hyperliquid.xyz/info"


class HyperliquidInfoSource:
    """
    Fetch fills, clearinghouse state and ledger updates from Hyperliquid.

    Retries up to ``max_retries`` attempts, sleeping ``retry_delay_s * n``
    after the n-th failure. ``session`` and ``sleep`` are injectable for tests.
    """

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        *,
        max_retries: int = 3,
        retry_delay_s: float = 1.0,
        timeout_s: float = 10.0,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not api_url:
            raise ValueError("Hyperliquid API URL is required. Set data.api_url or LEDGER_API_URL.")
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        self._api_url = api_url
        self._max_retries = max_retries
        self._retry_delay_s = retry_delay_s
        self._timeout_s = timeout_s
        self._session = session or requests.Session()
        self._sleep = sleep

    def _post(self, body: dict[str, Any]) -> Any:
        last_error = ""
        status_code: int | None = None
        for attempt in range(1, self._max_retries + 1):
            try:
                resp = self._session.post(
                    self._api_url,
                    json=body,
                    headers={"Content-Type": "application/json"},
                    timeout=self._timeout_s,
                )
                status_code = resp.status_code
                if resp.status_code >= 400:
                    raise FetchError(f"[HTTP {resp.status_code}] {body['type']} request failed", resp.status_code)
                return resp.json()
            except (requests.RequestException, ValueError, FetchError) as exc:
                last_error = str(exc)
                logger.warning(
                    "Attempt %d/%d for %s failed: %s",
                    attempt, self._max_retries, body["type"], last_error,
                )
                if attempt < self._max_retries:
                    self._sleep(self._retry_delay_s * attempt)
        raise FetchError(
            f"{body['type']} for {body['user']} failed after {self._max_retries} attempts: {last_error}",
            status_code,
        )

    def fetch_user_fills(self, user: str) -> list[dict[str, Any]]:
        fills = self._post({"type": "userFills", "user": user.lower()})
        if fills is None:
            return []
        if not isinstance(fills, list):
            raise FetchError(f"userFills returned {type(fills).__name__}, expected a list")
        logger.info("Fetched %d fills for %s", len(fills), user)
        return fills

    def fetch_account_state(self, user: str) -> dict[str, Any] | None:
        state = self._post({"type": "clearinghouseState", "user": user.lower()})
        if state is not None and not isinstance(state, dict):
            raise FetchError(f"clearinghouseState returned {type(state).__name__}, expected an object")
        return state

    def fetch_ledger_updates(self, user: str) -> list[dict[str, Any]]:
        updates = self._post({"type": "userNonFundingLedgerUpdates", "user": user.lower(), "startTime": 0})
        return updates or []
