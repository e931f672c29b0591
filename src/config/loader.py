"""
Config loader: YAML file -> validated mapping -> frozen dataclass tree.

Overrides resolved from environment variables (TARGET_BUILDER_TAG,
MAX_START_CAPITAL, LEDGER_API_URL). Config file holds only non-secret values.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml

logger = logging.getLogger("ledger.config")

DEFAULT_API_URL = "https://api.hyperliquid.xyz/info"
DEFAULT_MAX_START_CAPITAL = 10_000.0

CONFIG_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "target_builder": {"type": "string"},
        "max_start_capital": {"type": "number", "exclusiveMinimum": 0},
        "data": {
            "type": "object",
            "properties": {
                "source": {"enum": ["hyperliquid", "file"]},
                "api_url": {"type": "string"},
                "snapshot_path": {"type": "string"},
                "max_retries": {"type": "integer", "minimum": 1},
                "retry_delay_s": {"type": "number", "minimum": 0},
                "timeout_s": {"type": "number", "exclusiveMinimum": 0},
            },
            "additionalProperties": False,
        },
        "leaderboard": {
            "type": "object",
            "properties": {
                "users": {"type": "array", "items": {"type": "string"}},
                "max_workers": {"type": "integer", "minimum": 1},
            },
            "additionalProperties": False,
        },
        "alerting": {
            "type": "object",
            "properties": {
                "structured_logs": {"type": "boolean"},
                "webhook_url": {"type": "string"},
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}


class ConfigError(Exception):
    """Raised when the config file cannot be parsed or fails validation."""


@dataclass(frozen=True)
class DataConfig:
    source: str = "hyperliquid"
    api_url: str = DEFAULT_API_URL
    snapshot_path: str = "data/snapshot.json"
    max_retries: int = 3
    retry_delay_s: float = 1.0
    timeout_s: float = 10.0


@dataclass(frozen=True)
class LeaderboardConfig:
    users: tuple[str, ...] = ()
    max_workers: int = 4


@dataclass(frozen=True)
class AlertingConfig:
    structured_logs: bool = True
    webhook_url: str = ""


@dataclass(frozen=True)
class AppConfig:
    target_builder: str = ""
    max_start_capital: float = DEFAULT_MAX_START_CAPITAL
    data: DataConfig = field(default_factory=DataConfig)
    leaderboard: LeaderboardConfig = field(default_factory=LeaderboardConfig)
    alerting: AlertingConfig = field(default_factory=AlertingConfig)


def _env_float(name: str, fallback: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return fallback
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def load_config(path: str | Path = "config.yaml") -> AppConfig:
    """
    Load configuration from a YAML file and validate it.

    Environment overrides:
      - TARGET_BUILDER_TAG   -> target_builder
      - MAX_START_CAPITAL    -> max_start_capital
      - LEDGER_API_URL       -> data.api_url
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file is not valid YAML: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    try:
        jsonschema.validate(instance=raw, schema=CONFIG_SCHEMA)
    except jsonschema.ValidationError as exc:
        raise ConfigError(f"Config validation failed: {exc.message}") from exc

    data_raw = raw.get("data", {})
    data_cfg = DataConfig(
        source=data_raw.get("source", "hyperliquid"),
        api_url=os.environ.get("LEDGER_API_URL", "").strip() or data_raw.get("api_url", DEFAULT_API_URL),
        snapshot_path=data_raw.get("snapshot_path", "data/snapshot.json"),
        max_retries=int(data_raw.get("max_retries", 3)),
        retry_delay_s=float(data_raw.get("retry_delay_s", 1.0)),
        timeout_s=float(data_raw.get("timeout_s", 10.0)),
    )

    lb_raw = raw.get("leaderboard", {})
    lb_cfg = LeaderboardConfig(
        users=tuple(u.strip().lower() for u in lb_raw.get("users", []) if u.strip()),
        max_workers=int(lb_raw.get("max_workers", 4)),
    )

    a_raw = raw.get("alerting", {})
    a_cfg = AlertingConfig(
        structured_logs=bool(a_raw.get("structured_logs", True)),
        webhook_url=str(a_raw.get("webhook_url", "")),
    )

    max_start_capital = _env_float(
        "MAX_START_CAPITAL", float(raw.get("max_start_capital", DEFAULT_MAX_START_CAPITAL))
    )
    if max_start_capital <= 0:
        raise ConfigError(f"max_start_capital must be positive, got {max_start_capital}")

    cfg = AppConfig(
        target_builder=os.environ.get("TARGET_BUILDER_TAG", "").strip() or str(raw.get("target_builder", "")),
        max_start_capital=max_start_capital,
        data=data_cfg,
        leaderboard=lb_cfg,
        alerting=a_cfg,
    )
    logger.debug("Loaded config from %s (source=%s)", config_path, cfg.data.source)
    return cfg
