"""
Settings loader (``splitledger_config.loader``).

Loads a YAML settings file and parses it into the frozen dataclasses of
``splitledger_config.schema``.  The single public entry point for runtime
settings is ``splitledger_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range or wrongly typed values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from splitledger_config.schema import (
    DISPATCH_MODES,
    DatabaseSettings,
    DispatchSettings,
    LedgerSettings,
    LoggingSettings,
    SchedulerSettings,
    SplitLedgerConfig,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _optional_seconds(value: Any, name: str) -> float | None:
    if value is None:
        return None
    seconds = float(value)
    if seconds <= 0:
        raise ValueError(f"{name} must be positive, got {value!r}")
    return seconds


def parse_dispatch(data: dict[str, Any]) -> DispatchSettings:
    mode = data.get("mode", "inline")
    if mode not in DISPATCH_MODES:
        raise ValueError(f"Unknown dispatch mode {mode!r}; expected one of {DISPATCH_MODES}")
    max_workers = int(data.get("max_workers", 4))
    if max_workers < 1:
        raise ValueError(f"max_workers must be at least 1, got {max_workers}")
    return DispatchSettings(
        mode=mode,
        max_workers=max_workers,
        drain_timeout_seconds=_optional_seconds(
            data.get("drain_timeout_seconds", 300), "drain_timeout_seconds",
        ),
    )


def parse_scheduler(data: dict[str, Any]) -> SchedulerSettings:
    batch_size = int(data.get("batch_size", 10))
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")
    return SchedulerSettings(
        batch_size=batch_size,
        action_timeout_seconds=_optional_seconds(
            data.get("action_timeout_seconds", 30), "action_timeout_seconds",
        ),
        revalidate_on_execute=bool(data.get("revalidate_on_execute", True)),
        dispatch=parse_dispatch(data.get("dispatch") or {}),
    )


def parse_ledger(data: dict[str, Any]) -> LedgerSettings:
    currencies = data.get("supported_currencies", ["USD", "EUR", "GBP", "INR"])
    if not currencies:
        raise ValueError("supported_currencies must not be empty")
    return LedgerSettings(
        supported_currencies=tuple(str(c).strip().upper() for c in currencies),
    )


def parse_config(data: dict[str, Any]) -> SplitLedgerConfig:
    """Parse a whole settings document.

    Raises:
        KeyError: if ``config_id`` or ``version`` is missing.
        ValueError: if a value is out of range.
    """
    database = data.get("database") or {}
    logging_data = data.get("logging") or {}
    return SplitLedgerConfig(
        config_id=data["config_id"],
        version=int(data["version"]),
        scheduler=parse_scheduler(data.get("scheduler") or {}),
        ledger=parse_ledger(data.get("ledger") or {}),
        database=DatabaseSettings(
            url=str(database.get("url", "sqlite:///splitledger.db")),
            echo=bool(database.get("echo", False)),
        ),
        logging=LoggingSettings(level=str(logging_data.get("level", "INFO")).upper()),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization (deterministic)."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
