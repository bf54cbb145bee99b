"""
Runtime settings schema.

Frozen dataclasses produced by ``splitledger_config.loader`` from a YAML
settings file.  Callers obtain them only through
``splitledger_config.get_active_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

DISPATCH_MODES = ("inline", "thread_pool")


@dataclass(frozen=True)
class DispatchSettings:
    """How orchestrator batches reach processor units."""

    mode: str = "inline"
    max_workers: int = 4
    drain_timeout_seconds: float | None = 300.0


@dataclass(frozen=True)
class SchedulerSettings:
    batch_size: int = 10
    action_timeout_seconds: float | None = 30.0
    revalidate_on_execute: bool = True
    dispatch: DispatchSettings = field(default_factory=DispatchSettings)


@dataclass(frozen=True)
class LedgerSettings:
    supported_currencies: tuple[str, ...] = ("USD", "EUR", "GBP", "INR")


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///splitledger.db"
    echo: bool = False


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class SplitLedgerConfig:
    """Complete runtime settings plus identity for tracing."""

    config_id: str
    version: int
    scheduler: SchedulerSettings
    ledger: LedgerSettings
    database: DatabaseSettings
    logging: LoggingSettings
    checksum: str = ""
