"""
splitledger_config -- single public entrypoint for runtime settings.

Responsibility:
    ``get_active_config()`` is the ONLY way to obtain settings at runtime.
    It reads the YAML settings file (``sets/default.yaml`` unless a path is
    given), applies environment overrides, and returns a frozen
    ``SplitLedgerConfig``.

Environment overrides:
    SPLITLEDGER_DATABASE_URL  replaces ``database.url``
    SPLITLEDGER_LOG_LEVEL     replaces ``logging.level``

Every call emits a ``splitledger_config_trace`` log entry with the config
id, version and checksum.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from splitledger_config.loader import compute_checksum, load_yaml_file, parse_config
from splitledger_config.schema import SplitLedgerConfig
from splitledger_kernel.logging_config import get_logger

_logger = get_logger("config")

# Default settings file
DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

ENV_DATABASE_URL = "SPLITLEDGER_DATABASE_URL"
ENV_LOG_LEVEL = "SPLITLEDGER_LOG_LEVEL"


def get_active_config(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> SplitLedgerConfig:
    """The ONLY public settings entrypoint.

    Args:
        config_path: Settings file.  Defaults to ``sets/default.yaml``.
        environ: Environment mapping for overrides.  Defaults to
            ``os.environ``.

    Raises:
        FileNotFoundError: If the settings file does not exist.
        KeyError: If required keys are missing.
        ValueError: If a value is out of range.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    env = os.environ if environ is None else environ

    data = load_yaml_file(path)
    if env.get(ENV_DATABASE_URL):
        data["database"] = {**(data.get("database") or {}), "url": env[ENV_DATABASE_URL]}
    if env.get(ENV_LOG_LEVEL):
        data["logging"] = {**(data.get("logging") or {}), "level": env[ENV_LOG_LEVEL]}

    config = parse_config(data)

    _logger.info(
        "splitledger_config_trace",
        extra={
            "config_path": str(path),
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "dispatch_mode": config.scheduler.dispatch.mode,
            "batch_size": config.scheduler.batch_size,
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "SplitLedgerConfig",
    "compute_checksum",
    "get_active_config",
]
