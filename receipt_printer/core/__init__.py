"""
Core utilities for the receipt printer.

This package groups helpers used across the app:
- config: config path resolution, JSON load/save, layered Settings
- logging: request/job aware logging filters/formatters and root logger config
- errors: the print error taxonomy shared by every pipeline stage

Exports are explicit to keep static analyzers happy.
"""

from .config import (
    CONFIG_PATH,
    Settings,
    default_config_path,
    get_config_path,
    load_config,
    load_settings,
    save_config,
)
from .errors import (
    ExhaustedStrategies,
    OversizedBitmap,
    PrintCancelled,
    PrintError,
    ProtocolInvariantError,
    ScriptRequiresShaping,
    TargetBusy,
    TransportError,
    TransportRejected,
    TransportTimeout,
    TransportUnavailable,
    UnsupportedGlyph,
)
from .logging import (
    JsonFormatter,
    RequestIdFilter,
    bind_job_id,
    configure_logging,
)

__all__ = [
    # config
    "CONFIG_PATH",
    "Settings",
    "default_config_path",
    "get_config_path",
    "load_config",
    "load_settings",
    "save_config",
    # errors
    "ExhaustedStrategies",
    "OversizedBitmap",
    "PrintCancelled",
    "PrintError",
    "ProtocolInvariantError",
    "ScriptRequiresShaping",
    "TargetBusy",
    "TransportError",
    "TransportRejected",
    "TransportTimeout",
    "TransportUnavailable",
    "UnsupportedGlyph",
    # logging
    "JsonFormatter",
    "RequestIdFilter",
    "bind_job_id",
    "configure_logging",
]
