"""
Config utilities for the receipt printer.

Responsibilities:
- Resolve the config path with environment and XDG support
- Provide JSON load/save helpers for the printer config
- Layer defaults, the saved config and environment overrides into ``Settings``
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

DEFAULT_COM_PORT = "COM7"
DEFAULT_BAUD_RATE = 9600
DEFAULT_STRATEGIES: Tuple[str, ...] = ("direct_text", "raster_bitmap", "host_compositor", "interactive_dialog")
DEFAULT_PRINTER_KEYWORDS: Tuple[str, ...] = ("receipt", "thermal", "pos", "tm-", "xprinter", "rongta", "80mm", "58mm")


def default_config_path() -> str:
    """
    Resolve the default config path using:
    1) $XDG_CONFIG_HOME/receiptprint/config.json
    2) ~/.config/receiptprint/config.json
    """
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return str(Path(xdg) / "receiptprint" / "config.json")
    return str(Path.home() / ".config" / "receiptprint" / "config.json")


def get_config_path() -> str:
    """
    Return the config path honoring RECEIPTPRINT_CONFIG_PATH override.
    """
    return os.environ.get("RECEIPTPRINT_CONFIG_PATH", default_config_path())


def load_config(path: Optional[str] = None) -> Optional[dict[str, Any]]:
    """
    Load the JSON config if it exists; return None if missing.

    Raises:
        json.JSONDecodeError if the file exists but contains invalid JSON.
        OSError for I/O errors other than missing file.
    """
    cfg_path = Path(path or get_config_path())
    if not cfg_path.exists():
        return None
    with cfg_path.open("r", encoding="utf-8") as f:
        return json.load(f)


def save_config(data: dict[str, Any], path: Optional[str] = None) -> None:
    """
    Save the JSON config, creating parent directories as needed.

    Writes atomically by using a temporary file and os.replace().
    Raises OSError on I/O failures.
    """
    cfg_path = Path(path or get_config_path())
    cfg_path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path = cfg_path.with_suffix(cfg_path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, cfg_path)


@dataclass(frozen=True)
class Settings:
    """Effective printer settings. Build with ``load_settings()``."""

    printer_type: str = "serial"  # serial | network | spooler | auto
    serial_port: str = DEFAULT_COM_PORT
    serial_baudrate: int = DEFAULT_BAUD_RATE
    network_host: str = ""
    network_port: int = 9100
    spooler_name: str = ""
    host_surface: str = ""
    printer_keywords: Tuple[str, ...] = DEFAULT_PRINTER_KEYWORDS
    codepage: str = "pc437"
    codepage_ids: Dict[str, int] = field(default_factory=dict)
    receipt_width: int = 576
    receipt_columns: int = 48
    font_size: int = 24
    font_path: Optional[str] = None
    max_raster_height: int = 4000
    cut_mode: str = "full"
    cut_feed_lines: int = 4
    connect_timeout: float = 5.0
    lock_mode: str = "block"  # block | reject
    lock_timeout: Optional[float] = None
    layout_engine: str = "auto"  # auto | raqm | basic
    strategies: Tuple[str, ...] = DEFAULT_STRATEGIES

    def as_dict(self) -> dict[str, Any]:
        out = {f.name: getattr(self, f.name) for f in fields(self)}
        out["printer_keywords"] = list(self.printer_keywords)
        out["strategies"] = list(self.strategies)
        out["codepage_ids"] = dict(self.codepage_ids)
        return out


def _as_int(value: Any, default: int) -> int:
    try:
        return int(str(value).strip())
    except Exception:
        return default


def _as_float(value: Any, default: Optional[float]) -> Optional[float]:
    if value is None or str(value).strip() == "":
        return default
    try:
        return float(value)
    except Exception:
        return default


def _as_tuple(value: Any, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if isinstance(value, str):
        items = [v.strip() for v in value.split(",")]
    elif isinstance(value, (list, tuple)):
        items = [str(v).strip() for v in value]
    else:
        return default
    items = [v for v in items if v]
    return tuple(items) or default


def settings_from_mapping(cfg: Optional[Mapping[str, Any]], base: Optional[Settings] = None) -> Settings:
    """
    Overlay a config mapping onto ``base`` (defaults when None). Unknown keys are ignored
    and malformed numbers keep the previous value.
    """
    s = base or Settings()
    if not cfg:
        return s
    updates: dict[str, Any] = {}
    for key in ("printer_type", "serial_port", "network_host", "spooler_name", "host_surface", "codepage",
                "cut_mode", "lock_mode", "layout_engine"):
        val = cfg.get(key)
        if isinstance(val, str) and val.strip():
            updates[key] = val.strip().lower() if key in ("printer_type", "cut_mode", "lock_mode", "layout_engine", "codepage") else val.strip()
    for key in ("serial_baudrate", "network_port", "receipt_width", "receipt_columns", "font_size",
                "max_raster_height", "cut_feed_lines"):
        if key in cfg:
            updates[key] = _as_int(cfg.get(key), getattr(s, key))
    if "connect_timeout" in cfg:
        updates["connect_timeout"] = _as_float(cfg.get("connect_timeout"), s.connect_timeout)
    if "lock_timeout" in cfg:
        updates["lock_timeout"] = _as_float(cfg.get("lock_timeout"), s.lock_timeout)
    fp = cfg.get("font_path")
    if isinstance(fp, str) and fp.strip():
        updates["font_path"] = fp.strip()
    if "printer_keywords" in cfg:
        updates["printer_keywords"] = _as_tuple(cfg.get("printer_keywords"), s.printer_keywords)
    if "strategies" in cfg:
        updates["strategies"] = _as_tuple(cfg.get("strategies"), s.strategies)
    ids = cfg.get("codepage_ids")
    if isinstance(ids, Mapping):
        merged = dict(s.codepage_ids)
        for name, cp_id in ids.items():
            merged[str(name).lower()] = _as_int(cp_id, merged.get(str(name).lower(), 0))
        updates["codepage_ids"] = merged
    return replace(s, **updates)


def settings_from_env(base: Settings, env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Apply environment overrides. PRINTER_COM_PORT / PRINTER_BAUD_RATE keep the names the
    printer bridge has always used; everything else lives under RECEIPTPRINT_*.
    """
    env = os.environ if env is None else env
    updates: dict[str, Any] = {}
    if env.get("PRINTER_COM_PORT"):
        updates["serial_port"] = env["PRINTER_COM_PORT"].strip()
    if env.get("PRINTER_BAUD_RATE"):
        updates["serial_baudrate"] = _as_int(env["PRINTER_BAUD_RATE"], base.serial_baudrate)
    mapping = {
        "RECEIPTPRINT_PRINTER_TYPE": "printer_type",
        "RECEIPTPRINT_NETWORK_HOST": "network_host",
        "RECEIPTPRINT_SPOOLER_NAME": "spooler_name",
        "RECEIPTPRINT_CODEPAGE": "codepage",
        "RECEIPTPRINT_LOCK_MODE": "lock_mode",
        "RECEIPTPRINT_LAYOUT_ENGINE": "layout_engine",
    }
    overlay: dict[str, Any] = {}
    for env_key, cfg_key in mapping.items():
        if env.get(env_key):
            overlay[cfg_key] = env[env_key]
    for env_key, cfg_key in (
        ("RECEIPTPRINT_NETWORK_PORT", "network_port"),
        ("RECEIPTPRINT_MAX_RASTER_HEIGHT", "max_raster_height"),
        ("RECEIPTPRINT_CONNECT_TIMEOUT", "connect_timeout"),
        ("RECEIPTPRINT_RECEIPT_WIDTH", "receipt_width"),
    ):
        if env.get(env_key):
            overlay[cfg_key] = env[env_key]
    s = settings_from_mapping(overlay, base)
    return replace(s, **updates) if updates else s


def load_settings(config: Optional[Mapping[str, Any]] = None, path: Optional[str] = None) -> Settings:
    """
    Effective settings: defaults <- config (given mapping, else the saved file) <- environment.
    """
    cfg = config if config is not None else load_config(path)
    return settings_from_env(settings_from_mapping(cfg))


# Module-level resolved path (kept for convenience)
CONFIG_PATH: str = get_config_path()

__all__ = [
    "CONFIG_PATH",
    "DEFAULT_BAUD_RATE",
    "DEFAULT_COM_PORT",
    "DEFAULT_STRATEGIES",
    "Settings",
    "default_config_path",
    "get_config_path",
    "load_config",
    "load_settings",
    "save_config",
    "settings_from_env",
    "settings_from_mapping",
]
