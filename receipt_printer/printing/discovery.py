"""
Printer discovery helpers.

Name matching is a plain keyword/substring heuristic over what the OS reports. It
can both miss printers and match the wrong ones; configure the target explicitly
when that matters.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from typing import Iterable, List, Optional, Sequence

from serial.tools import list_ports

from receipt_printer.core.config import Settings

from .transport import NetworkSocket, SerialPort, SpoolerQueue, TransportTarget

logger = logging.getLogger(__name__)


def _windows_printers() -> List[str]:
    import win32print

    flags = win32print.PRINTER_ENUM_LOCAL | win32print.PRINTER_ENUM_CONNECTIONS
    return [(p[2] or "").strip() for p in win32print.EnumPrinters(flags) if p[2]]


def _cups_printers() -> List[str]:
    try:
        result = subprocess.run(["lpstat", "-e"], capture_output=True, text=True, timeout=10)
    except FileNotFoundError:
        logger.debug("lpstat not installed; no spooler queues")
        return []
    except subprocess.TimeoutExpired:
        logger.warning("lpstat timed out")
        return []
    if result.returncode != 0:
        logger.debug("lpstat -e exited with %d: %s", result.returncode, result.stderr.strip())
        return []
    return [ln.strip() for ln in result.stdout.splitlines() if ln.strip()]


def list_printer_names() -> List[str]:
    """Spooler queue names known to the OS (Windows spooler or CUPS)."""
    if sys.platform.startswith("win"):
        return _windows_printers()
    return _cups_printers()


def list_serial_ports() -> List[str]:
    return sorted(p.device for p in list_ports.comports())


def match_printers(names: Iterable[str], keywords: Sequence[str]) -> List[str]:
    """Names containing any keyword (case-insensitive), in the order given."""
    kws = [k.lower() for k in keywords if k]
    return [n for n in names if any(k in n.lower() for k in kws)]


def resolve_target(settings: Settings, names: Optional[Sequence[str]] = None) -> TransportTarget:
    """
    Build the configured transport target.

    printer_type ``serial`` / ``network`` / ``spooler`` use the matching settings. A
    spooler without a name, and ``auto``, pick the first keyword match among the
    reported printer names; ``auto`` falls back to the serial port.
    """
    ptype = settings.printer_type
    if ptype == "serial":
        return SerialPort(settings.serial_port, settings.serial_baudrate)
    if ptype == "network":
        if not settings.network_host:
            raise ValueError("printer_type 'network' requires network_host")
        return NetworkSocket(settings.network_host, settings.network_port)
    if ptype in ("spooler", "auto"):
        if settings.spooler_name:
            return SpoolerQueue(settings.spooler_name)
        found = match_printers(list_printer_names() if names is None else names, settings.printer_keywords)
        if found:
            logger.info("matched spooler queue %r by keyword", found[0])
            return SpoolerQueue(found[0])
        if ptype == "auto":
            logger.info("no spooler queue matched; using serial port %s", settings.serial_port)
            return SerialPort(settings.serial_port, settings.serial_baudrate)
        raise ValueError("no spooler queue matched the configured printer keywords")
    raise ValueError(f"unsupported printer_type {ptype!r}")


__all__ = ["list_printer_names", "list_serial_ports", "match_printers", "resolve_target"]
