"""
Transport targets and channels.

A channel follows ``open() / send(payload) / close()``. ``channel_session()`` takes the
per-target lock before ``open()`` and releases it after ``close()``, so two attempts
against one physical printer never interleave bytes.

ESC/POS targets go through python-escpos device classes (``Serial``, ``Network``,
``Win32Raw``/``LP``); the device factory can be swapped (tests pass fakes). HostDialog
targets take a HostDocument instead of bytes and print on the UI thread.
"""

from __future__ import annotations

import logging
import socket
import sys
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Dict, Iterator, Optional, Protocol, Union

import serial

from receipt_printer.core.errors import (
    TargetBusy,
    TransportError,
    TransportRejected,
    TransportTimeout,
    TransportUnavailable,
)

from .host import HostDocument, HostSurface, UiContext, default_surface, ui_context

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TargetCapabilities:
    cut: bool = True
    raw_bytes: bool = True


HOST_CAPABILITIES = TargetCapabilities(cut=False, raw_bytes=False)


@dataclass(frozen=True)
class SpoolerQueue:
    name: str
    capabilities: TargetCapabilities = field(default_factory=TargetCapabilities)
    kind: ClassVar[str] = "spooler"

    @property
    def key(self) -> str:
        return f"spooler:{self.name.lower()}"


@dataclass(frozen=True)
class SerialPort:
    path: str
    baud: int = 9600
    capabilities: TargetCapabilities = field(default_factory=TargetCapabilities)
    kind: ClassVar[str] = "serial"

    @property
    def key(self) -> str:
        return f"serial:{normalize_com_port(self.path).lower()}"


@dataclass(frozen=True)
class NetworkSocket:
    host: str
    port: int = 9100
    capabilities: TargetCapabilities = field(default_factory=TargetCapabilities)
    kind: ClassVar[str] = "network"

    @property
    def key(self) -> str:
        return f"network:{self.host.lower()}:{self.port}"


@dataclass(frozen=True)
class HostDialog:
    surface: str = ""
    capabilities: TargetCapabilities = field(default_factory=lambda: HOST_CAPABILITIES)
    kind: ClassVar[str] = "host_dialog"

    @property
    def key(self) -> str:
        # a named surface prints to the spooler queue of the same name
        if self.surface:
            return SpoolerQueue(self.surface).key
        return "host:"


TransportTarget = Union[SpoolerQueue, SerialPort, NetworkSocket, HostDialog]
EscposTarget = Union[SpoolerQueue, SerialPort, NetworkSocket]
DeviceFactory = Callable[[EscposTarget, float], Any]


def normalize_com_port(path: str, windows: Optional[bool] = None) -> str:
    r"""Windows needs the ``\\.\COMn`` form for ports above COM9."""
    is_win = sys.platform.startswith("win") if windows is None else windows
    p = path.strip()
    if is_win and p.upper().startswith("COM") and p[3:].isdigit() and int(p[3:]) > 9:
        return "\\\\.\\" + p.upper()
    return p


def describe_target(target: TransportTarget) -> str:
    if isinstance(target, SerialPort):
        return f"serial {target.path}@{target.baud}"
    if isinstance(target, NetworkSocket):
        return f"network {target.host}:{target.port}"
    if isinstance(target, SpoolerQueue):
        return f"spooler {target.name!r}"
    return f"host dialog {target.surface or '(default)'}"


class Channel(Protocol):
    target: TransportTarget

    def open(self) -> None: ...

    def send(self, payload: Any) -> int: ...

    def close(self) -> None: ...


def escpos_device(target: EscposTarget, timeout: float) -> Any:
    """
    Create (but do not open) the python-escpos device for ``target``.
    """
    if isinstance(target, SerialPort):
        from escpos.printer import Serial

        return Serial(devfile=normalize_com_port(target.path), baudrate=target.baud, timeout=timeout)
    if isinstance(target, NetworkSocket):
        from escpos.printer import Network

        return Network(target.host, port=target.port, timeout=timeout)
    if isinstance(target, SpoolerQueue):
        if sys.platform.startswith("win"):
            from escpos.printer import Win32Raw

            return Win32Raw(printer_name=target.name)
        from escpos.printer import LP

        return LP(printer_name=target.name)
    raise TypeError(f"not an ESC/POS target: {target!r}")


def _is_timeout(exc: BaseException) -> bool:
    seen = exc
    while seen is not None:
        if isinstance(seen, (socket.timeout, TimeoutError, serial.SerialTimeoutException)):
            return True
        seen = seen.__cause__ or seen.__context__
    return False


class EscposChannel:
    """
    Raw ESC/POS byte channel over a python-escpos device.

    Any failure raised by the device maps to a TransportError: timeouts first, then
    TransportUnavailable from ``open()`` and TransportRejected from ``send()``. Spooler
    devices submit the job on close, so a close failure after a send is a rejection.
    """

    def __init__(self, target: EscposTarget, device_factory: Optional[DeviceFactory] = None, timeout: float = 5.0):
        self.target = target
        self.timeout = timeout
        self._factory = device_factory or escpos_device
        self._device: Any = None
        self._sent = False

    @property
    def is_open(self) -> bool:
        return self._device is not None

    def _serial_port(self, device: Any) -> Any:
        if not isinstance(self.target, SerialPort):
            return None
        port = getattr(device, "_device", None)
        return port if isinstance(port, serial.Serial) else None

    def open(self) -> None:
        where = describe_target(self.target)
        try:
            device = self._factory(self.target, self.timeout)
            device.open()
            port = self._serial_port(device)
            if port is not None:
                # python-escpos only sets the read timeout
                port.write_timeout = self.timeout
        except TransportError:
            raise
        except Exception as e:
            if _is_timeout(e):
                raise TransportTimeout(f"timed out opening {where}: {e}", self.target) from e
            raise TransportUnavailable(f"cannot open {where}: {e}", self.target) from e
        self._device = device
        self._sent = False
        logger.debug("opened %s", where)

    def send(self, payload: bytes) -> int:
        if not isinstance(payload, (bytes, bytearray)):
            raise TypeError("ESC/POS channels only accept bytes")
        if self._device is None:
            raise TransportUnavailable(f"{describe_target(self.target)} is not open", self.target)
        try:
            self._device._raw(bytes(payload))
        except Exception as e:
            if _is_timeout(e):
                self._abort()
                raise TransportTimeout(f"timed out writing to {describe_target(self.target)}", self.target) from e
            raise TransportRejected(f"write to {describe_target(self.target)} failed: {e}", self.target) from e
        self._sent = True
        return len(payload)

    def _abort(self) -> None:
        """Drop unsent output and close without submitting anything."""
        port = self._serial_port(self._device)
        if port is not None:
            try:
                port.reset_output_buffer()
            except (OSError, serial.SerialException) as e:
                logger.debug("discarding output on %s failed: %s", describe_target(self.target), e)
        self._sent = False
        self.close()

    def close(self) -> None:
        device, self._device = self._device, None
        submitted, self._sent = self._sent, False
        if device is None:
            return
        try:
            device.close()
        except Exception as e:
            if submitted and isinstance(self.target, SpoolerQueue):
                raise TransportRejected(
                    f"{describe_target(self.target)} did not accept the job: {e}", self.target
                ) from e
            logger.debug("closing %s failed: %s", describe_target(self.target), e)


class HostDialogChannel:
    """Hands HostDocuments to a host surface on the UI thread."""

    def __init__(
        self,
        target: HostDialog,
        surface: Optional[HostSurface] = None,
        ui: Optional[UiContext] = None,
        timeout: Optional[float] = None,
        interactive: bool = False,
    ):
        self.target = target
        self.surface = surface or default_surface(target.surface, interactive=interactive)
        self.ui = ui or ui_context()
        self.timeout = timeout
        self._open = False

    def open(self) -> None:
        if not self.surface.available():
            raise TransportUnavailable(f"host surface {type(self.surface).__name__} is not available here", self.target)
        self._open = True

    def send(self, payload: HostDocument) -> int:
        if not isinstance(payload, HostDocument):
            raise TypeError("host dialog channels accept documents, not raw bytes")
        if not self._open:
            raise TransportUnavailable("host dialog channel is not open", self.target)
        try:
            self.ui.run(self.surface.print_document, payload, timeout=self.timeout)
        except TransportError:
            raise
        except Exception as e:
            raise TransportRejected(f"host print failed: {e}", self.target) from e
        return len(payload.lines)

    def close(self) -> None:
        self._open = False


class TargetLocks:
    """
    Per-target exclusion locks keyed by ``target.key``.

    mode ``block`` waits (up to ``timeout`` seconds when set, then TransportTimeout);
    mode ``reject`` fails immediately with TargetBusy. ``with_policy()`` returns a view
    with another mode that shares the same lock table.
    """

    def __init__(
        self,
        mode: str = "block",
        timeout: Optional[float] = None,
        _table: Optional[Dict[str, threading.Lock]] = None,
        _guard: Optional[threading.Lock] = None,
    ):
        if mode not in ("block", "reject"):
            raise ValueError(f"unknown lock mode {mode!r}")
        self.mode = mode
        self.timeout = timeout
        self._locks: Dict[str, threading.Lock] = {} if _table is None else _table
        self._guard = _guard or threading.Lock()

    def with_policy(self, mode: str, timeout: Optional[float] = None) -> "TargetLocks":
        return TargetLocks(mode, timeout, self._locks, self._guard)

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def is_held(self, target: TransportTarget) -> bool:
        return self._lock_for(target.key).locked()

    @contextmanager
    def hold(self, target: TransportTarget) -> Iterator[None]:
        lock = self._lock_for(target.key)
        if self.mode == "reject":
            acquired = lock.acquire(blocking=False)
        elif self.timeout is None:
            acquired = lock.acquire()
        else:
            acquired = lock.acquire(timeout=self.timeout)
        if not acquired:
            if self.mode == "reject":
                raise TargetBusy(f"{describe_target(target)} is in use", target)
            raise TransportTimeout(f"waited {self.timeout}s for {describe_target(target)}", target)
        try:
            yield
        finally:
            lock.release()


TARGET_LOCKS = TargetLocks()


@contextmanager
def channel_session(channel: Channel, locks: TargetLocks = TARGET_LOCKS) -> Iterator[Channel]:
    """Lock the channel's target, open it, and guarantee close + unlock on exit."""
    with locks.hold(channel.target):
        channel.open()
        try:
            yield channel
        finally:
            channel.close()


def open_channel(
    target: TransportTarget,
    *,
    timeout: float = 5.0,
    device_factory: Optional[DeviceFactory] = None,
    surface: Optional[HostSurface] = None,
    ui: Optional[UiContext] = None,
    interactive: bool = False,
) -> Channel:
    """Build the (unopened) channel matching ``target``."""
    if isinstance(target, HostDialog):
        return HostDialogChannel(target, surface=surface, ui=ui, interactive=interactive)
    if isinstance(target, (SpoolerQueue, SerialPort, NetworkSocket)):
        return EscposChannel(target, device_factory=device_factory, timeout=timeout)
    raise TypeError(f"unknown transport target {target!r}")


__all__ = [
    "Channel",
    "EscposChannel",
    "HOST_CAPABILITIES",
    "HostDialog",
    "HostDialogChannel",
    "NetworkSocket",
    "SerialPort",
    "SpoolerQueue",
    "TARGET_LOCKS",
    "TargetCapabilities",
    "TargetLocks",
    "TransportTarget",
    "channel_session",
    "describe_target",
    "escpos_device",
    "normalize_com_port",
    "open_channel",
]
