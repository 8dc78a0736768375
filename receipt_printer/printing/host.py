"""
Host print surfaces: hand a receipt document to the operating system's own print
pipeline, which does its own shaping and layout.

Surfaces:
- GdiSurface: Windows GDI printer DC via pywin32 (TextOut per line)
- LpSurface: CUPS ``lp`` with a UTF-8 text job
- ShellPrintSurface: the Windows shell "print" verb (may show a dialog)

All host printing is scheduled on one UI-affine thread (``UiContext``).
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence, Tuple, TypeVar

from receipt_printer.core.errors import TransportRejected, TransportTimeout, TransportUnavailable

from .layout import DocumentLine, document_text
from .protocol import Align

logger = logging.getLogger(__name__)

T = TypeVar("T")

IS_WINDOWS = sys.platform.startswith("win")


@dataclass(frozen=True)
class HostDocument:
    """A renderable document for the host print pipeline (logical-order Unicode text)."""

    title: str
    lines: Tuple[DocumentLine, ...]
    font_name: str = "Tahoma"
    font_height: int = 18
    interactive: bool = False

    @property
    def text(self) -> str:
        return document_text(self.lines)


class HostSurface(Protocol):
    name: str

    def available(self) -> bool: ...

    def print_document(self, doc: HostDocument) -> None: ...


class UiContext:
    """Runs callables on a single dedicated thread and waits for the result."""

    def __init__(self, name: str = "receipt-printer-ui"):
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self.thread_ident: Optional[int] = None

    def _mark(self) -> None:
        self.thread_ident = threading.get_ident()

    def run(self, fn: Callable[..., T], *args, timeout: Optional[float] = None) -> T:
        def call() -> T:
            self._mark()
            return fn(*args)

        future = self._executor.submit(call)
        try:
            return future.result(timeout=timeout)
        except FutureTimeout:
            raise TransportTimeout(f"host print did not finish within {timeout}s") from None

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)


_UI: Optional[UiContext] = None
_UI_LOCK = threading.Lock()


def ui_context() -> UiContext:
    """Process-wide UI context, created on first use."""
    global _UI
    with _UI_LOCK:
        if _UI is None:
            _UI = UiContext()
        return _UI


def _default_printer_name() -> str:
    if IS_WINDOWS:
        import win32print

        return win32print.GetDefaultPrinter()
    return ""


class GdiSurface:
    """Draws document lines onto a Windows printer DC."""

    def __init__(self, printer_name: str = "", left: int = 10, top: int = 10, line_spacing: int = 4):
        self.name = printer_name
        self.left = left
        self.top = top
        self.line_spacing = line_spacing

    def available(self) -> bool:
        return IS_WINDOWS

    def print_document(self, doc: HostDocument) -> None:
        import win32con
        import win32ui

        printer = self.name or _default_printer_name()
        hdc = win32ui.CreateDC()
        try:
            hdc.CreatePrinterDC(printer)
        except Exception as e:
            raise TransportUnavailable(f"cannot open printer DC for {printer!r}: {e}") from e
        try:
            hdc.SetMapMode(win32con.MM_TEXT)
            page_width = hdc.GetDeviceCaps(win32con.HORZRES)
            regular = win32ui.CreateFont({"name": doc.font_name, "height": -doc.font_height, "weight": 400})
            bold = win32ui.CreateFont({"name": doc.font_name, "height": -doc.font_height, "weight": 700})
            hdc.StartDoc(doc.title)
            hdc.StartPage()
            y = self.top
            for line in doc.lines:
                hdc.SelectObject(bold if line.bold else regular)
                w, h = hdc.GetTextExtent(line.text or " ")
                if line.align == Align.CENTER:
                    x = max(self.left, (page_width - w) // 2)
                elif line.align == Align.RIGHT:
                    x = max(self.left, page_width - self.left - w)
                else:
                    x = self.left
                hdc.TextOut(x, y, line.text)
                y += h + self.line_spacing
            hdc.EndPage()
            hdc.EndDoc()
            logger.info("GDI document %r sent to %s (%d lines)", doc.title, printer, len(doc.lines))
        finally:
            hdc.DeleteDC()


class LpSurface:
    """Submits the document as a UTF-8 text job through CUPS ``lp``."""

    def __init__(self, printer_name: str = "", timeout: float = 30.0):
        self.name = printer_name
        self.timeout = timeout

    def command(self, doc: HostDocument) -> list[str]:
        cmd = ["lp"]
        if self.name:
            cmd += ["-d", self.name]
        cmd += ["-t", doc.title, "-o", "document-format=text/plain;charset=utf-8"]
        return cmd

    def available(self) -> bool:
        return not IS_WINDOWS

    def print_document(self, doc: HostDocument) -> None:
        try:
            result = subprocess.run(
                self.command(doc),
                input=doc.text.encode("utf-8"),
                capture_output=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise TransportUnavailable("lp is not installed") from e
        except subprocess.TimeoutExpired as e:
            raise TransportTimeout(f"lp did not finish within {self.timeout}s") from e
        if result.returncode != 0:
            err = result.stderr.decode("utf-8", errors="replace").strip()
            raise TransportRejected(f"lp exited with {result.returncode}: {err}")
        logger.info("lp job submitted: %s", result.stdout.decode("utf-8", errors="replace").strip())


class ShellPrintSurface:
    """Prints a temporary UTF-8 text file with the Windows shell print verb."""

    def __init__(self, printer_name: str = ""):
        self.name = printer_name

    def available(self) -> bool:
        return IS_WINDOWS and hasattr(os, "startfile")

    def print_document(self, doc: HostDocument) -> None:
        if not self.available():
            raise TransportUnavailable("interactive printing is only supported on Windows")
        fd, path = tempfile.mkstemp(prefix="receipt-", suffix=".txt")
        with os.fdopen(fd, "w", encoding="utf-8-sig") as f:
            f.write(doc.text)
        os.startfile(path, "print")  # type: ignore[attr-defined]
        logger.info("shell print requested for %s", path)


def default_surface(printer_name: str = "", interactive: bool = False) -> HostSurface:
    if interactive:
        return ShellPrintSurface(printer_name)
    if IS_WINDOWS:
        return GdiSurface(printer_name)
    return LpSurface(printer_name)


def make_document(lines: Sequence[DocumentLine], title: str, *, interactive: bool = False) -> HostDocument:
    return HostDocument(title=title, lines=tuple(lines), interactive=interactive)


__all__ = [
    "GdiSurface",
    "HostDocument",
    "HostSurface",
    "LpSurface",
    "ShellPrintSurface",
    "UiContext",
    "default_surface",
    "make_document",
    "ui_context",
]
