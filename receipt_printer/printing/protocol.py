"""
ESC/POS command model and byte encoder.

Commands are plain frozen dataclasses so tests (and logs) can reason about the
structure of a print job before it is serialized. ``encode()`` is deterministic and
stateless.

The one contract that must never break: a RasterImage declares
``width_bytes * height`` and exactly that many payload bytes follow. A mismatch makes
the printer read the following commands as pixel data. RasterImage enforces this at
construction and ``encode()`` checks it again before writing.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional, Sequence, Union

from escpos.constants import CODEPAGE_CHANGE, ESC, GS

from receipt_printer.core.errors import ProtocolInvariantError

if TYPE_CHECKING:  # pragma: no cover
    from .layout import DocumentLine
    from .raster import PackedRaster

U16_MAX = 0xFFFF


class Align(IntEnum):
    LEFT = 0
    CENTER = 1
    RIGHT = 2


class CutMode(IntEnum):
    FULL = 0
    PARTIAL = 1
    FEED_FULL = 48
    FEED_PARTIAL = 49

    @classmethod
    def parse(cls, value: Union[str, int, "CutMode"]) -> "CutMode":
        if isinstance(value, CutMode):
            return value
        if isinstance(value, int):
            return cls(value)
        return {"full": cls.FULL, "partial": cls.PARTIAL}.get(str(value).strip().lower(), cls.FULL)


@dataclass(frozen=True)
class Init:
    pass


@dataclass(frozen=True)
class SetAlign:
    align: Align


@dataclass(frozen=True)
class SetBold:
    on: bool


@dataclass(frozen=True)
class SetCodepage:
    codepage_id: int

    def __post_init__(self) -> None:
        if not 0 <= self.codepage_id <= 255:
            raise ProtocolInvariantError(f"codepage id {self.codepage_id} out of range")


@dataclass(frozen=True)
class Text:
    """One printed line: transcoded bytes followed by a line feed on the wire."""

    data: bytes

    def __post_init__(self) -> None:
        # control bytes inside text would be parsed as commands
        if any(b < 0x20 for b in self.data):
            raise ProtocolInvariantError("text payload contains control bytes")


@dataclass(frozen=True)
class Feed:
    lines: int

    def __post_init__(self) -> None:
        if not 0 <= self.lines <= 255:
            raise ProtocolInvariantError(f"feed of {self.lines} lines out of range")


@dataclass(frozen=True)
class Cut:
    mode: CutMode = CutMode.FULL


@dataclass(frozen=True)
class RasterImage:
    width_bytes: int
    height: int
    bits: bytes

    def __post_init__(self) -> None:
        _check_raster(self.width_bytes, self.height, self.bits)


ProtocolCommand = Union[Init, SetAlign, SetBold, SetCodepage, Text, Feed, Cut, RasterImage]


def _check_raster(width_bytes: int, height: int, bits: bytes) -> None:
    if not (0 < width_bytes <= U16_MAX and 0 < height <= U16_MAX):
        raise ProtocolInvariantError(f"raster dimensions {width_bytes}x{height} do not fit the 16-bit header")
    if width_bytes * height != len(bits):
        raise ProtocolInvariantError(
            f"raster declares {width_bytes * height} bytes but carries {len(bits)}",
        )


def _u16le(n: int) -> bytes:
    return bytes((n & 0xFF, (n >> 8) & 0xFF))


def encode_command(cmd: ProtocolCommand) -> bytes:
    if isinstance(cmd, Init):
        return ESC + b"@"
    if isinstance(cmd, SetAlign):
        return ESC + b"a" + bytes((int(cmd.align),))
    if isinstance(cmd, SetBold):
        return ESC + b"E" + (b"\x01" if cmd.on else b"\x00")
    if isinstance(cmd, SetCodepage):
        return CODEPAGE_CHANGE + bytes((cmd.codepage_id,))
    if isinstance(cmd, Text):
        return cmd.data + b"\n"
    if isinstance(cmd, Feed):
        return ESC + b"d" + bytes((cmd.lines,))
    if isinstance(cmd, Cut):
        return GS + b"V" + bytes((int(cmd.mode),))
    if isinstance(cmd, RasterImage):
        _check_raster(cmd.width_bytes, cmd.height, cmd.bits)
        return GS + b"v0\x00" + _u16le(cmd.width_bytes) + _u16le(cmd.height) + cmd.bits
    raise ProtocolInvariantError(f"unknown command {cmd!r}")


def encode(commands: Iterable[ProtocolCommand]) -> bytes:
    """Serialize a command sequence to the printer byte stream."""
    return b"".join(encode_command(c) for c in commands)


def _finish(out: List[ProtocolCommand], feed_lines: int, cut: Optional[CutMode]) -> List[ProtocolCommand]:
    if feed_lines > 0:
        out.append(Feed(feed_lines))
    if cut is not None:
        out.append(Cut(cut))
    return out


def build_text_commands(
    lines: Sequence["DocumentLine"],
    transcode: Callable[[str], bytes],
    codepage_id: int,
    *,
    cut: Optional[CutMode] = CutMode.FULL,
    feed_lines: int = 4,
) -> List[ProtocolCommand]:
    """
    Commands for printing ``lines`` as codepage text. Every line is transcoded before
    any command is returned, so an UnsupportedGlyph leaves nothing half-built.
    """
    payloads = [transcode(ln.text) for ln in lines]
    out: List[ProtocolCommand] = [Init(), SetCodepage(codepage_id)]
    align: Optional[Align] = None
    bold: Optional[bool] = None
    for ln, data in zip(lines, payloads):
        if ln.align != align:
            align = ln.align
            out.append(SetAlign(align))
        if ln.bold != bold:
            bold = ln.bold
            out.append(SetBold(bold))
        out.append(Text(data))
    if bold:
        out.append(SetBold(False))
    if align not in (None, Align.LEFT):
        out.append(SetAlign(Align.LEFT))
    return _finish(out, feed_lines, cut)


def build_raster_commands(
    packed: "PackedRaster",
    *,
    cut: Optional[CutMode] = CutMode.FULL,
    feed_lines: int = 4,
) -> List[ProtocolCommand]:
    out: List[ProtocolCommand] = [
        Init(),
        SetAlign(Align.CENTER),
        RasterImage(packed.width_bytes, packed.height, packed.bits),
        SetAlign(Align.LEFT),
    ]
    return _finish(out, feed_lines, cut)


__all__ = [
    "Align",
    "Cut",
    "CutMode",
    "Feed",
    "Init",
    "ProtocolCommand",
    "RasterImage",
    "SetAlign",
    "SetBold",
    "SetCodepage",
    "Text",
    "build_raster_commands",
    "build_text_commands",
    "encode",
    "encode_command",
]
