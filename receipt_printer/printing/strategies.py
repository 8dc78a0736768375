"""
Render strategies, attempt lists, selection and per-strategy encoding.

A strategy decides *how* a receipt becomes printer input:

- DirectText: codepage text commands (fast, exact, no shaping)
- RasterBitmap: the receipt rendered to a monochrome raster image
- HostCompositor: a document handed to the OS print pipeline
- InteractiveDialog: same document, printed through the OS print dialog

Each Attempt binds one strategy to one transport target. Byte strategies need an
ESC/POS target; document strategies need a HostDialog.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import ClassVar, List, Optional, Sequence, Tuple, Union

from receipt_printer.core.config import Settings
from receipt_printer.core.errors import ScriptRequiresShaping

from .codepages import get_codepage, transcode
from .host import HostDocument, make_document
from .layout import DocumentLine, TextProfile
from .protocol import CutMode, ProtocolCommand, build_raster_commands, build_text_commands, encode
from .raster import pack
from .render import render_document
from .transport import HostDialog, SpoolerQueue, TargetCapabilities, TransportTarget

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectText:
    codepage: str = "pc437"
    kind: ClassVar[str] = "direct_text"


@dataclass(frozen=True)
class RasterBitmap:
    font_size: int = 24
    max_height: int = 4000
    kind: ClassVar[str] = "raster_bitmap"


@dataclass(frozen=True)
class HostCompositor:
    kind: ClassVar[str] = "host_compositor"


@dataclass(frozen=True)
class InteractiveDialog:
    kind: ClassVar[str] = "interactive_dialog"


RenderStrategy = Union[DirectText, RasterBitmap, HostCompositor, InteractiveDialog]

STRATEGY_NAMES: Tuple[str, ...] = (
    DirectText.kind,
    RasterBitmap.kind,
    HostCompositor.kind,
    InteractiveDialog.kind,
)


def emits_bytes(strategy: RenderStrategy) -> bool:
    return isinstance(strategy, (DirectText, RasterBitmap))


@dataclass(frozen=True)
class Attempt:
    strategy: RenderStrategy
    target: TransportTarget

    def __post_init__(self) -> None:
        host = isinstance(self.target, HostDialog)
        if emits_bytes(self.strategy) == host:
            raise ValueError(f"{self.strategy.kind} cannot be sent to a {self.target.kind} target")


@dataclass(frozen=True)
class Encoded:
    payload: Union[bytes, HostDocument]
    commands: Tuple[ProtocolCommand, ...] = ()


def parse_strategy(name: str, settings: Optional[Settings] = None) -> RenderStrategy:
    """
    Parse ``direct_text``, ``direct_text:wpc1256``, ``raster_bitmap``, ``host_compositor``
    or ``interactive_dialog``. Parameters default from ``settings``.
    """
    s = settings or Settings()
    kind, _, arg = str(name).strip().lower().partition(":")
    if kind == DirectText.kind:
        return DirectText(arg or s.codepage)
    if kind == RasterBitmap.kind:
        return RasterBitmap(int(arg) if arg else s.font_size, s.max_raster_height)
    if kind == HostCompositor.kind:
        return HostCompositor()
    if kind == InteractiveDialog.kind:
        return InteractiveDialog()
    raise ValueError(f"unknown strategy {name!r}; expected one of {', '.join(STRATEGY_NAMES)}")


def default_attempts(
    target: TransportTarget,
    settings: Optional[Settings] = None,
    strategies: Optional[Sequence[Union[str, RenderStrategy]]] = None,
) -> List[Attempt]:
    """
    Bind each strategy to a target: byte strategies use ``target``; document strategies
    use ``target`` when it is a HostDialog, else a HostDialog for the configured host
    surface (or the spooler queue's own name). Byte strategies are dropped when
    ``target`` is a HostDialog.
    """
    s = settings or Settings()
    if isinstance(target, HostDialog):
        host = target
    else:
        fallback = target.name if isinstance(target, SpoolerQueue) else ""
        host = HostDialog(s.host_surface or fallback)

    out: List[Attempt] = []
    for item in strategies or s.strategies:
        strategy = parse_strategy(item, s) if isinstance(item, str) else item
        if emits_bytes(strategy):
            if isinstance(target, HostDialog):
                continue
            out.append(Attempt(strategy, target))
        else:
            out.append(Attempt(strategy, host))
    return out


def select_next(
    attempts: Sequence[Attempt],
    failed: int,
    profile: TextProfile,
) -> Optional[Tuple[Attempt, Optional[ScriptRequiresShaping]]]:
    """
    The next attempt after ``failed`` failures, or None when the list is exhausted.

    DirectText is returned together with a ScriptRequiresShaping error when the receipt
    text needs shaping; the caller records it as a failure without encoding.
    """
    if failed >= len(attempts):
        return None
    attempt = attempts[failed]
    if isinstance(attempt.strategy, DirectText) and profile.needs_shaping:
        err = ScriptRequiresShaping(profile.first_shaped_char, profile.first_shaped_index, attempt.strategy.codepage)
        return attempt, err
    return attempt, None


def _cut_for(settings: Settings, capabilities: TargetCapabilities) -> Optional[CutMode]:
    return CutMode.parse(settings.cut_mode) if capabilities.cut else None


def render_config(settings: Settings) -> dict:
    return {"font_path": settings.font_path, "layout_engine": settings.layout_engine}


def encode_direct_text(
    strategy: DirectText, lines: Sequence[DocumentLine], settings: Settings, capabilities: TargetCapabilities
) -> Encoded:
    cp = get_codepage(strategy.codepage, settings.codepage_ids)
    commands = build_text_commands(
        lines,
        lambda text: transcode(text, cp),
        cp.codepage_id,
        cut=_cut_for(settings, capabilities),
        feed_lines=settings.cut_feed_lines,
    )
    return Encoded(encode(commands), tuple(commands))


def encode_raster(
    strategy: RasterBitmap, lines: Sequence[DocumentLine], settings: Settings, capabilities: TargetCapabilities
) -> Encoded:
    bitmap = render_document(lines, settings.receipt_width, strategy.font_size, render_config(settings))
    packed = pack(bitmap, strategy.max_height)
    commands = build_raster_commands(
        packed,
        cut=_cut_for(settings, capabilities),
        feed_lines=settings.cut_feed_lines,
    )
    return Encoded(encode(commands), tuple(commands))


def encode_document(strategy: Union[HostCompositor, InteractiveDialog], lines: Sequence[DocumentLine], title: str) -> Encoded:
    return Encoded(make_document(lines, title, interactive=isinstance(strategy, InteractiveDialog)))


def encode_attempt(attempt: Attempt, lines: Sequence[DocumentLine], settings: Settings, title: str = "Receipt") -> Encoded:
    """
    Build the payload for ``attempt``.

    Raises:
        UnsupportedGlyph from the transcoder (DirectText)
        OversizedBitmap from the packer (RasterBitmap)
    """
    strategy = attempt.strategy
    caps = attempt.target.capabilities
    if isinstance(strategy, DirectText):
        return encode_direct_text(strategy, lines, settings, caps)
    if isinstance(strategy, RasterBitmap):
        return encode_raster(strategy, lines, settings, caps)
    return encode_document(strategy, lines, title)


__all__ = [
    "Attempt",
    "DirectText",
    "Encoded",
    "HostCompositor",
    "InteractiveDialog",
    "RasterBitmap",
    "RenderStrategy",
    "STRATEGY_NAMES",
    "default_attempts",
    "emits_bytes",
    "encode_attempt",
    "encode_direct_text",
    "encode_document",
    "encode_raster",
    "parse_strategy",
    "render_config",
    "select_next",
]
