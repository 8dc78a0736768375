"""
Text rendering for raster receipts.

Responsibilities:
- Resolve a font per script from config/env/common locations
- Shape text (contextual Arabic forms, right-to-left and mixed bidi runs)
- Wrap text to a pixel width and render it into a grayscale Bitmap
- Stack document lines into a single receipt bitmap

Shaping goes through a ShapingEngine. When Pillow is built with libraqm the engine
lets raqm shape and reorder; otherwise it shapes with arabic-reshaper and reorders
with python-bidi before drawing with Pillow's basic layout. Engines are cached by
(script, font size, bold, font path, layout) and are read-only once built, so
concurrent rasterization calls share them.
"""

from __future__ import annotations

import logging
import os
import threading
import unicodedata
from collections.abc import Mapping, Sequence
from typing import Dict, List, Optional, Tuple

import arabic_reshaper
from bidi.algorithm import get_display
from PIL import Image, ImageDraw, ImageFont, features

from .layout import DocumentLine
from .protocol import Align
from .raster import BACKGROUND, FOREGROUND, Bitmap

logger = logging.getLogger(__name__)

FontType = ImageFont.FreeTypeFont | ImageFont.ImageFont

SIDE_MARGIN = 8
LINE_PADDING = 2

_COMMON_FONTS: Sequence[str] = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/freefont/FreeSans.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
    "/usr/share/fonts/truetype/noto/NotoSans-Regular.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/TTF/DejaVuSans.ttf",
    "C:/Windows/Fonts/tahoma.ttf",
    "C:/Windows/Fonts/arial.ttf",
    "/System/Library/Fonts/Supplemental/Arial.ttf",
)

_SCRIPT_FONTS: Mapping[str, Sequence[str]] = {
    "arabic": (
        "/usr/share/fonts/truetype/noto/NotoNaskhArabic-Regular.ttf",
        "/usr/share/fonts/truetype/noto/NotoSansArabic-Regular.ttf",
        "/usr/share/fonts/opentype/noto/NotoNaskhArabic-Regular.ttf",
        "/usr/share/fonts/noto/NotoNaskhArabic-Regular.ttf",
    ),
    "hebrew": (
        "/usr/share/fonts/truetype/noto/NotoSansHebrew-Regular.ttf",
        "/usr/share/fonts/truetype/culmus/DavidCLM-Medium.otf",
    ),
}


def _measure_text(font: FontType, text: str, **kwargs) -> tuple[int, int]:
    """
    Robust text measurement across Pillow font types.
    Tries getbbox() first, then getmask() as fallback. Returns (width, height).
    """
    try:
        bbox = font.getbbox(text, **kwargs)
        return int(bbox[2] - bbox[0]), int(bbox[3] - bbox[1])
    except Exception:
        try:
            mask = font.getmask(text)  # type: ignore[attr-defined]
            return int(mask.size[0]), int(mask.size[1])
        except Exception:
            return 0, 0


def detect_script(text: str) -> str:
    """Dominant complex script of ``text`` for font selection ('arabic', 'hebrew' or 'latin')."""
    for ch in text:
        if "\u0600" <= ch <= "\u06ff" or "\u0750" <= ch <= "\u077f" or "\ufb50" <= ch <= "\ufeff":
            return "arabic"
        if "\u0590" <= ch <= "\u05ff":
            return "hebrew"
    return "latin"


def base_direction(text: str) -> str:
    """Paragraph direction from the first strong character (Unicode bidi rule P2)."""
    for ch in text:
        bidi = unicodedata.bidirectional(ch)
        if bidi in ("R", "AL"):
            return "rtl"
        if bidi == "L":
            return "ltr"
    return "ltr"


def _layout_engine(name: str) -> ImageFont.Layout:
    name = (name or "auto").lower()
    if name == "basic":
        return ImageFont.Layout.BASIC
    if name == "raqm" or features.check_feature("raqm"):
        return ImageFont.Layout.RAQM
    return ImageFont.Layout.BASIC


def resolve_font(
    config: Optional[Mapping[str, object]],
    font_size: int,
    script: str = "latin",
    layout_engine: str = "auto",
) -> FontType:
    """
    Resolve a TTF font, preferring:
    1) config["font_path"] when provided
    2) RECEIPTPRINT_FONT_PATH environment variable
    3) fonts covering ``script`` (Noto Arabic/Hebrew)
    4) a list of common system font paths (DejaVu, FreeSans, Liberation, Noto, Tahoma, Arial)
    Falls back to Pillow's default font if none are found.
    """
    candidates: List[str] = []
    if config:
        val = config.get("font_path")
        if isinstance(val, str) and val.strip():
            candidates.append(val.strip())

    env_path = os.environ.get("RECEIPTPRINT_FONT_PATH")
    if env_path and env_path not in candidates:
        candidates.append(env_path)

    for pth in list(_SCRIPT_FONTS.get(script, ())) + list(_COMMON_FONTS):
        if pth not in candidates:
            candidates.append(pth)

    engine = _layout_engine(layout_engine)
    for pth in candidates:
        try:
            return ImageFont.truetype(pth, font_size, layout_engine=engine)
        except Exception:
            continue

    logger.warning("No TTF font found for script=%s; using Pillow's default font", script)
    try:
        return ImageFont.load_default(size=font_size)
    except TypeError:
        return ImageFont.load_default()


class ShapingEngine:
    """
    Shapes and measures text for one (script, font size, bold) combination.

    ``visual()`` returns the string that must be handed to Pillow: unchanged for raqm
    (which shapes and reorders itself), reshaped and reordered for the basic layout.
    """

    def __init__(self, font: FontType, script: str, bold: bool = False):
        self.font = font
        self.script = script
        self.stroke = max(1, getattr(font, "size", 12) // 24) if bold else 0
        self.uses_raqm = getattr(font, "layout_engine", None) == ImageFont.Layout.RAQM
        self._reshaper = None if self.uses_raqm else arabic_reshaper.ArabicReshaper()

    def visual(self, text: str) -> str:
        if self.uses_raqm or not text:
            return text
        if self.script == "arabic":
            text = self._reshaper.reshape(text)
        if any(unicodedata.bidirectional(c) in ("R", "AL", "AN") for c in text):
            return get_display(text, base_dir="R" if base_direction(text) == "rtl" else "L")
        return text

    def _direction_kwargs(self, text: str) -> dict:
        if self.uses_raqm:
            return {"direction": base_direction(text)}
        return {}

    def measure(self, text: str) -> tuple[int, int]:
        kwargs = self._direction_kwargs(text)
        if self.stroke:
            kwargs["stroke_width"] = self.stroke
        return _measure_text(self.font, self.visual(text), **kwargs)

    def line_height(self) -> int:
        try:
            ascent, descent = self.font.getmetrics()  # type: ignore[union-attr]
            return int(ascent + descent) + 2 * self.stroke
        except Exception:
            _, h = _measure_text(self.font, "Ag")
            return max(1, h) + 2 * self.stroke

    def draw(self, draw: ImageDraw.ImageDraw, xy: Tuple[int, int], text: str) -> None:
        kwargs = self._direction_kwargs(text)
        if self.stroke:
            kwargs.update(stroke_width=self.stroke, stroke_fill=FOREGROUND)
        draw.text(xy, self.visual(text), font=self.font, fill=FOREGROUND, **kwargs)


_ENGINES: Dict[tuple, ShapingEngine] = {}
_ENGINES_LOCK = threading.Lock()


def get_engine(
    text: str,
    font_size: int,
    *,
    bold: bool = False,
    config: Optional[Mapping[str, object]] = None,
) -> ShapingEngine:
    """Shared engine for ``text``'s script, created on first use."""
    script = detect_script(text)
    layout = str((config or {}).get("layout_engine", "auto"))
    font_path = (config or {}).get("font_path") or os.environ.get("RECEIPTPRINT_FONT_PATH")
    key = (script, int(font_size), bool(bold), font_path, layout)
    with _ENGINES_LOCK:
        engine = _ENGINES.get(key)
        if engine is None:
            engine = ShapingEngine(resolve_font(config, int(font_size), script, layout), script, bold)
            _ENGINES[key] = engine
            logger.debug("shaping engine created: script=%s size=%d bold=%s raqm=%s", script, font_size, bold, engine.uses_raqm)
    return engine


def clear_engine_cache() -> None:
    with _ENGINES_LOCK:
        _ENGINES.clear()


def wrap_text(text: str, engine: ShapingEngine, max_width: int) -> List[str]:
    """
    Greedy word-wrapping in logical order, measuring each candidate line as it will
    be drawn (shaped). Words wider than the line are broken.
    """
    if not text or not text.strip():
        return [""]

    words = text.split()
    lines: List[str] = []
    current_line = ""

    for word in words:
        test_line = current_line + (" " if current_line else "") + word
        w, _ = engine.measure(test_line)
        if w <= max_width:
            current_line = test_line
            continue
        if current_line:
            lines.append(current_line)
            current_line = ""
        w_word, _ = engine.measure(word)
        if w_word <= max_width:
            current_line = word
        else:
            pieces = _break_long_word(word, engine, max_width)
            lines.extend(pieces[:-1])
            current_line = pieces[-1]

    if current_line:
        lines.append(current_line)

    return lines or [""]


def _break_long_word(word: str, engine: ShapingEngine, max_width: int) -> List[str]:
    """Break a word that doesn't fit on a single line, character by character."""
    result: List[str] = []
    current = ""
    for char in word:
        test = current + char
        w, _ = engine.measure(test)
        if w <= max_width or not current:
            current = test
        else:
            result.append(current)
            current = char
    if current:
        result.append(current)
    return result or [""]


def rasterize(
    text: str,
    max_width_px: int,
    font_size: int,
    *,
    bold: bool = False,
    align: Align = Align.LEFT,
    config: Optional[Mapping[str, object]] = None,
) -> Bitmap:
    """
    Render ``text`` wrapped to ``max_width_px`` into a grayscale Bitmap.

    The canvas is ``max_width_px`` wide and starts white; glyphs are black. Height is
    ``2 * LINE_PADDING + lines * line_height`` so identical inputs always give the same
    height. For right-to-left lines, LEFT means the line start and draws flush right.
    """
    width = max(1, int(max_width_px))
    engine = get_engine(text, font_size, bold=bold, config=config)
    text_width = max(1, width - 2 * SIDE_MARGIN)
    lines = wrap_text(text, engine, text_width)
    line_height = max(1, engine.line_height())

    height = 2 * LINE_PADDING + line_height * len(lines)
    img = Image.new("L", (width, height), BACKGROUND)
    draw = ImageDraw.Draw(img)

    y = LINE_PADDING
    for line in lines:
        w, _ = engine.measure(line)
        effective = align
        if align == Align.LEFT and base_direction(line) == "rtl":
            effective = Align.RIGHT
        if effective == Align.CENTER:
            x = max(0, (width - w) // 2)
        elif effective == Align.RIGHT:
            x = max(0, width - SIDE_MARGIN - w)
        else:
            x = SIDE_MARGIN
        engine.draw(draw, (x, y), line)
        y += line_height

    return Bitmap.from_image(img)


def rasterize_rule(width: int, height: int, thickness: int = 2) -> Bitmap:
    img = Image.new("L", (max(1, width), max(1, height)), BACKGROUND)
    draw = ImageDraw.Draw(img)
    top = max(0, (height - thickness) // 2)
    draw.rectangle([SIDE_MARGIN, top, max(SIDE_MARGIN, width - SIDE_MARGIN - 1), top + thickness - 1], fill=FOREGROUND)
    return Bitmap.from_image(img)


def compose(bitmaps: Sequence[Bitmap], width: int, gap: int = 0) -> Bitmap:
    """Stack bitmaps top to bottom on a ``width``-wide white canvas."""
    if not bitmaps:
        raise ValueError("nothing to compose")
    height = sum(b.height for b in bitmaps) + gap * (len(bitmaps) - 1)
    canvas = Image.new("L", (width, height), BACKGROUND)
    y = 0
    for b in bitmaps:
        canvas.paste(b.to_image(), (0, y))
        y += b.height + gap
    return Bitmap.from_image(canvas)


def render_document(
    lines: Sequence[DocumentLine],
    width: int,
    font_size: int,
    config: Optional[Mapping[str, object]] = None,
) -> Bitmap:
    """Render receipt layout lines into one bitmap the width of the paper."""
    parts: List[Bitmap] = []
    for ln in lines:
        if ln.rule:
            parts.append(rasterize_rule(width, max(6, font_size // 2)))
            continue
        size = max(8, int(round(font_size * ln.scale)))
        parts.append(rasterize(ln.text, width, size, bold=ln.bold, align=ln.align, config=config))
    logger.debug("rendered %d lines at %dpx width", len(parts), width)
    return compose(parts, width)


__all__ = [
    "ShapingEngine",
    "base_direction",
    "clear_engine_cache",
    "compose",
    "detect_script",
    "get_engine",
    "rasterize",
    "rasterize_rule",
    "render_document",
    "resolve_font",
    "wrap_text",
]
