"""
Legacy codepage transcoding for direct-text printing.

``transcode()`` fails fast on the first code point the target table cannot express;
it never substitutes a placeholder glyph.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional

from receipt_printer.core.errors import UnsupportedGlyph

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Codepage:
    name: str
    codepage_id: int  # ESC t n
    codec: str


# Epson table numbers. wpc1256 at 28 matches common Xprinter firmware; override per printer.
CODEPAGES: Dict[str, Codepage] = {
    cp.name: cp
    for cp in (
        Codepage("pc437", 0, "cp437"),
        Codepage("pc850", 2, "cp850"),
        Codepage("pc860", 3, "cp860"),
        Codepage("pc863", 4, "cp863"),
        Codepage("pc865", 5, "cp865"),
        Codepage("wpc1252", 16, "cp1252"),
        Codepage("pc866", 17, "cp866"),
        Codepage("pc852", 18, "cp852"),
        Codepage("pc858", 19, "cp858"),
        Codepage("pc864", 22, "cp864"),
        Codepage("wpc1256", 28, "cp1256"),
    )
}


def get_codepage(name: str, overrides: Optional[Mapping[str, int]] = None) -> Codepage:
    """
    Look up a codepage by name, applying per-printer table number overrides
    (``codepage_ids`` in the config).
    """
    key = str(name).strip().lower()
    try:
        cp = CODEPAGES[key]
    except KeyError:
        raise ValueError(f"unknown codepage {name!r}; known: {', '.join(sorted(CODEPAGES))}") from None
    if overrides and key in overrides:
        return Codepage(cp.name, int(overrides[key]), cp.codec)
    return cp


def _is_control(ch: str) -> bool:
    o = ord(ch)
    return o < 0x20 or o == 0x7F


def transcode(text: str, codepage: Codepage) -> bytes:
    """
    Encode ``text`` into ``codepage``.

    Raises:
        UnsupportedGlyph for the first character without a byte in the table. Control
        characters count as unsupported so text can never smuggle commands.
    """
    for i, ch in enumerate(text):
        if _is_control(ch):
            raise UnsupportedGlyph(ch, i, codepage.name)
    try:
        return text.encode(codepage.codec, errors="strict")
    except UnicodeEncodeError as e:
        raise UnsupportedGlyph(text[e.start], e.start, codepage.name) from None


def decode(data: bytes, codepage: Codepage) -> str:
    return data.decode(codepage.codec, errors="strict")


def covers(text: str, codepage: Codepage) -> bool:
    try:
        transcode(text, codepage)
    except UnsupportedGlyph:
        return False
    return True


def find_codepage(texts: Iterable[str], candidates: Iterable[str] = tuple(CODEPAGES)) -> Optional[Codepage]:
    """First candidate codepage that can express every text, or None."""
    texts = list(texts)
    for name in candidates:
        cp = get_codepage(name)
        if all(covers(t, cp) for t in texts):
            logger.debug("codepage %s covers all %d texts", cp.name, len(texts))
            return cp
    return None


__all__ = ["CODEPAGES", "Codepage", "covers", "decode", "find_codepage", "get_codepage", "transcode"]
