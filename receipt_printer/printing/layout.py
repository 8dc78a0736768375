"""
Receipt layout: turn a Receipt into an ordered list of document lines.

Every renderer (direct codepage text, raster bitmap, host document) consumes the same
line list, so the three outputs never disagree about content or order.
"""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .protocol import Align
from .receipt import Receipt, format_amount

RULE_CHAR = "="


@dataclass(frozen=True)
class DocumentLine:
    text: str
    align: Align = Align.LEFT
    bold: bool = False
    scale: float = 1.0
    rule: bool = False


@dataclass(frozen=True)
class TextProfile:
    """Script coverage of a block of text, used for strategy selection."""

    needs_shaping: bool
    first_shaped_index: int = -1
    first_shaped_char: str = ""


def _money(value, currency: str) -> str:
    amount = format_amount(value)
    return f"{amount} {currency}" if currency else amount


def _rule(columns: int) -> DocumentLine:
    return DocumentLine(RULE_CHAR * max(1, columns), Align.LEFT, rule=True)


def layout_receipt(receipt: Receipt, columns: int = 48) -> List[DocumentLine]:
    cur = receipt.currency
    labels = receipt.labels
    lines: List[DocumentLine] = [
        DocumentLine(receipt.header.store_name, Align.CENTER, bold=True, scale=1.5),
    ]
    lines.extend(DocumentLine(a, Align.CENTER) for a in receipt.header.address_lines)
    lines.append(_rule(columns))
    lines.append(DocumentLine(labels.items, Align.CENTER, bold=True))
    lines.append(_rule(columns))

    for item in receipt.items:
        lines.append(DocumentLine(item.name, Align.LEFT, bold=True))
        qty = format_amount(item.quantity)
        lines.append(
            DocumentLine(f"{qty}x @ {_money(item.unit_price, cur)} = {_money(item.line_total, cur)}", Align.LEFT)
        )

    totals = receipt.totals
    lines.append(_rule(columns))
    lines.append(DocumentLine(f"{labels.subtotal}: {_money(totals.subtotal, cur)}", Align.LEFT))
    if totals.discount is not None:
        lines.append(DocumentLine(f"{labels.discount}: {_money(totals.discount, cur)}", Align.LEFT))
    if totals.tax is not None:
        lines.append(DocumentLine(f"{labels.tax}: {_money(totals.tax, cur)}", Align.LEFT))
    lines.append(_rule(columns))
    lines.append(DocumentLine(f"{labels.total}: {_money(totals.grand_total, cur)}", Align.LEFT, bold=True, scale=1.25))
    lines.append(_rule(columns))

    lines.extend(DocumentLine(f, Align.CENTER) for f in receipt.footer)
    return lines


def needs_shaping(ch: str) -> bool:
    """
    True for characters a static byte table cannot render correctly: right-to-left
    letters and spacing combining marks of joining/Indic scripts.
    """
    return unicodedata.bidirectional(ch) in ("R", "AL") or unicodedata.category(ch) == "Mc"


def profile_text(texts: Sequence[str]) -> TextProfile:
    offset = 0
    for text in texts:
        for i, ch in enumerate(text):
            if needs_shaping(ch):
                return TextProfile(True, offset + i, ch)
        offset += len(text) + 1
    return TextProfile(False)


def profile_lines(lines: Sequence[DocumentLine]) -> TextProfile:
    return profile_text([ln.text for ln in lines])


def document_text(lines: Sequence[DocumentLine], title: Optional[str] = None) -> str:
    """Plain-text rendition (logical order, UTF-8 safe) for host print pipelines."""
    body = "\n".join(ln.text for ln in lines)
    return f"{title}\n\n{body}\n" if title else body + "\n"


__all__ = [
    "DocumentLine",
    "TextProfile",
    "document_text",
    "layout_receipt",
    "needs_shaping",
    "profile_lines",
    "profile_text",
]
