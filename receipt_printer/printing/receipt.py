"""
Receipt value model.

A Receipt is immutable once built. Monetary values and quantities are kept as the
Decimals the caller supplied (``"2.50"`` stays ``2.50``); nothing here or downstream
recomputes or rounds them.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _has_control_chars(s: str) -> bool:
    return any(ord(c) < 32 or ord(c) == 127 for c in s)


def _clean_text(v: str) -> str:
    if _has_control_chars(v):
        raise ValueError("control characters are not allowed")
    return v


def format_amount(value: Decimal) -> str:
    """Fixed-point string of ``value`` exactly as supplied (no rounding, no exponent)."""
    return format(value, "f")


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class Header(_Frozen):
    store_name: str = Field(..., min_length=1, max_length=120)
    address_lines: Tuple[str, ...] = Field(default=(), max_length=8)

    @field_validator("store_name")
    @classmethod
    def _v_name(cls, v: str) -> str:
        return _clean_text(v)

    @field_validator("address_lines")
    @classmethod
    def _v_lines(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(_clean_text(x) for x in v)


class LineItem(_Frozen):
    """One purchased item; ``line_total`` is caller-computed."""

    name: str = Field(..., min_length=1, max_length=200)
    quantity: Decimal = Field(..., ge=0)
    unit_price: Decimal
    line_total: Decimal

    @field_validator("name")
    @classmethod
    def _v_name(cls, v: str) -> str:
        return _clean_text(v)


class Totals(_Frozen):
    subtotal: Decimal
    tax: Optional[Decimal] = None
    discount: Optional[Decimal] = None
    grand_total: Decimal


class Labels(_Frozen):
    """Captions printed next to the totals."""

    items: str = "Items"
    subtotal: str = "Subtotal"
    discount: str = "Discount"
    tax: str = "Tax"
    total: str = "Total"

    @field_validator("items", "subtotal", "discount", "tax", "total")
    @classmethod
    def _v_label(cls, v: str) -> str:
        return _clean_text(v)


class Receipt(_Frozen):
    header: Header
    items: Tuple[LineItem, ...] = ()
    totals: Totals
    footer: Tuple[str, ...] = Field(default=(), max_length=8)
    currency: str = Field(default="", max_length=12)
    labels: Labels = Labels()

    @field_validator("footer")
    @classmethod
    def _v_footer(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(_clean_text(x) for x in v)

    @field_validator("currency")
    @classmethod
    def _v_currency(cls, v: str) -> str:
        return _clean_text(v.strip())

    @property
    def item_count(self) -> int:
        return len(self.items)

    def text_fragments(self) -> Tuple[str, ...]:
        """Every human-readable string on the receipt."""
        out = [self.header.store_name, *self.header.address_lines, self.labels.items]
        for item in self.items:
            out.append(item.name)
        out.extend((self.labels.subtotal, self.labels.total, self.currency))
        if self.totals.discount is not None:
            out.append(self.labels.discount)
        if self.totals.tax is not None:
            out.append(self.labels.tax)
        out.extend(self.footer)
        return tuple(s for s in out if s)


def sample_receipt() -> Receipt:
    """
    Demo receipt: an Arabic store with three items. Totals are the caller's figures
    (10% tax included by the caller), not derived here.
    """
    return Receipt(
        header=Header(store_name="متجر عينة", address_lines=("123 شارع الرئيسي",)),
        items=(
            LineItem(name="تفاح", quantity=Decimal("2"), unit_price=Decimal("2.50"), line_total=Decimal("5.00")),
            LineItem(name="موز", quantity=Decimal("3"), unit_price=Decimal("1.50"), line_total=Decimal("4.50")),
            LineItem(name="برتقال", quantity=Decimal("1"), unit_price=Decimal("3.00"), line_total=Decimal("3.00")),
        ),
        totals=Totals(subtotal=Decimal("12.50"), tax=Decimal("1.25"), grand_total=Decimal("13.75")),
        footer=("شكراً لك على الشراء!", "نتمنى رؤيتك مرة أخرى"),
        currency="ج.م",
        labels=Labels(items="الأصناف", subtotal="المجموع الفرعي", tax="الضريبة (10٪)", total="الإجمالي"),
    )


__all__ = ["Header", "Labels", "LineItem", "Receipt", "Totals", "format_amount", "sample_receipt"]
