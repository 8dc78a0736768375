from decimal import Decimal

import pytest
from pydantic import ValidationError

from receipt_printer.printing.layout import layout_receipt, needs_shaping, profile_text
from receipt_printer.printing.protocol import Align
from receipt_printer.printing.receipt import Header, LineItem, Receipt, Totals, sample_receipt

from conftest import make_receipt


def test_amounts_render_exactly_as_supplied():
    r = make_receipt()
    lines = [ln.text for ln in layout_receipt(r, columns=32)]
    assert "2x @ 2.50 = 5.00" in lines
    assert "Total: 5.00" in lines
    # nothing recomputed: an inconsistent total is printed as given
    odd = Receipt(
        header=Header(store_name="S"),
        items=(LineItem(name="A", quantity=Decimal("1"), unit_price=Decimal("1.10"), line_total=Decimal("9.99")),),
        totals=Totals(subtotal=Decimal("0.01"), grand_total=Decimal("123.450")),
    )
    texts = [ln.text for ln in layout_receipt(odd)]
    assert "1x @ 1.10 = 9.99" in texts
    assert "Total: 123.450" in texts


def test_layout_order_and_styles():
    r = Receipt(
        header=Header(store_name="Shop", address_lines=("1 Main St",)),
        items=(),
        totals=Totals(subtotal=Decimal("0"), tax=Decimal("0.10"), discount=Decimal("0.05"), grand_total=Decimal("0.05")),
        footer=("Thanks",),
        currency="EUR",
    )
    lines = layout_receipt(r, columns=20)
    assert lines[0].text == "Shop" and lines[0].bold and lines[0].align == Align.CENTER
    assert lines[1].text == "1 Main St"
    assert lines[2].rule and len(lines[2].text) == 20
    texts = [ln.text for ln in lines]
    assert texts.index("Subtotal: 0 EUR") < texts.index("Discount: 0.05 EUR") < texts.index("Tax: 0.10 EUR")
    assert lines[-1].text == "Thanks" and lines[-1].align == Align.CENTER


def test_validation_at_construction():
    with pytest.raises(ValidationError):
        LineItem(name="A", quantity=Decimal("-1"), unit_price=Decimal("1"), line_total=Decimal("1"))
    with pytest.raises(ValidationError):
        Header(store_name="bad\x1bname")
    r = make_receipt()
    with pytest.raises(ValidationError):
        r.currency = "USD"  # frozen


def test_receipt_round_trips_through_json():
    r = sample_receipt()
    again = Receipt.model_validate(r.model_dump(mode="json"))
    assert again == r
    assert again.totals.subtotal == Decimal("12.50")
    assert str(again.items[0].unit_price) == "2.50"


def test_script_profile_detects_rtl_and_marks():
    assert needs_shaping("م")
    assert needs_shaping("א")  # Hebrew alef
    assert needs_shaping("ा")  # Devanagari vowel sign AA (Mc)
    assert not needs_shaping("A")
    assert not needs_shaping("é")

    prof = profile_text(["STORE", "ab م"])
    assert prof.needs_shaping
    assert prof.first_shaped_char == "م"
    assert prof.first_shaped_index == len("STORE") + 1 + 3

    assert not profile_text(make_receipt().text_fragments()).needs_shaping
    assert profile_text(sample_receipt().text_fragments()).needs_shaping
