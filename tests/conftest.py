# Put the repository root on sys.path so `receipt_printer` imports without installation,
# and keep every test away from the user's real config and printer environment.

import sys
from decimal import Decimal
from pathlib import Path

import pytest

_REPO_ROOT = str(Path(__file__).resolve().parent.parent)
if _REPO_ROOT not in sys.path:
    sys.path.insert(0, _REPO_ROOT)

from receipt_printer.printing.receipt import Header, LineItem, Receipt, Totals  # noqa: E402

_PRINTER_ENV = (
    "PRINTER_COM_PORT",
    "PRINTER_BAUD_RATE",
    "RECEIPTPRINT_PRINTER_TYPE",
    "RECEIPTPRINT_NETWORK_HOST",
    "RECEIPTPRINT_SPOOLER_NAME",
    "RECEIPTPRINT_CODEPAGE",
    "RECEIPTPRINT_LOCK_MODE",
    "RECEIPTPRINT_LAYOUT_ENGINE",
    "RECEIPTPRINT_MAX_RASTER_HEIGHT",
    "RECEIPTPRINT_RECEIPT_WIDTH",
)


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    monkeypatch.setenv("RECEIPTPRINT_CONFIG_PATH", str(tmp_path / "config.json"))
    for key in _PRINTER_ENV:
        monkeypatch.delenv(key, raising=False)


def make_receipt(store: str = "STORE", footer=()) -> Receipt:
    return Receipt(
        header=Header(store_name=store),
        items=(LineItem(name="Widget", quantity=Decimal("2"), unit_price=Decimal("2.50"), line_total=Decimal("5.00")),),
        totals=Totals(subtotal=Decimal("5.00"), grand_total=Decimal("5.00")),
        footer=tuple(footer),
    )


@pytest.fixture
def store_receipt() -> Receipt:
    return make_receipt()
