import logging
from types import SimpleNamespace

import pytest
from PIL import Image, ImageFont

from receipt_printer.core.errors import OversizedBitmap
from receipt_printer.printing.layout import layout_receipt
from receipt_printer.printing.protocol import Align, RasterImage, build_raster_commands
from receipt_printer.printing.raster import PAPER_GUARD_MARKER, Bitmap, pack, packed_size, unpack
from receipt_printer.printing.receipt import sample_receipt
from receipt_printer.printing.render import (
    LINE_PADDING,
    ShapingEngine,
    base_direction,
    detect_script,
    get_engine,
    rasterize,
    render_document,
)

from conftest import make_receipt


def _bitmap(width, height, fn):
    return Bitmap(width, height, bytes(fn(x, y) for y in range(height) for x in range(width)))


def test_pack_sets_msb_first_and_pads_rows():
    b = _bitmap(9, 2, lambda x, y: 0 if (y == 0 or x == 8) else 255)
    p = pack(b, max_height=10)
    assert (p.width_bytes, p.height) == (2, 2)
    assert p.bits == bytes([0xFF, 0x80, 0x00, 0x80])


@pytest.mark.parametrize("width,height", [(1, 1), (7, 3), (8, 5), (13, 4), (64, 2)])
def test_pack_length_and_threshold(width, height):
    b = _bitmap(width, height, lambda x, y: (x * 37 + y * 91) % 256)
    p = pack(b, max_height=100)
    assert len(p.bits) == packed_size(width, height) == -(-width // 8) * height
    fg = unpack(p, width)
    for y in range(height):
        for x in range(width):
            assert fg[y][x] == (b.pixels[y * width + x] < 128)


def test_threshold_boundary():
    b = Bitmap(3, 1, bytes([127, 128, 129]))
    assert unpack(pack(b, 1), 3) == [[True, False, False]]


def test_oversized_bitmap_rejected_with_guard_log(caplog):
    b = Bitmap(8, 11, bytes(88))
    with caplog.at_level(logging.WARNING):
        with pytest.raises(OversizedBitmap) as ei:
            pack(b, max_height=10)
    assert ei.value.height == 11 and ei.value.max_height == 10
    assert any(PAPER_GUARD_MARKER in r.getMessage() for r in caplog.records)


def test_rasterize_height_is_deterministic():
    text = "The quick brown fox jumps over the lazy dog"
    a = rasterize(text, 300, 20)
    b = rasterize(text, 300, 20)
    assert a.width == 300
    assert a.height == b.height
    assert a.pixels == b.pixels


def test_rasterize_height_follows_wrapped_lines():
    engine = get_engine("x", 20)
    lh = engine.line_height()
    one = rasterize("short", 400, 20)
    assert one.height == 2 * LINE_PADDING + lh
    many = rasterize("word " * 40, 200, 20)
    assert (many.height - 2 * LINE_PADDING) % lh == 0
    assert many.height > one.height


def test_canvas_background_and_alignment():
    bm = rasterize("II", 400, 24, align=Align.RIGHT)
    img = bm.to_image()
    assert img.getpixel((0, 0)) == 255
    ink = Image.eval(img, lambda v: 255 - v)
    assert ink.crop((200, 0, 400, bm.height)).getbbox() is not None
    assert ink.crop((0, 0, 200, bm.height)).getbbox() is None


def test_script_detection_and_direction():
    assert detect_script("متجر") == "arabic"
    assert detect_script("שלום") == "hebrew"
    assert detect_script("STORE") == "latin"
    assert base_direction("الإجمالي: 13.75") == "rtl"
    assert base_direction("13.75 ج.م") == "rtl"
    assert base_direction("Total 13.75") == "ltr"


def test_basic_engine_shapes_and_reorders_arabic():
    font = SimpleNamespace(layout_engine=ImageFont.Layout.BASIC, size=20)
    engine = ShapingEngine(font, "arabic")
    assert not engine.uses_raqm
    out = engine.visual("سلام")
    # contextual presentation forms, no base letters left
    assert all("\ufe70" <= c <= "\ufeff" or "\ufb50" <= c <= "\ufdff" for c in out)
    assert len(out) <= 4
    mixed = engine.visual("الإجمالي: 13.75")
    assert "13.75" in mixed
    assert engine.visual("Total 13.75") == "Total 13.75"


def test_raqm_engine_leaves_text_logical():
    font = SimpleNamespace(layout_engine=ImageFont.Layout.RAQM, size=20)
    engine = ShapingEngine(font, "arabic")
    assert engine.uses_raqm
    assert engine.visual("سلام") == "سلام"


@pytest.mark.parametrize("receipt", [make_receipt(), make_receipt("STORE ☃", footer=("bye",)), sample_receipt()])
def test_every_raster_command_matches_its_payload(receipt):
    bitmap = render_document(layout_receipt(receipt), 384, 20)
    assert bitmap.width == 384
    cmds = build_raster_commands(pack(bitmap, 10000))
    images = [c for c in cmds if isinstance(c, RasterImage)]
    assert len(images) == 1
    assert images[0].width_bytes * images[0].height == len(images[0].bits)
    assert images[0].height == bitmap.height
