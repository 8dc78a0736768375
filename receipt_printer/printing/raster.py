"""
Grayscale bitmaps and the monochrome packer used for ESC/POS raster uploads.

``pack()`` thresholds at mid-luminance (darker than 128 is a printed dot), packs
8 pixels per byte MSB first, row-major, each row padded to a whole byte, and refuses
bitmaps taller than the configured maximum. A raster job cannot be cancelled once it
is streaming, so an oversized bitmap is rejected before any byte leaves the host.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from PIL import Image

from receipt_printer.core.errors import OversizedBitmap

logger = logging.getLogger(__name__)

MID_LUMINANCE = 128
BACKGROUND = 255
FOREGROUND = 0
PAPER_GUARD_MARKER = "PAPER-WASTE GUARD"
MAX_WIDTH_BYTES = 0xFFFF


@dataclass(frozen=True)
class Bitmap:
    """Row-major 8-bit grayscale pixels; 255 is paper, 0 is ink."""

    width: int
    height: int
    pixels: bytes

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"bitmap must be non-empty, got {self.width}x{self.height}")
        if len(self.pixels) != self.width * self.height:
            raise ValueError("pixel buffer does not match bitmap dimensions")

    @property
    def grayscale_rows(self) -> List[bytes]:
        w = self.width
        return [self.pixels[y * w:(y + 1) * w] for y in range(self.height)]

    def is_foreground(self, x: int, y: int, threshold: int = MID_LUMINANCE) -> bool:
        return self.pixels[y * self.width + x] < threshold

    @classmethod
    def from_image(cls, img: Image.Image) -> "Bitmap":
        gray = img if img.mode == "L" else img.convert("L")
        return cls(gray.width, gray.height, gray.tobytes())

    def to_image(self) -> Image.Image:
        return Image.frombytes("L", (self.width, self.height), self.pixels)


@dataclass(frozen=True)
class PackedRaster:
    width_bytes: int
    height: int
    bits: bytes

    @property
    def width_px(self) -> int:
        return self.width_bytes * 8


def packed_size(width: int, height: int) -> int:
    return ((width + 7) // 8) * height


def check_height(bitmap: Bitmap, max_height: int) -> None:
    """Raise OversizedBitmap (and log the guard event) if ``bitmap`` is too tall."""
    if bitmap.height > max_height:
        logger.warning(
            "%s: refusing %dx%d bitmap, height exceeds maximum %d px; nothing was sent",
            PAPER_GUARD_MARKER,
            bitmap.width,
            bitmap.height,
            max_height,
        )
        raise OversizedBitmap(bitmap.height, max_height)


def pack(bitmap: Bitmap, max_height: int, threshold: int = MID_LUMINANCE) -> PackedRaster:
    """
    Pack ``bitmap`` into ESC/POS raster bits.

    Raises:
        OversizedBitmap if the height exceeds ``max_height``. No partial data is returned.
    """
    check_height(bitmap, max_height)
    width_bytes = (bitmap.width + 7) // 8
    if width_bytes > MAX_WIDTH_BYTES:
        raise ValueError(f"bitmap width {bitmap.width}px does not fit a raster header")

    # Mode "1" packs MSB-first with byte-padded rows; set bits are printed dots.
    mono = bitmap.to_image().point(lambda v: 255 if v < threshold else 0, mode="1")
    bits = mono.tobytes()
    logger.debug("packed %dx%d bitmap into %d bytes", bitmap.width, bitmap.height, len(bits))
    return PackedRaster(width_bytes, bitmap.height, bits)


def unpack(packed: PackedRaster, width: int) -> List[List[bool]]:
    """Foreground map of a packed raster, cropped to ``width`` pixels per row."""
    out: List[List[bool]] = []
    for y in range(packed.height):
        row = packed.bits[y * packed.width_bytes:(y + 1) * packed.width_bytes]
        out.append([bool(row[x >> 3] & (0x80 >> (x & 7))) for x in range(width)])
    return out


__all__ = [
    "BACKGROUND",
    "Bitmap",
    "FOREGROUND",
    "MID_LUMINANCE",
    "PAPER_GUARD_MARKER",
    "PackedRaster",
    "check_height",
    "pack",
    "packed_size",
    "unpack",
]
