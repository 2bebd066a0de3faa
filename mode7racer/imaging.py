"""RGB565 colour conversion and in-memory texture decoding."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, Iterator

MAX_TEXTURE_WIDTH = 512
MAX_TEXTURE_HEIGHT = 512
PALETTE_SIZE = 256
NO_PALETTE = 0xFFFF

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
BMP_SIGNATURE = b"BM"
_IHDR = b"IHDR"
_IHDR_MIN_LENGTH = 13


class AssetFormat(enum.IntEnum):
    """On-disk encodings an asset may use."""

    PNG = 0
    BMP = 1
    TGA = 2
    RAW = 3
    RLE = 4
    LZ4 = 5


@dataclass
class Texture:
    """A width x height image stored row by row as RGB565 values."""

    width: int
    height: int
    pixels: list[int]
    flags: int = 0
    palette_id: int = NO_PALETTE

    def __post_init__(self) -> None:
        if len(self.pixels) != self.width * self.height:
            raise ValueError(
                f"texture of {self.width}x{self.height} needs "
                f"{self.width * self.height} pixels, got {len(self.pixels)}"
            )


@dataclass
class Palette:
    """A table of 256 RGB565 colours."""

    colors: list[int]
    transparent_color: int = 0

    def __post_init__(self) -> None:
        if len(self.colors) != PALETTE_SIZE:
            raise ValueError(
                f"palette needs {PALETTE_SIZE} colours, got {len(self.colors)}"
            )

    @classmethod
    def grayscale(cls) -> "Palette":
        """Return the default palette: a ramp from black to white."""
        return cls([rgba_to_rgb565(level, level, level, 255) for level in range(PALETTE_SIZE)])


def rgba_to_rgb565(r: int, g: int, b: int, a: int) -> int:
    """Pack an 8-bit RGBA colour into RGB565; mostly transparent becomes black."""
    if a < 128:
        return 0x0000
    return (((r >> 3) & 0x1F) << 11) | (((g >> 2) & 0x3F) << 5) | ((b >> 3) & 0x1F)


def _quads(data: bytes) -> Iterator[tuple[int, int, int, int]]:
    it = iter(data)
    return zip(it, it, it, it)


def _check_dimensions(width: int, height: int) -> int:
    if width <= 0 or height <= 0:
        raise ValueError(f"invalid dimensions {width}x{height}")
    return width * height


def convert_to_rgb565(rgba_data: bytes, width: int, height: int) -> list[int]:
    """Convert RGBA8888 bytes of a width x height image to RGB565 values."""
    count = _check_dimensions(width, height)
    needed = count * 4
    if len(rgba_data) < needed:
        raise ValueError(f"need {needed} bytes of RGBA data, got {len(rgba_data)}")
    return [rgba_to_rgb565(*quad) for quad in _quads(bytes(rgba_data[:needed]))]


def convert_from_rgb565(pixels: Iterable[int], width: int, height: int) -> bytes:
    """Expand RGB565 values of a width x height image to opaque RGBA8888 bytes."""
    count = _check_dimensions(width, height)
    values = list(pixels)
    if len(values) < count:
        raise ValueError(f"need {count} pixels, got {len(values)}")
    out = bytearray()
    for rgb in values[:count]:
        r = (rgb >> 11) & 0x1F
        g = (rgb >> 5) & 0x3F
        b = rgb & 0x1F
        out += bytes(((r << 3) | (r >> 2), (g << 2) | (g >> 4), (b << 3) | (b >> 2), 255))
    return bytes(out)


def detect_format(data: bytes) -> AssetFormat:
    """Guess the encoding of an asset from its leading bytes."""
    if len(data) < len(PNG_SIGNATURE):
        return AssetFormat.RAW
    if data[: len(PNG_SIGNATURE)] == PNG_SIGNATURE:
        return AssetFormat.PNG
    if data[: len(BMP_SIGNATURE)] == BMP_SIGNATURE:
        return AssetFormat.BMP
    return AssetFormat.RAW


def _png_dimensions(data: bytes) -> tuple[int, int]:
    offset = len(PNG_SIGNATURE)
    while offset < len(data) - 12:
        length = int.from_bytes(data[offset : offset + 4], "big")
        chunk_type = data[offset + 4 : offset + 8]
        body = offset + 8
        if (
            chunk_type == _IHDR
            and length >= _IHDR_MIN_LENGTH
            and body + _IHDR_MIN_LENGTH <= len(data)
        ):
            width = int.from_bytes(data[body : body + 4], "big")
            height = int.from_bytes(data[body + 4 : body + 8], "big")
            return width, height
        offset += 12 + length
    return 0, 0


def _parse_png(data: bytes) -> Texture:
    width, height = _png_dimensions(data)
    if not (0 < width <= MAX_TEXTURE_WIDTH and 0 < height <= MAX_TEXTURE_HEIGHT):
        raise ValueError(f"invalid PNG dimensions {width}x{height}")
    # Pixel data is not decoded; the texture holds a gradient of the right size.
    pixels = [
        rgba_to_rgb565((x * 255) // width, (y * 255) // height, 128, 255)
        for y in range(height)
        for x in range(width)
    ]
    return Texture(width, height, pixels)


def load_texture_from_memory(data: bytes) -> Texture:
    """Decode a texture held in memory; only PNG is understood."""
    if not data:
        raise ValueError("no texture data")
    raw = bytes(data)
    fmt = detect_format(raw)
    if fmt is not AssetFormat.PNG:
        raise ValueError(f"texture format not supported: {fmt.name}")
    return _parse_png(raw)