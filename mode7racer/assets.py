"""Asset file headers, texture and palette files, and the texture cache."""

from __future__ import annotations

import enum
import itertools
import logging
import os
import struct
import threading
from dataclasses import astuple, dataclass
from pathlib import Path
from typing import Iterable, Optional, Union
import zlib

from .imaging import (
    MAX_TEXTURE_HEIGHT,
    MAX_TEXTURE_WIDTH,
    PALETTE_SIZE,
    AssetFormat,
    Palette,
    Texture,
    load_texture_from_memory,
)

log = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

ASSET_MAGIC = 0x41535420  # "AST "
ASSET_VERSION = 1
MAX_CACHED_ASSETS = 16
# Bookkeeping size of one in-memory texture record, charged to the cache.
TEXTURE_STRUCT_SIZE = 12

_HEADER = struct.Struct("<11I")
_PALETTE_BYTES = PALETTE_SIZE * 2


class AssetType(enum.IntEnum):
    """Kinds of asset a file may hold."""

    TEXTURE = 0
    TILEMAP = 1
    HEIGHTMAP = 2
    PALETTE = 3
    SPRITE = 4
    SOUND = 5
    TRACK = 6


class AssetCompression(enum.IntEnum):
    """Compression applied to an asset's payload."""

    NONE = 0
    RLE = 1
    LZ4 = 2


class AssetError(ValueError):
    """An asset could not be read, written or understood."""


@dataclass
class AssetHeader:
    """The fixed 44-byte header that precedes an asset's payload."""

    magic: int = ASSET_MAGIC
    version: int = ASSET_VERSION
    type: int = AssetType.TEXTURE
    format: int = AssetFormat.RAW
    compression: int = AssetCompression.NONE
    width: int = 0
    height: int = 0
    size: int = 0
    compressed_size: int = 0
    checksum: int = 0
    flags: int = 0

    SIZE = _HEADER.size

    def to_bytes(self) -> bytes:
        try:
            return _HEADER.pack(*(int(value) for value in astuple(self)))
        except struct.error as exc:
            raise AssetError(f"asset header field out of range: {exc}") from None

    @classmethod
    def from_bytes(cls, data: bytes) -> "AssetHeader":
        """Read a header from the start of data."""
        if len(data) < _HEADER.size:
            raise AssetError(
                f"asset header needs {_HEADER.size} bytes, got {len(data)}"
            )
        return cls(*_HEADER.unpack(bytes(data[: _HEADER.size])))

    def validate(self) -> "AssetHeader":
        """Return the header, or raise AssetError if it cannot be used."""
        if self.magic != ASSET_MAGIC:
            raise AssetError(f"invalid asset magic: {self.magic:#010x}")
        if self.version != ASSET_VERSION:
            raise AssetError(f"unsupported asset version: {self.version}")
        if self.type > AssetType.TRACK:
            raise AssetError(f"invalid asset type: {self.type}")
        if not (
            0 < self.width <= MAX_TEXTURE_WIDTH and 0 < self.height <= MAX_TEXTURE_HEIGHT
        ):
            raise AssetError(f"invalid dimensions: {self.width}x{self.height}")
        return self


@dataclass
class AssetConfig:
    """Settings for an asset loader."""

    enable_compression: bool = False
    enable_caching: bool = True
    max_memory_usage: int = 0
    max_cached_assets: int = MAX_CACHED_ASSETS
    preload_textures: bool = False


def calculate_checksum(data: bytes) -> int:
    """CRC-32 (little-endian, seeded with 0xFFFFFFFF) of the data."""
    return zlib.crc32(bytes(data), 0xFFFFFFFF) & 0xFFFFFFFF


def _pixel_bytes(pixels: Iterable[int]) -> bytes:
    values = list(pixels)
    try:
        return struct.pack(f"<{len(values)}H", *values)
    except struct.error as exc:
        raise AssetError(f"pixel value out of range: {exc}") from None


def _read_file(filename: PathLike) -> bytes:
    data = Path(filename).read_bytes()
    if not data:
        raise AssetError(f"empty file: {os.fspath(filename)}")
    return data


@dataclass
class _CacheEntry:
    texture: Texture
    size: int
    last_access: int
    access_count: int = 1


class AssetCache:
    """A bounded texture cache that evicts the least recently used entry."""

    def __init__(self, capacity: int = MAX_CACHED_ASSETS) -> None:
        self.capacity = max(0, min(capacity, MAX_CACHED_ASSETS))
        self._entries: dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()
        self._clock = itertools.count()
        self.hits = 0
        self.misses = 0
        self.memory_usage = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, filename: object) -> bool:
        return filename in self._entries

    def get(self, filename: str) -> Optional[Texture]:
        """Return the cached texture for filename, or None."""
        with self._lock:
            entry = self._entries.get(filename)
            if entry is None:
                self.misses += 1
                return None
            entry.last_access = next(self._clock)
            entry.access_count += 1
            self.hits += 1
            return entry.texture

    def add(self, filename: str, texture: Texture) -> None:
        """Cache texture under filename unless that name is already cached."""
        with self._lock:
            if filename in self._entries or self.capacity == 0:
                return
            if len(self._entries) >= self.capacity:
                oldest = min(self._entries, key=lambda name: self._entries[name].last_access)
                log.debug("evicting asset from cache: %s", oldest)
                self.memory_usage -= self._entries.pop(oldest).size
            size = texture.width * texture.height * 2 + TEXTURE_STRUCT_SIZE
            self._entries[filename] = _CacheEntry(texture, size, next(self._clock))
            self.memory_usage += size

    def clear(self) -> None:
        """Drop every cached texture."""
        with self._lock:
            self._entries.clear()
            self.memory_usage = 0


class AssetLoader:
    """Loads textures from files, keeping recently used ones in a cache."""

    def __init__(self, config: Optional[AssetConfig] = None) -> None:
        self.config = config if config is not None else AssetConfig()
        self.cache = AssetCache(self.config.max_cached_assets)

    def __enter__(self) -> "AssetLoader":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def memory_usage(self) -> int:
        return self.cache.memory_usage

    @property
    def cache_hits(self) -> int:
        return self.cache.hits

    @property
    def cache_misses(self) -> int:
        return self.cache.misses

    def load_texture(self, filename: PathLike) -> Texture:
        """Load a texture file, serving it from the cache when possible."""
        key = os.fspath(filename)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        data = _read_file(filename)
        try:
            texture = load_texture_from_memory(data)
        except ValueError as exc:
            raise AssetError(f"{key}: {exc}") from exc
        self.cache.add(key, texture)
        return texture

    def close(self) -> None:
        """Release all cached textures and reset the statistics."""
        self.cache.clear()
        self.cache.hits = 0
        self.cache.misses = 0


def save_texture(filename: PathLike, texture: Texture) -> None:
    """Write texture as a raw RGB565 asset preceded by its header."""
    if not texture.pixels:
        raise AssetError("texture has no pixels")
    payload = _pixel_bytes(texture.pixels)
    header = AssetHeader(
        type=AssetType.TEXTURE,
        format=AssetFormat.RAW,
        compression=AssetCompression.NONE,
        width=texture.width,
        height=texture.height,
        size=len(payload),
        checksum=calculate_checksum(payload),
        flags=texture.flags,
    )
    with open(filename, "wb") as out:
        out.write(header.to_bytes())
        out.write(payload)
    log.info("saved texture %s (%dx%d)", os.fspath(filename), texture.width, texture.height)


def load_palette(filename: PathLike) -> Palette:
    """Read 256 RGB565 colours; a file too short for them gives a grey ramp."""
    data = _read_file(filename)
    if len(data) < _PALETTE_BYTES:
        return Palette.grayscale()
    colors = list(struct.unpack(f"<{PALETTE_SIZE}H", data[:_PALETTE_BYTES]))
    return Palette(colors)


def save_palette(filename: PathLike, palette: Palette) -> None:
    """Write the palette's 256 colours as little-endian RGB565."""
    payload = _pixel_bytes(palette.colors)
    with open(filename, "wb") as out:
        out.write(payload)
    log.info("saved palette %s", os.fspath(filename))