"""Tile-based race tracks: ASCII track parsing, tilesheets and heightmaps."""

from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from .assets import save_texture
from .imaging import Texture

log = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

TILE_WIDTH = 16
TILE_HEIGHT = 16
TILES_PER_ROW = 32
MAX_TILE_COUNT = 1024
DEFAULT_TILE_COUNT = 8


class TileType(enum.IntEnum):
    """What a track tile is made of."""

    GRASS = 0
    ROAD = 1
    WATER = 2
    SAND = 3
    WALL = 4
    START = 5
    CHECKPOINT = 6
    FINISH = 7


_CHAR_TILES = {
    "g": TileType.GRASS,
    "r": TileType.ROAD,
    "w": TileType.WATER,
    "s": TileType.SAND,
    "#": TileType.WALL,
    "x": TileType.START,
    "c": TileType.CHECKPOINT,
    "f": TileType.FINISH,
}

_TILE_COLORS = {
    TileType.GRASS: (0x07E0, 0x0200),
    TileType.ROAD: (0x8410, 0x4208),
    TileType.WATER: (0x001F, 0x0008),
    TileType.SAND: (0xFFE0, 0xBA20),
    TileType.WALL: (0xF800, 0x9800),
    TileType.START: (0x07E0, 0xFFFF),
    TileType.CHECKPOINT: (0xFFE0, 0x001F),
    TileType.FINISH: (0x0000, 0xFFFF),
}
_DEFAULT_COLORS = (0x8410, 0x4208)

_HEIGHTS = {
    TileType.GRASS: 0x0100,
    TileType.ROAD: 0x0000,
    TileType.WATER: 0xFF00,
    TileType.SAND: 0x0050,
    TileType.WALL: 0x0200,
    TileType.START: 0x0000,
    TileType.CHECKPOINT: 0x0000,
    TileType.FINISH: 0x0000,
}

DEFAULT_TRACK_ASCII = (
    "##################################################\n"
    "#GGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGG#\n"
    "#G                                              G#\n"
    "#G  RRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRR  G#\n"
    "#G  R                                        R  G#\n"
    "#G  R  SSSSSSSSSSSSSSSSSSSSSSSSSSSSSSSSSSS  R  G#\n"
    "#G  R  S                                    S  R  G#\n"
    "#G  R  S  RRRRRRRRRRRRRRRRRRRRRRRRRRRRRRR  S  R  G#\n"
    "#G  R  S  R                              R  S  R  G#\n"
    "#G  R  S  R  CCCCCCCCCCCCCCCCCCCCCCCCC  R  S  R  G#\n"
    "#G  R  S  R  C                          C  R  S  R  G#\n"
    "#G  R  S  R  C  RRRRRRRRRRRRRRRRRRRRR  C  R  S  R  G#\n"
    "#G  R  S  R  C  R                    R  C  R  S  R  G#\n"
    "#G  R  S  R  C  R  FFFFFFFFFFFFFFF  R  C  R  S  R  G#\n"
    "#G  R  S  R  C  R  F              F  R  C  R  S  R  G#\n"
    "#G  R  S  R  C  R  F  XXXXXXXXX  F  R  C  R  S  R  G#\n"
    "#G  R  S  R  C  R  F  X        X  F  R  C  R  S  R  G#\n"
    "#G  R  S  R  C  R  F  X        X  F  R  C  R  S  R  G#\n"
    "#G  R  S  R  C  R  F  XXXXXXXXX  F  R  C  R  S  R  G#\n"
    "#G  R  S  R  C  R  F              F  R  C  R  S  R  G#\n"
    "#G  R  S  R  C  R  FFFFFFFFFFFFFFF  R  C  R  S  R  G#\n"
    "#G  R  S  R  C  R                    R  C  R  S  R  G#\n"
    "#G  R  S  R  C  RRRRRRRRRRRRRRRRRRRRR  C  R  S  R  G#\n"
    "#G  R  S  R  C                          C  R  S  R  G#\n"
    "#G  R  S  R  CCCCCCCCCCCCCCCCCCCCCCCCC  R  S  R  G#\n"
    "#G  R  S  R                              R  S  R  G#\n"
    "#G  R  S  RRRRRRRRRRRRRRRRRRRRRRRRRRRRRRR  S  R  G#\n"
    "#G  R  S                                    S  R  G#\n"
    "#G  R  SSSSSSSSSSSSSSSSSSSSSSSSSSSSSSSSSSS  R  G#\n"
    "#G  R                                        R  G#\n"
    "#G  RRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRRR  G#\n"
    "#G                                              G#\n"
    "#GGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGG#\n"
    "##################################################\n"
)


@dataclass(frozen=True)
class Checkpoint:
    """A checkpoint circle in world coordinates."""

    x: int
    y: int
    radius: int
    index: int


@dataclass(frozen=True)
class TrackLayout:
    """A grid of tiles together with the start position and checkpoints."""

    width: int
    height: int
    tiles: bytes
    start_x: int = 0
    start_y: int = 0
    start_angle: int = 0
    checkpoints: tuple[Checkpoint, ...] = field(default_factory=tuple)
    tile_width: int = TILE_WIDTH
    tile_height: int = TILE_HEIGHT
    flags: int = 0

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError(f"invalid track dimensions {self.width}x{self.height}")
        if len(self.tiles) != self.width * self.height:
            raise ValueError(
                f"track of {self.width}x{self.height} needs "
                f"{self.width * self.height} tiles, got {len(self.tiles)}"
            )

    @property
    def checkpoint_count(self) -> int:
        return len(self.checkpoints)

    def tile_at(self, x: int, y: int) -> TileType:
        """Return the tile at grid position (x, y)."""
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"tile ({x}, {y}) is outside the track")
        return TileType(self.tiles[y * self.width + x])


def _tile_center(x: int, y: int) -> tuple[int, int]:
    return x * TILE_WIDTH + TILE_WIDTH // 2, y * TILE_HEIGHT + TILE_HEIGHT // 2


def _lines(text: str) -> list[str]:
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def parse_ascii_track(text: str) -> TrackLayout:
    """Build a track from rows of tile letters; unknown characters are grass."""
    rows = _lines(text)
    height = len(rows)
    width = max((len(row) for row in rows), default=0)
    grid = bytearray(width * height)
    for y, row in enumerate(rows):
        for x, char in enumerate(row):
            grid[y * width + x] = _CHAR_TILES.get(char.lower(), TileType.GRASS)

    start_x = start_y = 0
    checkpoints: list[Checkpoint] = []
    for y in range(height):
        for x in range(width):
            tile = grid[y * width + x]
            if tile == TileType.START:
                start_x, start_y = _tile_center(x, y)
            elif tile == TileType.CHECKPOINT:
                cx, cy = _tile_center(x, y)
                checkpoints.append(Checkpoint(cx, cy, TILE_WIDTH // 2, len(checkpoints)))

    return TrackLayout(
        width=width,
        height=height,
        tiles=bytes(grid),
        start_x=start_x,
        start_y=start_y,
        start_angle=0,
        checkpoints=tuple(checkpoints),
    )


def load_ascii_track(filename: PathLike) -> TrackLayout:
    """Read and parse an ASCII track file."""
    text = Path(filename).read_text()
    track = parse_ascii_track(text)
    log.info("loaded ASCII track %s (%dx%d)", os.fspath(filename), track.width, track.height)
    return track


def _tile_color(tile_idx: int, px: int, py: int) -> int:
    base, accent = _TILE_COLORS.get(tile_idx, _DEFAULT_COLORS)
    if tile_idx == TileType.GRASS:
        return accent if (px + py) % 3 == 0 else base
    if tile_idx == TileType.ROAD:
        return 0xFFFF if py == TILE_HEIGHT // 2 else base
    if tile_idx == TileType.WATER:
        return accent if (px + py) % 4 == 0 else base
    if tile_idx == TileType.SAND:
        return accent if (px * py) % 5 == 0 else base
    if tile_idx == TileType.WALL:
        return accent if px % 4 == 0 or py % 4 == 0 else base
    if tile_idx in (TileType.START, TileType.CHECKPOINT, TileType.FINISH):
        return accent if (px // 2 + py // 2) % 2 == 0 else base
    return base


def generate_tilesheet(tile_count: int) -> Texture:
    """Draw tile_count patterned tiles into a sheet 32 tiles wide."""
    if tile_count <= 0 or tile_count > MAX_TILE_COUNT:
        tile_count = DEFAULT_TILE_COUNT
    rows = -(-tile_count // TILES_PER_ROW)
    sheet_width = TILES_PER_ROW * TILE_WIDTH
    sheet_height = rows * TILE_HEIGHT
    pixels = [0] * (sheet_width * sheet_height)
    for tile_idx in range(tile_count):
        tile_row, tile_col = divmod(tile_idx, TILES_PER_ROW)
        origin_x = tile_col * TILE_WIDTH
        origin_y = tile_row * TILE_HEIGHT
        for py in range(TILE_HEIGHT):
            start = (origin_y + py) * sheet_width + origin_x
            pixels[start : start + TILE_WIDTH] = [
                _tile_color(tile_idx, px, py) for px in range(TILE_WIDTH)
            ]
    log.info("generated tilesheet %dx%d (%d tiles)", sheet_width, sheet_height, tile_count)
    return Texture(sheet_width, sheet_height, pixels)


def save_tilesheet(filename: PathLike, tilesheet: Texture) -> None:
    """Write a tilesheet as a texture asset."""
    save_texture(filename, tilesheet)


def generate_heightmap(track: TrackLayout) -> Texture:
    """Give every tile of the track a height value by its type."""
    pixels = [_HEIGHTS.get(tile, 0x0000) for tile in track.tiles]
    return Texture(track.width, track.height, pixels)


def default_track() -> TrackLayout:
    """The built-in concentric-ring track."""
    return parse_ascii_track(DEFAULT_TRACK_ASCII)