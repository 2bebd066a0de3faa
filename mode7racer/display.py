"""A double-buffered RGB565 frame buffer for the square racing display."""

from __future__ import annotations

import logging
from array import array
from dataclasses import dataclass
from typing import Optional, Sequence

log = logging.getLogger(__name__)

WIDTH = 720
HEIGHT = 720
BITS_PER_PIXEL = 16
BUFFER_SIZE = WIDTH * HEIGHT * 2


@dataclass(frozen=True)
class DisplayConfig:
    """Requested display settings."""

    width: int = WIDTH
    height: int = HEIGHT
    refresh_rate: int = 60
    use_dma: bool = True


class Display:
    """Two frame buffers, one drawn into while the other is shown."""

    def __init__(self, config: Optional[DisplayConfig] = None) -> None:
        self.config = config if config is not None else DisplayConfig()
        log.info("initializing display for %dx%d", self.config.width, self.config.height)
        blank = array("H", bytes(BUFFER_SIZE))
        self._buffers = [blank, array("H", blank)]
        self._current = 0
        self.line_buffer = bytearray(WIDTH * 2)
        self.frame_count = 0
        self._open = True

    def __enter__(self) -> "Display":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def frame_buffer(self) -> array:
        """The buffer currently drawn into, row by row."""
        self._require_open()
        return self._buffers[self._current]

    def _require_open(self) -> None:
        if not self._open:
            raise RuntimeError("display is closed")

    def swap_buffers(self) -> None:
        """Make the other buffer the one drawn into."""
        self._current ^= 1

    def flush(self) -> None:
        """Mark the current frame as complete."""
        if not self._open:
            return
        self.frame_count += 1
        if self.frame_count % 60 == 0:
            log.debug("frame %d completed", self.frame_count)

    def clear(self, color: int) -> None:
        """Fill the whole current buffer with one colour."""
        if not self._open:
            return
        self._buffers[self._current] = array("H", [color & 0xFFFF]) * (WIDTH * HEIGHT)

    def fill_rect(self, x: int, y: int, w: int, h: int, color: int) -> None:
        """Fill a rectangle, clipped to the screen."""
        if not self._open:
            return
        if x < 0:
            w += x
            x = 0
        if y < 0:
            h += y
            y = 0
        w = min(w, WIDTH - x)
        h = min(h, HEIGHT - y)
        if w <= 0 or h <= 0:
            return
        buffer = self._buffers[self._current]
        span = array("H", [color & 0xFFFF]) * w
        for row in range(y, y + h):
            start = row * WIDTH + x
            buffer[start : start + w] = span

    def draw_pixel(self, x: int, y: int, color: int) -> None:
        """Set one pixel; points off the screen are ignored."""
        if not self._open or not (0 <= x < WIDTH and 0 <= y < HEIGHT):
            return
        self._buffers[self._current][y * WIDTH + x] = color & 0xFFFF

    def draw_scanline(self, y: int, data: Sequence[int]) -> None:
        """Copy a row of pixels to line y, cut to the screen width."""
        if not self._open or not (0 <= y < HEIGHT):
            return
        row = array("H", (value & 0xFFFF for value in data[:WIDTH]))
        start = y * WIDTH
        self._buffers[self._current][start : start + len(row)] = row

    def pixel(self, x: int, y: int) -> int:
        """Read one pixel of the current buffer."""
        self._require_open()
        if not (0 <= x < WIDTH and 0 <= y < HEIGHT):
            raise IndexError(f"pixel ({x}, {y}) is off the screen")
        return self._buffers[self._current][y * WIDTH + x]

    def close(self) -> None:
        """Release the frame buffers; drawing afterwards does nothing."""
        if not self._open:
            return
        self._buffers = [array("H"), array("H")]
        self.line_buffer = bytearray()
        self._open = False