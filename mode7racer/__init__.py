"""Textures, tracks, frame buffers, packets, link, lobby and sync protocol for a Mode-7 style racer."""

__version__ = "0.1.0"

__all__ = [
    "assets",
    "display",
    "imaging",
    "link",
    "lobby",
    "packets",
    "protocol",
    "tiles",
]