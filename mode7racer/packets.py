"""Wire packets exchanged between the two racers, with their checksums."""

from __future__ import annotations

import binascii
import struct
import zlib
from dataclasses import astuple, dataclass, replace
from typing import Callable, TypeVar

_P = TypeVar("_P")


class ChecksumError(ValueError):
    """A packet's checksum does not match its contents."""


def crc16(data: bytes) -> int:
    """CRC-16/CCITT of the data, starting from 0xFFFF."""
    return binascii.crc_hqx(bytes(data), 0xFFFF)


def crc32(data: bytes) -> int:
    """Standard CRC-32 of the data."""
    return zlib.crc32(bytes(data)) & 0xFFFFFFFF


_GAME_STATE = struct.Struct("<BBIiiiiiBBBHH")
_INPUT = struct.Struct("<BbbbBIHH")
_CONFIG = struct.Struct("<BBBBHHI")


def _pack(layout: struct.Struct, packet: object) -> bytes:
    try:
        return layout.pack(*astuple(packet))
    except struct.error as exc:
        raise ValueError(f"{type(packet).__name__} field out of range: {exc}") from None


def _unpack(cls: type[_P], layout: struct.Struct, data: bytes) -> _P:
    if len(data) != layout.size:
        raise ValueError(
            f"{cls.__name__} must be {layout.size} bytes, got {len(data)}"
        )
    return cls(*layout.unpack(bytes(data)))


def _expected(body: bytes, width: int, crc: Callable[[bytes], int]) -> int:
    return crc(body[:-width])


def _verify(packet: _P, expected: int, actual: int) -> _P:
    if expected != actual:
        raise ChecksumError(
            f"{type(packet).__name__} checksum mismatch: "
            f"expected {expected:#x}, got {actual:#x}"
        )
    return packet


@dataclass(frozen=True)
class GameStatePacket:
    """A car's position and race progress at one frame."""

    game_state: int = 0
    player_id: int = 0
    frame_number: int = 0
    car_position_x: int = 0
    car_position_y: int = 0
    car_velocity_x: int = 0
    car_velocity_y: int = 0
    car_heading: int = 0
    checkpoint_index: int = 0
    lap_count: int = 0
    race_finished: int = 0
    timestamp: int = 0
    checksum: int = 0

    def to_bytes(self) -> bytes:
        return _pack(_GAME_STATE, self)

    @classmethod
    def from_bytes(cls, data: bytes) -> "GameStatePacket":
        return _unpack(cls, _GAME_STATE, data)

    def with_checksum(self) -> "GameStatePacket":
        """Return a copy whose CRC-16 checksum covers its other fields."""
        return replace(self, checksum=_expected(self.to_bytes(), 2, crc16))

    def verify(self) -> "GameStatePacket":
        """Return the packet, or raise ChecksumError if it is corrupt."""
        return _verify(self, _expected(self.to_bytes(), 2, crc16), self.checksum)


@dataclass(frozen=True)
class InputPacket:
    """A player's controls for one frame."""

    player_id: int = 0
    throttle: int = 0
    brake: int = 0
    steering: int = 0
    buttons: int = 0
    frame_number: int = 0
    timestamp: int = 0
    checksum: int = 0

    def to_bytes(self) -> bytes:
        return _pack(_INPUT, self)

    @classmethod
    def from_bytes(cls, data: bytes) -> "InputPacket":
        return _unpack(cls, _INPUT, data)

    def with_checksum(self) -> "InputPacket":
        """Return a copy whose CRC-16 checksum covers its other fields."""
        return replace(self, checksum=_expected(self.to_bytes(), 2, crc16))

    def verify(self) -> "InputPacket":
        """Return the packet, or raise ChecksumError if it is corrupt."""
        return _verify(self, _expected(self.to_bytes(), 2, crc16), self.checksum)


@dataclass(frozen=True)
class ConfigPacket:
    """Race settings agreed between host and client."""

    config_type: int = 0
    track_id: int = 0
    lap_count: int = 0
    game_mode: int = 0
    latency_target: int = 0
    update_rate: int = 0
    checksum: int = 0

    def to_bytes(self) -> bytes:
        return _pack(_CONFIG, self)

    @classmethod
    def from_bytes(cls, data: bytes) -> "ConfigPacket":
        return _unpack(cls, _CONFIG, data)

    def with_checksum(self) -> "ConfigPacket":
        """Return a copy whose CRC-32 checksum covers its other fields."""
        return replace(self, checksum=_expected(self.to_bytes(), 4, crc32))

    def verify(self) -> "ConfigPacket":
        """Return the packet, or raise ChecksumError if it is corrupt."""
        return _verify(self, _expected(self.to_bytes(), 4, crc32), self.checksum)

    @classmethod
    def default(cls) -> "ConfigPacket":
        """Standard three-lap race on the first track, 80 ms target at 30 Hz."""
        return cls(
            config_type=1,
            track_id=0,
            lap_count=3,
            game_mode=0,
            latency_target=80,
            update_rate=30,
        )