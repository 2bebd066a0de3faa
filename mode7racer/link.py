"""The Bluetooth LE link between two racers and its GATT characteristics."""

from __future__ import annotations

import enum
import logging
from typing import Callable, Optional, Protocol, Union

from .packets import ChecksumError, ConfigPacket, GameStatePacket, InputPacket

log = logging.getLogger(__name__)

DEVICE_NAME = "Mode7Racer"
MANUFACTURER_DATA = "ESP32C6"
SERVICE_UUID = 0x1815
GAME_STATE_CHAR_UUID = 0x2A56
INPUT_CHAR_UUID = 0x2A57
CONFIG_CHAR_UUID = 0x2A58

Packet = Union[GameStatePacket, InputPacket, ConfigPacket]

_PACKET_TYPES: dict[int, type] = {
    GAME_STATE_CHAR_UUID: GameStatePacket,
    INPUT_CHAR_UUID: InputPacket,
    CONFIG_CHAR_UUID: ConfigPacket,
}

_PACKET_SIZES = {uuid: len(cls().to_bytes()) for uuid, cls in _PACKET_TYPES.items()}


class LinkError(Exception):
    """The radio refused an operation or a request was malformed."""


class NotConnectedError(LinkError):
    """An operation needs a live connection and there is none."""


class BleState(enum.Enum):
    """Where the link is in its life."""

    IDLE = enum.auto()
    ADVERTISING = enum.auto()
    CONNECTING = enum.auto()
    CONNECTED = enum.auto()
    DISCONNECTED = enum.auto()


class LinkEvent(enum.IntEnum):
    """Events reported to the link's callback."""

    CONNECTED = 0
    DISCONNECTED = 1
    GAME_STATE = 2
    INPUT = 3
    CONFIG = 4


_WRITE_EVENTS = {
    GAME_STATE_CHAR_UUID: LinkEvent.GAME_STATE,
    INPUT_CHAR_UUID: LinkEvent.INPUT,
    CONFIG_CHAR_UUID: LinkEvent.CONFIG,
}

LinkCallback = Callable[[LinkEvent, bytes], None]


class Radio(Protocol):
    """The Bluetooth controller a link drives; failures raise LinkError."""

    def start_advertising(
        self, name: str, service_uuid: int, manufacturer_data: str
    ) -> None:
        """Advertise the service under the device name."""

    def stop_advertising(self) -> None:
        """Stop advertising."""

    def start_scanning(self) -> None:
        """Scan for advertising peers."""

    def stop_scanning(self) -> None:
        """Stop scanning."""

    def notify(self, conn_handle: int, characteristic: int, data: bytes) -> None:
        """Send a notification of a characteristic's value to the peer."""

    def update_connection_parameters(
        self, conn_handle: int, interval: int, latency: int, timeout: int
    ) -> None:
        """Request new connection timing."""

    def terminate(self, conn_handle: int) -> None:
        """Drop the connection."""


class GattServer:
    """The three racing characteristics with their stored values."""

    def __init__(self, radio: Radio, conn_handle: int = 0) -> None:
        self.radio = radio
        self.conn_handle = conn_handle
        self.values: dict[int, Packet] = {
            GAME_STATE_CHAR_UUID: GameStatePacket(),
            INPUT_CHAR_UUID: InputPacket(),
            CONFIG_CHAR_UUID: ConfigPacket.default(),
        }
        self.ccc: dict[int, int] = dict.fromkeys(_PACKET_TYPES, 0)

    @staticmethod
    def _check(characteristic: int) -> None:
        if characteristic not in _PACKET_TYPES:
            raise LinkError(f"unknown characteristic {characteristic:#06x}")

    def read(self, characteristic: int) -> bytes:
        """Return the stored value with a fresh checksum."""
        self._check(characteristic)
        packet = self.values[characteristic].with_checksum()
        self.values[characteristic] = packet
        return packet.to_bytes()

    def write(self, characteristic: int, data: bytes) -> Packet:
        """Store a value written by the peer and check its checksum."""
        self._check(characteristic)
        expected = _PACKET_SIZES[characteristic]
        if len(data) != expected:
            raise LinkError(
                f"value for {characteristic:#06x} must be {expected} bytes, got {len(data)}"
            )
        packet = _PACKET_TYPES[characteristic].from_bytes(bytes(data))
        self.values[characteristic] = packet
        try:
            packet.verify()
        except ChecksumError:
            log.error("checksum mismatch on characteristic %#06x", characteristic)
            raise
        if isinstance(packet, ConfigPacket):
            log.info(
                "config updated - track: %d, laps: %d, mode: %d",
                packet.track_id,
                packet.lap_count,
                packet.game_mode,
            )
        return packet

    def set_notifications(self, characteristic: int, value: int) -> None:
        """Set the client configuration value that enables notifications."""
        self._check(characteristic)
        if not 0 <= value <= 0xFFFF:
            raise LinkError(f"configuration value out of range: {value}")
        self.ccc[characteristic] = value

    def notify(self, characteristic: int, packet: Packet) -> Packet:
        """Store packet with a fresh checksum and notify the peer of it."""
        self._check(characteristic)
        if not isinstance(packet, _PACKET_TYPES[characteristic]):
            raise TypeError(
                f"characteristic {characteristic:#06x} carries "
                f"{_PACKET_TYPES[characteristic].__name__}, not {type(packet).__name__}"
            )
        if self.ccc[characteristic] == 0:
            raise LinkError(f"notifications disabled for {characteristic:#06x}")
        stored = packet.with_checksum()
        self.values[characteristic] = stored
        self.radio.notify(self.conn_handle, characteristic, stored.to_bytes())
        return stored


class BleLink:
    """Connection state of the racing link and the traffic over it."""

    def __init__(self, radio: Radio) -> None:
        self.radio = radio
        self.state = BleState.IDLE
        self.connection_handle: Optional[int] = None
        self.connection_interval = 0
        self.latency = 0
        self._callback: Optional[LinkCallback] = None

    def __enter__(self) -> "BleLink":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def is_connected(self) -> bool:
        return self.state is BleState.CONNECTED and self.connection_handle is not None

    def register_callback(self, callback: Optional[LinkCallback]) -> None:
        """Set the function told of link events, or None for none."""
        self._callback = callback

    def _emit(self, event: LinkEvent, data: bytes = b"") -> None:
        if self._callback is not None:
            self._callback(event, data)

    def start_advertising(self) -> None:
        """Advertise the racing service so a peer can connect."""
        self.radio.start_advertising(DEVICE_NAME, SERVICE_UUID, MANUFACTURER_DATA)
        self.state = BleState.ADVERTISING
        log.info("advertising started")

    def stop_advertising(self) -> None:
        """Stop advertising and return to idle."""
        self.radio.stop_advertising()
        self.state = BleState.IDLE
        log.info("advertising stopped")

    def start_scanning(self) -> None:
        """Look for advertising peers."""
        self.radio.start_scanning()
        log.info("scanning started")

    def stop_scanning(self) -> None:
        """Stop looking for peers."""
        self.radio.stop_scanning()
        log.info("scanning stopped")

    def _send(self, characteristic: int, packet: Packet) -> None:
        if self.connection_handle is None or self.state is not BleState.CONNECTED:
            raise NotConnectedError("no active connection")
        self.radio.notify(self.connection_handle, characteristic, packet.to_bytes())

    def send_game_state(self, state: GameStatePacket) -> None:
        """Notify the peer of a game state packet as it stands."""
        self._send(GAME_STATE_CHAR_UUID, state)

    def send_input(self, packet: InputPacket) -> None:
        """Notify the peer of an input packet as it stands."""
        self._send(INPUT_CHAR_UUID, packet)

    def send_config(self, config: ConfigPacket) -> None:
        """Notify the peer of a config packet as it stands."""
        self._send(CONFIG_CHAR_UUID, config)

    def calculate_latency(self) -> int:
        """Worst-case delay in connection-interval units, 0 if unknown."""
        if self.connection_interval > 0:
            return (self.connection_interval * (1 + self.latency)) & 0xFFFF
        return 0

    def update_connection_parameters(self, interval: int, latency: int, timeout: int) -> None:
        """Ask for new connection timing; does nothing when not connected."""
        if not self.is_connected:
            return
        assert self.connection_handle is not None
        self.radio.update_connection_parameters(
            self.connection_handle, interval, latency, timeout
        )

    def on_connect(
        self,
        status: int,
        handle: int,
        interval: Optional[int] = None,
        latency: Optional[int] = None,
    ) -> None:
        """Record the outcome of a connection attempt."""
        if status != 0:
            log.error("connection failed: %d", status)
            self.state = BleState.IDLE
            return
        self.state = BleState.CONNECTED
        self.connection_handle = handle
        if interval is not None and latency is not None:
            self.connection_interval = interval
            self.latency = latency
        log.info("connected, handle=%d", handle)
        self._emit(LinkEvent.CONNECTED)

    def on_disconnect(self, reason: int) -> None:
        """Record that the peer went away."""
        log.info("disconnected: %d", reason)
        self.state = BleState.DISCONNECTED
        self.connection_handle = None
        self._emit(LinkEvent.DISCONNECTED)

    def on_advertising_complete(self) -> None:
        """Record that advertising ended on its own."""
        if self.state is BleState.ADVERTISING:
            self.state = BleState.IDLE

    def on_characteristic_write(self, uuid: int, data: bytes) -> None:
        """Pass a well-sized write from the peer on to the callback."""
        event = _WRITE_EVENTS.get(uuid)
        if event is None or len(data) != _PACKET_SIZES[uuid]:
            return
        self._emit(event, bytes(data))

    def close(self) -> None:
        """Stop advertising, drop any connection and go idle."""
        if self.state is BleState.ADVERTISING:
            self.stop_advertising()
        if self.state is BleState.CONNECTED and self.connection_handle is not None:
            self.radio.terminate(self.connection_handle)
        self.state = BleState.IDLE