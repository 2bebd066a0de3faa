"""Finding a rival over Bluetooth and pairing up for a one-on-one race."""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from .link import BleLink

log = logging.getLogger(__name__)

DEVICE_NAME_MAX_LEN = 32
MAX_DEVICES = 8
SCAN_TIMEOUT_MS = 10000
ADVERTISE_TIMEOUT_MS = 15000
ADDR_LEN = 6
INVALID_RSSI = -128
SESSION_PLAYERS = 2

# Event codes the lobby understands from the link.
_LINK_DEVICE_FOUND = 0
_LINK_DEVICE_LOST = 1
_LINK_CONNECTED = 2
_LINK_DISCONNECTED = 3


class LobbyError(Exception):
    """The lobby cannot do what was asked in its present state."""


class DeviceNotFoundError(LobbyError):
    """No device with the given address has been seen."""


class LobbyState(enum.IntEnum):
    """What the lobby is doing."""

    IDLE = 0
    HOSTING = 1
    SCANNING = 2
    CONNECTING = 3
    CONNECTED = 4
    ERROR = 5


class LobbyRole(enum.IntEnum):
    """Whether this racer hosts the game or joins one."""

    HOST = 0
    CLIENT = 1


class LobbyEvent(enum.IntEnum):
    """Events reported to the lobby's callback."""

    DEVICE_FOUND = 0
    DEVICE_LOST = 1
    CONNECTION_REQUEST = 2
    CONNECTION_SUCCESS = 3
    CONNECTION_FAILED = 4
    PLAYER_JOINED = 5
    PLAYER_LEFT = 6
    GAME_START = 7
    TIMEOUT = 8
    CONNECTED = 9
    DISCONNECTED = 10


LobbyCallback = Callable[[LobbyEvent, bytes], None]


def _now_ms() -> int:
    return int(time.monotonic() * 1000)


def _addr(addr: bytes) -> bytes:
    raw = bytes(addr)
    if len(raw) < ADDR_LEN:
        raise ValueError(f"address needs {ADDR_LEN} bytes, got {len(raw)}")
    return raw[:ADDR_LEN]


def format_addr(addr: bytes) -> str:
    """Write an address as colon-separated hex bytes."""
    return ":".join(f"{byte:02X}" for byte in _addr(addr))


@dataclass
class LobbyDevice:
    """A racer seen over the air."""

    addr: bytes = bytes(ADDR_LEN)
    device_name: str = ""
    rssi: int = 0
    last_seen: int = 0
    is_host: bool = False
    connection_handle: int = 0


@dataclass
class LobbyConfig:
    """How this racer takes part in the lobby."""

    role: LobbyRole = LobbyRole.HOST
    player_name: str = ""
    game_name: str = ""
    max_players: int = SESSION_PLAYERS
    game_mode: int = 0
    timeout_ms: int = SCAN_TIMEOUT_MS


@dataclass
class GameSession:
    """The two players of a race and whether it may begin."""

    player_count: int = 0
    host_player_id: int = 0
    players: list[LobbyDevice] = field(
        default_factory=lambda: [LobbyDevice() for _ in range(SESSION_PLAYERS)]
    )
    track_id: int = 0
    lap_count: int = 0
    ready_to_start: bool = False
    max_players: int = SESSION_PLAYERS


class Lobby:
    """Hosts or joins a one-on-one race over a Bluetooth link."""

    def __init__(
        self, config: LobbyConfig, link: BleLink, *, connect_delay: float = 1.0
    ) -> None:
        self.config = config
        self.link = link
        self.connect_delay = connect_delay
        self.state = LobbyState.IDLE
        self._devices: list[LobbyDevice] = []
        self.session = GameSession()
        self._callback: Optional[LobbyCallback] = None
        link.register_callback(self.handle_link_event)
        log.info(
            "lobby initialized as %s",
            "host" if config.role is LobbyRole.HOST else "client",
        )

    def __enter__(self) -> "Lobby":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def devices(self) -> tuple[LobbyDevice, ...]:
        return tuple(self._devices)

    @property
    def device_count(self) -> int:
        return len(self._devices)

    def register_callback(self, callback: Optional[LobbyCallback]) -> None:
        """Set the function told of lobby events, or None for none."""
        self._callback = callback

    def _emit(self, event: LobbyEvent, data: bytes = b"") -> None:
        if self._callback is not None:
            self._callback(event, data)

    def _require(self, state: LobbyState, action: str) -> None:
        if self.state is not state:
            raise LobbyError(f"cannot {action} while {self.state.name}")

    def start_hosting(self) -> None:
        """Advertise a game for a client to join."""
        if self.config.role is not LobbyRole.HOST:
            raise LobbyError("cannot host - configured as client")
        self._require(LobbyState.IDLE, "start hosting")
        self._devices.clear()
        self.link.start_advertising()
        self.state = LobbyState.HOSTING
        log.info("started hosting lobby")
        self._emit(LobbyEvent.DEVICE_FOUND)

    def stop_hosting(self) -> None:
        """Stop advertising the game."""
        self._require(LobbyState.HOSTING, "stop hosting")
        self.link.stop_advertising()
        self.state = LobbyState.IDLE
        self._devices.clear()
        log.info("stopped hosting lobby")

    def start_scanning(self) -> None:
        """Look for hosted games."""
        if self.config.role is not LobbyRole.CLIENT:
            raise LobbyError("cannot scan - configured as host")
        self._require(LobbyState.IDLE, "start scanning")
        self._devices.clear()
        self.link.start_scanning()
        self.state = LobbyState.SCANNING
        log.info("started scanning for devices")

    def stop_scanning(self) -> None:
        """Stop looking for hosted games."""
        self._require(LobbyState.SCANNING, "stop scanning")
        self.link.stop_scanning()
        self.state = LobbyState.IDLE
        log.info("stopped scanning for devices")

    def _find(self, addr: bytes) -> Optional[LobbyDevice]:
        key = _addr(addr)
        return next((device for device in self._devices if device.addr == key), None)

    def _require_device(self, addr: bytes) -> LobbyDevice:
        device = self._find(addr)
        if device is None:
            raise DeviceNotFoundError(f"device {format_addr(addr)} not found")
        return device

    def connect_to_device(self, addr: bytes) -> None:
        """Join the game hosted by a device found while scanning."""
        self._require(LobbyState.SCANNING, "connect")
        device = self._require_device(addr)
        key = _addr(addr)
        self.state = LobbyState.CONNECTING
        log.info("connecting to device %s", format_addr(key))
        if self.connect_delay > 0:
            time.sleep(self.connect_delay)
        self.session.players[1] = device
        self.session.player_count = 2
        self.state = LobbyState.CONNECTED
        self._emit(LobbyEvent.CONNECTION_SUCCESS, key)
        self._emit(LobbyEvent.PLAYER_JOINED, key)

    def accept_connection(self, addr: bytes) -> None:
        """Take a known device into the hosted session."""
        self._require(LobbyState.HOSTING, "accept a connection")
        device = self._require_device(addr)
        self.session.players[1] = device
        self.session.player_count = 2
        self.session.host_player_id = 0
        self._emit(LobbyEvent.PLAYER_JOINED, _addr(addr))

    def reject_connection(self, addr: bytes) -> None:
        """Turn a device away."""
        key = _addr(addr)
        log.info("rejected connection from %s", format_addr(key))
        self._emit(LobbyEvent.CONNECTION_FAILED, key)

    def start_game(self) -> None:
        """Mark the session ready once both players are connected."""
        self._require(LobbyState.CONNECTED, "start the game")
        if self.session.player_count < 2:
            raise LobbyError("cannot start the game without two players")
        self.session.ready_to_start = True
        self._emit(LobbyEvent.GAME_START)
        log.info("game starting with %d players", self.session.player_count)

    def handle_link_event(self, event_type: int, data: bytes) -> None:
        """React to a report from the link.

        A found device is reported as one signed RSSI byte, the six address
        bytes and the device name; a lost device by its address alone.
        """
        data = bytes(data)
        if event_type == _LINK_DEVICE_FOUND:
            if len(data) >= ADDR_LEN + 1:
                rssi = int.from_bytes(data[:1], "little", signed=True)
                addr = data[1 : 1 + ADDR_LEN]
                name = data[1 + ADDR_LEN :].split(b"\0", 1)[0]
                self._add_device(addr, name.decode("utf-8", "replace"), rssi, False)
                self._emit(LobbyEvent.DEVICE_FOUND, addr)
        elif event_type == _LINK_DEVICE_LOST:
            if len(data) >= ADDR_LEN:
                addr = data[:ADDR_LEN]
                self._remove_device(addr)
                self._emit(LobbyEvent.DEVICE_LOST, addr)
        elif event_type == _LINK_CONNECTED:
            self.state = LobbyState.CONNECTED
            self._emit(LobbyEvent.CONNECTED, data[:ADDR_LEN])
        elif event_type == _LINK_DISCONNECTED:
            self.state = LobbyState.IDLE
            self.session.player_count = 1
            self._emit(LobbyEvent.DISCONNECTED, data[:ADDR_LEN])

    def _add_device(self, addr: bytes, name: str, rssi: int, is_host: bool) -> None:
        if len(self._devices) >= MAX_DEVICES:
            return
        name = name[: DEVICE_NAME_MAX_LEN - 1]
        existing = self._find(addr)
        if existing is not None:
            existing.device_name = name
            existing.rssi = rssi
            existing.last_seen = _now_ms()
            return
        self._devices.append(
            LobbyDevice(
                addr=addr,
                device_name=name,
                rssi=rssi,
                last_seen=_now_ms(),
                is_host=is_host,
            )
        )
        log.info("added device: %s (%s), RSSI: %d", name, format_addr(addr), rssi)

    def _remove_device(self, addr: bytes) -> None:
        device = self._find(addr)
        if device is not None:
            self._devices.remove(device)

    def connection_rssi(self, addr: bytes) -> int:
        """Signal strength of a known device, or -128 if it is unknown."""
        device = self._find(addr)
        return device.rssi if device is not None else INVALID_RSSI

    def is_device_connected(self, addr: bytes) -> bool:
        """Whether the address belongs to a player of the session."""
        key = _addr(addr)
        players = self.session.players[: self.session.player_count]
        return any(player.addr == key for player in players)

    def close(self) -> None:
        """Forget every device, shut the link down and go idle."""
        self._devices.clear()
        self.link.close()
        self.state = LobbyState.IDLE
        log.info("lobby closed")