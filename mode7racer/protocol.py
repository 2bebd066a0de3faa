"""Frame-synchronised exchange of inputs and car states between two racers."""

from __future__ import annotations

import enum
import logging
import math
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional

from .packets import GameStatePacket, InputPacket

log = logging.getLogger(__name__)

INPUT_BUFFER_SIZE = 64
MAX_LATENCY_SAMPLES = 100
PREDICTION_THRESHOLD = 5.0
MAX_PREDICTION_FRAMES = 8
HEADING_THRESHOLD = 0.1  # radians, about 5.7 degrees
FIXED_ONE = 1 << 16

_U32 = 0xFFFFFFFF


class Button(enum.IntFlag):
    """Buttons a player can hold, as carried in an input packet."""

    NONE = 0
    A = 0x01
    B = 0x02
    START = 0x04
    SELECT = 0x08


@dataclass(frozen=True)
class InputState:
    """A player's controls: pedals, steering in -1..1 and held buttons."""

    throttle: bool = False
    brake: bool = False
    steering: float = 0.0
    buttons: Button = Button.NONE


@dataclass(frozen=True)
class CarState:
    """A car's position, velocity and heading in 16.16 fixed point."""

    position_x: int = 0
    position_y: int = 0
    velocity_x: int = 0
    velocity_y: int = 0
    heading: int = 0


@dataclass(frozen=True)
class ProtocolStats:
    """A snapshot of the protocol's timing and connection figures."""

    avg_latency: int
    jitter: int
    current_frame: int
    last_received_frame: int
    is_host: bool
    is_connected: bool


class _InputBuffer:
    """A window of inputs indexed by frame number."""

    def __init__(self) -> None:
        self.inputs = [InputPacket() for _ in range(INPUT_BUFFER_SIZE)]
        self.start_frame = 0
        self.count = 0

    def slot(self, frame: int) -> int:
        return ((frame - self.start_frame) & _U32) % INPUT_BUFFER_SIZE

    def covers(self, frame: int) -> bool:
        return self.start_frame <= frame < self.start_frame + INPUT_BUFFER_SIZE

    def store(self, frame: int, packet: InputPacket) -> None:
        if self.covers(frame):
            self.inputs[self.slot(frame)] = packet
            self.count = max(self.count, frame - self.start_frame + 1)

    def trim(self, current_frame: int) -> None:
        end = self.start_frame + self.count
        if current_frame > end + INPUT_BUFFER_SIZE // 2:
            self.start_frame = current_frame - INPUT_BUFFER_SIZE // 4
            self.count = INPUT_BUFFER_SIZE // 4


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


def _fixed_to_float(value: int) -> float:
    return value / FIXED_ONE


class NetProtocol:
    """Packs, checks and buffers the traffic of one side of a race."""

    def __init__(self, is_host: bool, clock: Optional[Callable[[], int]] = None) -> None:
        self.clock = clock if clock is not None else _monotonic_ms
        self.is_host = is_host
        self.is_connected = False
        self.local_player_id = 0 if is_host else 1
        self.remote_player_id = 1 if is_host else 0
        self._clear()
        log.info(
            "protocol initialized - host: %s, local id: %d", is_host, self.local_player_id
        )

    def _clear(self) -> None:
        self.current_frame = 0
        self.last_received_frame = 0
        self.latency_samples = 0
        self.avg_latency = 0
        self.jitter = 0
        self._local = _InputBuffer()
        self._remote = _InputBuffer()

    def _timestamp(self) -> int:
        return self.clock() & 0xFFFF

    def pack_game_state(
        self,
        car: CarState,
        checkpoint_index: Optional[int],
        lap_count: int,
        total_laps: int,
    ) -> GameStatePacket:
        """Build a checksummed game state packet for the local car.

        checkpoint_index is the first checkpoint passed, or None if none has
        been; then the lap count is not reported.
        """
        if checkpoint_index is None:
            index, laps, finished = 0, 0, 0
        else:
            index, laps = checkpoint_index, lap_count
            finished = 1 if lap_count >= total_laps else 0
        packet = GameStatePacket(
            game_state=0,
            player_id=self.local_player_id,
            frame_number=self.current_frame,
            car_position_x=car.position_x,
            car_position_y=car.position_y,
            car_velocity_x=car.velocity_x,
            car_velocity_y=car.velocity_y,
            car_heading=car.heading,
            checkpoint_index=index,
            lap_count=laps,
            race_finished=finished,
            timestamp=self._timestamp(),
        )
        return packet.with_checksum()

    def _check_sender(self, packet: object, player_id: int) -> None:
        if player_id != self.remote_player_id:
            log.warning("%s for wrong player id: %d", type(packet).__name__, player_id)
            raise ValueError(
                f"{type(packet).__name__} is from player {player_id}, "
                f"expected {self.remote_player_id}"
            )

    def unpack_game_state(self, packet: GameStatePacket) -> CarState:
        """Check a remote game state packet, record its latency, return the car."""
        self._check_sender(packet, packet.player_id)
        packet.verify()

        latency = (self._timestamp() - packet.timestamp) & 0xFFFF
        if self.latency_samples < MAX_LATENCY_SAMPLES:
            self.latency_samples += 1
            samples = self.latency_samples
        else:
            samples = MAX_LATENCY_SAMPLES
        self.avg_latency = (self.avg_latency * (samples - 1) + latency) // samples
        self.last_received_frame = packet.frame_number
        log.debug("latency: %d ms, avg: %d ms", latency, self.avg_latency)

        return CarState(
            position_x=packet.car_position_x,
            position_y=packet.car_position_y,
            velocity_x=packet.car_velocity_x,
            velocity_y=packet.car_velocity_y,
            heading=packet.car_heading,
        )

    def pack_input(self, state: InputState) -> InputPacket:
        """Build a checksummed input packet for the current frame."""
        packet = InputPacket(
            player_id=self.local_player_id,
            throttle=100 if state.throttle else 0,
            brake=100 if state.brake else 0,
            steering=int(state.steering * 100.0),
            buttons=int(Button(state.buttons) & (Button.A | Button.B | Button.START | Button.SELECT)),
            frame_number=self.current_frame,
            timestamp=self._timestamp(),
        )
        return packet.with_checksum()

    def unpack_input(self, packet: InputPacket) -> tuple[float, float, float]:
        """Check a remote input packet, buffer it, return throttle, brake, steering."""
        self._check_sender(packet, packet.player_id)
        packet.verify()
        self._remote.store(packet.frame_number, packet)
        return packet.throttle / 100.0, packet.brake / 100.0, packet.steering / 100.0

    def store_local_input(self, state: InputState, frame: int) -> None:
        """Keep the local input for frame so it can be replayed."""
        if self._local.covers(frame):
            self._local.store(frame, self.pack_input(state))

    def predict_remote_input(self, frame: int) -> InputPacket:
        """The remote input for frame: received, extrapolated or neutral."""
        remote = self._remote
        if remote.count == 0 or frame < remote.start_frame:
            return InputPacket(frame_number=frame)
        if frame < remote.start_frame + remote.count:
            return remote.inputs[remote.slot(frame)]
        last_frame = remote.start_frame + remote.count - 1
        last = remote.inputs[last_frame % INPUT_BUFFER_SIZE]
        return replace(last, frame_number=frame)

    def advance_frame(self) -> None:
        """Move to the next frame and drop inputs that have fallen far behind."""
        self.current_frame += 1
        self._local.trim(self.current_frame)
        self._remote.trim(self.current_frame)

    def stats(self) -> ProtocolStats:
        """Current latency, frame and connection figures."""
        return ProtocolStats(
            avg_latency=self.avg_latency,
            jitter=self.jitter,
            current_frame=self.current_frame,
            last_received_frame=self.last_received_frame,
            is_host=self.is_host,
            is_connected=self.is_connected,
        )

    def reset(self) -> None:
        """Forget frames, latency figures and buffered inputs."""
        self._clear()
        log.info("protocol state reset")

    def handle_connection(self, connected: bool) -> None:
        """Record a change of connection; losing it resets the protocol."""
        self.is_connected = connected
        if not connected:
            self.reset()
        log.info("protocol connection state: %s", "connected" if connected else "disconnected")


def should_rollback(
    predicted: CarState, actual: CarState, threshold: float = PREDICTION_THRESHOLD
) -> bool:
    """Whether a predicted car strayed too far from the actual one."""
    dx = predicted.position_x - actual.position_x
    dy = predicted.position_y - actual.position_y
    distance = _fixed_to_float(int(math.hypot(dx, dy)))
    heading = _fixed_to_float(abs(predicted.heading - actual.heading))
    return distance > threshold or heading > HEADING_THRESHOLD