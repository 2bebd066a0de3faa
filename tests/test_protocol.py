from dataclasses import replace

import pytest

from mode7racer.packets import ChecksumError, InputPacket
from mode7racer.protocol import (
    FIXED_ONE,
    INPUT_BUFFER_SIZE,
    Button,
    CarState,
    InputState,
    NetProtocol,
    should_rollback,
)


class FakeClock:
    def __init__(self, now=0):
        self.now = now

    def __call__(self):
        return self.now


def make_pair(host_time=1000, client_time=1000):
    host_clock = FakeClock(host_time)
    client_clock = FakeClock(client_time)
    return (
        NetProtocol(True, clock=host_clock),
        NetProtocol(False, clock=client_clock),
        host_clock,
        client_clock,
    )


def test_player_ids_follow_role():
    host, client, _, _ = make_pair()
    assert (host.local_player_id, host.remote_player_id) == (0, 1)
    assert (client.local_player_id, client.remote_player_id) == (1, 0)


def test_pack_input_fields_and_checksum():
    host, _, _, _ = make_pair(host_time=1234)
    packet = host.pack_input(InputState(throttle=True, brake=False, steering=-0.5))
    assert packet.player_id == 0
    assert packet.throttle == 100
    assert packet.brake == 0
    assert packet.steering == -50
    assert packet.timestamp == 1234
    assert packet.verify() is packet


def test_pack_input_buttons():
    host, _, _, _ = make_pair()
    packet = host.pack_input(InputState(buttons=Button.A | Button.SELECT))
    assert packet.buttons == int(Button.A | Button.SELECT)


def test_input_round_trip_between_peers():
    host, client, _, _ = make_pair()
    packet = host.pack_input(InputState(throttle=True, steering=0.5))
    assert client.unpack_input(packet) == (1.0, 0.0, 0.5)


def test_unpack_input_from_wrong_player_raises():
    host, _, _, _ = make_pair()
    own = host.pack_input(InputState(throttle=True))
    with pytest.raises(ValueError):
        host.unpack_input(own)


def test_unpack_input_bad_checksum_raises():
    host, client, _, _ = make_pair()
    packet = host.pack_input(InputState(throttle=True))
    with pytest.raises(ChecksumError):
        client.unpack_input(replace(packet, brake=100))


def test_predict_without_input_is_neutral():
    _, client, _, _ = make_pair()
    predicted = client.predict_remote_input(7)
    assert predicted == InputPacket(frame_number=7)


def test_predict_uses_received_then_extrapolates():
    host, client, _, _ = make_pair()
    packet = host.pack_input(InputState(brake=True, steering=-0.25))
    client.unpack_input(packet)
    assert client.predict_remote_input(0) == packet
    extrapolated = client.predict_remote_input(5)
    assert extrapolated.frame_number == 5
    assert extrapolated.brake == packet.brake
    assert extrapolated.steering == packet.steering


def test_old_frames_fall_out_of_buffer():
    host, client, _, _ = make_pair()
    client.unpack_input(host.pack_input(InputState(throttle=True)))
    for _ in range(INPUT_BUFFER_SIZE):
        client.advance_frame()
    assert client.predict_remote_input(2) == InputPacket(frame_number=2)


def test_game_state_round_trip():
    host, client, _, _ = make_pair()
    car = CarState(3 * FIXED_ONE, -2 * FIXED_ONE, 100, -100, FIXED_ONE // 2)
    packet = host.pack_game_state(car, 2, 1, 3)
    assert packet.checkpoint_index == 2
    assert packet.race_finished == 0
    assert client.unpack_game_state(packet) == car
    assert client.stats().last_received_frame == packet.frame_number


def test_race_finished_flag():
    host, _, _, _ = make_pair()
    packet = host.pack_game_state(CarState(), 0, 3, 3)
    assert packet.race_finished == 1
    assert packet.lap_count == 3


def test_no_checkpoint_reports_nothing():
    host, _, _, _ = make_pair()
    packet = host.pack_game_state(CarState(), None, 5, 0)
    assert (packet.checkpoint_index, packet.lap_count, packet.race_finished) == (0, 0, 0)


def test_game_state_corruption_raises():
    host, client, _, _ = make_pair()
    packet = host.pack_game_state(CarState(), 0, 0, 3)
    with pytest.raises(ChecksumError):
        client.unpack_game_state(replace(packet, car_heading=1))


def test_latency_average():
    host, client, host_clock, client_clock = make_pair(1000, 1040)
    client.unpack_game_state(host.pack_game_state(CarState(), 0, 0, 3))
    assert client.stats().avg_latency == 40
    client_clock.now = 1060
    client.unpack_game_state(host.pack_game_state(CarState(), 0, 0, 3))
    assert client.stats().avg_latency == 50


def test_advance_and_disconnect_resets():
    host, _, _, _ = make_pair()
    host.handle_connection(True)
    host.advance_frame()
    host.advance_frame()
    stats = host.stats()
    assert stats.current_frame == 2
    assert stats.is_connected is True
    host.handle_connection(False)
    stats = host.stats()
    assert stats.current_frame == 0
    assert stats.is_connected is False
    assert stats.is_host is True


def test_input_packet_carries_current_frame():
    host, _, _, _ = make_pair()
    host.advance_frame()
    assert host.pack_input(InputState()).frame_number == 1


def test_should_rollback_same_state():
    car = CarState(FIXED_ONE, FIXED_ONE, 0, 0, 0)
    assert should_rollback(car, car, 5.0) is False


def test_should_rollback_on_distance():
    predicted = CarState(10 * FIXED_ONE, 0)
    actual = CarState(0, 0)
    assert should_rollback(predicted, actual, 5.0) is True
    assert should_rollback(predicted, actual, 20.0) is False


def test_should_rollback_on_heading():
    predicted = CarState(heading=FIXED_ONE // 2)
    actual = CarState(heading=0)
    assert should_rollback(predicted, actual, 5.0) is True