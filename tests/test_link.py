import pytest

from mode7racer.link import (
    CONFIG_CHAR_UUID,
    GAME_STATE_CHAR_UUID,
    INPUT_CHAR_UUID,
    BleLink,
    BleState,
    GattServer,
    LinkError,
    LinkEvent,
    NotConnectedError,
)
from mode7racer.packets import (
    ChecksumError,
    ConfigPacket,
    GameStatePacket,
    InputPacket,
)


class FakeRadio:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []
        self.notified = []

    def _record(self, *call):
        if self.fail:
            raise LinkError("radio failure")
        self.calls.append(call)

    def start_advertising(self, name, service_uuid, manufacturer_data):
        self._record("adv", name, service_uuid, manufacturer_data)

    def stop_advertising(self):
        self._record("stop_adv")

    def start_scanning(self):
        self._record("scan")

    def stop_scanning(self):
        self._record("stop_scan")

    def notify(self, conn_handle, characteristic, data):
        self._record("notify")
        self.notified.append((conn_handle, characteristic, data))

    def update_connection_parameters(self, conn_handle, interval, latency, timeout):
        self._record("update", conn_handle, interval, latency, timeout)

    def terminate(self, conn_handle):
        self._record("terminate", conn_handle)


def _connected_link(events=None):
    link = BleLink(FakeRadio())
    if events is not None:
        link.register_callback(lambda event, data: events.append((event, data)))
    link.on_connect(0, 7, 24, 2)
    return link


def test_start_advertising_announces_service():
    radio = FakeRadio()
    link = BleLink(radio)
    link.start_advertising()
    assert link.state is BleState.ADVERTISING
    assert radio.calls == [("adv", "Mode7Racer", 0x1815, "ESP32C6")]


def test_stop_advertising_returns_to_idle():
    link = BleLink(FakeRadio())
    link.start_advertising()
    link.stop_advertising()
    assert link.state is BleState.IDLE


def test_radio_failure_raises_and_keeps_state():
    link = BleLink(FakeRadio(fail=True))
    with pytest.raises(LinkError):
        link.start_advertising()
    assert link.state is BleState.IDLE


def test_scanning_calls_radio():
    radio = FakeRadio()
    link = BleLink(radio)
    link.start_scanning()
    link.stop_scanning()
    assert radio.calls == [("scan",), ("stop_scan",)]


def test_send_without_connection_raises():
    link = BleLink(FakeRadio())
    with pytest.raises(NotConnectedError):
        link.send_game_state(GameStatePacket())
    with pytest.raises(NotConnectedError):
        link.send_input(InputPacket())
    with pytest.raises(NotConnectedError):
        link.send_config(ConfigPacket())


def test_connect_reports_event_and_state():
    events = []
    link = _connected_link(events)
    assert link.is_connected
    assert link.connection_handle == 7
    assert events == [(LinkEvent.CONNECTED, b"")]


def test_failed_connect_goes_idle_without_event():
    events = []
    link = BleLink(FakeRadio())
    link.register_callback(lambda event, data: events.append(event))
    link.on_connect(5, 7)
    assert link.state is BleState.IDLE
    assert not link.is_connected
    assert events == []


def test_send_game_state_notifies_packet_bytes():
    link = _connected_link()
    packet = GameStatePacket(player_id=1, frame_number=42).with_checksum()
    link.send_game_state(packet)
    assert link.radio.notified == [(7, GAME_STATE_CHAR_UUID, packet.to_bytes())]


def test_send_input_and_config_use_their_characteristics():
    link = _connected_link()
    link.send_input(InputPacket(throttle=100))
    link.send_config(ConfigPacket.default())
    assert [c for _, c, _ in link.radio.notified] == [INPUT_CHAR_UUID, CONFIG_CHAR_UUID]


def test_disconnect_clears_handle_and_reports():
    events = []
    link = _connected_link(events)
    link.on_disconnect(19)
    assert link.state is BleState.DISCONNECTED
    assert link.connection_handle is None
    assert events[-1] == (LinkEvent.DISCONNECTED, b"")
    with pytest.raises(NotConnectedError):
        link.send_input(InputPacket())


def test_calculate_latency():
    link = BleLink(FakeRadio())
    assert link.calculate_latency() == 0
    link.on_connect(0, 1, 24, 2)
    assert link.calculate_latency() == 72


def test_advertising_complete_only_leaves_advertising():
    link = BleLink(FakeRadio())
    link.start_advertising()
    link.on_advertising_complete()
    assert link.state is BleState.IDLE
    connected = _connected_link()
    connected.on_advertising_complete()
    assert connected.state is BleState.CONNECTED


def test_characteristic_write_passes_correct_size_only():
    events = []
    link = BleLink(FakeRadio())
    link.register_callback(lambda event, data: events.append((event, data)))
    data = InputPacket(steering=-50).with_checksum().to_bytes()
    link.on_characteristic_write(INPUT_CHAR_UUID, data)
    link.on_characteristic_write(INPUT_CHAR_UUID, data[:-1])
    link.on_characteristic_write(0x1234, data)
    assert events == [(LinkEvent.INPUT, data)]


def test_update_parameters_only_when_connected():
    radio = FakeRadio()
    link = BleLink(radio)
    link.update_connection_parameters(6, 0, 100)
    assert radio.calls == []
    link.on_connect(0, 3)
    link.update_connection_parameters(6, 0, 100)
    assert radio.calls == [("update", 3, 6, 0, 100)]


def test_close_stops_advertising():
    radio = FakeRadio()
    with BleLink(radio) as link:
        link.start_advertising()
    assert radio.calls[-1] == ("stop_adv",)
    assert link.state is BleState.IDLE


def test_close_terminates_connection():
    link = _connected_link()
    link.close()
    assert link.radio.calls[-1] == ("terminate", 7)
    assert link.state is BleState.IDLE


def test_gatt_default_config_read():
    server = GattServer(FakeRadio())
    packet = ConfigPacket.from_bytes(server.read(CONFIG_CHAR_UUID)).verify()
    assert packet.lap_count == 3
    assert packet.latency_target == 80
    assert packet.update_rate == 30


def test_gatt_write_round_trip():
    server = GattServer(FakeRadio())
    packet = InputPacket(player_id=1, throttle=100, frame_number=9).with_checksum()
    stored = server.write(INPUT_CHAR_UUID, packet.to_bytes())
    assert stored == packet
    assert server.read(INPUT_CHAR_UUID) == packet.to_bytes()


def test_gatt_write_bad_length():
    server = GattServer(FakeRadio())
    with pytest.raises(LinkError):
        server.write(GAME_STATE_CHAR_UUID, b"\x00" * 3)


def test_gatt_write_bad_checksum_stores_then_raises():
    server = GattServer(FakeRadio())
    packet = ConfigPacket(track_id=2, lap_count=5, checksum=1)
    with pytest.raises(ChecksumError):
        server.write(CONFIG_CHAR_UUID, packet.to_bytes())
    assert server.values[CONFIG_CHAR_UUID].track_id == 2


def test_gatt_unknown_characteristic():
    server = GattServer(FakeRadio())
    with pytest.raises(LinkError):
        server.read(0x1234)
    with pytest.raises(LinkError):
        server.set_notifications(0x1234, 1)


def test_gatt_notify_requires_enabled_notifications():
    radio = FakeRadio()
    server = GattServer(radio, conn_handle=4)
    with pytest.raises(LinkError):
        server.notify(GAME_STATE_CHAR_UUID, GameStatePacket(lap_count=1))
    assert radio.notified == []
    server.set_notifications(GAME_STATE_CHAR_UUID, 1)
    stored = server.notify(GAME_STATE_CHAR_UUID, GameStatePacket(lap_count=1))
    handle, uuid, data = radio.notified[0]
    assert (handle, uuid) == (4, GAME_STATE_CHAR_UUID)
    assert GameStatePacket.from_bytes(data).verify() == stored


def test_gatt_notify_wrong_packet_type():
    server = GattServer(FakeRadio())
    server.set_notifications(INPUT_CHAR_UUID, 1)
    with pytest.raises(TypeError):
        server.notify(INPUT_CHAR_UUID, ConfigPacket())


def test_gatt_set_notifications_out_of_range():
    server = GattServer(FakeRadio())
    with pytest.raises(LinkError):
        server.set_notifications(CONFIG_CHAR_UUID, 0x10000)
    assert server.ccc[CONFIG_CHAR_UUID] == 0