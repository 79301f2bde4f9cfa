import pytest

from navmap.sensors.beacon_ranging import AdvertisementPayload, SlotType
from navmap.sensors.beacon_scanner import (
    BeaconScanner,
    BluetoothState,
    MatchMethod,
    ScanSample,
    match_beacon_name,
    parse_beacon_whitelist,
    target_keyword,
)


TARGETS = ["14-jazzyWombat", "15-frostyIbis"]


class FakeCentral:
    def __init__(self, state=BluetoothState.POWERED_ON):
        self.state = state
        self.scans_started = 0
        self.scans_stopped = 0

    def start_scan(self):
        self.scans_started += 1

    def stop_scan(self):
        self.scans_stopped += 1


@pytest.fixture
def central():
    return FakeCentral()


@pytest.fixture
def scanner(central):
    return BeaconScanner(central, TARGETS)


def test_parse_beacon_whitelist():
    text = "# beacons on floor 2\n14-jazzyWombat\n\n  15-frostyIbis  \n14-jazzyWombat\n"
    assert parse_beacon_whitelist(text) == TARGETS


def test_target_keyword():
    assert target_keyword("14-jazzyWombat") == "jazzyWombat"
    assert target_keyword("plainName") == "plainName"


@pytest.mark.parametrize("name, expected", [
    ("14-jazzyWombat", ("14-jazzyWombat", MatchMethod.EXACT)),
    ("BC-14-jazzyWombat-01", ("14-jazzyWombat", MatchMethod.PARTIAL)),
    ("frostyIbis", ("15-frostyIbis", MatchMethod.KEYWORD)),
    ("someHeadphones", None),
    (None, None),
    ("", None),
])
def test_match_beacon_name(name, expected):
    assert match_beacon_name(name, TARGETS) == expected


def test_start_requires_powered_on_radio():
    central = FakeCentral(BluetoothState.POWERED_OFF)
    scanner = BeaconScanner(central, TARGETS)
    assert scanner.start() is False
    assert not scanner.is_scanning
    assert central.scans_started == 0


def test_advertisement_updates_range(scanner):
    updates = []
    scanner.add_range_callback(lambda beacon_id, r: updates.append((beacon_id, r)))
    scanner.start()

    result = scanner.handle_advertisement(ScanSample("jazzyWombat", -80))

    assert result.distance_meters == pytest.approx(1.25)
    assert scanner.ranges["14-jazzyWombat"] == result
    assert scanner.ranges["15-frostyIbis"] is None
    assert updates == [("14-jazzyWombat", result)]
    assert "jazzyWombat" in scanner.discovered_devices


def test_non_target_advertisement_is_ignored(scanner):
    scanner.start()
    assert scanner.handle_advertisement(ScanSample("someHeadphones", -50)) is None
    assert scanner.estimator.beacon_ids == []
    assert scanner.discovered_devices == {"someHeadphones"}


def test_slot_is_detected_from_payload(scanner):
    scanner.start()
    payload = AdvertisementPayload(service_data={"FEAA": bytes(20)})
    result = scanner.handle_advertisement(ScanSample("15-frostyIbis", -68, payload))
    assert result.slot_type is SlotType.SLOT1
    assert result.distance_meters == pytest.approx(1.25)


def test_start_resets_ranging_state(scanner):
    scanner.start()
    scanner.handle_advertisement(ScanSample("14-jazzyWombat", -70))
    scanner.stop()
    scanner.start()

    assert scanner.ranges == {t: None for t in TARGETS}
    assert scanner.estimator.beacon_ids == []
    assert scanner.discovered_devices == set()


def test_disconnect_clears_range(scanner):
    updates = []
    scanner.add_range_callback(lambda beacon_id, r: updates.append((beacon_id, r)))
    scanner.start()
    scanner.handle_advertisement(ScanSample("14-jazzyWombat", -70))

    scanner.handle_disconnect("14-jazzyWombat")

    assert scanner.ranges["14-jazzyWombat"] is None
    assert scanner.estimator.state("14-jazzyWombat") is None
    assert updates[-1] == ("14-jazzyWombat", None)


def test_state_changes_follow_radio(scanner, central):
    availability = []
    scanner.add_availability_callback(availability.append)

    central.state = BluetoothState.POWERED_ON
    scanner.handle_state_change(BluetoothState.POWERED_ON)
    assert scanner.is_scanning

    central.state = BluetoothState.POWERED_OFF
    scanner.handle_state_change(BluetoothState.POWERED_OFF)
    assert not scanner.is_scanning
    assert central.scans_stopped == 1

    central.state = BluetoothState.UNAUTHORIZED
    scanner.handle_state_change(BluetoothState.UNAUTHORIZED)
    assert not scanner.available
    assert availability == [True, False, False]


def test_range_callback_errors_are_logged(scanner, caplog):
    def broken(_beacon_id, _range):
        raise RuntimeError("listener failed")

    scanner.add_range_callback(broken)
    scanner.start()
    assert scanner.handle_advertisement(ScanSample("14-jazzyWombat", -70)) is not None
    assert "Error in range callback" in caplog.text
