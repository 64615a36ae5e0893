"""Unit tests for ScannerStateMachine."""

import pytest

from barcode_relay.core.devices.device_state_machine import IllegalTransition, ScannerStateMachine
from barcode_relay.core.devices.types import ConnectionState
from tests.infrastructure.mocks.hid_mocks import make_descriptor


@pytest.fixture
def fsm():
    return ScannerStateMachine()


class TestTransitions:

    def test_initial_state(self, fsm):
        assert fsm.state is ConnectionState.DISCONNECTED
        assert fsm.descriptor is None
        assert fsm.known_identity is None

    def test_first_sighting_connects(self, fsm):
        descriptor = make_descriptor()
        event = fsm.connect(descriptor)
        assert event.state is ConnectionState.CONNECTED
        assert event.name == "connected"
        assert event.descriptor == descriptor
        assert fsm.known_identity == descriptor.identity

    def test_same_unit_reconnects(self, fsm):
        fsm.connect(make_descriptor(path="/dev/hidraw0"))
        fsm.disconnect("unplugged")
        # Same serial on a new path is the same unit
        event = fsm.connect(make_descriptor(path="/dev/hidraw4"))
        assert event.state is ConnectionState.RECONNECTED

    def test_different_unit_connects(self, fsm):
        fsm.connect(make_descriptor(serial_number="A"))
        fsm.disconnect()
        event = fsm.connect(make_descriptor(serial_number="B"))
        assert event.state is ConnectionState.CONNECTED
        assert fsm.known_identity == "serial:B"

    def test_disconnect_keeps_identity(self, fsm):
        fsm.connect(make_descriptor())
        event = fsm.disconnect("read error")
        assert event.state is ConnectionState.DISCONNECTED
        assert event.reason == "read error"
        assert event.descriptor is not None
        assert fsm.descriptor is None
        assert fsm.known_identity == "serial:S/N 0001"

    def test_disconnect_when_disconnected_is_noop(self, fsm):
        assert fsm.disconnect() is None


class TestIllegalTransitions:

    def test_connected_to_connected(self, fsm):
        fsm.connect(make_descriptor())
        with pytest.raises(IllegalTransition):
            fsm.transition(ConnectionState.CONNECTED, make_descriptor())

    def test_reconnected_requires_cached_identity(self, fsm):
        with pytest.raises(IllegalTransition):
            fsm.transition(ConnectionState.RECONNECTED, make_descriptor())

    def test_connect_requires_descriptor(self, fsm):
        with pytest.raises(IllegalTransition):
            fsm.transition(ConnectionState.CONNECTED)

    def test_disconnected_to_disconnected(self, fsm):
        with pytest.raises(IllegalTransition):
            fsm.transition(ConnectionState.DISCONNECTED)
