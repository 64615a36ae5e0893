"""
Scanner State Machine - connection presence of the single logical scanner.

States:
- DISCONNECTED: no open handle (initial state)
- CONNECTED: handle open on a unit not seen before in this process
- RECONNECTED: handle open on the unit that was last connected

State transitions:
- DISCONNECTED -> CONNECTED: device found, no cached identity or a different unit
- DISCONNECTED -> RECONNECTED: device found, identity equals the cached one
- CONNECTED/RECONNECTED -> DISCONNECTED: device gone or handle failed

The cached identity survives disconnection so that the same physical unit
is recognized when it comes back. ``transition()`` is the only mutation.
"""

from __future__ import annotations

from typing import Optional

from barcode_relay.core.logging_utils import get_module_logger

from .types import ConnectionEvent, ConnectionState, DeviceDescriptor

_LEGAL_TRANSITIONS = {
    ConnectionState.DISCONNECTED: {ConnectionState.CONNECTED, ConnectionState.RECONNECTED},
    ConnectionState.CONNECTED: {ConnectionState.DISCONNECTED},
    ConnectionState.RECONNECTED: {ConnectionState.DISCONNECTED},
}


class IllegalTransition(RuntimeError):
    """Raised when a transition is requested that the machine does not allow."""


class ScannerStateMachine:
    """Single source of truth for scanner presence."""

    def __init__(self):
        self.logger = get_module_logger("ScannerStateMachine")
        self._state = ConnectionState.DISCONNECTED
        self._descriptor: Optional[DeviceDescriptor] = None
        self._known_identity: Optional[str] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def descriptor(self) -> Optional[DeviceDescriptor]:
        """Descriptor of the connected device, None while disconnected."""
        return self._descriptor

    @property
    def known_identity(self) -> Optional[str]:
        return self._known_identity

    @property
    def is_connected(self) -> bool:
        return self._state.is_connected

    def connect_state_for(self, descriptor: DeviceDescriptor) -> ConnectionState:
        """Which connected state a sighting of ``descriptor`` would lead to."""
        if self._known_identity is not None and descriptor.identity == self._known_identity:
            return ConnectionState.RECONNECTED
        return ConnectionState.CONNECTED

    def is_current(self, descriptor: DeviceDescriptor) -> bool:
        """True if ``descriptor`` is the unit currently connected."""
        return self._descriptor is not None and self._descriptor.identity == descriptor.identity

    def transition(
        self,
        target: ConnectionState,
        descriptor: Optional[DeviceDescriptor] = None,
        reason: str = "",
    ) -> ConnectionEvent:
        """Move to ``target`` and return the event describing the move."""
        if target not in _LEGAL_TRANSITIONS[self._state]:
            raise IllegalTransition(f"{self._state.value} -> {target.value}")

        if target.is_connected:
            if descriptor is None:
                raise IllegalTransition(f"{target.value} requires a device descriptor")
            if target is ConnectionState.RECONNECTED and descriptor.identity != self._known_identity:
                raise IllegalTransition("reconnected requires the cached device identity")
            self._known_identity = descriptor.identity
            self._descriptor = descriptor
            event_descriptor = descriptor
        else:
            event_descriptor = self._descriptor
            self._descriptor = None

        old_state = self._state
        self._state = target
        self.logger.info(
            "Scanner %s: %s -> %s%s",
            event_descriptor.display_name if event_descriptor else "?",
            old_state.value,
            target.value,
            f" ({reason})" if reason else "",
        )
        return ConnectionEvent(state=target, descriptor=event_descriptor, reason=reason)

    def connect(self, descriptor: DeviceDescriptor, reason: str = "") -> ConnectionEvent:
        """Convenience: transition to CONNECTED or RECONNECTED as appropriate."""
        return self.transition(self.connect_state_for(descriptor), descriptor, reason)

    def disconnect(self, reason: str = "") -> Optional[ConnectionEvent]:
        """Transition to DISCONNECTED; returns None if already disconnected."""
        if not self.is_connected:
            return None
        return self.transition(ConnectionState.DISCONNECTED, reason=reason)


__all__ = ["IllegalTransition", "ScannerStateMachine"]
