from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from homeassistant.core import CALLBACK_TYPE, HomeAssistant, callback

from .ble import RadiatorValve, ValveHandle
from .const import DEFAULT_PIN, SERVICE_UUID

_LOGGER = logging.getLogger(__name__)

if TYPE_CHECKING:
    from homeassistant.components.bluetooth import (
        BluetoothChange,
        BluetoothServiceInfoBleak,
    )


@callback
def _async_register_advertisements(
    hass: HomeAssistant,
    on_advertisement: Callable[[BluetoothServiceInfoBleak, BluetoothChange], None],
) -> CALLBACK_TYPE:
    # Loaded on demand: pulls in Home Assistant's whole Bluetooth stack
    from homeassistant.components import bluetooth

    return bluetooth.async_register_callback(
        hass,
        on_advertisement,
        bluetooth.BluetoothCallbackMatcher(service_uuid=SERVICE_UUID, connectable=True),
        bluetooth.BluetoothScanningMode.ACTIVE,
    )


class RadiatorValveScanner:
    """Turns Bluetooth advertisements into radiator valve handles.

    An address is claimed when its handle is emitted and stays claimed until
    released, so the steady stream of advertisements does not produce a new
    handle for a valve that is already being connected or is connected.
    """

    def __init__(self, hass: HomeAssistant, *, pin: int = DEFAULT_PIN) -> None:
        self._hass = hass
        self._pin = pin

        self._valves: dict[str, RadiatorValve] = {}
        self._subscribers: list[Callable[[ValveHandle], None]] = []
        self._cancel_scan: CALLBACK_TYPE | None = None

    @property
    def is_scanning(self) -> bool:
        return self._cancel_scan is not None

    @callback
    def async_subscribe(self, on_valve: Callable[[ValveHandle], None]) -> CALLBACK_TYPE:
        self._subscribers.append(on_valve)

        @callback
        def unsubscribe() -> None:
            if on_valve in self._subscribers:
                self._subscribers.remove(on_valve)

        return unsubscribe

    @callback
    def async_start(self) -> None:
        if self._cancel_scan is not None:
            return
        self._cancel_scan = _async_register_advertisements(self._hass, self._async_discovered)
        _LOGGER.debug("Scanning for radiator valves")

    @callback
    def _async_discovered(
        self,
        service_info: BluetoothServiceInfoBleak,
        change: BluetoothChange,
    ) -> None:
        address = service_info.address
        if address in self._valves:
            return

        valve = RadiatorValve(service_info.device, pin=self._pin)
        self._valves[address] = valve
        _LOGGER.debug("Discovered radiator valve %s (rssi=%s)", address, service_info.rssi)

        for on_valve in list(self._subscribers):
            on_valve(valve)

    @callback
    def async_release(self, address: str) -> None:
        """Forget a handle so the next advertisement from it is emitted again."""
        self._valves.pop(address, None)

    async def async_disconnect_all(self) -> None:
        if self._cancel_scan is not None:
            self._cancel_scan()
            self._cancel_scan = None

        valves, self._valves = list(self._valves.values()), {}
        for valve in valves:
            valve.set_disconnected_callback(None)
            await valve.disconnect()
            _LOGGER.debug("%s disconnected on shutdown", valve.address)
