"""Discovery and accessory identity for radiator valves.

The hub owns one coordinator per accessory identity. Identities survive
restarts through the device registry: at platform setup every registry entry of
the config entry is restored as an unbound coordinator, and discovery later
binds the connected valve to it. Valves with no registry entry get a fresh
identity, a registry entry and a bound coordinator.
"""

from __future__ import annotations

from collections.abc import Callable
import logging
from typing import Optional, Protocol

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import CALLBACK_TYPE, HomeAssistant, callback
from homeassistant.helpers import device_registry as dr
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .ble import ValveError, ValveHandle
from .climate import RadiatorValveClimate
from .const import (
    CONF_PIN,
    CONF_POLL_INTERVAL,
    DEFAULT_PIN,
    DEFAULT_POLL_INTERVAL,
    DOMAIN,
    MANUFACTURER,
)
from .coordinator import AccessoryIdentity, RadiatorValveCoordinator, accessory_uuid
from .scanner import RadiatorValveScanner

_LOGGER = logging.getLogger(__name__)


class ValveScanner(Protocol):
    """Discovery provider the hub drives."""

    def async_subscribe(self, on_valve: Callable[[ValveHandle], None]) -> CALLBACK_TYPE: ...

    def async_start(self) -> None: ...

    def async_release(self, address: str) -> None: ...

    async def async_disconnect_all(self) -> None: ...


class RadiatorValveHub:
    def __init__(
        self,
        hass: HomeAssistant,
        entry: ConfigEntry,
        *,
        scanner_factory: Optional[Callable[[], ValveScanner]] = None,
    ) -> None:
        self.hass = hass
        self.entry = entry

        self.poll_interval = int(
            entry.options.get(
                CONF_POLL_INTERVAL,
                entry.data.get(CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL),
            )
        )
        self.pin = int(entry.options.get(CONF_PIN, entry.data.get(CONF_PIN, DEFAULT_PIN)))

        self.coordinators: dict[str, RadiatorValveCoordinator] = {}

        self._scanner_factory = scanner_factory or self._create_scanner
        self._scanner: ValveScanner | None = None
        self._unsub_discovery: CALLBACK_TYPE | None = None
        self._async_add_entities: AddEntitiesCallback | None = None
        self._stopped = False

    def _create_scanner(self) -> ValveScanner:
        return RadiatorValveScanner(self.hass, pin=self.pin)

    @callback
    def async_restore_accessories(self, async_add_entities: AddEntitiesCallback) -> None:
        self._async_add_entities = async_add_entities
        for identity in self._cached_identities():
            self.async_restore_accessory(identity)

    def _cached_identities(self) -> list[AccessoryIdentity]:
        registry = dr.async_get(self.hass)
        identities: list[AccessoryIdentity] = []
        for device in dr.async_entries_for_config_entry(registry, self.entry.entry_id):
            address = next(
                (
                    value
                    for kind, value in device.connections
                    if kind == dr.CONNECTION_BLUETOOTH
                ),
                None,
            )
            if address is None:
                continue
            identities.append(
                AccessoryIdentity.from_address(address, device.serial_number)
            )
        return identities

    @callback
    def async_restore_accessory(self, identity: AccessoryIdentity) -> RadiatorValveCoordinator:
        if existing := self.coordinators.get(identity.uuid):
            return existing

        _LOGGER.info("Loading accessory from cache: %s", identity.address)
        return self._async_add_accessory(identity)

    @callback
    def _async_add_accessory(
        self, identity: AccessoryIdentity, valve: ValveHandle | None = None
    ) -> RadiatorValveCoordinator:
        coordinator = RadiatorValveCoordinator(
            self.hass,
            self.entry,
            identity,
            poll_interval=self.poll_interval,
            valve=valve,
        )
        self.coordinators[identity.uuid] = coordinator
        if self._async_add_entities is not None:
            self._async_add_entities([RadiatorValveClimate(coordinator)])
        else:
            _LOGGER.warning(
                "Climate platform not ready, %s has no entity yet", identity.address
            )
        return coordinator

    @callback
    def async_start(self) -> None:
        if self._stopped or self._scanner is not None:
            return
        self._scanner = self._scanner_factory()
        self._unsub_discovery = self._scanner.async_subscribe(self._async_on_valve_discovered)
        self._scanner.async_start()

    @callback
    def _async_on_valve_discovered(self, valve: ValveHandle) -> None:
        self.entry.async_create_background_task(
            self.hass,
            self._async_handle_discovered(valve),
            f"{DOMAIN} connect {valve.address}",
        )

    async def _async_handle_discovered(self, valve: ValveHandle) -> None:
        try:
            await valve.connect()
        except ValveError as err:
            _LOGGER.error("Failed to connect to %s: %s", valve.address, err)
            if self._scanner is not None:
                self._scanner.async_release(valve.address)
            return

        if self._stopped:
            await self._async_drop_after_shutdown(valve)
            return

        valve.set_disconnected_callback(self._async_on_valve_disconnected)
        uuid = accessory_uuid(valve.address)

        if coordinator := self.coordinators.get(uuid):
            _LOGGER.info("Restoring accessory: %s", valve.address)
            coordinator.async_bind(valve)
            return

        serial_number = await self._async_read_serial_number(valve)

        if self._stopped:
            await self._async_drop_after_shutdown(valve)
            return

        # Another event may have created it while the serial number was read
        if coordinator := self.coordinators.get(uuid):
            coordinator.async_bind(valve)
            return

        _LOGGER.info("Adding new accessory: %s", valve.address)
        identity = AccessoryIdentity(
            address=valve.address, uuid=uuid, serial_number=serial_number
        )
        self._async_register_identity(identity)
        self._async_add_accessory(identity, valve)

    async def _async_read_serial_number(self, valve: ValveHandle) -> Optional[str]:
        try:
            return await valve.get_serial_number()
        except ValveError as err:
            _LOGGER.warning("Could not read serial number of %s: %s", valve.address, err)
            return None

    @callback
    def _async_register_identity(self, identity: AccessoryIdentity) -> None:
        dr.async_get(self.hass).async_get_or_create(
            config_entry_id=self.entry.entry_id,
            connections={(dr.CONNECTION_BLUETOOTH, identity.address)},
            identifiers={(DOMAIN, identity.uuid)},
            manufacturer=MANUFACTURER,
            model=identity.address,
            name=identity.address,
            serial_number=identity.display_serial_number,
        )

    @callback
    def _async_on_valve_disconnected(self, valve: ValveHandle) -> None:
        if self._scanner is not None:
            self._scanner.async_release(valve.address)

        coordinator = self.coordinators.get(accessory_uuid(valve.address))
        if coordinator is not None and coordinator.valve is valve:
            coordinator.async_unbind()

    async def _async_drop_after_shutdown(self, valve: ValveHandle) -> None:
        _LOGGER.debug("Hub stopped, disconnecting %s", valve.address)
        valve.set_disconnected_callback(None)
        await valve.disconnect()

    async def async_shutdown(self) -> None:
        self._stopped = True
        if self._unsub_discovery is not None:
            self._unsub_discovery()
            self._unsub_discovery = None

        scanner, self._scanner = self._scanner, None
        if scanner is not None:
            await scanner.async_disconnect_all()

        for coordinator in self.coordinators.values():
            await coordinator.async_shutdown()
