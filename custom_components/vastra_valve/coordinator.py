from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from datetime import timedelta
from enum import StrEnum
import logging
from typing import Optional
import uuid

from homeassistant.components.climate import HVACAction, HVACMode
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import UnitOfTemperature
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator

from .ble import ValveError, ValveHandle
from .const import DEFAULT_POLL_INTERVAL, DOMAIN, MIN_TEMPERATURE, UNKNOWN_SERIAL_NUMBER
from .logger import PrefixLoggerAdapter

_LOGGER = logging.getLogger(__name__)

_ACCESSORY_NAMESPACE = uuid.UUID("5b0c6e64-4f43-4a7e-9a57-2d1b1a6f3c21")


def accessory_uuid(address: str) -> str:
    """Stable accessory id for a Bluetooth address, same result on every run."""
    return str(uuid.uuid5(_ACCESSORY_NAMESPACE, address.strip().upper()))


@dataclass(frozen=True)
class AccessoryIdentity:
    address: str
    uuid: str
    serial_number: Optional[str] = None

    @classmethod
    def from_address(
        cls, address: str, serial_number: Optional[str] = None
    ) -> AccessoryIdentity:
        return cls(address=address, uuid=accessory_uuid(address), serial_number=serial_number)

    @property
    def display_serial_number(self) -> str:
        return self.serial_number or UNKNOWN_SERIAL_NUMBER


@dataclass(frozen=True)
class ValveTemperatures:
    current: float = 0.0
    target: float = 0.0


class StatusKind(StrEnum):
    """Status errors the thermostat handlers can report."""

    SERVICE_UNAVAILABLE = "service_unavailable"
    RESOURCE_BUSY = "resource_busy"


class AccessoryStatusError(Exception):
    def __init__(self, kind: StatusKind, message: str = "") -> None:
        super().__init__(message or kind.value)
        self.kind = kind


class RadiatorValveCoordinator(DataUpdateCoordinator[ValveTemperatures]):
    """Keeps one accessory's thermostat state in sync with its valve.

    Created unbound for accessories restored from the device registry and bound
    once discovery connects the valve. Polling only runs while bound: binding
    sets ``update_interval`` and unbinding clears it. Target temperature writes
    are guarded by a lock used with try-acquire semantics: a write while another
    one is in flight is rejected with ``RESOURCE_BUSY``, never queued.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        entry: ConfigEntry | None,
        identity: AccessoryIdentity,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        valve: ValveHandle | None = None,
    ) -> None:
        self.identity = identity
        self.poll_interval = timedelta(seconds=poll_interval)
        self.log = PrefixLoggerAdapter(_LOGGER, identity.address)

        self.valve: ValveHandle | None = None
        self.hvac_action = HVACAction.OFF

        self._write_lock = asyncio.Lock()
        # Bumped on every write so a target read that raced a write is dropped
        self._write_generation = 0

        super().__init__(
            hass,
            logger=_LOGGER,
            config_entry=entry,
            name=f"{DOMAIN}_{identity.address}",
            update_interval=None,
        )
        self.data = ValveTemperatures()

        if valve is not None:
            self.async_bind(valve)

    @property
    def address(self) -> str:
        return self.identity.address

    @property
    def is_bound(self) -> bool:
        return self.valve is not None

    @property
    def is_polling(self) -> bool:
        return self.update_interval is not None

    @property
    def is_updating_target(self) -> bool:
        return self._write_lock.locked()

    @property
    def current_temperature(self) -> float:
        return max(self.data.current, MIN_TEMPERATURE)

    @property
    def target_temperature(self) -> float:
        return max(self.data.target, MIN_TEMPERATURE)

    @property
    def hvac_mode(self) -> HVACMode:
        return HVACMode.AUTO if self.valve is not None else HVACMode.OFF

    @property
    def temperature_unit(self) -> str:
        return UnitOfTemperature.CELSIUS

    @callback
    def async_bind(self, valve: ValveHandle) -> None:
        """Attach a connected valve and (re)start polling against it."""
        self.valve = valve
        # Assume a connected valve is regulating
        self.hvac_action = HVACAction.HEATING
        self.update_interval = self.poll_interval
        self.log.debug("Bound to valve")
        self.async_update_listeners()

        self.hass.async_create_background_task(
            self.async_refresh(), name=f"{DOMAIN} poll {self.address}"
        )

    @callback
    def async_unbind(self) -> None:
        """Drop the valve after its connection went away."""
        if self.valve is None:
            return
        self.update_interval = None
        self._async_unsub_refresh()
        self.valve = None
        self.hvac_action = HVACAction.OFF
        self.log.info("Valve disconnected")
        self.async_update_listeners()

    async def async_shutdown(self) -> None:
        self.update_interval = None
        await super().async_shutdown()

    async def _async_update_data(self) -> ValveTemperatures:
        """Poll current temperature first, then the target."""
        valve = self.valve
        if valve is None:
            return self.data

        current: float | None = None
        try:
            current = await valve.get_current_temperature()
        except ValveError as err:
            self.log.error("Failed to poll current temperature: %s", err)

        target = await self._async_poll_target(valve)

        # A write may have landed while reading, build on the latest state
        data = self.data
        if valve is not self.valve:
            return data
        if current is not None:
            data = replace(data, current=current)
        if target is not None:
            data = replace(data, target=target)
        return data

    async def _async_poll_target(self, valve: ValveHandle) -> float | None:
        if self._write_lock.locked():
            self.log.debug("Target temperature write in flight, skipping target poll")
            return None

        generation = self._write_generation
        try:
            target = await valve.get_target_temperature()
        except ValveError as err:
            self.log.error("Failed to poll target temperature: %s", err)
            return None

        if generation != self._write_generation:
            self.log.debug("Discarding target temperature read that raced a write")
            return None
        return target

    async def async_set_target_temperature(self, value: float) -> None:
        valve = self.valve
        if valve is None:
            raise AccessoryStatusError(
                StatusKind.SERVICE_UNAVAILABLE, f"{self.address} is not connected"
            )
        if self._write_lock.locked():
            raise AccessoryStatusError(
                StatusKind.RESOURCE_BUSY,
                f"{self.address} is already updating its target temperature",
            )

        # The valve works in half degrees
        target = round(value * 2) / 2
        async with self._write_lock:
            self._write_generation += 1
            try:
                await valve.set_target_temperature(target)
            except ValveError as err:
                self.log.error("Failed to set target temperature: %s", err)
                raise AccessoryStatusError(
                    StatusKind.SERVICE_UNAVAILABLE, str(err)
                ) from err
            except Exception as err:
                self.log.exception("Unexpected error while setting target temperature")
                raise AccessoryStatusError(
                    StatusKind.SERVICE_UNAVAILABLE, str(err)
                ) from err

        self.log.debug("Target temperature set to %s", target)
        self.async_set_updated_data(replace(self.data, target=target))

    async def async_set_hvac_mode(self, hvac_mode: HVACMode) -> None:
        # The valve runs a single fixed mode
        raise AccessoryStatusError(
            StatusKind.SERVICE_UNAVAILABLE, f"HVAC mode {hvac_mode} cannot be set"
        )

    async def async_set_temperature_unit(self, unit: str) -> None:
        raise AccessoryStatusError(
            StatusKind.SERVICE_UNAVAILABLE, f"Temperature unit {unit} cannot be set"
        )
