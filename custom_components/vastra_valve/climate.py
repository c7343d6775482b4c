from __future__ import annotations

from typing import TYPE_CHECKING, Any

from homeassistant.components.climate import (
    ClimateEntity,
    ClimateEntityFeature,
    HVACAction,
    HVACMode,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import ATTR_TEMPERATURE
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers import config_validation as cv, device_registry as dr, entity_platform
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.helpers.update_coordinator import CoordinatorEntity
import voluptuous as vol

from .const import (
    ATTR_UNIT,
    DOMAIN,
    MANUFACTURER,
    MAX_TEMPERATURE,
    MIN_TEMPERATURE,
    SERVICE_SET_TEMPERATURE_UNIT,
    TEMPERATURE_STEP,
)
from .coordinator import AccessoryStatusError, RadiatorValveCoordinator

if TYPE_CHECKING:
    from .hub import RadiatorValveHub


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry, async_add_entities: AddEntitiesCallback) -> None:
    hub: RadiatorValveHub = hass.data[DOMAIN][entry.entry_id]
    hub.async_restore_accessories(async_add_entities)

    platform = entity_platform.async_get_current_platform()
    platform.async_register_entity_service(
        SERVICE_SET_TEMPERATURE_UNIT,
        {vol.Required(ATTR_UNIT): cv.string},
        "async_set_temperature_unit",
    )


def _status_error(err: AccessoryStatusError) -> HomeAssistantError:
    return HomeAssistantError(
        str(err),
        translation_domain=DOMAIN,
        translation_key=err.kind.value,
    )


class RadiatorValveClimate(CoordinatorEntity[RadiatorValveCoordinator], ClimateEntity):
    _attr_has_entity_name = True
    _attr_name = None
    _attr_icon = "mdi:radiator"
    _attr_supported_features = ClimateEntityFeature.TARGET_TEMPERATURE
    _attr_hvac_modes = [HVACMode.AUTO, HVACMode.OFF]
    _attr_min_temp = MIN_TEMPERATURE
    _attr_max_temp = MAX_TEMPERATURE
    _attr_target_temperature_step = TEMPERATURE_STEP

    def __init__(self, coordinator: RadiatorValveCoordinator) -> None:
        super().__init__(coordinator)
        identity = coordinator.identity
        self._attr_unique_id = identity.uuid
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, identity.uuid)},
            connections={(dr.CONNECTION_BLUETOOTH, identity.address)},
            name=identity.address,
            manufacturer=MANUFACTURER,
            model=identity.address,
            serial_number=identity.display_serial_number,
        )

    @property
    def current_temperature(self) -> float:
        return self.coordinator.current_temperature

    @property
    def target_temperature(self) -> float:
        return self.coordinator.target_temperature

    @property
    def temperature_unit(self) -> str:
        return self.coordinator.temperature_unit

    @property
    def hvac_mode(self) -> HVACMode:
        return self.coordinator.hvac_mode

    @property
    def hvac_action(self) -> HVACAction:
        return self.coordinator.hvac_action

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        return {
            "address": self.coordinator.address,
            "connected": self.coordinator.is_bound,
        }

    async def async_set_temperature(self, **kwargs: Any) -> None:
        temperature = kwargs.get(ATTR_TEMPERATURE)
        if temperature is None:
            return
        try:
            await self.coordinator.async_set_target_temperature(float(temperature))
        except AccessoryStatusError as err:
            raise _status_error(err) from err

    async def async_set_hvac_mode(self, hvac_mode: HVACMode) -> None:
        try:
            await self.coordinator.async_set_hvac_mode(hvac_mode)
        except AccessoryStatusError as err:
            raise _status_error(err) from err

    async def async_set_temperature_unit(self, unit: str) -> None:
        try:
            await self.coordinator.async_set_temperature_unit(unit)
        except AccessoryStatusError as err:
            raise _status_error(err) from err
