from __future__ import annotations

from typing import TYPE_CHECKING, Any

import voluptuous as vol

from homeassistant import config_entries
from homeassistant.config_entries import ConfigEntry, ConfigFlowResult, OptionsFlow
from homeassistant.core import callback

from .const import (
    CONF_PIN,
    CONF_POLL_INTERVAL,
    DEFAULT_PIN,
    DEFAULT_POLL_INTERVAL,
    DOMAIN,
    MAX_POLL_INTERVAL,
    MIN_POLL_INTERVAL,
)

if TYPE_CHECKING:
    from homeassistant.helpers.service_info.bluetooth import BluetoothServiceInfoBleak

TITLE = "Vestra radiator valves"


def _settings_schema(poll_interval: int, pin: int) -> vol.Schema:
    return vol.Schema(
        {
            vol.Optional(CONF_POLL_INTERVAL, default=poll_interval): vol.All(
                vol.Coerce(int), vol.Range(min=MIN_POLL_INTERVAL, max=MAX_POLL_INTERVAL)
            ),
            vol.Optional(CONF_PIN, default=pin): vol.All(
                vol.Coerce(int), vol.Range(min=0, max=0xFFFFFFFF)
            ),
        }
    )


class VastraValveConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """One entry covers every valve in Bluetooth range."""

    VERSION = 1

    def __init__(self) -> None:
        self._discovered_address: str | None = None

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: ConfigEntry) -> OptionsFlow:
        return VastraValveOptionsFlow()

    async def async_step_bluetooth(
        self, discovery_info: BluetoothServiceInfoBleak
    ) -> ConfigFlowResult:
        await self.async_set_unique_id(DOMAIN)
        self._abort_if_unique_id_configured()

        self._discovered_address = discovery_info.address
        self.context["title_placeholders"] = {"address": discovery_info.address}
        return await self.async_step_bluetooth_confirm()

    async def async_step_bluetooth_confirm(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        if user_input is not None:
            return self._async_create_hub_entry(
                {CONF_POLL_INTERVAL: DEFAULT_POLL_INTERVAL, CONF_PIN: DEFAULT_PIN}
            )

        self._set_confirm_only()
        return self.async_show_form(
            step_id="bluetooth_confirm",
            description_placeholders={"address": self._discovered_address or ""},
        )

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        await self.async_set_unique_id(DOMAIN)
        self._abort_if_unique_id_configured()

        if user_input is not None:
            return self._async_create_hub_entry(user_input)

        return self.async_show_form(
            step_id="user",
            data_schema=_settings_schema(DEFAULT_POLL_INTERVAL, DEFAULT_PIN),
        )

    @callback
    def _async_create_hub_entry(self, data: dict[str, Any]) -> ConfigFlowResult:
        return self.async_create_entry(
            title=TITLE,
            data={
                CONF_POLL_INTERVAL: int(data.get(CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL)),
                CONF_PIN: int(data.get(CONF_PIN, DEFAULT_PIN)),
            },
        )


class VastraValveOptionsFlow(OptionsFlow):
    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        if user_input is not None:
            return self.async_create_entry(title="", data=user_input)

        entry = self.config_entry
        poll = int(
            entry.options.get(
                CONF_POLL_INTERVAL,
                entry.data.get(CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL),
            )
        )
        pin = int(entry.options.get(CONF_PIN, entry.data.get(CONF_PIN, DEFAULT_PIN)))
        return self.async_show_form(step_id="init", data_schema=_settings_schema(poll, pin))
