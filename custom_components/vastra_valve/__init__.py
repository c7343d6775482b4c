from __future__ import annotations

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import EVENT_HOMEASSISTANT_STARTED, EVENT_HOMEASSISTANT_STOP
from homeassistant.core import CoreState, Event, HomeAssistant, callback

from .const import DOMAIN
from .hub import RadiatorValveHub

PLATFORMS: list[str] = ["climate"]


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    hub = RadiatorValveHub(hass, entry)

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = hub

    # Climate platform first: it restores cached accessories as unbound entities
    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)

    # Discovery only once Home Assistant is up, so restored entities exist first
    if hass.state is CoreState.running:
        hub.async_start()
    else:

        @callback
        def _async_on_started(_event: Event) -> None:
            hub.async_start()

        entry.async_on_unload(
            hass.bus.async_listen_once(EVENT_HOMEASSISTANT_STARTED, _async_on_started)
        )

    async def _async_on_stop(_event: Event) -> None:
        await hub.async_shutdown()

    entry.async_on_unload(
        hass.bus.async_listen_once(EVENT_HOMEASSISTANT_STOP, _async_on_stop)
    )
    entry.async_on_unload(entry.add_update_listener(_async_update_listener))

    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    unloaded = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unloaded:
        hub: RadiatorValveHub = hass.data[DOMAIN].pop(entry.entry_id)
        await hub.async_shutdown()
    return unloaded


async def _async_update_listener(hass: HomeAssistant, entry: ConfigEntry) -> None:
    await hass.config_entries.async_reload(entry.entry_id)
