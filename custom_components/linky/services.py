"""Services for the linky integration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import voluptuous as vol
from homeassistant.config_entries import ConfigEntryState
from homeassistant.core import (
    HomeAssistant,
    ServiceCall,
    ServiceResponse,
    SupportsResponse,
    callback,
)
from homeassistant.exceptions import ServiceValidationError
from homeassistant.helpers import config_validation as cv

from .const import (
    ATTR_CONFIG_ENTRY_ID,
    ATTR_START_DAY,
    DOMAIN,
    SERVICE_FILL_GAPS,
    SERVICE_FIND_GAPS,
    SERVICE_PURGE,
)
from .scanner import Hole

if TYPE_CHECKING:
    from .coordinator import LinkyCoordinator

_LOGGER = logging.getLogger(__name__)

ENTRY_SCHEMA = vol.Schema({vol.Required(ATTR_CONFIG_ENTRY_ID): cv.string})
GAPS_SCHEMA = ENTRY_SCHEMA.extend({vol.Optional(ATTR_START_DAY): cv.date})


def _get_coordinator(hass: HomeAssistant, call: ServiceCall) -> LinkyCoordinator:
    entry_id: str = call.data[ATTR_CONFIG_ENTRY_ID]
    entry = hass.config_entries.async_get_entry(entry_id)
    if entry is None or entry.domain != DOMAIN:
        raise ServiceValidationError(
            translation_domain=DOMAIN,
            translation_key="invalid_config_entry",
            translation_placeholders={"config_entry": entry_id},
        )
    if entry.state is not ConfigEntryState.LOADED:
        raise ServiceValidationError(
            translation_domain=DOMAIN,
            translation_key="unloaded_config_entry",
            translation_placeholders={"config_entry": entry.title},
        )
    return entry.runtime_data


def _holes_response(holes: list[Hole]) -> ServiceResponse:
    return {
        "holes": [
            {
                "start": hole.start.isoformat(),
                "end": hole.end.isoformat(),
                "last_sum": hole.last_sum,
                "last_cost": hole.last_cost,
                "next_start": hole.next_start.isoformat(),
            }
            for hole in holes
        ]
    }


@callback
def async_setup_services(hass: HomeAssistant) -> None:
    """Register the linky services."""

    async def async_fill_gaps(call: ServiceCall) -> ServiceResponse:
        coordinator = _get_coordinator(hass, call)
        holes = await coordinator.async_fill_gaps(call.data.get(ATTR_START_DAY))
        if call.return_response:
            return _holes_response(holes)
        return None

    async def async_find_gaps(call: ServiceCall) -> ServiceResponse:
        coordinator = _get_coordinator(hass, call)
        holes = await coordinator.async_find_gaps(call.data.get(ATTR_START_DAY))
        return _holes_response(holes)

    async def async_purge(call: ServiceCall) -> None:
        coordinator = _get_coordinator(hass, call)
        _LOGGER.warning("Purging statistics of PRM %s", coordinator.meter.prm)
        await coordinator.async_purge()

    hass.services.async_register(
        DOMAIN,
        SERVICE_FILL_GAPS,
        async_fill_gaps,
        schema=GAPS_SCHEMA,
        supports_response=SupportsResponse.OPTIONAL,
    )
    hass.services.async_register(
        DOMAIN,
        SERVICE_FIND_GAPS,
        async_find_gaps,
        schema=GAPS_SCHEMA,
        supports_response=SupportsResponse.ONLY,
    )
    hass.services.async_register(
        DOMAIN, SERVICE_PURGE, async_purge, schema=ENTRY_SCHEMA
    )
