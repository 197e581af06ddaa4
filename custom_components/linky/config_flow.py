"""Config flow for linky integration."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

import voluptuous as vol
from homeassistant.config_entries import (
    ConfigEntry,
    ConfigFlow,
    ConfigFlowResult,
    OptionsFlow,
)
from homeassistant.const import CONF_API_TOKEN, CONF_NAME
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.aiohttp_client import async_get_clientsession
from homeassistant.helpers.typing import VolDictType
from homeassistant.util import dt as dt_util

from .api import ApiException, CannotConnect, ConsoApi, InvalidAuth
from .const import (
    COMMON_NAME,
    CONF_COST_MODE,
    CONF_FIXED_RATE,
    CONF_PRM,
    CONF_PRODUCTION,
    COST_MODE_FIXED,
    COST_MODE_NONE,
    DEFAULT_FIXED_RATE,
    DOMAIN,
)
from .rates import build_cost_mode_choices

_LOGGER = logging.getLogger(__name__)

PRM_PATTERN = re.compile(r"^\d{14}$")


async def _validate_token(
    hass: HomeAssistant,
    data: Mapping[str, Any],
) -> None:
    """Fetch the last week of readings and raise exceptions on failure."""
    api = ConsoApi(async_get_clientsession(hass), data[CONF_API_TOKEN])
    today = dt_util.now().date()
    _LOGGER.debug("API: async_get_daily_readings")
    await api.async_get_daily_readings(
        data[CONF_PRM],
        data.get(CONF_PRODUCTION, False),
        today - timedelta(days=7),
        today,
    )


def _unique_id(data: Mapping[str, Any]) -> str:
    kind = "production" if data.get(CONF_PRODUCTION, False) else "consumption"
    return f"{data[CONF_PRM]}_{kind}"


class LinkyConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle a config flow for linky."""

    VERSION = 1

    def __init__(self) -> None:
        """Initialize a new LinkyConfigFlow."""
        self._data: dict[str, Any] = {}
        self._options: dict[str, Any] = {}

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: ConfigEntry) -> OptionsFlow:
        """Get the options flow for this handler."""
        return LinkyOptionsFlow(config_entry)

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Handle the initial step (meter and token)."""
        errors: dict[str, str] = {}

        if user_input is not None:
            self._data.update(user_input)

            if not PRM_PATTERN.match(self._data[CONF_PRM]):
                errors[CONF_PRM] = "invalid_prm"
            else:
                await self.async_set_unique_id(_unique_id(self._data))
                self._abort_if_unique_id_configured()

                try:
                    await _validate_token(self.hass, self._data)
                except InvalidAuth:
                    errors["base"] = "invalid_auth"
                except CannotConnect:
                    errors["base"] = "cannot_connect"
                except ApiException as err:
                    _LOGGER.error("API error during validation: %s", err)
                    errors["base"] = "unknown"
                else:
                    return await self.async_step_cost_mode()

        schema_dict: VolDictType = {
            vol.Required(CONF_API_TOKEN): str,
            vol.Required(CONF_PRM): str,
            vol.Required(CONF_NAME, default=COMMON_NAME): str,
            vol.Required(CONF_PRODUCTION, default=False): bool,
        }

        return self.async_show_form(
            step_id="user",
            data_schema=self.add_suggested_values_to_schema(
                vol.Schema(schema_dict), user_input
            ),
            errors=errors,
        )

    async def async_step_cost_mode(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Select cost calculation mode during initial setup."""
        if user_input is not None:
            mode = user_input[CONF_COST_MODE]
            if mode == COST_MODE_FIXED:
                return await self.async_step_cost_mode_fixed_rate()
            self._options = {CONF_COST_MODE: mode}
            return self._async_create_linky_entry()

        return self.async_show_form(
            step_id="cost_mode",
            data_schema=vol.Schema(
                {
                    vol.Required(CONF_COST_MODE, default=COST_MODE_NONE): vol.In(
                        build_cost_mode_choices()
                    ),
                }
            ),
        )

    async def async_step_cost_mode_fixed_rate(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Configure a custom fixed rate during initial setup."""
        if user_input is not None:
            self._options = {
                CONF_COST_MODE: COST_MODE_FIXED,
                CONF_FIXED_RATE: user_input[CONF_FIXED_RATE],
            }
            return self._async_create_linky_entry()

        return self.async_show_form(
            step_id="cost_mode_fixed_rate",
            data_schema=vol.Schema(
                {
                    vol.Required(
                        CONF_FIXED_RATE, default=DEFAULT_FIXED_RATE
                    ): vol.Coerce(float),
                }
            ),
        )

    @callback
    def _async_create_linky_entry(self) -> ConfigFlowResult:
        """Create the config entry."""
        return self.async_create_entry(
            title=f"{self._data[CONF_NAME]} ({self._data[CONF_PRM]})",
            data=self._data,
            options=self._options,
        )

    async def async_step_reauth(
        self, entry_data: Mapping[str, Any]
    ) -> ConfigFlowResult:
        """Handle configuration by re-auth."""
        reauth_entry = self._get_reauth_entry()
        self._data = dict(reauth_entry.data)
        return self.async_show_form(
            step_id="reauth_confirm",
            data_schema=vol.Schema({vol.Required(CONF_API_TOKEN): str}),
            description_placeholders={CONF_NAME: reauth_entry.title},
        )

    async def async_step_reauth_confirm(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Dialog that asks for a new token."""
        errors: dict[str, str] = {}
        reauth_entry = self._get_reauth_entry()

        if user_input is not None:
            self._data.update(user_input)

            try:
                await _validate_token(self.hass, self._data)
            except InvalidAuth:
                errors["base"] = "invalid_auth"
            except CannotConnect:
                errors["base"] = "cannot_connect"
            except ApiException as err:
                _LOGGER.error("API error during reauth: %s", err)
                errors["base"] = "unknown"
            else:
                return self.async_update_reload_and_abort(reauth_entry, data=self._data)

        return self.async_show_form(
            step_id="reauth_confirm",
            data_schema=vol.Schema({vol.Required(CONF_API_TOKEN): str}),
            errors=errors,
            description_placeholders={CONF_NAME: reauth_entry.title},
        )


class LinkyOptionsFlow(OptionsFlow):
    """Handle options flow for Linky."""

    def __init__(self, config_entry: ConfigEntry) -> None:
        """Initialize options flow."""
        self._config_entry = config_entry

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Step 1: Select cost calculation mode."""
        if user_input is not None:
            if user_input[CONF_COST_MODE] == COST_MODE_FIXED:
                return await self.async_step_fixed_rate()
            return self.async_create_entry(
                title="", data={CONF_COST_MODE: user_input[CONF_COST_MODE]}
            )

        current_options = self._config_entry.options

        return self.async_show_form(
            step_id="init",
            data_schema=vol.Schema(
                {
                    vol.Required(
                        CONF_COST_MODE,
                        default=current_options.get(CONF_COST_MODE, COST_MODE_NONE),
                    ): vol.In(build_cost_mode_choices()),
                }
            ),
        )

    async def async_step_fixed_rate(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Step 2: Configure fixed rate."""
        if user_input is not None:
            return self.async_create_entry(
                title="",
                data={
                    CONF_COST_MODE: COST_MODE_FIXED,
                    CONF_FIXED_RATE: user_input[CONF_FIXED_RATE],
                },
            )

        current_options = self._config_entry.options

        return self.async_show_form(
            step_id="fixed_rate",
            data_schema=vol.Schema(
                {
                    vol.Required(
                        CONF_FIXED_RATE,
                        default=current_options.get(
                            CONF_FIXED_RATE, DEFAULT_FIXED_RATE
                        ),
                    ): vol.Coerce(float),
                }
            ),
        )
