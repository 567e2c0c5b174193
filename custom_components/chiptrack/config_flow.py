"""Config and options flow for the ChipTrack integration.

Quality Scale: Platinum target
Home Assistant: 2025.9.3+
Python: 3.13+
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import voluptuous as vol
from homeassistant.config_entries import (
    ConfigEntry,
    ConfigFlow,
    ConfigFlowResult,
    OptionsFlow,
)
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.selector import (
    BooleanSelector,
    EntitySelector,
    EntitySelectorConfig,
    NumberSelector,
    NumberSelectorConfig,
    NumberSelectorMode,
    SelectSelector,
    SelectSelectorConfig,
    SelectSelectorMode,
    TextSelector,
)

from .const import (
    CONF_DEBUG_LOGGING,
    CONF_FALLBACK_LATITUDE,
    CONF_FALLBACK_LONGITUDE,
    CONF_FIX_SOURCE,
    CONF_NOTIFY_SERVICE,
    CONF_OWNER_ENTITY_ID,
    CONF_SEED_DEMO_CHIP,
    DEFAULT_FALLBACK_LATITUDE,
    DEFAULT_FALLBACK_LONGITUDE,
    DOMAIN,
    FIX_SOURCE_SIMULATED,
    FIX_SOURCES,
)
from .utils import validate_coordinates

_LOGGER = logging.getLogger(__name__)

DEFAULT_SETTINGS: dict[str, Any] = {
    CONF_FIX_SOURCE: FIX_SOURCE_SIMULATED,
    CONF_FALLBACK_LATITUDE: DEFAULT_FALLBACK_LATITUDE,
    CONF_FALLBACK_LONGITUDE: DEFAULT_FALLBACK_LONGITUDE,
    CONF_SEED_DEMO_CHIP: True,
    CONF_DEBUG_LOGGING: False,
}


def _settings_schema(defaults: Mapping[str, Any]) -> vol.Schema:
    """Build the settings form shared by the config and options flows."""
    coordinate = NumberSelectorConfig(step="any", mode=NumberSelectorMode.BOX)
    return vol.Schema(
        {
            vol.Required(
                CONF_FIX_SOURCE, default=defaults[CONF_FIX_SOURCE]
            ): SelectSelector(
                SelectSelectorConfig(
                    options=list(FIX_SOURCES),
                    translation_key=CONF_FIX_SOURCE,
                    mode=SelectSelectorMode.DROPDOWN,
                )
            ),
            vol.Optional(
                CONF_OWNER_ENTITY_ID,
                description={"suggested_value": defaults.get(CONF_OWNER_ENTITY_ID)},
            ): EntitySelector(EntitySelectorConfig(domain=["person", "device_tracker"])),
            vol.Required(
                CONF_FALLBACK_LATITUDE, default=defaults[CONF_FALLBACK_LATITUDE]
            ): NumberSelector(coordinate),
            vol.Required(
                CONF_FALLBACK_LONGITUDE, default=defaults[CONF_FALLBACK_LONGITUDE]
            ): NumberSelector(coordinate),
            vol.Optional(
                CONF_NOTIFY_SERVICE,
                description={"suggested_value": defaults.get(CONF_NOTIFY_SERVICE)},
            ): TextSelector(),
            vol.Required(
                CONF_SEED_DEMO_CHIP, default=defaults[CONF_SEED_DEMO_CHIP]
            ): BooleanSelector(),
            vol.Required(
                CONF_DEBUG_LOGGING, default=defaults[CONF_DEBUG_LOGGING]
            ): BooleanSelector(),
        }
    )


def _validate_settings(hass: HomeAssistant, user_input: Mapping[str, Any]) -> dict[str, str]:
    """Validate submitted settings.

    Args:
        hass: Home Assistant instance
        user_input: Submitted form values

    Returns:
        Form errors keyed by field, empty when the input is valid
    """
    errors: dict[str, str] = {}

    if not validate_coordinates(
        float(user_input[CONF_FALLBACK_LATITUDE]),
        float(user_input[CONF_FALLBACK_LONGITUDE]),
    ):
        errors["base"] = "invalid_coordinates"

    owner = user_input.get(CONF_OWNER_ENTITY_ID)
    if owner and hass.states.get(owner) is None:
        errors[CONF_OWNER_ENTITY_ID] = "entity_not_found"

    notify_service = user_input.get(CONF_NOTIFY_SERVICE)
    if notify_service and not hass.services.has_service(
        "notify", notify_service.removeprefix("notify.")
    ):
        errors[CONF_NOTIFY_SERVICE] = "notify_service_not_found"

    return errors


class ChipTrackConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle a config flow for ChipTrack."""

    VERSION = 1

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Handle the initial step.

        Args:
            user_input: User provided data

        Returns:
            Config flow result
        """
        await self.async_set_unique_id(DOMAIN)
        self._abort_if_unique_id_configured()

        errors: dict[str, str] = {}
        if user_input is not None:
            errors = _validate_settings(self.hass, user_input)
            if not errors:
                _LOGGER.debug("Creating ChipTrack entry: %s", user_input)
                return self.async_create_entry(title="ChipTrack", data=user_input)

        return self.async_show_form(
            step_id="user",
            data_schema=_settings_schema({**DEFAULT_SETTINGS, **(user_input or {})}),
            errors=errors,
        )

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: ConfigEntry) -> ChipTrackOptionsFlow:
        """Create the options flow."""
        return ChipTrackOptionsFlow()


class ChipTrackOptionsFlow(OptionsFlow):
    """Change ChipTrack settings after setup."""

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Manage the settings."""
        errors: dict[str, str] = {}
        if user_input is not None:
            errors = _validate_settings(self.hass, user_input)
            if not errors:
                return self.async_create_entry(data=user_input)

        current = {
            **DEFAULT_SETTINGS,
            **self.config_entry.data,
            **self.config_entry.options,
            **(user_input or {}),
        }
        return self.async_show_form(
            step_id="init",
            data_schema=_settings_schema(current),
            errors=errors,
        )
