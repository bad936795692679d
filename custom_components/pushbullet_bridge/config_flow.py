# custom_components/pushbullet_bridge/config_flow.py
"""Config flow for the Pushbullet Bridge integration.

Steps:
    * ``user``: enter an access token. The token is validated against
      ``GET /users/me``; the account ``iden`` becomes the entry's unique ID so
      one account cannot be added twice.
    * ``reauth`` / ``reauth_confirm``: replace a rejected token for the same
      account, then update and reload the entry.
    * Options: comma-separated default receivers and the delete toggle.

Errors map to the shared keys ``invalid_auth``, ``cannot_connect`` and
``unknown`` (see strings.json).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import voluptuous as vol
from homeassistant import config_entries
from homeassistant.config_entries import ConfigEntry
from homeassistant.data_entry_flow import FlowResult
from homeassistant.helpers.aiohttp_client import async_get_clientsession

from .api import PushbulletAuthError, PushbulletClient, PushbulletError
from .const import (
    CONF_API_KEY,
    DEFAULT_DISABLE_DELETE,
    DEFAULT_RECEIVERS,
    DOMAIN,
    OPT_DISABLE_DELETE,
    OPT_RECEIVERS,
)
from .ha_typing import callback
from .outbound import split_receivers

_LOGGER = logging.getLogger(__name__)

STEP_USER_DATA_SCHEMA = vol.Schema({vol.Required(CONF_API_KEY): str})


class CannotConnect(Exception):
    """Raised when the service cannot be reached."""


class InvalidAuth(Exception):
    """Raised when the access token is rejected."""


async def async_validate_api_key(hass: Any, api_key: str) -> dict[str, Any]:
    """Validate the token and return the account profile."""

    client = PushbulletClient(async_get_clientsession(hass), api_key)
    try:
        user = await client.async_get_user()
    except PushbulletAuthError as err:
        raise InvalidAuth from err
    except PushbulletError as err:
        raise CannotConnect from err
    if not isinstance(user.get("iden"), str) or not user["iden"]:
        raise CannotConnect
    return user


def _title_for(user: Mapping[str, Any]) -> str:
    name = user.get("name")
    return f"Pushbullet ({name})" if isinstance(name, str) and name else "Pushbullet"


class ConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle a config flow for Pushbullet Bridge."""

    VERSION = 1

    async def _async_check(
        self, api_key: str, errors: dict[str, str]
    ) -> dict[str, Any] | None:
        try:
            return await async_validate_api_key(self.hass, api_key)
        except InvalidAuth:
            errors["base"] = "invalid_auth"
        except CannotConnect:
            errors["base"] = "cannot_connect"
        except Exception:  # noqa: BLE001
            _LOGGER.exception("Unexpected error while validating the access token")
            errors["base"] = "unknown"
        return None

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        """Ask for the access token and create the entry."""
        errors: dict[str, str] = {}
        if user_input is not None:
            api_key = user_input[CONF_API_KEY].strip()
            user = await self._async_check(api_key, errors)
            if user is not None:
                await self.async_set_unique_id(user["iden"])
                self._abort_if_unique_id_configured()
                return self.async_create_entry(
                    title=_title_for(user),
                    data={CONF_API_KEY: api_key},
                    options={
                        OPT_RECEIVERS: DEFAULT_RECEIVERS,
                        OPT_DISABLE_DELETE: DEFAULT_DISABLE_DELETE,
                    },
                )

        return self.async_show_form(
            step_id="user", data_schema=STEP_USER_DATA_SCHEMA, errors=errors
        )

    async def async_step_reauth(self, entry_data: Mapping[str, Any]) -> FlowResult:
        """Start a reauthentication flow linked to an existing entry context."""
        return await self.async_step_reauth_confirm()

    async def async_step_reauth_confirm(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        """Collect a new access token for this entry, then update and reload."""
        errors: dict[str, str] = {}
        entry = self._get_reauth_entry()

        if user_input is not None:
            api_key = user_input[CONF_API_KEY].strip()
            user = await self._async_check(api_key, errors)
            if user is not None:
                await self.async_set_unique_id(user["iden"])
                self._abort_if_unique_id_mismatch(reason="wrong_account")
                return self.async_update_reload_and_abort(
                    entry, data_updates={CONF_API_KEY: api_key}
                )

        return self.async_show_form(
            step_id="reauth_confirm",
            data_schema=STEP_USER_DATA_SCHEMA,
            errors=errors,
            description_placeholders={"title": entry.title},
        )

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: ConfigEntry) -> config_entries.OptionsFlow:
        """Return the options flow for an existing config entry."""
        return OptionsFlowHandler()


class OptionsFlowHandler(config_entries.OptionsFlow):
    """Edit the default receivers and the delete toggle."""

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        if user_input is not None:
            receivers = ",".join(split_receivers(user_input.get(OPT_RECEIVERS, "")))
            return self.async_create_entry(
                title="",
                data={
                    OPT_RECEIVERS: receivers,
                    OPT_DISABLE_DELETE: bool(user_input.get(OPT_DISABLE_DELETE)),
                },
            )

        options = self.config_entry.options
        schema = vol.Schema(
            {
                vol.Optional(
                    OPT_RECEIVERS,
                    default=options.get(OPT_RECEIVERS, DEFAULT_RECEIVERS),
                ): str,
                vol.Optional(
                    OPT_DISABLE_DELETE,
                    default=options.get(OPT_DISABLE_DELETE, DEFAULT_DISABLE_DELETE),
                ): bool,
            }
        )
        return self.async_show_form(step_id="init", data_schema=schema)
