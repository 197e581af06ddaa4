"""Client for the Conso API, which relays Enedis Linky meter readings."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

import aiohttp

_LOGGER = logging.getLogger(__name__)

API_BASE_URL = "https://conso.boris.sh/api"
USER_AGENT = "ha-linky"
REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=60)


class LinkyApiError(Exception):
    """Base class for Conso API errors."""


class CannotConnect(LinkyApiError):
    """The API could not be reached or answered with a server error."""


class InvalidAuth(LinkyApiError):
    """The token was rejected."""


class ApiException(LinkyApiError):
    """The API answered with something we do not understand."""

    def __init__(self, message: str, url: str) -> None:
        """Initialize the exception."""
        super().__init__(message)
        self.url = url


@dataclass(frozen=True)
class Reading:
    """One day of meter data, in Wh."""

    date: date
    value: float


class ConsoApi:
    """Fetch daily Linky readings."""

    def __init__(self, session: aiohttp.ClientSession, token: str) -> None:
        """Initialize the client."""
        self._session = session
        self._token = token

    async def async_get_daily_readings(
        self,
        prm: str,
        production: bool,
        start: date,
        end: date,
    ) -> list[Reading]:
        """
        Return the daily readings of ``prm`` for ``[start, end)``, oldest first.

        Days the meter did not report are simply absent from the result.
        """
        endpoint = "daily_production" if production else "daily_consumption"
        url = f"{API_BASE_URL}/{endpoint}"
        params = {"prm": prm, "start": start.isoformat(), "end": end.isoformat()}
        payload = await self._async_get(url, params)

        try:
            readings = [
                Reading(
                    date=date.fromisoformat(item["date"][:10]),
                    value=float(item["value"]),
                )
                for item in payload["interval_reading"]
            ]
        except (KeyError, TypeError, ValueError) as err:
            raise ApiException(f"Malformed interval_reading: {err}", url) from err

        _LOGGER.debug(
            "Received %d daily readings for %s (%s to %s)",
            len(readings),
            prm,
            start,
            end,
        )
        return sorted(readings, key=lambda reading: reading.date)

    async def _async_get(self, url: str, params: dict[str, str]) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self._token}",
            "User-Agent": USER_AGENT,
        }
        try:
            async with self._session.get(
                url, params=params, headers=headers, timeout=REQUEST_TIMEOUT
            ) as resp:
                if resp.status in (401, 403):
                    raise InvalidAuth(f"Token rejected ({resp.status})")
                if resp.status >= 500:
                    raise CannotConnect(f"Server error {resp.status}")
                if resp.status != 200:
                    raise ApiException(
                        f"Unexpected status {resp.status}: {await resp.text()}", url
                    )
                payload = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as err:
            raise CannotConnect(str(err)) from err

        if not isinstance(payload, dict):
            raise ApiException("Response is not a JSON object", url)
        return payload
