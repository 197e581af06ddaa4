"""Tests for the Conso API client."""

from datetime import date

import aiohttp
import pytest
from homeassistant.core import HomeAssistant
from homeassistant.helpers.aiohttp_client import async_get_clientsession
from pytest_homeassistant_custom_component.test_util.aiohttp import (
    AiohttpClientMocker,
)

from custom_components.linky.api import (
    API_BASE_URL,
    ApiException,
    CannotConnect,
    ConsoApi,
    InvalidAuth,
    Reading,
)

PRM = "01234567890123"


async def _fetch(hass: HomeAssistant, production: bool = False) -> list[Reading]:
    api = ConsoApi(async_get_clientsession(hass), "token")
    return await api.async_get_daily_readings(
        PRM, production, date(2024, 6, 1), date(2024, 6, 4)
    )


async def test_daily_consumption(
    hass: HomeAssistant, aioclient_mock: AiohttpClientMocker
) -> None:
    """Readings are parsed and sorted oldest first."""
    aioclient_mock.get(
        f"{API_BASE_URL}/daily_consumption",
        json={
            "usage_point_id": PRM,
            "interval_reading": [
                {"value": "1500", "date": "2024-06-02"},
                {"value": "1200", "date": "2024-06-01"},
            ],
        },
    )

    readings = await _fetch(hass)

    assert readings == [
        Reading(date=date(2024, 6, 1), value=1200.0),
        Reading(date=date(2024, 6, 2), value=1500.0),
    ]
    method, url, _, headers = aioclient_mock.mock_calls[0]
    assert method == "GET"
    assert url.query["prm"] == PRM
    assert url.query["start"] == "2024-06-01"
    assert url.query["end"] == "2024-06-04"
    assert headers["Authorization"] == "Bearer token"


async def test_daily_production(
    hass: HomeAssistant, aioclient_mock: AiohttpClientMocker
) -> None:
    """Production meters use their own endpoint."""
    aioclient_mock.get(
        f"{API_BASE_URL}/daily_production",
        json={"interval_reading": [{"value": "800", "date": "2024-06-01"}]},
    )

    assert await _fetch(hass, production=True) == [Reading(date(2024, 6, 1), 800.0)]


@pytest.mark.parametrize(
    ("status", "exception"),
    [(401, InvalidAuth), (403, InvalidAuth), (500, CannotConnect), (404, ApiException)],
)
async def test_http_errors(
    hass: HomeAssistant,
    aioclient_mock: AiohttpClientMocker,
    status: int,
    exception: type[Exception],
) -> None:
    """HTTP errors map onto the client exceptions."""
    aioclient_mock.get(f"{API_BASE_URL}/daily_consumption", status=status)

    with pytest.raises(exception):
        await _fetch(hass)


async def test_transport_error(
    hass: HomeAssistant, aioclient_mock: AiohttpClientMocker
) -> None:
    """Transport failures are connection errors."""
    aioclient_mock.get(
        f"{API_BASE_URL}/daily_consumption", exc=aiohttp.ClientConnectionError()
    )

    with pytest.raises(CannotConnect):
        await _fetch(hass)


async def test_malformed_payload(
    hass: HomeAssistant, aioclient_mock: AiohttpClientMocker
) -> None:
    """Missing fields are reported as API errors."""
    aioclient_mock.get(
        f"{API_BASE_URL}/daily_consumption",
        json={"interval_reading": [{"date": "2024-06-01"}]},
    )

    with pytest.raises(ApiException):
        await _fetch(hass)
