"""Coordinator to keep linky statistics in sync."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, TypeVar

from homeassistant.components.recorder import get_instance
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_API_TOKEN, CONF_NAME
from homeassistant.core import HomeAssistant, callback
from homeassistant.exceptions import ConfigEntryAuthFailed
from homeassistant.helpers.aiohttp_client import async_get_clientsession
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed
from homeassistant.util import dt as dt_util

from .api import ApiException, CannotConnect, ConsoApi, InvalidAuth, Reading
from .backfill import StatisticsBackfill, SyncResult
from .const import CONF_PRM, CONF_PRODUCTION, DOMAIN, READINGS_LOOKBACK
from .rates import resolve_cost_config
from .scanner import Hole, scan_holes
from .store import LinkyMeter, StatisticsStore, StatisticsStoreError

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

type LinkyConfigEntry = ConfigEntry[LinkyCoordinator]


@dataclass
class LinkyData:
    """Class to hold the outcome of the last synchronisation."""

    last_reading: Reading | None
    appended_days: int
    holes_filled: int
    filled_days: int
    last_updated: datetime


class LinkyCoordinator(DataUpdateCoordinator[LinkyData]):
    """Fetch Linky readings and write them into the recorder statistics."""

    config_entry: LinkyConfigEntry

    def __init__(
        self,
        hass: HomeAssistant,
        config_entry: LinkyConfigEntry,
    ) -> None:
        """Initialize the data handler."""
        super().__init__(
            hass,
            _LOGGER,
            config_entry=config_entry,
            name=DOMAIN,
            # Enedis publishes the previous day once a day.
            # Refresh every 12h to be at most 12h behind.
            update_interval=timedelta(hours=12),
        )
        self.api = ConsoApi(
            async_get_clientsession(hass), config_entry.data[CONF_API_TOKEN]
        )
        self.meter = LinkyMeter(
            prm=config_entry.data[CONF_PRM],
            name=config_entry.data[CONF_NAME],
            production=config_entry.data.get(CONF_PRODUCTION, False),
        )
        # Held for every recorder job so a service call and a refresh never
        # scan or write the same series at the same time.
        self.statistics_lock = asyncio.Lock()

        @callback
        def _dummy_listener() -> None:
            pass

        # Keep the coordinator refreshing even if no sensor is enabled;
        # the statistics are written from _async_update_data.
        self.async_add_listener(_dummy_listener)

    async def _async_update_data(self) -> LinkyData:
        """Fetch readings and synchronise the statistics."""
        readings = await self.async_fetch_readings()

        try:
            result: SyncResult = await self._async_run_statistics_job(
                self._backfill().sync, readings
            )
        except StatisticsStoreError as err:
            _LOGGER.error("Error writing statistics: %s", err)
            raise UpdateFailed from err

        return LinkyData(
            last_reading=readings[-1] if readings else None,
            appended_days=result.appended,
            holes_filled=len(result.holes),
            filled_days=result.filled_days,
            last_updated=dt_util.utcnow(),
        )

    async def async_fetch_readings(self) -> list[Reading]:
        """Return the readings of the lookback window, up to yesterday."""
        today = dt_util.now().date()
        try:
            _LOGGER.debug("API: async_get_daily_readings")
            return await self.api.async_get_daily_readings(
                self.meter.prm,
                self.meter.production,
                today - READINGS_LOOKBACK,
                today,
            )
        except InvalidAuth as err:
            _LOGGER.error("Error fetching readings: %s", err)
            raise ConfigEntryAuthFailed from err
        except CannotConnect as err:
            _LOGGER.error("Error fetching readings: %s", err)
            raise UpdateFailed from err
        except ApiException as err:
            _LOGGER.error("Error fetching readings: %s", err)
            raise UpdateFailed from err

    async def async_fill_gaps(self, start_day: date | None = None) -> list[Hole]:
        """Backfill the holes of the energy series from fresh readings."""
        readings = await self.async_fetch_readings()
        holes: list[Hole] = await self._async_run_statistics_job(
            self._backfill().fill_holes, readings, start_day
        )
        _LOGGER.info(
            "Filled %d holes (%d days) for %s",
            len(holes),
            sum(hole.days for hole in holes),
            self.meter.energy_statistic_id,
        )
        return holes

    async def async_find_gaps(self, start_day: date | None = None) -> list[Hole]:
        """Return the holes of the energy series without writing anything."""
        return await self._async_run_statistics_job(
            scan_holes, StatisticsStore(self.hass), self.meter, start_day
        )

    async def async_purge(self) -> None:
        """Remove the energy and cost series of the meter."""
        await self._async_run_statistics_job(
            StatisticsStore(self.hass).clear_statistics,
            [self.meter.energy_statistic_id, self.meter.cost_statistic_id],
        )

    def _backfill(self) -> StatisticsBackfill:
        return StatisticsBackfill(
            StatisticsStore(self.hass),
            self.meter,
            resolve_cost_config(self.config_entry.options),
        )

    async def _async_run_statistics_job(
        self, target: Callable[..., _T], *args: Any
    ) -> _T:
        async with self.statistics_lock:
            return await get_instance(self.hass).async_add_executor_job(
                target, *args
            )
