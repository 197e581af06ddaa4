"""Blocking access to the recorder's long-term statistics."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from homeassistant.components.recorder import get_instance
from homeassistant.components.recorder.models import (
    StatisticData,
    StatisticMeanType,
    StatisticMetaData,
)
from homeassistant.components.recorder.statistics import (
    async_add_external_statistics,
    get_last_statistics,
    list_statistic_ids,
    statistics_during_period,
)
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError
from homeassistant.util import dt as dt_util
from homeassistant.util.async_ import run_callback_threadsafe
from sqlalchemy.exc import SQLAlchemyError

from .const import DOMAIN, PRODUCTION_SOURCE

_LOGGER = logging.getLogger(__name__)

# Upper bound on waiting for the event loop or the recorder queue.
LOOP_CALL_TIMEOUT = 300


class StatisticsStoreError(HomeAssistantError):
    """The recorder failed to answer a statistics request."""


@dataclass(frozen=True)
class StatPoint:
    """One stored day of a cumulative series."""

    start: datetime
    sum: float
    state: float | None = None


def build_statistic_id(prm: str, is_production: bool, is_cost: bool = False) -> str:
    """
    Return the statistic id of one of the four series a meter can own.

    Production and cost are independent facets, e.g. ``linky:0123`` for
    consumption energy and ``linky_prod:0123_cost`` for production cost.
    """
    source = PRODUCTION_SOURCE if is_production else DOMAIN
    return f"{source}:{prm}{'_cost' if is_cost else ''}"


@dataclass(frozen=True)
class LinkyMeter:
    """A configured meter and the statistic ids derived from it."""

    prm: str
    name: str
    production: bool

    @property
    def energy_statistic_id(self) -> str:
        """Statistic id of the energy series."""
        return build_statistic_id(self.prm, self.production)

    @property
    def cost_statistic_id(self) -> str:
        """Statistic id of the cost series."""
        return build_statistic_id(self.prm, self.production, is_cost=True)


def _to_stat_point(row: dict) -> StatPoint:
    start = row["start"]
    if isinstance(start, (int, float)):
        start = dt_util.utc_from_timestamp(start)
    state = row.get("state")
    return StatPoint(
        start=start,
        sum=float(row.get("sum") or 0),
        state=None if state is None else float(state),
    )


class StatisticsStore:
    """
    Request/response access to the recorder statistics.

    Every method blocks until the recorder has answered, so an instance must
    only be used from a worker thread (the recorder executor), never from the
    event loop. Writes are handed to the event loop and queued on the
    recorder; ``wait_for_commit`` waits until they are visible to reads.
    """

    def __init__(self, hass: HomeAssistant) -> None:
        """Initialize the store."""
        self.hass = hass

    def statistics_during_period(
        self, statistic_id: str, start: datetime, end: datetime
    ) -> list[StatPoint]:
        """Return the daily points of a series starting in ``[start, end)``."""
        _LOGGER.debug("Querying %s from %s to %s", statistic_id, start, end)
        try:
            result = statistics_during_period(
                self.hass,
                start,
                end,
                {statistic_id},
                "day",
                None,
                {"state", "sum"},
            )
        except SQLAlchemyError as err:
            raise StatisticsStoreError(
                f"Could not query statistics for {statistic_id}: {err}"
            ) from err

        points = [_to_stat_point(row) for row in result.get(statistic_id, [])]
        # The recorder may prepend the last row starting before the window.
        return [point for point in points if start <= point.start < end]

    def last_statistic(self, statistic_id: str) -> StatPoint | None:
        """Return the most recent point of a series, however old it is."""
        try:
            result = get_last_statistics(
                self.hass, 1, statistic_id, True, {"state", "sum"}
            )
        except SQLAlchemyError as err:
            raise StatisticsStoreError(
                f"Could not read the last statistic of {statistic_id}: {err}"
            ) from err

        rows = result.get(statistic_id)
        if not rows:
            return None
        return _to_stat_point(rows[0])

    def statistic_ids(self) -> set[str]:
        """Return the ids of every series that records a sum."""
        try:
            rows = list_statistic_ids(self.hass, statistic_type="sum")
        except SQLAlchemyError as err:
            raise StatisticsStoreError(f"Could not list statistics: {err}") from err
        return {row["statistic_id"] for row in rows}

    def is_new_series(self, statistic_id: str) -> bool:
        """Return True when the recorder has never seen ``statistic_id``."""
        return statistic_id not in self.statistic_ids()

    def import_statistics(
        self,
        statistic_id: str,
        name: str,
        unit: str,
        unit_class: str | None,
        points: Sequence[StatisticData],
    ) -> None:
        """Insert or overwrite ``points`` in an external series."""
        source, _ = statistic_id.split(":", 1)
        metadata = StatisticMetaData(
            mean_type=StatisticMeanType.NONE,
            has_sum=True,
            name=name,
            source=source,
            statistic_id=statistic_id,
            unit_class=unit_class,
            unit_of_measurement=unit,
        )
        _LOGGER.info(
            "Importing %d daily statistics into %s", len(points), statistic_id
        )
        self._call_on_loop(
            async_add_external_statistics, self.hass, metadata, list(points)
        )

    def adjust_sum(
        self,
        statistic_id: str,
        start_time: datetime,
        adjustment: float,
        unit: str,
    ) -> None:
        """Shift the running sum of every point at or after ``start_time``."""
        _LOGGER.info(
            "Adjusting %s from %s by %.3f %s",
            statistic_id,
            start_time,
            adjustment,
            unit,
        )
        self._call_on_loop(
            get_instance(self.hass).async_adjust_statistics,
            statistic_id,
            start_time,
            adjustment,
            unit,
        )

    def clear_statistics(self, statistic_ids: list[str]) -> None:
        """Delete every point and the metadata of the given series."""
        _LOGGER.warning("Removing all statistics for %s", ", ".join(statistic_ids))
        self._call_on_loop(get_instance(self.hass).async_clear_statistics, statistic_ids)

    def wait_for_commit(self) -> None:
        """Block until the recorder has processed every queued write."""
        future = asyncio.run_coroutine_threadsafe(
            get_instance(self.hass).async_block_till_done(), self.hass.loop
        )
        try:
            future.result(LOOP_CALL_TIMEOUT)
        except TimeoutError as err:
            future.cancel()
            raise StatisticsStoreError(
                f"Recorder did not commit within {LOOP_CALL_TIMEOUT}s"
            ) from err

    def _call_on_loop(self, func: Callable[..., Any], *args: Any) -> None:
        try:
            run_callback_threadsafe(self.hass.loop, func, *args).result(
                LOOP_CALL_TIMEOUT
            )
        except TimeoutError as err:
            raise StatisticsStoreError(
                f"Event loop did not answer within {LOOP_CALL_TIMEOUT}s"
            ) from err
        except HomeAssistantError as err:
            raise StatisticsStoreError(str(err)) from err
