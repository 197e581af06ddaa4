"""Write Linky readings into the recorder statistics."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

from homeassistant.components.recorder.models import StatisticData
from homeassistant.util.unit_conversion import EnergyConverter

from .api import Reading
from .const import COST_UNIT, ENERGY_UNIT
from .rates import CostConfig, compute_costs
from .scanner import (
    GapScanner,
    Hole,
    day_start,
    find_last_statistic,
    local_day,
)
from .store import LinkyMeter, StatisticsStore, StatPoint

_LOGGER = logging.getLogger(__name__)


def readings_in_range(
    readings: Iterable[Reading], start: date, end: date
) -> list[Reading]:
    """Return the readings dated in ``[start, end)``."""
    return [reading for reading in readings if start <= reading.date < end]


def format_as_statistics(
    readings: Iterable[Reading], last_sum: float
) -> list[StatisticData]:
    """Turn daily readings into statistics whose sum continues from ``last_sum``."""
    statistics: list[StatisticData] = []
    running_sum = last_sum
    for reading in sorted(readings, key=lambda reading: reading.date):
        running_sum += reading.value
        statistics.append(
            StatisticData(
                start=day_start(reading.date), state=reading.value, sum=running_sum
            )
        )
    return statistics


@dataclass
class SyncResult:
    """What one synchronisation wrote."""

    appended: int = 0
    holes: list[Hole] = field(default_factory=list)

    @property
    def filled_days(self) -> int:
        """Number of missing days that were backfilled."""
        return sum(hole.days for hole in self.holes)


class StatisticsBackfill:
    """Keep a meter's energy and cost series in line with its readings."""

    def __init__(
        self,
        store: StatisticsStore,
        meter: LinkyMeter,
        cost_config: CostConfig,
    ) -> None:
        """Initialize the backfill."""
        self._store = store
        self._meter = meter
        self._cost_config = cost_config

    def sync(self, readings: list[Reading], today: date | None = None) -> SyncResult:
        """Append the newest readings, then fill every hole they cover."""
        result = SyncResult()
        result.appended = self.append_readings(readings, today)
        result.holes = self.fill_holes(readings, today=today)
        return result

    def import_history(self, readings: list[Reading]) -> int:
        """Create the series of a new meter from all ``readings``."""
        if not readings:
            return 0
        _LOGGER.info(
            "First statistics update for %s - importing %d days",
            self._meter.prm,
            len(readings),
        )
        stats = format_as_statistics(readings, 0.0)
        self._save_energy(stats)
        self._save_cost(compute_costs(stats, self._cost_config, 0.0))
        self._store.wait_for_commit()
        return len(stats)

    def append_readings(
        self, readings: list[Reading], today: date | None = None
    ) -> int:
        """Import the readings newer than the last recorded day."""
        energy_id = self._meter.energy_statistic_id
        if self._store.is_new_series(energy_id):
            return self.import_history(readings)

        last = self._last_point(energy_id, today)
        if last is None:
            _LOGGER.warning("%s is known but holds no statistics", energy_id)
            return self.import_history(readings)

        last_day = local_day(last.start)
        new_readings = [reading for reading in readings if reading.date > last_day]
        if not new_readings:
            _LOGGER.debug("Statistics of %s are up to date (%s)", energy_id, last_day)
            return 0

        _LOGGER.info(
            "Appending %d days to %s after %s (sum=%.3f)",
            len(new_readings),
            energy_id,
            last_day,
            last.sum,
        )
        stats = format_as_statistics(new_readings, last.sum)
        self._save_energy(stats)

        if self._cost_config.enabled:
            self._append_costs(readings, new_readings, last_day, today)

        self._store.wait_for_commit()
        return len(stats)

    def fill_holes(
        self,
        readings: list[Reading],
        start_day: date | None = None,
        today: date | None = None,
    ) -> list[Hole]:
        """
        Backfill the holes of the energy series, oldest first.

        Each hole is written and committed before the scan looks for the
        next one. A failure stops the run; holes already filled stay filled.
        """
        filled: list[Hole] = []
        for hole in GapScanner(self._store, self._meter, start_day, today):
            if self.fill_hole(hole, readings):
                filled.append(hole)
        return filled

    def fill_hole(self, hole: Hole, readings: list[Reading]) -> bool:
        """Write the readings of one hole and realign the sums after it."""
        hole_readings = readings_in_range(readings, hole.start, hole.end)
        if not hole_readings:
            _LOGGER.debug(
                "No readings between %s and %s, leaving the hole", hole.start, hole.end
            )
            return False

        stats = format_as_statistics(hole_readings, hole.last_sum)
        self._save_energy(stats)
        delta = stats[-1]["sum"] - hole.last_sum
        _LOGGER.debug("Adjusting %s sum with %s", hole.next_start, delta)
        self._store.adjust_sum(
            self._meter.energy_statistic_id, hole.next_start, delta, ENERGY_UNIT
        )

        if self._cost_config.enabled and hole.last_cost is not None:
            cost_stats = compute_costs(stats, self._cost_config, hole.last_cost)
            if cost_stats:
                self._save_cost(cost_stats)
                delta_cost = cost_stats[-1]["sum"] - hole.last_cost
                _LOGGER.debug(
                    "Adjusting %s costs sum with %s", hole.next_start, delta_cost
                )
                self._store.adjust_sum(
                    self._meter.cost_statistic_id,
                    hole.next_start,
                    delta_cost,
                    COST_UNIT,
                )

        self._store.wait_for_commit()
        return True

    def _last_point(self, statistic_id: str, today: date | None) -> StatPoint | None:
        last = find_last_statistic(self._store, statistic_id, today, warn=False)
        if last is None:
            # Older than the lookback window
            last = self._store.last_statistic(statistic_id)
        return last

    def _append_costs(
        self,
        readings: list[Reading],
        new_readings: list[Reading],
        last_day: date,
        today: date | None,
    ) -> None:
        """
        Continue the cost series from its own last point.

        Days the cost series missed before ``last_day`` are priced from
        ``readings`` too, so one skipped day does not stall costs.
        """
        cost_id = self._meter.cost_statistic_id
        last_cost = None
        if not self._store.is_new_series(cost_id):
            last_cost = self._last_point(cost_id, today)

        if last_cost is None:
            pending, cost_sum = new_readings, 0.0
        else:
            cost_day = local_day(last_cost.start)
            pending = [reading for reading in readings if reading.date > cost_day]
            cost_sum = last_cost.sum
            if cost_day < last_day:
                _LOGGER.info(
                    "%s stops on %s, catching up from its last sum %.3f",
                    cost_id,
                    cost_day,
                    cost_sum,
                )

        self._save_cost(
            compute_costs(
                format_as_statistics(pending, 0.0), self._cost_config, cost_sum
            )
        )

    def _save_energy(self, stats: list[StatisticData]) -> None:
        self._store.import_statistics(
            self._meter.energy_statistic_id,
            self._meter.name,
            ENERGY_UNIT,
            EnergyConverter.UNIT_CLASS,
            stats,
        )

    def _save_cost(self, stats: list[StatisticData]) -> None:
        if not stats:
            return
        self._store.import_statistics(
            self._meter.cost_statistic_id,
            f"{self._meter.name} (costs)",
            COST_UNIT,
            None,
            stats,
        )
