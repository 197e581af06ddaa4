"""Locate stored statistics and the days missing between them."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum

from homeassistant.util import dt as dt_util

from .const import BLOCK_DAYS, LAST_LOOKBACK_BLOCKS, OLDEST_LOOKBACK_BLOCKS
from .store import LinkyMeter, StatisticsStore, StatisticsStoreError, StatPoint

_LOGGER = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


def day_start(day: date) -> datetime:
    """Return local midnight of ``day``."""
    return dt_util.start_of_local_day(day)


def local_day(moment: datetime) -> date:
    """Return the local calendar day ``moment`` falls in."""
    return dt_util.as_local(moment).date()


def _block(store: StatisticsStore, statistic_id: str, today: date, i: int) -> list[StatPoint]:
    return store.statistics_during_period(
        statistic_id,
        day_start(today - timedelta(days=(i + 1) * BLOCK_DAYS)),
        day_start(today - timedelta(days=i * BLOCK_DAYS)),
    )


def _known_series(store: StatisticsStore, statistic_id: str, warn: bool) -> bool:
    if not store.is_new_series(statistic_id):
        return True
    if warn:
        _LOGGER.warning("%s not found in Home Assistant statistics", statistic_id)
    return False


def find_oldest_statistic(
    store: StatisticsStore,
    statistic_id: str,
    today: date | None = None,
    warn: bool = True,
) -> StatPoint | None:
    """
    Return the earliest stored point of a series, or None if it has no data.

    The recorder only answers bounded queries, so the lookback horizon is cut
    into weekly blocks. Blocks are visited from the farthest in the past
    towards today and the first point of the first non-empty block is the
    oldest one.
    """
    if not _known_series(store, statistic_id, warn):
        return None

    today = today or dt_util.now().date()
    for i in range(OLDEST_LOOKBACK_BLOCKS - 1, -1, -1):
        points = _block(store, statistic_id, today, i)
        if points:
            _LOGGER.debug("Oldest statistic of %s is %s", statistic_id, points[0].start)
            return points[0]

    _LOGGER.debug("No statistics found for %s", statistic_id)
    return None


def find_last_statistic(
    store: StatisticsStore,
    statistic_id: str,
    today: date | None = None,
    warn: bool = True,
) -> StatPoint | None:
    """Return the most recent point of a series within the last year."""
    if not _known_series(store, statistic_id, warn):
        return None

    today = today or dt_util.now().date()
    for i in range(LAST_LOOKBACK_BLOCKS):
        points = _block(store, statistic_id, today, i)
        if points:
            _LOGGER.debug("Last saved statistic of %s is %s", statistic_id, points[-1].start)
            return points[-1]

    _LOGGER.debug("No statistics found for %s", statistic_id)
    return None


def fetch_last_sum(store: StatisticsStore, statistic_id: str, day: date) -> float | None:
    """Return the cumulative sum recorded on the day before ``day``."""
    points = store.statistics_during_period(
        statistic_id, day_start(day - ONE_DAY), day_start(day)
    )
    if points:
        return points[-1].sum
    return None


@dataclass(frozen=True)
class Hole:
    """
    Days ``[start, end)`` with no stored point.

    ``last_sum`` and ``last_cost`` are the running totals recorded the day
    before ``start``; ``last_cost`` is None when the cost series has nothing
    there. ``next_start`` is the first stored point after the hole.
    """

    start: date
    end: date
    last_sum: float
    last_cost: float | None
    next_start: datetime

    @property
    def days(self) -> int:
        """Number of missing days."""
        return (self.end - self.start).days


class ScanState(Enum):
    """Where the scanner's cursor stands."""

    SCANNING = "scanning"
    IN_HOLE = "in_hole"
    DONE = "done"


class GapScanner(Iterator[Hole]):
    """
    Walk a meter's energy series one day at a time and yield its holes.

    Each call to ``next_hole`` issues blocking queries until it can report
    the next hole or the cursor reaches today. A hole still open on today is
    not reported. Build a new scanner to scan again.
    """

    def __init__(
        self,
        store: StatisticsStore,
        meter: LinkyMeter,
        start_day: date | None = None,
        today: date | None = None,
    ) -> None:
        """Initialize the scanner."""
        self._store = store
        self._meter = meter
        self._start_day = start_day
        self.today = today or dt_util.now().date()
        self.cursor: date | None = None
        self.state = ScanState.SCANNING

    def __iter__(self) -> GapScanner:
        """Return the scanner itself."""
        return self

    def __next__(self) -> Hole:
        """Return the next hole."""
        hole = self.next_hole()
        if hole is None:
            raise StopIteration
        return hole

    def next_hole(self) -> Hole | None:
        """Advance the cursor to the end of the next hole and return it."""
        if self.state is ScanState.DONE:
            return None
        if self.cursor is None:
            self.cursor = self._anchor()
            if self.cursor is None:
                self.state = ScanState.DONE
                return None

        while self.cursor < self.today:
            if self._day_points(self.cursor):
                self.cursor += ONE_DAY
                continue

            self.state = ScanState.IN_HOLE
            hole_start = self.cursor
            while True:
                self.cursor += ONE_DAY
                if self.cursor >= self.today:
                    _LOGGER.debug(
                        "Hole from %s is still open on %s, not reported",
                        hole_start,
                        self.today,
                    )
                    break
                points = self._day_points(self.cursor)
                if points:
                    hole = self._close_hole(hole_start, self.cursor, points[0])
                    self.cursor += ONE_DAY
                    self.state = ScanState.SCANNING
                    return hole

        self.state = ScanState.DONE
        return None

    def _anchor(self) -> date | None:
        if self._start_day is not None:
            return self._start_day
        oldest = find_oldest_statistic(
            self._store, self._meter.energy_statistic_id, self.today
        )
        if oldest is None:
            return None
        # The oldest day may hold partial data; never re-examine it.
        return local_day(oldest.start) + ONE_DAY

    def _day_points(self, day: date) -> list[StatPoint]:
        return self._store.statistics_during_period(
            self._meter.energy_statistic_id, day_start(day), day_start(day + ONE_DAY)
        )

    def _close_hole(self, start: date, end: date, first_after: StatPoint) -> Hole:
        last_sum = fetch_last_sum(self._store, self._meter.energy_statistic_id, start)
        try:
            last_cost = fetch_last_sum(
                self._store, self._meter.cost_statistic_id, start
            )
        except StatisticsStoreError as err:
            _LOGGER.warning(
                "Could not read %s before %s: %s",
                self._meter.cost_statistic_id,
                start,
                err,
            )
            last_cost = None

        hole = Hole(
            start=start,
            end=end,
            last_sum=last_sum or 0.0,
            last_cost=last_cost,
            next_start=first_after.start,
        )
        _LOGGER.debug(
            "Missing statistics from %s to %s (last sum: %s)",
            hole.start,
            hole.end,
            hole.last_sum,
        )
        return hole


def scan_holes(
    store: StatisticsStore,
    meter: LinkyMeter,
    start_day: date | None = None,
    today: date | None = None,
) -> list[Hole]:
    """Return every hole of the meter's energy series without writing."""
    return list(GapScanner(store, meter, start_day, today))
