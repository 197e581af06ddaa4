"""Fixtures for Linky tests."""

from collections.abc import Generator
from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from homeassistant.const import CONF_API_TOKEN, CONF_NAME
from homeassistant.core import HomeAssistant

from custom_components.linky.const import CONF_PRM, CONF_PRODUCTION
from custom_components.linky.scanner import day_start
from custom_components.linky.store import (
    LinkyMeter,
    StatisticsStoreError,
    StatPoint,
)

pytest_plugins = "pytest_homeassistant_custom_component"

PRM = "01234567890123"


@pytest.fixture(autouse=True)
def mock_recorder(hass: HomeAssistant) -> None:
    """
    Automatically mock recorder for all tests.

    This avoids the 'assert not [True]' error by preventing
    the real recorder component from trying to initialize
    a database after 'hass' has already started.
    """
    with (
        patch("homeassistant.components.recorder.get_instance"),
        patch("homeassistant.components.recorder.async_setup", return_value=True),
    ):
        yield


@pytest.fixture(autouse=True)
def auto_enable_custom_integrations(enable_custom_integrations: None) -> None:
    """Enable custom integrations in all tests."""
    return


@pytest.fixture(autouse=True)
def expected_lingering_timers() -> bool:
    """
    Temporary ability to bypass test failures.

    Parametrize to True to bypass the pytest failure.
    """
    return True


@pytest.fixture
def mock_setup_entry() -> Generator[AsyncMock]:
    """Override async_setup_entry."""
    with patch(
        "custom_components.linky.async_setup_entry", return_value=True
    ) as mock_setup_entry:
        yield mock_setup_entry


@pytest.fixture
def user_input() -> dict[str, str | bool]:
    """Return valid user input."""
    return {
        CONF_API_TOKEN: "test_token",
        CONF_PRM: PRM,
        CONF_NAME: "Linky",
        CONF_PRODUCTION: False,
    }


@pytest.fixture
def meter() -> LinkyMeter:
    """Return a consumption meter."""
    return LinkyMeter(prm=PRM, name="Linky", production=False)


class FakeStatisticsStore:
    """In-memory stand-in for the recorder statistics."""

    def __init__(self) -> None:
        self.points: dict[str, dict[date, StatPoint]] = {}
        self.queries: list[tuple[str, datetime, datetime]] = []
        self.imports: list[tuple[str, str, str, str | None, list]] = []
        self.adjustments: list[tuple[str, datetime, float, str]] = []
        self.cleared: list[list[str]] = []
        self.commits = 0
        self.failing_ids: set[str] = set()
        self.failing_imports: int | None = None

    def add_days(self, statistic_id: str, sums: dict[date, float]) -> None:
        """Store one point per day with the given cumulative sums."""
        series = self.points.setdefault(statistic_id, {})
        for day, value in sums.items():
            series[day] = StatPoint(start=day_start(day), sum=value, state=None)

    def add_range(
        self, statistic_id: str, first: date, last: date, start_sum: float = 0.0
    ) -> None:
        """Store days ``first`` to ``last`` inclusive, 10 Wh each."""
        day = first
        value = start_sum
        sums = {}
        while day <= last:
            value += 10.0
            sums[day] = value
            day += timedelta(days=1)
        self.add_days(statistic_id, sums)

    def sum_on(self, statistic_id: str, day: date) -> float:
        """Return the stored sum of one day."""
        return self.points[statistic_id][day].sum

    def statistics_during_period(
        self, statistic_id: str, start: datetime, end: datetime
    ) -> list[StatPoint]:
        self.queries.append((statistic_id, start, end))
        if statistic_id in self.failing_ids:
            raise StatisticsStoreError(f"{statistic_id} is broken")
        series = self.points.get(statistic_id, {})
        return sorted(
            (point for point in series.values() if start <= point.start < end),
            key=lambda point: point.start,
        )

    def last_statistic(self, statistic_id: str) -> StatPoint | None:
        series = self.points.get(statistic_id)
        if not series:
            return None
        return series[max(series)]

    def statistic_ids(self) -> set[str]:
        return set(self.points)

    def is_new_series(self, statistic_id: str) -> bool:
        return statistic_id not in self.points

    def import_statistics(self, statistic_id, name, unit, unit_class, points) -> None:
        if self.failing_imports is not None and len(self.imports) >= self.failing_imports:
            raise StatisticsStoreError("import rejected")
        self.imports.append((statistic_id, name, unit, unit_class, list(points)))
        series = self.points.setdefault(statistic_id, {})
        for point in points:
            series[point["start"].date()] = StatPoint(
                start=point["start"], sum=point["sum"], state=point["state"]
            )

    def adjust_sum(self, statistic_id, start_time, adjustment, unit) -> None:
        self.adjustments.append((statistic_id, start_time, adjustment, unit))
        series = self.points.get(statistic_id, {})
        for day, point in list(series.items()):
            if point.start >= start_time:
                series[day] = StatPoint(
                    start=point.start, sum=point.sum + adjustment, state=point.state
                )

    def clear_statistics(self, statistic_ids: list[str]) -> None:
        self.cleared.append(statistic_ids)
        for statistic_id in statistic_ids:
            self.points.pop(statistic_id, None)

    def wait_for_commit(self) -> None:
        self.commits += 1


@pytest.fixture
def store() -> FakeStatisticsStore:
    """Return an empty in-memory statistics store."""
    return FakeStatisticsStore()


@pytest.fixture
def mock_statistics_executor() -> Generator[MagicMock]:
    """Run recorder executor jobs inline."""

    async def _run(target, *args):
        return target(*args)

    with patch("custom_components.linky.coordinator.get_instance") as mock_get_instance:
        mock_get_instance.return_value.async_add_executor_job = AsyncMock(
            side_effect=_run
        )
        yield mock_get_instance
