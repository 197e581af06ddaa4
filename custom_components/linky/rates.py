"""Cost calculation for linky statistics."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any

from homeassistant.components.recorder.models import StatisticData
from homeassistant.util import dt as dt_util

from .const import (
    CONF_COST_MODE,
    CONF_FIXED_RATE,
    COST_MODE_FIXED,
    COST_MODE_NONE,
    COST_MODE_TARIF_BLEU,
    DEFAULT_FIXED_RATE,
)


@dataclass(frozen=True)
class PricePeriod:
    """A price applying from ``start`` until the next period starts."""

    start: date
    price_per_kwh: float  # EUR/kWh, taxes included


@dataclass(frozen=True)
class PriceSchedule:
    """Regulated tariff whose price changes over time."""

    name: str
    periods: tuple[PricePeriod, ...]

    def price_on(self, day: date) -> float:
        """Return the price in force on ``day`` (0.0 before the first period)."""
        price = 0.0
        for period in self.periods:
            if period.start > day:
                break
            price = period.price_per_kwh
        return price


# EDF Tarif Bleu, Base option
TARIF_BLEU_BASE = PriceSchedule(
    name="Tarif Bleu - Base",
    periods=(
        PricePeriod(date(2023, 8, 1), 0.2276),
        PricePeriod(date(2024, 2, 1), 0.2516),
        PricePeriod(date(2025, 2, 1), 0.2016),
        PricePeriod(date(2025, 8, 1), 0.1952),
    ),
)

PRICE_SCHEDULE_REGISTRY: dict[str, PriceSchedule] = {
    COST_MODE_TARIF_BLEU: TARIF_BLEU_BASE,
}


@dataclass(frozen=True)
class CostConfig:
    """Resolved cost options of a config entry."""

    mode: str = COST_MODE_NONE
    fixed_rate: float = DEFAULT_FIXED_RATE

    @property
    def enabled(self) -> bool:
        """Whether a cost series should be maintained."""
        return self.mode != COST_MODE_NONE

    def price_on(self, day: date) -> float:
        """Return the EUR/kWh price for ``day``."""
        if self.mode == COST_MODE_FIXED:
            return self.fixed_rate
        if schedule := PRICE_SCHEDULE_REGISTRY.get(self.mode):
            return schedule.price_on(day)
        return 0.0


def resolve_cost_config(options: Mapping[str, Any]) -> CostConfig:
    """Return the cost configuration with consistent defaults."""
    return CostConfig(
        mode=options.get(CONF_COST_MODE, COST_MODE_NONE),
        fixed_rate=options.get(CONF_FIXED_RATE, DEFAULT_FIXED_RATE),
    )


def build_cost_mode_choices() -> dict[str, str]:
    """Return the cost modes offered in the config and options flows."""
    choices = {COST_MODE_NONE: "None", COST_MODE_FIXED: "Fixed Rate"}
    choices.update({key: schedule.name for key, schedule in PRICE_SCHEDULE_REGISTRY.items()})
    return choices


def compute_costs(
    stats: list[StatisticData],
    cost_config: CostConfig,
    last_cost: float,
) -> list[StatisticData]:
    """
    Price daily energy statistics.

    Args:
        stats: Daily energy statistics, ``state`` holding the day's Wh.
        cost_config: Pricing to apply.
        last_cost: Cumulative cost recorded before the first statistic.

    Returns:
        One cost statistic per energy statistic, with a running sum seeded
        from ``last_cost``.

    """
    if not cost_config.enabled:
        return []

    cost_sum = last_cost
    costs: list[StatisticData] = []
    for stat in stats:
        day = dt_util.as_local(stat["start"]).date()
        cost = (stat.get("state") or 0.0) / 1000 * cost_config.price_on(day)
        cost_sum += cost
        costs.append(StatisticData(start=stat["start"], state=cost, sum=cost_sum))
    return costs
