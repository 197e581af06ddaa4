"""Support for linky sensors."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime

from homeassistant.components.sensor import (
    SensorDeviceClass,
    SensorEntity,
    SensorEntityDescription,
)
from homeassistant.const import EntityCategory, UnitOfEnergy
from homeassistant.core import HomeAssistant
from homeassistant.helpers.device_registry import DeviceEntryType, DeviceInfo
from homeassistant.helpers.entity_platform import AddConfigEntryEntitiesCallback
from homeassistant.helpers.typing import StateType
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .const import DOMAIN
from .coordinator import LinkyConfigEntry, LinkyCoordinator, LinkyData

# Coordinator is used to centralize the data updates
PARALLEL_UPDATES = 0


@dataclass(frozen=True, kw_only=True)
class LinkyEntityDescription(SensorEntityDescription):
    """Class describing linky sensors entities."""

    value_fn: Callable[[LinkyData], StateType | date | datetime]


SENSORS: tuple[LinkyEntityDescription, ...] = (
    # No state class: the long-term statistics come from the external series.
    LinkyEntityDescription(
        key="last_reading",
        translation_key="last_reading",
        device_class=SensorDeviceClass.ENERGY,
        native_unit_of_measurement=UnitOfEnergy.WATT_HOUR,
        value_fn=lambda data: data.last_reading.value if data.last_reading else None,
    ),
    LinkyEntityDescription(
        key="last_reading_date",
        translation_key="last_reading_date",
        device_class=SensorDeviceClass.DATE,
        entity_category=EntityCategory.DIAGNOSTIC,
        value_fn=lambda data: data.last_reading.date if data.last_reading else None,
    ),
    LinkyEntityDescription(
        key="filled_days",
        translation_key="filled_days",
        entity_category=EntityCategory.DIAGNOSTIC,
        value_fn=lambda data: data.filled_days,
    ),
    LinkyEntityDescription(
        key="last_updated",
        translation_key="last_updated",
        device_class=SensorDeviceClass.TIMESTAMP,
        entity_category=EntityCategory.DIAGNOSTIC,
        value_fn=lambda data: data.last_updated,
    ),
)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: LinkyConfigEntry,
    async_add_entities: AddConfigEntryEntitiesCallback,
) -> None:
    """Set up the linky sensor."""
    coordinator = entry.runtime_data
    meter = coordinator.meter

    # Device per meter and direction
    device_id = f"{DOMAIN}_{meter.prm}_{'production' if meter.production else 'consumption'}"
    device = DeviceInfo(
        identifiers={(DOMAIN, device_id)},
        name=meter.name,
        manufacturer="Enedis",
        model="Linky",
        entry_type=DeviceEntryType.SERVICE,
    )

    async_add_entities(
        LinkySensor(coordinator, description, device, device_id)
        for description in SENSORS
    )


class LinkySensor(CoordinatorEntity[LinkyCoordinator], SensorEntity):
    """Representation of a linky sensor."""

    _attr_has_entity_name = True
    entity_description: LinkyEntityDescription

    def __init__(
        self,
        coordinator: LinkyCoordinator,
        description: LinkyEntityDescription,
        device: DeviceInfo,
        device_id: str,
    ) -> None:
        """Initialize the sensor."""
        super().__init__(coordinator)
        self.entity_description = description
        self._attr_unique_id = f"{device_id}_{description.key}"
        self._attr_device_info = device

    @property
    def native_value(self) -> StateType | date | datetime:
        """Return the state."""
        return self.entity_description.value_fn(self.coordinator.data)
