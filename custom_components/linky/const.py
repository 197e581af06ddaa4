"""Constants for the linky integration."""

from datetime import timedelta
from typing import Final

DOMAIN = "linky"
PRODUCTION_SOURCE = "linky_prod"
COMMON_NAME = "Linky"

CONF_PRM: Final = "prm"
CONF_PRODUCTION: Final = "production"

# Options keys for cost configuration
CONF_COST_MODE: Final = "cost_mode"
CONF_FIXED_RATE: Final = "fixed_rate"

# Cost mode options
COST_MODE_NONE: Final = "none"
COST_MODE_FIXED: Final = "fixed"
COST_MODE_TARIF_BLEU: Final = "tarif_bleu_base"

# Default cost values
DEFAULT_FIXED_RATE: Final = 0.1952  # EUR/kWh

ENERGY_UNIT: Final = "Wh"
COST_UNIT: Final = "EUR"

# Readings pulled on every refresh. The Conso API serves at most a year of
# daily data per request.
READINGS_LOOKBACK: Final = timedelta(days=365)

# Weekly blocks walked by the statistic locators.
BLOCK_DAYS: Final = 7
OLDEST_LOOKBACK_BLOCKS: Final = 3 * 51 + 1
LAST_LOOKBACK_BLOCKS: Final = 52

SERVICE_FILL_GAPS: Final = "fill_gaps"
SERVICE_FIND_GAPS: Final = "find_gaps"
SERVICE_PURGE: Final = "purge"

ATTR_CONFIG_ENTRY_ID: Final = "config_entry_id"
ATTR_START_DAY: Final = "start_day"
