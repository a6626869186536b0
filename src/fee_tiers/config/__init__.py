"""Configuration models — range rules, categories, runtime settings."""

from fee_tiers.config.rules import FeeFormula, RangeDraft, RangeRule
from fee_tiers.config.category import (
    DEFAULT_CATEGORIES,
    DELIVERY_COMMISSION,
    ORDER_VALUE_FEE,
    CategoryConfig,
)
from fee_tiers.config.settings import Settings, configure_logging

__all__ = [
    "FeeFormula",
    "RangeDraft",
    "RangeRule",
    "CategoryConfig",
    "DEFAULT_CATEGORIES",
    "DELIVERY_COMMISSION",
    "ORDER_VALUE_FEE",
    "Settings",
    "configure_logging",
]
