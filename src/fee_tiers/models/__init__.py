"""Result models — validator, resolver and editor output contracts."""

from fee_tiers.models.results import FieldIssue, RangeRow, Resolution

__all__ = [
    "FieldIssue",
    "RangeRow",
    "Resolution",
]
