"""Engine — validation, storage and resolution of tiered ranges."""

from fee_tiers.engine.validator import check_draft, parse_draft, validate
from fee_tiers.engine.resolver import fee_schedule, find_range, resolve, resolve_category, round_amount
from fee_tiers.engine.store import RangeStore
from fee_tiers.engine.tabular import export_csv, read_drafts_csv, rules_to_frame

__all__ = [
    "check_draft",
    "parse_draft",
    "validate",
    "fee_schedule",
    "find_range",
    "resolve",
    "resolve_category",
    "round_amount",
    "RangeStore",
    "export_csv",
    "read_drafts_csv",
    "rules_to_frame",
]
