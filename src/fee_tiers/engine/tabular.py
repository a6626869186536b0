"""Tabular import/export of range sets (CSV via pandas).

Export columns, in display order:
  sl, label, min, max, base, per_unit, active

``max`` is left blank for the unlimited range.  Import reads the same columns
(``sl`` optional) and returns drafts; rows that do not parse are skipped and
reported, and every imported draft still goes through ``RangeStore.create``.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path

import pandas as pd

from fee_tiers.config.rules import RangeDraft, RangeRule
from fee_tiers.engine.validator import parse_draft
from fee_tiers.errors import RangeValidationError

logger = logging.getLogger(__name__)

COLUMNS = ["sl", "label", "min", "max", "base", "per_unit", "active"]


def rules_to_frame(rules: list[RangeRule]) -> pd.DataFrame:
    """DataFrame in display order (by ``min``) with 1-based serial numbers."""
    ordered = sorted(rules, key=lambda r: r.min)
    rows = [
        {
            "sl": i,
            "label": r.label,
            "min": r.min,
            "max": r.max,
            "base": r.formula.base,
            "per_unit": r.formula.per_unit,
            "active": r.active,
        }
        for i, r in enumerate(ordered, start=1)
    ]
    return pd.DataFrame(rows, columns=COLUMNS)


def export_csv(rules: list[RangeRule]) -> str:
    return rules_to_frame(rules).to_csv(index=False)


def read_drafts_csv(source: str | Path | io.StringIO) -> tuple[list[RangeDraft], list[str]]:
    """Parse a CSV of ranges into drafts.

    Returns ``(drafts, problems)`` where ``problems`` holds one message per
    skipped row (``"row 3: Minimum must be a number"``).
    """
    if isinstance(source, io.StringIO):
        source.seek(0)
    frame = pd.read_csv(source, dtype=str, keep_default_na=False)
    frame.columns = [str(c).strip().lower() for c in frame.columns]

    drafts: list[RangeDraft] = []
    problems: list[str] = []
    for row_no, record in enumerate(frame.to_dict(orient="records"), start=1):
        form = {
            "label": record.get("label", ""),
            "min": record.get("min"),
            "max": record.get("max") or None,
            "base": record.get("base"),
            "per_unit": record.get("per_unit"),
            "active": record.get("active") or True,
        }
        try:
            drafts.append(parse_draft(form))
        except RangeValidationError as exc:
            problems.append(f"row {row_no}: {exc}")
    if problems:
        logger.warning("Skipped %d malformed row(s) while importing ranges", len(problems))
    return drafts, problems
