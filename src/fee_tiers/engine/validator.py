"""Range validation — parse raw form input, then check it against the set.

Two stages share one reporting path:

  1. ``parse_draft`` turns raw field values (strings from a form, numbers, or
     ``None``) into a ``RangeDraft``; empty and non-numeric fields are reported
     per field.
  2. ``validate`` checks a parsed draft against the existing ranges of the
     category: well-formedness, overlap, duplicate lower bound, unbounded
     uniqueness.

Every violation is collected so the editor can show all problems at once.
``check_draft`` runs both stages and raises ``RangeValidationError``.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from typing import Any

from fee_tiers.config.rules import FeeFormula, RangeDraft, RangeRule, format_number
from fee_tiers.errors import RangeValidationError
from fee_tiers.models.results import FieldIssue

logger = logging.getLogger(__name__)

FIELD_NAMES: dict[str, str] = {
    "label": "Name",
    "min": "Minimum",
    "max": "Maximum",
    "base": "Base amount",
    "per_unit": "Per-unit rate",
}

_TRUE_STRINGS = ("true", "1", "yes", "on")


# ═══════════════════════════════════════════════════════════════════════════
# Stage 1 — parsing
# ═══════════════════════════════════════════════════════════════════════════

def parse_draft(form: Mapping[str, Any]) -> RangeDraft:
    """Parse raw form fields into a draft, raising on any unparseable field.

    Recognised keys: ``label``, ``min``, ``max``, ``unbounded``, ``base``,
    ``per_unit``, ``active``.  ``max`` is the unbounded sentinel when the
    ``unbounded`` flag is set or when ``max`` is ``None``; a blank string in
    ``max`` without the flag is reported as missing.
    """
    draft, issues = _parse(form)
    if issues:
        raise RangeValidationError(issues)
    return draft


def _parse(form: Mapping[str, Any]) -> tuple[RangeDraft | None, list[FieldIssue]]:
    issues: list[FieldIssue] = []

    min_value = _parse_number("min", form.get("min"), issues)

    if is_truthy(form.get("unbounded", False)):
        max_value = None
    elif form.get("max") is None:
        max_value = None
    else:
        max_value = _parse_number("max", form.get("max"), issues)

    base = _parse_number("base", form.get("base"), issues)
    per_unit = _parse_number("per_unit", form.get("per_unit"), issues)

    if issues:
        return None, issues

    return RangeDraft(
        label=str(form.get("label") or "").strip(),
        min=min_value,
        max=max_value,
        formula=FeeFormula(base=base, per_unit=per_unit),
        active=is_truthy(form.get("active", True)),
    ), issues


def _parse_number(field: str, raw: Any, issues: list[FieldIssue]) -> float | None:
    name = FIELD_NAMES[field]
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        issues.append(FieldIssue(field=field, message=f"{name} is required"))
        return None
    if isinstance(raw, bool):
        issues.append(FieldIssue(field=field, message=f"{name} must be a number"))
        return None
    try:
        if isinstance(raw, str):
            # Accept a decimal comma, as typed on most admin keyboards here.
            value = float(raw.strip().replace(",", "."))
        else:
            value = float(raw)
    except (TypeError, ValueError):
        issues.append(FieldIssue(field=field, message=f"{name} must be a number"))
        return None
    if not math.isfinite(value):
        issues.append(FieldIssue(field=field, message=f"{name} must be a number"))
        return None
    return value


def is_truthy(raw: Any) -> bool:
    if isinstance(raw, str):
        return raw.strip().lower() in _TRUE_STRINGS
    return bool(raw)


# ═══════════════════════════════════════════════════════════════════════════
# Stage 2 — business rules
# ═══════════════════════════════════════════════════════════════════════════

def validate(
    candidate: RangeDraft,
    existing: Iterable[RangeRule],
    exclude_id: str | None = None,
) -> list[FieldIssue]:
    """Check a candidate against the other ranges of its category.

    Returns every violation in rule order; an empty list means valid.
    ``exclude_id`` is the id of the range being edited, so that saving an
    unchanged range does not conflict with itself.
    """
    issues = _label_issues(candidate.label)

    well_formed = True
    if candidate.min < 0:
        issues.append(FieldIssue(field="min", message="Minimum must be 0 or greater"))
        well_formed = False
    if candidate.max is not None and candidate.max <= candidate.min:
        issues.append(FieldIssue(field="max", message="Maximum must be greater than minimum"))
        well_formed = False
    if candidate.formula.base < 0:
        issues.append(FieldIssue(field="base", message="Base amount must be 0 or greater"))
    if candidate.formula.per_unit < 0:
        issues.append(FieldIssue(field="per_unit", message="Per-unit rate must be 0 or greater"))

    others = [r for r in existing if exclude_id is None or r.id != exclude_id]

    # An ill-formed interval has no meaningful intersection with anything.
    if well_formed:
        for rule in others:
            if rule.active and candidate.overlaps(rule):
                issues.append(FieldIssue(
                    field="min",
                    message=(
                        f'Range overlaps with existing rule "{rule.label}" '
                        f"({rule.interval_text()}). Your range: {candidate.interval_text()}"
                    ),
                ))

    for rule in others:
        if rule.min == candidate.min:
            issues.append(FieldIssue(
                field="min",
                message=f'Minimum {format_number(candidate.min)} is already used by "{rule.label}"',
            ))

    if candidate.unbounded:
        for rule in others:
            if rule.active and rule.unbounded:
                issues.append(FieldIssue(
                    field="max",
                    message=f'Only one unlimited range is allowed; "{rule.label}" is already unlimited',
                ))

    return issues


def _label_issues(label: str) -> list[FieldIssue]:
    if not label.strip():
        return [FieldIssue(field="label", message="Name is required")]
    return []


def check_draft(
    candidate: RangeDraft | Mapping[str, Any],
    existing: Iterable[RangeRule],
    exclude_id: str | None = None,
) -> RangeDraft:
    """Parse (if needed) and validate; return the cleaned draft or raise."""
    if isinstance(candidate, RangeDraft):
        draft, issues = candidate, []
    else:
        draft, issues = _parse(candidate)

    if draft is None:
        issues = _label_issues(str(candidate.get("label") or "")) + issues
    else:
        issues = validate(draft, existing, exclude_id)

    if issues:
        logger.warning("Rejected range draft: %s", "; ".join(i.message for i in issues))
        raise RangeValidationError(issues)

    return draft.model_copy(update={"label": draft.label.strip()})
