"""Result types — what the validator, resolver and editor hand back to callers."""

from __future__ import annotations

from pydantic import BaseModel


class FieldIssue(BaseModel):
    """One validation problem, attached to the form field that caused it."""

    field: str
    """Form field name: ``label``, ``min``, ``max``, ``base`` or ``per_unit``."""

    message: str
    """Human-readable message shown inline under the field."""


class Resolution(BaseModel):
    """Outcome of pricing one input against a range set."""

    amount: float
    """``base + per_unit × value``, rounded half-up to the currency precision."""

    range_id: str | None
    """Id of the matching range (``None`` only for unsaved ranges)."""

    label: str
    """Label of the matching range, for display next to the amount."""

    value: float
    """The input that was priced (distance or order value)."""


class RangeRow(BaseModel):
    """One display row of a range table (ordered by ``min``)."""

    sl: int
    """1-based serial number in display order."""

    id: str | None
    label: str
    interval: str
    """``"0 - 2"`` or ``"2 - Unlimited"``."""

    formula: str
    """``"20 + 15 × input"``."""

    active: bool
    state: str = "viewing"
    """Editor state of the row: ``viewing``, ``editing`` or ``saving``."""
