"""Range rules — one tier of a piecewise fee/commission schedule.

Bounds and formula values are deliberately unconstrained at the model level:
the validator reports every out-of-range value per field instead of the model
refusing to construct on the first one.
"""

from __future__ import annotations

import math

from pydantic import BaseModel, Field


class FeeFormula(BaseModel):
    """Linear formula applied to the input that fell inside a range."""

    base: float = Field(default=0.0, description="Flat amount charged for any input in the range")
    per_unit: float = Field(default=0.0, description="Amount per unit of input (per km, per currency unit)")

    def apply(self, value: float) -> float:
        return self.base + self.per_unit * value

    def describe(self) -> str:
        return f"{format_number(self.base)} + {format_number(self.per_unit)} × input"


class RangeDraft(BaseModel):
    """A parsed candidate range, before the backend has assigned an id."""

    label: str = Field(default="", description="Human-readable name of the tier")
    min: float = Field(default=0.0, description="Inclusive lower bound")
    max: float | None = Field(
        default=None,
        description="Exclusive upper bound. None = no upper bound (+∞).",
    )
    formula: FeeFormula = Field(default_factory=FeeFormula)
    active: bool = Field(default=True, description="Inactive ranges are kept but never resolved")

    @property
    def upper(self) -> float:
        """Upper bound with the unbounded sentinel mapped to +∞."""
        return math.inf if self.max is None else self.max

    @property
    def unbounded(self) -> bool:
        return self.max is None

    def overlaps(self, other: RangeDraft) -> bool:
        """Half-open interval intersection: adjacent tiers do not overlap."""
        return self.min < other.upper and other.min < self.upper

    def contains(self, value: float) -> bool:
        return self.min <= value < self.upper

    def interval_text(self) -> str:
        upper = "Unlimited" if self.max is None else format_number(self.max)
        return f"{format_number(self.min)} - {upper}"


class RangeRule(RangeDraft):
    """A persisted range.  ``id`` is assigned by the backend."""

    id: str | None = Field(default=None, description="Opaque backend identifier")

    @classmethod
    def from_draft(cls, draft: RangeDraft, range_id: str | None = None) -> RangeRule:
        return cls(id=range_id, **draft.model_dump())

    def to_draft(self) -> RangeDraft:
        return RangeDraft(**self.model_dump(exclude={"id"}))


def format_number(value: float) -> str:
    """Drop a trailing ``.0`` so whole numbers read naturally in the table."""
    return str(int(value)) if float(value).is_integer() else f"{value}"
