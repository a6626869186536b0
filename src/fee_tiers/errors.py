"""Error taxonomy — local validation/policy failures vs. backend failures.

``RangeValidationError`` and ``LastRuleError`` are raised before any network
trip and are always recoverable by correcting the form.  ``RemoteError`` wraps
every failure of the persistence backend (transport, timeout, non-2xx,
``success: false``).
"""

from __future__ import annotations

from fee_tiers.models.results import FieldIssue


class FeeTiersError(Exception):
    """Base class for all errors raised by this package."""


class RangeValidationError(FeeTiersError):
    """One or more field-level problems with a candidate range."""

    def __init__(self, issues: list[FieldIssue]):
        self.issues = list(issues)
        super().__init__("; ".join(issue.message for issue in self.issues))

    def by_field(self) -> dict[str, list[str]]:
        """Group messages by form field, preserving report order."""
        grouped: dict[str, list[str]] = {}
        for issue in self.issues:
            grouped.setdefault(issue.field, []).append(issue.message)
        return grouped


class LastRuleError(FeeTiersError):
    """Refusal to delete the only remaining rule of a category that needs one."""

    def __init__(self, category: str):
        self.category = category
        super().__init__(
            f"Cannot delete the only rule in '{category}'. At least one rule must exist."
        )


class RangeNotFoundError(FeeTiersError):
    """No range with the given id in the local snapshot of a category."""

    def __init__(self, category: str, range_id: str):
        self.category = category
        self.range_id = range_id
        super().__init__(f"Range '{range_id}' not found in '{category}'")


class RemoteError(FeeTiersError):
    """The persistence backend rejected a request or could not be reached."""

    GENERIC_MESSAGE = "Request to the pricing backend failed"

    def __init__(self, message: str | None = None, status_code: int | None = None):
        self.message = message or self.GENERIC_MESSAGE
        self.status_code = status_code
        super().__init__(self.message)
