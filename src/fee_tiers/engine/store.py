"""Range store — ordered per-category range sets synchronised with the backend.

Every mutation follows the same order:

  1. validate locally (no network trip on failure)
  2. persist through the category's backend adapter
  3. only then touch local state

so a backend failure never leaves the local snapshot diverged from what was
actually saved.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from fee_tiers.api.client import RangeBackend, make_backend
from fee_tiers.config.category import CategoryConfig
from fee_tiers.config.rules import RangeDraft, RangeRule
from fee_tiers.config.settings import Settings
from fee_tiers.engine.validator import check_draft
from fee_tiers.errors import LastRuleError, RangeNotFoundError
from fee_tiers.models.results import RangeRow

logger = logging.getLogger(__name__)


def filter_rules(rules: Iterable[RangeRule], query: str = "", status: bool | None = None) -> list[RangeRule]:
    """Filter by label substring (case-insensitive) or exact bound value.

    A query that parses as a number also matches ranges whose ``min`` or
    ``max`` equals it.  ``status`` restricts to active/inactive ranges.
    """
    rules = list(rules)
    if status is not None:
        rules = [r for r in rules if r.active == status]
    query = query.strip().lower()
    if not query:
        return rules
    try:
        number = float(query)
    except ValueError:
        number = None
    return [
        r for r in rules
        if query in r.label.lower() or (number is not None and number in (r.min, r.max))
    ]


class RangeStore:
    """In-memory range sets, one per category, backed by remote adapters."""

    def __init__(self, categories: Iterable[CategoryConfig], backends: Mapping[str, RangeBackend]):
        self._categories = {cat.key: cat for cat in categories}
        missing = set(self._categories) - set(backends)
        if missing:
            raise ValueError(f"No backend configured for: {', '.join(sorted(missing))}")
        self._backends = dict(backends)
        self._rules: dict[str, list[RangeRule]] = {key: [] for key in self._categories}

    @classmethod
    def from_settings(cls, settings: Settings, session: Any | None = None) -> RangeStore:
        backends = {cat.key: make_backend(cat, settings, session) for cat in settings.categories}
        return cls(settings.categories, backends)

    # ── Queries ───────────────────────────────────────────────────────────

    @property
    def categories(self) -> list[CategoryConfig]:
        return list(self._categories.values())

    def category(self, key: str) -> CategoryConfig:
        try:
            return self._categories[key]
        except KeyError:
            raise KeyError(f"Unknown category '{key}'") from None

    def list(self, category: str) -> list[RangeRule]:
        """All ranges of ``category`` ordered by ``min`` (display order)."""
        self.category(category)
        return sorted(self._rules[category], key=lambda r: r.min)

    def listing(self, category: str) -> list[RangeRow]:
        """Display rows with 1-based serial numbers."""
        return [
            RangeRow(
                sl=i,
                id=rule.id,
                label=rule.label,
                interval=rule.interval_text(),
                formula=rule.formula.describe(),
                active=rule.active,
            )
            for i, rule in enumerate(self.list(category), start=1)
        ]

    def search(self, category: str, query: str = "", status: bool | None = None) -> list[RangeRule]:
        return filter_rules(self.list(category), query, status)

    def get(self, category: str, range_id: str) -> RangeRule:
        for rule in self.list(category):
            if rule.id == range_id:
                return rule
        raise RangeNotFoundError(category, range_id)

    # ── Mutations ─────────────────────────────────────────────────────────

    def load(self, category: str) -> list[RangeRule]:
        """Replace the local snapshot with what the backend holds."""
        self.category(category)
        rules = self._backends[category].fetch()
        self._rules[category] = rules
        logger.info("Loaded %d range(s) for %s", len(rules), category)
        return self.list(category)

    def load_all(self) -> None:
        for key in self._categories:
            self.load(key)

    def create(self, category: str, draft: RangeDraft | Mapping[str, Any]) -> RangeRule:
        clean = check_draft(draft, self.list(category))
        created = self._backends[category].create(clean)
        self._rules[category] = self._rules[category] + [created]
        logger.info("Created range %s (%s) in %s", created.id, created.interval_text(), category)
        return created

    def update(self, category: str, range_id: str, draft: RangeDraft | Mapping[str, Any]) -> RangeRule:
        self.get(category, range_id)
        clean = check_draft(draft, self.list(category), exclude_id=range_id)
        updated = self._backends[category].update(range_id, clean)
        self._replace(category, range_id, updated)
        logger.info("Updated range %s (%s) in %s", range_id, updated.interval_text(), category)
        return updated

    def can_delete(self, category: str, range_id: str) -> bool:
        """False when ``range_id`` is the last active rule of a category that needs one."""
        target = self.get(category, range_id)
        if not (self.category(category).requires_rule and target.active):
            return True
        return any(r.active and r.id != range_id for r in self._rules[category])

    def delete(self, category: str, range_id: str) -> None:
        if not self.can_delete(category, range_id):
            logger.warning("Refused to delete the last rule of %s", category)
            raise LastRuleError(category)
        self._backends[category].delete(range_id)
        self._rules[category] = [r for r in self._rules[category] if r.id != range_id]
        logger.info("Deleted range %s from %s", range_id, category)

    def toggle_active(self, category: str, range_id: str) -> RangeRule:
        """Flip ``active`` without overlap validation."""
        target = self.get(category, range_id)
        updated = self._backends[category].set_status(range_id, not target.active)
        self._replace(category, range_id, updated)
        logger.info("Range %s in %s is now %s", range_id, category, "active" if updated.active else "inactive")
        return updated

    def _replace(self, category: str, range_id: str, rule: RangeRule) -> None:
        self._rules[category] = [rule if r.id == range_id else r for r in self._rules[category]]
