"""Range editor state — the part of the dashboard that has behaviour.

Kept free of Streamlit so it can be driven directly from tests.  Per row:

    viewing ──begin_edit──▶ editing ──save──▶ saving ──ok──▶ viewing
                               ▲                 │
                               └──── errors ─────┘
    editing ──cancel──▶ viewing

At most one row (or the "new range" row) is editing at a time.  Switching to
another row while the current draft has unsaved changes needs an explicit
``confirm_discard=True``; nothing is ever autosaved.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from fee_tiers.config.rules import RangeRule, format_number
from fee_tiers.engine.resolver import resolve
from fee_tiers.engine.store import RangeStore
from fee_tiers.errors import LastRuleError, RangeNotFoundError, RangeValidationError, RemoteError
from fee_tiers.models.results import RangeRow, Resolution

logger = logging.getLogger(__name__)

NEW_ROW = "__new__"

RowState = Literal["viewing", "editing", "saving"]


def empty_form() -> dict[str, Any]:
    return {
        "label": "",
        "min": "",
        "max": "",
        "unbounded": False,
        "base": "",
        "per_unit": "",
        "active": True,
    }


def form_from_rule(rule: RangeRule) -> dict[str, Any]:
    """Pre-fill the edit form with a saved range, as text fields."""
    return {
        "label": rule.label,
        "min": format_number(rule.min),
        "max": "" if rule.max is None else format_number(rule.max),
        "unbounded": rule.max is None,
        "base": format_number(rule.formula.base),
        "per_unit": format_number(rule.formula.per_unit),
        "active": rule.active,
    }


class RangeEditor:
    """Create/edit/delete workflow for one category of a ``RangeStore``."""

    def __init__(self, store: RangeStore, category: str):
        self.store = store
        self.category = category
        self.editing_id: str | None = None
        self.form: dict[str, Any] = empty_form()
        self._pristine: dict[str, Any] = empty_form()
        self.field_errors: dict[str, list[str]] = {}
        self.notice: str | None = None
        self.notice_level: Literal["success", "error"] = "success"
        self.busy = False

    # ── State queries ──────────────────────────────────────────────────────

    @property
    def is_dirty(self) -> bool:
        return self.editing_id is not None and self.form != self._pristine

    def state_of(self, row_id: str | None) -> RowState:
        if row_id is None or row_id != self.editing_id:
            return "viewing"
        return "saving" if self.busy else "editing"

    def rows(self) -> list[RangeRow]:
        """Table rows sorted by ``min``, each tagged with its editor state."""
        return [
            row.model_copy(update={"state": self.state_of(row.id)})
            for row in self.store.listing(self.category)
        ]

    # ── Transitions ────────────────────────────────────────────────────────

    def load(self) -> bool:
        try:
            self.store.load(self.category)
        except RemoteError as exc:
            self._error(exc.message)
            return False
        return True

    def begin_create(self, confirm_discard: bool = False) -> bool:
        return self._enter(NEW_ROW, empty_form(), confirm_discard)

    def begin_edit(self, range_id: str, confirm_discard: bool = False) -> bool:
        try:
            rule = self.store.get(self.category, range_id)
        except RangeNotFoundError as exc:
            self._error(str(exc))
            return False
        return self._enter(range_id, form_from_rule(rule), confirm_discard)

    def _enter(self, row_id: str, form: dict[str, Any], confirm_discard: bool) -> bool:
        if self.busy:
            return False
        if self.editing_id not in (None, row_id) and self.is_dirty and not confirm_discard:
            return False
        if self.editing_id is not None and self.editing_id != row_id and self.is_dirty:
            logger.info("Discarded unsaved draft for %s", self.editing_id)
        self.editing_id = row_id
        self.form = dict(form)
        self._pristine = dict(form)
        self.field_errors = {}
        return True

    def set_field(self, name: str, value: Any) -> None:
        if name not in self.form:
            raise KeyError(f"Unknown form field '{name}'")
        self.form[name] = value
        self.field_errors.pop(name, None)

    def cancel(self) -> None:
        if self.busy:
            return
        self._reset()

    def save(self) -> RangeRule | None:
        """Submit the open draft.  Returns the saved range, or ``None`` on failure.

        Validation problems land in ``field_errors``; backend failures land in
        ``notice``.  Either way the form keeps the rejected draft.
        """
        if self.editing_id is None or self.busy:
            return None
        self.busy = True
        self.field_errors = {}
        try:
            if self.editing_id == NEW_ROW:
                saved = self.store.create(self.category, self.form)
            else:
                saved = self.store.update(self.category, self.editing_id, self.form)
        except RangeValidationError as exc:
            self.field_errors = exc.by_field()
            return None
        except (RemoteError, RangeNotFoundError) as exc:
            self._error(str(exc))
            return None
        finally:
            self.busy = False
        created = self.editing_id == NEW_ROW
        self._reset()
        self._success(f"Range {'created' if created else 'updated'} successfully")
        return saved

    def delete(self, range_id: str) -> bool:
        if self.busy:
            return False
        self.busy = True
        try:
            self.store.delete(self.category, range_id)
        except (LastRuleError, RemoteError, RangeNotFoundError) as exc:
            self._error(str(exc))
            return False
        finally:
            self.busy = False
        if self.editing_id == range_id:
            self._reset()
        self._success("Range deleted successfully")
        return True

    def toggle(self, range_id: str) -> bool:
        if self.busy:
            return False
        self.busy = True
        try:
            rule = self.store.toggle_active(self.category, range_id)
        except (RemoteError, RangeNotFoundError) as exc:
            self._error(str(exc))
            return False
        finally:
            self.busy = False
        self._success(f"Range is now {'active' if rule.active else 'inactive'}")
        return True

    def preview(self, value: float) -> Resolution | None:
        cfg = self.store.category(self.category)
        return resolve(self.store.list(self.category), value, cfg.currency_decimals)

    def take_notice(self) -> tuple[str, str] | None:
        """Pop the pending notification (shown once, then cleared)."""
        if self.notice is None:
            return None
        notice, self.notice = self.notice, None
        return self.notice_level, notice

    # ── Internals ──────────────────────────────────────────────────────────

    def _reset(self) -> None:
        self.editing_id = None
        self.form = empty_form()
        self._pristine = empty_form()
        self.field_errors = {}

    def _error(self, message: str) -> None:
        self.notice, self.notice_level = message, "error"

    def _success(self, message: str) -> None:
        self.notice, self.notice_level = message, "success"
