"""Persistence adapters — the remote side of ``RangeStore``.

Two shapes of the same concept are served by the admin backend:

  * ``RowBackend``      — one REST resource per range
                          (``GET/POST /{category}``, ``PUT/DELETE /{category}/{id}``,
                          ``PATCH /{category}/{id}/status``)
  * ``DocumentBackend`` — the whole range array lives in one settings document
                          (``GET /{category}`` + ``PUT /{category}``)

Both speak the ``{success, data?, message?}`` envelope and raise
``RemoteError`` for transport failures, timeouts, non-2xx statuses and
``success: false`` bodies.  The ``session`` only needs a requests-compatible
``request(method, url, json=..., timeout=...)`` method, so a FastAPI
``TestClient`` can stand in for the network in tests.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any

import requests

from fee_tiers.config.category import CategoryConfig
from fee_tiers.config.rules import FeeFormula, RangeDraft, RangeRule, format_number
from fee_tiers.config.settings import Settings
from fee_tiers.errors import RemoteError

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Wire mapping
# ═══════════════════════════════════════════════════════════════════════════

def _first(doc: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in doc:
            return doc[key]
    return default


def rule_from_wire(doc: dict[str, Any]) -> RangeRule:
    """Normalise a backend record (row or document element) into a RangeRule.

    Accepts the generic names as well as the distance-commission names
    (``minDistance``, ``basePayout``, ``commissionPerKm``) and the flat
    ``fee`` of order-value ranges.
    """
    raw_id = _first(doc, "id", "_id")
    raw_max = _first(doc, "max", "maxDistance")
    return RangeRule(
        id=None if raw_id is None else str(raw_id),
        label=str(_first(doc, "label", "name", default="")),
        min=float(_first(doc, "min", "minDistance", default=0.0)),
        max=None if raw_max is None else float(raw_max),
        formula=FeeFormula(
            base=float(_first(doc, "base", "basePayout", "fee", default=0.0)),
            per_unit=float(_first(doc, "perUnit", "commissionPerKm", default=0.0)),
        ),
        active=bool(_first(doc, "active", "status", default=True)),
    )


def draft_to_wire(draft: RangeDraft) -> dict[str, Any]:
    """Request body for the row-per-range resource."""
    return {
        "name": draft.label,
        "min": draft.min,
        "max": draft.max,
        "basePayout": draft.formula.base,
        "perUnit": draft.formula.per_unit,
        "status": draft.active,
    }


def rule_to_element(rule: RangeRule) -> dict[str, Any]:
    """Array element stored inside the settings document."""
    return {
        "id": rule.id,
        "label": rule.label,
        "min": rule.min,
        "max": rule.max,
        "base": rule.formula.base,
        "perUnit": rule.formula.per_unit,
        "active": rule.active,
    }


# ═══════════════════════════════════════════════════════════════════════════
# Adapters
# ═══════════════════════════════════════════════════════════════════════════

class RangeBackend(ABC):
    """Remote persistence for the ranges of one category."""

    def __init__(
        self,
        category: CategoryConfig,
        base_url: str,
        session: Any | None = None,
        timeout: float = 10.0,
    ):
        self.category = category
        self.base_url = base_url.rstrip("/")
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout

    @property
    def collection_url(self) -> str:
        return f"{self.base_url}/{self.category.key}"

    def _request(self, method: str, url: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send one request and unwrap the ``{success, data, message}`` envelope."""
        try:
            resp = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.Timeout as exc:
            logger.warning("%s %s timed out after %ss", method, url, self.timeout)
            raise RemoteError(f"The pricing backend did not respond within {self.timeout:g}s") from exc
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise RemoteError(f"Could not reach the pricing backend: {exc}") from exc

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if resp.status_code >= 400 or not body.get("success", False):
            message = body.get("message")
            logger.warning("%s %s rejected (%s): %s", method, url, resp.status_code, message)
            raise RemoteError(message, status_code=resp.status_code)

        data = body.get("data")
        return data if isinstance(data, dict) else {}

    @abstractmethod
    def fetch(self) -> list[RangeRule]:
        ...

    @abstractmethod
    def create(self, draft: RangeDraft) -> RangeRule:
        ...

    @abstractmethod
    def update(self, range_id: str, draft: RangeDraft) -> RangeRule:
        ...

    @abstractmethod
    def delete(self, range_id: str) -> None:
        ...

    @abstractmethod
    def set_status(self, range_id: str, active: bool) -> RangeRule:
        ...


class RowBackend(RangeBackend):
    """One REST resource per range; the server assigns ids."""

    def fetch(self) -> list[RangeRule]:
        data = self._request("GET", self.collection_url)
        return [rule_from_wire(doc) for doc in data.get("rules", [])]

    def create(self, draft: RangeDraft) -> RangeRule:
        data = self._request("POST", self.collection_url, draft_to_wire(draft))
        return self._rule(data)

    def update(self, range_id: str, draft: RangeDraft) -> RangeRule:
        data = self._request("PUT", f"{self.collection_url}/{range_id}", draft_to_wire(draft))
        return self._rule(data)

    def delete(self, range_id: str) -> None:
        self._request("DELETE", f"{self.collection_url}/{range_id}")

    def set_status(self, range_id: str, active: bool) -> RangeRule:
        data = self._request("PATCH", f"{self.collection_url}/{range_id}/status", {"status": active})
        return self._rule(data)

    def _rule(self, data: dict[str, Any]) -> RangeRule:
        doc = data.get("rule")
        if not isinstance(doc, dict):
            raise RemoteError("The pricing backend returned no rule")
        rule = rule_from_wire(doc)
        if rule.id is None:
            raise RemoteError("The pricing backend returned a rule without an id")
        return rule


class DocumentBackend(RangeBackend):
    """The range array is one field of a settings document, saved whole.

    Array elements carry no server identity, so new ranges get a
    ``uuid4().hex`` id here that is written back with the save.  Legacy
    elements stored without an id are keyed by their lower bound, which is
    unique within a set and therefore stable across reloads.  Every mutation
    re-reads the document first so the other settings fields
    (``deliveryFee``, ``platformFee``, …) are sent back unchanged.
    """

    def _load_document(self) -> dict[str, Any]:
        data = self._request("GET", self.collection_url)
        settings = data.get("settings")
        return dict(settings) if isinstance(settings, dict) else {}

    def _rules(self, document: dict[str, Any]) -> list[RangeRule]:
        rules = []
        for element in document.get(self.category.document_field) or []:
            rule = rule_from_wire(element)
            if rule.id is None:
                rule = rule.model_copy(update={"id": f"min-{format_number(rule.min)}"})
            rules.append(rule)
        return rules

    def _save(self, document: dict[str, Any], rules: list[RangeRule]) -> list[RangeRule]:
        ordered = sorted(rules, key=lambda r: r.min)
        document[self.category.document_field] = [rule_to_element(r) for r in ordered]
        data = self._request("PUT", self.collection_url, document)
        saved = data.get("settings")
        if not isinstance(saved, dict):
            return ordered
        return self._rules(saved)

    def fetch(self) -> list[RangeRule]:
        return self._rules(self._load_document())

    def create(self, draft: RangeDraft) -> RangeRule:
        document = self._load_document()
        rule = RangeRule.from_draft(draft, uuid.uuid4().hex)
        saved = self._save(document, self._rules(document) + [rule])
        return _pick(saved, rule.id)

    def update(self, range_id: str, draft: RangeDraft) -> RangeRule:
        document = self._load_document()
        rules = self._rules(document)
        if not any(r.id == range_id for r in rules):
            raise RemoteError("Range not found", status_code=404)
        replaced = [RangeRule.from_draft(draft, range_id) if r.id == range_id else r for r in rules]
        return _pick(self._save(document, replaced), range_id)

    def delete(self, range_id: str) -> None:
        document = self._load_document()
        rules = self._rules(document)
        remaining = [r for r in rules if r.id != range_id]
        if len(remaining) == len(rules):
            raise RemoteError("Range not found", status_code=404)
        self._save(document, remaining)

    def set_status(self, range_id: str, active: bool) -> RangeRule:
        document = self._load_document()
        rules = self._rules(document)
        if not any(r.id == range_id for r in rules):
            raise RemoteError("Range not found", status_code=404)
        toggled = [r.model_copy(update={"active": active}) if r.id == range_id else r for r in rules]
        return _pick(self._save(document, toggled), range_id)


def _pick(rules: list[RangeRule], range_id: str | None) -> RangeRule:
    for rule in rules:
        if rule.id == range_id:
            return rule
    raise RemoteError("The pricing backend did not store the range")


def make_backend(category: CategoryConfig, settings: Settings, session: Any | None = None) -> RangeBackend:
    """Adapter for ``category`` according to its persistence shape."""
    if session is None:
        session = requests.Session()
        if settings.api_token:
            session.headers["Authorization"] = f"Bearer {settings.api_token}"
    cls = DocumentBackend if category.persistence == "document" else RowBackend
    return cls(category, settings.api_url, session=session, timeout=settings.timeout_seconds)
