"""FastAPI reference backend — in-memory persistence for range sets.

Serves the admin contract the dashboard's ``RangeStore`` talks to, so the
editor can be run and tested without the production backend.

Run with:
    uvicorn fee_tiers.api.server:app --reload --port 8000

Or:
    python -m fee_tiers.api.server

Endpoints (``{category}`` is a configured category key):
    GET    /health                      — liveness probe
    GET    /                            — service info + configured categories
    GET    /{category}                  — list ranges (rows) or the settings document
    POST   /{category}                  — create a range (rows)
    PUT    /{category}                  — replace the whole settings document (document)
    PUT    /{category}/{range_id}       — update a range (rows)
    DELETE /{category}/{range_id}       — delete a range (rows)
    PATCH  /{category}/{range_id}/status — set active flag (rows)
    POST   /{category}/calculate        — price a value with the current ranges

Every response uses the ``{success, data?, message?}`` envelope.  Writes are
validated with the same rules as the client, as the production backend does.
"""

from __future__ import annotations

import logging
import uuid
from copy import deepcopy
from typing import Any

from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from fee_tiers.api.client import rule_to_element
from fee_tiers.config.category import DEFAULT_CATEGORIES, CategoryConfig
from fee_tiers.config.rules import RangeRule
from fee_tiers.config.settings import Settings, configure_logging
from fee_tiers.engine.resolver import resolve
from fee_tiers.engine.store import filter_rules
from fee_tiers.engine.validator import check_draft, is_truthy
from fee_tiers.errors import RangeValidationError

logger = logging.getLogger(__name__)

DEFAULT_DOCUMENT: dict[str, Any] = {
    "deliveryFee": 25,
    "freeDeliveryThreshold": 149,
    "platformFee": 5,
    "gstRate": 5,
    "isActive": True,
}


# ═══════════════════════════════════════════════════════════════════════════
# Request models
# ═══════════════════════════════════════════════════════════════════════════

class StatusRequest(BaseModel):
    """Body for PATCH /{category}/{range_id}/status."""
    status: bool | None = Field(
        default=None,
        description="New active flag. Omit to flip the current value.",
    )


class CalculateRequest(BaseModel):
    """Body for POST /{category}/calculate."""
    value: float = Field(description="Distance or order value to price")


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

def _ok(data: dict[str, Any] | None = None, message: str = "OK", status_code: int = 200) -> JSONResponse:
    body: dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    return JSONResponse(status_code=status_code, content=body)


def _fail(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def _form_from_wire(body: dict[str, Any]) -> dict[str, Any]:
    """Map the accepted wire names onto validator form fields."""

    def pick(*keys: str) -> Any:
        for key in keys:
            if key in body:
                return body[key]
        return None

    status = pick("status", "active")
    return {
        "label": pick("name", "label"),
        "min": pick("min", "minDistance"),
        "max": pick("max", "maxDistance"),
        "base": pick("basePayout", "base", "fee"),
        "per_unit": pick("perUnit", "commissionPerKm"),
        "active": True if status is None else status,
    }


def _rule_to_row(rule: RangeRule) -> dict[str, Any]:
    element = rule_to_element(rule)
    element["name"] = element.pop("label")
    element["basePayout"] = element.pop("base")
    element["status"] = element.pop("active")
    return element


# ═══════════════════════════════════════════════════════════════════════════
# App factory
# ═══════════════════════════════════════════════════════════════════════════

def create_app(categories: list[CategoryConfig] | None = None) -> FastAPI:
    """Build an app with its own empty in-memory state."""
    categories = list(categories or DEFAULT_CATEGORIES)
    by_key = {cat.key: cat for cat in categories}
    rows: dict[str, dict[str, RangeRule]] = {
        cat.key: {} for cat in categories if cat.persistence == "rows"
    }
    documents: dict[str, dict[str, Any]] = {
        cat.key: {**deepcopy(DEFAULT_DOCUMENT), cat.document_field: []}
        for cat in categories if cat.persistence == "document"
    }

    app = FastAPI(
        title="Fee Tiers Reference Backend",
        version="1.0",
        description="In-memory persistence for tiered commission and delivery-fee ranges.",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _document_rules(key: str) -> list[RangeRule]:
        cat = by_key[key]
        rules = []
        for element in documents[key].get(cat.document_field) or []:
            rules.append(RangeRule(
                id=element.get("id"),
                label=element.get("label", ""),
                min=element.get("min", 0.0),
                max=element.get("max"),
                formula={"base": element.get("base", 0.0), "per_unit": element.get("perUnit", 0.0)},
                active=element.get("active", True),
            ))
        return rules

    def _not_rows(key: str) -> JSONResponse:
        if key not in by_key:
            return _fail(404, f"Unknown category '{key}'")
        return _fail(400, f"'{key}' does not accept per-range operations")

    def _current_rules(key: str) -> list[RangeRule]:
        if key in rows:
            return list(rows[key].values())
        return _document_rules(key)

    @app.get("/health")
    def health_check():
        """Health check for deployment platforms."""
        return {"status": "ok"}

    @app.get("/")
    def root():
        return {
            "name": "Fee Tiers Reference Backend",
            "version": "1.0",
            "categories": [
                {"key": cat.key, "title": cat.title, "persistence": cat.persistence}
                for cat in categories
            ],
        }

    @app.get("/{category}")
    def list_rules(
        category: str,
        status: bool | None = Query(default=None, description="Only active (true) or inactive (false)"),
        search: str = Query(default="", description="Label substring or exact bound value"),
    ):
        if category not in by_key:
            return _fail(404, f"Unknown category '{category}'")
        if category in documents:
            return _ok({"settings": documents[category]}, "Fee settings retrieved successfully")
        matched = filter_rules(sorted(rows[category].values(), key=lambda r: r.min), search, status)
        payload = []
        for sl, rule in enumerate(matched, start=1):
            row = _rule_to_row(rule)
            row["sl"] = sl
            payload.append(row)
        return _ok({"rules": payload, "total": len(payload)}, "Rules retrieved successfully")

    @app.post("/{category}/calculate")
    def calculate(category: str, req: CalculateRequest):
        if category not in by_key:
            return _fail(404, f"Unknown category '{category}'")
        if req.value < 0:
            return _fail(400, "Valid value is required")
        result = resolve(_current_rules(category), req.value, by_key[category].currency_decimals)
        if result is None:
            return _fail(404, f"No active range covers {req.value:g}")
        return _ok(result.model_dump(), "Amount calculated successfully")

    @app.post("/{category}")
    def create_rule(category: str, body: dict[str, Any]):
        if category not in rows:
            return _not_rows(category)
        try:
            draft = check_draft(_form_from_wire(body), rows[category].values())
        except RangeValidationError as exc:
            return _fail(400, str(exc))
        rule = RangeRule.from_draft(draft, uuid.uuid4().hex)
        rows[category][rule.id] = rule
        logger.info("Stored range %s in %s", rule.id, category)
        return _ok({"rule": _rule_to_row(rule)}, "Rule created successfully", status_code=201)

    @app.put("/{category}")
    def replace_document(category: str, body: dict[str, Any]):
        if category not in documents:
            return _fail(404 if category not in by_key else 400,
                         f"'{category}' is not a settings document")
        field = by_key[category].document_field
        accepted: list[RangeRule] = []
        for element in body.get(field) or []:
            form = _form_from_wire({"perUnit": 0, **element})  # flat-fee elements carry no per-unit rate
            # An inactive element only conflicts through a duplicate minimum,
            # whatever order the array arrives in.
            others = accepted
            if not is_truthy(form["active"]):
                others = [r.model_copy(update={"active": False}) for r in accepted]
            try:
                draft = check_draft(form, others)
            except RangeValidationError as exc:
                return _fail(400, str(exc))
            accepted.append(RangeRule.from_draft(draft, element.get("id")))
        document = {**documents[category], **body}
        document[field] = [rule_to_element(r) for r in sorted(accepted, key=lambda r: r.min)]
        documents[category] = document
        logger.info("Stored %d range(s) in %s", len(accepted), category)
        return _ok({"settings": document}, "Fee settings saved successfully")

    @app.put("/{category}/{range_id}")
    def update_rule(category: str, range_id: str, body: dict[str, Any]):
        if category not in rows:
            return _not_rows(category)
        if range_id not in rows[category]:
            return _fail(404, "Rule not found")
        try:
            draft = check_draft(_form_from_wire(body), rows[category].values(), exclude_id=range_id)
        except RangeValidationError as exc:
            return _fail(400, str(exc))
        rule = RangeRule.from_draft(draft, range_id)
        rows[category][range_id] = rule
        return _ok({"rule": _rule_to_row(rule)}, "Rule updated successfully")

    @app.delete("/{category}/{range_id}")
    def delete_rule(category: str, range_id: str):
        if category not in rows:
            return _not_rows(category)
        if rows[category].pop(range_id, None) is None:
            return _fail(404, "Rule not found")
        return _ok(message="Rule deleted successfully")

    @app.patch("/{category}/{range_id}/status")
    def set_status(category: str, range_id: str, req: StatusRequest):
        if category not in rows:
            return _not_rows(category)
        rule = rows[category].get(range_id)
        if rule is None:
            return _fail(404, "Rule not found")
        active = (not rule.active) if req.status is None else req.status
        rule = rule.model_copy(update={"active": active})
        rows[category][range_id] = rule
        return _ok({"rule": _rule_to_row(rule)}, "Rule status updated successfully")

    return app


app = create_app()


# ═══════════════════════════════════════════════════════════════════════════
# CLI entry point
# ═══════════════════════════════════════════════════════════════════════════

def main():
    """Run the reference backend."""
    import uvicorn

    settings = Settings.from_env()
    configure_logging(settings.log_level)
    uvicorn.run(
        "fee_tiers.api.server:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )


if __name__ == "__main__":
    main()
