"""Fee resolution — price one input against a range set.

Pure and deterministic: the same rules and input always give the same
``Resolution``.  Rounding goes through ``Decimal`` with ROUND_HALF_UP so that
binary-float artefacts (``2.675 → 2.67``) never leak into order pricing.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

import numpy as np

from fee_tiers.config.rules import RangeRule
from fee_tiers.models.results import Resolution

if TYPE_CHECKING:
    from fee_tiers.engine.store import RangeStore


def round_amount(amount: float | Decimal, decimals: int = 2) -> float:
    """Round half-up to ``decimals`` places, using the shortest repr of a float."""
    if not isinstance(amount, Decimal):
        amount = Decimal(repr(float(amount)))
    quantum = Decimal(1).scaleb(-decimals)
    return float(amount.quantize(quantum, rounding=ROUND_HALF_UP))


def find_range(rules: Iterable[RangeRule], value: float) -> RangeRule | None:
    """Return the active range whose ``[min, max)`` contains ``value``, if any."""
    for rule in sorted(rules, key=lambda r: r.min):
        if rule.active and rule.contains(value):
            return rule
    return None


def resolve(rules: Iterable[RangeRule], value: float, decimals: int = 2) -> Resolution | None:
    """Price ``value`` with the matching range's formula.

    Returns ``None`` when no active range contains ``value`` (a gap, an empty
    set, or a negative / non-finite input).  Callers decide the fallback.
    """
    value = float(value)
    if not math.isfinite(value) or value < 0:
        return None
    rule = find_range(rules, value)
    if rule is None:
        return None
    amount = Decimal(repr(rule.formula.base)) + Decimal(repr(rule.formula.per_unit)) * Decimal(repr(value))
    return Resolution(
        amount=round_amount(amount, decimals),
        range_id=rule.id,
        label=rule.label,
        value=value,
    )


def resolve_category(store: RangeStore, category: str, value: float) -> Resolution | None:
    """Resolve against the store's current snapshot of ``category``."""
    cfg = store.category(category)
    return resolve(store.list(category), value, cfg.currency_decimals)


def fee_schedule(
    rules: Iterable[RangeRule],
    upper: float,
    points: int = 200,
    decimals: int = 2,
) -> tuple[np.ndarray, np.ndarray]:
    """Sample the piecewise schedule on ``[0, upper]`` for plotting.

    Inputs that fall in a gap map to NaN so the chart shows a break.
    """
    rules = list(rules)
    xs = np.linspace(0.0, upper, points)
    ys = np.full_like(xs, np.nan)
    for i, x in enumerate(xs):
        res = resolve(rules, float(x), decimals)
        if res is not None:
            ys[i] = res.amount
    return xs, ys
