"""Shared test fixtures — categories, sample range sets, in-memory backends."""

from __future__ import annotations

import itertools
from unittest.mock import Mock

import pytest

from fee_tiers.config import CategoryConfig, FeeFormula, RangeDraft, RangeRule
from fee_tiers.engine.store import RangeStore
from fee_tiers.errors import RemoteError


class FakeBackend:
    """In-memory stand-in for a backend adapter.

    Set ``fail_with`` to make every mutating call raise that RemoteError
    without changing the stored ranges.
    """

    def __init__(self, rules: list[RangeRule] | None = None):
        self.rules: dict[str, RangeRule] = {r.id: r for r in rules or []}
        self.fail_with: RemoteError | None = None
        self._ids = itertools.count(len(self.rules) + 1)

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def fetch(self) -> list[RangeRule]:
        return list(self.rules.values())

    def create(self, draft: RangeDraft) -> RangeRule:
        self._maybe_fail()
        rule = RangeRule.from_draft(draft, f"r{next(self._ids)}")
        self.rules[rule.id] = rule
        return rule

    def update(self, range_id: str, draft: RangeDraft) -> RangeRule:
        self._maybe_fail()
        rule = RangeRule.from_draft(draft, range_id)
        self.rules[range_id] = rule
        return rule

    def delete(self, range_id: str) -> None:
        self._maybe_fail()
        del self.rules[range_id]

    def set_status(self, range_id: str, active: bool) -> RangeRule:
        self._maybe_fail()
        rule = self.rules[range_id].model_copy(update={"active": active})
        self.rules[range_id] = rule
        return rule


def make_rule(
    range_id: str,
    lo: float,
    hi: float | None,
    base: float = 0.0,
    per_unit: float = 0.0,
    label: str | None = None,
    active: bool = True,
) -> RangeRule:
    return RangeRule(
        id=range_id,
        label=label or f"Tier {range_id}",
        min=lo,
        max=hi,
        formula=FeeFormula(base=base, per_unit=per_unit),
        active=active,
    )


@pytest.fixture
def commission() -> CategoryConfig:
    return CategoryConfig(
        key="delivery-boy-commission",
        title="Delivery Boy Commission",
        input_label="Distance (km)",
        persistence="rows",
        requires_rule=True,
    )


@pytest.fixture
def order_fee() -> CategoryConfig:
    return CategoryConfig(
        key="fee-settings",
        title="Delivery Fee by Order Value",
        input_label="Order value",
        persistence="document",
        requires_rule=False,
    )


@pytest.fixture
def two_tier_rules() -> list[RangeRule]:
    """[0,2) → 20 + 15×d, [2,∞) → 10 + 8×d."""
    return [
        make_rule("near", 0, 2, base=20, per_unit=15, label="Near"),
        make_rule("far", 2, None, base=10, per_unit=8, label="Far"),
    ]


@pytest.fixture
def rule_factory():
    return make_rule


@pytest.fixture
def fakes() -> dict[str, FakeBackend]:
    return {
        "delivery-boy-commission": FakeBackend(),
        "fee-settings": FakeBackend(),
    }


@pytest.fixture
def backends(fakes: dict[str, FakeBackend]) -> dict[str, Mock]:
    """Backends wrapped in Mock so tests can assert on call counts."""
    return {key: Mock(wraps=fake) for key, fake in fakes.items()}


@pytest.fixture
def store(commission: CategoryConfig, order_fee: CategoryConfig, backends: dict[str, Mock]) -> RangeStore:
    return RangeStore([commission, order_fee], backends)


@pytest.fixture
def seeded_store(
    store: RangeStore,
    fakes: dict[str, FakeBackend],
    backends: dict[str, Mock],
    two_tier_rules: list[RangeRule],
) -> RangeStore:
    """Store whose commission category already holds the two-tier schedule."""
    fake = fakes["delivery-boy-commission"]
    for rule in two_tier_rules:
        fake.rules[rule.id] = rule
    store.load("delivery-boy-commission")
    backends["delivery-boy-commission"].reset_mock()
    return store
