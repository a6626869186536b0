"""Store tests — mutation ordering, local-state consistency, queries.

Backends are in-memory fakes wrapped in ``Mock`` so every test can assert
whether a network call would have happened.
"""

from __future__ import annotations

import pytest

from fee_tiers.config import FeeFormula, RangeDraft
from fee_tiers.engine.store import RangeStore, filter_rules
from fee_tiers.errors import LastRuleError, RangeNotFoundError, RangeValidationError, RemoteError

COMMISSION = "delivery-boy-commission"
ORDER_FEE = "fee-settings"


def _draft(lo, hi, base=5.0, per_unit=1.0, label="Tier", active=True) -> RangeDraft:
    return RangeDraft(
        label=label, min=lo, max=hi, formula=FeeFormula(base=base, per_unit=per_unit), active=active,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Construction & queries
# ═══════════════════════════════════════════════════════════════════════════

class TestQueries:

    def test_missing_backend_rejected(self, commission, order_fee, backends):
        with pytest.raises(ValueError, match="fee-settings"):
            RangeStore([commission, order_fee], {COMMISSION: backends[COMMISSION]})

    def test_unknown_category(self, store):
        with pytest.raises(KeyError):
            store.list("tips")

    def test_categories_in_config_order(self, store):
        assert [c.key for c in store.categories] == [COMMISSION, ORDER_FEE]

    def test_list_sorted_by_min(self, store, fakes, rule_factory):
        fake = fakes[ORDER_FEE]
        for rule in (rule_factory("c", 200, None), rule_factory("a", 0, 100), rule_factory("b", 100, 200)):
            fake.rules[rule.id] = rule
        store.load(ORDER_FEE)
        assert [r.id for r in store.list(ORDER_FEE)] == ["a", "b", "c"]

    def test_listing_has_serial_numbers(self, seeded_store):
        rows = seeded_store.listing(COMMISSION)
        assert [(r.sl, r.id) for r in rows] == [(1, "near"), (2, "far")]
        assert rows[0].interval == "0 - 2"
        assert rows[1].interval == "2 - Unlimited"
        assert rows[0].formula == "20 + 15 × input"
        assert all(r.state == "viewing" for r in rows)

    def test_get_unknown_id(self, seeded_store):
        with pytest.raises(RangeNotFoundError):
            seeded_store.get(COMMISSION, "nope")

    def test_search_by_label_case_insensitive(self, seeded_store):
        assert [r.id for r in seeded_store.search(COMMISSION, "nEa")] == ["near"]

    def test_search_by_bound(self, seeded_store):
        assert [r.id for r in seeded_store.search(COMMISSION, "2")] == ["near", "far"]
        assert [r.id for r in seeded_store.search(COMMISSION, "0")] == ["near"]

    def test_search_by_status(self, rule_factory):
        rules = [rule_factory("a", 0, 1), rule_factory("b", 1, 2, active=False)]
        assert [r.id for r in filter_rules(rules, status=False)] == ["b"]
        assert [r.id for r in filter_rules(rules, "", status=True)] == ["a"]

    def test_load_all_fetches_every_category(self, store, backends):
        store.load_all()
        backends[COMMISSION].fetch.assert_called_once()
        backends[ORDER_FEE].fetch.assert_called_once()


# ═══════════════════════════════════════════════════════════════════════════
# Create
# ═══════════════════════════════════════════════════════════════════════════

class TestCreate:

    def test_create_first_range(self, store, backends):
        created = store.create(ORDER_FEE, _draft(0, 100, label="  Small orders "))
        assert created.id == "r1"
        assert created.label == "Small orders"
        assert store.list(ORDER_FEE) == [created]
        backends[ORDER_FEE].create.assert_called_once()

    def test_create_from_raw_form(self, store):
        created = store.create(ORDER_FEE, {
            "label": "Big", "min": "100", "max": "", "unbounded": True, "base": "0", "per_unit": "0",
        })
        assert created.max is None

    def test_adjacent_create_accepted(self, seeded_store):
        seeded_store.create(ORDER_FEE, _draft(0, 2))
        seeded_store.create(ORDER_FEE, _draft(2, 5))
        assert len(seeded_store.list(ORDER_FEE)) == 2

    def test_invalid_create_makes_no_backend_call(self, seeded_store, backends):
        before = seeded_store.list(COMMISSION)
        with pytest.raises(RangeValidationError):
            seeded_store.create(COMMISSION, _draft(1, 3))
        backends[COMMISSION].create.assert_not_called()
        assert seeded_store.list(COMMISSION) == before

    def test_unparseable_form_makes_no_backend_call(self, store, backends):
        with pytest.raises(RangeValidationError) as exc:
            store.create(ORDER_FEE, {"label": "x", "min": "abc", "max": "5", "base": "1", "per_unit": "1"})
        assert exc.value.by_field() == {"min": ["Minimum must be a number"]}
        backends[ORDER_FEE].create.assert_not_called()

    def test_remote_failure_leaves_state_unchanged(self, seeded_store, fakes):
        fakes[COMMISSION].fail_with = RemoteError("Database unavailable", 500)
        before = seeded_store.list(COMMISSION)
        with pytest.raises(RemoteError, match="Database unavailable"):
            seeded_store.create(COMMISSION, _draft(10, 20))
        assert seeded_store.list(COMMISSION) == before

    def test_categories_are_independent(self, seeded_store):
        # [1, 3) overlaps "Near" in commissions but order fees are empty
        created = seeded_store.create(ORDER_FEE, _draft(1, 3))
        assert created in seeded_store.list(ORDER_FEE)


# ═══════════════════════════════════════════════════════════════════════════
# Update
# ═══════════════════════════════════════════════════════════════════════════

class TestUpdate:

    def test_unchanged_save_succeeds(self, seeded_store, backends):
        near = seeded_store.get(COMMISSION, "near")
        updated = seeded_store.update(COMMISSION, "near", near.to_draft())
        assert updated == near
        backends[COMMISSION].update.assert_called_once()

    def test_update_replaces_in_place(self, seeded_store):
        seeded_store.update(COMMISSION, "near", _draft(0, 2, base=25, per_unit=12, label="Near"))
        near = seeded_store.get(COMMISSION, "near")
        assert near.formula == FeeFormula(base=25, per_unit=12)
        assert [r.id for r in seeded_store.list(COMMISSION)] == ["near", "far"]

    def test_malformed_max_rejected_before_backend(self, seeded_store, backends):
        with pytest.raises(RangeValidationError) as exc:
            seeded_store.update(COMMISSION, "near", _draft(1.5, 1, label="Near"))
        assert exc.value.by_field() == {"max": ["Maximum must be greater than minimum"]}
        backends[COMMISSION].update.assert_not_called()
        assert seeded_store.get(COMMISSION, "near").max == 2

    def test_update_into_overlap_rejected(self, seeded_store, backends):
        with pytest.raises(RangeValidationError, match='"Far"'):
            seeded_store.update(COMMISSION, "near", _draft(0, 3, label="Near"))
        backends[COMMISSION].update.assert_not_called()

    def test_update_unknown_id(self, seeded_store, backends):
        with pytest.raises(RangeNotFoundError):
            seeded_store.update(COMMISSION, "ghost", _draft(50, 60))
        backends[COMMISSION].update.assert_not_called()

    def test_remote_failure_keeps_old_values(self, seeded_store, fakes):
        fakes[COMMISSION].fail_with = RemoteError()
        with pytest.raises(RemoteError):
            seeded_store.update(COMMISSION, "near", _draft(0, 1.5, label="Near"))
        assert seeded_store.get(COMMISSION, "near").max == 2


# ═══════════════════════════════════════════════════════════════════════════
# Delete & toggle
# ═══════════════════════════════════════════════════════════════════════════

class TestDelete:

    def test_delete_removes_range(self, seeded_store):
        seeded_store.delete(COMMISSION, "far")
        assert [r.id for r in seeded_store.list(COMMISSION)] == ["near"]

    def test_last_rule_refused_without_backend_call(self, seeded_store, backends):
        seeded_store.delete(COMMISSION, "far")
        backends[COMMISSION].reset_mock()
        with pytest.raises(LastRuleError, match="At least one rule must exist"):
            seeded_store.delete(COMMISSION, "near")
        backends[COMMISSION].delete.assert_not_called()
        assert len(seeded_store.list(COMMISSION)) == 1

    def test_last_rule_allowed_when_category_may_be_empty(self, store):
        created = store.create(ORDER_FEE, _draft(0, None))
        store.delete(ORDER_FEE, created.id)
        assert store.list(ORDER_FEE) == []

    def test_inactive_range_can_always_be_deleted(self, seeded_store):
        seeded_store.toggle_active(COMMISSION, "far")
        seeded_store.delete(COMMISSION, "far")
        assert [r.id for r in seeded_store.list(COMMISSION)] == ["near"]

    def test_remote_failure_keeps_range(self, seeded_store, fakes):
        fakes[COMMISSION].fail_with = RemoteError()
        with pytest.raises(RemoteError):
            seeded_store.delete(COMMISSION, "far")
        assert len(seeded_store.list(COMMISSION)) == 2

    def test_delete_unknown_id(self, seeded_store, backends):
        with pytest.raises(RangeNotFoundError):
            seeded_store.delete(COMMISSION, "ghost")
        backends[COMMISSION].delete.assert_not_called()


    def test_can_delete_follows_active_ranges(self, seeded_store):
        assert seeded_store.can_delete(COMMISSION, "near")
        seeded_store.toggle_active(COMMISSION, "far")
        assert not seeded_store.can_delete(COMMISSION, "near")
        assert seeded_store.can_delete(COMMISSION, "far")

    def test_single_inactive_range_can_be_deleted(self, store):
        created = store.create(COMMISSION, _draft(0, None, active=False))
        assert store.can_delete(COMMISSION, created.id)
        store.delete(COMMISSION, created.id)
        assert store.list(COMMISSION) == []


class TestToggle:

    def test_toggle_flips_flag(self, seeded_store, backends):
        off = seeded_store.toggle_active(COMMISSION, "far")
        assert off.active is False
        backends[COMMISSION].set_status.assert_called_once_with("far", False)
        on = seeded_store.toggle_active(COMMISSION, "far")
        assert on.active is True

    def test_reactivation_skips_overlap_check(self, seeded_store):
        seeded_store.toggle_active(COMMISSION, "far")
        # [3, 10) only conflicts with "Far" while "Far" is active
        seeded_store.create(COMMISSION, _draft(3, 10, label="Mid"))
        rule = seeded_store.toggle_active(COMMISSION, "far")
        assert rule.active is True

    def test_remote_failure_keeps_flag(self, seeded_store, fakes):
        fakes[COMMISSION].fail_with = RemoteError()
        with pytest.raises(RemoteError):
            seeded_store.toggle_active(COMMISSION, "far")
        assert seeded_store.get(COMMISSION, "far").active is True


# ═══════════════════════════════════════════════════════════════════════════
# Set invariant across a mixed edit session
# ═══════════════════════════════════════════════════════════════════════════

def test_no_active_overlap_after_mixed_session(store):
    steps = [
        ("create", None, _draft(0, 2, label="A")),
        ("create", None, _draft(1, 3, label="overlaps A")),
        ("create", None, _draft(2, 5, label="B")),
        ("create", None, _draft(4, None, label="overlaps B")),
        ("create", None, _draft(5, None, label="C")),
        ("create", None, _draft(8, None, label="second unlimited")),
        ("update", "A", _draft(0, 3, label="A")),
        ("update", "A", _draft(0, 1.5, label="A")),
        ("update", "B", _draft(1.5, 5, label="B")),
        ("create", None, _draft(3, 4, label="inside B", active=False)),
        ("update", "C", _draft(5, 9, label="C")),
        ("create", None, _draft(9, None, label="D")),
    ]
    ids: dict[str, str] = {}
    rejected = 0
    for action, target, draft in steps:
        try:
            if action == "create":
                ids[draft.label] = store.create(COMMISSION, draft).id
            else:
                store.update(COMMISSION, ids[target], draft)
        except RangeValidationError:
            rejected += 1

    assert rejected == 5
    active = [r for r in store.list(COMMISSION) if r.active]
    for i, a in enumerate(active):
        for b in active[i + 1:]:
            assert not a.overlaps(b), f"{a.interval_text()} overlaps {b.interval_text()}"
    assert [r.interval_text() for r in active] == ["0 - 1.5", "1.5 - 5", "5 - 9", "9 - Unlimited"]
