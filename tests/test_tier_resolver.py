"""
Tier resolution tests: graduated pricing, fallback rows and schedule validation.
"""
import pytest

from pricing_simulator.engine.models import PricingTier
from pricing_simulator.engine.tier_resolver import (
    FALLBACK_TIER_ID,
    average_unit_price,
    covers,
    effective_unit_price,
    format_tier_range,
    resolve_item,
    resolve_tiers,
    tier_total,
    validate_tiers,
)


def tier(tier_id, lo, hi, price):
    return PricingTier(id=tier_id, name=tier_id, min_quantity=lo, max_quantity=hi, unit_price=price)


@pytest.fixture
def two_tiers():
    return [tier('t1', 1, 100, 2.0), tier('t2', 101, None, 1.0)]


def test_graduated_split_across_tiers(two_tiers):
    """150 units over [1-100 @ 2, 101+ @ 1] costs 200 + 50."""
    breakdown = resolve_tiers(150, two_tiers)

    assert [t.tier_id for t in breakdown] == ['t1', 't2']
    assert [t.tier_quantity for t in breakdown] == [100, 50]
    assert tier_total(breakdown) == pytest.approx(250.0)


def test_quantity_inside_first_tier(two_tiers):
    breakdown = resolve_tiers(50, two_tiers)

    assert len(breakdown) == 1
    assert breakdown[0].tier_total == pytest.approx(100.0)


@pytest.mark.parametrize("quantity", [0, -5])
def test_non_positive_quantity_gives_empty_breakdown(two_tiers, quantity):
    assert resolve_tiers(quantity, two_tiers) == []


def test_no_tiers_gives_empty_breakdown():
    assert resolve_tiers(10, []) == []


@pytest.mark.parametrize("quantity", [1, 100, 101, 1000, 12345.5])
def test_tier_quantities_sum_to_quantity(volume_tiers, quantity):
    breakdown = resolve_tiers(quantity, volume_tiers)
    assert sum(t.tier_quantity for t in breakdown) == pytest.approx(quantity)


def test_unsorted_tiers_are_ordered(two_tiers):
    breakdown = resolve_tiers(150, list(reversed(two_tiers)))
    assert [t.tier_id for t in breakdown] == ['t1', 't2']


def test_overflow_beyond_bounded_tiers_uses_fallback_price():
    bounded = [tier('a', 1, 10, 5.0), tier('b', 11, 20, 4.0)]

    breakdown = resolve_tiers(25, bounded, fallback_price=3.0)

    assert [t.tier_quantity for t in breakdown] == [10, 10, 5]
    assert breakdown[-1].tier_id == FALLBACK_TIER_ID
    assert breakdown[-1].tier_unit_price == 3.0
    assert tier_total(breakdown) == pytest.approx(50 + 40 + 15)


def test_overflow_without_fallback_price_uses_last_tier_rate():
    bounded = [tier('a', 1, 10, 5.0), tier('b', 11, 20, 4.0)]

    breakdown = resolve_tiers(25, bounded)

    assert breakdown[-1].tier_id == FALLBACK_TIER_ID
    assert breakdown[-1].tier_unit_price == 4.0


def test_tier_totals_are_monotonic(volume_tiers):
    totals = [tier_total(resolve_tiers(q, volume_tiers)) for q in range(0, 12001, 250)]
    assert totals == sorted(totals)


def test_resolve_item_only_for_tiered_items(make_item, volume_tiers):
    assert resolve_item(make_item('simple', 4.0), 10) == []
    assert len(resolve_item(make_item('tiered', 0.1, tiers=volume_tiers), 5000)) == 2


def test_effective_unit_price_uses_highest_applicable_tier(make_item, two_tiers):
    item = make_item('tiered', 9.0, tiers=two_tiers)

    assert effective_unit_price(item, 50) == 2.0
    assert effective_unit_price(item, 150) == 1.0
    assert effective_unit_price(item, 0) == 9.0
    assert effective_unit_price(make_item('simple', 4.0), 500) == 4.0


def test_average_unit_price(make_item, two_tiers):
    item = make_item('tiered', 9.0, tiers=two_tiers)
    assert average_unit_price(item, 150) == pytest.approx(250 / 150)


def test_format_tier_range():
    assert format_tier_range(tier('a', 1, 100, 1)) == "1 - 100"
    assert format_tier_range(tier('b', 101, None, 1)) == "101+"
    assert format_tier_range(tier('c', 1001, 10000, 1)) == "1,001 - 10,000"


def test_covers(two_tiers):
    bounded = [tier('a', 1, 10, 5.0)]

    assert covers(two_tiers, 1_000_000)
    assert covers(bounded, 10)
    assert not covers(bounded, 11)


class TestValidateTiers:

    def test_valid_schedule(self, volume_tiers):
        assert validate_tiers(volume_tiers) == []

    def test_empty_schedule(self):
        assert validate_tiers([]) == ["Tiered item has no tiers"]

    def test_overlap(self):
        errors = validate_tiers([tier('a', 1, 100, 2), tier('b', 50, None, 1)])
        assert any("overlaps" in e for e in errors)

    def test_gap(self):
        errors = validate_tiers([tier('a', 1, 100, 2), tier('b', 150, None, 1)])
        assert any("Gap" in e for e in errors)

    def test_unbounded_tier_must_be_last(self):
        errors = validate_tiers([tier('a', 1, None, 2), tier('b', 101, None, 1)])
        assert any("not the last tier" in e for e in errors)

    def test_last_tier_must_be_unbounded(self):
        errors = validate_tiers([tier('a', 1, 100, 2)])
        assert any("Last tier must be unbounded" in e for e in errors)

    def test_descending_order(self):
        errors = validate_tiers([tier('b', 101, None, 1), tier('a', 1, 100, 2)])
        assert any("ascending" in e for e in errors)

    def test_negative_values(self):
        errors = validate_tiers([tier('a', -1, 100, -2), tier('b', 101, None, 1)])
        assert any("minQuantity must be >= 0" in e for e in errors)
        assert any("unitPrice must be >= 0" in e for e in errors)

    def test_max_below_min(self):
        errors = validate_tiers([tier('a', 10, 5, 1), tier('b', 6, None, 1)])
        assert any("maxQuantity must be >= minQuantity" in e for e in errors)
