import pytest

from pricing_simulator.engine.models import (
    BillingFrequency,
    DiscountType,
    GlobalDiscount,
    GlobalDiscountApplication,
)
from pricing_simulator.engine.summary import category_totals, round_money, summarize


@pytest.fixture
def setup_fee(make_item, make_selection):
    return make_selection(make_item('setup-fee', 500.0, BillingFrequency.ONE_TIME, category_id='setup'))


@pytest.fixture
def hosting(make_item, make_selection):
    return make_selection(make_item('hosting', 1000.0, BillingFrequency.MONTHLY, category_id='support'))


def test_monthly_scope_percentage_discount(setup_fee, hosting):
    """10% global discount on the monthly bucket only."""
    summary = summarize(
        [setup_fee, hosting], 10, DiscountType.PERCENTAGE, GlobalDiscountApplication.MONTHLY
    )

    assert summary.one_time_total == pytest.approx(500.0)
    assert summary.monthly_total == pytest.approx(900.0)
    assert summary.yearly_total == pytest.approx(10800.0)
    assert summary.total_project_cost == pytest.approx(11300.0)
    assert summary.global_discount_amount == pytest.approx(100.0)


def test_empty_selection_has_zero_savings_rate():
    summary = summarize([])

    assert summary.savings.original_price == 0
    assert summary.savings.savings_rate == 0
    assert summary.total_project_cost == 0
    assert summary.item_count == 0


def test_both_scope(setup_fee, hosting):
    summary = summarize([setup_fee, hosting], 10, DiscountType.PERCENTAGE, GlobalDiscountApplication.BOTH)

    assert summary.one_time_total == pytest.approx(450.0)
    assert summary.monthly_total == pytest.approx(900.0)


def test_fixed_amount_applies_in_full_per_bucket(setup_fee, hosting):
    summary = summarize([setup_fee, hosting], 100, DiscountType.FIXED, GlobalDiscountApplication.BOTH)

    assert summary.one_time_total == pytest.approx(400.0)
    assert summary.monthly_total == pytest.approx(900.0)


def test_onetime_scope_leaves_monthly_untouched(setup_fee, hosting):
    summary = summarize([setup_fee, hosting], 100, DiscountType.FIXED, GlobalDiscountApplication.ONETIME)

    assert summary.one_time_total == pytest.approx(400.0)
    assert summary.monthly_total == pytest.approx(1000.0)


def test_none_scope_ignores_amount(setup_fee, hosting):
    summary = summarize([setup_fee, hosting], 50, DiscountType.PERCENTAGE, GlobalDiscountApplication.NONE)

    assert summary.one_time_total == pytest.approx(500.0)
    assert summary.monthly_total == pytest.approx(1000.0)
    assert summary.global_discount_amount == 0


def test_global_discount_is_floored_at_zero(setup_fee, hosting):
    summary = summarize([setup_fee, hosting], 5000, DiscountType.FIXED, GlobalDiscountApplication.BOTH)

    assert summary.one_time_total == 0
    assert summary.monthly_total == 0
    assert summary.total_project_cost == 0


def test_accepts_global_discount_object(setup_fee, hosting):
    discount = GlobalDiscount(10, DiscountType.PERCENTAGE, GlobalDiscountApplication.MONTHLY)

    summary = summarize([setup_fee, hosting], discount)

    assert summary.monthly_total == pytest.approx(900.0)


def test_discount_breakdown(make_item, make_selection):
    """Row discount 100 on a 500 line, then 10% global on the remaining 400."""
    line = make_selection(make_item('setup-fee', 500.0, BillingFrequency.ONE_TIME), discount=20)

    summary = summarize([line], 10, DiscountType.PERCENTAGE, GlobalDiscountApplication.ONETIME)

    assert summary.one_time_subtotal == pytest.approx(400.0)
    assert summary.row_discount == pytest.approx(100.0)
    assert summary.global_discount_amount == pytest.approx(40.0)
    assert summary.total_discount == pytest.approx(140.0)
    assert summary.one_time_total == pytest.approx(360.0)


def test_savings_split_between_discounts_and_free_lines(make_item, make_selection):
    discounted = make_selection(make_item('setup-fee', 500.0, BillingFrequency.ONE_TIME), discount=20)
    free = make_selection(make_item('training', 100.0, BillingFrequency.ONE_TIME), is_free=True)

    savings = summarize([discounted, free]).savings

    assert savings.original_price == pytest.approx(600.0)
    assert savings.total_savings == pytest.approx(200.0)
    assert savings.free_savings == pytest.approx(100.0)
    assert savings.discount_savings == pytest.approx(100.0)
    assert savings.savings_rate == pytest.approx(200 / 600 * 100)


def test_free_lines_do_not_count_as_row_discount(make_item, make_selection):
    free = make_selection(make_item('training', 100.0, BillingFrequency.ONE_TIME), is_free=True)
    assert summarize([free]).row_discount == 0


def test_bucket_totals_never_negative(make_item, make_selection):
    lines = [
        make_selection(make_item('a', 10.0), quantity=3, discount=1000, discount_type=DiscountType.FIXED),
        make_selection(make_item('b', 10.0, BillingFrequency.ONE_TIME), quantity=3, discount=100),
    ]

    summary = summarize(lines, 100, DiscountType.PERCENTAGE, GlobalDiscountApplication.BOTH)

    assert summary.one_time_total >= 0
    assert summary.monthly_total >= 0


def test_monthly_total_grows_with_quantity(make_item, make_selection, volume_tiers):
    item = make_item('processing', 0.1, tiers=volume_tiers)
    totals = [summarize([make_selection(item, quantity=q)]).monthly_total for q in (0, 500, 1000, 5000, 20000)]
    assert totals == sorted(totals)


def test_category_totals(setup_fee, hosting, make_item, make_selection):
    extra = make_selection(make_item('backup', 50.0, category_id='support'), quantity=2)

    totals = category_totals([setup_fee, hosting, extra])

    assert totals == {'setup': pytest.approx(500.0), 'support': pytest.approx(1100.0)}


def test_round_money():
    assert round_money(1.234) == 1.23
    assert round_money(10) == 10


def test_summary_carries_category_totals(setup_fee, hosting):
    summary = summarize([setup_fee, hosting])

    assert summary.category_totals == {'setup': pytest.approx(500.0), 'support': pytest.approx(1000.0)}
    assert summary.to_dict()['categoryTotals'] == summary.category_totals


def test_undiscounted_monthly_line_has_no_savings(hosting):
    savings = summarize([hosting]).savings

    assert savings.original_price == pytest.approx(1000.0)
    assert savings.total_savings == pytest.approx(0.0)
    assert savings.savings_rate == pytest.approx(0.0)


def test_savings_compare_one_billing_period(setup_fee, make_item, make_selection):
    """500 one-time plus a 1000/month line at 10% off: one period saves 100."""
    hosting = make_selection(make_item('hosting', 1000.0, BillingFrequency.MONTHLY), discount=10)

    savings = summarize([setup_fee, hosting]).savings

    assert savings.original_price == pytest.approx(1500.0)
    assert savings.total_savings == pytest.approx(100.0)
    assert savings.savings_rate == pytest.approx(100 / 1500 * 100)


def test_summarize_is_idempotent(setup_fee, hosting):
    discount = GlobalDiscount(10, DiscountType.PERCENTAGE, GlobalDiscountApplication.BOTH)

    assert summarize([setup_fee, hosting], discount) == summarize([setup_fee, hosting], discount)


def test_one_time_total_grows_with_quantity(make_item, make_selection, volume_tiers):
    item = make_item('card-setup', 0.1, BillingFrequency.ONE_TIME, tiers=volume_tiers)
    totals = [summarize([make_selection(item, quantity=q)]).one_time_total for q in (0, 1, 500, 1000, 5000, 20000)]
    assert totals == sorted(totals)
