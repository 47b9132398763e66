"""
Aggregate Summary Calculator - folds priced lines into the fee summary.

Lines are split into one-time and monthly buckets by the catalog item's
billing frequency; the global discount is applied per bucket according
to its application scope.
"""
from typing import Iterable, Union

from ..config.settings import MONTHS_PER_YEAR
from .item_calculator import calculate_item_total, original_price
from .models import (
    BillingFrequency,
    DiscountType,
    FeeSummary,
    GlobalDiscount,
    GlobalDiscountApplication,
    Savings,
    SelectedItem,
)


def round_money(value: float) -> float:
    """Round to cents for display. Never used between calculation steps."""
    return round(value, 2)


def apply_global_discount(subtotal: float, amount: float, discount_type: DiscountType) -> float:
    """Discounted bucket total, floored at zero."""
    if discount_type == DiscountType.PERCENTAGE:
        return max(0.0, subtotal - subtotal * (amount / 100))
    return max(0.0, subtotal - amount)


def scope_includes(application: GlobalDiscountApplication, frequency: BillingFrequency) -> bool:
    """Whether a global discount scope reaches a billing bucket."""
    if application == GlobalDiscountApplication.BOTH:
        return True
    if application == GlobalDiscountApplication.MONTHLY:
        return frequency == BillingFrequency.MONTHLY
    if application == GlobalDiscountApplication.ONETIME:
        return frequency == BillingFrequency.ONE_TIME
    return False


def bucket_subtotal(items: Iterable[SelectedItem], frequency: BillingFrequency) -> float:
    """Sum of line totals for one billing bucket."""
    return sum(calculate_item_total(i) for i in items if i.billing_frequency == frequency)


def summarize(
    items: list[SelectedItem],
    global_discount: Union[float, GlobalDiscount] = 0.0,
    global_discount_type: DiscountType = DiscountType.PERCENTAGE,
    global_discount_application: GlobalDiscountApplication = GlobalDiscountApplication.NONE
) -> FeeSummary:
    """
    Build the fee summary for a selection.

    Args:
        items: Selection lines (tiered lines are resolved on the fly)
        global_discount: Amount, or a GlobalDiscount carrying all three settings
        global_discount_type: percentage of the bucket or flat amount per bucket
        global_discount_application: which bucket(s) the discount reaches

    Returns:
        FeeSummary with unrounded figures
    """
    if isinstance(global_discount, GlobalDiscount):
        global_discount_type = global_discount.type
        global_discount_application = global_discount.application
        amount = global_discount.amount
    else:
        amount = float(global_discount or 0)

    one_time_subtotal = bucket_subtotal(items, BillingFrequency.ONE_TIME)
    monthly_subtotal = bucket_subtotal(items, BillingFrequency.MONTHLY)

    one_time_total = one_time_subtotal
    if scope_includes(global_discount_application, BillingFrequency.ONE_TIME):
        one_time_total = apply_global_discount(one_time_subtotal, amount, global_discount_type)

    monthly_total = monthly_subtotal
    if scope_includes(global_discount_application, BillingFrequency.MONTHLY):
        monthly_total = apply_global_discount(monthly_subtotal, amount, global_discount_type)

    yearly_total = monthly_total * MONTHS_PER_YEAR
    total_project_cost = one_time_total + yearly_total

    # Row discounts exclude free lines; those are reported as free savings
    row_discount = sum(original_price(i) - calculate_item_total(i) for i in items if not i.is_free)
    global_discount_amount = (one_time_subtotal - one_time_total) + (monthly_subtotal - monthly_total)

    undiscounted = sum(original_price(i) for i in items)
    free_savings = sum(original_price(i) for i in items if i.is_free)
    # One billing period: one-time plus one month
    total_savings = undiscounted - (one_time_total + monthly_total)
    savings_rate = (total_savings / undiscounted) * 100 if undiscounted > 0 else 0.0

    return FeeSummary(
        one_time_subtotal=one_time_subtotal,
        monthly_subtotal=monthly_subtotal,
        one_time_total=one_time_total,
        monthly_total=monthly_total,
        yearly_total=yearly_total,
        total_project_cost=total_project_cost,
        row_discount=row_discount,
        global_discount_amount=global_discount_amount,
        total_discount=row_discount + global_discount_amount,
        savings=Savings(
            total_savings=total_savings,
            discount_savings=total_savings - free_savings,
            free_savings=free_savings,
            original_price=undiscounted,
            savings_rate=savings_rate,
        ),
        item_count=len(items),
        category_totals=category_totals(items),
    )


def category_totals(items: list[SelectedItem]) -> dict[str, float]:
    """Line totals grouped by catalog category (before global discount)."""
    totals: dict[str, float] = {}
    for selected in items:
        category = selected.item.category_id or 'uncategorized'
        totals[category] = totals.get(category, 0.0) + calculate_item_total(selected)
    return totals
