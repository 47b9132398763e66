"""
Item Total Calculator - prices one selection line.

Pure functions. Inputs are assumed to have passed validation
(see ``validation.py``); results are floored at zero regardless.
"""
from .models import DiscountApplication, DiscountType, SelectedItem, ActiveTier
from .tier_resolver import resolve_item, tier_total


def active_tiers_for(item: SelectedItem) -> list[ActiveTier]:
    """Tier breakdown for a tiered line; empty for simple lines."""
    return resolve_item(item.item, item.quantity)


def item_subtotal(item: SelectedItem) -> float:
    """Undiscounted line value: tier sum for tiered items, quantity × unit price otherwise."""
    if item.item.is_tiered:
        return tier_total(active_tiers_for(item))
    return item.quantity * item.unit_price


def item_discount_amount(item: SelectedItem, subtotal: float = None) -> float:
    """Discount requested for the line (before the zero floor)."""
    if subtotal is None:
        subtotal = item_subtotal(item)

    if item.discount_type == DiscountType.PERCENTAGE:
        return subtotal * (item.discount / 100)
    if item.discount_application == DiscountApplication.UNIT:
        return item.discount * item.quantity
    return item.discount


def calculate_item_total(item: SelectedItem) -> float:
    """Line total after discount, never below zero. Free lines cost nothing."""
    if item.is_free:
        return 0.0

    subtotal = item_subtotal(item)
    return max(0.0, subtotal - item_discount_amount(item, subtotal))


def original_price(item: SelectedItem) -> float:
    """What the line would cost with no discount and no free flag."""
    return item_subtotal(item)
