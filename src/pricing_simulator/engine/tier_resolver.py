"""
Tier Resolver - graduated (volume) pricing over an item's tier schedule.

Each tier the quantity reaches absorbs up to its own capacity, billed at
that tier's unit price. Quantity left over after every tier has been
filled is billed at a fallback rate so the breakdown always accounts for
the whole quantity.
"""
from typing import Optional

from .models import ActiveTier, PricingItem, PricingTier


FALLBACK_TIER_ID = 'fallback'
FALLBACK_TIER_NAME = 'Fallback Rate'


def _sorted(tiers: list[PricingTier]) -> list[PricingTier]:
    return sorted(tiers, key=lambda t: t.min_quantity)


def resolve_tiers(
    quantity: float,
    tiers: list[PricingTier],
    fallback_price: Optional[float] = None
) -> list[ActiveTier]:
    """
    Split ``quantity`` across ``tiers``.

    Args:
        quantity: Units being priced
        tiers: Tier schedule (any order)
        fallback_price: Rate for quantity beyond every bounded tier when no
            unbounded tier exists; defaults to the last tier's rate

    Returns:
        One ActiveTier per tier that absorbed quantity, in ascending order
    """
    if quantity <= 0 or not tiers:
        return []

    ordered = _sorted(tiers)
    remaining = quantity
    breakdown = []

    for tier in ordered:
        if remaining <= 0:
            break
        if quantity < tier.min_quantity:
            continue

        if tier.max_quantity is None:
            tier_quantity = remaining
        else:
            capacity = tier.max_quantity - tier.min_quantity + 1
            tier_quantity = min(remaining, capacity)

        if tier_quantity <= 0:
            continue

        breakdown.append(ActiveTier(
            tier_id=tier.id,
            tier_name=tier.name or 'Unnamed Tier',
            tier_quantity=tier_quantity,
            tier_unit_price=tier.unit_price,
            tier_total=tier_quantity * tier.unit_price,
        ))
        remaining -= tier_quantity

    if remaining > 0:
        rate = ordered[-1].unit_price if fallback_price is None else fallback_price
        breakdown.append(ActiveTier(
            tier_id=FALLBACK_TIER_ID,
            tier_name=FALLBACK_TIER_NAME,
            tier_quantity=remaining,
            tier_unit_price=rate,
            tier_total=remaining * rate,
        ))

    return breakdown


def tier_total(breakdown: list[ActiveTier]) -> float:
    """Sum of a tier breakdown."""
    return sum(t.tier_total for t in breakdown)


def resolve_item(item: PricingItem, quantity: float) -> list[ActiveTier]:
    """Resolve an item's own tiers, using its default price as the fallback."""
    if not item.is_tiered:
        return []
    return resolve_tiers(quantity, item.tiers, fallback_price=item.default_price)


def effective_unit_price(item: PricingItem, quantity: float) -> float:
    """
    Price of the highest tier that applies to ``quantity`` (display only).

    Falls back to the default price for simple items or uncovered quantities.
    """
    if not item.is_tiered:
        return item.default_price

    applicable = None
    for tier in _sorted(item.tiers):
        if quantity >= tier.min_quantity and (tier.max_quantity is None or quantity <= tier.max_quantity):
            applicable = tier
    return applicable.unit_price if applicable else item.default_price


def average_unit_price(item: PricingItem, quantity: float) -> float:
    """Blended rate across the breakdown (reporting only)."""
    if not item.is_tiered or quantity <= 0:
        return item.default_price
    return tier_total(resolve_item(item, quantity)) / quantity


def _fmt_qty(value: float) -> str:
    return f"{value:,.0f}" if float(value).is_integer() else f"{value:,}"


def format_tier_range(tier: PricingTier) -> str:
    """``1 - 100`` or ``101+``."""
    if tier.max_quantity is None:
        return f"{_fmt_qty(tier.min_quantity)}+"
    return f"{_fmt_qty(tier.min_quantity)} - {_fmt_qty(tier.max_quantity)}"


def covers(tiers: list[PricingTier], quantity: float) -> bool:
    """True when ``quantity`` is fully absorbed by defined tiers (no fallback)."""
    breakdown = resolve_tiers(quantity, tiers)
    return not any(t.tier_id == FALLBACK_TIER_ID for t in breakdown)


def validate_tiers(tiers: list[PricingTier]) -> list[str]:
    """
    Check a tier schedule as entered by an administrator.

    Returns a list of error messages; empty when the schedule is valid.
    Rules: non-negative prices and bounds, ``max >= min``, ascending,
    contiguous and non-overlapping ranges, and only the last tier may
    (and must) be unbounded.
    """
    errors = []
    if not tiers:
        return ["Tiered item has no tiers"]

    for tier in tiers:
        label = tier.name or tier.id
        if tier.min_quantity < 0:
            errors.append(f"Tier '{label}': minQuantity must be >= 0")
        if tier.unit_price < 0:
            errors.append(f"Tier '{label}': unitPrice must be >= 0")
        if tier.max_quantity is not None and tier.max_quantity < tier.min_quantity:
            errors.append(f"Tier '{label}': maxQuantity must be >= minQuantity")

    if [t.min_quantity for t in tiers] != sorted(t.min_quantity for t in tiers):
        errors.append("Tiers must be ordered ascending by minQuantity")

    ordered = _sorted(tiers)
    for previous, current in zip(ordered, ordered[1:]):
        if previous.max_quantity is None:
            errors.append(f"Tier '{previous.name or previous.id}' is unbounded but is not the last tier")
        elif current.min_quantity <= previous.max_quantity:
            errors.append(
                f"Tier '{current.name or current.id}' overlaps tier '{previous.name or previous.id}'"
            )
        elif current.min_quantity > previous.max_quantity + 1:
            errors.append(
                f"Gap between tier '{previous.name or previous.id}' and tier '{current.name or current.id}'"
            )

    if ordered[-1].max_quantity is not None:
        errors.append("Last tier must be unbounded (maxQuantity empty)")

    return errors
