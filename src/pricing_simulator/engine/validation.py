"""
Input validation for quote requests.

Rejects values the calculators must never see (negative quantities,
prices and discounts, percentages above 100) and warns about inputs that
are legal but probably unintended. Configuration values are checked
against their declared fields (required, min/max, select options).
"""
from dataclasses import dataclass, field
from typing import Optional

from .item_calculator import item_subtotal
from .models import (
    ClientConfig,
    ConfigFieldType,
    ConfigurationField,
    DiscountApplication,
    DiscountType,
    GlobalDiscount,
    NumberValue,
    QuoteRequest,
    SelectedItem,
    StringValue,
)
from .tier_resolver import covers


@dataclass
class ValidationResult:
    """Result of input validation."""
    valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def error(self, message: str):
        self.errors.append(message)
        self.valid = False

    def merge(self, other: 'ValidationResult'):
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.valid = self.valid and other.valid


class QuoteValidationError(ValueError):
    """Raised when a quote request fails validation."""

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = list(errors)


def validate_selected_item(item: SelectedItem) -> ValidationResult:
    """Validate one selection line."""
    result = ValidationResult()
    label = item.item.name or item.item.id

    if item.quantity < 0:
        result.error(f"{label}: quantity cannot be negative")
    if item.unit_price < 0:
        result.error(f"{label}: unit price cannot be negative")
    if item.discount < 0:
        result.error(f"{label}: discount cannot be negative")
    if item.discount_type == DiscountType.PERCENTAGE and item.discount > 100:
        result.error(f"{label}: percentage discount cannot exceed 100")

    if not result.valid:
        return result

    if item.discount_type == DiscountType.FIXED and item.discount > 0 and not item.is_free:
        subtotal = item_subtotal(item)
        requested = item.discount
        if item.discount_application == DiscountApplication.UNIT:
            requested = item.discount * item.quantity
        if requested > subtotal:
            result.warnings.append(
                f"{label}: fixed discount {requested:,.2f} exceeds line subtotal {subtotal:,.2f}; line total floored at 0"
            )

    if item.item.is_tiered and item.quantity > 0 and not covers(item.item.tiers, item.quantity):
        result.warnings.append(
            f"{label}: quantity {item.quantity:g} is beyond the defined tiers; excess billed at fallback rate"
        )

    if not item.item.is_active:
        result.warnings.append(f"{label}: item is inactive in the catalog")

    return result


def validate_global_discount(discount: GlobalDiscount) -> ValidationResult:
    """Validate global discount settings."""
    result = ValidationResult()
    if discount.amount < 0:
        result.error("Global discount cannot be negative")
    if discount.type == DiscountType.PERCENTAGE and discount.amount > 100:
        result.error("Global percentage discount cannot exceed 100")
    return result


def validate_config(config: ClientConfig, fields: dict[str, ConfigurationField]) -> ValidationResult:
    """Check configuration values against their declared fields."""
    result = ValidationResult()

    for definition in sorted(fields.values(), key=lambda f: (f.order, f.id)):
        name = definition.display_name
        value = config.get(definition.id)

        if value is None or (isinstance(value, StringValue) and not value.value.strip()):
            if definition.required:
                result.error(f"{name} is required")
            continue

        if value.kind != definition.kind:
            result.error(f"{name} expects a {definition.kind.value} value")
            continue

        if isinstance(value, NumberValue):
            if definition.min_value is not None and value.value < definition.min_value:
                result.error(f"{name} must be at least {definition.min_value:g}")
            if definition.max_value is not None and value.value > definition.max_value:
                result.error(f"{name} must be at most {definition.max_value:g}")

        if definition.type == ConfigFieldType.SELECT and definition.options and value.value not in definition.options:
            result.error(f"{name}: '{value.value}' is not one of {', '.join(definition.options)}")

    undeclared = sorted(set(config.values) - set(fields))
    if fields and undeclared:
        result.warnings.append(f"Undeclared configuration fields: {', '.join(undeclared)}")

    return result


def validate_request(
    request: QuoteRequest,
    fields: Optional[dict[str, ConfigurationField]] = None
) -> ValidationResult:
    """Validate the configuration, every line and the global discount."""
    result = ValidationResult()
    if fields:
        result.merge(validate_config(request.config, fields))
    seen = set()
    for item in request.selected_items:
        if item.id in seen:
            result.warnings.append(f"Duplicate selection id '{item.id}'")
        seen.add(item.id)
        result.merge(validate_selected_item(item))
    result.merge(validate_global_discount(request.global_discount))
    return result
