"""
Pricing Engine - recompute pipeline for a quote, with traceability.

Pipeline for every recomputation:
1. Validate the request (declared config fields, negative values, percentages above 100)
2. Reconcile the selection with the configuration (auto-add, removal, quantity sync)
3. Price every line (tier resolution for tiered items, discounts, free flag)
4. Fold the lines into the fee summary (buckets, global discount, savings)
"""
import json
import logging
import uuid
from dataclasses import replace
from typing import Iterable, Optional

from ..config.settings import get_settings, Settings
from .item_calculator import active_tiers_for, calculate_item_total, item_subtotal
from .models import (
    ClientConfig,
    ConfigurationField,
    DiscountApplication,
    DiscountType,
    GlobalDiscount,
    GlobalDiscountApplication,
    PricingItem,
    QuoteLine,
    QuoteRequest,
    QuoteResult,
    SelectedItem,
    ServiceMapping,
)
from .rule_engine import MappingSet, apply_auto_add_with_trace
from .summary import summarize
from .tier_resolver import (
    FALLBACK_TIER_ID,
    average_unit_price,
    effective_unit_price,
    format_tier_range,
    resolve_item,
    tier_total,
)
from .validation import QuoteValidationError, validate_request

log = logging.getLogger("pricing_simulator.engine")


class PricingEngine:
    """
    Owns the loaded catalog and service mappings and runs quote calculations.

    The catalog and mappings are treated as read-only; ``reload_data``
    replaces them wholesale.
    """

    def __init__(self, settings: Optional[Settings] = None):
        """Initialize engine with the built catalog and compiled mappings."""
        self.settings = settings or get_settings()

        catalog_path = self.settings.catalog_json
        if not catalog_path.exists():
            raise FileNotFoundError(
                f"catalog.json not found at {catalog_path}. "
                "Execute build_catalog.py first."
            )

        with open(catalog_path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        self.catalog = {}
        for raw in data.get('items', []):
            item = PricingItem.from_dict(raw)
            self.catalog[item.id] = item
        self.config_fields = {}
        for raw in data.get('configFields', []):
            definition = ConfigurationField.from_dict(raw)
            self.config_fields[definition.id] = definition
        self.catalog_meta = {k: v for k, v in data.items() if k not in ('items', 'configFields')}

        # Compiled mappings are optional; without them no auto-add happens
        self.mapping_set = MappingSet(self.settings.compiled_mappings)
        if not self.mapping_set.loaded:
            log.info("No compiled mappings at %s; auto-add disabled", self.settings.compiled_mappings)

        log.info(
            "Loaded %d catalog items, %d config fields, %d service mappings",
            len(self.catalog), len(self.config_fields), len(self.mapping_set),
        )

    @classmethod
    def from_data(
        cls,
        items: Iterable[PricingItem],
        mappings: Optional[Iterable[ServiceMapping]] = None,
        settings: Optional[Settings] = None,
        config_fields: Optional[Iterable[ConfigurationField]] = None
    ) -> 'PricingEngine':
        """Build an engine from in-memory catalog items, mappings and config fields."""
        engine = cls.__new__(cls)
        engine.settings = settings
        engine.catalog = {item.id: item for item in items}
        engine.config_fields = {f.id: f for f in config_fields or []}
        engine.catalog_meta = {}
        engine.mapping_set = MappingSet(mappings=list(mappings or []))
        return engine

    def reload_data(self):
        """Reload catalog and mappings from disk."""
        if self.settings is None:
            log.debug("Engine was built from in-memory data; nothing to reload")
            return
        self.__init__(self.settings)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def get_item(self, item_id: str) -> PricingItem:
        """Look up a catalog item; raises KeyError when unknown."""
        try:
            return self.catalog[item_id]
        except KeyError:
            raise KeyError(f"Pricing item '{item_id}' not found") from None

    def list_config_fields(self) -> list[ConfigurationField]:
        """Declared configuration fields in display order."""
        return sorted(self.config_fields.values(), key=lambda f: (f.order, f.id))

    def categories(self) -> list[str]:
        return sorted({item.category_id for item in self.catalog.values() if item.category_id})

    def search_catalog(
        self,
        search: Optional[str] = None,
        category_id: Optional[str] = None,
        include_inactive: bool = False
    ) -> list[PricingItem]:
        """Filter the catalog by free text (id, name, description, tags) and category."""
        needle = (search or '').strip().lower()
        results = []
        for item in self.catalog.values():
            if not include_inactive and not item.is_active:
                continue
            if category_id and item.category_id != category_id:
                continue
            if needle:
                haystack = " ".join([item.id, item.name, item.description, *item.tags]).lower()
                if needle not in haystack:
                    continue
            results.append(item)
        return results

    def select_item(
        self,
        item_id: str,
        quantity: float = 1,
        discount: float = 0.0,
        discount_type: DiscountType = DiscountType.PERCENTAGE,
        discount_application: DiscountApplication = DiscountApplication.TOTAL,
        is_free: bool = False,
        selection_id: Optional[str] = None
    ) -> SelectedItem:
        """Create a manually added selection line for a catalog item."""
        item = self.get_item(item_id)
        return SelectedItem(
            id=selection_id or f"{item.id}-{uuid.uuid4().hex[:8]}",
            item=item,
            quantity=float(quantity),
            unit_price=effective_unit_price(item, quantity),
            discount=discount,
            discount_type=discount_type,
            discount_application=discount_application,
            is_free=is_free,
        )

    def preview_tiers(self, item_id: str, quantity: float) -> dict:
        """Tier breakdown of an item at a given quantity, without a quote."""
        item = self.get_item(item_id)
        breakdown = resolve_item(item, quantity)
        total = tier_total(breakdown) if item.is_tiered else quantity * item.default_price
        return {
            'itemId': item.id,
            'name': item.name,
            'pricingMode': item.pricing_mode.value,
            'quantity': quantity,
            'tiers': [dict(t.to_dict(), range=format_tier_range(t)) for t in item.tiers],
            'activeTiers': [t.to_dict() for t in breakdown],
            'usesFallback': any(t.tier_id == FALLBACK_TIER_ID for t in breakdown),
            'total': total,
            'effectiveUnitPrice': effective_unit_price(item, quantity),
            'averageUnitPrice': average_unit_price(item, quantity),
        }

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    def request_from_dict(self, data: dict) -> QuoteRequest:
        """
        Build a QuoteRequest from a JSON payload.

        Selection lines may reference catalog items by ``itemId``; unknown
        ids raise KeyError. Configuration values are converted by their
        declared field type; unreadable values raise ValueError.
        """
        raw_discount = data.get('globalDiscount') or data.get('global_discount')
        if isinstance(raw_discount, dict):
            global_discount = GlobalDiscount.from_dict(raw_discount)
        else:
            global_discount = GlobalDiscount.from_dict(data)

        return QuoteRequest(
            config=ClientConfig.from_dict(data.get('config') or {}, self.config_fields),
            selected_items=[
                SelectedItem.from_dict(s, self.catalog)
                for s in data.get('selectedItems') or data.get('selected_items') or []
            ],
            global_discount=global_discount,
            apply_rules=bool(data.get('applyRules', data.get('apply_rules', True))),
        )

    def calculate(self, request: QuoteRequest) -> QuoteResult:
        """
        Recompute a quote with full traceability.

        Args:
            request: configuration, current selection and global discount

        Returns:
            QuoteResult with the reconciled selection, priced lines, summary,
            trace and warnings

        Raises:
            QuoteValidationError: when any input value is out of range
        """
        validation = validate_request(request, self.config_fields)
        if not validation.valid:
            raise QuoteValidationError(validation.errors)

        result = QuoteResult(
            config=request.config,
            lines=[],
            summary=None,
            global_discount=request.global_discount,
        )
        for warning in validation.warnings:
            result.add_warning(warning)

        # Rules
        selection = list(request.selected_items)
        if request.apply_rules and self.mapping_set.loaded:
            selection, rule_trace = apply_auto_add_with_trace(
                selection, request.config, self.mapping_set, self.catalog
            )
            for step, desc, val in rule_trace:
                result.add_trace(step, desc, val)
        elif request.apply_rules:
            result.add_trace("Rules", "No service mappings loaded; selection used as-is")

        # Lines
        for selected in selection:
            line = self._calculate_line(selected)
            result.lines.append(line)
            for warning in line.warnings:
                if warning not in result.warnings:
                    result.add_warning(warning)

        # Summary
        summary = summarize(result.selected_items, request.global_discount)
        result.summary = summary

        result.add_trace("One-Time Subtotal", f"{self._count(result, True)} line(s)", f"${summary.one_time_subtotal:,.2f}")
        result.add_trace("Monthly Subtotal", f"{self._count(result, False)} line(s)", f"${summary.monthly_subtotal:,.2f}")
        gd = request.global_discount
        if gd.application != GlobalDiscountApplication.NONE and gd.amount > 0:
            shown = f"{gd.amount:g}%" if gd.type == DiscountType.PERCENTAGE else f"${gd.amount:,.2f}"
            result.add_trace(
                "Global Discount",
                f"{shown} on {gd.application.value}",
                f"-${summary.global_discount_amount:,.2f}",
            )
        result.add_trace("Yearly Total", "Monthly total × 12", f"${summary.yearly_total:,.2f}")
        result.add_trace("Total Project Cost", "One-time + yearly", f"${summary.total_project_cost:,.2f}")

        log.debug(
            "quote for %r: %d lines, total project cost %.2f",
            request.config.client_name, len(result.lines), summary.total_project_cost,
        )
        return result

    @staticmethod
    def _count(result: QuoteResult, one_time: bool) -> int:
        return sum(1 for s in result.selected_items if s.item.is_one_time == one_time)

    def _calculate_line(self, selected: SelectedItem) -> QuoteLine:
        """Price a single selection line with trace."""
        selected = replace(selected, active_tiers=active_tiers_for(selected))
        item = selected.item

        subtotal = item_subtotal(selected)
        total = calculate_item_total(selected)
        discount_amount = 0.0 if selected.is_free else subtotal - total

        line = QuoteLine(selection=selected, subtotal=subtotal, discount_amount=discount_amount, total=total)

        if item.id not in self.catalog:
            line.add_warning(f"Item '{item.id}' is not in the loaded catalog")
        if selected.auto_added:
            line.add_trace("Source", "Added automatically from configuration")

        if item.is_tiered:
            for tier in selected.active_tiers:
                line.add_trace(
                    "Tier",
                    f"{tier.tier_name}: {tier.tier_quantity:g} × ${tier.tier_unit_price:,.2f}",
                    f"${tier.tier_total:,.2f}",
                )
                if tier.tier_id == FALLBACK_TIER_ID:
                    line.add_warning(f"Fallback rate used for {item.name} beyond defined tiers")
        else:
            line.add_trace(
                "Extension",
                f"Quantity {selected.quantity:g} × ${selected.unit_price:,.2f}",
                f"${subtotal:,.2f}",
            )

        if selected.is_free:
            line.add_trace("Free", "Line marked free", "$0.00")
        elif selected.discount > 0:
            if selected.discount_type == DiscountType.PERCENTAGE:
                desc = f"{selected.discount:g}% of subtotal"
            elif selected.discount_application == DiscountApplication.UNIT:
                desc = f"${selected.discount:,.2f} per unit"
            else:
                desc = f"${selected.discount:,.2f} off line"
            line.add_trace("Discount", desc, f"-${discount_amount:,.2f}")

        line.add_trace("Line Total", item.billing_frequency.value, f"${total:,.2f}")
        log.debug("priced %s\n%s", selected.id, line.get_trace_text())
        return line
