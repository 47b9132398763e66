"""
Rule Engine - Auto-add and quantity-sync rules driven by client configuration.

Used by the pricing engine to keep the selection in step with the
configuration fields (card programmes, card counts, monthly volumes)
before any line is priced.
"""
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Iterable, Optional, Union

from .models import (
    BooleanValue,
    ClientConfig,
    ConfigValue,
    NumberValue,
    PricingItem,
    SelectedItem,
    ServiceMapping,
    StringValue,
    TriggerCondition,
)
from .tier_resolver import effective_unit_price

log = logging.getLogger("pricing_simulator.rule_engine")

AUTO_ID_PREFIX = 'auto-'

Catalog = Union[dict[str, PricingItem], Iterable[PricingItem]]
Mappings = Union['MappingSet', Iterable[ServiceMapping]]


class MappingSet:
    """
    Active service mappings indexed by service.

    Mappings are loaded from compiled_mappings.json or passed in directly.
    """

    def __init__(
        self,
        compiled_mappings_path: Optional[Path] = None,
        mappings: Optional[Iterable[ServiceMapping]] = None
    ):
        """Load compiled mappings."""
        self.mappings: list[ServiceMapping] = []
        self.loaded = False

        if mappings is not None:
            self.mappings = [m for m in mappings if m.active]
            self.loaded = True
        elif compiled_mappings_path and compiled_mappings_path.exists():
            self._load_mappings(compiled_mappings_path)

    def _load_mappings(self, path: Path):
        """Load mappings from JSON file."""
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)

            self.mappings = [
                ServiceMapping.from_dict(m) for m in data.get('mappings', []) if m.get('active', True)
            ]
            self.loaded = True
        except (OSError, ValueError, KeyError, TypeError) as e:
            log.warning("Could not load service mappings from %s: %s", path, e)
            self.mappings = []
            self.loaded = False

    def for_service(self, service_id: str) -> list[ServiceMapping]:
        return [m for m in self.mappings if m.service_id == service_id]

    def by_service(self) -> dict[str, list[ServiceMapping]]:
        index: dict[str, list[ServiceMapping]] = {}
        for mapping in self.mappings:
            index.setdefault(mapping.service_id, []).append(mapping)
        return index

    def __len__(self) -> int:
        return len(self.mappings)


def _index(mappings: Mappings) -> dict[str, list[ServiceMapping]]:
    if isinstance(mappings, MappingSet):
        return mappings.by_service()
    return MappingSet(mappings=mappings).by_service()


def _catalog_items(catalog: Catalog) -> list[PricingItem]:
    if isinstance(catalog, dict):
        return list(catalog.values())
    return list(catalog)


def is_triggered(value: Optional[ConfigValue], condition: TriggerCondition) -> bool:
    """
    Evaluate one configuration value against a trigger condition.

    boolean: true / non-zero number / non-blank string
    number:  positive number only
    string:  non-blank string only
    A missing value never triggers.
    """
    if value is None:
        return False

    if condition == TriggerCondition.BOOLEAN:
        if isinstance(value, BooleanValue):
            return value.value
        if isinstance(value, NumberValue):
            return value.value != 0
        if isinstance(value, StringValue):
            return value.value.strip() != ''

    elif condition == TriggerCondition.NUMBER:
        if isinstance(value, NumberValue):
            return value.value > 0
        if isinstance(value, (BooleanValue, StringValue)):
            return False

    elif condition == TriggerCondition.STRING:
        if isinstance(value, StringValue):
            return value.value.strip() != ''
        if isinstance(value, (BooleanValue, NumberValue)):
            return False

    raise TypeError(f"Unhandled trigger evaluation: {condition!r} for {value!r}")


def triggered_mappings(config: ClientConfig, mappings: list[ServiceMapping]) -> list[ServiceMapping]:
    """Auto-add mappings whose configuration field currently triggers."""
    return [
        m for m in mappings
        if m.auto_add and is_triggered(config.get(m.config_field), m.trigger_condition)
    ]


def should_auto_add(config: ClientConfig, mappings: list[ServiceMapping]) -> bool:
    """An item belongs in the selection while any of its auto-add mappings triggers."""
    return len(triggered_mappings(config, mappings)) > 0


def synced_quantity(config: ClientConfig, mappings: list[ServiceMapping]) -> Optional[float]:
    """
    Quantity dictated by the item's sync mappings.

    Sums ``value × multiplier`` over every sync mapping whose field holds a
    number. Returns None when no sync mapping has a numeric value, meaning
    the current quantity stands.
    """
    total = None
    for mapping in mappings:
        if not mapping.sync_quantity:
            continue
        value = config.get(mapping.config_field)
        if isinstance(value, NumberValue):
            total = (total or 0.0) + value.value * mapping.quantity_multiplier
    return None if total is None else max(0.0, total)


def _new_auto_item(item: PricingItem, config: ClientConfig, mappings: list[ServiceMapping]) -> SelectedItem:
    synced = synced_quantity(config, mappings)
    quantity = 1.0 if synced is None else max(1.0, synced)
    unit_price = effective_unit_price(item, quantity) if item.is_tiered else item.default_price
    return SelectedItem(
        id=f"{AUTO_ID_PREFIX}{item.id}",
        item=item,
        quantity=quantity,
        unit_price=unit_price,
        auto_added=True,
    )


def derive_auto_added_items(
    config: ClientConfig,
    mappings: Mappings,
    catalog: Catalog
) -> list[SelectedItem]:
    """
    Items the configuration alone calls for, in catalog order.

    Each carries quantity 1 (or its synced quantity, at least 1), the catalog price and
    ``auto_added=True``. Ids are stable so repeated derivations compare equal.
    """
    index = _index(mappings)
    derived = []
    for item in _catalog_items(catalog):
        item_mappings = index.get(item.id)
        if not item_mappings or not item.is_active:
            continue
        if should_auto_add(config, item_mappings):
            derived.append(_new_auto_item(item, config, item_mappings))
    return derived


def _sync(selected: SelectedItem, config: ClientConfig, mappings: list[ServiceMapping]) -> SelectedItem:
    target = synced_quantity(config, mappings)
    if target is None or target == selected.quantity:
        return selected

    unit_price = selected.unit_price
    if selected.item.is_tiered:
        unit_price = effective_unit_price(selected.item, target)
    return replace(selected, quantity=target, unit_price=unit_price)


def apply_auto_add_with_trace(
    selection: list[SelectedItem],
    config: ClientConfig,
    mappings: Mappings,
    catalog: Catalog
) -> tuple[list[SelectedItem], list]:
    """
    Reconcile a selection with the configuration.

    Returns (new_selection, trace_steps). The input list is not modified.
    """
    index = _index(mappings)
    trace = []
    present = {s.item.id for s in selection}
    updated = []

    # 1. Drop auto-added lines whose triggers have all gone false
    for selected in selection:
        item_mappings = index.get(selected.item.id, [])
        if selected.auto_added and not should_auto_add(config, item_mappings):
            trace.append(("Auto-Remove", f"{selected.item.name} no longer triggered", selected.item.id))
            log.debug("auto-removed %s", selected.item.id)
            continue
        updated.append(selected)

    # 2. Insert newly triggered items
    for derived in derive_auto_added_items(config, index_to_mappings(index), catalog):
        if derived.item.id in present:
            continue
        fields = ", ".join(m.config_field for m in triggered_mappings(config, index[derived.item.id]))
        trace.append(("Auto-Add", f"{derived.item.name} triggered by {fields}", derived.item.id))
        log.debug("auto-added %s", derived.item.id)
        updated.append(derived)
        present.add(derived.item.id)

    # 3. Keep synced quantities equal to their configuration fields
    synced = []
    for selected in updated:
        after = _sync(selected, config, index.get(selected.item.id, []))
        if after is not selected:
            trace.append((
                "Quantity Sync",
                f"{selected.item.name} quantity {selected.quantity:g} → {after.quantity:g}",
                selected.item.id,
            ))
        synced.append(after)

    return synced, trace


def apply_auto_add(
    selection: list[SelectedItem],
    config: ClientConfig,
    mappings: Mappings,
    catalog: Catalog
) -> list[SelectedItem]:
    """Reconcile a selection with the configuration (see ``apply_auto_add_with_trace``)."""
    updated, _ = apply_auto_add_with_trace(selection, config, mappings, catalog)
    return updated


def index_to_mappings(index: dict[str, list[ServiceMapping]]) -> list[ServiceMapping]:
    """Flatten a per-service index back into a mapping list."""
    return [m for item_mappings in index.values() for m in item_mappings]
