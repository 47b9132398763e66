"""
Auto-add / quantity-sync rule tests.
"""
import json

import pytest

from pricing_simulator.engine.models import (
    BooleanValue,
    ClientConfig,
    NumberValue,
    ServiceMapping,
    StringValue,
    TriggerCondition,
    config_value_from_raw,
)
from pricing_simulator.engine.rule_engine import (
    MappingSet,
    apply_auto_add,
    apply_auto_add_with_trace,
    derive_auto_added_items,
    is_triggered,
    synced_quantity,
)


def config(**values):
    return ClientConfig.from_dict({'clientName': 'Acme Bank', 'configValues': values})


def by_item(selection):
    return {s.item.id: s for s in selection}


@pytest.mark.parametrize("value,condition,expected", [
    (BooleanValue(True), TriggerCondition.BOOLEAN, True),
    (BooleanValue(False), TriggerCondition.BOOLEAN, False),
    (NumberValue(3), TriggerCondition.BOOLEAN, True),
    (NumberValue(0), TriggerCondition.BOOLEAN, False),
    (StringValue('yes'), TriggerCondition.BOOLEAN, True),
    (StringValue('  '), TriggerCondition.BOOLEAN, False),
    (NumberValue(5), TriggerCondition.NUMBER, True),
    (NumberValue(0), TriggerCondition.NUMBER, False),
    (NumberValue(-1), TriggerCondition.NUMBER, False),
    (BooleanValue(True), TriggerCondition.NUMBER, False),
    (StringValue('Visa'), TriggerCondition.STRING, True),
    (StringValue(''), TriggerCondition.STRING, False),
    (NumberValue(1), TriggerCondition.STRING, False),
    (None, TriggerCondition.BOOLEAN, False),
])
def test_is_triggered(value, condition, expected):
    assert is_triggered(value, condition) is expected


def test_bool_is_never_a_number():
    assert config_value_from_raw(True) == BooleanValue(True)
    assert config_value_from_raw(1) == NumberValue(1.0)
    assert config_value_from_raw({'kind': 'number', 'value': '12'}) == NumberValue(12.0)


def test_flag_auto_adds_card_issuance(catalog, mappings):
    """hasDebitCards=true adds Card Issuance at quantity 1."""
    selection = apply_auto_add([], config(hasDebitCards=True), mappings, catalog)

    assert len(selection) == 1
    added = selection[0]
    assert added.item.id == 'card-issuance'
    assert added.quantity == 1
    assert added.auto_added is True
    assert added.id == 'auto-card-issuance'
    assert added.unit_price == 1500.0


def test_flag_removal_removes_auto_added_item(catalog, mappings):
    selection = apply_auto_add([], config(hasDebitCards=True), mappings, catalog)
    selection = apply_auto_add(selection, config(hasDebitCards=False), mappings, catalog)

    assert selection == []


def test_item_stays_while_any_trigger_holds(catalog, mappings):
    selection = apply_auto_add([], config(hasDebitCards=True, hasCreditCards=True), mappings, catalog)
    selection = apply_auto_add(selection, config(hasDebitCards=False, hasCreditCards=True), mappings, catalog)

    assert [s.item.id for s in selection] == ['card-issuance']


def test_manual_items_are_never_removed(catalog, mappings, make_selection):
    manual = make_selection(catalog['card-issuance'], quantity=1)

    selection = apply_auto_add([manual], config(hasDebitCards=False), mappings, catalog)

    assert selection == [manual]


def test_present_item_is_not_added_twice(catalog, mappings, make_selection):
    manual = make_selection(catalog['card-issuance'], quantity=1)

    selection = apply_auto_add([manual], config(hasDebitCards=True), mappings, catalog)

    assert len(selection) == 1
    assert selection[0].auto_added is False


def test_quantity_follows_configuration(catalog, mappings):
    selection = apply_auto_add([], config(debitCards=250), mappings, catalog)
    assert by_item(selection)['debit-card-issuance'].quantity == 250

    selection = apply_auto_add(selection, config(debitCards=300), mappings, catalog)
    assert by_item(selection)['debit-card-issuance'].quantity == 300


def test_sync_overrides_manual_quantity_edit(catalog, mappings):
    from dataclasses import replace

    selection = apply_auto_add([], config(debitCards=250), mappings, catalog)
    edited = [replace(selection[0], quantity=10)]

    selection = apply_auto_add(edited, config(debitCards=250), mappings, catalog)

    assert selection[0].quantity == 250


def test_sync_keeps_manual_discount_and_free_flag(catalog, mappings):
    from dataclasses import replace

    selection = apply_auto_add([], config(debitCards=250), mappings, catalog)
    edited = [replace(selection[0], discount=15, is_free=True)]

    selection = apply_auto_add(edited, config(debitCards=400), mappings, catalog)

    assert selection[0].quantity == 400
    assert selection[0].discount == 15
    assert selection[0].is_free is True


def test_quantity_multiplier(catalog):
    doubled = [ServiceMapping('debit-card-issuance', 'debitCards', TriggerCondition.NUMBER,
                              sync_quantity=True, quantity_multiplier=2)]

    selection = apply_auto_add([], config(debitCards=100), doubled, catalog)

    assert selection[0].quantity == 200


def test_synced_quantity_none_without_numeric_field(mappings):
    sync = [m for m in mappings if m.service_id == 'debit-card-issuance']

    assert synced_quantity(config(hasDebitCards=True), sync) is None
    assert synced_quantity(config(debitCards='many'), sync) is None
    assert synced_quantity(config(debitCards=12), sync) == 12


def test_tiered_unit_price_snapshot_refreshes(catalog, mappings):
    selection = apply_auto_add([], config(monthlyAuthorizations=5000), mappings, catalog)
    line = by_item(selection)['transaction-processing']
    assert line.quantity == 5000
    assert line.unit_price == 0.15

    selection = apply_auto_add(selection, config(monthlyAuthorizations=20000), mappings, catalog)
    assert by_item(selection)['transaction-processing'].unit_price == 0.10


def test_reapplying_is_a_no_op(catalog, mappings):
    cfg = config(hasDebitCards=True, debitCards=250, monthlyAuthorizations=5000)

    once = apply_auto_add([], cfg, mappings, catalog)
    twice = apply_auto_add(once, cfg, mappings, catalog)

    assert twice == once


def test_derivation_is_deterministic(catalog, mappings):
    cfg = config(hasDebitCards=True, debitCards=250)

    first = derive_auto_added_items(cfg, mappings, catalog)
    second = derive_auto_added_items(cfg, mappings, catalog)

    assert first == second
    assert [s.item.id for s in first] == ['card-issuance', 'debit-card-issuance']


def test_input_selection_is_not_mutated(catalog, mappings, make_selection):
    manual = make_selection(catalog['monthly-maintenance'], quantity=1)
    selection = [manual]

    apply_auto_add(selection, config(hasDebitCards=True), mappings, catalog)

    assert selection == [manual]


def test_inactive_mappings_are_ignored(catalog):
    inactive = [ServiceMapping('card-issuance', 'hasDebitCards', active=False)]
    assert apply_auto_add([], config(hasDebitCards=True), inactive, catalog) == []


def test_trace_records_changes(catalog, mappings):
    selection, trace = apply_auto_add_with_trace([], config(hasDebitCards=True), mappings, catalog)
    assert trace[0][0] == "Auto-Add"
    assert "hasDebitCards" in trace[0][1]

    _, trace = apply_auto_add_with_trace(selection, config(hasDebitCards=False), mappings, catalog)
    assert trace[0][0] == "Auto-Remove"


class TestMappingSet:

    def test_loads_compiled_json(self, tmp_path, mappings):
        path = tmp_path / 'compiled_mappings.json'
        payload = [m.to_dict() for m in mappings]
        payload.append(dict(mappings[0].to_dict(), configField='retired', active=False))
        path.write_text(json.dumps({'mappings': payload}), encoding='utf-8')

        mapping_set = MappingSet(path)

        assert mapping_set.loaded
        assert len(mapping_set) == len(mappings)
        assert len(mapping_set.for_service('card-issuance')) == 2

    def test_missing_file_is_not_loaded(self, tmp_path):
        mapping_set = MappingSet(tmp_path / 'missing.json')
        assert not mapping_set.loaded
        assert len(mapping_set) == 0

    def test_corrupt_file_is_not_loaded(self, tmp_path):
        path = tmp_path / 'compiled_mappings.json'
        path.write_text('{not json', encoding='utf-8')

        assert not MappingSet(path).loaded
