import json

import pytest

from pricing_simulator.data.build_catalog import build_catalog
from pricing_simulator.engine.models import TriggerCondition
from pricing_simulator.rules.compile_mappings import compile_mappings, parse_bool

HEADER = "service_id,config_field,trigger_condition,auto_add,sync_quantity,quantity_multiplier,active,notes\n"


def write_csv(path, *rows):
    path.write_text(HEADER + "".join(r + "\n" for r in rows), encoding='utf-8')
    return path


def test_compiles_shipped_mappings(project_settings):
    success, mappings, errors = compile_mappings(
        project_settings.mappings_csv, project_settings.compiled_mappings, verbose=False
    )

    assert success, errors
    assert len(mappings) == 6
    with open(project_settings.compiled_mappings, 'r', encoding='utf-8') as f:
        data = json.load(f)
    assert data["total_mappings"] == 6
    assert data["mappings"][0]["serviceId"] == 'card-issuance'
    assert data["mappings"][0]["notes"] == 'Card programme needed for debit'


def test_defaults_for_blank_cells(tmp_path):
    csv_path = write_csv(tmp_path / 'm.csv', "card-issuance,hasDebitCards,,,,,,")

    success, mappings, _ = compile_mappings(csv_path, tmp_path / 'out.json', verbose=False)

    assert success
    mapping = mappings[0]
    assert mapping.trigger_condition == TriggerCondition.BOOLEAN
    assert mapping.auto_add is True
    assert mapping.sync_quantity is False
    assert mapping.quantity_multiplier == 1.0
    assert mapping.active is True


@pytest.mark.parametrize("row,message", [
    (",hasDebitCards,boolean,true,false,1,true,", "service_id is required"),
    ("card-issuance,,boolean,true,false,1,true,", "config_field is required"),
    ("card-issuance,hasDebitCards,maybe,true,false,1,true,", "invalid trigger_condition"),
    ("card-issuance,hasDebitCards,boolean,sometimes,false,1,true,", "auto_add must be true/false"),
    ("card-issuance,hasDebitCards,boolean,true,false,two,true,", "quantity_multiplier must be numeric"),
    ("card-issuance,hasDebitCards,boolean,true,false,-1,true,", "cannot be negative"),
])
def test_invalid_rows(tmp_path, row, message):
    csv_path = write_csv(tmp_path / 'm.csv', row)
    output = tmp_path / 'out.json'

    success, _, errors = compile_mappings(csv_path, output, verbose=False)

    assert not success
    assert any(message in e and e.startswith("Line 2") for e in errors)
    assert not output.exists()


def test_duplicate_mapping_rejected(tmp_path):
    csv_path = write_csv(
        tmp_path / 'm.csv',
        "card-issuance,hasDebitCards,boolean,true,false,1,true,",
        "card-issuance,hasDebitCards,boolean,true,false,1,false,",
    )

    success, _, errors = compile_mappings(csv_path, tmp_path / 'out.json', verbose=False)

    assert not success
    assert any("Duplicate mapping" in e for e in errors)


def test_unknown_service_rejected_against_catalog(project_settings):
    build_catalog(project_settings, verbose=False)
    write_csv(project_settings.mappings_csv, "no-such-service,hasDebitCards,boolean,true,false,1,true,")

    success, _, errors = compile_mappings(
        project_settings.mappings_csv,
        project_settings.compiled_mappings,
        catalog_json=project_settings.catalog_json,
        verbose=False,
    )

    assert not success
    assert any("not found in catalog" in e for e in errors)


def test_missing_file(tmp_path):
    success, mappings, errors = compile_mappings(tmp_path / 'missing.csv', tmp_path / 'out.json', verbose=False)

    assert not success
    assert mappings == []
    assert "not found" in errors[0]


@pytest.mark.parametrize("raw,expected", [
    ("true", True), ("YES", True), ("1", True), ("off", False), ("", True), (None, True),
])
def test_parse_bool(raw, expected):
    assert parse_bool(raw, default=True) is expected


def test_parse_bool_rejects_garbage():
    with pytest.raises(ValueError):
        parse_bool("perhaps")
