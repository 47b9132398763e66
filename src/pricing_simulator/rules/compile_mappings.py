"""
Mapping Compiler - Validates and compiles service mappings from CSV to JSON.

Reads service_mappings.csv (one row per item ↔ configuration field link),
validates it, and outputs compiled_mappings.json for the rule engine.
"""
import csv
import json
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..engine.models import ServiceMapping, TriggerCondition, parse_bool

CSV_COLUMNS = [
    'service_id', 'config_field', 'trigger_condition', 'auto_add',
    'sync_quantity', 'quantity_multiplier', 'active', 'notes'
]

VALID_TRIGGER_CONDITIONS = {c.value for c in TriggerCondition}


def parse_optional_str(value) -> Optional[str]:
    """Parse optional string (empty = None)."""
    if value is None or str(value).strip() == '':
        return None
    return str(value).strip()


@dataclass
class CompiledMapping:
    """A validated mapping row with its notes."""
    mapping: ServiceMapping
    notes: str = ""


def load_catalog_ids(catalog_json: Optional[Path]) -> set[str]:
    """Item ids from a built catalog.json (empty when unavailable)."""
    if not catalog_json or not catalog_json.exists():
        return set()
    with open(catalog_json, 'r', encoding='utf-8') as f:
        data = json.load(f)
    return {str(item.get('id')) for item in data.get('items', []) if item.get('id')}


def validate_mapping(
    row: dict,
    line_num: int,
    catalog_ids: Optional[set[str]] = None
) -> tuple[Optional[CompiledMapping], list[str]]:
    """
    Validate and parse a mapping from a CSV row.

    Returns (mapping, errors) - mapping is None if validation failed.
    """
    errors = []

    service_id = parse_optional_str(row.get('service_id', ''))
    if not service_id:
        errors.append(f"Line {line_num}: service_id is required")
    config_field = parse_optional_str(row.get('config_field', ''))
    if not config_field:
        errors.append(f"Line {line_num}: config_field is required")
    if errors:
        return None, errors

    condition = (parse_optional_str(row.get('trigger_condition', '')) or TriggerCondition.BOOLEAN.value).lower()
    if condition not in VALID_TRIGGER_CONDITIONS:
        errors.append(
            f"Line {line_num}: invalid trigger_condition '{condition}', "
            f"must be one of: {sorted(VALID_TRIGGER_CONDITIONS)}"
        )

    flags = {}
    for name, default in (('auto_add', True), ('sync_quantity', False), ('active', True)):
        try:
            flags[name] = parse_bool(row.get(name), default)
        except ValueError:
            errors.append(f"Line {line_num}: {name} must be true/false")

    multiplier = 1.0
    raw_multiplier = parse_optional_str(row.get('quantity_multiplier', ''))
    if raw_multiplier is not None:
        try:
            multiplier = float(raw_multiplier)
        except ValueError:
            errors.append(f"Line {line_num}: quantity_multiplier must be numeric")
        else:
            if multiplier < 0:
                errors.append(f"Line {line_num}: quantity_multiplier cannot be negative")

    if catalog_ids and service_id not in catalog_ids:
        errors.append(f"Line {line_num}: service_id '{service_id}' not found in catalog")

    if errors:
        return None, errors

    return CompiledMapping(
        mapping=ServiceMapping(
            service_id=service_id,
            config_field=config_field,
            trigger_condition=TriggerCondition(condition),
            auto_add=flags['auto_add'],
            sync_quantity=flags['sync_quantity'],
            quantity_multiplier=multiplier,
            active=flags['active'],
        ),
        notes=parse_optional_str(row.get('notes', '')) or "",
    ), []


def compile_mappings(
    mappings_csv: Path,
    output_json: Path,
    catalog_json: Optional[Path] = None,
    verbose: bool = True
) -> tuple[bool, list[ServiceMapping], list[str]]:
    """
    Compile service mappings from CSV to JSON.

    Returns (success, mappings, errors).
    """
    all_errors = []
    compiled = []

    if not mappings_csv.exists():
        all_errors.append(f"Mappings file not found: {mappings_csv}")
        return False, [], all_errors

    catalog_ids = load_catalog_ids(catalog_json)

    with open(mappings_csv, 'r', newline='', encoding='utf-8') as f:
        reader = csv.DictReader(f)

        for line_num, row in enumerate(reader, start=2):  # +2 for 1-indexed header row
            if not any((v or '').strip() for v in row.values() if isinstance(v, str)):
                continue
            mapping, errors = validate_mapping(row, line_num, catalog_ids)

            if errors:
                all_errors.extend(errors)
            elif mapping:
                compiled.append(mapping)

    seen = set()
    for entry in compiled:
        key = (entry.mapping.service_id, entry.mapping.config_field)
        if key in seen:
            all_errors.append(
                f"Duplicate mapping for service '{key[0]}' and field '{key[1]}'"
            )
        seen.add(key)

    mappings = [entry.mapping for entry in compiled]

    if all_errors:
        if verbose:
            print("Validation errors:")
            for err in all_errors:
                print(f"  ❌ {err}")
        return False, mappings, all_errors

    output_data = {
        "compiled_at": datetime.now().isoformat(),
        "source_file": str(mappings_csv),
        "total_mappings": len(mappings),
        "active_mappings": sum(1 for m in mappings if m.active),
        "mappings": [dict(entry.mapping.to_dict(), notes=entry.notes) for entry in compiled],
    }

    output_json.parent.mkdir(parents=True, exist_ok=True)
    with open(output_json, 'w', encoding='utf-8') as f:
        json.dump(output_data, f, indent=2)

    if verbose:
        print(f"✅ Compiled {len(mappings)} mappings ({output_data['active_mappings']} active)")
        print(f"   Output: {output_json}")

    return True, mappings, []


def main():
    """CLI entry point."""
    from ..config.settings import get_settings

    settings = get_settings()

    print("Compiling service mappings...")
    success, mappings, errors = compile_mappings(
        settings.mappings_csv,
        settings.compiled_mappings,
        catalog_json=settings.catalog_json,
    )

    if not success:
        print(f"\n❌ Compilation failed with {len(errors)} errors")
        sys.exit(1)


if __name__ == "__main__":
    main()
