"""
Catalog Builder - Turns the items, tiers and config fields sheets into catalog.json.

Reads administrator-maintained sheets (CSV or XLSX), normalises column
names, assigns each item's billing frequency, validates tier schedules,
compiles the declared configuration fields and writes the catalog plus a
build report.
"""
import hashlib
import json
import re
from datetime import datetime
from pathlib import Path
from typing import Optional

import pandas as pd

from ..config.settings import get_settings, Settings
from ..engine.models import (
    BillingFrequency,
    ConfigFieldType,
    ConfigurationField,
    PricingItem,
    PricingMode,
    PricingTier,
    classify_billing_frequency,
    parse_bool,
    parse_enum,
)
from ..engine.tier_resolver import validate_tiers

ITEM_COLUMN_ALIASES = {
    'item_id': 'id',
    'service_id': 'id',
    'category_id': 'category',
    'pricing_type': 'pricing_mode',
    'price': 'default_price',
    'unit_price': 'default_price',
    'active': 'is_active',
}

TIER_COLUMN_ALIASES = {
    'service_id': 'item_id',
    'id': 'tier_id',
    'tier_name': 'name',
    'min_qty': 'min_quantity',
    'max_qty': 'max_quantity',
    'price': 'unit_price',
}

CONFIG_FIELD_COLUMN_ALIASES = {
    'field_id': 'id',
    'field_type': 'type',
    'default': 'default_value',
    'minimum': 'min',
    'min_value': 'min',
    'maximum': 'max',
    'max_value': 'max',
    'is_required': 'required',
}

REQUIRED_ITEM_COLUMNS = ['id', 'name', 'default_price']
REQUIRED_TIER_COLUMNS = ['item_id', 'min_quantity', 'unit_price']
REQUIRED_CONFIG_FIELD_COLUMNS = ['id', 'type']


def get_file_hash(path: Path) -> str:
    """Get SHA256 hash of a file."""
    if not path.exists():
        return ""
    with open(path, 'rb') as f:
        return hashlib.sha256(f.read()).hexdigest()[:12]


def read_sheet(path: Path) -> pd.DataFrame:
    """Read a CSV or Excel sheet as strings, blanks as ''."""
    if path.suffix.lower() in ('.xlsx', '.xls'):
        df = pd.read_excel(path, dtype=str)
    else:
        df = pd.read_csv(path, dtype=str)
    return df.fillna('')


def normalize_columns(df: pd.DataFrame, aliases: dict) -> pd.DataFrame:
    """``Min Quantity`` / ``minQuantity`` / ``min_quantity`` → ``min_quantity``."""
    renamed = {}
    for col in df.columns:
        key = re.sub(r'(?<=[a-z0-9])([A-Z])', r'_\1', str(col).strip())
        key = re.sub(r'[\s\-_]+', '_', key.lower()).strip('_')
        renamed[col] = aliases.get(key, key)
    return df.rename(columns=renamed)


def _optional_float(value: str) -> Optional[float]:
    text = str(value).strip()
    if text == '':
        return None
    return float(text)


def build_tiers(df_tiers: pd.DataFrame, report: dict) -> dict[str, list[PricingTier]]:
    """Group tier rows by item id, keeping sheet order."""
    tiers_by_item: dict[str, list[PricingTier]] = {}

    for line_num, row in enumerate(df_tiers.to_dict('records'), start=2):
        item_id = str(row.get('item_id', '')).strip()
        if not item_id:
            report["warnings"].append(f"Tiers line {line_num}: missing item_id, row skipped")
            continue

        try:
            min_quantity = _optional_float(row.get('min_quantity', ''))
            max_quantity = _optional_float(row.get('max_quantity', ''))
            unit_price = _optional_float(row.get('unit_price', ''))
        except ValueError:
            report["errors"].append(f"Tiers line {line_num}: quantities and unit_price must be numeric")
            continue

        if min_quantity is None or unit_price is None:
            report["errors"].append(f"Tiers line {line_num}: min_quantity and unit_price are required")
            continue

        existing = tiers_by_item.setdefault(item_id, [])
        tier_id = str(row.get('tier_id', '')).strip() or f"{item_id}-tier-{len(existing) + 1}"
        existing.append(PricingTier(
            id=tier_id,
            name=str(row.get('name', '')).strip() or f"Tier {len(existing) + 1}",
            min_quantity=min_quantity,
            max_quantity=max_quantity,
            unit_price=unit_price,
            description=str(row.get('description', '')).strip() or None,
            config_reference=str(row.get('config_reference', '')).strip() or None,
        ))

    return tiers_by_item


def build_item(row: dict, tiers: list[PricingTier]) -> PricingItem:
    """Build one catalog item from a normalised sheet row. Raises ValueError on bad cells."""
    item_id = str(row['id']).strip()
    category_id = str(row.get('category', '')).strip()
    unit = str(row.get('unit', '')).strip()

    raw_mode = str(row.get('pricing_mode', '')).strip()
    if raw_mode.lower() == 'fixed':
        raw_mode = PricingMode.SIMPLE.value
    pricing_mode = parse_enum(PricingMode, raw_mode, PricingMode.TIERED if tiers else PricingMode.SIMPLE)

    # Explicit column wins over the category / unit heuristic
    raw_frequency = str(row.get('billing_frequency', '')).strip()
    if raw_frequency:
        billing_frequency = parse_enum(BillingFrequency, raw_frequency, BillingFrequency.MONTHLY)
    else:
        billing_frequency = classify_billing_frequency(category_id, unit)

    default_price = _optional_float(row.get('default_price', ''))
    if default_price is None:
        default_price = 0.0
    if default_price < 0:
        raise ValueError("default_price cannot be negative")

    tags = [t.strip() for t in str(row.get('tags', '')).split(',') if t.strip()]

    return PricingItem(
        id=item_id,
        name=str(row.get('name', '')).strip() or item_id,
        description=str(row.get('description', '')).strip(),
        category_id=category_id,
        unit=unit,
        pricing_mode=pricing_mode,
        default_price=default_price,
        tiers=sorted(tiers, key=lambda t: t.min_quantity),
        tags=tags,
        billing_frequency=billing_frequency,
        is_active=parse_bool(row.get('is_active'), True),
    )


def build_config_field(row: dict) -> ConfigurationField:
    """Build one configuration field from a normalised sheet row. Raises ValueError on bad cells."""
    definition = ConfigurationField.from_dict({
        'id': str(row['id']).strip(),
        'name': str(row.get('name', '')).strip(),
        'type': str(row.get('type', '')).strip(),
        'label': str(row.get('label', '')).strip(),
        'defaultValue': str(row.get('default_value', '')).strip(),
        'required': row.get('required'),
        'options': str(row.get('options', '')),
        'validation': {'min': str(row.get('min', '')).strip(), 'max': str(row.get('max', '')).strip()},
        'order': str(row.get('order', '')).strip(),
        'description': str(row.get('description', '')).strip(),
    })
    if definition.min_value is not None and definition.max_value is not None \
            and definition.min_value > definition.max_value:
        raise ValueError("min cannot be greater than max")
    return definition


def build_config_fields(df_fields: pd.DataFrame, report: dict) -> list[ConfigurationField]:
    """Compile the config fields sheet; problems go to the report."""
    fields = []
    seen = set()

    for line_num, row in enumerate(df_fields.to_dict('records'), start=2):
        field_id = str(row.get('id', '')).strip()
        if not field_id:
            report["warnings"].append(f"Config fields line {line_num}: missing id, row skipped")
            continue
        if field_id in seen:
            report["errors"].append(f"Config field '{field_id}' (line {line_num}): duplicate id")
            continue
        seen.add(field_id)

        try:
            definition = build_config_field(row)
        except ValueError as e:
            report["errors"].append(f"Config field '{field_id}' (line {line_num}): {e}")
            continue

        if definition.type == ConfigFieldType.SELECT and not definition.options:
            report["warnings"].append(f"Config field '{field_id}' is a select field without options")
        fields.append(definition)

    return sorted(fields, key=lambda f: (f.order, f.id))


def _fail(report: dict, msg: str, settings: Settings, verbose: bool) -> dict:
    report["errors"].append(msg)
    report["status"] = "failed"
    if verbose:
        print(msg)
    _write_report(report, settings, verbose)
    return report


def _write_report(report: dict, settings: Settings, verbose: bool):
    report_path = settings.build_report
    report_path.parent.mkdir(parents=True, exist_ok=True)
    with open(report_path, 'w', encoding='utf-8') as f:
        json.dump(report, f, indent=2)

    if verbose:
        print(f"Build report saved to: {report_path}")


def build_catalog(settings: Optional[Settings] = None, verbose: bool = True) -> dict:
    """
    Build catalog.json from the items, tiers and config fields sheets.

    Args:
        settings: Optional settings override
        verbose: Print progress messages

    Returns:
        Build report dictionary
    """
    settings = settings or get_settings()

    report = {
        "timestamp": datetime.now().isoformat(),
        "status": "pending",
        "input_files": {},
        "metrics": {},
        "warnings": [],
        "errors": []
    }

    items_path = settings.items_sheet
    if not items_path.exists():
        return _fail(report, f"CRITICAL ERROR: {items_path} not found.", settings, verbose)

    report["input_files"]["items"] = {
        "path": str(items_path),
        "hash": get_file_hash(items_path)
    }

    try:
        df_items = normalize_columns(read_sheet(items_path), ITEM_COLUMN_ALIASES)
    except (OSError, ValueError) as e:
        return _fail(report, f"ERROR: Failed to read {items_path}. {e}", settings, verbose)

    missing = [c for c in REQUIRED_ITEM_COLUMNS if c not in df_items.columns]
    if missing:
        return _fail(report, f"ERROR: {items_path.name} is missing columns: {', '.join(missing)}", settings, verbose)

    df_items['id'] = df_items['id'].astype(str).str.strip()
    df_items = df_items[df_items['id'] != '']
    report["metrics"]["initial_item_count"] = len(df_items)

    duplicates = int(df_items['id'].duplicated().sum())
    df_items = df_items.drop_duplicates('id', keep='first')
    report["metrics"]["duplicates_removed"] = duplicates
    if duplicates > 0:
        report["warnings"].append(f"{duplicates} duplicate item ids removed (first row kept)")
        if verbose:
            print(f"Removed {duplicates} duplicate item ids")

    # Tiers are optional: a catalog of simple items needs no tiers sheet
    tiers_by_item: dict[str, list[PricingTier]] = {}
    tiers_path = settings.tiers_sheet
    if tiers_path.exists():
        report["input_files"]["tiers"] = {
            "path": str(tiers_path),
            "hash": get_file_hash(tiers_path)
        }
        try:
            df_tiers = normalize_columns(read_sheet(tiers_path), TIER_COLUMN_ALIASES)
        except (OSError, ValueError) as e:
            return _fail(report, f"ERROR: Failed to read {tiers_path}. {e}", settings, verbose)

        missing = [c for c in REQUIRED_TIER_COLUMNS if c not in df_tiers.columns]
        if missing:
            return _fail(report, f"ERROR: {tiers_path.name} is missing columns: {', '.join(missing)}", settings, verbose)

        tiers_by_item = build_tiers(df_tiers, report)
        report["metrics"]["tier_rows"] = sum(len(t) for t in tiers_by_item.values())
        if verbose:
            print(f"Loaded {report['metrics']['tier_rows']} tier rows for {len(tiers_by_item)} items")
    else:
        report["warnings"].append(f"WARNING: {tiers_path.name} not found, no tiered pricing loaded")
        if verbose:
            print(f"WARNING: {tiers_path.name} not found")

    items = []
    for line_num, row in enumerate(df_items.to_dict('records'), start=2):
        item_id = row['id']
        tiers = tiers_by_item.get(item_id, [])
        try:
            item = build_item(row, tiers)
        except ValueError as e:
            report["errors"].append(f"Item '{item_id}' (line {line_num}): {e}")
            continue

        if item.pricing_mode == PricingMode.TIERED:
            for err in validate_tiers(tiers):
                report["errors"].append(f"Item '{item_id}': {err}")
        elif tiers:
            report["warnings"].append(f"Item '{item_id}' is simple-priced; its {len(tiers)} tier rows are ignored")

        items.append(item)

    known = {item.id for item in items}
    orphans = sorted(set(tiers_by_item) - known)
    if orphans:
        report["warnings"].append(f"Tiers reference unknown items: {', '.join(orphans)}")

    report["metrics"]["final_item_count"] = len(items)
    report["metrics"]["tiered_items"] = sum(1 for i in items if i.pricing_mode == PricingMode.TIERED)
    report["metrics"]["one_time_items"] = sum(1 for i in items if i.is_one_time)
    report["metrics"]["monthly_items"] = sum(1 for i in items if not i.is_one_time)
    report["metrics"]["inactive_items"] = sum(1 for i in items if not i.is_active)

    # Config fields are optional; without them values keep their JSON types
    config_fields: list[ConfigurationField] = []
    fields_path = settings.config_fields_sheet
    if fields_path.exists():
        report["input_files"]["config_fields"] = {
            "path": str(fields_path),
            "hash": get_file_hash(fields_path)
        }
        try:
            df_fields = normalize_columns(read_sheet(fields_path), CONFIG_FIELD_COLUMN_ALIASES)
        except (OSError, ValueError) as e:
            return _fail(report, f"ERROR: Failed to read {fields_path}. {e}", settings, verbose)

        missing = [c for c in REQUIRED_CONFIG_FIELD_COLUMNS if c not in df_fields.columns]
        if missing:
            return _fail(report, f"ERROR: {fields_path.name} is missing columns: {', '.join(missing)}", settings, verbose)

        config_fields = build_config_fields(df_fields, report)
        if verbose:
            print(f"Loaded {len(config_fields)} configuration fields")
    else:
        report["warnings"].append(f"WARNING: {fields_path.name} not found, configuration values are not typed")
    report["metrics"]["config_fields"] = len(config_fields)

    zero_priced = [i.id for i in items if not i.is_tiered and i.default_price == 0]
    report["metrics"]["zero_priced"] = len(zero_priced)
    if zero_priced:
        report["warnings"].append(f"{len(zero_priced)} simple items have no default price")

    if report["errors"]:
        report["status"] = "failed"
        if verbose:
            print("Catalog errors:")
            for err in report["errors"]:
                print(f"  ❌ {err}")
        _write_report(report, settings, verbose)
        return report

    categories = sorted({i.category_id for i in items if i.category_id})
    catalog = {
        "generatedAt": datetime.now().isoformat(),
        "itemCount": len(items),
        "categories": categories,
        "items": [i.to_dict() for i in items],
        "configFields": [f.to_dict() for f in config_fields],
    }

    output_path = settings.catalog_json
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(catalog, f, indent=2)

    report["output_file"] = str(output_path)
    report["status"] = "success"

    if verbose:
        print(f"\nPROCESS COMPLETE: {output_path} generated with {len(items)} items.")

    _write_report(report, settings, verbose)
    return report


if __name__ == "__main__":
    build_catalog()
