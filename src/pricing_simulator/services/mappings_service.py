"""
Mappings Service - CRUD operations for service mappings.
Handles reading/writing service_mappings.csv and auto-compiling to JSON.
"""
import csv
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from ..engine.models import ServiceMapping, TriggerCondition, parse_enum
from ..engine.validation import ValidationResult
from ..rules.compile_mappings import CSV_COLUMNS, compile_mappings, load_catalog_ids, parse_bool

log = logging.getLogger("pricing_simulator.mappings_service")


@dataclass
class MappingRecord:
    """A service mapping row as stored in the CSV."""
    service_id: str
    config_field: str
    trigger_condition: TriggerCondition = TriggerCondition.BOOLEAN
    auto_add: bool = True
    sync_quantity: bool = False
    quantity_multiplier: float = 1.0
    active: bool = True
    notes: Optional[str] = None

    @property
    def mapping_id(self) -> str:
        return f"{self.service_id}:{self.config_field}"

    def to_mapping(self) -> ServiceMapping:
        return ServiceMapping(
            service_id=self.service_id,
            config_field=self.config_field,
            trigger_condition=self.trigger_condition,
            auto_add=self.auto_add,
            sync_quantity=self.sync_quantity,
            quantity_multiplier=self.quantity_multiplier,
            active=self.active,
        )

    def to_dict(self) -> dict:
        return dict(self.to_mapping().to_dict(), mappingId=self.mapping_id, notes=self.notes)

    def to_csv_row(self) -> dict:
        """Convert to CSV row format."""
        return {
            'service_id': self.service_id,
            'config_field': self.config_field,
            'trigger_condition': self.trigger_condition.value,
            'auto_add': 'true' if self.auto_add else 'false',
            'sync_quantity': 'true' if self.sync_quantity else 'false',
            'quantity_multiplier': f"{self.quantity_multiplier:g}",
            'active': 'true' if self.active else 'false',
            'notes': self.notes or '',
        }

    @classmethod
    def from_csv_row(cls, row: dict) -> 'MappingRecord':
        """Create MappingRecord from CSV row."""
        multiplier = (row.get('quantity_multiplier') or '').strip()
        return cls(
            service_id=(row.get('service_id') or '').strip(),
            config_field=(row.get('config_field') or '').strip(),
            trigger_condition=parse_enum(
                TriggerCondition, (row.get('trigger_condition') or '').strip(), TriggerCondition.BOOLEAN
            ),
            auto_add=parse_bool(row.get('auto_add'), True),
            sync_quantity=parse_bool(row.get('sync_quantity'), False),
            quantity_multiplier=float(multiplier) if multiplier else 1.0,
            active=parse_bool(row.get('active'), True),
            notes=(row.get('notes') or '').strip() or None,
        )


class MappingsService:
    """Service for managing auto-add / quantity-sync mappings."""

    def __init__(
        self,
        mappings_csv_path: Path,
        compiled_json_path: Path,
        catalog_json_path: Optional[Path] = None
    ):
        self.mappings_csv_path = mappings_csv_path
        self.compiled_json_path = compiled_json_path
        self.catalog_json_path = catalog_json_path
        self._catalog_ids: set[str] = set()
        self._load_catalog_ids()

    def _load_catalog_ids(self):
        """Load item ids from the built catalog for validation."""
        try:
            self._catalog_ids = load_catalog_ids(self.catalog_json_path)
        except (OSError, ValueError) as e:
            log.warning("Could not read catalog ids from %s: %s", self.catalog_json_path, e)
            self._catalog_ids = set()

    def list_mappings(self, include_inactive: bool = True) -> list[MappingRecord]:
        """List all mappings from CSV."""
        records = []
        if not self.mappings_csv_path.exists():
            return records

        with open(self.mappings_csv_path, 'r', encoding='utf-8', newline='') as f:
            reader = csv.DictReader(f)
            for row in reader:
                if not (row.get('service_id') or '').strip():
                    continue
                record = MappingRecord.from_csv_row(row)
                if include_inactive or record.active:
                    records.append(record)

        return records

    def get_mapping(self, mapping_id: str) -> Optional[MappingRecord]:
        """Get a single mapping by ``service_id:config_field``."""
        for record in self.list_mappings():
            if record.mapping_id == mapping_id:
                return record
        return None

    def create_mapping(self, record: MappingRecord, auto_compile: bool = True) -> MappingRecord:
        """Create a new mapping."""
        if self.get_mapping(record.mapping_id):
            raise ValueError(f"Mapping '{record.mapping_id}' already exists")

        records = self.list_mappings()
        records.append(record)
        self._write_mappings(records)

        if auto_compile:
            self.compile_mappings()

        return record

    def update_mapping(self, mapping_id: str, updates: dict, auto_compile: bool = True) -> MappingRecord:
        """Update an existing mapping."""
        records = self.list_mappings()

        for i, record in enumerate(records):
            if record.mapping_id == mapping_id:
                known = {k: v for k, v in updates.items() if hasattr(record, k)}
                updated = replace(record, **known)
                if updated.mapping_id != mapping_id and any(r.mapping_id == updated.mapping_id for r in records):
                    raise ValueError(f"Mapping '{updated.mapping_id}' already exists")
                records[i] = updated
                break
        else:
            raise ValueError(f"Mapping '{mapping_id}' not found")

        self._write_mappings(records)

        if auto_compile:
            self.compile_mappings()

        return updated

    def delete_mapping(self, mapping_id: str, auto_compile: bool = True) -> bool:
        """Delete a mapping."""
        records = self.list_mappings()
        original_count = len(records)
        records = [r for r in records if r.mapping_id != mapping_id]

        if len(records) == original_count:
            raise ValueError(f"Mapping '{mapping_id}' not found")

        self._write_mappings(records)

        if auto_compile:
            self.compile_mappings()

        return True

    def validate_mapping(self, record: MappingRecord) -> ValidationResult:
        """Validate a mapping before saving."""
        result = ValidationResult(valid=True)

        if not record.service_id:
            result.error("Service id is required")
        if not record.config_field:
            result.error("Configuration field is required")
        if record.quantity_multiplier < 0:
            result.error("Quantity multiplier cannot be negative")

        if record.service_id and self._catalog_ids and record.service_id not in self._catalog_ids:
            result.warnings.append(f"Service '{record.service_id}' not found in catalog")

        if not record.auto_add and not record.sync_quantity:
            result.warnings.append("Mapping neither auto-adds nor syncs quantity; it has no effect")

        if record.sync_quantity and record.trigger_condition != TriggerCondition.NUMBER:
            result.warnings.append("Quantity sync only reads numeric fields; consider the 'number' trigger")

        if not record.active:
            result.warnings.append("Mapping is inactive and will not be compiled into rules")

        return result

    def _write_mappings(self, records: list[MappingRecord]):
        """Write mappings back to CSV."""
        self.mappings_csv_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.mappings_csv_path, 'w', encoding='utf-8', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
            writer.writeheader()
            for record in records:
                writer.writerow(record.to_csv_row())

    def compile_mappings(self) -> tuple[bool, str]:
        """Compile the CSV into the JSON the rule engine loads."""
        success, mappings, errors = compile_mappings(
            self.mappings_csv_path,
            self.compiled_json_path,
            catalog_json=self.catalog_json_path,
            verbose=False,
        )
        if success:
            output = f"Compiled {len(mappings)} mappings to {self.compiled_json_path}"
        else:
            output = "\n".join(errors)
            log.warning("Mapping compilation failed: %s", output)
        return success, output

    def get_stats(self) -> dict:
        """Get statistics about mappings."""
        records = self.list_mappings()

        active = [r for r in records if r.active]
        by_field = {}
        by_condition = {}
        for r in records:
            by_field[r.config_field] = by_field.get(r.config_field, 0) + 1
            by_condition[r.trigger_condition.value] = by_condition.get(r.trigger_condition.value, 0) + 1

        return {
            'total': len(records),
            'active': len(active),
            'inactive': len(records) - len(active),
            'auto_add': sum(1 for r in active if r.auto_add),
            'sync_quantity': sum(1 for r in active if r.sync_quantity),
            'services': len({r.service_id for r in records}),
            'by_field': by_field,
            'by_condition': by_condition,
        }
