"""
Data models for the pricing engine.

Uses dataclasses for structured, type-safe data representation.
JSON shapes use the camelCase keys the quote front end exchanges
(``minQuantity``, ``oneTimeTotal``...); snake_case is accepted on input.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from ..config.settings import ONE_TIME_UNITS, SETUP_CATEGORY_ID


class BillingFrequency(str, Enum):
    ONE_TIME = 'one_time'
    MONTHLY = 'monthly'


class PricingMode(str, Enum):
    SIMPLE = 'simple'
    TIERED = 'tiered'


class DiscountType(str, Enum):
    PERCENTAGE = 'percentage'
    FIXED = 'fixed'


class DiscountApplication(str, Enum):
    UNIT = 'unit'
    TOTAL = 'total'


class GlobalDiscountApplication(str, Enum):
    NONE = 'none'
    BOTH = 'both'
    MONTHLY = 'monthly'
    ONETIME = 'onetime'


class TriggerCondition(str, Enum):
    BOOLEAN = 'boolean'
    NUMBER = 'number'
    STRING = 'string'


class ConfigKind(str, Enum):
    BOOLEAN = 'boolean'
    NUMBER = 'number'
    STRING = 'string'


# Aliases seen in older exports
_ENUM_ALIASES = {
    'one-time': 'one_time',
    'onetime': 'one_time',
    'one time': 'one_time',
    'recurring': 'monthly',
    'fixed_price': 'simple',
}


def parse_enum(enum_cls, raw, default):
    """Parse a loosely formatted string into ``enum_cls``; fall back to ``default``."""
    if raw is None or raw == '':
        return default
    if isinstance(raw, enum_cls):
        return raw
    text = str(raw).strip().lower()
    try:
        return enum_cls(text)
    except ValueError:
        pass
    alias = _ENUM_ALIASES.get(text)
    if alias is not None:
        try:
            return enum_cls(alias)
        except ValueError:
            pass
    raise ValueError(f"'{raw}' is not a valid {enum_cls.__name__}")


_TRUE = ('true', '1', 'yes', 'on', 'y')
_FALSE = ('false', '0', 'no', 'off', 'n')


def parse_bool(value, default: bool = False) -> bool:
    """Parse a boolean from a JSON, CSV or spreadsheet cell."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text == '' or text == 'nan':
        return default
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"'{value}' is not a boolean")


def _pick(data: dict, *keys, default=None):
    """Return the first present key out of several spellings."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


# ---------------------------------------------------------------------------
# Configuration values
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BooleanValue:
    value: bool

    @property
    def kind(self) -> ConfigKind:
        return ConfigKind.BOOLEAN


@dataclass(frozen=True)
class NumberValue:
    value: float

    @property
    def kind(self) -> ConfigKind:
        return ConfigKind.NUMBER


@dataclass(frozen=True)
class StringValue:
    value: str

    @property
    def kind(self) -> ConfigKind:
        return ConfigKind.STRING


ConfigValue = Union[BooleanValue, NumberValue, StringValue]


def config_value_from_raw(raw: Any) -> Optional[ConfigValue]:
    """
    Convert a raw JSON value into a tagged configuration value.

    ``bool`` is checked before numbers since it subclasses ``int``.
    Explicit ``{"kind": ..., "value": ...}`` payloads are honoured.
    """
    if raw is None:
        return None
    if isinstance(raw, (BooleanValue, NumberValue, StringValue)):
        return raw
    if isinstance(raw, dict) and 'kind' in raw:
        kind = parse_enum(ConfigKind, raw['kind'], ConfigKind.STRING)
        value = raw.get('value')
        if kind == ConfigKind.BOOLEAN:
            return BooleanValue(parse_bool(value))
        if kind == ConfigKind.NUMBER:
            return NumberValue(float(value or 0))
        return StringValue('' if value is None else str(value))
    if isinstance(raw, bool):
        return BooleanValue(raw)
    if isinstance(raw, (int, float)):
        return NumberValue(float(raw))
    if isinstance(raw, str):
        return StringValue(raw)
    raise ValueError(f"Unsupported configuration value: {raw!r}")


class ConfigFieldType(str, Enum):
    TEXT = 'text'
    NUMBER = 'number'
    BOOLEAN = 'boolean'
    SELECT = 'select'


_FIELD_KINDS = {
    ConfigFieldType.TEXT: ConfigKind.STRING,
    ConfigFieldType.NUMBER: ConfigKind.NUMBER,
    ConfigFieldType.BOOLEAN: ConfigKind.BOOLEAN,
    ConfigFieldType.SELECT: ConfigKind.STRING,
}


def _is_blank(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and not raw.strip())


@dataclass
class ConfigurationField:
    """
    A configuration input declared in the config fields sheet.

    The declared type fixes the kind of value the field holds, so a
    number typed into a form arrives as a NumberValue whatever its JSON
    type was.
    """
    id: str
    name: str = ''
    type: ConfigFieldType = ConfigFieldType.TEXT
    label: str = ''
    default_value: Optional[ConfigValue] = None
    required: bool = False
    options: list[str] = field(default_factory=list)
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    order: int = 0
    description: str = ''

    @property
    def kind(self) -> ConfigKind:
        return _FIELD_KINDS[self.type]

    @property
    def display_name(self) -> str:
        return self.label or self.name or self.id

    def coerce(self, raw: Any) -> Optional[ConfigValue]:
        """
        Convert a raw value to this field's kind; blank gives None.

        Raises ValueError when the value cannot be read as the declared type.
        """
        if isinstance(raw, (BooleanValue, NumberValue, StringValue)):
            if raw.kind == self.kind:
                return raw
            raw = raw.value
        elif isinstance(raw, dict) and 'kind' in raw:
            raw = raw.get('value')

        if _is_blank(raw):
            return None

        if self.type == ConfigFieldType.NUMBER:
            if isinstance(raw, bool):
                raise ValueError(f"{self.display_name}: {raw!r} is not a number")
            try:
                return NumberValue(float(raw))
            except (TypeError, ValueError):
                raise ValueError(f"{self.display_name}: {raw!r} is not a number") from None

        if self.type == ConfigFieldType.BOOLEAN:
            if isinstance(raw, (int, float)) and not isinstance(raw, bool):
                return BooleanValue(raw != 0)
            try:
                return BooleanValue(parse_bool(raw))
            except ValueError:
                raise ValueError(f"{self.display_name}: {raw!r} is not a yes/no value") from None

        return StringValue(str(raw).strip())

    @classmethod
    def from_dict(cls, data: dict) -> 'ConfigurationField':
        validation = _pick(data, 'validation', default={}) or {}
        options = _pick(data, 'options', default=[]) or []
        if isinstance(options, str):
            options = [o.strip() for o in options.split(',') if o.strip()]
        # Options may come as {"value", "label"} pairs
        options = [str(o.get('value')) if isinstance(o, dict) else str(o) for o in options]

        min_value = _pick(validation, 'min', default=_pick(data, 'minValue', 'min_value'))
        max_value = _pick(validation, 'max', default=_pick(data, 'maxValue', 'max_value'))

        definition = cls(
            id=str(data['id']),
            name=str(_pick(data, 'name', default='') or ''),
            type=parse_enum(ConfigFieldType, _pick(data, 'type'), ConfigFieldType.TEXT),
            label=str(_pick(data, 'label', default='') or ''),
            required=parse_bool(_pick(data, 'required'), False),
            options=options,
            min_value=None if _is_blank(min_value) else float(min_value),
            max_value=None if _is_blank(max_value) else float(max_value),
            order=int(float(_pick(data, 'order', default=0) or 0)),
            description=str(_pick(data, 'description', default='') or ''),
        )
        definition.default_value = definition.coerce(_pick(data, 'defaultValue', 'default_value'))
        return definition

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'type': self.type.value,
            'label': self.label,
            'defaultValue': self.default_value.value if self.default_value is not None else None,
            'required': self.required,
            'options': list(self.options),
            'validation': {'min': self.min_value, 'max': self.max_value},
            'order': self.order,
            'description': self.description,
        }


_IDENTITY_KEYS = {
    'clientName': 'client_name',
    'client_name': 'client_name',
    'projectName': 'project_name',
    'project_name': 'project_name',
    'preparedBy': 'prepared_by',
    'prepared_by': 'prepared_by',
}

_VALUE_MAP_KEYS = ('configValues', 'config_values', 'values')


@dataclass
class ClientConfig:
    """Client identification plus the configuration field values."""
    client_name: str = ''
    project_name: str = ''
    prepared_by: str = ''
    values: dict[str, ConfigValue] = field(default_factory=dict)

    def get(self, field_id: str) -> Optional[ConfigValue]:
        return self.values.get(field_id)

    @classmethod
    def from_dict(
        cls,
        data: Optional[dict],
        fields: Optional[dict[str, 'ConfigurationField']] = None
    ) -> 'ClientConfig':
        """
        Build from either the dynamic shape (identity + ``configValues``)
        or the flat legacy shape where every field sits at the top level.

        Declared ``fields`` convert their values to the declared type and
        fill blank or missing values with the field default. Undeclared
        values keep the kind of their JSON type.
        """
        data = data or {}
        fields = fields or {}
        identity = {}
        raw_values = {}

        for key, value in data.items():
            if key in _IDENTITY_KEYS:
                identity[_IDENTITY_KEYS[key]] = '' if value is None else str(value)
            elif key in _VALUE_MAP_KEYS and isinstance(value, dict):
                raw_values.update(value)
            else:
                raw_values[key] = value

        values = {}
        for field_id, raw in raw_values.items():
            definition = fields.get(field_id)
            converted = definition.coerce(raw) if definition else config_value_from_raw(raw)
            if converted is not None:
                values[field_id] = converted

        for definition in fields.values():
            if definition.id not in values and definition.default_value is not None:
                values[definition.id] = definition.default_value

        return cls(values=values, **identity)

    def to_dict(self) -> dict:
        return {
            'clientName': self.client_name,
            'projectName': self.project_name,
            'preparedBy': self.prepared_by,
            'configValues': {k: v.value for k, v in self.values.items()},
        }


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

def classify_billing_frequency(category_id: Optional[str], unit: Optional[str]) -> BillingFrequency:
    """Setup-category items and one-time units bill once; everything else monthly."""
    if str(category_id or '').strip().lower() == SETUP_CATEGORY_ID:
        return BillingFrequency.ONE_TIME
    if str(unit or '').strip().lower() in ONE_TIME_UNITS:
        return BillingFrequency.ONE_TIME
    return BillingFrequency.MONTHLY


@dataclass
class PricingTier:
    """A quantity band of a tiered item."""
    id: str
    name: str
    min_quantity: float
    max_quantity: Optional[float]
    unit_price: float
    description: Optional[str] = None
    config_reference: Optional[str] = None

    @property
    def is_unbounded(self) -> bool:
        return self.max_quantity is None

    @classmethod
    def from_dict(cls, data: dict) -> 'PricingTier':
        max_qty = _pick(data, 'maxQuantity', 'max_quantity')
        return cls(
            id=str(_pick(data, 'id', 'tierId', 'tier_id', default='')),
            name=str(_pick(data, 'name', 'tierName', 'tier_name', default='') or ''),
            min_quantity=float(_pick(data, 'minQuantity', 'min_quantity', default=0)),
            max_quantity=None if max_qty is None or max_qty == '' else float(max_qty),
            unit_price=float(_pick(data, 'unitPrice', 'unit_price', default=0)),
            description=_pick(data, 'description'),
            config_reference=_pick(data, 'configReference', 'config_reference'),
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'minQuantity': self.min_quantity,
            'maxQuantity': self.max_quantity,
            'unitPrice': self.unit_price,
            'description': self.description,
            'configReference': self.config_reference,
        }


@dataclass
class PricingItem:
    """A catalog entry."""
    id: str
    name: str
    description: str = ''
    category_id: str = ''
    unit: str = ''
    pricing_mode: PricingMode = PricingMode.SIMPLE
    default_price: float = 0.0
    tiers: list[PricingTier] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    billing_frequency: BillingFrequency = BillingFrequency.MONTHLY
    is_active: bool = True

    @property
    def is_tiered(self) -> bool:
        return self.pricing_mode == PricingMode.TIERED and len(self.tiers) > 0

    @property
    def is_one_time(self) -> bool:
        return self.billing_frequency == BillingFrequency.ONE_TIME

    @classmethod
    def from_dict(cls, data: dict) -> 'PricingItem':
        category_id = str(_pick(data, 'categoryId', 'category_id', 'category', default='') or '')
        unit = str(_pick(data, 'unit', default='') or '')

        raw_mode = _pick(data, 'pricingMode', 'pricing_mode', 'pricingType', 'pricing_type')
        if str(raw_mode or '').strip().lower() == 'fixed':
            raw_mode = PricingMode.SIMPLE
        pricing_mode = parse_enum(PricingMode, raw_mode, PricingMode.SIMPLE)

        raw_frequency = _pick(data, 'billingFrequency', 'billing_frequency')
        if raw_frequency in (None, ''):
            billing_frequency = classify_billing_frequency(category_id, unit)
        else:
            billing_frequency = parse_enum(BillingFrequency, raw_frequency, BillingFrequency.MONTHLY)

        tiers = [PricingTier.from_dict(t) for t in _pick(data, 'tiers', default=[]) or []]
        tiers.sort(key=lambda t: t.min_quantity)

        tags = _pick(data, 'tags', default=[]) or []
        if isinstance(tags, str):
            tags = [t.strip() for t in tags.split(',') if t.strip()]

        return cls(
            id=str(data['id']),
            name=str(_pick(data, 'name', default=data['id'])),
            description=str(_pick(data, 'description', default='') or ''),
            category_id=category_id,
            unit=unit,
            pricing_mode=pricing_mode,
            default_price=float(_pick(data, 'defaultPrice', 'default_price', default=0) or 0),
            tiers=tiers,
            tags=list(tags),
            billing_frequency=billing_frequency,
            is_active=parse_bool(_pick(data, 'isActive', 'is_active'), True),
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'categoryId': self.category_id,
            'unit': self.unit,
            'pricingMode': self.pricing_mode.value,
            'defaultPrice': self.default_price,
            'tiers': [t.to_dict() for t in self.tiers],
            'tags': list(self.tags),
            'billingFrequency': self.billing_frequency.value,
            'isActive': self.is_active,
        }


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

@dataclass
class ActiveTier:
    """How much of a line's quantity one tier absorbed."""
    tier_id: str
    tier_name: str
    tier_quantity: float
    tier_unit_price: float
    tier_total: float

    def to_dict(self) -> dict:
        return {
            'tierId': self.tier_id,
            'tierName': self.tier_name,
            'tierQuantity': self.tier_quantity,
            'tierUnitPrice': self.tier_unit_price,
            'tierTotal': self.tier_total,
        }


@dataclass
class SelectedItem:
    """A catalog item placed into the working quote."""
    id: str
    item: PricingItem
    quantity: float
    unit_price: float
    discount: float = 0.0
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_application: DiscountApplication = DiscountApplication.TOTAL
    is_free: bool = False
    auto_added: bool = False
    active_tiers: list[ActiveTier] = field(default_factory=list)

    @property
    def billing_frequency(self) -> BillingFrequency:
        return self.item.billing_frequency

    @classmethod
    def from_dict(cls, data: dict, catalog: Optional[dict[str, PricingItem]] = None) -> 'SelectedItem':
        """
        Build a selection line. ``item`` may be a full item payload or,
        when a catalog is supplied, just the item id (``itemId``).
        """
        raw_item = _pick(data, 'item')
        if isinstance(raw_item, dict):
            item = PricingItem.from_dict(raw_item)
        else:
            item_id = str(raw_item if raw_item is not None else _pick(data, 'itemId', 'item_id', default=''))
            if not catalog or item_id not in catalog:
                raise KeyError(f"Unknown pricing item '{item_id}'")
            item = catalog[item_id]

        unit_price = _pick(data, 'unitPrice', 'unit_price')
        return cls(
            id=str(_pick(data, 'id', default=item.id)),
            item=item,
            quantity=float(_pick(data, 'quantity', default=1)),
            unit_price=float(item.default_price if unit_price is None else unit_price),
            discount=float(_pick(data, 'discount', default=0) or 0),
            discount_type=parse_enum(DiscountType, _pick(data, 'discountType', 'discount_type'), DiscountType.PERCENTAGE),
            discount_application=parse_enum(
                DiscountApplication,
                _pick(data, 'discountApplication', 'discount_application'),
                DiscountApplication.TOTAL,
            ),
            is_free=parse_bool(_pick(data, 'isFree', 'is_free'), False),
            auto_added=parse_bool(_pick(data, 'autoAdded', 'auto_added'), False),
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'item': self.item.to_dict(),
            'quantity': self.quantity,
            'unitPrice': self.unit_price,
            'discount': self.discount,
            'discountType': self.discount_type.value,
            'discountApplication': self.discount_application.value,
            'isFree': self.is_free,
            'autoAdded': self.auto_added,
            'activeTiers': [t.to_dict() for t in self.active_tiers],
        }


@dataclass
class ServiceMapping:
    """Links a catalog item to a configuration field."""
    service_id: str
    config_field: str
    trigger_condition: TriggerCondition = TriggerCondition.BOOLEAN
    auto_add: bool = True
    sync_quantity: bool = False
    quantity_multiplier: float = 1.0
    active: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> 'ServiceMapping':
        multiplier = _pick(data, 'quantityMultiplier', 'quantity_multiplier', default=1.0)
        return cls(
            service_id=str(_pick(data, 'serviceId', 'service_id')),
            config_field=str(_pick(data, 'configField', 'config_field')),
            trigger_condition=parse_enum(
                TriggerCondition,
                _pick(data, 'triggerCondition', 'trigger_condition'),
                TriggerCondition.BOOLEAN,
            ),
            auto_add=parse_bool(_pick(data, 'autoAdd', 'auto_add'), True),
            sync_quantity=parse_bool(_pick(data, 'syncQuantity', 'sync_quantity'), False),
            quantity_multiplier=float(multiplier if multiplier not in ('', None) else 1.0),
            active=parse_bool(_pick(data, 'active'), True),
        )

    def to_dict(self) -> dict:
        return {
            'serviceId': self.service_id,
            'configField': self.config_field,
            'triggerCondition': self.trigger_condition.value,
            'autoAdd': self.auto_add,
            'syncQuantity': self.sync_quantity,
            'quantityMultiplier': self.quantity_multiplier,
            'active': self.active,
        }


@dataclass
class GlobalDiscount:
    """Discount applied across one or both cost buckets."""
    amount: float = 0.0
    type: DiscountType = DiscountType.PERCENTAGE
    application: GlobalDiscountApplication = GlobalDiscountApplication.NONE

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'GlobalDiscount':
        data = data or {}
        return cls(
            amount=float(_pick(data, 'amount', 'globalDiscount', 'global_discount', default=0) or 0),
            type=parse_enum(
                DiscountType,
                _pick(data, 'type', 'globalDiscountType', 'global_discount_type'),
                DiscountType.PERCENTAGE,
            ),
            application=parse_enum(
                GlobalDiscountApplication,
                _pick(data, 'application', 'globalDiscountApplication', 'global_discount_application'),
                GlobalDiscountApplication.NONE,
            ),
        )

    def to_dict(self) -> dict:
        return {
            'amount': self.amount,
            'type': self.type.value,
            'application': self.application.value,
        }


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------

@dataclass
class Savings:
    total_savings: float = 0.0
    discount_savings: float = 0.0
    free_savings: float = 0.0
    original_price: float = 0.0
    savings_rate: float = 0.0

    def to_dict(self) -> dict:
        return {
            'totalSavings': self.total_savings,
            'discountSavings': self.discount_savings,
            'freeSavings': self.free_savings,
            'originalPrice': self.original_price,
            'savingsRate': self.savings_rate,
        }


@dataclass
class FeeSummary:
    """Aggregate output of a quote."""
    one_time_subtotal: float = 0.0
    monthly_subtotal: float = 0.0
    one_time_total: float = 0.0
    monthly_total: float = 0.0
    yearly_total: float = 0.0
    total_project_cost: float = 0.0
    row_discount: float = 0.0
    global_discount_amount: float = 0.0
    total_discount: float = 0.0
    savings: Savings = field(default_factory=Savings)
    item_count: int = 0
    category_totals: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'oneTimeSubtotal': self.one_time_subtotal,
            'monthlySubtotal': self.monthly_subtotal,
            'oneTimeTotal': self.one_time_total,
            'monthlyTotal': self.monthly_total,
            'yearlyTotal': self.yearly_total,
            'totalProjectCost': self.total_project_cost,
            'rowDiscount': self.row_discount,
            'globalDiscountAmount': self.global_discount_amount,
            'totalDiscount': self.total_discount,
            'savings': self.savings.to_dict(),
            'itemCount': self.item_count,
            'categoryTotals': dict(self.category_totals),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'FeeSummary':
        savings = _pick(data, 'savings', default={}) or {}
        return cls(
            one_time_subtotal=float(_pick(data, 'oneTimeSubtotal', 'one_time_subtotal', default=0)),
            monthly_subtotal=float(_pick(data, 'monthlySubtotal', 'monthly_subtotal', default=0)),
            one_time_total=float(_pick(data, 'oneTimeTotal', 'one_time_total', default=0)),
            monthly_total=float(_pick(data, 'monthlyTotal', 'monthly_total', default=0)),
            yearly_total=float(_pick(data, 'yearlyTotal', 'yearly_total', default=0)),
            total_project_cost=float(_pick(data, 'totalProjectCost', 'total_project_cost', default=0)),
            row_discount=float(_pick(data, 'rowDiscount', 'row_discount', default=0)),
            global_discount_amount=float(_pick(data, 'globalDiscountAmount', 'global_discount_amount', default=0)),
            total_discount=float(_pick(data, 'totalDiscount', 'total_discount', default=0)),
            savings=Savings(
                total_savings=float(_pick(savings, 'totalSavings', 'total_savings', default=0)),
                discount_savings=float(_pick(savings, 'discountSavings', 'discount_savings', default=0)),
                free_savings=float(_pick(savings, 'freeSavings', 'free_savings', default=0)),
                original_price=float(_pick(savings, 'originalPrice', 'original_price', default=0)),
                savings_rate=float(_pick(savings, 'savingsRate', 'savings_rate', default=0)),
            ),
            item_count=int(_pick(data, 'itemCount', 'item_count', default=0)),
            category_totals={
                str(k): float(v)
                for k, v in (_pick(data, 'categoryTotals', 'category_totals', default={}) or {}).items()
            },
        )


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

@dataclass
class TraceStep:
    """A single step in the quote calculation trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass
class QuoteRequest:
    """Everything needed to recompute a quote."""
    config: ClientConfig = field(default_factory=ClientConfig)
    selected_items: list[SelectedItem] = field(default_factory=list)
    global_discount: GlobalDiscount = field(default_factory=GlobalDiscount)

    # Skip the auto-add / quantity-sync pass (e.g. when replaying a saved quote)
    apply_rules: bool = True


@dataclass
class QuoteLine:
    """A priced selection line in a quote result."""
    selection: SelectedItem
    subtotal: float
    discount_amount: float
    total: float
    warnings: list[str] = field(default_factory=list)
    trace: list[TraceStep] = field(default_factory=list)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the trace for this line."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def add_warning(self, warning: str):
        """Add a warning for this line."""
        self.warnings.append(warning)

    def get_trace_text(self) -> str:
        """Get human-readable trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"→ {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"→ {t.step}: {t.description}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            'selection': self.selection.to_dict(),
            'subtotal': self.subtotal,
            'discountAmount': self.discount_amount,
            'total': self.total,
            'billingFrequency': self.selection.billing_frequency.value,
            'warnings': list(self.warnings),
            'trace': [{'step': t.step, 'description': t.description, 'value': t.value} for t in self.trace],
        }


@dataclass
class QuoteResult:
    """Complete result of a quote calculation."""
    config: ClientConfig
    lines: list[QuoteLine]
    summary: FeeSummary
    global_discount: GlobalDiscount = field(default_factory=GlobalDiscount)
    warnings: list[str] = field(default_factory=list)
    trace: list[TraceStep] = field(default_factory=list)

    @property
    def selected_items(self) -> list[SelectedItem]:
        return [line.selection for line in self.lines]

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the result-level trace."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def add_warning(self, warning: str):
        """Add a result-level warning."""
        self.warnings.append(warning)

    def to_dict(self) -> dict:
        return {
            'config': self.config.to_dict(),
            'lines': [line.to_dict() for line in self.lines],
            'summary': self.summary.to_dict(),
            'globalDiscount': self.global_discount.to_dict(),
            'warnings': list(self.warnings),
            'trace': [{'step': t.step, 'description': t.description, 'value': t.value} for t in self.trace],
        }


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ScenarioData:
    """A saved snapshot of a quote."""
    config: ClientConfig
    selected_items: list[SelectedItem]
    global_discount: GlobalDiscount = field(default_factory=GlobalDiscount)
    summary: Optional[FeeSummary] = None
    scenario_id: Optional[str] = None
    name: str = ''
    created_at: str = field(default_factory=_utc_now)
    updated_at: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'scenarioId': self.scenario_id,
            'name': self.name,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
            'config': self.config.to_dict(),
            'selectedItems': [s.to_dict() for s in self.selected_items],
            'globalDiscount': self.global_discount.to_dict(),
            'summary': self.summary.to_dict() if self.summary else None,
            'metadata': dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict, catalog: Optional[dict[str, PricingItem]] = None) -> 'ScenarioData':
        summary = _pick(data, 'summary')
        return cls(
            scenario_id=_pick(data, 'scenarioId', 'scenario_id', 'id'),
            name=str(_pick(data, 'name', default='') or ''),
            created_at=_pick(data, 'createdAt', 'created_at', default=None) or _utc_now(),
            updated_at=_pick(data, 'updatedAt', 'updated_at'),
            config=ClientConfig.from_dict(_pick(data, 'config', default={})),
            selected_items=[
                SelectedItem.from_dict(s, catalog)
                for s in _pick(data, 'selectedItems', 'selected_items', default=[]) or []
            ],
            global_discount=GlobalDiscount.from_dict(_pick(data, 'globalDiscount', 'global_discount', default={})),
            summary=FeeSummary.from_dict(summary) if summary else None,
            metadata=dict(_pick(data, 'metadata', default={}) or {}),
        )
