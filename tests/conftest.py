import os
import shutil
import sys
from pathlib import Path

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from pricing_simulator.config.settings import Settings
from pricing_simulator.engine import PricingEngine
from pricing_simulator.engine.models import (
    BillingFrequency,
    PricingItem,
    PricingMode,
    PricingTier,
    SelectedItem,
    ServiceMapping,
    TriggerCondition,
)

REPO_DATA = Path(__file__).resolve().parent.parent / 'data'


@pytest.fixture
def make_item():
    """Factory for catalog items; passing tiers makes the item tiered."""
    def _make(item_id='item', price=10.0, frequency=BillingFrequency.MONTHLY, tiers=None, **kwargs):
        return PricingItem(
            id=item_id,
            name=kwargs.pop('name', item_id.replace('-', ' ').title()),
            category_id=kwargs.pop('category_id', 'general'),
            pricing_mode=PricingMode.TIERED if tiers else PricingMode.SIMPLE,
            default_price=price,
            tiers=list(tiers or []),
            billing_frequency=frequency,
            **kwargs,
        )
    return _make


@pytest.fixture
def make_selection():
    """Factory for selection lines; unit price defaults to the item's default price."""
    def _make(item, quantity=1, unit_price=None, **kwargs):
        return SelectedItem(
            id=kwargs.pop('id', f"{item.id}-line"),
            item=item,
            quantity=quantity,
            unit_price=item.default_price if unit_price is None else unit_price,
            **kwargs,
        )
    return _make


@pytest.fixture
def volume_tiers():
    """1-1000 @ 0.20, 1001-10000 @ 0.15, 10001+ @ 0.10."""
    return [
        PricingTier(id='tp-1', name='Starter', min_quantity=1, max_quantity=1000, unit_price=0.20),
        PricingTier(id='tp-2', name='Growth', min_quantity=1001, max_quantity=10000, unit_price=0.15),
        PricingTier(id='tp-3', name='Scale', min_quantity=10001, max_quantity=None, unit_price=0.10),
    ]


@pytest.fixture
def catalog(make_item, volume_tiers):
    """A small card services catalog keyed by item id."""
    items = [
        make_item('platform-setup', 5000.0, BillingFrequency.ONE_TIME, category_id='setup', name='Platform Setup'),
        make_item('card-issuance', 1500.0, BillingFrequency.ONE_TIME, category_id='card-issuing', name='Card Issuance'),
        make_item('debit-card-issuance', 2.5, category_id='card-issuing', name='Debit Card Issuance'),
        make_item('transaction-processing', 0.1, tiers=volume_tiers, category_id='payment-processing',
                  name='Transaction Processing'),
        make_item('monthly-maintenance', 500.0, category_id='support', name='Monthly System Maintenance',
                  tags=['maintenance', 'support']),
        make_item('legacy-sms-alerts', 0.02, category_id='notifications', name='SMS Alerts', is_active=False),
    ]
    return {item.id: item for item in items}


@pytest.fixture
def mappings():
    return [
        ServiceMapping('card-issuance', 'hasDebitCards', TriggerCondition.BOOLEAN),
        ServiceMapping('card-issuance', 'hasCreditCards', TriggerCondition.BOOLEAN),
        ServiceMapping('debit-card-issuance', 'debitCards', TriggerCondition.NUMBER, sync_quantity=True),
        ServiceMapping('transaction-processing', 'monthlyAuthorizations', TriggerCondition.NUMBER,
                       sync_quantity=True),
    ]


@pytest.fixture
def engine(catalog, mappings):
    """Engine built from in-memory data (no files)."""
    return PricingEngine.from_data(catalog.values(), mappings)


@pytest.fixture
def project_settings(tmp_path):
    """A throwaway project root holding a copy of the repository's data sheets."""
    data_dir = tmp_path / 'data'
    data_dir.mkdir()
    for name in ('items.csv', 'tiers.csv', 'service_mappings.csv', 'config_fields.csv'):
        shutil.copy(REPO_DATA / name, data_dir / name)
    return Settings.load(tmp_path)
