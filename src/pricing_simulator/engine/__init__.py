"""Engine subpackage - tier resolution, rules, line pricing and summary."""
from .pricing_engine import PricingEngine
from .models import (
    ClientConfig,
    FeeSummary,
    GlobalDiscount,
    PricingItem,
    PricingTier,
    QuoteRequest,
    QuoteResult,
    ScenarioData,
    SelectedItem,
    ServiceMapping,
)
from .validation import QuoteValidationError, ValidationResult

__all__ = [
    'PricingEngine',
    'ClientConfig',
    'FeeSummary',
    'GlobalDiscount',
    'PricingItem',
    'PricingTier',
    'QuoteRequest',
    'QuoteResult',
    'ScenarioData',
    'SelectedItem',
    'ServiceMapping',
    'QuoteValidationError',
    'ValidationResult',
]
