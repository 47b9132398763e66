"""
Pricing Simulator Package

Quote configurator for card issuing and processing services.
Resolves tiered prices, auto-adds services from client configuration,
and folds line totals into one-time / monthly / yearly fee summaries.
"""

__version__ = "1.0.0"
