"""
Centralized settings and path configuration for the pricing simulator.
"""
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


ROOT_ENV_VAR = 'PRICING_SIMULATOR_ROOT'

# Units billed once rather than every month (compared case-insensitively)
ONE_TIME_UNITS = (
    'one-time',
    'onetime',
    'per change',
    'per project',
    'per setup',
    'per_setup',
    'per installation',
    'per_installation',
)

# Category whose items are always one-time charges
SETUP_CATEGORY_ID = 'setup'

MONTHS_PER_YEAR = 12


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml or data/ lives)."""
    override = os.environ.get(ROOT_ENV_VAR)
    if override:
        return Path(override).resolve()

    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'data' / 'items.csv').exists() or (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 4 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path
    data_dir: Path

    # Input sheets (CSV or XLSX)
    items_sheet: Path
    tiers_sheet: Path
    config_fields_sheet: Path
    mappings_csv: Path

    # Build outputs
    catalog_json: Path
    build_report: Path
    compiled_mappings: Path

    # Saved scenarios (one JSON document per scenario)
    scenarios_dir: Path

    # Stamped into saved scenario metadata
    scenario_source: str = 'pricing-simulator'

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the project structure."""
        root = Path(project_root) if project_root else get_project_root()
        data_dir = root / 'data'
        outputs = data_dir / 'outputs'

        # Prefer a spreadsheet export when the admins ship one
        items_sheet = data_dir / 'items.xlsx'
        if not items_sheet.exists():
            items_sheet = data_dir / 'items.csv'
        tiers_sheet = data_dir / 'tiers.xlsx'
        if not tiers_sheet.exists():
            tiers_sheet = data_dir / 'tiers.csv'
        config_fields_sheet = data_dir / 'config_fields.xlsx'
        if not config_fields_sheet.exists():
            config_fields_sheet = data_dir / 'config_fields.csv'

        return cls(
            project_root=root,
            data_dir=data_dir,
            items_sheet=items_sheet,
            tiers_sheet=tiers_sheet,
            config_fields_sheet=config_fields_sheet,
            mappings_csv=data_dir / 'service_mappings.csv',
            catalog_json=outputs / 'catalog.json',
            build_report=outputs / 'build_report.json',
            compiled_mappings=outputs / 'compiled_mappings.json',
            scenarios_dir=data_dir / 'scenarios',
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings
