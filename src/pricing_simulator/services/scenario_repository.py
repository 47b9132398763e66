"""
Scenario Repository - persistence for saved quotes.

``ScenarioRepository`` is the port the API layer depends on; the
calculation engine never touches storage. ``JsonScenarioRepository``
keeps one JSON document per scenario in a directory and
``InMemoryScenarioRepository`` backs tests and throwaway sessions.
"""
import json
import logging
import re
import uuid
from abc import ABC, abstractmethod
from copy import deepcopy
from pathlib import Path
from typing import Optional

from .. import __version__
from ..engine.models import PricingItem, ScenarioData, _utc_now

log = logging.getLogger("pricing_simulator.scenarios")

_SAFE_ID = re.compile(r'^[A-Za-z0-9_\-]+$')


def check_scenario_id(scenario_id: str) -> str:
    """Scenario ids become file names; only letters, digits, ``-`` and ``_``."""
    if not scenario_id or not _SAFE_ID.match(scenario_id):
        raise ValueError(f"Invalid scenario id '{scenario_id}'")
    return scenario_id


class ScenarioRepository(ABC):
    """Save/load ScenarioData."""

    def __init__(self, source: str = 'pricing-simulator'):
        self.source = source

    def _stamp(self, scenario: ScenarioData) -> ScenarioData:
        """Assign id, timestamps and metadata before a save."""
        scenario = deepcopy(scenario)
        if scenario.scenario_id:
            check_scenario_id(scenario.scenario_id)
            existing = self.get(scenario.scenario_id)
            if existing is not None:
                scenario.created_at = existing.created_at
                scenario.updated_at = _utc_now()
        else:
            scenario.scenario_id = uuid.uuid4().hex
        scenario.metadata.setdefault('version', __version__)
        scenario.metadata.setdefault('source', self.source)
        return scenario

    @abstractmethod
    def save(self, scenario: ScenarioData) -> ScenarioData:
        """Insert or replace a scenario; returns the stored copy."""

    @abstractmethod
    def get(self, scenario_id: str, catalog: Optional[dict[str, PricingItem]] = None) -> Optional[ScenarioData]:
        """Return a scenario, or None when it does not exist."""

    @abstractmethod
    def list(self) -> list[ScenarioData]:
        """All scenarios, newest first."""

    @abstractmethod
    def delete(self, scenario_id: str) -> bool:
        """Delete a scenario; False when it did not exist."""


class InMemoryScenarioRepository(ScenarioRepository):
    """Scenarios held in a dict of JSON documents."""

    def __init__(self, source: str = 'pricing-simulator'):
        super().__init__(source)
        self._store: dict[str, dict] = {}

    def save(self, scenario: ScenarioData) -> ScenarioData:
        stored = self._stamp(scenario)
        self._store[stored.scenario_id] = stored.to_dict()
        log.info("Saved scenario %s", stored.scenario_id)
        return stored

    def get(self, scenario_id, catalog=None):
        data = self._store.get(scenario_id)
        if data is None:
            return None
        return ScenarioData.from_dict(deepcopy(data), catalog)

    def list(self):
        scenarios = [ScenarioData.from_dict(deepcopy(d)) for d in self._store.values()]
        return sorted(scenarios, key=lambda s: s.created_at, reverse=True)

    def delete(self, scenario_id):
        return self._store.pop(scenario_id, None) is not None


class JsonScenarioRepository(ScenarioRepository):
    """One ``<scenario_id>.json`` file per scenario under ``directory``."""

    def __init__(self, directory: Path, source: str = 'pricing-simulator'):
        super().__init__(source)
        self.directory = Path(directory)

    def _path(self, scenario_id: str) -> Path:
        return self.directory / f"{check_scenario_id(scenario_id)}.json"

    def save(self, scenario: ScenarioData) -> ScenarioData:
        stored = self._stamp(scenario)
        self.directory.mkdir(parents=True, exist_ok=True)

        path = self._path(stored.scenario_id)
        tmp_path = path.with_suffix('.json.tmp')
        try:
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(stored.to_dict(), f, indent=2)
            tmp_path.replace(path)
        except Exception:
            tmp_path.unlink(missing_ok=True)
            raise

        log.info("Saved scenario %s to %s", stored.scenario_id, path)
        return stored

    def get(self, scenario_id, catalog=None):
        path = self._path(scenario_id)
        if not path.exists():
            return None
        with open(path, 'r', encoding='utf-8') as f:
            return ScenarioData.from_dict(json.load(f), catalog)

    def list(self):
        if not self.directory.exists():
            return []

        scenarios = []
        for path in sorted(self.directory.glob('*.json')):
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    scenarios.append(ScenarioData.from_dict(json.load(f)))
            except (OSError, ValueError, KeyError) as e:
                log.warning("Skipping unreadable scenario file %s: %s", path, e)
        return sorted(scenarios, key=lambda s: s.created_at, reverse=True)

    def delete(self, scenario_id):
        path = self._path(scenario_id)
        if not path.exists():
            return False
        path.unlink()
        log.info("Deleted scenario %s", scenario_id)
        return True
