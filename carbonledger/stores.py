# -*- coding: utf-8 -*-
"""
Collaborator contracts and in-memory stores for CarbonLedger.

The engine holds no long-lived state of its own. Activities, factors,
reports and signatures live in stores supplied by the caller, described
here as ``typing.Protocol`` contracts:

- ActivityStore: get_activities, get_activity, update_activity, add_activity
- FactorStore: get_active_factor, get_override, get_historical_factors,
  add_factor, save_override
- ReportStore: save_report, get_report, save_signature, get_signature,
  get_signatures, update_signature
- ExternalFactorLookup: lookup_factor (optional collaborator)

The in-memory implementations are thread-safe and back the CLI, the
test suite and embedding callers that do not need persistence. Callers
must still serialise writers per project: the engine does not lock a
project while it recalculates or aggregates.

Example:
    >>> from carbonledger.models import FactorCategory
    >>> from carbonledger.stores import InMemoryFactorStore, load_factors_yaml
    >>> store = InMemoryFactorStore(load_factors_yaml())
    >>> store.get_active_factor(FactorCategory.GRID, "Thailand", 2025).value
    Decimal('0.4561')
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple, Union

import yaml

from carbonledger.models import (
    Activity,
    CalculationStatus,
    EmissionFactor,
    FactorCategory,
    FactorOverride,
    Report,
    Signature,
)

logger = logging.getLogger(__name__)

#: Bundled default factor tables.
DEFAULT_FACTORS_PATH: Path = Path(__file__).parent / "data" / "default_factors.yaml"


# ---------------------------------------------------------------------------
# Collaborator contracts
# ---------------------------------------------------------------------------


class ActivityStore(Protocol):
    """Storage contract for activities."""

    def get_activities(
        self,
        project_id: str,
        status: Optional[CalculationStatus] = None,
        include_retired: bool = False,
    ) -> List[Activity]:
        ...

    def get_activity(self, activity_id: str) -> Optional[Activity]:
        ...

    def update_activity(self, activity_id: str, patch: Dict[str, Any]) -> Activity:
        ...

    def add_activity(self, activity: Activity) -> Activity:
        ...


class FactorStore(Protocol):
    """Storage contract for emission factors and project overrides."""

    def get_active_factor(
        self,
        category: FactorCategory,
        key: str,
        year: int,
    ) -> Optional[EmissionFactor]:
        ...

    def get_override(
        self,
        project_id: str,
        category: FactorCategory,
        key: str,
    ) -> Optional[FactorOverride]:
        ...

    def get_historical_factors(self, key: str) -> List[EmissionFactor]:
        ...

    def add_factor(self, factor: EmissionFactor) -> EmissionFactor:
        ...

    def save_override(self, override: FactorOverride) -> FactorOverride:
        ...


class ReportStore(Protocol):
    """Storage contract for reports and their signatures."""

    def save_report(self, report: Report) -> Report:
        ...

    def get_report(self, report_id: str) -> Optional[Report]:
        ...

    def save_signature(self, signature: Signature) -> Signature:
        ...

    def get_signature(self, signature_id: str) -> Optional[Signature]:
        ...

    def get_signatures(self, report_id: str) -> List[Signature]:
        ...

    def update_signature(self, signature: Signature) -> Signature:
        ...


class ExternalFactorLookup(Protocol):
    """Optional source of factors unknown to the factor store.

    A returned candidate is persisted through ``FactorStore.add_factor``
    before the resolver uses it.
    """

    def lookup_factor(
        self,
        material: str,
        category: FactorCategory,
        region: Optional[str] = None,
    ) -> Optional[EmissionFactor]:
        ...


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


class InMemoryActivityStore:
    """Thread-safe dict-backed ActivityStore."""

    def __init__(self, activities: Optional[Iterable[Activity]] = None) -> None:
        self._activities: Dict[str, Activity] = {}
        self._lock = threading.RLock()
        for activity in activities or ():
            self.add_activity(activity)

    def add_activity(self, activity: Activity) -> Activity:
        with self._lock:
            if activity.activity_id in self._activities:
                raise KeyError(f"Activity {activity.activity_id} already exists")
            self._activities[activity.activity_id] = activity
        return activity

    def get_activity(self, activity_id: str) -> Optional[Activity]:
        with self._lock:
            return self._activities.get(activity_id)

    def get_activities(
        self,
        project_id: str,
        status: Optional[CalculationStatus] = None,
        include_retired: bool = False,
    ) -> List[Activity]:
        with self._lock:
            activities = [
                a for a in self._activities.values() if a.project_id == project_id
            ]
        if status is not None:
            activities = [a for a in activities if a.calculation_status == status]
        if not include_retired:
            activities = [a for a in activities if not a.retired]
        return activities

    def update_activity(self, activity_id: str, patch: Dict[str, Any]) -> Activity:
        """Apply a field patch and return the stored activity.

        Raises:
            KeyError: If the activity does not exist.
        """
        with self._lock:
            current = self._activities.get(activity_id)
            if current is None:
                raise KeyError(f"Activity {activity_id} not found")
            updated = current.model_copy(
                update={**patch, "updated_at": _utcnow()},
            )
            self._activities[activity_id] = updated
        return updated

    def __len__(self) -> int:
        with self._lock:
            return len(self._activities)


class InMemoryFactorStore:
    """Thread-safe list-backed FactorStore.

    Adding an active factor deactivates any other active factor for the
    same (category, key, year), keeping exactly one active per slot.
    """

    def __init__(self, factors: Optional[Iterable[EmissionFactor]] = None) -> None:
        self._factors: List[EmissionFactor] = []
        self._overrides: Dict[Tuple[str, str, str], FactorOverride] = {}
        self._lock = threading.RLock()
        for factor in factors or ():
            self.add_factor(factor)

    def add_factor(self, factor: EmissionFactor) -> EmissionFactor:
        with self._lock:
            if factor.active:
                self._factors = [
                    f.model_copy(update={"active": False})
                    if (
                        f.active
                        and f.category == factor.category
                        and f.key == factor.key
                        and f.year == factor.year
                    )
                    else f
                    for f in self._factors
                ]
            self._factors.append(factor)
        return factor

    def get_active_factor(
        self,
        category: FactorCategory,
        key: str,
        year: int,
    ) -> Optional[EmissionFactor]:
        with self._lock:
            for factor in self._factors:
                if (
                    factor.active
                    and factor.category == category
                    and factor.key == key
                    and factor.year == year
                ):
                    return factor
        return None

    def get_historical_factors(self, key: str) -> List[EmissionFactor]:
        """Return every factor stored for a key, newest year first."""
        with self._lock:
            matches = [f for f in self._factors if f.key == key]
        return sorted(matches, key=lambda f: f.year, reverse=True)

    def save_override(self, override: FactorOverride) -> FactorOverride:
        slot = (override.project_id, override.category.value, override.key)
        with self._lock:
            self._overrides[slot] = override
        return override

    def get_override(
        self,
        project_id: str,
        category: FactorCategory,
        key: str,
    ) -> Optional[FactorOverride]:
        slot = (project_id, FactorCategory(category).value, key)
        with self._lock:
            override = self._overrides.get(slot)
        if override is not None and override.active:
            return override
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._factors)


class InMemoryReportStore:
    """Thread-safe dict-backed ReportStore."""

    def __init__(self) -> None:
        self._reports: Dict[str, Report] = {}
        self._signatures: Dict[str, Signature] = {}
        self._lock = threading.RLock()

    def save_report(self, report: Report) -> Report:
        with self._lock:
            self._reports[report.report_id] = report
        return report

    def get_report(self, report_id: str) -> Optional[Report]:
        with self._lock:
            return self._reports.get(report_id)

    def save_signature(self, signature: Signature) -> Signature:
        with self._lock:
            self._signatures[signature.signature_id] = signature
        return signature

    def get_signature(self, signature_id: str) -> Optional[Signature]:
        with self._lock:
            return self._signatures.get(signature_id)

    def get_signatures(self, report_id: str) -> List[Signature]:
        with self._lock:
            signatures = [
                s for s in self._signatures.values() if s.report_id == report_id
            ]
        return sorted(signatures, key=lambda s: s.signed_at)

    def update_signature(self, signature: Signature) -> Signature:
        """Replace a stored signature.

        Raises:
            KeyError: If the signature was never saved.
        """
        with self._lock:
            if signature.signature_id not in self._signatures:
                raise KeyError(f"Signature {signature.signature_id} not found")
            self._signatures[signature.signature_id] = signature
        return signature


# ---------------------------------------------------------------------------
# Factor table loading
# ---------------------------------------------------------------------------


def load_factors_yaml(
    path: Optional[Union[str, Path]] = None,
) -> List[EmissionFactor]:
    """Load emission factors from a YAML factor table.

    The file maps each factor category to a list of entries with ``key``,
    ``year``, ``value`` and optional ``unit``, ``source`` and ``active``::

        grid:
          - {key: Thailand, year: 2025, value: 0.4561, unit: kgCO2e/kWh}

    Args:
        path: Factor table to read; the bundled defaults when omitted.

    Returns:
        Validated EmissionFactor list in file order.

    Raises:
        ValueError: If the file is not a category mapping or names an
            unknown category.
    """
    path = Path(path) if path is not None else DEFAULT_FACTORS_PATH
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Factor file {path} must map categories to entries")

    factors: List[EmissionFactor] = []
    for category_name, entries in data.items():
        try:
            category = FactorCategory(str(category_name).lower())
        except ValueError:
            raise ValueError(
                f"Unknown factor category '{category_name}' in {path}"
            ) from None
        for entry in entries or []:
            factors.append(
                EmissionFactor(
                    category=category,
                    key=str(entry["key"]),
                    year=int(entry["year"]),
                    value=Decimal(str(entry["value"])),
                    unit=entry.get("unit", "kgCO2e/unit"),
                    source=entry.get("source", ""),
                    active=entry.get("active", True),
                )
            )

    logger.info("Loaded %d emission factors from %s", len(factors), path)
    return factors


__all__ = [
    "DEFAULT_FACTORS_PATH",
    "ActivityStore",
    "FactorStore",
    "ReportStore",
    "ExternalFactorLookup",
    "InMemoryActivityStore",
    "InMemoryFactorStore",
    "InMemoryReportStore",
    "load_factors_yaml",
]
