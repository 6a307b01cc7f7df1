# -*- coding: utf-8 -*-
"""
FactorResolverEngine - Engine 1: CarbonLedger

Selects the single applicable emission factor for a (category, key,
year) request and tags it with where it came from.

Resolution order (highest priority first):

1. **Project override**: an active FactorOverride for the project that
   matches category and key.
2. **Exact year**: the active global EmissionFactor for category, key
   and year.
3. **Last known factor**: the nearest prior year's active factor for the
   same category and key. Factors are never extrapolated forward.
4. **External lookup** (optional): a candidate from the external lookup
   collaborator, persisted as a new EmissionFactor before it is used.
5. Otherwise ``FactorNotFoundError`` naming category, key and year.

Resolution is a pure lookup apart from the external-lookup persistence
step. Overrides are validated once, when they are registered: an energy
mix must sum to 100 within the configured tolerance, and resolution
never re-validates it.

Example:
    >>> from carbonledger.factor_resolver import FactorResolverEngine
    >>> from carbonledger.stores import InMemoryFactorStore, load_factors_yaml
    >>> resolver = FactorResolverEngine(InMemoryFactorStore(load_factors_yaml()))
    >>> factor = resolver.resolve("grid", "Thailand", 2025)
    >>> factor.value, factor.provenance.value
    (Decimal('0.4561'), 'standard')
"""

from __future__ import annotations

import logging
import time
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from carbonledger.config import CarbonLedgerConfig, get_config
from carbonledger.exceptions import FactorNotFoundError, ValidationError
from carbonledger.metrics import observe_duration, record_factor_resolution
from carbonledger.models import (
    EmissionFactor,
    EnergyMix,
    FactorCategory,
    FactorOverride,
    FactorProvenance,
    ResolvedFactor,
)
from carbonledger.provenance import get_provenance_tracker
from carbonledger.stores import ExternalFactorLookup, FactorStore

logger = logging.getLogger(__name__)

_HUNDRED = Decimal("100")


class FactorResolverEngine:
    """Resolves emission factors through the override / exact / prior-year /
    external-lookup chain.

    Attributes:
        _store: Factor store collaborator.
        _lookup: Optional external lookup collaborator.
        _config: Engine configuration.
        _provenance: Provenance tracker, or None when disabled.

    Example:
        >>> resolver = FactorResolverEngine(store)
        >>> resolver.resolve(FactorCategory.FUEL, "diesel_l", 2024).value
        Decimal('2.68')
    """

    def __init__(
        self,
        factor_store: FactorStore,
        external_lookup: Optional[ExternalFactorLookup] = None,
        config: Optional[CarbonLedgerConfig] = None,
    ) -> None:
        self._store = factor_store
        self._lookup = external_lookup
        self._config = config or get_config()
        self._provenance = (
            get_provenance_tracker() if self._config.enable_provenance else None
        )
        logger.info(
            "FactorResolverEngine initialized (external_lookup=%s, "
            "mix_tolerance=%s)",
            self._lookup is not None and self._config.enable_external_lookup,
            self._config.energy_mix_tolerance,
        )

    # ==================================================================
    # PUBLIC API: Resolution
    # ==================================================================

    def resolve(
        self,
        category: Union[FactorCategory, str],
        key: str,
        year: int,
        project_id: Optional[str] = None,
        region: Optional[str] = None,
    ) -> ResolvedFactor:
        """Return the single applicable factor and its provenance.

        Args:
            category: Factor table (grid, fuel, material, precursor,
                transport, activity).
            key: Lookup key within the table.
            year: Requested reference year.
            project_id: Project whose overrides take priority.
            region: Region hint passed to the external lookup.

        Returns:
            ResolvedFactor tagged override, standard or external_lookup.

        Raises:
            FactorNotFoundError: If no step of the chain yields a factor.
        """
        start = time.monotonic()
        category = FactorCategory(category)

        resolved = (
            self._from_override(category, key, year, project_id)
            or self._from_exact_year(category, key, year)
            or self._from_prior_year(category, key, year)
            or self._from_external_lookup(category, key, year, region)
        )

        observe_duration("resolve", time.monotonic() - start)
        if resolved is None:
            record_factor_resolution("not_found")
            logger.debug(
                "Factor chain exhausted: category=%s key=%s year=%d project=%s",
                category.value, key, year, project_id,
            )
            raise FactorNotFoundError(category.value, key, year)

        record_factor_resolution(resolved.provenance.value)
        if self._provenance is not None:
            self._provenance.record(
                "emission_factor",
                "resolve",
                resolved.factor_id,
                data=resolved.model_dump(mode="json"),
            )
        return resolved

    def _from_override(
        self,
        category: FactorCategory,
        key: str,
        year: int,
        project_id: Optional[str],
    ) -> Optional[ResolvedFactor]:
        if not project_id:
            return None
        override = self._store.get_override(project_id, category, key)
        if override is None:
            return None
        logger.debug(
            "Override %s applied for project=%s category=%s key=%s",
            override.override_id, project_id, category.value, key,
        )
        return ResolvedFactor(
            factor_id=override.override_id,
            category=category,
            key=key,
            year=None,
            requested_year=year,
            value=override.value,
            unit=override.unit,
            source=override.source,
            provenance=FactorProvenance.OVERRIDE,
        )

    def _from_exact_year(
        self,
        category: FactorCategory,
        key: str,
        year: int,
    ) -> Optional[ResolvedFactor]:
        factor = self._store.get_active_factor(category, key, year)
        if factor is None:
            return None
        logger.debug(
            "Exact-year factor %s for category=%s key=%s year=%d",
            factor.factor_id, category.value, key, year,
        )
        return self._to_resolved(factor, year, FactorProvenance.STANDARD)

    def _from_prior_year(
        self,
        category: FactorCategory,
        key: str,
        year: int,
    ) -> Optional[ResolvedFactor]:
        candidates = [
            f
            for f in self._store.get_historical_factors(key)
            if f.category == category and f.active and f.year < year
        ]
        if not candidates:
            return None
        factor = max(candidates, key=lambda f: f.year)
        logger.warning(
            "No %s factor for key=%s in %d; using last known factor from %d",
            category.value, key, year, factor.year,
        )
        return self._to_resolved(factor, year, FactorProvenance.STANDARD)

    def _from_external_lookup(
        self,
        category: FactorCategory,
        key: str,
        year: int,
        region: Optional[str],
    ) -> Optional[ResolvedFactor]:
        if self._lookup is None or not self._config.enable_external_lookup:
            return None
        candidate = self._lookup.lookup_factor(key, category, region)
        if candidate is None:
            return None
        stored = self._store.add_factor(
            candidate.model_copy(
                update={"category": category, "key": key, "active": True},
            )
        )
        logger.warning(
            "Factor for category=%s key=%s taken from external lookup "
            "(source=%s) and stored as %s",
            category.value, key, stored.source, stored.factor_id,
        )
        if self._provenance is not None:
            self._provenance.record(
                "emission_factor",
                "register",
                stored.factor_id,
                data=stored.model_dump(mode="json"),
            )
        return self._to_resolved(stored, year, FactorProvenance.EXTERNAL_LOOKUP)

    @staticmethod
    def _to_resolved(
        factor: EmissionFactor,
        requested_year: int,
        provenance: FactorProvenance,
    ) -> ResolvedFactor:
        return ResolvedFactor(
            factor_id=factor.factor_id,
            category=factor.category,
            key=factor.key,
            year=factor.year,
            requested_year=requested_year,
            value=factor.value,
            unit=factor.unit,
            source=factor.source,
            provenance=provenance,
        )

    # ==================================================================
    # PUBLIC API: Overrides
    # ==================================================================

    def register_override(
        self,
        project_id: str,
        category: Union[FactorCategory, str],
        key: str,
        value: Union[Decimal, float, str],
        unit: str = "kgCO2e/unit",
        source: str = "project override",
        energy_mix: Optional[Union[EnergyMix, Dict[str, Any]]] = None,
    ) -> FactorOverride:
        """Validate and store a project-scoped factor override.

        Args:
            project_id: Owning project.
            category: Factor table the override shadows.
            key: Key the override shadows.
            value: Replacement factor value.
            unit: Factor unit.
            source: Source label.
            energy_mix: Optional renewable/fossil/nuclear percentages.

        Returns:
            The stored FactorOverride.

        Raises:
            ValidationError: If the override is malformed or its energy
                mix does not sum to 100 within tolerance.
        """
        try:
            override = FactorOverride(
                project_id=project_id,
                category=category,
                key=key,
                value=Decimal(str(value)),
                unit=unit,
                source=source,
                energy_mix=energy_mix,
            )
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Invalid factor override for key={key}",
                invalid_fields={
                    ".".join(str(p) for p in err["loc"]): err["msg"]
                    for err in exc.errors()
                },
            ) from exc

        if override.energy_mix is not None:
            self.validate_energy_mix(override.energy_mix)

        stored = self._store.save_override(override)
        logger.info(
            "Override %s registered: project=%s category=%s key=%s value=%s",
            stored.override_id, project_id, stored.category.value, key,
            stored.value,
        )
        if self._provenance is not None:
            self._provenance.record(
                "factor_override",
                "register",
                stored.override_id,
                data=stored.model_dump(mode="json"),
            )
        return stored

    def validate_energy_mix(self, energy_mix: EnergyMix) -> None:
        """Check that an energy mix sums to 100 within tolerance.

        Raises:
            ValidationError: If the deviation exceeds the tolerance.
        """
        tolerance = Decimal(str(self._config.energy_mix_tolerance))
        total = energy_mix.total
        if abs(total - _HUNDRED) > tolerance:
            raise ValidationError(
                f"Energy mix must sum to 100% (got {total}%)",
                invalid_fields={
                    "energy_mix": (
                        f"renewable={energy_mix.renewable_pct}, "
                        f"fossil={energy_mix.fossil_pct}, "
                        f"nuclear={energy_mix.nuclear_pct}"
                    ),
                },
            )


__all__ = ["FactorResolverEngine"]
