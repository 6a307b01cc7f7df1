# -*- coding: utf-8 -*-
"""
ActivityCalculatorEngine - Engine 2: CarbonLedger

Converts one activity record plus its resolved factor into a single
CO2-equivalent result in kilograms. Formula families by activity type:

1. **Combustion** (stationary_combustion, process_emissions,
   fugitive_emissions)::

       CO2e = quantity * fuel_factor

2. **Mobile combustion** (mobile_combustion)::

       CO2e = (distance / fuel_efficiency) * fuel_factor   when efficiency given
       CO2e = quantity * fuel_factor                       otherwise

3. **Purchased electricity** (purchased_electricity)::

       location-based: CO2e = kWh * grid_factor(country, year)
       market-based:   CO2e = kWh * supplier_factor   (explicit input only)

4. **Transport** (upstream_transport, downstream_transport)::

       CO2e = weight_tonnes * distance_km * mode_factor
       CO2e = quantity(tonne-km) * mode_factor          without weight/distance

5. **Purchased goods / precursors** (purchased_goods, capital_goods,
   precursor_materials)::

       CO2e = quantity * material_factor(material, production_route, year)

6. **Generic** (every other activity type)::

       CO2e = quantity * activity_factor(activity_type, factor_key)

The formula result is then multiplied by the configured tier multiplier
(tier2_plus defaults to 1.3). No unit conversion is performed beyond
what the factor's declared unit implies.

Validation and failure handling:
    Quantity must be a positive finite number; unit, activity type and,
    for scope3, the Scope 3 category must be present. A validation or
    factor-resolution failure becomes an ``error`` result for that row
    (status ``error``, cause retained) instead of an exception.

Batch semantics:
    ``calculate_all`` commits each activity's result as it is produced.
    A recalculation always overwrites the previous result, so an
    interrupted batch can be re-invoked without double counting. The
    caller must not run two batches for the same project concurrently.

Example:
    >>> calc = ActivityCalculatorEngine(resolver, activity_store)
    >>> result = calc.calculate(activity)
    >>> result.co2e_kg
    Decimal('456.10000000')
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Tuple

from carbonledger.config import CarbonLedgerConfig, get_config
from carbonledger.exceptions import ROW_ERROR_TYPES, ValidationError
from carbonledger.factor_resolver import FactorResolverEngine
from carbonledger.metrics import (
    observe_batch_size,
    observe_duration,
    record_calculation,
    record_emissions,
)
from carbonledger.models import (
    Activity,
    BatchCalculationResult,
    CalculationResult,
    CalculationStatus,
    FactorCategory,
    ResolvedFactor,
    RowError,
    Scope,
    Scope2Method,
    TierLevel,
)
from carbonledger.provenance import get_provenance_tracker, hash_payload
from carbonledger.stores import ActivityStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Formula families
# ---------------------------------------------------------------------------

FORMULA_COMBUSTION = "combustion"
FORMULA_MOBILE = "mobile_combustion"
FORMULA_ELECTRICITY_LOCATION = "electricity_location_based"
FORMULA_ELECTRICITY_MARKET = "electricity_market_based"
FORMULA_TRANSPORT = "transport"
FORMULA_MATERIAL = "material"
FORMULA_PRECURSOR = "precursor"
FORMULA_GENERIC = "generic"

#: Activity types handled by each specialised formula family.
COMBUSTION_TYPES = frozenset({
    "stationary_combustion",
    "process_emissions",
    "fugitive_emissions",
})
MOBILE_TYPES = frozenset({"mobile_combustion"})
ELECTRICITY_TYPES = frozenset({"purchased_electricity"})
TRANSPORT_TYPES = frozenset({"upstream_transport", "downstream_transport"})
MATERIAL_TYPES = frozenset({"purchased_goods", "capital_goods"})
PRECURSOR_TYPES = frozenset({"precursor_materials"})


class ActivityCalculatorEngine:
    """Scope-aware and tier-aware activity emission calculator.

    Attributes:
        _resolver: Factor resolver used for every factor lookup.
        _store: Activity store results are committed to, or None for
            stateless use.
        _config: Engine configuration.
        _default_year: Factor year used when an activity has none.
    """

    def __init__(
        self,
        resolver: FactorResolverEngine,
        activity_store: Optional[ActivityStore] = None,
        config: Optional[CarbonLedgerConfig] = None,
        default_year: Optional[int] = None,
    ) -> None:
        self._resolver = resolver
        self._store = activity_store
        self._config = config or get_config()
        self._default_year = default_year or datetime.now(timezone.utc).year
        self._quantizer = Decimal(10) ** -self._config.decimal_precision
        self._tier_multipliers: Dict[TierLevel, Decimal] = {
            TierLevel.TIER1: Decimal(str(self._config.tier1_multiplier)),
            TierLevel.TIER2: Decimal(str(self._config.tier2_multiplier)),
            TierLevel.TIER2_PLUS: Decimal(str(self._config.tier2_plus_multiplier)),
        }
        self._provenance = (
            get_provenance_tracker() if self._config.enable_provenance else None
        )
        logger.info(
            "ActivityCalculatorEngine initialized (precision=%d, "
            "default_year=%d, tier_multipliers=%s, persist=%s)",
            self._config.decimal_precision,
            self._default_year,
            {k.value: str(v) for k, v in self._tier_multipliers.items()},
            self._store is not None,
        )

    # ==================================================================
    # PUBLIC API: Single calculation
    # ==================================================================

    def calculate(self, activity: Activity) -> CalculationResult:
        """Calculate one activity and commit the result.

        The result is written back only when the activity store already
        holds the activity; unstored activities are calculated without
        side effects on the store.

        Never raises for row-level problems: invalid input or an
        unresolvable factor produce an ``error`` result carrying the
        cause. Store failures propagate.

        Args:
            activity: Activity to calculate.

        Returns:
            CalculationResult with status calculated or error.
        """
        start = time.monotonic()
        trace: List[str] = []

        try:
            self.validate(activity)
            year = activity.year or self._default_year
            trace.append(
                f"[1] activity={activity.activity_id} type={activity.activity_type} "
                f"scope={activity.scope.value} quantity={activity.quantity} "
                f"{activity.unit} year={year}"
            )
            base, factor, formula = self._compute(activity, year, trace)
            multiplier = self._tier_multipliers[TierLevel(activity.tier_level)]
            co2e = self._quantize(base * multiplier)
            trace.append(
                f"[{len(trace) + 1}] tier={TierLevel(activity.tier_level).value} "
                f"multiplier={multiplier} -> {co2e} kgCO2e"
            )

            provenance_hash = hash_payload({
                "activity_id": activity.activity_id,
                "formula": formula,
                "co2e_kg": str(co2e),
                "factor_id": factor.factor_id if factor else None,
                "factor_value": str(factor.value) if factor else None,
                "factor_provenance": factor.provenance.value if factor else None,
                "tier_multiplier": str(multiplier),
            })
            result = CalculationResult(
                activity_id=activity.activity_id,
                project_id=activity.project_id,
                status=CalculationStatus.CALCULATED,
                co2e_kg=co2e,
                factor=factor,
                formula=formula,
                tier_multiplier=multiplier,
                calculation_trace=trace,
                provenance_hash=provenance_hash,
            )
            record_calculation(activity.activity_type, "calculated")
            record_emissions(Scope(activity.scope).value, float(co2e))

        except ROW_ERROR_TYPES as exc:
            logger.warning(
                "Calculation failed for activity %s: %s",
                activity.activity_id, exc.message,
            )
            result = CalculationResult(
                activity_id=activity.activity_id,
                project_id=activity.project_id,
                status=CalculationStatus.ERROR,
                calculation_trace=trace,
                error_code=exc.error_code,
                error_message=exc.message,
            )
            record_calculation(activity.activity_type or "unknown", "error")

        self._commit(activity, result)
        observe_duration("calculate", time.monotonic() - start)
        return result

    def validate(self, activity: Activity) -> None:
        """Check the fields every formula needs.

        Raises:
            ValidationError: Naming each offending field.
        """
        problems: Dict[str, str] = {}

        quantity = activity.quantity
        try:
            quantity = Decimal(str(quantity))
            if not quantity.is_finite() or quantity <= 0:
                problems["quantity"] = f"must be a positive finite number, got {activity.quantity}"
        except (InvalidOperation, TypeError, ValueError):
            problems["quantity"] = f"must be a positive finite number, got {activity.quantity!r}"

        if not activity.unit or not str(activity.unit).strip():
            problems["unit"] = "is required"
        if not activity.activity_type or not str(activity.activity_type).strip():
            problems["activity_type"] = "is required"
        if activity.scope == Scope.SCOPE3 and activity.scope3_category is None:
            problems["scope3_category"] = "is required for scope3 activities"

        if problems:
            raise ValidationError(
                f"Activity {activity.activity_id} is invalid: "
                + "; ".join(f"{k} {v}" for k, v in problems.items()),
                invalid_fields=problems,
            )

    # ==================================================================
    # PUBLIC API: Batch and recalculation
    # ==================================================================

    def calculate_all(
        self,
        project_id: str,
        include_errors: bool = False,
        recalculate: bool = False,
    ) -> BatchCalculationResult:
        """Calculate a project's activities one by one.

        Pending activities are always calculated. Activities in ``error``
        are retried when ``include_errors`` or ``recalculate`` is set;
        already calculated activities are redone only with
        ``recalculate``. Retired activities are never touched.

        Args:
            project_id: Project to calculate.
            include_errors: Retry activities whose last run failed.
            recalculate: Redo every activity.

        Returns:
            BatchCalculationResult with per-row errors next to the
            successful results.

        Raises:
            ValidationError: If no activity store is configured or the
                batch exceeds ``max_batch_size``.
        """
        store = self._require_store()
        start = time.monotonic()

        wanted = {CalculationStatus.PENDING}
        if include_errors or recalculate:
            wanted.add(CalculationStatus.ERROR)
        if recalculate:
            wanted.add(CalculationStatus.CALCULATED)

        activities = store.get_activities(project_id)
        selected = [a for a in activities if a.calculation_status in wanted]
        skipped = len(activities) - len(selected)

        if len(selected) > self._config.max_batch_size:
            raise ValidationError(
                f"Batch of {len(selected)} activities exceeds the maximum "
                f"of {self._config.max_batch_size}",
                context={"project_id": project_id},
            )
        observe_batch_size(len(selected))

        results: List[CalculationResult] = []
        errors: List[RowError] = []
        total = Decimal("0")
        for index, activity in enumerate(selected):
            result = self.calculate(activity)
            results.append(result)
            if result.succeeded:
                total += result.co2e_kg
            else:
                errors.append(
                    RowError(
                        row=index,
                        activity_id=activity.activity_id,
                        error_code=result.error_code or "CL_VALIDATION_ERROR",
                        message=result.error_message or "calculation failed",
                    )
                )

        elapsed_ms = (time.monotonic() - start) * 1000
        batch = BatchCalculationResult(
            project_id=project_id,
            results=results,
            errors=errors,
            calculated_count=len(results) - len(errors),
            failed_count=len(errors),
            skipped_count=skipped,
            total_co2e_kg=self._quantize(total),
            processing_time_ms=Decimal(str(round(elapsed_ms, 3))),
        )
        observe_duration("calculate_batch", elapsed_ms / 1000)
        if self._provenance is not None:
            self._provenance.record(
                "batch",
                "calculate_batch",
                project_id,
                data={
                    "calculated": batch.calculated_count,
                    "failed": batch.failed_count,
                    "total_co2e_kg": str(batch.total_co2e_kg),
                },
            )
        logger.info(
            "Batch for project %s completed: %d calculated, %d failed, "
            "%d skipped, total=%s kgCO2e, %.1f ms",
            project_id, batch.calculated_count, batch.failed_count,
            batch.skipped_count, batch.total_co2e_kg, elapsed_ms,
        )
        return batch

    def recalculate(self, activity_id: str) -> CalculationResult:
        """Recalculate one stored activity, overwriting its result.

        Raises:
            ValidationError: If the activity is unknown or retired.
        """
        store = self._require_store()
        activity = store.get_activity(activity_id)
        if activity is None:
            raise ValidationError(
                f"Activity {activity_id} not found",
                invalid_fields={"activity_id": "unknown"},
            )
        if activity.retired:
            raise ValidationError(
                f"Activity {activity_id} is retired and cannot be calculated",
                invalid_fields={"activity_id": "retired"},
            )
        return self.calculate(activity)

    # ==================================================================
    # Formula families
    # ==================================================================

    def _compute(
        self,
        activity: Activity,
        year: int,
        trace: List[str],
    ) -> Tuple[Decimal, Optional[ResolvedFactor], str]:
        activity_type = activity.activity_type.strip()
        quantity = Decimal(str(activity.quantity))

        if activity_type in ELECTRICITY_TYPES:
            return self._electricity(activity, quantity, year, trace)

        if activity_type in COMBUSTION_TYPES:
            factor = self._resolve(FactorCategory.FUEL, self._key(activity), year, activity, trace)
            trace.append(f"[{len(trace) + 1}] {quantity} x {factor.value} (fuel)")
            return quantity * factor.value, factor, FORMULA_COMBUSTION

        if activity_type in MOBILE_TYPES:
            factor = self._resolve(FactorCategory.FUEL, self._key(activity), year, activity, trace)
            if activity.fuel_efficiency is not None:
                distance = Decimal(str(activity.distance_km or quantity))
                fuel = distance / Decimal(str(activity.fuel_efficiency))
                trace.append(
                    f"[{len(trace) + 1}] fuel = {distance} km / "
                    f"{activity.fuel_efficiency} = {self._quantize(fuel)}"
                )
            else:
                fuel = quantity
            trace.append(f"[{len(trace) + 1}] {self._quantize(fuel)} x {factor.value} (fuel)")
            return fuel * factor.value, factor, FORMULA_MOBILE

        if activity_type in TRANSPORT_TYPES:
            factor = self._resolve(FactorCategory.TRANSPORT, self._key(activity), year, activity, trace)
            if activity.weight_tonnes is not None and activity.distance_km is not None:
                tonne_km = Decimal(str(activity.weight_tonnes)) * Decimal(str(activity.distance_km))
                trace.append(
                    f"[{len(trace) + 1}] tonne_km = {activity.weight_tonnes} t x "
                    f"{activity.distance_km} km = {tonne_km}"
                )
            else:
                tonne_km = quantity
            trace.append(f"[{len(trace) + 1}] {tonne_km} x {factor.value} (mode)")
            return tonne_km * factor.value, factor, FORMULA_TRANSPORT

        if activity_type in MATERIAL_TYPES or activity_type in PRECURSOR_TYPES:
            is_precursor = activity_type in PRECURSOR_TYPES
            category = FactorCategory.PRECURSOR if is_precursor else FactorCategory.MATERIAL
            key = self._key(activity)
            if activity.production_route:
                key = f"{key}:{activity.production_route}"
            factor = self._resolve(category, key, year, activity, trace)
            trace.append(f"[{len(trace) + 1}] {quantity} x {factor.value} ({category.value})")
            formula = FORMULA_PRECURSOR if is_precursor else FORMULA_MATERIAL
            return quantity * factor.value, factor, formula

        key = f"{activity_type}:{self._key(activity)}"
        factor = self._resolve(FactorCategory.ACTIVITY, key, year, activity, trace)
        trace.append(f"[{len(trace) + 1}] {quantity} x {factor.value} (activity)")
        return quantity * factor.value, factor, FORMULA_GENERIC

    def _electricity(
        self,
        activity: Activity,
        kwh: Decimal,
        year: int,
        trace: List[str],
    ) -> Tuple[Decimal, Optional[ResolvedFactor], str]:
        method = Scope2Method(
            activity.scope2_method or self._config.default_scope2_method
        )
        if method == Scope2Method.MARKET_BASED:
            if activity.supplier_factor is None:
                raise ValidationError(
                    f"Activity {activity.activity_id} is market-based but "
                    f"has no supplier factor",
                    invalid_fields={"supplier_factor": "is required for market-based electricity"},
                )
            supplier = Decimal(str(activity.supplier_factor))
            trace.append(f"[{len(trace) + 1}] {kwh} x {supplier} (supplier, market-based)")
            return kwh * supplier, None, FORMULA_ELECTRICITY_MARKET

        if not activity.country:
            raise ValidationError(
                f"Activity {activity.activity_id} needs a country for "
                f"location-based electricity",
                invalid_fields={"country": "is required for location-based electricity"},
            )
        factor = self._resolve(FactorCategory.GRID, activity.country, year, activity, trace)
        trace.append(f"[{len(trace) + 1}] {kwh} x {factor.value} (grid, location-based)")
        return kwh * factor.value, factor, FORMULA_ELECTRICITY_LOCATION

    def _resolve(
        self,
        category: FactorCategory,
        key: str,
        year: int,
        activity: Activity,
        trace: List[str],
    ) -> ResolvedFactor:
        factor = self._resolver.resolve(
            category,
            key,
            year,
            project_id=activity.project_id,
            region=activity.country,
        )
        trace.append(
            f"[{len(trace) + 1}] factor {category.value}/{key} = {factor.value} "
            f"{factor.unit} ({factor.provenance.value}, year={factor.year})"
        )
        return factor

    @staticmethod
    def _key(activity: Activity) -> str:
        if activity.factor_key:
            return activity.factor_key.strip()
        return activity.unit.strip().lower()

    # ==================================================================
    # Helpers
    # ==================================================================

    def _commit(self, activity: Activity, result: CalculationResult) -> None:
        if self._store is None:
            return
        if self._store.get_activity(activity.activity_id) is None:
            logger.debug(
                "Activity %s is not stored; result returned without commit",
                activity.activity_id,
            )
            return
        self._store.update_activity(
            activity.activity_id,
            {"calculation_status": result.status, "result": result},
        )
        if self._provenance is not None:
            self._provenance.record(
                "calculation",
                "calculate",
                result.result_id,
                data={
                    "activity_id": activity.activity_id,
                    "status": result.status.value,
                    "co2e_kg": str(result.co2e_kg),
                    "provenance_hash": result.provenance_hash,
                },
            )

    def _require_store(self) -> ActivityStore:
        if self._store is None:
            raise ValidationError(
                "ActivityCalculatorEngine was created without an activity store",
            )
        return self._store

    def _quantize(self, value: Decimal) -> Decimal:
        return value.quantize(self._quantizer)


__all__ = [
    "ActivityCalculatorEngine",
    "COMBUSTION_TYPES",
    "MOBILE_TYPES",
    "ELECTRICITY_TYPES",
    "TRANSPORT_TYPES",
    "MATERIAL_TYPES",
    "PRECURSOR_TYPES",
]
