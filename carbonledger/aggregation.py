# -*- coding: utf-8 -*-
"""
AggregationEngine - Engine 3: CarbonLedger

Rolls calculated activities up into organization (CFO) and product (CFP)
carbon footprints.

Algorithm:
    1. Select every non-retired activity of the project with status
       ``calculated``. Pending and errored activities are excluded, never
       treated as zero.
    2. Sum CO2e per scope and, for scope3, per Scope 3 category.
    3. Sum scope totals into the grand total.
    4. CFO adds the Scope 2 location/market split and the Scope 3
       upstream (categories 1-8) / downstream (9-15) split.
    5. CFP requires a production quantity, adds the lifecycle-stage
       breakdown and the per-unit intensity ``grand_total / quantity``.

Aggregation is recomputed from scratch on every call and never reads a
previous AggregateResult, so two calls without intervening activity
changes return identical totals. Callers must not recalculate a project
while it is being aggregated.

Example:
    >>> engine = AggregationEngine(activity_store)
    >>> cfo = engine.aggregate("proj-1", "CFO")
    >>> cfo.grand_total, cfo.scope_share("scope1")
    (Decimal('600.00000000'), Decimal('16.67'))
"""

from __future__ import annotations

import logging
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Union

from carbonledger.config import CarbonLedgerConfig, get_config
from carbonledger.exceptions import ValidationError
from carbonledger.metrics import observe_duration, record_aggregation
from carbonledger.models import (
    Activity,
    AggregateResult,
    CalculationStatus,
    ChangeDirection,
    FootprintComparison,
    FootprintKind,
    LifecycleStage,
    Scope,
    Scope2Method,
    Scope3Category,
    TierDirection,
)
from carbonledger.provenance import get_provenance_tracker, hash_payload
from carbonledger.stores import ActivityStore

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")

#: Scope 3 categories mapped to product lifecycle stages. Scope 1/2 and
#: any unlisted category count towards production.
LIFECYCLE_STAGE_MAP: Dict[Scope3Category, LifecycleStage] = {
    Scope3Category.PURCHASED_GOODS_SERVICES: LifecycleStage.RAW_MATERIALS,
    Scope3Category.CAPITAL_GOODS: LifecycleStage.RAW_MATERIALS,
    Scope3Category.FUEL_ENERGY_ACTIVITIES: LifecycleStage.RAW_MATERIALS,
    Scope3Category.UPSTREAM_TRANSPORT: LifecycleStage.DISTRIBUTION,
    Scope3Category.DOWNSTREAM_TRANSPORT: LifecycleStage.DISTRIBUTION,
    Scope3Category.PROCESSING_OF_PRODUCTS: LifecycleStage.USE,
    Scope3Category.USE_OF_SOLD_PRODUCTS: LifecycleStage.USE,
    Scope3Category.WASTE_GENERATED: LifecycleStage.END_OF_LIFE,
    Scope3Category.END_OF_LIFE_TREATMENT: LifecycleStage.END_OF_LIFE,
}


def lifecycle_stage(activity: Activity) -> LifecycleStage:
    """Return the lifecycle stage an activity contributes to."""
    if activity.scope3_category is None:
        return LifecycleStage.PRODUCTION
    return LIFECYCLE_STAGE_MAP.get(
        Scope3Category(activity.scope3_category), LifecycleStage.PRODUCTION,
    )


class AggregationEngine:
    """Computes CFO and CFP aggregates from stored calculation results."""

    def __init__(
        self,
        activity_store: ActivityStore,
        config: Optional[CarbonLedgerConfig] = None,
    ) -> None:
        self._store = activity_store
        self._config = config or get_config()
        self._quantizer = Decimal(10) ** -self._config.decimal_precision
        self._provenance = (
            get_provenance_tracker() if self._config.enable_provenance else None
        )
        logger.info(
            "AggregationEngine initialized (precision=%d)",
            self._config.decimal_precision,
        )

    # ==================================================================
    # PUBLIC API
    # ==================================================================

    def aggregate(
        self,
        project_id: str,
        kind: Union[FootprintKind, str] = FootprintKind.CFO,
        production_quantity: Optional[Union[Decimal, float, str]] = None,
        production_unit: Optional[str] = None,
    ) -> AggregateResult:
        """Aggregate a project's calculated activities.

        Args:
            project_id: Project to aggregate.
            kind: CFO or CFP.
            production_quantity: Product output (required for CFP).
            production_unit: Unit of the production quantity.

        Returns:
            A freshly computed AggregateResult.

        Raises:
            ValidationError: If a CFP is requested without a positive
                production quantity.
        """
        start = time.monotonic()
        kind = FootprintKind(kind)

        quantity: Optional[Decimal] = None
        if kind == FootprintKind.CFP:
            quantity = self._production_quantity(production_quantity)

        activities = self.calculated_activities(project_id)

        scope_totals: Dict[str, Decimal] = {s.value: _ZERO for s in Scope}
        category_totals: Dict[str, Decimal] = {}
        for activity in activities:
            co2e = activity.co2e_kg
            scope = Scope(activity.scope).value
            scope_totals[scope] += co2e
            if activity.scope3_category is not None:
                category = Scope3Category(activity.scope3_category).value
                category_totals[category] = category_totals.get(category, _ZERO) + co2e

        scope_totals = {k: self._quantize(v) for k, v in scope_totals.items()}
        category_totals = {
            c.value: self._quantize(category_totals[c.value])
            for c in Scope3Category
            if c.value in category_totals
        }
        grand_total = sum(scope_totals.values(), _ZERO)

        fields: Dict[str, object] = {
            "project_id": project_id,
            "kind": kind,
            "scope_totals": scope_totals,
            "category_totals": category_totals,
            "grand_total": grand_total,
            "activity_count": len(activities),
        }
        if kind == FootprintKind.CFO:
            fields.update(self._organization_splits(activities))
        else:
            fields.update(self._product_breakdown(activities, grand_total, quantity))
            fields["production_unit"] = production_unit

        fields["provenance_hash"] = hash_payload({
            "project_id": project_id,
            "kind": kind.value,
            "scope_totals": {k: str(v) for k, v in scope_totals.items()},
            "category_totals": {k: str(v) for k, v in category_totals.items()},
            "grand_total": str(grand_total),
            "activity_ids": sorted(a.activity_id for a in activities),
        })
        result = AggregateResult(**fields)

        record_aggregation(kind.value)
        observe_duration("aggregate", time.monotonic() - start)
        if self._provenance is not None:
            self._provenance.record(
                "aggregate",
                "aggregate",
                result.aggregate_id,
                data={
                    "project_id": project_id,
                    "kind": kind.value,
                    "grand_total": str(grand_total),
                    "provenance_hash": result.provenance_hash,
                },
            )
        logger.info(
            "%s aggregate for project %s: %d activities, scope1=%s scope2=%s "
            "scope3=%s total=%s kgCO2e",
            kind.value, project_id, len(activities),
            scope_totals[Scope.SCOPE1.value], scope_totals[Scope.SCOPE2.value],
            scope_totals[Scope.SCOPE3.value], grand_total,
        )
        return result

    def calculated_activities(self, project_id: str) -> List[Activity]:
        """Return the non-retired activities with a successful result."""
        return [
            a
            for a in self._store.get_activities(
                project_id, status=CalculationStatus.CALCULATED,
            )
            if not a.retired and a.co2e_kg is not None
        ]

    def compare_footprints(
        self,
        baseline: AggregateResult,
        reporting: AggregateResult,
    ) -> FootprintComparison:
        """Compare a reporting footprint against a baseline.

        Args:
            baseline: Earlier (base year) aggregate.
            reporting: Current aggregate.

        Returns:
            FootprintComparison. ``percentage_change`` is None when the
            baseline total is zero.
        """
        change = reporting.grand_total - baseline.grand_total
        percentage: Optional[Decimal] = None
        if baseline.grand_total != 0:
            percentage = self._percent(change / baseline.grand_total * _HUNDRED)

        if change > 0:
            direction = ChangeDirection.INCREASE
        elif change < 0:
            direction = ChangeDirection.DECREASE
        else:
            direction = ChangeDirection.UNCHANGED

        comparison = FootprintComparison(
            baseline_total=baseline.grand_total,
            reporting_total=reporting.grand_total,
            absolute_change=change,
            percentage_change=percentage,
            direction=direction,
            scope_changes={
                s.value: reporting.scope_total(s) - baseline.scope_total(s)
                for s in Scope
            },
        )
        if self._provenance is not None:
            self._provenance.record(
                "analysis",
                "compare",
                reporting.aggregate_id,
                data={
                    "baseline": baseline.aggregate_id,
                    "absolute_change": str(change),
                    "direction": direction.value,
                },
            )
        logger.info(
            "Footprint comparison %s -> %s: %s kgCO2e (%s%%, %s)",
            baseline.aggregate_id, reporting.aggregate_id, change,
            percentage, direction.value,
        )
        return comparison

    # ==================================================================
    # Breakdowns
    # ==================================================================

    def _organization_splits(self, activities: List[Activity]) -> Dict[str, Decimal]:
        location = market = upstream = downstream = _ZERO
        default_method = Scope2Method(self._config.default_scope2_method)
        for activity in activities:
            co2e = activity.co2e_kg
            if activity.scope == Scope.SCOPE2:
                method = Scope2Method(activity.scope2_method or default_method)
                if method == Scope2Method.MARKET_BASED:
                    market += co2e
                else:
                    location += co2e
            elif activity.scope == Scope.SCOPE3:
                category = Scope3Category(activity.scope3_category)
                if category.direction == TierDirection.UPSTREAM:
                    upstream += co2e
                else:
                    downstream += co2e
        return {
            "scope2_location_based": self._quantize(location),
            "scope2_market_based": self._quantize(market),
            "scope3_upstream": self._quantize(upstream),
            "scope3_downstream": self._quantize(downstream),
        }

    def _product_breakdown(
        self,
        activities: List[Activity],
        grand_total: Decimal,
        quantity: Decimal,
    ) -> Dict[str, object]:
        stages: Dict[str, Decimal] = {s.value: _ZERO for s in LifecycleStage}
        for activity in activities:
            stages[lifecycle_stage(activity).value] += activity.co2e_kg
        return {
            "lifecycle_stages": {k: self._quantize(v) for k, v in stages.items()},
            "production_quantity": quantity,
            "intensity": self._quantize(grand_total / quantity),
        }

    # ==================================================================
    # Helpers
    # ==================================================================

    @staticmethod
    def _production_quantity(value: Optional[Union[Decimal, float, str]]) -> Decimal:
        try:
            quantity = Decimal(str(value)) if value is not None else None
        except ArithmeticError:
            quantity = None
        if quantity is None or not quantity.is_finite() or quantity <= 0:
            raise ValidationError(
                "A product footprint needs a positive production quantity",
                invalid_fields={"production_quantity": f"got {value!r}"},
            )
        return quantity

    def _quantize(self, value: Decimal) -> Decimal:
        return value.quantize(self._quantizer)

    def _percent(self, value: Decimal) -> Decimal:
        places = Decimal(1).scaleb(-self._config.percentage_precision)
        return value.quantize(places, rounding=ROUND_HALF_UP)


__all__ = ["AggregationEngine", "LIFECYCLE_STAGE_MAP", "lifecycle_stage"]
