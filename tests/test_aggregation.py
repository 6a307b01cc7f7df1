"""Tests for AggregationEngine (CFO and CFP footprints)."""

from decimal import Decimal

import pytest

from carbonledger.exceptions import ValidationError
from carbonledger.models import (
    ChangeDirection,
    FootprintKind,
    Scope,
    Scope2Method,
    Scope3Category,
)
from carbonledger.provenance import get_provenance_tracker


# ==============================================================================
# Organization Footprint
# ==============================================================================

class TestOrganizationFootprint:
    """CFO totals and splits."""

    def test_scope_totals_and_shares(self, aggregation, seeded_store):
        """100 / 200 / 300 across the three scopes."""
        cfo = aggregation.aggregate("proj-test")

        assert cfo.kind == FootprintKind.CFO
        assert cfo.grand_total == Decimal("600")
        assert cfo.scope_total(Scope.SCOPE1) == Decimal("100")
        assert cfo.scope_total(Scope.SCOPE2) == Decimal("200")
        assert cfo.scope_total(Scope.SCOPE3) == Decimal("300")
        assert cfo.scope_share(Scope.SCOPE1) == Decimal("16.67")
        assert cfo.activity_count == 3

    def test_grand_total_equals_sum_of_scopes(self, aggregation, seeded_store):
        cfo = aggregation.aggregate("proj-test")
        assert cfo.grand_total == sum(cfo.scope_totals.values())

    def test_every_scope_present_for_empty_project(self, aggregation):
        cfo = aggregation.aggregate("empty")

        assert cfo.scope_totals == {"scope1": 0, "scope2": 0, "scope3": 0}
        assert cfo.grand_total == 0
        assert cfo.category_totals == {}

    def test_category_totals(self, aggregation, activity_store, calculated_activity):
        activity_store.add_activity(
            calculated_activity("40", scope="scope3", scope3_category=Scope3Category.WASTE_GENERATED)
        )
        activity_store.add_activity(
            calculated_activity("60", scope="scope3", scope3_category=Scope3Category.WASTE_GENERATED)
        )
        activity_store.add_activity(
            calculated_activity("5", scope="scope3", scope3_category=Scope3Category.INVESTMENTS)
        )

        cfo = aggregation.aggregate("proj-test")

        assert list(cfo.category_totals) == ["waste_generated", "investments"]
        assert cfo.category_totals["waste_generated"] == Decimal("100")
        assert sum(cfo.category_totals.values()) == cfo.scope_total(Scope.SCOPE3)

    def test_scope3_upstream_downstream_split(self, aggregation, activity_store, calculated_activity):
        activity_store.add_activity(
            calculated_activity("70", scope="scope3", scope3_category=Scope3Category.EMPLOYEE_COMMUTING)
        )
        activity_store.add_activity(
            calculated_activity("30", scope="scope3", scope3_category=Scope3Category.USE_OF_SOLD_PRODUCTS)
        )

        cfo = aggregation.aggregate("proj-test")

        assert cfo.scope3_upstream == Decimal("70")
        assert cfo.scope3_downstream == Decimal("30")

    def test_scope2_location_market_split(self, aggregation, activity_store, calculated_activity):
        activity_store.add_activity(
            calculated_activity("80", scope="scope2", activity_type="purchased_electricity", unit="kWh")
        )
        activity_store.add_activity(
            calculated_activity(
                "20", scope="scope2", activity_type="purchased_electricity", unit="kWh",
                scope2_method=Scope2Method.MARKET_BASED,
            )
        )

        cfo = aggregation.aggregate("proj-test")

        assert cfo.scope2_location_based == Decimal("80")
        assert cfo.scope2_market_based == Decimal("20")

    def test_pending_and_errored_activities_excluded(
        self, aggregation, seeded_store, new_activity, calculator,
    ):
        seeded_store.add_activity(new_activity(quantity="999"))
        failed = seeded_store.add_activity(new_activity(factor_key="plasma_l"))
        calculator.recalculate(failed.activity_id)

        cfo = aggregation.aggregate("proj-test")

        assert cfo.grand_total == Decimal("600")
        assert cfo.activity_count == 3

    def test_retired_activities_excluded(self, aggregation, seeded_store):
        scope1 = [a for a in seeded_store.get_activities("proj-test") if a.scope == Scope.SCOPE1][0]
        seeded_store.update_activity(scope1.activity_id, {"retired": True})

        cfo = aggregation.aggregate("proj-test")

        assert cfo.grand_total == Decimal("500")

    def test_aggregate_is_idempotent(self, aggregation, seeded_store):
        first = aggregation.aggregate("proj-test")
        second = aggregation.aggregate("proj-test")

        assert first.scope_totals == second.scope_totals
        assert first.grand_total == second.grand_total
        assert first.provenance_hash == second.provenance_hash
        assert first.aggregate_id != second.aggregate_id

    def test_aggregation_is_recorded(self, aggregation, seeded_store):
        cfo = aggregation.aggregate("proj-test")
        entries = get_provenance_tracker().get_entries_for_entity("aggregate", cfo.aggregate_id)
        assert [e.action for e in entries] == ["aggregate"]


# ==============================================================================
# Product Footprint
# ==============================================================================

class TestProductFootprint:
    """CFP lifecycle stages and intensity."""

    def test_requires_production_quantity(self, aggregation, seeded_store):
        with pytest.raises(ValidationError) as excinfo:
            aggregation.aggregate("proj-test", FootprintKind.CFP)
        assert "production_quantity" in excinfo.value.invalid_fields

    @pytest.mark.parametrize("quantity", [0, "-3", "abc"])
    def test_rejects_non_positive_quantity(self, aggregation, seeded_store, quantity):
        with pytest.raises(ValidationError):
            aggregation.aggregate("proj-test", "CFP", production_quantity=quantity)

    def test_intensity_and_stages(self, aggregation, activity_store, calculated_activity):
        activity_store.add_activity(calculated_activity("100", scope="scope1"))
        activity_store.add_activity(
            calculated_activity(
                "300", scope="scope3", scope3_category=Scope3Category.PURCHASED_GOODS_SERVICES,
            )
        )
        activity_store.add_activity(
            calculated_activity(
                "200", scope="scope3", scope3_category=Scope3Category.DOWNSTREAM_TRANSPORT,
            )
        )

        cfp = aggregation.aggregate(
            "proj-test", "CFP", production_quantity="200", production_unit="unit",
        )

        assert cfp.kind == FootprintKind.CFP
        assert cfp.intensity == Decimal("3")
        assert cfp.production_unit == "unit"
        assert cfp.lifecycle_stages["production"] == Decimal("100")
        assert cfp.lifecycle_stages["raw_materials"] == Decimal("300")
        assert cfp.lifecycle_stages["distribution"] == Decimal("200")
        assert cfp.lifecycle_stages["use"] == Decimal("0")
        assert sum(cfp.lifecycle_stages.values()) == cfp.grand_total
        assert cfp.scope3_upstream is None


# ==============================================================================
# Footprint Comparison
# ==============================================================================

class TestCompareFootprints:
    """Change between two aggregates."""

    def test_decrease(self, aggregation, seeded_store):
        baseline = aggregation.aggregate("proj-test")
        scope3 = [a for a in seeded_store.get_activities("proj-test") if a.scope == Scope.SCOPE3][0]
        seeded_store.update_activity(scope3.activity_id, {"retired": True})
        reporting = aggregation.aggregate("proj-test")

        comparison = aggregation.compare_footprints(baseline, reporting)

        assert comparison.absolute_change == Decimal("-300")
        assert comparison.percentage_change == Decimal("-50.00")
        assert comparison.direction == ChangeDirection.DECREASE
        assert comparison.scope_changes["scope3"] == Decimal("-300")
        assert comparison.scope_changes["scope1"] == 0

    def test_zero_baseline_has_no_percentage(self, aggregation, seeded_store):
        baseline = aggregation.aggregate("empty")
        reporting = aggregation.aggregate("proj-test")

        comparison = aggregation.compare_footprints(baseline, reporting)

        assert comparison.percentage_change is None
        assert comparison.direction == ChangeDirection.INCREASE

    def test_unchanged(self, aggregation, seeded_store):
        first = aggregation.aggregate("proj-test")
        comparison = aggregation.compare_footprints(first, aggregation.aggregate("proj-test"))
        assert comparison.direction == ChangeDirection.UNCHANGED
        assert comparison.percentage_change == Decimal("0.00")
