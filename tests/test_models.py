"""Tests for the CarbonLedger pydantic models and enumerations."""

from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from carbonledger.exceptions import IncompleteReportError
from carbonledger.models import (
    Activity,
    AggregateResult,
    EnergyMix,
    FootprintKind,
    Report,
    ResolvedFactor,
    Scope,
    Scope3Category,
    StandardId,
    TierDirection,
)


# ==============================================================================
# Enumerations
# ==============================================================================

class TestScope3Category:
    """Numbering and upstream/downstream split of the 15 categories."""

    def test_fifteen_categories(self):
        assert len(Scope3Category) == 15

    def test_numbers_follow_declaration_order(self):
        assert Scope3Category.PURCHASED_GOODS_SERVICES.number == 1
        assert Scope3Category.UPSTREAM_LEASED_ASSETS.number == 8
        assert Scope3Category.DOWNSTREAM_TRANSPORT.number == 9
        assert Scope3Category.INVESTMENTS.number == 15

    def test_direction_split(self):
        upstream = [c for c in Scope3Category if c.direction == TierDirection.UPSTREAM]
        downstream = [c for c in Scope3Category if c.direction == TierDirection.DOWNSTREAM]

        assert [c.number for c in upstream] == list(range(1, 9))
        assert [c.number for c in downstream] == list(range(9, 16))

    def test_six_standards(self):
        assert len(StandardId) == 6


# ==============================================================================
# Activity
# ==============================================================================

class TestActivity:
    """Field validation on the Activity model."""

    def test_minimal_activity(self):
        activity = Activity(
            project_id="p1",
            scope="scope1",
            activity_type="stationary_combustion",
            quantity="100",
            unit="L",
        )

        assert activity.activity_id.startswith("act_")
        assert activity.quantity == Decimal("100")
        assert activity.calculation_status.value == "pending"
        assert activity.co2e_kg is None

    def test_scope3_requires_category(self):
        with pytest.raises(PydanticValidationError, match="scope3_category is required"):
            Activity(
                project_id="p1",
                scope="scope3",
                activity_type="business_travel",
                quantity="10",
                unit="km",
            )

    def test_scope1_rejects_category(self):
        with pytest.raises(PydanticValidationError, match="must be empty"):
            Activity(
                project_id="p1",
                scope="scope1",
                scope3_category="business_travel",
                activity_type="stationary_combustion",
                quantity="10",
                unit="L",
            )

    @pytest.mark.parametrize("quantity", ["0", "-5"])
    def test_quantity_must_be_positive(self, quantity):
        with pytest.raises(PydanticValidationError):
            Activity(
                project_id="p1",
                scope="scope1",
                activity_type="stationary_combustion",
                quantity=quantity,
                unit="L",
            )

    def test_blank_unit_rejected(self):
        with pytest.raises(PydanticValidationError, match="must not be blank"):
            Activity(
                project_id="p1",
                scope="scope1",
                activity_type="stationary_combustion",
                quantity="10",
                unit="   ",
            )

    def test_activity_is_frozen(self):
        activity = Activity(
            project_id="p1",
            scope="scope1",
            activity_type="stationary_combustion",
            quantity="10",
            unit="L",
        )
        with pytest.raises(PydanticValidationError):
            activity.quantity = Decimal("20")


# ==============================================================================
# Factors
# ==============================================================================

class TestFactors:
    """Energy mix totals and fallback detection."""

    def test_energy_mix_total(self):
        mix = EnergyMix(renewable_pct="40", fossil_pct="50", nuclear_pct="10")
        assert mix.total == Decimal("100")

    def test_resolved_factor_fallback_flag(self):
        factor = ResolvedFactor(
            factor_id="ef_1",
            category="grid",
            key="Thailand",
            year=2025,
            requested_year=2026,
            value="0.4561",
            unit="kgCO2e/kWh",
            provenance="standard",
        )
        assert factor.is_fallback

    def test_override_is_never_a_fallback(self):
        factor = ResolvedFactor(
            factor_id="ovr_1",
            category="grid",
            key="Thailand",
            year=None,
            requested_year=2026,
            value="0.1",
            unit="kgCO2e/kWh",
            provenance="override",
        )
        assert not factor.is_fallback


# ==============================================================================
# Aggregates and Reports
# ==============================================================================

class TestAggregateResult:
    """Scope share helper."""

    def test_scope_share_rounds_half_up(self):
        aggregate = AggregateResult(
            project_id="p1",
            kind=FootprintKind.CFO,
            scope_totals={"scope1": Decimal("100"), "scope2": Decimal("200"), "scope3": Decimal("300")},
            grand_total=Decimal("600"),
        )

        assert aggregate.scope_share(Scope.SCOPE1) == Decimal("16.67")
        assert aggregate.scope_share("scope3") == Decimal("50.00")

    def test_scope_share_of_empty_footprint_is_zero(self):
        aggregate = AggregateResult(project_id="p1", kind=FootprintKind.CFO)
        assert aggregate.scope_share(Scope.SCOPE2) == Decimal("0")


class TestReport:
    """raise_if_incomplete turns missing fields into an error on request."""

    def test_complete_report_does_not_raise(self):
        Report(project_id="p1", standard_id=StandardId.EU_CBAM).raise_if_incomplete()

    def test_incomplete_report_raises(self):
        report = Report(
            project_id="p1",
            standard_id=StandardId.THAI_ESG,
            incomplete=True,
            missing_fields=["tax_id"],
        )
        with pytest.raises(IncompleteReportError) as excinfo:
            report.raise_if_incomplete()
        assert excinfo.value.missing_fields == ["tax_id"]
