"""Tests for ReportAssemblerEngine."""

from datetime import date
from decimal import Decimal

import pytest

from carbonledger.exceptions import (
    IncompleteReportError,
    StandardNotFoundError,
    ValidationError,
)
from carbonledger.models import ReportStatus, StandardId

EU_METADATA = {
    "company_name": "Siam Steel Co.",
    "facility_location": "Rayong, Thailand",
    "goods_category": "iron_steel",
    "production_process": "BF-BOF",
    "carbon_price_paid": 0,
}


@pytest.fixture
def cbam_store(seeded_store, calculated_activity):
    """The seeded project plus one precursor activity of 50 kgCO2e."""
    seeded_store.add_activity(
        calculated_activity(
            "50", scope="scope3", activity_type="precursor_materials", unit="t",
        )
    )
    return seeded_store


# ==============================================================================
# Assembly
# ==============================================================================

class TestAssemble:
    """Payload derivation, metadata fill-in and completeness."""

    def test_eu_cbam_derived_fields(self, assembler, cbam_store):
        report = assembler.assemble("proj-test", "eu_cbam", metadata=EU_METADATA)

        assert report.payload["direct_emissions"] == Decimal("100")
        assert report.payload["indirect_emissions"] == Decimal("200")
        assert report.payload["precursor_emissions"] == Decimal("50")
        assert report.payload["installation_operator"] == "Siam Steel Co."
        assert report.incomplete is False
        assert report.missing_fields == []
        assert report.completeness_pct == Decimal("100.00")
        assert report.status == ReportStatus.DRAFT

    def test_payload_covers_every_report_field(self, assembler, cbam_store, mapper):
        report = assembler.assemble("proj-test", StandardId.EU_CBAM, metadata=EU_METADATA)
        definition = mapper.requirements("eu_cbam")

        assert list(report.payload) == list(definition.report_fields)
        assert report.payload["cn_code"] is None

    def test_zero_is_a_value_not_a_gap(self, assembler, cbam_store):
        report = assembler.assemble("proj-test", "eu_cbam", metadata=EU_METADATA)
        assert report.payload["carbon_price_paid"] == 0
        assert "carbon_price_paid" not in report.missing_fields

    def test_missing_precursors_flagged(self, assembler, seeded_store):
        report = assembler.assemble("proj-test", "eu_cbam", metadata=EU_METADATA)

        assert report.incomplete is True
        assert report.missing_fields == ["precursor_emissions"]
        assert report.completeness_pct == Decimal("87.50")

    def test_incomplete_report_is_saved_not_raised(self, assembler, seeded_store, report_store):
        report = assembler.assemble("proj-test", "thai_esg", reporting_year=2025)

        assert report_store.get_report(report.report_id) == report
        with pytest.raises(IncompleteReportError):
            report.raise_if_incomplete()

    def test_missing_fields_logged(self, assembler, seeded_store, caplog):
        assembler.assemble("proj-test", "uk_cbam")
        assert "missing required fields" in caplog.text

    def test_derived_values_win_over_metadata(self, assembler, seeded_store):
        report = assembler.assemble(
            "proj-test", "uk_cbam", metadata={"production_emissions": 1},
        )
        assert report.payload["production_emissions"] == Decimal("600")

    def test_blank_metadata_counts_as_missing(self, assembler, seeded_store):
        report = assembler.assemble("proj-test", "uk_cbam", metadata={"company_name": "  "})
        assert report.payload["company_name"] is None
        assert "company_name" in report.missing_fields

    def test_unknown_standard(self, assembler, seeded_store):
        with pytest.raises(StandardNotFoundError):
            assembler.assemble("proj-test", "us_sec")

    def test_report_keeps_dates_and_aggregate(self, assembler, seeded_store):
        report = assembler.assemble(
            "proj-test", "maff_esg",
            reporting_year=2025, submission_deadline=date(2026, 6, 30),
        )
        assert report.reporting_year == 2025
        assert report.submission_deadline == date(2026, 6, 30)
        assert report.aggregate_id.startswith("agg_")


class TestStandardDerivations:
    """Derived fields for the remaining standards."""

    def test_uk_cbam(self, assembler, seeded_store):
        payload = assembler.assemble("proj-test", "uk_cbam").payload
        assert payload["production_emissions"] == Decimal("600")
        assert payload["embedded_emissions"] == Decimal("300")

    def test_china_uses_scope_quantities(self, assembler, seeded_store):
        payload = assembler.assemble(
            "proj-test", "china_carbon_market", metadata={"company_name": "Acme"},
        ).payload

        assert payload["enterprise_name"] == "Acme"
        assert payload["fuel_consumption"] == Decimal("100")
        assert payload["electricity_consumption"] == Decimal("400")
        assert payload["total_emissions"] == Decimal("600")

    def test_k_esg_intensity(self, assembler, seeded_store):
        payload = assembler.assemble(
            "proj-test", "k_esg", metadata={"revenue": "1200"}, reporting_year=2025,
        ).payload

        assert payload["reporting_year"] == 2025
        assert payload["scope3_emissions"] == Decimal("300")
        assert payload["emission_intensity"] == Decimal("0.5")

    @pytest.mark.parametrize("revenue", [None, 0, "-1", "n/a"])
    def test_k_esg_intensity_needs_positive_revenue(self, assembler, seeded_store, revenue):
        payload = assembler.assemble("proj-test", "k_esg", metadata={"revenue": revenue}).payload
        assert payload["emission_intensity"] is None

    def test_maff(self, assembler, seeded_store):
        payload = assembler.assemble("proj-test", "maff_esg", reporting_year=2024).payload
        assert payload["fiscal_year"] == 2024
        assert payload["scope1_emissions"] == Decimal("100")

    def test_thai(self, assembler, seeded_store):
        payload = assembler.assemble("proj-test", "thai_esg", reporting_year=2025).payload

        assert payload["reporting_period"] == "2025"
        assert payload["ghg_emissions_scope1"] == Decimal("100")
        assert payload["ghg_emissions_scope2"] == Decimal("200")
        assert payload["energy_consumption"] == Decimal("400")


# ==============================================================================
# Field Updates
# ==============================================================================

class TestUpdateFields:
    """Filling in values after assembly."""

    def test_update_completes_report(self, assembler, seeded_store):
        report = assembler.assemble("proj-test", "eu_cbam", metadata=EU_METADATA)

        updated = assembler.update_fields(report.report_id, {"precursor_emissions": 0})

        assert updated.incomplete is False
        assert updated.missing_fields == []
        assert updated.completeness_pct == Decimal("100.00")
        assert updated.status == report.status

    def test_clearing_a_field_makes_it_missing(self, assembler, cbam_store):
        report = assembler.assemble("proj-test", "eu_cbam", metadata=EU_METADATA)

        updated = assembler.update_fields(report.report_id, {"company_name": ""})

        assert updated.missing_fields == ["company_name"]

    def test_unknown_field_rejected(self, assembler, seeded_store):
        report = assembler.assemble("proj-test", "eu_cbam")

        with pytest.raises(ValidationError) as excinfo:
            assembler.update_fields(report.report_id, {"k_esg_score": 90})

        assert "k_esg_score" in excinfo.value.invalid_fields

    def test_unknown_report_rejected(self, assembler):
        with pytest.raises(ValidationError, match="not found"):
            assembler.update_fields("rpt_missing", {"company_name": "x"})
