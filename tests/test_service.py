"""End-to-end tests through CarbonLedgerService."""

from decimal import Decimal

import pytest

from carbonledger.exceptions import IntegrityError, SignatureAuthorizationError
from carbonledger.models import (
    CalculationStatus,
    ReportStatus,
    SignerIdentity,
    SignerRole,
)
from carbonledger.setup import (
    CarbonLedgerService,
    get_service,
    reset_service,
    set_service,
)

pytestmark = pytest.mark.integration

PROJECT = "proj-siam"

ROWS = [
    {
        "Scope": "Scope 1", "Activity Type": "stationary_combustion",
        "Qty": "100", "Unit": "L", "Fuel Type": "diesel_l",
    },
    {
        "Scope": "Scope 2", "Activity Type": "purchased_electricity",
        "Qty": "1,000", "Unit": "kWh", "Country": "Thailand",
    },
    {
        "Scope": "Scope 3", "Scope 3 Category": "Business travel",
        "Activity Type": "business_travel", "Qty": "1000", "Unit": "km", "Mode": "km_rail",
    },
]


@pytest.fixture
def loaded_service(service):
    """A service with the three sample rows imported and calculated."""
    service.import_activities(ROWS, project_id=PROJECT)
    service.calculate_all(PROJECT)
    return service


# ==============================================================================
# Import to Totals
# ==============================================================================

class TestFootprintFlow:
    """Import, calculate and aggregate."""

    def test_import_and_calculate(self, service):
        imported = service.import_activities(ROWS, project_id=PROJECT)
        assert imported.success is True

        batch = service.calculate_all(PROJECT)

        assert batch.calculated_count == 3
        assert batch.failed_count == 0
        assert batch.total_co2e_kg == Decimal("759.1")

    def test_totals(self, loaded_service):
        totals = loaded_service.get_totals(PROJECT)

        assert totals.scope_totals == {
            "scope1": Decimal("268"),
            "scope2": Decimal("456.1"),
            "scope3": Decimal("35"),
        }
        assert totals.grand_total == Decimal("759.1")
        assert totals.category_totals == {"business_travel": Decimal("35")}

    def test_bad_rows_do_not_block_good_ones(self, service):
        rows = ROWS + [{"Scope": "Scope 1", "Activity Type": "boilers", "Qty": "-4", "Unit": "L"}]

        imported = service.import_activities(rows, project_id=PROJECT)

        assert len(imported.activities) == 3
        assert imported.errors[0].row == 3
        assert len(service.activity_store.get_activities(PROJECT)) == 3

    def test_duplicate_ids_become_row_errors(self, service):
        first = dict(ROWS[0], ID="A1")

        imported = service.import_activities([first, dict(first, Qty="5")], project_id=PROJECT)
        again = service.import_activities([first, dict(ROWS[1], ID="B2")], project_id=PROJECT)

        assert [(e.row, e.field) for e in imported.errors] == [(1, "activity_id")]
        assert [a.activity_id for a in again.activities] == ["B2"]
        assert [(e.row, e.activity_id) for e in again.errors] == [(0, "A1")]
        stored = service.activity_store.get_activities(PROJECT)
        assert sorted(a.activity_id for a in stored) == ["A1", "B2"]
        assert service.activity_store.get_activity("A1").quantity == Decimal("100")

    def test_override_and_recalculate(self, loaded_service):
        loaded_service.register_override(PROJECT, "fuel", "diesel_l", "3.0")
        diesel = [
            a for a in loaded_service.activity_store.get_activities(PROJECT)
            if a.factor_key == "diesel_l"
        ][0]

        result = loaded_service.calculate_one(diesel.activity_id)

        assert result.co2e_kg == Decimal("300")
        assert loaded_service.get_totals(PROJECT).grand_total == Decimal("791.1")

    def test_retired_activity_leaves_totals(self, loaded_service):
        travel = [
            a for a in loaded_service.activity_store.get_activities(PROJECT)
            if a.activity_type == "business_travel"
        ][0]

        retired = loaded_service.retire_activity(travel.activity_id)

        assert retired.retired is True
        assert loaded_service.get_totals(PROJECT).grand_total == Decimal("724.1")

    def test_missing_factor_is_a_row_error(self, service):
        service.import_activities(
            [{"Scope": "1", "Activity Type": "stationary_combustion", "Qty": "1",
              "Unit": "L", "Fuel Type": "whale_oil"}],
            project_id=PROJECT,
        )

        batch = service.calculate_all(PROJECT)

        assert batch.failed_count == 1
        assert batch.errors[0].error_code == "CL_FACTOR_NOT_FOUND_ERROR"
        stored = service.activity_store.get_activities(PROJECT)[0]
        assert stored.calculation_status == CalculationStatus.ERROR

    def test_hotspots_and_quality(self, loaded_service):
        hotspots = loaded_service.get_hotspots(PROJECT, limit=1)
        quality = loaded_service.get_data_quality(PROJECT)

        assert hotspots.hotspots[0].source == "purchased_electricity"
        assert quality.activity_count == 3
        assert quality.by_source == {"import": 3}

    def test_compare_footprints(self, loaded_service):
        baseline = loaded_service.get_totals(PROJECT)
        reporting = loaded_service.get_totals(PROJECT)

        comparison = loaded_service.compare_footprints(baseline, reporting)

        assert comparison.absolute_change == 0


# ==============================================================================
# Reports and Signatures
# ==============================================================================

class TestReportFlow:
    """Assemble, sign and verify through the facade."""

    def test_k_esg_sign_off(self, loaded_service):
        report = loaded_service.assemble_report(
            PROJECT, "k_esg",
            metadata={
                "company_name": "Siam Steel Co.",
                "business_registration_number": "123-45-67890",
                "revenue": "759.1",
            },
            reporting_year=2025,
        )
        assert report.payload["emission_intensity"] == Decimal("1")

        owner = SignerIdentity(user_id="u1", name="Owner", role=SignerRole.OWNER)
        auditor = SignerIdentity(user_id="u2", name="Auditor", role=SignerRole.AUDITOR)
        loaded_service.sign_report(report.report_id, owner)
        loaded_service.sign_report(report.report_id, auditor)

        stored = loaded_service.report_store.get_report(report.report_id)
        assert stored.status == ReportStatus.COMPLETED
        assert loaded_service.verify_signature(report.report_id) is True

    def test_editor_cannot_sign_maff(self, loaded_service):
        report = loaded_service.assemble_report(PROJECT, "maff_esg", reporting_year=2025)
        editor = SignerIdentity(user_id="u3", role=SignerRole.EDITOR)

        with pytest.raises(SignatureAuthorizationError):
            loaded_service.sign_report(report.report_id, editor)

    def test_tamper_then_revoke(self, loaded_service):
        report = loaded_service.assemble_report(PROJECT, "thai_esg", reporting_year=2025)
        signer = SignerIdentity(user_id="u1", role=SignerRole.DIRECTOR)
        signature = loaded_service.sign_report(report.report_id, signer)

        loaded_service.update_report(report.report_id, {"tax_id": "0105551234567"})
        with pytest.raises(IntegrityError):
            loaded_service.verify_signature(report.report_id)

        loaded_service.revoke_signature(signature.signature_id, "payload edited")
        assert loaded_service.verify_signature(report.report_id) is False

    def test_standard_lookups(self, service):
        assert len(service.list_standards()) == 6
        assert service.get_standard_requirements("thai_esg").name
        assert service.get_standard_overlap("eu_cbam", "uk_cbam").percentage == 32


# ==============================================================================
# Health, Stats and Singleton
# ==============================================================================

class TestServiceAdmin:
    """Health check, counters and singleton access."""

    def test_health(self, service):
        health = service.health_check()

        assert health.status == "healthy"
        assert len(health.engines) == 7
        assert health.provenance_chain_valid is True

    def test_stats(self, loaded_service):
        report = loaded_service.assemble_report(PROJECT, "eu_cbam")
        loaded_service.sign_report(
            report.report_id, SignerIdentity(user_id="u1", role=SignerRole.OWNER),
        )

        stats = loaded_service.get_stats()

        assert stats.total_batch_runs == 1
        assert stats.total_calculations == 3
        assert stats.total_failed_calculations == 0
        assert stats.total_reports == 1
        assert stats.total_signatures == 1
        assert stats.provenance_entries > 0

    def test_singleton(self):
        first = get_service()
        assert get_service() is first

        replacement = CarbonLedgerService()
        set_service(replacement)
        assert get_service() is replacement

        reset_service()
        assert get_service() is not replacement
