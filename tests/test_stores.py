"""Tests for the in-memory stores and the factor table loader."""

from decimal import Decimal

import pytest

from carbonledger.models import (
    CalculationStatus,
    EmissionFactor,
    FactorCategory,
    FactorOverride,
    Report,
    Signature,
    StandardId,
)
from carbonledger.stores import (
    InMemoryActivityStore,
    InMemoryFactorStore,
    InMemoryReportStore,
    load_factors_yaml,
)


# ==============================================================================
# Factor Table Loading
# ==============================================================================

class TestLoadFactorsYaml:
    """Bundled and custom factor tables."""

    def test_bundled_defaults(self, default_factors):
        categories = {f.category for f in default_factors}
        assert categories == set(FactorCategory)

    def test_values_keep_their_decimal_text(self, default_factors):
        thailand = [
            f for f in default_factors
            if f.category == FactorCategory.GRID and f.key == "Thailand" and f.year == 2025
        ]
        assert thailand[0].value == Decimal("0.4561")

    def test_custom_file(self, tmp_path):
        path = tmp_path / "factors.yaml"
        path.write_text(
            "fuel:\n  - {key: biogas_m3, year: 2024, value: 0.2, source: Test}\n",
            encoding="utf-8",
        )

        factors = load_factors_yaml(path)

        assert len(factors) == 1
        assert factors[0].key == "biogas_m3"
        assert factors[0].unit == "kgCO2e/unit"

    def test_unknown_category_rejected(self, tmp_path):
        path = tmp_path / "factors.yaml"
        path.write_text("plasma:\n  - {key: x, year: 2024, value: 1}\n", encoding="utf-8")

        with pytest.raises(ValueError, match="Unknown factor category"):
            load_factors_yaml(path)

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "factors.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ValueError, match="must map categories"):
            load_factors_yaml(path)


# ==============================================================================
# Factor Store
# ==============================================================================

class TestInMemoryFactorStore:
    """One active factor per (category, key, year)."""

    def test_new_active_factor_deactivates_previous(self):
        store = InMemoryFactorStore()
        old = store.add_factor(
            EmissionFactor(category="grid", key="Japan", year=2025, value="0.45")
        )
        new = store.add_factor(
            EmissionFactor(category="grid", key="Japan", year=2025, value="0.44")
        )

        active = store.get_active_factor(FactorCategory.GRID, "Japan", 2025)

        assert active.factor_id == new.factor_id
        assert active.factor_id != old.factor_id
        assert len(store) == 2

    def test_historical_factors_newest_first(self, factor_store):
        years = [f.year for f in factor_store.get_historical_factors("Thailand")]
        assert years == [2025, 2024]

    def test_overrides_are_project_scoped(self):
        store = InMemoryFactorStore()
        store.save_override(
            FactorOverride(project_id="p1", category="grid", key="Thailand", value="0.1")
        )

        assert store.get_override("p1", FactorCategory.GRID, "Thailand") is not None
        assert store.get_override("p2", FactorCategory.GRID, "Thailand") is None

    def test_inactive_override_is_ignored(self):
        store = InMemoryFactorStore()
        store.save_override(
            FactorOverride(
                project_id="p1", category="grid", key="Thailand", value="0.1", active=False,
            )
        )
        assert store.get_override("p1", "grid", "Thailand") is None


# ==============================================================================
# Activity Store
# ==============================================================================

class TestInMemoryActivityStore:
    """Activity filtering and patching."""

    def test_duplicate_id_rejected(self, new_activity):
        activity = new_activity()
        store = InMemoryActivityStore([activity])

        with pytest.raises(KeyError):
            store.add_activity(activity)

    def test_filters_by_project_status_and_retirement(self, new_activity, calculated_activity):
        pending = new_activity()
        done = calculated_activity("10")
        retired = new_activity().model_copy(update={"retired": True})
        other = new_activity(project_id="other")
        store = InMemoryActivityStore([pending, done, retired, other])

        assert {a.activity_id for a in store.get_activities("proj-test")} == {
            pending.activity_id, done.activity_id,
        }
        assert [a.activity_id for a in store.get_activities(
            "proj-test", status=CalculationStatus.CALCULATED,
        )] == [done.activity_id]
        assert len(store.get_activities("proj-test", include_retired=True)) == 3

    def test_update_patches_and_touches_timestamp(self, new_activity):
        activity = new_activity()
        store = InMemoryActivityStore([activity])

        updated = store.update_activity(activity.activity_id, {"retired": True})

        assert updated.retired is True
        assert updated.updated_at >= activity.updated_at
        assert store.get_activity(activity.activity_id).retired is True

    def test_update_unknown_raises(self):
        with pytest.raises(KeyError):
            InMemoryActivityStore().update_activity("act_missing", {"retired": True})


# ==============================================================================
# Report Store
# ==============================================================================

class TestInMemoryReportStore:
    """Reports and signatures."""

    def test_save_and_get_report(self):
        store = InMemoryReportStore()
        report = store.save_report(Report(project_id="p1", standard_id=StandardId.EU_CBAM))
        assert store.get_report(report.report_id) == report
        assert store.get_report("rpt_missing") is None

    def test_update_unknown_signature_raises(self):
        signature = Signature(
            report_id="rpt_1",
            signer_id="u1",
            signer_role="owner",
            content_hash="a" * 64,
            signature_hash="b" * 64,
        )
        with pytest.raises(KeyError):
            InMemoryReportStore().update_signature(signature)
