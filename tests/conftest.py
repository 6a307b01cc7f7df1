# -*- coding: utf-8 -*-
"""Pytest configuration and shared fixtures."""

from decimal import Decimal
from typing import Optional

import pytest

from carbonledger.activity_calculator import ActivityCalculatorEngine
from carbonledger.aggregation import AggregationEngine
from carbonledger.config import reset_config
from carbonledger.factor_resolver import FactorResolverEngine
from carbonledger.hotspot_analyzer import HotspotAnalyzerEngine
from carbonledger.models import (
    Activity,
    CalculationResult,
    CalculationStatus,
    DataQuality,
    Scope,
    Scope3Category,
)
from carbonledger.provenance import reset_provenance_tracker
from carbonledger.report_assembler import ReportAssemblerEngine
from carbonledger.setup import CarbonLedgerService, reset_service
from carbonledger.signature_gate import SignatureGateEngine
from carbonledger.standards import StandardRequirementMapper
from carbonledger.stores import (
    InMemoryActivityStore,
    InMemoryFactorStore,
    InMemoryReportStore,
    load_factors_yaml,
)

PROJECT = "proj-test"


# ==============================================================================
# Singleton isolation
# ==============================================================================

@pytest.fixture(autouse=True)
def _isolate_singletons(monkeypatch):
    """Every test starts from a clean config, provenance chain and service."""
    for name in ("CARBONLEDGER_HOTSPOT_LIMIT", "CARBONLEDGER_MAX_BATCH_SIZE"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    reset_provenance_tracker()
    reset_service()
    yield
    reset_config()
    reset_provenance_tracker()
    reset_service()


# ==============================================================================
# Builders
# ==============================================================================

def make_activity(
    scope: str = "scope1",
    activity_type: str = "stationary_combustion",
    quantity="100",
    unit: str = "L",
    project_id: str = PROJECT,
    **fields,
) -> Activity:
    """Build a pending activity with sensible defaults."""
    if scope == "scope3" and "scope3_category" not in fields:
        fields["scope3_category"] = Scope3Category.PURCHASED_GOODS_SERVICES
    return Activity(
        project_id=project_id,
        scope=scope,
        activity_type=activity_type,
        quantity=quantity,
        unit=unit,
        **fields,
    )


def make_calculated(
    co2e,
    scope: str = "scope1",
    activity_type: str = "stationary_combustion",
    data_quality: DataQuality = DataQuality.MEDIUM,
    project_id: str = PROJECT,
    scope3_category: Optional[Scope3Category] = None,
    **fields,
) -> Activity:
    """Build an activity that already carries a successful result."""
    if scope == Scope.SCOPE3.value and scope3_category is None:
        scope3_category = Scope3Category.PURCHASED_GOODS_SERVICES
    activity = make_activity(
        scope=scope,
        activity_type=activity_type,
        project_id=project_id,
        data_quality=data_quality,
        scope3_category=scope3_category,
        **fields,
    )
    result = CalculationResult(
        activity_id=activity.activity_id,
        project_id=project_id,
        status=CalculationStatus.CALCULATED,
        co2e_kg=Decimal(str(co2e)),
        formula="combustion",
    )
    return activity.model_copy(
        update={"calculation_status": CalculationStatus.CALCULATED, "result": result},
    )


@pytest.fixture
def new_activity():
    """Factory for pending activities."""
    return make_activity


@pytest.fixture
def calculated_activity():
    """Factory for activities that already carry a successful result."""
    return make_calculated


# ==============================================================================
# Stores and engines
# ==============================================================================

@pytest.fixture(scope="session")
def default_factors():
    """The bundled factor table, parsed once."""
    return load_factors_yaml()


@pytest.fixture
def factor_store(default_factors):
    return InMemoryFactorStore(default_factors)


@pytest.fixture
def activity_store():
    return InMemoryActivityStore()


@pytest.fixture
def report_store():
    return InMemoryReportStore()


@pytest.fixture
def resolver(factor_store):
    return FactorResolverEngine(factor_store)


@pytest.fixture
def calculator(resolver, activity_store):
    return ActivityCalculatorEngine(resolver, activity_store, default_year=2025)


@pytest.fixture
def aggregation(activity_store):
    return AggregationEngine(activity_store)


@pytest.fixture
def analyzer(activity_store):
    return HotspotAnalyzerEngine(activity_store)


@pytest.fixture
def mapper():
    return StandardRequirementMapper()


@pytest.fixture
def assembler(aggregation, mapper, report_store):
    return ReportAssemblerEngine(aggregation, mapper, report_store)


@pytest.fixture
def gate(report_store, mapper):
    return SignatureGateEngine(report_store, mapper)


@pytest.fixture
def service():
    return CarbonLedgerService(default_year=2025)


@pytest.fixture
def seeded_store(activity_store):
    """Scope 1/2/3 activities of 100/200/300 kgCO2e."""
    activity_store.add_activity(make_calculated("100", scope="scope1"))
    activity_store.add_activity(
        make_calculated(
            "200",
            scope="scope2",
            activity_type="purchased_electricity",
            unit="kWh",
            quantity="400",
        )
    )
    activity_store.add_activity(
        make_calculated(
            "300",
            scope="scope3",
            activity_type="business_travel",
            unit="km",
            scope3_category=Scope3Category.BUSINESS_TRAVEL,
        )
    )
    return activity_store
