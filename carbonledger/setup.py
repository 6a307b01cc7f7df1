# -*- coding: utf-8 -*-
"""
CarbonLedger Service Setup
==========================

Service facade for the CarbonLedger calculation and reporting engine.

``CarbonLedgerService`` wires the stores and the seven engines together
and exposes the caller operations:

    1. FactorResolverEngine        - override / exact / prior-year / lookup
    2. ActivityCalculatorEngine    - scope- and tier-aware CO2e formulas
    3. AggregationEngine           - CFO and CFP footprints
    4. HotspotAnalyzerEngine       - hotspot ranking and data quality
    5. StandardRequirementMapper   - six-standard registry and overlap
    6. ReportAssemblerEngine       - standard-shaped report payloads
    7. SignatureGateEngine         - role-gated signing and verification

The service holds no state of its own beyond the stores it was given.
Callers must run at most one recalculation or aggregation per project
at a time; the service does not lock projects.

Usage:
    >>> from carbonledger.setup import get_service
    >>> svc = get_service()
    >>> svc.import_activities(rows, project_id="proj-1")
    >>> svc.calculate_all("proj-1")
    >>> svc.get_totals("proj-1").grand_total
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from carbonledger.activity_calculator import ActivityCalculatorEngine
from carbonledger.aggregation import AggregationEngine
from carbonledger.config import CarbonLedgerConfig, get_config
from carbonledger.factor_resolver import FactorResolverEngine
from carbonledger.hotspot_analyzer import HotspotAnalyzerEngine
from carbonledger.importer import parse_activity_rows
from carbonledger.models import (
    VERSION,
    Activity,
    AggregateResult,
    BatchCalculationResult,
    CalculationResult,
    DataQualityReport,
    EnergyMix,
    FactorCategory,
    FactorOverride,
    FootprintComparison,
    FootprintKind,
    HotspotReport,
    ImportResult,
    Report,
    Signature,
    SignerIdentity,
    StandardDefinition,
    StandardId,
    StandardOverlap,
)
from carbonledger.provenance import get_provenance_tracker
from carbonledger.report_assembler import ReportAssemblerEngine
from carbonledger.signature_gate import SignatureGateEngine
from carbonledger.standards import StandardRequirementMapper
from carbonledger.stores import (
    ActivityStore,
    ExternalFactorLookup,
    FactorStore,
    InMemoryActivityStore,
    InMemoryFactorStore,
    InMemoryReportStore,
    ReportStore,
    load_factors_yaml,
)

logger = logging.getLogger(__name__)


# ===================================================================
# Response models
# ===================================================================


class HealthResponse(BaseModel):
    """Service health check response."""

    model_config = ConfigDict(frozen=True)

    status: str = Field(default="healthy")
    service: str = Field(default="carbonledger")
    version: str = Field(default=VERSION)
    engines: Dict[str, str] = Field(default_factory=dict)
    provenance_chain_valid: bool = Field(default=True)


class StatsResponse(BaseModel):
    """Service statistics response."""

    model_config = ConfigDict(frozen=True)

    total_calculations: int = Field(default=0)
    total_failed_calculations: int = Field(default=0)
    total_batch_runs: int = Field(default=0)
    total_reports: int = Field(default=0)
    total_signatures: int = Field(default=0)
    provenance_entries: int = Field(default=0)
    uptime_seconds: float = Field(default=0.0)


# ===================================================================
# CarbonLedgerService facade
# ===================================================================


class CarbonLedgerService:
    """Unified facade over the CarbonLedger engines.

    Attributes:
        config: Active CarbonLedgerConfig.
        activity_store: Activity store collaborator.
        factor_store: Factor store collaborator.
        report_store: Report store collaborator.

    Example:
        >>> service = CarbonLedgerService()
        >>> service.get_standard_overlap("eu_cbam", "uk_cbam").percentage
        32
    """

    def __init__(
        self,
        config: Optional[CarbonLedgerConfig] = None,
        activity_store: Optional[ActivityStore] = None,
        factor_store: Optional[FactorStore] = None,
        report_store: Optional[ReportStore] = None,
        external_lookup: Optional[ExternalFactorLookup] = None,
        factors_path: Optional[Union[str, Path]] = None,
        default_year: Optional[int] = None,
    ) -> None:
        """Initialize the service and its engines.

        Args:
            config: Optional configuration; the global config when None.
            activity_store: Activity store; in-memory when None.
            factor_store: Factor store; in-memory seeded from
                ``factors_path`` (or the bundled defaults) when None.
            report_store: Report store; in-memory when None.
            external_lookup: Optional external factor lookup.
            factors_path: Factor table used to seed the default store.
            default_year: Factor year for activities that carry none.
        """
        self.config = config if config is not None else get_config()
        self._start_time = time.monotonic()

        self.activity_store = activity_store or InMemoryActivityStore()
        self.factor_store = factor_store or InMemoryFactorStore(
            load_factors_yaml(factors_path)
        )
        self.report_store = report_store or InMemoryReportStore()

        self.resolver = FactorResolverEngine(
            self.factor_store, external_lookup=external_lookup, config=self.config,
        )
        self.calculator = ActivityCalculatorEngine(
            self.resolver,
            activity_store=self.activity_store,
            config=self.config,
            default_year=default_year,
        )
        self.aggregation = AggregationEngine(self.activity_store, config=self.config)
        self.analyzer = HotspotAnalyzerEngine(self.activity_store, config=self.config)
        self.mapper = StandardRequirementMapper(config=self.config)
        self.assembler = ReportAssemblerEngine(
            self.aggregation, self.mapper, self.report_store, config=self.config,
        )
        self.gate = SignatureGateEngine(self.report_store, self.mapper, config=self.config)

        self._total_calculations = 0
        self._total_failed = 0
        self._total_batch_runs = 0
        self._total_reports = 0
        self._total_signatures = 0

        logger.info("CarbonLedgerService facade created")

    # ==================================================================
    # Activities
    # ==================================================================

    def import_activities(
        self,
        rows: Iterable[Mapping[str, Any]],
        project_id: str,
    ) -> ImportResult:
        """Parse raw rows and store every valid activity.

        Bad rows, including ids already in the activity store, are
        returned as RowErrors; valid rows are stored.
        """
        result = parse_activity_rows(
            rows,
            project_id,
            is_known=lambda activity_id: (
                self.activity_store.get_activity(activity_id) is not None
            ),
        )
        for activity in result.activities:
            self.activity_store.add_activity(activity)
        return result

    def add_activity(self, activity: Activity) -> Activity:
        return self.activity_store.add_activity(activity)

    def retire_activity(self, activity_id: str) -> Activity:
        """Soft-retire an activity; it is never calculated or aggregated again."""
        activity = self.activity_store.update_activity(activity_id, {"retired": True})
        logger.info("Activity %s retired", activity_id)
        return activity

    # ==================================================================
    # Calculation
    # ==================================================================

    def calculate_one(self, activity_id: str) -> CalculationResult:
        """Calculate one stored activity, overwriting any previous result."""
        result = self.calculator.recalculate(activity_id)
        self._total_calculations += 1
        if not result.succeeded:
            self._total_failed += 1
        return result

    def calculate_all(
        self,
        project_id: str,
        include_errors: bool = False,
        recalculate: bool = False,
    ) -> BatchCalculationResult:
        """Calculate a project's pending activities (see ActivityCalculatorEngine)."""
        batch = self.calculator.calculate_all(
            project_id, include_errors=include_errors, recalculate=recalculate,
        )
        self._total_batch_runs += 1
        self._total_calculations += len(batch.results)
        self._total_failed += batch.failed_count
        return batch

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
        return self.resolver.register_override(
            project_id, category, key, value,
            unit=unit, source=source, energy_mix=energy_mix,
        )

    # ==================================================================
    # Aggregation and analysis
    # ==================================================================

    def get_totals(
        self,
        project_id: str,
        kind: Union[FootprintKind, str] = FootprintKind.CFO,
        production_quantity: Optional[Union[Decimal, float, str]] = None,
        production_unit: Optional[str] = None,
    ) -> AggregateResult:
        return self.aggregation.aggregate(
            project_id, kind,
            production_quantity=production_quantity,
            production_unit=production_unit,
        )

    def compare_footprints(
        self,
        baseline: AggregateResult,
        reporting: AggregateResult,
    ) -> FootprintComparison:
        return self.aggregation.compare_footprints(baseline, reporting)

    def get_hotspots(self, project_id: str, limit: Optional[int] = None) -> HotspotReport:
        return self.analyzer.hotspots(project_id, limit=limit)

    def get_data_quality(self, project_id: str) -> DataQualityReport:
        return self.analyzer.data_quality(project_id)

    # ==================================================================
    # Standards
    # ==================================================================

    def list_standards(self) -> List[Dict[str, Any]]:
        return self.mapper.list_standards()

    def get_standard_requirements(
        self,
        standard_id: Union[StandardId, str],
    ) -> StandardDefinition:
        return self.mapper.requirements(standard_id)

    def get_standard_overlap(
        self,
        standard_a: Union[StandardId, str],
        standard_b: Union[StandardId, str],
    ) -> StandardOverlap:
        return self.mapper.overlap(standard_a, standard_b)

    # ==================================================================
    # Reports and signatures
    # ==================================================================

    def assemble_report(
        self,
        project_id: str,
        standard_id: Union[StandardId, str],
        metadata: Optional[Dict[str, Any]] = None,
        reporting_year: Optional[int] = None,
        submission_deadline: Optional[date] = None,
    ) -> Report:
        report = self.assembler.assemble(
            project_id, standard_id,
            metadata=metadata,
            reporting_year=reporting_year,
            submission_deadline=submission_deadline,
        )
        self._total_reports += 1
        return report

    def update_report(self, report_id: str, values: Dict[str, Any]) -> Report:
        return self.assembler.update_fields(report_id, values)

    def sign_report(
        self,
        report_id: str,
        signer: SignerIdentity,
        signature_type: str = "approval",
    ) -> Signature:
        signature = self.gate.sign(report_id, signer, signature_type=signature_type)
        self._total_signatures += 1
        return signature

    def verify_signature(self, report_id: str) -> bool:
        return self.gate.verify(report_id)

    def revoke_signature(self, signature_id: str, reason: str) -> Signature:
        return self.gate.revoke(signature_id, reason)

    # ==================================================================
    # Health and stats
    # ==================================================================

    def health_check(self) -> HealthResponse:
        """Report engine availability and provenance chain integrity."""
        engines = {
            "factor_resolver": "available",
            "activity_calculator": "available",
            "aggregation": "available",
            "hotspot_analyzer": "available",
            "standard_mapper": "available",
            "report_assembler": "available",
            "signature_gate": "available",
        }
        chain_valid = True
        if self.config.enable_provenance:
            chain_valid = get_provenance_tracker().verify_chain()
        return HealthResponse(
            status="healthy" if chain_valid else "degraded",
            engines=engines,
            provenance_chain_valid=chain_valid,
        )

    def get_stats(self) -> StatsResponse:
        entries = 0
        if self.config.enable_provenance:
            entries = get_provenance_tracker().entry_count
        return StatsResponse(
            total_calculations=self._total_calculations,
            total_failed_calculations=self._total_failed,
            total_batch_runs=self._total_batch_runs,
            total_reports=self._total_reports,
            total_signatures=self._total_signatures,
            provenance_entries=entries,
            uptime_seconds=round(time.monotonic() - self._start_time, 3),
        )


# ===================================================================
# Thread-safe singleton access
# ===================================================================


_service_instance: Optional[CarbonLedgerService] = None
_service_lock = threading.Lock()


def get_service() -> CarbonLedgerService:
    """Get or create the singleton CarbonLedgerService instance.

    Uses double-checked locking for thread safety with minimal
    contention on the hot path.
    """
    global _service_instance
    if _service_instance is None:
        with _service_lock:
            if _service_instance is None:
                _service_instance = CarbonLedgerService()
    return _service_instance


def set_service(service: CarbonLedgerService) -> None:
    """Replace the singleton service (embedding callers, tests)."""
    global _service_instance
    with _service_lock:
        _service_instance = service


def reset_service() -> None:
    global _service_instance
    with _service_lock:
        _service_instance = None


__all__ = [
    "CarbonLedgerService",
    "HealthResponse",
    "StatsResponse",
    "get_service",
    "set_service",
    "reset_service",
]
