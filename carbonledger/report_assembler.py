# -*- coding: utf-8 -*-
"""
ReportAssemblerEngine - Engine 6: CarbonLedger

Builds a standard-shaped report payload from the current organization
footprint and caller-supplied metadata.

Assembly steps:
    1. Look up the StandardDefinition (unknown ids raise
       ``StandardNotFoundError``).
    2. Recompute the CFO aggregate for the project.
    3. Derive the values the standard takes from calculated data (for
       example direct/indirect/precursor emissions for EU CBAM).
    4. Fill every other field from caller metadata. Derived values take
       precedence over metadata for the fields they cover.
    5. Flag required fields that resolved to nothing.

A report with missing required fields is still saved as ``draft`` with
``incomplete=True`` and the missing field names; it is not an error.
``Report.raise_if_incomplete()`` turns it into one on request.
``update_fields`` fills values in after assembly. Editing a signed
payload makes a later verification fail.

Emission values are in kgCO2e.
"""

from __future__ import annotations

import logging
import time
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from carbonledger.aggregation import AggregationEngine
from carbonledger.config import CarbonLedgerConfig, get_config
from carbonledger.exceptions import ValidationError
from carbonledger.metrics import observe_duration, record_report
from carbonledger.models import (
    Activity,
    AggregateResult,
    FootprintKind,
    Report,
    Scope,
    StandardDefinition,
    StandardId,
)
from carbonledger.provenance import get_provenance_tracker
from carbonledger.standards import StandardRequirementMapper
from carbonledger.stores import ReportStore

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")

#: Activity type whose results count as CBAM precursor emissions.
PRECURSOR_ACTIVITY_TYPE = "precursor_materials"


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


class ReportAssemblerEngine:
    """Assembles and edits standard-shaped reports."""

    def __init__(
        self,
        aggregation: AggregationEngine,
        mapper: StandardRequirementMapper,
        report_store: ReportStore,
        config: Optional[CarbonLedgerConfig] = None,
    ) -> None:
        self._aggregation = aggregation
        self._mapper = mapper
        self._store = report_store
        self._config = config or get_config()
        self._quantizer = Decimal(10) ** -self._config.decimal_precision
        self._provenance = (
            get_provenance_tracker() if self._config.enable_provenance else None
        )
        self._derivers: Mapping[StandardId, Callable[..., Dict[str, Any]]] = {
            StandardId.EU_CBAM: self._derive_eu_cbam,
            StandardId.UK_CBAM: self._derive_uk_cbam,
            StandardId.CHINA_CARBON_MARKET: self._derive_china,
            StandardId.K_ESG: self._derive_k_esg,
            StandardId.MAFF_ESG: self._derive_maff_esg,
            StandardId.THAI_ESG: self._derive_thai_esg,
        }
        logger.info("ReportAssemblerEngine initialized")

    # ==================================================================
    # PUBLIC API
    # ==================================================================

    def assemble(
        self,
        project_id: str,
        standard_id: Union[StandardId, str],
        metadata: Optional[Dict[str, Any]] = None,
        reporting_year: Optional[int] = None,
        submission_deadline: Optional[date] = None,
    ) -> Report:
        """Assemble a draft report for one standard.

        Args:
            project_id: Project to report on.
            standard_id: Target reporting standard.
            metadata: Caller-supplied values keyed by standard field name
                (company details, declarations, ...). ``revenue`` is used
                for the K-ESG emission intensity.
            reporting_year: Reporting year.
            submission_deadline: Optional submission deadline.

        Returns:
            The saved Report, status draft, possibly incomplete.

        Raises:
            StandardNotFoundError: If the standard id is unknown.
        """
        start = time.monotonic()
        definition = self._mapper.requirements(standard_id)
        metadata = dict(metadata or {})

        aggregate = self._aggregation.aggregate(project_id, FootprintKind.CFO)
        activities = self._aggregation.calculated_activities(project_id)
        derived = self._derivers[definition.standard_id](
            aggregate, activities, metadata, reporting_year,
        )

        payload: Dict[str, Any] = {}
        for field in definition.report_fields:
            value = derived.get(field)
            if _is_missing(value):
                value = metadata.get(field)
            payload[field] = None if _is_missing(value) else value

        missing, completeness = self._completeness(definition, payload)
        report = Report(
            project_id=project_id,
            standard_id=definition.standard_id,
            payload=payload,
            incomplete=bool(missing),
            missing_fields=missing,
            completeness_pct=completeness,
            reporting_year=reporting_year,
            submission_deadline=submission_deadline,
            aggregate_id=aggregate.aggregate_id,
        )
        self._store.save_report(report)

        record_report(definition.standard_id.value, not missing)
        observe_duration("assemble", time.monotonic() - start)
        if self._provenance is not None:
            self._provenance.record(
                "report",
                "assemble",
                report.report_id,
                data={
                    "standard_id": definition.standard_id.value,
                    "aggregate_id": aggregate.aggregate_id,
                    "missing_fields": missing,
                },
            )
        if missing:
            logger.warning(
                "Report %s (%s) assembled with %d missing required fields: %s",
                report.report_id, definition.standard_id.value, len(missing),
                ", ".join(missing),
            )
        else:
            logger.info(
                "Report %s (%s) assembled for project %s, all required fields present",
                report.report_id, definition.standard_id.value, project_id,
            )
        return report

    def update_fields(self, report_id: str, values: Dict[str, Any]) -> Report:
        """Set payload values on an existing report.

        Completeness is recomputed; the status is left unchanged.

        Raises:
            ValidationError: If the report is unknown or a field is not
                part of the report's standard.
        """
        report = self._store.get_report(report_id)
        if report is None:
            raise ValidationError(
                f"Report {report_id} not found",
                invalid_fields={"report_id": "unknown"},
            )
        definition = self._mapper.requirements(report.standard_id)
        unknown = sorted(set(values) - set(definition.report_fields))
        if unknown:
            raise ValidationError(
                f"Fields not defined for {definition.name}: {', '.join(unknown)}",
                invalid_fields={f: "unknown field" for f in unknown},
            )

        payload = dict(report.payload)
        for field, value in values.items():
            payload[field] = None if _is_missing(value) else value

        missing, completeness = self._completeness(definition, payload)
        updated = report.model_copy(
            update={
                "payload": payload,
                "incomplete": bool(missing),
                "missing_fields": missing,
                "completeness_pct": completeness,
                "updated_at": datetime.now(timezone.utc).replace(microsecond=0),
            },
        )
        self._store.save_report(updated)
        if self._provenance is not None:
            self._provenance.record(
                "report",
                "update",
                report_id,
                data={"fields": sorted(values)},
            )
        logger.info(
            "Report %s updated (%d fields), %d required fields still missing",
            report_id, len(values), len(missing),
        )
        return updated

    # ==================================================================
    # Derived values per standard
    # ==================================================================

    def _derive_eu_cbam(self, aggregate, activities, metadata, reporting_year):
        precursors = [a for a in activities if a.activity_type == PRECURSOR_ACTIVITY_TYPE]
        return {
            "direct_emissions": aggregate.scope_total(Scope.SCOPE1),
            "indirect_emissions": aggregate.scope_total(Scope.SCOPE2),
            "precursor_emissions": (
                self._quantize(sum((a.co2e_kg for a in precursors), _ZERO))
                if precursors else None
            ),
            "installation_operator": metadata.get("company_name"),
        }

    def _derive_uk_cbam(self, aggregate, activities, metadata, reporting_year):
        return {
            "production_emissions": aggregate.grand_total,
            "embedded_emissions": (
                aggregate.scope_total(Scope.SCOPE1) + aggregate.scope_total(Scope.SCOPE2)
            ),
        }

    def _derive_china(self, aggregate, activities, metadata, reporting_year):
        return {
            "enterprise_name": metadata.get("company_name"),
            "fuel_consumption": self._quantity_sum(activities, Scope.SCOPE1),
            "electricity_consumption": self._quantity_sum(activities, Scope.SCOPE2),
            "total_emissions": aggregate.grand_total,
        }

    def _derive_k_esg(self, aggregate, activities, metadata, reporting_year):
        return {
            "reporting_year": reporting_year,
            "scope1_emissions": aggregate.scope_total(Scope.SCOPE1),
            "scope2_emissions": aggregate.scope_total(Scope.SCOPE2),
            "scope3_emissions": aggregate.scope_total(Scope.SCOPE3),
            "emission_intensity": self._intensity(aggregate, metadata.get("revenue")),
        }

    def _derive_maff_esg(self, aggregate, activities, metadata, reporting_year):
        return {
            "fiscal_year": reporting_year,
            "scope1_emissions": aggregate.scope_total(Scope.SCOPE1),
            "scope2_emissions": aggregate.scope_total(Scope.SCOPE2),
            "scope3_emissions": aggregate.scope_total(Scope.SCOPE3),
        }

    def _derive_thai_esg(self, aggregate, activities, metadata, reporting_year):
        return {
            "reporting_period": str(reporting_year) if reporting_year else None,
            "ghg_emissions_scope1": aggregate.scope_total(Scope.SCOPE1),
            "ghg_emissions_scope2": aggregate.scope_total(Scope.SCOPE2),
            "scope3_emissions": aggregate.scope_total(Scope.SCOPE3),
            "energy_consumption": self._quantity_sum(activities, Scope.SCOPE2),
        }

    # ==================================================================
    # Helpers
    # ==================================================================

    def _quantity_sum(self, activities: List[Activity], scope: Scope) -> Optional[Decimal]:
        quantities = [a.quantity for a in activities if Scope(a.scope) == scope]
        if not quantities:
            return None
        return self._quantize(sum(quantities, _ZERO))

    def _intensity(self, aggregate: AggregateResult, revenue: Any) -> Optional[Decimal]:
        if revenue is None:
            return None
        try:
            revenue = Decimal(str(revenue))
        except ArithmeticError:
            return None
        if not revenue.is_finite() or revenue <= 0:
            return None
        return self._quantize(aggregate.grand_total / revenue)

    def _completeness(self, definition: StandardDefinition, payload: Dict[str, Any]):
        missing = [f for f in definition.required_fields if _is_missing(payload.get(f))]
        required = len(definition.required_fields)
        resolved = required - len(missing)
        pct = Decimal(resolved) / Decimal(required) * Decimal(100) if required else Decimal(100)
        places = Decimal(1).scaleb(-self._config.percentage_precision)
        return missing, pct.quantize(places, rounding=ROUND_HALF_UP)

    def _quantize(self, value: Decimal) -> Decimal:
        return value.quantize(self._quantizer)


__all__ = ["ReportAssemblerEngine", "PRECURSOR_ACTIVITY_TYPE"]
