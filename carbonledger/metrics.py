# -*- coding: utf-8 -*-
"""
Prometheus Metrics - CarbonLedger

Prometheus metrics for the calculation and reporting engine. Every
recorder is a no-op when ``enable_metrics`` is switched off in the
active configuration.

All metric names use the ``cl_`` prefix for consistent identification
in Prometheus queries, dashboards and alerting rules.

Metrics:
    1. cl_calculations_total            (Counter,   labels: activity_type, status)
    2. cl_emissions_kg_co2e_total       (Counter,   labels: scope)
    3. cl_factor_resolutions_total      (Counter,   labels: provenance)
    4. cl_aggregations_total            (Counter,   labels: kind)
    5. cl_reports_assembled_total       (Counter,   labels: standard, completeness)
    6. cl_signatures_total              (Counter,   labels: standard, action)
    7. cl_integrity_failures_total      (Counter,   labels: standard)
    8. cl_operation_duration_seconds    (Histogram, labels: operation)
    9. cl_batch_size                    (Histogram)

Label Values Reference:
    status:
        calculated, error.
    scope:
        scope1, scope2, scope3.
    provenance:
        override, standard, external_lookup, not_found.
    kind:
        CFO, CFP.
    completeness:
        complete, incomplete.
    action:
        sign, revoke, rejected.
    operation:
        calculate, calculate_batch, aggregate, hotspots, data_quality,
        assemble, sign, verify.

Example:
    >>> from carbonledger.metrics import record_calculation, record_emissions
    >>> record_calculation("stationary_combustion", "calculated")
    >>> record_emissions("scope1", 1500.0)
"""

from __future__ import annotations

import logging

from prometheus_client import Counter, Histogram

from carbonledger.config import get_config

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------

# 1. Activity calculations by activity type and outcome
cl_calculations_total = Counter(
    "cl_calculations_total",
    "Total activity emission calculations performed",
    labelnames=["activity_type", "status"],
)

# 2. Cumulative calculated emissions by scope
cl_emissions_kg_co2e_total = Counter(
    "cl_emissions_kg_co2e_total",
    "Cumulative calculated emissions in kg CO2e by scope",
    labelnames=["scope"],
)

# 3. Factor resolutions by resolution step
cl_factor_resolutions_total = Counter(
    "cl_factor_resolutions_total",
    "Total emission factor resolutions by provenance",
    labelnames=["provenance"],
)

# 4. Footprint aggregations by kind
cl_aggregations_total = Counter(
    "cl_aggregations_total",
    "Total footprint aggregations by kind",
    labelnames=["kind"],
)

# 5. Reports assembled by standard and completeness
cl_reports_assembled_total = Counter(
    "cl_reports_assembled_total",
    "Total reports assembled by standard and completeness",
    labelnames=["standard", "completeness"],
)

# 6. Signature events by standard and action
cl_signatures_total = Counter(
    "cl_signatures_total",
    "Total signature events by standard and action",
    labelnames=["standard", "action"],
)

# 7. Verification hash mismatches by standard
cl_integrity_failures_total = Counter(
    "cl_integrity_failures_total",
    "Total report integrity failures detected on verification",
    labelnames=["standard"],
)

# 8. Operation duration histogram
cl_operation_duration_seconds = Histogram(
    "cl_operation_duration_seconds",
    "Duration of engine operations in seconds",
    labelnames=["operation"],
    buckets=(
        0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25,
        0.5, 1.0, 2.5, 5.0, 10.0,
    ),
)

# 9. Batch size histogram
cl_batch_size = Histogram(
    "cl_batch_size",
    "Number of activities in batch calculations",
    buckets=(1, 5, 10, 50, 100, 500, 1000, 5000, 10000),
)


def _enabled() -> bool:
    return get_config().enable_metrics


# ---------------------------------------------------------------------------
# MetricsCollector class
# ---------------------------------------------------------------------------


class MetricsCollector:
    """Facade for recording CarbonLedger Prometheus metrics.

    Example:
        >>> MetricsCollector.record_calculation("purchased_electricity", "calculated")
        >>> MetricsCollector.observe_duration("calculate", 0.004)
    """

    @staticmethod
    def record_calculation(activity_type: str, status: str) -> None:
        """Record an activity calculation.

        Args:
            activity_type: Activity taxonomy key.
            status: calculated or error.
        """
        if not _enabled():
            return
        cl_calculations_total.labels(
            activity_type=activity_type,
            status=status,
        ).inc()

    @staticmethod
    def record_emissions(scope: str, kg_co2e: float) -> None:
        """Record calculated emissions for a scope.

        Args:
            scope: scope1, scope2 or scope3.
            kg_co2e: Emission amount in kg CO2e.
        """
        if not _enabled() or kg_co2e <= 0:
            return
        cl_emissions_kg_co2e_total.labels(scope=scope).inc(kg_co2e)

    @staticmethod
    def record_factor_resolution(provenance: str) -> None:
        if not _enabled():
            return
        cl_factor_resolutions_total.labels(provenance=provenance).inc()

    @staticmethod
    def record_aggregation(kind: str) -> None:
        if not _enabled():
            return
        cl_aggregations_total.labels(kind=kind).inc()

    @staticmethod
    def record_report(standard: str, complete: bool) -> None:
        if not _enabled():
            return
        cl_reports_assembled_total.labels(
            standard=standard,
            completeness="complete" if complete else "incomplete",
        ).inc()

    @staticmethod
    def record_signature(standard: str, action: str) -> None:
        if not _enabled():
            return
        cl_signatures_total.labels(standard=standard, action=action).inc()

    @staticmethod
    def record_integrity_failure(standard: str) -> None:
        if not _enabled():
            return
        cl_integrity_failures_total.labels(standard=standard).inc()

    @staticmethod
    def observe_duration(operation: str, seconds: float) -> None:
        """Record the duration of an engine operation.

        Args:
            operation: Operation being measured.
            seconds: Wall-clock time in seconds.
        """
        if not _enabled():
            return
        cl_operation_duration_seconds.labels(
            operation=operation,
        ).observe(seconds)

    @staticmethod
    def observe_batch_size(size: int) -> None:
        if not _enabled():
            return
        cl_batch_size.observe(size)


# ---------------------------------------------------------------------------
# Module-level convenience functions
# ---------------------------------------------------------------------------


def record_calculation(activity_type: str, status: str) -> None:
    """Record an activity calculation. See MetricsCollector."""
    MetricsCollector.record_calculation(activity_type, status)


def record_emissions(scope: str, kg_co2e: float) -> None:
    """Record calculated emissions. See MetricsCollector."""
    MetricsCollector.record_emissions(scope, kg_co2e)


def record_factor_resolution(provenance: str) -> None:
    """Record a factor resolution. See MetricsCollector."""
    MetricsCollector.record_factor_resolution(provenance)


def record_aggregation(kind: str) -> None:
    """Record a footprint aggregation. See MetricsCollector."""
    MetricsCollector.record_aggregation(kind)


def record_report(standard: str, complete: bool) -> None:
    """Record a report assembly. See MetricsCollector."""
    MetricsCollector.record_report(standard, complete)


def record_signature(standard: str, action: str) -> None:
    """Record a signature event. See MetricsCollector."""
    MetricsCollector.record_signature(standard, action)


def record_integrity_failure(standard: str) -> None:
    """Record an integrity failure. See MetricsCollector."""
    MetricsCollector.record_integrity_failure(standard)


def observe_duration(operation: str, seconds: float) -> None:
    """Record operation duration. See MetricsCollector."""
    MetricsCollector.observe_duration(operation, seconds)


def observe_batch_size(size: int) -> None:
    """Record batch size. See MetricsCollector."""
    MetricsCollector.observe_batch_size(size)


__all__ = [
    "cl_calculations_total",
    "cl_emissions_kg_co2e_total",
    "cl_factor_resolutions_total",
    "cl_aggregations_total",
    "cl_reports_assembled_total",
    "cl_signatures_total",
    "cl_integrity_failures_total",
    "cl_operation_duration_seconds",
    "cl_batch_size",
    "MetricsCollector",
    "record_calculation",
    "record_emissions",
    "record_factor_resolution",
    "record_aggregation",
    "record_report",
    "record_signature",
    "record_integrity_failure",
    "observe_duration",
    "observe_batch_size",
]
