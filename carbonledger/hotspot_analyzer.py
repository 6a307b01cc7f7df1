# -*- coding: utf-8 -*-
"""
HotspotAnalyzerEngine - Engine 4: CarbonLedger

Ranks emission sources and scores the data quality of a project.

Hotspots:
    Calculated activities are grouped by activity type (scope1/scope2)
    or by Scope 3 category (scope3). Each group's share of the grand
    total is rounded half-up to ``percentage_precision`` places. Groups
    are sorted by absolute emissions descending, ties broken by source
    name ascending, so the order is deterministic.

Data quality:
    Each activity's tier maps to a weight (high=3, medium=2, low=1). The
    score is the emissions-weighted mean over calculated activities;
    when every calculated activity has zero emissions the plain mean is
    used instead. The bucket is ``high`` at or above ``dq_high_cutoff``,
    ``medium`` at or above ``dq_medium_cutoff``, else ``low``.

Activities without a calculated result are excluded from both
computations, never treated as zero.
"""

from __future__ import annotations

import logging
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Tuple

from carbonledger.aggregation import AggregationEngine
from carbonledger.config import CarbonLedgerConfig, get_config
from carbonledger.metrics import observe_duration
from carbonledger.models import (
    DATA_QUALITY_WEIGHTS,
    Activity,
    DataQuality,
    DataQualityReport,
    Hotspot,
    HotspotReport,
    Scope,
    Scope3Category,
    ScopeBreakdown,
    TierLevel,
)
from carbonledger.provenance import get_provenance_tracker
from carbonledger.stores import ActivityStore

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")

RECOMMEND_LOW_QUALITY = "Consider improving data quality for low-quality activities"
RECOMMEND_REPLACE_ESTIMATES = (
    "Replace estimated data with measured or invoiced data where possible"
)
RECOMMEND_HIGHER_TIER = "Consider using Tier 2+ calculations for more accurate results"


def hotspot_source(activity: Activity) -> str:
    """Grouping key: Scope 3 category for scope3, else the activity type."""
    if activity.scope3_category is not None:
        return Scope3Category(activity.scope3_category).value
    return activity.activity_type


class HotspotAnalyzerEngine:
    """Hotspot ranking and data-quality scoring over calculated activities."""

    def __init__(
        self,
        activity_store: ActivityStore,
        config: Optional[CarbonLedgerConfig] = None,
    ) -> None:
        self._config = config or get_config()
        self._aggregation = AggregationEngine(activity_store, config=self._config)
        self._provenance = (
            get_provenance_tracker() if self._config.enable_provenance else None
        )
        logger.info(
            "HotspotAnalyzerEngine initialized (hotspot_limit=%d, "
            "dq_cutoffs=%.2f/%.2f)",
            self._config.hotspot_limit,
            self._config.dq_high_cutoff,
            self._config.dq_medium_cutoff,
        )

    # ==================================================================
    # Hotspots
    # ==================================================================

    def hotspots(self, project_id: str, limit: Optional[int] = None) -> HotspotReport:
        """Rank a project's emission sources.

        Args:
            project_id: Project to analyse.
            limit: Maximum rows; defaults to ``hotspot_limit``, 0 for all.

        Returns:
            HotspotReport with ranked hotspots, the remainder beyond the
            limit, and a by-scope breakdown.
        """
        start = time.monotonic()
        activities = self._aggregation.calculated_activities(project_id)

        groups: Dict[Tuple[Scope, str], List[Activity]] = {}
        for activity in activities:
            key = (Scope(activity.scope), hotspot_source(activity))
            groups.setdefault(key, []).append(activity)

        total = sum((a.co2e_kg for a in activities), _ZERO)
        ranked = sorted(
            (
                (scope, source, sum((a.co2e_kg for a in members), _ZERO), len(members))
                for (scope, source), members in groups.items()
            ),
            key=lambda row: (-row[2], row[1], row[0].value),
        )

        if limit is None:
            limit = self._config.hotspot_limit
        remainder: List[Tuple[Scope, str, Decimal, int]] = []
        if limit:
            ranked, remainder = ranked[:limit], ranked[limit:]
        other_emissions = sum((row[2] for row in remainder), _ZERO)

        hotspots = [
            Hotspot(
                rank=index,
                source=source,
                scope=scope,
                emissions=emissions,
                percent_of_total=self._share(emissions, total),
                activity_count=count,
            )
            for index, (scope, source, emissions, count) in enumerate(ranked, start=1)
        ]

        by_scope = []
        for scope in Scope:
            emissions = sum(
                (a.co2e_kg for a in activities if Scope(a.scope) == scope), _ZERO,
            )
            by_scope.append(
                ScopeBreakdown(
                    scope=scope,
                    emissions=emissions,
                    percent_of_total=self._share(emissions, total),
                )
            )

        report = HotspotReport(
            project_id=project_id,
            total_emissions=total,
            hotspots=hotspots,
            by_scope=by_scope,
            group_count=len(groups),
            other_emissions=other_emissions,
            other_percent=self._share(other_emissions, total),
            other_group_count=len(remainder),
        )
        observe_duration("hotspots", time.monotonic() - start)
        if self._provenance is not None:
            self._provenance.record(
                "analysis",
                "analyze",
                project_id,
                data={
                    "analysis": "hotspots",
                    "total_emissions": str(total),
                    "top": hotspots[0].source if hotspots else None,
                },
            )
        logger.info(
            "Hotspots for project %s: %d groups, top=%s, total=%s kgCO2e",
            project_id, len(groups),
            hotspots[0].source if hotspots else None, total,
        )
        return report

    # ==================================================================
    # Data quality
    # ==================================================================

    def data_quality(self, project_id: str) -> DataQualityReport:
        """Score the emissions-weighted data quality of a project.

        Returns:
            DataQualityReport; ``score`` and ``bucket`` are None when the
            project has no calculated activity.
        """
        start = time.monotonic()
        activities = self._aggregation.calculated_activities(project_id)

        by_quality: Dict[str, int] = {q.value: 0 for q in DataQuality}
        by_tier: Dict[str, int] = {t.value: 0 for t in TierLevel}
        by_scope: Dict[str, int] = {s.value: 0 for s in Scope}
        by_source: Dict[str, int] = {}
        emissions_by_quality: Dict[str, Decimal] = {q.value: _ZERO for q in DataQuality}
        estimated_emissions = _ZERO

        for activity in activities:
            quality = DataQuality(activity.data_quality).value
            by_quality[quality] += 1
            by_tier[TierLevel(activity.tier_level).value] += 1
            by_scope[Scope(activity.scope).value] += 1
            by_source[activity.data_source] = by_source.get(activity.data_source, 0) + 1
            emissions_by_quality[quality] += activity.co2e_kg
            if activity.data_source == "estimate":
                estimated_emissions += activity.co2e_kg

        score = self.score(activities)
        bucket = self.bucket(score)

        recommendations: List[str] = []
        if emissions_by_quality[DataQuality.LOW.value] > 0:
            recommendations.append(RECOMMEND_LOW_QUALITY)
        if estimated_emissions > 0:
            recommendations.append(RECOMMEND_REPLACE_ESTIMATES)
        higher_tiers = by_tier[TierLevel.TIER2.value] + by_tier[TierLevel.TIER2_PLUS.value]
        if by_tier[TierLevel.TIER1.value] > higher_tiers:
            recommendations.append(RECOMMEND_HIGHER_TIER)

        report = DataQualityReport(
            project_id=project_id,
            score=score,
            bucket=bucket,
            activity_count=len(activities),
            by_quality=by_quality,
            by_source=by_source,
            by_tier=by_tier,
            by_scope=by_scope,
            recommendations=recommendations,
        )
        observe_duration("data_quality", time.monotonic() - start)
        if self._provenance is not None:
            self._provenance.record(
                "analysis",
                "analyze",
                project_id,
                data={
                    "analysis": "data_quality",
                    "score": str(score),
                    "bucket": bucket.value if bucket else None,
                },
            )
        logger.info(
            "Data quality for project %s: score=%s bucket=%s (%d activities)",
            project_id, score, bucket.value if bucket else None, len(activities),
        )
        return report

    def score(self, activities: List[Activity]) -> Optional[Decimal]:
        """Emissions-weighted mean data-quality weight, or None."""
        if not activities:
            return None
        weights = [
            Decimal(DATA_QUALITY_WEIGHTS[DataQuality(a.data_quality).value])
            for a in activities
        ]
        emissions = [a.co2e_kg for a in activities]
        total = sum(emissions, _ZERO)
        if total > 0:
            raw = sum((w * e for w, e in zip(weights, emissions)), _ZERO) / total
        else:
            raw = sum(weights, _ZERO) / Decimal(len(weights))
        places = Decimal(1).scaleb(-self._config.decimal_precision)
        return raw.quantize(places, rounding=ROUND_HALF_UP)

    def bucket(self, score: Optional[Decimal]) -> Optional[DataQuality]:
        if score is None:
            return None
        if score >= Decimal(str(self._config.dq_high_cutoff)):
            return DataQuality.HIGH
        if score >= Decimal(str(self._config.dq_medium_cutoff)):
            return DataQuality.MEDIUM
        return DataQuality.LOW

    def _share(self, part: Decimal, total: Decimal) -> Decimal:
        if total == 0:
            return _ZERO
        places = Decimal(1).scaleb(-self._config.percentage_precision)
        return (part / total * _HUNDRED).quantize(places, rounding=ROUND_HALF_UP)


__all__ = [
    "HotspotAnalyzerEngine",
    "hotspot_source",
    "RECOMMEND_LOW_QUALITY",
    "RECOMMEND_REPLACE_ESTIMATES",
    "RECOMMEND_HIGHER_TIER",
]
