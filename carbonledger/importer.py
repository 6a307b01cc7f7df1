# -*- coding: utf-8 -*-
"""
Activity import boundary for CarbonLedger.

Raw rows (spreadsheet exports, API bodies, YAML files) arrive with many
header spellings: ``Activity Type``, ``activityType``, ``activity_type``,
``Scope 3 Category``, ``Qty``... ``normalise_row`` maps every accepted
spelling to the canonical Activity field name and normalises enum-like
values (scope, Scope 3 category, tier, data quality). Columns that are
not recognised are dropped, so the untyped row never reaches the
engines.

``parse_activity_rows`` turns normalised rows into typed Activity
objects and collects one RowError per offending field; a bad row never
aborts the import.

Example:
    >>> result = parse_activity_rows(
    ...     [{"Scope": "Scope 2", "Activity Type": "purchased_electricity",
    ...       "Quantity": "1,000", "Unit": "kWh", "Country": "Thailand"}],
    ...     project_id="proj-1",
    ... )
    >>> result.activities[0].quantity
    Decimal('1000')
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set

from pydantic import ValidationError as PydanticValidationError

from carbonledger.models import (
    Activity,
    DataQuality,
    ImportResult,
    RowError,
    Scope3Category,
    TierLevel,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Header aliases
# ---------------------------------------------------------------------------

#: Snake-cased header spelling -> canonical Activity field.
FIELD_ALIASES: Dict[str, str] = {
    "id": "activity_id",
    "activity_id": "activity_id",
    "name": "name",
    "activity_name": "name",
    "description": "name",
    "scope": "scope",
    "scope3_category": "scope3_category",
    "scope_3_category": "scope3_category",
    "category": "scope3_category",
    "activity_type": "activity_type",
    "type": "activity_type",
    "quantity": "quantity",
    "qty": "quantity",
    "amount": "quantity",
    "unit": "unit",
    "units": "unit",
    "tier_level": "tier_level",
    "tier": "tier_level",
    "tier_direction": "tier_direction",
    "direction": "tier_direction",
    "data_source": "data_source",
    "source": "data_source",
    "data_quality": "data_quality",
    "data_quality_score": "data_quality",
    "quality": "data_quality",
    "factor_key": "factor_key",
    "emission_factor_key": "factor_key",
    "fuel_type": "factor_key",
    "material": "factor_key",
    "mode": "factor_key",
    "country": "country",
    "region": "country",
    "year": "year",
    "reporting_year": "year",
    "production_route": "production_route",
    "route": "production_route",
    "distance_km": "distance_km",
    "distance": "distance_km",
    "weight_tonnes": "weight_tonnes",
    "weight": "weight_tonnes",
    "fuel_efficiency": "fuel_efficiency",
    "efficiency": "fuel_efficiency",
    "supplier_factor": "supplier_factor",
    "supplier_emission_factor": "supplier_factor",
    "scope2_method": "scope2_method",
    "scope_2_method": "scope2_method",
}

#: Long-form Scope 3 category names -> canonical value.
CATEGORY_ALIASES: Dict[str, str] = {
    "purchased_goods": "purchased_goods_services",
    "purchased_goods_and_services": "purchased_goods_services",
    "fuel_and_energy_related_activities": "fuel_energy_activities",
    "upstream_transportation_and_distribution": "upstream_transport",
    "downstream_transportation_and_distribution": "downstream_transport",
    "waste_generated_in_operations": "waste_generated",
    "processing_of_sold_products": "processing_of_products",
    "end_of_life_treatment_of_sold_products": "end_of_life_treatment",
}

#: Compact tier spellings -> canonical tier.
TIER_ALIASES: Dict[str, TierLevel] = {
    "tier1": TierLevel.TIER1,
    "1": TierLevel.TIER1,
    "tier2": TierLevel.TIER2,
    "2": TierLevel.TIER2,
    "tier2plus": TierLevel.TIER2_PLUS,
    "tier2+": TierLevel.TIER2_PLUS,
    "tier3": TierLevel.TIER2_PLUS,
    "3": TierLevel.TIER2_PLUS,
}

_QUALITY_SCORES: Dict[str, DataQuality] = {
    "3": DataQuality.HIGH,
    "2": DataQuality.MEDIUM,
    "1": DataQuality.LOW,
}

_NUMERIC_FIELDS = ("quantity", "distance_km", "weight_tonnes", "fuel_efficiency", "supplier_factor")

# Spreadsheets hand these back as numbers.
_TEXT_FIELDS = ("activity_id", "name", "factor_key", "country", "production_route", "unit")


def snake_case(text: str) -> str:
    """``Activity Type`` / ``activityType`` / ``activity-type`` -> ``activity_type``."""
    text = re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", str(text).strip())
    return re.sub(r"[^a-z0-9+]+", "_", text.lower()).strip("_")


def normalise_tier(value: Any) -> Any:
    compact = re.sub(r"[^a-z0-9+]", "", str(value).lower())
    return TIER_ALIASES.get(compact, value)


def normalise_scope(value: Any) -> Any:
    compact = re.sub(r"[^a-z0-9]", "", str(value).lower())
    if compact in ("1", "2", "3"):
        return f"scope{compact}"
    return compact or value


def normalise_category(value: Any) -> Any:
    text = str(value).strip()
    if text.isdigit() and 1 <= int(text) <= len(Scope3Category):
        return list(Scope3Category)[int(text) - 1].value
    text = re.sub(r"^(category_?\d+_?)", "", snake_case(text))
    return CATEGORY_ALIASES.get(text, text)


def normalise_quality(value: Any) -> Any:
    text = str(value).strip().lower()
    if text in _QUALITY_SCORES:
        return _QUALITY_SCORES[text]
    return text


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def normalise_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Map one raw row to canonical Activity field names and values.

    Unrecognised columns and blank cells are dropped. When two spellings
    of the same field are present the first non-blank one wins.
    """
    normalised: Dict[str, Any] = {}
    for header, value in row.items():
        if _blank(value):
            continue
        field = FIELD_ALIASES.get(snake_case(header))
        if field is None:
            logger.debug("Dropping unrecognised column %r", header)
            continue
        if field in normalised:
            continue
        normalised[field] = value.strip() if isinstance(value, str) else value

    if "scope" in normalised:
        normalised["scope"] = normalise_scope(normalised["scope"])
    if "scope3_category" in normalised:
        normalised["scope3_category"] = normalise_category(normalised["scope3_category"])
    if "tier_level" in normalised:
        normalised["tier_level"] = normalise_tier(normalised["tier_level"])
    if "tier_direction" in normalised:
        normalised["tier_direction"] = str(normalised["tier_direction"]).lower()
    if "data_quality" in normalised:
        normalised["data_quality"] = normalise_quality(normalised["data_quality"])
    if "scope2_method" in normalised:
        normalised["scope2_method"] = snake_case(normalised["scope2_method"])
    for field in _NUMERIC_FIELDS:
        value = normalised.get(field)
        if isinstance(value, str):
            normalised[field] = value.replace(",", "")
    for field in _TEXT_FIELDS:
        value = normalised.get(field)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            normalised[field] = str(value)
    return normalised


def parse_activity_rows(
    rows: Iterable[Mapping[str, Any]],
    project_id: str,
    data_source: Optional[str] = "import",
    is_known: Optional[Callable[[str], bool]] = None,
) -> ImportResult:
    """Parse raw rows into typed activities.

    Args:
        rows: Raw rows in any accepted header spelling.
        project_id: Project every activity is assigned to.
        data_source: Data source tag for rows that carry none.
        is_known: Optional check for activity ids that already exist
            outside this batch (e.g. in the activity store).

    Returns:
        ImportResult with the parsed activities and one RowError per
        offending field of every rejected row. Non-mapping rows and
        duplicate activity ids are rejected the same way.
    """
    activities: List[Activity] = []
    errors: List[RowError] = []
    seen_ids: Set[str] = set()
    total = 0

    for index, row in enumerate(rows):
        total += 1
        if not isinstance(row, Mapping):
            errors.append(
                RowError(
                    row=index,
                    message=f"Row is a {type(row).__name__}, not a mapping of columns to values",
                )
            )
            continue
        fields = normalise_row(row)
        if data_source and "data_source" not in fields:
            fields["data_source"] = data_source
        # Scope 1/2 rows exported with a category column keep it blank.
        if fields.get("scope") in ("scope1", "scope2"):
            fields.pop("scope3_category", None)
        row_id = fields.get("activity_id")
        row_id = str(row_id) if row_id is not None else None

        try:
            activity = Activity(project_id=project_id, **fields)
        except PydanticValidationError as exc:
            for err in exc.errors():
                loc = ".".join(str(p) for p in err["loc"]) or None
                errors.append(
                    RowError(
                        row=index,
                        activity_id=row_id,
                        field=loc,
                        message=err["msg"],
                    )
                )
            continue

        if activity.activity_id in seen_ids or (
            is_known is not None and is_known(activity.activity_id)
        ):
            errors.append(
                RowError(
                    row=index,
                    activity_id=activity.activity_id,
                    field="activity_id",
                    message=f"Duplicate activity id {activity.activity_id}",
                )
            )
            continue
        seen_ids.add(activity.activity_id)
        activities.append(activity)

    logger.info(
        "Parsed %d rows for project %s: %d activities, %d errors",
        total, project_id, len(activities), len(errors),
    )
    return ImportResult(
        project_id=project_id,
        activities=activities,
        errors=errors,
        total_rows=total,
    )


__all__ = [
    "FIELD_ALIASES",
    "CATEGORY_ALIASES",
    "TIER_ALIASES",
    "snake_case",
    "normalise_row",
    "normalise_scope",
    "normalise_category",
    "normalise_tier",
    "normalise_quality",
    "parse_activity_rows",
]
