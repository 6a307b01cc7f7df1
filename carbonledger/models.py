# -*- coding: utf-8 -*-
"""
CarbonLedger Data Models

Pydantic v2 data models for the CarbonLedger GHG calculation and reporting
engine. Includes:

- GHG Protocol scopes and the 15 Scope 3 categories with their
  upstream/downstream direction
- Calculation tiers (tier1, tier2, tier2_plus) and data-quality tiers
- Emission factors, project factor overrides with energy-mix breakdowns,
  and resolved factors tagged with their provenance
- Activities, calculation results and batch outcomes
- Organization (CFO) and product (CFP) footprint aggregates
- Hotspot rankings and data-quality scoring
- Reporting standard definitions, overlap comparisons, reports and
  signatures

Enumerations (16):
    Scope, Scope3Category, TierLevel, TierDirection, DataQuality,
    CalculationStatus, FactorCategory, FactorProvenance, Scope2Method,
    FootprintKind, LifecycleStage, ChangeDirection, StandardId,
    SignerRole, ReportStatus, SignatureStatus

Data Models (19):
    EmissionFactor, EnergyMix, FactorOverride, ResolvedFactor,
    CalculationResult, Activity, RowError, ImportResult,
    BatchCalculationResult, AggregateResult, FootprintComparison,
    Hotspot, ScopeBreakdown, HotspotReport, DataQualityReport,
    StandardDefinition, StandardOverlap, SignerIdentity, Report, Signature
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from carbonledger.exceptions import IncompleteReportError


# ---------------------------------------------------------------------------
# Helper
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Service version string.
VERSION: str = "1.0.0"

#: Maximum number of trace steps in a single calculation.
MAX_TRACE_STEPS: int = 100

#: Numeric weight per data-quality tier used by the quality score.
DATA_QUALITY_WEIGHTS: Dict[str, int] = {
    "high": 3,
    "medium": 2,
    "low": 1,
}


# =============================================================================
# Enumerations (16)
# =============================================================================


class Scope(str, Enum):
    """GHG Protocol emission scope.

    SCOPE1: Direct emissions from owned or controlled sources.
    SCOPE2: Indirect emissions from purchased energy.
    SCOPE3: All other indirect value-chain emissions.
    """

    SCOPE1 = "scope1"
    SCOPE2 = "scope2"
    SCOPE3 = "scope3"


class Scope3Category(str, Enum):
    """The 15 GHG Protocol Scope 3 categories."""

    PURCHASED_GOODS_SERVICES = "purchased_goods_services"
    CAPITAL_GOODS = "capital_goods"
    FUEL_ENERGY_ACTIVITIES = "fuel_energy_activities"
    UPSTREAM_TRANSPORT = "upstream_transport"
    WASTE_GENERATED = "waste_generated"
    BUSINESS_TRAVEL = "business_travel"
    EMPLOYEE_COMMUTING = "employee_commuting"
    UPSTREAM_LEASED_ASSETS = "upstream_leased_assets"
    DOWNSTREAM_TRANSPORT = "downstream_transport"
    PROCESSING_OF_PRODUCTS = "processing_of_products"
    USE_OF_SOLD_PRODUCTS = "use_of_sold_products"
    END_OF_LIFE_TREATMENT = "end_of_life_treatment"
    DOWNSTREAM_LEASED_ASSETS = "downstream_leased_assets"
    FRANCHISES = "franchises"
    INVESTMENTS = "investments"

    @property
    def number(self) -> int:
        """GHG Protocol category number (1-15)."""
        return list(Scope3Category).index(self) + 1

    @property
    def direction(self) -> TierDirection:
        """Upstream for categories 1-8, downstream for 9-15."""
        if self.number <= 8:
            return TierDirection.UPSTREAM
        return TierDirection.DOWNSTREAM


class TierLevel(str, Enum):
    """Precision grade of the calculation method.

    TIER1: Default (secondary) emission factors.
    TIER2: Supplier or region specific factors.
    TIER2_PLUS: Measured or primary data from the value chain.
    """

    TIER1 = "tier1"
    TIER2 = "tier2"
    TIER2_PLUS = "tier2_plus"


class TierDirection(str, Enum):
    """Value-chain direction an activity belongs to."""

    UPSTREAM = "upstream"
    DOWNSTREAM = "downstream"
    BOTH = "both"


class DataQuality(str, Enum):
    """Data-quality tier of an activity record, also used as score bucket.

    HIGH: Metered, invoiced or supplier-verified data.
    MEDIUM: Calculated from partial records.
    LOW: Estimated or extrapolated values.
    """

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class CalculationStatus(str, Enum):
    """Calculation status of an activity."""

    PENDING = "pending"
    CALCULATED = "calculated"
    ERROR = "error"


class FactorCategory(str, Enum):
    """Emission factor table a factor belongs to.

    GRID: Electricity grid factors keyed by country.
    FUEL: Combustion, process and fugitive factors keyed by fuel or gas.
    MATERIAL: Purchased goods factors keyed by material and production route.
    PRECURSOR: Embedded emissions of CBAM precursor materials.
    TRANSPORT: Freight mode factors per tonne-km.
    ACTIVITY: Generic per-unit factors keyed by activity type and unit.
    """

    GRID = "grid"
    FUEL = "fuel"
    MATERIAL = "material"
    PRECURSOR = "precursor"
    TRANSPORT = "transport"
    ACTIVITY = "activity"


class FactorProvenance(str, Enum):
    """Where a resolved factor came from."""

    OVERRIDE = "override"
    STANDARD = "standard"
    EXTERNAL_LOOKUP = "external_lookup"


class Scope2Method(str, Enum):
    """Scope 2 electricity accounting method."""

    LOCATION_BASED = "location_based"
    MARKET_BASED = "market_based"


class FootprintKind(str, Enum):
    """Aggregate kind: organization or product footprint."""

    CFO = "CFO"
    CFP = "CFP"


class LifecycleStage(str, Enum):
    """Product lifecycle stage used by CFP breakdowns."""

    RAW_MATERIALS = "raw_materials"
    PRODUCTION = "production"
    DISTRIBUTION = "distribution"
    USE = "use"
    END_OF_LIFE = "end_of_life"


class ChangeDirection(str, Enum):
    """Direction of change between two footprints."""

    INCREASE = "increase"
    DECREASE = "decrease"
    UNCHANGED = "unchanged"


class StandardId(str, Enum):
    """Supported regulatory reporting standards."""

    EU_CBAM = "eu_cbam"
    UK_CBAM = "uk_cbam"
    CHINA_CARBON_MARKET = "china_carbon_market"
    K_ESG = "k_esg"
    MAFF_ESG = "maff_esg"
    THAI_ESG = "thai_esg"


class SignerRole(str, Enum):
    """Project role of a report signer."""

    OWNER = "owner"
    DIRECTOR = "director"
    AUDITOR = "auditor"
    EDITOR = "editor"
    VIEWER = "viewer"


class ReportStatus(str, Enum):
    """Lifecycle status of a report."""

    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    COMPLETED = "completed"


class SignatureStatus(str, Enum):
    """Status of a signature."""

    VALID = "valid"
    REVOKED = "revoked"


# =============================================================================
# Emission Factors
# =============================================================================


class EmissionFactor(BaseModel):
    """A global emission factor for one (category, key, year).

    Several factors may exist for the same key across years; exactly one
    is active per (category, key, year).

    Attributes:
        factor_id: Unique identifier for this factor.
        category: Factor table.
        key: Country, fuel, material or material:route key.
        year: Reference year.
        value: kgCO2e per declared unit.
        unit: Unit of the factor (e.g. kgCO2e/kWh).
        source: Source label (e.g. "DEFRA 2024").
        active: Whether this factor is the active one for its year.
    """

    model_config = ConfigDict(frozen=True)

    factor_id: str = Field(
        default_factory=lambda: _new_id("ef"),
        description="Unique identifier for this factor",
    )
    category: FactorCategory = Field(..., description="Factor table")
    key: str = Field(..., min_length=1, description="Lookup key")
    year: int = Field(..., ge=1990, le=2100, description="Reference year")
    value: Decimal = Field(..., ge=0, description="kgCO2e per declared unit")
    unit: str = Field(default="kgCO2e/unit", description="Factor unit")
    source: str = Field(default="", description="Source label")
    active: bool = Field(default=True, description="Active flag")


class EnergyMix(BaseModel):
    """Generation mix behind a project grid override, in percent."""

    model_config = ConfigDict(frozen=True)

    renewable_pct: Decimal = Field(..., ge=0, le=100)
    fossil_pct: Decimal = Field(..., ge=0, le=100)
    nuclear_pct: Decimal = Field(default=Decimal("0"), ge=0, le=100)

    @property
    def total(self) -> Decimal:
        return self.renewable_pct + self.fossil_pct + self.nuclear_pct


class FactorOverride(BaseModel):
    """Project-scoped replacement for a factor key.

    Overrides shadow global factors for the owning project only. The
    energy mix is checked when the override is registered, never at
    resolution time.
    """

    model_config = ConfigDict(frozen=True)

    override_id: str = Field(
        default_factory=lambda: _new_id("ovr"),
        description="Unique identifier for this override",
    )
    project_id: str = Field(..., min_length=1, description="Owning project")
    category: FactorCategory = Field(..., description="Factor table")
    key: str = Field(..., min_length=1, description="Lookup key")
    value: Decimal = Field(..., ge=0, description="kgCO2e per declared unit")
    unit: str = Field(default="kgCO2e/unit", description="Factor unit")
    source: str = Field(default="project override", description="Source label")
    energy_mix: Optional[EnergyMix] = Field(
        default=None,
        description="Optional generation mix behind the override",
    )
    active: bool = Field(default=True, description="Active flag")


class ResolvedFactor(BaseModel):
    """The single factor selected by the resolver, with its provenance."""

    model_config = ConfigDict(frozen=True)

    factor_id: str = Field(..., description="Factor or override identifier")
    category: FactorCategory = Field(..., description="Factor table")
    key: str = Field(..., description="Lookup key")
    year: Optional[int] = Field(
        default=None,
        description="Year of the factor used (None for overrides)",
    )
    requested_year: int = Field(..., description="Year that was asked for")
    value: Decimal = Field(..., ge=0, description="kgCO2e per declared unit")
    unit: str = Field(..., description="Factor unit")
    source: str = Field(default="", description="Source label")
    provenance: FactorProvenance = Field(..., description="Resolution step")

    @property
    def is_fallback(self) -> bool:
        """True when a prior-year factor stood in for the requested year."""
        return self.year is not None and self.year < self.requested_year


# =============================================================================
# Activities and Calculation
# =============================================================================


class CalculationResult(BaseModel):
    """Result of one activity calculation run.

    One result per activity per run; a recalculation supersedes the
    previous result instead of appending to it.

    Attributes:
        result_id: Unique identifier for this result.
        activity_id: Activity this result belongs to.
        project_id: Owning project.
        status: CALCULATED on success, ERROR on failure.
        co2e_kg: Computed CO2-equivalent in kilograms (None on error).
        factor: Resolved factor used, with provenance.
        formula: Formula family applied.
        tier_multiplier: Tier adjustment applied after the formula.
        calculation_trace: Ordered human-readable calculation steps.
        error_code: Error code when the calculation failed.
        error_message: Human-readable cause when the calculation failed.
        computed_at: UTC timestamp of the run.
        provenance_hash: SHA-256 hash for audit trail integrity.
    """

    model_config = ConfigDict(frozen=True)

    result_id: str = Field(
        default_factory=lambda: _new_id("calc"),
        description="Unique identifier for this result",
    )
    activity_id: str = Field(..., description="Activity reference")
    project_id: str = Field(..., description="Owning project")
    status: CalculationStatus = Field(..., description="Outcome")
    co2e_kg: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Computed CO2-equivalent in kilograms",
    )
    factor: Optional[ResolvedFactor] = Field(
        default=None,
        description="Resolved factor used, with provenance",
    )
    formula: str = Field(default="", description="Formula family applied")
    tier_multiplier: Decimal = Field(
        default=Decimal("1"),
        gt=0,
        description="Tier adjustment applied after the formula",
    )
    calculation_trace: List[str] = Field(
        default_factory=list,
        max_length=MAX_TRACE_STEPS,
        description="Ordered human-readable calculation steps",
    )
    error_code: Optional[str] = Field(default=None, description="Error code")
    error_message: Optional[str] = Field(
        default=None,
        description="Human-readable cause when the calculation failed",
    )
    computed_at: datetime = Field(
        default_factory=_utcnow,
        description="UTC timestamp of the run",
    )
    provenance_hash: str = Field(
        default="",
        description="SHA-256 hash for audit trail integrity",
    )

    @property
    def succeeded(self) -> bool:
        return self.status == CalculationStatus.CALCULATED


class Activity(BaseModel):
    """A recorded business activity that produces emissions.

    Created on import or manual entry, mutated by recalculation (status
    and result), never deleted, only soft-retired.

    Attributes:
        activity_id: Unique identifier.
        project_id: Owning project.
        name: Display name, used as hotspot tie-breaker.
        scope: GHG Protocol scope.
        scope3_category: Required exactly when scope is scope3.
        activity_type: Taxonomy key (e.g. stationary_combustion).
        quantity: Positive activity quantity.
        unit: Unit of the quantity as supplied by the caller.
        tier_level: Calculation tier.
        tier_direction: Value-chain direction.
        data_source: Provenance tag of the input data.
        data_quality: Data-quality tier.
        calculation_status: pending, calculated or error.
        factor_key: Fuel, material or mode key used for factor lookup.
        country: Country for grid factor lookup.
        year: Reporting year used for factor lookup.
        production_route: Production route for material factors.
        distance_km: Distance for transport and mobile combustion.
        weight_tonnes: Freight weight for transport.
        fuel_efficiency: Distance per fuel unit for mobile combustion.
        supplier_factor: Explicit market-based electricity factor.
        scope2_method: Electricity accounting method.
        retired: Soft-retirement flag.
        result: Latest calculation result.
    """

    model_config = ConfigDict(frozen=True)

    activity_id: str = Field(
        default_factory=lambda: _new_id("act"),
        description="Unique identifier",
    )
    project_id: str = Field(..., min_length=1, description="Owning project")
    name: str = Field(default="", max_length=500, description="Display name")
    scope: Scope = Field(..., description="GHG Protocol scope")
    scope3_category: Optional[Scope3Category] = Field(
        default=None,
        description="Scope 3 category (required iff scope3)",
    )
    activity_type: str = Field(
        ...,
        min_length=1,
        description="Activity taxonomy key",
    )
    quantity: Decimal = Field(..., gt=0, description="Activity quantity")
    unit: str = Field(..., min_length=1, description="Quantity unit")
    tier_level: TierLevel = Field(
        default=TierLevel.TIER1,
        description="Calculation tier",
    )
    tier_direction: TierDirection = Field(
        default=TierDirection.UPSTREAM,
        description="Value-chain direction",
    )
    data_source: str = Field(default="manual", description="Data source tag")
    data_quality: DataQuality = Field(
        default=DataQuality.MEDIUM,
        description="Data-quality tier",
    )
    calculation_status: CalculationStatus = Field(
        default=CalculationStatus.PENDING,
        description="Calculation status",
    )
    factor_key: Optional[str] = Field(default=None, description="Factor key")
    country: Optional[str] = Field(default=None, description="Grid country")
    year: Optional[int] = Field(
        default=None,
        ge=1990,
        le=2100,
        description="Reporting year for factor lookup",
    )
    production_route: Optional[str] = Field(
        default=None,
        description="Production route for material factors",
    )
    distance_km: Optional[Decimal] = Field(default=None, gt=0)
    weight_tonnes: Optional[Decimal] = Field(default=None, gt=0)
    fuel_efficiency: Optional[Decimal] = Field(default=None, gt=0)
    supplier_factor: Optional[Decimal] = Field(default=None, ge=0)
    scope2_method: Optional[Scope2Method] = Field(default=None)
    retired: bool = Field(default=False, description="Soft-retired flag")
    result: Optional[CalculationResult] = Field(
        default=None,
        description="Latest calculation result",
    )
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("activity_type", "unit")
    @classmethod
    def strip_text(cls, v: str) -> str:
        """Reject whitespace-only taxonomy keys and units."""
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @model_validator(mode="after")
    def check_scope3_category(self) -> Activity:
        """scope3_category is required exactly when scope is scope3."""
        if self.scope == Scope.SCOPE3 and self.scope3_category is None:
            raise ValueError("scope3_category is required for scope3 activities")
        if self.scope != Scope.SCOPE3 and self.scope3_category is not None:
            raise ValueError(
                "scope3_category must be empty for scope1/scope2 activities"
            )
        return self

    @property
    def co2e_kg(self) -> Optional[Decimal]:
        """CO2e of the latest successful calculation, else None."""
        if self.result is not None and self.result.succeeded:
            return self.result.co2e_kg
        return None


class RowError(BaseModel):
    """A per-row error collected by a batch operation."""

    model_config = ConfigDict(frozen=True)

    row: Optional[int] = Field(default=None, description="Zero-based row index")
    activity_id: Optional[str] = Field(default=None)
    field: Optional[str] = Field(default=None, description="Offending field")
    error_code: str = Field(default="CL_VALIDATION_ERROR")
    message: str = Field(..., description="Human-readable cause")


class ImportResult(BaseModel):
    """Outcome of parsing raw activity rows."""

    model_config = ConfigDict(frozen=True)

    project_id: str
    activities: List[Activity] = Field(default_factory=list)
    errors: List[RowError] = Field(default_factory=list)
    total_rows: int = Field(default=0, ge=0)

    @property
    def success(self) -> bool:
        return not self.errors


class BatchCalculationResult(BaseModel):
    """Outcome of calculating a project's activities.

    Per-row failures are collected alongside partial successes.
    """

    model_config = ConfigDict(frozen=True)

    project_id: str
    results: List[CalculationResult] = Field(default_factory=list)
    errors: List[RowError] = Field(default_factory=list)
    calculated_count: int = Field(default=0, ge=0)
    failed_count: int = Field(default=0, ge=0)
    skipped_count: int = Field(default=0, ge=0)
    total_co2e_kg: Decimal = Field(default=Decimal("0"), ge=0)
    processing_time_ms: Decimal = Field(default=Decimal("0"), ge=0)


# =============================================================================
# Aggregation
# =============================================================================


class AggregateResult(BaseModel):
    """Organization (CFO) or product (CFP) footprint.

    Recomputed wholesale from current calculation results on every call.

    Attributes:
        aggregate_id: Unique identifier.
        project_id: Project reference.
        kind: CFO or CFP.
        scope_totals: kgCO2e per scope, every scope present.
        category_totals: kgCO2e per Scope 3 category (present categories).
        grand_total: Sum of scope totals.
        activity_count: Number of calculated activities included.
        scope2_location_based: Scope 2 total from location-based activities.
        scope2_market_based: Scope 2 total from market-based activities.
        scope3_upstream: Scope 3 total of categories 1-8.
        scope3_downstream: Scope 3 total of categories 9-15.
        lifecycle_stages: kgCO2e per lifecycle stage (CFP only).
        production_quantity: Product output the CFP is normalised by.
        production_unit: Unit of the production quantity.
        intensity: grand_total / production_quantity (CFP only).
        computed_at: UTC timestamp of the computation.
        provenance_hash: SHA-256 hash for audit trail integrity.
    """

    model_config = ConfigDict(frozen=True)

    aggregate_id: str = Field(default_factory=lambda: _new_id("agg"))
    project_id: str
    kind: FootprintKind
    scope_totals: Dict[str, Decimal] = Field(default_factory=dict)
    category_totals: Dict[str, Decimal] = Field(default_factory=dict)
    grand_total: Decimal = Field(default=Decimal("0"), ge=0)
    activity_count: int = Field(default=0, ge=0)
    scope2_location_based: Optional[Decimal] = None
    scope2_market_based: Optional[Decimal] = None
    scope3_upstream: Optional[Decimal] = None
    scope3_downstream: Optional[Decimal] = None
    lifecycle_stages: Dict[str, Decimal] = Field(default_factory=dict)
    production_quantity: Optional[Decimal] = Field(default=None, gt=0)
    production_unit: Optional[str] = None
    intensity: Optional[Decimal] = None
    computed_at: datetime = Field(default_factory=_utcnow)
    provenance_hash: str = ""

    def scope_total(self, scope: Scope) -> Decimal:
        return self.scope_totals.get(Scope(scope).value, Decimal("0"))

    def scope_share(self, scope: Scope, places: int = 2) -> Decimal:
        """Percentage of the grand total contributed by one scope.

        Args:
            scope: Scope to report.
            places: Decimal places, rounded half-up.

        Returns:
            Share in percent; 0 when the grand total is zero.
        """
        if self.grand_total == 0:
            return Decimal("0")
        share = self.scope_total(scope) / self.grand_total * Decimal("100")
        return share.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


class FootprintComparison(BaseModel):
    """Change between a baseline and a reporting footprint."""

    model_config = ConfigDict(frozen=True)

    baseline_total: Decimal
    reporting_total: Decimal
    absolute_change: Decimal
    percentage_change: Optional[Decimal] = Field(
        default=None,
        description="None when the baseline is zero",
    )
    direction: ChangeDirection
    scope_changes: Dict[str, Decimal] = Field(default_factory=dict)


# =============================================================================
# Hotspots and Data Quality
# =============================================================================


class Hotspot(BaseModel):
    """One ranked emission source."""

    model_config = ConfigDict(frozen=True)

    rank: int = Field(..., ge=1)
    source: str = Field(..., description="Activity type or Scope 3 category")
    scope: Scope
    emissions: Decimal = Field(..., ge=0)
    percent_of_total: Decimal = Field(..., ge=0)
    activity_count: int = Field(default=0, ge=0)


class ScopeBreakdown(BaseModel):
    """Emissions and share of one scope."""

    model_config = ConfigDict(frozen=True)

    scope: Scope
    emissions: Decimal = Field(..., ge=0)
    percent_of_total: Decimal = Field(..., ge=0)


class HotspotReport(BaseModel):
    """Ranked contributors for a project.

    Groups cut off by the row limit are summed into the ``other_*``
    fields, so hotspot percentages plus ``other_percent`` cover the
    whole total.
    """

    model_config = ConfigDict(frozen=True)

    project_id: str
    total_emissions: Decimal = Field(default=Decimal("0"), ge=0)
    hotspots: List[Hotspot] = Field(default_factory=list)
    by_scope: List[ScopeBreakdown] = Field(default_factory=list)
    group_count: int = Field(default=0, ge=0)
    other_emissions: Decimal = Field(default=Decimal("0"), ge=0)
    other_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    other_group_count: int = Field(default=0, ge=0)
    computed_at: datetime = Field(default_factory=_utcnow)


class DataQualityReport(BaseModel):
    """Emissions-weighted data-quality score for a project.

    Attributes:
        project_id: Project reference.
        score: Weighted average in [1, 3], None with no calculated activity.
        bucket: Qualitative bucket derived from the score.
        activity_count: Calculated activities scored.
        by_quality: Activity count per data-quality tier.
        by_source: Activity count per data source tag.
        by_tier: Activity count per calculation tier.
        by_scope: Activity count per scope.
        recommendations: Suggested improvements.
    """

    model_config = ConfigDict(frozen=True)

    project_id: str
    score: Optional[Decimal] = Field(default=None, ge=1, le=3)
    bucket: Optional[DataQuality] = None
    activity_count: int = Field(default=0, ge=0)
    by_quality: Dict[str, int] = Field(default_factory=dict)
    by_source: Dict[str, int] = Field(default_factory=dict)
    by_tier: Dict[str, int] = Field(default_factory=dict)
    by_scope: Dict[str, int] = Field(default_factory=dict)
    recommendations: List[str] = Field(default_factory=list)
    computed_at: datetime = Field(default_factory=_utcnow)


# =============================================================================
# Standards
# =============================================================================


class StandardDefinition(BaseModel):
    """Immutable registry entry for one reporting standard.

    Field-name tuples keep their declared order; they are the bit-exact
    compatibility surface with the regulatory templates.
    """

    model_config = ConfigDict(frozen=True)

    standard_id: StandardId
    name: str
    full_name: str
    region: str
    authority: str
    effective_date: date
    mandatory_date: Optional[date] = None
    required_fields: Tuple[str, ...]
    optional_fields: Tuple[str, ...] = ()
    unique_fields: Tuple[str, ...] = ()
    supported_scopes: Tuple[Scope, ...]
    signature_required: bool = False
    authorized_roles: Tuple[SignerRole, ...]
    required_signatures: int = Field(default=1, ge=1)
    sections: Tuple[str, ...]

    @property
    def all_fields(self) -> Tuple[str, ...]:
        """Required followed by optional fields."""
        return self.required_fields + self.optional_fields

    @property
    def report_fields(self) -> Tuple[str, ...]:
        """Every field a report payload carries."""
        return self.required_fields + self.optional_fields + self.unique_fields


class StandardOverlap(BaseModel):
    """Field overlap between two standards."""

    model_config = ConfigDict(frozen=True)

    standard_a: StandardId
    standard_b: StandardId
    percentage: int = Field(..., ge=0, le=100)
    common_required: List[str] = Field(default_factory=list)
    common_optional: List[str] = Field(default_factory=list)
    unique_to_a: List[str] = Field(default_factory=list)
    unique_to_b: List[str] = Field(default_factory=list)
    can_share_data: bool = False
    recommended_workflow: str = ""


# =============================================================================
# Reports and Signatures
# =============================================================================


class SignerIdentity(BaseModel):
    """Who is signing, and in which project role."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    name: str = Field(default="")
    email: Optional[str] = None
    role: SignerRole


class Report(BaseModel):
    """A standard-shaped report payload and its status.

    Attributes:
        report_id: Unique identifier.
        project_id: Project reference.
        standard_id: Reporting standard.
        payload: Field name to value mapping for the standard.
        status: draft, pending_review or completed.
        incomplete: True when a required field is unresolved.
        missing_fields: Required fields left unresolved.
        completeness_pct: Share of required fields resolved.
        reporting_year: Reporting year.
        submission_deadline: Optional submission deadline.
        aggregate_id: Aggregate the payload was built from.
    """

    model_config = ConfigDict(frozen=True)

    report_id: str = Field(default_factory=lambda: _new_id("rpt"))
    project_id: str
    standard_id: StandardId
    payload: Dict[str, Any] = Field(default_factory=dict)
    status: ReportStatus = ReportStatus.DRAFT
    incomplete: bool = False
    missing_fields: List[str] = Field(default_factory=list)
    completeness_pct: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    reporting_year: Optional[int] = None
    submission_deadline: Optional[date] = None
    aggregate_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def raise_if_incomplete(self) -> None:
        """Raise IncompleteReportError when required fields are missing."""
        if self.incomplete:
            raise IncompleteReportError(self.report_id, self.missing_fields)


class Signature(BaseModel):
    """A signature over one report payload.

    Attributes:
        signature_id: Unique identifier.
        report_id: Signed report.
        signer_id: Signer user id.
        signer_name: Signer display name.
        signer_role: Signer project role.
        signature_type: Kind of sign-off (e.g. approval).
        content_hash: SHA-256 of the payload at signing time.
        signature_hash: SHA-256 of the signing envelope.
        envelope: Report id, signer, content hash, type, timestamp, nonce.
        algorithm: Hash algorithm.
        status: valid or revoked.
        signed_at: UTC signing time.
        revoked_at: UTC revocation time.
        revocation_reason: Why the signature was revoked.
    """

    model_config = ConfigDict(frozen=True)

    signature_id: str = Field(default_factory=lambda: _new_id("sig"))
    report_id: str
    signer_id: str
    signer_name: str = ""
    signer_role: SignerRole
    signature_type: str = "approval"
    content_hash: str = Field(..., min_length=64, max_length=64)
    signature_hash: str = Field(..., min_length=64, max_length=64)
    envelope: Dict[str, str] = Field(default_factory=dict)
    algorithm: str = "sha256"
    status: SignatureStatus = SignatureStatus.VALID
    signed_at: datetime = Field(default_factory=_utcnow)
    revoked_at: Optional[datetime] = None
    revocation_reason: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.status == SignatureStatus.VALID


__all__ = [
    "VERSION",
    "MAX_TRACE_STEPS",
    "DATA_QUALITY_WEIGHTS",
    "Scope",
    "Scope3Category",
    "TierLevel",
    "TierDirection",
    "DataQuality",
    "CalculationStatus",
    "FactorCategory",
    "FactorProvenance",
    "Scope2Method",
    "FootprintKind",
    "LifecycleStage",
    "ChangeDirection",
    "StandardId",
    "SignerRole",
    "ReportStatus",
    "SignatureStatus",
    "EmissionFactor",
    "EnergyMix",
    "FactorOverride",
    "ResolvedFactor",
    "CalculationResult",
    "Activity",
    "RowError",
    "ImportResult",
    "BatchCalculationResult",
    "AggregateResult",
    "FootprintComparison",
    "Hotspot",
    "ScopeBreakdown",
    "HotspotReport",
    "DataQualityReport",
    "StandardDefinition",
    "StandardOverlap",
    "SignerIdentity",
    "Report",
    "Signature",
]
