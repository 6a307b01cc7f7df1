# -*- coding: utf-8 -*-
"""
CarbonLedger: GHG Emissions Calculation and Reporting Engine
=============================================================

This package computes greenhouse-gas emissions from recorded business
activities and maps the results onto regulatory reporting standards. It
supports:

- GHG Protocol Scope 1, 2 and 3 with the 15 Scope 3 categories and their
  upstream (1-8) / downstream (9-15) split
- Emission factor resolution: project override, exact year, last known
  prior year, optional external lookup; every factor tagged with its
  provenance
- Formula families for combustion, mobile combustion, location- and
  market-based electricity, transport, purchased goods and precursors
- Tier-aware calculation (tier1, tier2, tier2_plus multipliers)
- Organization (CFO) and product (CFP) footprints with lifecycle stages
  and per-unit intensity
- Hotspot ranking and emissions-weighted data-quality scoring
- Six reporting standards (EU CBAM, UK CBAM, China Carbon Market, K-ESG,
  MAFF ESG, Thai-ESG) with field overlap analysis
- Report assembly with completeness tracking and role-gated, hash-bound
  signatures
- SHA-256 provenance chain and Prometheus metrics with the cl_ prefix
- Thread-safe configuration with the CARBONLEDGER_ env prefix

Key Components:
    - config: CarbonLedgerConfig with CARBONLEDGER_ env prefix
    - models: Pydantic v2 models (16 enums, 20 data models)
    - stores: collaborator protocols and in-memory stores
    - setup: CarbonLedgerService facade and get_service()

Example:
    >>> from carbonledger import get_service
    >>> svc = get_service()
    >>> svc.get_standard_overlap("k_esg", "maff_esg").recommended_workflow
    'Both require digital signatures. Recommend completing K-ESG first, then adapting for MAFF.'
"""

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
from carbonledger.config import (
    CarbonLedgerConfig,
    get_config,
    set_config,
    reset_config,
)

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------
from carbonledger.exceptions import (
    CarbonLedgerException,
    ValidationError,
    FactorNotFoundError,
    StandardNotFoundError,
    IncompleteReportError,
    SignatureAuthorizationError,
    IntegrityError,
    is_row_error,
)

# ---------------------------------------------------------------------------
# Provenance
# ---------------------------------------------------------------------------
from carbonledger.provenance import (
    ProvenanceTracker,
    ProvenanceEntry,
    ProvenanceChain,
    hash_payload,
    get_provenance_tracker,
    set_provenance_tracker,
    reset_provenance_tracker,
)

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------
from carbonledger.models import (
    VERSION,
    DATA_QUALITY_WEIGHTS,
    Scope,
    Scope3Category,
    TierLevel,
    TierDirection,
    DataQuality,
    CalculationStatus,
    FactorCategory,
    FactorProvenance,
    Scope2Method,
    FootprintKind,
    LifecycleStage,
    StandardId,
    SignerRole,
    ReportStatus,
    SignatureStatus,
    EmissionFactor,
    EnergyMix,
    FactorOverride,
    ResolvedFactor,
    Activity,
    CalculationResult,
    BatchCalculationResult,
    ImportResult,
    RowError,
    AggregateResult,
    FootprintComparison,
    HotspotReport,
    DataQualityReport,
    StandardDefinition,
    StandardOverlap,
    SignerIdentity,
    Report,
    Signature,
)

# ---------------------------------------------------------------------------
# Stores and engines
# ---------------------------------------------------------------------------
from carbonledger.stores import (
    InMemoryActivityStore,
    InMemoryFactorStore,
    InMemoryReportStore,
    load_factors_yaml,
)
from carbonledger.importer import normalise_row, parse_activity_rows
from carbonledger.factor_resolver import FactorResolverEngine
from carbonledger.activity_calculator import ActivityCalculatorEngine
from carbonledger.aggregation import AggregationEngine
from carbonledger.hotspot_analyzer import HotspotAnalyzerEngine
from carbonledger.standards import STANDARD_REGISTRY, StandardRequirementMapper
from carbonledger.report_assembler import ReportAssemblerEngine
from carbonledger.signature_gate import SignatureGateEngine
from carbonledger.setup import CarbonLedgerService, get_service

__all__ = [
    "__version__",
    "CarbonLedgerConfig",
    "get_config",
    "set_config",
    "reset_config",
    "CarbonLedgerException",
    "ValidationError",
    "FactorNotFoundError",
    "StandardNotFoundError",
    "IncompleteReportError",
    "SignatureAuthorizationError",
    "IntegrityError",
    "is_row_error",
    "ProvenanceTracker",
    "ProvenanceEntry",
    "ProvenanceChain",
    "hash_payload",
    "get_provenance_tracker",
    "set_provenance_tracker",
    "reset_provenance_tracker",
    "VERSION",
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
    "StandardId",
    "SignerRole",
    "ReportStatus",
    "SignatureStatus",
    "EmissionFactor",
    "EnergyMix",
    "FactorOverride",
    "ResolvedFactor",
    "Activity",
    "CalculationResult",
    "BatchCalculationResult",
    "ImportResult",
    "RowError",
    "AggregateResult",
    "FootprintComparison",
    "HotspotReport",
    "DataQualityReport",
    "StandardDefinition",
    "StandardOverlap",
    "SignerIdentity",
    "Report",
    "Signature",
    "InMemoryActivityStore",
    "InMemoryFactorStore",
    "InMemoryReportStore",
    "load_factors_yaml",
    "normalise_row",
    "parse_activity_rows",
    "FactorResolverEngine",
    "ActivityCalculatorEngine",
    "AggregationEngine",
    "HotspotAnalyzerEngine",
    "STANDARD_REGISTRY",
    "StandardRequirementMapper",
    "ReportAssemblerEngine",
    "SignatureGateEngine",
    "CarbonLedgerService",
    "get_service",
]
