# -*- coding: utf-8 -*-
"""
StandardRequirementMapper - Engine 5: CarbonLedger

Static registry of the six supported reporting standards and the field
comparisons built on it.

Every standard is one immutable StandardDefinition keyed by StandardId.
The registry is a read-only mapping and the module refuses to import if
a StandardId has no definition, so adding a standard means adding both
the enum member and its definition.

Field names are the compatibility surface with the regulatory templates
and must not be renamed.

Overlap between two standards::

    common     = (required_A & required_B) + (optional_A & optional_B)
    percentage = round_half_up(2 * |common| / (|fields_A| + |fields_B|) * 100)

where ``fields`` is required plus optional fields. The formula is
symmetric under swapping A and B. ``can_share_data`` is true when the
number of common required fields exceeds ``share_data_threshold`` (5).

Example:
    >>> mapper = StandardRequirementMapper()
    >>> mapper.overlap("eu_cbam", "uk_cbam").common_required
    ['company_name', 'facility_location', 'goods_category']
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union

from carbonledger.config import CarbonLedgerConfig, get_config
from carbonledger.exceptions import StandardNotFoundError
from carbonledger.models import (
    Scope,
    SignerRole,
    StandardDefinition,
    StandardId,
    StandardOverlap,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

#: Sections every standard carries, in order.
COMMON_SECTIONS = ("organization", "boundaries", "emissions", "methodology")

_ALL_SCOPES = (Scope.SCOPE1, Scope.SCOPE2, Scope.SCOPE3)
_DIRECT_SCOPES = (Scope.SCOPE1, Scope.SCOPE2)
_SIGNING_ROLES = (SignerRole.OWNER, SignerRole.DIRECTOR, SignerRole.AUDITOR)
_EDITING_ROLES = (
    SignerRole.OWNER,
    SignerRole.DIRECTOR,
    SignerRole.EDITOR,
    SignerRole.AUDITOR,
)

# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

STANDARD_REGISTRY: Mapping[StandardId, StandardDefinition] = MappingProxyType({
    StandardId.EU_CBAM: StandardDefinition(
        standard_id=StandardId.EU_CBAM,
        name="EU CBAM",
        full_name="European Union Carbon Border Adjustment Mechanism",
        region="European Union",
        authority="European Commission",
        effective_date=date(2023, 10, 1),
        mandatory_date=date(2026, 1, 1),
        required_fields=(
            "company_name", "facility_location", "goods_category",
            "production_process", "direct_emissions", "indirect_emissions",
            "precursor_emissions", "carbon_price_paid",
        ),
        optional_fields=(
            "electricity_source", "heat_source", "verification_statement",
        ),
        unique_fields=(
            "cn_code", "cbam_goods_category", "country_of_origin",
            "installation_operator",
        ),
        supported_scopes=_ALL_SCOPES,
        signature_required=False,
        authorized_roles=_EDITING_ROLES,
        sections=COMMON_SECTIONS + ("goods", "installations", "precursors", "carbon_price"),
    ),
    StandardId.UK_CBAM: StandardDefinition(
        standard_id=StandardId.UK_CBAM,
        name="UK CBAM",
        full_name="United Kingdom Carbon Border Adjustment Mechanism",
        region="United Kingdom",
        authority="HM Revenue & Customs",
        effective_date=date(2027, 1, 1),
        mandatory_date=date(2027, 1, 1),
        required_fields=(
            "company_name", "facility_location", "goods_category",
            "production_emissions", "embedded_emissions",
            "uk_carbon_price_equivalent",
        ),
        optional_fields=("overseas_carbon_price", "verification_details"),
        unique_fields=("uk_commodity_code", "uk_cbam_sector"),
        supported_scopes=_DIRECT_SCOPES,
        signature_required=False,
        authorized_roles=_EDITING_ROLES,
        sections=COMMON_SECTIONS + ("goods", "embedded", "verification"),
    ),
    StandardId.CHINA_CARBON_MARKET: StandardDefinition(
        standard_id=StandardId.CHINA_CARBON_MARKET,
        name="China Carbon Market",
        full_name="China National Carbon Trading Market",
        region="China",
        authority="Ministry of Ecology and Environment",
        effective_date=date(2021, 7, 16),
        mandatory_date=date(2021, 7, 16),
        required_fields=(
            "enterprise_name", "unified_social_credit_code", "facility_type",
            "fuel_consumption", "electricity_consumption", "heat_consumption",
            "production_output", "emission_factor", "total_emissions",
        ),
        optional_fields=("ccer_offset", "benchmark_emissions", "verification_body"),
        unique_fields=(
            "china_industry_code", "emission_allowance", "compliance_status",
        ),
        supported_scopes=_DIRECT_SCOPES,
        signature_required=False,
        authorized_roles=_EDITING_ROLES,
        sections=COMMON_SECTIONS + ("enterprise", "fuel", "electricity", "allowances"),
    ),
    StandardId.K_ESG: StandardDefinition(
        standard_id=StandardId.K_ESG,
        name="K-ESG",
        full_name="Korea ESG Guidelines",
        region="South Korea",
        authority="Ministry of Trade, Industry and Energy",
        effective_date=date(2021, 12, 1),
        mandatory_date=date(2025, 1, 1),
        required_fields=(
            "company_name", "business_registration_number", "reporting_year",
            "scope1_emissions", "scope2_emissions", "emission_intensity",
            "reduction_target", "reduction_activities", "governance_structure",
        ),
        optional_fields=(
            "scope3_emissions", "renewable_energy_usage", "water_usage",
            "waste_generation",
        ),
        unique_fields=(
            "k_esg_score", "k_esg_grade", "korean_verification_body",
            "ceo_declaration",
        ),
        supported_scopes=_ALL_SCOPES,
        signature_required=True,
        authorized_roles=_SIGNING_ROLES,
        required_signatures=2,
        sections=COMMON_SECTIONS + ("governance", "targets", "activities", "declaration"),
    ),
    StandardId.MAFF_ESG: StandardDefinition(
        standard_id=StandardId.MAFF_ESG,
        name="MAFF ESG",
        full_name="Japan Ministry of Agriculture ESG Guidelines",
        region="Japan",
        authority="Ministry of Agriculture, Forestry and Fisheries",
        effective_date=date(2022, 4, 1),
        mandatory_date=date(2024, 4, 1),
        required_fields=(
            "company_name", "corporate_number", "fiscal_year",
            "scope1_emissions", "scope2_emissions", "agricultural_emissions",
            "food_loss_reduction", "sustainable_sourcing", "biodiversity_impact",
        ),
        optional_fields=(
            "scope3_emissions", "organic_certification", "gap_certification",
            "animal_welfare",
        ),
        unique_fields=(
            "jgap_status", "midori_strategy_alignment", "j_credit_usage",
            "responsible_officer_declaration",
        ),
        supported_scopes=_ALL_SCOPES,
        signature_required=True,
        authorized_roles=_SIGNING_ROLES,
        required_signatures=2,
        sections=COMMON_SECTIONS + (
            "agriculture", "food_loss", "sourcing", "biodiversity", "declaration",
        ),
    ),
    StandardId.THAI_ESG: StandardDefinition(
        standard_id=StandardId.THAI_ESG,
        name="Thai-ESG",
        full_name="Thailand ESG Disclosure Framework",
        region="Thailand",
        authority="Securities and Exchange Commission Thailand",
        effective_date=date(2022, 1, 1),
        mandatory_date=date(2024, 1, 1),
        required_fields=(
            "company_name", "tax_id", "reporting_period",
            "ghg_emissions_scope1", "ghg_emissions_scope2", "energy_consumption",
            "water_withdrawal", "waste_management", "employee_data",
        ),
        optional_fields=(
            "scope3_emissions", "supply_chain_emissions", "community_investment",
        ),
        unique_fields=(
            "set_industry_group", "tcfd_alignment", "tgo_verification",
            "t_ver_credits",
        ),
        supported_scopes=_ALL_SCOPES,
        signature_required=False,
        authorized_roles=_EDITING_ROLES,
        sections=COMMON_SECTIONS + ("set_disclosure", "energy", "water", "social"),
    ),
})

_missing = [s.value for s in StandardId if s not in STANDARD_REGISTRY]
if _missing:
    raise RuntimeError(f"Standards without a registry definition: {_missing}")

# ---------------------------------------------------------------------------
# Recommended workflows (presentation guidance only)
# ---------------------------------------------------------------------------

DEFAULT_WORKFLOW = (
    "Enter common data first, then add standard-specific fields for each report."
)

_WORKFLOWS: Mapping[frozenset, str] = MappingProxyType({
    frozenset({StandardId.EU_CBAM, StandardId.UK_CBAM}): (
        "Both are CBAM mechanisms with high overlap. "
        "Enter data once and generate both reports."
    ),
    frozenset({StandardId.K_ESG, StandardId.MAFF_ESG}): (
        "Both require digital signatures. "
        "Recommend completing K-ESG first, then adapting for MAFF."
    ),
})


def recommended_workflow(
    standard_a: Union[StandardId, str],
    standard_b: Union[StandardId, str],
) -> str:
    """Static data-entry guidance for a pair of standards."""
    pair = frozenset({StandardId(standard_a), StandardId(standard_b)})
    return _WORKFLOWS.get(pair, DEFAULT_WORKFLOW)


class StandardRequirementMapper:
    """Looks up standard requirements and compares standards.

    Attributes:
        _registry: Read-only StandardId to StandardDefinition mapping.
        _config: Engine configuration (share-data threshold).
    """

    def __init__(
        self,
        registry: Optional[Mapping[StandardId, StandardDefinition]] = None,
        config: Optional[CarbonLedgerConfig] = None,
    ) -> None:
        self._registry = registry if registry is not None else STANDARD_REGISTRY
        self._config = config or get_config()
        logger.info(
            "StandardRequirementMapper initialized (%d standards, "
            "share_data_threshold=%d)",
            len(self._registry),
            self._config.share_data_threshold,
        )

    def requirements(self, standard_id: Union[StandardId, str]) -> StandardDefinition:
        """Return the definition of one standard.

        Raises:
            StandardNotFoundError: If the id is not a registered standard.
        """
        try:
            key = StandardId(standard_id)
        except ValueError:
            raise StandardNotFoundError(str(standard_id)) from None
        definition = self._registry.get(key)
        if definition is None:
            raise StandardNotFoundError(key.value)
        return definition

    def list_standards(self) -> List[Dict[str, Any]]:
        """Summaries of every registered standard, in enum order."""
        summaries = []
        for standard_id in StandardId:
            definition = self._registry.get(standard_id)
            if definition is None:
                continue
            summaries.append({
                "standard_id": definition.standard_id.value,
                "name": definition.name,
                "full_name": definition.full_name,
                "region": definition.region,
                "authority": definition.authority,
                "effective_date": definition.effective_date.isoformat(),
                "mandatory_date": (
                    definition.mandatory_date.isoformat()
                    if definition.mandatory_date else None
                ),
                "signature_required": definition.signature_required,
                "supported_scopes": [s.value for s in definition.supported_scopes],
                "required_field_count": len(definition.required_fields),
            })
        return summaries

    def overlap(
        self,
        standard_a: Union[StandardId, str],
        standard_b: Union[StandardId, str],
    ) -> StandardOverlap:
        """Compare the fields of two registered standards.

        Raises:
            StandardNotFoundError: If either id is unknown.
        """
        return self.compare(self.requirements(standard_a), self.requirements(standard_b))

    def compare(
        self,
        definition_a: StandardDefinition,
        definition_b: StandardDefinition,
    ) -> StandardOverlap:
        """Compare two standard definitions field by field."""
        common_required = [
            f for f in definition_a.required_fields if f in definition_b.required_fields
        ]
        common_optional = [
            f for f in definition_a.optional_fields if f in definition_b.optional_fields
        ]
        common = set(common_required) | set(common_optional)

        total = len(definition_a.all_fields) + len(definition_b.all_fields)
        percentage = 0
        if total:
            ratio = Decimal(2 * len(common)) / Decimal(total) * Decimal(100)
            percentage = int(ratio.quantize(Decimal(1), rounding=ROUND_HALF_UP))

        result = StandardOverlap(
            standard_a=definition_a.standard_id,
            standard_b=definition_b.standard_id,
            percentage=percentage,
            common_required=common_required,
            common_optional=common_optional,
            unique_to_a=self._unique(definition_a, common),
            unique_to_b=self._unique(definition_b, common),
            can_share_data=len(common_required) > self._config.share_data_threshold,
            recommended_workflow=recommended_workflow(
                definition_a.standard_id, definition_b.standard_id,
            ),
        )
        logger.debug(
            "Overlap %s/%s: %d%% (%d common required, %d common optional)",
            definition_a.standard_id.value, definition_b.standard_id.value,
            percentage, len(common_required), len(common_optional),
        )
        return result

    @staticmethod
    def _unique(definition: StandardDefinition, common: set) -> List[str]:
        fields = [f for f in definition.all_fields if f not in common]
        return fields + [f for f in definition.unique_fields if f not in fields]


__all__ = [
    "COMMON_SECTIONS",
    "STANDARD_REGISTRY",
    "DEFAULT_WORKFLOW",
    "StandardRequirementMapper",
    "recommended_workflow",
]
