# -*- coding: utf-8 -*-
"""
CarbonLedger Configuration

Centralized configuration for the CarbonLedger calculation and reporting
engine covering:
- Logging verbosity
- Decimal precision for stored CO2e values and percentages
- Tier adjustment multipliers (tier1 / tier2 / tier2_plus)
- Energy-mix tolerance for project factor overrides
- Standard overlap data-sharing threshold
- Data-quality bucket cut points
- Hotspot result limit and batch capacity
- Default Scope 2 accounting method
- External factor lookup toggle
- Provenance tracking (genesis hash, SHA-256 chain anchoring)
- Prometheus metrics export toggle

All settings can be overridden via environment variables with the
``CARBONLEDGER_`` prefix (e.g. ``CARBONLEDGER_TIER2_PLUS_MULTIPLIER``,
``CARBONLEDGER_MAX_BATCH_SIZE``).

Environment Variable Reference (CARBONLEDGER_ prefix):
    CARBONLEDGER_ENABLED                 - Enable/disable the engine
    CARBONLEDGER_LOG_LEVEL               - Logging level
    CARBONLEDGER_DECIMAL_PRECISION       - Decimal places for CO2e values
    CARBONLEDGER_PERCENTAGE_PRECISION    - Decimal places for shares
    CARBONLEDGER_TIER1_MULTIPLIER        - Tier 1 adjustment
    CARBONLEDGER_TIER2_MULTIPLIER        - Tier 2 adjustment
    CARBONLEDGER_TIER2_PLUS_MULTIPLIER   - Tier 2+ adjustment
    CARBONLEDGER_ENERGY_MIX_TOLERANCE    - Allowed deviation from 100%
    CARBONLEDGER_SHARE_DATA_THRESHOLD    - Common required fields threshold
    CARBONLEDGER_DQ_HIGH_CUTOFF          - Score at or above which DQ is high
    CARBONLEDGER_DQ_MEDIUM_CUTOFF        - Score at or above which DQ is medium
    CARBONLEDGER_HOTSPOT_LIMIT           - Maximum hotspot rows (0 = all)
    CARBONLEDGER_MAX_BATCH_SIZE          - Maximum activities per batch
    CARBONLEDGER_DEFAULT_SCOPE2_METHOD   - location_based or market_based
    CARBONLEDGER_ENABLE_EXTERNAL_LOOKUP  - Allow the external factor lookup
    CARBONLEDGER_ENABLE_PROVENANCE       - Enable SHA-256 provenance chain
    CARBONLEDGER_GENESIS_HASH            - Genesis anchor for provenance
    CARBONLEDGER_ENABLE_METRICS          - Enable Prometheus metrics export

Example:
    >>> from carbonledger.config import get_config
    >>> cfg = get_config()
    >>> print(cfg.tier2_plus_multiplier, cfg.hotspot_limit)
    1.3 20

    >>> # Override for testing
    >>> from carbonledger.config import set_config, reset_config
    >>> from carbonledger.config import CarbonLedgerConfig
    >>> set_config(CarbonLedgerConfig(hotspot_limit=5))
    >>> reset_config()  # teardown
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Environment variable prefix
# ---------------------------------------------------------------------------

_ENV_PREFIX = "CARBONLEDGER_"

# ---------------------------------------------------------------------------
# Valid enumeration values for configuration validation
# ---------------------------------------------------------------------------

_VALID_LOG_LEVELS = frozenset(
    {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
)

_VALID_SCOPE2_METHODS = frozenset({"location_based", "market_based"})


# ---------------------------------------------------------------------------
# CarbonLedgerConfig
# ---------------------------------------------------------------------------


@dataclass
class CarbonLedgerConfig:
    """Complete configuration for the CarbonLedger engine.

    Attributes are grouped by concern: logging, calculation precision,
    tier adjustment, factor overrides, standard overlap, data quality,
    capacity limits, factor resolution, provenance tracking and metrics
    export.

    All attributes can be overridden via environment variables using the
    ``CARBONLEDGER_`` prefix (e.g. ``CARBONLEDGER_HOTSPOT_LIMIT=10``).

    Attributes:
        enabled: Master enable flag for the engine.
        log_level: Logging verbosity level.
        decimal_precision: Decimal places kept on CO2e values.
        percentage_precision: Decimal places kept on shares and percentages.
        tier1_multiplier: Adjustment applied to tier1 results.
        tier2_multiplier: Adjustment applied to tier2 results.
        tier2_plus_multiplier: Adjustment applied to tier2_plus results.
        energy_mix_tolerance: Allowed deviation of an override energy mix
            from 100 percent.
        share_data_threshold: Two standards can share data when their
            common required fields exceed this count.
        dq_high_cutoff: Average weight at or above which data quality is high.
        dq_medium_cutoff: Average weight at or above which data quality is
            medium.
        hotspot_limit: Maximum hotspot rows returned; 0 returns every group.
        max_batch_size: Maximum activities accepted by one batch calculation.
        default_scope2_method: Electricity method used when an activity
            does not state one.
        enable_external_lookup: Allow the resolver to consult the external
            factor lookup collaborator.
        enable_provenance: Enable SHA-256 provenance chain.
        genesis_hash: Genesis anchor string for provenance chain.
        enable_metrics: Enable Prometheus metrics export.
    """

    # -- Master enable -------------------------------------------------------
    enabled: bool = True

    # -- Logging -------------------------------------------------------------
    log_level: str = "INFO"

    # -- Calculation precision -----------------------------------------------
    decimal_precision: int = 8
    percentage_precision: int = 2

    # -- Tier adjustment -----------------------------------------------------
    tier1_multiplier: float = 1.0
    tier2_multiplier: float = 1.0
    tier2_plus_multiplier: float = 1.3

    # -- Factor overrides ----------------------------------------------------
    energy_mix_tolerance: float = 0.01

    # -- Standard overlap ----------------------------------------------------
    share_data_threshold: int = 5

    # -- Data quality --------------------------------------------------------
    dq_high_cutoff: float = 2.5
    dq_medium_cutoff: float = 1.5

    # -- Capacity limits -----------------------------------------------------
    hotspot_limit: int = 20
    max_batch_size: int = 10_000

    # -- Factor resolution ---------------------------------------------------
    default_scope2_method: str = "location_based"
    enable_external_lookup: bool = True

    # -- Provenance tracking -------------------------------------------------
    enable_provenance: bool = True
    genesis_hash: str = "CARBONLEDGER-GENESIS"

    # -- Metrics export ------------------------------------------------------
    enable_metrics: bool = True

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def __post_init__(self) -> None:
        """Validate configuration after initialisation.

        Collects every problem before raising so that a misconfigured
        deployment reports all of them at once.

        Raises:
            ValueError: If any configuration value is invalid.
        """
        errors: list[str] = []

        # -- Logging ---------------------------------------------------------
        normalised_log = self.log_level.upper()
        if normalised_log not in _VALID_LOG_LEVELS:
            errors.append(
                f"log_level must be one of {sorted(_VALID_LOG_LEVELS)}, "
                f"got '{self.log_level}'"
            )
        else:
            self.log_level = normalised_log

        # -- Precision -------------------------------------------------------
        if not (0 <= self.decimal_precision <= 20):
            errors.append(
                f"decimal_precision must be in [0, 20], "
                f"got {self.decimal_precision}"
            )
        if not (0 <= self.percentage_precision <= 10):
            errors.append(
                f"percentage_precision must be in [0, 10], "
                f"got {self.percentage_precision}"
            )

        # -- Tier multipliers ------------------------------------------------
        for field_name in (
            "tier1_multiplier",
            "tier2_multiplier",
            "tier2_plus_multiplier",
        ):
            value = getattr(self, field_name)
            if value <= 0:
                errors.append(f"{field_name} must be > 0, got {value}")

        # -- Energy mix tolerance --------------------------------------------
        if not (0.0 <= self.energy_mix_tolerance < 100.0):
            errors.append(
                f"energy_mix_tolerance must be in [0, 100), "
                f"got {self.energy_mix_tolerance}"
            )

        # -- Standard overlap ------------------------------------------------
        if self.share_data_threshold < 0:
            errors.append(
                f"share_data_threshold must be >= 0, "
                f"got {self.share_data_threshold}"
            )

        # -- Data quality cut points -----------------------------------------
        for field_name in ("dq_high_cutoff", "dq_medium_cutoff"):
            value = getattr(self, field_name)
            if not (1.0 <= value <= 3.0):
                errors.append(
                    f"{field_name} must be in [1.0, 3.0], got {value}"
                )
        if self.dq_medium_cutoff > self.dq_high_cutoff:
            errors.append(
                f"dq_medium_cutoff ({self.dq_medium_cutoff}) must be <= "
                f"dq_high_cutoff ({self.dq_high_cutoff})"
            )

        # -- Capacity limits -------------------------------------------------
        if self.hotspot_limit < 0:
            errors.append(
                f"hotspot_limit must be >= 0, got {self.hotspot_limit}"
            )
        if self.max_batch_size <= 0:
            errors.append(
                f"max_batch_size must be > 0, got {self.max_batch_size}"
            )

        # -- Scope 2 method --------------------------------------------------
        normalised_method = self.default_scope2_method.lower()
        if normalised_method not in _VALID_SCOPE2_METHODS:
            errors.append(
                f"default_scope2_method must be one of "
                f"{sorted(_VALID_SCOPE2_METHODS)}, "
                f"got '{self.default_scope2_method}'"
            )
        else:
            self.default_scope2_method = normalised_method

        # -- Provenance ------------------------------------------------------
        if not self.genesis_hash:
            errors.append("genesis_hash must not be empty")

        if errors:
            raise ValueError(
                "CarbonLedgerConfig validation failed:\n"
                + "\n".join(f"  - {e}" for e in errors)
            )

        logger.debug(
            "CarbonLedgerConfig validated successfully: "
            "precision=%d, pct_precision=%d, tiers=%.2f/%.2f/%.2f, "
            "mix_tolerance=%.4f, share_threshold=%d, dq_cutoffs=%.2f/%.2f, "
            "hotspot_limit=%d, max_batch_size=%d, scope2=%s, "
            "external_lookup=%s, provenance=%s, metrics=%s",
            self.decimal_precision,
            self.percentage_precision,
            self.tier1_multiplier,
            self.tier2_multiplier,
            self.tier2_plus_multiplier,
            self.energy_mix_tolerance,
            self.share_data_threshold,
            self.dq_high_cutoff,
            self.dq_medium_cutoff,
            self.hotspot_limit,
            self.max_batch_size,
            self.default_scope2_method,
            self.enable_external_lookup,
            self.enable_provenance,
            self.enable_metrics,
        )

    # ------------------------------------------------------------------
    # Factory helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> CarbonLedgerConfig:
        """Build a CarbonLedgerConfig from environment variables.

        Every field can be overridden via ``CARBONLEDGER_<FIELD_UPPER>``.
        Boolean values accept ``true/1/yes`` (case-insensitive).
        Malformed numeric values fall back to the class-level default
        and emit a WARNING log.

        Returns:
            Populated CarbonLedgerConfig instance, validated via
            ``__post_init__``.

        Example:
            >>> import os
            >>> os.environ["CARBONLEDGER_HOTSPOT_LIMIT"] = "5"
            >>> cfg = CarbonLedgerConfig.from_env()
            >>> cfg.hotspot_limit
            5
        """
        prefix = _ENV_PREFIX

        def _env(name: str, default: Any = None) -> Optional[str]:
            return os.environ.get(f"{prefix}{name}", default)

        def _bool(name: str, default: bool) -> bool:
            val = _env(name)
            if val is None:
                return default
            return val.strip().lower() in ("true", "1", "yes")

        def _int(name: str, default: int) -> int:
            val = _env(name)
            if val is None:
                return default
            try:
                return int(val.strip())
            except ValueError:
                logger.warning(
                    "Invalid integer for %s%s=%r, using default %d",
                    prefix, name, val, default,
                )
                return default

        def _float(name: str, default: float) -> float:
            val = _env(name)
            if val is None:
                return default
            try:
                return float(val.strip())
            except ValueError:
                logger.warning(
                    "Invalid float for %s%s=%r, using default %f",
                    prefix, name, val, default,
                )
                return default

        def _str(name: str, default: str) -> str:
            val = _env(name)
            if val is None:
                return default
            return val.strip()

        config = cls(
            # Master enable
            enabled=_bool("ENABLED", cls.enabled),
            # Logging
            log_level=_str("LOG_LEVEL", cls.log_level),
            # Calculation precision
            decimal_precision=_int(
                "DECIMAL_PRECISION", cls.decimal_precision,
            ),
            percentage_precision=_int(
                "PERCENTAGE_PRECISION", cls.percentage_precision,
            ),
            # Tier adjustment
            tier1_multiplier=_float(
                "TIER1_MULTIPLIER", cls.tier1_multiplier,
            ),
            tier2_multiplier=_float(
                "TIER2_MULTIPLIER", cls.tier2_multiplier,
            ),
            tier2_plus_multiplier=_float(
                "TIER2_PLUS_MULTIPLIER", cls.tier2_plus_multiplier,
            ),
            # Factor overrides
            energy_mix_tolerance=_float(
                "ENERGY_MIX_TOLERANCE", cls.energy_mix_tolerance,
            ),
            # Standard overlap
            share_data_threshold=_int(
                "SHARE_DATA_THRESHOLD", cls.share_data_threshold,
            ),
            # Data quality
            dq_high_cutoff=_float("DQ_HIGH_CUTOFF", cls.dq_high_cutoff),
            dq_medium_cutoff=_float(
                "DQ_MEDIUM_CUTOFF", cls.dq_medium_cutoff,
            ),
            # Capacity limits
            hotspot_limit=_int("HOTSPOT_LIMIT", cls.hotspot_limit),
            max_batch_size=_int("MAX_BATCH_SIZE", cls.max_batch_size),
            # Factor resolution
            default_scope2_method=_str(
                "DEFAULT_SCOPE2_METHOD", cls.default_scope2_method,
            ),
            enable_external_lookup=_bool(
                "ENABLE_EXTERNAL_LOOKUP", cls.enable_external_lookup,
            ),
            # Provenance tracking
            enable_provenance=_bool(
                "ENABLE_PROVENANCE", cls.enable_provenance,
            ),
            genesis_hash=_str("GENESIS_HASH", cls.genesis_hash),
            # Metrics export
            enable_metrics=_bool("ENABLE_METRICS", cls.enable_metrics),
        )

        logger.info(
            "CarbonLedgerConfig loaded: precision=%d, tiers=%.2f/%.2f/%.2f, "
            "hotspot_limit=%d, batch=%d, scope2=%s, external_lookup=%s, "
            "provenance=%s, metrics=%s",
            config.decimal_precision,
            config.tier1_multiplier,
            config.tier2_multiplier,
            config.tier2_plus_multiplier,
            config.hotspot_limit,
            config.max_batch_size,
            config.default_scope2_method,
            config.enable_external_lookup,
            config.enable_provenance,
            config.enable_metrics,
        )
        return config

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialise the configuration to a plain Python dictionary.

        Returns:
            Dictionary representation of every setting.
        """
        return {
            "enabled": self.enabled,
            "log_level": self.log_level,
            "decimal_precision": self.decimal_precision,
            "percentage_precision": self.percentage_precision,
            "tier1_multiplier": self.tier1_multiplier,
            "tier2_multiplier": self.tier2_multiplier,
            "tier2_plus_multiplier": self.tier2_plus_multiplier,
            "energy_mix_tolerance": self.energy_mix_tolerance,
            "share_data_threshold": self.share_data_threshold,
            "dq_high_cutoff": self.dq_high_cutoff,
            "dq_medium_cutoff": self.dq_medium_cutoff,
            "hotspot_limit": self.hotspot_limit,
            "max_batch_size": self.max_batch_size,
            "default_scope2_method": self.default_scope2_method,
            "enable_external_lookup": self.enable_external_lookup,
            "enable_provenance": self.enable_provenance,
            "genesis_hash": self.genesis_hash,
            "enable_metrics": self.enable_metrics,
        }

    def __repr__(self) -> str:
        d = self.to_dict()
        pairs = ", ".join(f"{k}={v!r}" for k, v in d.items())
        return f"CarbonLedgerConfig({pairs})"


# ---------------------------------------------------------------------------
# Thread-safe singleton accessor
# ---------------------------------------------------------------------------

_config_instance: Optional[CarbonLedgerConfig] = None
_config_lock = threading.Lock()


def get_config() -> CarbonLedgerConfig:
    """Return the singleton CarbonLedgerConfig, creating from env if needed.

    Uses double-checked locking for thread safety with minimal
    contention on the hot path.

    Returns:
        CarbonLedgerConfig singleton instance.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = CarbonLedgerConfig.from_env()
    return _config_instance


def set_config(config: CarbonLedgerConfig) -> None:
    """Replace the singleton CarbonLedgerConfig.

    Primarily intended for testing and dependency injection.

    Args:
        config: New CarbonLedgerConfig to install as the singleton.
    """
    global _config_instance
    with _config_lock:
        _config_instance = config
    logger.info(
        "CarbonLedgerConfig replaced programmatically: "
        "tiers=%.2f/%.2f/%.2f, hotspot_limit=%d, batch=%d",
        config.tier1_multiplier,
        config.tier2_multiplier,
        config.tier2_plus_multiplier,
        config.hotspot_limit,
        config.max_batch_size,
    )


def reset_config() -> None:
    """Reset the singleton CarbonLedgerConfig to None.

    The next call to get_config() will re-read environment variables
    and construct a fresh instance. Intended for test teardown.
    """
    global _config_instance
    with _config_lock:
        _config_instance = None
    logger.debug("CarbonLedgerConfig singleton reset")


__all__ = [
    "CarbonLedgerConfig",
    "get_config",
    "set_config",
    "reset_config",
]
