"""Tests for CarbonLedgerConfig and its singleton accessors."""

import pytest

from carbonledger.config import (
    CarbonLedgerConfig,
    get_config,
    reset_config,
    set_config,
)


# ==============================================================================
# Defaults and Validation
# ==============================================================================

class TestDefaults:
    """Out-of-the-box settings."""

    def test_default_values(self):
        cfg = CarbonLedgerConfig()

        assert cfg.decimal_precision == 8
        assert cfg.percentage_precision == 2
        assert cfg.tier1_multiplier == 1.0
        assert cfg.tier2_multiplier == 1.0
        assert cfg.tier2_plus_multiplier == 1.3
        assert cfg.share_data_threshold == 5
        assert cfg.hotspot_limit == 20
        assert cfg.default_scope2_method == "location_based"
        assert cfg.enable_provenance is True

    def test_log_level_is_normalised(self):
        assert CarbonLedgerConfig(log_level="debug").log_level == "DEBUG"

    def test_scope2_method_is_normalised(self):
        cfg = CarbonLedgerConfig(default_scope2_method="MARKET_BASED")
        assert cfg.default_scope2_method == "market_based"

    def test_to_dict_covers_every_field(self):
        d = CarbonLedgerConfig().to_dict()
        assert d["tier2_plus_multiplier"] == 1.3
        assert len(d) == 18


class TestValidation:
    """__post_init__ rejects bad values, reporting all of them at once."""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"log_level": "LOUD"},
            {"decimal_precision": -1},
            {"tier2_plus_multiplier": 0},
            {"energy_mix_tolerance": -0.5},
            {"share_data_threshold": -1},
            {"dq_high_cutoff": 3.5},
            {"dq_medium_cutoff": 2.8, "dq_high_cutoff": 2.5},
            {"hotspot_limit": -1},
            {"max_batch_size": 0},
            {"default_scope2_method": "residual_mix"},
            {"genesis_hash": ""},
        ],
    )
    def test_invalid_values_raise(self, kwargs):
        with pytest.raises(ValueError, match="CarbonLedgerConfig validation failed"):
            CarbonLedgerConfig(**kwargs)

    def test_all_errors_are_collected(self):
        with pytest.raises(ValueError) as excinfo:
            CarbonLedgerConfig(hotspot_limit=-1, max_batch_size=0)

        message = str(excinfo.value)
        assert "hotspot_limit" in message
        assert "max_batch_size" in message


# ==============================================================================
# Environment Loading
# ==============================================================================

class TestFromEnv:
    """CARBONLEDGER_ prefixed overrides."""

    def test_reads_prefixed_variables(self, monkeypatch):
        monkeypatch.setenv("CARBONLEDGER_HOTSPOT_LIMIT", "5")
        monkeypatch.setenv("CARBONLEDGER_TIER2_PLUS_MULTIPLIER", "1.5")
        monkeypatch.setenv("CARBONLEDGER_ENABLE_METRICS", "no")

        cfg = CarbonLedgerConfig.from_env()

        assert cfg.hotspot_limit == 5
        assert cfg.tier2_plus_multiplier == 1.5
        assert cfg.enable_metrics is False

    def test_malformed_number_falls_back_to_default(self, monkeypatch, caplog):
        monkeypatch.setenv("CARBONLEDGER_MAX_BATCH_SIZE", "lots")

        cfg = CarbonLedgerConfig.from_env()

        assert cfg.max_batch_size == 10_000
        assert "Invalid integer" in caplog.text


# ==============================================================================
# Singleton
# ==============================================================================

class TestSingleton:
    """get_config / set_config / reset_config."""

    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_set_and_reset(self):
        custom = CarbonLedgerConfig(hotspot_limit=3)
        set_config(custom)
        assert get_config() is custom

        reset_config()
        assert get_config() is not custom
        assert get_config().hotspot_limit == 20
