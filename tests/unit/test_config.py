"""Unit tests for config loading, env interpolation, and validation."""
from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest

from lending_core.config import (
    AppConfig,
    LedgerConfig,
    LiquidationConfig,
    _interpolate_env,
    load_config,
)


def _write(tmp_path: Path, content: str) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(content)
    return cfg_file


class TestInterpolateEnv:
    def test_simple_substitution(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MY_VAR", "hello")
        assert _interpolate_env("${MY_VAR}") == "hello"

    def test_missing_var_becomes_empty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NONEXISTENT_VAR_XYZ", raising=False)
        assert _interpolate_env("${NONEXISTENT_VAR_XYZ}") == ""

    def test_nested_structures(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TOK", "secret")
        result = _interpolate_env({"key": "${TOK}", "items": ["${TOK}", 1]})
        assert result == {"key": "secret", "items": ["secret", 1]}

    def test_non_string_passthrough(self) -> None:
        assert _interpolate_env(42) == 42
        assert _interpolate_env(True) is True


class TestLoadConfig:
    def test_loads_valid_yaml(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert isinstance(cfg, AppConfig)
        assert cfg.ledger.default_max_ltv == Decimal("75")
        # Symbols are normalised to upper case
        assert cfg.ledger.default_prices == {
            "BTC": Decimal("65000"),
            "ETH": Decimal("3500"),
        }
        assert cfg.liquidation.tiers.warning == Decimal("1.25")
        assert cfg.liquidation.default_liquidation_threshold == Decimal("82.5")
        assert cfg.liquidation.intent_deadline_seconds == 600
        assert cfg.chain.rpc_endpoints == ("https://rpc.example.com",)
        assert cfg.chain.confirmation.max_attempts == 4
        assert cfg.price_oracle.pyth.feeds == {"BTC": "aaa", "ETH": "bbb"}
        assert cfg.notifications.telegram.chat_id == "999"

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        cfg = load_config(_write(tmp_path, ""))
        assert cfg.ledger == LedgerConfig()
        assert cfg.liquidation == LiquidationConfig()
        assert cfg.storage.backend == "memory"

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nonexistent.yaml")

    def test_env_interpolation_in_yaml(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TEST_SUPABASE_URL", "https://db.example.com")
        cfg = load_config(
            _write(
                tmp_path,
                "storage:\n"
                "  backend: supabase\n"
                "  supabase:\n"
                "    url: ${TEST_SUPABASE_URL}\n"
                "    service_key: key\n",
            )
        )
        assert cfg.storage.supabase.url == "https://db.example.com"


class TestValidation:
    @pytest.mark.parametrize(
        "content, match",
        [
            ("ledger: {missing_price: guess}\n", "missing_price"),
            ("ledger: {borrower_pattern: '(['}\n", "borrower_pattern"),
            ("ledger: {default_max_ltv: 120}\n", "default_max_ltv"),
            ("ledger: {default_prices: {BTC: 0}}\n", "Default price"),
            ("liquidation: {default_liquidation_threshold: 0}\n", "threshold"),
            ("liquidation: {intent_deadline_seconds: 0}\n", "deadline"),
            ("liquidation: {tiers: {critical: 1.5, warning: 1.2}}\n", "tiers"),
            ("storage: {backend: sqlite}\n", "storage.backend"),
            ("chain: {confirmation: {max_attempts: 0}}\n", "max_attempts"),
            ("chain: {confirmation: {base_delay: 5, max_delay: 1}}\n", "delays"),
        ],
    )
    def test_invalid_values_raise(self, tmp_path: Path, content: str, match: str) -> None:
        with pytest.raises(ValueError, match=match):
            load_config(_write(tmp_path, content))


class TestFrozenConfigs:
    def test_ledger_config_immutable(self) -> None:
        c = LedgerConfig()
        with pytest.raises(AttributeError):
            c.missing_price = "reject"  # type: ignore[misc]
