"""Tests for reconciler configuration."""

from decimal import Decimal
from pathlib import Path

import pytest

from reserve_recon.config import ReconcilerConfig
from reserve_recon.errors import ConfigError


class TestDefaults:
    def test_safe_defaults(self) -> None:
        config = ReconcilerConfig()
        assert config.allow_insolvent_update is False
        assert config.auto_mint_enabled is True
        assert config.debounce_seconds == 5.0
        assert config.price_drift_threshold == Decimal("0.01")
        assert config.price_max_step == Decimal("0.20")

    def test_invalid_threshold(self) -> None:
        with pytest.raises(ConfigError):
            ReconcilerConfig(price_drift_threshold=Decimal("0"))

    def test_negative_timeout(self) -> None:
        with pytest.raises(ConfigError):
            ReconcilerConfig(run_timeout_seconds=-1)

    def test_require_chain(self) -> None:
        with pytest.raises(ConfigError, match="rpc_url"):
            ReconcilerConfig().require_chain()
        ReconcilerConfig(
            rpc_url="http://localhost:8545",
            program_address="0x" + "5a" * 20,
            operator_private_key="0x" + "01" * 32,
        ).require_chain()


class TestFromEnv:
    def test_reads_environ(self) -> None:
        config = ReconcilerConfig.from_env(environ={
            "RECON_RPC_URL": "http://localhost:8545",
            "RECON_CHAIN_ID": "31337",
            "RECON_ALLOW_INSOLVENT_UPDATE": "true",
            "RECON_AUTO_MINT": "0",
            "RECON_DEBOUNCE_SECONDS": "2.5",
            "RECON_PRICE_DRIFT_THRESHOLD": "0.02",
            "RECON_STORE_PATH": "/tmp/ledger.sqlite3",
        })
        assert config.rpc_url == "http://localhost:8545"
        assert config.chain_id == 31337
        assert config.allow_insolvent_update is True
        assert config.auto_mint_enabled is False
        assert config.debounce_seconds == 2.5
        assert config.price_drift_threshold == Decimal("0.02")
        assert config.store_path == Path("/tmp/ledger.sqlite3")

    def test_env_file_overlaid_by_environ(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(
            "RECON_RPC_URL=http://file:8545\n"
            "RECON_CHAIN_ID=1\n"
        )
        config = ReconcilerConfig.from_env(env_file, environ={"RECON_CHAIN_ID": "5"})
        assert config.rpc_url == "http://file:8545"
        assert config.chain_id == 5

    def test_missing_env_file_ignored(self, tmp_path: Path) -> None:
        config = ReconcilerConfig.from_env(tmp_path / "absent.env", environ={})
        assert config == ReconcilerConfig()

    def test_blank_values_ignored(self) -> None:
        config = ReconcilerConfig.from_env(environ={"RECON_CHAIN_ID": "  "})
        assert config.chain_id == ReconcilerConfig().chain_id

    @pytest.mark.parametrize("key,value", [
        ("RECON_AUTO_MINT", "maybe"),
        ("RECON_CHAIN_ID", "sepolia"),
        ("RECON_RUN_TIMEOUT", "soon"),
        ("RECON_PRICE_MAX_STEP", "lots"),
    ])
    def test_malformed_values(self, key: str, value: str) -> None:
        with pytest.raises(ConfigError, match=key):
            ReconcilerConfig.from_env(environ={key: value})
