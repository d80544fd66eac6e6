"""Reconciler configuration.

All settings are carried by an explicit ``ReconcilerConfig`` injected at
construction. ``ReconcilerConfig.from_env`` is the only place that reads
process state: it loads a ``.env`` file with python-dotenv and maps
``RECON_*`` variables onto fields.

Environment variables:
    RECON_RPC_URL                  Ledger RPC endpoint.
    RECON_PROGRAM_ADDRESS          Address of the ledger program.
    RECON_OPERATOR_KEY             Hex private key of the operator signer.
    RECON_CHAIN_ID                 Network chain id (default 11155111).
    RECON_STORE_PATH               SQLite file for the off-chain ledger.
    RECON_ALLOW_INSOLVENT_UPDATE   Bypass the invariant guard (default false).
    RECON_AUTO_MINT                Mint the reserve delta (default true).
    RECON_DEBOUNCE_SECONDS         Wait after a webhook trigger (default 5).
    RECON_PRICE_DRIFT_THRESHOLD    Relative drift before republishing (0.01).
    RECON_PRICE_MAX_STEP           Largest relative price change (0.20).
    RECON_CONFIRMATION_TIMEOUT     Seconds to wait per confirmation (60).
    RECON_RUN_TIMEOUT              Seconds for a whole run (60).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Mapping, Optional

from dotenv import dotenv_values

from reserve_recon.errors import ConfigError


DEFAULT_CHAIN_ID = 11155111  # Sepolia
DEFAULT_STATE_SEED = b"protocol_state"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class ReconcilerConfig:
    """Settings for one reconciler instance.

    Operator overrides:
        allow_insolvent_update  bypasses the invariant guard. Defaults off.
        auto_mint_enabled       disables minting independent of reconciliation.
    """
    rpc_url: str = ""
    program_address: str = ""
    operator_private_key: str = ""
    chain_id: int = DEFAULT_CHAIN_ID
    store_path: Path = Path("data/ledger.sqlite3")
    state_seed: bytes = DEFAULT_STATE_SEED
    allow_insolvent_update: bool = False
    auto_mint_enabled: bool = True
    debounce_seconds: float = 5.0
    price_drift_threshold: Decimal = Decimal("0.01")
    price_max_step: Decimal = Decimal("0.20")
    confirmation_timeout_seconds: float = 60.0
    run_timeout_seconds: float = 60.0

    def __post_init__(self) -> None:
        if not Decimal("0") < self.price_drift_threshold <= Decimal("1"):
            raise ConfigError(
                f"price_drift_threshold must be in (0, 1], got {self.price_drift_threshold}"
            )
        if self.price_max_step <= Decimal("0"):
            raise ConfigError(f"price_max_step must be positive, got {self.price_max_step}")
        for name in ("debounce_seconds", "confirmation_timeout_seconds", "run_timeout_seconds"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must be non-negative")
        if not self.state_seed:
            raise ConfigError("state_seed must not be empty")

    def require_chain(self) -> None:
        """Fail unless the fields needed to talk to the ledger are set."""
        missing = [
            name for name in ("rpc_url", "program_address", "operator_private_key")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigError(f"Missing ledger settings: {', '.join(missing)}")

    @classmethod
    def from_env(
        cls,
        env_file: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> ReconcilerConfig:
        """Build a config from a ``.env`` file overlaid with the environment.

        Values in ``environ`` (default ``os.environ``) win over the file.
        """
        values: dict[str, Optional[str]] = {}
        if env_file is not None and env_file.exists():
            values.update(dotenv_values(env_file))
        values.update(os.environ if environ is None else environ)

        def get(key: str) -> Optional[str]:
            raw = values.get(key)
            return raw.strip() if raw is not None and raw.strip() else None

        kwargs: dict[str, object] = {}
        for key, field_name in (
            ("RECON_RPC_URL", "rpc_url"),
            ("RECON_PROGRAM_ADDRESS", "program_address"),
            ("RECON_OPERATOR_KEY", "operator_private_key"),
        ):
            if get(key) is not None:
                kwargs[field_name] = get(key)

        if get("RECON_CHAIN_ID") is not None:
            kwargs["chain_id"] = _parse_int("RECON_CHAIN_ID", get("RECON_CHAIN_ID"))
        if get("RECON_STORE_PATH") is not None:
            kwargs["store_path"] = Path(get("RECON_STORE_PATH"))
        if get("RECON_ALLOW_INSOLVENT_UPDATE") is not None:
            kwargs["allow_insolvent_update"] = _parse_bool(
                "RECON_ALLOW_INSOLVENT_UPDATE", get("RECON_ALLOW_INSOLVENT_UPDATE"),
            )
        if get("RECON_AUTO_MINT") is not None:
            kwargs["auto_mint_enabled"] = _parse_bool("RECON_AUTO_MINT", get("RECON_AUTO_MINT"))
        for key, field_name in (
            ("RECON_DEBOUNCE_SECONDS", "debounce_seconds"),
            ("RECON_CONFIRMATION_TIMEOUT", "confirmation_timeout_seconds"),
            ("RECON_RUN_TIMEOUT", "run_timeout_seconds"),
        ):
            if get(key) is not None:
                kwargs[field_name] = _parse_float(key, get(key))
        for key, field_name in (
            ("RECON_PRICE_DRIFT_THRESHOLD", "price_drift_threshold"),
            ("RECON_PRICE_MAX_STEP", "price_max_step"),
        ):
            if get(key) is not None:
                kwargs[field_name] = _parse_decimal(key, get(key))

        return cls(**kwargs)


def _parse_bool(key: str, raw: str) -> bool:
    lowered = raw.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigError(f"{key}: expected a boolean, got {raw!r}")


def _parse_int(key: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key}: expected an integer, got {raw!r}") from exc


def _parse_float(key: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{key}: expected a number, got {raw!r}") from exc


def _parse_decimal(key: str, raw: str) -> Decimal:
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise ConfigError(f"{key}: expected a decimal, got {raw!r}") from exc
