"""Configuration loading utilities for YAML-based ledger settings."""

from dataclasses import dataclass
import json
import os
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from .logging_config import get_logger


logger = get_logger(__name__)
_BASE_DIR = Path(__file__).resolve().parent.parent
_CONFIG_PATH = _BASE_DIR / "config.yml"
CONFIG_ENV_VAR = "MICROLEND_CONFIG"

DEFAULT_OWNER_ADDRESS = "0x00000000000000000000000000000000000000a1"
DEFAULT_LEDGER_ADDRESS = "0x00000000000000000000000000000000000000f0"
DEFAULT_LIQUIDATION_THRESHOLD_PCT = 50
DEFAULT_LOAN_TO_VALUE_PCT = 75


@dataclass(frozen=True)
class AppSettings:
    """Application settings loaded from YAML configuration file."""

    app_name: str
    debug: bool
    host: str
    port: int
    log_level: str
    owner_address: str
    ledger_address: str
    liquidation_threshold_pct: int
    loan_to_value_pct: int
    restrict_funding_to_owner: bool
    token_name: str
    token_symbol: str
    token_decimals: int
    initial_ledger_balance: int
    web3_enabled: bool
    rpc_url: Optional[str]
    token_contract_address: Optional[str]
    token_abi_json: str
    signer_address: Optional[str]
    signer_private_key: Optional[str]
    chain_id: int
    gas_limit: int
    gas_price_gwei: int
    receipt_timeout_sec: int
    liquidator_enabled: bool
    liquidator_poll_interval_sec: int


def _to_bool(value: Any, default: bool = False) -> bool:
    """Convert value to bool with a default fallback."""
    try:
        if isinstance(value, bool):
            return value
        return value.strip().lower() in {"1", "true", "yes", "on"}
    except (AttributeError, ValueError):
        logger.warning("Invalid boolean value '%s'. Using default=%s", value, default)
        return default


def _to_int(value: Any, default: int) -> int:
    """Convert value to int with a default fallback."""
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid integer value '%s'. Using default=%s", value, default)
        return default


def _to_bounded_int(value: Any, default: int, lower: int, upper: int, name: str) -> int:
    """Convert value to int and fall back to default when outside [lower, upper]."""
    result = _to_int(value, default)
    if result < lower or result > upper:
        logger.warning(
            "Setting %s=%s outside [%d, %d]. Using default=%s",
            name,
            result,
            lower,
            upper,
            default,
        )
        return default
    return result


def _to_json_string(value: Any, default: str = "[]") -> str:
    """Convert value into JSON string for ABI compatibility."""
    try:
        if value is None:
            return default
        if isinstance(value, str):
            return value
        return json.dumps(value)
    except (TypeError, ValueError):
        logger.exception("Failed to serialize value as JSON string.")
        return default


def _resolve_config_path(path: Optional[Union[str, Path]]) -> Path:
    """Pick explicit path, then environment override, then packaged default."""
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return _CONFIG_PATH


def _read_config(path: Optional[Union[str, Path]] = None) -> dict:
    """Read and parse YAML configuration."""
    config_path = _resolve_config_path(path)
    try:
        with config_path.open("r", encoding="utf-8") as config_file:
            config_data = yaml.safe_load(config_file) or {}
        logger.info("Configuration loaded from %s", config_path)
        return config_data
    except FileNotFoundError:
        logger.warning("Config file not found at %s. Falling back to defaults.", config_path)
        return {}
    except yaml.YAMLError:
        logger.exception("Failed to parse config file at %s", config_path)
        return {}


def get_env(key: str, default: Optional[str] = None, path: Optional[Union[str, Path]] = None) -> Optional[str]:
    """Config reader using dot-notation keys, e.g. ``ledger.owner_address``."""
    data = _read_config(path)
    current: Any = data
    for part in key.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    if current is None:
        return default
    return str(current)


def load_settings(path: Optional[Union[str, Path]] = None) -> AppSettings:
    """Load and validate application settings from ``config.yml``."""
    config = _read_config(path)
    app_cfg = config.get("app") or {}
    ledger_cfg = config.get("ledger") or {}
    token_cfg = config.get("token") or {}
    web3_cfg = config.get("web3") or {}
    liquidator_cfg = config.get("liquidator") or {}

    return AppSettings(
        app_name=str(app_cfg.get("name", "Microlend Ledger API")),
        debug=_to_bool(app_cfg.get("debug", False), False),
        host=str(app_cfg.get("host", "127.0.0.1")),
        port=_to_int(app_cfg.get("port", 8000), 8000),
        log_level=str(app_cfg.get("log_level", "INFO")),
        owner_address=str(ledger_cfg.get("owner_address", DEFAULT_OWNER_ADDRESS)),
        ledger_address=str(ledger_cfg.get("ledger_address", DEFAULT_LEDGER_ADDRESS)),
        liquidation_threshold_pct=_to_bounded_int(
            ledger_cfg.get("liquidation_threshold_pct", DEFAULT_LIQUIDATION_THRESHOLD_PCT),
            DEFAULT_LIQUIDATION_THRESHOLD_PCT,
            1,
            100,
            "ledger.liquidation_threshold_pct",
        ),
        loan_to_value_pct=_to_bounded_int(
            ledger_cfg.get("loan_to_value_pct", DEFAULT_LOAN_TO_VALUE_PCT),
            DEFAULT_LOAN_TO_VALUE_PCT,
            0,
            100,
            "ledger.loan_to_value_pct",
        ),
        restrict_funding_to_owner=_to_bool(ledger_cfg.get("restrict_funding_to_owner", False), False),
        token_name=str(token_cfg.get("name", "Microlend Credit Token")),
        token_symbol=str(token_cfg.get("symbol", "MLC")),
        token_decimals=_to_int(token_cfg.get("decimals", 18), 18),
        initial_ledger_balance=max(0, _to_int(token_cfg.get("initial_ledger_balance", 0), 0)),
        web3_enabled=_to_bool(web3_cfg.get("enabled", False), False),
        rpc_url=web3_cfg.get("rpc_url"),
        token_contract_address=web3_cfg.get("token_contract_address"),
        token_abi_json=_to_json_string(web3_cfg.get("token_abi_json"), default="[]"),
        signer_address=web3_cfg.get("signer_address"),
        signer_private_key=web3_cfg.get("signer_private_key"),
        chain_id=_to_int(web3_cfg.get("chain_id", 97), 97),
        gas_limit=_to_int(web3_cfg.get("gas_limit", 300000), 300000),
        gas_price_gwei=_to_int(web3_cfg.get("gas_price_gwei", 10), 10),
        receipt_timeout_sec=_to_int(web3_cfg.get("receipt_timeout_sec", 120), 120),
        liquidator_enabled=_to_bool(liquidator_cfg.get("enabled", False), False),
        liquidator_poll_interval_sec=max(1, _to_int(liquidator_cfg.get("poll_interval_sec", 60), 60)),
    )
