"""Shared configuration loader for the launchpad client."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlparse

import yaml


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


DEFAULT_CONFIG_PATH = Path.home() / ".launchpad.yaml"
_CONFIG_PATH_OVERRIDE: Path | None = None

SEPOLIA_CHAIN_ID = 11155111
DEFAULT_GATEWAY_CHAIN_ID = 55815
DEFAULT_MULTICALL_ADDRESS = "0xcA11bde05977b3631167028862bE2a173976CA11"
DEFAULT_RELAYER_URL = "https://relayer.testnet.zama.cloud"
DEFAULT_DECRYPTION_CONTRACT = "0xb6E160B1ff80D67Bfe90A85eE06Ce0A2613607D1"
DEFAULT_DURATION_DAYS = 10
DEFAULT_TOKEN_DECIMALS = 6


@dataclass
class LaunchpadConfig:
    """Connection details and protocol constants for the launchpad."""

    rpc_url: str
    chain_id: int = SEPOLIA_CHAIN_ID
    factory_address: str | None = None
    multicall_address: str = DEFAULT_MULTICALL_ADDRESS
    relayer_url: str = DEFAULT_RELAYER_URL
    gateway_chain_id: int = DEFAULT_GATEWAY_CHAIN_ID
    decryption_contract: str = DEFAULT_DECRYPTION_CONTRACT
    private_key: str | None = None
    duration_days: int = DEFAULT_DURATION_DAYS
    token_decimals: int = DEFAULT_TOKEN_DECIMALS
    receipt_timeout_seconds: float = 180.0
    receipt_poll_interval_seconds: float = 2.0
    request_timeout_seconds: float = 30.0

    @property
    def is_factory_configured(self) -> bool:
        return bool(self.factory_address)

    def require_factory(self) -> str:
        if not self.factory_address:
            raise ConfigurationError(
                "Factory address is not configured; set LAUNCHPAD_FACTORY_ADDRESS or launchpad.factory_address"
            )
        return self.factory_address


def set_default_config_path(path: str | Path | None) -> None:
    """Remember a user-supplied config path for future loads."""

    global _CONFIG_PATH_OVERRIDE
    _CONFIG_PATH_OVERRIDE = Path(path).expanduser() if path else None


def _load_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigurationError(f"Config file not found: {path}")
        return {}

    try:
        loaded = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - delegated to PyYAML
        raise ConfigurationError(f"Invalid YAML in config file {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigurationError(
            f"Expected {path} to contain a YAML object with a 'launchpad' section"
        )
    return loaded


def _coerce_int(raw: Any, *, field: str, source: str) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid {field} in {source}: {raw}") from exc
    if value < 0:
        raise ConfigurationError(f"{field} must not be negative (got {value} from {source})")
    return value


def _coerce_float(raw: Any, *, field: str, source: str) -> float | None:
    if raw is None or raw == "":
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid {field} in {source}: {raw}") from exc
    if value <= 0:
        raise ConfigurationError(f"{field} must be positive (got {value} from {source})")
    return value


def _first_value(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value is not None and value != "":
            return value
    return default


def _validate_url(raw: str, *, field: str) -> str:
    parsed = urlparse(raw)
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        raise ConfigurationError(f"Invalid {field} URL: {raw}")
    return raw.rstrip("/")


def _validate_address(raw: str | None, *, field: str) -> str | None:
    if raw is None:
        return None
    if isinstance(raw, int) and not isinstance(raw, bool):
        # YAML reads unquoted 0x... values as integers.
        raise ConfigurationError(
            f"Invalid {field}: YAML parsed it as the number {raw}; quote hex addresses, "
            f"e.g. {field}: \"0x...\""
        )
    value = str(raw).strip()
    body = value[2:] if value.lower().startswith("0x") else ""
    if len(body) != 40:
        raise ConfigurationError(f"Invalid {field}: {raw}")
    try:
        int(body, 16)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid {field}: {raw}") from exc
    return value


def _validate_private_key(raw: Any) -> str | None:
    if raw is None:
        return None
    if isinstance(raw, int) and not isinstance(raw, bool):
        raise ConfigurationError(
            "Invalid private_key: YAML parsed it as a number; quote the key, "
            "e.g. private_key: \"0x...\""
        )
    return str(raw).strip()


_ENV_KEYS = {
    "rpc_url": "LAUNCHPAD_RPC_URL",
    "chain_id": "LAUNCHPAD_CHAIN_ID",
    "factory_address": "LAUNCHPAD_FACTORY_ADDRESS",
    "multicall_address": "LAUNCHPAD_MULTICALL_ADDRESS",
    "relayer_url": "LAUNCHPAD_RELAYER_URL",
    "gateway_chain_id": "LAUNCHPAD_GATEWAY_CHAIN_ID",
    "decryption_contract": "LAUNCHPAD_DECRYPTION_CONTRACT",
    "private_key": "LAUNCHPAD_PRIVATE_KEY",
    "duration_days": "LAUNCHPAD_DURATION_DAYS",
    "token_decimals": "LAUNCHPAD_TOKEN_DECIMALS",
    "receipt_timeout_seconds": "LAUNCHPAD_RECEIPT_TIMEOUT",
    "receipt_poll_interval_seconds": "LAUNCHPAD_RECEIPT_POLL_INTERVAL",
    "request_timeout_seconds": "LAUNCHPAD_REQUEST_TIMEOUT",
}


def load_launchpad_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> LaunchpadConfig:
    """Load launchpad configuration from overrides, environment and optional YAML."""

    env_map = os.environ if env is None else env
    explicit_path = config_path is not None or _CONFIG_PATH_OVERRIDE is not None
    path = (
        Path(config_path).expanduser()
        if config_path is not None
        else _CONFIG_PATH_OVERRIDE or DEFAULT_CONFIG_PATH
    )

    file_config = _load_config_file(path, required=explicit_path)
    section = file_config.get("launchpad", {}) if isinstance(file_config, dict) else {}
    if section is None:
        section = {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Expected 'launchpad' to be a mapping in {path}")

    override_map = dict(overrides or {})

    def resolve(field: str) -> Any:
        return _first_value(
            override_map.get(field), env_map.get(_ENV_KEYS[field]), section.get(field)
        )

    raw_rpc_url = resolve("rpc_url")
    if not raw_rpc_url:
        raise ConfigurationError(
            "An RPC endpoint must be provided via LAUNCHPAD_RPC_URL or launchpad.rpc_url in the config file"
        )

    source = f"overrides, environment or {path}"
    return LaunchpadConfig(
        rpc_url=_validate_url(str(raw_rpc_url), field="rpc_url"),
        chain_id=_first_value(
            _coerce_int(resolve("chain_id"), field="chain_id", source=source),
            default=SEPOLIA_CHAIN_ID,
        ),
        factory_address=_validate_address(resolve("factory_address"), field="factory_address"),
        multicall_address=_validate_address(
            _first_value(resolve("multicall_address"), default=DEFAULT_MULTICALL_ADDRESS),
            field="multicall_address",
        ),
        relayer_url=_validate_url(
            str(_first_value(resolve("relayer_url"), default=DEFAULT_RELAYER_URL)),
            field="relayer_url",
        ),
        gateway_chain_id=_first_value(
            _coerce_int(resolve("gateway_chain_id"), field="gateway_chain_id", source=source),
            default=DEFAULT_GATEWAY_CHAIN_ID,
        ),
        decryption_contract=_validate_address(
            _first_value(resolve("decryption_contract"), default=DEFAULT_DECRYPTION_CONTRACT),
            field="decryption_contract",
        ),
        private_key=_validate_private_key(resolve("private_key")),
        duration_days=_first_value(
            _coerce_int(resolve("duration_days"), field="duration_days", source=source),
            default=DEFAULT_DURATION_DAYS,
        ),
        token_decimals=_first_value(
            _coerce_int(resolve("token_decimals"), field="token_decimals", source=source),
            default=DEFAULT_TOKEN_DECIMALS,
        ),
        receipt_timeout_seconds=_first_value(
            _coerce_float(
                resolve("receipt_timeout_seconds"), field="receipt_timeout_seconds", source=source
            ),
            default=180.0,
        ),
        receipt_poll_interval_seconds=_first_value(
            _coerce_float(
                resolve("receipt_poll_interval_seconds"),
                field="receipt_poll_interval_seconds",
                source=source,
            ),
            default=2.0,
        ),
        request_timeout_seconds=_first_value(
            _coerce_float(
                resolve("request_timeout_seconds"), field="request_timeout_seconds", source=source
            ),
            default=30.0,
        ),
    )
