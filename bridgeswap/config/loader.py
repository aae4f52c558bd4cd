"""Config loader for bridgeswap."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, MutableMapping, Optional

from web3 import Web3

DEFAULT_CONFIG_PATH = Path("config.json")


class ConfigError(ValueError):
    """Raised when configuration data is invalid or missing."""


def _require_keys(data: Mapping[str, Any], keys: Iterable[str], context: str) -> None:
    missing = [key for key in keys if key not in data]
    if missing:
        raise ConfigError(f"{context} missing required keys: {', '.join(missing)}")


def _to_checksum(value: str, *, field_name: str) -> str:
    try:
        return Web3.to_checksum_address(value)
    except Exception as exc:  # web3 raises ValueError for malformed inputs
        raise ConfigError(f"Invalid address for {field_name}: {value}") from exc


@dataclass(frozen=True)
class ChainConfig:
    """Configuration for a blockchain network."""

    chain_id: int
    rpc_url: Optional[str] = None
    explorer_url: Optional[str] = None

    def ensure_rpc_url(self) -> str:
        """Return the RPC URL or raise if it is missing."""
        if not self.rpc_url:
            raise ConfigError(f"RPC URL required for chain {self.chain_id} but not configured")
        return self.rpc_url


@dataclass(frozen=True)
class RouteConfig:
    """Token pair bridged from the origin chain to the destination chain."""

    input_token: str
    output_token: str
    input_decimals: int


@dataclass(frozen=True)
class PoolConfig:
    """Curve pool swapped into on the destination chain."""

    address: str
    i: int
    j: int


@dataclass(frozen=True)
class AcrossConfig:
    """Across API endpoint and destination contracts."""

    api_url: str
    integrator_id: str
    multicall_handler: str


@dataclass(frozen=True)
class DefaultsConfig:
    """Default operational parameters."""

    input_amount: str
    slippage_bps: int
    api_timeout: int
    quote_timeout: float
    fill_poll_interval: float = 10.0
    fill_timeout: float = 900.0


@dataclass(frozen=True)
class IntentConfig:
    """Typed wrapper around the bridge-and-swap configuration."""

    origin_chain: ChainConfig
    destination_chain: ChainConfig
    route: RouteConfig
    pool: PoolConfig
    across: AcrossConfig
    defaults: DefaultsConfig
    raw: Mapping[str, Any] = field(repr=False)

    def to_dict(self) -> Dict[str, Any]:
        """Return the original configuration mapping."""
        return dict(self.raw)


def _load_json(path: Path) -> MutableMapping[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file contains invalid JSON: {path}") from exc


def _chain_config(data: Mapping[str, Any], context: str) -> ChainConfig:
    _require_keys(data, ["chain_id"], context)
    return ChainConfig(
        chain_id=int(data["chain_id"]),
        rpc_url=data.get("rpc_url") or None,
        explorer_url=data.get("explorer_url") or None,
    )


def _integrator_id(value: Any) -> str:
    text = str(value)
    body = text[2:] if text.startswith("0x") else text
    try:
        raw = bytes.fromhex(body)
    except ValueError as exc:
        raise ConfigError(f"across.integrator_id must be hex: {value}") from exc
    if len(raw) != 2:
        raise ConfigError(f"across.integrator_id must be 2 bytes: {value}")
    return f"0x{body.lower()}"


def parse_config(data: Mapping[str, Any]) -> IntentConfig:
    """Validate a configuration mapping and build an ``IntentConfig``."""
    _require_keys(data, ["chains", "route", "pool", "across", "defaults"], "config")

    chains = data["chains"]
    _require_keys(chains, ["origin", "destination"], "chains")
    origin_chain = _chain_config(chains["origin"], "origin chain")
    destination_chain = _chain_config(chains["destination"], "destination chain")
    if origin_chain.chain_id == destination_chain.chain_id:
        raise ConfigError("origin and destination chains must differ")

    route = data["route"]
    _require_keys(route, ["input_token", "output_token", "input_decimals"], "route")
    route_config = RouteConfig(
        input_token=_to_checksum(route["input_token"], field_name="route.input_token"),
        output_token=_to_checksum(route["output_token"], field_name="route.output_token"),
        input_decimals=int(route["input_decimals"]),
    )
    if not 0 <= route_config.input_decimals <= 77:
        raise ConfigError("route.input_decimals must be between 0 and 77")

    pool = data["pool"]
    _require_keys(pool, ["address", "i", "j"], "pool")
    pool_config = PoolConfig(
        address=_to_checksum(pool["address"], field_name="pool.address"),
        i=int(pool["i"]),
        j=int(pool["j"]),
    )
    if pool_config.i == pool_config.j:
        raise ConfigError("pool.i and pool.j must refer to different coins")

    across = data["across"]
    _require_keys(across, ["api_url", "integrator_id", "multicall_handler"], "across")
    across_config = AcrossConfig(
        api_url=str(across["api_url"]).rstrip("/"),
        integrator_id=_integrator_id(across["integrator_id"]),
        multicall_handler=_to_checksum(across["multicall_handler"], field_name="across.multicall_handler"),
    )

    defaults = data["defaults"]
    _require_keys(defaults, ["input_amount", "api_timeout"], "defaults")
    defaults_config = DefaultsConfig(
        input_amount=str(defaults["input_amount"]),
        slippage_bps=int(defaults.get("slippage_bps", 3)),
        api_timeout=int(defaults["api_timeout"]),
        quote_timeout=float(defaults.get("quote_timeout", 10)),
        fill_poll_interval=float(defaults.get("fill_poll_interval", 10)),
        fill_timeout=float(defaults.get("fill_timeout", 900)),
    )
    if not 0 <= defaults_config.slippage_bps < 10_000:
        raise ConfigError("defaults.slippage_bps must be between 0 and 9999")
    if defaults_config.api_timeout <= 0:
        raise ConfigError("defaults.api_timeout must be positive")
    if defaults_config.quote_timeout <= 0:
        raise ConfigError("defaults.quote_timeout must be positive")
    if defaults_config.fill_poll_interval < 0:
        raise ConfigError("defaults.fill_poll_interval must not be negative")
    if defaults_config.fill_timeout <= 0:
        raise ConfigError("defaults.fill_timeout must be positive")

    return IntentConfig(
        origin_chain=origin_chain,
        destination_chain=destination_chain,
        route=route_config,
        pool=pool_config,
        across=across_config,
        defaults=defaults_config,
        raw=data,
    )


def load_config(config_path: Optional[Path] = None) -> IntentConfig:
    """Load and validate bridge-and-swap configuration data."""
    return parse_config(_load_json(config_path or DEFAULT_CONFIG_PATH))


__all__ = [
    "AcrossConfig",
    "ChainConfig",
    "ConfigError",
    "DefaultsConfig",
    "IntentConfig",
    "PoolConfig",
    "RouteConfig",
    "load_config",
    "parse_config",
]
