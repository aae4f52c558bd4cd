"""Configuration utilities for bridgeswap."""

from .loader import (
    AcrossConfig,
    ChainConfig,
    ConfigError,
    DefaultsConfig,
    IntentConfig,
    PoolConfig,
    RouteConfig,
    load_config,
    parse_config,
)

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
