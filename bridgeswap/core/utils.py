"""Utility helpers shared across bridgeswap core modules."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from web3 import Web3


def get_logger(name: str = "bridgeswap") -> logging.Logger:
    """Return a configured logger that prints to stdout."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger


def ensure_web3_connected(web3: Web3, *, expected_chain_id: Optional[int] = None) -> None:
    """Validate that ``web3`` is connected and optionally matches the expected chain id."""
    if not web3.is_connected():
        raise ConnectionError("Failed to connect to the configured RPC endpoint")
    if expected_chain_id is not None and web3.eth.chain_id != expected_chain_id:
        raise ValueError(f"RPC chain ID mismatch: expected {expected_chain_id}, got {web3.eth.chain_id}")


def hex_to_bytes(data: str) -> bytes:
    """Convert a hex string (with or without ``0x``) to bytes."""
    data = data[2:] if data.startswith("0x") else data
    return bytes.fromhex(data)


def read_json_object(response: Any, *, source: str) -> Mapping[str, Any]:
    """Decode an HTTP response body that must be a JSON object."""
    try:
        payload = response.json()
    except ValueError as exc:
        raise ValueError(f"{source} response is malformed: body is not JSON") from exc
    if not isinstance(payload, Mapping):
        raise ValueError(f"{source} response is malformed: expected an object, got {type(payload).__name__}")
    return payload


def create_transaction_url(explorer_url: Optional[str], tx_hash: str) -> str:
    """Return the block explorer link for ``tx_hash``."""
    if not explorer_url:
        raise ValueError("Chain has no block explorer configured")
    base = explorer_url if explorer_url.endswith("/") else f"{explorer_url}/"
    tx_hex = tx_hash if tx_hash.startswith("0x") else f"0x{tx_hash}"
    return f"{base}tx/{tx_hex}"


__all__ = [
    "create_transaction_url",
    "ensure_web3_connected",
    "get_logger",
    "hex_to_bytes",
    "read_json_object",
]
