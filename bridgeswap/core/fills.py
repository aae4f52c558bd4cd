"""Destination fill tracking for submitted Across deposits."""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Type

import requests
from web3 import Web3
from web3.contract import Contract
from web3.logs import DISCARD

from bridgeswap.config import IntentConfig
from bridgeswap.contracts import load_contract_abi
from bridgeswap.core.utils import get_logger, read_json_object

LOGGER = get_logger("bridgeswap.fills")

FILLED = "filled"
PENDING = "pending"
TERMINAL_STATUSES = frozenset({FILLED, "expired", "refunded"})


@dataclass(frozen=True)
class DepositStatus:
    """Relay state of one deposit as reported by the Across API."""

    deposit_id: int
    status: str
    fill_tx: Optional[str] = None
    actions_succeeded: Optional[bool] = None
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@functools.lru_cache(maxsize=None)
def _handler_contract() -> Type[Contract]:
    return Web3().eth.contract(abi=load_contract_abi("multicall_handler.json"))


def fetch_deposit_status(*, config: IntentConfig, deposit_id: int) -> DepositStatus:
    """Query ``/deposit/status`` for a deposit made on the configured origin chain."""
    url = f"{config.across.api_url}/deposit/status"
    params: Dict[str, Any] = {
        "originChainId": config.origin_chain.chain_id,
        "depositId": deposit_id,
    }

    try:
        response = requests.get(url, params=params, timeout=config.defaults.api_timeout)
        # The API answers 404 until its indexer has seen the deposit.
        if response.status_code == 404:
            return DepositStatus(deposit_id=deposit_id, status=PENDING)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise ConnectionError(f"Failed to fetch Across deposit status from {url}: {exc}") from exc

    payload = read_json_object(response, source="Across deposit status")
    status = payload.get("status")
    if not isinstance(status, str):
        raise ValueError(f"Across deposit status response is malformed: status={status!r}")
    LOGGER.debug("Across deposit %s on chain %s: %s", deposit_id, config.origin_chain.chain_id, status)

    return DepositStatus(
        deposit_id=deposit_id,
        status=status,
        fill_tx=payload.get("fillTx") or None,
        raw=payload,
    )


def actions_succeeded(receipt: Mapping[str, Any], handler: str) -> bool:
    """Whether the fill in ``receipt`` ran the handler's calls without falling back.

    The multicall handler emits ``CallsFailed`` and forwards the bridged tokens to
    the fallback recipient when any destination call reverts.
    """
    if receipt.get("status") != 1:
        return False
    handler = Web3.to_checksum_address(handler)
    failures = _handler_contract().events.CallsFailed().process_receipt(receipt, errors=DISCARD)
    return not any(Web3.to_checksum_address(event["address"]) == handler for event in failures)


__all__ = ["DepositStatus", "FILLED", "PENDING", "TERMINAL_STATUSES", "actions_succeeded", "fetch_deposit_status"]
