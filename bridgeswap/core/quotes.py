"""Quoting utilities for the Across bridge API."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

import requests
from web3 import Web3

from bridgeswap.config import IntentConfig
from bridgeswap.core.utils import get_logger, read_json_object

LOGGER = get_logger("bridgeswap.quotes")


@dataclass(frozen=True)
class BridgeQuote:
    """Fee quote for a single Across deposit."""

    input_amount: int
    output_amount: int
    total_relay_fee: int
    quote_timestamp: int
    fill_deadline: int
    exclusive_relayer: str
    exclusivity_deadline: int
    spoke_pool: str
    raw: Mapping[str, Any] = field(repr=False)


def _parse_quote(payload: Mapping[str, Any], amount: int) -> BridgeQuote:
    try:
        total_fee = int(payload["totalRelayFee"]["total"])
        output_amount = int(payload["outputAmount"]) if payload.get("outputAmount") is not None else amount - total_fee
        return BridgeQuote(
            input_amount=amount,
            output_amount=output_amount,
            total_relay_fee=total_fee,
            quote_timestamp=int(payload["timestamp"]),
            fill_deadline=int(payload["fillDeadline"]),
            exclusive_relayer=Web3.to_checksum_address(payload["exclusiveRelayer"]),
            exclusivity_deadline=int(payload["exclusivityDeadline"]),
            spoke_pool=Web3.to_checksum_address(payload["spokePoolAddress"]),
            raw=payload,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"Across API response is malformed: {exc}") from exc


def fetch_bridge_quote(
    *,
    config: IntentConfig,
    amount: int,
    recipient: str,
    message: bytes = b"",
) -> BridgeQuote:
    """Request suggested fees for bridging ``amount`` of the configured route."""
    url = f"{config.across.api_url}/suggested-fees"
    params: Dict[str, Any] = {
        "inputToken": config.route.input_token,
        "outputToken": config.route.output_token,
        "originChainId": config.origin_chain.chain_id,
        "destinationChainId": config.destination_chain.chain_id,
        "amount": str(amount),
        "recipient": Web3.to_checksum_address(recipient),
    }
    if message:
        params["message"] = f"0x{message.hex()}"

    try:
        response = requests.get(url, params=params, timeout=config.defaults.api_timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise ConnectionError(f"Failed to fetch Across quote from {url}: {exc}") from exc

    payload = read_json_object(response, source="Across API")
    if payload.get("isAmountTooLow"):
        raise ValueError(f"Across rejected amount {amount} as too low to bridge")

    quote = _parse_quote(payload, amount)
    if quote.output_amount <= 0:
        raise ValueError(f"Across fee {quote.total_relay_fee} consumes the whole input amount {amount}")

    LOGGER.info(
        "Across quote input=%s output=%s fee=%s spokePool=%s",
        quote.input_amount,
        quote.output_amount,
        quote.total_relay_fee,
        quote.spoke_pool,
    )
    return quote


__all__ = ["BridgeQuote", "fetch_bridge_quote"]
