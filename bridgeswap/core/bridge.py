"""Across deposit construction."""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Type

from web3 import Web3
from web3.contract import Contract
from web3.logs import DISCARD

from bridgeswap.config import IntentConfig
from bridgeswap.contracts import load_contract_abi
from bridgeswap.core.quotes import BridgeQuote
from bridgeswap.core.utils import get_logger, hex_to_bytes

LOGGER = get_logger("bridgeswap.bridge")

# Across attributes deposits to integrators through a suffix appended after the calldata.
INTEGRATOR_DELIMITER = bytes.fromhex("1dc0de")

# Upgraded SpokePools emit FundsDeposited; older deployments still emit V3FundsDeposited.
DEPOSIT_EVENTS = ("FundsDeposited", "V3FundsDeposited")


@functools.lru_cache(maxsize=None)
def _spoke_pool_contract() -> Type[Contract]:
    return Web3().eth.contract(abi=load_contract_abi("spoke_pool.json"))


@dataclass(frozen=True)
class DepositPlan:
    """Prepared SpokePool ``depositV3`` call."""

    call_target: str
    call_data: bytes
    native_value: int
    input_amount: int
    output_amount: int
    recipient: str
    message: bytes


def build_deposit(
    *,
    config: IntentConfig,
    depositor: str,
    quote: BridgeQuote,
    message: bytes = b"",
) -> DepositPlan:
    """Encode ``depositV3`` for ``quote`` carrying ``message`` to the destination."""
    depositor = Web3.to_checksum_address(depositor)
    recipient = config.across.multicall_handler if message else depositor

    encoded = _spoke_pool_contract().encode_abi(
        "depositV3",
        args=[
            depositor,
            recipient,
            config.route.input_token,
            config.route.output_token,
            quote.input_amount,
            quote.output_amount,
            config.destination_chain.chain_id,
            quote.exclusive_relayer,
            quote.quote_timestamp,
            quote.fill_deadline,
            quote.exclusivity_deadline,
            message,
        ],
    )
    call_data = hex_to_bytes(encoded) + INTEGRATOR_DELIMITER + hex_to_bytes(config.across.integrator_id)

    LOGGER.info(
        "Prepared deposit target=%s input=%s output=%s recipient=%s message=%s bytes",
        quote.spoke_pool,
        quote.input_amount,
        quote.output_amount,
        recipient,
        len(message),
    )

    return DepositPlan(
        call_target=quote.spoke_pool,
        call_data=call_data,
        native_value=0,
        input_amount=quote.input_amount,
        output_amount=quote.output_amount,
        recipient=recipient,
        message=message,
    )



def deposit_id_from_receipt(receipt: Mapping[str, Any], spoke_pool: str) -> Optional[int]:
    """Return the deposit id that ``spoke_pool`` emitted in ``receipt``, or ``None``."""
    spoke_pool = Web3.to_checksum_address(spoke_pool)
    events = _spoke_pool_contract().events
    for event_name in DEPOSIT_EVENTS:
        for event in getattr(events, event_name)().process_receipt(receipt, errors=DISCARD):
            if Web3.to_checksum_address(event["address"]) == spoke_pool:
                return int(event["args"]["depositId"])
    return None


__all__ = ["DEPOSIT_EVENTS", "DepositPlan", "INTEGRATOR_DELIMITER", "build_deposit", "deposit_id_from_receipt"]
