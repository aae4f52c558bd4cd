"""Calldata builders for the destination-chain approval and Curve exchange.

The two calls executed after the bridge fill are an ERC-20 ``approve`` of the
pool and a Curve ``exchange``. The exchange minimum output is always derived
from a fresh ``get_dy`` quote for the exact amount being swapped, discounted by
a slippage tolerance expressed in basis points.
"""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Dict, Optional, Tuple, Type

from web3 import Web3
from web3.contract import Contract

from bridgeswap.contracts import load_contract_abi
from bridgeswap.core.reader import ContractReader
from bridgeswap.core.utils import get_logger, hex_to_bytes

LOGGER = get_logger("bridgeswap.calldata")

BPS_DENOMINATOR = 10_000
DEFAULT_SLIPPAGE_BPS = 3

MAX_UINT256 = 2**256 - 1
INT128_MIN = -(2**127)
INT128_MAX = 2**127 - 1


class InvalidParameterError(ValueError):
    """Raised for malformed inputs before any encoding or network access."""


class QuoteUnavailableError(ConnectionError):
    """Raised when the on-chain ``get_dy`` quote cannot be obtained."""


@functools.lru_cache(maxsize=None)
def _abi_contract(filename: str) -> Type[Contract]:
    return Web3().eth.contract(abi=load_contract_abi(filename))


def _checked_address(value: Any, *, field_name: str) -> str:
    if not isinstance(value, str):
        raise InvalidParameterError(f"{field_name} must be a hex address string, got {type(value).__name__}")
    try:
        return Web3.to_checksum_address(value)
    except (TypeError, ValueError) as exc:
        raise InvalidParameterError(f"Invalid address for {field_name}: {value}") from exc


def _checked_amount(value: Any, *, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParameterError(f"{field_name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise InvalidParameterError(f"{field_name} must not be negative: {value}")
    if value > MAX_UINT256:
        raise InvalidParameterError(f"{field_name} does not fit in uint256: {value}")
    return value


def _checked_pool_index(value: Any, *, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParameterError(f"{field_name} must be an integer, got {type(value).__name__}")
    if not INT128_MIN <= value <= INT128_MAX:
        raise InvalidParameterError(f"{field_name} does not fit in int128: {value}")
    return value


def _checked_slippage(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParameterError(f"slippage_bps must be an integer, got {type(value).__name__}")
    if not 0 <= value < BPS_DENOMINATOR:
        raise InvalidParameterError(f"slippage_bps must be in [0, {BPS_DENOMINATOR}), got {value}")
    return value


def adjust_min_output(amount: int, slippage_bps: int = DEFAULT_SLIPPAGE_BPS) -> int:
    """Discount ``amount`` by ``slippage_bps`` and round down to the nearest unit."""
    amount = _checked_amount(amount, field_name="amount")
    slippage_bps = _checked_slippage(slippage_bps)
    return amount * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


def encode_approve_call(spender: str, amount: int) -> bytes:
    """Return calldata for ``approve(address spender, uint256 value)``."""
    spender = _checked_address(spender, field_name="spender")
    amount = _checked_amount(amount, field_name="amount")
    contract = _abi_contract("erc20.json")
    return hex_to_bytes(contract.encode_abi("approve", args=[spender, amount]))


async def quote_expected_output(
    reader: ContractReader,
    pool: str,
    i: int,
    j: int,
    dx: int,
    *,
    timeout: Optional[float] = None,
) -> int:
    """Return the pool's ``get_dy(i, j, dx)`` quote."""
    pool = _checked_address(pool, field_name="pool")
    i = _checked_pool_index(i, field_name="i")
    j = _checked_pool_index(j, field_name="j")
    dx = _checked_amount(dx, field_name="dx")

    request = reader.read_function(pool, load_contract_abi("curve_pool.json"), "get_dy", [i, j, dx])
    try:
        if timeout is None:
            result = await request
        else:
            result = await asyncio.wait_for(request, timeout)
    except QuoteUnavailableError:
        raise
    except asyncio.TimeoutError as exc:
        raise QuoteUnavailableError(f"get_dy on {pool} timed out") from exc
    except Exception as exc:
        raise QuoteUnavailableError(f"get_dy on {pool} failed: {exc}") from exc

    if isinstance(result, bool) or not isinstance(result, int) or not 0 <= result <= MAX_UINT256:
        raise QuoteUnavailableError(f"get_dy on {pool} returned an undecodable result: {result!r}")

    LOGGER.info("Quoted get_dy(%s, %s, %s) on %s = %s", i, j, dx, pool, result)
    return result


async def build_exchange_call(
    reader: ContractReader,
    pool: str,
    i: int,
    j: int,
    dx: int,
    receiver: str,
    *,
    slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
    timeout: Optional[float] = None,
) -> bytes:
    """Return calldata for ``exchange(i, j, _dx, _min_dy, _receiver)``.

    ``_min_dy`` comes from a fresh ``get_dy`` quote for ``dx`` discounted by
    ``slippage_bps``. Nothing is encoded when the quote fails.
    """
    pool = _checked_address(pool, field_name="pool")
    i = _checked_pool_index(i, field_name="i")
    j = _checked_pool_index(j, field_name="j")
    dx = _checked_amount(dx, field_name="dx")
    receiver = _checked_address(receiver, field_name="receiver")
    slippage_bps = _checked_slippage(slippage_bps)

    expected = await quote_expected_output(reader, pool, i, j, dx, timeout=timeout)
    min_dy = adjust_min_output(expected, slippage_bps)

    contract = _abi_contract("curve_pool.json")
    return hex_to_bytes(contract.encode_abi("exchange", args=[i, j, dx, min_dy, receiver]))


def _decode_call(filename: str, function_name: str, data: bytes) -> Dict[str, Any]:
    contract = _abi_contract(filename)
    try:
        function, params = contract.decode_function_input(data)
    except Exception as exc:
        raise InvalidParameterError(f"Calldata is not a valid {function_name} call: {exc}") from exc
    if function.abi["name"] != function_name:
        raise InvalidParameterError(f"Calldata encodes {function.abi['name']}, expected {function_name}")
    return params


def decode_approve_call(data: bytes) -> Tuple[str, int]:
    """Decode ``approve`` calldata into ``(spender, amount)``."""
    params = _decode_call("erc20.json", "approve", data)
    return Web3.to_checksum_address(params["spender"]), int(params["value"])


def decode_exchange_call(data: bytes) -> Tuple[int, int, int, int, str]:
    """Decode ``exchange`` calldata into ``(i, j, dx, min_dy, receiver)``."""
    params = _decode_call("curve_pool.json", "exchange", data)
    return (
        int(params["i"]),
        int(params["j"]),
        int(params["_dx"]),
        int(params["_min_dy"]),
        Web3.to_checksum_address(params["_receiver"]),
    )


__all__ = [
    "BPS_DENOMINATOR",
    "DEFAULT_SLIPPAGE_BPS",
    "InvalidParameterError",
    "QuoteUnavailableError",
    "adjust_min_output",
    "build_exchange_call",
    "decode_approve_call",
    "decode_exchange_call",
    "encode_approve_call",
    "quote_expected_output",
]
