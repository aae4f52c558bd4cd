"""Token balance, allowance and unit helpers."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Dict, Tuple, Union

from web3 import Web3
from web3.contract import Contract

from bridgeswap.contracts import load_contract_abi
from bridgeswap.core.utils import ensure_web3_connected


def get_contract(web3: Web3, token_address: str) -> Contract:
    """Return a cached ERC20 contract instance for ``token_address``."""
    ensure_web3_connected(web3)
    return _get_or_create_contract(web3, token_address)


_CONTRACT_CACHE: Dict[Tuple[int, str], Contract] = {}


def _get_or_create_contract(web3: Web3, token_address: str) -> Contract:
    checksum_address = Web3.to_checksum_address(token_address)
    key = (id(web3), checksum_address)
    contract = _CONTRACT_CACHE.get(key)
    if contract is None:
        contract = web3.eth.contract(address=checksum_address, abi=load_contract_abi("erc20.json"))
        _CONTRACT_CACHE[key] = contract
    return contract


def balance_of(web3: Web3, token_address: str, owner: str) -> int:
    """Fetch the ERC20 balance."""
    contract = get_contract(web3, token_address)
    return contract.functions.balanceOf(Web3.to_checksum_address(owner)).call()


def allowance_of(web3: Web3, token_address: str, owner: str, spender: str) -> int:
    """Fetch the ERC20 allowance."""
    contract = get_contract(web3, token_address)
    return contract.functions.allowance(
        Web3.to_checksum_address(owner),
        Web3.to_checksum_address(spender),
    ).call()


def parse_units(value: Union[str, Decimal, int], decimals: int) -> int:
    """Scale a human amount such as ``"100.5"`` to base units."""
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid token amount: {value}") from exc
    scaled = amount.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"{value} has more than {decimals} decimal places")
    if scaled < 0:
        raise ValueError(f"Token amount must not be negative: {value}")
    return int(scaled)


def format_units(value: int, decimals: int) -> str:
    """Render base units as a human amount, e.g. ``100000000`` at 6 decimals -> ``"100"``."""
    amount = Decimal(value).scaleb(-decimals)
    text = format(amount, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


__all__ = ["allowance_of", "balance_of", "format_units", "get_contract", "parse_units"]
