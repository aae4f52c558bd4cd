"""Read-only chain access used for live pool quotes."""

from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence

from web3 import AsyncHTTPProvider, AsyncWeb3

from bridgeswap.core.utils import get_logger

LOGGER = get_logger("bridgeswap.reader")


class ContractReader(Protocol):
    """Anything that can call a view function and return its decoded result."""

    async def read_function(
        self,
        address: str,
        abi: Sequence[Mapping[str, Any]],
        function_name: str,
        args: Sequence[Any],
    ) -> Any:
        ...


class Web3ContractReader:
    """``ContractReader`` backed by an ``AsyncWeb3`` instance."""

    def __init__(self, web3: AsyncWeb3) -> None:
        self.web3 = web3

    @classmethod
    def from_rpc_url(cls, rpc_url: str) -> "Web3ContractReader":
        return cls(AsyncWeb3(AsyncHTTPProvider(rpc_url)))

    async def ensure_chain(self, expected_chain_id: int) -> None:
        """Validate the endpoint is reachable and serves ``expected_chain_id``."""
        if not await self.web3.is_connected():
            raise ConnectionError("Failed to connect to the destination RPC endpoint")
        chain_id = await self.web3.eth.chain_id
        if chain_id != expected_chain_id:
            raise ValueError(f"RPC chain ID mismatch: expected {expected_chain_id}, got {chain_id}")

    async def read_function(
        self,
        address: str,
        abi: Sequence[Mapping[str, Any]],
        function_name: str,
        args: Sequence[Any],
    ) -> Any:
        contract = self.web3.eth.contract(address=address, abi=abi)
        function = getattr(contract.functions, function_name)
        LOGGER.debug("eth_call %s.%s%s", address, function_name, tuple(args))
        return await function(*args).call()

    async def get_transaction_receipt(self, tx_hash: str) -> Mapping[str, Any]:
        return await self.web3.eth.get_transaction_receipt(tx_hash)


__all__ = ["ContractReader", "Web3ContractReader"]
