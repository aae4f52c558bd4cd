"""Destination-chain actions carried inside the bridge message.

Each action knows how to rebuild its calldata once the bridged output amount
is known, so the approval and the exchange always reflect the amount that will
actually arrive on the destination chain.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from web3 import Web3

from bridgeswap.core.calldata import (
    DEFAULT_SLIPPAGE_BPS,
    _checked_address,
    _checked_pool_index,
    _checked_slippage,
    build_exchange_call,
    encode_approve_call,
)
from bridgeswap.core.reader import ContractReader
from bridgeswap.core.utils import get_logger

LOGGER = get_logger("bridgeswap.actions")

MULTICALL_INSTRUCTIONS_TYPE = "((address,bytes,uint256)[],address)"


@dataclass(frozen=True)
class ActionCall:
    """A materialised call executed by the destination multicall handler."""

    target: str
    call_data: bytes
    value: int = 0


class CrossChainAction(abc.ABC):
    """A destination-chain call whose calldata depends on the bridged amount."""

    kind: str = "action"

    @property
    @abc.abstractmethod
    def target(self) -> str:
        """Contract the call is sent to."""

    @property
    def value(self) -> int:
        return 0

    @abc.abstractmethod
    async def recompute(self, new_amount: int) -> bytes:
        """Return calldata rebuilt for ``new_amount``."""

    async def materialize(self, new_amount: int) -> ActionCall:
        call_data = await self.recompute(new_amount)
        return ActionCall(target=self.target, call_data=call_data, value=self.value)


class ApprovalAction(CrossChainAction):
    """``token.approve(spender, amount)``."""

    kind = "approve"

    def __init__(self, *, token: str, spender: str) -> None:
        self.token = _checked_address(token, field_name="token")
        self.spender = _checked_address(spender, field_name="spender")

    @property
    def target(self) -> str:
        return self.token

    async def recompute(self, new_amount: int) -> bytes:
        return encode_approve_call(self.spender, new_amount)


class ExchangeAction(CrossChainAction):
    """``pool.exchange(i, j, amount, min_dy, receiver)`` with a fresh quote per call."""

    kind = "exchange"

    def __init__(
        self,
        *,
        pool: str,
        i: int,
        j: int,
        receiver: str,
        reader: ContractReader,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
        quote_timeout: Optional[float] = None,
    ) -> None:
        self.pool = _checked_address(pool, field_name="pool")
        self.i = _checked_pool_index(i, field_name="i")
        self.j = _checked_pool_index(j, field_name="j")
        self.receiver = _checked_address(receiver, field_name="receiver")
        self.reader = reader
        self.slippage_bps = _checked_slippage(slippage_bps)
        self.quote_timeout = quote_timeout

    @property
    def target(self) -> str:
        return self.pool

    async def recompute(self, new_amount: int) -> bytes:
        return await build_exchange_call(
            self.reader,
            self.pool,
            self.i,
            self.j,
            new_amount,
            self.receiver,
            slippage_bps=self.slippage_bps,
            timeout=self.quote_timeout,
        )


def encode_multicall_message(calls: Sequence[ActionCall], fallback_recipient: str) -> bytes:
    """ABI-encode the instructions consumed by the Across multicall handler."""
    instructions = (
        [(Web3.to_checksum_address(call.target), bytes(call.call_data), int(call.value)) for call in calls],
        Web3.to_checksum_address(fallback_recipient),
    )
    return Web3().codec.encode([MULTICALL_INSTRUCTIONS_TYPE], [instructions])


@dataclass(frozen=True)
class CrossChainMessage:
    """Ordered actions plus the address that receives funds if any action fails."""

    actions: Tuple[CrossChainAction, ...]
    fallback_recipient: str

    async def materialize(self, amount: int) -> Tuple[ActionCall, ...]:
        """Rebuild every action against ``amount``, in order."""
        calls = []
        for action in self.actions:
            call = await action.materialize(amount)
            LOGGER.info("Built %s call for %s (%s bytes)", action.kind, call.target, len(call.call_data))
            calls.append(call)
        return tuple(calls)

    async def encode(self, amount: int) -> bytes:
        calls = await self.materialize(amount)
        return encode_multicall_message(calls, self.fallback_recipient)


__all__ = [
    "ActionCall",
    "ApprovalAction",
    "CrossChainAction",
    "CrossChainMessage",
    "ExchangeAction",
    "encode_multicall_message",
]
