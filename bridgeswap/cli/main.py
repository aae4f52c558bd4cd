"""CLI entrypoint for executing the bridge-and-swap intent."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from dotenv import load_dotenv
from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError

from bridgeswap.config import ChainConfig, IntentConfig, load_config
from bridgeswap.core.actions import (
    ActionCall,
    ApprovalAction,
    CrossChainMessage,
    ExchangeAction,
    encode_multicall_message,
)
from bridgeswap.core.bridge import DepositPlan, build_deposit, deposit_id_from_receipt
from bridgeswap.core.calldata import decode_approve_call, decode_exchange_call
from bridgeswap.core.fills import FILLED, DepositStatus, actions_succeeded, fetch_deposit_status
from bridgeswap.core.quotes import BridgeQuote, fetch_bridge_quote
from bridgeswap.core.reader import Web3ContractReader
from bridgeswap.core.tokens import allowance_of, balance_of, format_units, get_contract, parse_units
from bridgeswap.core.utils import create_transaction_url, ensure_web3_connected, get_logger

LOGGER = get_logger("bridgeswap.cli")

load_dotenv()


@dataclass(frozen=True)
class ExecutionPlan:
    """Full context required to submit the Across deposit."""

    input_amount: int
    balance: int
    quote: BridgeQuote
    calls: Tuple[ActionCall, ...]
    deposit: DepositPlan
    allowance: int

    @property
    def has_allowance(self) -> bool:
        return self.allowance >= self.input_amount

    @property
    def spoke_pool(self) -> str:
        return self.deposit.call_target


@dataclass(frozen=True)
class GasParameters:
    """EIP-1559 gas parameters."""

    gas: int
    gas_price: int
    max_priority_fee: int
    max_fee: int
    estimated_cost: int


class IntentExecutor:
    """High-level orchestrator for the bridge, approve and swap intent."""

    def __init__(
        self,
        *,
        private_key: str,
        config: Optional[IntentConfig] = None,
        rpc_url: Optional[str] = None,
        destination_rpc_url: Optional[str] = None,
        web3_factory: Callable[[str], Web3] = lambda url: Web3(Web3.HTTPProvider(url)),
        reader_factory: Callable[[str], Web3ContractReader] = Web3ContractReader.from_rpc_url,
        quote_fn: Callable[..., BridgeQuote] = fetch_bridge_quote,
        status_fn: Callable[..., DepositStatus] = fetch_deposit_status,
    ) -> None:
        self.config = config or load_config()

        resolved_rpc = rpc_url or self.config.origin_chain.ensure_rpc_url()
        self.web3 = web3_factory(resolved_rpc)
        ensure_web3_connected(self.web3, expected_chain_id=self.config.origin_chain.chain_id)

        self.account = Account.from_key(private_key)
        self.address = self.account.address
        LOGGER.info("Connected to chain %s as %s", self.config.origin_chain.chain_id, self.address)

        self.reader = reader_factory(destination_rpc_url or self.config.destination_chain.ensure_rpc_url())
        self.quote_fn = quote_fn
        self.status_fn = status_fn
        self.message = self._build_message()

    def _build_message(self) -> CrossChainMessage:
        pool = self.config.pool
        return CrossChainMessage(
            actions=(
                ApprovalAction(token=self.config.route.output_token, spender=pool.address),
                ExchangeAction(
                    pool=pool.address,
                    i=pool.i,
                    j=pool.j,
                    receiver=self.address,
                    reader=self.reader,
                    slippage_bps=self.config.defaults.slippage_bps,
                    quote_timeout=self.config.defaults.quote_timeout,
                ),
            ),
            fallback_recipient=self.address,
        )

    def _format(self, amount: int) -> str:
        return format_units(amount, self.config.route.input_decimals)

    async def prepare_plan(self) -> ExecutionPlan:
        """Check funds, quote the bridge and build destination calldata for the quoted output."""
        await self.reader.ensure_chain(self.config.destination_chain.chain_id)

        route = self.config.route
        input_amount = parse_units(self.config.defaults.input_amount, route.input_decimals)
        balance = balance_of(self.web3, route.input_token, self.address)
        if balance < input_amount:
            raise ValueError(
                f"Insufficient balance. Required: {self._format(input_amount)}, Available: {self._format(balance)}"
            )
        LOGGER.info("Balance check passed. Available: %s", self._format(balance))

        # Fees depend on the message size, so quote with calldata built from the input amount first.
        provisional_message = await self.message.encode(input_amount)
        quote = self.quote_fn(
            config=self.config,
            amount=input_amount,
            recipient=self.config.across.multicall_handler,
            message=provisional_message,
        )

        calls = await self.message.materialize(quote.output_amount)
        message = encode_multicall_message(calls, self.message.fallback_recipient)
        deposit = build_deposit(config=self.config, depositor=self.address, quote=quote, message=message)

        allowance = allowance_of(self.web3, route.input_token, self.address, deposit.call_target)

        return ExecutionPlan(
            input_amount=input_amount,
            balance=balance,
            quote=quote,
            calls=calls,
            deposit=deposit,
            allowance=allowance,
        )

    def estimate_gas(self, plan: ExecutionPlan) -> GasParameters:
        """Estimate gas usage for the prepared deposit."""
        try:
            gas_estimate = self.web3.eth.estimate_gas(
                {
                    "from": self.address,
                    "to": plan.deposit.call_target,
                    "data": plan.deposit.call_data,
                    "value": plan.deposit.native_value,
                }
            )
        except ContractLogicError as exc:
            raise ValueError(f"Deposit would revert: {exc}") from exc

        gas_price = self.web3.eth.gas_price
        max_priority_fee = getattr(self.web3.eth, "max_priority_fee", gas_price)
        return GasParameters(
            gas=gas_estimate,
            gas_price=gas_price,
            max_priority_fee=max_priority_fee,
            max_fee=gas_price + max_priority_fee,
            estimated_cost=gas_estimate * gas_price,
        )

    def build_transaction(self, plan: ExecutionPlan, gas: GasParameters) -> Dict[str, Any]:
        """Build the 1559 deposit transaction payload."""
        return {
            "from": self.address,
            "to": plan.deposit.call_target,
            "data": plan.deposit.call_data,
            "value": plan.deposit.native_value,
            "gas": int(gas.gas * 1.1),  # add a 10% buffer
            "maxFeePerGas": gas.max_fee,
            "maxPriorityFeePerGas": gas.max_priority_fee,
            "nonce": self.web3.eth.get_transaction_count(self.address),
            "chainId": self.config.origin_chain.chain_id,
        }

    async def execute_dry_run(self) -> ExecutionPlan:
        """Build the plan without broadcasting anything."""
        plan = await self.prepare_plan()
        self._log_plan(plan)
        if plan.has_allowance:
            self._log_gas(self.estimate_gas(plan))
        else:
            LOGGER.warning(
                "Skipping gas estimate: SpokePool allowance %s below input %s",
                self._format(plan.allowance),
                self._format(plan.input_amount),
            )
        return plan

    async def execute_send(self, *, wait_fill: bool = False) -> str:
        """Approve the SpokePool when needed, then broadcast the deposit.

        With ``wait_fill`` the call returns only once the deposit is filled,
        expired or refunded on the destination chain.
        """
        plan = await self.prepare_plan()
        self._log_plan(plan)

        if not plan.has_allowance:
            self._approve_spoke_pool(plan)

        try:
            gas = self.estimate_gas(plan)
            self._log_gas(gas)
        except Exception as exc:
            LOGGER.warning("Gas estimation failed: %s", exc)
            gas = self._fallback_gas()
            self._log_gas(gas, label="Fallback")

        tx_hex, receipt = self._sign_and_send(self.build_transaction(plan, gas), label="Deposit")
        deposit_id = deposit_id_from_receipt(receipt, plan.spoke_pool)
        if deposit_id is None:
            LOGGER.warning("No deposit event from SpokePool %s in %s", plan.spoke_pool, tx_hex)
        else:
            LOGGER.info("Deposit ID: %s", deposit_id)

        if not wait_fill:
            LOGGER.info("Bridge deposit submitted; destination actions run when the fill lands")
            return tx_hex
        if deposit_id is None:
            raise RuntimeError(f"Cannot track the fill of {tx_hex}: no deposit ID in its receipt")
        await self.wait_for_fill(deposit_id)
        return tx_hex

    async def wait_for_fill(self, deposit_id: int) -> DepositStatus:
        """Poll the Across API until ``deposit_id`` settles, then check the destination actions."""
        defaults = self.config.defaults
        deadline = time.monotonic() + defaults.fill_timeout
        LOGGER.info("Waiting for the fill of deposit %s", deposit_id)

        status = self.status_fn(config=self.config, deposit_id=deposit_id)
        while not status.is_terminal:
            if time.monotonic() >= deadline:
                raise TimeoutError(
                    f"Deposit {deposit_id} not filled within {defaults.fill_timeout:g}s (last status: {status.status})"
                )
            LOGGER.info("Deposit %s is %s", deposit_id, status.status)
            await asyncio.sleep(defaults.fill_poll_interval)
            status = self.status_fn(config=self.config, deposit_id=deposit_id)

        if status.status != FILLED:
            LOGGER.warning("Deposit %s ended as %s; funds go back to the depositor", deposit_id, status.status)
            return status
        if not status.fill_tx:
            LOGGER.warning("Deposit %s filled but the API reported no fill transaction", deposit_id)
            return status

        LOGGER.info("Fill TX: %s", _transaction_link(self.config.destination_chain, status.fill_tx))
        fill_receipt = await self.reader.get_transaction_receipt(status.fill_tx)
        succeeded = actions_succeeded(fill_receipt, self.config.across.multicall_handler)
        if succeeded:
            LOGGER.info("Swap completed successfully")
        else:
            LOGGER.error("Swap failed; bridged tokens were sent to %s", self.message.fallback_recipient)
        return replace(status, actions_succeeded=succeeded)

    def _approve_spoke_pool(self, plan: ExecutionPlan) -> str:
        LOGGER.info("Approving SpokePool %s for %s", plan.spoke_pool, self._format(plan.input_amount))
        token = get_contract(self.web3, self.config.route.input_token)
        tx = token.functions.approve(plan.spoke_pool, plan.input_amount).build_transaction(
            {
                "from": self.address,
                "nonce": self.web3.eth.get_transaction_count(self.address),
                "chainId": self.config.origin_chain.chain_id,
            }
        )
        tx_hex, _ = self._sign_and_send(tx, label="Approve")
        return tx_hex

    def _sign_and_send(self, tx: Dict[str, Any], *, label: str) -> Tuple[str, Mapping[str, Any]]:
        signed = self.account.sign_transaction(tx)
        tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        tx_hex = Web3.to_hex(tx_hash)
        LOGGER.info("%s TX: %s", label, _transaction_link(self.config.origin_chain, tx_hex))

        receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash)
        if receipt["status"] != 1:
            raise RuntimeError(f"{label} transaction {tx_hex} failed with status {receipt['status']}")
        LOGGER.info("%s confirmed in block %s (gasUsed=%s)", label, receipt["blockNumber"], receipt["gasUsed"])
        return tx_hex, receipt

    def _log_plan(self, plan: ExecutionPlan) -> None:
        LOGGER.info(
            "Bridge %s -> %s (fee %s) via SpokePool %s",
            self._format(plan.quote.input_amount),
            self._format(plan.quote.output_amount),
            self._format(plan.quote.total_relay_fee),
            plan.spoke_pool,
        )
        for action, call in zip(self.message.actions, plan.calls):
            if action.kind == "approve":
                spender, amount = decode_approve_call(call.call_data)
                LOGGER.info("Destination approve: %s spender=%s amount=%s", call.target, spender, amount)
            elif action.kind == "exchange":
                i, j, dx, min_dy, receiver = decode_exchange_call(call.call_data)
                LOGGER.info(
                    "Destination exchange: %s i=%s j=%s dx=%s min_dy=%s receiver=%s",
                    call.target,
                    i,
                    j,
                    dx,
                    min_dy,
                    receiver,
                )
        LOGGER.info("Deposit recipient %s, message %s bytes", plan.deposit.recipient, len(plan.deposit.message))
        if not plan.has_allowance:
            LOGGER.warning(
                "SpokePool allowance %s is below the input amount %s",
                self._format(plan.allowance),
                self._format(plan.input_amount),
            )

    @staticmethod
    def _log_gas(gas: GasParameters, *, label: str = "Estimate") -> None:
        LOGGER.info(
            "%s gas=%s maxFee=%.2f gwei priority=%.2f gwei estimatedCost=%.6f ETH",
            label,
            gas.gas,
            gas.max_fee / 10**9,
            gas.max_priority_fee / 10**9,
            gas.estimated_cost / 10**18,
        )

    def _fallback_gas(self) -> GasParameters:
        gas_price = self.web3.eth.gas_price
        max_priority_fee = getattr(self.web3.eth, "max_priority_fee", gas_price)
        return GasParameters(
            gas=500_000,
            gas_price=gas_price,
            max_priority_fee=max_priority_fee,
            max_fee=gas_price + max_priority_fee,
            estimated_cost=500_000 * gas_price,
        )


def _transaction_link(chain: ChainConfig, tx_hex: str) -> str:
    if not chain.explorer_url:
        return tx_hex
    return create_transaction_url(chain.explorer_url, tx_hex)


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bridge via Across, then approve and swap on Curve")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--dry-run", action="store_true", help="Build and quote the intent without sending")
    group.add_argument("--send", action="store_true", help="Send the deposit transaction on the origin chain")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.json")
    parser.add_argument(
        "--wait-fill",
        action="store_true",
        help="After --send, wait for the destination fill and report whether the swap ran",
    )
    args = parser.parse_args(argv)
    if args.wait_fill and not args.send:
        parser.error("--wait-fill requires --send")
    return args


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)

    rpc_url = (os.getenv("RPC_URL") or "").strip() or None
    destination_rpc_url = (os.getenv("DESTINATION_RPC_URL") or "").strip() or None
    private_key = (os.getenv("PRIVATE_KEY") or "").strip()

    if not private_key:
        print("❌ Error: PRIVATE_KEY environment variable not set")
        sys.exit(1)

    config_env = (os.getenv("BRIDGESWAP_CONFIG") or "").strip()
    config_path = args.config or (Path(config_env) if config_env else None)

    try:
        executor = IntentExecutor(
            private_key=private_key,
            config=load_config(config_path),
            rpc_url=rpc_url,
            destination_rpc_url=destination_rpc_url,
        )
        if args.dry_run:
            asyncio.run(executor.execute_dry_run())
        else:
            asyncio.run(executor.execute_send(wait_fill=args.wait_fill))
    except Exception as exc:
        print(f"\n❌ Error: {exc}")
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover - CLI entry
    main()
