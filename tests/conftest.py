"""Shared fixtures: a stub chain reader and a sample configuration."""

import asyncio
import copy

import pytest
import requests
from web3 import Web3

from bridgeswap.config import parse_config

USDC_ARBITRUM = Web3.to_checksum_address("0xaf88d065e77c8cc2239327c5edb3a432268e5831")
USDC_MAINNET = Web3.to_checksum_address("0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48")
CURVE_POOL = Web3.to_checksum_address("0x02950460e2b9529d0e00284a5fa2d7bdf3fa4d72")
MULTICALL_HANDLER = Web3.to_checksum_address("0x924a9f036260ddd5808007e1aa95f08ed08aa569")
SPOKE_POOL = Web3.to_checksum_address("0xe35e9842fceaca96570b734083f4a58e8f7c5f2a")
RECEIVER = Web3.to_checksum_address("0x" + "ab" * 20)

SAMPLE_CONFIG = {
    "chains": {
        "origin": {"chain_id": 42161, "rpc_url": "http://origin.invalid", "explorer_url": "https://arbiscan.io"},
        "destination": {"chain_id": 1, "rpc_url": "http://destination.invalid", "explorer_url": "https://etherscan.io/"},
    },
    "route": {"input_token": USDC_ARBITRUM, "output_token": USDC_MAINNET, "input_decimals": 6},
    "pool": {"address": CURVE_POOL, "i": 1, "j": 0},
    "across": {
        "api_url": "https://app.across.to/api/",
        "integrator_id": "0x0061",
        "multicall_handler": MULTICALL_HANDLER.lower(),
    },
    "defaults": {"input_amount": "100", "slippage_bps": 3, "api_timeout": 30, "quote_timeout": 5},
}


class StubReader:
    """Records every read and answers ``get_dy`` from a fixed value or a callable."""

    def __init__(self, result=99_000_000, error=None, delay=0.0):
        self.result = result
        self.error = error
        self.delay = delay
        self.calls = []
        self.chain_checks = []
        self.receipts = {}

    async def read_function(self, address, abi, function_name, args):
        self.calls.append((address, function_name, tuple(args)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if callable(self.result):
            return self.result(*args)
        return self.result

    async def ensure_chain(self, expected_chain_id):
        self.chain_checks.append(expected_chain_id)

    async def get_transaction_receipt(self, tx_hash):
        return self.receipts[tx_hash]


class FakeResponse:
    """Minimal ``requests.Response``; a payload that is an exception is raised by ``json()``."""

    def __init__(self, payload, status_error=None, status_code=200):
        self.payload = payload
        self.status_error = status_error
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_error is not None:
            raise self.status_error

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


V3_DEPOSIT_SIGNATURE = (
    "V3FundsDeposited(address,address,uint256,uint256,uint256,uint32,uint32,uint32,uint32,address,address,address,bytes)"
)
DEPOSIT_SIGNATURE = (
    "FundsDeposited(bytes32,bytes32,uint256,uint256,uint256,uint256,uint32,uint32,uint32,bytes32,bytes32,bytes32,bytes)"
)
CALLS_FAILED_SIGNATURE = "CallsFailed((address,bytes,uint256)[],address)"


def event_log(address, signature, topics=(), data=b"", log_index=0):
    """Build a raw receipt log the way an RPC node returns it."""
    return {
        "address": address,
        "topics": [Web3.keccak(text=signature), *topics],
        "data": data,
        "blockHash": b"\x01" * 32,
        "blockNumber": 1,
        "transactionHash": b"\x02" * 32,
        "transactionIndex": 0,
        "logIndex": log_index,
    }


def v3_deposit_log(deposit_id, *, address=SPOKE_POOL, log_index=0):
    codec = Web3().codec
    topics = [
        codec.encode(["uint256"], [1]),
        codec.encode(["uint32"], [deposit_id]),
        codec.encode(["address"], [RECEIVER]),
    ]
    data = codec.encode(
        ["address", "address", "uint256", "uint256", "uint32", "uint32", "uint32", "address", "address", "bytes"],
        [USDC_ARBITRUM, USDC_MAINNET, 100_000_000, 99_950_000, 1_730_000_000, 1_730_021_600, 0, MULTICALL_HANDLER, RECEIVER, b"\xaa"],
    )
    return event_log(address, V3_DEPOSIT_SIGNATURE, topics, data, log_index)


def deposit_log(deposit_id, *, address=SPOKE_POOL, log_index=0):
    codec = Web3().codec
    word = b"\x00" * 12
    topics = [
        codec.encode(["uint256"], [1]),
        codec.encode(["uint256"], [deposit_id]),
        word + bytes.fromhex(RECEIVER[2:]),
    ]
    data = codec.encode(
        ["bytes32", "bytes32", "uint256", "uint256", "uint32", "uint32", "uint32", "bytes32", "bytes32", "bytes"],
        [
            word + bytes.fromhex(USDC_ARBITRUM[2:]),
            word + bytes.fromhex(USDC_MAINNET[2:]),
            100_000_000,
            99_950_000,
            1_730_000_000,
            1_730_021_600,
            0,
            word + bytes.fromhex(MULTICALL_HANDLER[2:]),
            b"\x00" * 32,
            b"\xaa",
        ],
    )
    return event_log(address, DEPOSIT_SIGNATURE, topics, data, log_index)


def calls_failed_log(*, address=MULTICALL_HANDLER, log_index=0):
    codec = Web3().codec
    data = codec.encode(["(address,bytes,uint256)[]"], [[(CURVE_POOL, b"\x01\x02", 0)]])
    return event_log(address, CALLS_FAILED_SIGNATURE, [codec.encode(["address"], [RECEIVER])], data, log_index)


@pytest.fixture
def config_data():
    return copy.deepcopy(SAMPLE_CONFIG)


@pytest.fixture
def config(config_data):
    return parse_config(config_data)


@pytest.fixture
def stub_reader():
    return StubReader()


@pytest.fixture
def capture_get(monkeypatch):
    captured = {}

    def install(*responses):
        pending = list(responses)

        def fake_get(url, params=None, timeout=None):
            captured.setdefault("calls", []).append((url, params))
            captured.update(url=url, params=params, timeout=timeout)
            response = pending.pop(0) if len(pending) > 1 else pending[0]
            if isinstance(response, Exception):
                raise response
            return response

        monkeypatch.setattr(requests, "get", fake_get)
        return captured

    return install
