import asyncio

import pytest
from web3 import Web3

from bridgeswap.cli import main as cli_main
from bridgeswap.cli.main import IntentExecutor
from bridgeswap.core.actions import MULTICALL_INSTRUCTIONS_TYPE
from bridgeswap.config import parse_config
from bridgeswap.core.bridge import INTEGRATOR_DELIMITER
from bridgeswap.core.calldata import adjust_min_output, decode_approve_call, decode_exchange_call
from bridgeswap.core.fills import DepositStatus
from bridgeswap.core.quotes import BridgeQuote

from .conftest import (
    CURVE_POOL,
    MULTICALL_HANDLER,
    SPOKE_POOL,
    USDC_ARBITRUM,
    USDC_MAINNET,
    StubReader,
    calls_failed_log,
    v3_deposit_log,
)

PRIVATE_KEY = "0x" + "11" * 32


class FakeEth:
    chain_id = 42161
    gas_price = 10**9
    max_priority_fee = 10**8

    def __init__(self):
        self.estimates = []
        self.estimate_error = None
        self.sent = []
        self.statuses = {}
        self.logs = []

    def estimate_gas(self, tx):
        self.estimates.append(tx)
        if self.estimate_error is not None:
            raise self.estimate_error
        return 200_000

    def get_transaction_count(self, address):
        return 7 + len(self.sent)

    def send_raw_transaction(self, raw):
        self.sent.append(raw)
        return bytes([len(self.sent)]) * 32

    def wait_for_transaction_receipt(self, tx_hash):
        index = tx_hash[0]
        return {"status": self.statuses.get(index, 1), "blockNumber": 123, "gasUsed": 150_000, "logs": self.logs}


class FakeToken:
    """ERC-20 stand-in whose ``approve`` builds a ready-to-sign transaction."""

    def __init__(self, address):
        self.address = address
        self.approvals = []
        self.functions = self

    def approve(self, spender, amount):
        self.approvals.append((spender, amount))
        return self

    def build_transaction(self, params):
        return {
            **params,
            "to": self.address,
            "data": "0x095ea7b3",
            "value": 0,
            "gas": 60_000,
            "maxFeePerGas": 2 * 10**9,
            "maxPriorityFeePerGas": 10**8,
        }


class RecordingAccount:
    def __init__(self, account):
        self.account = account
        self.address = account.address
        self.signed = []

    def sign_transaction(self, tx):
        self.signed.append(tx)
        return self.account.sign_transaction(tx)


class FakeStatusFeed:
    """Replays deposit statuses; the last one repeats."""

    def __init__(self, *statuses):
        self.statuses = list(statuses)
        self.requests = []

    def __call__(self, *, config, deposit_id):
        self.requests.append(deposit_id)
        return self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]


class FakeWeb3:
    def __init__(self):
        self.eth = FakeEth()

    def is_connected(self):
        return True


class FakeQuoter:
    def __init__(self, output_amount=99_950_000):
        self.output_amount = output_amount
        self.requests = []

    def __call__(self, *, config, amount, recipient, message=b""):
        self.requests.append({"amount": amount, "recipient": recipient, "message": message})
        return BridgeQuote(
            input_amount=amount,
            output_amount=self.output_amount,
            total_relay_fee=amount - self.output_amount,
            quote_timestamp=1_730_000_000,
            fill_deadline=1_730_021_600,
            exclusive_relayer=Web3.to_checksum_address("0x" + "00" * 20),
            exclusivity_deadline=0,
            spoke_pool=SPOKE_POOL,
            raw={},
        )


def _pool_quote(i, j, dx):
    return dx - dx // 1_000


@pytest.fixture
def harness(config_data, monkeypatch):
    config_data["defaults"].update(fill_poll_interval=0, fill_timeout=5)
    state = {"balance": 150_000_000, "allowance": 0, "web3": FakeWeb3(), "config_data": config_data}
    reader = StubReader(result=_pool_quote)
    quoter = FakeQuoter()
    token = FakeToken(USDC_ARBITRUM)
    status_feed = FakeStatusFeed(DepositStatus(deposit_id=4242, status="pending"))

    monkeypatch.setattr(cli_main, "balance_of", lambda web3, token, owner: state["balance"])
    monkeypatch.setattr(cli_main, "allowance_of", lambda web3, token, owner, spender: state["allowance"])
    monkeypatch.setattr(cli_main, "get_contract", lambda web3, address: token)

    def build():
        executor = IntentExecutor(
            private_key=PRIVATE_KEY,
            config=parse_config(config_data),
            web3_factory=lambda url: state["web3"],
            reader_factory=lambda url: reader,
            quote_fn=quoter,
            status_fn=lambda **kwargs: state["status_feed"](**kwargs),
        )
        executor.account = RecordingAccount(executor.account)
        return executor

    state.update(reader=reader, quoter=quoter, token=token, status_feed=status_feed, build=build)
    return state


def test_prepare_plan_rebuilds_calls_for_quoted_output(harness):
    executor = harness["build"]()
    plan = asyncio.run(executor.prepare_plan())

    reader, quoter = harness["reader"], harness["quoter"]
    assert reader.chain_checks == [1]
    assert [call[2][2] for call in reader.calls] == [100_000_000, 99_950_000]

    (request,) = quoter.requests
    assert request["amount"] == 100_000_000
    assert request["recipient"] == MULTICALL_HANDLER
    (provisional,) = Web3().codec.decode([MULTICALL_INSTRUCTIONS_TYPE], request["message"])
    assert decode_approve_call(provisional[0][0][1]) == (CURVE_POOL, 100_000_000)

    approve, exchange = plan.calls
    assert approve.target == USDC_MAINNET
    assert decode_approve_call(approve.call_data) == (CURVE_POOL, 99_950_000)
    assert exchange.target == CURVE_POOL
    assert decode_exchange_call(exchange.call_data) == (
        1,
        0,
        99_950_000,
        adjust_min_output(_pool_quote(1, 0, 99_950_000)),
        executor.address,
    )

    assert plan.deposit.call_target == SPOKE_POOL
    assert plan.deposit.recipient == MULTICALL_HANDLER
    (final,) = Web3().codec.decode([MULTICALL_INSTRUCTIONS_TYPE], plan.deposit.message)
    assert final[1].lower() == executor.address.lower()
    assert decode_approve_call(final[0][0][1]) == (CURVE_POOL, 99_950_000)
    assert not plan.has_allowance


def test_prepare_plan_rejects_insufficient_balance(harness):
    harness["balance"] = 50_000_000
    executor = harness["build"]()

    with pytest.raises(ValueError, match="Required: 100, Available: 50"):
        asyncio.run(executor.prepare_plan())
    assert harness["quoter"].requests == []
    assert harness["reader"].calls == []


def test_dry_run_estimates_gas_only_with_allowance(harness):
    executor = harness["build"]()
    asyncio.run(executor.execute_dry_run())
    assert harness["web3"].eth.estimates == []

    harness["allowance"] = 100_000_000
    plan = asyncio.run(executor.execute_dry_run())
    (tx,) = harness["web3"].eth.estimates
    assert tx["to"] == SPOKE_POOL
    assert tx["data"] == plan.deposit.call_data
    assert tx["from"] == executor.address


def test_estimate_gas_parameters(harness):
    harness["allowance"] = 100_000_000
    executor = harness["build"]()
    plan = asyncio.run(executor.prepare_plan())
    gas = executor.estimate_gas(plan)

    assert gas.gas == 200_000
    assert gas.max_fee == 10**9 + 10**8
    assert gas.estimated_cost == 200_000 * 10**9


def test_executor_checks_origin_chain(harness, config):
    harness["web3"].eth.chain_id = 1
    with pytest.raises(ValueError, match="mismatch"):
        harness["build"]()


def test_main_requires_private_key(monkeypatch, capsys):
    monkeypatch.delenv("PRIVATE_KEY", raising=False)
    with pytest.raises(SystemExit) as excinfo:
        cli_main.main(["--dry-run"])
    assert excinfo.value.code == 1
    assert "PRIVATE_KEY" in capsys.readouterr().out


def test_main_reports_errors(monkeypatch, capsys, tmp_path):
    monkeypatch.setenv("PRIVATE_KEY", PRIVATE_KEY)
    with pytest.raises(SystemExit) as excinfo:
        cli_main.main(["--dry-run", "--config", str(tmp_path / "missing.json")])
    assert excinfo.value.code == 1
    assert "Config file not found" in capsys.readouterr().out


def test_parse_args_requires_mode():
    with pytest.raises(SystemExit):
        cli_main._parse_args([])
    args = cli_main._parse_args(["--send", "--config", "alt.json"])
    assert args.send and not args.dry_run
    assert str(args.config) == "alt.json"


def test_input_token_is_route_token(config):
    assert config.route.input_token == USDC_ARBITRUM


def test_send_approves_spoke_pool_before_deposit(harness, caplog):
    harness["web3"].eth.logs = [v3_deposit_log(4242)]
    executor = harness["build"]()

    tx_hex = asyncio.run(executor.execute_send())

    assert harness["token"].approvals == [(SPOKE_POOL, 100_000_000)]
    approve_tx, deposit_tx = executor.account.signed
    assert approve_tx["to"] == USDC_ARBITRUM
    assert approve_tx["nonce"] == 7
    assert deposit_tx["to"] == SPOKE_POOL
    assert deposit_tx["nonce"] == 8
    assert deposit_tx["chainId"] == 42161
    assert deposit_tx["gas"] == 220_000
    assert deposit_tx["data"].endswith(INTEGRATOR_DELIMITER + bytes.fromhex("0061"))
    assert len(harness["web3"].eth.sent) == 2
    assert tx_hex == "0x" + "02" * 32
    assert "Deposit ID: 4242" in caplog.text
    assert f"https://arbiscan.io/tx/{tx_hex}" in caplog.text
    assert harness["status_feed"].requests == []


def test_send_skips_approval_with_enough_allowance(harness):
    harness["allowance"] = 100_000_000
    harness["web3"].eth.logs = [v3_deposit_log(1)]
    executor = harness["build"]()

    tx_hex = asyncio.run(executor.execute_send())

    assert harness["token"].approvals == []
    (deposit_tx,) = executor.account.signed
    assert deposit_tx["to"] == SPOKE_POOL
    assert tx_hex.startswith("0x") and len(tx_hex) == 66


def test_send_raises_when_deposit_reverts(harness):
    harness["allowance"] = 100_000_000
    harness["web3"].eth.statuses[1] = 0
    executor = harness["build"]()

    with pytest.raises(RuntimeError, match="Deposit transaction 0x01"):
        asyncio.run(executor.execute_send())


def test_send_stops_when_approval_reverts(harness):
    harness["web3"].eth.statuses[1] = 0
    executor = harness["build"]()

    with pytest.raises(RuntimeError, match="Approve transaction"):
        asyncio.run(executor.execute_send())
    assert len(harness["web3"].eth.sent) == 1


def test_send_uses_fallback_gas_when_estimate_fails(harness):
    harness["allowance"] = 100_000_000
    harness["web3"].eth.estimate_error = ValueError("execution reverted")
    executor = harness["build"]()

    asyncio.run(executor.execute_send())

    (deposit_tx,) = executor.account.signed
    assert deposit_tx["gas"] == 550_000
    assert deposit_tx["maxFeePerGas"] == 10**9 + 10**8


def test_send_without_deposit_event_still_returns_hash(harness, caplog):
    harness["allowance"] = 100_000_000
    executor = harness["build"]()

    assert asyncio.run(executor.execute_send()) == "0x" + "01" * 32
    assert "No deposit event" in caplog.text


def test_wait_fill_needs_deposit_id(harness):
    harness["allowance"] = 100_000_000
    executor = harness["build"]()

    with pytest.raises(RuntimeError, match="no deposit ID"):
        asyncio.run(executor.execute_send(wait_fill=True))


def test_send_waits_for_successful_fill(harness, caplog):
    fill_tx = "0x" + "fe" * 32
    harness["allowance"] = 100_000_000
    harness["web3"].eth.logs = [v3_deposit_log(4242)]
    harness["status_feed"] = FakeStatusFeed(
        DepositStatus(deposit_id=4242, status="pending"),
        DepositStatus(deposit_id=4242, status="filled", fill_tx=fill_tx),
    )
    harness["reader"].receipts[fill_tx] = {"status": 1, "logs": []}
    executor = harness["build"]()

    asyncio.run(executor.execute_send(wait_fill=True))

    assert harness["status_feed"].requests == [4242, 4242]
    assert f"https://etherscan.io/tx/{fill_tx}" in caplog.text
    assert "Swap completed successfully" in caplog.text


def test_wait_for_fill_reports_failed_actions(harness, caplog):
    fill_tx = "0x" + "fe" * 32
    harness["status_feed"] = FakeStatusFeed(DepositStatus(deposit_id=9, status="filled", fill_tx=fill_tx))
    harness["reader"].receipts[fill_tx] = {"status": 1, "logs": [calls_failed_log()]}
    executor = harness["build"]()

    result = asyncio.run(executor.wait_for_fill(9))

    assert result.actions_succeeded is False
    assert "Swap failed" in caplog.text


def test_wait_for_fill_stops_on_expired_deposit(harness):
    harness["status_feed"] = FakeStatusFeed(DepositStatus(deposit_id=9, status="expired"))
    executor = harness["build"]()

    result = asyncio.run(executor.wait_for_fill(9))

    assert result.status == "expired"
    assert result.actions_succeeded is None


def test_wait_for_fill_times_out(harness):
    harness["config_data"]["defaults"].update(fill_poll_interval=0.01, fill_timeout=0.05)
    executor = harness["build"]()

    with pytest.raises(TimeoutError, match="last status: pending"):
        asyncio.run(executor.wait_for_fill(9))
    assert len(harness["status_feed"].requests) > 1


def test_parse_args_wait_fill_requires_send():
    assert cli_main._parse_args(["--send", "--wait-fill"]).wait_fill
    with pytest.raises(SystemExit):
        cli_main._parse_args(["--dry-run", "--wait-fill"])
