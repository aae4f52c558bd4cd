"""Core domain logic for bridgeswap."""

from .actions import ApprovalAction, CrossChainMessage, ExchangeAction
from .bridge import build_deposit, deposit_id_from_receipt
from .calldata import (
    InvalidParameterError,
    QuoteUnavailableError,
    adjust_min_output,
    build_exchange_call,
    encode_approve_call,
    quote_expected_output,
)
from .fills import DepositStatus, actions_succeeded, fetch_deposit_status
from .quotes import fetch_bridge_quote

__all__ = [
    "ApprovalAction",
    "CrossChainMessage",
    "DepositStatus",
    "ExchangeAction",
    "InvalidParameterError",
    "QuoteUnavailableError",
    "actions_succeeded",
    "adjust_min_output",
    "build_deposit",
    "build_exchange_call",
    "deposit_id_from_receipt",
    "encode_approve_call",
    "fetch_bridge_quote",
    "fetch_deposit_status",
    "quote_expected_output",
]
