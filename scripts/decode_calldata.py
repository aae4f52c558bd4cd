#!/usr/bin/env python3
"""Decode destination approve/exchange calldata produced by bridgeswap."""

from pathlib import Path
import sys

SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from bridgeswap.core.calldata import InvalidParameterError, decode_approve_call, decode_exchange_call
from bridgeswap.core.utils import hex_to_bytes


def decode_call(calldata: str) -> None:
    """Decode the call data as ``approve`` or ``exchange`` and print the details."""
    data = hex_to_bytes(calldata)
    try:
        spender, amount = decode_approve_call(data)
    except InvalidParameterError:
        pass
    else:
        print("Function: approve")
        print(f"spender: {spender}")
        print(f"value: {amount}")
        return

    i, j, dx, min_dy, receiver = decode_exchange_call(data)
    print("Function: exchange")
    for name, value in (("i", i), ("j", j), ("_dx", dx), ("_min_dy", min_dy), ("_receiver", receiver)):
        print(f"{name}: {value}")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(f"usage: {sys.argv[0]} <calldata-hex>")
        sys.exit(2)
    decode_call(sys.argv[1])
