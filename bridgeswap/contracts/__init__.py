"""Contract ABIs shipped with bridgeswap."""

from importlib import resources
from typing import Any, List
import functools
import json


@functools.lru_cache(maxsize=None)
def _read_abi(filename: str) -> str:
    return resources.files(__package__).joinpath(filename).read_text(encoding="utf-8")


def load_contract_abi(filename: str) -> List[Any]:
    """Load an ABI JSON file from the contracts package."""
    return json.loads(_read_abi(filename))


__all__ = ["load_contract_abi"]
