"""Helpers for validating wallet addresses and normalizing user-supplied values."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable, List, Optional

from eth_utils import to_checksum_address

_EVM_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


@lru_cache(maxsize=256)
def is_valid_evm_address(address: Optional[str]) -> bool:
    """Return True for a 0x-prefixed, 40-hex-digit address."""

    if not address or not isinstance(address, str):
        return False
    return bool(_EVM_ADDRESS_RE.match(address.strip()))


def normalize_address(address: str) -> str:
    """Lower-case form used for comparisons and deduplication."""

    return address.strip().lower()


def checksum(address: str) -> str:
    return to_checksum_address(address.strip())


def same_address(left: Optional[str], right: Optional[str]) -> bool:
    if not left or not right:
        return False
    return normalize_address(left) == normalize_address(right)


def dedupe_addresses(addresses: Iterable[Optional[str]]) -> List[str]:
    """Valid addresses, lower-cased, first occurrence wins."""

    seen: List[str] = []
    for address in addresses:
        if not is_valid_evm_address(address):
            continue
        normalized = normalize_address(address)  # type: ignore[arg-type]
        if normalized not in seen:
            seen.append(normalized)
    return seen


def normalize_amount_string(raw: object) -> str:
    """Trim an amount and accept a comma as the decimal separator."""

    text = str(raw).strip()
    if "," in text and "." not in text:
        text = text.replace(",", ".")
    return text
