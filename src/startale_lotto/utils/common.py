"""Common helpers shared by the engine and the web surface."""

from __future__ import annotations

from typing import Any, Optional


def shorten_eth_address(address: Optional[str]) -> str:
    """Shorten an Ethereum address for display: '0x1234...abcd'.

    Keeps the first 6 and last 4 characters of the full address, matching
    how the wallet header renders the bound account.
    """
    if not address:
        return ""
    addr = address if address.startswith("0x") else f"0x{address}"
    if len(addr) < 12:
        return addr
    return f"{addr[:6]}...{addr[-4:]}"


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    """Case-insensitive address comparison; False when either side is missing."""
    if not a or not b:
        return False
    return a.lower() == b.lower()


def normalize_tx_hash(tx_hash: Any) -> str:
    """Render a transaction hash as a lowercase 0x-prefixed hex string."""
    if isinstance(tx_hash, (bytes, bytearray)):
        value = bytes(tx_hash).hex()
    else:
        value = str(tx_hash)
    value = value.lower()
    return value if value.startswith("0x") else f"0x{value}"
