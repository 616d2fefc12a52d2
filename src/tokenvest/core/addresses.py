"""
Address helpers shared by the token and vesting contracts.
"""

from __future__ import annotations

import hashlib

from tokenvest.core.constants import ZERO_ADDRESS


def normalize_address(address: str | None) -> str:
    """Normalize address to lowercase; ``None`` becomes the empty string."""
    return (address or "").strip().lower()


def is_zero_address(address: str | None) -> bool:
    """True for empty addresses and the all-zero address."""
    normalized = normalize_address(address)
    return not normalized or normalized == ZERO_ADDRESS


def derive_contract_address(deployer: str, nonce: int) -> str:
    """
    Deterministic contract address for the ``nonce``-th deployment by ``deployer``.
    """
    digest = hashlib.sha3_256(f"{normalize_address(deployer)}:{nonce}".encode()).digest()
    return f"0x{digest[-20:].hex()}"


def short(address: str) -> str:
    """Truncate an address for log payloads."""
    return address[:10]
