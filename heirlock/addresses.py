"""Address normalisation shared by every ledger component."""
from __future__ import annotations

from typing import Any

from eth_utils import is_address, to_checksum_address

from .errors import InvalidAddress


def normalise_address(value: Any) -> str:
    """Return the EIP-55 checksum form of ``value`` or raise :class:`InvalidAddress`."""

    if not isinstance(value, str):
        raise InvalidAddress(value)
    text = value.strip()
    if text and not text.startswith("0x"):
        text = f"0x{text}"
    if not is_address(text):
        raise InvalidAddress(value)
    return to_checksum_address(text)


def normalise_hash(value: Any) -> str:
    """Return a lowercase ``0x``-prefixed 32-byte hex string."""

    if isinstance(value, (bytes, bytearray)):
        value = "0x" + bytes(value).hex()
    if not isinstance(value, str):
        raise InvalidAddress(value)
    text = value.strip().lower()
    if not text.startswith("0x"):
        text = f"0x{text}"
    if len(text) != 66:
        raise InvalidAddress(value)
    try:
        int(text, 16)
    except ValueError as exc:
        raise InvalidAddress(value) from exc
    return text


__all__ = ["normalise_address", "normalise_hash"]
