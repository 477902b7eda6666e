"""Asset movement: the backend protocol and the Transfer Executor.

ERC-20 style tokens disagree on how ``transferFrom`` reports success. Some
return nothing, some return an ABI encoded ``bool`` and a few return
something else entirely. :func:`normalise_transfer_result` folds those shapes
into a :class:`TransferOutcome` so the claim loop only deals with a boolean.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Protocol, Tuple

from .addresses import normalise_address
from .errors import MalformedTransferResult, TransferReverted

_LOGGER = logging.getLogger(__name__)

MAX_UINT256 = (1 << 256) - 1


class AssetBackend(Protocol):
    """Minimal view of an asset contract used by the ledger."""

    def allowance(self, owner: str, spender: str, asset: str) -> int: ...

    def balance_of(self, owner: str, asset: str) -> int: ...

    def transfer_from(self, asset: str, sender: str, recipient: str, amount: int) -> Any: ...


class TransferOutcome(Enum):
    SUCCESS = "success"
    DECLINED = "declined"
    MALFORMED = "malformed"


def normalise_transfer_result(raw: Any) -> TransferOutcome:
    """Map a raw ``transferFrom`` return value onto a :class:`TransferOutcome`."""

    if raw is None:
        return TransferOutcome.SUCCESS
    if isinstance(raw, bool):
        return TransferOutcome.SUCCESS if raw else TransferOutcome.DECLINED
    if isinstance(raw, (bytes, bytearray)):
        data = bytes(raw)
        if not data:
            return TransferOutcome.SUCCESS
        if len(data) == 32:
            value = int.from_bytes(data, "big")
            if value == 1:
                return TransferOutcome.SUCCESS
            if value == 0:
                return TransferOutcome.DECLINED
    return TransferOutcome.MALFORMED


class TransferExecutor:
    """Moves assets from an owner to a recipient through an :class:`AssetBackend`."""

    def __init__(self, backend: AssetBackend) -> None:
        self.backend = backend

    def transfer(self, asset: str, sender: str, recipient: str, amount: int) -> bool:
        """Attempt the transfer and report whether the asset accepted it.

        Declines and reverts come back as ``False``. Structurally invalid
        calls raise ``ValueError`` and unrecognised return shapes raise
        :class:`MalformedTransferResult`.
        """

        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValueError(f"Transfer amount must be a positive integer, got {amount!r}")
        asset = normalise_address(asset)
        sender = normalise_address(sender)
        recipient = normalise_address(recipient)

        try:
            raw = self.backend.transfer_from(asset, sender, recipient, amount)
        except TransferReverted as exc:
            _LOGGER.debug("transferFrom on %s reverted: %s", asset, exc)
            return False

        outcome = normalise_transfer_result(raw)
        _LOGGER.debug("transferFrom on %s returned %r -> %s", asset, raw, outcome.value)
        if outcome is TransferOutcome.MALFORMED:
            raise MalformedTransferResult(raw)
        return outcome is TransferOutcome.SUCCESS


class InMemoryAssetBackend:
    """Deterministic token book used for simulations and tests.

    ``return_style`` controls what ``transfer_from`` hands back for an asset:
    ``"bool"`` (a literal ``True``), ``"empty"`` (``None``), ``"abi"``
    (a 32-byte word) or ``"garbage"`` (an unexpected payload).
    """

    def __init__(self, spender: str) -> None:
        self.spender = normalise_address(spender)
        self.balances: Dict[Tuple[str, str], int] = {}
        self.allowances: Dict[Tuple[str, str, str], int] = {}
        self.return_styles: Dict[str, str] = {}
        self.reverting_assets: set[str] = set()
        self.transfers: list[Tuple[str, str, str, int]] = []

    def mint(self, asset: str, holder: str, amount: int) -> None:
        key = (normalise_address(asset), normalise_address(holder))
        self.balances[key] = self.balances.get(key, 0) + amount

    def set_balance(self, asset: str, holder: str, amount: int) -> None:
        self.balances[(normalise_address(asset), normalise_address(holder))] = amount

    def approve(self, asset: str, owner: str, amount: int = MAX_UINT256, spender: Optional[str] = None) -> None:
        spender_address = normalise_address(spender) if spender else self.spender
        self.allowances[(normalise_address(asset), normalise_address(owner), spender_address)] = amount

    def set_return_style(self, asset: str, style: str) -> None:
        self.return_styles[normalise_address(asset)] = style

    def set_reverting(self, assets: Iterable[str], reverting: bool = True) -> None:
        for asset in assets:
            if reverting:
                self.reverting_assets.add(normalise_address(asset))
            else:
                self.reverting_assets.discard(normalise_address(asset))

    def allowance(self, owner: str, spender: str, asset: str) -> int:
        return self.allowances.get((normalise_address(asset), normalise_address(owner), normalise_address(spender)), 0)

    def balance_of(self, owner: str, asset: str) -> int:
        return self.balances.get((normalise_address(asset), normalise_address(owner)), 0)

    def transfer_from(self, asset: str, sender: str, recipient: str, amount: int) -> Any:
        if asset in self.reverting_assets:
            raise TransferReverted(f"{asset} is paused")

        style = self.return_styles.get(asset, "bool")
        allowed = self.allowance(sender, self.spender, asset)
        balance = self.balance_of(sender, asset)
        if allowed < amount or balance < amount:
            if style == "empty":
                raise TransferReverted("insufficient balance or allowance")
            return False

        self.balances[(asset, sender)] = balance - amount
        self.mint(asset, recipient, amount)
        if allowed != MAX_UINT256:
            self.allowances[(asset, sender, self.spender)] = allowed - amount
        self.transfers.append((asset, sender, recipient, amount))

        if style == "empty":
            return None
        if style == "abi":
            return (1).to_bytes(32, "big")
        if style == "garbage":
            return b"\x01\x02"
        return True


__all__ = [
    "AssetBackend",
    "InMemoryAssetBackend",
    "MAX_UINT256",
    "TransferExecutor",
    "TransferOutcome",
    "normalise_transfer_result",
]
