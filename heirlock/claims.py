"""Claim Engine: eligibility, balance snapshots and the per-asset payout loop."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, MutableMapping, Optional

from .addresses import normalise_address
from .errors import (
    IdentityAlreadyClaimed,
    MalformedTransferResult,
    NotBeneficiary,
    OwnerStillAlive,
)
from .events import AssetClaimed, AssetClaimFailed, EventLog, SnapshotTaken
from .ledger import AddressingMode, AllocationLedger, BeneficiaryRecord, resolve_key
from .liveness import LivenessTracker
from .shares import compute_share_amount
from .transfers import TransferExecutor

_LOGGER = logging.getLogger(__name__)


@dataclass
class BalanceSnapshot:
    balance: int = 0
    taken: bool = False


class ClaimStatus(Enum):
    CLAIMED = "claimed"
    EMPTY = "empty"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class AssetClaimResult:
    asset: str
    status: ClaimStatus
    amount: int = 0
    reason: Optional[str] = None

    def as_dict(self) -> MutableMapping[str, Any]:
        payload: MutableMapping[str, Any] = {
            "asset": self.asset,
            "status": self.status.value,
            "amount": self.amount,
        }
        if self.reason:
            payload["reason"] = self.reason
        return payload


@dataclass
class ClaimReport:
    owner: str
    key: str
    claimant: str
    results: List[AssetClaimResult] = field(default_factory=list)

    @property
    def transferred(self) -> Dict[str, int]:
        return {result.asset: result.amount for result in self.results if result.status is ClaimStatus.CLAIMED}

    @property
    def failed_assets(self) -> List[str]:
        return [result.asset for result in self.results if result.status is ClaimStatus.FAILED]

    @property
    def complete(self) -> bool:
        return not self.failed_assets

    def as_dict(self) -> MutableMapping[str, Any]:
        return {
            "owner": self.owner,
            "key": self.key,
            "claimant": self.claimant,
            "complete": self.complete,
            "results": [result.as_dict() for result in self.results],
        }


class ClaimEngine:
    def __init__(
        self,
        liveness: LivenessTracker,
        ledger: AllocationLedger,
        executor: TransferExecutor,
        events: Optional[EventLog] = None,
    ) -> None:
        self.liveness = liveness
        self.ledger = ledger
        self.executor = executor
        self.events = events if events is not None else ledger.events
        self._snapshots: Dict[str, Dict[str, BalanceSnapshot]] = {}

    def claim(self, owner: str, beneficiary: str, claimant: Optional[str] = None) -> ClaimReport:
        """Pay out every unclaimed asset of a directly addressed beneficiary.

        ``claimant`` defaults to the beneficiary itself. Assets whose transfer
        fails stay unclaimed and are retried by the next call.
        """

        record = self.check_eligibility(owner, beneficiary, AddressingMode.DIRECT)
        recipient = normalise_address(claimant) if claimant else record.key
        return self.settle(record, recipient)

    def check_eligibility(self, owner: str, key: str, mode: AddressingMode) -> BeneficiaryRecord:
        owner = normalise_address(owner)
        if self.liveness.is_alive(owner):
            raise OwnerStillAlive(owner)
        resolved, _ = resolve_key(key)
        record = self.ledger.get_record(owner, resolved)
        if record is None or record.mode is not mode:
            raise NotBeneficiary(owner, resolved)
        if record.mode is AddressingMode.IDENTITY and record.claimed:
            raise IdentityAlreadyClaimed(record.key)
        return record

    def settle(self, record: BeneficiaryRecord, claimant: str) -> ClaimReport:
        """Run the per-asset payout loop for an already eligible record."""

        claimant = normalise_address(claimant)
        report = ClaimReport(owner=record.owner, key=record.key, claimant=claimant)
        for asset in list(record.assets):
            report.results.append(self._settle_asset(record, asset, claimant))
        _LOGGER.info(
            "Claim for %s on %s: %d transferred, %d failed",
            record.key,
            record.owner,
            len(report.transferred),
            len(report.failed_assets),
        )
        return report

    def _settle_asset(self, record: BeneficiaryRecord, asset: str, claimant: str) -> AssetClaimResult:
        rule = record.rules[asset]
        if rule.claimed:
            return AssetClaimResult(asset, ClaimStatus.SKIPPED)

        snapshot = self._take_snapshot(record.owner, asset)
        amount = compute_share_amount(rule, snapshot.balance)
        if amount == 0:
            rule.claimed = True
            return AssetClaimResult(asset, ClaimStatus.EMPTY)

        live_balance = self.executor.backend.balance_of(record.owner, asset)
        amount = min(amount, live_balance)
        if amount <= 0:
            rule.claimed = True
            return AssetClaimResult(asset, ClaimStatus.EMPTY)

        try:
            succeeded = self.executor.transfer(asset, record.owner, claimant, amount)
            reason = None if succeeded else "transfer declined"
        except MalformedTransferResult as exc:
            succeeded = False
            reason = str(exc)
        except Exception as exc:  # pylint: disable=broad-except
            # Transport, signing or receipt errors from the backend; the leg stays unclaimed.
            succeeded = False
            reason = f"{type(exc).__name__}: {exc}"

        if succeeded:
            rule.claimed = True
            _LOGGER.info("Transferred %s %s from %s to %s", amount, asset, record.owner, claimant)
            self.events.emit(AssetClaimed(record.owner, record.key, asset, claimant, amount))
            return AssetClaimResult(asset, ClaimStatus.CLAIMED, amount)

        _LOGGER.warning("Transfer of %s %s to %s failed: %s", amount, asset, claimant, reason)
        self.events.emit(AssetClaimFailed(record.owner, record.key, asset, claimant, amount, reason or ""))
        return AssetClaimResult(asset, ClaimStatus.FAILED, amount, reason)

    def _take_snapshot(self, owner: str, asset: str) -> BalanceSnapshot:
        snapshot = self._snapshots.setdefault(owner, {}).setdefault(asset, BalanceSnapshot())
        if not snapshot.taken:
            snapshot.balance = self.executor.backend.balance_of(owner, asset)
            snapshot.taken = True
            _LOGGER.debug("Snapshot of %s for %s: %s", asset, owner, snapshot.balance)
            self.events.emit(SnapshotTaken(owner=owner, asset=asset, balance=snapshot.balance))
        return snapshot

    def get_snapshot(self, owner: str, asset: str) -> BalanceSnapshot:
        snapshot = self._snapshots.get(normalise_address(owner), {}).get(normalise_address(asset))
        if snapshot is None:
            return BalanceSnapshot()
        return BalanceSnapshot(snapshot.balance, snapshot.taken)

    def all_snapshots(self) -> Dict[str, Dict[str, BalanceSnapshot]]:
        return {owner: dict(snapshots) for owner, snapshots in self._snapshots.items()}

    def restore_snapshot(self, owner: str, asset: str, snapshot: BalanceSnapshot) -> None:
        self._snapshots.setdefault(normalise_address(owner), {})[normalise_address(asset)] = snapshot


__all__ = ["AssetClaimResult", "BalanceSnapshot", "ClaimEngine", "ClaimReport", "ClaimStatus"]
