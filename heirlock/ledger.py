"""Per-owner beneficiary allocation table.

Every owner keeps a table of beneficiaries, each holding one share rule per
asset. Beneficiaries are addressed either directly by account or by an
identity commitment (see :mod:`heirlock.identity`); both modes share the same
rule table and the same global invariant: for one owner and one asset the
basis-point shares of all beneficiaries never add up to more than 10000.

``set_allocation`` is all-or-nothing. The (asset, rule) pairs are applied in
order to staged copies of the owner's totals and the beneficiary record and
only written back once every pair has been accepted.
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Sequence, Tuple

from .addresses import normalise_address, normalise_hash
from .errors import ArrayLengthMismatch, BpsExceeded, InvalidShareAmount, NoApproval
from .events import BeneficiaryCreated, BeneficiaryUpdated, EventLog
from .identity import IdentityFields, generate_identity_hash
from .liveness import LivenessTracker
from .shares import BPS_DENOMINATOR, ShareKind, ShareRule
from .transfers import AssetBackend

_LOGGER = logging.getLogger(__name__)


class AddressingMode(Enum):
    DIRECT = "direct"
    IDENTITY = "identity"


@dataclass
class BeneficiaryRecord:
    owner: str
    key: str
    mode: AddressingMode
    identity: Optional[IdentityFields] = None
    assets: List[str] = field(default_factory=list)
    rules: Dict[str, ShareRule] = field(default_factory=dict)
    claimed: bool = False
    nullifier: Optional[str] = None
    claimant: Optional[str] = None

    def share_for(self, asset: str) -> Optional[ShareRule]:
        return self.rules.get(normalise_address(asset))

    def as_dict(self) -> MutableMapping[str, Any]:
        payload: MutableMapping[str, Any] = {
            "owner": self.owner,
            "key": self.key,
            "mode": self.mode.value,
            "assets": list(self.assets),
            "shares": {asset: self.rules[asset].as_dict() for asset in self.assets},
        }
        if self.mode is AddressingMode.IDENTITY:
            payload["identity"] = self.identity.as_dict() if self.identity else None
            payload["claimed"] = self.claimed
            payload["nullifier"] = self.nullifier
            payload["claimant"] = self.claimant
        return payload


def resolve_key(key: Any) -> Tuple[str, AddressingMode]:
    """Normalise a beneficiary key and infer the addressing mode from its shape."""

    if isinstance(key, (bytes, bytearray)) or (isinstance(key, str) and len(key.strip().removeprefix("0x")) == 64):
        return normalise_hash(key), AddressingMode.IDENTITY
    return normalise_address(key), AddressingMode.DIRECT


def _coerce_rule(value: Any) -> ShareRule:
    if isinstance(value, ShareRule):
        return ShareRule(value.kind, value.amount)
    if isinstance(value, Mapping):
        return ShareRule(value.get("kind", value.get("shareType")), value.get("amount", value.get("shareAmount")))
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)) and len(value) == 2:
        return ShareRule(value[0], value[1])
    raise ValueError(f"Cannot interpret share rule: {value!r}")


class AllocationLedger:
    def __init__(
        self,
        liveness: LivenessTracker,
        backend: AssetBackend,
        spender: str,
        events: Optional[EventLog] = None,
    ) -> None:
        self.liveness = liveness
        self.backend = backend
        self.spender = normalise_address(spender)
        self.events = events if events is not None else liveness.events
        self._records: Dict[str, Dict[str, BeneficiaryRecord]] = {}
        self._totals: Dict[str, Dict[str, int]] = {}

    def set_allocation(self, owner: str, beneficiary: str, assets: Sequence[str], rules: Sequence[Any]) -> BeneficiaryRecord:
        """Create or update the allocation of a directly addressed beneficiary."""

        return self._apply(owner, normalise_address(beneficiary), AddressingMode.DIRECT, None, assets, rules)

    def set_identity_allocation(
        self,
        owner: str,
        identity: IdentityFields,
        assets: Sequence[str],
        rules: Sequence[Any],
    ) -> BeneficiaryRecord:
        """Create or update the allocation of an identity-committed beneficiary."""

        identity = IdentityFields.create(identity.first_name, identity.last_name, identity.date_of_birth)
        key = generate_identity_hash(identity)
        return self._apply(owner, key, AddressingMode.IDENTITY, identity, assets, rules)

    def _apply(
        self,
        owner: str,
        key: str,
        mode: AddressingMode,
        identity: Optional[IdentityFields],
        assets: Sequence[str],
        rules: Sequence[Any],
    ) -> BeneficiaryRecord:
        owner = normalise_address(owner)
        if len(assets) != len(rules):
            raise ArrayLengthMismatch(len(assets), len(rules))
        self.liveness.require_configured(owner)

        pairs = [(normalise_address(asset), _coerce_rule(rule)) for asset, rule in zip(assets, rules)]
        for asset, _ in pairs:
            if self.backend.allowance(owner, self.spender, asset) <= 0:
                raise NoApproval(asset)

        existing = self._records.get(owner, {}).get(key)
        is_new = existing is None
        if existing is None:
            record = BeneficiaryRecord(owner=owner, key=key, mode=mode, identity=identity)
        else:
            record = copy.deepcopy(existing)
        totals = dict(self._totals.get(owner, {}))

        for asset, rule in pairs:
            if rule.is_bps and rule.amount > BPS_DENOMINATOR:
                raise InvalidShareAmount(asset, rule.amount)

            previous = record.rules.get(asset)
            if previous is not None and previous.is_bps:
                totals[asset] = totals.get(asset, 0) - previous.amount

            if rule.amount == 0:
                record.rules.pop(asset, None)
                if asset in record.assets:
                    record.assets.remove(asset)
                continue

            if rule.is_bps:
                new_total = totals.get(asset, 0) + rule.amount
                if new_total > BPS_DENOMINATOR:
                    raise BpsExceeded(asset, new_total)
                totals[asset] = new_total

            record.rules[asset] = ShareRule(rule.kind, rule.amount, claimed=False)
            if asset not in record.assets:
                record.assets.append(asset)

        self._records.setdefault(owner, {})[key] = record
        self._totals[owner] = totals

        event_type = BeneficiaryCreated if is_new else BeneficiaryUpdated
        _LOGGER.info(
            "%s %s beneficiary %s for %s (%d assets)",
            "Created" if is_new else "Updated",
            mode.value,
            key,
            owner,
            len(record.assets),
        )
        self.events.emit(event_type(owner=owner, key=key, mode=mode.value, assets=tuple(record.assets)))
        return record

    def get_record(self, owner: str, key: str) -> Optional[BeneficiaryRecord]:
        resolved, _ = resolve_key(key)
        return self._records.get(normalise_address(owner), {}).get(resolved)

    def records(self, owner: str) -> List[BeneficiaryRecord]:
        return list(self._records.get(normalise_address(owner), {}).values())

    def beneficiaries(self, owner: str, mode: AddressingMode = AddressingMode.DIRECT) -> List[str]:
        return [record.key for record in self.records(owner) if record.mode is mode]

    def bps_total(self, owner: str, asset: str) -> int:
        return self._totals.get(normalise_address(owner), {}).get(normalise_address(asset), 0)

    def all_records(self) -> Dict[str, Dict[str, BeneficiaryRecord]]:
        return {owner: dict(records) for owner, records in self._records.items()}

    def all_totals(self) -> Dict[str, Dict[str, int]]:
        return {owner: dict(totals) for owner, totals in self._totals.items()}

    def restore(self, record: BeneficiaryRecord) -> None:
        self._records.setdefault(record.owner, {})[record.key] = record

    def restore_totals(self, owner: str, totals: Mapping[str, int]) -> None:
        self._totals[normalise_address(owner)] = {normalise_address(asset): int(total) for asset, total in totals.items()}


__all__ = [
    "AddressingMode",
    "AllocationLedger",
    "BeneficiaryRecord",
    "ShareKind",
    "resolve_key",
]
