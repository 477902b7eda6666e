"""The ledger facade: one method per dashboard/CLI operation."""
from __future__ import annotations

from typing import Any, Iterable, List, Mapping, MutableMapping, Optional, Sequence

from .addresses import normalise_address, normalise_hash
from .claims import BalanceSnapshot, ClaimEngine, ClaimReport
from .errors import NotBeneficiary
from .events import EventLog
from .identity import IdentityFields, generate_identity_hash
from .identity_claims import DEFAULT_REQUIRED_CHECKS, IdentityClaimAdapter
from .ledger import AddressingMode, AllocationLedger, BeneficiaryRecord
from .liveness import Clock, LivenessTracker, OwnerSuccessionConfig, system_clock
from .proofs import NullifierRegistry, ProofResult, ProofVerifier
from .shares import ShareRule
from .transfers import AssetBackend, TransferExecutor


class HeirlockLedger:
    """Wires the liveness tracker, allocation ledger, claim engine and identity adapter.

    ``spender`` is the address owners approve on each asset; it is the
    account the backend uses to execute ``transferFrom``.
    """

    def __init__(
        self,
        backend: AssetBackend,
        spender: str,
        *,
        clock: Clock = system_clock,
        verifier: Optional[ProofVerifier] = None,
        required_checks: Iterable[str] = DEFAULT_REQUIRED_CHECKS,
        events: Optional[EventLog] = None,
    ) -> None:
        self.events = events if events is not None else EventLog()
        self.backend = backend
        self.liveness = LivenessTracker(clock, self.events)
        self.allocations = AllocationLedger(self.liveness, backend, spender, self.events)
        self.engine = ClaimEngine(self.liveness, self.allocations, TransferExecutor(backend), self.events)
        self.nullifiers = NullifierRegistry()
        self.identity_claims = IdentityClaimAdapter(self.engine, self.nullifiers, verifier, required_checks)

    @property
    def spender(self) -> str:
        return self.allocations.spender

    # Owner operations

    def configure_liveness(self, owner: str, duration: int) -> OwnerSuccessionConfig:
        return self.liveness.configure(owner, duration)

    def check_in(self, owner: str) -> OwnerSuccessionConfig:
        return self.liveness.check_in(owner)

    def set_allocation(self, owner: str, beneficiary: str, assets: Sequence[str], rules: Sequence[Any]) -> BeneficiaryRecord:
        return self.allocations.set_allocation(owner, beneficiary, assets, rules)

    def set_identity_allocation(
        self,
        owner: str,
        identity: IdentityFields,
        assets: Sequence[str],
        rules: Sequence[Any],
    ) -> BeneficiaryRecord:
        return self.allocations.set_identity_allocation(owner, identity, assets, rules)

    # Beneficiary operations

    def claim(self, owner: str, beneficiary: str, claimant: Optional[str] = None) -> ClaimReport:
        return self.engine.claim(owner, beneficiary, claimant)

    def claim_with_identity(self, owner: str, identity_hash: str, proof: ProofResult) -> ClaimReport:
        return self.identity_claims.claim_with_identity(owner, identity_hash, proof)

    def verify_and_claim(self, owner: str, identity_hash: str, payload: Mapping[str, Any]) -> ClaimReport:
        return self.identity_claims.verify_and_claim(owner, identity_hash, payload)

    def resume_identity_claim(self, owner: str, identity_hash: str, caller: str) -> ClaimReport:
        return self.identity_claims.resume_identity_claim(owner, identity_hash, caller)

    # Read-only queries

    def get_owner_liveness(self, owner: str) -> OwnerSuccessionConfig:
        return self.liveness.get_config(owner)

    def is_owner_alive(self, owner: str) -> bool:
        return self.liveness.is_alive(owner)

    def get_beneficiaries(self, owner: str) -> List[str]:
        return self.allocations.beneficiaries(owner, AddressingMode.DIRECT)

    def get_identity_beneficiaries(self, owner: str) -> List[str]:
        return self.allocations.beneficiaries(owner, AddressingMode.IDENTITY)

    def get_will_assets(self, owner: str, beneficiary: str) -> List[str]:
        record = self.allocations.get_record(owner, normalise_address(beneficiary))
        return list(record.assets) if record else []

    def get_identity_will_assets(self, owner: str, identity_hash: str) -> List[str]:
        record = self.allocations.get_record(owner, normalise_hash(identity_hash))
        return list(record.assets) if record else []

    def get_asset_share(self, owner: str, beneficiary_key: str, asset: str) -> Optional[ShareRule]:
        record = self.allocations.get_record(owner, beneficiary_key)
        if record is None:
            return None
        rule = record.share_for(asset)
        return ShareRule(rule.kind, rule.amount, rule.claimed) if rule else None

    def get_identity_info(self, owner: str, identity_hash: str) -> MutableMapping[str, Any]:
        identity_hash = normalise_hash(identity_hash)
        record = self.allocations.get_record(owner, identity_hash)
        if record is None or record.mode is not AddressingMode.IDENTITY:
            raise NotBeneficiary(normalise_address(owner), identity_hash)
        return {
            "identity": record.identity.as_dict() if record.identity else None,
            "claimed": record.claimed,
            "nullifier": record.nullifier,
            "claimant": record.claimant,
        }

    def has_identity_claimed(self, owner: str, identity_hash: str) -> bool:
        record = self.allocations.get_record(owner, normalise_hash(identity_hash))
        return bool(record and record.claimed)

    def get_snapshot(self, owner: str, asset: str) -> BalanceSnapshot:
        return self.engine.get_snapshot(owner, asset)

    def list_allocations(self, owner: str) -> List[MutableMapping[str, Any]]:
        """Every beneficiary with at least one share, in registration order."""

        return [record.as_dict() for record in self.allocations.records(owner) if record.assets]

    @staticmethod
    def generate_identity_hash(identity: IdentityFields) -> str:
        return generate_identity_hash(identity)


__all__ = ["HeirlockLedger"]
