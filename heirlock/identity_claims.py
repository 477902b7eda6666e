"""Identity Claim Adapter: unlocks identity-committed allocations with a proof."""
from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional

from .addresses import normalise_address, normalise_hash
from .claims import ClaimEngine, ClaimReport
from .errors import (
    ConfigurationError,
    EligibilityError,
    IdentityMismatch,
    NotBeneficiary,
    NotIdentityClaimant,
    NullifierAlreadyUsed,
    OwnerStillAlive,
    ProofRejected,
)
from .events import IdentityClaimAccepted
from .identity import generate_identity_hash
from .ledger import AddressingMode
from .proofs import NullifierRegistry, ProofResult, ProofVerifier, normalise_nullifier

_LOGGER = logging.getLogger(__name__)

DEFAULT_REQUIRED_CHECKS = ("minimum_age",)


class IdentityClaimAdapter:
    def __init__(
        self,
        engine: ClaimEngine,
        registry: Optional[NullifierRegistry] = None,
        verifier: Optional[ProofVerifier] = None,
        required_checks: Iterable[str] = DEFAULT_REQUIRED_CHECKS,
    ) -> None:
        self.engine = engine
        self.registry = registry if registry is not None else NullifierRegistry()
        self.verifier = verifier
        self.required_checks = tuple(required_checks)

    def claim_with_identity(self, owner: str, identity_hash: str, proof: ProofResult) -> ClaimReport:
        """Consume ``proof`` and pay the identity beneficiary's assets to the prover.

        The disclosed identity must both hash to ``identity_hash`` and equal
        the fields stored when the allocation was created. The recipient is
        the account that submitted the proof.
        """

        identity_hash = normalise_hash(identity_hash)
        record = self.engine.check_eligibility(owner, identity_hash, AddressingMode.IDENTITY)

        failed = proof.failed_checks(self.required_checks)
        if failed:
            raise ProofRejected(failed)
        nullifier = normalise_nullifier(proof.nullifier)
        if nullifier in self.registry:
            raise NullifierAlreadyUsed(nullifier)
        if generate_identity_hash(proof.identity) != record.key:
            raise IdentityMismatch("Disclosed identity does not hash to the stored commitment")
        if proof.identity != record.identity:
            raise IdentityMismatch("Disclosed identity fields differ from the stored identity")

        claimant = normalise_address(proof.user_identifier)
        self.registry.consume(nullifier)
        record.claimed = True
        record.nullifier = nullifier
        record.claimant = claimant
        _LOGGER.info("Identity %s of %s claimed by %s", record.key, record.owner, claimant)
        self.engine.events.emit(
            IdentityClaimAccepted(owner=record.owner, identity_hash=record.key, claimant=claimant, nullifier=nullifier)
        )
        return self.engine.settle(record, claimant)

    def verify_and_claim(self, owner: str, identity_hash: str, payload: Mapping[str, Any]) -> ClaimReport:
        """Run ``payload`` through the configured verifier, then claim."""

        if self.verifier is None:
            raise ConfigurationError("No identity proof verifier is configured")
        proof = self.verifier.verify(payload)
        return self.claim_with_identity(owner, identity_hash, proof)

    def resume_identity_claim(self, owner: str, identity_hash: str, caller: str) -> ClaimReport:
        """Retry assets left unclaimed by an accepted identity claim."""

        owner = normalise_address(owner)
        identity_hash = normalise_hash(identity_hash)
        caller = normalise_address(caller)
        if self.engine.liveness.is_alive(owner):
            raise OwnerStillAlive(owner)
        record = self.engine.ledger.get_record(owner, identity_hash)
        if record is None or record.mode is not AddressingMode.IDENTITY:
            raise NotBeneficiary(owner, identity_hash)
        if not record.claimed:
            raise EligibilityError("Identity has not been proven yet; claim with a proof first")
        if record.claimant != caller:
            raise NotIdentityClaimant(caller)
        return self.engine.settle(record, caller)


__all__ = ["DEFAULT_REQUIRED_CHECKS", "IdentityClaimAdapter"]
