"""Owner-authorised succession ledger with liveness-gated claims."""
from __future__ import annotations

from .claims import AssetClaimResult, BalanceSnapshot, ClaimEngine, ClaimReport, ClaimStatus
from .errors import HeirlockError
from .events import EventLog
from .identity import IdentityFields, generate_identity_hash
from .identity_claims import IdentityClaimAdapter
from .ledger import AddressingMode, AllocationLedger, BeneficiaryRecord
from .liveness import LivenessTracker, OwnerSuccessionConfig
from .proofs import HttpProofVerifier, NullifierRegistry, ProofResult, parse_proof_result
from .service import HeirlockLedger
from .shares import ShareKind, ShareRule, compute_share_amount
from .transfers import InMemoryAssetBackend, TransferExecutor, TransferOutcome, normalise_transfer_result

__all__ = [
    "AddressingMode",
    "AllocationLedger",
    "AssetClaimResult",
    "BalanceSnapshot",
    "BeneficiaryRecord",
    "ClaimEngine",
    "ClaimReport",
    "ClaimStatus",
    "EventLog",
    "HeirlockError",
    "HeirlockLedger",
    "HttpProofVerifier",
    "IdentityClaimAdapter",
    "IdentityFields",
    "InMemoryAssetBackend",
    "LivenessTracker",
    "NullifierRegistry",
    "OwnerSuccessionConfig",
    "ProofResult",
    "ShareKind",
    "ShareRule",
    "TransferExecutor",
    "TransferOutcome",
    "compute_share_amount",
    "generate_identity_hash",
    "normalise_transfer_result",
    "parse_proof_result",
]
