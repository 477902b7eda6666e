"""Typed failures raised by the succession ledger."""
from __future__ import annotations

from typing import Sequence


class HeirlockError(RuntimeError):
    """Base class for every ledger failure surfaced to callers."""


class ConfigurationError(HeirlockError):
    """Liveness or runtime configuration is missing or invalid."""


class ValidationError(HeirlockError, ValueError):
    """Caller supplied malformed input; nothing was committed."""


class InvariantError(HeirlockError):
    """The call would break an allocation invariant."""


class EligibilityError(HeirlockError):
    """The caller is not (yet) entitled to perform a claim."""


class InvalidDuration(ConfigurationError):
    def __init__(self) -> None:
        super().__init__("Liveness window must be a positive number of seconds")


class NotConfigured(ConfigurationError):
    def __init__(self, owner: str) -> None:
        super().__init__(f"Owner {owner} has not configured a liveness window")
        self.owner = owner


class ArrayLengthMismatch(ValidationError):
    def __init__(self, assets: int, rules: int) -> None:
        super().__init__(f"Received {assets} assets but {rules} share rules")


class InvalidShareAmount(ValidationError):
    def __init__(self, asset: str, amount: int) -> None:
        super().__init__(f"Basis-point share {amount} for {asset} exceeds 10000")
        self.asset = asset
        self.amount = amount


class InvalidIdentityData(ValidationError):
    """Identity fields are empty or could not be parsed."""


class InvalidAddress(ValidationError):
    def __init__(self, value: object) -> None:
        super().__init__(f"Not a valid account or asset address: {value!r}")
        self.value = value


class BpsExceeded(InvariantError):
    def __init__(self, asset: str, new_total: int) -> None:
        super().__init__(f"Basis-point allocations for {asset} would total {new_total} (> 10000)")
        self.asset = asset
        self.new_total = new_total


class NoApproval(InvariantError):
    def __init__(self, asset: str) -> None:
        super().__init__(f"Owner has not approved the ledger to spend {asset}")
        self.asset = asset


class OwnerStillAlive(EligibilityError):
    def __init__(self, owner: str) -> None:
        super().__init__(f"Owner {owner} is still within the liveness window")
        self.owner = owner


class NotBeneficiary(EligibilityError):
    def __init__(self, owner: str, key: str) -> None:
        super().__init__(f"{key} is not a beneficiary of {owner}")
        self.owner = owner
        self.key = key


class IdentityAlreadyClaimed(EligibilityError):
    def __init__(self, identity_hash: str) -> None:
        super().__init__(f"Identity {identity_hash} has already claimed")
        self.identity_hash = identity_hash


class NullifierAlreadyUsed(EligibilityError):
    def __init__(self, nullifier: str) -> None:
        super().__init__(f"Proof nullifier {nullifier} has already been consumed")
        self.nullifier = nullifier


class IdentityMismatch(EligibilityError):
    """Disclosed identity does not match the stored commitment."""


class ProofRejected(EligibilityError):
    def __init__(self, failed_checks: Sequence[str]) -> None:
        checks = ", ".join(failed_checks) or "unknown"
        super().__init__(f"Identity proof rejected (failed checks: {checks})")
        self.failed_checks = tuple(failed_checks)


class NotIdentityClaimant(EligibilityError):
    def __init__(self, caller: str) -> None:
        super().__init__(f"{caller} did not submit the identity proof for this record")
        self.caller = caller


class TransferReverted(HeirlockError):
    """The asset contract rejected a transfer call."""


class MalformedTransferResult(HeirlockError):
    def __init__(self, raw: object) -> None:
        super().__init__(f"Unexpected transfer return value: {raw!r}")
        self.raw = raw


__all__ = [
    "ArrayLengthMismatch",
    "BpsExceeded",
    "ConfigurationError",
    "EligibilityError",
    "HeirlockError",
    "IdentityAlreadyClaimed",
    "IdentityMismatch",
    "InvalidAddress",
    "InvalidDuration",
    "InvalidIdentityData",
    "InvalidShareAmount",
    "InvariantError",
    "MalformedTransferResult",
    "NoApproval",
    "NotBeneficiary",
    "NotConfigured",
    "NotIdentityClaimant",
    "NullifierAlreadyUsed",
    "OwnerStillAlive",
    "ProofRejected",
    "TransferReverted",
    "ValidationError",
]
