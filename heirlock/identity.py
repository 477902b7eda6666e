"""Identity commitments for beneficiaries addressed by real-world identity."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, MutableMapping

from eth_abi import encode
from eth_utils import keccak

from .errors import InvalidIdentityData

_IDENTITY_TYPES = ["string", "string", "string"]


@dataclass(frozen=True)
class IdentityFields:
    """The identity tuple a commitment is derived from."""

    first_name: str
    last_name: str
    date_of_birth: str

    @classmethod
    def create(cls, first_name: Any, last_name: Any, date_of_birth: Any) -> "IdentityFields":
        """Build a canonical tuple, rejecting empty or non-string parts."""

        parts = []
        for label, value in (
            ("first name", first_name),
            ("last name", last_name),
            ("date of birth", date_of_birth),
        ):
            if not isinstance(value, str) or not value.strip():
                raise InvalidIdentityData(f"Identity {label} must be a non-empty string")
            parts.append(value.strip())
        return cls(*parts)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "IdentityFields":
        return cls.create(
            payload.get("first_name", payload.get("firstName")),
            payload.get("last_name", payload.get("lastName")),
            payload.get("date_of_birth", payload.get("dateOfBirth")),
        )

    def as_dict(self) -> MutableMapping[str, str]:
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "date_of_birth": self.date_of_birth,
        }


def generate_identity_hash(fields: IdentityFields) -> str:
    """Return ``keccak256(abi.encode(firstName, lastName, dateOfBirth))`` as hex."""

    fields = IdentityFields.create(fields.first_name, fields.last_name, fields.date_of_birth)
    encoded = encode(_IDENTITY_TYPES, [fields.first_name, fields.last_name, fields.date_of_birth])
    return "0x" + keccak(encoded).hex()


__all__ = ["IdentityFields", "generate_identity_hash"]
