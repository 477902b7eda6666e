"""Identity proof results, the verifier capability and the nullifier registry."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Optional, Protocol, Sequence

import requests

from .addresses import normalise_address
from .errors import InvalidIdentityData, NullifierAlreadyUsed, ProofRejected
from .identity import IdentityFields

_LOGGER = logging.getLogger(__name__)

# Containers verifier responses nest their disclosed output under.
_NESTED_KEYS: Sequence[str] = ("data", "result", "discloseOutput", "disclosed", "credentialSubject")
_CHECK_CONTAINERS: Sequence[str] = ("isValidDetails", "validity", "checks")
_DECIMAL_RE = re.compile(r"[0-9]+")
_HEX_RE = re.compile(r"0[xX][0-9a-fA-F]+")


@dataclass(frozen=True)
class ProofResult:
    """Outcome of an external identity proof verification."""

    identity: IdentityFields
    nullifier: str
    user_identifier: str
    is_valid: bool
    checks: Mapping[str, bool] = field(default_factory=dict)
    nationality: Optional[str] = None

    def failed_checks(self, required: Iterable[str] = ()) -> List[str]:
        failed = [] if self.is_valid else ["valid"]
        for name in required:
            if not self.checks.get(name, False):
                failed.append(name)
        return failed

    def as_dict(self) -> MutableMapping[str, Any]:
        return {
            "identity": self.identity.as_dict(),
            "nationality": self.nationality,
            "nullifier": self.nullifier,
            "user_identifier": self.user_identifier,
            "is_valid": self.is_valid,
            "checks": dict(self.checks),
        }


class ProofVerifier(Protocol):
    def verify(self, payload: Mapping[str, Any]) -> ProofResult: ...


def normalise_nullifier(token: Any) -> str:
    """Canonical text for a uniqueness token.

    Numeric tokens (decimal, or ``0x`` hex in any case) become their decimal
    form; anything else is kept as stripped text.
    """

    if isinstance(token, bool):
        raise InvalidIdentityData(f"Invalid nullifier: {token!r}")
    if isinstance(token, int):
        return str(token)
    if isinstance(token, (bytes, bytearray)):
        return str(int.from_bytes(bytes(token), "big"))
    if not isinstance(token, str) or not token.strip():
        raise InvalidIdentityData(f"Invalid nullifier: {token!r}")
    text = token.strip()
    if _DECIMAL_RE.fullmatch(text):
        return str(int(text))
    if _HEX_RE.fullmatch(text):
        return str(int(text, 16))
    return text


def _sources(payload: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    found: List[Mapping[str, Any]] = [payload]
    for key in _NESTED_KEYS:
        nested = payload.get(key)
        if isinstance(nested, Mapping):
            found.extend(_sources(nested))
    return found


def _lookup(sources: Sequence[Mapping[str, Any]], *keys: str) -> Any:
    for source in sources:
        for key in keys:
            value = source.get(key)
            if value is not None and value != "":
                return value
    return None


def _check_name(key: str) -> str:
    text = key
    if text.startswith("is") and len(text) > 2 and text[2].isupper():
        text = text[2:]
    if text.endswith("Valid") and len(text) > 5:
        text = text[:-5]
    return re.sub(r"(?<!^)(?=[A-Z])", "_", text).lower()


def _split_name(value: Any) -> tuple[Any, Any]:
    if isinstance(value, str):
        parts = value.split()
        if len(parts) < 2:
            raise InvalidIdentityData("Name must contain a first and a last name")
        return parts[0], " ".join(parts[1:])
    if isinstance(value, Sequence) and len(value) >= 2:
        return value[0], value[1]
    raise InvalidIdentityData("Name must be an array with at least 2 elements (firstName, lastName)")


def parse_proof_result(payload: Mapping[str, Any]) -> ProofResult:
    """Build a :class:`ProofResult` from a verifier JSON document."""

    if not isinstance(payload, Mapping):
        raise InvalidIdentityData("Proof payload must be a JSON object")
    sources = _sources(payload)

    first_name = _lookup(sources, "firstName", "first_name")
    last_name = _lookup(sources, "lastName", "last_name")
    if first_name is None or last_name is None:
        name = _lookup(sources, "name")
        if name is None:
            raise InvalidIdentityData("Proof payload does not disclose a name")
        first_name, last_name = _split_name(name)

    date_of_birth = _lookup(sources, "dateOfBirth", "date_of_birth")
    if date_of_birth is None:
        raise InvalidIdentityData("Missing dateOfBirth")
    identity = IdentityFields.create(first_name, last_name, date_of_birth)

    nullifier = _lookup(sources, "nullifier", "uniquenessToken")
    if nullifier is None:
        raise InvalidIdentityData("Proof payload does not carry a nullifier")
    user_identifier = _lookup(sources, "userIdentifier", "user_identifier", "userId")
    if user_identifier is None:
        raise InvalidIdentityData("Proof payload does not identify the submitting account")

    checks: Dict[str, bool] = {}
    is_valid: Optional[bool] = None
    for source in sources:
        for container in _CHECK_CONTAINERS:
            details = source.get(container)
            if not isinstance(details, Mapping):
                continue
            for key, value in details.items():
                if not isinstance(value, bool):
                    continue
                name = _check_name(key)
                if name == "valid":
                    is_valid = value if is_valid is None else is_valid and value
                else:
                    checks[name] = value
        for key, value in source.items():
            if isinstance(value, bool) and key.startswith("is") and key.endswith("Valid"):
                name = _check_name(key)
                if name == "valid":
                    is_valid = value if is_valid is None else is_valid and value
                else:
                    checks.setdefault(name, value)

    nationality = _lookup(sources, "nationality")
    return ProofResult(
        identity=identity,
        nullifier=normalise_nullifier(nullifier),
        user_identifier=normalise_address(str(user_identifier)),
        is_valid=bool(is_valid),
        checks=checks,
        nationality=str(nationality) if nationality is not None else None,
    )


@dataclass
class HttpProofVerifier:
    """Posts the application payload to a verification service over HTTP."""

    url: str
    session: Optional[requests.Session] = None
    timeout: Optional[float] = 10.0

    def __post_init__(self) -> None:
        if self.session is None:
            self.session = requests.Session()
        self._headers = {"Content-Type": "application/json", "User-Agent": "heirlock-ledger/1.0"}

    def verify(self, payload: Mapping[str, Any]) -> ProofResult:
        try:
            response = self.session.post(self.url, json=dict(payload), headers=self._headers, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as exc:
            _LOGGER.warning("Proof verifier at %s failed: %s", self.url, exc)
            raise ProofRejected(["verifier_unavailable"]) from exc
        if isinstance(body, Mapping) and body.get("success") is False:
            raise ProofRejected([str(body.get("error") or "verifier_error")])
        return parse_proof_result(body)


class NullifierRegistry:
    """Insert-only set of consumed proof uniqueness tokens, shared across owners.

    Tokens are compared in their :func:`normalise_nullifier` form.
    """

    def __init__(self, tokens: Iterable[str] = ()) -> None:
        self._tokens: set[str] = {normalise_nullifier(token) for token in tokens}

    def __contains__(self, token: object) -> bool:
        try:
            return normalise_nullifier(token) in self._tokens
        except InvalidIdentityData:
            return False

    def __len__(self) -> int:
        return len(self._tokens)

    def consume(self, token: str) -> str:
        canonical = normalise_nullifier(token)
        if canonical in self._tokens:
            raise NullifierAlreadyUsed(canonical)
        self._tokens.add(canonical)
        return canonical

    def tokens(self) -> List[str]:
        return sorted(self._tokens)


__all__ = [
    "HttpProofVerifier",
    "NullifierRegistry",
    "ProofResult",
    "ProofVerifier",
    "normalise_nullifier",
    "parse_proof_result",
]
