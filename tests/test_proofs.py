import logging

import pytest

from heirlock import proofs as proofs_module
from heirlock.errors import InvalidIdentityData, NullifierAlreadyUsed, ProofRejected
from heirlock.identity import IdentityFields
from heirlock.proofs import HttpProofVerifier, NullifierRegistry, normalise_nullifier, parse_proof_result

from .support import address

PROVER = address("d4")


def _payload(**overrides):
    payload = {
        "status": "success",
        "result": True,
        "nullifier": "nullifier-1",
        "userIdentifier": PROVER.lower(),
        "discloseOutput": {
            "name": ["Ada", "Lovelace"],
            "dateOfBirth": "1815-12-10",
            "nationality": "GBR",
        },
        "isValidDetails": {"isValid": True, "isMinimumAgeValid": True, "isOfacValid": True},
    }
    payload.update(overrides)
    return payload


class FakeResponse:
    def __init__(self, payload, status_code: int = 200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise proofs_module.requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    def __init__(self, response: FakeResponse):
        self._response = response
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append((url, json, timeout))
        return self._response


def test_parse_proof_result_reads_nested_disclosure():
    proof = parse_proof_result(_payload())

    assert proof.identity == IdentityFields("Ada", "Lovelace", "1815-12-10")
    assert proof.nullifier == "nullifier-1"
    assert proof.user_identifier == PROVER
    assert proof.is_valid is True
    assert proof.checks == {"minimum_age": True, "ofac": True}
    assert proof.nationality == "GBR"
    assert proof.failed_checks(["minimum_age"]) == []


def test_parse_proof_result_accepts_split_name_fields():
    payload = _payload(discloseOutput={"firstName": " Ada ", "lastName": "Lovelace", "dateOfBirth": "1815-12-10"})
    assert parse_proof_result(payload).identity == IdentityFields("Ada", "Lovelace", "1815-12-10")


def test_parse_proof_result_reports_failed_checks():
    payload = _payload(isValidDetails={"isValid": False, "isMinimumAgeValid": False})
    proof = parse_proof_result(payload)
    assert proof.failed_checks(["minimum_age", "ofac"]) == ["valid", "minimum_age", "ofac"]


@pytest.mark.parametrize(
    "disclosure",
    [
        {"name": ["Ada"], "dateOfBirth": "1815-12-10"},
        {"name": ["Ada", "Lovelace"]},
        {"dateOfBirth": "1815-12-10"},
    ],
)
def test_parse_proof_result_rejects_incomplete_disclosure(disclosure):
    with pytest.raises(InvalidIdentityData):
        parse_proof_result(_payload(discloseOutput=disclosure))


def test_parse_proof_result_requires_nullifier():
    payload = _payload()
    del payload["nullifier"]
    with pytest.raises(InvalidIdentityData):
        parse_proof_result(payload)


def test_http_verifier_posts_payload_and_parses_response():
    session = FakeSession(FakeResponse(_payload()))
    verifier = HttpProofVerifier("https://verify.example/api", session=session, timeout=3.0)

    proof = verifier.verify({"proof": "0x01", "publicSignals": []})

    assert proof.nullifier == "nullifier-1"
    assert session.calls == [("https://verify.example/api", {"proof": "0x01", "publicSignals": []}, 3.0)]


def test_http_verifier_maps_transport_errors_to_rejection(caplog):
    caplog.set_level(logging.WARNING)
    verifier = HttpProofVerifier("https://verify.example/api", session=FakeSession(FakeResponse({}, status_code=502)))

    with pytest.raises(ProofRejected) as excinfo:
        verifier.verify({})

    assert excinfo.value.failed_checks == ("verifier_unavailable",)
    assert "Proof verifier at https://verify.example/api failed" in caplog.text


def test_http_verifier_maps_invalid_json_to_rejection():
    verifier = HttpProofVerifier("https://verify.example/api", session=FakeSession(FakeResponse(ValueError("bad json"))))
    with pytest.raises(ProofRejected):
        verifier.verify({})


def test_http_verifier_surfaces_service_errors():
    response = FakeResponse({"success": False, "error": "proof expired"})
    verifier = HttpProofVerifier("https://verify.example/api", session=FakeSession(response))

    with pytest.raises(ProofRejected) as excinfo:
        verifier.verify({})

    assert excinfo.value.failed_checks == ("proof expired",)


def test_nullifier_registry_is_insert_only():
    registry = NullifierRegistry(["a"])
    registry.consume("b")

    assert "b" in registry
    assert len(registry) == 2
    assert registry.tokens() == ["a", "b"]
    with pytest.raises(NullifierAlreadyUsed):
        registry.consume("a")


@pytest.mark.parametrize(
    "token, expected",
    [
        ("0xAB", "171"),
        ("0xab", "171"),
        (" 171 ", "171"),
        ("00171", "171"),
        (171, "171"),
        (b"\xab", "171"),
        ("nullifier-1", "nullifier-1"),
    ],
)
def test_normalise_nullifier_canonical_forms(token, expected):
    assert normalise_nullifier(token) == expected


def test_nullifier_registry_matches_across_hex_case_and_radix():
    registry = NullifierRegistry()
    registry.consume("0xAB")

    assert "0xab" in registry
    assert "171" in registry
    with pytest.raises(NullifierAlreadyUsed):
        registry.consume("0xab")


def test_parse_proof_result_canonicalises_nullifier():
    assert parse_proof_result(_payload(nullifier="0xDEAD")).nullifier == str(0xDEAD)
