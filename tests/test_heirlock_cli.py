from __future__ import annotations

import argparse
import json

import pytest

import scripts.heirlock_cli as cli
from heirlock.config import Settings
from heirlock.identity import IdentityFields, generate_identity_hash
from heirlock.service import HeirlockLedger
from heirlock.shares import ShareKind
from heirlock.state import load_state_file, save_state

from .support import DAY, ManualClock


@pytest.fixture()
def state_file(tmp_path):
    return tmp_path / "state.json"


@pytest.fixture()
def wired(monkeypatch, backend, accounts, state_file):
    monkeypatch.setattr(cli, "_load_settings", lambda: Settings(state_file=state_file))
    monkeypatch.setattr(cli, "_build_backend", lambda settings: backend)
    monkeypatch.setattr(cli, "resolve_spender", lambda settings: accounts.spender)
    monkeypatch.setattr(cli, "_relayer_address", lambda settings: accounts.owner)
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    return state_file


def _read(state_file, backend, accounts) -> HeirlockLedger:
    return load_state_file(state_file, backend, spender=accounts.spender)


def test_parse_duration_units() -> None:
    assert cli.parse_duration("3600") == 3600
    assert cli.parse_duration("90m") == 5400
    assert cli.parse_duration("30d") == 30 * DAY
    with pytest.raises(argparse.ArgumentTypeError):
        cli.parse_duration("soon")


def test_parse_share_accepts_kind_labels(accounts) -> None:
    asset, rule = cli.parse_share(f"{accounts.token_x}:bps:2500")
    assert asset == accounts.token_x
    assert (rule.kind, rule.amount) == (ShareKind.BASIS_POINTS, 2500)
    with pytest.raises(argparse.ArgumentTypeError):
        cli.parse_share("missing-parts")


def test_configure_allocate_and_status_persist_state(wired, backend, accounts, capsys) -> None:
    assert cli.main(["configure", "--owner", accounts.owner, "--duration", "30d"]) == 0
    assert cli.main(
        [
            "allocate",
            "--owner",
            accounts.owner,
            "--beneficiary",
            accounts.alice,
            "--share",
            f"{accounts.token_x}:bps:5000",
            "--share",
            f"{accounts.token_y}:absolute:10",
        ]
    ) == 0
    capsys.readouterr()

    assert cli.main(["--json", "status", "--owner", accounts.owner]) == 0
    status = json.loads(capsys.readouterr().out)

    assert status["alive"] is True
    assert status["liveness"]["duration"] == 30 * DAY
    assert status["allocations"][0]["assets"] == [accounts.token_x, accounts.token_y]
    assert _read(wired, backend, accounts).allocations.bps_total(accounts.owner, accounts.token_x) == 5000


def test_identity_allocation_from_cli(wired, backend, accounts, capsys) -> None:
    cli.main(["configure", "--owner", accounts.owner, "--duration", "1w"])
    assert cli.main(
        [
            "allocate",
            "--owner",
            accounts.owner,
            "--identity",
            "Ada",
            "Lovelace",
            "1815-12-10",
            "--share",
            f"{accounts.token_x}:bps:100",
        ]
    ) == 0

    key = generate_identity_hash(IdentityFields.create("Ada", "Lovelace", "1815-12-10"))
    assert _read(wired, backend, accounts).get_identity_beneficiaries(accounts.owner) == [key]
    assert f"Allocation stored for {key}" in capsys.readouterr().out


def test_claim_after_window_lapses(wired, backend, accounts, capsys) -> None:
    ledger = HeirlockLedger(backend, accounts.spender, clock=ManualClock())
    ledger.configure_liveness(accounts.owner, 30 * DAY)
    ledger.set_allocation(accounts.owner, accounts.alice, [accounts.token_x], [("absolute", 100)])
    save_state(ledger, wired)

    assert cli.main(["claim", "--owner", accounts.owner, "--beneficiary", accounts.alice]) == 0

    assert "[✅] Claim complete" in capsys.readouterr().out
    assert backend.balance_of(accounts.alice, accounts.token_x) == 100
    assert _read(wired, backend, accounts).get_asset_share(accounts.owner, accounts.alice, accounts.token_x).claimed


def test_claim_identity_from_proof_file(wired, backend, accounts, tmp_path, capsys) -> None:
    identity = IdentityFields.create("Ada", "Lovelace", "1815-12-10")
    ledger = HeirlockLedger(backend, accounts.spender, clock=ManualClock())
    ledger.configure_liveness(accounts.owner, 30 * DAY)
    key = ledger.set_identity_allocation(accounts.owner, identity, [accounts.token_y], [("absolute", 12)]).key
    save_state(ledger, wired)

    proof_file = tmp_path / "proof.json"
    proof_file.write_text(
        json.dumps(
            {
                "nullifier": "n-cli",
                "userIdentifier": accounts.prover,
                "discloseOutput": {"name": ["Ada", "Lovelace"], "dateOfBirth": "1815-12-10"},
                "isValidDetails": {"isValid": True, "isMinimumAgeValid": True},
            }
        ),
        encoding="utf-8",
    )

    assert cli.main(["claim-identity", "--owner", accounts.owner, "--identity-hash", key, "--proof", str(proof_file)]) == 0
    assert backend.balance_of(accounts.prover, accounts.token_y) == 12
    assert "n-cli" in _read(wired, backend, accounts).nullifiers


def test_claim_before_lapse_reports_error(wired, accounts, capsys) -> None:
    cli.main(["configure", "--owner", accounts.owner, "--duration", "30d"])
    cli.main(["allocate", "--owner", accounts.owner, "--beneficiary", accounts.alice, "--share", f"{accounts.token_x}:bps:1"])
    capsys.readouterr()

    assert cli.main(["claim", "--owner", accounts.owner, "--beneficiary", accounts.alice]) == 1
    assert "[❌]" in capsys.readouterr().out


def test_check_in_only_for_relayer_owner(wired, accounts, capsys) -> None:
    cli.main(["configure", "--owner", accounts.owner, "--duration", "30d"])

    assert cli.main(["check-in"]) == 0
    assert cli.main(["check-in", "--owner", accounts.alice]) == 1
    assert "Relayer can only submit check-ins" in capsys.readouterr().out


def test_identity_hash_command_needs_no_state(wired, capsys) -> None:
    assert cli.main(["--json", "identity-hash", "--first", "Ada", "--last", "Lovelace", "--dob", "1815-12-10"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["identity_hash"] == generate_identity_hash(IdentityFields.create("Ada", "Lovelace", "1815-12-10"))
    assert not wired.exists()


def _lapsed_direct_allocation(backend, accounts, state_file) -> None:
    ledger = HeirlockLedger(backend, accounts.spender, clock=ManualClock())
    ledger.configure_liveness(accounts.owner, 30 * DAY)
    ledger.set_allocation(
        accounts.owner,
        accounts.alice,
        [accounts.token_x, accounts.token_y],
        [("absolute", 100), ("absolute", 10)],
    )
    save_state(ledger, state_file)


def test_backend_error_mid_claim_never_pays_twice(monkeypatch, wired, backend, accounts, capsys) -> None:
    _lapsed_direct_allocation(backend, accounts, wired)
    original = backend.transfer_from
    failures = [ConnectionError("receipt timed out")]

    def flaky_transfer_from(asset, sender, recipient, amount):
        if asset == accounts.token_y and failures:
            raise failures.pop()
        return original(asset, sender, recipient, amount)

    monkeypatch.setattr(backend, "transfer_from", flaky_transfer_from)

    assert cli.main(["claim", "--owner", accounts.owner, "--beneficiary", accounts.alice]) == 0
    assert "Claim partially failed" in capsys.readouterr().out
    assert cli.main(["claim", "--owner", accounts.owner, "--beneficiary", accounts.alice]) == 0

    assert backend.balance_of(accounts.alice, accounts.token_x) == 100
    assert backend.balance_of(accounts.alice, accounts.token_y) == 10


def test_interrupted_claim_keeps_completed_transfers(monkeypatch, wired, backend, accounts) -> None:
    _lapsed_direct_allocation(backend, accounts, wired)
    original = backend.transfer_from
    interrupts = [KeyboardInterrupt()]

    def interrupted_transfer_from(asset, sender, recipient, amount):
        if asset == accounts.token_y and interrupts:
            raise interrupts.pop()
        return original(asset, sender, recipient, amount)

    monkeypatch.setattr(backend, "transfer_from", interrupted_transfer_from)

    with pytest.raises(KeyboardInterrupt):
        cli.main(["claim", "--owner", accounts.owner, "--beneficiary", accounts.alice])
    assert _read(wired, backend, accounts).get_asset_share(accounts.owner, accounts.alice, accounts.token_x).claimed

    assert cli.main(["claim", "--owner", accounts.owner, "--beneficiary", accounts.alice]) == 0
    assert backend.balance_of(accounts.alice, accounts.token_x) == 100
    assert backend.balance_of(accounts.alice, accounts.token_y) == 10


def test_resume_identity_retries_failed_assets(wired, backend, accounts, tmp_path, capsys) -> None:
    identity = IdentityFields.create("Ada", "Lovelace", "1815-12-10")
    ledger = HeirlockLedger(backend, accounts.spender, clock=ManualClock())
    ledger.configure_liveness(accounts.owner, 30 * DAY)
    key = ledger.set_identity_allocation(
        accounts.owner, identity, [accounts.token_x, accounts.token_y], [("absolute", 5), ("absolute", 7)]
    ).key
    save_state(ledger, wired)

    proof_file = tmp_path / "proof.json"
    proof_file.write_text(
        json.dumps(
            {
                "nullifier": "0x01",
                "userIdentifier": accounts.prover,
                "discloseOutput": {"name": ["Ada", "Lovelace"], "dateOfBirth": "1815-12-10"},
                "isValidDetails": {"isValid": True, "isMinimumAgeValid": True},
            }
        ),
        encoding="utf-8",
    )
    backend.set_reverting([accounts.token_y])
    assert cli.main(["claim-identity", "--owner", accounts.owner, "--identity-hash", key, "--proof", str(proof_file)]) == 0
    assert "retry with resume-identity" in capsys.readouterr().out

    resume = ["resume-identity", "--owner", accounts.owner, "--identity-hash", key]
    assert cli.main(resume + ["--caller", accounts.alice]) == 1
    assert "[❌]" in capsys.readouterr().out

    backend.set_reverting([accounts.token_y], reverting=False)
    assert cli.main(resume + ["--caller", accounts.prover]) == 0

    assert "[✅] Identity claim complete" in capsys.readouterr().out
    assert backend.balance_of(accounts.prover, accounts.token_x) == 5
    assert backend.balance_of(accounts.prover, accounts.token_y) == 7
    assert _read(wired, backend, accounts).get_asset_share(accounts.owner, key, accounts.token_y).claimed
