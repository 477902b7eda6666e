#!/usr/bin/env python3
"""Operate a Heirlock succession ledger from the command line.

State is kept in a JSON file (``HEIRLOCK_STATE_FILE``) and assets are moved
through the ERC-20 contracts reachable at ``HEIRLOCK_RPC_URL`` using the
relayer account from ``HEIRLOCK_RELAYER_PRIVATE_KEY``.

Example usage::

    python scripts/heirlock_cli.py configure --owner 0xabc... --duration 30d
    python scripts/heirlock_cli.py allocate --owner 0xabc... --beneficiary 0xdef... \
        --share 0xToken...:bps:5000
    python scripts/heirlock_cli.py claim --owner 0xabc... --beneficiary 0xdef...
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

from heirlock.addresses import normalise_address
from heirlock.config import Settings, load_relayer_account, resolve_spender
from heirlock.errors import HeirlockError
from heirlock.identity import IdentityFields, generate_identity_hash
from heirlock.proofs import HttpProofVerifier, parse_proof_result
from heirlock.service import HeirlockLedger
from heirlock.shares import ShareKind, ShareRule
from heirlock.state import load_state_file, save_state
from heirlock.transfers import AssetBackend
from heirlock.web3_backend import Web3Erc20Backend

_DURATION_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}


def parse_duration(text: str) -> int:
    """Parse ``"3600"``, ``"90m"``, ``"12h"`` or ``"30d"`` into seconds."""

    value = text.strip().lower()
    multiplier = 1
    if value and value[-1] in _DURATION_UNITS:
        multiplier = _DURATION_UNITS[value[-1]]
        value = value[:-1]
    try:
        return int(value) * multiplier
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid duration: {text!r}") from exc


def parse_share(text: str) -> Tuple[str, ShareRule]:
    """Parse ``ASSET:KIND:AMOUNT`` (kind is ``bps`` or ``absolute``)."""

    parts = text.split(":")
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(f"Share must look like ASSET:KIND:AMOUNT, got {text!r}")
    asset, kind, amount = parts
    try:
        return asset, ShareRule(ShareKind.parse(kind), int(amount))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage Heirlock liveness, allocations and claims.")
    parser.add_argument("--state", type=Path, default=None, help="Ledger state file (defaults to HEIRLOCK_STATE_FILE).")
    parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON.")
    parser.add_argument("--log-level", default=None, help="Logging verbosity (DEBUG, INFO, WARNING).")
    commands = parser.add_subparsers(dest="command", required=True)

    configure = commands.add_parser("configure", help="Set the owner's liveness window.")
    configure.add_argument("--owner", required=True)
    configure.add_argument("--duration", required=True, type=parse_duration, help="Seconds, or a number with s/m/h/d/w.")

    check_in = commands.add_parser("check-in", help="Record a check-in for the relayer-controlled owner.")
    check_in.add_argument("--owner", default=None, help="Must match the relayer address when given.")

    allocate = commands.add_parser("allocate", help="Create or update a beneficiary allocation.")
    allocate.add_argument("--owner", required=True)
    target = allocate.add_mutually_exclusive_group(required=True)
    target.add_argument("--beneficiary", help="Direct beneficiary address.")
    target.add_argument("--identity", nargs=3, metavar=("FIRST", "LAST", "DOB"), help="Identity-committed beneficiary.")
    allocate.add_argument(
        "--share",
        action="append",
        type=parse_share,
        required=True,
        help="ASSET:KIND:AMOUNT; amount 0 removes the asset. Repeat for multiple assets.",
    )

    claim = commands.add_parser("claim", help="Claim a direct beneficiary's assets.")
    claim.add_argument("--owner", required=True)
    claim.add_argument("--beneficiary", required=True)
    claim.add_argument("--claimant", default=None, help="Recipient (defaults to the beneficiary).")

    claim_identity = commands.add_parser("claim-identity", help="Claim with an identity proof.")
    claim_identity.add_argument("--owner", required=True)
    claim_identity.add_argument("--identity-hash", required=True)
    source = claim_identity.add_mutually_exclusive_group(required=True)
    source.add_argument("--proof", type=Path, help="Verifier result JSON.")
    source.add_argument("--payload", type=Path, help="Application payload forwarded to HEIRLOCK_VERIFIER_URL.")

    resume_identity = commands.add_parser("resume-identity", help="Retry assets left unpaid by an identity claim.")
    resume_identity.add_argument("--owner", required=True)
    resume_identity.add_argument("--identity-hash", required=True)
    resume_identity.add_argument("--caller", required=True, help="Account that submitted the accepted proof.")

    status = commands.add_parser("status", help="Show liveness and allocations for an owner.")
    status.add_argument("--owner", required=True)

    identity_hash = commands.add_parser("identity-hash", help="Compute an identity commitment.")
    identity_hash.add_argument("--first", required=True)
    identity_hash.add_argument("--last", required=True)
    identity_hash.add_argument("--dob", required=True)
    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(message)s",
    )


def _load_settings() -> Settings:
    return Settings.from_env()


def _build_backend(settings: Settings) -> AssetBackend:
    return Web3Erc20Backend.from_settings(settings)


def _relayer_address(settings: Settings) -> str:
    return normalise_address(load_relayer_account(settings).address)


def _open_ledger(settings: Settings, state_file: Path) -> HeirlockLedger:
    verifier = HttpProofVerifier(settings.verifier_url) if settings.verifier_url else None
    return load_state_file(
        state_file,
        _build_backend(settings),
        spender=resolve_spender(settings),
        verifier=verifier,
        required_checks=settings.required_proof_checks,
    )


def _emit(result: Any, as_json: bool, message: str) -> None:
    if as_json:
        json.dump(result, sys.stdout, indent=2)
        sys.stdout.write("\n")
    else:
        print(message)
        if result:
            print(json.dumps(result, indent=2))


def _run(args: argparse.Namespace, settings: Settings) -> Tuple[Any, str]:
    """Dispatch one command and return its result and a summary line."""

    if args.command == "identity-hash":
        digest = generate_identity_hash(IdentityFields.create(args.first, args.last, args.dob))
        return {"identity_hash": digest}, f"[✅] Identity hash: {digest}"

    state_file = args.state or settings.state_file
    ledger = _open_ledger(settings, state_file)
    if args.command == "status":
        owner = normalise_address(args.owner)
        result = {
            "owner": owner,
            "liveness": ledger.get_owner_liveness(owner).as_dict(),
            "alive": ledger.is_owner_alive(owner),
            "allocations": ledger.list_allocations(owner),
        }
        return result, f"[ℹ️] Status for {owner}"

    # Transfers already made must be recorded even when a later step raises.
    try:
        return _dispatch(args, settings, ledger)
    finally:
        save_state(ledger, state_file)


def _dispatch(args: argparse.Namespace, settings: Settings, ledger: HeirlockLedger) -> Tuple[Any, str]:
    if args.command == "configure":
        config = ledger.configure_liveness(args.owner, args.duration)
        return config.as_dict(), f"[✅] Liveness window set to {args.duration}s"
    if args.command == "check-in":
        relayer = _relayer_address(settings)
        if args.owner and normalise_address(args.owner) != relayer:
            raise HeirlockError("Relayer can only submit check-ins for the configured owner address")
        config = ledger.check_in(relayer)
        return config.as_dict(), f"[✅] {relayer} checked in"
    if args.command == "allocate":
        assets: List[str] = [asset for asset, _ in args.share]
        rules: List[ShareRule] = [rule for _, rule in args.share]
        if args.identity:
            record = ledger.set_identity_allocation(args.owner, IdentityFields.create(*args.identity), assets, rules)
        else:
            record = ledger.set_allocation(args.owner, args.beneficiary, assets, rules)
        return record.as_dict(), f"[✅] Allocation stored for {record.key}"
    if args.command == "claim":
        report = ledger.claim(args.owner, args.beneficiary, args.claimant)
        message = "[✅] Claim complete" if report.complete else "[⚠️] Claim partially failed; re-run to retry"
        return report.as_dict(), message
    if args.command == "claim-identity":
        if args.proof:
            proof = parse_proof_result(json.loads(args.proof.read_text(encoding="utf-8")))
            report = ledger.claim_with_identity(args.owner, args.identity_hash, proof)
        else:
            payload = json.loads(args.payload.read_text(encoding="utf-8"))
            report = ledger.verify_and_claim(args.owner, args.identity_hash, payload)
        message = (
            "[✅] Identity claim complete"
            if report.complete
            else "[⚠️] Identity claim partially failed; retry with resume-identity"
        )
        return report.as_dict(), message
    if args.command == "resume-identity":
        report = ledger.resume_identity_claim(args.owner, args.identity_hash, args.caller)
        message = "[✅] Identity claim complete" if report.complete else "[⚠️] Identity claim still partially failed"
        return report.as_dict(), message
    raise HeirlockError(f"Unknown command {args.command!r}")  # pragma: no cover - argparse rejects unknown commands


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        settings = _load_settings()
    except HeirlockError as exc:
        print(f"[❌] {exc}")
        return 1
    configure_logging(args.log_level or settings.log_level)

    try:
        result, message = _run(args, settings)
    except HeirlockError as exc:
        print(f"[❌] {exc}")
        return 1

    _emit(result, args.json, message)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
