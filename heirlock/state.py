"""JSON persistence for a :class:`~heirlock.service.HeirlockLedger`."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional

from .claims import BalanceSnapshot
from .identity import IdentityFields
from .ledger import AddressingMode, BeneficiaryRecord
from .liveness import OwnerSuccessionConfig
from .service import HeirlockLedger
from .shares import ShareKind, ShareRule
from .transfers import AssetBackend

_LOGGER = logging.getLogger(__name__)

STATE_VERSION = 1


def dump_state(ledger: HeirlockLedger) -> MutableMapping[str, Any]:
    records = []
    for owner_records in ledger.allocations.all_records().values():
        for record in owner_records.values():
            records.append(
                {
                    "owner": record.owner,
                    "key": record.key,
                    "mode": record.mode.value,
                    "identity": record.identity.as_dict() if record.identity else None,
                    "assets": list(record.assets),
                    "rules": {asset: rule.as_dict() for asset, rule in record.rules.items()},
                    "claimed": record.claimed,
                    "nullifier": record.nullifier,
                    "claimant": record.claimant,
                }
            )

    return {
        "version": STATE_VERSION,
        "spender": ledger.spender,
        "owners": {
            owner: {"duration": config.liveness_window, "last_check_in": config.last_check_in}
            for owner, config in ledger.liveness.owners().items()
        },
        "records": records,
        "totals": ledger.allocations.all_totals(),
        "snapshots": {
            owner: {asset: {"balance": snap.balance, "taken": snap.taken} for asset, snap in snapshots.items()}
            for owner, snapshots in ledger.engine.all_snapshots().items()
        },
        "nullifiers": ledger.nullifiers.tokens(),
    }


def load_state(
    payload: Mapping[str, Any],
    backend: AssetBackend,
    *,
    spender: Optional[str] = None,
    **ledger_kwargs: Any,
) -> HeirlockLedger:
    """Rebuild a ledger from :func:`dump_state` output."""

    version = payload.get("version", STATE_VERSION)
    if version != STATE_VERSION:
        raise ValueError(f"Unsupported state version: {version!r}")
    resolved_spender = spender or payload.get("spender")
    if not resolved_spender:
        raise ValueError("State does not record a spender address; pass one explicitly")

    ledger = HeirlockLedger(backend, resolved_spender, **ledger_kwargs)

    for owner, config in payload.get("owners", {}).items():
        ledger.liveness.restore(
            owner, OwnerSuccessionConfig(int(config["duration"]), int(config["last_check_in"]))
        )

    for entry in payload.get("records", []):
        identity = entry.get("identity")
        rules: Dict[str, ShareRule] = {
            asset: ShareRule(ShareKind[rule["kind"]], int(rule["amount"]), bool(rule["claimed"]))
            for asset, rule in entry.get("rules", {}).items()
        }
        ledger.allocations.restore(
            BeneficiaryRecord(
                owner=entry["owner"],
                key=entry["key"],
                mode=AddressingMode(entry["mode"]),
                identity=IdentityFields.from_mapping(identity) if identity else None,
                assets=list(entry.get("assets", [])),
                rules=rules,
                claimed=bool(entry.get("claimed", False)),
                nullifier=entry.get("nullifier"),
                claimant=entry.get("claimant"),
            )
        )

    for owner, totals in payload.get("totals", {}).items():
        ledger.allocations.restore_totals(owner, totals)

    for owner, snapshots in payload.get("snapshots", {}).items():
        for asset, snap in snapshots.items():
            ledger.engine.restore_snapshot(owner, asset, BalanceSnapshot(int(snap["balance"]), bool(snap["taken"])))

    for token in payload.get("nullifiers", []):
        ledger.nullifiers.consume(token)

    return ledger


def save_state(ledger: HeirlockLedger, path: Path) -> None:
    path = Path(path)
    path.write_text(json.dumps(dump_state(ledger), indent=2, sort_keys=True) + "\n", encoding="utf-8")
    _LOGGER.debug("Wrote ledger state to %s", path)


def load_state_file(path: Path, backend: AssetBackend, *, spender: str, **ledger_kwargs: Any) -> HeirlockLedger:
    """Load ``path`` if it exists, otherwise start an empty ledger."""

    path = Path(path)
    if not path.is_file():
        _LOGGER.info("No state at %s; starting an empty ledger", path)
        return HeirlockLedger(backend, spender, **ledger_kwargs)
    payload = json.loads(path.read_text(encoding="utf-8"))
    return load_state(payload, backend, spender=spender, **ledger_kwargs)


__all__ = ["STATE_VERSION", "dump_state", "load_state", "load_state_file", "save_state"]
