"""Runtime settings resolved from the environment and an optional ``.env`` file."""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Tuple, TYPE_CHECKING, Any

from dotenv import load_dotenv
from eth_account import Account

from .addresses import normalise_address
from .errors import ConfigurationError
from .identity_claims import DEFAULT_REQUIRED_CHECKS

if TYPE_CHECKING:  # pragma: no cover - typing only
    from eth_account.signers.local import LocalAccount
else:
    LocalAccount = Any

DEFAULT_RPC_URL = "https://alfajores-forno.celo-testnet.org"
DEFAULT_STATE_FILE = "heirlock_state.json"

_PRIVATE_KEY_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


@dataclass(frozen=True)
class Settings:
    rpc_url: str = DEFAULT_RPC_URL
    relayer_private_key: Optional[str] = None
    ledger_address: Optional[str] = None
    state_file: Path = Path(DEFAULT_STATE_FILE)
    verifier_url: Optional[str] = None
    required_proof_checks: Tuple[str, ...] = DEFAULT_REQUIRED_CHECKS
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Read ``HEIRLOCK_*`` keys from ``env`` (``os.environ`` after ``load_dotenv``)."""

        if env is None:
            load_dotenv()
            env = os.environ

        private_key = env.get("HEIRLOCK_RELAYER_PRIVATE_KEY") or None
        if private_key is not None and not _PRIVATE_KEY_RE.match(private_key):
            raise ConfigurationError("HEIRLOCK_RELAYER_PRIVATE_KEY must be a 0x-prefixed 32-byte hex string")

        ledger_address = env.get("HEIRLOCK_LEDGER_ADDRESS") or None
        if ledger_address is not None:
            ledger_address = normalise_address(ledger_address)

        raw_checks = env.get("HEIRLOCK_REQUIRED_PROOF_CHECKS")
        if raw_checks is None:
            checks = DEFAULT_REQUIRED_CHECKS
        else:
            checks = tuple(item.strip() for item in raw_checks.split(",") if item.strip())

        return cls(
            rpc_url=env.get("HEIRLOCK_RPC_URL") or DEFAULT_RPC_URL,
            relayer_private_key=private_key,
            ledger_address=ledger_address,
            state_file=Path(env.get("HEIRLOCK_STATE_FILE") or DEFAULT_STATE_FILE),
            verifier_url=env.get("HEIRLOCK_VERIFIER_URL") or None,
            required_proof_checks=checks,
            log_level=env.get("HEIRLOCK_LOG_LEVEL") or "INFO",
        )


def load_relayer_account(settings: Settings) -> LocalAccount:
    """Return the relayer account that signs ``transferFrom`` and check-ins."""

    if not settings.relayer_private_key:
        raise ConfigurationError("Set HEIRLOCK_RELAYER_PRIVATE_KEY before running relayed operations.")
    return Account.from_key(settings.relayer_private_key)


def resolve_spender(settings: Settings) -> str:
    """The address owners must approve: the configured ledger or the relayer itself."""

    if settings.ledger_address:
        return settings.ledger_address
    return normalise_address(load_relayer_account(settings).address)


__all__ = ["DEFAULT_RPC_URL", "Settings", "load_relayer_account", "resolve_spender"]
