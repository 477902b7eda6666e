"""Shared fixtures: deterministic clock, in-memory token book and a wired ledger."""
from __future__ import annotations

from types import SimpleNamespace

import pytest

from heirlock.service import HeirlockLedger
from heirlock.transfers import InMemoryAssetBackend

from .support import DAY, ManualClock, address


@pytest.fixture()
def accounts() -> SimpleNamespace:
    return SimpleNamespace(
        owner=address("11"),
        alice=address("a1"),
        bob=address("b2"),
        carol=address("c3"),
        prover=address("d4"),
        spender=address("5e"),
        token_x=address("e1"),
        token_y=address("e2"),
    )


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def backend(accounts: SimpleNamespace) -> InMemoryAssetBackend:
    book = InMemoryAssetBackend(accounts.spender)
    for token in (accounts.token_x, accounts.token_y):
        book.mint(token, accounts.owner, 1_000)
        book.approve(token, accounts.owner)
    return book


@pytest.fixture()
def ledger(backend: InMemoryAssetBackend, accounts: SimpleNamespace, clock: ManualClock) -> HeirlockLedger:
    return HeirlockLedger(backend, accounts.spender, clock=clock)


@pytest.fixture()
def configured_ledger(ledger: HeirlockLedger, accounts: SimpleNamespace) -> HeirlockLedger:
    ledger.configure_liveness(accounts.owner, 30 * DAY)
    return ledger
