"""Helpers shared by the test modules."""
from __future__ import annotations

from eth_utils import to_checksum_address

START_TIME = 1_700_000_000
DAY = 86_400


def address(byte: str) -> str:
    return to_checksum_address("0x" + byte * 20)


class ManualClock:
    """Clock whose time only moves when a test says so."""

    def __init__(self, now: int = START_TIME) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now
