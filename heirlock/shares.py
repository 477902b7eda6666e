"""Share rules and the conversion of a rule into a concrete transfer amount."""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, MutableMapping

BPS_DENOMINATOR = 10_000


class ShareKind(IntEnum):
    ABSOLUTE = 0
    BASIS_POINTS = 1

    @classmethod
    def parse(cls, value: Any) -> "ShareKind":
        """Accept enum members, their integer codes, or the labels used by the dashboard."""

        if isinstance(value, ShareKind):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return cls(value)
        if isinstance(value, str):
            text = value.strip().lower().replace("-", "_")
            if text in {"bps", "basis_points", "percent", "percentage"}:
                return cls.BASIS_POINTS
            if text in {"abs", "absolute", "fixed", "amount"}:
                return cls.ABSOLUTE
        raise ValueError(f"Unknown share kind: {value!r}")


@dataclass
class ShareRule:
    """One (owner, beneficiary, asset) allocation."""

    kind: ShareKind
    amount: int
    claimed: bool = False

    def __post_init__(self) -> None:
        self.kind = ShareKind.parse(self.kind)
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise ValueError(f"Share amount must be an integer, got {self.amount!r}")
        if self.amount < 0:
            raise ValueError("Share amount cannot be negative")

    @property
    def is_bps(self) -> bool:
        return self.kind is ShareKind.BASIS_POINTS

    def as_dict(self) -> MutableMapping[str, Any]:
        return {"kind": self.kind.name, "amount": self.amount, "claimed": self.claimed}


def compute_share_amount(rule: ShareRule, balance: int) -> int:
    """Return the amount ``rule`` entitles its holder to out of ``balance``.

    Absolute rules ignore the balance. Basis-point rules take
    ``balance * amount / 10000`` rounded down.
    """

    if rule.kind is ShareKind.ABSOLUTE:
        return rule.amount
    if balance <= 0:
        return 0
    return balance * rule.amount // BPS_DENOMINATOR


__all__ = ["BPS_DENOMINATOR", "ShareKind", "ShareRule", "compute_share_amount"]
