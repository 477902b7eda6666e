"""Events emitted once a ledger call has committed its state changes."""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, List, MutableMapping, Optional, Type, TypeVar

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEvent:
    def as_dict(self) -> MutableMapping[str, Any]:
        payload: MutableMapping[str, Any] = {"event": type(self).__name__}
        payload.update(asdict(self))
        return payload


@dataclass(frozen=True)
class LivenessConfigured(LedgerEvent):
    owner: str
    duration: int
    timestamp: int


@dataclass(frozen=True)
class CheckedIn(LedgerEvent):
    owner: str
    timestamp: int


@dataclass(frozen=True)
class BeneficiaryCreated(LedgerEvent):
    owner: str
    key: str
    mode: str
    assets: tuple[str, ...]


@dataclass(frozen=True)
class BeneficiaryUpdated(LedgerEvent):
    owner: str
    key: str
    mode: str
    assets: tuple[str, ...]


@dataclass(frozen=True)
class SnapshotTaken(LedgerEvent):
    owner: str
    asset: str
    balance: int


@dataclass(frozen=True)
class AssetClaimed(LedgerEvent):
    owner: str
    key: str
    asset: str
    claimant: str
    amount: int


@dataclass(frozen=True)
class AssetClaimFailed(LedgerEvent):
    owner: str
    key: str
    asset: str
    claimant: str
    amount: int
    reason: str


@dataclass(frozen=True)
class IdentityClaimAccepted(LedgerEvent):
    owner: str
    identity_hash: str
    claimant: str
    nullifier: str


E = TypeVar("E", bound=LedgerEvent)


class EventLog:
    """Ordered in-process record of ledger events with optional subscribers."""

    def __init__(self) -> None:
        self._events: List[LedgerEvent] = []
        self._subscribers: List[Callable[[LedgerEvent], None]] = []

    def subscribe(self, callback: Callable[[LedgerEvent], None]) -> None:
        self._subscribers.append(callback)

    def emit(self, event: LedgerEvent) -> None:
        self._events.append(event)
        _LOGGER.debug("event %s", event)
        for callback in self._subscribers:
            callback(event)

    @property
    def events(self) -> List[LedgerEvent]:
        return list(self._events)

    def of_type(self, event_type: Type[E]) -> List[E]:
        return [event for event in self._events if isinstance(event, event_type)]

    def last(self, event_type: Optional[Type[E]] = None) -> Optional[LedgerEvent]:
        candidates = self._events if event_type is None else self.of_type(event_type)
        return candidates[-1] if candidates else None


__all__ = [
    "AssetClaimFailed",
    "AssetClaimed",
    "BeneficiaryCreated",
    "BeneficiaryUpdated",
    "CheckedIn",
    "EventLog",
    "IdentityClaimAccepted",
    "LedgerEvent",
    "LivenessConfigured",
    "SnapshotTaken",
]
