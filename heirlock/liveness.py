"""Per-owner liveness windows and check-ins."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, MutableMapping, Any, Optional

from .addresses import normalise_address
from .errors import InvalidDuration, NotConfigured
from .events import CheckedIn, EventLog, LivenessConfigured

_LOGGER = logging.getLogger(__name__)

Clock = Callable[[], int]


def system_clock() -> int:
    return int(time.time())


@dataclass
class OwnerSuccessionConfig:
    liveness_window: int = 0
    last_check_in: int = 0

    @property
    def configured(self) -> bool:
        return self.liveness_window != 0

    @property
    def next_checkpoint(self) -> int:
        return self.last_check_in + self.liveness_window

    def as_dict(self) -> MutableMapping[str, Any]:
        return {
            "duration": self.liveness_window,
            "last_check_in": self.last_check_in,
            "next_checkpoint": self.next_checkpoint,
        }


class LivenessTracker:
    """Tracks when each owner last proved activity."""

    def __init__(self, clock: Clock = system_clock, events: Optional[EventLog] = None) -> None:
        self.clock = clock
        self.events = events if events is not None else EventLog()
        self._configs: Dict[str, OwnerSuccessionConfig] = {}

    def configure(self, owner: str, duration: int) -> OwnerSuccessionConfig:
        """Set the liveness window and re-arm it from now."""

        owner = normalise_address(owner)
        if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            raise InvalidDuration()
        now = self.clock()
        config = self._configs.setdefault(owner, OwnerSuccessionConfig())
        config.liveness_window = duration
        config.last_check_in = now
        _LOGGER.info("Liveness window for %s set to %ss", owner, duration)
        self.events.emit(LivenessConfigured(owner=owner, duration=duration, timestamp=now))
        return config

    def check_in(self, owner: str) -> OwnerSuccessionConfig:
        owner = normalise_address(owner)
        config = self.require_configured(owner)
        now = self.clock()
        config.last_check_in = now
        _LOGGER.info("%s checked in at %s", owner, now)
        self.events.emit(CheckedIn(owner=owner, timestamp=now))
        return config

    def require_configured(self, owner: str) -> OwnerSuccessionConfig:
        config = self._configs.get(normalise_address(owner))
        if config is None or not config.configured:
            raise NotConfigured(owner)
        return config

    def get_config(self, owner: str) -> OwnerSuccessionConfig:
        """Return a copy of the owner's config (zeroed when never configured)."""

        config = self._configs.get(normalise_address(owner))
        if config is None:
            return OwnerSuccessionConfig()
        return OwnerSuccessionConfig(config.liveness_window, config.last_check_in)

    def is_alive(self, owner: str) -> bool:
        config = self._configs.get(normalise_address(owner))
        if config is None or not config.configured:
            return True
        return config.next_checkpoint >= self.clock()

    def owners(self) -> Dict[str, OwnerSuccessionConfig]:
        return dict(self._configs)

    def restore(self, owner: str, config: OwnerSuccessionConfig) -> None:
        self._configs[normalise_address(owner)] = config


__all__ = ["Clock", "LivenessTracker", "OwnerSuccessionConfig", "system_clock"]
