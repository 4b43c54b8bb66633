"""
Action thresholds: immutable snapshots behind a swap-on-write store.

Readers call `snapshot()` once at the start of a classification and use that
object for the whole call, so a concurrent update can never hand them a
challenge value from one config and a block value from another.
"""

import threading
from dataclasses import dataclass, replace

from app.config import Settings, get_settings

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class ThresholdConfig:
    challenge: int = 50
    block: int = 80

    def __post_init__(self):
        if not 0 <= self.challenge <= self.block <= 100:
            raise ValueError(
                f"thresholds must satisfy 0 <= challenge <= block <= 100 "
                f"(got challenge={self.challenge}, block={self.block})"
            )

    def to_dict(self) -> dict:
        return {"challenge": self.challenge, "block": self.block}


class ThresholdStore:
    """Process-wide configuration channel for the threshold pair."""

    def __init__(self, initial: ThresholdConfig | None = None):
        self._current = initial or ThresholdConfig()
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ThresholdStore":
        settings = settings or get_settings()
        return cls(ThresholdConfig(
            challenge=settings.challenge_threshold,
            block=settings.block_threshold,
        ))

    def snapshot(self) -> ThresholdConfig:
        with self._lock:
            return self._current

    def update(self, challenge: int | None = None, block: int | None = None) -> ThresholdConfig:
        """Merge a (partial) update and swap it in. Raises ValueError if invalid."""
        with self._lock:
            changes = {}
            if challenge is not None:
                changes["challenge"] = challenge
            if block is not None:
                changes["block"] = block
            new = replace(self._current, **changes)
            previous, self._current = self._current, new

        logger.info("thresholds_updated", previous=previous.to_dict(), current=new.to_dict())
        return new
