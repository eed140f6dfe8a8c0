"""API key rotation with per-key health tracking.

Eligibility rules:
- a key that is rate limited is skipped until `rate_limited_until` passes
- a key with MAX_CONSECUTIVE_FAILURES or more failures is skipped until
  FAILURE_COOLDOWN_SECONDS after its last failure, then its counter resets
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, NamedTuple, Optional

logger = logging.getLogger(__name__)

MAX_CONSECUTIVE_FAILURES = 3
FAILURE_COOLDOWN_SECONDS = 5 * 60
RATE_LIMIT_COOLDOWN_SECONDS = 60


@dataclass
class CredentialHealth:
    credential_id: str
    consecutive_failures: int = 0
    last_failure_at: float = 0.0
    rate_limited_until: Optional[float] = None

    def is_rate_limited(self, now: float) -> bool:
        return self.rate_limited_until is not None and now < self.rate_limited_until

    def is_cooling_down(self, now: float) -> bool:
        return (
            self.consecutive_failures >= MAX_CONSECUTIVE_FAILURES
            and now - self.last_failure_at < FAILURE_COOLDOWN_SECONDS
        )


class KeyStatus(NamedTuple):
    total: int
    healthy: int
    rate_limited: int


class CredentialPool:
    """Round-robin pool of API keys owned by a single source client."""

    def __init__(self, keys: list[str], clock: Callable[[], float] = time.time) -> None:
        self.keys: list[str] = list(dict.fromkeys(k for k in keys if k))
        self.health: dict[str, CredentialHealth] = {
            key: CredentialHealth(credential_id=key) for key in self.keys
        }
        self.clock = clock
        self.current_index = 0

    def __len__(self) -> int:
        return len(self.keys)

    def next_eligible(self) -> Optional[str]:
        """Return the next eligible key, or None when every key is excluded."""
        if not self.keys:
            return None

        now = self.clock()

        for offset in range(len(self.keys)):
            index = (self.current_index + offset) % len(self.keys)
            health = self.health[self.keys[index]]

            if health.is_rate_limited(now):
                continue

            if health.rate_limited_until is not None:
                health.rate_limited_until = None

            if health.is_cooling_down(now):
                continue

            if (
                health.consecutive_failures > 0
                and now - health.last_failure_at >= FAILURE_COOLDOWN_SECONDS
            ):
                health.consecutive_failures = 0

            self.current_index = index
            return health.credential_id

        logger.warning("All %d API keys are unhealthy", len(self.keys))
        return None

    def mark_failure(self, key: str, rate_limited: bool = False) -> None:
        if (health := self.health.get(key)) is None:
            return

        now = self.clock()

        if rate_limited:
            health.rate_limited_until = now + RATE_LIMIT_COOLDOWN_SECONDS
            logger.warning("Key %s... rate limited, cooling down", mask_key(key))
        else:
            health.consecutive_failures += 1
            health.last_failure_at = now

        self.current_index = (self.keys.index(key) + 1) % len(self.keys)

    def mark_success(self, key: str) -> None:
        if (health := self.health.get(key)) is None:
            return

        health.consecutive_failures = 0
        health.rate_limited_until = None

    def status(self) -> KeyStatus:
        now = self.clock()
        healthy = 0
        rate_limited = 0

        for health in self.health.values():
            if health.is_rate_limited(now):
                rate_limited += 1
            elif not health.is_cooling_down(now):
                healthy += 1

        return KeyStatus(total=len(self.keys), healthy=healthy, rate_limited=rate_limited)


def mask_key(key: str) -> str:
    return key[:8]
