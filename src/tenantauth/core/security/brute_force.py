"""Brute-force protection for credential endpoints.

Failures are counted per key (client IP, submitted email) in two
independent keyspaces. Reaching the threshold blocks the key for a fixed
duration. State is process-local; several instances behind a load
balancer each keep their own counters.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog
from cachetools import LRUCache, TTLCache

from tenantauth.core.exceptions import ErrorCode, RateLimitedError

logger = structlog.get_logger()

BLOCK_REASON = "MULTIPLE_FAILED_ATTEMPT"


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class BruteForceConfig:
    """Thresholds for one keyspace."""

    threshold: int
    block_duration: timedelta
    max_keys: int = 5000
    failure_ttl: timedelta = timedelta(hours=1)


IP_DEFAULTS = BruteForceConfig(threshold=10, block_duration=timedelta(minutes=30))
EMAIL_DEFAULTS = BruteForceConfig(threshold=5, block_duration=timedelta(minutes=60))


class BruteForceGuard:
    """Failure counter with time-boxed blocking for one keyspace."""

    def __init__(
        self,
        config: BruteForceConfig,
        blocked_code: ErrorCode,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the guard.

        Args:
            config: Threshold, block duration and cache bounds.
            blocked_code: Code raised while a key is blocked.
            clock: Time source, injectable for tests.
        """
        self.config = config
        self.blocked_code = blocked_code
        self._clock = clock
        self._failures: TTLCache[str, int] = TTLCache(
            maxsize=config.max_keys,
            ttl=config.failure_ttl.total_seconds(),
            timer=lambda: self._clock().timestamp(),
        )
        self._blocks: LRUCache[str, datetime] = LRUCache(maxsize=config.max_keys)

    @staticmethod
    def _normalize(key: str) -> str:
        return key.strip().lower()

    def failures(self, key: str) -> int:
        """Current failure count for a key."""
        return self._failures.get(self._normalize(key), 0)

    def remaining_block(self, key: str) -> timedelta | None:
        """Time left on the key's block, or None if not blocked."""
        expiry = self._blocks.get(self._normalize(key))
        if expiry is None:
            return None
        remaining = expiry - self._clock()
        if remaining <= timedelta(0):
            return None
        return remaining

    def check_not_blocked(self, key: str) -> None:
        """Raise if the key is currently blocked.

        Raises:
            RateLimitedError: With ``remainingTime`` in minutes and the block reason.
        """
        remaining = self.remaining_block(key)
        if remaining is None:
            return
        minutes = math.ceil(remaining.total_seconds() / 60)
        raise RateLimitedError(
            self.blocked_code,
            data={"remainingTime": minutes, "reason": BLOCK_REASON},
        )

    def record_failure(self, key: str) -> int:
        """Count a failure and block the key once the threshold is reached.

        The counter is not reset when a block starts.

        Returns:
            The updated failure count.
        """
        key = self._normalize(key)
        count = self._failures.get(key, 0) + 1
        # Re-setting refreshes the entry's TTL
        self._failures[key] = count
        if count >= self.config.threshold:
            self._blocks[key] = self._clock() + self.config.block_duration
            logger.warning(
                "brute_force_blocked",
                keyspace=self.blocked_code.value,
                failures=count,
                block_minutes=self.config.block_duration.total_seconds() / 60,
            )
        return count

    def reset(self, key: str) -> None:
        """Clear the failure count and any block for the key."""
        key = self._normalize(key)
        self._failures.pop(key, None)
        self._blocks.pop(key, None)


class BruteForceGuards:
    """The IP and email guards, constructed once per process."""

    def __init__(
        self,
        ip_config: BruteForceConfig | None = None,
        email_config: BruteForceConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize both guards."""
        self.ip = BruteForceGuard(ip_config or IP_DEFAULTS, ErrorCode.IP_BLOCKED, clock)
        self.email = BruteForceGuard(
            email_config or EMAIL_DEFAULTS, ErrorCode.EMAIL_BLOCKED, clock
        )

    def check(self, ip: str | None, email: str | None = None) -> None:
        """Raise if either the IP or the email is blocked."""
        if ip:
            self.ip.check_not_blocked(ip)
        if email:
            self.email.check_not_blocked(email)

    def record_failure(self, ip: str | None, email: str | None = None) -> None:
        """Record a failure against both keyspaces."""
        if ip:
            self.ip.record_failure(ip)
        if email:
            self.email.record_failure(email)
