"""
Token bucket quota tracking for a single controller.

The bucket holds up to ``capacity`` units and refills at ``refill_rate``
units per elapsed time unit. Each accepted mint or burn drains it.
A refill rate of zero disables limiting for the controller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from supplycontrol.errors import QuotaExceededError, StaleTimestampError
from supplycontrol.quota.arithmetic import (
    UINT256_MAX,
    check_uint256,
    saturating_add,
    saturating_mul,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LimitConfig:
    """Quota ceiling and refill rate for one controller."""

    capacity: int
    """Maximum quota the available balance can reach."""

    refill_rate: int
    """Units restored per elapsed time unit (0 disables limiting)."""

    def __post_init__(self) -> None:
        check_uint256(self.capacity, "capacity")
        check_uint256(self.refill_rate, "refill_rate")

    @property
    def enabled(self) -> bool:
        return self.refill_rate > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "capacity": str(self.capacity),
            "refill_rate": str(self.refill_rate),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LimitConfig:
        return cls(
            capacity=int(data["capacity"]),
            refill_rate=int(data["refill_rate"]),
        )


@dataclass(frozen=True)
class QuotaState:
    """Mutable part of a tracker, captured as an immutable value."""

    available: int = 0
    last_update_time: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "available": str(self.available),
            "last_update_time": self.last_update_time,
        }


class QuotaTracker:
    """
    Rate limiter for one controller's mint/burn volume.

    Knows nothing about identities or whitelists. Timestamps are integers
    supplied by the caller and must never go backwards.
    """

    def __init__(self, config: LimitConfig, state: QuotaState | None = None) -> None:
        """
        Initialize tracker.

        Args:
            config: Capacity and refill rate
            state: Existing quota state (fresh trackers start empty at time 0)
        """
        self._config = config
        self._state = state or QuotaState()

    @property
    def config(self) -> LimitConfig:
        return self._config

    @property
    def state(self) -> QuotaState:
        return self._state

    @property
    def enabled(self) -> bool:
        """Whether quota is enforced; re-evaluated from config on every call."""
        return self._config.enabled

    def _require_fresh(self, now: int) -> None:
        if now < self._state.last_update_time:
            raise StaleTimestampError(now, self._state.last_update_time)

    def _refilled(self, now: int) -> int:
        """Available quota at ``now`` after refilling, clamped to capacity."""
        elapsed = now - self._state.last_update_time
        refilled = saturating_mul(elapsed, self._config.refill_rate)
        projected = saturating_add(self._state.available, refilled)
        return min(projected, self._config.capacity)

    def evaluate(self, amount: int, now: int) -> QuotaState | None:
        """
        Decide a consumption without applying it.

        Args:
            amount: Units to consume
            now: Current timestamp

        Returns:
            Successor state, or None when limiting is disabled

        Raises:
            StaleTimestampError: If now precedes the last accepted event
            QuotaExceededError: If amount exceeds the refilled quota
        """
        check_uint256(amount, "amount")
        check_uint256(now, "now")
        self._require_fresh(now)

        if not self.enabled:
            return None

        projected = self._refilled(now)
        if amount > projected:
            raise QuotaExceededError(amount, projected)

        return QuotaState(available=projected - amount, last_update_time=now)

    def apply(self, state: QuotaState | None) -> None:
        """Install a successor state produced by :meth:`evaluate`."""
        if state is not None:
            self._state = state

    def check_and_consume(self, amount: int, now: int) -> None:
        """Consume quota for a mint or burn, or raise without side effects."""
        self.apply(self.evaluate(amount, now))

    def peek(self, now: int) -> int:
        """
        Remaining quota at ``now`` without persisting the refill.

        Returns UINT256_MAX when limiting is disabled.
        """
        check_uint256(now, "now")
        self._require_fresh(now)
        if not self.enabled:
            return UINT256_MAX
        return self._refilled(now)

    def reconfigure(self, capacity: int, refill_rate: int) -> LimitConfig:
        """
        Replace capacity and refill rate in place.

        Available quota is not truncated here; a lowered ceiling takes
        effect through the clamp on the next consumption.

        Returns:
            The previous configuration
        """
        old = self._config
        self._config = LimitConfig(capacity=capacity, refill_rate=refill_rate)
        logger.debug(
            f"Quota reconfigured: capacity {old.capacity} -> {capacity}, "
            f"refill {old.refill_rate} -> {refill_rate}"
        )
        return old

    def snapshot(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "limit_config": self._config.to_dict(),
            "state": self._state.to_dict(),
        }
