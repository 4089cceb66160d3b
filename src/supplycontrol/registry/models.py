"""Controller records and configuration views."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from supplycontrol.quota import UINT256_MAX, LimitConfig, QuotaState, QuotaTracker


def parse_amount(value: Any) -> int:
    """Parse a uint256 amount from JSON; accepts decimal strings and 'max'."""
    if isinstance(value, str) and value.strip().lower() == "max":
        return UINT256_MAX
    if isinstance(value, bool):
        raise ValueError("amount must be an integer")
    return int(value)


class SupplyAction(str, Enum):
    """Direction of a supply change being authorized."""

    MINT = "mint"
    BURN = "burn"


@dataclass
class ControllerRecord:
    """
    Everything the registry knows about one controller.

    Owned exclusively by the registry; no two records share mutable state.
    """

    identity: str
    tracker: QuotaTracker
    destination_allowlist: set[str] = field(default_factory=set)
    allow_any_destination: bool = False

    def permits(self, destination: str) -> bool:
        """Check whether the controller may target ``destination``."""
        return self.allow_any_destination or destination in self.destination_allowlist

    def to_config(self) -> ControllerConfig:
        return ControllerConfig(
            identity=self.identity,
            limit_config=self.tracker.config,
            quota_state=self.tracker.state,
            whitelist=sorted(self.destination_allowlist),
            allow_any_destination=self.allow_any_destination,
        )


@dataclass(frozen=True)
class ControllerConfig:
    """Read-only snapshot of a controller record."""

    identity: str
    limit_config: LimitConfig
    quota_state: QuotaState
    whitelist: list[str]
    allow_any_destination: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity,
            "limit_config": self.limit_config.to_dict(),
            "quota_state": self.quota_state.to_dict(),
            "whitelist": list(self.whitelist),
            "allow_any_destination": self.allow_any_destination,
            "rate_limited": self.limit_config.enabled,
        }


@dataclass
class ControllerSpec:
    """
    Initial registration for one controller.

    Used to register controllers at deployment time from a bootstrap file.
    """

    identity: str
    capacity: int
    refill_rate: int
    whitelist: list[str] = field(default_factory=list)
    allow_any_destination: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity,
            "capacity": str(self.capacity),
            "refill_rate": str(self.refill_rate),
            "whitelist": list(self.whitelist),
            "allow_any_destination": self.allow_any_destination,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ControllerSpec:
        return cls(
            identity=data["identity"],
            capacity=parse_amount(data["capacity"]),
            refill_rate=parse_amount(data.get("refill_rate", 0)),
            whitelist=list(data.get("whitelist", [])),
            allow_any_destination=bool(data.get("allow_any_destination", False)),
        )
