"""
Response models for the Supply Control API.
"""

from dataclasses import dataclass, field

UINT256_MAX = 2**256 - 1


def _amount(value) -> int:
    return int(value) if value is not None else 0


@dataclass
class ControllerInfo:
    """Configuration and quota state of one controller."""

    identity: str
    capacity: int
    refill_rate: int
    available: int
    last_update_time: int
    whitelist: list[str] = field(default_factory=list)
    allow_any_destination: bool = False

    @property
    def rate_limited(self) -> bool:
        return self.refill_rate != 0

    @classmethod
    def from_dict(cls, data: dict) -> "ControllerInfo":
        limit = data.get("limit_config", {})
        state = data.get("quota_state", {})
        return cls(
            identity=data.get("identity", ""),
            capacity=_amount(limit.get("capacity")),
            refill_rate=_amount(limit.get("refill_rate")),
            available=_amount(state.get("available")),
            last_update_time=_amount(state.get("last_update_time")),
            whitelist=list(data.get("whitelist", [])),
            allow_any_destination=data.get("allow_any_destination", False),
        )


@dataclass
class RemainingQuota:
    """Quota a controller could use at a point in time."""

    identity: str
    now: int
    remaining: int

    @property
    def unlimited(self) -> bool:
        return self.remaining == UINT256_MAX

    @classmethod
    def from_dict(cls, data: dict) -> "RemainingQuota":
        return cls(
            identity=data.get("identity", ""),
            now=data.get("now", 0),
            remaining=_amount(data.get("remaining")),
        )


@dataclass
class AuditEvent:
    """A persisted registry event."""

    event: str
    emitted_at: str
    data: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "AuditEvent":
        return cls(
            event=data.get("event", ""),
            emitted_at=data.get("emitted_at", ""),
            data=data.get("data", {}),
        )


@dataclass
class ApiErrorDetail:
    """Error body returned by the API."""

    error: str
    message: str
    fields: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "ApiErrorDetail":
        if "detail" in data and "error" not in data:
            detail = data["detail"]
            return cls(error="http_error", message=detail if isinstance(detail, str) else str(detail))
        extra = {k: v for k, v in data.items() if k not in ("error", "message")}
        return cls(
            error=data.get("error", "unknown"),
            message=data.get("message", ""),
            fields=extra,
        )
